import asyncio
import logging
from typing import AsyncIterator, Dict, Optional, Protocol

import httpx

from .errors import UpstreamError, ValidationError

logger = logging.getLogger("uvicorn.error")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class UpstreamResponse:
    """
    One upstream response, owned by a single proxied request.

    Headers are case-insensitive. The body is either read fully as text
    (`read_text`) or relayed chunk by chunk (`iter_bytes`), never both.
    `deadline` is the event loop time by which a buffered read must finish.
    """

    def __init__(
        self,
        response: httpx.Response,
        client: Optional[httpx.AsyncClient] = None,
        deadline: Optional[float] = None,
    ):
        self._response = response
        self._client = client
        self._deadline = deadline

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def url(self) -> str:
        return str(self._response.url)

    @property
    def content_type(self) -> str:
        return self._response.headers.get("content-type", "")

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(self._deadline - asyncio.get_running_loop().time(), 0.0)

    async def read_text(self) -> str:
        try:
            await asyncio.wait_for(self._response.aread(), timeout=self.remaining())
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            logger.warning(f"Proxy timeout reading body of {self.url}: {e}")
            raise UpstreamError("Upstream request timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed reading upstream body: {e}") from e
        return self._response.text

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upstream body stream failed: {e}") from e

    async def aclose(self) -> None:
        await self._response.aclose()
        if self._client is not None:
            await self._client.aclose()


class UpstreamFetcher(Protocol):
    async def fetch(self, url: str, headers: Dict[str, str]) -> UpstreamResponse: ...


class HttpxFetcher:
    """
    Issues a single GET per request with httpx.

    Redirects are not followed and nothing is retried. `timeout` is one
    deadline per request covering the response headers and any buffered
    body read. Streamed bodies are bounded per read by httpx only.
    """

    def __init__(
        self,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        verify: bool = True,
    ):
        self.timeout = timeout
        self._transport = transport
        self._verify = verify

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=False,
            transport=self._transport,
            verify=self._verify,
        )

    async def fetch(self, url: str, headers: Dict[str, str]) -> UpstreamResponse:
        client = self._client()
        response = None
        deadline = asyncio.get_running_loop().time() + self.timeout
        try:
            request = client.build_request("GET", url, headers=headers)
            response = await asyncio.wait_for(
                client.send(request, stream=True), timeout=self.timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            logger.warning(f"Proxy timeout for {url}: {e}")
            raise UpstreamError("Upstream request timed out") from e
        except httpx.InvalidURL as e:
            raise ValidationError(f"Malformed url: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            raise UpstreamError(f"Upstream request failed: {e}") from e
        finally:
            if response is None:
                await client.aclose()
        return UpstreamResponse(response, client, deadline=deadline)
