from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

from .errors import ValidationError

ALLOWED_SCHEMES = ("http", "https")


class RequestState(str, Enum):
    """Lifecycle of a single proxied request. No state is entered twice."""

    RECEIVED = "received"
    VALIDATED = "validated"
    AUTHORIZED = "authorized"
    FETCHED = "fetched"
    CLASSIFIED = "classified"
    REWRITTEN = "rewritten"
    PASSED_THROUGH = "passed_through"
    RESPONDED = "responded"
    REJECTED_VALIDATION = "rejected_validation"
    REJECTED_GUARD = "rejected_guard"
    UPSTREAM_FAILED = "upstream_failed"
    INTERNAL_ERROR = "internal_error"


@dataclass
class ProxySettings:
    """Explicit configuration handed to the proxy service at construction."""

    proxy_path: str = "/proxy"
    timeout: float = 20.0
    block_private: bool = True
    allowed_hosts: Tuple[str, ...] = ()
    default_user_agent: str = "SleekProxy/1.0"

    @classmethod
    def from_vars(cls) -> "ProxySettings":
        """Build settings from sleekproxy.vars (evaluated at call time)."""
        from sleekproxy import vars as env

        return cls(
            proxy_path=env.PROXY_PATH,
            timeout=env.PROXY_TIMEOUT,
            block_private=env.PROXY_BLOCK_PRIVATE,
            allowed_hosts=tuple(env.PROXY_ALLOWED_HOSTS),
            default_user_agent=env.PROXY_DEFAULT_USER_AGENT,
        )


@dataclass
class ProxyRequest:
    target_url: Optional[str]
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class ResolvedTarget:
    scheme: str
    hostname: str
    origin: str
    href: str

    @classmethod
    def parse(cls, raw: str) -> "ResolvedTarget":
        """
        Parse and validate a caller supplied target URL.

        Raises ValidationError for anything that is not an absolute
        http(s) URL with a hostname.
        """
        href = raw.strip()
        try:
            parts = urlsplit(href)
            hostname = parts.hostname
            # Accessing .port validates it
            parts.port
        except ValueError as e:
            raise ValidationError(f"Malformed url: {e}") from e

        scheme = parts.scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            raise ValidationError(
                "Only http(s) URLs are supported. Include http:// or https://"
            )
        if not hostname:
            raise ValidationError("The url parameter must include a hostname")

        netloc = parts.netloc.rsplit("@", 1)[-1]
        return cls(
            scheme=scheme,
            hostname=hostname,
            origin=f"{scheme}://{netloc}",
            href=href,
        )


@dataclass(frozen=True)
class HostDecision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "HostDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "HostDecision":
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True)
class RewriteContext:
    base_url: str
    proxy_path: str = "/proxy"


@dataclass
class ProxyResult:
    """
    Transport independent description of the response to send back.

    Exactly one of `text` (rewritten HTML) or `stream` (raw upstream bytes)
    is set. `aclose` releases the upstream connection and is safe to call
    more than once.
    """

    status_code: int
    media_type: str
    headers: Dict[str, str] = field(default_factory=dict)
    text: Optional[str] = None
    stream: Optional[AsyncIterator[bytes]] = None
    close: Optional[Callable[[], Awaitable[None]]] = None

    @property
    def is_rewritten(self) -> bool:
        return self.text is not None

    async def read_bytes(self) -> bytes:
        """Drain the body into memory, for transports that cannot stream."""
        if self.text is not None:
            return self.text.encode("utf-8")
        body = bytearray()
        try:
            if self.stream is not None:
                async for chunk in self.stream:
                    body.extend(chunk)
        finally:
            await self.aclose()
        return bytes(body)

    async def aclose(self) -> None:
        if self.close is not None:
            await self.close()
