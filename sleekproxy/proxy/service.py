import logging
from typing import AsyncIterator, Dict, Optional

from opentelemetry import trace

from sleekproxy.utils import redact_url
from sleekproxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)

from .errors import (
    AuthorizationError,
    InternalError,
    ProxyError,
    UpstreamError,
    ValidationError,
)
from .fetcher import DEFAULT_CONTENT_TYPE, HttpxFetcher, UpstreamFetcher, UpstreamResponse
from .headers import build_upstream_headers, sanitize_headers
from .html_rewriter import DocumentFactory, rewrite_html
from .models import (
    ProxyRequest,
    ProxyResult,
    ProxySettings,
    RequestState,
    ResolvedTarget,
    RewriteContext,
)
from .ssrf_guard import SSRFGuard
from .url_rewriter import resolve_and_proxy

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

HTML_MEDIA_TYPE = "text/html; charset=utf-8"

_FAILURE_STATES = {
    ValidationError: RequestState.REJECTED_VALIDATION,
    AuthorizationError: RequestState.REJECTED_GUARD,
    UpstreamError: RequestState.UPSTREAM_FAILED,
}


class _StateTracker:
    """Records the request lifecycle on the span; states only move forward."""

    def __init__(self, span):
        self.span = span
        self.history = [RequestState.RECEIVED]
        span.set_attribute("proxy.state", RequestState.RECEIVED.value)

    @property
    def state(self) -> RequestState:
        return self.history[-1]

    def advance(self, state: RequestState) -> None:
        if state in self.history:
            raise RuntimeError(f"Request state {state.value} entered twice")
        self.history.append(state)
        self.span.set_attribute("proxy.state", state.value)

    def fail(self, error: Exception) -> None:
        state = _FAILURE_STATES.get(type(error), RequestState.INTERNAL_ERROR)
        self.advance(state)
        self.span.set_attribute("proxy.error", format_exception_message(error))


def is_html(content_type: str) -> bool:
    return "text/html" in (content_type or "").lower()


class ProxyService:
    """
    Orchestrates one proxied GET: validate, authorize, fetch, classify,
    then rewrite HTML or relay bytes untouched.

    The fetch capability, the SSRF guard and the HTML tree are injected so
    the same rules run behind any transport.
    """

    def __init__(
        self,
        settings: Optional[ProxySettings] = None,
        guard: Optional[SSRFGuard] = None,
        fetcher: Optional[UpstreamFetcher] = None,
        document_factory: Optional[DocumentFactory] = None,
    ):
        self.settings = settings or ProxySettings.from_vars()
        self.guard = guard or SSRFGuard(
            allowed_hosts=self.settings.allowed_hosts,
            block_private=self.settings.block_private,
        )
        self.fetcher = fetcher or HttpxFetcher(timeout=self.settings.timeout)
        self.document_factory = document_factory

    @property
    def usage(self) -> str:
        return (
            "Missing url parameter. Usage: "
            f"{self.settings.proxy_path}?url=https://example.com"
        )

    async def handle(self, request: ProxyRequest) -> ProxyResult:
        with tracer.start_as_current_span("proxy_request") as span:
            tracker = _StateTracker(span)
            try:
                result = await self._process(request, tracker, span)
            except ProxyError as e:
                tracker.fail(e)
                raise
            except Exception as e:
                tracker.fail(e)
                log_exception_with_details(logger, "[Proxy]", e)
                raise InternalError(
                    f"Proxy error: {format_exception_message(e)}"
                ) from e
            tracker.advance(RequestState.RESPONDED)
            span.set_attribute("proxy.status_code", result.status_code)
            return result

    def validate(self, request: ProxyRequest) -> ResolvedTarget:
        if not request.target_url or not request.target_url.strip():
            raise ValidationError(self.usage)
        return ResolvedTarget.parse(request.target_url)

    async def _process(self, request: ProxyRequest, tracker: _StateTracker, span) -> ProxyResult:
        target = self.validate(request)
        tracker.advance(RequestState.VALIDATED)
        span.set_attribute("proxy.target_url", redact_url(target.href))

        decision = await self.guard.authorize(target.hostname)
        if not decision.allowed:
            raise AuthorizationError(decision.reason or "Host is not allowed")
        tracker.advance(RequestState.AUTHORIZED)

        logger.info(f"Proxying GET {redact_url(target.href)}")
        upstream = await self.fetcher.fetch(
            target.href,
            build_upstream_headers(request.user_agent, self.settings.default_user_agent),
        )
        tracker.advance(RequestState.FETCHED)

        try:
            content_type = upstream.content_type
            tracker.advance(RequestState.CLASSIFIED)
            if is_html(content_type):
                result = await self._rewrite(target, upstream, span)
                tracker.advance(RequestState.REWRITTEN)
            else:
                result = self._pass_through(target, upstream, content_type)
                tracker.advance(RequestState.PASSED_THROUGH)
        except BaseException:
            await upstream.aclose()
            raise
        return result

    def _response_headers(self, target: ResolvedTarget, upstream: UpstreamResponse) -> Dict[str, str]:
        headers = sanitize_headers(upstream.headers, exclude=("content-type",))
        location = headers.get("location")
        if location:
            # Redirects are not followed here; the client follows them back
            # through the proxy, which re-runs the guard on the new host
            headers["location"] = resolve_and_proxy(
                target.href, location, self.settings.proxy_path
            )
        return headers

    async def _rewrite(self, target: ResolvedTarget, upstream: UpstreamResponse, span) -> ProxyResult:
        try:
            html = await upstream.read_text()
        finally:
            await upstream.aclose()

        context = RewriteContext(base_url=target.href, proxy_path=self.settings.proxy_path)
        rewritten, stats = rewrite_html(html, context, self.document_factory)
        span.set_attribute("proxy.links_rewritten", stats.links_rewritten)
        span.set_attribute("proxy.csp_meta_removed", stats.csp_meta_removed)

        return ProxyResult(
            status_code=upstream.status_code,
            media_type=HTML_MEDIA_TYPE,
            headers=self._response_headers(target, upstream),
            text=rewritten,
        )

    def _pass_through(self, target: ResolvedTarget, upstream: UpstreamResponse, content_type: str) -> ProxyResult:
        return ProxyResult(
            status_code=upstream.status_code,
            media_type=content_type or DEFAULT_CONTENT_TYPE,
            headers=self._response_headers(target, upstream),
            stream=_relay(upstream, target),
            close=upstream.aclose,
        )


async def _relay(upstream: UpstreamResponse, target: ResolvedTarget) -> AsyncIterator[bytes]:
    """Relay body chunks as they arrive; always releases the upstream connection."""
    try:
        async for chunk in upstream.iter_bytes():
            yield chunk
    except UpstreamError as e:
        logger.warning(f"Upstream stream for {redact_url(target.href)} aborted: {e}")
        raise
    finally:
        await upstream.aclose()
