import logging
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

logger = logging.getLogger("uvicorn.error")

# Headers that either stop the page from rendering under the proxy origin
# or carry session state across origins
DENIED_RESPONSE_HEADERS = {
    "content-security-policy",
    "content-security-policy-report-only",
    "x-frame-options",
    "set-cookie",
    "set-cookie2",
    "strict-transport-security",
}

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# The relayed body is the decoded payload, so these no longer describe it
BODY_FRAMING_HEADERS = {
    "content-encoding",
    "content-length",
}

FILTERED_HEADERS = DENIED_RESPONSE_HEADERS | HOP_BY_HOP_HEADERS | BODY_FRAMING_HEADERS

HeaderSource = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def sanitize_headers(
    headers: Optional[HeaderSource], exclude: Iterable[str] = ()
) -> Dict[str, str]:
    """
    Copy upstream response headers, dropping everything in FILTERED_HEADERS.

    `exclude` names extra headers the caller sets itself (e.g. content-type).
    Headers that cannot be written back as latin-1 are dropped as well.
    """
    if not headers:
        return {}
    extra = {name.lower() for name in exclude}
    items = headers.items() if hasattr(headers, "items") else headers

    safe_headers: Dict[str, str] = {}
    for name, value in items:
        name_lower = name.lower()
        if name_lower in FILTERED_HEADERS or name_lower in extra:
            continue
        if not _is_latin1(name_lower) or not _is_latin1(value):
            logger.debug(f"Dropping upstream header {name_lower!r}: not latin-1 encodable")
            continue
        safe_headers[name_lower] = value
    return safe_headers


def _is_latin1(value: str) -> bool:
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


def build_upstream_headers(user_agent: Optional[str], default_user_agent: str) -> Dict[str, str]:
    """
    Headers sent to the target. Only the caller's User-Agent is relayed;
    cookies, referer and credentials never leave the proxy.
    """
    return {"User-Agent": user_agent or default_user_agent}
