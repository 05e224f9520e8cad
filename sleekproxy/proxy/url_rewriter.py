import re
from urllib.parse import quote, urljoin

# Values that must never be routed through the proxy
SKIP_PATTERN = re.compile(r"^(data:|javascript:|mailto:|tel:|#)", re.IGNORECASE)

# Same reserved set as JavaScript's encodeURIComponent
_URL_PARAM_SAFE = "-_.!~*'()"


def is_skipped_value(value: str) -> bool:
    """Return True for attribute values that are left untouched."""
    return bool(SKIP_PATTERN.match(value))


def build_proxy_url(absolute_url: str, proxy_path: str = "/proxy") -> str:
    """Build the proxy entry path that fetches `absolute_url`."""
    return f"{proxy_path}?url={quote(absolute_url, safe=_URL_PARAM_SAFE)}"


def resolve_and_proxy(base: str, value: str, proxy_path: str = "/proxy") -> str:
    """
    Resolve `value` against `base` and turn it into a proxied link.

    Empty values and skip-scheme values (data:, javascript:, mailto:, tel:,
    bare fragments) are returned unchanged. A value that cannot be resolved
    is also returned unchanged so one broken link never fails a whole page.
    """
    if not value:
        return value
    if is_skipped_value(value):
        return value
    try:
        absolute = urljoin(base, value)
    except ValueError:
        return value
    return build_proxy_url(absolute, proxy_path)
