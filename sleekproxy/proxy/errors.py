"""
Error taxonomy for the proxy core.

Each error carries the HTTP status the transport adapters answer with.
None of them are retried.
"""


class ProxyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ProxyError):
    """Missing, malformed or non-http(s) target URL."""

    status_code = 400


class AuthorizationError(ProxyError):
    """Target host is private, unresolvable or not on the allowlist."""

    status_code = 403


class UpstreamError(ProxyError):
    """Connection failure or timeout while talking to the target."""

    status_code = 502


class InternalError(ProxyError):
    status_code = 500
