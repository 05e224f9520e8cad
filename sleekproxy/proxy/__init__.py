from .errors import (
    AuthorizationError,
    InternalError,
    ProxyError,
    UpstreamError,
    ValidationError,
)
from .models import (
    HostDecision,
    ProxyRequest,
    ProxyResult,
    ProxySettings,
    RequestState,
    ResolvedTarget,
    RewriteContext,
)
from .service import ProxyService

__all__ = [
    "AuthorizationError",
    "HostDecision",
    "InternalError",
    "ProxyError",
    "ProxyRequest",
    "ProxyResult",
    "ProxyService",
    "ProxySettings",
    "RequestState",
    "ResolvedTarget",
    "RewriteContext",
    "UpstreamError",
    "ValidationError",
]
