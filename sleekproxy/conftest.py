from typing import Callable, List

import httpx
import pytest

from sleekproxy.proxy import ProxyService, ProxySettings
from sleekproxy.proxy.fetcher import HttpxFetcher
from sleekproxy.proxy.ssrf_guard import SSRFGuard
from sleekproxy.utils_tests.dns import PUBLIC_ADDRESS, make_resolver


@pytest.fixture
def upstream_requests() -> List[httpx.Request]:
    """Requests that reached the mocked upstream, in order."""
    return []


@pytest.fixture
def make_service(upstream_requests):
    """
    Build a ProxyService whose upstream is an httpx.MockTransport and whose
    DNS answers with a public address unless `resolver` says otherwise.
    """

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        resolver=None,
        document_factory=None,
        **settings_kwargs,
    ) -> ProxyService:
        def recording_handler(request: httpx.Request):
            upstream_requests.append(request)
            return handler(request)

        settings = ProxySettings(**settings_kwargs)
        guard = SSRFGuard(
            allowed_hosts=settings.allowed_hosts,
            block_private=settings.block_private,
            resolver=resolver or make_resolver({}, default=[PUBLIC_ADDRESS]),
        )
        fetcher = HttpxFetcher(
            timeout=settings.timeout, transport=httpx.MockTransport(recording_handler)
        )
        return ProxyService(
            settings=settings,
            guard=guard,
            fetcher=fetcher,
            document_factory=document_factory,
        )

    return _make
