import html
import logging
import os
from string import Template
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from sleekproxy.auth.basic import require_basic_auth
from sleekproxy.proxy import ProxyError, ProxyRequest, ProxyResult, ProxyService
from sleekproxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from sleekproxy.vars import PROXY_PATH, PUBLIC_DIR

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def get_proxy_service() -> ProxyService:
    """Build a request-scoped proxy service from the current configuration."""
    return ProxyService()


def render_landing_page(public_dir: Optional[str], proxy_path: str) -> Optional[str]:
    """Fill `$proxy_path` in the landing page template; None when there is no page."""
    if not public_dir:
        return None
    index_path = os.path.join(public_dir, "index.html")
    if not os.path.isfile(index_path):
        return None
    with open(index_path, encoding="utf-8") as f:
        template = Template(f.read())
    return template.safe_substitute(proxy_path=html.escape(proxy_path, quote=True))


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def landing_page() -> HTMLResponse:
    page = render_landing_page(PUBLIC_DIR, PROXY_PATH)
    if page is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return HTMLResponse(page)


@router.get(PROXY_PATH, dependencies=[Depends(require_basic_auth)])
async def proxy(
    request: Request,
    url: Optional[str] = Query(None, description="Absolute http(s) URL to fetch"),
    service: ProxyService = Depends(get_proxy_service),
) -> Response:
    """Fetch `url` through the proxy, rewriting HTML so navigation stays proxied."""
    proxy_request = ProxyRequest(
        target_url=url,
        user_agent=request.headers.get("user-agent"),
    )
    try:
        result = await service.handle(proxy_request)
    except ProxyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        log_exception_with_details(logger, "[Proxy]", e)
        raise HTTPException(
            status_code=500, detail=f"Proxy error: {format_exception_message(e)}"
        )

    try:
        return _build_response(result)
    except Exception as e:
        await result.aclose()
        log_exception_with_details(logger, "[Proxy]", e)
        raise HTTPException(
            status_code=500, detail=f"Proxy error: {format_exception_message(e)}"
        )


def _build_response(result: ProxyResult) -> Response:
    if result.is_rewritten:
        return HTMLResponse(
            content=result.text,
            status_code=result.status_code,
            headers=result.headers,
            media_type=result.media_type,
        )

    return StreamingResponse(
        result.stream,
        status_code=result.status_code,
        headers=result.headers,
        media_type=result.media_type,
        background=BackgroundTask(result.aclose),
    )
