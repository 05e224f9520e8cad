"""
Function-per-request entry point (Netlify / AWS Lambda style).

The event carries `queryStringParameters` and `headers`; the return value is
the `{"statusCode", "headers", "body", "isBase64Encoded"}` envelope these
platforms expect. Such transports cannot stream, so non-HTML bodies are
buffered and returned base64 encoded.
"""

import asyncio
import base64
import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from sleekproxy.proxy import ProxyError, ProxyRequest, ProxyService, ProxySettings
from sleekproxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from sleekproxy.vars import FUNCTION_DEFAULT_USER_AGENT, FUNCTION_PROXY_PATH

logger = logging.getLogger("uvicorn.error")

TEXT_PLAIN = "text/plain; charset=utf-8"


def _text_response(status_code: int, body: str) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"content-type": TEXT_PLAIN},
        "body": body,
        "isBase64Encoded": False,
    }


def build_function_service() -> ProxyService:
    settings = replace(
        ProxySettings.from_vars(),
        proxy_path=FUNCTION_PROXY_PATH,
        default_user_agent=FUNCTION_DEFAULT_USER_AGENT,
    )
    return ProxyService(settings=settings)


async def handle_event(
    event: Dict[str, Any], service: Optional[ProxyService] = None
) -> Dict[str, Any]:
    params = event.get("queryStringParameters") or {}
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    service = service or build_function_service()

    try:
        result = await service.handle(
            ProxyRequest(target_url=params.get("url"), user_agent=headers.get("user-agent"))
        )
    except ProxyError as e:
        return _text_response(e.status_code, e.message)
    except Exception as e:
        log_exception_with_details(logger, "[Proxy-Function]", e)
        return _text_response(
            500, f"Proxy function error: {format_exception_message(e)}"
        )

    response_headers = dict(result.headers)
    response_headers["content-type"] = result.media_type

    if result.is_rewritten:
        return {
            "statusCode": result.status_code,
            "headers": response_headers,
            "body": result.text,
            "isBase64Encoded": False,
        }

    try:
        # Buffering the whole body is bounded by the same timeout as the fetch
        body = await asyncio.wait_for(result.read_bytes(), timeout=service.settings.timeout)
    except asyncio.TimeoutError:
        logger.warning("Proxy function timed out buffering upstream body")
        return _text_response(502, "Upstream request timed out")
    except ProxyError as e:
        return _text_response(e.status_code, e.message)

    return {
        "statusCode": result.status_code,
        "headers": response_headers,
        "body": base64.b64encode(body).decode("ascii"),
        "isBase64Encoded": True,
    }


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    return asyncio.run(handle_event(event))
