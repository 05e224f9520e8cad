import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from sleekproxy import vars as env

logger = logging.getLogger("uvicorn.error")

security = HTTPBasic(auto_error=False, realm="SleekProxy")


def basic_auth_enabled() -> bool:
    return bool(env.PROXY_AUTH_USERNAME and env.PROXY_AUTH_PASSWORD)


def _matches(supplied: str, expected: str) -> bool:
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


async def require_basic_auth(
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
) -> Optional[str]:
    """
    Dependency that authorizes the caller when basic auth is configured.
    Returns the authenticated username, or None when auth is disabled.
    """
    if not basic_auth_enabled():
        return None

    if credentials is not None:
        user_ok = _matches(credentials.username, env.PROXY_AUTH_USERNAME)
        password_ok = _matches(credentials.password, env.PROXY_AUTH_PASSWORD)
        if user_ok and password_ok:
            return credentials.username
        logger.warning(f"Rejected basic auth for user {credentials.username!r}")

    raise HTTPException(
        status_code=401,
        detail="Authentication required",
        headers={"WWW-Authenticate": 'Basic realm="SleekProxy"'},
    )
