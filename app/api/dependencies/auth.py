"""FastAPI authentication dependency for JWT-based auth.

Provides get_current_user_id, which reads the token from the Authorization
header (mobile/API clients) or the ``session`` cookie (web).
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from loguru import logger

from app.core.auth_jwt import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def _get_auth_token(request: Request, token: str | None) -> str | None:
    if token:
        return token
    return request.cookies.get("session") or None


def get_current_user_id(request: Request, token: str | None = Depends(oauth2_scheme)) -> str:
    """FastAPI dependency returning the authenticated user ID.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    auth_token = _get_auth_token(request, token)

    if not auth_token:
        logger.warning(
            f"Auth failed: Missing authentication token. Path: {request.url.path}, Method: {request.method}, "
            f"Cookie present: {'session' in request.cookies}"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header or a session cookie.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_access_token(auth_token)
    except ValueError as e:
        logger.warning(f"Auth failed: {e}, Path: {request.url.path}, Method: {request.method}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
