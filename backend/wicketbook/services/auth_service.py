"""Identity-provider token verification and FastAPI auth dependencies.

Sign-up and login happen at the external identity provider. It issues HS256
tokens whose ``sub`` is the opaque user id; this service only verifies them
and maps the subject to a wallet, creating it on first sight.
"""

import logging
from typing import Iterator, Optional

import jwt
from fastapi import HTTPException, Request, status
from jwt.exceptions import InvalidSignatureError, InvalidTokenError

from wicketbook.config import settings
from wicketbook.services import wallet_service

logger = logging.getLogger("wicketbook.auth")

ALGORITHM = "HS256"
_LEEWAY_SECONDS = 30


def _secrets() -> Iterator[str]:
    if not settings.JWT_SECRET:
        raise InvalidTokenError("JWT_SECRET is not configured")
    yield settings.JWT_SECRET
    # Tokens signed before a rotation stay valid until they expire.
    if settings.JWT_SECRET_OLD:
        yield settings.JWT_SECRET_OLD


def decode_jwt(token: str) -> dict:
    """Verify a token against the current secret, then the previous one."""
    last_error: InvalidTokenError | None = None
    for secret in _secrets():
        try:
            return jwt.decode(
                token, secret, algorithms=[ALGORITHM],
                options={"require": ["sub"]}, leeway=_LEEWAY_SECONDS,
            )
        except InvalidSignatureError as exc:
            last_error = exc
    raise last_error


def extract_token(request: Request) -> Optional[str]:
    """Bearer header first, then the ``access_token`` cookie."""
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get("access_token")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def user_from_token(token: Optional[str]) -> dict:
    if not token:
        raise _unauthorized("Not authenticated.")
    try:
        claims = decode_jwt(token)
    except InvalidTokenError as exc:
        logger.debug("Rejected token: %s", exc)
        raise _unauthorized("Invalid token.")

    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise _unauthorized("Invalid token.")
    return await wallet_service.ensure_user(subject, claims.get("email"))


async def get_current_user(request: Request) -> dict:
    """FastAPI dependency: authenticated user document (wallet included)."""
    return await user_from_token(extract_token(request))


async def get_admin_user(request: Request) -> dict:
    user = await get_current_user(request)
    if not user.get("is_admin"):
        logger.warning("Admin route denied for user=%s", user["_id"])
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only.")
    return user
