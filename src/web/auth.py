"""Bearer-token authentication.

Tokens are HS256 JWTs whose ``sub`` claim is the user id. With no
``AUTH_JWT_SECRET`` configured the server runs in development mode and
every caller is ``local-user``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiohttp import web
from jose import JWTError, jwt

from src.config import settings
from src.errors import AuthenticationRequired, InvalidCredential

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
LOCAL_USER = "local-user"
USER_KEY = "user_id"


def bearer_token(header: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_token(token: str, secret: str, audience: str | None = None) -> str:
    """Return the user id carried by *token*.

    Raises:
        InvalidCredential: bad signature, expired, wrong audience or no subject.
    """
    options = {"verify_aud": bool(audience)}
    try:
        claims = jwt.decode(
            token, secret, algorithms=[ALGORITHM], audience=audience or None, options=options
        )
    except JWTError as exc:
        msg = f"Invalid credential: {exc}"
        raise InvalidCredential(msg) from exc
    subject = claims.get("sub")
    if not subject:
        msg = "Invalid credential: token has no subject"
        raise InvalidCredential(msg)
    return str(subject)


def resolve_user(authorization: str | None) -> str | None:
    """Map an Authorization header to a user id (None when anonymous)."""
    if not settings.auth_enabled():
        return LOCAL_USER
    token = bearer_token(authorization)
    if token is None:
        return None
    return verify_token(token, settings.auth_jwt_secret, settings.auth_jwt_audience)


@web.middleware
async def auth_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Attach ``request["user_id"]``. Invalid tokens are rejected outright."""
    request[USER_KEY] = resolve_user(request.headers.get("Authorization"))
    return await handler(request)


def current_user(request: web.Request) -> str | None:
    return request.get(USER_KEY)


def require_user(request: web.Request) -> str:
    """The caller's user id.

    Raises:
        AuthenticationRequired: anonymous caller.
    """
    user_id = current_user(request)
    if not user_id:
        msg = "Authentication required"
        raise AuthenticationRequired(msg)
    return user_id
