"""
Session cookie handling.

The session cookie holds a signed token naming the user. It is httpOnly,
secure and SameSite=Lax, and lives for the token's lifetime.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request
from starlette.responses import Response

from core.security.tokens import InvalidSession, SessionTokenService
from infrastructure.config.settings import settings
from infrastructure.database.models import User
from services.teams import get_user_by_id

logger = logging.getLogger(__name__)


def _cookie_kwargs() -> dict:
    return dict(httponly=True, secure=True, samesite="lax", path="/")


def set_session(response: Response, tokens: SessionTokenService, user_id: int) -> None:
    """Issue a session token for the user and set it on the response."""
    token, expires = tokens.issue(user_id)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=tokens.expire_hours * 3600,
        expires=expires,
        **_cookie_kwargs(),
    )


def clear_session(response: Response) -> None:
    response.delete_cookie(settings.session_cookie_name, **_cookie_kwargs())


async def get_session_user(
    request: Request,
    db: AsyncSession,
    tokens: SessionTokenService,
) -> Optional[User]:
    """
    Resolve the signed-in user from the session cookie.

    A missing, tampered or expired cookie, or a cookie naming a deleted user,
    all mean "no session".
    """
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None

    try:
        claim = tokens.verify(token)
    except InvalidSession as e:
        logger.info("Ignoring invalid session cookie: %s", e)
        return None

    return await get_user_by_id(db, claim.user_id)
