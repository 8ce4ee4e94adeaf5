"""
API dependencies for sessions, audit logging, billing and storage.
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments.stripe_adapter import StripeAdapter, create_stripe_adapter
from api.session import get_session_user
from core.security.tokens import SessionTokenService
from infrastructure.config.settings import settings
from infrastructure.database.connection import async_session_maker, get_db
from infrastructure.database.models import User
from services.activity_log import ActivityLogWriter
from services.statement_converter import StatementStore


@lru_cache
def get_token_service() -> SessionTokenService:
    """
    Get the session token service built from settings.

    Raises:
        ValueError: If AUTH_SECRET resolves to an empty value
    """
    return SessionTokenService(
        secret_key=settings.auth_secret,
        algorithm=settings.session_algorithm,
        expire_hours=settings.session_expire_hours,
    )


@lru_cache
def get_activity_writer() -> ActivityLogWriter:
    return ActivityLogWriter(async_session_maker)


def get_stripe_adapter() -> StripeAdapter:
    return create_stripe_adapter()


def get_statement_store() -> StatementStore:
    return StatementStore()


async def get_optional_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[SessionTokenService, Depends(get_token_service)],
) -> Optional[User]:
    """Dependency resolving the signed-in user, or None."""
    return await get_session_user(request, db, tokens)
