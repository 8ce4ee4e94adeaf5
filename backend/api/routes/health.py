"""Health check endpoints."""

import asyncio
import logging
import os
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_statement_store
from infrastructure.config import get_settings
from infrastructure.database import get_db
from services.statement_converter import StatementStore

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


async def _database_status(db: AsyncSession) -> str:
    try:
        await asyncio.wait_for(db.execute(text("SELECT 1")), timeout=5.0)
    except TimeoutError:
        logger.error("Health check DB timeout")
        return "error: database timeout"
    except Exception as e:
        logger.error("Health check DB error: %s", e)
        return "error: database check failed"
    return "connected"


def _upload_status(store: StatementStore) -> str:
    # The upload root is created lazily, so a missing root is fine if its parent is writable
    path = store.base_path
    while not path.exists() and path != path.parent:
        path = path.parent
    return "writable" if os.access(path, os.W_OK) else "error: upload root not writable"


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(
    db: Annotated[AsyncSession, Depends(get_db)],
    store: Annotated[StatementStore, Depends(get_statement_store)],
):
    """
    Readiness probe.

    Ready when the database answers and uploads can be written. Stripe
    configuration is reported but does not gate readiness; webhooks fail
    with 400 until it is set.
    """
    database = await _database_status(db)
    uploads = _upload_status(store)
    ready = database == "connected" and uploads == "writable"

    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "ready": ready,
            "database": database,
            "uploads": uploads,
            "stripe": "configured" if settings.stripe_secret_key else "not configured",
            "stripe_webhooks": "configured" if settings.stripe_webhook_secret else "not configured",
        },
    )


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
