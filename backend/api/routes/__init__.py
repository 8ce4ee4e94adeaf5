"""API Routes."""

from fastapi import APIRouter

from .auth import router as auth_router
from .billing import router as billing_router
from .files import router as files_router
from .health import router as health_router
from .team import router as team_router

# Create main API router
api_router = APIRouter()

# Include route modules
api_router.include_router(health_router, tags=["Health"])
api_router.include_router(auth_router)
api_router.include_router(team_router)
api_router.include_router(billing_router)
api_router.include_router(files_router)
