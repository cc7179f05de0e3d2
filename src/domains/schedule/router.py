"""Schedule router: availability, sessions and admin review."""
from fastapi import APIRouter

from .admin_router import admin_router
from .availability_router import availability_router
from .sessions_router import sessions_router

router = APIRouter(prefix="/availability", tags=["availability"])

router.include_router(sessions_router)
router.include_router(admin_router)
router.include_router(availability_router)
