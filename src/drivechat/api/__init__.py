"""HTTP routers mounted under ``/api``."""

from fastapi import APIRouter

from .chat import router as chat_router
from .health import router as health_router
from .ingest import router as ingest_router

router = APIRouter(prefix="/api")
router.include_router(ingest_router)
router.include_router(chat_router)
router.include_router(health_router)

__all__ = ["router"]
