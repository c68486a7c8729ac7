"""FastAPI application entry point."""
import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from drivechat.api import router as api_router
from drivechat.api.dependencies import get_fallback_executor
from drivechat.config import get_settings
from drivechat.logging_config import configure_logging
from drivechat.telemetry import emit_app_startup_event

load_dotenv()
configure_logging(get_settings().log_level)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Drive Document Chat API")
app.include_router(api_router)


@app.on_event("startup")
async def _announce_startup() -> None:
    settings = get_settings()
    executor = app.dependency_overrides.get(get_fallback_executor, get_fallback_executor)()
    emit_app_startup_event(
        providers=[provider.name for provider in executor.providers],
        vector_store=settings.vector_store,
        embedding_backend=settings.embedding_backend,
    )
    if not executor.providers:
        LOGGER.warning("No chat providers configured; answers will be synthesized from sources")


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Liveness endpoint for the service."""
    return "ok"
