from fastapi import FastAPI
from pydantic_settings import BaseSettings
from contextlib import asynccontextmanager
from typing import Optional
import logging

from routers.api import router as api_router
from schemas import AppHealthOK
from core.service_manager import service_manager

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    app_name: str = "RoadPulse Ingestion API"
    debug: bool = False
    # Overrides storage.backend from config/roadpulse_config.json ("memory" or "file")
    storage_backend: Optional[str] = None


settings = Settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the liveness sweep and bind the event hub for the app's lifetime."""
    logger.info("Starting background services")
    await service_manager.start_services(storage_backend=settings.storage_backend)
    try:
        yield
    finally:
        logger.info("Stopping background services")
        await service_manager.stop_services()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)


@app.get("/", tags=["meta"])
async def read_root() -> dict[str, str]:
    return {"message": settings.app_name}


@app.get("/health", tags=["meta"], response_model=AppHealthOK)
async def healthcheck() -> AppHealthOK:
    return AppHealthOK(status="ok", app=settings.app_name)


# mount API router under /api
app.include_router(api_router, prefix="/api")
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
