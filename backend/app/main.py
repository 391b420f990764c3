"""FastAPI application bootstrap with router wiring."""

from contextlib import asynccontextmanager
from pathlib import Path
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.routers import health, jobs, processor, uploads
from app.core.config import Settings, get_settings
from app.db.session import init_db
from app.storage.artifact_store import EXPORTS

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.auto_create_tables:
        init_db()
    yield


def create_app() -> FastAPI:
    """Instantiate the FastAPI app and include top-level routers."""
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])
    app.include_router(processor.router, prefix="/api/excel-processor", tags=["processor"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])

    # Only finalized exports are public; temp-* areas are never mounted.
    exports_dir = Path(settings.storage_dir) / EXPORTS
    exports_dir.mkdir(parents=True, exist_ok=True)
    app.mount(f"/files/{EXPORTS}", StaticFiles(directory=exports_dir), name="exports")

    return app


app = create_app()
