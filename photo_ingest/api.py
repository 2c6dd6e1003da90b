import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from photo_ingest.core.config import Settings, get_settings
from photo_ingest.docs import description, tags_metadata
from photo_ingest.routers.photos import router as photos_router
from photo_ingest.routers.upload import router as upload_router
from photo_ingest.services.admission_service import AdmissionController
from photo_ingest.utils.exception_utils import validation_exception_handler

load_dotenv()


def configure_logging(settings: Settings) -> None:
    """Apply LOG_LEVEL to the root logger.

    ``basicConfig`` only installs a handler when none exists, so the level is
    also set directly on the root logger.
    """
    level = settings.log_level.upper()
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)


configure_logging(get_settings())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup event")
    # Refuse to start without storage credentials
    app.state.settings.require_storage_settings()
    logger.info(
        f"Storage configured: bucket={app.state.settings.s3_bucket_name}, "
        f"endpoint={app.state.settings.s3_endpoint}"
    )
    yield
    logger.info("Application shutdown event")


def create_app(
    settings: Optional[Settings] = None,
    admission_controller: Optional[AdmissionController] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to the cached environment settings).
        admission_controller: Rate-limit controller; a fresh in-memory one is
            created from settings when omitted.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=description,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.admission_controller = admission_controller or AdmissionController(
        points=settings.rate_limit_points,
        duration_seconds=settings.rate_limit_duration,
    )

    origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register the custom request validation exception handler
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(upload_router, prefix="/api", tags=["Uploads"])
    app.include_router(photos_router, prefix="/api", tags=["Gallery"])

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
