"""Main FastAPI application for the image file service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagefile.core.config import settings
from imagefile.core.errors import IngestionError
from imagefile.core.logging_config import setup_logging, get_logger
from imagefile.db.session import engine, init_models
from imagefile.api.v1 import images, health, metrics
from imagefile.api.middleware import (
    JWTAuthMiddleware,
    PrometheusMiddleware,
    RequestLoggingMiddleware,
)
from imagefile.api.exception_handlers import (
    ingestion_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)


# Initialize logging system (MUST be done before any logging calls)
setup_logging(debug=settings.is_debug_mode, json_logs=settings.use_json_logs)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema on startup and dispose the engine on shutdown."""
    logger.info(
        "application_startup",
        service=settings.SERVICE_NAME,
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        debug_mode=settings.is_debug_mode,
        log_level=settings.LOG_LEVEL,
    )

    await init_models()
    logger.info("database_initialized", database_url=engine.url.render_as_string(hide_password=True))

    yield

    await engine.dispose()
    logger.info("application_shutdown", graceful=True)


app = FastAPI(
    title=settings.SERVICE_NAME,
    description="Image upload service storing files, thumbnails and dimensions",
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_exception_handler(IngestionError, ingestion_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Middleware stack (the last one added is the outermost)
# 1. JWT validation (innermost - runs after the trace ID is set)
app.add_middleware(JWTAuthMiddleware)
# 2. Request logging with trace IDs
app.add_middleware(RequestLoggingMiddleware)
# 3. Prometheus metrics (outermost - measures everything)
app.add_middleware(PrometheusMiddleware)

app.include_router(images.router)
app.include_router(health.router)
app.include_router(metrics.router)


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "documentation": "/docs",
        "health_check": "/api/v1/health",
    }


@app.get("/info")
async def service_info():
    """Non-sensitive service configuration."""
    return {
        "service": {
            "name": settings.SERVICE_NAME,
            "version": settings.VERSION
        },
        "thumbnails": {
            "default_size": settings.DEFAULT_THUMBNAIL_SIZE,
            "jpeg_quality": settings.JPEG_QUALITY,
        },
        "limits": {
            "max_upload_size_mb": settings.MAX_UPLOAD_SIZE_MB,
        }
    }
