"""
FastAPI main application for the LabelHub API.
Wires the services into the HTTP surface and maps domain errors to responses.
"""

import time

import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from labelhub.config import settings, is_local_environment
from labelhub.api import datasets_router, uploads_router, labels_router, health_router
from labelhub.services.container import init_services
from labelhub.utils.logging import setup_logging, logger, log_request
from labelhub.utils.exceptions import (
    LabelHubError,
    ValidationError,
    get_http_status_code,
    format_exception_response
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown."""
    # Startup
    setup_logging()
    logger.info("Starting LabelHub API")
    logger.info(f"Environment: {settings.environment.value}")
    logger.info(f"MongoDB URL: {settings.mongodb_url}")

    try:
        app.state.services = await init_services(settings)
        logger.info("Services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down LabelHub API")
    app.state.services.close()


app = FastAPI(
    title="LabelHub API",
    description="Labeled image datasets: upload, label, review and export",
    version=settings.api_version,
    docs_url="/docs" if is_local_environment() else None,
    redoc_url="/redoc" if is_local_environment() else None,
    lifespan=lifespan
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log every request with its status and duration."""
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    log_request(request.method, request.url.path, response.status_code, duration_ms)
    return response


@app.exception_handler(LabelHubError)
async def labelhub_exception_handler(request: Request, exc: LabelHubError):
    """Handle domain errors."""
    status_code = get_http_status_code(exc)
    if status_code >= 500:
        logger.error(f"{exc.kind}: {exc.message}", extra={"details": exc.details})
    else:
        logger.info(f"{exc.kind}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=format_exception_response(exc, request.headers.get("X-Request-Id"))
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies and parameters like other validation errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    error = ValidationError(first.get("msg", "Invalid request"), field=field or None)
    error.details["errors"] = jsonable_encoder(errors)
    return JSONResponse(status_code=400, content=format_exception_response(error))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred"
        }
    )


# Root endpoint
@app.get("/")
async def root():
    """API information endpoint."""
    return {
        "service": "LabelHub API",
        "version": settings.api_version,
        "description": "Labeled image dataset service",
        "documentation": {
            "interactive": "/docs",
            "redoc": "/redoc",
            "openapi": "/openapi.json"
        },
        "health": "/health"
    }


# Include API routers; fixed paths come before the /{dataset_id} routes
app.include_router(health_router, tags=["Health"])
app.include_router(uploads_router, prefix="/api/dataset", tags=["Uploads"])
app.include_router(datasets_router, prefix="/api/dataset", tags=["Datasets"])
app.include_router(labels_router, prefix="/api/dataset", tags=["Labels"])


if __name__ == "__main__":
    uvicorn.run(
        "labelhub.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=is_local_environment()
    )
