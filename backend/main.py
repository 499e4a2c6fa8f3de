"""
Frame Translator Backend - Main FastAPI Application

Run with:
    uvicorn main:app --reload --port 8000
"""

import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from adapter.archive import ArchiveAdapter
from adapter.errors import AdapterError
from adapter.gemini import GeminiAdapter
from api import router, set_dependencies
from monitoring import monitor
from repository import NotFoundError, Repository

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class RequestMonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware to monitor FastAPI requests."""

    async def dispatch(self, request: Request, call_next) -> Response:
        # Skip monitoring for docs
        if request.url.path in ["/", "/docs", "/redoc", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        endpoint = request.url.path.replace("/api", "", 1) or "/"

        try:
            response = await call_next(request)
        except Exception:
            latency_ms = (time.time() - start_time) * 1000
            monitor.metrics.record_request(endpoint, latency_ms, error=True)
            raise

        latency_ms = (time.time() - start_time) * 1000
        monitor.metrics.record_request(endpoint, latency_ms, error=response.status_code >= 500)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - setup and teardown.
    """
    logger.info("Starting Frame Translator backend...")

    repository = Repository()
    archive_adapter = ArchiveAdapter()
    gemini_adapter = GeminiAdapter()

    if archive_adapter.is_configured:
        logger.info("✓ Archive Adapter configured")
    else:
        logger.warning("⚠ Archive Adapter not configured - set COMMUNITY_ARCHIVE_API_URL")

    if gemini_adapter.is_configured:
        logger.info("✓ Gemini Adapter configured")
    else:
        logger.warning("⚠ Gemini Adapter not configured - set GEMINI_API_KEY")

    set_dependencies(app, repository, archive_adapter, gemini_adapter)

    monitor.set_component_status(
        "archive_adapter",
        "healthy" if archive_adapter.is_configured else "warning",
        {"configured": archive_adapter.is_configured}
    )
    monitor.set_component_status(
        "gemini_adapter",
        "healthy" if gemini_adapter.is_configured else "warning",
        {"configured": gemini_adapter.is_configured, "model": gemini_adapter.model}
    )
    monitor.set_component_status("repository", "healthy", {"backend": "memory"})

    logger.info("Frame Translator backend ready!")

    yield  # Application runs here

    logger.info("Shutting down Frame Translator backend...")


# Create FastAPI app
app = FastAPI(
    title="Frame Translator API",
    description="Archive-backed user insights and connection explanations powered by Gemini",
    version="1.0.0",
    lifespan=lifespan,
)

# Request monitoring middleware
app.add_middleware(RequestMonitoringMiddleware)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Error bodies: always {"message": ...}
# ============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in errors
    ) or "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"message": str(exc)})


@app.exception_handler(AdapterError)
async def adapter_error_handler(request: Request, exc: AdapterError):
    logger.error(f"Unhandled adapter error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"message": str(exc)})


# Include API routes
app.include_router(router)


# Root endpoint
@app.get("/")
async def root():
    return {"name": "Frame Translator API", "version": "1.0.0", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
