"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from labstore.config import settings
from labstore.database import Base, engine
from labstore.projections import ProjectionRegistry
from labstore.projections.extractors import register_all_projections
from labstore.routes import metadata, resources
from labstore.routes.errors import install_exception_handlers

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events for startup/shutdown."""
    configure_logging()
    register_all_projections()
    logger.info("Projections registered: %s", ", ".join(ProjectionRegistry.all_configs()))

    if settings.create_schema_on_startup:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    yield  # Application runs here

    await engine.dispose()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


app = FastAPI(
    title="labstore",
    description="FHIR store for patients, lab observations, diagnostic reports and orders",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)

# Parse comma-separated origins from config
_cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["X-API-Key", "Content-Type", "If-Match"],
    expose_headers=["ETag", "Location", "Last-Modified"],
)

install_exception_handlers(app)

app.include_router(metadata.router, prefix=settings.fhir_base_path)
for _router in resources.routers:
    app.include_router(_router, prefix=settings.fhir_base_path)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": "labstore",
        "version": "0.1.0",
        "fhir": settings.fhir_base_path,
        "docs": "/docs",
    }
