"""
MindForge API - Main Application
================================

App idea → mindmap → feature PRDs → code scaffolding, with a free-tier
usage gate in front of every paid generation.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mindforge import __version__
from mindforge.auth.clerk_auth import get_current_user
from mindforge.config import settings
from mindforge.core.database import close_db, init_db
from mindforge.core.errors import MindforgeError
from mindforge.core.errors.middleware import mindforge_error_handler, unhandled_error_handler
from mindforge.core.errors.registry import error_registry
from mindforge.core.log_middleware import CorrelationMiddleware
from mindforge.core.structured_logging import setup_logging
from mindforge.routers import billing, generation, health, projects, users, webhooks

# Structured JSON logging before anything else logs
setup_logging(log_dir=settings.log_dir, log_level=logging.DEBUG if settings.debug else logging.INFO)

logger = logging.getLogger(__name__)

API_TITLE = "MindForge API"
API_DESCRIPTION = """
Turn an app idea into a structured mindmap, per-feature PRDs and code scaffolding.

Free accounts get a fixed number of mindmap generations; feature PRDs and
code generation require a Pro subscription.
"""

TAGS_METADATA = [
    {"name": "health", "description": "Liveness and database probe"},
    {"name": "generation", "description": "LLM-backed generation endpoints"},
    {"name": "projects", "description": "Projects and saved artifacts"},
    {"name": "account", "description": "Usage, subscription, onboarding and events"},
    {"name": "billing", "description": "Stripe checkout and billing portal"},
    {"name": "webhooks", "description": "Stripe and Clerk webhook receivers"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting MindForge API v%s...", __version__)

    error_registry.load()
    init_db()
    logger.info("Database initialized")

    if not settings.anthropic_api_key or not settings.openai_api_key:
        logger.warning("LLM API keys missing; generation endpoints will fail with MF-LLM-001")
    if not settings.stripe_secret_key:
        logger.warning("MINDFORGE_STRIPE_SECRET_KEY not set; billing endpoints disabled")

    yield

    close_db()
    logger.info("MindForge API shut down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # request_id + correlation_id in every log line
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(MindforgeError, mindforge_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    protected_route_dependency = [Depends(get_current_user)]

    # Public
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])

    # Authenticated
    app.include_router(
        generation.router,
        prefix="/api",
        tags=["generation"],
        dependencies=protected_route_dependency,
    )
    app.include_router(
        projects.router,
        prefix="/api",
        tags=["projects"],
        dependencies=protected_route_dependency,
    )
    app.include_router(
        users.router,
        prefix="/api",
        tags=["account"],
        dependencies=protected_route_dependency,
    )
    app.include_router(
        billing.router,
        prefix="/api/billing",
        tags=["billing"],
        dependencies=protected_route_dependency,
    )

    @app.get("/", tags=["health"])
    async def root():
        return {"name": settings.app_name, "version": __version__, "docs": "/docs"}

    return app


app = create_app()
