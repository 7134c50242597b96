"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware (CORS),
and includes all API routers. It serves as the root of the web server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cerebrin_ai.core.logging_config import get_logger, setup_logging

from .api.v1 import approvals, health, pipelines, usage, webhooks
from .core import constant
from .core.config import settings
from .core.database import init_db
from .exception_handlers import setup_exception_handlers
from .services.control_plane import get_control_plane, set_control_plane

# Initialize logging
setup_logging(
    log_level=settings.log_level,
    log_format=settings.log_format,
    enable_file=settings.enable_file_logging,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Startup creates the tables and wires the control plane. Shutdown waits
    for in-flight pipelines and closes the chat gateway client.
    """
    # Startup
    try:
        logger.info("Starting up Cerebrin AI Server...")
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    control_plane = get_control_plane()

    yield

    # Shutdown
    logger.info("Shutting down Cerebrin AI Server...")
    await control_plane.aclose()
    set_control_plane(None)


app = FastAPI(
    title=constant.PROJECT_NAME,
    description="""
    Cerebrin AI Control Plane API

    Receives chat events from the WhatsApp/Telegram gateway, runs multi-role
    content pipelines under per-workspace budgets, and exposes the
    human-in-the-loop approval queue.
    """,
    version=constant.VERSION,
    openapi_url=f"{constant.API_V1_STR}/openapi.json",
    docs_url=f"{constant.API_V1_STR}/docs",
    redoc_url=f"{constant.API_V1_STR}/redoc",
    lifespan=lifespan,
)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

app.include_router(health.router, tags=["health"])
app.include_router(webhooks.router, prefix=f"{constant.API_V1_STR}/webhooks", tags=["webhooks"])
app.include_router(approvals.router, prefix=f"{constant.API_V1_STR}/approvals", tags=["approvals"])
app.include_router(pipelines.router, prefix=f"{constant.API_V1_STR}/pipelines", tags=["pipelines"])
app.include_router(usage.router, prefix=f"{constant.API_V1_STR}/usage", tags=["usage"])
