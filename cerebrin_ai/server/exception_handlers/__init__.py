"""
Exception handlers for the Cerebrin AI server.

This package contains custom exception handlers for different error types
and a setup function to register them with the FastAPI application.
"""

from fastapi import FastAPI

from cerebrin_ai.core.logging_config import get_logger

from .domain_handlers import register_domain_handlers
from .global_handler import register_global_handler

logger = get_logger(__name__)


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Domain errors map to 4xx/5xx codes; anything else falls through to the
    global 500 handler.
    """
    register_domain_handlers(app)
    register_global_handler(app)
    logger.debug("Exception handlers registered successfully")


__all__ = ["setup_exception_handlers"]
