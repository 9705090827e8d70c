"""Logging configuration for the API."""

import logging

from app.core.config import settings


def configure_logging() -> logging.Logger:
    """Configure root logging from settings and return the app logger."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("app")
