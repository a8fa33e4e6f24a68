"""Middleware for the Sticker Shop API."""

from .cors import configure_cors
from .database import register_database_middleware
from .error_handler import register_error_handlers

__all__ = ["configure_cors", "register_database_middleware", "register_error_handlers"]
