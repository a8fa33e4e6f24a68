"""Sticker Shop REST API package.

This package provides the FastAPI boundary in front of the database
connection manager: connection middleware, error mapping, and health
endpoints.
"""

from sticker_shop.api.app import create_app

__all__ = ["create_app"]
