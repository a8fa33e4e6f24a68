"""CORS policy for the storefront.

The storefront and admin pages are served from other origins than the API,
so browsers need CORS headers on every response, including 503s, whose
retry hint they must be able to read.
"""

from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from .database import CONNECTION_TIME_HEADER

CORS_ORIGINS_ENV_VAR = "STICKER_SHOP_CORS_ORIGINS"

_ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
_ALLOWED_HEADERS = ["Content-Type", "Authorization"]
_EXPOSED_HEADERS = ["Retry-After", CONNECTION_TIME_HEADER]


def parse_cors_origins(value: str | None) -> list[str]:
    """Turn the comma-separated origins setting into a list.

    Unset or blank means any origin.
    """
    origins = [origin.strip() for origin in (value or "").split(",") if origin.strip()]
    if not origins or "*" in origins:
        return ["*"]
    return origins


def configure_cors(app: FastAPI) -> None:
    """Install CORSMiddleware using STICKER_SHOP_CORS_ORIGINS.

    Credentials (the Authorization header of signed-in customers) are only
    allowed for an explicit origin list; browsers refuse them with a
    wildcard.
    """
    allow_origins = parse_cors_origins(os.environ.get(CORS_ORIGINS_ENV_VAR))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_origins != ["*"],
        allow_methods=_ALLOWED_METHODS,
        allow_headers=_ALLOWED_HEADERS,
        expose_headers=_EXPOSED_HEADERS,
    )
