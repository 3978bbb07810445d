"""
CORS middleware configuration.

The front end talks to this API from a different origin; allowed origins come
from settings.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dappgen.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Attach CORS middleware to the FastAPI application."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
