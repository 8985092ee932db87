"""
API package for the power price alert service.
Contains FastAPI route handlers.
"""

from .routes import router

__all__ = [
    "router",
]
