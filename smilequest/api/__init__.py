"""HTTP surface (FastAPI) for the engagement engine."""

from .app import create_app

__all__ = ["create_app"]
