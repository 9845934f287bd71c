"""HTTP surface of the Mini-App backend (FastAPI)."""

from src.api.app import build_services, create_app

__all__ = ["build_services", "create_app"]
