"""HTTP API for checkout payments and gateway notifications."""
from .main import create_app

__all__ = ["create_app"]
