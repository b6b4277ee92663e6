"""Configuration package for the checkout integration."""
from .settings import IntegrationMode, Settings, get_settings

__all__ = ["IntegrationMode", "Settings", "get_settings"]
