"""Payment gateway checkout integration with authorize/capture reconciliation."""

__version__ = "1.4.0"
