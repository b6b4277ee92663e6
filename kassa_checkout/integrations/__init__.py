"""External integrations for payment processing."""
from .gateway_client import HttpGatewayClient

__all__ = ["HttpGatewayClient"]
