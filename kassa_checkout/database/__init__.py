"""Database package for the order payment store."""
from .connection import Database, create_engine
from .models import Base, OrderPayment
from .order_store import SqlOrderStore

__all__ = ["Base", "Database", "OrderPayment", "SqlOrderStore", "create_engine"]
