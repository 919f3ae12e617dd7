from .auth import User, SessionToken
from .catalog import Category, Product
from .sales import Sale, SaleLine
from .inventory import InventoryMovement, StockAlert

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product',
    'Sale', 'SaleLine',
    'InventoryMovement', 'StockAlert',
]
