"""
Resource access handlers for users, products and orders.
"""

from .base import ResourceHandler
from .orders import OrderHandler
from .products import ProductHandler
from .users import UserHandler

__all__ = ["ResourceHandler", "OrderHandler", "ProductHandler", "UserHandler"]
