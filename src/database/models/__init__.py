# Import all models to ensure they are registered with SQLAlchemy

from .order import Order, OrderStatusHistory

__all__ = [
    "Order",
    "OrderStatusHistory",
]
