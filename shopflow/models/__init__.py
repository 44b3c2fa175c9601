# shopflow/models/__init__.py
from .cart import CartItem
from .delivery import Delivery, DeliveryStatus
from .order import Order, OrderItem, OrderStatus
from .outbox import OutboxMessage
from .payment import Payment, PaymentStatus
from .processed_event import ProcessedEvent
from .product import Product, StockReservation

# Export all models
__all__ = [
    "CartItem",
    "Delivery",
    "DeliveryStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OutboxMessage",
    "Payment",
    "PaymentStatus",
    "ProcessedEvent",
    "Product",
    "StockReservation",
]
