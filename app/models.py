from app.domain.core.enums import (
    DeliveryMode,
    DeliveryPartner,
    OrderDeliveryStatus,
    OrderStatus,
)
from app.domain.config.models import StoreSetting
from app.domain.order.models import Delivery, Order, OrderItem

__all__ = [
    "DeliveryMode",
    "DeliveryPartner",
    "OrderDeliveryStatus",
    "OrderStatus",
    "StoreSetting",
    "Order",
    "OrderItem",
    "Delivery",
]
