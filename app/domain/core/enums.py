import enum


class OrderStatus(enum.Enum):
    payment_verified = "payment_verified"
    canceled = "canceled"


class OrderDeliveryStatus(enum.Enum):
    pending = "pending"
    processing = "processing"
    failed = "failed"


class DeliveryMode(enum.Enum):
    manual = "manual"
    porter_only = "porter_only"
    borzo_only = "borzo_only"
    automatic_cheapest = "automatic_cheapest"


class DeliveryPartner(enum.Enum):
    manual = "manual"
    porter = "porter"
    borzo = "borzo"
    automatic = "automatic"
    system = "system"
    unknown = "unknown"


# Values stored in deliveries.status besides whatever the courier reports
DELIVERY_PENDING = "PENDING"
DELIVERY_CREATED = "created"
DELIVERY_SHIPPED = "shipped"
