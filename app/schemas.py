from datetime import datetime
from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.phone import normalize_phone


# Checkout


class AddressIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    phone: str = ""
    line1: str = Field(min_length=1)
    area: str = ""
    city: str = Field(min_length=1)
    pincode: str = Field(min_length=1)
    apartment: Optional[str] = None
    landmark: Optional[str] = None
    note: Optional[str] = None
    latitude: Optional[float] = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: Optional[float] = Field(default=None, validation_alias=AliasChoices("longitude", "lng"))

    @field_validator("line1", "city", "pincode")
    @classmethod
    def not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("A complete address is required.")
        return cleaned


class DeliveryAddressIn(AddressIn):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)

    @field_validator("phone")
    @classmethod
    def phone_has_digits(cls, value: str) -> str:
        if not normalize_phone(value):
            raise ValueError("Invalid phone")
        return value


class QuoteItemIn(BaseModel):
    name: str = ""
    qty: int = Field(default=1, gt=0)
    weight: Optional[float] = Field(default=None, ge=0)


class CartItemIn(QuoteItemIn):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Union[str, int] = Field(alias="id")
    price: int = Field(default=0, ge=0)


class OrderPayloadIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cart: List[CartItemIn] = Field(min_length=1)
    address: DeliveryAddressIn
    pay_method: str = Field(default="", alias="payMethod")
    chosen_partner: Optional[str] = None
    subtotal: int = Field(default=0, ge=0)
    delivery_fee: int = Field(default=0, ge=0)
    discount_amount: int = Field(default=0, ge=0)
    platform_fee: int = Field(default=0, ge=0)
    surge_fee: int = Field(default=0, ge=0)
    grand_total: int = Field(default=0, ge=0)


class PaymentAssertionIn(BaseModel):
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)


class FinalizeOrderIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_payload: OrderPayloadIn = Field(alias="orderPayload")
    payment_response: PaymentAssertionIn = Field(alias="paymentResponse")


class FinalizeOrderOut(BaseModel):
    status: str
    order_id: str = Field(serialization_alias="orderId")


# Delivery fee


class FeeQuoteIn(BaseModel):
    address: AddressIn
    items: List[QuoteItemIn] = Field(default_factory=list)


class FeeQuoteOut(BaseModel):
    delivery_fee: int
    chosen_partner: Optional[str] = None
    warnings: Optional[List[str]] = None


# Courier webhooks


class CourierWebhookOrder(BaseModel):
    order_id: Optional[Union[str, int]] = None
    status: Optional[str] = None


class CourierWebhookIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    order: Optional[CourierWebhookOrder] = None


# Admin


class DeliveryModeIn(BaseModel):
    delivery_mode: Optional[str] = None


class DeliveryModeOut(BaseModel):
    setting_key: str = "delivery_mode"
    setting_value: str


class ManualBookIn(BaseModel):
    partner_name: Optional[str] = None
    tracking_url: Optional[str] = None


class PendingOrderOut(BaseModel):
    id: str
    user_id: str
    customer_name: str
    phone: str
    address_line1: str
    area: str
    city: str
    pincode: str
    grand_total_cents: int
    status: str
    delivery_status: str
    created_at: Optional[datetime] = None
    partner: Optional[str] = None
    delivery_task_id: Optional[str] = None
    tracking_url: Optional[str] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    message: str
