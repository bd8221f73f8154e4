"""
Checkout service: payment-verified order finalization.

This is the synchronous half of the flow. It verifies the gateway signature
and writes the order with its line items in one transaction. Courier booking
happens afterwards in app.services.dispatch, outside the request.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import models, schemas
from app.domain.core.enums import OrderDeliveryStatus, OrderStatus
from app.observability import log_order_event
from app.phone import normalize_phone
from app.services.courier_base import ManifestItem, manifest_items
from app.services.payments import verify_payment_signature

logger = logging.getLogger(__name__)

ORDER_NOT_PLACED_MESSAGE = (
    "Payment was captured but the order could not be placed. "
    "Please contact support with your payment id."
)


class OrderPersistenceFailed(Exception):
    def __init__(self, payment_id: str | None = None) -> None:
        super().__init__(ORDER_NOT_PLACED_MESSAGE)
        self.payment_id = payment_id


@dataclass(frozen=True, slots=True)
class DispatchJob:
    """Everything the background phase needs; it never touches the request session."""

    order_id: str
    address: schemas.DeliveryAddressIn
    items: list[ManifestItem]
    chosen_partner: str | None = None


@dataclass(frozen=True, slots=True)
class FinalizeResult:
    order_id: str
    created: bool
    job: DispatchJob | None = None


def _gen_id() -> str:
    return str(uuid.uuid4())


def _order_for_payment(db: Session, payment_id: str) -> str | None:
    row = (
        db.query(models.Order.id)
        .filter(models.Order.gateway_payment_id == payment_id)
        .first()
    )
    return row[0] if row else None


def _persist_order(
    db: Session,
    user_id: str,
    payload: schemas.OrderPayloadIn,
    assertion: schemas.PaymentAssertionIn,
) -> str:
    addr = payload.address
    order = models.Order(
        id=_gen_id(),
        user_id=user_id,
        customer_name=addr.name,
        phone=normalize_phone(addr.phone),
        address_line1=addr.line1,
        area=addr.area or "",
        city=addr.city,
        pincode=addr.pincode,
        pay_method=payload.pay_method or "",
        subtotal_cents=payload.subtotal,
        delivery_fee_cents=payload.delivery_fee,
        discount_cents=payload.discount_amount,
        platform_fee_cents=payload.platform_fee,
        surge_fee_cents=payload.surge_fee,
        grand_total_cents=payload.grand_total,
        status=OrderStatus.payment_verified.value,
        delivery_status=OrderDeliveryStatus.pending.value,
        gateway_order_id=assertion.razorpay_order_id,
        gateway_payment_id=assertion.razorpay_payment_id,
    )
    db.add(order)
    db.flush()

    for item in payload.cart:
        db.add(
            models.OrderItem(
                id=_gen_id(),
                order_id=order.id,
                product_id=str(item.product_id),
                product_name=item.name or None,
                quantity=item.qty,
                unit_price_cents=item.price,
            )
        )

    db.commit()
    return order.id


def finalize_order(
    db: Session,
    user_id: str,
    payload: schemas.OrderPayloadIn,
    assertion: schemas.PaymentAssertionIn,
) -> FinalizeResult:
    verify_payment_signature(
        assertion.razorpay_order_id,
        assertion.razorpay_payment_id,
        assertion.razorpay_signature,
    )

    payment_id = assertion.razorpay_payment_id
    existing = _order_for_payment(db, payment_id)
    if existing:
        log_order_event("order_replayed", existing, payment_id=payment_id)
        return FinalizeResult(order_id=existing, created=False)

    try:
        order_id = _persist_order(db, user_id, payload, assertion)
    except IntegrityError as exc:
        db.rollback()
        existing = _order_for_payment(db, payment_id)
        if existing:
            log_order_event("order_replayed", existing, payment_id=payment_id)
            return FinalizeResult(order_id=existing, created=False)
        logger.exception("DB error creating order for payment %s", payment_id)
        raise OrderPersistenceFailed(payment_id) from exc
    except Exception as exc:
        db.rollback()
        logger.exception("DB error creating order for payment %s", payment_id)
        log_order_event("order_persist_failed", None, level=logging.ERROR, payment_id=payment_id, error=str(exc))
        raise OrderPersistenceFailed(payment_id) from exc

    log_order_event(
        "order_finalized",
        order_id,
        user_id=user_id,
        payment_id=payment_id,
        grand_total_cents=payload.grand_total,
        items=len(payload.cart),
    )
    job = DispatchJob(
        order_id=order_id,
        address=payload.address,
        items=manifest_items(payload.cart),
        chosen_partner=payload.chosen_partner,
    )
    return FinalizeResult(order_id=order_id, created=True, job=job)
