"""
Operator-facing delivery operations: delivery mode setting, the pending
queue, manual booking and courier status callbacks.
"""
from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from app import models, schemas
from app.dialects import upsert_statement
from app.domain.config.delivery_mode import DELIVERY_MODE_KEY, normalize_delivery_mode
from app.domain.core.enums import DELIVERY_SHIPPED, DeliveryPartner, OrderDeliveryStatus
from app.observability import log_order_event
from app.services.courier_base import ManifestItem, build_manifest
from app.services.delivery_policy import read_delivery_mode
from app.services.dispatch import record_notification_failure, set_order_delivery_status, upsert_delivery
from app.services.notifications import CUSTOMER_TEMPLATE, WhatsAppNotifier, customer_status_params, get_notifier

logger = logging.getLogger(__name__)

MANUAL_TASK_ID = "MANUAL"
PENDING_DELIVERY_STATUSES = (OrderDeliveryStatus.pending.value, OrderDeliveryStatus.failed.value)


def get_delivery_mode(db: Session) -> schemas.DeliveryModeOut:
    return schemas.DeliveryModeOut(setting_key=DELIVERY_MODE_KEY, setting_value=read_delivery_mode(db))


def set_delivery_mode(db: Session, value: str | None) -> schemas.DeliveryModeOut:
    try:
        mode = normalize_delivery_mode(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = upsert_statement(db, models.StoreSetting).values(setting_key=DELIVERY_MODE_KEY, setting_value=mode)
    stmt = stmt.on_conflict_do_update(
        index_elements=["setting_key"],
        set_={"setting_value": stmt.excluded.setting_value, "updated_at": func.now()},
    )
    db.execute(stmt)
    db.commit()
    logger.info("Delivery mode set to %s", mode)
    return schemas.DeliveryModeOut(setting_key=DELIVERY_MODE_KEY, setting_value=mode)


def list_pending_orders(db: Session) -> list[schemas.PendingOrderOut]:
    rows = (
        db.query(models.Order, models.Delivery)
        .outerjoin(models.Delivery, models.Delivery.order_id == models.Order.id)
        .filter(models.Order.delivery_status.in_(PENDING_DELIVERY_STATUSES))
        .order_by(models.Order.created_at.desc(), models.Order.id)
        .all()
    )
    out: list[schemas.PendingOrderOut] = []
    for order, delivery in rows:
        item = schemas.PendingOrderOut.model_validate(order)
        if delivery is not None:
            item.partner = delivery.partner
            item.delivery_task_id = delivery.delivery_task_id
            item.tracking_url = delivery.tracking_url
            item.error_message = delivery.error_message
        out.append(item)
    return out


async def resolve_manually(
    db: Session,
    order_id: str,
    partner_name: str | None,
    tracking_url: str | None,
    notifier: WhatsAppNotifier | None = None,
) -> schemas.MessageOut:
    """Record a delivery an operator booked outside the system.

    Repeating the call overwrites the same delivery record.
    """
    order = db.get(models.Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    partner = (partner_name or "").strip() or DeliveryPartner.manual.value
    tracking = (tracking_url or "").strip() or None
    upsert_delivery(
        db,
        order_id,
        partner=partner,
        delivery_task_id=MANUAL_TASK_ID,
        status=DELIVERY_SHIPPED,
        tracking_url=tracking,
        error_message=None,
    )
    set_order_delivery_status(db, order_id, OrderDeliveryStatus.processing)
    db.commit()
    log_order_event("delivery_resolved_manually", order_id, partner=partner, tracking_url=tracking)

    items = db.query(models.OrderItem).filter(models.OrderItem.order_id == order_id).all()
    matter = build_manifest(ManifestItem(name=i.product_name or i.product_id, qty=i.quantity) for i in items)
    try:
        await (notifier or get_notifier()).send_template(
            order.phone,
            CUSTOMER_TEMPLATE,
            customer_status_params(matter, "Confirmed", tracking),
        )
    except Exception as exc:
        logger.warning("Manual booking notification failed for order %s: %s", order_id, exc)
        record_notification_failure(db, order_id, CUSTOMER_TEMPLATE, exc)
        return schemas.MessageOut(message=f"Order marked as shipped; customer notification failed: {exc}")
    return schemas.MessageOut(message="Order marked as shipped")


def apply_courier_status(db: Session, provider_order_id: str, status: str) -> schemas.MessageOut:
    delivery = (
        db.query(models.Delivery)
        .filter(models.Delivery.delivery_task_id == provider_order_id)
        .first()
    )
    if not delivery:
        raise HTTPException(status_code=404, detail="Delivery not found")
    delivery.status = status
    db.commit()
    log_order_event("courier_status", delivery.order_id, partner=delivery.partner, status=status)
    return schemas.MessageOut(message="ok")
