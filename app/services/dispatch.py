"""
Background courier dispatch for paid orders.

Runs after the checkout response has been sent, with its own database
session. Every path ends with exactly one delivery record for the order:
booked with a courier, or PENDING with an annotation for an operator to
resolve from the admin panel. Notifications are best effort and can only
append to the annotation.
"""
from __future__ import annotations

import logging
import uuid
from typing import Mapping

from sqlalchemy import func
from sqlalchemy.orm import Session

from app import models
from app.db import SessionLocal, settings
from app.dialects import supports_upsert, upsert_statement
from app.domain.config.delivery_mode import ALLOWED_DELIVERY_MODES
from app.domain.core.enums import (
    DELIVERY_CREATED,
    DELIVERY_PENDING,
    DeliveryMode,
    DeliveryPartner,
    OrderDeliveryStatus,
)
from app.observability import log_order_event
from app.phone import normalize_phone
from app.services.checkout import DispatchJob
from app.services.courier_base import CourierAdapter, CourierBooking, build_manifest, drop_address_line
from app.services.couriers import build_couriers
from app.services.delivery_policy import DispatchConfig, load_dispatch_config, resolve_booking_partner
from app.services.notifications import (
    CUSTOMER_TEMPLATE,
    OWNER_TEMPLATE,
    WhatsAppNotifier,
    customer_status_params,
    get_notifier,
    owner_alert_params,
)

logger = logging.getLogger(__name__)

MANUAL_MODE_NOTE = "Manual mode chosen by admin"
PENDING_CUSTOMER_TEXT = "You'll receive a WhatsApp update with a tracking link once your order is CONFIRMED."
MANUAL_OWNER_REFERENCE = "PENDING- BOOK ORDER MANUALLY"
MANUAL_OWNER_TEXT = "Please Manually Book Order and Resolve in Admin Panel"
OUTCOME_UNKNOWN_NOTE = "outcome unknown, verify with courier before re-booking"
REFUND_TEXT = "If any amount has been debited, please contact support. Refunds are issued within 3-5 working days."


class BookingNotRecorded(Exception):
    """The courier accepted the booking but saving it failed."""

    def __init__(self, booking: CourierBooking, error: Exception) -> None:
        super().__init__(
            f"{booking.partner} booked as {booking.provider_order_id} "
            f"(tracking {booking.tracking_url or '-'}) but recording failed: {error}"
        )
        self.booking = booking


def _gen_id() -> str:
    return str(uuid.uuid4())


def _reason(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def upsert_delivery(db: Session, order_id: str, **fields) -> None:
    """Insert or update the single delivery record of an order.

    Only the given columns are overwritten on conflict. Caller commits.
    """
    values = {"id": _gen_id(), "order_id": order_id, "status": DELIVERY_PENDING, **fields}
    if not supports_upsert(db):
        delivery = db.query(models.Delivery).filter(models.Delivery.order_id == order_id).first()
        if delivery is None:
            db.add(models.Delivery(**values))
        else:
            for key, value in fields.items():
                setattr(delivery, key, value)
            delivery.updated_at = func.now()
        db.flush()
        return

    stmt = upsert_statement(db, models.Delivery).values(**values)
    update = {key: stmt.excluded[key] for key in fields}
    update["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=["order_id"], set_=update)
    db.execute(stmt)


def append_delivery_note(db: Session, order_id: str, note: str) -> None:
    db.query(models.Delivery).filter(models.Delivery.order_id == order_id).update(
        {
            models.Delivery.error_message: func.coalesce(models.Delivery.error_message, "") + note,
            models.Delivery.updated_at: func.now(),
        },
        synchronize_session=False,
    )
    db.commit()


def record_notification_failure(db: Session, order_id: str, template: str, error: BaseException) -> None:
    """Append a failed notification to the delivery annotation. Never raises."""
    try:
        append_delivery_note(db, order_id, f" Notification failed ({template}): {_reason(error)}")
    except Exception:
        db.rollback()
        logger.exception("Could not annotate delivery for order %s", order_id)


def set_order_delivery_status(db: Session, order_id: str, status: OrderDeliveryStatus) -> None:
    db.query(models.Order).filter(models.Order.id == order_id).update(
        {models.Order.delivery_status: status.value},
        synchronize_session=False,
    )


class OrderDispatcher:
    def __init__(
        self,
        db: Session,
        job: DispatchJob,
        config: DispatchConfig,
        couriers: Mapping[str, CourierAdapter],
        notifier: WhatsAppNotifier,
    ) -> None:
        self.db = db
        self.job = job
        self.config = config
        self.couriers = couriers
        self.notifier = notifier
        self.matter = build_manifest(job.items)
        self.full_address = drop_address_line(job.address)
        self.customer_phone = normalize_phone(job.address.phone)

    async def run(self) -> None:
        mode = self.config.delivery_mode
        if mode == DeliveryMode.manual.value:
            await self.mark_pending(DeliveryPartner.manual.value, MANUAL_MODE_NOTE)
            return
        if mode not in ALLOWED_DELIVERY_MODES:
            await self.mark_pending(DeliveryPartner.unknown.value, f"Unknown delivery_mode: {mode}")
            return

        automatic = mode == DeliveryMode.automatic_cheapest.value
        partner = None
        try:
            partner = await resolve_booking_partner(
                self.config, self.job.chosen_partner, self.job.address, self.job.items, self.couriers
            )
            booking = await self.couriers[partner].create_order(
                self.job.address, self.job.items, self.job.order_id
            )
        except Exception as exc:
            logger.exception("Courier booking failed for order %s (mode=%s)", self.job.order_id, mode)
            reason = _reason(exc)
            if getattr(exc, "outcome_unknown", False):
                reason = f"{reason}; {OUTCOME_UNKNOWN_NOTE}"
            if automatic:
                label = f" ({partner})" if partner else ""
                await self.mark_pending(DeliveryPartner.automatic.value, f"automatic_cheapest failure{label}: {reason}")
            else:
                await self.mark_pending(partner, f"{partner.capitalize()} booking failed: {reason}")
            return

        await self.record_booking(booking)

    async def record_booking(self, booking: CourierBooking) -> None:
        order_id = self.job.order_id
        try:
            upsert_delivery(
                self.db,
                order_id,
                partner=booking.partner,
                delivery_task_id=booking.provider_order_id,
                status=booking.status or DELIVERY_CREATED,
                tracking_url=booking.tracking_url,
                eta=booking.estimated_eta,
                error_message=None,
            )
            set_order_delivery_status(self.db, order_id, OrderDeliveryStatus.processing)
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            raise BookingNotRecorded(booking, exc) from exc

        log_order_event(
            "delivery_booked",
            order_id,
            partner=booking.partner,
            provider_order_id=booking.provider_order_id,
            tracking_url=booking.tracking_url,
        )
        reference = f"{booking.partner.upper()}- {booking.provider_order_id} {order_id}"
        await self.notify(
            self.customer_phone,
            CUSTOMER_TEMPLATE,
            customer_status_params(self.matter, "Confirmed", booking.tracking_url),
        )
        await self.notify_owners(reference, booking.tracking_url)

    async def mark_pending(self, partner: str, note: str) -> None:
        order_id = self.job.order_id
        upsert_delivery(self.db, order_id, partner=partner, status=DELIVERY_PENDING, error_message=note)
        set_order_delivery_status(self.db, order_id, OrderDeliveryStatus.pending)
        self.db.commit()
        log_order_event("delivery_pending", order_id, level=logging.WARNING, partner=partner, note=note)

        await self.notify(
            self.customer_phone,
            CUSTOMER_TEMPLATE,
            customer_status_params(self.matter, DELIVERY_PENDING, PENDING_CUSTOMER_TEXT),
        )
        await self.notify_owners(MANUAL_OWNER_REFERENCE, MANUAL_OWNER_TEXT)

    async def notify_owners(self, reference: str, tracking: str | None) -> None:
        params = owner_alert_params(
            reference=reference,
            customer_name=self.job.address.name,
            address=self.full_address,
            customer_phone=self.customer_phone,
            matter=self.matter,
            tracking=tracking,
        )
        for phone in settings.OWNER_NOTIFY_PHONES_LIST:
            await self.notify(phone, OWNER_TEMPLATE, params)

    async def notify(self, to_phone: str, template: str, params: list[str]) -> bool:
        try:
            await self.notifier.send_template(to_phone, template, params)
            return True
        except Exception as exc:
            logger.warning("WhatsApp %s failed for order %s: %s", template, self.job.order_id, exc)
            record_notification_failure(self.db, self.job.order_id, template, exc)
            return False


async def _record_background_failure(
    db: Session,
    job: DispatchJob,
    error: Exception,
    notifier: WhatsAppNotifier | None,
) -> None:
    order_id = job.order_id
    try:
        upsert_delivery(
            db,
            order_id,
            partner=DeliveryPartner.system.value,
            status=DELIVERY_PENDING,
            error_message=f"Background failure: {_reason(error)}",
        )
        set_order_delivery_status(db, order_id, OrderDeliveryStatus.pending)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to log background failure to DB for order %s", order_id)
        return
    log_order_event("delivery_background_failure", order_id, level=logging.ERROR, error=str(error))

    try:
        sender = notifier or get_notifier()
    except Exception:
        logger.exception("Notifier unavailable for order %s", order_id)
        return
    try:
        await sender.send_template(
            job.address.phone,
            CUSTOMER_TEMPLATE,
            [
                "Please Contact Support for verification",
                f"Pending. Please contact support: {settings.support_phone}",
                REFUND_TEXT,
            ],
        )
    except Exception as exc:
        logger.warning("Support notification failed for order %s: %s", order_id, exc)
        record_notification_failure(db, order_id, CUSTOMER_TEMPLATE, exc)


async def dispatch_order(
    job: DispatchJob,
    *,
    couriers: Mapping[str, CourierAdapter] | None = None,
    notifier: WhatsAppNotifier | None = None,
) -> None:
    """Book a courier for a freshly paid order. Never raises."""
    db = SessionLocal()
    try:
        try:
            config = load_dispatch_config(db)
            dispatcher = OrderDispatcher(
                db,
                job,
                config,
                couriers if couriers is not None else build_couriers(config.store),
                notifier or get_notifier(),
            )
            await dispatcher.run()
        except Exception as exc:
            logger.exception("Background error in delivery processing for order %s", job.order_id)
            db.rollback()
            await _record_background_failure(db, job, exc, notifier)
    finally:
        db.close()
