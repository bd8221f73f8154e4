"""
Delivery mode policy: which courier prices and books an order.

The mode lives in ``store_settings`` and is re-read for every fee calculation
and every dispatch so that an admin switching modes takes effect immediately.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping

from sqlalchemy.orm import Session

from app import models, schemas
from app.db import settings
from app.domain.config.delivery_mode import DELIVERY_MODE_KEY, load_delivery_mode
from app.domain.core.enums import DeliveryMode, DeliveryPartner
from app.services.courier_base import (
    CourierAdapter,
    CourierError,
    CourierQuote,
    ManifestItem,
    ProviderUnavailable,
    StoreLocation,
)
from app.services.couriers import store_location_from_settings

logger = logging.getLogger(__name__)

SINGLE_PARTNER_MODES = {
    DeliveryMode.porter_only.value: DeliveryPartner.porter.value,
    DeliveryMode.borzo_only.value: DeliveryPartner.borzo.value,
}
# Estimate used in manual mode
MANUAL_ESTIMATE_PARTNER = DeliveryPartner.borzo.value


class DeliveryQuoteError(Exception):
    def __init__(self, message: str, details: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass(frozen=True, slots=True)
class DispatchConfig:
    delivery_mode: str
    store: StoreLocation
    default_fee_cents: int


@dataclass(slots=True)
class FeeQuote:
    fee: int
    chosen_partner: str | None = None
    warnings: list[str] = field(default_factory=list)


def read_delivery_mode(db: Session) -> str:
    row = db.get(models.StoreSetting, DELIVERY_MODE_KEY)
    return load_delivery_mode(row.setting_value if row else None)


def load_dispatch_config(db: Session) -> DispatchConfig:
    return DispatchConfig(
        delivery_mode=read_delivery_mode(db),
        store=store_location_from_settings(),
        default_fee_cents=settings.default_delivery_fee_cents,
    )


async def _quote(courier: CourierAdapter, address: schemas.AddressIn, items: list[ManifestItem]) -> CourierQuote:
    """Quote one courier, turning any failure into a ``CourierError``."""
    try:
        return await courier.quote(address, items)
    except CourierError:
        raise
    except Exception as exc:
        logger.exception("%s quote raised unexpectedly", courier.partner)
        raise ProviderUnavailable(courier.partner, str(exc) or exc.__class__.__name__, exc) from exc


async def _quote_or_error(courier: CourierAdapter, address: schemas.AddressIn, items: list[ManifestItem]):
    try:
        return await _quote(courier, address, items)
    except CourierError as exc:
        logger.warning("%s quote failed: %s", courier.partner, exc)
        return exc


async def cheapest_quote(
    couriers: Mapping[str, CourierAdapter],
    address: schemas.AddressIn,
    items: list[ManifestItem],
) -> FeeQuote:
    """Quote every courier concurrently and keep the lowest fee.

    Ties go to the courier listed first in ``couriers``.
    """
    partners = list(couriers)
    results = await asyncio.gather(
        *(_quote_or_error(couriers[partner], address, items) for partner in partners)
    )
    best = None
    errors: dict[str, str] = {}
    for partner, result in zip(partners, results):
        if isinstance(result, CourierError):
            errors[partner] = str(result)
            continue
        if best is None or result.fee < best.fee:
            best = result
    if best is None:
        raise DeliveryQuoteError("Both delivery partners unavailable for this address", errors)
    return FeeQuote(fee=best.fee, chosen_partner=best.partner)


async def quote_delivery_fee(
    config: DispatchConfig,
    address: schemas.AddressIn,
    items: list[ManifestItem],
    couriers: Mapping[str, CourierAdapter],
) -> FeeQuote:
    mode = config.delivery_mode

    if mode == DeliveryMode.manual.value:
        try:
            quote = await _quote(couriers[MANUAL_ESTIMATE_PARTNER], address, items)
            result = FeeQuote(fee=quote.fee)
        except CourierError as exc:
            logger.warning("Manual mode estimate failed, using default fee: %s", exc)
            result = FeeQuote(
                fee=config.default_fee_cents,
                warnings=[f"Manual calculation failed, using default: {exc}"],
            )
    elif mode in SINGLE_PARTNER_MODES:
        partner = SINGLE_PARTNER_MODES[mode]
        try:
            quote = await _quote(couriers[partner], address, items)
        except CourierError as exc:
            logger.warning("%s quote failed: %s", partner, exc)
            raise DeliveryQuoteError(
                f"{partner.capitalize()} delivery unavailable for this address", str(exc)
            ) from exc
        result = FeeQuote(fee=quote.fee, chosen_partner=partner)
    elif mode == DeliveryMode.automatic_cheapest.value:
        result = await cheapest_quote(couriers, address, items)
    else:
        raise DeliveryQuoteError("Invalid delivery mode configuration", mode)

    if result.fee < 0:
        result.fee = 0
    return result


async def resolve_booking_partner(
    config: DispatchConfig,
    chosen_partner: str | None,
    address: schemas.AddressIn,
    items: list[ManifestItem],
    couriers: Mapping[str, CourierAdapter],
) -> str | None:
    """Courier to book for a paid order, or ``None`` when booking is manual.

    In ``automatic_cheapest`` the partner picked when the customer saw the fee
    is trusted; the couriers are only re-quoted when no valid choice came
    through with the order.
    """
    mode = config.delivery_mode
    if mode == DeliveryMode.manual.value:
        return None
    if mode in SINGLE_PARTNER_MODES:
        return SINGLE_PARTNER_MODES[mode]
    if mode == DeliveryMode.automatic_cheapest.value:
        partner = (chosen_partner or "").strip().lower()
        if partner in couriers:
            return partner
        logger.info("No usable chosen_partner (%r), re-quoting couriers", chosen_partner)
        return (await cheapest_quote(couriers, address, items)).chosen_partner
    raise DeliveryQuoteError("Invalid delivery mode configuration", mode)
