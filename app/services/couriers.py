from __future__ import annotations

import httpx

from app.db import settings
from app.domain.core.enums import DeliveryPartner
from app.services.borzo import BorzoCourier
from app.services.courier_base import CourierAdapter, StoreLocation
from app.services.porter import PorterCourier


def store_location_from_settings() -> StoreLocation:
    return StoreLocation(
        name=settings.store_name,
        apartment=settings.store_apartment,
        address=settings.store_address,
        address2=settings.store_address2,
        landmark=settings.store_landmark,
        city=settings.store_city,
        state=settings.store_state,
        pincode=settings.store_pincode,
        lat=float(settings.store_latitude),
        lng=float(settings.store_longitude),
        contact_name=settings.store_contact_name,
        contact_phone=settings.store_contact_phone,
    )


def build_couriers(
    store: StoreLocation,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, CourierAdapter]:
    """Adapters keyed by partner name, in tie-break order (Porter first)."""
    return {
        DeliveryPartner.porter.value: PorterCourier(
            base_url=settings.porter_base_url,
            api_key=settings.porter_api_key,
            store=store,
            timeout=settings.courier_timeout_seconds,
            transport=transport,
        ),
        DeliveryPartner.borzo.value: BorzoCourier(
            base_url=settings.borzo_base_url,
            api_key=settings.borzo_api_key,
            store=store,
            vehicle_type_id=settings.borzo_vehicle_type_id,
            timeout=settings.courier_timeout_seconds,
            transport=transport,
        ),
    }
