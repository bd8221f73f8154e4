from __future__ import annotations

import logging

import httpx

from app import schemas
from app.domain.core.enums import DELIVERY_CREATED, DeliveryPartner
from app.phone import normalize_phone
from app.services.courier_base import (
    CourierBooking,
    CourierQuote,
    HttpCourier,
    ManifestItem,
    ProviderBookingError,
    ProviderUnavailable,
    StoreLocation,
    build_manifest,
    drop_address_line,
    total_weight_kg,
)

logger = logging.getLogger(__name__)

QUOTE_PATH = "/calculate-order"
CREATE_ORDER_PATH = "/create-order"
ORDERS_PATH = "/orders"
COURIER_PATH = "/courier"


class BorzoCourier(HttpCourier):
    partner = DeliveryPartner.borzo.value

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        store: StoreLocation,
        vehicle_type_id: int = 8,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            headers={"X-DV-Auth-Token": api_key or ""},
            store=store,
            timeout=timeout,
            transport=transport,
        )
        self.vehicle_type_id = vehicle_type_id

    def _payload(
        self,
        address: schemas.AddressIn,
        items: list[ManifestItem],
        client_order_id: str | None = None,
    ) -> dict:
        drop_point = {
            "address": drop_address_line(address),
            "contact_person": {"phone": normalize_phone(address.phone), "name": address.name},
            "note": address.note or None,
        }
        if client_order_id is not None:
            drop_point["client_order_id"] = str(client_order_id)
        return {
            "type": "standard",
            "matter": build_manifest(items),
            "total_weight_kg": total_weight_kg(items),
            "vehicle_type_id": self.vehicle_type_id,
            "is_contact_person_notification_enabled": True,
            "is_client_notification_enabled": True,
            "points": [
                {
                    "address": self.store.one_line,
                    "contact_person": {
                        "phone": normalize_phone(self.store.contact_phone),
                        "name": self.store.contact_name,
                    },
                },
                drop_point,
            ],
            "payment_method": "balance",
        }

    async def quote(self, address: schemas.AddressIn, items: list[ManifestItem]) -> CourierQuote:
        data = await self._post_quote(QUOTE_PATH, self._payload(address, items))
        order = data.get("order") or {}
        amount = order.get("payment_amount") if isinstance(order, dict) else None
        try:
            rupees = float(amount)
        except (TypeError, ValueError) as exc:
            raise ProviderUnavailable(self.partner, "Invalid response from Borzo API", exc) from exc
        if not rupees:
            raise ProviderUnavailable(self.partner, "Invalid response from Borzo API")
        # Borzo quotes in rupees
        return CourierQuote(partner=self.partner, fee=int(round(rupees * 100)), raw=data)

    async def create_order(
        self,
        address: schemas.AddressIn,
        items: list[ManifestItem],
        client_order_id: str,
    ) -> CourierBooking:
        data = await self._post_booking(CREATE_ORDER_PATH, self._payload(address, items, client_order_id))

        order = data.get("order") if isinstance(data.get("order"), dict) else {}
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        order_id = order.get("order_id") or nested.get("id") or data.get("order_id")
        if not order_id:
            raise ProviderBookingError(self.partner, data, reason="Borzo returned no order_id")

        tracking_url = None
        points = order.get("points") or []
        if len(points) > 1 and isinstance(points[1], dict):
            tracking_url = points[1].get("tracking_url")
        return CourierBooking(
            partner=self.partner,
            provider_order_id=str(order_id),
            status=str(order.get("status") or data.get("status") or DELIVERY_CREATED),
            tracking_url=tracking_url,
            estimated_eta=None,
            raw=data,
        )

    async def order_status(self, provider_order_id: str) -> dict:
        """Raw Borzo order listing for one order id."""
        return await self._get_json(ORDERS_PATH, {"order_id": provider_order_id})

    async def courier_info(self, provider_order_id: str) -> dict:
        """Raw Borzo courier details (name, phone, location) for one order id."""
        return await self._get_json(COURIER_PATH, {"order_id": provider_order_id})
