from __future__ import annotations

import logging

import httpx

from app import schemas
from app.domain.core.enums import DELIVERY_CREATED, DeliveryPartner
from app.phone import DEFAULT_COUNTRY_CODE, national_number, normalize_phone
from app.services.courier_base import (
    CourierBooking,
    CourierQuote,
    HttpCourier,
    ManifestItem,
    ProviderBookingError,
    ProviderUnavailable,
    RequestIdGenerator,
    StoreLocation,
    build_manifest,
)
from app.services.geocoding import GeocodingError, resolve_coordinates

logger = logging.getLogger(__name__)

PORTER_REQUEST_ID_MAX_LENGTH = 32
QUOTE_PATH = "/v1/get_quote"
CREATE_ORDER_PATH = "/v1/orders/create"


def _coord(value: float) -> float:
    return round(float(value), 6)


class PorterCourier(HttpCourier):
    partner = DeliveryPartner.porter.value

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        store: StoreLocation,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            headers={"x-api-key": api_key or ""},
            store=store,
            timeout=timeout,
            transport=transport,
        )
        self.request_id = RequestIdGenerator(PORTER_REQUEST_ID_MAX_LENGTH)

    async def quote(self, address: schemas.AddressIn, items: list[ManifestItem]) -> CourierQuote:
        try:
            drop = await resolve_coordinates(address)
        except GeocodingError as exc:
            raise ProviderUnavailable(self.partner, str(exc), exc) from exc

        payload = {
            "pickup_details": {"lat": self.store.lat, "lng": self.store.lng},
            "drop_details": {"lat": drop.lat, "lng": drop.lng},
            "customer": {
                "name": address.name,
                "mobile": {
                    "country_code": f"+{DEFAULT_COUNTRY_CODE}",
                    "number": national_number(address.phone),
                },
            },
        }
        data = await self._post_quote(QUOTE_PATH, payload)

        vehicles = data.get("vehicles") or []
        try:
            minor_amount = vehicles[0]["fare"]["minor_amount"]
            fee = int(round(float(minor_amount)))
        except (IndexError, KeyError, TypeError, ValueError) as exc:
            raise ProviderUnavailable(self.partner, "Invalid response from Porter API", exc) from exc
        if not minor_amount:
            raise ProviderUnavailable(self.partner, "Invalid response from Porter API")
        return CourierQuote(partner=self.partner, fee=fee, raw=data)

    def _pickup_block(self) -> dict:
        store = self.store
        return {
            "address": {
                "apartment_address": store.apartment,
                "street_address1": store.address,
                "street_address2": store.address2,
                "landmark": store.landmark,
                "city": store.city,
                "state": store.state,
                "pincode": store.pincode,
                "country": "India",
                "lat": _coord(store.lat),
                "lng": _coord(store.lng),
                "contact_details": {
                    "name": store.contact_name,
                    "phone_number": normalize_phone(store.contact_phone),
                },
            }
        }

    async def create_order(
        self,
        address: schemas.AddressIn,
        items: list[ManifestItem],
        client_order_id: str,
    ) -> CourierBooking:
        try:
            drop = await resolve_coordinates(address)
        except GeocodingError as exc:
            raise ProviderBookingError(self.partner, reason=str(exc)) from exc

        matter = build_manifest(items)
        payload = {
            "request_id": self.request_id(client_order_id),
            "pickup_details": self._pickup_block(),
            "drop_details": {
                "address": {
                    "apartment_address": address.apartment or "",
                    "street_address1": address.line1,
                    "street_address2": address.area or "",
                    "landmark": address.landmark or "",
                    "city": address.city or "",
                    "state": self.store.state,
                    "pincode": address.pincode or "",
                    "country": "India",
                    "lat": _coord(drop.lat),
                    "lng": _coord(drop.lng),
                    "contact_details": {
                        "name": address.name,
                        "phone_number": normalize_phone(address.phone),
                    },
                }
            },
            "delivery_instructions": {
                "instructions_list": [{"type": "text", "description": f"Order items: {matter}"}]
            },
            "additional_comments": (
                f"Order via {self.store.name} | ClientID: {client_order_id or 'NA'} | Items: {matter}"
            ),
        }
        data = await self._post_booking(CREATE_ORDER_PATH, payload)

        order_id = data.get("order_id")
        if not order_id:
            raise ProviderBookingError(self.partner, data, reason="Porter returned no order_id")
        eta = data.get("estimated_pickup_time")
        return CourierBooking(
            partner=self.partner,
            provider_order_id=str(order_id),
            status=str(data.get("status") or DELIVERY_CREATED),
            tracking_url=data.get("tracking_url"),
            estimated_eta=str(eta) if eta is not None else None,
            raw=data,
        )
