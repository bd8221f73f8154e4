import asyncio
import json
import uuid

import httpx
import pytest

from app import schemas
from app.services.borzo import BorzoCourier
from app.services.courier_base import (
    CourierLookupError,
    ManifestItem,
    ProviderBookingError,
    ProviderUnavailable,
    RequestIdGenerator,
    build_manifest,
    manifest_items,
    total_weight_kg,
)
from app.services.couriers import build_couriers, store_location_from_settings
from app.services.porter import PORTER_REQUEST_ID_MAX_LENGTH, PorterCourier

ADDRESS = schemas.AddressIn(
    name="Asha Rao",
    phone="09876543210",
    line1="12 Lake Road",
    area="Naupada",
    city="Thane",
    pincode="400602",
    latitude=19.19012345,
    longitude=72.97029876,
)
ITEMS = [ManifestItem(name="Chicken Curry Cut", qty=2, weight_grams=500), ManifestItem(name="Eggs", qty=1)]


def _porter(handler) -> PorterCourier:
    return PorterCourier(
        base_url="https://porter.test",
        api_key="porter-key",
        store=store_location_from_settings(),
        transport=httpx.MockTransport(handler),
    )


def _borzo(handler) -> BorzoCourier:
    return BorzoCourier(
        base_url="https://borzo.test/api/business/1.6",
        api_key="borzo-key",
        store=store_location_from_settings(),
        vehicle_type_id=8,
        transport=httpx.MockTransport(handler),
    )


def test_build_manifest_and_weight() -> None:
    assert build_manifest(ITEMS) == "2x Chicken Curry Cut (500g), 1x Eggs"
    assert total_weight_kg(ITEMS) == 1.0
    assert build_manifest([]) == ""


def test_manifest_items_from_cart_models() -> None:
    cart = [schemas.QuoteItemIn(name="Keema", qty=3, weight=250.5)]
    assert manifest_items(cart) == [ManifestItem(name="Keema", qty=3, weight_grams=250.5)]


def test_request_id_is_sanitized_and_truncated() -> None:
    make_id = RequestIdGenerator(PORTER_REQUEST_ID_MAX_LENGTH)
    first = make_id("ord-12/34")
    second = make_id("ord-12/34")
    assert first.startswith("ord1234")
    assert len(first) == PORTER_REQUEST_ID_MAX_LENGTH
    assert first != second

    with pytest.raises(ValueError):
        RequestIdGenerator(0)


def test_request_id_keeps_random_part_for_uuid_order_ids() -> None:
    make_id = RequestIdGenerator(PORTER_REQUEST_ID_MAX_LENGTH)
    order_id = str(uuid.uuid4())

    first, second = make_id(order_id), make_id(order_id)

    assert first != second
    assert first[:16] == second[:16] == order_id.replace("-", "")[:16]
    assert len(first) == len(second) == PORTER_REQUEST_ID_MAX_LENGTH


def test_build_couriers_lists_porter_first() -> None:
    assert list(build_couriers(store_location_from_settings())) == ["porter", "borzo"]


def test_porter_quote_reads_minor_amount() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"vehicles": [{"type": "2 Wheeler", "fare": {"minor_amount": 12000}}]})

    quote = asyncio.run(_porter(handler).quote(ADDRESS, ITEMS))

    assert (quote.partner, quote.fee) == ("porter", 12000)
    request = seen[0]
    assert request.url.path == "/v1/get_quote"
    assert request.headers["x-api-key"] == "porter-key"
    body = json.loads(request.content)
    assert body["drop_details"] == {"lat": 19.19012345, "lng": 72.97029876}
    assert body["customer"]["mobile"] == {"country_code": "+91", "number": "9876543210"}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="upstream down"),
        httpx.Response(200, json={"vehicles": []}),
        httpx.Response(200, json={"vehicles": [{"fare": {"minor_amount": "n/a"}}]}),
        httpx.Response(200, text="not json"),
    ],
)
def test_porter_quote_failures_are_unavailable(response: httpx.Response) -> None:
    with pytest.raises(ProviderUnavailable):
        asyncio.run(_porter(lambda request: response).quote(ADDRESS, ITEMS))


def test_porter_quote_timeout_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderUnavailable):
        asyncio.run(_porter(handler).quote(ADDRESS, ITEMS))


def test_porter_create_order() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "order_id": "CRN1001",
                "tracking_url": "https://porter.test/track/CRN1001",
                "estimated_pickup_time": 1760000000,
            },
        )

    booking = asyncio.run(_porter(handler).create_order(ADDRESS, ITEMS, "ord-1"))

    assert booking.partner == "porter"
    assert booking.provider_order_id == "CRN1001"
    assert booking.tracking_url == "https://porter.test/track/CRN1001"
    assert booking.estimated_eta == "1760000000"
    body = json.loads(seen[0].content)
    assert seen[0].url.path == "/v1/orders/create"
    assert body["request_id"].startswith("ord1")
    assert len(body["request_id"]) <= PORTER_REQUEST_ID_MAX_LENGTH
    drop = body["drop_details"]["address"]
    assert (drop["lat"], drop["lng"]) == (19.190123, 72.970299)
    assert drop["contact_details"]["phone_number"] == "919876543210"
    assert "2x Chicken Curry Cut (500g)" in body["delivery_instructions"]["instructions_list"][0]["description"]


def test_porter_create_order_without_id_fails() -> None:
    handler = lambda request: httpx.Response(200, json={"status": "accepted"})
    with pytest.raises(ProviderBookingError, match="no order_id"):
        asyncio.run(_porter(handler).create_order(ADDRESS, ITEMS, "ord-1"))


def test_porter_rejected_booking_keeps_body() -> None:
    handler = lambda request: httpx.Response(422, json={"message": "drop out of zone"})
    with pytest.raises(ProviderBookingError) as excinfo:
        asyncio.run(_porter(handler).create_order(ADDRESS, ITEMS, "ord-1"))
    assert excinfo.value.raw == {"message": "drop out of zone"}
    assert excinfo.value.outcome_unknown is False


def test_booking_read_timeout_marks_outcome_unknown() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderBookingError) as excinfo:
        asyncio.run(_porter(handler).create_order(ADDRESS, ITEMS, "ord-1"))
    assert excinfo.value.outcome_unknown is True


def test_booking_connect_timeout_never_reached_courier() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("no route", request=request)

    with pytest.raises(ProviderBookingError) as excinfo:
        asyncio.run(_porter(handler).create_order(ADDRESS, ITEMS, "ord-1"))
    assert excinfo.value.outcome_unknown is False


def test_borzo_quote_converts_rupees() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"is_successful": True, "order": {"payment_amount": "95.00"}})

    quote = asyncio.run(_borzo(handler).quote(ADDRESS, ITEMS))

    assert (quote.partner, quote.fee) == ("borzo", 9500)
    request = seen[0]
    assert request.url.path == "/api/business/1.6/calculate-order"
    assert request.headers["X-DV-Auth-Token"] == "borzo-key"
    body = json.loads(request.content)
    assert body["matter"] == "2x Chicken Curry Cut (500g), 1x Eggs"
    assert body["total_weight_kg"] == 1.0
    assert body["vehicle_type_id"] == 8
    assert "client_order_id" not in body["points"][1]
    assert body["points"][1]["address"] == "12 Lake Road Naupada Thane 400602"


def test_borzo_quote_without_amount_is_unavailable() -> None:
    handler = lambda request: httpx.Response(200, json={"order": {}})
    with pytest.raises(ProviderUnavailable):
        asyncio.run(_borzo(handler).quote(ADDRESS, ITEMS))


def test_borzo_create_order() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "is_successful": True,
                "order": {
                    "order_id": 555,
                    "status": "new",
                    "points": [{}, {"tracking_url": "https://borzo.test/t/555"}],
                },
            },
        )

    booking = asyncio.run(_borzo(handler).create_order(ADDRESS, ITEMS, "ord-9"))

    assert booking.provider_order_id == "555"
    assert booking.status == "new"
    assert booking.tracking_url == "https://borzo.test/t/555"
    assert json.loads(seen[0].content)["points"][1]["client_order_id"] == "ord-9"


def test_borzo_create_order_without_id_fails() -> None:
    handler = lambda request: httpx.Response(200, json={"is_successful": False, "errors": ["invalid"]})
    with pytest.raises(ProviderBookingError):
        asyncio.run(_borzo(handler).create_order(ADDRESS, ITEMS, "ord-9"))


def test_borzo_lookups_query_by_order_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/courier"):
            return httpx.Response(200, json={"is_successful": True, "courier": {"name": "Ravi", "phone": "919000000000"}})
        return httpx.Response(200, json={"is_successful": True, "orders": [{"order_id": 555, "status": "active"}]})

    borzo = _borzo(handler)
    orders = asyncio.run(borzo.order_status("555"))
    courier = asyncio.run(borzo.courier_info("555"))

    assert orders["orders"][0]["status"] == "active"
    assert courier["courier"]["name"] == "Ravi"
    assert [(r.method, r.url.path, r.url.params["order_id"]) for r in seen] == [
        ("GET", "/api/business/1.6/orders", "555"),
        ("GET", "/api/business/1.6/courier", "555"),
    ]
    assert seen[0].headers["X-DV-Auth-Token"] == "borzo-key"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"errors": ["order_not_found"]}),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
def test_borzo_lookup_failures(response: httpx.Response) -> None:
    with pytest.raises(CourierLookupError):
        asyncio.run(_borzo(lambda request: response).order_status("555"))
