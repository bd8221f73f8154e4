from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="makhmali-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TMP_DIR / 'orders.db'}"
os.environ["AUTH_SECRET"] = "test-auth-secret-0123456789abcdefghijklmnop"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["WHATSAPP_API_KEY"] = "wa-test-key"
os.environ["OWNER_NOTIFY_PHONES"] = "9000000001"
os.environ["SUPPORT_PHONE"] = "9000000099"
os.environ.pop("GOOGLE_MAPS_API_KEY", None)
os.environ.pop("AUTH_SECRET_PREVIOUS", None)

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app import models
from app.db import Base, SessionLocal, engine, settings
from app.domain.config.delivery_mode import DELIVERY_MODE_KEY
from app.services.courier_base import CourierBooking, CourierQuote
from app.services.notifications import NotificationError
from app.services.payments import payment_signature


class FakeNotifier:
    def __init__(self, fail_templates=()) -> None:
        self.sent: list[tuple[str, str, list[str]]] = []
        self.fail_templates = set(fail_templates)

    async def send_template(self, to_phone, template, parameters) -> None:
        if template in self.fail_templates:
            raise NotificationError(template, to_phone, "provider down")
        self.sent.append((to_phone, template, list(parameters)))

    def templates(self) -> list[str]:
        return [template for _, template, _ in self.sent]


class FakeCourier:
    def __init__(
        self,
        partner: str,
        *,
        fee: int | None = None,
        quote_error: Exception | None = None,
        booking: CourierBooking | None = None,
        booking_error: Exception | None = None,
    ) -> None:
        self.partner = partner
        self.fee = fee
        self.quote_error = quote_error
        self.booking = booking
        self.booking_error = booking_error
        self.quote_calls = 0
        self.booked: list[str] = []

    async def quote(self, address, items) -> CourierQuote:
        self.quote_calls += 1
        if self.quote_error is not None:
            raise self.quote_error
        return CourierQuote(partner=self.partner, fee=self.fee)

    async def create_order(self, address, items, client_order_id) -> CourierBooking:
        self.booked.append(client_order_id)
        if self.booking_error is not None:
            raise self.booking_error
        return self.booking or CourierBooking(
            partner=self.partner,
            provider_order_id=f"{self.partner}-1001",
            status="created",
            tracking_url=f"https://track.example/{self.partner}/1001",
        )


@pytest.fixture(autouse=True)
def db_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client():
    from app.main import app

    with TestClient(app) as c:
        yield c


def make_token(sub: str = "user-1", role: str | None = None) -> str:
    claims = {"sub": sub}
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.auth_secret, algorithm=settings.auth_algorithm)


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('admin-1', role='admin')}"}


def set_delivery_mode(db, mode: str) -> None:
    row = db.get(models.StoreSetting, DELIVERY_MODE_KEY)
    if row is None:
        db.add(models.StoreSetting(setting_key=DELIVERY_MODE_KEY, setting_value=mode))
    else:
        row.setting_value = mode
    db.commit()


def signed_payment(gateway_order_id: str = "order_rzp_1", payment_id: str = "pay_rzp_1") -> dict:
    return {
        "razorpay_order_id": gateway_order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": payment_signature(gateway_order_id, payment_id, settings.razorpay_key_secret),
    }


def order_payload(**overrides) -> dict:
    payload = {
        "cart": [
            {"id": "p-1", "name": "Chicken Curry Cut", "qty": 2, "price": 25000, "weight": 500},
            {"id": 7, "name": "Mutton Keema", "qty": 1, "price": 40000},
        ],
        "address": {
            "name": "Asha Rao",
            "phone": "98765 43210",
            "line1": "12 Lake Road",
            "area": "Naupada",
            "city": "Thane",
            "pincode": "400602",
            "latitude": 19.1901,
            "longitude": 72.9702,
        },
        "payMethod": "razorpay",
        "subtotal": 90000,
        "delivery_fee": 9500,
        "discount_amount": 0,
        "platform_fee": 500,
        "surge_fee": 0,
        "grand_total": 100000,
    }
    payload.update(overrides)
    return payload
