import asyncio

import pytest
from conftest import FakeNotifier, make_token, order_payload, signed_payment

from app import models, schemas
from app.services import delivery_admin
from app.services.checkout import finalize_order
from app.services.dispatch import dispatch_order


@pytest.fixture()
def notifier(monkeypatch) -> FakeNotifier:
    fake = FakeNotifier()
    monkeypatch.setattr(delivery_admin, "get_notifier", lambda: fake)
    return fake


def _paid_order(db, payment_id: str) -> str:
    payload = schemas.OrderPayloadIn.model_validate(order_payload())
    assertion = schemas.PaymentAssertionIn(**signed_payment(f"order_{payment_id}", payment_id))
    return finalize_order(db, "user-1", payload, assertion).order_id


def _dispatch_manual(db, payment_id: str) -> str:
    payload = schemas.OrderPayloadIn.model_validate(order_payload())
    assertion = schemas.PaymentAssertionIn(**signed_payment(f"order_{payment_id}", payment_id))
    job = finalize_order(db, "user-1", payload, assertion).job
    asyncio.run(dispatch_order(job, couriers={}, notifier=FakeNotifier()))
    return job.order_id


def test_admin_routes_require_admin_role(client) -> None:
    assert client.get("/api/admin/settings/delivery-mode").status_code == 401
    user = {"Authorization": f"Bearer {make_token('user-1')}"}
    assert client.get("/api/admin/settings/delivery-mode", headers=user).status_code == 403


def test_delivery_mode_defaults_to_manual(client, admin_headers) -> None:
    response = client.get("/api/admin/settings/delivery-mode", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"setting_key": "delivery_mode", "setting_value": "manual"}


def test_update_delivery_mode(client, db, admin_headers) -> None:
    for value, expected in [(" Borzo_Only ", "borzo_only"), ("automatic_cheapest", "automatic_cheapest")]:
        response = client.put("/api/admin/settings/delivery-mode", json={"delivery_mode": value}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["setting_value"] == expected

    assert db.query(models.StoreSetting).count() == 1
    assert client.get("/api/admin/settings/delivery-mode", headers=admin_headers).json()["setting_value"] == (
        "automatic_cheapest"
    )


@pytest.mark.parametrize("body", [{"delivery_mode": "drone"}, {"delivery_mode": ""}, {}])
def test_update_delivery_mode_rejects_unknown_values(client, admin_headers, body) -> None:
    response = client.put("/api/admin/settings/delivery-mode", json=body, headers=admin_headers)
    assert response.status_code == 400
    assert "must be one of" in response.json()["detail"]


def test_pending_orders_lists_unbooked_orders(client, db, admin_headers, notifier) -> None:
    flagged = _dispatch_manual(db, "pay_a")
    waiting = _paid_order(db, "pay_b")
    shipped = _paid_order(db, "pay_c")
    asyncio.run(delivery_admin.resolve_manually(db, shipped, "Dunzo", "https://t.example/c"))

    response = client.get("/api/admin/orders/pending", headers=admin_headers)

    assert response.status_code == 200
    rows = {row["id"]: row for row in response.json()}
    assert set(rows) == {flagged, waiting}
    assert rows[flagged]["partner"] == "manual"
    assert rows[flagged]["error_message"] == "Manual mode chosen by admin"
    assert rows[waiting]["partner"] is None


def test_manual_book_resolves_pending_order(client, db, admin_headers, notifier) -> None:
    order_id = _dispatch_manual(db, "pay_m")
    body = {"partner_name": "Dunzo", "tracking_url": "https://t.example/9"}

    first = client.post(f"/api/admin/orders/{order_id}/manual-book", json=body, headers=admin_headers)
    second = client.post(f"/api/admin/orders/{order_id}/manual-book", json=body, headers=admin_headers)

    assert first.status_code == second.status_code == 200
    db.expire_all()
    deliveries = db.query(models.Delivery).filter(models.Delivery.order_id == order_id).all()
    assert len(deliveries) == 1
    delivery = deliveries[0]
    assert delivery.partner == "Dunzo"
    assert delivery.delivery_task_id == "MANUAL"
    assert delivery.status == "shipped"
    assert delivery.tracking_url == "https://t.example/9"
    assert delivery.error_message is None
    assert db.get(models.Order, order_id).delivery_status == "processing"
    assert notifier.sent[0][0] == "919876543210"
    assert notifier.sent[0][2][2] == "https://t.example/9"


def test_manual_book_defaults_partner_and_survives_notification_failure(client, db, admin_headers, monkeypatch) -> None:
    order_id = _paid_order(db, "pay_n")
    monkeypatch.setattr(delivery_admin, "get_notifier", lambda: FakeNotifier(fail_templates={"order_created"}))

    response = client.post(f"/api/admin/orders/{order_id}/manual-book", json={}, headers=admin_headers)

    assert response.status_code == 200
    assert "notification failed" in response.json()["message"]
    db.expire_all()
    delivery = db.query(models.Delivery).filter(models.Delivery.order_id == order_id).one()
    assert (delivery.partner, delivery.status) == ("manual", "shipped")
    assert delivery.error_message == " Notification failed (order_created): provider down"


def test_manual_book_unknown_order(client, admin_headers, notifier) -> None:
    response = client.post("/api/admin/orders/missing/manual-book", json={}, headers=admin_headers)
    assert response.status_code == 404
