from __future__ import annotations

import logging

import httpx

from app.db import settings
from app.phone import normalize_phone

logger = logging.getLogger(__name__)

CUSTOMER_TEMPLATE = "order_created"
OWNER_TEMPLATE = "order_confirmed_message_to_owner"


class NotificationError(Exception):
    def __init__(self, template: str, to_phone: str, message: str) -> None:
        super().__init__(message)
        self.template = template
        self.to_phone = to_phone


class WhatsAppNotifier:
    """Sends WhatsApp Cloud API template messages."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        language: str = "en",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.language = language
        self.timeout = timeout
        self._transport = transport

    async def send_template(self, to_phone: str, template: str, parameters: list[str]) -> None:
        phone = normalize_phone(to_phone)
        if not phone:
            raise NotificationError(template, to_phone, "missing destination phone")
        if not self.api_key:
            raise NotificationError(template, phone, "missing WHATSAPP_API_KEY")
        payload = {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "template",
            "template": {
                "name": template,
                "language": {"code": self.language},
                "components": [
                    {
                        "type": "body",
                        "parameters": [{"type": "text", "text": str(p or "-")} for p in parameters],
                    }
                ],
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/messages",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "WhatsApp send failed template=%s status=%s body=%s",
                template,
                exc.response.status_code,
                exc.response.text,
            )
            raise NotificationError(template, phone, f"status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("WhatsApp send failed template=%s: %s", template, exc)
            raise NotificationError(template, phone, str(exc) or exc.__class__.__name__) from exc


def get_notifier() -> WhatsAppNotifier:
    return WhatsAppNotifier(
        base_url=settings.whatsapp_base_url,
        api_key=settings.whatsapp_api_key,
        language=settings.whatsapp_language,
        timeout=settings.notification_timeout_seconds,
    )


# Template parameter builders


def customer_status_params(matter: str, status: str, tracking: str | None) -> list[str]:
    return [matter, status, tracking or "-"]


def owner_alert_params(
    *,
    reference: str,
    customer_name: str,
    address: str,
    customer_phone: str,
    matter: str,
    tracking: str | None,
) -> list[str]:
    return [reference, customer_name, address, customer_phone, matter, tracking or "-"]
