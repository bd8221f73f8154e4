"""
Shared pieces of the courier integrations: result types, errors, manifest
helpers and the HTTP plumbing used by every provider adapter.
"""
from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

import httpx

from app import schemas

logger = logging.getLogger(__name__)


class CourierError(Exception):
    """Base class for courier adapter errors."""

    def __init__(self, partner: str, message: str) -> None:
        super().__init__(message)
        self.partner = partner


class ProviderUnavailable(CourierError):
    """A quote could not be obtained."""

    def __init__(self, partner: str, message: str, original: BaseException | None = None) -> None:
        super().__init__(partner, f"{partner.capitalize()} unavailable: {message}")
        self.original = original


class ProviderBookingError(CourierError):
    """A booking call failed or returned no provider order id.

    ``outcome_unknown`` is set when the request timed out before any response
    arrived, so the courier may still have accepted the booking.
    """

    def __init__(
        self,
        partner: str,
        raw: Any = None,
        *,
        outcome_unknown: bool = False,
        reason: str | None = None,
    ) -> None:
        body = reason if reason is not None else _describe(raw)
        super().__init__(partner, f"{partner.capitalize()} booking error: {body}")
        self.raw = raw
        self.outcome_unknown = outcome_unknown


class CourierLookupError(CourierError):
    """A read-only status or courier lookup failed."""


@dataclass(frozen=True, slots=True)
class StoreLocation:
    name: str
    apartment: str
    address: str
    address2: str
    landmark: str
    city: str
    state: str
    pincode: str
    lat: float
    lng: float
    contact_name: str
    contact_phone: str

    @property
    def one_line(self) -> str:
        parts = [self.name, self.address, self.address2, self.city, self.pincode]
        return ", ".join(p for p in parts if p)


@dataclass(frozen=True, slots=True)
class ManifestItem:
    name: str
    qty: int
    weight_grams: float | None = None


@dataclass(frozen=True, slots=True)
class CourierQuote:
    partner: str
    fee: int
    raw: dict = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class CourierBooking:
    partner: str
    provider_order_id: str
    status: str
    tracking_url: str | None = None
    estimated_eta: str | None = None
    raw: dict = field(default_factory=dict, repr=False)


class CourierAdapter(Protocol):
    partner: str

    async def quote(self, address: schemas.AddressIn, items: list[ManifestItem]) -> CourierQuote: ...

    async def create_order(
        self,
        address: schemas.AddressIn,
        items: list[ManifestItem],
        client_order_id: str,
    ) -> CourierBooking: ...


def _describe(raw: Any) -> str:
    if raw is None:
        return "unknown"
    if isinstance(raw, str):
        return raw
    try:
        return json.dumps(raw, ensure_ascii=True, default=str)
    except (TypeError, ValueError):
        return str(raw)


def manifest_items(items: Iterable[Any]) -> list[ManifestItem]:
    out: list[ManifestItem] = []
    for item in items:
        if isinstance(item, ManifestItem):
            out.append(item)
            continue
        out.append(
            ManifestItem(
                name=str(getattr(item, "name", "") or ""),
                qty=int(getattr(item, "qty", 0) or 0),
                weight_grams=getattr(item, "weight", None),
            )
        )
    return out


def _format_weight(weight: float) -> str:
    return str(int(weight)) if float(weight).is_integer() else str(weight)


def build_manifest(items: Iterable[ManifestItem]) -> str:
    lines = []
    for item in items:
        weight = f" ({_format_weight(item.weight_grams)}g)" if item.weight_grams else ""
        lines.append(f"{item.qty}x {item.name}{weight}")
    return ", ".join(lines)


def total_weight_kg(items: Iterable[ManifestItem]) -> float:
    grams = sum(float(item.weight_grams or 0) * int(item.qty or 0) for item in items)
    return grams / 1000


def drop_address_line(address: schemas.AddressIn) -> str:
    parts = [address.line1, address.area, address.city, address.pincode]
    return " ".join(p.strip() for p in parts if p and p.strip())


class RequestIdGenerator:
    """Prefix from the client order id plus a random suffix.

    The prefix is cut short so that ``RANDOM_SUFFIX_LENGTH`` random
    characters fit under the length cap.
    """

    RANDOM_SUFFIX_LENGTH = 16
    _unsafe = re.compile(r"[^a-zA-Z0-9]")

    def __init__(self, max_length: int) -> None:
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        self.max_length = max_length

    def __call__(self, client_order_id: object = "") -> str:
        prefix = self._unsafe.sub("", str(client_order_id or ""))
        keep = max(self.max_length - self.RANDOM_SUFFIX_LENGTH, 0)
        return (prefix[:keep] + uuid.uuid4().hex)[: self.max_length]


class HttpCourier:
    """HTTP plumbing shared by the provider adapters."""

    partner = ""

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str],
        store: StoreLocation,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {"Content-Type": "application/json", **headers}
        self.store = store
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _post_quote(self, path: str, payload: dict) -> dict:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "%s quote failed status=%s body=%s",
                self.partner,
                exc.response.status_code,
                exc.response.text,
            )
            raise ProviderUnavailable(self.partner, str(exc), exc) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s quote error: %s", self.partner, exc)
            raise ProviderUnavailable(self.partner, str(exc) or exc.__class__.__name__, exc) from exc
        if not isinstance(data, dict):
            raise ProviderUnavailable(self.partner, f"Invalid response from {self.partner} API")
        return data

    async def _post_booking(self, path: str, payload: dict) -> dict:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            body = _response_body(exc.response)
            logger.error("%s booking rejected status=%s body=%s", self.partner, exc.response.status_code, body)
            raise ProviderBookingError(self.partner, body) from exc
        except (httpx.ConnectTimeout, httpx.PoolTimeout) as exc:
            logger.error("%s booking never reached the courier: %s", self.partner, exc)
            raise ProviderBookingError(self.partner, reason=f"timeout ({exc.__class__.__name__})") from exc
        except httpx.TimeoutException as exc:
            logger.error("%s booking timed out before a response: %s", self.partner, exc)
            raise ProviderBookingError(
                self.partner,
                outcome_unknown=True,
                reason=f"timeout ({exc.__class__.__name__})",
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("%s booking error: %s", self.partner, exc)
            raise ProviderBookingError(self.partner, reason=str(exc) or exc.__class__.__name__) from exc
        if not isinstance(data, dict):
            raise ProviderBookingError(self.partner, data)
        logger.info("%s booking response: %s", self.partner, _describe(data))
        return data

    async def _get_json(self, path: str, params: dict) -> dict:
        try:
            async with self._client() as client:
                response = await client.get(path, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            body = _response_body(exc.response)
            logger.warning("%s lookup %s failed status=%s body=%s", self.partner, path, exc.response.status_code, body)
            raise CourierLookupError(self.partner, f"{self.partner.capitalize()} lookup failed: {_describe(body)}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s lookup %s error: %s", self.partner, path, exc)
            raise CourierLookupError(
                self.partner, f"{self.partner.capitalize()} lookup failed: {str(exc) or exc.__class__.__name__}"
            ) from exc
        if not isinstance(data, dict):
            raise CourierLookupError(self.partner, f"Invalid response from {self.partner} API")
        return data


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
