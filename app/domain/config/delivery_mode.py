from __future__ import annotations

from app.domain.core.enums import DeliveryMode

DELIVERY_MODE_KEY = "delivery_mode"
DEFAULT_DELIVERY_MODE = DeliveryMode.manual.value
ALLOWED_DELIVERY_MODES = tuple(mode.value for mode in DeliveryMode)


def normalize_delivery_mode(value: str | None) -> str:
    if not value:
        raise ValueError(
            f"delivery_mode required and must be one of: {', '.join(ALLOWED_DELIVERY_MODES)}"
        )
    mode = value.strip().lower()
    if mode not in ALLOWED_DELIVERY_MODES:
        raise ValueError(
            f"delivery_mode required and must be one of: {', '.join(ALLOWED_DELIVERY_MODES)}"
        )
    return mode


def load_delivery_mode(raw: str | None) -> str:
    # Unknown values are kept as-is so dispatch can flag the bad configuration
    if not raw or not raw.strip():
        return DEFAULT_DELIVERY_MODE
    return raw.strip().lower()
