from __future__ import annotations

import os

DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_PHONE_COUNTRY", "91").strip()
NATIONAL_NUMBER_LENGTH = 10


def _digits(value: object | None) -> str:
    if value is None:
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def normalize_phone(value: object | None) -> str:
    digits = _digits(value)
    if not digits:
        return ""
    full_length = len(DEFAULT_COUNTRY_CODE) + NATIONAL_NUMBER_LENGTH
    if len(digits) == NATIONAL_NUMBER_LENGTH + 1 and digits.startswith("0"):
        digits = digits[1:]
    if len(digits) == NATIONAL_NUMBER_LENGTH:
        return f"{DEFAULT_COUNTRY_CODE}{digits}"
    if digits.startswith(DEFAULT_COUNTRY_CODE) and len(digits) >= full_length:
        return digits[:full_length]
    return digits


def national_number(value: object | None) -> str:
    """Last ten digits of a normalized number, as the courier APIs expect."""
    normalized = normalize_phone(value)
    if normalized.startswith(DEFAULT_COUNTRY_CODE) and len(normalized) > NATIONAL_NUMBER_LENGTH:
        return normalized[len(DEFAULT_COUNTRY_CODE):]
    return normalized
