"""
Fixed-point currency helpers.

Amounts are stored and compared as integer minor units (hundredths).
Binary floats are never accepted.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from quest_board_service.core.exceptions import ServiceError

MINOR_UNITS_PER_UNIT = 100
_CENT = Decimal("0.01")


def to_minor_units(value: Decimal | str | int) -> int:
    """
    Convert a decimal amount to integer minor units.

    Raises:
        ServiceError: INVALID_AMOUNT for floats, non-numeric or non-finite
            input, or more than two fractional digits.
    """
    if isinstance(value, bool) or not isinstance(value, (Decimal, str, int)):
        raise ServiceError(
            "INVALID_AMOUNT",
            "Amount must be a decimal string or an integer",
            400,
            {},
        )

    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise ServiceError("INVALID_AMOUNT", "Amount is not a valid number", 400, {}) from exc

    if not amount.is_finite():
        raise ServiceError("INVALID_AMOUNT", "Amount must be finite", 400, {})

    try:
        quantized = amount.quantize(_CENT)
    except InvalidOperation as exc:
        raise ServiceError("INVALID_AMOUNT", "Amount is out of range", 400, {}) from exc

    if amount != quantized:
        raise ServiceError(
            "INVALID_AMOUNT",
            "Amount must have at most two fractional digits",
            400,
            {},
        )

    return int(amount * MINOR_UNITS_PER_UNIT)


def format_amount(minor_units: int) -> str:
    """Render minor units as a two-decimal string, e.g. ``120000 -> "1200.00"``."""
    return str((Decimal(minor_units) / MINOR_UNITS_PER_UNIT).quantize(_CENT))
