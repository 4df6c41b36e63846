"""Monetary value type shared by cart, product and promotion schemas."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from pydantic import PlainSerializer

CENT = Decimal("0.01")
ZERO = Decimal("0")

Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]
"""Decimal amount in BRL, rendered as a plain number in JSON payloads."""


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a value to cents using commercial rounding."""

    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
