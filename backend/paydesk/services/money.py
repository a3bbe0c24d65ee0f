# backend/paydesk/services/money.py
"""Decimal helpers shared by the payroll calculators."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def D(val: Any) -> Decimal:
    if isinstance(val, Decimal):
        return val
    if val is None:
        return Decimal("0")
    try:
        return Decimal(str(val))
    except Exception:
        return Decimal("0")


def q2(val: Any) -> Decimal:
    return D(val).quantize(CENT, rounding=ROUND_HALF_UP)


def qsum(values: Iterable[Any]) -> Decimal:
    """Sum already-rounded amounts and return a cent-quantized Decimal."""
    total = Decimal("0")
    for v in values:
        total += D(v)
    return q2(total)


def fmt(val: Any) -> str:
    """Plain 2dp rendering used inside human readable `calculation` strings."""
    return f"{q2(val):.2f}"


__all__ = ["ZERO", "CENT", "D", "q2", "qsum", "fmt"]
