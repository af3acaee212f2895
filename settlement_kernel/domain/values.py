"""
Monetary value helpers (``settlement_kernel.domain.values``).

The engine is single-currency, so amounts travel as plain ``Decimal``.
This module is the one place where amounts are coerced and rounded.

Invariants enforced
-------------------
* Amounts are ``Decimal``, never ``float``.
* Rounding is explicit: ``quantize_money`` uses the ledger policy's
  quantum and ROUND_HALF_UP.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")
# Finest step a Numeric(38, 9) column keeps
STORAGE_QUANTUM = Decimal("1E-9")


def to_decimal(value: Decimal | str | int) -> Decimal:
    """
    Coerce ``value`` to ``Decimal``.

    Raises:
        TypeError: if ``value`` is a float.
        ValueError: if ``value`` is not a number.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be float; pass Decimal or str")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def quantize_money(amount: Decimal, quantum: Decimal = CENT) -> Decimal:
    """Round ``amount`` to ``quantum`` using ROUND_HALF_UP."""
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def percent_of(part: Decimal, whole: Decimal, places: int = 2) -> Decimal:
    """``part / whole * 100`` rounded to ``places``; zero when ``whole`` is zero."""
    if whole == ZERO:
        return quantize_money(ZERO, Decimal(1).scaleb(-places))
    return quantize_money(part / whole * HUNDRED, Decimal(1).scaleb(-places))
