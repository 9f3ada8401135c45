"""
accrual.py - Tax Accrual Engine

Pure functions computing the Harberger tax owed on an asset at a point in time.

Key Formula:
    tax_due = floor(price * rate_bps * elapsed / (SECONDS_PER_YEAR * BASIS_POINTS))

Precision discipline:
    The three-way product is scaled by PRECISION_SCALE before the division by
    the two constants, and de-scaled by the same constant afterwards:

        scaled  = price * rate_bps * elapsed * PRECISION_SCALE // (SECONDS_PER_YEAR * BASIS_POINTS)
        tax_due = scaled // PRECISION_SCALE

    The division step therefore loses at most one *scaled* unit, never a whole
    base unit, and accrued_tax_scaled() exposes the sub-unit remainder.

Numeric policy:
    Python ints never wrap, so every multiplication is checked against the
    256-bit word instead and raises ArithmeticOverflow rather than producing a
    value no settlement rail could carry. HarbergerConfig guarantees a
    decade-long accrual at max_price fits.
"""

from __future__ import annotations
from typing import Optional

from .core import (
    SECONDS_PER_YEAR, BASIS_POINTS, PRECISION_SCALE, UINT256_MAX,
    ArithmeticOverflow, ClockInvariantViolation,
)
from .store import AssetRecord


ACCRUAL_DENOMINATOR = SECONDS_PER_YEAR * BASIS_POINTS


def checked_mul(a: int, b: int) -> int:
    """
    Multiply two unsigned ints, refusing results outside the 256-bit word.

    Raises:
        ArithmeticOverflow: if either operand is negative or the product
                            exceeds UINT256_MAX
    """
    if a < 0 or b < 0:
        raise ArithmeticOverflow(f"unsigned operands required, got {a} * {b}")
    product = a * b
    if product > UINT256_MAX:
        raise ArithmeticOverflow(f"{a} * {b} exceeds 256-bit range")
    return product


def checked_add(a: int, b: int) -> int:
    """Add two unsigned ints, refusing results outside the 256-bit word."""
    if a < 0 or b < 0:
        raise ArithmeticOverflow(f"unsigned operands required, got {a} + {b}")
    total = a + b
    if total > UINT256_MAX:
        raise ArithmeticOverflow(f"{a} + {b} exceeds 256-bit range")
    return total


def elapsed_since(last_settlement: int, now: int) -> int:
    """
    Seconds between the last settlement and now.

    Raises:
        ClockInvariantViolation: if now is before last_settlement
    """
    elapsed = now - last_settlement
    if elapsed < 0:
        raise ClockInvariantViolation(
            f"clock regressed: now={now} is before last settlement {last_settlement}"
        )
    return elapsed


def accrued_tax_scaled(price: int, tax_rate_bps: int, elapsed: int) -> int:
    """
    Tax accrued over elapsed seconds, still multiplied by PRECISION_SCALE.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Raises:
        ArithmeticOverflow: if any intermediate product leaves the 256-bit word
    """
    numerator = checked_mul(checked_mul(checked_mul(price, tax_rate_bps), elapsed), PRECISION_SCALE)
    return numerator // ACCRUAL_DENOMINATOR


def calculate_tax_due(price: int, tax_rate_bps: int, last_settlement: int, now: int) -> int:
    """
    Tax owed in base units for the window [last_settlement, now].

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        price: Declared price in base units
        tax_rate_bps: Annual rate in basis points
        last_settlement: Epoch seconds of the last settlement
        now: Current epoch seconds

    Returns:
        floor(price * rate * elapsed / (SECONDS_PER_YEAR * BASIS_POINTS))

    Raises:
        ClockInvariantViolation: if now < last_settlement
        ArithmeticOverflow: if an intermediate product leaves the 256-bit word

    Example:
        # One whole unit at 10% for a year is a tenth of a unit
        calculate_tax_due(ONE_UNIT, 1000, 0, SECONDS_PER_YEAR) == ONE_UNIT // 10
    """
    elapsed = elapsed_since(last_settlement, now)
    if elapsed == 0 or price == 0 or tax_rate_bps == 0:
        return 0
    return accrued_tax_scaled(price, tax_rate_bps, elapsed) // PRECISION_SCALE


def tax_due(record: Optional[AssetRecord], now: int, tax_rate_bps: int) -> int:
    """
    Tax owed on an asset record at time now.

    Absent and defaulted assets owe nothing.
    """
    if record is None or record.defaulted:
        return 0
    return calculate_tax_due(record.price, tax_rate_bps, record.last_settlement, now)
