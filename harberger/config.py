"""
config.py - Global Harberger Parameters

HarbergerConfig is the single process-wide parameter set of a registry. It is
validated on construction; the tax rate and the cliff can be replaced at
runtime through with_tax_rate() / with_cliff_duration(), which return new,
equally validated instances. Everything else is fixed for the registry's life.

A rate or cliff change is never retroactive beyond what the accrual formula
does naturally: the current rate applies to the whole window since an asset's
last settlement.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional

from .core import (
    BASIS_POINTS, ACCRUAL_HORIZON, PRECISION_SCALE, UINT256_MAX,
    DEFAULT_MARGIN_DURATION,
    InvalidConfiguration,
)


def _require_int(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(f"{name} must be int, got {type(value).__name__}")


def validate_tax_rate(tax_rate_bps: int) -> int:
    """Tax rate must be 0..10000 basis points."""
    _require_int(tax_rate_bps, "tax_rate_bps")
    if not 0 <= tax_rate_bps <= BASIS_POINTS:
        raise InvalidConfiguration(
            f"tax_rate_bps must be within [0, {BASIS_POINTS}], got {tax_rate_bps}"
        )
    return tax_rate_bps


def validate_cliff_duration(cliff_duration: int) -> int:
    """Cliff must be a positive number of seconds."""
    _require_int(cliff_duration, "cliff_duration")
    if cliff_duration <= 0:
        raise InvalidConfiguration(f"cliff_duration must be positive, got {cliff_duration}")
    return cliff_duration


@dataclass(frozen=True, slots=True)
class HarbergerConfig:
    """
    Immutable global parameters.

    Attributes:
        treasury_account: Receives tax and foreclosed assets
        min_price: Lowest declarable price in base units (>= 1)
        max_price: Highest declarable price in base units
        tax_rate_bps: Annual tax rate in basis points (0..10000)
        cliff_duration: Seconds after last settlement before foreclosure is possible
        margin_duration: Fixed slack in seconds added to the cliff and required
                         between a settlement and the next modify/purchase
        admin_account: Allowed to change tax rate and cliff (defaults to treasury)
    """
    treasury_account: str
    min_price: int
    max_price: int
    tax_rate_bps: int
    cliff_duration: int
    margin_duration: int = DEFAULT_MARGIN_DURATION
    admin_account: Optional[str] = None

    def __post_init__(self):
        if not self.treasury_account or not str(self.treasury_account).strip():
            raise InvalidConfiguration("treasury_account cannot be empty")
        if self.admin_account is None:
            object.__setattr__(self, 'admin_account', self.treasury_account)
        elif not str(self.admin_account).strip():
            raise InvalidConfiguration("admin_account cannot be empty")

        _require_int(self.min_price, "min_price")
        _require_int(self.max_price, "max_price")
        if self.min_price < 1:
            raise InvalidConfiguration(f"min_price must be at least 1, got {self.min_price}")
        if self.max_price < self.min_price:
            raise InvalidConfiguration(
                f"max_price ({self.max_price}) must not be below min_price ({self.min_price})"
            )
        # Decade-long accruals at max_price and the highest rate must fit the word.
        if self.max_price * BASIS_POINTS * ACCRUAL_HORIZON * PRECISION_SCALE > UINT256_MAX:
            raise InvalidConfiguration(
                f"max_price {self.max_price} would overflow tax accrual within the horizon"
            )

        validate_tax_rate(self.tax_rate_bps)
        validate_cliff_duration(self.cliff_duration)

        _require_int(self.margin_duration, "margin_duration")
        if self.margin_duration < 0:
            raise InvalidConfiguration(f"margin_duration cannot be negative, got {self.margin_duration}")

    @property
    def foreclosure_delay(self) -> int:
        """Seconds after a settlement at which an asset becomes foreclosable."""
        return self.cliff_duration + self.margin_duration

    def price_in_bounds(self, price: int) -> bool:
        return self.min_price <= price <= self.max_price

    def with_tax_rate(self, tax_rate_bps: int) -> HarbergerConfig:
        return replace(self, tax_rate_bps=validate_tax_rate(tax_rate_bps))

    def with_cliff_duration(self, cliff_duration: int) -> HarbergerConfig:
        return replace(self, cliff_duration=validate_cliff_duration(cliff_duration))
