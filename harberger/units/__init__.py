"""
Units module - Factory functions for the units the registry settles against.

Cash units live in core (cash()); each Harberger asset is its own unit with a
supply of exactly one.
"""

from .asset import (
    create_asset_unit,
    single_holder_transfer_rule,
)

__all__ = [
    'create_asset_unit',
    'single_holder_transfer_rule',
]
