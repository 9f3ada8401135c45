"""
asset.py - Harberger Asset Units

Each Harberger asset is a unit of its own with a supply of exactly one, held by
exactly one wallet at any time:

    Mint:
        Move(source="system", dest=owner, unit=asset_id, quantity=1)
    Purchase / foreclosure:
        Move(source=holder, dest=new_holder, unit=asset_id, quantity=1)

The unit carries only custody. Price, settlement time and the default
flag live in the registry's AssetStateStore.
"""

from __future__ import annotations
from typing import Optional

from ..core import (
    LedgerView, Move, Unit, TransferRuleViolation,
    UNIT_TYPE_HARBERGER_ASSET,
)


def single_holder_transfer_rule(view: LedgerView, move: Move) -> None:
    """
    Enforce that an asset only ever moves whole, from its current holder.

    Raises:
        TransferRuleViolation: if the move is not for exactly one unit, or if the
                               source does not currently hold the asset (issuance
                               from the system wallet is only allowed while the
                               asset has no holder).
    """
    if move.quantity != 1:
        raise TransferRuleViolation(
            f"Asset {move.unit_symbol} moves whole: quantity must be 1, got {move.quantity}"
        )
    positions = view.get_positions(move.unit_symbol)
    holders = [w for w, qty in positions.items() if qty > 0]
    if not holders:
        return
    if move.source not in holders:
        raise TransferRuleViolation(
            f"Asset {move.unit_symbol}: {move.source} is not the holder"
        )


def create_asset_unit(asset_id: str, name: Optional[str] = None) -> Unit:
    """
    Create the custody unit for a Harberger asset.

    Args:
        asset_id: Unique asset identifier, used as the unit symbol
        name: Human-readable name (defaults to "Harberger asset <id>")

    Returns:
        Unit with min_balance 0 and max_balance 1, so no wallet can hold more
        than the single unit in existence.

    Example:
        unit = create_asset_unit("PARCEL-7")
    """
    if not asset_id or not asset_id.strip():
        raise ValueError("asset_id cannot be empty")

    return Unit(
        symbol=asset_id,
        name=name or f"Harberger asset {asset_id}",
        unit_type=UNIT_TYPE_HARBERGER_ASSET,
        min_balance=0,
        max_balance=1,
        transfer_rule=single_holder_transfer_rule,
    )
