"""
store.py - Asset State Store

Per-asset price, last-settlement time and default flag. The store validates
nothing beyond existence: every invariant is enforced by its callers.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from .core import AssetNotFound


@dataclass(frozen=True, slots=True)
class AssetRecord:
    """
    Immutable snapshot of one asset's tax state.

    Attributes:
        price: Declared price in base units
        last_settlement: Epoch seconds of the last mint, price change,
                         purchase or tax payment
        defaulted: True once foreclosed (terminal)
    """
    price: int
    last_settlement: int
    defaulted: bool = False

    def settled_at(self, now: int) -> AssetRecord:
        return replace(self, last_settlement=now)

    def repriced(self, new_price: int, now: int) -> AssetRecord:
        return replace(self, price=new_price, last_settlement=now)

    def foreclosed(self) -> AssetRecord:
        return replace(self, defaulted=True)


class AssetStateStore:
    """In-memory mapping of asset id -> AssetRecord."""

    def __init__(self):
        self._records: Dict[str, AssetRecord] = {}

    def get(self, asset_id: str) -> Optional[AssetRecord]:
        """Return the record, or None when the asset was never minted."""
        return self._records.get(asset_id)

    def require(self, asset_id: str) -> AssetRecord:
        record = self._records.get(asset_id)
        if record is None:
            raise AssetNotFound(f"Asset {asset_id} not found")
        return record

    def put(self, asset_id: str, record: AssetRecord) -> None:
        self._records[asset_id] = record

    def contains(self, asset_id: str) -> bool:
        return asset_id in self._records

    def asset_ids(self) -> List[str]:
        return sorted(self._records)

    def snapshot(self) -> Dict[str, AssetRecord]:
        # Records are frozen, so a shallow copy is a full snapshot.
        return dict(self._records)

    def restore(self, snapshot: Dict[str, AssetRecord]) -> None:
        self._records = dict(snapshot)

    def __len__(self) -> int:
        return len(self._records)
