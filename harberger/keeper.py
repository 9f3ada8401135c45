"""
keeper.py - Foreclosure Keeper

Foreclosure is never implicit; the keeper is the third party that calls it.

Each sweep() walks every non-defaulted asset in sorted id order and invokes
the registry's public evaluate_and_foreclose_if_due() entry point. run()
drives a host ledger's clock through a sequence of timestamps and sweeps at
each one.
"""

from __future__ import annotations
from typing import Iterable, List

from .foreclosure import ForeclosureOutcome
from .ledger import Ledger
from .registry import HarbergerRegistry


class ForeclosureKeeper:
    """
    Periodic foreclosure sweeper.

    Example:
        keeper = ForeclosureKeeper(registry, caller="keeper")
        foreclosed = keeper.run(ledger, [t0 + SECONDS_PER_DAY * d for d in range(60)])
    """

    def __init__(self, registry: HarbergerRegistry, caller: str):
        self.registry = registry
        self.caller = caller
        self.verbose = False

    def sweep(self) -> List[str]:
        """Evaluate every live asset once; return ids foreclosed by this sweep."""
        foreclosed: List[str] = []
        for asset_id in self.registry.asset_ids():
            if self.registry.is_defaulted(asset_id):
                continue
            outcome = self.registry.evaluate_and_foreclose_if_due(self.caller, asset_id)
            if outcome == ForeclosureOutcome.FORECLOSED:
                foreclosed.append(asset_id)
                if self.verbose:
                    print(f"[KEEPER] Foreclosed {asset_id}")
        return foreclosed

    def step(self, ledger: Ledger, timestamp: int) -> List[str]:
        """Advance the ledger clock to timestamp, then sweep."""
        ledger.advance_time(timestamp)
        return self.sweep()

    def run(self, ledger: Ledger, timestamps: Iterable[int]) -> List[str]:
        """
        Step through timestamps in order.

        Returns:
            All foreclosed asset ids, in the order they were foreclosed
        """
        all_foreclosed: List[str] = []
        for timestamp in timestamps:
            all_foreclosed.extend(self.step(ledger, timestamp))
        return all_foreclosed
