"""
ledger.py - Host Double-Entry Ledger

The environment the Harberger registry settles against. Cash and asset
custody are both units; holding a unit is an int balance in a wallet.

    execute(pending)    - validate every move first, then apply them all
    advance_time(t)     - the logical clock only moves forward
    transaction_log     - every applied entry, in sequence order

The system wallet issues and redeems, so it is the only wallet that may go
negative and the balances of every unit always sum to zero.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from .core import (
    Transaction, Unit, PendingTransaction, ExecuteResult, Positions,
    SYSTEM_WALLET,
    TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
)


class Ledger:
    """
    Wallet balances, unit definitions, a logical clock and an audit log.

    Not thread-safe on its own: the registry serializes settlement through
    its ReentrancyGuard.

    Example:
        ledger = Ledger("main", initial_time=1_700_000_000)
        ledger.register_unit(cash("ETH", "Ether"))
        ledger.register_wallet("alice")

        ledger.execute(build_transaction(ledger, [
            Move(ONE_UNIT, "ETH", SYSTEM_WALLET, "alice", "fund_alice")
        ]))
    """

    def __init__(self, name: str, initial_time: int = 0, verbose: bool = True):
        """
        Args:
            name: Ledger identifier, part of every exec_id
            initial_time: Starting logical time in epoch seconds
            verbose: Print applied and rejected entries
        """
        self.name = name
        self.verbose = verbose
        self.units: Dict[str, Unit] = {}
        self.transaction_log: List[Transaction] = []
        self._now = initial_time
        self._wallets: Dict[str, Dict[str, int]] = {SYSTEM_WALLET: defaultdict(int)}
        self._applied_intents: Set[str] = set()

    # ========================================================================
    # READS (LedgerView)
    # ========================================================================

    @property
    def current_time(self) -> int:
        return self._now

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self._wallets

    def list_wallets(self) -> Set[str]:
        return set(self._wallets)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def get_unit(self, symbol: str) -> Unit:
        self._require_unit(symbol)
        return self.units[symbol]

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Raises:
            WalletNotRegistered, UnitNotRegistered
        """
        if wallet_id not in self._wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        self._require_unit(unit_symbol)
        return self._wallets[wallet_id].get(unit_symbol, 0)

    def get_positions(self, unit_symbol: str) -> Positions:
        """Every wallet with a non-zero balance of unit_symbol."""
        return {
            wallet: held[unit_symbol]
            for wallet, held in self._wallets.items()
            if held.get(unit_symbol, 0) != 0
        }

    def total_supply(self, unit_symbol: str) -> int:
        self._require_unit(unit_symbol)
        return sum(held.get(unit_symbol, 0) for held in self._wallets.values())

    def verify_double_entry(self, expected_supplies: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
        """
        Compare each unit's total supply against an expected value.

        Returns:
            {'valid': bool, 'supplies': {unit: supply},
             'discrepancies': [{'unit', 'expected', 'actual'}]}

        Example:
            assert ledger.verify_double_entry({'ETH': 0})['valid']
        """
        supplies = {symbol: self.total_supply(symbol) for symbol in self.units}
        discrepancies = [
            {'unit': symbol, 'expected': expected, 'actual': supplies.get(symbol, 0)}
            for symbol, expected in sorted((expected_supplies or {}).items())
            if supplies.get(symbol) != expected
        ]
        return {'valid': not discrepancies, 'supplies': supplies, 'discrepancies': discrepancies}

    # ========================================================================
    # CLOCK
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Raises:
            ValueError: if new_time is before the current time
        """
        if new_time < self._now:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._now}")
        self._now = new_time

    def advance_by(self, seconds: int) -> int:
        """Advance the clock by a number of seconds and return the new time."""
        self.advance_time(self._now + seconds)
        return self._now

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: if the wallet already exists
        """
        if wallet_id in self._wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self._wallets[wallet_id] = defaultdict(int)
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        if wallet_id not in self._wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Raises:
            ValueError: if the symbol is already taken
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        self._say(f"Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply a pending transaction atomically and log it.

        Units in pending.units_to_create are visible to validation and are
        dropped again if the entry is rejected. An intent_id that was already
        applied is never applied twice.

        Returns:
            APPLIED, ALREADY_APPLIED or REJECTED
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED
        if pending.intent_id in self._applied_intents:
            self._say(f"ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        created = [u for u in pending.units_to_create if u.symbol not in self.units]
        for unit in created:
            self.units[unit.symbol] = unit

        reason = self._rejection(pending)
        if reason is not None:
            for unit in created:
                del self.units[unit.symbol]
            self._say(f"REJECTED: {reason}")
            return ExecuteResult.REJECTED

        for move in pending.moves:
            self._wallets[move.source][move.unit_symbol] -= move.quantity
            self._wallets[move.dest][move.unit_symbol] += move.quantity

        sequence = len(self.transaction_log)
        tx = Transaction(
            moves=pending.moves,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=f"exec:{self.name}:{sequence:012d}:{self._now}",
            execution_time=self._now,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )
        self.transaction_log.append(tx)
        self._applied_intents.add(pending.intent_id)
        self._say(repr(tx))
        return ExecuteResult.APPLIED

    def _rejection(self, pending: PendingTransaction) -> Optional[str]:
        """Why pending cannot be applied, or None if it can."""
        if pending.timestamp > self._now:
            return "future timestamp"

        deltas: Dict[tuple, int] = defaultdict(int)
        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return f"unit not registered: {move.unit_symbol}"
            for wallet in (move.source, move.dest):
                if wallet not in self._wallets:
                    return f"wallet not registered: {wallet}"
            rule = self.units[move.unit_symbol].transfer_rule
            if rule is not None:
                try:
                    rule(self, move)
                except TransferRuleViolation as e:
                    return str(e)
            deltas[move.source, move.unit_symbol] -= move.quantity
            deltas[move.dest, move.unit_symbol] += move.quantity

        for (wallet, symbol), delta in deltas.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[symbol]
            proposed = self._wallets[wallet].get(symbol, 0) + delta
            if not unit.admits(proposed):
                return f"{wallet} {symbol}: balance {proposed} outside [{unit.min_balance}, {unit.max_balance}]"
        return None

    def _require_unit(self, symbol: str) -> None:
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")

    def _say(self, text: str) -> None:
        if self.verbose:
            print(text)
