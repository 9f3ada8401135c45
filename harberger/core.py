"""
Core types and pure functions for the Harberger asset ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access, plus the collaborator
   contracts the settlement layer consumes (OwnershipLedger, ValueRail)
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError / HarbergerError and their domain-specific subclasses
4. Numeric constants: base-unit scale, fixed-point scale, 256-bit word bound
5. Unit factories: cash()

All amounts are non-negative Python ints denominated in base units.
No function in this module can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit type constants (strings, not enum).
UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_HARBERGER_ASSET = "HARBERGER_ASSET"

# Base units per whole monetary unit (18 decimals).
ONE_UNIT = 10 ** 18

# Accrual arithmetic.
SECONDS_PER_DAY = 86_400
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY
BASIS_POINTS = 10_000

# Intermediate fixed-point scale: accruals are computed PRECISION_SCALE times
# larger than the result and de-scaled by the same constant at the end.
PRECISION_SCALE = 10 ** 18

# Every amount and every intermediate product must fit an unsigned 256-bit word.
UINT256_MAX = 2 ** 256 - 1

# Tax accruals at max_price must stay inside UINT256_MAX for at least this long.
ACCRUAL_HORIZON = 10 * SECONDS_PER_YEAR

# Fixed delay modelling "two block confirmations".
DEFAULT_MARGIN_DURATION = 25


# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all host-ledger errors."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class CustodyError(LedgerError):
    """Raised when a custody transfer names a holder that does not hold the asset."""
    pass


class HarbergerError(Exception):
    """Base exception for all Harberger settlement errors."""
    pass


class InvalidPrice(HarbergerError):
    """Raised when a declared price is zero or outside [min_price, max_price]."""
    pass


class InvalidRecipient(HarbergerError):
    """Raised when a recipient or buyer account is missing or not eligible."""
    pass


class InvalidAssetId(HarbergerError):
    """Raised when an asset id is empty or blank."""
    pass


class DuplicateAsset(HarbergerError):
    """Raised when minting an asset id that is already registered."""
    pass


class AssetNotFound(HarbergerError):
    """Raised when an operation names an asset id with no record."""
    pass


class InvalidConfiguration(HarbergerError):
    """Raised when global parameters fail validation."""
    pass


class Unauthorized(HarbergerError):
    """Raised when the caller is not allowed to perform the operation."""
    pass


class MarginNotMet(HarbergerError):
    """Raised when a margin-guarded operation runs before last_settlement + margin."""
    pass


class InsufficientPayment(HarbergerError):
    """Raised when the attached payment does not cover the amount owed."""
    pass


class AssetDefaulted(HarbergerError):
    """Raised when an operation is attempted on a foreclosed asset."""
    pass


class TransferFailed(HarbergerError):
    """Raised when the value rail rejects a payment; the whole operation aborts."""
    pass


class RollbackFailed(HarbergerError):
    """Raised when compensating an aborted operation fails."""
    pass


class ReentrancyViolation(HarbergerError):
    """Raised when the registry is entered while an operation is in flight on the same thread."""
    pass


class ArithmeticOverflow(HarbergerError):
    """Raised when an amount or intermediate product exceeds UINT256_MAX."""
    pass


class ClockInvariantViolation(HarbergerError):
    """Raised when the clock reports a time before the last settlement."""
    pass


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (unregistered wallet or unit,
              balance limits, or a transfer rule).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Manual user-initiated transaction
    SETTLEMENT = "settlement"             # Harberger settlement operation payment
    CUSTODY = "custody"                   # Asset registration or custody transfer
    REVERSAL = "reversal"                 # Compensation of an aborted settlement
    SYSTEM = "system"                     # Cash issuance


@dataclass(frozen=True, slots=True)
class TransferReceipt:
    """
    Outcome of a single ValueRail.send() call.

    Attributes:
        ok: True if the amount moved, False if the rail refused it
        source: Paying account
        dest: Receiving account
        amount: Amount in base units
        reason: Why the transfer failed (empty on success)
        reference: Rail-specific identifier of the applied transfer (None on failure)
    """
    ok: bool
    source: str
    dest: str
    amount: int
    reason: str = ""
    reference: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Transfer rules receive a LedgerView; the Ledger class implements it but
    also provides mutation methods.
    """

    @property
    def current_time(self) -> int:
        """Return the current logical time of the ledger in epoch seconds."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """Return the balance of a specific unit in a wallet (0 if none)."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


@runtime_checkable
class OwnershipLedger(Protocol):
    """
    Custody-of-asset collaborator.

    Records which account holds which asset and moves custody atomically.
    """

    def register_new(self, asset_id: str, owner: str) -> None:
        """Record a brand-new asset as held by owner."""
        ...

    def is_known(self, asset_id: str) -> bool:
        """True if asset_id names anything the ledger already tracks."""
        ...

    def current_holder(self, asset_id: str) -> Optional[str]:
        """Return the holder of asset_id, or None if it is unknown."""
        ...

    def transfer_custody(self, asset_id: str, from_account: str, to_account: str) -> None:
        """Move custody; raises CustodyError if from_account is not the holder."""
        ...


@runtime_checkable
class ValueRail(Protocol):
    """
    Value-transfer collaborator.

    send() is synchronous and may fail for any reason (insufficient funds,
    recipient rejection). It may also call back into the caller's system,
    which is why settlement operations run under a re-entrancy guard.
    """

    def send(self, source: str, dest: str, amount: int) -> 'TransferReceipt':
        """Move amount from source to dest and report the outcome."""
        ...

    def revert(self, receipt: 'TransferReceipt') -> None:
        """Undo a previously successful transfer; raises LedgerError if impossible."""
        ...


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the specific source (operation name, caller, etc.)
        unit_symbol: Symbol of the unit that triggered this (if applicable)
        event_type: Specific event within the source (e.g., "PAYMENT", "ISSUE")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

def check_amount(amount: int, what: str = "amount") -> int:
    """
    Validate that amount is a plain non-negative int inside the 256-bit word.

    Raises:
        TypeError: if amount is not an int (bools rejected)
        ValueError: if amount is negative
        ArithmeticOverflow: if amount exceeds UINT256_MAX
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"{what} must be int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"{what} cannot be negative, got {amount}")
    if amount > UINT256_MAX:
        raise ArithmeticOverflow(f"{what} exceeds 256-bit range: {amount}")
    return amount


@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer in base units (positive int).
        unit_symbol: The symbol of the unit being transferred (e.g., "ETH", an asset id).
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        for name in ("source", "dest", "unit_symbol", "contract_id"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"Move {name} cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = (),
) -> str:
    """
    Content hash over origin, created units and moves, never timestamps.

    Callers that issue repeated identical payments must make the contract_id
    unique per payment.
    """
    parts = [f"origin:{origin!r}"]
    parts.extend(f"unit_create:{u.symbol}|{u.unit_type}" for u in sorted(units_to_create, key=lambda u: u.symbol))
    parts.extend(
        f"move:{m.quantity}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}"
        for m in sorted(moves, key=lambda m: (m.contract_id, m.unit_symbol, m.source, m.dest, m.quantity))
    )
    return hashlib.sha256("|".join(parts).encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    Moves (and the units they create) awaiting execution - represents INTENT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: Logical time (epoch seconds) when this was created
        units_to_create: Units registered together with the moves
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: int
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(
                self, 'intent_id',
                _compute_intent_id(self.moves, self.origin, self.units_to_create),
            )

    def is_empty(self) -> bool:
        return not self.moves and not self.units_to_create


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Tuple['Unit', ...] = (),
) -> PendingTransaction:
    """
    Build a PendingTransaction stamped with the view's current time.

    Example:
        tx = build_transaction(ledger, [
            Move(5 * ONE_UNIT, "ETH", "alice", "bob", "payment_001")
        ])
        ledger.execute(tx)
    """
    return PendingTransaction(
        moves=tuple(moves),
        origin=origin or TransactionOrigin(OriginType.USER_ACTION, "user"),
        timestamp=view.current_time,
        units_to_create=tuple(units_to_create),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable ledger entry - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering)
        units_to_create: Units registered by this entry
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: int
    intent_id: str
    exec_id: str
    execution_time: int
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()

    @property
    def contract_ids(self) -> FrozenSet[str]:
        return frozenset(m.contract_id for m in self.moves)

    def __repr__(self) -> str:
        created = "".join(f" +{u.symbol}" for u in self.units_to_create)
        moves = "; ".join(f"{m.quantity} {m.unit_symbol} {m.source}→{m.dest}" for m in self.moves)
        return f"[{self.exec_id}] {self.origin}{created} :: {moves}"


# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit (cash currency or a single Harberger asset).

    Attributes:
        symbol: Short identifier for the unit (e.g., "ETH", "PARCEL-7").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CASH, HARBERGER_ASSET).
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any non-system wallet (None = unbounded).
        transfer_rule: Optional function to validate moves involving this unit.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: int = 0
    max_balance: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None

    def admits(self, balance: int) -> bool:
        """True if a non-system wallet may hold this balance."""
        if balance < self.min_balance:
            return False
        return self.max_balance is None or balance <= self.max_balance


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def cash(symbol: str, name: str, min_balance: int = 0) -> Unit:
    """
    Create a cash currency unit.

    Args:
        symbol: Currency code (e.g., "ETH", "USD").
        name: Full name of the currency.
        min_balance: Lowest balance a non-system wallet may hold (default 0,
                     so payments beyond a wallet's funds are rejected).
    """
    return Unit(symbol=symbol, name=name, unit_type=UNIT_TYPE_CASH, min_balance=min_balance)
