"""
registry.py - Harberger Settlement Operations

HarbergerRegistry composes the Tax Accrual Engine, the Foreclosure Evaluator,
the Ownership Ledger and the Value-Transfer Rail into atomic operations:

    mint      - register a new asset at a declared price
    modify    - holder pays accrued tax (on the old price) and re-declares
    purchase  - anyone buys at the declared price plus accrued tax
    pay_tax   - holder settles accrued tax
    evaluate_and_foreclose_if_due - explicit, idempotent repossession

Payment flow:
    Attached payments are collected from the caller into the registry's escrow
    account first; every outgoing payment (price to seller, tax to treasury,
    refunds) leaves from escrow.

Atomicity:
    Every validation runs before the first transfer. Applied custody moves and
    payments are journalled; if any later step fails, the journal is replayed
    backwards (payments reverted, custody handed back), no state is written, no
    event is recorded and the error propagates. Asset records are written only
    after every transfer has succeeded.

Exclusion:
    Operations and queries alike run inside the re-entrancy guard, so a rail
    callback cannot read custody or records mid-operation. Events an
    operation appended are published to observers only after the guard is
    released; observers may call back into the registry and an observer
    failure never undoes a committed operation.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Tuple
import logging

from .accrual import checked_add, tax_due as accrue_tax_due
from .adapters import LedgerOwnership, LedgerValueRail
from .config import HarbergerConfig
from .core import (
    OwnershipLedger, ValueRail, TransferReceipt,
    HarbergerError, LedgerError,
    AssetDefaulted, DuplicateAsset, InsufficientPayment, InvalidAssetId, InvalidConfiguration,
    InvalidPrice, InvalidRecipient, RollbackFailed, TransferFailed, Unauthorized,
    ClockInvariantViolation,
    check_amount,
)
from .events import AssetMinted, AssetPurchased, EventLog, PriceModified, TaxPaid
from .foreclosure import ForeclosureEvaluator, ForeclosureOutcome, foreclosure_time
from .guards import ReentrancyGuard, require_margin
from .ledger import Ledger
from .store import AssetRecord, AssetStateStore

logger = logging.getLogger(__name__)

DEFAULT_ESCROW_ACCOUNT = "harberger_escrow"

Clock = Callable[[], int]


class _SettlementJournal:
    """Applied steps of one in-flight operation, in order, for compensation."""

    def __init__(self, rail: ValueRail, ownership: OwnershipLedger, label: str):
        self.rail = rail
        self.ownership = ownership
        self.label = label
        self._steps: List[Tuple[str, object]] = []

    def pay(self, source: str, dest: str, amount: int) -> Optional[TransferReceipt]:
        """
        Send amount through the rail; zero amounts are skipped.

        Raises:
            TransferFailed: if the rail reports failure
        """
        if amount == 0:
            return None
        receipt = self.rail.send(source, dest, amount)
        if not receipt.ok:
            raise TransferFailed(
                f"{self.label}: payment of {amount} from {source} to {dest} failed: {receipt.reason}"
            )
        self._steps.append(("pay", receipt))
        return receipt

    def move_custody(self, asset_id: str, from_account: str, to_account: str) -> None:
        self.ownership.transfer_custody(asset_id, from_account, to_account)
        self._steps.append(("custody", (asset_id, from_account, to_account)))

    def rollback(self) -> None:
        for kind, step in reversed(self._steps):
            if kind == "pay":
                self.rail.revert(step)
            else:
                asset_id, from_account, to_account = step
                self.ownership.transfer_custody(asset_id, to_account, from_account)
        self._steps.clear()


class HarbergerRegistry:
    """
    Self-assessed, continuously taxed ownership of assets.

    Example:
        ledger = Ledger("main", initial_time=1_700_000_000, verbose=False)
        ledger.register_unit(cash("ETH", "Ether"))
        config = HarbergerConfig(
            treasury_account="treasury",
            min_price=10 ** 15,
            max_price=10 ** 30,
            tax_rate_bps=1000,
            cliff_duration=30 * SECONDS_PER_DAY,
        )
        registry = HarbergerRegistry.on_ledger(ledger, config, "ETH")
        registry.rail.issue("alice", 10 * ONE_UNIT)

        registry.mint("alice", "alice", "PARCEL-7", ONE_UNIT)
        ledger.advance_by(SECONDS_PER_DAY)
        registry.pay_tax("alice", "PARCEL-7", registry.tax_due("PARCEL-7"))
    """

    def __init__(
        self,
        config: HarbergerConfig,
        ownership: OwnershipLedger,
        rail: ValueRail,
        clock: Clock,
        store: Optional[AssetStateStore] = None,
        events: Optional[EventLog] = None,
        escrow_account: str = DEFAULT_ESCROW_ACCOUNT,
    ):
        if not escrow_account or not escrow_account.strip():
            raise InvalidConfiguration("escrow_account cannot be empty")
        if escrow_account == config.treasury_account:
            raise InvalidConfiguration("escrow_account must differ from treasury_account")

        self._config = config
        self.ownership = ownership
        self.rail = rail
        self._clock = clock
        self.store = store if store is not None else AssetStateStore()
        self.events = events if events is not None else EventLog()
        self.escrow_account = escrow_account

        self._guard = ReentrancyGuard()
        self._evaluator = ForeclosureEvaluator(self.store, ownership, self.events, config)
        self._tax_collected = 0
        self._retained_excess = 0

    @classmethod
    def on_ledger(
        cls,
        ledger: Ledger,
        config: HarbergerConfig,
        currency: str,
        escrow_account: str = DEFAULT_ESCROW_ACCOUNT,
    ) -> HarbergerRegistry:
        """Wire a registry to a host ledger: ledger custody, ledger cash, ledger clock."""
        ledger.ensure_wallet(config.treasury_account)
        ledger.ensure_wallet(escrow_account)
        return cls(
            config=config,
            ownership=LedgerOwnership(ledger),
            rail=LedgerValueRail(ledger, currency),
            clock=lambda: ledger.current_time,
            escrow_account=escrow_account,
        )

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    @property
    def config(self) -> HarbergerConfig:
        return self._config

    def set_tax_rate(self, caller: str, tax_rate_bps: int) -> None:
        """
        Replace the global tax rate (admin only).

        The new rate applies to each asset's whole unsettled window.

        Raises:
            Unauthorized: caller is not the admin account
            InvalidConfiguration: rate outside 0..10000
        """
        with self._exclusive("set_tax_rate"):
            self._require_admin(caller)
            old = self._config.tax_rate_bps
            self._apply_config(self._config.with_tax_rate(tax_rate_bps))
            logger.info("tax rate changed %s -> %s bps by %s", old, tax_rate_bps, caller)

    def set_cliff_duration(self, caller: str, cliff_duration: int) -> None:
        """
        Replace the global cliff (admin only).

        Raises:
            Unauthorized: caller is not the admin account
            InvalidConfiguration: cliff not a positive int
        """
        with self._exclusive("set_cliff_duration"):
            self._require_admin(caller)
            old = self._config.cliff_duration
            self._apply_config(self._config.with_cliff_duration(cliff_duration))
            logger.info("cliff changed %ss -> %ss by %s", old, cliff_duration, caller)

    def _require_admin(self, caller: str) -> None:
        if caller != self._config.admin_account:
            raise Unauthorized(f"{caller} is not the admin account")

    def _apply_config(self, config: HarbergerConfig) -> None:
        self._config = config
        self._evaluator.config = config

    # ========================================================================
    # SETTLEMENT OPERATIONS
    # ========================================================================

    def mint(self, caller: str, to: str, asset_id: str, price: int) -> AssetRecord:
        """
        Register a new asset held by `to` at a declared price.

        Raises:
            InvalidRecipient: `to` is empty
            InvalidPrice: price is zero, not an int, or out of bounds
            InvalidAssetId: asset_id is empty or blank
            DuplicateAsset: asset_id is already registered, or is already a
                            unit symbol on the ownership ledger (held or not)
        """
        with self._exclusive("mint", asset_id):
            if not to or not str(to).strip():
                raise InvalidRecipient("mint recipient cannot be empty")
            self._check_price(price)
            if not isinstance(asset_id, str) or not asset_id.strip():
                raise InvalidAssetId(f"asset_id must be a non-empty string, got {asset_id!r}")
            if self.store.contains(asset_id) or self.ownership.is_known(asset_id):
                raise DuplicateAsset(f"Asset {asset_id} already registered")

            now = self._now()
            self.ownership.register_new(asset_id, to)
            record = AssetRecord(price=price, last_settlement=now)
            self.store.put(asset_id, record)
            self.events.append(AssetMinted(
                asset_id=asset_id, minter=caller, owner=to, price=price, timestamp=now,
            ))
            logger.info("minted %s to %s at price %s", asset_id, to, price)
            return record

    def modify(self, caller: str, asset_id: str, new_price: int, payment: int) -> AssetRecord:
        """
        Holder pays tax accrued on the current price and declares a new price.

        Tax is charged on the old price for the elapsed window. Payment above
        the tax owed is consumed: it stays in escrow and is not refunded.

        Raises:
            AssetNotFound, AssetDefaulted, Unauthorized, InvalidPrice,
            MarginNotMet, InsufficientPayment, TransferFailed
        """
        with self._exclusive("modify", asset_id):
            record = self.store.require(asset_id)
            if record.defaulted:
                raise AssetDefaulted(f"Asset {asset_id} is defaulted")
            holder = self.ownership.current_holder(asset_id)
            if caller != holder:
                raise Unauthorized(f"{caller} does not hold {asset_id}")
            self._check_price(new_price)

            now = self._now()
            require_margin(record, now, self._config.margin_duration)
            owed = accrue_tax_due(record, now, self._config.tax_rate_bps)
            check_amount(payment, "payment")
            if payment < owed:
                raise InsufficientPayment(f"payment {payment} below tax due {owed}")

            with self._settlement("modify", asset_id) as journal:
                journal.pay(caller, self.escrow_account, payment)
                journal.pay(self.escrow_account, self._config.treasury_account, owed)

            updated = record.repriced(new_price, now)
            self.store.put(asset_id, updated)
            self._tax_collected += owed
            self._retained_excess += payment - owed
            self.events.append(PriceModified(
                asset_id=asset_id, owner=caller, old_price=record.price,
                new_price=new_price, tax_paid=owed, timestamp=now,
            ))
            logger.info(
                "%s repriced %s: %s -> %s (tax %s, retained %s)",
                caller, asset_id, record.price, new_price, owed, payment - owed,
            )
            return updated

    def purchase(self, caller: str, asset_id: str, tendered: int) -> AssetRecord:
        """
        Force-buy an asset at its declared price plus accrued tax.

        Effect order: collect tendered amount, custody to buyer, price to
        seller, tax to treasury, refund of the excess to the buyer last. The
        declared price is unchanged; call modify() afterwards to re-declare.

        Raises:
            AssetNotFound, AssetDefaulted, InvalidRecipient, MarginNotMet,
            InsufficientPayment, TransferFailed
        """
        with self._exclusive("purchase", asset_id):
            record = self.store.require(asset_id)
            if record.defaulted:
                raise AssetDefaulted(f"Asset {asset_id} is defaulted")
            seller = self.ownership.current_holder(asset_id)
            if not caller or not str(caller).strip():
                raise InvalidRecipient("buyer cannot be empty")
            if caller == seller:
                raise InvalidRecipient(f"{caller} already holds {asset_id}")

            now = self._now()
            require_margin(record, now, self._config.margin_duration)
            owed = accrue_tax_due(record, now, self._config.tax_rate_bps)
            total = checked_add(record.price, owed)
            check_amount(tendered, "tendered")
            if tendered < total:
                raise InsufficientPayment(
                    f"tendered {tendered} below price {record.price} + tax {owed}"
                )
            refund = tendered - total

            with self._settlement("purchase", asset_id) as journal:
                journal.pay(caller, self.escrow_account, tendered)
                journal.move_custody(asset_id, seller, caller)
                journal.pay(self.escrow_account, seller, record.price)
                journal.pay(self.escrow_account, self._config.treasury_account, owed)
                journal.pay(self.escrow_account, caller, refund)

            updated = record.settled_at(now)
            self.store.put(asset_id, updated)
            self._tax_collected += owed
            self.events.append(AssetPurchased(
                asset_id=asset_id, seller=seller, buyer=caller, price=record.price,
                tax_paid=owed, refund=refund, timestamp=now,
            ))
            logger.info(
                "%s bought %s from %s for %s (tax %s, refund %s)",
                caller, asset_id, seller, record.price, owed, refund,
            )
            return updated

    def pay_tax(self, caller: str, asset_id: str, payment: int) -> AssetRecord:
        """
        Holder settles the tax accrued so far; the excess is refunded.

        No margin applies: paying early is never harmful.

        Raises:
            AssetNotFound, AssetDefaulted, Unauthorized, InsufficientPayment,
            TransferFailed
        """
        with self._exclusive("pay_tax", asset_id):
            record = self.store.require(asset_id)
            if record.defaulted:
                raise AssetDefaulted(f"Asset {asset_id} is defaulted")
            holder = self.ownership.current_holder(asset_id)
            if caller != holder:
                raise Unauthorized(f"{caller} does not hold {asset_id}")

            now = self._now()
            owed = accrue_tax_due(record, now, self._config.tax_rate_bps)
            check_amount(payment, "payment")
            if payment < owed:
                raise InsufficientPayment(f"payment {payment} below tax due {owed}")
            refund = payment - owed

            with self._settlement("pay_tax", asset_id) as journal:
                journal.pay(caller, self.escrow_account, payment)
                journal.pay(self.escrow_account, self._config.treasury_account, owed)
                journal.pay(self.escrow_account, caller, refund)

            updated = record.settled_at(now)
            self.store.put(asset_id, updated)
            self._tax_collected += owed
            self.events.append(TaxPaid(
                asset_id=asset_id, payer=caller, amount=owed, refund=refund, timestamp=now,
            ))
            logger.info("%s paid tax %s on %s", caller, owed, asset_id)
            return updated

    def evaluate_and_foreclose_if_due(self, caller: str, asset_id: str) -> ForeclosureOutcome:
        """
        Repossess asset_id to the treasury if its cliff plus margin has elapsed.

        Anyone may call this. Idempotent once the asset is defaulted.
        """
        with self._exclusive("foreclose", asset_id):
            outcome = self._evaluator.evaluate_and_foreclose_if_due(asset_id, self._now())
            logger.debug("foreclosure check on %s by %s: %s", asset_id, caller, outcome.value)
            return outcome

    # ========================================================================
    # QUERIES (read-only, never foreclose)
    #
    # Guarded like the operations: a query issued from a rail callback while
    # an operation is in flight raises ReentrancyViolation.
    # ========================================================================

    def price_of(self, asset_id: str) -> int:
        with self._guard.section("price_of", asset_id):
            return self.store.require(asset_id).price

    def last_settlement_of(self, asset_id: str) -> int:
        with self._guard.section("last_settlement_of", asset_id):
            return self.store.require(asset_id).last_settlement

    def is_defaulted(self, asset_id: str) -> bool:
        with self._guard.section("is_defaulted", asset_id):
            return self.store.require(asset_id).defaulted

    def tax_due(self, asset_id: str) -> int:
        """Tax owed right now; 0 for unknown or defaulted assets."""
        with self._guard.section("tax_due", asset_id):
            return accrue_tax_due(self.store.get(asset_id), self._now(), self._config.tax_rate_bps)

    def holder_of(self, asset_id: str) -> Optional[str]:
        with self._guard.section("holder_of", asset_id):
            return self.ownership.current_holder(asset_id)

    def record_of(self, asset_id: str) -> AssetRecord:
        with self._guard.section("record_of", asset_id):
            return self.store.require(asset_id)

    def foreclosure_time(self, asset_id: str) -> int:
        """Epoch second from which evaluate_and_foreclose_if_due() forecloses."""
        with self._guard.section("foreclosure_time", asset_id):
            return foreclosure_time(
                self.store.require(asset_id),
                self._config.cliff_duration,
                self._config.margin_duration,
            )

    def asset_ids(self) -> List[str]:
        with self._guard.section("asset_ids"):
            return self.store.asset_ids()

    def total_tax_collected(self) -> int:
        with self._guard.section("total_tax_collected"):
            return self._tax_collected

    def retained_excess(self) -> int:
        """Overpayment on modify() kept in escrow."""
        with self._guard.section("retained_excess"):
            return self._retained_excess

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _now(self) -> int:
        now = self._clock()
        if isinstance(now, bool) or not isinstance(now, int) or now < 0:
            raise ClockInvariantViolation(f"clock must return non-negative int seconds, got {now!r}")
        return now

    def _check_price(self, price: int) -> None:
        if isinstance(price, bool) or not isinstance(price, int):
            raise InvalidPrice(f"price must be int, got {type(price).__name__}")
        if price == 0 or not self._config.price_in_bounds(price):
            raise InvalidPrice(
                f"price {price} outside [{self._config.min_price}, {self._config.max_price}]"
            )

    @contextmanager
    def _exclusive(self, operation: str, asset_id: Optional[str] = None) -> Iterator[None]:
        """Hold the guard for the block, then publish the events it appended."""
        with self._guard.section(operation, asset_id):
            mark = len(self.events)
            yield
            fresh = self.events.since(mark)
        self.events.publish(fresh)

    @contextmanager
    def _settlement(self, operation: str, asset_id: str) -> Iterator[_SettlementJournal]:
        """Run transfers; on any failure revert what was applied and re-raise."""
        journal = _SettlementJournal(self.rail, self.ownership, f"{operation}({asset_id})")
        try:
            yield journal
        except Exception as exc:
            logger.warning("%s(%s) aborted, rolling back: %s", operation, asset_id, exc)
            try:
                journal.rollback()
            except (LedgerError, HarbergerError) as rollback_exc:
                logger.error("%s(%s) rollback failed: %s", operation, asset_id, rollback_exc)
                raise RollbackFailed(
                    f"{operation}({asset_id}) could not be rolled back: {rollback_exc}"
                ) from exc
            raise
