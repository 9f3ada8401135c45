"""
adapters.py - Host-Ledger Implementations of the Settlement Collaborators

The registry only ever talks to an OwnershipLedger and a ValueRail. This
module provides both on top of the host Ledger:

    LedgerOwnership  - custody of each asset is a one-unit position
    LedgerValueRail  - payments are single-move cash transactions

Recipient hooks let a wallet behave like a programmable account: a hook is
consulted before the wallet is credited, may refuse the payment (the rail then
reports a failed transfer), and may call back into the registry while the
payment is in flight.
"""

from __future__ import annotations
from itertools import count
from typing import Callable, Dict, Optional

from .core import (
    Move, PendingTransaction, TransactionOrigin, OriginType, TransferReceipt,
    ExecuteResult, SYSTEM_WALLET,
    CustodyError, LedgerError,
    build_transaction, check_amount,
)
from .ledger import Ledger
from .units.asset import create_asset_unit


# hook(source, dest, amount) -> accept?
RecipientHook = Callable[[str, str, int], bool]


class LedgerOwnership:
    """
    OwnershipLedger backed by the host ledger.

    Unknown wallets are registered on first use, so any account string can
    receive an asset.
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self._transfer_seq = count()

    def register_new(self, asset_id: str, owner: str) -> None:
        """
        Issue the single unit of asset_id to owner.

        Raises:
            CustodyError: if a unit with this symbol already exists or the
                          ledger rejects the issuance.
        """
        if asset_id in self.ledger.units:
            raise CustodyError(f"Unit {asset_id} already registered")
        self.ledger.ensure_wallet(owner)
        pending = build_transaction(
            self.ledger,
            [Move(1, asset_id, SYSTEM_WALLET, owner, f"issue_{asset_id}")],
            origin=TransactionOrigin(OriginType.CUSTODY, "register_new", asset_id, "ISSUE"),
            units_to_create=(create_asset_unit(asset_id),),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise CustodyError(f"Ledger rejected issuance of {asset_id} to {owner}")

    def is_known(self, asset_id: str) -> bool:
        """True if any unit (cash included) already uses asset_id as its symbol."""
        return asset_id in self.ledger.units

    def current_holder(self, asset_id: str) -> Optional[str]:
        if asset_id not in self.ledger.units:
            return None
        for wallet, qty in sorted(self.ledger.get_positions(asset_id).items()):
            if wallet != SYSTEM_WALLET and qty > 0:
                return wallet
        return None

    def transfer_custody(self, asset_id: str, from_account: str, to_account: str) -> None:
        """
        Move the asset from its holder to to_account.

        Raises:
            CustodyError: if from_account is not the current holder, or the
                          ledger rejects the move.
        """
        holder = self.current_holder(asset_id)
        if holder is None or holder != from_account:
            raise CustodyError(
                f"{from_account} does not hold {asset_id} (holder: {holder})"
            )
        self.ledger.ensure_wallet(to_account)
        seq = next(self._transfer_seq)
        pending = build_transaction(
            self.ledger,
            [Move(1, asset_id, from_account, to_account, f"custody_{asset_id}_{seq}")],
            origin=TransactionOrigin(OriginType.CUSTODY, "transfer_custody", asset_id, "TRANSFER"),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise CustodyError(f"Ledger rejected custody move of {asset_id} to {to_account}")


class LedgerValueRail:
    """
    ValueRail backed by a cash unit on the host ledger.

    Example:
        rail = LedgerValueRail(ledger, "ETH")
        rail.issue("alice", 10 * ONE_UNIT)
        receipt = rail.send("alice", "bob", ONE_UNIT)
        assert receipt.ok
    """

    def __init__(self, ledger: Ledger, currency: str):
        if currency not in ledger.units:
            raise ValueError(f"Currency {currency} is not registered on ledger {ledger.name}")
        self.ledger = ledger
        self.currency = currency
        self._hooks: Dict[str, RecipientHook] = {}
        self._payment_seq = count()

    # ------------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------------

    def add_recipient_hook(self, wallet: str, hook: RecipientHook) -> None:
        """Consult hook before every payment credited to wallet."""
        self._hooks[wallet] = hook

    def remove_recipient_hook(self, wallet: str) -> None:
        self._hooks.pop(wallet, None)

    # ------------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------------

    def balance_of(self, wallet: str) -> int:
        if not self.ledger.is_registered(wallet):
            return 0
        return self.ledger.get_balance(wallet, self.currency)

    def issue(self, wallet: str, amount: int) -> None:
        """
        Fund a wallet from SYSTEM_WALLET (proper issuance, keeps supply balanced).

        Raises:
            LedgerError: if the ledger rejects the issuance
        """
        check_amount(amount)
        self.ledger.ensure_wallet(wallet)
        if amount == 0:
            return
        pending = build_transaction(
            self.ledger,
            [Move(amount, self.currency, SYSTEM_WALLET, wallet, f"fund_{next(self._payment_seq)}")],
            origin=TransactionOrigin(OriginType.SYSTEM, "issue", self.currency, "FUNDING"),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise LedgerError(f"Ledger rejected funding of {wallet}")

    # ------------------------------------------------------------------------
    # ValueRail protocol
    # ------------------------------------------------------------------------

    def send(self, source: str, dest: str, amount: int) -> TransferReceipt:
        """
        Pay amount from source to dest.

        Zero amounts succeed without touching the ledger. A recipient hook
        returning False, a missing source wallet or insufficient funds all
        produce a failed receipt; exceptions raised by a hook propagate.
        """
        check_amount(amount)
        if amount == 0:
            return TransferReceipt(ok=True, source=source, dest=dest, amount=0)
        if source == dest:
            return TransferReceipt(False, source, dest, amount, reason="source and dest are the same account")
        if not self.ledger.is_registered(source):
            return TransferReceipt(False, source, dest, amount, reason=f"wallet {source} not registered")

        unit = self.ledger.get_unit(self.currency)
        if source != SYSTEM_WALLET and self.balance_of(source) - amount < unit.min_balance:
            return TransferReceipt(False, source, dest, amount, reason=f"insufficient funds in {source}")

        hook = self._hooks.get(dest)
        if hook is not None and not hook(source, dest, amount):
            return TransferReceipt(False, source, dest, amount, reason=f"recipient {dest} rejected payment")

        self.ledger.ensure_wallet(dest)
        seq = next(self._payment_seq)
        pending = build_transaction(
            self.ledger,
            [Move(amount, self.currency, source, dest, f"pay_{seq}")],
            origin=TransactionOrigin(OriginType.SETTLEMENT, "send", self.currency, "PAYMENT"),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            return TransferReceipt(False, source, dest, amount, reason="ledger rejected payment")

        return TransferReceipt(
            ok=True, source=source, dest=dest, amount=amount,
            reference=self.ledger.transaction_log[-1].exec_id,
        )

    def revert(self, receipt: TransferReceipt) -> None:
        """
        Pay a successful transfer back from its recipient, bypassing hooks.

        Raises:
            LedgerError: if the reversal is rejected (e.g. the recipient has
                         already spent the funds)
        """
        if not receipt.ok or receipt.reference is None:
            return
        pending = PendingTransaction(
            moves=(Move(receipt.amount, self.currency, receipt.dest, receipt.source,
                        f"revert_{receipt.reference}"),),
            origin=TransactionOrigin(OriginType.REVERSAL, "revert", self.currency, "REVERSAL"),
            timestamp=self.ledger.current_time,
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise LedgerError(f"Could not revert payment {receipt.reference}")
