"""
foreclosure.py - Foreclosure Evaluator

State machine deciding, from elapsed time against the cliff, whether an asset
must be repossessed, and performing the repossession.

    Active --[evaluate, elapsed >= cliff + margin]--> Defaulted (terminal)

Foreclosure is never implicit. An asset whose tax has lapsed stays fully
usable (purchasable, modifiable, tax-payable) until some party explicitly
invokes evaluate_and_foreclose_if_due(). Read paths never foreclose. The
evaluator is the only code path that sets AssetRecord.defaulted.
"""

from __future__ import annotations
from enum import Enum
import logging

from .accrual import elapsed_since
from .config import HarbergerConfig
from .core import OwnershipLedger, CustodyError
from .events import AssetDefaulted, EventLog
from .store import AssetRecord, AssetStateStore

logger = logging.getLogger(__name__)


class ForeclosureOutcome(Enum):
    FORECLOSED = "foreclosed"
    NOT_DUE = "not_due"


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def foreclosure_time(record: AssetRecord, cliff_duration: int, margin_duration: int) -> int:
    """Earliest epoch second at which the asset may be foreclosed."""
    return record.last_settlement + cliff_duration + margin_duration


def is_foreclosure_due(
    record: AssetRecord,
    now: int,
    cliff_duration: int,
    margin_duration: int,
) -> bool:
    """
    True when elapsed >= cliff + margin.

    PURE FUNCTION - All inputs explicit.

    Raises:
        ClockInvariantViolation: if now is before the last settlement
    """
    if record.defaulted:
        return False
    return elapsed_since(record.last_settlement, now) >= cliff_duration + margin_duration


# ============================================================================
# EVALUATOR
# ============================================================================

class ForeclosureEvaluator:
    """
    Performs repossession to the treasury when the cliff has passed.

    The registry owns the evaluator, keeps its config current and calls it
    under the re-entrancy guard. The AssetDefaulted event is only appended;
    the registry publishes it to observers after releasing the guard.
    """

    def __init__(
        self,
        store: AssetStateStore,
        ownership: OwnershipLedger,
        events: EventLog,
        config: HarbergerConfig,
    ):
        self.store = store
        self.ownership = ownership
        self.events = events
        self.config = config

    def evaluate_and_foreclose_if_due(self, asset_id: str, now: int) -> ForeclosureOutcome:
        """
        Foreclose asset_id if its cliff (plus margin) has elapsed.

        Returns:
            FORECLOSED if the asset is (or already was) defaulted,
            NOT_DUE otherwise (no mutation).

        Raises:
            AssetNotFound: unknown asset id
            ClockInvariantViolation: now is before the last settlement
            CustodyError: the ownership ledger has no holder for the asset
        """
        record = self.store.require(asset_id)
        if record.defaulted:
            return ForeclosureOutcome.FORECLOSED

        cliff = self.config.cliff_duration
        margin = self.config.margin_duration
        if not is_foreclosure_due(record, now, cliff, margin):
            return ForeclosureOutcome.NOT_DUE

        treasury = self.config.treasury_account
        holder = self.ownership.current_holder(asset_id)
        if holder is None:
            raise CustodyError(f"Asset {asset_id} has no holder to repossess from")
        if holder != treasury:
            self.ownership.transfer_custody(asset_id, holder, treasury)

        self.store.put(asset_id, record.foreclosed())
        self.events.append(AssetDefaulted(
            asset_id=asset_id,
            former_holder=holder,
            treasury=treasury,
            price=record.price,
            last_settlement=record.last_settlement,
            timestamp=now,
        ))
        logger.info(
            "foreclosed %s from %s after %ss (cliff %s + margin %s)",
            asset_id, holder, now - record.last_settlement, cliff, margin,
        )
        return ForeclosureOutcome.FORECLOSED
