"""
harberger - Harberger Tax Asset Ledger

Continuous, self-assessed ownership of assets: the declared price sets both
the annual tax owed and the price at which anyone may force a sale. Holders
who stop paying are foreclosed to the treasury once the cliff has passed.

Usage:
    from harberger import (
        Ledger, cash, HarbergerConfig, HarbergerRegistry, ForeclosureKeeper,
        ONE_UNIT, SECONDS_PER_DAY,
    )

    ledger = Ledger("main", initial_time=1_700_000_000, verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))

    config = HarbergerConfig(
        treasury_account="treasury",
        min_price=10 ** 15,
        max_price=10 ** 30,
        tax_rate_bps=1000,               # 10% per year
        cliff_duration=30 * SECONDS_PER_DAY,
    )
    registry = HarbergerRegistry.on_ledger(ledger, config, "ETH")
    registry.rail.issue("alice", 5 * ONE_UNIT)
    registry.rail.issue("bob", 5 * ONE_UNIT)

    registry.mint("alice", "alice", "PARCEL-7", 2 * ONE_UNIT)
    ledger.advance_by(7 * SECONDS_PER_DAY)

    # Bob forces the sale: price to Alice, accrued tax to the treasury
    registry.purchase("bob", "PARCEL-7", 3 * ONE_UNIT)

    # Nobody pays for 31 days; a keeper repossesses
    keeper = ForeclosureKeeper(registry, caller="keeper")
    ledger.advance_by(31 * SECONDS_PER_DAY)
    keeper.sweep()                       # ["PARCEL-7"]
"""

# Core types
from .core import (
    LedgerView,
    OwnershipLedger,
    ValueRail,
    TransferReceipt,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    ExecuteResult,
    cash,
    check_amount,
    SYSTEM_WALLET,
    UNIT_TYPE_CASH,
    UNIT_TYPE_HARBERGER_ASSET,
    ONE_UNIT,
    SECONDS_PER_DAY,
    SECONDS_PER_YEAR,
    BASIS_POINTS,
    PRECISION_SCALE,
    UINT256_MAX,
    ACCRUAL_HORIZON,
    DEFAULT_MARGIN_DURATION,
    # Host ledger errors
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    CustodyError,
    # Harberger errors
    HarbergerError,
    InvalidPrice,
    InvalidRecipient,
    InvalidAssetId,
    DuplicateAsset,
    AssetNotFound,
    InvalidConfiguration,
    Unauthorized,
    MarginNotMet,
    InsufficientPayment,
    AssetDefaulted,
    TransferFailed,
    RollbackFailed,
    ReentrancyViolation,
    ArithmeticOverflow,
    ClockInvariantViolation,
)

# Host ledger and reference collaborators
from .ledger import Ledger
from .units import create_asset_unit, single_holder_transfer_rule
from .adapters import LedgerOwnership, LedgerValueRail, RecipientHook

# Harberger components
from .config import HarbergerConfig, validate_tax_rate, validate_cliff_duration
from .store import AssetRecord, AssetStateStore
from .accrual import (
    calculate_tax_due,
    accrued_tax_scaled,
    tax_due,
    elapsed_since,
    checked_mul,
    checked_add,
)
from .foreclosure import (
    ForeclosureEvaluator,
    ForeclosureOutcome,
    foreclosure_time,
    is_foreclosure_due,
)
from .guards import ReentrancyGuard, require_margin, margin_deadline
from .events import (
    EventLog,
    AssetMinted,
    PriceModified,
    AssetPurchased,
    TaxPaid,
)
from .events import AssetDefaulted as AssetDefaultedEvent
from .registry import HarbergerRegistry, DEFAULT_ESCROW_ACCOUNT
from .keeper import ForeclosureKeeper

__version__ = "1.0.0"

__all__ = [
    # Core
    'LedgerView', 'OwnershipLedger', 'ValueRail', 'TransferReceipt',
    'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction', 'Unit', 'ExecuteResult',
    'cash', 'check_amount',
    'SYSTEM_WALLET', 'UNIT_TYPE_CASH', 'UNIT_TYPE_HARBERGER_ASSET',
    'ONE_UNIT', 'SECONDS_PER_DAY', 'SECONDS_PER_YEAR', 'BASIS_POINTS',
    'PRECISION_SCALE', 'UINT256_MAX', 'ACCRUAL_HORIZON', 'DEFAULT_MARGIN_DURATION',
    # Errors
    'LedgerError',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered', 'CustodyError',
    'HarbergerError', 'InvalidPrice', 'InvalidRecipient', 'InvalidAssetId', 'DuplicateAsset',
    'AssetNotFound', 'InvalidConfiguration', 'Unauthorized', 'MarginNotMet',
    'InsufficientPayment', 'AssetDefaulted', 'TransferFailed', 'RollbackFailed',
    'ReentrancyViolation', 'ArithmeticOverflow', 'ClockInvariantViolation',
    # Host ledger
    'Ledger', 'create_asset_unit', 'single_holder_transfer_rule',
    'LedgerOwnership', 'LedgerValueRail', 'RecipientHook',
    # Harberger
    'HarbergerConfig', 'validate_tax_rate', 'validate_cliff_duration',
    'AssetRecord', 'AssetStateStore',
    'calculate_tax_due', 'accrued_tax_scaled', 'tax_due', 'elapsed_since',
    'checked_mul', 'checked_add',
    'ForeclosureEvaluator', 'ForeclosureOutcome', 'foreclosure_time', 'is_foreclosure_due',
    'ReentrancyGuard', 'require_margin', 'margin_deadline',
    'EventLog', 'AssetMinted', 'PriceModified', 'AssetPurchased', 'TaxPaid',
    'AssetDefaultedEvent',
    'HarbergerRegistry', 'DEFAULT_ESCROW_ACCOUNT',
    'ForeclosureKeeper',
]
