"""
helpers.py - Shared constants and helpers for Harberger registry tests
"""

from harberger import (
    Ledger, cash,
    HarbergerConfig,
    ONE_UNIT, SECONDS_PER_DAY, SYSTEM_WALLET,
)


T0 = 1_700_000_000
CURRENCY = "ETH"
TREASURY = "treasury"
ESCROW = "harberger_escrow"
ASSET = "PARCEL-7"
STARTING_BALANCE = 100 * ONE_UNIT
PARTICIPANTS = ("alice", "bob", "carol")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_config(**overrides) -> HarbergerConfig:
    """10% a year, 30-day cliff, default 25s margin."""
    params = dict(
        treasury_account=TREASURY,
        min_price=10 ** 15,
        max_price=10 ** 30,
        tax_rate_bps=1000,
        cliff_duration=30 * SECONDS_PER_DAY,
    )
    params.update(overrides)
    return HarbergerConfig(**params)


def make_ledger() -> Ledger:
    ledger = Ledger("test", initial_time=T0, verbose=False)
    ledger.register_unit(cash(CURRENCY, "Ether"))
    return ledger


def cash_balances(ledger: Ledger) -> dict:
    """Every non-system wallet's ETH balance."""
    return {
        w: ledger.get_balance(w, CURRENCY)
        for w in sorted(ledger.list_wallets())
        if w != SYSTEM_WALLET
    }


def verify_cash_conserved(ledger: Ledger) -> bool:
    """Issuance from the system wallet nets the ETH supply to exactly zero."""
    return ledger.verify_double_entry(expected_supplies={CURRENCY: 0})['valid']


