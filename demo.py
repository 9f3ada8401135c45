#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Harberger Ownership Step by Step

Walks through the life of a self-assessed asset on the host ledger.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-2:  Setup        - Ledger, currency, registry configuration
  3-4:  Ownership    - Minting at a declared price, continuous tax accrual
  5-7:  Settlement   - Paying tax, forced purchase, re-declaring the price
  8-9:  Safety       - Rollback of a refused payment, re-entrancy refusal
  10:   Default      - The keeper forecloses a neglected asset

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import logging
import sys

from harberger import (
    Ledger, cash,
    HarbergerConfig, HarbergerRegistry, ForeclosureKeeper,
    calculate_tax_due,
    ONE_UNIT, SECONDS_PER_DAY,
    TransferFailed, ReentrancyViolation,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: int = 1_735_725_600          # 2025-01-01 09:00 UTC
    currency: str = "ETH"
    tax_rate_bps: int = 1000                 # 10% per year
    cliff_days: int = 30
    initial_funding: int = 20 * ONE_UNIT
    parcel_price: int = 4 * ONE_UNIT


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def fmt(amount: int) -> str:
    """Base units as whole currency units."""
    return f"{amount / ONE_UNIT:.6f} {CONFIG.currency}"


def show_balances(ledger: Ledger, wallets):
    for wallet in wallets:
        print(f"  {wallet:<18} {fmt(ledger.get_balance(wallet, CONFIG.currency))}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_ledger():
    step_header(1, "The Host Ledger",
        "Cash lives on a double-entry ledger in integer base units.")

    ledger = Ledger("harberger", initial_time=CONFIG.start_time, verbose=False)
    ledger.register_unit(cash(CONFIG.currency, "Ether"))
    print(f"Ledger time: {ledger.current_time}")
    print(f"Units:       {ledger.list_units()}")
    print(f"1 {CONFIG.currency} = {ONE_UNIT} base units")
    return ledger


def step_02_registry(ledger: Ledger):
    step_header(2, "The Registry",
        "Global parameters: treasury, price bounds, tax rate, cliff, margin.")

    config = HarbergerConfig(
        treasury_account="treasury",
        min_price=10 ** 15,
        max_price=10 ** 30,
        tax_rate_bps=CONFIG.tax_rate_bps,
        cliff_duration=CONFIG.cliff_days * SECONDS_PER_DAY,
    )
    registry = HarbergerRegistry.on_ledger(ledger, config, CONFIG.currency)
    for wallet in ("alice", "bob", "mallory"):
        registry.rail.issue(wallet, CONFIG.initial_funding)

    print(f"Tax rate:      {config.tax_rate_bps} bps per year")
    print(f"Cliff:         {config.cliff_duration}s")
    print(f"Margin:        {config.margin_duration}s")
    print(f"Admin:         {config.admin_account}")
    section_header("Funded wallets")
    show_balances(ledger, ("alice", "bob", "mallory"))
    return registry


def step_03_mint(ledger: Ledger, registry: HarbergerRegistry):
    step_header(3, "Minting",
        "Alice registers PARCEL-7 and declares what it is worth.")

    registry.mint("alice", "alice", "PARCEL-7", CONFIG.parcel_price)
    print(f"Holder:          {registry.holder_of('PARCEL-7')}")
    print(f"Declared price:  {fmt(registry.price_of('PARCEL-7'))}")
    print(f"Tax due now:     {fmt(registry.tax_due('PARCEL-7'))}")
    print(f"Foreclosable at: {registry.foreclosure_time('PARCEL-7')}")


def step_04_accrual(ledger: Ledger, registry: HarbergerRegistry):
    step_header(4, "Continuous Accrual",
        "Tax grows every second on the declared price.")

    settled = registry.last_settlement_of('PARCEL-7')
    for days in (1, 7, 14):
        owed = calculate_tax_due(
            registry.price_of('PARCEL-7'), registry.config.tax_rate_bps,
            settled, settled + days * SECONDS_PER_DAY,
        )
        print(f"  after {days:>2} days: {fmt(owed)}")

    ledger.advance_by(7 * SECONDS_PER_DAY)
    print(f"\nA week later, Alice owes {fmt(registry.tax_due('PARCEL-7'))}")


def step_05_pay_tax(ledger: Ledger, registry: HarbergerRegistry):
    step_header(5, "Paying Tax",
        "Overpayment is refunded; the settlement clock resets.")

    registry.pay_tax("alice", "PARCEL-7", ONE_UNIT)
    print(f"Tax due after payment: {fmt(registry.tax_due('PARCEL-7'))}")
    show_balances(ledger, ("alice", "treasury"))


def step_06_purchase(ledger: Ledger, registry: HarbergerRegistry):
    step_header(6, "Forced Purchase",
        "Anyone may buy at the declared price plus tax accrued so far.")

    ledger.advance_by(3 * SECONDS_PER_DAY)
    owed = registry.tax_due("PARCEL-7")
    print(f"Price {fmt(registry.price_of('PARCEL-7'))} + tax {fmt(owed)}")
    registry.purchase("bob", "PARCEL-7", 5 * ONE_UNIT)
    print(f"New holder: {registry.holder_of('PARCEL-7')}")
    show_balances(ledger, ("alice", "bob", "treasury"))


def step_07_modify(ledger: Ledger, registry: HarbergerRegistry):
    step_header(7, "Re-declaring the Price",
        "Bob values the parcel higher, and will pay more tax for it.")

    ledger.advance_by(60)
    registry.modify("bob", "PARCEL-7", 8 * ONE_UNIT, registry.tax_due("PARCEL-7"))
    print(f"Declared price: {fmt(registry.price_of('PARCEL-7'))}")


def step_08_rollback(ledger: Ledger, registry: HarbergerRegistry):
    step_header(8, "All or Nothing",
        "If any payment is refused, every leg already applied is undone.")

    ledger.advance_by(SECONDS_PER_DAY)
    registry.rail.add_recipient_hook("bob", lambda source, dest, amount: False)
    before = ledger.get_balance("mallory", CONFIG.currency)
    try:
        registry.purchase("mallory", "PARCEL-7", 10 * ONE_UNIT)
    except TransferFailed as exc:
        print(f"Purchase aborted: {exc}")
    registry.rail.remove_recipient_hook("bob")
    print(f"Holder still:      {registry.holder_of('PARCEL-7')}")
    print(f"Mallory unchanged: {ledger.get_balance('mallory', CONFIG.currency) == before}")


def step_09_reentrancy(ledger: Ledger, registry: HarbergerRegistry):
    step_header(9, "Re-entrancy",
        "A recipient that calls back into the registry mid-payment is refused.")

    def sneaky(source, dest, amount):
        registry.purchase("mallory", "PARCEL-7", 10 * ONE_UNIT)
        return True

    registry.rail.add_recipient_hook("bob", sneaky)
    try:
        registry.purchase("alice", "PARCEL-7", 10 * ONE_UNIT)
    except ReentrancyViolation as exc:
        print(f"Refused: {exc}")
    registry.rail.remove_recipient_hook("bob")
    print(f"Holder still: {registry.holder_of('PARCEL-7')}")


def step_10_foreclosure(ledger: Ledger, registry: HarbergerRegistry):
    step_header(10, "Foreclosure",
        "Nobody pays for longer than the cliff; a keeper repossesses.")

    keeper = ForeclosureKeeper(registry, caller="keeper")
    keeper.verbose = True
    start = ledger.current_time
    keeper.run(ledger, [start + d * SECONDS_PER_DAY for d in range(1, CONFIG.cliff_days + 2)])

    print(f"Defaulted: {registry.is_defaulted('PARCEL-7')}")
    print(f"Holder:    {registry.holder_of('PARCEL-7')}")
    print(f"Tax due:   {fmt(registry.tax_due('PARCEL-7'))}")
    section_header("Event history")
    for event in registry.events.for_asset("PARCEL-7"):
        print(f"  {type(event).__name__}")
    section_header("Conservation")
    print(f"  ETH supply nets to zero: "
          f"{ledger.verify_double_entry({CONFIG.currency: 0})['valid']}")
    print(f"  Tax collected: {fmt(registry.total_tax_collected())}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the complete tutorial."""
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    print("=" * 70)
    print("       HARBERGER LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    ledger = step_01_ledger()
    wait_for_enter()
    registry = step_02_registry(ledger)
    wait_for_enter()
    for step in (step_03_mint, step_04_accrual, step_05_pay_tax, step_06_purchase,
                 step_07_modify, step_08_rollback, step_09_reentrancy, step_10_foreclosure):
        step(ledger, registry)
        wait_for_enter()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)


if __name__ == "__main__":
    main()
