"""
test_registry.py - Unit tests for Harberger settlement operations

Tests:
- mint validation and effects
- modify: error order, tax on the old price, retained overpayment
- purchase: error order, payouts, refund, custody, margin boundary
- pay_tax: refunds, no margin guard
- Defaulted assets refuse every settlement operation
- Queries and admin setters
"""

import pytest

from harberger import (
    HarbergerRegistry, LedgerOwnership, LedgerValueRail, ForeclosureOutcome,
    AssetMinted, PriceModified, AssetPurchased, TaxPaid, AssetDefaultedEvent,
    calculate_tax_due,
    ONE_UNIT, SECONDS_PER_DAY, SECONDS_PER_YEAR, cash,
    InvalidPrice, InvalidRecipient, InvalidAssetId, DuplicateAsset, AssetNotFound,
    InvalidConfiguration, Unauthorized, MarginNotMet, InsufficientPayment,
    AssetDefaulted, TransferFailed, ClockInvariantViolation,
)

from tests.helpers import (
    T0, CURRENCY, TREASURY, ESCROW, ASSET, STARTING_BALANCE,
    make_config, cash_balances, verify_cash_conserved,
)


DAY = SECONDS_PER_DAY
CLIFF = 30 * DAY
MARGIN = 25


def owed_after(seconds, price=ONE_UNIT, rate=1000):
    return calculate_tax_due(price, rate, T0, T0 + seconds)


# ============================================================================
# CONSTRUCTION
# ============================================================================

class TestConstruction:

    def test_escrow_must_differ_from_treasury(self, ledger, config):
        with pytest.raises(InvalidConfiguration):
            HarbergerRegistry.on_ledger(ledger, config, CURRENCY, escrow_account=TREASURY)

    def test_on_ledger_registers_accounts(self, registry, ledger):
        assert ledger.is_registered(TREASURY)
        assert ledger.is_registered(ESCROW)
        assert registry.escrow_account == ESCROW


# ============================================================================
# MINT
# ============================================================================

class TestMint:

    def test_mint(self, registry, ledger):
        record = registry.mint("carol", "alice", ASSET, ONE_UNIT)
        assert record.price == ONE_UNIT
        assert record.last_settlement == T0
        assert registry.holder_of(ASSET) == "alice"
        assert registry.tax_due(ASSET) == 0
        [event] = registry.events.of_type(AssetMinted)
        assert (event.minter, event.owner, event.price) == ("carol", "alice", ONE_UNIT)

    def test_mint_moves_no_cash(self, registry, ledger):
        before = cash_balances(ledger)
        registry.mint("alice", "alice", ASSET, ONE_UNIT)
        assert cash_balances(ledger) == before

    @pytest.mark.parametrize("to", ["", "   ", None])
    def test_empty_recipient(self, registry, to):
        with pytest.raises(InvalidRecipient):
            registry.mint("alice", to, ASSET, ONE_UNIT)

    @pytest.mark.parametrize("price", [0, 10 ** 15 - 1, 10 ** 30 + 1, 1.5, True])
    def test_invalid_price(self, registry, price):
        with pytest.raises(InvalidPrice):
            registry.mint("alice", "alice", ASSET, price)
        assert registry.asset_ids() == []

    def test_price_bounds_inclusive(self, registry):
        registry.mint("alice", "alice", "LOW", 10 ** 15)
        registry.mint("alice", "alice", "HIGH", 10 ** 30)
        assert registry.asset_ids() == ["HIGH", "LOW"]

    def test_duplicate(self, minted):
        with pytest.raises(DuplicateAsset):
            minted.mint("bob", "bob", ASSET, ONE_UNIT)
        assert minted.holder_of(ASSET) == "alice"

    def test_id_colliding_with_ledger_unit(self, registry):
        with pytest.raises(DuplicateAsset):
            registry.mint("alice", "alice", CURRENCY, ONE_UNIT)

    def test_id_colliding_with_unheld_ledger_unit(self, registry, ledger):
        ledger.register_unit(cash("DAI", "Dai"))
        with pytest.raises(DuplicateAsset):
            registry.mint("alice", "alice", "DAI", ONE_UNIT)
        assert registry.asset_ids() == []
        assert ledger.total_supply("DAI") == 0

    @pytest.mark.parametrize("asset_id", ["", "   ", None])
    def test_empty_asset_id(self, registry, asset_id):
        with pytest.raises(InvalidAssetId):
            registry.mint("alice", "alice", asset_id, ONE_UNIT)
        assert registry.asset_ids() == []
        assert registry.events.of_type(AssetMinted) == []


# ============================================================================
# MODIFY
# ============================================================================

class TestModify:

    def test_tax_charged_on_old_price(self, minted, ledger):
        ledger.advance_by(DAY)
        owed = owed_after(DAY)
        assert owed > 0

        record = minted.modify("alice", ASSET, 3 * ONE_UNIT, owed)

        assert record.price == 3 * ONE_UNIT
        assert record.last_settlement == T0 + DAY
        assert ledger.get_balance(TREASURY, CURRENCY) == owed
        assert ledger.get_balance("alice", CURRENCY) == STARTING_BALANCE - owed
        assert minted.tax_due(ASSET) == 0
        [event] = minted.events.of_type(PriceModified)
        assert (event.old_price, event.new_price, event.tax_paid) == (ONE_UNIT, 3 * ONE_UNIT, owed)

    def test_overpayment_retained_in_escrow(self, minted, ledger):
        ledger.advance_by(DAY)
        owed = owed_after(DAY)
        minted.modify("alice", ASSET, 2 * ONE_UNIT, owed + 500)
        assert ledger.get_balance(ESCROW, CURRENCY) == 500
        assert ledger.get_balance("alice", CURRENCY) == STARTING_BALANCE - owed - 500
        assert minted.retained_excess() == 500
        assert minted.total_tax_collected() == owed

    def test_unknown_asset(self, registry):
        with pytest.raises(AssetNotFound):
            registry.modify("alice", "nope", ONE_UNIT, 0)

    def test_non_holder_checked_before_price(self, minted, ledger):
        ledger.advance_by(DAY)
        with pytest.raises(Unauthorized):
            minted.modify("bob", ASSET, 0, 0)

    def test_price_checked_before_margin(self, minted):
        with pytest.raises(InvalidPrice):
            minted.modify("alice", ASSET, 0, 0)

    def test_margin_checked_before_payment(self, minted, ledger):
        ledger.advance_by(MARGIN - 1)
        with pytest.raises(MarginNotMet):
            minted.modify("alice", ASSET, 2 * ONE_UNIT, 0)

    def test_insufficient_payment(self, minted, ledger):
        ledger.advance_by(DAY)
        before = cash_balances(ledger)
        with pytest.raises(InsufficientPayment):
            minted.modify("alice", ASSET, 2 * ONE_UNIT, owed_after(DAY) - 1)
        assert cash_balances(ledger) == before
        assert minted.price_of(ASSET) == ONE_UNIT

    def test_same_price_allowed(self, minted, ledger):
        ledger.advance_by(MARGIN)
        owed = owed_after(MARGIN)
        assert minted.modify("alice", ASSET, ONE_UNIT, owed).last_settlement == T0 + MARGIN


# ============================================================================
# PURCHASE
# ============================================================================

class TestPurchase:

    def test_payouts_and_refund(self, minted, ledger):
        ledger.advance_by(DAY)
        owed = owed_after(DAY)
        tendered = 2 * ONE_UNIT

        record = minted.purchase("bob", ASSET, tendered)

        assert minted.holder_of(ASSET) == "bob"
        assert record.price == ONE_UNIT
        assert record.last_settlement == T0 + DAY
        assert minted.tax_due(ASSET) == 0
        assert ledger.get_balance("bob", CURRENCY) == STARTING_BALANCE - ONE_UNIT - owed
        assert ledger.get_balance("alice", CURRENCY) == STARTING_BALANCE + ONE_UNIT
        assert ledger.get_balance(TREASURY, CURRENCY) == owed
        assert ledger.get_balance(ESCROW, CURRENCY) == 0
        [event] = minted.events.of_type(AssetPurchased)
        assert (event.seller, event.buyer, event.tax_paid) == ("alice", "bob", owed)
        assert event.refund == tendered - ONE_UNIT - owed
        assert verify_cash_conserved(ledger)

    def test_exact_tender(self, minted, ledger):
        ledger.advance_by(DAY)
        total = ONE_UNIT + owed_after(DAY)
        minted.purchase("bob", ASSET, total)
        assert minted.events.of_type(AssetPurchased)[0].refund == 0

    def test_effect_order(self, minted, ledger):
        ledger.advance_by(DAY)
        minted.purchase("bob", ASSET, 2 * ONE_UNIT)
        entries = ledger.transaction_log[-5:]
        legs = [(tx.moves[0].unit_symbol, tx.moves[0].source, tx.moves[0].dest) for tx in entries]
        assert legs == [
            (CURRENCY, "bob", ESCROW),
            (ASSET, "alice", "bob"),
            (CURRENCY, ESCROW, "alice"),
            (CURRENCY, ESCROW, TREASURY),
            (CURRENCY, ESCROW, "bob"),
        ]

    def test_unknown_asset(self, registry):
        with pytest.raises(AssetNotFound):
            registry.purchase("bob", "nope", ONE_UNIT)

    def test_holder_cannot_buy_own_asset(self, minted, ledger):
        ledger.advance_by(DAY)
        with pytest.raises(InvalidRecipient):
            minted.purchase("alice", ASSET, 2 * ONE_UNIT)

    def test_empty_buyer(self, minted, ledger):
        ledger.advance_by(DAY)
        with pytest.raises(InvalidRecipient):
            minted.purchase("", ASSET, 2 * ONE_UNIT)

    def test_insufficient_tender(self, minted, ledger):
        ledger.advance_by(DAY)
        before = cash_balances(ledger)
        with pytest.raises(InsufficientPayment):
            minted.purchase("bob", ASSET, ONE_UNIT)
        assert cash_balances(ledger) == before
        assert minted.holder_of(ASSET) == "alice"

    def test_buyer_without_funds(self, minted, ledger):
        ledger.advance_by(DAY)
        minted.rail.issue("dave", ONE_UNIT)
        before = cash_balances(ledger)
        with pytest.raises(TransferFailed):
            minted.purchase("dave", ASSET, 2 * ONE_UNIT)
        assert cash_balances(ledger) == before
        assert minted.holder_of(ASSET) == "alice"
        assert minted.last_settlement_of(ASSET) == T0

    def test_margin_boundary(self, minted, ledger):
        ledger.advance_time(T0 + MARGIN - 1)
        with pytest.raises(MarginNotMet):
            minted.purchase("bob", ASSET, 2 * ONE_UNIT)
        ledger.advance_time(T0 + MARGIN)
        minted.purchase("bob", ASSET, 2 * ONE_UNIT)
        assert minted.holder_of(ASSET) == "bob"

    def test_margin_applies_after_each_settlement(self, minted, ledger):
        ledger.advance_by(DAY)
        minted.purchase("bob", ASSET, 2 * ONE_UNIT)
        ledger.advance_by(MARGIN - 1)
        with pytest.raises(MarginNotMet):
            minted.purchase("carol", ASSET, 2 * ONE_UNIT)

    def test_resale(self, minted, ledger):
        ledger.advance_by(DAY)
        minted.purchase("bob", ASSET, 2 * ONE_UNIT)
        ledger.advance_by(DAY)
        minted.purchase("carol", ASSET, 2 * ONE_UNIT)
        assert minted.holder_of(ASSET) == "carol"
        # bob paid price + one day of tax, then was paid the same price by carol
        assert ledger.get_balance("bob", CURRENCY) == STARTING_BALANCE - owed_after(DAY)


# ============================================================================
# PAY TAX
# ============================================================================

class TestPayTax:

    def test_refunds_excess(self, minted, ledger):
        ledger.advance_by(7 * DAY)
        owed = owed_after(7 * DAY)
        record = minted.pay_tax("alice", ASSET, owed + ONE_UNIT)
        assert record.last_settlement == T0 + 7 * DAY
        assert record.price == ONE_UNIT
        assert ledger.get_balance("alice", CURRENCY) == STARTING_BALANCE - owed
        assert ledger.get_balance(TREASURY, CURRENCY) == owed
        assert ledger.get_balance(ESCROW, CURRENCY) == 0
        [event] = minted.events.of_type(TaxPaid)
        assert (event.amount, event.refund) == (owed, ONE_UNIT)

    def test_no_margin_guard(self, minted):
        record = minted.pay_tax("alice", ASSET, 0)
        assert record.last_settlement == T0

    def test_non_holder(self, minted, ledger):
        ledger.advance_by(DAY)
        with pytest.raises(Unauthorized):
            minted.pay_tax("bob", ASSET, ONE_UNIT)

    def test_insufficient(self, minted, ledger):
        ledger.advance_by(DAY)
        with pytest.raises(InsufficientPayment):
            minted.pay_tax("alice", ASSET, owed_after(DAY) - 1)
        assert minted.last_settlement_of(ASSET) == T0

    def test_postpones_foreclosure(self, minted, ledger):
        ledger.advance_by(CLIFF)
        minted.pay_tax("alice", ASSET, minted.tax_due(ASSET))
        assert minted.foreclosure_time(ASSET) == T0 + 2 * CLIFF + MARGIN
        ledger.advance_by(MARGIN)
        assert minted.evaluate_and_foreclose_if_due("keeper", ASSET) == ForeclosureOutcome.NOT_DUE


# ============================================================================
# DEFAULT
# ============================================================================

class TestDefaultedAsset:

    @pytest.fixture
    def defaulted(self, minted, ledger):
        ledger.advance_time(T0 + CLIFF + MARGIN)
        assert minted.evaluate_and_foreclose_if_due("keeper", ASSET) == ForeclosureOutcome.FORECLOSED
        return minted

    def test_state(self, defaulted):
        assert defaulted.is_defaulted(ASSET)
        assert defaulted.holder_of(ASSET) == TREASURY
        assert defaulted.price_of(ASSET) == ONE_UNIT
        assert defaulted.tax_due(ASSET) == 0
        [event] = defaulted.events.of_type(AssetDefaultedEvent)
        assert event.former_holder == "alice"

    def test_purchase_refused_regardless_of_tender(self, defaulted):
        with pytest.raises(AssetDefaulted):
            defaulted.purchase("bob", ASSET, 10 ** 6 * ONE_UNIT)

    def test_modify_refused_even_for_treasury(self, defaulted):
        with pytest.raises(AssetDefaulted):
            defaulted.modify(TREASURY, ASSET, 2 * ONE_UNIT, 0)

    def test_modify_refused_for_former_holder(self, defaulted):
        with pytest.raises(AssetDefaulted):
            defaulted.modify("alice", ASSET, 2 * ONE_UNIT, ONE_UNIT)

    def test_pay_tax_refused(self, defaulted):
        with pytest.raises(AssetDefaulted):
            defaulted.pay_tax("alice", ASSET, ONE_UNIT)

    def test_evaluation_is_idempotent(self, defaulted, ledger):
        ledger.advance_by(DAY)
        assert defaulted.evaluate_and_foreclose_if_due("bob", ASSET) == ForeclosureOutcome.FORECLOSED
        assert len(defaulted.events.of_type(AssetDefaultedEvent)) == 1

    def test_id_stays_reserved(self, defaulted):
        with pytest.raises(DuplicateAsset):
            defaulted.mint("bob", "bob", ASSET, ONE_UNIT)

    def test_lapsed_asset_usable_until_evaluated(self, minted, ledger):
        ledger.advance_time(T0 + CLIFF + MARGIN + DAY)
        minted.purchase("bob", ASSET, 2 * ONE_UNIT)
        assert not minted.is_defaulted(ASSET)
        assert minted.evaluate_and_foreclose_if_due("keeper", ASSET) == ForeclosureOutcome.NOT_DUE


# ============================================================================
# QUERIES
# ============================================================================

class TestQueries:

    def test_unknown_asset(self, registry):
        assert registry.tax_due("nope") == 0
        assert registry.holder_of("nope") is None
        for query in (registry.price_of, registry.last_settlement_of,
                      registry.is_defaulted, registry.record_of, registry.foreclosure_time):
            with pytest.raises(AssetNotFound):
                query("nope")

    def test_evaluate_unknown(self, registry):
        with pytest.raises(AssetNotFound):
            registry.evaluate_and_foreclose_if_due("keeper", "nope")

    def test_queries_never_foreclose(self, minted, ledger):
        ledger.advance_by(10 * CLIFF)
        minted.tax_due(ASSET)
        minted.is_defaulted(ASSET)
        assert minted.holder_of(ASSET) == "alice"
        assert not minted.record_of(ASSET).defaulted

    def test_tax_due_grows(self, minted, ledger):
        ledger.advance_by(SECONDS_PER_YEAR)
        assert minted.tax_due(ASSET) == ONE_UNIT // 10

    def test_clock_regression(self, ledger, config):
        now = [T0]
        registry = HarbergerRegistry(
            config, LedgerOwnership(ledger), LedgerValueRail(ledger, CURRENCY), lambda: now[0],
        )
        registry.mint("alice", "alice", ASSET, ONE_UNIT)
        now[0] = T0 - 1
        with pytest.raises(ClockInvariantViolation):
            registry.tax_due(ASSET)
        with pytest.raises(ClockInvariantViolation):
            registry.evaluate_and_foreclose_if_due("keeper", ASSET)

    def test_non_int_clock(self, ledger, config):
        registry = HarbergerRegistry(
            config, LedgerOwnership(ledger), LedgerValueRail(ledger, CURRENCY), lambda: 1.5,
        )
        with pytest.raises(ClockInvariantViolation):
            registry.mint("alice", "alice", ASSET, ONE_UNIT)


# ============================================================================
# ADMIN
# ============================================================================

class TestAdmin:

    def test_set_tax_rate(self, minted, ledger):
        minted.set_tax_rate(TREASURY, 2000)
        ledger.advance_by(SECONDS_PER_YEAR)
        assert minted.config.tax_rate_bps == 2000
        assert minted.tax_due(ASSET) == ONE_UNIT // 5

    def test_set_cliff_duration_moves_foreclosure_time(self, minted):
        minted.set_cliff_duration(TREASURY, DAY)
        assert minted.foreclosure_time(ASSET) == T0 + DAY + MARGIN

    def test_new_cliff_used_by_evaluator(self, minted, ledger):
        minted.set_cliff_duration(TREASURY, DAY)
        ledger.advance_by(DAY + MARGIN)
        assert minted.evaluate_and_foreclose_if_due("keeper", ASSET) == ForeclosureOutcome.FORECLOSED

    def test_non_admin_refused(self, minted):
        with pytest.raises(Unauthorized):
            minted.set_tax_rate("alice", 0)
        with pytest.raises(Unauthorized):
            minted.set_cliff_duration("alice", DAY)
        assert minted.config.tax_rate_bps == 1000

    def test_invalid_values_refused(self, minted):
        with pytest.raises(InvalidConfiguration):
            minted.set_tax_rate(TREASURY, 10_001)
        with pytest.raises(InvalidConfiguration):
            minted.set_cliff_duration(TREASURY, 0)
        assert minted.config == make_config()

    def test_separate_admin(self, ledger):
        registry = HarbergerRegistry.on_ledger(ledger, make_config(admin_account="ops"), CURRENCY)
        with pytest.raises(Unauthorized):
            registry.set_tax_rate(TREASURY, 0)
        registry.set_tax_rate("ops", 0)
        assert registry.config.tax_rate_bps == 0
