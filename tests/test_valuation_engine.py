"""Tests for the valuation engine."""

import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, PROJECT_ROOT)

from access_control import VALUATION_MANAGER
from errors import (
    FeesExceedValue,
    NegativeTotal,
    NotInitialized,
    RateExpired,
    TrackerAlreadyRegistered,
    TrackerNotRegistered,
    Unauthorized,
)
from fixed_point import VALUE_UNIT
from position_trackers import PositionTracker
from valuation_engine import DEFAULT_SHARE_PRICE


class FixedTracker(PositionTracker):
    def __init__(self, value, name='fixed'):
        self.value = value
        self.name = name

    def get_position_value(self):
        return self.value


class TestShareValue:
    """Publishing (total - owed) / supply."""

    def test_zero_supply_publishes_zero(self, vault, clock):
        assert vault.valuation.update_value(1000 * VALUE_UNIT, caller='admin') == 0
        assert vault.valuation.get_share_value() == (0, clock.now())

    def test_defaults_before_first_update(self, vault):
        assert vault.valuation.get_share_value() == (0, 0)
        assert vault.valuation.get_share_price() == (DEFAULT_SHARE_PRICE, 0)

    def test_share_value(self, vault, clock):
        vault.shares.mint('alice', 4000 * VALUE_UNIT, caller='admin')
        clock.advance(60)
        assert vault.valuation.update_value(5000 * VALUE_UNIT, caller='admin') == 5 * VALUE_UNIT // 4
        assert vault.valuation.get_share_value() == (5 * VALUE_UNIT // 4, clock.now())
        assert vault.valuation.get_share_price()[0] == 5 * VALUE_UNIT // 4

    def test_trackers_and_untracked_are_summed(self, vault):
        vault.valuation.add_tracker(FixedTracker(700, 'a'), caller='admin')
        vault.valuation.add_tracker(FixedTracker(-200, 'b'), caller='admin')
        assert vault.valuation.get_total_positions_value(100) == 600

    def test_linear_accrual_midpoint(self, vault, clock):
        now = clock.now()
        vault.accrual_tracker.add_item(
            1, 5000 * VALUE_UNIT, now - 10, 20, settled_value=-1000 * VALUE_UNIT, caller='admin'
        )
        vault.valuation.add_tracker(vault.accrual_tracker, caller='admin')
        vault.shares.mint('alice', 1000 * VALUE_UNIT, caller='admin')
        assert vault.valuation.update_value(0, caller='admin') == 3 * VALUE_UNIT // 2

    def test_owed_fees_excluded(self, vault):
        vault.fee_ledger.set_entrance_fee(1000, 'treasury', caller='admin')
        vault.shares.mint('alice', 1000 * VALUE_UNIT, caller='admin')
        # 100 owed, 900 shares
        assert vault.valuation.update_value(1000 * VALUE_UNIT, caller='admin') == VALUE_UNIT


class TestFailures:
    """Every failure leaves the engine and the fee ledger untouched."""

    def test_negative_total(self, vault):
        vault.valuation.add_tracker(FixedTracker(-5), caller='admin')
        with pytest.raises(NegativeTotal):
            vault.valuation.update_value(4, caller='admin')
        assert vault.valuation.history == []

    def test_negative_untracked_allowed_if_total_positive(self, vault):
        vault.valuation.add_tracker(FixedTracker(10), caller='admin')
        vault.valuation.update_value(-4, caller='admin')
        assert vault.valuation.history[-1]['total_value'] == 6

    def test_fees_exceed_value(self, vault):
        vault.fee_ledger.set_entrance_fee(500, 'treasury', caller='admin')
        vault.shares.mint('alice', 10_000 * VALUE_UNIT, caller='admin')
        with pytest.raises(FeesExceedValue):
            vault.valuation.update_value(100 * VALUE_UNIT, caller='admin')
        assert vault.valuation.get_share_value() == (0, 0)
        assert vault.fee_ledger.total_owed == 500 * VALUE_UNIT

    def test_partial_fee_settlement_rolled_back(self, vault, clock):
        """Management fee settles, then the performance fee fails: nothing sticks."""
        vault.management_fee.set_rate(200, caller='admin')
        vault.management_fee.reset_last_settled(caller='admin')
        vault.fee_ledger.set_management_fee(vault.management_fee, 'manager', caller='admin')
        vault.performance_fee.set_rate(2000, caller='admin')
        vault.fee_ledger.set_performance_fee(vault.performance_fee, 'manager', caller='admin')
        vault.shares.mint('alice', 1000 * VALUE_UNIT, caller='admin')
        seeded = vault.management_fee.last_settled
        clock.advance(86_400)

        with pytest.raises(NotInitialized):
            vault.valuation.update_value(1000 * VALUE_UNIT, caller='admin')

        assert vault.management_fee.last_settled == seeded
        assert vault.fee_ledger.total_owed == 0
        assert vault.fee_ledger.history == []
        assert vault.valuation.history == []

    def test_failed_update_keeps_earlier_history(self, vault, clock):
        vault.fee_ledger.set_entrance_fee(100, 'treasury', caller='admin')
        vault.shares.mint('alice', 1000 * VALUE_UNIT, caller='admin')
        vault.valuation.update_value(1000 * VALUE_UNIT, caller='admin')
        fee_events = list(vault.fee_ledger.history)
        valuations = list(vault.valuation.history)

        # Management fee is credited and recorded, then the uninitialized
        # performance fee aborts the update.
        vault.management_fee.set_rate(200, caller='admin')
        vault.management_fee.reset_last_settled(caller='admin')
        vault.fee_ledger.set_management_fee(vault.management_fee, 'manager', caller='admin')
        vault.performance_fee.set_rate(2000, caller='admin')
        vault.fee_ledger.set_performance_fee(vault.performance_fee, 'manager', caller='admin')
        clock.advance(86_400)
        with pytest.raises(NotInitialized):
            vault.valuation.update_value(1000 * VALUE_UNIT, caller='admin')

        assert vault.fee_ledger.history == fee_events
        assert vault.valuation.history == valuations
        assert vault.fee_ledger.history[0] is fee_events[0]

    def test_tracker_error_propagates(self, vault, clock):
        vault.converter.set_rate('USDC', VALUE_UNIT, clock.now(), 6, caller='admin')
        vault.balance_tracker.set_account(vault.custody, caller='admin')
        vault.balance_tracker.add_asset('USDC', caller='admin')
        vault.valuation.add_tracker(vault.balance_tracker, caller='admin')
        clock.advance(1)
        with pytest.raises(RateExpired):
            vault.valuation.update_value(0, caller='admin')

    def test_fees_settle_with_zero_supply(self, vault, clock):
        vault.management_fee.set_rate(1000, caller='admin')
        vault.management_fee.reset_last_settled(caller='admin')
        vault.fee_ledger.set_management_fee(vault.management_fee, 'manager', caller='admin')
        clock.advance(3600)

        assert vault.valuation.update_value(1000 * VALUE_UNIT, caller='admin') == 0
        assert vault.management_fee.last_settled == clock.now()
        assert vault.fee_ledger.owed_to('manager') > 0


class TestAccess:
    """Role checks and tracker registration."""

    def test_unauthorized_update(self, vault):
        with pytest.raises(Unauthorized):
            vault.valuation.update_value(0, caller='mallory')

    def test_valuation_manager_may_update(self, vault):
        vault.access.grant_role(VALUATION_MANAGER, 'operator', caller='admin')
        assert vault.valuation.update_value(0, caller='operator') == 0

    def test_duplicate_tracker(self, vault):
        tracker = FixedTracker(1)
        vault.valuation.add_tracker(tracker, caller='admin')
        with pytest.raises(TrackerAlreadyRegistered):
            vault.valuation.add_tracker(tracker, caller='admin')

    def test_remove_tracker(self, vault):
        tracker = FixedTracker(1)
        vault.valuation.add_tracker(tracker, caller='admin')
        vault.valuation.remove_tracker(tracker, caller='admin')
        assert vault.valuation.get_trackers() == []
        with pytest.raises(TrackerNotRegistered):
            vault.valuation.remove_tracker(tracker, caller='admin')


class TestHistory:

    def test_history_df(self, vault, clock):
        vault.valuation.update_value(10, caller='admin')
        clock.advance(1)
        vault.valuation.update_value(20, caller='admin')
        df = vault.valuation.get_history_df()
        assert len(df) == 2
        assert list(df['untracked_value']) == [10, 20]
        assert vault.valuation.get_summary()['updates'] == 2
