"""Tests for balance and linear accrual position trackers."""

import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, PROJECT_ROOT)

from access_control import AccessControl
from errors import (
    AlreadyInitialized,
    AssetAlreadyTracked,
    AssetNotTracked,
    EmptyAccount,
    InvalidItem,
    ItemAlreadyExists,
    ItemIdRetired,
    ItemNotFound,
    NotInitialized,
    RateExpired,
    Unauthorized,
)
from fixed_point import VALUE_UNIT
from position_trackers import BalanceTracker, LinearAccrualTracker, LinearItem, calc_item_value
from token_ledger import TokenLedger
from unit_converter import UnitConverter

LATER = 2_000_000_000


@pytest.fixture
def access():
    return AccessControl('admin')


@pytest.fixture
def tokens():
    return TokenLedger()


@pytest.fixture
def balance_tracker(access, clock, tokens):
    converter = UnitConverter(access, clock)
    converter.set_rate('USDC', VALUE_UNIT, LATER, 6, caller='admin')
    converter.set_rate('WETH', 2500 * VALUE_UNIT, LATER, 18, caller='admin')
    return BalanceTracker(access, converter, tokens)


@pytest.fixture
def accruals(access, clock):
    return LinearAccrualTracker(access, clock)


class TestBalanceTracker:
    """Tests for BalanceTracker."""

    def test_requires_account(self, balance_tracker):
        with pytest.raises(NotInitialized):
            balance_tracker.get_position_value()

    def test_account_set_once(self, balance_tracker):
        balance_tracker.set_account('custody', caller='admin')
        with pytest.raises(AlreadyInitialized):
            balance_tracker.set_account('other', caller='admin')

    def test_empty_account(self, balance_tracker):
        with pytest.raises(EmptyAccount):
            balance_tracker.set_account('', caller='admin')

    def test_sums_converted_balances(self, balance_tracker, tokens):
        balance_tracker.set_account('custody', caller='admin')
        balance_tracker.add_asset('USDC', caller='admin')
        balance_tracker.add_asset('WETH', caller='admin')
        tokens.credit('custody', 'USDC', 500 * 10 ** 6)
        tokens.credit('custody', 'WETH', 2 * 10 ** 18)
        tokens.credit('someone-else', 'USDC', 10 ** 12)

        assert balance_tracker.get_position_value() == 5500 * VALUE_UNIT

    def test_no_assets_is_zero(self, balance_tracker):
        balance_tracker.set_account('custody', caller='admin')
        assert balance_tracker.get_position_value() == 0

    def test_duplicate_and_missing_assets(self, balance_tracker):
        balance_tracker.add_asset('USDC', caller='admin')
        with pytest.raises(AssetAlreadyTracked):
            balance_tracker.add_asset('USDC', caller='admin')
        balance_tracker.remove_asset('USDC', caller='admin')
        with pytest.raises(AssetNotTracked):
            balance_tracker.remove_asset('USDC', caller='admin')
        assert balance_tracker.get_assets() == []

    def test_expired_rate_propagates(self, balance_tracker, tokens, clock):
        balance_tracker.set_account('custody', caller='admin')
        balance_tracker.add_asset('USDC', caller='admin')
        tokens.credit('custody', 'USDC', 10 ** 6)
        clock.set(LATER + 1)
        with pytest.raises(RateExpired):
            balance_tracker.get_position_value()

    def test_non_admin(self, balance_tracker):
        with pytest.raises(Unauthorized):
            balance_tracker.add_asset('USDC', caller='mallory')


class TestCalcItemValue:
    """Tests for the linear vesting formula."""

    def _item(self, total, start, duration, settled=0):
        return LinearItem(id=1, settled_value=settled, total_value=total, start=start, duration=duration)

    def test_midpoint(self):
        item = self._item(total=5000, start=100, duration=20, settled=-1000)
        assert calc_item_value(item, 110) == 1500

    def test_before_start(self):
        item = self._item(total=1000, start=100, duration=20, settled=7)
        assert calc_item_value(item, 50) == 7
        assert calc_item_value(item, 100) == 7

    def test_after_end(self):
        item = self._item(total=1000, start=100, duration=20, settled=7)
        assert calc_item_value(item, 120) == 1007
        assert calc_item_value(item, 10_000) == 1007

    def test_zero_duration_vests_at_start(self):
        item = self._item(total=1000, start=100, duration=0)
        assert calc_item_value(item, 99) == 0
        assert calc_item_value(item, 100) == 1000

    def test_debt_truncates_toward_zero(self):
        item = self._item(total=-7, start=0, duration=2)
        assert calc_item_value(item, 1) == -3


class TestLinearAccrualTracker:
    """Tests for LinearAccrualTracker."""

    def test_position_value_at_midpoint(self, accruals, clock):
        now = clock.now()
        accruals.add_item(1, 5000 * VALUE_UNIT, now - 10, 20, 'loan', settled_value=-1000 * VALUE_UNIT, caller='admin')
        assert accruals.calc_item_value(1) == 1500 * VALUE_UNIT
        assert accruals.get_position_value() == 1500 * VALUE_UNIT

    def test_credits_and_debts_net(self, accruals, clock):
        now = clock.now()
        accruals.add_item(1, 300, now - 100, 0, caller='admin')
        accruals.add_item(2, -100, now - 100, 0, caller='admin')
        assert accruals.get_position_value() == 200

    def test_value_moves_with_clock(self, accruals, clock):
        accruals.add_item(1, 100, clock.now(), 100, caller='admin')
        assert accruals.get_position_value() == 0
        clock.advance(25)
        assert accruals.get_position_value() == 25
        clock.advance(1000)
        assert accruals.get_position_value() == 100

    def test_invalid_items(self, accruals):
        with pytest.raises(InvalidItem):
            accruals.add_item(0, 100, 0, 10, caller='admin')
        with pytest.raises(InvalidItem):
            accruals.add_item(1, 0, 0, 10, caller='admin')
        with pytest.raises(InvalidItem):
            accruals.add_item(1, 100, 0, -1, caller='admin')

    def test_duplicate_id(self, accruals):
        accruals.add_item(1, 100, 0, 10, caller='admin')
        with pytest.raises(ItemAlreadyExists):
            accruals.add_item(1, 200, 0, 10, caller='admin')

    def test_remove_swaps_last_into_slot(self, accruals):
        for item_id in (1, 2, 3):
            accruals.add_item(item_id, 100, 0, 10, caller='admin')
        accruals.remove_item(1, caller='admin')
        assert accruals.get_item_ids() == [3, 2]
        accruals.remove_item(2, caller='admin')
        assert accruals.get_item_ids() == [3]
        with pytest.raises(ItemNotFound):
            accruals.get_item(1)

    def test_removed_id_is_retired(self, accruals):
        accruals.add_item(5, 100, 0, 10, caller='admin')
        accruals.remove_item(5, caller='admin')
        with pytest.raises(ItemIdRetired):
            accruals.add_item(5, 100, 0, 10, caller='admin')

    def test_remove_missing(self, accruals):
        with pytest.raises(ItemNotFound):
            accruals.remove_item(9, caller='admin')

    def test_update_settled_value(self, accruals, clock):
        accruals.add_item(1, 100, clock.now() + 1000, 10, caller='admin')
        accruals.update_settled_value(1, -40, caller='admin')
        assert accruals.get_item(1).settled_value == -40
        assert accruals.get_position_value() == -40

    def test_non_admin(self, accruals):
        with pytest.raises(Unauthorized):
            accruals.add_item(1, 100, 0, 10, caller='mallory')
