"""
Performance fee accrual with a per-share high-water mark.

Fee Structure:
- The fee is a rate on the per-share value *increase* above the mark,
  restated as a flat value amount across the whole supply
- The mark only rises, and only by the net-of-fee part of the gain:

      price          = net_value * 10^18 / supply
      fee_per_share  = (price - mark) * rate_bps / 10_000
      value_due      = fee_per_share * supply / 10^18
      new mark       = price - fee_per_share

  So a gain from 1.0 to 3.0 at 10% leaves the mark at 2.8, not 3.0.

High Water Mark Logic:
- The mark starts uninitialized; settling before an admin reset is an error
- A zero rate charges nothing and leaves the mark where it is
- With zero supply the price is undefined; the mark is re-seeded to the
  default share price so a later price is not measured against zero
- ``reset_high_water_mark()`` re-seeds the mark at the current share price,
  discarding accrued appreciation tracking
"""

import logging
from typing import Protocol, Tuple

from access_control import AccessControl, require_caller
from errors import InvalidFeeConfig, NotInitialized
from fixed_point import BPS_DENOMINATOR, VALUE_UNIT, mul_div, to_uint256
from transaction import Stateful


class SupplySource(Protocol):
    def total_share_supply(self) -> int:
        ...


class PriceSource(Protocol):
    default_share_price: int

    def get_share_price(self) -> Tuple[int, int]:
        ...


class PerformanceFeeTracker(Stateful):
    """High-water-mark performance fee."""

    STATE_FIELDS = ('high_water_mark', 'initialized', 'rate_bps')

    def __init__(
        self,
        access: AccessControl,
        shares: SupplySource,
        prices: PriceSource,
        rate_bps: int = 0,
        fee_ledger: str = '',
    ):
        self._access = access
        self._shares = shares
        self._prices = prices
        self.fee_ledger = fee_ledger
        self.rate_bps = _validate_rate(rate_bps)
        self.high_water_mark = 0
        self.initialized = False

    def set_fee_ledger(self, fee_ledger: str, *, caller: str) -> None:
        self._access.require_admin(caller, action='bind performance fee tracker')
        self.fee_ledger = fee_ledger

    def set_rate(self, rate_bps: int, *, caller: str) -> None:
        self._access.require_admin(caller, action='set performance fee rate')
        self.rate_bps = _validate_rate(rate_bps)
        logging.info(f"Performance fee rate set to {rate_bps} bps")

    def reset_high_water_mark(self, *, caller: str) -> int:
        """Re-seed the mark at the current share price."""
        self._access.require_admin(caller, action='reset high-water mark')
        price, _ = self._prices.get_share_price()
        self.high_water_mark = price
        self.initialized = True
        logging.info(f"High-water mark reset to {price}")
        return price

    def settle_performance_fee(self, net_value: int, *, caller: str) -> int:
        """
        Settle the performance fee against net_value.

        Args:
            net_value: Net value after this round's management fee
            caller: Must be the bound fee ledger

        Returns:
            Value due to the performance fee recipient
        """
        require_caller(caller, self.fee_ledger, 'settle performance fee')
        if not self.initialized:
            raise NotInitialized("high-water mark has not been set")
        to_uint256(net_value, 'net_value')
        if self.rate_bps == 0:
            return 0

        supply = self._shares.total_share_supply()
        if supply == 0:
            self.high_water_mark = self._prices.default_share_price
            logging.debug("Performance fee: no supply, mark re-seeded to default price")
            return 0

        price = mul_div(net_value, VALUE_UNIT, supply)
        if price <= self.high_water_mark:
            return 0

        fee_per_share = mul_div(price - self.high_water_mark, self.rate_bps, BPS_DENOMINATOR)
        value_due = mul_div(fee_per_share, supply, VALUE_UNIT)
        mark_before = self.high_water_mark
        self.high_water_mark = price - fee_per_share

        logging.debug(
            f"Performance fee: price {price} above mark {mark_before}, "
            f"{value_due} due, mark -> {self.high_water_mark}"
        )
        return value_due


def _validate_rate(rate_bps: int) -> int:
    if rate_bps < 0 or rate_bps >= BPS_DENOMINATOR:
        raise InvalidFeeConfig(f"performance fee rate must be in [0, {BPS_DENOMINATOR}), got {rate_bps}")
    return rate_bps
