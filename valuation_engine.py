"""
Valuation engine: publishes the net value of one share.

On every ``update_value`` call:
1. Sum the signed values reported by every registered position tracker
2. Add the externally reported untracked value
3. Settle dynamic fees on the fee ledger (if one is configured)
4. Publish (total - fees owed) / supply, or zero when there is no supply

The whole sequence is atomic: if any step fails, the fee ledger, the fee
trackers and the published value are left exactly as they were.
"""

import logging
from typing import Dict, List, Protocol, Tuple

import pandas as pd

from access_control import ADMIN, VALUATION_MANAGER, AccessControl
from errors import (
    FeesExceedValue,
    NegativeTotal,
    TrackerAlreadyRegistered,
    TrackerNotRegistered,
    ValuationError,
)
from fixed_point import VALUE_UNIT, mul_div, to_int256, to_uint256
from position_trackers import PositionTracker
from transaction import Stateful, atomic


DEFAULT_SHARE_PRICE = VALUE_UNIT


class SupplySource(Protocol):
    def total_share_supply(self) -> int:
        ...


class ValuationEngine(Stateful):
    """Aggregates positions, settles dynamic fees, publishes share value."""

    STATE_FIELDS = ('last_share_value', 'last_updated')
    APPEND_ONLY_FIELDS = ('history',)

    default_share_price = DEFAULT_SHARE_PRICE

    def __init__(self, access: AccessControl, clock, shares: SupplySource, address: str = 'valuation-engine'):
        self._access = access
        self._clock = clock
        self._shares = shares
        self.address = address
        self.fee_ledger = None
        self._trackers: List[PositionTracker] = []

        self.last_share_value = 0
        self.last_updated = 0
        self.history: List[Dict] = []

    # ------------------------------------------------------------------
    # Configuration (admin)
    # ------------------------------------------------------------------

    def set_fee_ledger(self, fee_ledger, *, caller: str) -> None:
        self._access.require_admin(caller, action='set fee ledger')
        self.fee_ledger = fee_ledger

    def add_tracker(self, tracker: PositionTracker, *, caller: str) -> None:
        self._access.require_admin(caller, action='add position tracker')
        if any(t is tracker for t in self._trackers):
            raise TrackerAlreadyRegistered(f"{tracker.name} is already registered")
        self._trackers.append(tracker)
        logging.info(f"Registered position tracker {tracker.name}")

    def remove_tracker(self, tracker: PositionTracker, *, caller: str) -> None:
        self._access.require_admin(caller, action='remove position tracker')
        for i, t in enumerate(self._trackers):
            if t is tracker:
                del self._trackers[i]
                logging.info(f"Removed position tracker {tracker.name}")
                return
        raise TrackerNotRegistered(f"{tracker.name} is not registered")

    def get_trackers(self) -> List[PositionTracker]:
        return list(self._trackers)

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def get_total_positions_value(self, untracked_value: int = 0) -> int:
        """Signed sum of all tracker values plus untracked_value."""
        total = untracked_value
        for tracker in self._trackers:
            total += tracker.get_position_value()
        return total

    def update_value(self, untracked_value: int, *, caller: str) -> int:
        """
        Recompute and publish the net share value.

        Args:
            untracked_value: Signed value of positions not covered by trackers
            caller: Must hold the valuation manager or admin role

        Returns:
            The published net share value (18 decimals)

        Raises:
            NegativeTotal: Positions plus untracked value is below zero
            FeesExceedValue: Fees owed after settlement exceed the total
        """
        self._access.require_role(caller, VALUATION_MANAGER, ADMIN, action='update value')
        to_int256(untracked_value, 'untracked_value')

        try:
            total = self.get_total_positions_value(untracked_value)
            if total < 0:
                raise NegativeTotal(total)
            to_uint256(total, 'total value')

            ledger = self.fee_ledger
            participants = [self]
            if ledger is not None:
                participants += [ledger, ledger.management_tracker, ledger.performance_tracker]

            with atomic(*participants):
                total_owed = 0
                management_due = performance_due = 0
                if ledger is not None:
                    management_due, performance_due = ledger.settle_dynamic_fees(total, caller=self.address)
                    total_owed = ledger.total_owed
                    if total_owed > total:
                        raise FeesExceedValue(total_owed, total)

                supply = self._shares.total_share_supply()
                if supply == 0:
                    share_value = 0
                else:
                    share_value = mul_div(total - total_owed, VALUE_UNIT, supply)

                now = self._clock.now()
                self.last_share_value = share_value
                self.last_updated = now
                self.history.append({
                    'timestamp': now,
                    'untracked_value': untracked_value,
                    'total_value': total,
                    'management_fee': management_due,
                    'performance_fee': performance_due,
                    'total_owed': total_owed,
                    'share_supply': supply,
                    'share_value': share_value,
                })
        except ValuationError as e:
            logging.warning(f"Valuation update aborted: {e}")
            raise

        logging.info(f"Published share value {share_value} at {now} (total {total}, owed {total_owed})")
        return share_value

    def get_share_value(self) -> Tuple[int, int]:
        """Raw last published value per share and its timestamp."""
        return self.last_share_value, self.last_updated

    def get_share_price(self) -> Tuple[int, int]:
        """Like get_share_value, but one value unit stands in for zero."""
        value = self.last_share_value or self.default_share_price
        return value, self.last_updated

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_history_df(self) -> pd.DataFrame:
        columns = ['timestamp', 'untracked_value', 'total_value', 'management_fee',
                   'performance_fee', 'total_owed', 'share_supply', 'share_value']
        # object dtype keeps 18-decimal integers exact
        return pd.DataFrame(self.history, columns=columns, dtype=object)

    def get_summary(self) -> Dict:
        return {
            'share_value': self.last_share_value,
            'share_price': self.get_share_price()[0],
            'last_updated': self.last_updated,
            'trackers': [t.name for t in self._trackers],
            'updates': len(self.history),
        }
