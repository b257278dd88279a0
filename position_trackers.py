"""
Position trackers: pluggable sources of signed position value.

Every tracker implements ``get_position_value()``, which has no side effects
but may change over time (linear accrual is time-dependent). The valuation
engine holds trackers by reference and calls each one once per valuation.

Two variants are provided:

1. BalanceTracker
   - Sums an account's balance of each tracked asset, converted to value
     units through the UnitConverter
   - The account is bound exactly once

2. LinearAccrualTracker
   - Sums credit/debt items that vest linearly between a start time and
     start + duration
   - Items live in an arena keyed by id, with a dense index array so
     removal is O(1) swap-with-last; removed ids are retired forever
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

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
)
from fixed_point import to_int256, trunc_div
from unit_converter import UnitConverter


class PositionTracker(ABC):
    """Capability reporting a signed aggregate position value."""

    name: str = 'tracker'

    @abstractmethod
    def get_position_value(self) -> int:
        """Return the current signed position value in value units."""


class BalanceSource(Protocol):
    def balance_of(self, account: str, asset: str) -> int:
        ...


# =============================================================================
# Balance tracker
# =============================================================================


class BalanceTracker(PositionTracker):
    """Values an account's holdings of a fixed set of assets."""

    def __init__(
        self,
        access: AccessControl,
        converter: UnitConverter,
        balances: BalanceSource,
        name: str = 'balances',
    ):
        self._access = access
        self._converter = converter
        self._balances = balances
        self.name = name
        self.account: Optional[str] = None
        self._assets: List[str] = []

    def set_account(self, account: str, *, caller: str) -> None:
        """Bind the account whose balances are tracked. Allowed once."""
        self._access.require_admin(caller, action='set tracked account')
        if self.account is not None:
            raise AlreadyInitialized(f"{self.name}: account already set to {self.account}")
        if not account:
            raise EmptyAccount(f"{self.name}: account must be non-empty")
        self.account = account
        logging.info(f"{self.name}: tracking balances of {account}")

    def add_asset(self, asset: str, *, caller: str) -> None:
        self._access.require_admin(caller, action=f"track {asset}")
        if asset in self._assets:
            raise AssetAlreadyTracked(f"{self.name}: {asset} already tracked")
        self._assets.append(asset)
        logging.info(f"{self.name}: added asset {asset}")

    def remove_asset(self, asset: str, *, caller: str) -> None:
        self._access.require_admin(caller, action=f"untrack {asset}")
        if asset not in self._assets:
            raise AssetNotTracked(f"{self.name}: {asset} is not tracked")
        self._assets.remove(asset)
        logging.info(f"{self.name}: removed asset {asset}")

    def get_assets(self) -> List[str]:
        return list(self._assets)

    def get_position_value(self) -> int:
        if self.account is None:
            raise NotInitialized(f"{self.name}: account not set")

        total = 0
        for asset in self._assets:
            balance = self._balances.balance_of(self.account, asset)
            total += self._converter.asset_amount_to_value(asset, balance)
        return to_int256(total, f"{self.name} position value")


# =============================================================================
# Linear accrual tracker
# =============================================================================


@dataclass
class LinearItem:
    """A credit (positive) or debt (negative) vesting linearly over time."""
    id: int
    settled_value: int
    total_value: int
    start: int
    duration: int
    description: str = ''

    @property
    def end(self) -> int:
        return self.start + self.duration


def calc_item_value(item: LinearItem, now: int) -> int:
    """
    Value recognised for item at time now.

    - now >= end:   settled + total (fully matured)
    - now <= start: settled (not yet accruing)
    - otherwise:    settled + total * (now - start) / duration, truncated

    The matured branch is checked first: a zero-duration item is fully
    recognised at its start time, and the interpolation branch is only
    reachable with start < now < end, where duration is positive.
    """
    if now >= item.end:
        return item.settled_value + item.total_value
    if now <= item.start:
        return item.settled_value
    elapsed = now - item.start
    return item.settled_value + trunc_div(item.total_value * elapsed, item.duration)


class LinearAccrualTracker(PositionTracker):
    """Tracks a set of linearly vesting items."""

    def __init__(self, access: AccessControl, clock, name: str = 'linear_accrual'):
        self._access = access
        self._clock = clock
        self.name = name
        # Arena of entries by id plus a dense id array; _slot maps id -> index.
        self._items: Dict[int, LinearItem] = {}
        self._ids: List[int] = []
        self._slot: Dict[int, int] = {}
        self._retired: set = set()

    def add_item(
        self,
        item_id: int,
        total_value: int,
        start: int,
        duration: int,
        description: str = '',
        settled_value: int = 0,
        *,
        caller: str,
    ) -> LinearItem:
        """
        Register a new vesting item.

        Args:
            item_id: Unique non-zero id chosen by the admin
            total_value: Signed value that vests over the duration (non-zero)
            start: Timestamp at which vesting begins
            duration: Vesting length in seconds (zero vests instantly)
            description: Free-form label
            settled_value: Signed value already recognised

        Raises:
            InvalidItem: Zero id or total value, negative start or duration
            ItemAlreadyExists: Id is live
            ItemIdRetired: Id was used by a removed item
        """
        self._access.require_admin(caller, action='add accrual item')
        if item_id == 0:
            raise InvalidItem("item id must be non-zero")
        if total_value == 0:
            raise InvalidItem(f"item {item_id}: total value must be non-zero")
        if start < 0 or duration < 0:
            raise InvalidItem(f"item {item_id}: start and duration must be non-negative")
        if item_id in self._items:
            raise ItemAlreadyExists(f"item {item_id} already exists")
        if item_id in self._retired:
            raise ItemIdRetired(f"item id {item_id} was removed and cannot be reused")
        to_int256(total_value, 'total_value')
        to_int256(settled_value, 'settled_value')

        item = LinearItem(
            id=item_id,
            settled_value=settled_value,
            total_value=total_value,
            start=start,
            duration=duration,
            description=description,
        )
        self._items[item_id] = item
        self._slot[item_id] = len(self._ids)
        self._ids.append(item_id)
        logging.info(f"{self.name}: added item {item_id} ({description}) total={total_value}")
        return item

    def update_settled_value(self, item_id: int, settled_value: int, *, caller: str) -> None:
        self._access.require_admin(caller, action='update settled value')
        item = self.get_item(item_id)
        item.settled_value = to_int256(settled_value, 'settled_value')
        logging.info(f"{self.name}: item {item_id} settled value -> {settled_value}")

    def remove_item(self, item_id: int, *, caller: str) -> None:
        """Remove item_id by moving the last id into its slot."""
        self._access.require_admin(caller, action='remove accrual item')
        if item_id not in self._items:
            raise ItemNotFound(f"item {item_id} not found")

        slot = self._slot.pop(item_id)
        last_id = self._ids.pop()
        if last_id != item_id:
            self._ids[slot] = last_id
            self._slot[last_id] = slot

        del self._items[item_id]
        self._retired.add(item_id)
        logging.info(f"{self.name}: removed item {item_id}")

    def get_item(self, item_id: int) -> LinearItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise ItemNotFound(f"item {item_id} not found") from None

    def get_item_ids(self) -> List[int]:
        """Ids in dense-index order."""
        return list(self._ids)

    def calc_item_value(self, item_id: int) -> int:
        return calc_item_value(self.get_item(item_id), self._clock.now())

    def get_position_value(self) -> int:
        now = self._clock.now()
        total = sum(calc_item_value(self._items[i], now) for i in self._ids)
        return to_int256(total, f"{self.name} position value")
