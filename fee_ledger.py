"""
Fee ledger: fee configuration, settlement and the owed-value ledger.

Four fee types settle into one ledger of value owed per recipient:

1. Management fee: continuous, settled on every valuation
2. Performance fee: high-water-mark based, settled on every valuation,
   computed net of the management fee taken in the same call
3. Entrance fee: a share of every mint, valued at the share price
4. Exit fee: a share of every burn, valued at the share price

Owed value is always held in 18-decimal value units. It becomes an asset
amount only when claimed, converted into the configured payout asset.

Invariant: sum(owner_owed.values()) == total_owed. Both sides change only
inside ``_credit`` and ``_debit``.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

import pandas as pd

from access_control import ADMIN, AccessControl, require_caller
from errors import (
    FeesExceedValue,
    InvalidFeeConfig,
    PayoutAssetUnset,
    Unauthorized,
    Underflow,
    ZeroFeeAsset,
)
from fixed_point import BPS_DENOMINATOR, VALUE_UNIT, bps_of, checked_sub, mul_div, to_uint256
from management_fee import ManagementFeeTracker
from performance_fee import PerformanceFeeTracker, PriceSource, SupplySource
from transaction import Stateful, atomic
from unit_converter import UnitConverter


# Recipient sentinel: fee shares are destroyed and no value is tracked.
BURN = '<burn>'


class AssetSource(Protocol):
    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        ...


@dataclass
class LumpSumFee:
    """Entrance or exit fee setting."""
    bps: int = 0
    recipient: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.bps > 0


class FeeLedger(Stateful):
    """
    Holds fee configuration and the ledger of value owed to fee recipients.

    Attributes:
        address: Identity this ledger presents when calling fee trackers
        valuation_engine: Only identity allowed to settle dynamic fees
        share_ledger: Only identity allowed to settle entrance/exit fees
        custody: Account the payout asset is transferred from on claims
    """

    STATE_FIELDS = ('total_owed', 'owner_owed')
    APPEND_ONLY_FIELDS = ('history',)

    def __init__(
        self,
        access: AccessControl,
        clock,
        converter: UnitConverter,
        shares: SupplySource,
        prices: PriceSource,
        assets: AssetSource,
        address: str = 'fee-ledger',
        valuation_engine: str = '',
        share_ledger: str = '',
        custody: str = '',
    ):
        self._access = access
        self._clock = clock
        self._converter = converter
        self._shares = shares
        self._prices = prices
        self._assets = assets
        self.address = address
        self.valuation_engine = valuation_engine
        self.share_ledger = share_ledger
        self.custody = custody

        self.entrance_fee = LumpSumFee()
        self.exit_fee = LumpSumFee()
        self.management_tracker: Optional[ManagementFeeTracker] = None
        self.management_recipient: Optional[str] = None
        self.performance_tracker: Optional[PerformanceFeeTracker] = None
        self.performance_recipient: Optional[str] = None
        self.payout_asset: Optional[str] = None

        self.total_owed = 0
        self.owner_owed: Dict[str, int] = {}
        self.history: List[Dict] = []

    # ------------------------------------------------------------------
    # Configuration (admin)
    # ------------------------------------------------------------------

    def set_entrance_fee(self, bps: int, recipient: Optional[str], *, caller: str) -> None:
        self._access.require_admin(caller, action='set entrance fee')
        self.entrance_fee = _lump_sum('entrance', bps, recipient)
        logging.info(f"Entrance fee set to {bps} bps -> {recipient}")

    def set_exit_fee(self, bps: int, recipient: Optional[str], *, caller: str) -> None:
        self._access.require_admin(caller, action='set exit fee')
        self.exit_fee = _lump_sum('exit', bps, recipient)
        logging.info(f"Exit fee set to {bps} bps -> {recipient}")

    def set_payout_asset(self, asset: Optional[str], *, caller: str) -> None:
        self._access.require_admin(caller, action='set fee payout asset')
        self.payout_asset = asset or None
        logging.info(f"Fee payout asset set to {asset}")

    def set_management_fee(
        self,
        tracker: Optional[ManagementFeeTracker],
        recipient: Optional[str],
        *,
        caller: str,
    ) -> None:
        """Configure or (with tracker=None) disable the management fee."""
        self._access.require_admin(caller, action='set management fee')
        _check_tracker_recipient('management', tracker, recipient)
        self.management_tracker = tracker
        self.management_recipient = recipient if tracker is not None else None
        logging.info(f"Management fee {'enabled' if tracker else 'disabled'} -> {recipient}")

    def set_performance_fee(
        self,
        tracker: Optional[PerformanceFeeTracker],
        recipient: Optional[str],
        *,
        caller: str,
    ) -> None:
        """Configure or (with tracker=None) disable the performance fee."""
        self._access.require_admin(caller, action='set performance fee')
        _check_tracker_recipient('performance', tracker, recipient)
        self.performance_tracker = tracker
        self.performance_recipient = recipient if tracker is not None else None
        logging.info(f"Performance fee {'enabled' if tracker else 'disabled'} -> {recipient}")

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def owed_to(self, recipient: str) -> int:
        return self.owner_owed.get(recipient, 0)

    def get_owed_balances(self) -> Dict[str, int]:
        return dict(self.owner_owed)

    def _credit(self, recipient: str, value: int) -> None:
        to_uint256(self.total_owed + value, 'total_owed')
        self.owner_owed[recipient] = self.owner_owed.get(recipient, 0) + value
        self.total_owed += value

    def _debit(self, recipient: str, value: int) -> None:
        owed = self.owner_owed.get(recipient, 0)
        if value > owed:
            raise Underflow(f"claim of {value} exceeds {owed} owed to {recipient}")
        remaining = owed - value
        if remaining:
            self.owner_owed[recipient] = remaining
        else:
            self.owner_owed.pop(recipient, None)
        self.total_owed = checked_sub(self.total_owed, value, 'total_owed')

    def _record(self, event: str, recipient: Optional[str], value: int, **extra) -> None:
        entry = {
            'timestamp': self._clock.now(),
            'event': event,
            'recipient': recipient,
            'value': value,
        }
        entry.update(extra)
        entry['total_owed_after'] = self.total_owed
        self.history.append(entry)

    # ------------------------------------------------------------------
    # Dynamic fees (valuation engine only)
    # ------------------------------------------------------------------

    def settle_dynamic_fees(self, total_positions_value: int, *, caller: str) -> Tuple[int, int]:
        """
        Settle management and performance fees against the latest total.

        Net value excludes fees already owed. The performance fee is measured
        net of the management fee settled in this same call only.

        Returns:
            Tuple of (management_fee_value, performance_fee_value)
        """
        require_caller(caller, self.valuation_engine, 'settle dynamic fees')
        to_uint256(total_positions_value, 'total_positions_value')
        if self.total_owed > total_positions_value:
            raise FeesExceedValue(self.total_owed, total_positions_value)

        net_value = total_positions_value - self.total_owed
        management_due = 0
        performance_due = 0

        with atomic(self, self.management_tracker, self.performance_tracker):
            if self.management_tracker is not None:
                management_due = self.management_tracker.settle_management_fee(
                    net_value, caller=self.address
                )
                if management_due:
                    self._credit(self.management_recipient, management_due)
                    self._record('management_fee', self.management_recipient, management_due,
                                 net_value=net_value)

            if self.performance_tracker is not None:
                if management_due > net_value:
                    raise FeesExceedValue(self.total_owed, total_positions_value)
                performance_base = net_value - management_due
                performance_due = self.performance_tracker.settle_performance_fee(
                    performance_base, caller=self.address
                )
                if performance_due:
                    self._credit(self.performance_recipient, performance_due)
                    self._record('performance_fee', self.performance_recipient, performance_due,
                                 net_value=performance_base,
                                 high_water_mark=self.performance_tracker.high_water_mark)

        if management_due or performance_due:
            logging.info(
                f"Settled dynamic fees: management={management_due}, "
                f"performance={performance_due}, total owed={self.total_owed}"
            )
        return management_due, performance_due

    # ------------------------------------------------------------------
    # Entrance / exit fees (share ledger only)
    # ------------------------------------------------------------------

    def preview_entrance_fee(self, gross_shares: int) -> int:
        return bps_of(gross_shares, self.entrance_fee.bps)

    def preview_exit_fee(self, gross_shares: int) -> int:
        return bps_of(gross_shares, self.exit_fee.bps)

    def settle_entrance_fee(self, gross_shares: int, *, caller: str) -> int:
        """Return the fee shares withheld from a mint of gross_shares."""
        require_caller(caller, self.share_ledger, 'settle entrance fee')
        return self._settle_lump_sum('entrance_fee', self.entrance_fee, gross_shares)

    def settle_exit_fee(self, gross_shares: int, *, caller: str) -> int:
        """Return the fee shares withheld from a burn of gross_shares."""
        require_caller(caller, self.share_ledger, 'settle exit fee')
        return self._settle_lump_sum('exit_fee', self.exit_fee, gross_shares)

    def _settle_lump_sum(self, event: str, fee: LumpSumFee, gross_shares: int) -> int:
        to_uint256(gross_shares, 'gross_shares')
        if not fee.enabled:
            return 0
        fee_shares = bps_of(gross_shares, fee.bps)
        if fee_shares == 0:
            return 0

        # Share price (not share value): defaults to one value unit with no
        # supply, so the very first mint has a non-zero reference.
        price, _ = self._prices.get_share_price()
        fee_value = mul_div(fee_shares, price, VALUE_UNIT)

        if fee.recipient == BURN:
            logging.info(f"{event}: {fee_shares} shares burned, value not tracked")
            return fee_shares
        if fee_value == 0:
            return fee_shares

        with atomic(self):
            self._credit(fee.recipient, fee_value)
            self._record(event, fee.recipient, fee_value, shares=fee_shares, share_price=price)
        logging.info(f"{event}: {fee_shares} shares worth {fee_value} -> {fee.recipient}")
        return fee_shares

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim_fees(self, on_behalf: str, value: int, *, caller: str) -> int:
        """
        Pay out owed value to on_behalf in the payout asset.

        Args:
            on_behalf: Recipient whose owed balance is debited and paid
            value: Value units to claim
            caller: on_behalf itself or an admin

        Returns:
            Amount of payout asset transferred

        Raises:
            Unauthorized: Caller is neither on_behalf nor an admin
            Underflow: value exceeds the owed balance
            PayoutAssetUnset: No payout asset configured
            ZeroFeeAsset: value converts to zero units of the payout asset
        """
        if caller != on_behalf and not self._access.has_role(ADMIN, caller):
            raise Unauthorized(caller, f"claim fees for {on_behalf}")
        owed = self.owed_to(on_behalf)
        if value > owed:
            raise Underflow(f"claim of {value} exceeds {owed} owed to {on_behalf}")
        if self.payout_asset is None:
            raise PayoutAssetUnset("fee payout asset is not configured")

        amount = self._converter.value_to_asset_amount(value, self.payout_asset)
        if amount == 0:
            raise ZeroFeeAsset(f"claim of {value} converts to zero {self.payout_asset}")

        with atomic(self):
            self._debit(on_behalf, value)
            self._record('claim', on_behalf, value, asset=self.payout_asset, asset_amount=amount)
            self._assets.transfer(self.payout_asset, self.custody, on_behalf, amount)

        logging.info(f"{on_behalf} claimed {value} value as {amount} {self.payout_asset}")
        return amount

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_history_df(self) -> pd.DataFrame:
        """Fee events as a DataFrame, one row per credit or claim."""
        columns = ['timestamp', 'event', 'recipient', 'value', 'total_owed_after']
        if not self.history:
            return pd.DataFrame(columns=columns)
        df = pd.DataFrame(self.history, dtype=object)
        ordered = columns + [c for c in df.columns if c not in columns]
        return df[ordered]

    def get_owed_df(self) -> pd.DataFrame:
        rows = [{'recipient': r, 'owed': v} for r, v in sorted(self.owner_owed.items())]
        return pd.DataFrame(rows, columns=['recipient', 'owed'])

    def get_summary(self) -> Dict:
        return {
            'total_owed': self.total_owed,
            'recipients': len(self.owner_owed),
            'entrance_fee_bps': self.entrance_fee.bps,
            'exit_fee_bps': self.exit_fee.bps,
            'management_fee_enabled': self.management_tracker is not None,
            'performance_fee_enabled': self.performance_tracker is not None,
            'payout_asset': self.payout_asset,
        }


def _lump_sum(kind: str, bps: int, recipient: Optional[str]) -> LumpSumFee:
    if bps < 0 or bps >= BPS_DENOMINATOR:
        raise InvalidFeeConfig(f"{kind} fee must be in [0, {BPS_DENOMINATOR}) bps, got {bps}")
    if bps > 0 and not recipient:
        raise InvalidFeeConfig(f"{kind} fee of {bps} bps needs a recipient (or BURN)")
    return LumpSumFee(bps=bps, recipient=recipient or None)


def _check_tracker_recipient(kind: str, tracker, recipient: Optional[str]) -> None:
    if tracker is not None and not recipient:
        raise InvalidFeeConfig(f"{kind} fee tracker requires a recipient")
    if recipient == BURN and tracker is not None:
        raise InvalidFeeConfig(f"{kind} fee value cannot be sent to the burn sentinel")
