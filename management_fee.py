"""
Management fee accrual.

A continuous fee on net value, charged pro rata for the time elapsed since
the previous settlement:

    value_due = net_value * rate_bps * elapsed / (10_000 * SECONDS_PER_YEAR)

Settlement always advances ``last_settled`` to now, even when nothing is
due, so time is never charged twice. A tracker whose ``last_settled`` was
never seeded refuses to settle instead of quietly charging zero; an admin
seeds it with ``reset_last_settled()``.
"""

import logging

from access_control import AccessControl, require_caller
from errors import InvalidFeeConfig, NotInitialized
from fixed_point import BPS_DENOMINATOR, SECONDS_PER_YEAR, mul_div, to_uint256
from transaction import Stateful


class ManagementFeeTracker(Stateful):
    """Time-prorated management fee on net value."""

    STATE_FIELDS = ('last_settled', 'rate_bps_per_year')

    def __init__(self, access: AccessControl, clock, rate_bps_per_year: int = 0, fee_ledger: str = ''):
        self._access = access
        self._clock = clock
        self.fee_ledger = fee_ledger
        self.rate_bps_per_year = _validate_rate(rate_bps_per_year)
        self.last_settled = 0

    def set_fee_ledger(self, fee_ledger: str, *, caller: str) -> None:
        self._access.require_admin(caller, action='bind management fee tracker')
        self.fee_ledger = fee_ledger

    def set_rate(self, rate_bps_per_year: int, *, caller: str) -> None:
        """Change the annual rate. Does not settle; reset afterwards to restart accrual."""
        self._access.require_admin(caller, action='set management fee rate')
        self.rate_bps_per_year = _validate_rate(rate_bps_per_year)
        logging.info(f"Management fee rate set to {rate_bps_per_year} bps/year")

    def reset_last_settled(self, *, caller: str) -> None:
        """Start (or restart) accrual from now without charging anything."""
        self._access.require_admin(caller, action='reset management fee accrual')
        self.last_settled = self._clock.now()
        logging.info(f"Management fee accrual reset at {self.last_settled}")

    def preview_management_fee(self, net_value: int) -> int:
        """Fee that would be due if settled now."""
        if self.last_settled == 0:
            raise NotInitialized("management fee accrual has not been started")
        to_uint256(net_value, 'net_value')
        elapsed = max(self._clock.now() - self.last_settled, 0)
        return mul_div(
            net_value,
            self.rate_bps_per_year * elapsed,
            BPS_DENOMINATOR * SECONDS_PER_YEAR,
        )

    def settle_management_fee(self, net_value: int, *, caller: str) -> int:
        """
        Settle the fee accrued since the last settlement.

        Args:
            net_value: Net value (total minus unclaimed fees) in value units
            caller: Must be the bound fee ledger

        Returns:
            Value due to the management fee recipient
        """
        require_caller(caller, self.fee_ledger, 'settle management fee')
        value_due = self.preview_management_fee(net_value)
        now = self._clock.now()
        elapsed = max(now - self.last_settled, 0)
        self.last_settled = max(now, self.last_settled)
        logging.debug(f"Management fee: {value_due} due over {elapsed}s on {net_value}")
        return value_due


def _validate_rate(rate_bps: int) -> int:
    if rate_bps < 0 or rate_bps >= BPS_DENOMINATOR:
        raise InvalidFeeConfig(f"management fee rate must be in [0, {BPS_DENOMINATOR}), got {rate_bps}")
    return rate_bps
