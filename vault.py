"""
Vault: the parent aggregate that owns one instance of every engine component.

Components are wired by explicit injection; nothing is global, so several
vaults can live side by side in one process (and in one test).

    clock ──┬── UnitConverter ── BalanceTracker ─┐
            │                                    ├── ValuationEngine ── ShareLedger
            ├── LinearAccrualTracker ────────────┘         │
            └── FeeLedger ── ManagementFeeTracker          │
                         └── PerformanceFeeTracker ────────┘
"""

import logging
from typing import Dict, Optional

from access_control import VALUATION_MANAGER, AccessControl
from clock import SystemClock
from config_loader import Config
from fee_ledger import FeeLedger
from management_fee import ManagementFeeTracker
from performance_fee import PerformanceFeeTracker
from position_trackers import BalanceTracker, LinearAccrualTracker
from share_ledger import ShareLedger
from token_ledger import TokenLedger
from unit_converter import UnitConverter
from valuation_engine import ValuationEngine


class Vault:
    """One Shares instance with its valuation and fee engine."""

    def __init__(
        self,
        name: str = 'vault',
        admin: str = 'admin',
        clock=None,
        tokens: Optional[TokenLedger] = None,
        custody: Optional[str] = None,
    ):
        self.name = name
        self.admin = admin
        self.clock = clock or SystemClock()
        self.tokens = tokens or TokenLedger()
        self.custody = custody or f"{name}:custody"

        self.access = AccessControl(admin)
        self.converter = UnitConverter(self.access, self.clock)
        self.shares = ShareLedger(self.access, address=f"{name}:shares")
        self.valuation = ValuationEngine(self.access, self.clock, self.shares, address=f"{name}:valuation")
        self.fee_ledger = FeeLedger(
            self.access,
            self.clock,
            self.converter,
            self.shares,
            self.valuation,
            self.tokens,
            address=f"{name}:fees",
            valuation_engine=self.valuation.address,
            share_ledger=self.shares.address,
            custody=self.custody,
        )
        self.management_fee = ManagementFeeTracker(self.access, self.clock, fee_ledger=self.fee_ledger.address)
        self.performance_fee = PerformanceFeeTracker(
            self.access, self.shares, self.valuation, fee_ledger=self.fee_ledger.address
        )
        self.balance_tracker = BalanceTracker(
            self.access, self.converter, self.tokens, name=f"{name}:balances"
        )
        self.accrual_tracker = LinearAccrualTracker(self.access, self.clock, name=f"{name}:accruals")

        self.valuation.set_fee_ledger(self.fee_ledger, caller=admin)
        self.shares.set_fee_ledger(self.fee_ledger, caller=admin)

    @classmethod
    def from_config(cls, config: Config, clock=None, tokens: Optional[TokenLedger] = None) -> 'Vault':
        """
        Build a fully wired vault from configuration.

        Asset rates are bound, the custody balance tracker covers every
        tracked asset, both position trackers are registered, and enabled
        fee accruals are started (management accrual seeded at now, the
        high-water mark seeded at the default share price).
        """
        settings = config.vault
        admin = settings.admin
        vault = cls(
            name=settings.name,
            admin=admin,
            clock=clock,
            tokens=tokens,
            custody=settings.custody_account,
        )
        if settings.valuation_manager:
            vault.access.grant_role(VALUATION_MANAGER, settings.valuation_manager, caller=admin)

        for a in config.assets:
            vault.converter.set_rate(
                a.asset, a.rate, a.expiry, a.decimals,
                quotes_value_in_asset=a.quotes_value_in_asset, caller=admin,
            )

        vault.balance_tracker.set_account(vault.custody, caller=admin)
        for asset in config.get_tracked_assets():
            vault.balance_tracker.add_asset(asset, caller=admin)
        vault.valuation.add_tracker(vault.balance_tracker, caller=admin)
        vault.valuation.add_tracker(vault.accrual_tracker, caller=admin)

        fees = config.fees
        ledger = vault.fee_ledger
        ledger.set_entrance_fee(fees.entrance_bps, fees.entrance_recipient, caller=admin)
        ledger.set_exit_fee(fees.exit_bps, fees.exit_recipient, caller=admin)
        ledger.set_payout_asset(fees.payout_asset, caller=admin)

        if fees.management_enabled:
            vault.management_fee.set_rate(fees.management_bps_per_year, caller=admin)
            vault.management_fee.reset_last_settled(caller=admin)
            ledger.set_management_fee(vault.management_fee, fees.management_recipient, caller=admin)

        if fees.performance_enabled:
            vault.performance_fee.set_rate(fees.performance_bps, caller=admin)
            vault.performance_fee.reset_high_water_mark(caller=admin)
            ledger.set_performance_fee(vault.performance_fee, fees.performance_recipient, caller=admin)

        logging.info(f"Vault {settings.name} configured with {len(config.assets)} asset rates")
        return vault

    def get_summary(self) -> Dict:
        share_value, updated = self.valuation.get_share_value()
        return {
            'vault': self.name,
            'share_value': share_value,
            'share_price': self.valuation.get_share_price()[0],
            'last_updated': updated,
            'total_supply': self.shares.total_share_supply(),
            'total_owed': self.fee_ledger.total_owed,
            'high_water_mark': self.performance_fee.high_water_mark,
            'management_last_settled': self.management_fee.last_settled,
        }
