"""
Configuration loader for the Shares valuation engine.

Loads and validates vault, fee, asset-rate and path configuration from a
config.yaml file. Rates are written as human-readable decimals
(e.g. ``"2500.5"``) and scaled to 18 decimals on load.
"""

import os
import yaml
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from fixed_point import BPS_DENOMINATOR, to_value_units


@dataclass
class VaultSettings:
    """Identity and role holders of the vault."""
    name: str = 'vault'
    admin: str = 'admin'
    valuation_manager: Optional[str] = None
    custody: Optional[str] = None

    @property
    def custody_account(self) -> str:
        return self.custody or f"{self.name}:custody"


@dataclass
class FeeSettings:
    """Fee structure configuration."""
    entrance_bps: int = 0
    entrance_recipient: Optional[str] = None
    exit_bps: int = 0
    exit_recipient: Optional[str] = None
    management_bps_per_year: int = 0
    management_recipient: Optional[str] = None
    performance_bps: int = 0
    performance_recipient: Optional[str] = None
    payout_asset: Optional[str] = None

    # A rate without a recipient still counts as enabled so that wiring it
    # fails with InvalidFeeConfig instead of silently charging nothing.
    @property
    def management_enabled(self) -> bool:
        return self.management_bps_per_year > 0 or self.management_recipient is not None

    @property
    def performance_enabled(self) -> bool:
        return self.performance_bps > 0 or self.performance_recipient is not None


@dataclass
class AssetRateSettings:
    """Manual rate binding for one asset."""
    asset: str
    decimals: int
    rate: int  # 18 decimals
    expiry: int
    quotes_value_in_asset: bool = False
    tracked: bool = True


@dataclass
class PathsConfig:
    """Path configuration."""
    input_dir: str = 'input'
    output_dir: str = 'results'
    log_dir: str = 'logs'


@dataclass
class Config:
    """Main configuration class."""
    vault: VaultSettings
    fees: FeeSettings
    assets: List[AssetRateSettings] = field(default_factory=list)
    paths: PathsConfig = field(default_factory=PathsConfig)

    def get_tracked_assets(self) -> List[str]:
        """Return assets whose custody balances are tracked."""
        return [a.asset for a in self.assets if a.tracked]


def load_config(config_path: str = 'config.yaml') -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Config object with parsed configuration

    Raises:
        ValueError: If a value cannot be parsed
    """
    if not os.path.exists(config_path):
        logging.warning(f"Config file {config_path} not found, using defaults")
        return _get_default_config()

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    return _parse_config(raw_config)


def _get_default_config() -> Config:
    """Return default configuration: no fees, no assets."""
    return Config(
        vault=VaultSettings(),
        fees=FeeSettings(),
        assets=[],
        paths=PathsConfig(),
    )


def _parse_rate(value) -> int:
    # YAML may hand back int, float or str; go through str to avoid float scaling
    return to_value_units(str(value))


def _parse_config(raw: dict) -> Config:
    """Parse raw YAML dict into Config object."""
    # Parse vault
    vault_raw = raw.get('vault', {}) or {}
    vault = VaultSettings(
        name=vault_raw.get('name', 'vault'),
        admin=vault_raw.get('admin', 'admin'),
        valuation_manager=vault_raw.get('valuation_manager'),
        custody=vault_raw.get('custody'),
    )

    # Parse fees
    fees_raw = raw.get('fees', {}) or {}
    fees = FeeSettings(
        entrance_bps=int(fees_raw.get('entrance_bps', 0)),
        entrance_recipient=fees_raw.get('entrance_recipient'),
        exit_bps=int(fees_raw.get('exit_bps', 0)),
        exit_recipient=fees_raw.get('exit_recipient'),
        management_bps_per_year=int(fees_raw.get('management_bps_per_year', 0)),
        management_recipient=fees_raw.get('management_recipient'),
        performance_bps=int(fees_raw.get('performance_bps', 0)),
        performance_recipient=fees_raw.get('performance_recipient'),
        payout_asset=fees_raw.get('payout_asset'),
    )

    # Parse asset rates
    assets = []
    for a in raw.get('assets', []) or []:
        assets.append(AssetRateSettings(
            asset=a.get('asset', ''),
            decimals=int(a.get('decimals', 18)),
            rate=_parse_rate(a.get('rate', 0)),
            expiry=int(a.get('expiry', 0)),
            quotes_value_in_asset=bool(a.get('quotes_value_in_asset', False)),
            tracked=bool(a.get('tracked', True)),
        ))

    # Parse paths
    paths_raw = raw.get('paths', {}) or {}
    paths = PathsConfig(
        input_dir=paths_raw.get('input_dir', 'input'),
        output_dir=paths_raw.get('output_dir', 'results'),
        log_dir=paths_raw.get('log_dir', 'logs'),
    )

    return Config(
        vault=vault,
        fees=fees,
        assets=assets,
        paths=paths,
    )


def validate_config(config: Config) -> List[str]:
    """
    Validate configuration and return list of warnings/errors.

    Args:
        config: Configuration to validate

    Returns:
        List of warning/error messages (empty if valid)
    """
    issues = []
    fees = config.fees

    # Validate vault
    if not config.vault.name:
        issues.append("Vault missing name")
    if not config.vault.admin:
        issues.append("Vault missing admin")

    # Validate fee rates
    for label, bps in [
        ('Entrance fee', fees.entrance_bps),
        ('Exit fee', fees.exit_bps),
        ('Management fee', fees.management_bps_per_year),
        ('Performance fee', fees.performance_bps),
    ]:
        if bps < 0 or bps >= BPS_DENOMINATOR:
            issues.append(f"{label} {bps} bps out of range (expected 0-{BPS_DENOMINATOR - 1})")

    # Validate recipients
    if fees.entrance_bps > 0 and not fees.entrance_recipient:
        issues.append("Entrance fee set without a recipient")
    if fees.exit_bps > 0 and not fees.exit_recipient:
        issues.append("Exit fee set without a recipient")
    if fees.management_bps_per_year > 0 and not fees.management_recipient:
        issues.append("Management fee set without a recipient")
    if fees.performance_bps > 0 and not fees.performance_recipient:
        issues.append("Performance fee set without a recipient")

    # Validate assets
    seen = set()
    for a in config.assets:
        if not a.asset:
            issues.append("Asset missing name")
            continue
        if a.asset in seen:
            issues.append(f"Asset {a.asset} configured more than once")
        seen.add(a.asset)
        if a.rate <= 0:
            issues.append(f"Asset {a.asset} has no positive rate")
        if a.decimals < 0 or a.decimals > 36:
            issues.append(f"Asset {a.asset} has unusual decimals {a.decimals}")

    if fees.payout_asset and fees.payout_asset not in seen:
        issues.append(f"Payout asset {fees.payout_asset} has no configured rate")

    return issues
