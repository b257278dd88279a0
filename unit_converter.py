"""
Unit converter between external asset amounts and the internal value unit.

Each asset is bound to exactly one pricing source at a time:
- a manually-set 18-decimal rate with an expiry timestamp, or
- a third-party price feed read at conversion time, with a staleness
  tolerance window.

The binding also records which way the rate is quoted. By default a rate
is *value per asset* (how many value units one whole asset is worth). With
``quotes_value_in_asset`` set, the rate is *asset per value* (how many
whole assets one value unit buys). Getting this backwards misprices every
dependent computation, so the flag is stored with the binding and honored
on every read.

Conversion formulas (``ad`` = asset decimals, ``rd`` = rate decimals):

    value-per-asset:  value  = amount * rate * 10^18 / (10^ad * 10^rd)
    asset-per-value:  value  = amount * 10^rd * 10^18 / (10^ad * rate)

and their exact inverses. Each is a single full-width multiply followed by
one floor division.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

from access_control import AccessControl
from errors import RateExpired, RateUnavailable
from fixed_point import VALUE_DECIMALS, VALUE_UNIT, mul_div, to_uint256


MANUAL_RATE_DECIMALS = VALUE_DECIMALS
MAX_DECIMALS = 77


class PriceFeed(Protocol):
    """Read-only price feed contract."""

    def latest_round_data(self) -> Tuple[int, int]:
        """Return (answer, updated_at)."""
        ...


@dataclass
class AssetRate:
    """Pricing binding for one asset."""
    asset_decimals: int
    rate: int = 0
    expiry: int = 0
    feed: Optional[PriceFeed] = None
    feed_decimals: int = 0
    staleness_tolerance: int = 0
    quotes_value_in_asset: bool = False

    @property
    def uses_feed(self) -> bool:
        return self.feed is not None


def _check_decimals(name: str, decimals: int) -> None:
    if not isinstance(decimals, int) or decimals < 0 or decimals > MAX_DECIMALS:
        raise ValueError(f"{name} must be an integer in [0, {MAX_DECIMALS}], got {decimals}")


class UnitConverter:
    """Converts asset amounts to and from 18-decimal value units."""

    def __init__(self, access: AccessControl, clock):
        self._access = access
        self._clock = clock
        self._rates: Dict[str, AssetRate] = {}

    # ------------------------------------------------------------------
    # Admin configuration
    # ------------------------------------------------------------------

    def set_rate(
        self,
        asset: str,
        rate: int,
        expiry: int,
        asset_decimals: int,
        *,
        quotes_value_in_asset: bool = False,
        caller: str,
    ) -> None:
        """
        Bind asset to a manual 18-decimal rate valid until expiry.

        Replaces any feed previously bound to the asset. A zero rate is
        stored as given and reads back as unavailable.
        """
        self._access.require_admin(caller, action=f"set rate for {asset}")
        if not asset:
            raise ValueError("asset must be non-empty")
        _check_decimals('asset_decimals', asset_decimals)
        to_uint256(rate, 'rate')
        to_uint256(expiry, 'expiry')
        self._rates[asset] = AssetRate(
            asset_decimals=asset_decimals,
            rate=rate,
            expiry=expiry,
            quotes_value_in_asset=quotes_value_in_asset,
        )
        logging.info(f"Set manual rate for {asset}: {rate} (expires {expiry})")

    def set_feed(
        self,
        asset: str,
        feed: PriceFeed,
        feed_decimals: int,
        asset_decimals: int,
        staleness_tolerance: int,
        *,
        quotes_value_in_asset: bool = False,
        caller: str,
    ) -> None:
        """Bind asset to a price feed. Replaces any manual rate."""
        self._access.require_admin(caller, action=f"set feed for {asset}")
        if not asset:
            raise ValueError("asset must be non-empty")
        if feed is None:
            raise ValueError("feed must not be None; use clear_rate to unbind")
        _check_decimals('feed_decimals', feed_decimals)
        _check_decimals('asset_decimals', asset_decimals)
        if staleness_tolerance < 0:
            raise ValueError(f"staleness_tolerance must be non-negative, got {staleness_tolerance}")
        self._rates[asset] = AssetRate(
            asset_decimals=asset_decimals,
            feed=feed,
            feed_decimals=feed_decimals,
            staleness_tolerance=staleness_tolerance,
            quotes_value_in_asset=quotes_value_in_asset,
        )
        logging.info(f"Set price feed for {asset} (tolerance {staleness_tolerance}s)")

    def clear_rate(self, asset: str, *, caller: str) -> None:
        self._access.require_admin(caller, action=f"clear rate for {asset}")
        if self._rates.pop(asset, None) is not None:
            logging.info(f"Cleared rate for {asset}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_binding(self, asset: str) -> Optional[AssetRate]:
        return self._rates.get(asset)

    def get_assets(self) -> List[str]:
        return list(self._rates)

    def get_rate(self, asset: str) -> Tuple[int, int]:
        """
        Resolve the current usable rate for asset.

        Returns:
            Tuple of (rate, rate_decimals)

        Raises:
            RateUnavailable: No binding, zero rate, or non-positive feed answer
            RateExpired: Manual rate past expiry or feed reading too old
        """
        binding = self._rates.get(asset)
        if binding is None:
            raise RateUnavailable(asset)

        now = self._clock.now()

        if binding.uses_feed:
            answer, updated_at = binding.feed.latest_round_data()
            if answer <= 0:
                raise RateUnavailable(asset, f"feed answer {answer}")
            if now > updated_at and now - updated_at > binding.staleness_tolerance:
                raise RateExpired(asset, updated_at, now)
            return answer, binding.feed_decimals

        if binding.rate == 0:
            raise RateUnavailable(asset, 'rate is zero')
        if now > binding.expiry:
            raise RateExpired(asset, binding.expiry, now)
        return binding.rate, MANUAL_RATE_DECIMALS

    def asset_amount_to_value(self, asset: str, amount: int) -> int:
        """Convert a native asset amount into value units (floor)."""
        to_uint256(amount, 'amount')
        rate, rate_decimals = self.get_rate(asset)
        binding = self._rates[asset]
        asset_scale = 10 ** binding.asset_decimals
        rate_scale = 10 ** rate_decimals

        if binding.quotes_value_in_asset:
            value = mul_div(amount, rate_scale * VALUE_UNIT, asset_scale * rate)
        else:
            value = mul_div(amount, rate * VALUE_UNIT, asset_scale * rate_scale)

        logging.debug(f"Converted {amount} {asset} -> {value} value units")
        return value

    def value_to_asset_amount(self, value: int, asset: str) -> int:
        """Convert value units into a native asset amount (floor)."""
        to_uint256(value, 'value')
        rate, rate_decimals = self.get_rate(asset)
        binding = self._rates[asset]
        asset_scale = 10 ** binding.asset_decimals
        rate_scale = 10 ** rate_decimals

        if binding.quotes_value_in_asset:
            amount = mul_div(value, asset_scale * rate, rate_scale * VALUE_UNIT)
        else:
            amount = mul_div(value, asset_scale * rate_scale, rate * VALUE_UNIT)

        logging.debug(f"Converted {value} value units -> {amount} {asset}")
        return amount
