"""
Error taxonomy for the valuation and fee settlement engine.

Every failure aborts the triggering operation with state unchanged and
surfaces one of the named conditions below. Errors are grouped so callers
can decide whether retrying makes sense:

- AuthorizationError: caller lacks the required role; never retry
- ConfigurationError: an admin setup step is missing or invalid
- StalenessError: a rate or feed reading is too old; refresh then retry
- ValuationArithmeticError: an arithmetic invariant would be violated
"""


class ValuationError(Exception):
    """Base class for all engine errors."""


# Authorization

class AuthorizationError(ValuationError):
    """Caller is not allowed to perform the operation."""


class Unauthorized(AuthorizationError):
    """Raised when a caller lacks the role or identity an operation requires."""

    def __init__(self, caller: str, action: str):
        self.caller = caller
        self.action = action
        super().__init__(f"{caller!r} is not authorized to {action}")


# Configuration

class ConfigurationError(ValuationError):
    """An operational setup gap that an admin action must fix."""


class NotInitialized(ConfigurationError):
    pass


class AlreadyInitialized(ConfigurationError):
    pass


class EmptyAccount(ConfigurationError):
    pass


class RateUnavailable(ConfigurationError):
    """No usable rate or feed is configured for an asset."""

    def __init__(self, asset: str, reason: str = 'no rate configured'):
        self.asset = asset
        super().__init__(f"rate unavailable for {asset}: {reason}")


class AssetAlreadyTracked(ConfigurationError):
    pass


class AssetNotTracked(ConfigurationError):
    pass


class InvalidFeeConfig(ConfigurationError):
    pass


class PayoutAssetUnset(ConfigurationError):
    pass


class InvalidItem(ConfigurationError):
    pass


class ItemAlreadyExists(ConfigurationError):
    pass


class ItemNotFound(ConfigurationError):
    pass


class ItemIdRetired(ConfigurationError):
    """A removed linear accrual item id can never be registered again."""


class TrackerAlreadyRegistered(ConfigurationError):
    pass


class TrackerNotRegistered(ConfigurationError):
    pass


# Staleness

class StalenessError(ValuationError):
    """A rate was configured but is too old to use."""


class RateExpired(StalenessError):
    def __init__(self, asset: str, as_of: int, now: int):
        self.asset = asset
        self.as_of = as_of
        self.now = now
        super().__init__(f"rate for {asset} expired (as of {as_of}, now {now})")


# Arithmetic

class ValuationArithmeticError(ValuationError):
    """An arithmetic invariant would be violated; never silently clamped."""


class Underflow(ValuationArithmeticError):
    pass


class Overflow(ValuationArithmeticError):
    pass


class NegativeTotal(ValuationArithmeticError):
    def __init__(self, total: int):
        self.total = total
        super().__init__(f"total position value is negative: {total}")


class FeesExceedValue(ValuationArithmeticError):
    def __init__(self, total_owed: int, total_value: int):
        self.total_owed = total_owed
        self.total_value = total_value
        super().__init__(f"fees owed {total_owed} exceed total value {total_value}")


class ZeroFeeAsset(ValuationArithmeticError):
    pass
