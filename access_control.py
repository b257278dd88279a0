"""
Role registry shared by the components of one vault.

Two roles exist:
- ADMIN: configures rates, fees, trackers; may claim fees on anyone's behalf
- VALUATION_MANAGER: publishes valuations via ``update_value``
"""

import logging
from typing import Dict, Set

from errors import Unauthorized


ADMIN = 'admin'
VALUATION_MANAGER = 'valuation_manager'

ROLES = (ADMIN, VALUATION_MANAGER)


class AccessControl:
    """Maps roles to the accounts that hold them."""

    def __init__(self, admin: str):
        if not admin:
            raise ValueError("admin account must be non-empty")
        self._members: Dict[str, Set[str]] = {role: set() for role in ROLES}
        self._members[ADMIN].add(admin)

    def has_role(self, role: str, account: str) -> bool:
        return account in self._members.get(role, set())

    def grant_role(self, role: str, account: str, caller: str) -> None:
        self.require_role(caller, ADMIN, action=f"grant {role}")
        if role not in self._members:
            raise ValueError(f"Unknown role: {role}")
        if not account:
            raise ValueError("account must be non-empty")
        self._members[role].add(account)
        logging.info(f"Granted {role} to {account}")

    def revoke_role(self, role: str, account: str, caller: str) -> None:
        self.require_role(caller, ADMIN, action=f"revoke {role}")
        if role == ADMIN and self._members[ADMIN] == {account}:
            raise ValueError("cannot revoke the last admin")
        self._members.get(role, set()).discard(account)
        logging.info(f"Revoked {role} from {account}")

    def require_role(self, caller: str, *roles: str, action: str = 'perform this action') -> None:
        """Raise Unauthorized unless caller holds at least one of roles."""
        if any(self.has_role(role, caller) for role in roles):
            return
        raise Unauthorized(caller, action)

    def require_admin(self, caller: str, action: str = 'perform this action') -> None:
        self.require_role(caller, ADMIN, action=action)


def require_caller(caller: str, expected: str, action: str) -> None:
    """Restrict an operation to one specific component identity."""
    if not expected or caller != expected:
        raise Unauthorized(caller, action)
