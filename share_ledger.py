"""
Minimal share ledger.

Keeps holder balances and total supply, and asks the fee ledger for the
entrance/exit fee on every mint and burn. Fee shares are never minted (on
entry) and are destroyed with the rest (on exit); their value is tracked
by the fee ledger, not as shares.
"""

import logging
from typing import Dict

from access_control import AccessControl
from errors import Underflow
from fixed_point import to_uint256
from transaction import Stateful, atomic


class ShareLedger(Stateful):
    """Share balances and supply for one vault."""

    STATE_FIELDS = ('balances', 'total_supply')

    def __init__(self, access: AccessControl, address: str = 'share-ledger'):
        self._access = access
        self.address = address
        self.fee_ledger = None
        self.balances: Dict[str, int] = {}
        self.total_supply = 0

    def set_fee_ledger(self, fee_ledger, *, caller: str) -> None:
        self._access.require_admin(caller, action='set fee ledger')
        self.fee_ledger = fee_ledger

    def total_share_supply(self) -> int:
        return self.total_supply

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def mint(self, holder: str, gross_shares: int, *, caller: str) -> int:
        """
        Mint gross_shares less the entrance fee to holder.

        Returns:
            Net shares credited to holder
        """
        self._access.require_admin(caller, action='mint shares')
        to_uint256(gross_shares, 'gross_shares')

        with atomic(self, self.fee_ledger):
            fee_shares = 0
            if self.fee_ledger is not None:
                fee_shares = self.fee_ledger.settle_entrance_fee(gross_shares, caller=self.address)
            net_shares = gross_shares - fee_shares
            self.balances[holder] = self.balances.get(holder, 0) + net_shares
            self.total_supply += net_shares

        logging.info(f"Minted {net_shares} shares to {holder} ({fee_shares} entrance fee shares)")
        return net_shares

    def burn(self, holder: str, gross_shares: int, *, caller: str) -> int:
        """
        Burn gross_shares from holder.

        Returns:
            Net shares the holder is paid out for (gross less exit fee)
        """
        self._access.require_admin(caller, action='burn shares')
        balance = self.balances.get(holder, 0)
        if gross_shares > balance:
            raise Underflow(f"{holder} holds {balance} shares, cannot burn {gross_shares}")

        with atomic(self, self.fee_ledger):
            fee_shares = 0
            if self.fee_ledger is not None:
                fee_shares = self.fee_ledger.settle_exit_fee(gross_shares, caller=self.address)
            remaining = balance - gross_shares
            if remaining:
                self.balances[holder] = remaining
            else:
                self.balances.pop(holder, None)
            self.total_supply -= gross_shares

        logging.info(f"Burned {gross_shares} shares from {holder} ({fee_shares} exit fee shares)")
        return gross_shares - fee_shares
