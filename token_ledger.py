"""
In-memory asset balances.

Serves as the balance source for BalanceTracker and as the asset source
the fee ledger pulls claim payouts from.
"""

import logging
from typing import Dict, Tuple

from errors import Underflow
from fixed_point import to_uint256


class TokenLedger:
    """Balances of (account, asset) pairs in native asset units."""

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = {}

    def balance_of(self, account: str, asset: str) -> int:
        return self._balances.get((account, asset), 0)

    def credit(self, account: str, asset: str, amount: int) -> None:
        """Add amount of asset to account (deposits, income, test setup)."""
        to_uint256(amount, 'amount')
        key = (account, asset)
        self._balances[key] = to_uint256(self._balances.get(key, 0) + amount, 'balance')

    def debit(self, account: str, asset: str, amount: int) -> None:
        to_uint256(amount, 'amount')
        key = (account, asset)
        balance = self._balances.get(key, 0)
        if amount > balance:
            raise Underflow(f"{account} holds {balance} {asset}, cannot debit {amount}")
        self._balances[key] = balance - amount

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        """Move amount from sender to recipient; neither balance changes on failure."""
        if sender != recipient:
            to_uint256(self.balance_of(recipient, asset) + amount, 'balance')
        self.debit(sender, asset, amount)
        self.credit(recipient, asset, amount)
        logging.debug(f"Transferred {amount} {asset} from {sender} to {recipient}")
