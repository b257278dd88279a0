"""Tests for the in-memory token ledger."""

import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, PROJECT_ROOT)

from errors import Overflow, Underflow
from fixed_point import UINT256_MAX
from token_ledger import TokenLedger


class TestTokenLedger:
    """Tests for TokenLedger."""

    def test_transfer(self):
        tokens = TokenLedger()
        tokens.credit('custody', 'USDC', 100)
        tokens.transfer('USDC', 'custody', 'treasury', 40)
        assert tokens.balance_of('custody', 'USDC') == 60
        assert tokens.balance_of('treasury', 'USDC') == 40

    def test_transfer_more_than_balance(self):
        tokens = TokenLedger()
        tokens.credit('custody', 'USDC', 10)
        with pytest.raises(Underflow):
            tokens.transfer('USDC', 'custody', 'treasury', 11)
        assert tokens.balance_of('custody', 'USDC') == 10

    def test_recipient_overflow_leaves_sender_untouched(self):
        tokens = TokenLedger()
        tokens.credit('custody', 'USDC', 10)
        tokens.credit('treasury', 'USDC', UINT256_MAX)
        with pytest.raises(Overflow):
            tokens.transfer('USDC', 'custody', 'treasury', 1)
        assert tokens.balance_of('custody', 'USDC') == 10
        assert tokens.balance_of('treasury', 'USDC') == UINT256_MAX

    def test_self_transfer(self):
        tokens = TokenLedger()
        tokens.credit('custody', 'USDC', UINT256_MAX)
        tokens.transfer('USDC', 'custody', 'custody', 5)
        assert tokens.balance_of('custody', 'USDC') == UINT256_MAX
