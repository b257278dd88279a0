import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, PROJECT_ROOT)

from clock import ManualClock
from fixed_point import VALUE_UNIT
from vault import Vault

START = 1_700_000_000
FAR_FUTURE = 2_000_000_000


class StubFeed:
    """Price feed returning a fixed (answer, updated_at) pair."""

    def __init__(self, answer, updated_at):
        self.answer = answer
        self.updated_at = updated_at

    def latest_round_data(self):
        return self.answer, self.updated_at


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def vault(clock):
    return Vault(name='test', admin='admin', clock=clock)


@pytest.fixture
def usdc_vault(vault):
    """Vault with a USDC rate of 1.0, USDC as payout asset and 1M USDC in custody."""
    vault.converter.set_rate('USDC', VALUE_UNIT, FAR_FUTURE, 6, caller='admin')
    vault.fee_ledger.set_payout_asset('USDC', caller='admin')
    vault.tokens.credit(vault.custody, 'USDC', 1_000_000 * 10 ** 6)
    return vault


@pytest.fixture
def make_feed():
    return StubFeed
