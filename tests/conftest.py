"""
conftest.py - Shared pytest fixtures for Harberger registry tests

Provides common fixtures used across unit, conformance and functional tests:
- Host ledger with an ETH cash unit
- Registry configuration and a registry wired to the ledger
- Funded participants and a freshly minted asset
"""

import pytest

from harberger import HarbergerRegistry, ONE_UNIT

from tests.helpers import (
    CURRENCY, ASSET, STARTING_BALANCE, PARTICIPANTS,
    make_config, make_ledger,
)


@pytest.fixture
def ledger():
    """Quiet ledger at T0 with ETH registered."""
    return make_ledger()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def registry(ledger, config):
    """Registry settling in ETH on the test ledger, participants funded."""
    reg = HarbergerRegistry.on_ledger(ledger, config, CURRENCY)
    for wallet in PARTICIPANTS:
        reg.rail.issue(wallet, STARTING_BALANCE)
    return reg


@pytest.fixture
def minted(registry):
    """Registry with ASSET minted to alice at one whole unit, at T0."""
    registry.mint("alice", "alice", ASSET, ONE_UNIT)
    return registry
