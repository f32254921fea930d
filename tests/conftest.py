"""
conftest.py - Shared pytest fixtures for seatvault tests

Provides common fixtures used across unit, functional and conformance tests:
- Pricing and emission configurations
- Vaults over the in-memory pool and over a scripted adapter
- A seat wired to a vault through a shared event log
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from seatvault import (
    DecayConfig, EmissionSchedule, SeatTerms, VaultTerms,
    SeatAuction, TreasuryVault, InMemoryPosition, EventLog,
)

from tests.fake_adapter import ScriptedPosition


T0 = datetime(2025, 1, 1, 9, 0)
OPERATOR = "ops"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_vault(adapter, genesis_time=T0, raid_config=None, event_log=None, **terms) -> TreasuryVault:
    """Create a vault with a default raid config unless one is given."""
    if raid_config is None:
        raid_config = DecayConfig(timedelta(hours=24), Decimal("10"), Decimal("1.5"))
    return TreasuryVault(
        VaultTerms(raid_config=raid_config, operator=OPERATOR, **terms),
        adapter=adapter,
        genesis_time=genesis_time,
        event_log=event_log,
    )


def make_seat(genesis_time=T0, config=None, treasury=None, event_log=None, **terms) -> SeatAuction:
    """Create a seat with default pricing and emission unless given."""
    if config is None:
        config = DecayConfig(timedelta(hours=1), Decimal("1"), Decimal("2"))
    emission = terms.pop("emission", None) or EmissionSchedule(
        Decimal("4"), timedelta(days=30), Decimal("0.5"), genesis_time
    )
    return SeatAuction(
        SeatTerms(config=config, emission=emission, operator=OPERATOR, **terms),
        treasury=treasury,
        event_log=event_log,
    )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def t0():
    """Genesis timestamp shared by all engines in a test."""
    return T0


@pytest.fixture
def seat_config():
    return DecayConfig(timedelta(hours=1), Decimal("1"), Decimal("2"))


@pytest.fixture
def raid_config():
    return DecayConfig(timedelta(hours=24), Decimal("10"), Decimal("1.5"))


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def position():
    """Empty in-memory proportional pool."""
    return InMemoryPosition()


@pytest.fixture
def scripted():
    """Scripted adapter whose first deposit mints exactly 50 liquidity."""
    return ScriptedPosition(deltas=[Decimal("50")])


@pytest.fixture
def vault(position, raid_config, event_log):
    """Vault over the in-memory pool."""
    return make_vault(position, raid_config=raid_config, event_log=event_log)


@pytest.fixture
def scripted_vault(scripted, raid_config, event_log):
    """Vault over the scripted adapter."""
    return make_vault(scripted, raid_config=raid_config, event_log=event_log)


@pytest.fixture
def funded_vault(scripted_vault):
    """Scripted vault where alice holds 50 shares and the pot holds (500, 0)."""
    scripted_vault.deposit("alice", Decimal("100"), Decimal("1000"), now=T0)
    scripted_vault.sweeten("treasury", Decimal("500"), Decimal("0"), now=T0)
    return scripted_vault


@pytest.fixture
def seat(seat_config):
    """Standalone seat with no treasury attached."""
    return make_seat(config=seat_config)


@pytest.fixture
def linked(seat_config, vault, event_log):
    """(seat, vault) sharing one event log; seat fees are swept into the vault pot."""
    seat = make_seat(config=seat_config, treasury=vault, event_log=event_log)
    return seat, vault
