"""Root conftest — shared fixtures on a virtual timeline and a simulated ledger.

Invariants:
    - No test sleeps in real time: every service uses VirtualClock
    - Every test gets a fresh SimulatedLedger, registry, and scheduler
    - Funded borrower/lender accounts are opened synchronously on the ledger

Design Decisions:
    - service is built with create_lending_service so tests exercise the real wiring
"""

import pytest

from trustlend.config import Settings
from trustlend.infrastructure.clock import VirtualClock
from trustlend.infrastructure.simulated_ledger import SimulatedLedger
from trustlend.services.lending_service import create_lending_service


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def ledger():
    return SimulatedLedger()


@pytest.fixture
def borrower(ledger):
    return ledger.open_account("borrower", 100)


@pytest.fixture
def lender(ledger):
    return ledger.open_account("lender", 1_000)


@pytest.fixture
async def service(settings, ledger, clock):
    svc = create_lending_service(settings, ledger=ledger, clock=clock)
    await svc.start()
    yield svc
    await svc.shutdown()
