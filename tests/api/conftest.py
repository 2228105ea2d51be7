"""API test fixtures — FastAPI app wired to the test LendingService.

Invariants:
    - The app under test shares the service fixture (VirtualClock + SimulatedLedger)
    - httpx ASGITransport does not run the lifespan; the service fixture starts it instead
"""

import pytest
from httpx import ASGITransport, AsyncClient

from trustlend.main import create_app


@pytest.fixture
async def client(settings, service):
    app = create_app(settings, service)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as ac:
        yield ac

