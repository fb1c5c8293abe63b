"""Integration test fixtures: the FastAPI app over the in-memory test database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from timesheet_tracker.api.app import create_app
from timesheet_tracker.models import User
from timesheet_tracker.security import create_access_token


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test client bound to the per-test database."""
    app = create_app(session_factory=session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Build bearer headers for a seeded user."""

    def _headers(user: User) -> dict[str, str]:
        token, _ = create_access_token(user.id, user.role, 60_000)
        return {"Authorization": f"Bearer {token}"}

    return _headers
