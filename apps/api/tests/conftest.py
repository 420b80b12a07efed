import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from dependencies import build_in_memory_services
from main import app
from routers import rate_limit


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def services():
    """Fresh in-memory repositories wired exactly like production services."""
    return build_in_memory_services()


@pytest_asyncio.fixture
async def api_client(services):
    previous = getattr(app.state, "services", None)
    app.state.services = services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.state.services = previous
