"""Shared test fixtures for Credit-Ledger."""

import os
import pytest
from httpx import ASGITransport, AsyncClient


SECRET_KEY = "test-secret-key-for-unit-tests"
API_KEY = "test-admin-api-key"


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def app():
    """Create a test app with in-memory DB."""
    os.environ["LEDGER_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["LEDGER_SECRET_KEY"] = SECRET_KEY
    os.environ["LEDGER_API_KEY"] = API_KEY
    os.environ["LEDGER_ENVIRONMENT"] = "development"
    os.environ["LEDGER_LOCALE"] = "en"

    # Clear caches and singletons so new env vars take effect
    from credit_ledger.common.config import get_settings
    get_settings.cache_clear()

    from credit_ledger.deps import reset_singletons
    reset_singletons()

    from credit_ledger.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from credit_ledger.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-Ledger-Api-Key": API_KEY}


@pytest.fixture
def user_headers(app):
    """Factory for bearer-token headers of an arbitrary user."""
    from credit_ledger.common.security import create_access_token

    def _headers(user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
