import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch):
    """Fresh users, ownership rows and provider for every test."""
    from src.studio.api.main import app
    from src.studio.infrastructure import ownership_store
    from src.studio.security import auth
    from src.studio.services.provider import get_provider
    from tests.utils import FakeProvider

    monkeypatch.delenv("STUDIO_RATE_LIMIT_DISABLED", raising=False)
    monkeypatch.delenv("STUDIO_OWNERSHIP_STORE_IMPL", raising=False)
    ownership_store.reset_ownership_store()
    auth.reset_users()

    provider = FakeProvider()
    app.dependency_overrides[get_provider] = lambda: provider
    yield
    app.dependency_overrides.clear()
    ownership_store.reset_ownership_store()


@pytest.fixture
def provider():
    from src.studio.api.main import app
    from src.studio.services.provider import get_provider

    return app.dependency_overrides[get_provider]()


@pytest.fixture
def store():
    from src.studio.infrastructure.ownership_store import get_ownership_store

    return get_ownership_store()
