import uuid

import httpx
import pytest

from rentmatch.dependencies.auth import get_current_user
from rentmatch.dependencies.stores import get_preferences_store, get_property_store
from rentmatch.main import app
from rentmatch.schemas.property import BuildingRead, PropertyRead
from rentmatch.services.preferences_store import InMemoryPreferencesStore
from rentmatch.services.property_store import InMemoryPropertyStore

TENANT_ID = "8f14e45f-ceea-467f-a8f1-4e6b2a1c9d3e"


def make_property(**fields) -> PropertyRead:
    fields.setdefault("id", uuid.uuid4())
    fields.setdefault("title", "Flat")
    return PropertyRead(**fields)


def make_building(**fields) -> BuildingRead:
    fields.setdefault("id", uuid.uuid4())
    fields.setdefault("name", "Canal House")
    return BuildingRead(**fields)


@pytest.fixture
def tenant():
    return {"user_id": TENANT_ID, "email": "tenant1@example.com", "role": "Tenant"}


@pytest.fixture
def preferences_store():
    return InMemoryPreferencesStore()


@pytest.fixture
def property_store():
    return InMemoryPropertyStore()


@pytest.fixture
def override_stores(preferences_store, property_store):
    app.dependency_overrides[get_preferences_store] = lambda: preferences_store
    app.dependency_overrides[get_property_store] = lambda: property_store
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def mock_auth_dependency(override_stores, tenant):
    async def mock_get_current_user():
        return tenant
    app.dependency_overrides[get_current_user] = mock_get_current_user


@pytest.fixture
def mock_owner_auth_dependency(override_stores):
    async def mock_get_current_user():
        return {"user_id": str(uuid.uuid4()), "email": "owner1@example.com", "role": "Operator"}
    app.dependency_overrides[get_current_user] = mock_get_current_user


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
