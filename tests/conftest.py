"""
Pytest configuration and fixtures for all tests.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient

from identity import principal_from_user, register
from main import app, get_portal
from mongo_store import MongoStore
from services import Portal
from store import MemoryStore

PASSWORD = "secret123"
TEST_DATABASE = "campus_portal_test"


@pytest.fixture(params=["memory", "mongodb"])
def store(request):
    """Every store-backed test runs against both implementations."""
    if request.param == "memory":
        yield MemoryStore()
        return
    client = mongomock.MongoClient()
    yield MongoStore(client[TEST_DATABASE])
    client.drop_database(TEST_DATABASE)


@pytest.fixture
def portal(store):
    return Portal(store)


def _make_principal(store, name, email, role):
    return principal_from_user(register(store, name, email, PASSWORD, role=role))


@pytest.fixture
def alice(store):
    return _make_principal(store, "Alice", "alice@campus.edu", "student")


@pytest.fixture
def bob(store):
    return _make_principal(store, "Bob", "bob@campus.edu", "student")


@pytest.fixture
def khan(store):
    return _make_principal(store, "Dr. Khan", "khan@campus.edu", "faculty")


@pytest.fixture
def lee(store):
    return _make_principal(store, "Dr. Lee", "lee@campus.edu", "faculty")


@pytest.fixture
def admin(store):
    return _make_principal(store, "Admin User", "admin@campus.edu", "admin")


@pytest.fixture
def client(portal):
    app.dependency_overrides[get_portal] = lambda: portal
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login_headers(client):
    """Log a registered user in through the API and return bearer headers."""
    def _login(email, password=PASSWORD):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}
    return _login
