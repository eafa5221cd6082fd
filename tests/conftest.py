"""Shared fixtures: an app wired to an in-memory mongomock database."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

MANAGER_CODE = "Sweet-Secret-42"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret",
        jwt_expires_in=3600,
        manager_code=MANAGER_CODE,
        bcrypt_rounds=4,
        uploads_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["confectionery_test"]


@pytest.fixture
def app(settings, db):
    return create_app(settings, db)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def register(client, name="Alice", email="a@x.com", password="pw123", manager_code=None):
    body = {"name": name, "email": email, "password": password}
    if manager_code is not None:
        body["managerCode"] = manager_code
    return client.post("/api/auth/register", json=body)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer(client):
    """(token, user) for a registered customer."""
    data = register(client).json()
    return data["token"], data["user"]


@pytest.fixture
def manager(client):
    """(token, user) for a registered manager."""
    data = register(client, name="Nimal", email="nimal@shop.lk", manager_code=MANAGER_CODE).json()
    return data["token"], data["user"]


@pytest.fixture
def make_product(client, manager):
    token, _ = manager

    def _make(**fields):
        body = {"title": "Sesame Toffee", "description": "Crunchy", "price": 250, "stock": 50, "category": "sesame"}
        body.update(fields)
        response = client.post("/api/products", json=body, headers=bearer(token))
        assert response.status_code == 200, response.text
        return response.json()

    return _make
