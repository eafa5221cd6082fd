"""Integration tests for registration, login and the route access policy."""

import time

import pytest
from bson import ObjectId
from fastapi.routing import APIRoute

from auth import ROUTE_POLICY, Access, access_for
from conftest import MANAGER_CODE, bearer, register
from security import issue_token


class TestRegister:
    """Tests for POST /api/auth/register."""

    def test_register_customer(self, client):
        response = register(client)

        assert response.status_code == 200
        data = response.json()
        assert data["token"]
        assert data["user"]["role"] == "user"
        assert data["user"]["name"] == "Alice"
        assert data["user"]["email"] == "a@x.com"
        assert "password_hash" not in data["user"]

    def test_duplicate_email(self, client):
        register(client)
        response = register(client)

        assert response.status_code == 400
        assert response.json()["detail"] == "Email already in use"

    @pytest.mark.parametrize("missing", ["name", "email", "password"])
    def test_missing_fields(self, client, missing):
        body = {"name": "Alice", "email": "a@x.com", "password": "pw123"}
        body.pop(missing)

        response = client.post("/api/auth/register", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == "Name, email and password are required"

    def test_manager_code_grants_manager(self, client):
        response = register(client, manager_code=MANAGER_CODE)
        assert response.json()["user"]["role"] == "manager"

    @pytest.mark.parametrize("code", [MANAGER_CODE.lower(), f" {MANAGER_CODE}", f"{MANAGER_CODE} ", "", "nope"])
    def test_manager_code_must_match_exactly(self, client, code):
        response = register(client, manager_code=code)
        assert response.json()["user"]["role"] == "user"

    def test_password_stored_hashed(self, client, db):
        register(client)
        stored = db["user"].find_one({"email": "a@x.com"})

        assert stored["password_hash"] != "pw123"
        assert stored["password_hash"].startswith("$2b$")

    @pytest.mark.parametrize("password", ["p" * 80, "ශ" * 25])
    def test_password_over_72_bytes_rejected(self, client, db, password):
        """bcrypt cannot hash more than 72 bytes, so longer passwords are refused."""
        response = register(client, password=password)

        assert response.status_code == 400
        assert response.json()["detail"] == "Password must be at most 72 bytes"
        assert db["user"].find_one({"email": "a@x.com"}) is None

    def test_password_of_exactly_72_bytes_accepted(self, client):
        response = register(client, password="p" * 72)
        assert response.status_code == 200

    def test_invalid_email_is_bad_request(self, client):
        response = client.post("/api/auth/register", json={"name": "A", "email": "nope", "password": "pw"})
        assert response.status_code == 400


class TestUnsetManagerCode:
    """With no manager code configured nobody becomes a manager."""

    def test_empty_code_does_not_match(self, settings, db):
        from fastapi.testclient import TestClient
        from main import create_app

        app = create_app(settings.model_copy(update={"manager_code": ""}), db)
        with TestClient(app) as client:
            response = register(client, manager_code="")
        assert response.json()["user"]["role"] == "user"


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_login_success(self, client):
        register(client)
        response = client.post("/api/auth/login", json={"email": "a@x.com", "password": "pw123"})

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "a@x.com"
        assert response.json()["token"]

    def test_wrong_password_and_unknown_email_look_the_same(self, client):
        register(client)
        wrong = client.post("/api/auth/login", json={"email": "a@x.com", "password": "bad"})
        unknown = client.post("/api/auth/login", json={"email": "b@x.com", "password": "pw123"})

        assert wrong.status_code == unknown.status_code == 400
        assert wrong.json() == unknown.json() == {"detail": "Invalid credentials"}

    def test_overlong_password_is_invalid_credentials(self, client):
        register(client)
        response = client.post("/api/auth/login", json={"email": "a@x.com", "password": "p" * 80})

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid credentials"}

    def test_missing_fields(self, client):
        response = client.post("/api/auth/login", json={"email": "a@x.com"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Email and password are required"

    def test_token_works_on_protected_route(self, client):
        register(client)
        token = client.post("/api/auth/login", json={"email": "a@x.com", "password": "pw123"}).json()["token"]

        response = client.get("/api/auth/me", headers=bearer(token))

        assert response.status_code == 200
        assert response.json()["email"] == "a@x.com"


class TestAuthGate:
    """Tests for token checks on protected routes."""

    def test_missing_header(self, client):
        response = client.get("/api/orders")

        assert response.status_code == 401
        assert response.json()["detail"] == "No token"

    def test_malformed_and_expired_are_indistinguishable(self, client, customer, settings):
        _, user = customer
        expired = issue_token({"_id": ObjectId(user["id"]), "role": "user"}, settings, now=int(time.time()) - 7200)

        malformed = client.get("/api/orders", headers=bearer("garbage"))
        stale = client.get("/api/orders", headers=bearer(expired))

        assert malformed.status_code == stale.status_code == 401
        assert malformed.json() == stale.json() == {"detail": "Invalid token"}

    def test_non_bearer_scheme(self, client, customer):
        token, _ = customer
        response = client.get("/api/orders", headers={"Authorization": f"Basic {token}"})
        assert response.status_code == 401

    def test_customer_cannot_create_product(self, client, customer):
        token, _ = customer
        response = client.post("/api/products", json={"title": "X", "price": 1}, headers=bearer(token))

        assert response.status_code == 403
        assert response.json()["detail"] == "Requires manager role"

    def test_anonymous_cannot_create_product(self, client):
        response = client.post("/api/products", json={"title": "X", "price": 1})
        assert response.status_code == 401


class TestRoutePolicy:
    """Tests for the declarative route policy table."""

    def test_every_api_route_has_a_policy(self, app):
        for route in app.routes:
            if isinstance(route, APIRoute) and route.path.startswith("/api"):
                for method in route.methods:
                    assert (method, route.path) in ROUTE_POLICY, f"{method} {route.path}"

    def test_product_writes_are_manager_only(self):
        assert access_for("POST", "/api/products") is Access.MANAGER
        assert access_for("put", "/api/products/{product_id}") is Access.MANAGER
        assert access_for("DELETE", "/api/products/{product_id}") is Access.MANAGER

    def test_unknown_routes_require_authentication(self):
        assert access_for("GET", "/api/unknown") is Access.AUTHENTICATED
