"""
Storefront client: the session a shopper or manager holds.

The current user, token and cart are kept in a JSON file between runs and
the token is attached to every API call while one is held.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field

from cart import Cart, CartError
from pages import Login, Navigator, is_customer, landing_page

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class SessionState(BaseModel):
    user: Optional[Dict[str, Any]] = None
    token: Optional[str] = None
    cart: Cart = Field(default_factory=Cart)


class SessionStore:
    """Keeps a SessionState in a JSON file."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> SessionState:
        if not self.path.exists():
            return SessionState()
        try:
            return SessionState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Ignoring unreadable session file %s", self.path)
            return SessionState()

    def save(self, state: SessionState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.model_dump_json(), encoding="utf-8")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class StorefrontClient:
    """
    API client for the storefront.

    ``http`` is anything with a requests-style ``request(method, url, **kw)``;
    a ``requests.Session`` is used by default.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000/api",
        store: Optional[SessionStore] = None,
        http=None,
        timeout: float = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.store = store
        self.http = http or requests.Session()
        self.state = store.load() if store else SessionState()
        self.navigator = Navigator()

    # --- plumbing ---

    def _persist(self) -> None:
        if self.store:
            self.store.save(self.state)

    def _headers(self) -> Dict[str, str]:
        if self.state.token:
            return {"Authorization": f"Bearer {self.state.token}"}
        return {}

    def _call(self, method: str, path: str, **kwargs) -> Any:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        kwargs.setdefault("timeout", self.timeout)
        response = self.http.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        if response.status_code >= 300:
            try:
                message = response.json().get("detail", response.text)
            except ValueError:
                message = response.text
            raise StorefrontError(response.status_code, str(message))
        return response.json()

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self.state.user

    @property
    def cart(self) -> Cart:
        return self.state.cart

    # --- auth ---

    def _start_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.state.token = data["token"]
        self.state.user = data["user"]
        self._persist()
        self.navigator.navigate(landing_page(self.state.user), self.state.user)
        return self.state.user

    def register(self, name: str, email: str, password: str, manager_code: Optional[str] = None) -> Dict[str, Any]:
        body = {"name": name, "email": email, "password": password}
        if manager_code is not None:
            body["managerCode"] = manager_code
        return self._start_session(self._call("POST", "/auth/register", json=body))

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._start_session(self._call("POST", "/auth/login", json={"email": email, "password": password}))

    def logout(self) -> None:
        self.state = SessionState()
        if self.store:
            self.store.clear()
        self.navigator = Navigator()

    # --- catalog ---

    def products(self, **filters) -> List[Dict[str, Any]]:
        params = {k: v for k, v in filters.items() if v is not None}
        return self._call("GET", "/products", params=params)

    def product(self, product_id: str) -> Dict[str, Any]:
        return self._call("GET", f"/products/{product_id}")

    def save_product(self, fields: Dict[str, Any], product_id: Optional[str] = None) -> Dict[str, Any]:
        if product_id:
            return self._call("PUT", f"/products/{product_id}", json=fields)
        return self._call("POST", "/products", json=fields)

    def delete_product(self, product_id: str) -> None:
        self._call("DELETE", f"/products/{product_id}")

    def upload_image(self, filename: str, content: bytes, content_type: str) -> str:
        data = self._call("POST", "/upload", files={"image": (filename, content, content_type)})
        return data["url"]

    # --- cart ---

    def add_to_cart(self, product: Dict[str, Any], quantity: int = 1) -> None:
        if not self.state.user:
            self.navigator.navigate(Login())
            raise CartError("Please login to add items to cart")
        if not is_customer(self.state.user):
            raise CartError("Only customers can add items to cart")
        self.state.cart.add(product, quantity)
        self._persist()

    def update_cart_quantity(self, product_id: str, quantity: int) -> None:
        self.state.cart.set_quantity(product_id, quantity)
        self._persist()

    def remove_from_cart(self, product_id: str) -> None:
        self.state.cart.remove(product_id)
        self._persist()

    # --- orders ---

    def place_order(self, address: str) -> Dict[str, Any]:
        if not self.state.cart.items:
            raise CartError("Cart is empty")
        body = {
            "items": self.state.cart.order_lines(),
            "total": self.state.cart.subtotal,
            "address": address,
        }
        order = self._call("POST", "/orders", json=body)
        self.state.cart.clear()
        self._persist()
        return order

    def orders(self) -> List[Dict[str, Any]]:
        return self._call("GET", "/orders")

    def update_order_status(self, order_id: str, status: str) -> Dict[str, Any]:
        return self._call("PATCH", f"/orders/{order_id}", json={"status": status})

    def stats(self) -> Dict[str, Any]:
        return self._call("GET", "/stats")
