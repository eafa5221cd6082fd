"""
Storefront page state.

Each page is its own variant; pages that need data carry it, so a product
detail page cannot exist without a product.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from schemas import MANAGER_ROLES


@dataclass(frozen=True)
class Home:
    pass


@dataclass(frozen=True)
class Products:
    pass


@dataclass(frozen=True)
class About:
    pass


@dataclass(frozen=True)
class Contact:
    pass


@dataclass(frozen=True)
class Login:
    pass


@dataclass(frozen=True)
class ManagerLogin:
    pass


@dataclass(frozen=True)
class ManagerRegister:
    pass


@dataclass(frozen=True)
class ProductDetail:
    product: Dict[str, Any]


@dataclass(frozen=True)
class CartPage:
    pass


@dataclass(frozen=True)
class Checkout:
    pass


@dataclass(frozen=True)
class CustomerDashboard:
    pass


@dataclass(frozen=True)
class ManagerDashboard:
    pass


@dataclass(frozen=True)
class EditProduct:
    product: Optional[Dict[str, Any]] = None  # None adds a new product


Page = Union[
    Home, Products, About, Contact, Login, ManagerLogin, ManagerRegister,
    ProductDetail, CartPage, Checkout, CustomerDashboard, ManagerDashboard, EditProduct,
]

CUSTOMER_PAGES = (CartPage, Checkout, CustomerDashboard)
MANAGER_PAGES = (ManagerDashboard, EditProduct)


def is_manager(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") in MANAGER_ROLES


def is_customer(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") == "user"


def landing_page(user: Dict[str, Any]) -> Page:
    return ManagerDashboard() if is_manager(user) else CustomerDashboard()


def guard(page: Page, user: Optional[Dict[str, Any]]) -> Page:
    """Return the page the user may actually see for a navigation request."""
    if isinstance(page, CUSTOMER_PAGES) and not is_customer(user):
        return Login()
    if isinstance(page, MANAGER_PAGES) and not is_manager(user):
        return ManagerLogin()
    return page


class Navigator:
    def __init__(self, page: Optional[Page] = None):
        self.page: Page = page or Home()

    def navigate(self, page: Page, user: Optional[Dict[str, Any]] = None) -> Page:
        self.page = guard(page, user)
        return self.page
