"""
Request authentication and the route access policy.

Every API route is listed in ROUTE_POLICY with the access it requires.
enforce_access runs as a router dependency, looks the matched route up in
the table and applies the matching check, so handlers never gate themselves.
"""
import logging
from enum import Enum
from typing import Dict, Optional, Tuple

from fastapi import Depends, Header, Request
from pymongo.database import Database

from config import Settings
from errors import Forbidden, Unauthenticated
from security import Identity, InvalidToken, verify_token

logger = logging.getLogger(__name__)


class Access(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    MANAGER = "manager"


ROUTE_POLICY: Dict[Tuple[str, str], Access] = {
    ("POST", "/api/auth/register"): Access.PUBLIC,
    ("POST", "/api/auth/login"): Access.PUBLIC,
    ("GET", "/api/auth/me"): Access.AUTHENTICATED,
    ("GET", "/api/products"): Access.PUBLIC,
    ("GET", "/api/products/{product_id}"): Access.PUBLIC,
    ("POST", "/api/products"): Access.MANAGER,
    ("PUT", "/api/products/{product_id}"): Access.MANAGER,
    ("DELETE", "/api/products/{product_id}"): Access.MANAGER,
    ("POST", "/api/orders"): Access.AUTHENTICATED,
    ("GET", "/api/orders"): Access.AUTHENTICATED,
    ("GET", "/api/orders/{order_id}"): Access.AUTHENTICATED,
    ("PATCH", "/api/orders/{order_id}"): Access.MANAGER,
    ("GET", "/api/stats"): Access.MANAGER,
    ("POST", "/api/upload"): Access.PUBLIC,
}


def access_for(method: str, path: str) -> Access:
    return ROUTE_POLICY.get((method.upper(), path), Access.AUTHENTICATED)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.db


def bearer_token(authorization: Optional[str]) -> str:
    scheme, _, token = (authorization or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Invalid token")
    return token.strip()


def authenticate(authorization: Optional[str], settings: Settings) -> Identity:
    if not authorization:
        raise Unauthenticated("No token")
    try:
        return verify_token(bearer_token(authorization), settings)
    except InvalidToken as exc:
        logger.debug("Token rejected: %s", exc)
        raise Unauthenticated("Invalid token")


def require_manager(identity: Optional[Identity]) -> Identity:
    if identity is None or not identity.is_manager:
        raise Forbidden("Requires manager role")
    return identity


def enforce_access(
    request: Request,
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> Optional[Identity]:
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    access = access_for(request.method, path)
    if access is Access.PUBLIC:
        return None
    identity = authenticate(authorization, settings)
    if access is Access.MANAGER:
        require_manager(identity)
    request.state.identity = identity
    return identity


def current_identity(identity: Optional[Identity] = Depends(enforce_access)) -> Identity:
    if identity is None:
        raise Unauthenticated("No token")
    return identity
