"""
Translation between the storage schema (snake_case, ``title``/``images``)
and the wire schema clients see (``name``/``image``, camelCase timestamps).

Handlers call these once per direction and never rename fields themselves.
"""
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from schemas import ProductIn


def _iso(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def product_to_storage(payload: ProductIn, partial: bool = False) -> Dict[str, Any]:
    """Normalize client product fields to the stored shape.

    With ``partial`` only the fields the client actually sent are returned,
    so the result can be used directly as a ``$set`` document.
    """
    sent = payload.model_dump(exclude_unset=True)
    fields: Dict[str, Any] = {}

    title = sent.get("title") or sent.get("name")
    if title is not None:
        fields["title"] = title

    if "images" in sent or "image" in sent:
        images = sent.get("images")
        if images is None:
            images = [sent["image"]] if sent.get("image") else []
        fields["images"] = list(images)
    elif not partial:
        fields["images"] = []

    for key in ("description", "price", "stock", "category", "featured"):
        if key in sent and sent[key] is not None:
            fields[key] = sent[key]

    if not partial:
        fields.setdefault("description", "")
        fields.setdefault("stock", 0)
        fields.setdefault("category", "")
        fields.setdefault("featured", False)
    return fields


def product_to_wire(doc: Mapping[str, Any]) -> Dict[str, Any]:
    images = doc.get("images") or []
    return {
        "id": _id(doc.get("_id")),
        "name": doc.get("title", ""),
        "description": doc.get("description") or "",
        "price": doc.get("price", 0),
        "image": images[0] if images else "",
        "category": doc.get("category") or "",
        "stock": doc.get("stock", 0),
        "featured": bool(doc.get("featured", False)),
        "createdAt": _iso(doc.get("created_at")),
        "updatedAt": _iso(doc.get("updated_at")),
    }


def user_to_wire(doc: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": _id(doc.get("_id")),
        "name": doc.get("name", ""),
        "email": doc.get("email"),
        "role": doc.get("role", "user"),
    }


def order_item_to_wire(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "product": _id(item.get("product")),
        "title": item.get("title", ""),
        "quantity": item.get("qty", 0),
        "price": item.get("price", 0),
    }


def order_to_wire(doc: Mapping[str, Any], users: Optional[Mapping[Any, Mapping[str, Any]]] = None) -> Dict[str, Any]:
    """Order as returned to clients.

    ``users`` maps user ObjectIds to user documents; when given, the owning
    user is populated instead of being returned as a bare id.
    """
    owner = doc.get("user")
    if users is not None and owner in users:
        user = user_to_wire(users[owner])
    else:
        user = _id(owner)
    return {
        "id": _id(doc.get("_id")),
        "user": user,
        "items": [order_item_to_wire(i) for i in doc.get("items", [])],
        "total": doc.get("total", 0),
        "status": doc.get("status", "pending"),
        "address": doc.get("address") or "",
        "createdAt": _iso(doc.get("created_at")),
        "updatedAt": _iso(doc.get("updated_at")),
    }
