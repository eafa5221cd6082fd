"""Client-side shopping cart. Never persisted on the server."""
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class CartError(ValueError):
    pass


class CartItem(BaseModel):
    product: Dict[str, Any] = Field(..., description="Product in wire shape, as last fetched")
    quantity: int = Field(..., ge=1)


class Cart(BaseModel):
    """Cart lines keyed by product id.

    Every mutation keeps ``1 <= quantity <= product["stock"]``, using the
    stock figure the client last saw for that product.
    """

    items: List[CartItem] = Field(default_factory=list)

    def _find(self, product_id: str):
        for item in self.items:
            if item.product.get("id") == product_id:
                return item
        return None

    def add(self, product: Dict[str, Any], quantity: int = 1) -> CartItem:
        if quantity < 1:
            raise CartError("Quantity must be at least 1")
        stock = int(product.get("stock", 0))
        existing = self._find(product["id"])
        new_quantity = quantity + (existing.quantity if existing else 0)
        if new_quantity > stock:
            if existing:
                raise CartError("Cannot add more items than available stock")
            raise CartError("Not enough stock available")
        if existing:
            existing.product = dict(product)
            existing.quantity = new_quantity
            return existing
        item = CartItem(product=dict(product), quantity=new_quantity)
        self.items.append(item)
        return item

    def set_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        item = self._find(product_id)
        if item is None:
            raise CartError("Item is not in the cart")
        if quantity > int(item.product.get("stock", 0)):
            raise CartError("Cannot add more items than available stock")
        item.quantity = quantity

    def remove(self, product_id: str) -> None:
        self.items = [i for i in self.items if i.product.get("id") != product_id]

    def clear(self) -> None:
        self.items = []

    @property
    def count(self) -> int:
        return sum(i.quantity for i in self.items)

    @property
    def subtotal(self) -> float:
        return round(sum(float(i.product.get("price", 0)) * i.quantity for i in self.items), 2)

    def order_lines(self) -> List[Dict[str, Any]]:
        return [
            {"product": i.product["id"], "quantity": i.quantity, "price": i.product.get("price")}
            for i in self.items
        ]
