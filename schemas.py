"""
Database Schemas for the confectionery storefront

Each Pydantic model represents a collection in your database.
Model name is converted to lowercase for the collection name:
- User -> "user"
- Product -> "product"
- Order -> "order"

Request bodies accepted by the API live at the bottom of this file.
"""

from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field

Role = Literal["user", "manager", "admin"]
OrderStatus = Literal["pending", "completed", "cancelled"]

ORDER_STATUSES = ("pending", "completed", "cancelled")
MANAGER_ROLES = ("manager", "admin")
CATEGORIES = ("sesame", "peanut", "semolina")


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="BCrypt hash of the password")
    role: Role = Field("user", description="user | manager | admin")


class Product(BaseModel):
    title: str = Field(..., description="Display title")
    description: str = Field("", description="Short description")
    price: float = Field(..., ge=0, description="Unit price")
    images: List[str] = Field(default_factory=list, description="Image URLs, first one is displayed")
    stock: int = Field(0, ge=0, description="Units in stock")
    category: str = Field("", description="Free text, the shop uses sesame | peanut | semolina")
    featured: bool = False


class OrderItem(BaseModel):
    product: str = Field(..., description="Product ID")
    title: str = Field(..., description="Snapshot of product title at purchase time")
    qty: int = Field(..., ge=1, description="Quantity ordered")
    price: float = Field(..., ge=0, description="Unit price at purchase time")


class Order(BaseModel):
    user: str = Field(..., description="ID of the user placing the order")
    items: List[OrderItem] = Field(..., description="Line items")
    total: float = Field(..., ge=0, description="Order total")
    status: OrderStatus = "pending"
    address: str = ""


# Request bodies


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    managerCode: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class ProductIn(BaseModel):
    """Product fields as sent by clients. Legacy ``name``/``image`` are accepted."""

    title: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    image: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    featured: Optional[bool] = None


class OrderItemIn(BaseModel):
    product: str
    quantity: int = Field(..., ge=1, validation_alias=AliasChoices("quantity", "qty"))
    price: Optional[float] = Field(None, ge=0)
    title: Optional[str] = None


class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(default_factory=list)
    total: Optional[float] = Field(None, ge=0)
    address: str = ""


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
