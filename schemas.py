"""
Database Schemas for the storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
Money fields are fixed-point decimal strings ("29.99"), never floats.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from pricing import format_money, to_decimal

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("unpaid", "paid", "refunded")

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["unpaid", "paid", "refunded"]


def normalize_money(value) -> str:
    if isinstance(value, float):
        raise ValueError("must be a decimal string, not a float")
    amount = to_decimal(value)
    if amount < 0:
        raise ValueError("must not be negative")
    return format_money(amount)


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    is_admin: bool = False


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: str = Field(..., description="Price as a decimal string")
    image_url: str = ""
    available_sizes: List[str] = Field(..., min_length=1)
    available_colors: List[str] = Field(..., min_length=1)
    stock_quantity: int = Field(0, ge=0)
    low_stock_threshold: int = Field(10, ge=0)

    @field_validator("price", mode="before")
    @classmethod
    def check_price(cls, v):
        return normalize_money(v)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[str] = None
    image_url: Optional[str] = None
    available_sizes: Optional[List[str]] = Field(None, min_length=1)
    available_colors: Optional[List[str]] = Field(None, min_length=1)
    stock_quantity: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)

    @field_validator("price", mode="before")
    @classmethod
    def check_price(cls, v):
        if v is None:
            return v
        return normalize_money(v)


class OrderItem(BaseModel):
    product_id: str = Field(..., min_length=1)
    product_name: str = ""
    price: str = "0.00"
    size: str
    color: str
    quantity: int = Field(..., ge=1)

    @field_validator("price", mode="before")
    @classmethod
    def check_price(cls, v):
        return normalize_money(v)


class OrderCreate(BaseModel):
    """Checkout payload. Totals are optional; when sent they are checked."""
    order_number: Optional[str] = Field(None, min_length=1, max_length=64)
    customer_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1)
    shipping_city: str = Field(..., min_length=1)
    shipping_state: str = Field(..., min_length=1)
    shipping_zip: str = Field(..., min_length=1)
    items: List[OrderItem] = []
    subtotal: Optional[str] = None
    tax: Optional[str] = None
    total: Optional[str] = None
    payment_intent_id: Optional[str] = None

    @field_validator("subtotal", "tax", "total", mode="before")
    @classmethod
    def check_totals(cls, v):
        if v is None:
            return v
        return normalize_money(v)


class Order(BaseModel):
    order_number: str
    placement_id: Optional[str] = None
    customer_name: str
    customer_email: EmailStr
    customer_phone: str
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_zip: str
    items: List[OrderItem]
    subtotal: str
    tax: str
    total: str
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "unpaid"
    payment_intent_id: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    payment_status: PaymentStatus


class PaymentIntentItem(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    size: str
    color: str


class PaymentIntentRequest(BaseModel):
    items: List[PaymentIntentItem]
