"""
Shopping cart aggregate.

The cart lives with the client; this module keeps its rules in one place.
Persistence is injected as a CartStore so the browser storage, a session
or a test dict can sit behind it.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from pricing import calculate_totals, format_money
from schemas import normalize_money


class ProductSnapshot(BaseModel):
    id: str
    name: str
    price: str
    image_url: str = ""

    @field_validator("price", mode="before")
    @classmethod
    def check_price(cls, v):
        return normalize_money(v)


class CartLine(BaseModel):
    product: ProductSnapshot
    size: str
    color: str
    quantity: int = Field(..., ge=1)

    @property
    def key(self):
        return (self.product.id, self.size, self.color)

    @property
    def price(self) -> str:
        return self.product.price


class CartStore:
    """Persistence boundary for a cart."""

    def load(self) -> List[dict]:
        raise NotImplementedError

    def save(self, lines: List[dict]) -> None:
        raise NotImplementedError


class MemoryCartStore(CartStore):
    def __init__(self, lines: Optional[List[dict]] = None):
        self.lines = list(lines or [])

    def load(self) -> List[dict]:
        return [dict(line) for line in self.lines]

    def save(self, lines: List[dict]) -> None:
        self.lines = [dict(line) for line in lines]


class Cart:
    def __init__(self, store: CartStore):
        self.store = store
        self.lines: List[CartLine] = [CartLine(**line) for line in store.load()]

    def _find(self, product_id: str, size: str, color: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.key == (product_id, size, color):
                return line
        return None

    def _save(self):
        self.store.save([line.model_dump() for line in self.lines])

    def add(self, product: ProductSnapshot, size: str, color: str, quantity: int = 1) -> CartLine:
        """Add a line, or bump the quantity of the existing (product, size, color) line."""
        if quantity < 1:
            raise ValueError("Quantity must be positive")
        line = self._find(product.id, size, color)
        if line is None:
            line = CartLine(product=product, size=size, color=color, quantity=quantity)
            self.lines.append(line)
        else:
            line.quantity += quantity
        self._save()
        return line

    def remove(self, product_id: str, size: str, color: str):
        self.lines = [line for line in self.lines if line.key != (product_id, size, color)]
        self._save()

    def update_quantity(self, product_id: str, size: str, color: str, quantity: int):
        if quantity < 1:
            raise ValueError("Quantity must be positive")
        line = self._find(product_id, size, color)
        if line is not None:
            line.quantity = quantity
            self._save()

    def clear(self):
        self.lines = []
        self._save()

    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def totals(self):
        return calculate_totals(self.lines)

    def formatted_totals(self) -> dict:
        totals = self.totals()
        return {k: format_money(v) for k, v in totals._asdict().items()}

    def to_order_items(self) -> List[dict]:
        """Line items in the shape accepted by POST /api/orders."""
        return [
            {
                "product_id": line.product.id,
                "product_name": line.product.name,
                "price": line.product.price,
                "size": line.size,
                "color": line.color,
                "quantity": line.quantity,
            }
            for line in self.lines
        ]
