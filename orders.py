"""
Order placement and order management.

`place_order` is the checkout transaction: it validates stock for every
line item and, only when all of them fit, decrements stock and records the
order in one unit of work. Stock decrements are guarded by the store so two
checkouts racing for the same units cannot both succeed; the loser sees a
conflict and the whole sequence is retried.
"""
import logging
import os
import secrets
import time
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import List, Optional

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from database import TransientStoreError, serialize_doc, to_object_id
from pricing import order_totals
from schemas import Order, OrderCreate, OrderItem

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = int(os.getenv("ORDER_MAX_ATTEMPTS", "3"))


# ----------------------- Errors -----------------------
class OrderError(Exception):
    """Base class for failures the caller should see."""


class NotFoundError(OrderError):
    pass


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_ref: str):
        self.order_ref = order_ref
        super().__init__(f"Order not found: {order_ref}")


class InsufficientStockError(OrderError):
    def __init__(self, product_id: str, product_name: str, requested: int, available: int):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_name}. Requested: {requested}, Available: {available}"
        )


class OrderValidationError(OrderError):
    pass


class DuplicateOrderError(OrderValidationError):
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order number already exists: {order_number}")


class ConflictError(OrderError):
    """Stock changed under a running checkout; safe to retry."""


# ----------------------- Placement -----------------------
def generate_order_number() -> str:
    return f"TS{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


def stock_requirements(items: List[OrderItem]) -> "OrderedDict[str, int]":
    """Quantity per product, summed over sizes and colors."""
    required = OrderedDict()
    for item in items:
        required[item.product_id] = required.get(item.product_id, 0) + item.quantity
    return required


def _capture_items(items: List[OrderItem], products: dict) -> List[OrderItem]:
    captured = []
    for item in items:
        product = products[item.product_id]
        captured.append(item.model_copy(update={
            "product_name": product.get("name", ""),
            "price": product.get("price", "0.00"),
        }))
    return captured


def _check_submitted_totals(payload: OrderCreate, totals: dict):
    for field in ("subtotal", "tax", "total"):
        submitted = getattr(payload, field)
        if submitted is not None and submitted != totals[field]:
            raise OrderValidationError("Order totals do not match current prices")


def _attempt(uow, payload: OrderCreate, order_number: str, placement_id: str) -> dict:
    existing = uow.find_order(order_number)
    if existing is not None:
        # an earlier attempt of this same call committed before its outcome was known
        if existing.get("placement_id") == placement_id:
            return existing
        raise DuplicateOrderError(order_number)

    required = stock_requirements(payload.items)
    products = {}
    for product_id, quantity in required.items():
        product = uow.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        available = int(product.get("stock_quantity", 0))
        if available < quantity:
            raise InsufficientStockError(product_id, product.get("name", product_id), quantity, available)
        products[product_id] = product

    items = _capture_items(payload.items, products)
    totals = order_totals(items)
    _check_submitted_totals(payload, totals)

    for product_id, quantity in required.items():
        if not uow.decrement_stock(product_id, quantity):
            raise ConflictError(f"Stock changed for product {product_id}")

    order = Order(
        order_number=order_number,
        placement_id=placement_id,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        shipping_address=payload.shipping_address,
        shipping_city=payload.shipping_city,
        shipping_state=payload.shipping_state,
        shipping_zip=payload.shipping_zip,
        items=items,
        payment_intent_id=payload.payment_intent_id,
        **totals,
    )
    try:
        return uow.insert_order(order.model_dump())
    except DuplicateKeyError:
        raise DuplicateOrderError(order_number)


def place_order(store, payload: OrderCreate, max_attempts: Optional[int] = None) -> dict:
    """Validate stock, decrement it and record the order, all or nothing.

    Raises ProductNotFoundError, InsufficientStockError or
    OrderValidationError without retrying. Conflicts are retried up to
    `max_attempts` times, then ConflictError is raised. Every attempt
    carries the same placement id, so an attempt whose commit did land is
    returned instead of being reported as a duplicate.
    """
    max_attempts = max_attempts or DEFAULT_MAX_ATTEMPTS
    order_number = payload.order_number or generate_order_number()
    placement_id = uuid.uuid4().hex
    attempt = 0
    while True:
        attempt += 1
        try:
            doc = store.run(lambda uow: _attempt(uow, payload, order_number, placement_id))
        except (ConflictError, TransientStoreError) as e:
            if attempt >= max_attempts:
                logger.error("Order %s failed after %d attempts: %s", order_number, attempt, e)
                raise ConflictError("Order could not be placed due to concurrent updates, please retry") from e
            logger.warning("Retrying order %s after conflict (attempt %d): %s", order_number, attempt, e)
            continue
        logger.info("Placed order %s with %d item(s), total %s", order_number, len(doc["items"]), doc["total"])
        return serialize_doc(doc)


# ----------------------- Queries and status -----------------------
def get_order_by_number(store, order_number: str) -> dict:
    doc = store.db["order"].find_one({"order_number": order_number})
    if not doc:
        raise OrderNotFoundError(order_number)
    return serialize_doc(doc)


def list_orders(store) -> List[dict]:
    return [serialize_doc(o) for o in store.db["order"].find({}).sort("created_at", DESCENDING)]


def update_order_status(store, order_id: str, status: str, payment_status: str) -> dict:
    """Set both status fields. Any combination is accepted, no transition rules."""
    _id = to_object_id(order_id)
    if _id is None:
        raise OrderNotFoundError(order_id)
    res = store.db["order"].update_one(
        {"_id": _id},
        {"$set": {"status": status, "payment_status": payment_status, "updated_at": datetime.now(timezone.utc)}},
    )
    if res.matched_count == 0:
        raise OrderNotFoundError(order_id)
    return serialize_doc(store.db["order"].find_one({"_id": _id}))
