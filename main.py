import hashlib
import logging
import os
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr

import orders as order_service
from database import (
    TransactionsUnavailableError,
    create_document,
    db,
    get_documents,
    get_default_store,
    serialize_doc,
    to_object_id,
)
from payments import STRIPE_SECRET_KEY, PaymentError, PaymentGateway
from pricing import calculate_totals, format_money, to_cents, to_decimal
from schemas import (
    OrderCreate,
    OrderStatusUpdate,
    PaymentIntentRequest,
    Product as ProductSchema,
    ProductUpdate,
    User as UserSchema,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("storefront")

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------- Utils -----------------------
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
security = HTTPBearer()

_store = None


def get_store():
    global _store
    if _store is None:
        _store = get_default_store()
        if _store is None:
            raise HTTPException(status_code=500, detail="Database not configured")
        _store.ensure_indexes()
    return _store


def get_payments() -> PaymentGateway:
    try:
        return PaymentGateway(STRIPE_SECRET_KEY)
    except PaymentError as e:
        raise HTTPException(status_code=500, detail=str(e))


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=7)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), store=Depends(get_store)):
    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    _id = to_object_id(user_id)
    if _id is None:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = store.db["user"].find_one({"_id": _id})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return serialize_doc(user)


def require_admin(user=Depends(get_current_user)):
    if not user.get("is_admin"):
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def order_error_to_http(e: order_service.OrderError) -> HTTPException:
    if isinstance(e, order_service.NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (order_service.DuplicateOrderError, order_service.ConflictError)):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def get_product_or_404(store, product_id: str) -> dict:
    _id = to_object_id(product_id)
    item = store.db["product"].find_one({"_id": _id}) if _id is not None else None
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return item


# ----------------------- Models -----------------------
class LoginBody(BaseModel):
    email: EmailStr
    password: str


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/auth/login")
def login(body: LoginBody, store=Depends(get_store)):
    user = store.db["user"].find_one({"email": body.email})
    if not user or user.get("password_hash") != hash_password(body.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    suser = serialize_doc(user)
    token = create_token({"id": suser["id"], "email": suser["email"], "is_admin": suser.get("is_admin", False)})
    return {"token": token, "user": {"id": suser["id"], "name": suser["name"], "email": suser["email"], "is_admin": suser.get("is_admin", False)}}


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(store=Depends(get_store)):
    return [serialize_doc(p) for p in get_documents("product", database=store.db)]


@app.get("/api/products/{product_id}")
def get_product(product_id: str, store=Depends(get_store)):
    return serialize_doc(get_product_or_404(store, product_id))


@app.post("/api/products", status_code=201)
def create_product(body: ProductSchema, store=Depends(get_store), user=Depends(require_admin)):
    pid = create_document("product", body, database=store.db)
    logger.info("Product %s created by %s", pid, user["email"])
    return serialize_doc(store.db["product"].find_one({"_id": to_object_id(pid)}))


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdate, store=Depends(get_store), user=Depends(require_admin)):
    _id = to_object_id(product_id)
    if _id is None:
        raise HTTPException(status_code=404, detail="Product not found")
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = datetime.now(timezone.utc)
    res = store.db["product"].update_one({"_id": _id}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(store.db["product"].find_one({"_id": _id}))


@app.delete("/api/products/{product_id}", status_code=204)
def delete_product(product_id: str, store=Depends(get_store), user=Depends(require_admin)):
    _id = to_object_id(product_id)
    res = store.db["product"].delete_one({"_id": _id}) if _id is not None else None
    if res is None or res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Product %s deleted by %s", product_id, user["email"])


# ----------------------- Payments -----------------------
@app.post("/api/create-payment-intent")
def create_payment_intent(body: PaymentIntentRequest, store=Depends(get_store), payments: PaymentGateway = Depends(get_payments)):
    lines = []
    for item in body.items:
        _id = to_object_id(item.product_id)
        product = store.db["product"].find_one({"_id": _id}) if _id is not None else None
        if not product:
            raise HTTPException(status_code=400, detail=f"Product not found: {item.product_id}")
        if product.get("stock_quantity", 0) < item.quantity:
            raise HTTPException(
                status_code=400,
                detail=f"Insufficient stock for {product['name']}. Available: {product.get('stock_quantity', 0)}",
            )
        lines.append({"price": product["price"], "quantity": item.quantity})

    totals = calculate_totals(lines)
    if totals.total <= 0:
        raise HTTPException(status_code=400, detail="Invalid cart total")

    formatted = {k: format_money(v) for k, v in totals._asdict().items()}
    try:
        intent = payments.create_intent(to_cents(totals.total), metadata=formatted)
    except PaymentError as e:
        logger.error("Error creating payment intent: %s", e)
        raise HTTPException(status_code=500, detail=f"Error creating payment intent: {e}")
    return {"client_secret": intent["client_secret"], **formatted}


@app.get("/api/verify-payment/{payment_intent_id}")
def verify_payment(payment_intent_id: str, payments: PaymentGateway = Depends(get_payments)):
    try:
        intent = payments.retrieve_intent(payment_intent_id)
    except PaymentError as e:
        logger.error("Error verifying payment: %s", e)
        raise HTTPException(status_code=500, detail=f"Error verifying payment: {e}")
    return {
        "status": intent["status"],
        "amount": format_money(to_decimal(intent["amount"]) / 100),
        "metadata": intent["metadata"],
    }


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreate, store=Depends(get_store)):
    try:
        return order_service.place_order(store, body)
    except order_service.OrderError as e:
        logger.warning("Error creating order: %s", e)
        raise order_error_to_http(e)
    except TransactionsUnavailableError as e:
        logger.error("Order rejected: %s", e)
        raise HTTPException(status_code=503, detail=str(e))


@app.get("/api/orders")
def list_orders(store=Depends(get_store), user=Depends(require_admin)):
    return order_service.list_orders(store)


@app.get("/api/orders/{order_number}")
def get_order(order_number: str, store=Depends(get_store)):
    try:
        return order_service.get_order_by_number(store, order_number)
    except order_service.OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@app.patch("/api/orders/{order_id}")
def update_order(order_id: str, body: OrderStatusUpdate, store=Depends(get_store), user=Depends(require_admin)):
    try:
        order = order_service.update_order_status(store, order_id, body.status, body.payment_status)
    except order_service.OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Order %s set to %s/%s by %s", order["order_number"], body.status, body.payment_status, user["email"])
    return order


# ----------------------- Admin -----------------------
@app.get("/admin/stats")
def admin_stats(store=Depends(get_store), user=Depends(require_admin)):
    return {
        "users": store.db["user"].count_documents({}),
        "products": store.db["product"].count_documents({}),
        "orders": store.db["order"].count_documents({}),
        "pending_orders": store.db["order"].count_documents({"status": "pending"}),
    }


@app.get("/admin/low-stock")
def low_stock(store=Depends(get_store), user=Depends(require_admin)):
    items = [serialize_doc(p) for p in get_documents("product", database=store.db)]
    return [p for p in items if p.get("stock_quantity", 0) <= p.get("low_stock_threshold", 10)]


# ----------------------- Seed Demo Data -----------------------
DEMO_PRODUCTS = [
    {
        "name": "Boardwalk Classic Tee",
        "description": "Soft ring-spun cotton tee with a vintage boardwalk print.",
        "price": "29.99",
        "image_url": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab",
        "available_sizes": ["S", "M", "L", "XL"],
        "available_colors": ["White", "Navy", "Heather Gray"],
        "stock_quantity": 100,
        "low_stock_threshold": 10,
    },
    {
        "name": "Sunset Surf Tee",
        "description": "Garment-dyed tee with a sunset wave graphic.",
        "price": "24.99",
        "image_url": "https://images.unsplash.com/photo-1503341504253-dff4815485f1",
        "available_sizes": ["S", "M", "L"],
        "available_colors": ["Coral", "Sand"],
        "stock_quantity": 60,
        "low_stock_threshold": 10,
    },
    {
        "name": "Lighthouse Pocket Tee",
        "description": "Relaxed fit pocket tee with an embroidered lighthouse.",
        "price": "34.99",
        "image_url": "https://images.unsplash.com/photo-1583743814966-8936f5b7be1a",
        "available_sizes": ["M", "L", "XL", "XXL"],
        "available_colors": ["Black", "Forest Green"],
        "stock_quantity": 8,
        "low_stock_threshold": 10,
    },
    {
        "name": "Shore Thing Tank",
        "description": "Lightweight tank for hot days on the sand.",
        "price": "19.99",
        "image_url": "https://images.unsplash.com/photo-1562157873-818bc0726f68",
        "available_sizes": ["XS", "S", "M", "L"],
        "available_colors": ["Sky Blue", "White"],
        "stock_quantity": 40,
        "low_stock_threshold": 5,
    },
]


@app.post("/seed")
def seed(store=Depends(get_store)):
    if store.db["product"].count_documents({}) > 0:
        return {"seeded": False, "message": "Products already exist"}
    for p in DEMO_PRODUCTS:
        prod = ProductSchema(**p)
        create_document("product", prod, database=store.db)
    # create admin user if none
    if store.db["user"].count_documents({"is_admin": True}) == 0:
        admin_email = os.getenv("ADMIN_EMAIL", "admin@shop.com")
        admin_password = os.getenv("ADMIN_PASSWORD", "admin123")
        admin = UserSchema(name="Admin", email=admin_email, password_hash=hash_password(admin_password), is_admin=True)
        create_document("user", admin, database=store.db)
    return {"seeded": True, "products": store.db["product"].count_documents({})}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
