import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

import accounts
import cart
import catalog
import config
import database
import moderation
import orders
import payments
from database import create_document, ensure_indexes, get_db, pagination_meta
from errors import ShopError
from schemas import (Category, CategoryUpdate, Condition, LineItem, OrderStatusValue, PaymentMethod,
                     PaymentStatus, ProductCreate, ProductFilter, ProductUpdate, ShippingAddress, SortKey, Storage)
from schemas import Product as ProductSchema, User as UserSchema
from security import Actor, get_current_user, get_optional_user, hash_password, require_admin

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("phonemart")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    yield


app = FastAPI(title="PhoneMart API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Utils -----------------------
def ok(data=None, message: Optional[str] = None, **extra):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return JSONResponse(status_code=400, content={"success": False, "message": "Validation failed", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error"})


# ----------------------- Models -----------------------
class RegisterBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class CartAddBody(BaseModel):
    quantity: int = Field(1, ge=1, le=config.MAX_CART_QUANTITY)


class CartUpdateBody(BaseModel):
    quantity: int = Field(..., ge=0, le=config.MAX_CART_QUANTITY)


class OrderCreateBody(BaseModel):
    items: List[LineItem] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "cod"
    notes: Optional[str] = Field(None, max_length=500)


class OrderStatusBody(BaseModel):
    order_status: OrderStatusValue
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class RejectBody(BaseModel):
    reason: str = ""


class UserStatusBody(BaseModel):
    is_active: bool


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "PhoneMart API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/register", status_code=201)
def register(body: RegisterBody, db=Depends(get_db)):
    result = accounts.register(db, body.name, body.email, body.password, body.phone)
    return ok(result, "User registered successfully")


@app.post("/api/auth/login")
def login(body: LoginBody, db=Depends(get_db)):
    return ok(accounts.authenticate(db, body.email, body.password), "Login successful")


@app.get("/api/auth/me")
def me(user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(accounts.get_profile(db, user))


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    condition: Optional[Condition] = None,
    storage: Optional[Storage] = None,
    min_price: Optional[float] = Query(None, ge=0, alias="minPrice"),
    max_price: Optional[float] = Query(None, ge=0, alias="maxPrice"),
    sort: SortKey = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    db=Depends(get_db),
):
    filters = ProductFilter(search=search, category=category, brand=brand, condition=condition,
                            storage=storage, min_price=min_price, max_price=max_price)
    items, total = catalog.list_products(db, filters, sort, page, limit)
    return ok(items, pagination=pagination_meta(page, limit, total))


@app.get("/api/products/categories/all")
def list_categories(db=Depends(get_db)):
    return ok(catalog.list_categories(db))


@app.get("/api/products/brands/all")
def list_brands(db=Depends(get_db)):
    return ok(catalog.list_brands(db))


@app.get("/api/products/{product_id}")
def get_product(product_id: str, user: Optional[Actor] = Depends(get_optional_user), db=Depends(get_db)):
    return ok(catalog.get_product(db, product_id, user))


@app.post("/api/products", status_code=201)
def create_product(body: ProductCreate, user: Actor = Depends(require_admin), db=Depends(get_db)):
    return ok(catalog.create_product(db, user, body), "Product created successfully")


@app.post("/api/products/sell", status_code=201)
def sell_phone(body: ProductCreate, user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(catalog.submit_listing(db, user, body), "Phone listed successfully. Waiting for admin approval.")


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdate, user: Actor = Depends(get_current_user),
                   db=Depends(get_db)):
    return ok(catalog.update_product(db, user, product_id, body), "Product updated successfully")


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: Actor = Depends(get_current_user), db=Depends(get_db)):
    catalog.delete_product(db, user, product_id)
    return ok(message="Product deleted successfully")


# ----------------------- Users -----------------------
@app.get("/api/users/profile")
def profile(user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(accounts.get_profile(db, user))


@app.get("/api/users/wishlist")
def get_wishlist(user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(accounts.get_wishlist(db, user))


@app.post("/api/users/wishlist/{product_id}")
def add_to_wishlist(product_id: str, user: Actor = Depends(get_current_user), db=Depends(get_db)):
    accounts.add_to_wishlist(db, user, product_id)
    return ok(message="Product added to wishlist")


@app.delete("/api/users/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, user: Actor = Depends(get_current_user), db=Depends(get_db)):
    accounts.remove_from_wishlist(db, user, product_id)
    return ok(message="Product removed from wishlist")


@app.get("/api/users/cart")
def get_cart(user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(cart.get_cart(db, user))


@app.post("/api/users/cart/{product_id}")
def add_to_cart(product_id: str, body: Optional[CartAddBody] = None, user: Actor = Depends(get_current_user),
                db=Depends(get_db)):
    quantity = body.quantity if body else 1
    stored = cart.add_item(db, user, product_id, quantity)
    return ok({"product_id": product_id, "quantity": stored}, "Product added to cart")


@app.put("/api/users/cart/{product_id}")
def update_cart(product_id: str, body: CartUpdateBody, user: Actor = Depends(get_current_user),
                db=Depends(get_db)):
    cart.set_quantity(db, user, product_id, body.quantity)
    return ok(message="Product removed from cart" if body.quantity == 0 else "Cart updated")


@app.delete("/api/users/cart")
def clear_cart(user: Actor = Depends(get_current_user), db=Depends(get_db)):
    cart.clear_cart(db, user)
    return ok(message="Cart cleared")


@app.get("/api/users/my-products")
def my_products(user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(catalog.list_seller_products(db, user))


@app.get("/api/users/my-products/rejections")
def my_rejections(user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(catalog.list_seller_rejections(db, user))


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user: Actor = Depends(get_current_user), db=Depends(get_db)):
    order = orders.create_order(db, user, body.items, body.shipping_address, body.payment_method, body.notes)
    return ok(order, "Order created successfully")


@app.get("/api/orders")
def list_orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=config.MAX_PAGE_SIZE),
                user: Actor = Depends(get_current_user), db=Depends(get_db)):
    items, total = orders.list_orders(db, user, page, limit)
    return ok(items, pagination=pagination_meta(page, limit, total))


@app.post("/api/orders/payment-webhook")
async def payment_webhook(request: Request, x_webhook_signature: Optional[str] = Header(None),
                          db=Depends(get_db)):
    body = await request.body()
    result = payments.handle_webhook(db, body, x_webhook_signature)
    return {"status": result["status"]}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: Actor = Depends(get_current_user), db=Depends(get_db)):
    return ok(orders.get_order(db, user, order_id))


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: OrderStatusBody, user: Actor = Depends(require_admin),
                        db=Depends(get_db)):
    order = orders.update_status(db, order_id, body.order_status, body.tracking_number, body.notes)
    return ok(order, "Order status updated successfully")


@app.post("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, user: Actor = Depends(get_current_user), db=Depends(get_db)):
    orders.cancel_order(db, user, order_id)
    return ok(message="Order cancelled successfully")


# ----------------------- Admin -----------------------
@app.get("/api/admin/dashboard")
def admin_dashboard(user: Actor = Depends(require_admin), db=Depends(get_db)):
    return ok(moderation.dashboard_stats(db))


@app.get("/api/admin/users")
def admin_users(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=config.MAX_PAGE_SIZE),
                user: Actor = Depends(require_admin), db=Depends(get_db)):
    items, total = moderation.list_users(db, page, limit)
    return ok(items, pagination=pagination_meta(page, limit, total))


@app.put("/api/admin/users/{user_id}")
def admin_update_user(user_id: str, body: UserStatusBody, user: Actor = Depends(require_admin),
                      db=Depends(get_db)):
    return ok(moderation.set_user_active(db, user_id, body.is_active), "User updated successfully")


@app.get("/api/admin/products/pending")
def admin_pending_products(user: Actor = Depends(require_admin), db=Depends(get_db)):
    return ok(moderation.list_pending(db))


@app.post("/api/admin/products/{product_id}/approve")
def admin_approve_product(product_id: str, user: Actor = Depends(require_admin), db=Depends(get_db)):
    return ok(moderation.approve(db, product_id), "Product approved successfully")


@app.post("/api/admin/products/{product_id}/reject")
def admin_reject_product(product_id: str, body: RejectBody, user: Actor = Depends(require_admin),
                         db=Depends(get_db)):
    return ok(moderation.reject(db, user, product_id, body.reason), "Product rejected and removed")


@app.get("/api/admin/orders")
def admin_orders(status: Optional[OrderStatusValue] = None, payment_status: Optional[PaymentStatus] = Query(None, alias="paymentStatus"),
                 page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=config.MAX_PAGE_SIZE),
                 user: Actor = Depends(require_admin), db=Depends(get_db)):
    items, total = moderation.list_all_orders(db, status, payment_status, page, limit)
    return ok(items, pagination=pagination_meta(page, limit, total))


@app.post("/api/admin/categories", status_code=201)
def admin_create_category(body: Category, user: Actor = Depends(require_admin), db=Depends(get_db)):
    return ok(moderation.create_category(db, body), "Category created successfully")


@app.put("/api/admin/categories/{category_id}")
def admin_update_category(category_id: str, body: CategoryUpdate, user: Actor = Depends(require_admin),
                          db=Depends(get_db)):
    return ok(moderation.update_category(db, category_id, body), "Category updated successfully")


@app.delete("/api/admin/categories/{category_id}")
def admin_delete_category(category_id: str, user: Actor = Depends(require_admin), db=Depends(get_db)):
    moderation.delete_category(db, category_id)
    return ok(message="Category deleted successfully")


# ----------------------- Seed Demo Data -----------------------
DEMO_CATEGORIES = [
    {"name": "Smartphones", "description": "Brand new phones", "sort_order": 1},
    {"name": "Refurbished", "description": "Certified pre-owned phones", "sort_order": 2},
]

DEMO_PRODUCTS = [
    {
        "name": "Pixel 7A",
        "brand": "Google",
        "model": "GWKK3",
        "description": "Powerful camera and smooth Android experience.",
        "price": 34999,
        "original_price": 43999,
        "category": "Smartphones",
        "condition": "new",
        "storage": "128GB",
        "color": "Charcoal",
        "images": ["https://images.unsplash.com/photo-1511707171634-5f897ff02aa9"],
        "specifications": {"ram": "8GB", "display": "6.1in OLED"},
        "warranty": "1 year manufacturer warranty",
        "stock": 25,
        "is_featured": True,
    },
    {
        "name": "iPhone 14",
        "brand": "Apple",
        "model": "A2882",
        "description": "A15 Bionic with stunning display.",
        "price": 69999,
        "original_price": 79900,
        "category": "Smartphones",
        "condition": "new",
        "storage": "128GB",
        "color": "Midnight",
        "images": ["https://images.unsplash.com/photo-1603899123335-4a9d94dfbd89"],
        "specifications": {"ram": "6GB", "processor": "A15 Bionic"},
        "warranty": "1 year manufacturer warranty",
        "stock": 15,
    },
    {
        "name": "Galaxy S21",
        "brand": "Samsung",
        "model": "SM-G991B",
        "description": "Refurbished flagship with a bright 120Hz display.",
        "price": 24999,
        "original_price": 69999,
        "category": "Refurbished",
        "condition": "good",
        "storage": "256GB",
        "color": "Phantom Gray",
        "images": ["https://images.unsplash.com/photo-1610945265064-0e34e5519bbf"],
        "specifications": {"ram": "8GB", "battery": "4000mAh"},
        "issues": ["Minor scratches on frame"],
        "warranty": "6 months seller warranty",
        "stock": 4,
    },
    {
        "name": "iPhone 12",
        "brand": "Apple",
        "model": "A2403",
        "description": "Well kept iPhone 12 with original box.",
        "price": 29999,
        "original_price": 65900,
        "category": "Refurbished",
        "condition": "like-new",
        "storage": "64GB",
        "color": "Blue",
        "images": ["https://images.unsplash.com/photo-1605236453806-6ff36851218e"],
        "specifications": {"processor": "A14 Bionic"},
        "stock": 2,
    },
]


@app.post("/seed")
def seed(db=Depends(get_db)):
    if db["product"].count_documents({}) > 0:
        return {"seeded": False, "message": "Products already exist"}
    ensure_indexes(db)
    category_ids = {}
    for c in DEMO_CATEGORIES:
        existing = db["category"].find_one({"name": c["name"]})
        if existing:
            category_ids[c["name"]] = str(existing["_id"])
        else:
            category_ids[c["name"]] = create_document(db, "category", Category(**c))
    for p in DEMO_PRODUCTS:
        prod = ProductSchema(**{**p, "category": category_ids[p["category"]]}, is_approved=True)
        create_document(db, "product", prod)
    for category_id in category_ids.values():
        moderation.refresh_product_count(db, database.to_object_id(category_id))
    # create admin user if none
    if db["user"].count_documents({"role": "admin"}) == 0:
        admin = UserSchema(name="Admin", email="admin@phonemart.com", password_hash=hash_password("admin123"), role="admin")
        create_document(db, "user", admin)
    return {"seeded": True, "products": db["product"].count_documents({})}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
