"""
Order lifecycle

Checkout turns line items into an order whose items, prices and total are
frozen at creation. Stock is reserved with a conditional decrement per
product (``stock >= qty``), only after every line has been validated; if
any reservation fails the ones already taken are released, so a rejected
checkout leaves stock untouched.

Buyers move orders along ``BUYER_TRANSITIONS`` (in practice: cancel).
Admins may set any status directly.
"""

import logging
import secrets
from collections import OrderedDict
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

import catalog
import config
from database import NEWEST_FIRST, create_document, paginate, serialize_doc, to_object_id, utcnow
from errors import Forbidden, InsufficientStock, InvalidTransition, NotFound, Unavailable, ValidationFailed
from pricing import price_summary
from schemas import LineItem, Order, OrderItem, ShippingAddress
from security import Actor

logger = logging.getLogger(__name__)


class OrderStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"

    ALL = (PENDING, CONFIRMED, PROCESSING, SHIPPED, DELIVERED, CANCELLED, RETURNED)
    TERMINAL = (DELIVERED, CANCELLED, RETURNED)
    CANCELLABLE = (PENDING, CONFIRMED)


PAYMENT_METHODS = ("cod", "gateway")

BUYER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.RETURNED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in BUYER_TRANSITIONS.get(current, set())


def check_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f"Order cannot move from {current} to {target}")


def new_order_number() -> str:
    return f"ORD-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


def order_view(doc: dict) -> Dict[str, Any]:
    return serialize_doc(doc)


# ----------------------- Stock reservation -----------------------

def _merge_line_items(items: Iterable[LineItem]) -> "OrderedDict[str, int]":
    demand: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        # Same product spelled in different hex case is one line
        product_id = str(ObjectId(item.product_id)) if ObjectId.is_valid(item.product_id) else item.product_id
        demand[product_id] = demand.get(product_id, 0) + item.quantity
    return demand


def _validate_availability(db: Database, demand: "OrderedDict[str, int]") -> Dict[str, dict]:
    """Check every line before touching stock. Returns the loaded products by id."""
    products = {}
    for product_id, quantity in demand.items():
        product = None
        if ObjectId.is_valid(product_id):
            product = db["product"].find_one({"_id": ObjectId(product_id)})
        if not catalog.is_visible(product):
            raise Unavailable(f"Product {product_id} not found or unavailable")
        if product.get("stock", 0) < quantity:
            raise InsufficientStock(f"Insufficient stock for {product['name']}")
        products[product_id] = product
    return products


def release_stock(db: Database, reservations: Iterable[Tuple[str, int]]) -> None:
    """Give reserved units back. Products deleted in the meantime are skipped."""
    for product_id, quantity in reservations:
        res = db["product"].update_one(
            {"_id": ObjectId(product_id)},
            {"$inc": {"stock": quantity, "sold_count": -quantity}},
        )
        if res.matched_count == 0:
            logger.warning("Product %s no longer exists, %d units not restored", product_id, quantity)


def reserve_stock(db: Database, demand: "OrderedDict[str, int]", products: Dict[str, dict]) -> Dict[str, dict]:
    """
    Atomically take ``demand`` units from each product.

    Each decrement only applies while the product is still listed and has
    enough stock, so concurrent checkouts can't drive stock negative. On
    the first failure everything reserved so far is released. Returns the
    products as they were at reservation time.
    """
    reserved: List[Tuple[str, int]] = []
    snapshots = {}
    for product_id, quantity in demand.items():
        updated = db["product"].find_one_and_update(
            {"_id": ObjectId(product_id), "stock": {"$gte": quantity}, **catalog.VISIBLE},
            {"$inc": {"stock": -quantity, "sold_count": quantity}},
            return_document=ReturnDocument.BEFORE,
        )
        if updated is None:
            logger.warning("Stock reservation failed for product %s, releasing %d earlier reservations",
                           product_id, len(reserved))
            release_stock(db, reserved)
            raise InsufficientStock(f"Insufficient stock for {products[product_id]['name']}")
        reserved.append((product_id, quantity))
        snapshots[product_id] = updated
    return snapshots


# ----------------------- Checkout -----------------------

def create_order(db: Database, actor: Actor, items: List[LineItem], shipping_address: ShippingAddress,
                 payment_method: str = "cod", notes: Optional[str] = None) -> Dict[str, Any]:
    if not items:
        raise ValidationFailed.for_field("items", "At least one item is required")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationFailed.for_field("payment_method", "Invalid payment method")

    demand = _merge_line_items(items)
    products = _validate_availability(db, demand)
    snapshots = reserve_stock(db, demand, products)

    order_items = []
    subtotal = 0
    for product_id, quantity in demand.items():
        product = snapshots[product_id]
        images = product.get("images") or [None]
        order_items.append(OrderItem(
            product_id=product_id,
            name=product["name"],
            price=product["price"],
            quantity=quantity,
            image=images[0],
        ))
        subtotal += product["price"] * quantity

    summary = price_summary(subtotal)
    order = Order(
        user_id=actor.id,
        order_number=new_order_number(),
        items=order_items,
        subtotal=summary["subtotal"],
        tax=summary["tax"],
        shipping=summary["shipping"],
        total_amount=summary["total"],
        shipping_address=shipping_address,
        payment_method=payment_method,
        # No gateway round trip in demo mode; the webhook re-asserts paid later
        payment_status="pending" if payment_method == "cod" else "paid",
        order_status=OrderStatus.PENDING,
        notes=notes,
    )
    try:
        order_id = create_document(db, "order", order)
    except Exception:
        logger.exception("Failed to persist order for user %s, releasing stock", actor.id)
        release_stock(db, demand.items())
        raise

    db["user"].update_one({"_id": ObjectId(actor.id)}, {"$set": {"cart": []}})
    logger.info("Order %s (%s) created for user %s, total %s",
                order_id, order.order_number, actor.id, order.total_amount)
    return order_view(db["order"].find_one({"_id": ObjectId(order_id)}))


# ----------------------- Queries -----------------------

def list_orders(db: Database, actor: Actor, page: int = 1, page_size: int = 10) -> Tuple[List[dict], int]:
    query = {} if actor.is_admin else {"user_id": actor.id}
    docs, total = paginate(db["order"], query, NEWEST_FIRST, page, page_size)
    return [order_view(d) for d in docs], total


def _find_order(db: Database, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order not found")})
    if not order:
        raise NotFound("Order not found")
    return order


def get_order(db: Database, actor: Actor, order_id: str) -> Dict[str, Any]:
    order = _find_order(db, order_id)
    if not actor.is_admin and order["user_id"] != actor.id:
        raise Forbidden("Not authorized to view this order")
    return order_view(order)


# ----------------------- Transitions -----------------------

def cancel_order(db: Database, actor: Actor, order_id: str) -> Dict[str, Any]:
    order = _find_order(db, order_id)
    if order["user_id"] != actor.id:
        raise Forbidden("Not authorized to cancel this order")
    check_transition(order["order_status"], OrderStatus.CANCELLED)

    # Guarded flip: of two racing cancels only one matches, so stock is restored once
    cancelled = db["order"].find_one_and_update(
        {"_id": order["_id"], "order_status": {"$in": list(OrderStatus.CANCELLABLE)}},
        {"$set": {"order_status": OrderStatus.CANCELLED, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if cancelled is None:
        raise InvalidTransition("Order cannot be cancelled at this stage")

    release_stock(db, [(item["product_id"], item["quantity"]) for item in cancelled["items"]])
    logger.info("Order %s cancelled by user %s", order_id, actor.id)
    return order_view(cancelled)


def update_status(db: Database, order_id: str, status: str, tracking_number: Optional[str] = None,
                  notes: Optional[str] = None) -> Dict[str, Any]:
    """Admin override: any enumerated status, no transition graph."""
    if status not in OrderStatus.ALL:
        raise ValidationFailed.for_field("order_status", "Invalid order status")
    order = _find_order(db, order_id)

    now = utcnow()
    updates: Dict[str, Any] = {"order_status": status, "updated_at": now}
    if tracking_number:
        updates["tracking_number"] = tracking_number
    if notes:
        updates["notes"] = notes
    if status == OrderStatus.SHIPPED:
        updates["estimated_delivery"] = now + timedelta(days=config.DELIVERY_ESTIMATE_DAYS)

    updated = db["order"].find_one_and_update(
        {"_id": order["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    logger.info("Order %s status %s -> %s", order_id, order["order_status"], status)
    return order_view(updated)


def mark_paid(db: Database, order_number: str, payment_reference: Optional[str] = None) -> Dict[str, Any]:
    """
    Record a captured payment by external order number.

    Idempotent: repeating it leaves the order as it is. Pending orders are
    confirmed; orders already further along keep their status, and a paid
    order that was cancelled stays cancelled.
    """
    order = db["order"].find_one({"order_number": order_number})
    if not order:
        raise NotFound("Order not found")

    updates: Dict[str, Any] = {"payment_status": "paid", "updated_at": utcnow()}
    if payment_reference:
        updates["payment_reference"] = payment_reference
    if order["order_status"] == OrderStatus.PENDING:
        updates["order_status"] = OrderStatus.CONFIRMED

    updated = db["order"].find_one_and_update(
        {"_id": order["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    logger.info("Order %s marked paid (reference %s)", order_number, payment_reference)
    return order_view(updated)
