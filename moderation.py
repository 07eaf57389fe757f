"""
Admin back office

Listing approval, user management, the order board, categories and the
dashboard numbers. Routes in main.py gate all of it behind require_admin.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import catalog
from accounts import PRIVATE_FIELDS
from database import NEWEST_FIRST, create_document, get_documents, paginate, serialize_doc, to_object_id, utcnow
from errors import Conflict, NotFound, ValidationFailed
from orders import OrderStatus, order_view
from schemas import Category, CategoryUpdate, ListingRejection
from security import Actor

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ("name", "description", "image", "is_active", "sort_order")


# ----------------------- Listings -----------------------

def list_pending(db: Database) -> List[Dict[str, Any]]:
    docs = get_documents(db, "product", {"is_approved": False}, sort=NEWEST_FIRST)
    return [catalog.product_view(d) for d in docs]


def approve(db: Database, product_id: str) -> Dict[str, Any]:
    product = db["product"].find_one_and_update(
        {"_id": to_object_id(product_id, "Product not found")},
        {"$set": {"is_approved": True, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFound("Product not found")
    logger.info("Listing %s approved", product_id)
    return catalog.product_view(product)


def reject(db: Database, actor: Actor, product_id: str, reason: str) -> Dict[str, Any]:
    """Remove a listing, keeping the reason (and what was listed) for the seller."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed.for_field("reason", "Rejection reason is required")
    product = db["product"].find_one({"_id": to_object_id(product_id, "Product not found")})
    if not product:
        raise NotFound("Product not found")

    listing = serialize_doc(product)
    rejection = ListingRejection(
        product_id=product_id,
        seller_id=product.get("seller_id"),
        reason=reason,
        rejected_by=actor.id,
        listing=listing,
    )
    rejection_id = create_document(db, "listing_rejection", rejection)
    db["product"].delete_one({"_id": product["_id"]})
    logger.info("Listing %s rejected by %s: %s", product_id, actor.id, reason)
    return serialize_doc(db["listing_rejection"].find_one({"_id": ObjectId(rejection_id)}))


# ----------------------- Users -----------------------

def list_users(db: Database, page: int = 1, page_size: int = 20) -> Tuple[List[dict], int]:
    projection = {f: 0 for f in PRIVATE_FIELDS}
    docs, total = paginate(db["user"], {"role": "user"}, NEWEST_FIRST, page, page_size, projection)
    return [serialize_doc(d) for d in docs], total


def set_user_active(db: Database, user_id: str, is_active: bool) -> Dict[str, Any]:
    user = db["user"].find_one_and_update(
        {"_id": to_object_id(user_id, "User not found")},
        {"$set": {"is_active": is_active, "updated_at": utcnow()}},
        projection={f: 0 for f in PRIVATE_FIELDS},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise NotFound("User not found")
    logger.info("User %s %s", user_id, "activated" if is_active else "deactivated")
    return serialize_doc(user)


# ----------------------- Orders -----------------------

def list_all_orders(db: Database, status: Optional[str] = None, payment_status: Optional[str] = None,
                    page: int = 1, page_size: int = 20) -> Tuple[List[dict], int]:
    query: Dict[str, Any] = {}
    if status:
        query["order_status"] = status
    if payment_status:
        query["payment_status"] = payment_status
    docs, total = paginate(db["order"], query, NEWEST_FIRST, page, page_size)
    return [order_view(d) for d in docs], total


# ----------------------- Categories -----------------------

def _category_or_404(db: Database, category_id: str) -> dict:
    category = db["category"].find_one({"_id": to_object_id(category_id, "Category not found")})
    if not category:
        raise NotFound("Category not found")
    return category


def create_category(db: Database, data: Category) -> Dict[str, Any]:
    if db["category"].find_one({"name": data.name}):
        raise Conflict("Category name already exists")
    doc = data.model_dump()
    doc["product_count"] = 0
    try:
        category_id = create_document(db, "category", doc)
    except DuplicateKeyError:
        raise Conflict("Category name already exists")
    return serialize_doc(db["category"].find_one({"_id": ObjectId(category_id)}))


def refresh_product_count(db: Database, category_id: ObjectId) -> int:
    """Recount the listed products in a category and cache the number on it."""
    count = db["product"].count_documents({"category": str(category_id), **catalog.VISIBLE})
    db["category"].update_one({"_id": category_id}, {"$set": {"product_count": count}})
    return count


def update_category(db: Database, category_id: str, changes: CategoryUpdate) -> Dict[str, Any]:
    category = _category_or_404(db, category_id)
    updates = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if k in CATEGORY_FIELDS and v is not None}
    if "name" in updates and db["category"].find_one({"name": updates["name"], "_id": {"$ne": category["_id"]}}):
        raise Conflict("Category name already exists")
    updates["updated_at"] = utcnow()
    try:
        db["category"].update_one({"_id": category["_id"]}, {"$set": updates})
    except DuplicateKeyError:
        raise Conflict("Category name already exists")
    refresh_product_count(db, category["_id"])
    return serialize_doc(db["category"].find_one({"_id": category["_id"]}))


def delete_category(db: Database, category_id: str) -> None:
    category = _category_or_404(db, category_id)
    if db["product"].count_documents({"category": str(category["_id"])}) > 0:
        raise Conflict("Cannot delete category with existing products")
    db["category"].delete_one({"_id": category["_id"]})
    logger.info("Category %s (%s) deleted", category_id, category["name"])


# ----------------------- Dashboard -----------------------

def dashboard_stats(db: Database) -> Dict[str, Any]:
    # Stored dates come back naive UTC, so compare against a naive bound
    since = utcnow().replace(tzinfo=None) - timedelta(days=30)
    revenue = list(db["order"].aggregate([
        {"$match": {"payment_status": "paid", "created_at": {"$gte": since}}},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ]))
    recent = get_documents(db, "order", {}, sort=NEWEST_FIRST, limit=5)
    return {
        "stats": {
            "totalUsers": db["user"].count_documents({"role": "user"}),
            "totalProducts": db["product"].count_documents(catalog.VISIBLE),
            "totalOrders": db["order"].count_documents({}),
            "pendingProducts": db["product"].count_documents({"is_approved": False}),
            "cancelledOrders": db["order"].count_documents({"order_status": OrderStatus.CANCELLED}),
            "monthlyRevenue": revenue[0]["total"] if revenue else 0,
        },
        "recentOrders": [order_view(o) for o in recent],
    }
