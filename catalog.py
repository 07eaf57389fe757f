"""
Catalog store

Products and categories as seen by buyers and sellers. Public reads only
ever return products that are both active and approved; a hidden listing
and a missing one answer the same NotFound so hidden listings don't leak.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

import config
from database import (NEWEST_FIRST, create_document, get_documents, paginate, serialize_doc,
                      to_object_id, utcnow)
from errors import Forbidden, NotFound, ValidationFailed
from pricing import round_half_up
from schemas import Product, ProductCreate, ProductFilter, ProductUpdate
from security import Actor

logger = logging.getLogger(__name__)

VISIBLE = {"is_active": True, "is_approved": True}

SORTS = {
    "newest": NEWEST_FIRST,
    "price_asc": [("price", ASCENDING), ("_id", DESCENDING)],
    "price_desc": [("price", DESCENDING), ("_id", DESCENDING)],
    "rating": [("rating", DESCENDING), ("_id", DESCENDING)],
}

ADMIN_FIELDS = {
    "name", "brand", "model", "description", "price", "original_price", "category", "condition",
    "storage", "color", "images", "specifications", "issues", "warranty", "is_active",
    "is_featured", "stock",
}
# Sellers may only touch these, and only until the listing is approved
SELLER_FIELDS = {"name", "description", "price", "images", "specifications", "issues"}


def discount_percentage(price: float, original_price: float) -> int:
    if original_price and original_price > price:
        return int(round_half_up((original_price - price) / original_price * 100))
    return 0


def product_view(doc: dict) -> Dict[str, Any]:
    out = serialize_doc(doc)
    out["discount_percentage"] = discount_percentage(doc.get("price", 0), doc.get("original_price", 0))
    return out


def is_visible(doc: Optional[dict]) -> bool:
    return bool(doc) and doc.get("is_active", False) and doc.get("is_approved", False)


def find_visible(db: Database, product_id: str) -> dict:
    """Raw product document if it exists and is listed publicly."""
    oid = to_object_id(product_id, "Product not found")
    product = db["product"].find_one({"_id": oid, **VISIBLE})
    if not product:
        raise NotFound("Product not found")
    return product


def build_query(filters: Optional[ProductFilter]) -> Dict[str, Any]:
    query: Dict[str, Any] = dict(VISIBLE)
    if filters is None:
        return query
    if filters.search:
        pattern = re.escape(filters.search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    for field in ("category", "brand", "condition", "storage"):
        value = getattr(filters, field)
        if value:
            query[field] = value
    if filters.min_price is not None or filters.max_price is not None:
        price = {}
        if filters.min_price is not None:
            price["$gte"] = filters.min_price
        if filters.max_price is not None:
            price["$lte"] = filters.max_price
        query["price"] = price
    return query


def list_products(db: Database, filters: Optional[ProductFilter] = None, sort: str = "newest",
                  page: int = 1, page_size: int = config.DEFAULT_PAGE_SIZE) -> Tuple[List[dict], int]:
    docs, total = paginate(db["product"], build_query(filters), SORTS.get(sort, NEWEST_FIRST), page, page_size)
    return [product_view(d) for d in docs], total


def get_product(db: Database, product_id: str, actor: Optional[Actor] = None) -> Dict[str, Any]:
    oid = to_object_id(product_id, "Product not found")
    product = db["product"].find_one({"_id": oid})
    if not product:
        raise NotFound("Product not found")
    if not is_visible(product):
        privileged = actor is not None and (actor.is_admin or product.get("seller_id") == actor.id)
        if not privileged:
            raise NotFound("Product not found")
    view = product_view(product)
    category = _find_category(db, product.get("category"))
    if category:
        view["category_info"] = {"id": str(category["_id"]), "name": category["name"]}
    seller_id = product.get("seller_id")
    if seller_id and ObjectId.is_valid(seller_id):
        seller = db["user"].find_one({"_id": ObjectId(seller_id)}, {"name": 1, "phone": 1})
        if seller:
            view["seller_info"] = {"id": seller_id, "name": seller["name"], "phone": seller.get("phone")}
    return view


def _find_category(db: Database, category_id: Optional[str]) -> Optional[dict]:
    if not category_id or not ObjectId.is_valid(category_id):
        return None
    return db["category"].find_one({"_id": ObjectId(category_id)})


def _check_category(db: Database, category_id: Optional[str]) -> None:
    if not _find_category(db, category_id):
        raise ValidationFailed.for_field("category", "Valid category ID is required")


def create_product(db: Database, actor: Actor, data: ProductCreate) -> Dict[str, Any]:
    """Admin listings skip moderation."""
    if not actor.is_admin:
        raise Forbidden("Admin only")
    _check_category(db, data.category)
    product = Product(**data.model_dump(), is_approved=True, seller_id=None)
    product_id = create_document(db, "product", product)
    logger.info("Admin %s created product %s", actor.id, product_id)
    return product_view(db["product"].find_one({"_id": ObjectId(product_id)}))


def submit_listing(db: Database, actor: Actor, data: ProductCreate) -> Dict[str, Any]:
    """A user puts their own phone up for sale; it waits in the moderation queue."""
    _check_category(db, data.category)
    fields = data.model_dump(exclude={"is_featured"})
    product = Product(**fields, seller_id=actor.id, is_approved=False)
    product_id = create_document(db, "product", product)
    logger.info("User %s submitted listing %s for approval", actor.id, product_id)
    return product_view(db["product"].find_one({"_id": ObjectId(product_id)}))


def _owned_or_admin(db: Database, actor: Actor, product_id: str, verb: str) -> dict:
    oid = to_object_id(product_id, "Product not found")
    product = db["product"].find_one({"_id": oid})
    if not product:
        raise NotFound("Product not found")
    if not actor.is_admin and product.get("seller_id") != actor.id:
        raise Forbidden(f"Not authorized to {verb} this product")
    return product


def update_product(db: Database, actor: Actor, product_id: str, changes: ProductUpdate) -> Dict[str, Any]:
    product = _owned_or_admin(db, actor, product_id, "update")
    if not actor.is_admin and product.get("is_approved"):
        raise Forbidden("Cannot update approved products")

    allowed = ADMIN_FIELDS if actor.is_admin else SELLER_FIELDS
    updates = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if k in allowed and v is not None}
    if "category" in updates:
        _check_category(db, updates["category"])
    updates["updated_at"] = utcnow()

    updated = db["product"].find_one_and_update(
        {"_id": product["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise NotFound("Product not found")
    return product_view(updated)


def delete_product(db: Database, actor: Actor, product_id: str) -> None:
    product = _owned_or_admin(db, actor, product_id, "delete")
    db["product"].delete_one({"_id": product["_id"]})
    logger.info("User %s deleted product %s", actor.id, product_id)


def list_brands(db: Database) -> List[str]:
    return sorted(db["product"].distinct("brand", VISIBLE))


def list_categories(db: Database) -> List[Dict[str, Any]]:
    docs = get_documents(db, "category", {"is_active": True}, sort=[("sort_order", ASCENDING), ("name", ASCENDING)])
    return [serialize_doc(d) for d in docs]


def list_seller_products(db: Database, actor: Actor) -> List[Dict[str, Any]]:
    docs = get_documents(db, "product", {"seller_id": actor.id}, sort=NEWEST_FIRST)
    return [product_view(d) for d in docs]


def list_seller_rejections(db: Database, actor: Actor) -> List[Dict[str, Any]]:
    docs = get_documents(db, "listing_rejection", {"seller_id": actor.id}, sort=NEWEST_FIRST)
    return [serialize_doc(d) for d in docs]
