"""
Shopping cart

The cart lives inside the user document and stores nothing but
``{product_id, quantity}`` pairs. Prices are joined in at read time, and
entries whose product has disappeared or been hidden are left out of the
view while staying in storage until the user removes them.
"""

from typing import Any, Dict, List

from bson import ObjectId
from pymongo.database import Database

import catalog
import config
from database import to_object_id
from errors import NotFound, OutOfStock, ValidationFailed
from pricing import price_summary
from security import Actor


def _load_entries(db: Database, actor: Actor) -> List[Dict[str, Any]]:
    user = db["user"].find_one({"_id": ObjectId(actor.id)}, {"cart": 1})
    if not user:
        raise NotFound("User not found")
    return list(user.get("cart", []))


def _save_entries(db: Database, actor: Actor, entries: List[Dict[str, Any]]) -> None:
    db["user"].update_one({"_id": ObjectId(actor.id)}, {"$set": {"cart": entries}})


def get_cart(db: Database, actor: Actor) -> Dict[str, Any]:
    entries = _load_entries(db, actor)
    ids = [ObjectId(e["product_id"]) for e in entries if ObjectId.is_valid(e.get("product_id", ""))]
    products = {
        str(p["_id"]): p
        for p in db["product"].find({"_id": {"$in": ids}, **catalog.VISIBLE})
    } if ids else {}

    items = []
    subtotal = 0
    for entry in entries:
        product = products.get(entry["product_id"])
        if product is None:
            continue
        line_total = product["price"] * entry["quantity"]
        subtotal += line_total
        items.append({"product": catalog.product_view(product), "quantity": entry["quantity"], "total": line_total})

    return {"items": items, "summary": price_summary(subtotal)}


def add_item(db: Database, actor: Actor, product_id: str, quantity: int = 1) -> int:
    """Add or top up an entry; returns the quantity now stored."""
    if not 1 <= quantity <= config.MAX_CART_QUANTITY:
        raise ValidationFailed.for_field("quantity", f"Quantity must be 1-{config.MAX_CART_QUANTITY}")

    product = catalog.find_visible(db, product_id)
    product_id = str(product["_id"])
    stock = product.get("stock", 0)
    if stock < 1:
        raise OutOfStock()
    cap = min(stock, config.MAX_CART_QUANTITY)

    entries = _load_entries(db, actor)
    for entry in entries:
        if entry["product_id"] == product_id:
            entry["quantity"] = min(entry["quantity"] + quantity, cap)
            stored = entry["quantity"]
            break
    else:
        stored = min(quantity, cap)
        entries.append({"product_id": product_id, "quantity": stored})

    _save_entries(db, actor, entries)
    return stored


def set_quantity(db: Database, actor: Actor, product_id: str, quantity: int) -> None:
    """Set an entry's quantity; zero removes it."""
    if not 0 <= quantity <= config.MAX_CART_QUANTITY:
        raise ValidationFailed.for_field("quantity", f"Quantity must be 0-{config.MAX_CART_QUANTITY}")

    product_id = str(to_object_id(product_id, "Product not found in cart"))
    entries = _load_entries(db, actor)
    if not any(e["product_id"] == product_id for e in entries):
        raise NotFound("Product not found in cart")

    if quantity == 0:
        entries = [e for e in entries if e["product_id"] != product_id]
    else:
        for entry in entries:
            if entry["product_id"] == product_id:
                entry["quantity"] = quantity
    _save_entries(db, actor, entries)


def clear_cart(db: Database, actor: Actor) -> None:
    _save_entries(db, actor, [])
