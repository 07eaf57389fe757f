"""Registration, login, profile and wishlist."""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import catalog
from database import create_document, serialize_doc, to_object_id
from errors import Conflict, Forbidden, NotFound, Unauthorized
from schemas import User
from security import Actor, hash_password, token_for

logger = logging.getLogger(__name__)

PRIVATE_FIELDS = ("password_hash", "cart", "wishlist")


def public_user(user: dict) -> Dict[str, Any]:
    return serialize_doc(user, exclude=PRIVATE_FIELDS)


def register(db: Database, name: str, email: str, password: str, phone: Optional[str] = None) -> Dict[str, Any]:
    email = email.lower()
    if db["user"].find_one({"email": email}):
        raise Conflict("Email already registered")
    user = User(name=name, email=email, password_hash=hash_password(password), phone=phone)
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise Conflict("Email already registered")
    doc = db["user"].find_one({"_id": ObjectId(user_id)})
    logger.info("Registered user %s", user_id)
    return {"token": token_for(doc), "user": public_user(doc)}


def authenticate(db: Database, email: str, password: str) -> Dict[str, Any]:
    user = db["user"].find_one({"email": email.lower()})
    if not user or user.get("password_hash") != hash_password(password):
        raise Unauthorized("Invalid credentials")
    if not user.get("is_active", True):
        raise Forbidden("Account is deactivated")
    return {"token": token_for(user), "user": public_user(user)}


def get_profile(db: Database, actor: Actor) -> Dict[str, Any]:
    user = db["user"].find_one({"_id": ObjectId(actor.id)})
    if not user:
        raise NotFound("User not found")
    return public_user(user)


# ----------------------- Wishlist -----------------------

def get_wishlist(db: Database, actor: Actor) -> List[Dict[str, Any]]:
    user = db["user"].find_one({"_id": ObjectId(actor.id)}, {"wishlist": 1})
    ids = [ObjectId(pid) for pid in (user or {}).get("wishlist", []) if ObjectId.is_valid(pid)]
    if not ids:
        return []
    query = {"_id": {"$in": ids}, **catalog.VISIBLE}
    return [catalog.product_view(p) for p in db["product"].find(query)]


def add_to_wishlist(db: Database, actor: Actor, product_id: str) -> None:
    product_id = str(catalog.find_visible(db, product_id)["_id"])
    user = db["user"].find_one({"_id": ObjectId(actor.id)}, {"wishlist": 1})
    if product_id in (user or {}).get("wishlist", []):
        raise Conflict("Product already in wishlist")
    db["user"].update_one({"_id": ObjectId(actor.id)}, {"$addToSet": {"wishlist": product_id}})


def remove_from_wishlist(db: Database, actor: Actor, product_id: str) -> None:
    product_id = str(to_object_id(product_id, "Product not found"))
    db["user"].update_one({"_id": ObjectId(actor.id)}, {"$pull": {"wishlist": product_id}})
