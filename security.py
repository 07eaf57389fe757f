import hashlib
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import jwt
from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import config
from database import get_db, utcnow
from errors import Forbidden, Unauthorized

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, passed explicitly into every core operation."""
    id: str
    role: str = "user"
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def create_token(payload: dict) -> str:
    exp = utcnow() + timedelta(days=config.JWT_EXPIRE_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


def token_for(user: dict) -> str:
    return create_token({"id": str(user["_id"]), "email": user["email"], "role": user.get("role", "user")})


def actor_from_user(user: dict) -> Actor:
    return Actor(id=str(user["_id"]), role=user.get("role", "user"), email=user.get("email"), name=user.get("name"))


def _resolve_actor(credentials: Optional[HTTPAuthorizationCredentials], db) -> Actor:
    if credentials is None:
        raise Unauthorized("Not authorized, no token")
    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise Unauthorized("Invalid token payload")
    user = db["user"].find_one({"_id": ObjectId(user_id)}, {"cart": 0, "wishlist": 0})
    if not user:
        raise Unauthorized("User not found")
    if not user.get("is_active", True):
        raise Unauthorized("Account is deactivated")
    return actor_from_user(user)


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security), db=Depends(get_db)) -> Actor:
    return _resolve_actor(credentials, db)


def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security), db=Depends(get_db)) -> Optional[Actor]:
    if credentials is None:
        return None
    return _resolve_actor(credentials, db)


def require_admin(user: Actor = Depends(get_current_user)) -> Actor:
    if not user.is_admin:
        raise Forbidden("Admin only")
    return user
