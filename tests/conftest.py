"""
Shared fixtures: an in-memory Mongo (mongomock), users of each role,
a category and a product factory, and an HTTP client wired to the same
database.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from database import create_document, ensure_indexes, get_db
from schemas import Category, Product, User
from security import Actor, hash_password, token_for


@pytest.fixture
def db():
    database = mongomock.MongoClient()["phonemart_test"]
    ensure_indexes(database)
    return database


def _make_user(db, name, email, role="user", is_active=True):
    user = User(name=name, email=email, password_hash=hash_password("secret123"), role=role, is_active=is_active)
    user_id = create_document(db, "user", user)
    return Actor(id=user_id, role=role, email=email, name=name)


@pytest.fixture
def admin(db):
    return _make_user(db, "Admin", "admin@example.com", role="admin")


@pytest.fixture
def buyer(db):
    return _make_user(db, "Asha Buyer", "buyer@example.com")


@pytest.fixture
def seller(db):
    return _make_user(db, "Ravi Seller", "seller@example.com")


@pytest.fixture
def make_user(db):
    def factory(name="Someone", email="someone@example.com", **kwargs):
        return _make_user(db, name, email, **kwargs)
    return factory


@pytest.fixture
def category_id(db):
    return create_document(db, "category", Category(name="Smartphones", description="Phones"))


@pytest.fixture
def make_product(db, category_id):
    def factory(**overrides):
        data = dict(
            name="Pixel 7A",
            brand="Google",
            model="GWKK3",
            description="Powerful camera and smooth Android experience.",
            price=1000,
            category=category_id,
            condition="new",
            storage="128GB",
            color="Charcoal",
            images=["https://img.example.com/pixel-front.jpg", "https://img.example.com/pixel-back.jpg"],
            stock=3,
            is_approved=True,
        )
        data.update(overrides)
        return create_document(db, "product", Product(**data))
    return factory


@pytest.fixture
def client(db):
    main.app.dependency_overrides[get_db] = lambda: db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def build(actor: Actor) -> dict:
        token = token_for({"_id": actor.id, "email": actor.email, "role": actor.role})
        return {"Authorization": f"Bearer {token}"}
    return build
