import pytest
from bson import ObjectId

import catalog
import moderation
import orders
from errors import Conflict, NotFound, ValidationFailed
from schemas import Category, CategoryUpdate, LineItem, ShippingAddress


class TestListings:
    def test_pending_queue_is_newest_first(self, db, seller, make_product):
        make_product(name="Older", is_approved=False, seller_id=seller.id)
        make_product(name="Live")
        make_product(name="Newer", is_approved=False, seller_id=seller.id)

        assert [p["name"] for p in moderation.list_pending(db)] == ["Newer", "Older"]

    def test_approve_publishes_listing(self, db, seller, make_product):
        product_id = make_product(is_approved=False, seller_id=seller.id)

        moderation.approve(db, product_id)

        items, _ = catalog.list_products(db)
        assert [p["id"] for p in items] == [product_id]

    def test_approve_unknown_product(self, db):
        with pytest.raises(NotFound):
            moderation.approve(db, str(ObjectId()))

    def test_reject_removes_listing_but_keeps_reason(self, db, admin, seller, make_product):
        product_id = make_product(name="Blurry photos", is_approved=False, seller_id=seller.id)

        rejection = moderation.reject(db, admin, product_id, "  Photos are unreadable ")

        assert db["product"].count_documents({}) == 0
        assert rejection["reason"] == "Photos are unreadable"
        assert rejection["rejected_by"] == admin.id
        assert rejection["listing"]["name"] == "Blurry photos"
        seller_view = catalog.list_seller_rejections(db, seller)
        assert [r["product_id"] for r in seller_view] == [product_id]

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reject_requires_reason(self, db, admin, make_product, reason):
        product_id = make_product(is_approved=False)

        with pytest.raises(ValidationFailed):
            moderation.reject(db, admin, product_id, reason)
        assert db["product"].count_documents({}) == 1


class TestUsers:
    def test_list_users_hides_admins_and_secrets(self, db, admin, buyer, seller):
        users, total = moderation.list_users(db)

        assert total == 2
        assert {u["email"] for u in users} == {buyer.email, seller.email}
        assert all("password_hash" not in u and "cart" not in u for u in users)

    def test_deactivate_user(self, db, buyer):
        user = moderation.set_user_active(db, buyer.id, False)

        assert user["is_active"] is False
        assert "password_hash" not in user

    def test_unknown_user(self, db):
        with pytest.raises(NotFound):
            moderation.set_user_active(db, str(ObjectId()), False)


class TestOrderBoard:
    def test_filters_by_status_and_payment(self, db, buyer, make_product):
        address = ShippingAddress(name="A", phone="9876543210", street="S", city="C", state="S", zip_code="1")
        product_id = make_product(stock=10)
        cod = orders.create_order(db, buyer, [LineItem(product_id=product_id, quantity=1)], address, "cod")
        orders.create_order(db, buyer, [LineItem(product_id=product_id, quantity=1)], address, "gateway")
        orders.update_status(db, cod["id"], "shipped")

        shipped, total = moderation.list_all_orders(db, status="shipped")
        assert total == 1 and shipped[0]["id"] == cod["id"]

        paid, total = moderation.list_all_orders(db, payment_status="paid")
        assert total == 1 and paid[0]["payment_method"] == "gateway"

        _, total = moderation.list_all_orders(db, page=1, page_size=1)
        assert total == 2


class TestCategories:
    def test_duplicate_name_conflicts(self, db, category_id):
        with pytest.raises(Conflict):
            moderation.create_category(db, Category(name="Smartphones"))

    def test_create_starts_with_zero_count(self, db):
        category = moderation.create_category(db, Category(name="Tablets", product_count=99))

        assert category["product_count"] == 0

    def test_update_recomputes_product_count(self, db, category_id, make_product):
        make_product()
        make_product()
        make_product(is_approved=False)

        category = moderation.update_category(db, category_id, CategoryUpdate(description="All phones", sort_order=3))

        assert category["product_count"] == 2
        assert category["description"] == "All phones"
        assert category["sort_order"] == 3

    def test_rename_onto_existing_name_conflicts(self, db, category_id):
        other = moderation.create_category(db, Category(name="Tablets"))

        with pytest.raises(Conflict):
            moderation.update_category(db, other["id"], CategoryUpdate(name="Smartphones"))

    def test_delete_in_use_conflicts(self, db, category_id, make_product):
        make_product(is_active=False)

        with pytest.raises(Conflict):
            moderation.delete_category(db, category_id)
        assert db["category"].count_documents({}) == 1

    def test_delete_unused(self, db, category_id):
        moderation.delete_category(db, category_id)

        assert db["category"].count_documents({}) == 0
        with pytest.raises(NotFound):
            moderation.delete_category(db, category_id)

    def test_inactive_categories_are_not_listed_publicly(self, db, category_id):
        moderation.create_category(db, Category(name="Hidden", is_active=False))
        moderation.create_category(db, Category(name="Accessories", sort_order=-1))

        assert [c["name"] for c in catalog.list_categories(db)] == ["Accessories", "Smartphones"]


def test_dashboard_stats(db, admin, buyer, seller, make_product):
    address = ShippingAddress(name="A", phone="9876543210", street="S", city="C", state="S", zip_code="1")
    product_id = make_product(price=1000, stock=5)
    make_product(is_approved=False, seller_id=seller.id)
    orders.create_order(db, buyer, [LineItem(product_id=product_id, quantity=1)], address, "gateway")
    orders.create_order(db, buyer, [LineItem(product_id=product_id, quantity=1)], address, "cod")

    data = moderation.dashboard_stats(db)

    assert data["stats"]["totalUsers"] == 2
    assert data["stats"]["totalProducts"] == 1
    assert data["stats"]["pendingProducts"] == 1
    assert data["stats"]["totalOrders"] == 2
    assert data["stats"]["monthlyRevenue"] == 1180
    assert len(data["recentOrders"]) == 2
