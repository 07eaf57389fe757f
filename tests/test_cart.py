import pytest
from bson import ObjectId

import cart
from errors import NotFound, OutOfStock, ValidationFailed


def stored_cart(db, actor):
    return db["user"].find_one({"_id": ObjectId(actor.id)})["cart"]


def test_view_prices_entries_from_the_catalog(db, buyer, make_product):
    product_id = make_product(price=1000, stock=3)

    cart.add_item(db, buyer, product_id, 2)
    view = cart.get_cart(db, buyer)

    assert view["summary"] == {"subtotal": 2000, "tax": 360, "shipping": 0, "total": 2360}
    assert view["items"][0]["quantity"] == 2
    assert view["items"][0]["total"] == 2000
    assert view["items"][0]["product"]["id"] == product_id


def test_storage_holds_only_references(db, buyer, make_product):
    product_id = make_product()

    cart.add_item(db, buyer, product_id, 1)

    assert stored_cart(db, buyer) == [{"product_id": product_id, "quantity": 1}]


def test_adding_again_increments_and_clamps_to_stock(db, buyer, make_product):
    product_id = make_product(stock=3)

    assert cart.add_item(db, buyer, product_id, 2) == 2
    assert cart.add_item(db, buyer, product_id, 2) == 3
    assert stored_cart(db, buyer) == [{"product_id": product_id, "quantity": 3}]


def test_id_case_does_not_split_entries(db, buyer, make_product):
    product_id = make_product(stock=5)

    cart.add_item(db, buyer, product_id, 1)
    cart.add_item(db, buyer, product_id.upper(), 1)
    assert stored_cart(db, buyer) == [{"product_id": product_id, "quantity": 2}]

    cart.set_quantity(db, buyer, product_id.upper(), 4)
    assert [(i["product"]["id"], i["quantity"]) for i in cart.get_cart(db, buyer)["items"]] == [(product_id, 4)]


def test_new_entry_is_clamped_to_stock(db, buyer, make_product):
    product_id = make_product(stock=2)

    assert cart.add_item(db, buyer, product_id, 5) == 2


def test_entry_never_exceeds_cart_limit(db, buyer, make_product):
    product_id = make_product(stock=50)

    cart.add_item(db, buyer, product_id, 8)
    assert cart.add_item(db, buyer, product_id, 8) == 10


def test_out_of_stock_product_cannot_be_added(db, buyer, make_product):
    with pytest.raises(OutOfStock):
        cart.add_item(db, buyer, make_product(stock=0), 1)


@pytest.mark.parametrize("overrides", [{"is_approved": False}, {"is_active": False}])
def test_hidden_product_cannot_be_added(db, buyer, make_product, overrides):
    with pytest.raises(NotFound):
        cart.add_item(db, buyer, make_product(**overrides), 1)


def test_missing_product_cannot_be_added(db, buyer):
    with pytest.raises(NotFound):
        cart.add_item(db, buyer, str(ObjectId()), 1)


@pytest.mark.parametrize("quantity", [0, 11])
def test_add_quantity_must_be_between_one_and_ten(db, buyer, make_product, quantity):
    with pytest.raises(ValidationFailed):
        cart.add_item(db, buyer, make_product(), quantity)


def test_set_quantity_replaces_and_zero_removes(db, buyer, make_product):
    first = make_product(name="First")
    second = make_product(name="Second")
    cart.add_item(db, buyer, first, 1)
    cart.add_item(db, buyer, second, 1)

    cart.set_quantity(db, buyer, first, 3)
    cart.set_quantity(db, buyer, second, 0)

    assert stored_cart(db, buyer) == [{"product_id": first, "quantity": 3}]


def test_set_quantity_of_absent_entry_is_not_found(db, buyer, make_product):
    with pytest.raises(NotFound):
        cart.set_quantity(db, buyer, make_product(), 2)


def test_stale_entries_are_hidden_from_view_but_kept(db, buyer, make_product):
    live = make_product(name="Live", price=300)
    retired = make_product(name="Retired", price=700)
    cart.add_item(db, buyer, live, 1)
    cart.add_item(db, buyer, retired, 1)

    db["product"].update_one({"_id": ObjectId(retired)}, {"$set": {"is_active": False}})
    view = cart.get_cart(db, buyer)

    assert [i["product"]["name"] for i in view["items"]] == ["Live"]
    assert view["summary"] == {"subtotal": 300, "tax": 54, "shipping": 50, "total": 404}
    assert len(stored_cart(db, buyer)) == 2


def test_deleted_product_drops_out_of_view(db, buyer, make_product):
    product_id = make_product()
    cart.add_item(db, buyer, product_id, 1)

    db["product"].delete_one({"_id": ObjectId(product_id)})

    assert cart.get_cart(db, buyer)["items"] == []


def test_clear(db, buyer, make_product):
    cart.add_item(db, buyer, make_product(), 1)

    cart.clear_cart(db, buyer)

    assert stored_cart(db, buyer) == []
