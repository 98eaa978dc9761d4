from decimal import Decimal

import pytest
from bson import ObjectId

from storefront.shared.utils import (
    CartNotFoundException, ConflictException, ItemNotInCartException, NotFoundException
)


def quantities(cart):
    return {item["product_id"]: item["quantity"] for item in cart["items"]}


class TestAddItem:
    async def test_creates_cart_on_first_add(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()

        cart = await cart_engine.add_item(customer_id, product_id, 2)

        assert cart["customer_id"] == customer_id
        assert quantities(cart) == {product_id: 2}
        assert cart["version"] == 1

    async def test_repeated_add_accumulates(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()

        await cart_engine.add_item(customer_id, product_id, 2)
        cart = await cart_engine.add_item(customer_id, product_id, 3)

        assert cart["items"] == [{"product_id": product_id, "quantity": 5}]

    async def test_keeps_insertion_order(self, cart_engine, product_factory, customer_id):
        first = await product_factory(name="First")
        second = await product_factory(name="Second")

        await cart_engine.add_item(customer_id, first, 1)
        cart = await cart_engine.add_item(customer_id, second, 1)

        assert [item["product_id"] for item in cart["items"]] == [first, second]

    async def test_unknown_product_is_not_found(self, cart_engine, customer_id, db):
        with pytest.raises(NotFoundException) as exc_info:
            await cart_engine.add_item(customer_id, str(ObjectId()), 1)

        assert exc_info.value.status_code == 404
        assert await db.carts.find_one({"customer_id": customer_id}) is None

    async def test_malformed_product_id_is_not_found(self, cart_engine, customer_id):
        with pytest.raises(NotFoundException):
            await cart_engine.add_item(customer_id, "not-an-id", 1)

    async def test_id_letter_case_shares_one_line(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory(price=10.0)

        await cart_engine.add_item(customer_id, product_id, 2)
        cart = await cart_engine.add_item(customer_id, product_id.upper(), 3)

        assert cart["items"] == [{"product_id": product_id, "quantity": 5}]
        view = await cart_engine.view(customer_id)
        assert view["cart"][0]["quantity"] == 5
        assert view["total_amount"] == Decimal("50")


class TestSetQuantity:
    async def test_overwrites_instead_of_merging(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 5)

        cart = await cart_engine.set_quantity(customer_id, product_id, 2)

        assert quantities(cart) == {product_id: 2}

    async def test_zero_removes_line_item(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 5)

        cart = await cart_engine.set_quantity(customer_id, product_id, 0)

        assert cart["items"] == []

    async def test_missing_cart(self, cart_engine, customer_id):
        with pytest.raises(CartNotFoundException) as exc_info:
            await cart_engine.set_quantity(customer_id, str(ObjectId()), 1)
        assert exc_info.value.status_code == 400

    async def test_accepts_other_id_letter_case(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 5)

        cart = await cart_engine.set_quantity(customer_id, product_id.upper(), 2)

        assert quantities(cart) == {product_id: 2}

    async def test_missing_item_leaves_cart_untouched(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        cart = await cart_engine.add_item(customer_id, product_id, 1)

        with pytest.raises(ItemNotInCartException):
            await cart_engine.set_quantity(customer_id, str(ObjectId()), 3)

        stored = await cart_engine.get(customer_id)
        assert stored["version"] == cart["version"]
        assert quantities(stored) == {product_id: 1}


class TestRemoveItem:
    async def test_removes_item(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 1)

        cart = await cart_engine.remove_item(customer_id, product_id)

        assert cart["items"] == []

    async def test_accepts_other_id_letter_case(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 1)

        cart = await cart_engine.remove_item(customer_id, product_id.upper())

        assert cart["items"] == []

    async def test_absent_item_is_noop(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 1)

        cart = await cart_engine.remove_item(customer_id, str(ObjectId()))

        assert quantities(cart) == {product_id: 1}

    async def test_missing_cart(self, cart_engine, customer_id):
        with pytest.raises(CartNotFoundException):
            await cart_engine.remove_item(customer_id, str(ObjectId()))


class TestView:
    async def test_no_cart_is_empty(self, cart_engine, customer_id):
        assert await cart_engine.view(customer_id) == {"message": "Your cart is empty", "cart": []}

    async def test_emptied_cart_is_empty(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 1)
        await cart_engine.remove_item(customer_id, product_id)

        view = await cart_engine.view(customer_id)

        assert view["cart"] == []
        assert "total_amount" not in view

    async def test_resolves_lines_and_total(self, cart_engine, product_factory, customer_id):
        widget = await product_factory(name="Widget", price=10.0)
        gadget = await product_factory(name="Gadget", price=2.5, description="Small")
        await cart_engine.add_item(customer_id, widget, 2)
        await cart_engine.add_item(customer_id, gadget, 3)

        view = await cart_engine.view(customer_id)

        assert [line["product"] for line in view["cart"]] == ["Widget", "Gadget"]
        assert view["cart"][1]["description"] == "Small"
        assert view["cart"][0]["total"] == Decimal("20.00")
        assert view["cart"][1]["total"] == Decimal("7.5")
        assert view["total_amount"] == Decimal("27.5")

    async def test_prices_follow_catalog(self, cart_engine, product_factory, customer_id, db):
        product_id = await product_factory(price=10.0)
        await cart_engine.add_item(customer_id, product_id, 2)

        await db.products.update_one({"_id": ObjectId(product_id)}, {"$set": {"price": 12.0}})
        view = await cart_engine.view(customer_id)

        assert view["total_amount"] == Decimal("24")

    async def test_skips_deleted_products(self, cart_engine, product_factory, customer_id, db):
        kept = await product_factory(name="Kept", price=1.0)
        gone = await product_factory(name="Gone", price=5.0)
        await cart_engine.add_item(customer_id, kept, 1)
        await cart_engine.add_item(customer_id, gone, 1)

        await db.products.delete_one({"_id": ObjectId(gone)})
        view = await cart_engine.view(customer_id)

        assert [line["product"] for line in view["cart"]] == ["Kept"]
        assert view["total_amount"] == Decimal("1")


class TestOptimisticConcurrency:
    async def test_stale_write_is_rejected(self, cart_engine, product_factory, customer_id):
        product_id = await product_factory()
        stale = await cart_engine.add_item(customer_id, product_id, 1)
        await cart_engine.add_item(customer_id, product_id, 1)

        assert await cart_engine.compare_and_set(stale, []) is None
        assert quantities(await cart_engine.get(customer_id)) == {product_id: 2}

    async def test_retries_after_concurrent_write(self, cart_engine, product_factory, customer_id, db):
        first = await product_factory(name="First")
        second = await product_factory(name="Second")
        await cart_engine.add_item(customer_id, first, 1)

        original_get = cart_engine.get
        reads = []

        async def racing_get(cid):
            cart = await original_get(cid)
            reads.append(cart["version"])
            if len(reads) == 1:
                # Another request writes between this read and the update
                await db.carts.update_one(
                    {"_id": cart["_id"]},
                    {"$push": {"items": {"product_id": second, "quantity": 4}}, "$inc": {"version": 1}}
                )
            return cart

        cart_engine.get = racing_get
        cart = await cart_engine.set_quantity(customer_id, first, 3)

        assert len(reads) == 2
        assert cart["items"] == [
            {"product_id": first, "quantity": 3},
            {"product_id": second, "quantity": 4},
        ]

    async def test_gives_up_after_max_retries(self, cart_engine, product_factory, customer_id, db):
        product_id = await product_factory()
        await cart_engine.add_item(customer_id, product_id, 1)

        original_get = cart_engine.get

        async def always_stale(cid):
            cart = await original_get(cid)
            await db.carts.update_one({"_id": cart["_id"]}, {"$inc": {"version": 1}})
            return cart

        cart_engine.get = always_stale

        with pytest.raises(ConflictException) as exc_info:
            await cart_engine.remove_item(customer_id, product_id)
        assert exc_info.value.status_code == 409
