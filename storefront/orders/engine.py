from decimal import Decimal
from typing import List
import logging
import math

from bson import ObjectId

from storefront.shared.utils import (
    ForbiddenException, InvalidStateException, Pagination, canonical_id
)
from storefront.products.store import CatalogStore, to_decimal
from storefront.orders.cart import CartEngine, EMPTY_CART_MESSAGE, subtract_items
from storefront.orders.models import OrderDB, OrderItemDB, OrderProductDB

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("order_date", -1), ("_id", -1)]


def order_to_response(doc: dict) -> dict:
    doc["id"] = str(doc["_id"])
    return doc


class OrderEngine:
    def __init__(self, db, catalog: CatalogStore, carts: CartEngine, max_retries: int = 5):
        self.orders = db.orders
        self.users = db.users
        self.catalog = catalog
        self.carts = carts
        self.max_retries = max_retries

    async def place_order(self, customer_id: str, shipping_details: str) -> str:
        cart = await self.carts.get(customer_id)
        if not cart or not cart.get("items"):
            raise InvalidStateException(EMPTY_CART_MESSAGE)

        snapshot = [dict(item) for item in cart["items"]]
        products = await self.catalog.find_many(item["product_id"] for item in snapshot)

        order_items = []
        total_amount = Decimal(0)
        for item in snapshot:
            product = products.get(item["product_id"])
            if product is None:
                logger.warning("Dropping cart item for a missing product", extra={
                    "customer_id": customer_id, "product_id": item["product_id"]
                })
                continue
            price = to_decimal(product["price"])
            total_amount += price * item["quantity"]
            order_items.append(OrderItemDB(
                product=OrderProductDB(
                    id=product["id"],
                    name=product["name"],
                    description=product.get("description", ""),
                    price=price
                ),
                quantity=item["quantity"]
            ))

        if not order_items:
            raise InvalidStateException(EMPTY_CART_MESSAGE)

        order = OrderDB(
            customer_id=customer_id,
            items=order_items,
            shipping_details=shipping_details,
            total_amount=total_amount
        )
        # The order is written before the cart is touched
        result = await self.orders.insert_one(order.to_document())
        order_id = str(result.inserted_id)

        await self._clear_ordered_items(cart, snapshot, order_id)

        logger.info("Order placed", extra={"customer_id": customer_id, "order_id": order_id})
        return order_id

    async def _clear_ordered_items(self, cart: dict, snapshot: List[dict], order_id: str):
        current = cart
        for attempt in range(1, self.max_retries + 1):
            remaining = subtract_items(current.get("items", []), snapshot)
            if await self.carts.compare_and_set(current, remaining) is not None:
                return

            logger.warning("Cart changed during checkout", extra={
                "customer_id": cart["customer_id"], "order_id": order_id, "attempt": attempt
            })
            current = await self.carts.get(cart["customer_id"])
            if current is None:
                return

        # The order stands; the cart still shows what was ordered
        logger.error("Cart could not be cleared after checkout", extra={
            "customer_id": cart["customer_id"], "order_id": order_id
        })

    async def _page(self, query: dict, pagination: Pagination) -> dict:
        total_orders = await self.orders.count_documents(query)
        cursor = self.orders.find(query, sort=NEWEST_FIRST, skip=pagination.skip, limit=pagination.limit)
        orders = [order_to_response(doc) async for doc in cursor]

        return {
            "orders": orders,
            "current_page": pagination.page,
            "total_pages": math.ceil(total_orders / pagination.limit),
            "total_orders": total_orders,
        }

    async def list_for_customer(self, customer_id: str, pagination: Pagination) -> dict:
        return await self._page({"customer_id": canonical_id(customer_id)}, pagination)

    async def list_for_scoped_customer(self, caller_id: str, target_id: str, pagination: Pagination) -> dict:
        if canonical_id(caller_id) != canonical_id(target_id):
            logger.warning("Order listing denied", extra={"customer_id": caller_id})
            raise ForbiddenException("Access denied.")
        return await self.list_for_customer(target_id, pagination)

    async def list_all(self) -> List[dict]:
        orders = [order_to_response(doc) async for doc in self.orders.find({}, sort=NEWEST_FIRST)]

        customer_oids = {ObjectId(o["customer_id"]) for o in orders if ObjectId.is_valid(o["customer_id"])}
        customers = {}
        if customer_oids:
            async for user in self.users.find({"_id": {"$in": list(customer_oids)}}, {"name": 1, "email": 1}):
                customers[str(user["_id"])] = user

        for order in orders:
            user = customers.get(order["customer_id"], {})
            order["customer"] = {
                "id": order["customer_id"],
                "name": user.get("name"),
                "email": user.get("email"),
            }
            for item in order["items"]:
                item["product"] = {
                    "id": item["product"]["id"],
                    "name": item["product"]["name"],
                    "price": item["product"]["price"],
                }
        return orders
