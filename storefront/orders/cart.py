"""
Cart engine.

One cart document per customer. Every mutation reads the cart, computes the
new item list in memory and writes it back only if the cart's ``version`` is
still the one that was read; a lost race re-reads and re-applies.
Product ids are stored in canonical form, so a product has at most one line.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
import logging

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from storefront.shared.utils import (
    CartNotFoundException, ConflictException, ItemNotInCartException, NotFoundException,
    canonical_id
)
from storefront.products.store import CatalogStore, to_decimal
from storefront.orders.models import CartDB

logger = logging.getLogger(__name__)

EMPTY_CART_MESSAGE = "Your cart is empty"


# --- Item list operations ---
def merge_item(items: List[dict], product_id: str, quantity: int) -> List[dict]:
    for item in items:
        if item["product_id"] == product_id:
            item["quantity"] += quantity
            return items
    items.append({"product_id": product_id, "quantity": quantity})
    return items

def set_item_quantity(items: List[dict], product_id: str, quantity: int) -> List[dict]:
    for index, item in enumerate(items):
        if item["product_id"] == product_id:
            if quantity == 0:
                del items[index]
            else:
                item["quantity"] = quantity
            return items
    raise ItemNotInCartException()

def drop_item(items: List[dict], product_id: str) -> List[dict]:
    return [item for item in items if item["product_id"] != product_id]

def subtract_items(items: List[dict], ordered: List[dict]) -> List[dict]:
    """Remove ordered quantities from a cart, keeping anything added since."""
    ordered_qty: Dict[str, int] = {}
    for item in ordered:
        ordered_qty[item["product_id"]] = ordered_qty.get(item["product_id"], 0) + item["quantity"]

    remaining = []
    for item in items:
        quantity = item["quantity"] - ordered_qty.get(item["product_id"], 0)
        if quantity > 0:
            remaining.append({"product_id": item["product_id"], "quantity": quantity})
    return remaining


class CartEngine:
    def __init__(self, db, catalog: CatalogStore, max_retries: int = 5):
        self.carts = db.carts
        self.catalog = catalog
        self.max_retries = max_retries

    async def get(self, customer_id: str) -> Optional[dict]:
        return await self.carts.find_one({"customer_id": customer_id})

    async def _get_or_create(self, customer_id: str) -> dict:
        seed = CartDB(customer_id=customer_id).dict(by_alias=True, exclude={"id", "customer_id"})
        try:
            await self.carts.update_one(
                {"customer_id": customer_id},
                {"$setOnInsert": seed},
                upsert=True
            )
        except DuplicateKeyError:
            # A concurrent request inserted it first
            logger.info("Cart created concurrently", extra={"customer_id": customer_id})
        return await self.get(customer_id)

    async def compare_and_set(self, cart: dict, items: List[dict]) -> Optional[dict]:
        """Write ``items`` if the cart is still at the version it was read at."""
        return await self.carts.find_one_and_update(
            {"_id": cart["_id"], "version": cart.get("version", 0)},
            {
                "$set": {"items": items, "updated_at": datetime.utcnow()},
                "$inc": {"version": 1},
            },
            return_document=ReturnDocument.AFTER
        )

    async def _mutate(self, customer_id: str, change: Callable[[List[dict]], List[dict]], create: bool = False) -> dict:
        for attempt in range(1, self.max_retries + 1):
            cart = await self._get_or_create(customer_id) if create else await self.get(customer_id)
            if not cart:
                raise CartNotFoundException()

            items = change([dict(item) for item in cart.get("items", [])])
            updated = await self.compare_and_set(cart, items)
            if updated is not None:
                return updated

            logger.warning("Cart write conflict", extra={"customer_id": customer_id, "attempt": attempt})

        raise ConflictException("Cart was modified concurrently, please retry")

    async def add_item(self, customer_id: str, product_id: str, quantity: int) -> dict:
        product_id = canonical_id(product_id)
        if not await self.catalog.exists(product_id):
            raise NotFoundException("Product not found")

        cart = await self._mutate(
            customer_id, lambda items: merge_item(items, product_id, quantity), create=True
        )
        logger.info("Cart item added", extra={
            "customer_id": customer_id, "product_id": product_id, "quantity": quantity
        })
        return cart

    async def set_quantity(self, customer_id: str, product_id: str, quantity: int) -> dict:
        product_id = canonical_id(product_id)
        cart = await self._mutate(customer_id, lambda items: set_item_quantity(items, product_id, quantity))
        logger.info("Cart item updated", extra={
            "customer_id": customer_id, "product_id": product_id, "quantity": quantity
        })
        return cart

    async def remove_item(self, customer_id: str, product_id: str) -> dict:
        product_id = canonical_id(product_id)
        cart = await self._mutate(customer_id, lambda items: drop_item(items, product_id))
        logger.info("Cart item removed", extra={"customer_id": customer_id, "product_id": product_id})
        return cart

    async def view(self, customer_id: str) -> dict:
        """
        Resolve the cart against the current catalog.

        Prices are looked up on every view, so the total follows catalog price
        changes; orders freeze the price at checkout instead.
        """
        cart = await self.get(customer_id)
        if not cart or not cart.get("items"):
            return {"message": EMPTY_CART_MESSAGE, "cart": []}

        products = await self.catalog.find_many(item["product_id"] for item in cart["items"])

        lines = []
        total_amount = Decimal(0)
        for item in cart["items"]:
            product = products.get(item["product_id"])
            if product is None:
                logger.warning("Cart references a missing product", extra={
                    "customer_id": customer_id, "product_id": item["product_id"]
                })
                continue
            price = to_decimal(product["price"])
            line_total = price * item["quantity"]
            total_amount += line_total
            lines.append({
                "product_id": item["product_id"],
                "product": product["name"],
                "description": product.get("description", ""),
                "quantity": item["quantity"],
                "price": price,
                "total": line_total,
            })

        if not lines:
            return {"message": EMPTY_CART_MESSAGE, "cart": []}

        return {"cart": lines, "total_amount": total_amount}
