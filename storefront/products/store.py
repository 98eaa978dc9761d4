from decimal import Decimal
from typing import Dict, Iterable, Optional

from bson import ObjectId


def to_decimal(value) -> Decimal:
    # Prices are stored as floats; go through str to keep the decimal digits
    return Decimal(str(value))


class CatalogStore:
    """Read access to the products collection used by the cart and order engines."""

    def __init__(self, db):
        self.collection = db.products

    async def find_by_id(self, product_id: str) -> Optional[dict]:
        if not ObjectId.is_valid(product_id):
            return None
        product = await self.collection.find_one({"_id": ObjectId(product_id)})
        if product:
            product["id"] = str(product["_id"])
        return product

    async def exists(self, product_id: str) -> bool:
        if not ObjectId.is_valid(product_id):
            return False
        return await self.collection.find_one({"_id": ObjectId(product_id)}, {"_id": 1}) is not None

    async def find_many(self, product_ids: Iterable[str]) -> Dict[str, dict]:
        oids = [ObjectId(pid) for pid in set(product_ids) if ObjectId.is_valid(pid)]
        if not oids:
            return {}
        products = {}
        async for doc in self.collection.find({"_id": {"$in": oids}}):
            doc["id"] = str(doc["_id"])
            products[doc["id"]] = doc
        return products
