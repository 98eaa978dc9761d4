from fastapi import APIRouter, Depends, Request, status
from datetime import datetime
from typing import Optional
import logging
import math

from storefront.shared.utils import (
    MessageResponse, NotFoundException, Pagination,
    get_database, get_pagination, require_admin, str_to_oid
)

from storefront.products.schemas import (
    ProductCreate, ProductUpdate, ProductResponse, ProductListResponse,
    ProductCreatedResponse
)
from storefront.products.models import ProductDB
from storefront.products.store import CatalogStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


@router.get("/", response_model=ProductListResponse)
async def list_products(
    category: Optional[str] = None,
    pagination: Pagination = Depends(get_pagination),
    db=Depends(get_database),
):
    query = {"category": category} if category else {}

    total = await db.products.count_documents(query)
    cursor = db.products.find(query, sort=[("_id", 1)], skip=pagination.skip, limit=pagination.limit)

    products = []
    async for doc in cursor:
        doc["id"] = str(doc["_id"])
        products.append(ProductResponse(**doc))

    return ProductListResponse(
        products=products,
        total_pages=math.ceil(total / pagination.limit),
        current_page=pagination.page,
    )

@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)):
    product = await catalog.find_by_id(product_id)
    if not product:
        raise NotFoundException("Product not found")
    return ProductResponse(**product)

@router.post("/", response_model=ProductCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_product(product: ProductCreate, admin: dict = Depends(require_admin), db=Depends(get_database)):
    product_db = ProductDB(**product.dict())
    # Prices are stored as floats, read back through Decimal(str(...))
    product_dict = product_db.dict(by_alias=True, exclude={"id"})
    product_dict["price"] = float(product_dict["price"])

    new_product = await db.products.insert_one(product_dict)
    logger.info("Product created", extra={"product_id": str(new_product.inserted_id)})

    return ProductCreatedResponse(message="Product added successfully", product_id=str(new_product.inserted_id))

@router.put("/updateproduct/{product_id}", response_model=MessageResponse)
async def update_product(
    product_id: str,
    product_update: ProductUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_database),
):
    product = await db.products.find_one({"_id": str_to_oid(product_id)})
    if not product:
        raise NotFoundException("Product not found")

    update_data = {k: v for k, v in product_update.dict().items() if v is not None}
    if "price" in update_data:
        update_data["price"] = float(update_data["price"])

    if update_data:
        update_data["updated_at"] = datetime.utcnow()
        await db.products.update_one(
            {"_id": str_to_oid(product_id)},
            {"$set": update_data}
        )

    return MessageResponse(message="Product updated successfully")

@router.delete("/deleteproduct/{product_id}", response_model=MessageResponse)
async def delete_product(product_id: str, admin: dict = Depends(require_admin), db=Depends(get_database)):
    result = await db.products.delete_one({"_id": str_to_oid(product_id)})
    if result.deleted_count == 0:
        raise NotFoundException("Product not found")

    logger.info("Product deleted", extra={"product_id": product_id})
    return MessageResponse(message="Product deleted successfully")
