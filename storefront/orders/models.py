from datetime import datetime
from enum import Enum
from typing import Optional, List
from decimal import Decimal
from pydantic import BaseModel, Field

class OrderStatus(str, Enum):
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

class CartItemDB(BaseModel):
    product_id: str
    quantity: int

class CartDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    customer_id: str
    items: List[CartItemDB] = []
    # Bumped on every write; writes are conditional on the value they read
    version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

class OrderProductDB(BaseModel):
    id: str
    name: str
    description: str = ""
    price: Decimal # Snapshot at checkout

class OrderItemDB(BaseModel):
    product: OrderProductDB
    quantity: int

class OrderDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    customer_id: str
    items: List[OrderItemDB]
    shipping_details: str
    total_amount: Decimal
    status: str = OrderStatus.PROCESSING.value
    order_date: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

    def to_document(self) -> dict:
        # Mongo has no Decimal codec configured, prices go in as floats
        doc = self.dict(by_alias=True, exclude={"id"})
        doc["total_amount"] = float(doc["total_amount"])
        for item in doc["items"]:
            item["product"]["price"] = float(item["product"]["price"])
        return doc
