from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
from storefront.shared.security_config import sanitize_input

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: Decimal = Field(..., gt=0)
    category: Optional[str] = None

    @field_validator('name', 'description', 'category')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

    @field_validator('name')
    def name_not_blank(cls, v):
        if not v:
            raise ValueError('Product name is required')
        return v

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0)
    category: Optional[str] = None

    @field_validator('name', 'description', 'category')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class ProductResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    price: Decimal
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class ProductCreatedResponse(BaseModel):
    message: str
    product_id: str = Field(..., alias="productId")

    class Config:
        populate_by_name = True

class ProductListResponse(BaseModel):
    products: List[ProductResponse]
    total_pages: int = Field(..., alias="totalPages")
    current_page: int = Field(..., alias="currentPage")

    class Config:
        populate_by_name = True
