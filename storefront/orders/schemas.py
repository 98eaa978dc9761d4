from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
from storefront.shared.security_config import clean_text


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True


# --- Requests ---
class CartItemAdd(CamelModel):
    product_id: str = Field(..., alias="productId", min_length=1)
    quantity: int = Field(..., gt=0)

class CartItemUpdate(CamelModel):
    product_id: str = Field(..., alias="productId", min_length=1)
    quantity: int = Field(..., ge=0)

class CartItemDelete(CamelModel):
    product_id: str = Field(..., alias="productId", min_length=1)

class OrderCreate(CamelModel):
    shipping_details: str = Field(..., alias="shippingDetails", min_length=1)

    @field_validator('shipping_details')
    def clean_shipping(cls, v):
        v = clean_text(v)
        if not v:
            raise ValueError('Shipping details are required')
        return v


# --- Cart responses ---
class CartItemResponse(CamelModel):
    product_id: str = Field(..., alias="productId")
    quantity: int

class CartResponse(CamelModel):
    id: str
    customer_id: str = Field(..., alias="customerId")
    items: List[CartItemResponse]
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

class CartMutationResponse(BaseModel):
    message: str
    cart: CartResponse

class CartLineResponse(CamelModel):
    product_id: str = Field(..., alias="productId")
    product: str
    description: str = ""
    quantity: int
    price: Decimal
    total: Decimal

class CartViewResponse(CamelModel):
    message: Optional[str] = None
    cart: List[CartLineResponse]
    total_amount: Optional[Decimal] = Field(None, alias="totalAmount")


# --- Order responses ---
class OrderProductResponse(BaseModel):
    id: str
    name: str
    price: Decimal
    description: Optional[str] = None

class OrderItemResponse(BaseModel):
    product: OrderProductResponse
    quantity: int

class OrderResponse(CamelModel):
    id: str
    customer_id: str = Field(..., alias="customerId")
    items: List[OrderItemResponse]
    shipping_details: str = Field(..., alias="shippingDetails")
    order_date: datetime = Field(..., alias="orderDate")
    status: str
    total_amount: Decimal = Field(..., alias="totalAmount")

class OrderPlacedResponse(CamelModel):
    message: str
    order_id: str = Field(..., alias="orderId")

class OrderPageResponse(CamelModel):
    orders: List[OrderResponse]
    current_page: int = Field(..., alias="currentPage")
    total_pages: int = Field(..., alias="totalPages")
    total_orders: int = Field(..., alias="totalOrders")

class OrderCustomerResponse(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None

class AdminOrderResponse(CamelModel):
    id: str
    customer: OrderCustomerResponse
    items: List[OrderItemResponse]
    shipping_details: str = Field(..., alias="shippingDetails")
    order_date: datetime = Field(..., alias="orderDate")
    status: str
    total_amount: Decimal = Field(..., alias="totalAmount")
