from fastapi import APIRouter, Depends, Request
from typing import List

from storefront.shared.utils import (
    Pagination, get_current_customer, get_pagination, require_admin
)
from storefront.shared.security_config import CART_VIEW_RATE, limiter

from storefront.orders.schemas import (
    CartItemAdd, CartItemUpdate, CartItemDelete, CartResponse, CartMutationResponse,
    CartViewResponse, OrderCreate, OrderPlacedResponse, OrderPageResponse, AdminOrderResponse
)
from storefront.orders.cart import CartEngine
from storefront.orders.engine import OrderEngine

cart_router = APIRouter(prefix="/cart", tags=["cart"])
order_router = APIRouter(prefix="/orders", tags=["orders"])


# --- Dependencies ---
def get_cart_engine(request: Request) -> CartEngine:
    return request.app.state.cart_engine

def get_order_engine(request: Request) -> OrderEngine:
    return request.app.state.order_engine

# --- Helper ---
def cart_payload(message: str, cart: dict) -> CartMutationResponse:
    return CartMutationResponse(
        message=message,
        cart=CartResponse(
            id=str(cart["_id"]),
            customer_id=cart["customer_id"],
            items=cart.get("items", []),
            updated_at=cart.get("updated_at"),
        )
    )

# --- Endpoints ---

# Cart
@cart_router.post("/add", response_model=CartMutationResponse)
async def add_to_cart(
    item: CartItemAdd,
    customer_id: str = Depends(get_current_customer),
    engine: CartEngine = Depends(get_cart_engine),
):
    cart = await engine.add_item(customer_id, item.product_id, item.quantity)
    return cart_payload("Product added to cart", cart)

@cart_router.put("/update", response_model=CartMutationResponse)
async def update_cart(
    item: CartItemUpdate,
    customer_id: str = Depends(get_current_customer),
    engine: CartEngine = Depends(get_cart_engine),
):
    cart = await engine.set_quantity(customer_id, item.product_id, item.quantity)
    return cart_payload("Cart updated", cart)

@cart_router.delete("/delete", response_model=CartMutationResponse)
async def delete_from_cart(
    item: CartItemDelete,
    customer_id: str = Depends(get_current_customer),
    engine: CartEngine = Depends(get_cart_engine),
):
    cart = await engine.remove_item(customer_id, item.product_id)
    return cart_payload("Product removed from cart", cart)

@cart_router.get("/", response_model=CartViewResponse, response_model_exclude_none=True)
@limiter.limit(CART_VIEW_RATE)
async def get_cart(
    request: Request,
    customer_id: str = Depends(get_current_customer),
    engine: CartEngine = Depends(get_cart_engine),
):
    return CartViewResponse(**await engine.view(customer_id))

# Orders
@order_router.post("/placeorder", response_model=OrderPlacedResponse)
async def place_order(
    order: OrderCreate,
    customer_id: str = Depends(get_current_customer),
    engine: OrderEngine = Depends(get_order_engine),
):
    order_id = await engine.place_order(customer_id, order.shipping_details)
    return OrderPlacedResponse(message="Order placed successfully", order_id=order_id)

@order_router.get("/getallorders", response_model=List[AdminOrderResponse])
async def get_all_orders(
    admin: dict = Depends(require_admin),
    engine: OrderEngine = Depends(get_order_engine),
):
    return [AdminOrderResponse(**order) for order in await engine.list_all()]

@order_router.get("/myorders", response_model=OrderPageResponse)
async def my_orders(
    customer_id: str = Depends(get_current_customer),
    pagination: Pagination = Depends(get_pagination),
    engine: OrderEngine = Depends(get_order_engine),
):
    return OrderPageResponse(**await engine.list_for_customer(customer_id, pagination))

@order_router.get("/customer/{target_customer_id}", response_model=OrderPageResponse)
async def customer_orders(
    target_customer_id: str,
    customer_id: str = Depends(get_current_customer),
    pagination: Pagination = Depends(get_pagination),
    engine: OrderEngine = Depends(get_order_engine),
):
    return OrderPageResponse(
        **await engine.list_for_scoped_customer(customer_id, target_customer_id, pagination)
    )
