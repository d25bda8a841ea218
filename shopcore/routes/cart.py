from fastapi import APIRouter, Depends
from sqlmodel import Session

from shopcore.database import get_session
from shopcore.dependencies.services import get_cart_cache
from shopcore.schemas.cart_schemas import CartAddRequest, CartUpdateRequest, PagedCart
from shopcore.services.cart_service import CartService
from shopcore.utils.cache_helpers import CartSnapshotCache
from shopcore.utils.identity import CurrentUser, get_current_user

router = APIRouter()


def get_cart_service(
    session: Session = Depends(get_session),
    cache: CartSnapshotCache = Depends(get_cart_cache),
) -> CartService:
    return CartService(session, cache=cache)


# View Cart

@router.get("/", response_model=PagedCart)
def get_cart(
    page: int = 1,
    limit: int = 10,
    cart: CartService = Depends(get_cart_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return cart.get_paged_cart(current_user.id, page=page, limit=limit)


# Add to Cart

@router.post("/add")
def add_to_cart(
    data: CartAddRequest,
    cart: CartService = Depends(get_cart_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    item = cart.add(current_user.id, data.product_id, data.quantity)
    return {"message": "Added to cart", "item": item}


# Update quantity (0 removes the line)

@router.put("/update/{product_id}")
def update_cart_item(
    product_id: str,
    data: CartUpdateRequest,
    cart: CartService = Depends(get_cart_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    item = cart.update_quantity(current_user.id, product_id, data.quantity)
    if item is None:
        return {"message": "Item removed from cart"}
    return {"message": "Cart updated", "item": item}


@router.delete("/remove/{product_id}")
def remove_cart_item(
    product_id: str,
    cart: CartService = Depends(get_cart_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    cart.remove(current_user.id, product_id)
    return {"message": "Item removed from cart"}


@router.delete("/clear")
def clear_cart(
    cart: CartService = Depends(get_cart_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    removed = cart.clear(current_user.id)
    return {"message": "Cart cleared", "removed": removed}
