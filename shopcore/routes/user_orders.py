from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from shopcore.database import get_session
from shopcore.errors import NotFoundError
from shopcore.schemas.orders_schemas import OrderResponse
from shopcore.services import order_service
from shopcore.utils.identity import CurrentUser, get_current_user

router = APIRouter()


@router.get("", response_model=List[OrderResponse])
def my_orders(
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    return order_service.get_orders_by_buyer(session, current_user.id)


@router.get("/{order_id}", response_model=OrderResponse)
def my_order(
    order_id: int,
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    order = order_service.get_order(session, order_id)

    # other buyers' orders look exactly like missing ones
    if order.buyer_id != current_user.id:
        raise NotFoundError("Order not found")

    return order
