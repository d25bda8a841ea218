# -------- ADMIN ORDERS --------
from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from shopcore.database import get_session
from shopcore.dependencies.admin import require_admin
from shopcore.dependencies.services import get_checkout_service
from shopcore.schemas.orders_schemas import (
    OrderLogResponse,
    OrderResponse,
    OrderStats,
    UpdateStatusRequest,
)
from shopcore.services import order_service
from shopcore.services.checkout_service import CheckoutService
from shopcore.services.order_event_service import get_logs
from shopcore.utils.identity import CurrentUser

router = APIRouter()


@router.get("")
def list_orders(
    page: int = 1,
    limit: int = 10,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
):
    data = order_service.get_all_orders(session, page=page, limit=limit)
    data["results"] = [OrderResponse.model_validate(order) for order in data["results"]]
    return data


# Declared before /{order_id} so "stats" is not read as an id
@router.get("/stats", response_model=OrderStats)
def order_stats(
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
):
    return order_service.get_stats(session)


@router.get("/reference/{reference}", response_model=OrderResponse)
def get_order_by_reference(
    reference: str,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
):
    return order_service.get_order_by_reference(session, reference)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
):
    return order_service.get_order(session, order_id)


@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    data: UpdateStatusRequest,
    session: Session = Depends(get_session),
    checkout: CheckoutService = Depends(get_checkout_service),
    admin: CurrentUser = Depends(require_admin),
):
    return checkout.update_status(session, order_id, data.status, performed_by=admin.id)


@router.get("/{order_id}/logs", response_model=List[OrderLogResponse])
def order_logs(
    order_id: int,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
):
    order = order_service.get_order(session, order_id)
    return get_logs(session, order.id)


@router.post("/{order_id}/assign", response_model=OrderLogResponse)
def assign_order(
    order_id: int,
    session: Session = Depends(get_session),
    checkout: CheckoutService = Depends(get_checkout_service),
    admin: CurrentUser = Depends(require_admin),
):
    return checkout.log_assignment(session, order_id, admin.id)
