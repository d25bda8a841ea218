from fastapi import APIRouter, Depends
from sqlmodel import Session

from shopcore.database import get_session
from shopcore.dependencies.services import get_checkout_service
from shopcore.errors import InvalidRequestError
from shopcore.schemas.checkout_schemas import CheckoutResponse, CreateOrderRequest
from shopcore.schemas.orders_schemas import OrderResponse
from shopcore.schemas.payment_schemas import InitializePaymentRequest
from shopcore.services.checkout_service import CheckoutService
from shopcore.utils.identity import CurrentUser, get_current_user

router = APIRouter()


# Place order from cart. A payment reference is verified with the gateway first
# and the order is created paid.

@router.post("/orders", response_model=OrderResponse)
def create_order(
    data: CreateOrderRequest,
    session: Session = Depends(get_session),
    checkout: CheckoutService = Depends(get_checkout_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return checkout.place_order(
        session,
        current_user.id,
        payment_reference=data.payment_reference,
    )


# Order first, then hand the buyer to the gateway

@router.post("/start", response_model=CheckoutResponse)
def start_checkout(
    data: InitializePaymentRequest,
    session: Session = Depends(get_session),
    checkout: CheckoutService = Depends(get_checkout_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    email = data.email or current_user.email
    if not email:
        raise InvalidRequestError("An email address is required to start a payment")

    order, payment = checkout.start_checkout(session, current_user.id, email)
    return CheckoutResponse(order=OrderResponse.model_validate(order), payment=payment)
