import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlmodel import Session

from shopcore.database import get_session
from shopcore.dependencies.services import get_checkout_service, get_payment_service
from shopcore.schemas.orders_schemas import OrderResponse
from shopcore.schemas.payment_schemas import (
    InitializePaymentRequest,
    PaymentInit,
    VerifyPaymentRequest,
)
from shopcore.services.checkout_service import CheckoutService
from shopcore.services.payment_service import PaymentService, WebhookOutcome
from shopcore.utils.identity import CurrentUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADERS = ("x-paystack-signature", "x-signature")

WEBHOOK_MESSAGES = {
    WebhookOutcome.ACCEPTED: "Webhook received",
    WebhookOutcome.IGNORED: "Webhook ignored",
    WebhookOutcome.REJECTED: "Webhook ignored",
    WebhookOutcome.MALFORMED: "Webhook ignored",
}


# Pay for the cart before an order exists

@router.post("/initialize", response_model=PaymentInit)
def initialize_payment(
    data: InitializePaymentRequest,
    payments: PaymentService = Depends(get_payment_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return payments.initialize(current_user.id, data.email or current_user.email)


@router.post("/verify")
def verify_payment(
    data: VerifyPaymentRequest,
    session: Session = Depends(get_session),
    checkout: CheckoutService = Depends(get_checkout_service),
    _: CurrentUser = Depends(get_current_user),
):
    verification, order = checkout.verify_payment(session, data.reference)
    return {
        "reference": verification.reference,
        "status": verification.transaction_status,
        "paid": verification.succeeded,
        "order": OrderResponse.model_validate(order) if order else None,
    }


# Gateway callback. Always acknowledged; the work happens after the response.

@router.post("/webhook")
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    payments: PaymentService = Depends(get_payment_service),
):
    raw_body = await request.body()

    signature = None
    for header in SIGNATURE_HEADERS:
        signature = request.headers.get(header)
        if signature:
            break

    outcome = payments.handle_webhook(raw_body, signature, background_tasks=background_tasks)
    return {"message": WEBHOOK_MESSAGES[outcome]}
