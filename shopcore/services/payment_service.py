import hashlib
import hmac
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from pydantic import ValidationError
from sqlmodel import Session

from shopcore.errors import (
    GatewayError,
    GatewayRejectedError,
    GatewayResponseError,
    InvalidRequestError,
    InvariantViolation,
    ShopcoreError,
)
from shopcore.models.order import Order
from shopcore.schemas.cart_schemas import CartSnapshot
from shopcore.schemas.payment_schemas import (
    CHARGE_SUCCESS,
    ChargeSuccessEvent,
    PaymentInit,
    PaymentVerification,
    UnknownWebhookEvent,
    WebhookEvent,
)
from shopcore.services.cart_service import CartService
from shopcore.services.paystack_client import PaystackClient
from shopcore.utils.cache_helpers import CartSnapshotCache
from shopcore.utils.reference import generate_reference

logger = logging.getLogger(__name__)

PaymentCallback = Callable[[Session, PaymentVerification], Any]


class WebhookOutcome(str, Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    REJECTED = "rejected"
    MALFORMED = "malformed"


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def parse_webhook(raw_body: bytes) -> Optional[WebhookEvent]:
    """Turn an authenticated body into a known event, or None if unusable."""
    try:
        payload = json.loads(raw_body)
    except ValueError:
        return None

    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        return None

    if payload["event"] == CHARGE_SUCCESS:
        try:
            return ChargeSuccessEvent.model_validate(payload)
        except ValidationError:
            return None

    data = payload.get("data")
    return UnknownWebhookEvent(event=payload["event"], data=data if isinstance(data, dict) else {})


class PaymentService:
    """
    Adapter to the payment gateway: initialize, verify, authenticate and
    route webhooks.

    It never touches orders itself. Confirmed and failed payments are handed
    to the callbacks supplied at construction.
    """

    def __init__(
        self,
        client: PaystackClient,
        session_factory: Callable[[], Session],
        cache: CartSnapshotCache,
        *,
        currency: str = "NGN",
        callback_url: Optional[str] = None,
        min_amount: float = 0.0,
        shipping_fee: Optional[float] = None,
        on_payment_confirmed: Optional[PaymentCallback] = None,
        on_payment_failed: Optional[PaymentCallback] = None,
    ):
        self.client = client
        self.cache = cache
        self.currency = currency
        self.callback_url = callback_url
        self.min_amount = min_amount
        self.shipping_fee = shipping_fee
        self._session_factory = session_factory
        self._on_payment_confirmed = on_payment_confirmed
        self._on_payment_failed = on_payment_failed

    # -------------------------
    # INITIALIZE
    # -------------------------

    def _load_cart(self, user_id: str) -> Optional[CartSnapshot]:
        with self._session_factory() as session:
            return CartService(session, shipping_fee=self.shipping_fee).get_priced_cart(user_id)

    def invalidate_cart(self, user_id: str) -> None:
        self.cache.invalidate(user_id)

    def initialize(self, user_id: str, email: str) -> PaymentInit:
        """Start a payment for the user's current cart (pay-before-order flow)."""
        if not email:
            raise InvalidRequestError("An email address is required to start a payment")

        snapshot = self.cache.get_or_load(user_id, lambda: self._load_cart(user_id))
        if snapshot is None:
            raise InvalidRequestError("Cart is empty")

        amount = snapshot.total_with_shipping
        if amount < self.min_amount:
            raise InvalidRequestError(
                f"Order total {amount} is below the minimum payable amount {self.min_amount}"
            )

        reference = generate_reference(user_id)
        logger.info(f"User initializing payment: {email} - {user_id} ({reference})")

        return self._initialize(
            email=email,
            amount=amount,
            reference=reference,
            metadata={"user_id": user_id, "email": email, "cart_total": amount},
        )

    def initialize_for_order(self, order: Order, email: str, reference: Optional[str] = None) -> PaymentInit:
        """Start a payment for an order that already exists (order-first flow)."""
        if not email:
            raise InvalidRequestError("An email address is required to start a payment")

        if order.total_price < self.min_amount:
            raise InvalidRequestError(
                f"Order total {order.total_price} is below the minimum payable amount {self.min_amount}"
            )

        return self._initialize(
            email=email,
            amount=order.total_price,
            reference=reference or order.reference,
            metadata={"user_id": order.buyer_id, "email": email, "order_id": order.id},
        )

    def _initialize(
        self,
        *,
        email: str,
        amount: float,
        reference: str,
        metadata: Dict[str, Any],
    ) -> PaymentInit:
        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "reference": reference,
            "callback_url": self.callback_url,
            "metadata": metadata,
        }

        body = self.client.initialize_transaction(payload)

        if "status" not in body:
            raise GatewayResponseError("Gateway response has no status", field="status")

        if body["status"] is not True:
            raise GatewayRejectedError(
                f"Payment initialization refused: {body.get('message') or 'no message'}"
            )

        data = body.get("data")
        if not isinstance(data, dict):
            raise GatewayResponseError("Gateway response has no data", field="data")

        authorization_url = data.get("authorization_url")
        if not authorization_url:
            raise GatewayResponseError(
                "Gateway response has no authorization URL", field="authorization_url"
            )

        returned_reference = data.get("reference")
        if not returned_reference:
            raise GatewayResponseError("Gateway response has no reference", field="reference")

        if returned_reference != reference:
            raise GatewayResponseError(
                f"Gateway answered for reference {returned_reference}, expected {reference}",
                field="reference",
            )

        return PaymentInit(
            authorization_url=authorization_url,
            access_code=data.get("access_code"),
            reference=returned_reference,
            amount=amount,
        )

    # -------------------------
    # VERIFY
    # -------------------------

    def verify(self, reference: str) -> PaymentVerification:
        if not reference:
            raise InvalidRequestError("A payment reference is required")

        body = self.client.verify_transaction(reference)

        if "status" not in body:
            raise GatewayResponseError("Gateway response has no status", field="status")

        if body["status"] is not True:
            logger.warning(f"Transaction not found or failed: {reference}")
            return PaymentVerification(reference=reference, status=False, transaction_status=None)

        data = body.get("data")
        if not isinstance(data, dict):
            raise GatewayResponseError("Gateway response has no data", field="data")

        transaction_status = data.get("status")
        if not transaction_status:
            raise GatewayResponseError("Gateway response has no transaction status", field="data.status")

        if data.get("reference") and data["reference"] != reference:
            raise GatewayResponseError(
                f"Gateway answered for reference {data['reference']}, expected {reference}",
                field="data.reference",
            )

        amount = data.get("amount")
        if amount is not None and not isinstance(amount, int):
            raise GatewayResponseError("Gateway amount is not an integer", field="data.amount")

        customer = data.get("customer") if isinstance(data.get("customer"), dict) else {}

        return PaymentVerification(
            reference=reference,
            status=True,
            transaction_status=transaction_status,
            amount=amount,
            metadata=_metadata(data.get("metadata")),
            customer_email=customer.get("email"),
        )

    # -------------------------
    # WEBHOOK
    # -------------------------

    def verify_signature(self, raw_body: Optional[bytes], signature: Optional[str]) -> bool:
        secret = self.client.secret_key
        if not secret:
            logger.error("Webhook signature check attempted without a configured secret")
            raise InvariantViolation("Webhook secret is not configured")

        if not raw_body or not signature:
            return False

        expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
        # headers may carry non-ASCII text, which compare_digest refuses as str
        return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8", "replace"))

    def handle_webhook(
        self,
        raw_body: bytes,
        signature: Optional[str],
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> WebhookOutcome:
        """
        Authenticate, classify and schedule a webhook. Reconciliation runs on
        ``background_tasks`` when given so the acknowledgment is not held;
        without it the work runs inline.
        """

        if not self.verify_signature(raw_body, signature):
            logger.warning("Rejected webhook: invalid or missing signature")
            return WebhookOutcome.REJECTED

        event = parse_webhook(raw_body)
        if event is None:
            logger.warning("Rejected webhook: authenticated but unreadable payload")
            return WebhookOutcome.MALFORMED

        if isinstance(event, UnknownWebhookEvent):
            logger.info(f"Webhook ignored for event: {event.event}")
            return WebhookOutcome.IGNORED

        reference = event.data.reference
        logger.info(f"Webhook received: {CHARGE_SUCCESS} - Ref: {reference}")

        if background_tasks is not None:
            background_tasks.add_task(self.process_charge_success, reference)
        else:
            self.process_charge_success(reference)

        return WebhookOutcome.ACCEPTED

    def process_charge_success(self, reference: str) -> Optional[PaymentVerification]:
        """Re-verify server-side, then reconcile. The webhook body is never trusted."""
        try:
            verification = self.verify(reference)
        except GatewayError as e:
            logger.error(f"Error verifying transaction: {reference} - {e.message}")
            return None

        if verification.succeeded:
            self._run_callback(self._on_payment_confirmed, verification, "mark order as paid")
        elif verification.failed:
            self._run_callback(self._on_payment_failed, verification, "mark order as failed")
        else:
            logger.warning(
                f"Transaction verification failed for {reference} "
                f"(status {verification.transaction_status})"
            )

        return verification

    def _run_callback(
        self,
        callback: Optional[PaymentCallback],
        verification: PaymentVerification,
        action: str,
    ) -> None:
        if callback is None:
            logger.error(f"No handler registered to {action} for {verification.reference}")
            return

        with self._session_factory() as session:
            try:
                callback(session, verification)
                logger.info(f"Order updated for reference: {verification.reference}")
            except ShopcoreError as e:
                session.rollback()
                logger.error(f"Failed to {action} for {verification.reference}: {e.message}")


def _metadata(value) -> Dict[str, Any]:
    # the gateway echoes metadata either as an object or as a JSON string
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}
