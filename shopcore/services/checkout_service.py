import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from shopcore.config import settings
from shopcore.constants.order_status import SYSTEM_ACTOR, OrderStatus
from shopcore.errors import ConflictError, InvalidRequestError, NotFoundError
from shopcore.models.order import Order
from shopcore.notifications import Notifier, dispatch_order_notification, kind_for_status
from shopcore.schemas.payment_schemas import PaymentInit, PaymentVerification
from shopcore.services.cart_service import CartService
from shopcore.services.inventory_service import decrement_items, validate_stock
from shopcore.services.order_service import (
    build_order_summary,
    create_order,
    find_order_by_reference,
    get_order,
    log_assignment,
    record_payment_attempt,
    transition_order,
)
from shopcore.services.payment_service import PaymentService, to_minor_units
from shopcore.utils.cache_helpers import CartSnapshotCache
from shopcore.utils.identity import Contact, UserDirectory
from shopcore.utils.reference import extract_user_id, generate_reference

logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Coordinates cart, stock, order store and payment gateway.

    Two flows meet here and may interleave arbitrarily: the client turning
    its cart into an order, and the gateway confirming a payment. Every
    entry point is safe to call more than once.
    """

    def __init__(
        self,
        payment_service: PaymentService,
        notifier: Notifier,
        directory: UserDirectory,
        cache: Optional[CartSnapshotCache] = None,
        shipping_fee: Optional[float] = None,
        delivery_days: Optional[int] = None,
    ):
        self.payment_service = payment_service
        self.notifier = notifier
        self.directory = directory
        self.cache = cache
        self.shipping_fee = settings.shipping_fee if shipping_fee is None else shipping_fee
        self.delivery_days = settings.delivery_days if delivery_days is None else delivery_days

    def _cart(self, session: Session) -> CartService:
        return CartService(session, cache=self.cache, shipping_fee=self.shipping_fee)

    # -------------------------
    # ORDER CREATION
    # -------------------------

    def create_order_from_cart(
        self,
        session: Session,
        buyer_id: str,
        payment_reference: Optional[str] = None,
    ) -> Order:
        """
        Snapshot the cart, validate and decrement stock, persist the order and
        clear the cart in one transaction. With ``payment_reference`` the
        payment already happened and the order is created paid.
        """
        return self._create_from_cart(session, buyer_id, payment_reference)

    def place_order(
        self,
        session: Session,
        buyer_id: str,
        payment_reference: Optional[str] = None,
    ) -> Order:
        """
        Client entry point. A reference supplied by the client is only trusted
        once the gateway confirms it was charged, and charged for this buyer.
        """
        if not payment_reference:
            return self.create_order_from_cart(session, buyer_id)

        verification = self.payment_service.verify(payment_reference)
        if not verification.succeeded:
            logger.warning(
                f"User {buyer_id} submitted unconfirmed payment {payment_reference} "
                f"(status {verification.transaction_status})"
            )
            raise InvalidRequestError("Payment has not been confirmed by the gateway")

        owner = self._recover_buyer(payment_reference, verification)
        if owner and owner != buyer_id:
            logger.warning(f"User {buyer_id} submitted payment {payment_reference} made by {owner}")
            raise ConflictError("Payment reference already belongs to another buyer")

        existing = self._existing_for_payment(session, buyer_id, payment_reference)
        if existing is not None:
            return self.mark_order_as_paid(session, payment_reference, verification)

        meta = {"reference": payment_reference}
        if verification.amount is not None:
            meta["amount_paid"] = verification.amount

        order = self._create_from_cart(
            session,
            buyer_id,
            payment_reference,
            fallback_email=verification.customer_email,
            paid_meta=meta,
        )
        self._check_amount(order, verification)
        return order

    def _create_from_cart(
        self,
        session: Session,
        buyer_id: str,
        payment_reference: Optional[str],
        fallback_email: Optional[str] = None,
        paid_meta: Optional[dict] = None,
    ) -> Order:
        if payment_reference:
            existing = self._existing_for_payment(session, buyer_id, payment_reference)
            if existing:
                return existing

        try:
            order = self._build_order(session, buyer_id, payment_reference, paid_meta)
            session.commit()
        except IntegrityError:
            # a concurrent request persisted the same reference first
            session.rollback()
            existing = self._existing_for_payment(session, buyer_id, payment_reference) if payment_reference else None
            if existing:
                return existing
            raise ConflictError("Duplicate order reference")
        except Exception:
            session.rollback()
            raise

        session.refresh(order)
        logger.info(f"Order #{order.id} created for {buyer_id} ({order.reference}), total {order.total_price}")

        status = OrderStatus.paid if order.is_paid else OrderStatus.pending
        self.send_order_notification(session, order.id, status, fallback_email=fallback_email)
        return order

    def _existing_for_payment(self, session: Session, buyer_id: str, payment_reference: str) -> Optional[Order]:
        existing = find_order_by_reference(session, payment_reference)
        if existing is None:
            return None

        if existing.buyer_id != buyer_id:
            raise ConflictError("Payment reference already belongs to another order")

        logger.info(f"Order #{existing.id} already exists for {payment_reference}")
        return existing

    def _build_order(
        self,
        session: Session,
        buyer_id: str,
        payment_reference: Optional[str],
        paid_meta: Optional[dict],
    ) -> Order:
        cart = self._cart(session)

        snapshot = cart.get_priced_cart(buyer_id)
        if snapshot is None:
            raise InvalidRequestError("Cart is empty")

        validation = validate_stock(session, snapshot.items)
        if not validation.is_valid:
            raise ConflictError("Insufficient stock", details=validation.errors)

        order = create_order(
            session,
            buyer_id=buyer_id,
            snapshot=snapshot,
            reference=payment_reference or generate_reference(buyer_id),
            payment_reference=payment_reference,
            delivery_days=self.delivery_days,
        )

        # re-checked by the UPDATE itself; a lost race aborts everything above
        decrement_items(session, snapshot.items)

        if payment_reference:
            transition_order(
                session,
                order,
                OrderStatus.paid,
                performed_by=SYSTEM_ACTOR,
                meta={"payment_reference": payment_reference, **(paid_meta or {})},
            )

        cart.clear(buyer_id, commit=False)
        return order

    def start_checkout(self, session: Session, buyer_id: str, email: str) -> Tuple[Order, PaymentInit]:
        """Order-first flow: create the order, then open a payment for it."""
        order = self.create_order_from_cart(session, buyer_id)
        payment = self.initialize_order_payment(session, order, email)
        return order, payment

    def initialize_order_payment(self, session: Session, order: Order, email: str) -> PaymentInit:
        if order.is_paid:
            raise ConflictError("Order is already paid")
        if order.status != OrderStatus.pending.value:
            raise ConflictError(f"Order is {order.status}, it can no longer be paid")

        # a reference is single use at the gateway, retries need a fresh one
        reference = order.reference if not order.payment_reference else generate_reference(order.buyer_id)

        payment = self.payment_service.initialize_for_order(order, email, reference=reference)

        order.payment_reference = payment.reference
        session.add(order)
        record_payment_attempt(session, order, payment.reference)
        session.commit()
        session.refresh(order)
        return payment

    # -------------------------
    # PAYMENT RECONCILIATION
    # -------------------------

    def mark_order_as_paid(
        self,
        session: Session,
        reference: str,
        verification: Optional[PaymentVerification] = None,
    ) -> Order:
        """
        Idempotent. When no order matches ``reference`` the payment beat the
        order: the buyer is recovered and the order is created from their
        cart, already paid.
        """
        meta = {"reference": reference}
        if verification is not None and verification.amount is not None:
            meta["amount_paid"] = verification.amount

        order = find_order_by_reference(session, reference)

        if order is None:
            buyer_id = self._recover_buyer(reference, verification)
            if not buyer_id:
                raise NotFoundError("Order not found for reference")

            logger.warning(f"Payment {reference} arrived before its order; creating it for user {buyer_id}")
            order = self._create_from_cart(
                session,
                buyer_id,
                reference,
                fallback_email=verification.customer_email if verification else None,
                paid_meta={**meta, "recovered": True},
            )
            self._check_amount(order, verification)
            return order

        if order.is_paid:
            logger.info(f"Order #{order.id} already paid, ignoring confirmation for {reference}")
            return order

        self._check_amount(order, verification)

        try:
            transition_order(session, order, OrderStatus.paid, performed_by=SYSTEM_ACTOR, meta=meta)
            if not order.payment_reference:
                order.payment_reference = reference
                session.add(order)
            session.commit()
        except ConflictError:
            session.rollback()
            session.refresh(order)
            if order.is_paid:
                # another confirmation won the race
                return order
            raise

        session.refresh(order)
        self.send_order_notification(
            session,
            order.id,
            OrderStatus.paid,
            fallback_email=verification.customer_email if verification else None,
        )
        return order

    def mark_order_as_failed(
        self,
        session: Session,
        reference: str,
        verification: Optional[PaymentVerification] = None,
    ) -> Order:
        order = find_order_by_reference(session, reference)
        if order is None:
            logger.warning(f"Payment failure for unknown reference {reference}")
            raise NotFoundError("Order not found for reference")

        if order.status != OrderStatus.pending.value:
            logger.info(f"Order #{order.id} is {order.status}, ignoring failure for {reference}")
            return order

        if order.payment_reference and reference != order.payment_reference:
            logger.info(f"Order #{order.id} moved on to {order.payment_reference}, ignoring failure for {reference}")
            return order

        try:
            transition_order(
                session,
                order,
                OrderStatus.failed,
                performed_by=SYSTEM_ACTOR,
                meta={"reference": reference},
            )
            session.commit()
        except ConflictError:
            session.rollback()
            session.refresh(order)
            logger.info(f"Order #{order.id} moved to {order.status} before failure for {reference}")
            return order

        session.refresh(order)
        self.send_order_notification(session, order.id, OrderStatus.failed)
        return order

    def verify_payment(self, session: Session, reference: str) -> Tuple[PaymentVerification, Optional[Order]]:
        """Client-side polling: ask the gateway and reconcile what it says."""
        verification = self.payment_service.verify(reference)

        if verification.succeeded:
            return verification, self.mark_order_as_paid(session, reference, verification)

        order = find_order_by_reference(session, reference)
        if verification.failed and order is not None:
            order = self.mark_order_as_failed(session, reference, verification)

        return verification, order

    def _recover_buyer(self, reference: str, verification: Optional[PaymentVerification]) -> Optional[str]:
        if verification is not None and verification.metadata.get("user_id"):
            return str(verification.metadata["user_id"])
        return extract_user_id(reference)

    def _check_amount(self, order: Order, verification: Optional[PaymentVerification]) -> None:
        if verification is None or verification.amount is None:
            return
        expected = to_minor_units(order.total_price)
        if verification.amount != expected:
            logger.warning(
                f"Amount mismatch on order #{order.id}: paid {verification.amount}, expected {expected}"
            )

    # -------------------------
    # STATUS
    # -------------------------

    def update_status(self, session: Session, order_id: int, new_status: OrderStatus, performed_by: str) -> Order:
        order = get_order(session, order_id)

        try:
            transition_order(session, order, OrderStatus(new_status), performed_by=performed_by)
            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(order)
        self.send_order_notification(session, order.id, new_status)
        return order

    def log_assignment(self, session: Session, order_id: int, admin_id: str):
        return log_assignment(session, order_id, admin_id)

    # -------------------------
    # NOTIFICATIONS
    # -------------------------

    def send_order_notification(
        self,
        session: Session,
        order_id: int,
        status: OrderStatus,
        fallback_email: Optional[str] = None,
    ) -> bool:
        """Best effort: failures are logged, never raised."""
        try:
            order = session.get(Order, order_id)
            if order is None:
                logger.warning(f"Cannot notify for missing order #{order_id}")
                return False

            contact = self.directory.get_contact(session, order.buyer_id)
            if contact is None and fallback_email:
                contact = Contact(email=fallback_email)

            return dispatch_order_notification(
                notifier=self.notifier,
                user=contact,
                summary=build_order_summary(order),
                kind=kind_for_status(status),
            )
        except Exception:
            logger.exception(f"Could not prepare notification for order #{order_id}")
            return False
