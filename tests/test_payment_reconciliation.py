"""Tests for confirming payments against orders, in either arrival order."""

import json
import logging
from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from conftest import echo_init, sign, verify_response
from shopcore.constants.order_status import OrderAction, OrderStatus
from shopcore.errors import ConflictError, InvalidRequestError, NotFoundError
from shopcore.jobs.payment_reconciliation import reconcile_pending_payments
from shopcore.models.order import Order
from shopcore.models.product import Product
from shopcore.notifications import NotificationKind
from shopcore.schemas.payment_schemas import PaymentVerification
from shopcore.services.order_event_service import count_logs
from shopcore.services.order_service import find_order_by_reference
from shopcore.services.payment_service import WebhookOutcome

RACE_REFERENCE = "TXN-1700000000-u123-ab12de"


def charge_success(reference, amount=1075000):
    return json.dumps(
        {"event": "charge.success", "data": {"reference": reference, "amount": amount, "status": "success"}}
    ).encode("utf-8")


@pytest.fixture
def pending_order(session, checkout_service, fill_cart, products, users):
    fill_cart("u123", ("p-lamp", 1))
    return checkout_service.create_order_from_cart(session, "u123")


class TestMarkOrderAsPaid:
    def test_pending_order_becomes_paid(self, session, session_factory, checkout_service, pending_order, notifier):
        order = checkout_service.mark_order_as_paid(session, pending_order.reference)

        assert order.status == OrderStatus.paid.value
        assert order.is_paid is True
        assert order.paid_at is not None
        with session_factory() as s:
            assert count_logs(s, order.id, OrderAction.paid) == 1
        assert notifier.kinds() == [NotificationKind.ORDER_PLACED, NotificationKind.PAYMENT_CONFIRMED]

    def test_second_confirmation_is_a_no_op(
        self, session, session_factory, checkout_service, pending_order, notifier
    ):
        first = checkout_service.mark_order_as_paid(session, pending_order.reference)
        paid_at, status = first.paid_at, first.status

        second = checkout_service.mark_order_as_paid(session, pending_order.reference)
        checkout_service.mark_order_as_paid(session, pending_order.reference)

        assert second.paid_at == paid_at
        assert second.status == status
        with session_factory() as s:
            assert count_logs(s, pending_order.id, OrderAction.paid) == 1
        assert notifier.kinds().count(NotificationKind.PAYMENT_CONFIRMED) == 1

    def test_matches_on_payment_reference(self, session, checkout_service, pending_order):
        pending_order.payment_reference = "TXN-1700000000001-u123-ffffff"
        session.add(pending_order)
        session.commit()

        order = checkout_service.mark_order_as_paid(session, "TXN-1700000000001-u123-ffffff")

        assert order.id == pending_order.id
        assert order.is_paid is True

    def test_amount_mismatch_is_logged(self, session, checkout_service, pending_order, caplog):
        verification = PaymentVerification(
            reference=pending_order.reference,
            status=True,
            transaction_status="success",
            amount=100,
        )

        with caplog.at_level(logging.WARNING):
            order = checkout_service.mark_order_as_paid(session, pending_order.reference, verification)

        assert order.is_paid is True
        assert "Amount mismatch" in caplog.text

    def test_cancelled_order_is_not_paid(self, session, checkout_service, pending_order):
        checkout_service.update_status(session, pending_order.id, OrderStatus.cancelled, performed_by="admin-1")

        with pytest.raises(ConflictError):
            checkout_service.mark_order_as_paid(session, pending_order.reference)

        session.expire_all()
        assert session.get(Order, pending_order.id).status == OrderStatus.cancelled.value


class TestPaymentBeforeOrder:
    def test_order_is_synthesized_from_reference(
        self, session, session_factory, checkout_service, fill_cart, products, users, notifier
    ):
        fill_cart("u123", ("p-lamp", 1))

        order = checkout_service.mark_order_as_paid(session, RACE_REFERENCE)

        assert order.buyer_id == "u123"
        assert order.is_paid is True
        assert order.status == OrderStatus.paid.value
        assert order.payment_reference == RACE_REFERENCE
        assert order.total_price == 10750.0
        with session_factory() as s:
            assert count_logs(s, order.id, OrderAction.created) == 1
            assert count_logs(s, order.id, OrderAction.paid) == 1
        assert notifier.kinds() == [NotificationKind.PAYMENT_CONFIRMED]

    def test_webhook_for_unknown_reference_synthesizes_paid_order(
        self, session_factory, payment_service, http, fill_cart, products, users, notifier
    ):
        fill_cart("u123", ("p-lamp", 1))
        http.add(verify_response(RACE_REFERENCE, amount=1075000))
        body = charge_success(RACE_REFERENCE)

        outcome = payment_service.handle_webhook(body, sign(body))

        assert outcome == WebhookOutcome.ACCEPTED
        with session_factory() as s:
            order = find_order_by_reference(s, RACE_REFERENCE)
            assert order is not None
            assert order.buyer_id == "u123"
            assert order.is_paid is True
            assert count_logs(s, order.id, OrderAction.paid) == 1
        assert notifier.sent == [("ada@example.com", order.id, NotificationKind.PAYMENT_CONFIRMED)]

    def test_duplicate_webhook_delivery_changes_nothing(
        self, session_factory, payment_service, http, fill_cart, products, users, notifier
    ):
        fill_cart("u123", ("p-lamp", 1))
        http.add(verify_response(RACE_REFERENCE)).add(verify_response(RACE_REFERENCE))
        body = charge_success(RACE_REFERENCE)

        payment_service.handle_webhook(body, sign(body))
        payment_service.handle_webhook(body, sign(body))

        with session_factory() as s:
            order = find_order_by_reference(s, RACE_REFERENCE)
            assert count_logs(s, order.id, OrderAction.created) == 1
            assert count_logs(s, order.id, OrderAction.paid) == 1
            assert s.get(Product, "p-lamp").stock == 1
        assert notifier.kinds() == [NotificationKind.PAYMENT_CONFIRMED]

    def test_buyer_from_verified_metadata_wins(
        self, session, checkout_service, fill_cart, products, users
    ):
        fill_cart("user-with-dashes", ("p-book", 1))
        reference = "TXN-1700000000000-user-with-dashes-0a1b2c"
        verification = PaymentVerification(
            reference=reference,
            status=True,
            transaction_status="success",
            amount=575000,
            metadata={"user_id": "user-with-dashes"},
        )

        order = checkout_service.mark_order_as_paid(session, reference, verification)

        assert order.buyer_id == "user-with-dashes"
        assert order.total_price == 5750.0

    def test_unparseable_reference_is_not_found(self, session, checkout_service, products):
        with pytest.raises(NotFoundError):
            checkout_service.mark_order_as_paid(session, "paystack-opaque-ref")

    def test_recovered_buyer_with_empty_cart_creates_nothing(self, session, session_factory, checkout_service):
        with pytest.raises(InvalidRequestError):
            checkout_service.mark_order_as_paid(session, RACE_REFERENCE)

        with session_factory() as s:
            assert find_order_by_reference(s, RACE_REFERENCE) is None


class TestPaymentFailure:
    def test_pending_order_becomes_failed(self, session, checkout_service, pending_order, notifier):
        order = checkout_service.mark_order_as_failed(session, pending_order.reference)

        assert order.status == OrderStatus.failed.value
        assert order.is_paid is False
        assert notifier.kinds()[-1] == NotificationKind.PAYMENT_FAILED

    def test_paid_order_is_left_alone(self, session, session_factory, checkout_service, pending_order):
        checkout_service.mark_order_as_paid(session, pending_order.reference)

        order = checkout_service.mark_order_as_failed(session, pending_order.reference)

        assert order.status == OrderStatus.paid.value
        with session_factory() as s:
            assert count_logs(s, order.id, OrderAction.failed) == 0

    def test_unknown_reference(self, session, checkout_service):
        with pytest.raises(NotFoundError):
            checkout_service.mark_order_as_failed(session, "TXN-1-nobody-000000")


class TestVerifyPayment:
    def test_success_marks_order_paid(self, session, checkout_service, pending_order, http):
        http.add(verify_response(pending_order.reference, amount=1075000))

        verification, order = checkout_service.verify_payment(session, pending_order.reference)

        assert verification.succeeded
        assert order.is_paid is True

    def test_abandoned_leaves_order_pending(self, session, checkout_service, pending_order, http):
        http.add(verify_response(pending_order.reference, status="abandoned"))

        verification, order = checkout_service.verify_payment(session, pending_order.reference)

        assert not verification.succeeded
        assert not verification.failed
        assert order.status == OrderStatus.pending.value


class TestOrderFirstCheckout:
    def test_start_checkout_stores_payment_reference(self, session, checkout_service, fill_cart, products, users, http):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init)

        order, payment = checkout_service.start_checkout(session, "u123", "ada@example.com")

        assert payment.reference == order.reference
        assert order.payment_reference == order.reference
        assert payment.amount == 10750.0
        assert http.calls[0]["json"]["amount"] == 1075000
        assert http.calls[0]["json"]["metadata"]["order_id"] == order.id

    def test_retrying_payment_uses_a_fresh_reference(self, session, checkout_service, fill_cart, products, http):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init).add(echo_init)

        order, first = checkout_service.start_checkout(session, "u123", "ada@example.com")
        second = checkout_service.initialize_order_payment(session, order, "ada@example.com")

        assert second.reference != first.reference
        assert order.payment_reference == second.reference

    def test_every_issued_reference_finds_the_order(self, session, checkout_service, fill_cart, products, http):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init).add(echo_init).add(echo_init)

        order, first = checkout_service.start_checkout(session, "u123", "ada@example.com")
        second = checkout_service.initialize_order_payment(session, order, "ada@example.com")
        third = checkout_service.initialize_order_payment(session, order, "ada@example.com")

        assert order.payment_reference == third.reference
        for payment in (first, second, third):
            assert find_order_by_reference(session, payment.reference).id == order.id

    def test_charge_on_superseded_attempt_pays_the_order(
        self, session, session_factory, checkout_service, payment_service, fill_cart, products, users, http, notifier
    ):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init).add(echo_init).add(echo_init)
        order, _ = checkout_service.start_checkout(session, "u123", "ada@example.com")
        second = checkout_service.initialize_order_payment(session, order, "ada@example.com")
        checkout_service.initialize_order_payment(session, order, "ada@example.com")

        http.add(verify_response(second.reference, amount=1075000))
        body = charge_success(second.reference)
        outcome = payment_service.handle_webhook(body, sign(body))

        assert outcome == WebhookOutcome.ACCEPTED
        with session_factory() as s:
            assert [o.id for o in s.exec(select(Order)).all()] == [order.id]
            assert s.get(Order, order.id).is_paid is True
            assert count_logs(s, order.id, OrderAction.paid) == 1
            assert s.get(Product, "p-lamp").stock == 1
        assert notifier.kinds() == [NotificationKind.ORDER_PLACED, NotificationKind.PAYMENT_CONFIRMED]

    def test_failure_of_superseded_attempt_keeps_order_pending(
        self, session, session_factory, checkout_service, fill_cart, products, http
    ):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init).add(echo_init)
        order, first = checkout_service.start_checkout(session, "u123", "ada@example.com")
        second = checkout_service.initialize_order_payment(session, order, "ada@example.com")

        stale = checkout_service.mark_order_as_failed(session, first.reference)

        assert stale.status == OrderStatus.pending.value
        with session_factory() as s:
            assert count_logs(s, order.id, OrderAction.failed) == 0

        current = checkout_service.mark_order_as_failed(session, second.reference)
        assert current.status == OrderStatus.failed.value


class TestReconciliationJob:
    def test_reconciles_stale_pending_payments(
        self, session, session_factory, checkout_service, fill_cart, products, users, http
    ):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init)
        order, payment = checkout_service.start_checkout(session, "u123", "ada@example.com")
        http.add(verify_response(payment.reference, amount=1075000))

        summary = reconcile_pending_payments(
            session_factory,
            checkout_service,
            older_than_minutes=15,
            now=datetime.utcnow() + timedelta(hours=1),
        )

        assert summary == {"checked": 1, "paid": 1, "failed": 0, "errors": 0}
        with session_factory() as s:
            assert s.get(Order, order.id).is_paid is True

    def test_recent_orders_are_left_for_the_webhook(
        self, session, session_factory, checkout_service, fill_cart, products, http
    ):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init)
        checkout_service.start_checkout(session, "u123", "ada@example.com")

        summary = reconcile_pending_payments(session_factory, checkout_service, older_than_minutes=15)

        assert summary["checked"] == 0
        assert len(http.calls) == 1

    def test_gateway_errors_are_counted(
        self, session, session_factory, checkout_service, fill_cart, products, http
    ):
        fill_cart("u123", ("p-lamp", 1))
        http.add(echo_init)
        checkout_service.start_checkout(session, "u123", "ada@example.com")
        http.add(verify_response("TXN-someone-else", amount=1))

        summary = reconcile_pending_payments(
            session_factory,
            checkout_service,
            now=datetime.utcnow() + timedelta(hours=1),
        )

        assert summary["errors"] == 1
