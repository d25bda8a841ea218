import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlmodel import Session, select

from shopcore.constants.order_status import OrderStatus
from shopcore.errors import ShopcoreError
from shopcore.models.order import Order
from shopcore.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)


def reconcile_pending_payments(
    session_factory: Callable[[], Session],
    checkout_service: CheckoutService,
    older_than_minutes: int = 15,
    now: Optional[datetime] = None,
) -> dict:
    """
    Ask the gateway about pending orders whose payment started a while ago.
    Covers webhooks that never arrived; reconciliation itself is idempotent.
    """

    cutoff = (now or datetime.utcnow()) - timedelta(minutes=older_than_minutes)
    summary = {"checked": 0, "paid": 0, "failed": 0, "errors": 0}

    with session_factory() as session:
        references = session.exec(
            select(Order.payment_reference)
            .where(Order.status == OrderStatus.pending.value)
            .where(Order.payment_reference != None)  # noqa: E711
            .where(Order.created_at < cutoff)
        ).all()

    for reference in references:
        summary["checked"] += 1

        with session_factory() as session:
            try:
                verification, order = checkout_service.verify_payment(session, reference)
            except ShopcoreError as e:
                summary["errors"] += 1
                logger.error(f"Could not reconcile {reference}: {e.message}")
                continue

        if verification.succeeded:
            summary["paid"] += 1
        elif verification.failed:
            summary["failed"] += 1

    logger.info(
        f"Reconciled {summary['checked']} pending payments: "
        f"{summary['paid']} paid, {summary['failed']} failed, {summary['errors']} errors"
    )
    return summary


def run_payment_reconciliation() -> dict:
    """Entry point for the scheduler, wired with the process-wide services."""
    from shopcore.config import settings
    from shopcore.database import session_factory
    from shopcore.dependencies.services import get_checkout_service

    return reconcile_pending_payments(
        session_factory,
        get_checkout_service(),
        older_than_minutes=settings.reconcile_after_minutes,
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_payment_reconciliation()
