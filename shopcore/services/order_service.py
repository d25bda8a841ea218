import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlmodel import Session, select

from shopcore.constants.order_status import (
    SYSTEM_ACTOR,
    OrderAction,
    OrderStatus,
    can_transition,
    predecessors_of,
)
from shopcore.errors import ConflictError, NotFoundError
from shopcore.models.order import Order
from shopcore.models.order_item import OrderItem
from shopcore.models.payment_attempt import PaymentAttempt
from shopcore.notifications import OrderSummary, SummaryItem
from shopcore.schemas.cart_schemas import CartSnapshot
from shopcore.schemas.orders_schemas import OrderStats
from shopcore.services.order_event_service import log_order_event
from shopcore.utils.pagination import paginate

logger = logging.getLogger(__name__)

# status -> log action written when the order enters it
TRANSITION_ACTIONS = {
    OrderStatus.paid: OrderAction.paid,
    OrderStatus.cancelled: OrderAction.cancelled,
    OrderStatus.delivered: OrderAction.delivered,
    OrderStatus.failed: OrderAction.failed,
}


def create_order(
    session: Session,
    *,
    buyer_id: str,
    snapshot: CartSnapshot,
    reference: str,
    delivery_days: int,
    payment_reference: Optional[str] = None,
) -> Order:
    """Persist an order with totals frozen from ``snapshot``. Does not commit."""
    now = datetime.utcnow()

    order = Order(
        buyer_id=buyer_id,
        subtotal=snapshot.subtotal,
        shipping_fee=snapshot.shipping_fee,
        total_price=snapshot.subtotal + snapshot.shipping_fee,
        reference=reference,
        payment_reference=payment_reference,
        status=OrderStatus.pending.value,
        estimated_delivery_date=now + timedelta(days=delivery_days),
        created_at=now,
        updated_at=now,
    )
    session.add(order)
    session.flush()

    for line in snapshot.items:
        session.add(
            OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                product_name=line.product_name,
                price_snapshot=line.price_snapshot,
                quantity=line.quantity,
                line_total=line.line_total,
            )
        )

    log_order_event(session, order.id, OrderAction.created, performed_by=buyer_id)
    session.flush()
    return order


def transition_order(
    session: Session,
    order: Order,
    new_status: OrderStatus,
    performed_by: str = SYSTEM_ACTOR,
    meta: Optional[dict] = None,
) -> Order:
    """
    Move ``order`` to ``new_status`` with compare-and-swap on the status
    column, then append exactly one log entry. Does not commit.

    Raises ConflictError, leaving the order untouched, when the transition is
    not allowed or another writer changed the status first.
    """

    new_status = OrderStatus(new_status)
    current = OrderStatus(order.status)

    if not can_transition(current, new_status):
        raise ConflictError(f"Cannot move order #{order.id} from {current.value} to {new_status.value}")

    now = datetime.utcnow()
    values = {"status": new_status.value, "updated_at": now}

    statement = (
        update(Order)
        .where(Order.id == order.id)
        .where(Order.status.in_([s.value for s in predecessors_of(new_status)]))
    )

    if new_status == OrderStatus.paid:
        # payment confirmation is terminal for the monetary fields
        statement = statement.where(Order.is_paid == False)  # noqa: E712
        values.update(is_paid=True, paid_at=now)

    result = session.execute(
        statement.values(**values).execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        session.refresh(order)
        raise ConflictError(
            f"Order #{order.id} changed concurrently (now {order.status}), "
            f"cannot move to {new_status.value}"
        )

    log_order_event(
        session,
        order.id,
        TRANSITION_ACTIONS[new_status],
        performed_by=performed_by,
        meta=meta,
    )
    session.flush()
    session.refresh(order)

    logger.info(f"Order #{order.id} {current.value} -> {new_status.value} by {performed_by}")
    return order


def log_assignment(session: Session, order_id: int, admin_id: str):
    order = get_order(session, order_id)
    event = log_order_event(session, order.id, OrderAction.assigned, performed_by=admin_id)
    session.commit()
    session.refresh(event)
    return event


# -------------------------
# READS
# -------------------------

def get_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def find_order_by_reference(session: Session, reference: str) -> Optional[Order]:
    order = session.exec(
        select(Order).where(
            or_(Order.reference == reference, Order.payment_reference == reference)
        )
    ).first()
    if order is not None:
        return order

    # an earlier attempt, since replaced by a retry
    return session.exec(
        select(Order)
        .join(PaymentAttempt, PaymentAttempt.order_id == Order.id)
        .where(PaymentAttempt.reference == reference)
    ).first()


def record_payment_attempt(session: Session, order: Order, reference: str) -> PaymentAttempt:
    """Remember a gateway reference issued for ``order``. Does not commit."""
    attempt = PaymentAttempt(order_id=order.id, reference=reference, amount=order.total_price)
    session.add(attempt)
    return attempt


def get_order_by_reference(session: Session, reference: str) -> Order:
    order = find_order_by_reference(session, reference)
    if not order:
        raise NotFoundError("Order not found for reference")
    return order


def get_orders_by_buyer(session: Session, buyer_id: str) -> List[Order]:
    return session.exec(
        select(Order)
        .where(Order.buyer_id == buyer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    ).all()


def get_all_orders(session: Session, page: int = 1, limit: int = 10) -> dict:
    query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(session=session, query=query, page=page, limit=limit)


def get_stats(session: Session) -> OrderStats:
    counts = session.exec(
        select(Order.status, func.count(Order.id)).group_by(Order.status)
    ).all()

    by_status = {status.value: 0 for status in OrderStatus}
    for status, count in counts:
        by_status[status] = count

    # revenue counts money we kept: paid and delivered orders
    total_revenue = session.exec(
        select(func.sum(Order.total_price))
        .where(Order.is_paid == True)  # noqa: E712
        .where(Order.status.in_([OrderStatus.paid.value, OrderStatus.delivered.value]))
    ).one()

    return OrderStats(
        total_orders=sum(by_status.values()),
        by_status=by_status,
        total_revenue=total_revenue or 0,
    )


def build_order_summary(order: Order) -> OrderSummary:
    return OrderSummary(
        order_id=order.id,
        items=[
            SummaryItem(product_name=item.product_name, quantity=item.quantity)
            for item in order.items
        ],
        total_amount=order.total_price,
        estimated_delivery_date=order.estimated_delivery_date,
    )
