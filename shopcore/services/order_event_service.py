# shopcore/services/order_event_service.py

from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from shopcore.constants.order_status import SYSTEM_ACTOR, ActorType, OrderAction
from shopcore.models.order_log import OrderLog


def log_order_event(
    session: Session,
    order_id: int,
    action: OrderAction,
    performed_by: str = SYSTEM_ACTOR,
    meta: Optional[dict] = None,
) -> OrderLog:
    """
    Append-only event log for order timeline
    """

    actor_type = ActorType.system if performed_by == SYSTEM_ACTOR else ActorType.user

    event = OrderLog(
        order_id=order_id,
        action=OrderAction(action).value,
        performed_by=performed_by,
        actor_type=actor_type.value,
        meta=meta,
        created_at=datetime.utcnow(),
    )

    session.add(event)
    return event


def get_logs(session: Session, order_id: int) -> List[OrderLog]:
    """Newest first."""
    return session.exec(
        select(OrderLog)
        .where(OrderLog.order_id == order_id)
        .order_by(OrderLog.id.desc())
    ).all()


def count_logs(session: Session, order_id: int, action: Optional[OrderAction] = None) -> int:
    query = select(OrderLog).where(OrderLog.order_id == order_id)
    if action is not None:
        query = query.where(OrderLog.action == OrderAction(action).value)
    return len(session.exec(query).all())
