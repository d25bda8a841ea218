import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from shopcore.notifications.events import NotificationKind
from shopcore.utils.identity import Contact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryItem:
    product_name: str
    quantity: int


@dataclass(frozen=True)
class OrderSummary:
    order_id: int
    items: List[SummaryItem] = field(default_factory=list)
    total_amount: float = 0.0
    estimated_delivery_date: Optional[datetime] = None


class Notifier(Protocol):
    """Delivery collaborator. The core decides that and what to notify; the
    notifier owns the transport."""

    def notify(self, user: Contact, summary: OrderSummary, kind: NotificationKind) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records the dispatch in the application log."""

    def notify(self, user: Contact, summary: OrderSummary, kind: NotificationKind) -> None:
        logger.info(
            f"Notification {kind.value} for order #{summary.order_id} "
            f"to {user.email} (total {summary.total_amount})"
        )


def dispatch_order_notification(
    *,
    notifier: Notifier,
    user: Optional[Contact],
    summary: OrderSummary,
    kind: NotificationKind,
) -> bool:
    """
    Best-effort dispatch. Never raises: notifications are a side channel and
    must not fail the transition that triggered them.
    """

    if user is None or not user.email:
        logger.warning(f"No contact for order #{summary.order_id}, skipping {kind.value}")
        return False

    try:
        notifier.notify(user, summary, kind)
        return True
    except Exception:
        logger.exception(f"Notification {kind.value} failed for order #{summary.order_id}")
        return False
