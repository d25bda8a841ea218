from .events import NotificationKind
from .dispatcher import (
    LoggingNotifier,
    Notifier,
    OrderSummary,
    SummaryItem,
    dispatch_order_notification,
)
from .rules import kind_for_status

__all__ = [
    "NotificationKind",
    "LoggingNotifier",
    "Notifier",
    "OrderSummary",
    "SummaryItem",
    "dispatch_order_notification",
    "kind_for_status",
]
