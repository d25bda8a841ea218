from shopcore.constants.order_status import OrderStatus
from shopcore.notifications.events import NotificationKind


# exactly one notification kind per state an order can enter
NOTIFICATION_RULES = {
    OrderStatus.pending: NotificationKind.ORDER_PLACED,
    OrderStatus.paid: NotificationKind.PAYMENT_CONFIRMED,
    OrderStatus.failed: NotificationKind.PAYMENT_FAILED,
    OrderStatus.cancelled: NotificationKind.CANCELLED,
    OrderStatus.delivered: NotificationKind.DELIVERED,
}


def kind_for_status(status) -> NotificationKind:
    return NOTIFICATION_RULES[OrderStatus(status)]
