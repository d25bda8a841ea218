from enum import Enum


class NotificationKind(str, Enum):
    ORDER_PLACED = "order_placed"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    DELIVERED = "delivered"
