from enum import Enum


class OrderStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    delivered = "delivered"
    cancelled = "cancelled"
    failed = "failed"


class OrderAction(str, Enum):
    created = "created"
    assigned = "assigned"
    paid = "paid"
    cancelled = "cancelled"
    delivered = "delivered"
    failed = "failed"


class ActorType(str, Enum):
    user = "user"
    system = "system"


SYSTEM_ACTOR = "system"

# statuses an admin may set by hand
ADMIN_STATUSES = (OrderStatus.cancelled, OrderStatus.delivered)


ALLOWED_TRANSITIONS = {
    OrderStatus.pending: [OrderStatus.paid, OrderStatus.cancelled, OrderStatus.failed],
    OrderStatus.paid: [OrderStatus.delivered, OrderStatus.cancelled],
    OrderStatus.delivered: [],
    OrderStatus.cancelled: [],
    OrderStatus.failed: [],
}


def predecessors_of(status: OrderStatus) -> list[OrderStatus]:
    """States from which ``status`` may be entered."""
    return [
        source
        for source, targets in ALLOWED_TRANSITIONS.items()
        if status in targets
    ]


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(OrderStatus(current), [])
