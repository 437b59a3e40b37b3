from enum import Enum


class OrderStatus(str, Enum):
    pending = "pending"
    awaiting_payment = "awaiting_payment"
    paid = "paid"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_STATUSES = {
    OrderStatus.paid,
    OrderStatus.failed,
    OrderStatus.cancelled,
}

ALLOWED_TRANSITIONS = {
    OrderStatus.pending: [
        OrderStatus.awaiting_payment,
        OrderStatus.paid,
        OrderStatus.failed,
        OrderStatus.cancelled,
    ],
    OrderStatus.awaiting_payment: [
        OrderStatus.paid,
        OrderStatus.failed,
        OrderStatus.cancelled,
    ],
    OrderStatus.paid: [],
    OrderStatus.failed: [],
    OrderStatus.cancelled: [],
}


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def can_transition(current, target) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]
