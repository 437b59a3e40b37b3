from .events import OrderEvent
from .dispatcher import dispatch_order_event, notify_payment_success

__all__ = [
    "OrderEvent",
    "dispatch_order_event",
    "notify_payment_success",
]
