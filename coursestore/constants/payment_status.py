from enum import Enum


class PaymentStatus(str, Enum):
    """Provider-side status of a checkout session."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    refunded = "refunded"
