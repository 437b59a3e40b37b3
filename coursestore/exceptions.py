"""
Course store exceptions.

Every error the purchase pipeline raises on purpose derives from
``CourseStoreError``. Each class carries the HTTP status the API layer
answers with, so routes never need their own mapping tables.

Validation errors (empty cart, amount mismatch, bad signature) are never
retried. Provider errors describe a failed outbound call. State errors
describe a lookup or transition that cannot happen.
"""

from typing import Any, Dict, Optional


class CourseStoreError(Exception):
    """
    Base class for all pipeline errors.

    Attributes:
        message (str): Human-readable reason shown to the caller
        status_code (int): HTTP status used by the API layer
        details (Dict[str, Any]): Extra context for logs and responses
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# ---------- validation ----------

class EmptyCartError(CourseStoreError):
    status_code = 400

    def __init__(self, user_id: int) -> None:
        super().__init__("Cart is empty", details={"user_id": user_id})


class CourseNotFoundError(CourseStoreError):
    status_code = 404

    def __init__(self, course_id: int) -> None:
        super().__init__(
            f"Course {course_id} not found or not available",
            details={"course_id": course_id},
        )


class AlreadyEnrolledError(CourseStoreError):
    status_code = 409

    def __init__(self, user_id: int, course_id: int) -> None:
        super().__init__(
            "You already own this course",
            details={"user_id": user_id, "course_id": course_id},
        )


class AmountMismatchError(CourseStoreError):
    """Provider reported a paid amount different from the frozen order total."""

    status_code = 422

    def __init__(self, order_id: int, expected, received) -> None:
        super().__init__(
            f"Paid amount {received} does not match order total {expected}",
            details={
                "order_id": order_id,
                "expected": str(expected),
                "received": str(received),
            },
        )


class InvalidSignatureError(CourseStoreError):
    status_code = 400

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message)


class InvalidWebhookPayloadError(CourseStoreError):
    """Signed correctly but not a payload we can read."""

    status_code = 400


class InvalidProgressError(CourseStoreError):
    status_code = 400

    def __init__(self, value) -> None:
        super().__init__(
            "Progress must be between 0 and 100", details={"value": value}
        )


# ---------- provider ----------

class ProviderError(CourseStoreError):
    """The payment provider rejected or failed a request."""

    status_code = 502


class ProviderTimeoutError(ProviderError):
    """The payment provider did not answer within the request timeout."""

    status_code = 504


class PaymentInitiationError(CourseStoreError):
    status_code = 502

    def __init__(self, message: str, order_id: Optional[int] = None) -> None:
        super().__init__(message, details={"order_id": order_id})
        self.order_id = order_id


# ---------- state ----------

class OrderNotFoundError(CourseStoreError):
    status_code = 404

    def __init__(
        self,
        order_id: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            "Order not found",
            details={"order_id": order_id, "session_id": session_id},
        )


class EnrollmentNotFoundError(CourseStoreError):
    status_code = 404

    def __init__(self, user_id: int, course_id: int) -> None:
        super().__init__(
            "Enrollment not found",
            details={"user_id": user_id, "course_id": course_id},
        )


class PaymentNotConfirmedError(CourseStoreError):
    status_code = 400

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(
            "Payment has not been confirmed",
            details={"session_id": session_id, "payment_status": status},
        )
