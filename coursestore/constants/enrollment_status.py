from enum import Enum


class EnrollmentStatus(str, Enum):
    active = "active"
    completed = "completed"
    suspended = "suspended"
    cancelled = "cancelled"


# re-granting access to these is a no-op
HOLDS_ACCESS = {EnrollmentStatus.active.value, EnrollmentStatus.completed.value}

REACTIVATABLE = {EnrollmentStatus.suspended.value, EnrollmentStatus.cancelled.value}
