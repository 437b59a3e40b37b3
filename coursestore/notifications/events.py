from enum import Enum


class OrderEvent(str, Enum):
    PAYMENT_SUCCESS = "payment_success"
