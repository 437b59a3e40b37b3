from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from coursestore.constants.payment_status import PaymentStatus


class CustomerInfo(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class ProviderCheckout(BaseModel):
    """What a provider hands back after creating a hosted checkout."""

    session_id: str
    url: str
    expires_at: Optional[datetime] = None


class PaymentSession(BaseModel):
    """
    Provider view of one checkout session, either fetched by polling
    or pushed through a webhook. Never persisted on its own.
    """

    provider_session_id: str
    order_id: Optional[int] = None     # our reference, echoed by the provider
    status: PaymentStatus
    amount: Decimal
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    url: Optional[str] = None


class PaymentStatusView(BaseModel):
    session_id: Optional[str]
    order_id: int
    order_status: str
    payment_status: PaymentStatus
    amount: Decimal
    currency: str
    paid_at: Optional[datetime] = None


class WebhookAck(BaseModel):
    received: bool = True
    # applied | noop | rejected | unknown_session | ignored
    outcome: str
    order_id: Optional[int] = None
    order_status: Optional[str] = None
