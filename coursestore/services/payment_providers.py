import hashlib
import hmac
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple

import razorpay
import requests

from coursestore.config import Settings
from coursestore.constants.payment_status import PaymentStatus
from coursestore.exceptions import (
    InvalidSignatureError,
    ProviderError,
    ProviderTimeoutError,
)
from coursestore.schemas.payment_schemas import (
    CustomerInfo,
    PaymentSession,
    ProviderCheckout,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value) -> Decimal:
    return (Decimal(int(value or 0)) / 100).quantize(CENT)


def _from_timestamp(value) -> Optional[datetime]:
    return datetime.utcfromtimestamp(int(value)) if value else None


def _reference_to_order_id(reference) -> Optional[int]:
    try:
        return int(reference)
    except (TypeError, ValueError):
        return None


class PaymentProvider(ABC):
    """
    One external card payment provider.

    Exactly one instance is built at startup and shared by every request.
    """

    name: str = "provider"

    @abstractmethod
    def create_session(
        self,
        *,
        order_id: int,
        amount: Decimal,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        customer: Optional[CustomerInfo] = None,
        expires_at: Optional[datetime] = None,
    ) -> ProviderCheckout:
        ...

    @abstractmethod
    def fetch_session_status(self, session_id: str) -> PaymentSession:
        ...

    @abstractmethod
    def verify_webhook(self, raw_body: bytes, signature: Optional[str]) -> None:
        """Raise InvalidSignatureError unless ``signature`` matches ``raw_body``."""

    @abstractmethod
    def parse_webhook_event(self, payload: Dict[str, Any]) -> Optional[PaymentSession]:
        """Session state carried by an event, or None for event types we ignore."""


# ============================================================
# RAZORPAY (live)
# ============================================================

class TimeoutSession(requests.Session):
    """requests session applying a default timeout to every call."""

    def __init__(self, timeout: float):
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


RAZORPAY_LINK_STATUS = {
    "created": PaymentStatus.pending,
    "partially_paid": PaymentStatus.processing,
    "paid": PaymentStatus.completed,
    "expired": PaymentStatus.cancelled,
    "cancelled": PaymentStatus.cancelled,
}

RAZORPAY_LINK_EVENTS = {
    "payment_link.paid",
    "payment_link.partially_paid",
    "payment_link.expired",
    "payment_link.cancelled",
}


class RazorpayProvider(PaymentProvider):
    """Hosted checkout through Razorpay Payment Links."""

    name = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: Optional[str],
        timeout: float = 10.0,
        client: Optional[razorpay.Client] = None,
    ):
        self.webhook_secret = webhook_secret
        self.client = client or razorpay.Client(
            session=TimeoutSession(timeout),
            auth=(key_id, key_secret),
        )

    def _call(self, operation: str, fn, *args):
        try:
            return fn(*args)
        except requests.exceptions.Timeout as exc:
            logger.warning(f"Razorpay {operation} timed out: {exc}")
            raise ProviderTimeoutError(f"Payment provider timed out during {operation}")
        except requests.exceptions.RequestException as exc:
            logger.error(f"Razorpay {operation} transport error: {exc}")
            raise ProviderError(f"Payment provider unavailable during {operation}")
        except (
            razorpay.errors.BadRequestError,
            razorpay.errors.ServerError,
            razorpay.errors.GatewayError,
        ) as exc:
            logger.error(f"Razorpay {operation} rejected: {exc}")
            raise ProviderError(f"Payment provider rejected {operation}: {exc}")

    def create_session(
        self,
        *,
        order_id,
        amount,
        currency,
        description,
        success_url,
        cancel_url,
        customer=None,
        expires_at=None,
    ):
        data = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "accept_partial": False,
            "reference_id": str(order_id),
            "description": description[:2048],
            "callback_url": success_url,
            "callback_method": "get",
            "notes": {"order_id": str(order_id), "cancel_url": cancel_url},
        }
        if customer and (customer.email or customer.name):
            data["customer"] = customer.model_dump(exclude_none=True)
        if expires_at:
            data["expire_by"] = int(expires_at.timestamp())

        link = self._call("create_session", self.client.payment_link.create, data)

        return ProviderCheckout(
            session_id=link["id"],
            url=link["short_url"],
            expires_at=_from_timestamp(link.get("expire_by")),
        )

    def _to_session(self, link: Dict[str, Any], paid_at=None) -> PaymentSession:
        status = RAZORPAY_LINK_STATUS.get(link.get("status"), PaymentStatus.pending)
        # amount_paid is what actually reached us; amount is what was asked
        minor = link.get("amount_paid") if status == PaymentStatus.completed else link.get("amount")

        return PaymentSession(
            provider_session_id=link["id"],
            order_id=_reference_to_order_id(link.get("reference_id")),
            status=status,
            amount=from_minor_units(minor),
            paid_at=paid_at,
            expires_at=_from_timestamp(link.get("expire_by")),
            url=link.get("short_url"),
        )

    def fetch_session_status(self, session_id):
        link = self._call("fetch_session_status", self.client.payment_link.fetch, session_id)
        paid_at = _from_timestamp(link.get("updated_at")) if link.get("status") == "paid" else None
        return self._to_session(link, paid_at=paid_at)

    def verify_webhook(self, raw_body, signature):
        if not signature or not self.webhook_secret:
            raise InvalidSignatureError("Missing webhook signature")
        try:
            self.client.utility.verify_webhook_signature(
                raw_body.decode("utf-8"), signature, self.webhook_secret
            )
        except (razorpay.errors.SignatureVerificationError, UnicodeDecodeError):
            raise InvalidSignatureError()

    def parse_webhook_event(self, payload):
        if payload.get("event") not in RAZORPAY_LINK_EVENTS:
            return None

        link = payload["payload"]["payment_link"]["entity"]
        payment = (payload["payload"].get("payment") or {}).get("entity") or {}
        return self._to_session(link, paid_at=_from_timestamp(payment.get("created_at")))


# ============================================================
# SIMULATED (no credentials)
# ============================================================

class SimulatedProvider(PaymentProvider):
    """
    Deterministic in-process provider for environments without payment
    credentials. Sessions only change state through ``complete``, ``fail``
    and ``cancel``; webhook bodies are signed with HMAC-SHA256.
    """

    name = "simulated"

    def __init__(self, webhook_secret: str, base_url: str = "http://localhost:5173"):
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._counter = 0
        self._lock = threading.Lock()
        self._next_failure: Optional[ProviderError] = None

    # -------------------------
    # provider contract
    # -------------------------
    def create_session(
        self,
        *,
        order_id,
        amount,
        currency,
        description,
        success_url,
        cancel_url,
        customer=None,
        expires_at=None,
    ):
        with self._lock:
            failure, self._next_failure = self._next_failure, None
            if failure is not None:
                raise failure

            self._counter += 1
            session_id = f"sim_{order_id}_{self._counter}"
            url = f"{self.base_url}/payment/mock?session_id={session_id}"
            self._sessions[session_id] = {
                "order_id": order_id,
                "amount": Decimal(amount).quantize(CENT),
                "currency": currency,
                "status": PaymentStatus.pending,
                "paid_amount": None,
                "paid_at": None,
                "expires_at": expires_at,
                "url": url,
            }

        logger.info(f"Simulated session {session_id} created for order {order_id}")
        return ProviderCheckout(session_id=session_id, url=url, expires_at=expires_at)

    def fetch_session_status(self, session_id):
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                raise ProviderError(f"No such checkout session: {session_id}")
            return self._to_session(session_id, record)

    def verify_webhook(self, raw_body, signature):
        if not signature or not hmac.compare_digest(self.sign(raw_body), signature):
            raise InvalidSignatureError()

    def parse_webhook_event(self, payload):
        if not str(payload.get("type", "")).startswith("checkout.session."):
            return None
        return PaymentSession.model_validate(payload["data"])

    # -------------------------
    # controls
    # -------------------------
    def fail_next_create(self, error: Optional[ProviderError] = None) -> None:
        self._next_failure = error or ProviderError("Simulated provider rejected the session")

    def timeout_next_create(self) -> None:
        self._next_failure = ProviderTimeoutError("Simulated provider timed out")

    def complete(self, session_id: str, amount: Optional[Decimal] = None) -> PaymentSession:
        return self._set_status(session_id, PaymentStatus.completed, amount)

    def fail(self, session_id: str) -> PaymentSession:
        return self._set_status(session_id, PaymentStatus.failed)

    def cancel(self, session_id: str) -> PaymentSession:
        return self._set_status(session_id, PaymentStatus.cancelled)

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(
            self.webhook_secret.encode("utf-8"), raw_body, hashlib.sha256
        ).hexdigest()

    def build_webhook(self, session: PaymentSession) -> Tuple[bytes, str]:
        """Raw body and signature header the simulated provider would deliver."""
        body = json.dumps(
            {
                "type": f"checkout.session.{session.status.value}",
                "data": json.loads(session.model_dump_json()),
            }
        ).encode("utf-8")
        return body, self.sign(body)

    def _set_status(self, session_id, status, amount=None) -> PaymentSession:
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                raise ProviderError(f"No such checkout session: {session_id}")
            record["status"] = status
            if status == PaymentStatus.completed:
                record["paid_amount"] = Decimal(
                    amount if amount is not None else record["amount"]
                ).quantize(CENT)
                record["paid_at"] = datetime.utcnow()
            return self._to_session(session_id, record)

    @staticmethod
    def _to_session(session_id, record) -> PaymentSession:
        paid = record["status"] == PaymentStatus.completed
        return PaymentSession(
            provider_session_id=session_id,
            order_id=record["order_id"],
            status=record["status"],
            amount=record["paid_amount"] if paid else record["amount"],
            paid_at=record["paid_at"],
            expires_at=record["expires_at"],
            url=record["url"],
        )


def build_payment_provider(settings: Settings) -> PaymentProvider:
    """Pick the single provider variant for this process."""
    choice = settings.PAYMENT_PROVIDER.lower()
    if choice == "auto":
        choice = "razorpay" if settings.razorpay_configured else "simulated"

    if choice == "razorpay":
        if not settings.razorpay_configured:
            raise RuntimeError("PAYMENT_PROVIDER=razorpay requires RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET")
        logger.info("Payment provider: razorpay")
        return RazorpayProvider(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )

    if choice == "simulated":
        logger.warning("Payment provider: simulated (no real charges)")
        return SimulatedProvider(
            webhook_secret=settings.SIMULATED_WEBHOOK_SECRET,
            base_url=settings.FRONTEND_URL,
        )

    raise RuntimeError(f"Unknown PAYMENT_PROVIDER: {settings.PAYMENT_PROVIDER}")
