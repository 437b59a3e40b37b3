import json
import logging
from typing import Callable, Optional

from pydantic import ValidationError

from coursestore.exceptions import (
    AmountMismatchError,
    InvalidWebhookPayloadError,
    OrderNotFoundError,
)
from coursestore.schemas.payment_schemas import WebhookAck
from coursestore.services.order_ledger import OrderLedger
from coursestore.services.payment_providers import PaymentProvider

logger = logging.getLogger(__name__)


class WebhookReconciler:
    """
    Entry point for provider callbacks.

    Anything that was durably recorded as applied or rejected is
    acknowledged so the provider stops redelivering. Only a bad signature
    or an unreadable payload is refused, and unexpected errors propagate
    so the delivery is retried.
    """

    def __init__(self, provider: PaymentProvider, ledger: OrderLedger):
        self.provider = provider
        self.ledger = ledger

    def handle(
        self,
        raw_body: bytes,
        signature: Optional[str],
        defer: Optional[Callable] = None,
    ) -> WebhookAck:
        # signature first, over the exact bytes received
        self.provider.verify_webhook(raw_body, signature)

        try:
            payload = json.loads(raw_body)
            event = self.provider.parse_webhook_event(payload)
        except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as exc:
            logger.error(f"Unreadable webhook payload: {exc}")
            raise InvalidWebhookPayloadError("Unreadable webhook payload")

        if event is None:
            logger.info(f"Ignoring webhook event type {payload.get('event') or payload.get('type')}")
            return WebhookAck(outcome="ignored")

        logger.info(
            f"Webhook for session {event.provider_session_id}: {event.status.value}"
        )

        try:
            result = self.ledger.apply_payment_event(event, defer=defer)
        except OrderNotFoundError:
            # retrying cannot create the missing local order
            logger.warning(
                f"Webhook for unknown session {event.provider_session_id}; acknowledged"
            )
            return WebhookAck(outcome="unknown_session")
        except AmountMismatchError as exc:
            logger.error(f"Webhook rejected: {exc.message} {exc.details}")
            return WebhookAck(outcome="rejected", order_id=exc.details.get("order_id"))

        return WebhookAck(
            outcome="applied" if result.applied else "noop",
            order_id=result.order_id,
            order_status=result.status,
        )
