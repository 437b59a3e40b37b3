import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from coursestore.constants.order_status import OrderStatus, is_terminal
from coursestore.constants.payment_status import PaymentStatus
from coursestore.exceptions import (
    AmountMismatchError,
    PaymentInitiationError,
    PaymentNotConfirmedError,
    ProviderError,
    ProviderTimeoutError,
)
from coursestore.models.order import Order
from coursestore.schemas.checkout_schemas import CartSnapshot, CheckoutResponse
from coursestore.schemas.payment_schemas import CustomerInfo, PaymentStatusView
from coursestore.services.order_ledger import OrderLedger, ReconciliationResult
from coursestore.services.payment_providers import PaymentProvider

logger = logging.getLogger(__name__)

# how a local order reads to the buyer when we have not asked the provider
ORDER_TO_PAYMENT_STATUS = {
    OrderStatus.pending.value: PaymentStatus.pending,
    OrderStatus.awaiting_payment.value: PaymentStatus.processing,
    OrderStatus.paid.value: PaymentStatus.completed,
    OrderStatus.failed.value: PaymentStatus.failed,
    OrderStatus.cancelled.value: PaymentStatus.cancelled,
}


class PaymentSessionManager:
    """
    Bridges frozen snapshots, the order ledger and the payment provider.

    The provider call and the local order update are separate steps: the
    provider is not transactional. Whatever gets lost between them is
    recovered by the next webhook or poll through the ledger.
    """

    def __init__(
        self,
        ledger: OrderLedger,
        provider: PaymentProvider,
        currency: str = "INR",
        order_ttl: timedelta = timedelta(hours=24),
    ):
        self.ledger = ledger
        self.provider = provider
        self.currency = currency
        self.order_ttl = order_ttl

    def create_session(
        self,
        snapshot: CartSnapshot,
        success_url: str,
        cancel_url: str,
        customer: Optional[CustomerInfo] = None,
    ) -> CheckoutResponse:
        order = self.ledger.create_pending_order(
            snapshot,
            currency=self.currency,
            expires_at=datetime.utcnow() + self.order_ttl,
        )

        description = ", ".join(line.title for line in snapshot.lines)

        try:
            checkout = self.provider.create_session(
                order_id=order.id,
                amount=order.total_amount,
                currency=order.currency,
                description=description,
                success_url=success_url,
                cancel_url=cancel_url,
                customer=customer,
                expires_at=order.expires_at,
            )
        except ProviderTimeoutError:
            # the session may exist on the provider side; leave the order
            # pending so a later webhook can still attach to it
            logger.warning(f"Provider timed out creating session for order {order.id}")
            raise PaymentInitiationError(
                "Payment provider did not respond, please try again", order_id=order.id
            )
        except ProviderError as exc:
            self.ledger.mark_failed(order.id, reason=f"provider rejected session: {exc.message}")
            raise PaymentInitiationError("Payment provider unavailable", order_id=order.id)

        try:
            order = self.ledger.mark_awaiting_payment(order.id, self.provider.name, checkout)
        except Exception:
            logger.exception(
                f"Provider session {checkout.session_id} created but order {order.id} "
                f"was not updated; it will be reconciled from the provider"
            )
            raise

        logger.info(f"Checkout session {checkout.session_id} ready for order {order.id}")

        return CheckoutResponse(
            order_id=order.id,
            session_id=checkout.session_id,
            session_url=checkout.url,
            total_amount=order.total_amount,
            currency=order.currency,
            expires_at=order.expires_at,
        )

    def poll_status(self, order_id: int) -> Order:
        """Ask the provider and feed the answer to the ledger, like a webhook would."""
        order = self.ledger.get(order_id)

        if is_terminal(order.status) or not order.provider_session_id:
            return order

        payment = self.provider.fetch_session_status(order.provider_session_id)
        self.ledger.apply_payment_event(payment)
        return self.ledger.get(order_id)

    def get_payment_status(self, session_id: str, user_id: int) -> PaymentStatusView:
        order = self.ledger.find_by_session(session_id, user_id=user_id)

        if not is_terminal(order.status):
            try:
                order = self.poll_status(order.id)
            except (ProviderError, AmountMismatchError) as exc:
                # fall back to what we know locally
                logger.warning(f"Status poll for {session_id} failed: {exc.message}")

        return PaymentStatusView(
            session_id=order.provider_session_id,
            order_id=order.id,
            order_status=order.status,
            payment_status=ORDER_TO_PAYMENT_STATUS[order.status],
            amount=order.total_amount,
            currency=order.currency,
            paid_at=order.paid_at,
        )

    def reconcile_session(
        self, session_id: str, defer: Optional[Callable] = None
    ) -> ReconciliationResult:
        """
        Escape hatch for stuck webhooks. Goes through the same ledger path;
        there is no separate way to enroll.
        """
        payment = self.provider.fetch_session_status(session_id)
        logger.info(f"Forced reconciliation of {session_id}: provider says {payment.status.value}")

        result = self.ledger.apply_payment_event(payment, defer=defer)

        if result.status != OrderStatus.paid.value:
            raise PaymentNotConfirmedError(session_id, payment.status.value)
        return result
