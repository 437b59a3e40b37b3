import logging
from datetime import datetime
from typing import Dict, Optional

from coursestore.constants.order_status import OrderStatus, is_terminal
from coursestore.exceptions import AmountMismatchError, ProviderError
from coursestore.services.order_ledger import OrderLedger
from coursestore.services.payment_session import PaymentSessionManager

logger = logging.getLogger(__name__)


def expire_stale_orders(
    ledger: OrderLedger,
    sessions: PaymentSessionManager,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Cancel orders whose payment window has passed.

    Orders that already have a provider session are polled first, so one
    that was paid while its webhook was stuck ends up paid, not cancelled.
    """
    now = now or datetime.utcnow()
    counts = {"cancelled": 0, "resolved": 0, "skipped": 0}

    for order in ledger.list_expired(now):
        if order.provider_session_id:
            try:
                order = sessions.poll_status(order.id)
            except (ProviderError, AmountMismatchError) as exc:
                logger.warning(f"Expiry poll for order {order.id} failed: {exc.message}")
                counts["skipped"] += 1
                continue

            if is_terminal(order.status):
                counts["resolved"] += 1
                continue

        order = ledger.cancel_order(order.id, reason="payment window expired")
        if order.status == OrderStatus.cancelled.value:
            counts["cancelled"] += 1

    logger.info(f"Order expiry run: {counts}")
    return counts


def main():
    from coursestore.config import settings
    from coursestore.dependencies.services import build_services

    logging.basicConfig(level=settings.LOG_LEVEL)
    services = build_services(settings)
    try:
        expire_stale_orders(services.ledger, services.sessions)
    finally:
        services.gateway.dispose()


if __name__ == "__main__":
    main()
