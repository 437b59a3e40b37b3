from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from coursestore.config import Settings
from coursestore.database import DataGateway, create_db_engine
from coursestore.notifications import notify_payment_success
from coursestore.services.cart_snapshot import CartSnapshotService
from coursestore.services.enrollment_service import EnrollmentMaterializer
from coursestore.services.order_ledger import OrderLedger
from coursestore.services.payment_providers import PaymentProvider, build_payment_provider
from coursestore.services.payment_session import PaymentSessionManager
from coursestore.services.webhook_service import WebhookReconciler


@dataclass
class Services:
    gateway: DataGateway
    provider: PaymentProvider
    snapshots: CartSnapshotService
    enrollments: EnrollmentMaterializer
    ledger: OrderLedger
    sessions: PaymentSessionManager
    webhooks: WebhookReconciler


def build_services(
    settings: Settings,
    engine: Optional[Engine] = None,
    provider: Optional[PaymentProvider] = None,
    notify: bool = True,
) -> Services:
    """Build every pipeline component once, sharing one gateway and one provider."""
    gateway = DataGateway(
        engine or create_db_engine(settings.database_url),
        max_attempts=settings.DB_RETRY_ATTEMPTS,
        retry_delay=settings.DB_RETRY_DELAY_SECONDS,
    )
    provider = provider or build_payment_provider(settings)

    enrollments = EnrollmentMaterializer(gateway)
    ledger = OrderLedger(
        gateway,
        enrollments,
        on_paid=partial(notify_payment_success, gateway) if notify else None,
    )
    sessions = PaymentSessionManager(
        ledger,
        provider,
        currency=settings.PAYMENT_CURRENCY,
        order_ttl=timedelta(hours=settings.ORDER_EXPIRY_HOURS),
    )

    return Services(
        gateway=gateway,
        provider=provider,
        snapshots=CartSnapshotService(gateway),
        enrollments=enrollments,
        ledger=ledger,
        sessions=sessions,
        webhooks=WebhookReconciler(provider, ledger),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_gateway(request: Request) -> DataGateway:
    return request.app.state.services.gateway
