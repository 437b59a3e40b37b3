from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from coursestore.constants.order_status import OrderStatus
from coursestore.constants.payment_status import PaymentStatus
from coursestore.exceptions import (
    OrderNotFoundError,
    PaymentInitiationError,
    PaymentNotConfirmedError,
)
from coursestore.jobs.order_expiry import expire_stale_orders
from coursestore.models.enrollment import Enrollment
from coursestore.models.order import Order


@pytest.fixture
def snapshot(services, users, courses, add_to_cart):
    add_to_cart(users["student"], courses["python"])
    return services.snapshots.snapshot_cart(users["student"].id)


def start(services, snapshot):
    return services.sessions.create_session(
        snapshot, success_url="http://frontend.test/ok", cancel_url="http://frontend.test/no"
    )


def test_session_is_recorded_on_the_order(services, snapshot, db_rows):
    response = start(services, snapshot)

    order = db_rows(Order, id=response.order_id)[0]
    assert order.provider == "simulated"
    assert order.provider_session_id == response.session_id
    assert order.payment_url == response.session_url
    assert order.expires_at is not None
    assert response.total_amount == Decimal("50.00")
    assert response.currency == "INR"


def test_provider_rejection_fails_the_order(services, provider, snapshot, db_rows):
    provider.fail_next_create()

    with pytest.raises(PaymentInitiationError) as exc_info:
        start(services, snapshot)

    order = db_rows(Order, id=exc_info.value.order_id)[0]
    assert order.status == OrderStatus.failed.value
    assert order.provider_session_id is None


def test_provider_timeout_leaves_order_pending(services, provider, snapshot, db_rows):
    provider.timeout_next_create()

    with pytest.raises(PaymentInitiationError) as exc_info:
        start(services, snapshot)

    order = db_rows(Order, id=exc_info.value.order_id)[0]
    assert order.status == OrderStatus.pending.value


def test_late_webhook_attaches_to_order_by_reference(services, provider, snapshot, db_rows):
    # the provider created the session but our call timed out before we heard back
    provider.timeout_next_create()
    with pytest.raises(PaymentInitiationError) as exc_info:
        start(services, snapshot)
    order_id = exc_info.value.order_id

    checkout = provider.create_session(
        order_id=order_id,
        amount=Decimal("50.00"),
        currency="INR",
        description="Python Basics",
        success_url="http://frontend.test/ok",
        cancel_url="http://frontend.test/no",
    )
    body, signature = provider.build_webhook(provider.complete(checkout.session_id))

    ack = services.webhooks.handle(body, signature)

    assert ack.outcome == "applied"
    order = db_rows(Order, id=order_id)[0]
    assert order.status == OrderStatus.paid.value
    assert order.provider_session_id == checkout.session_id
    assert len(db_rows(Enrollment, user_id=order.user_id)) == 1


def test_status_poll_applies_provider_state(services, provider, users, snapshot, db_rows):
    response = start(services, snapshot)

    view = services.sessions.get_payment_status(response.session_id, users["student"].id)
    assert view.order_status == OrderStatus.awaiting_payment.value
    assert view.payment_status == PaymentStatus.processing

    # webhook never arrives; the redirect page polls instead
    provider.complete(response.session_id)
    view = services.sessions.get_payment_status(response.session_id, users["student"].id)

    assert view.order_status == OrderStatus.paid.value
    assert view.payment_status == PaymentStatus.completed
    assert len(db_rows(Enrollment, user_id=users["student"].id)) == 1


def test_status_is_private_to_the_buyer(services, users, snapshot):
    response = start(services, snapshot)

    with pytest.raises(OrderNotFoundError):
        services.sessions.get_payment_status(response.session_id, users["other"].id)


def test_force_reconcile_requires_confirmed_payment(services, provider, snapshot):
    response = start(services, snapshot)

    with pytest.raises(PaymentNotConfirmedError):
        services.sessions.reconcile_session(response.session_id)

    provider.complete(response.session_id)
    result = services.sessions.reconcile_session(response.session_id)

    assert result.status == OrderStatus.paid.value
    assert result.applied is True
    assert [grant.action for grant in result.grants] == ["created"]

    again = services.sessions.reconcile_session(response.session_id)
    assert again.applied is False


# -------------------------
# expiry job
# -------------------------

def test_expiry_cancels_unpaid_orders(services, snapshot, db_rows):
    response = start(services, snapshot)

    counts = expire_stale_orders(
        services.ledger, services.sessions, now=datetime.utcnow() + timedelta(days=2)
    )

    assert counts == {"cancelled": 1, "resolved": 0, "skipped": 0}
    assert db_rows(Order, id=response.order_id)[0].status == OrderStatus.cancelled.value


def test_expiry_settles_orders_paid_without_webhook(services, provider, snapshot, db_rows):
    response = start(services, snapshot)
    provider.complete(response.session_id)

    counts = expire_stale_orders(
        services.ledger, services.sessions, now=datetime.utcnow() + timedelta(days=2)
    )

    assert counts == {"cancelled": 0, "resolved": 1, "skipped": 0}
    assert db_rows(Order, id=response.order_id)[0].status == OrderStatus.paid.value


def test_expiry_leaves_fresh_orders_alone(services, snapshot, db_rows):
    response = start(services, snapshot)

    counts = expire_stale_orders(services.ledger, services.sessions)

    assert counts == {"cancelled": 0, "resolved": 0, "skipped": 0}
    assert db_rows(Order, id=response.order_id)[0].status == OrderStatus.awaiting_payment.value


def test_status_query_survives_amount_mismatch(services, provider, users, snapshot, db_rows):
    response = start(services, snapshot)
    provider.complete(response.session_id, amount=Decimal("40.00"))

    view = services.sessions.get_payment_status(response.session_id, users["student"].id)

    assert view.order_status == OrderStatus.awaiting_payment.value
    assert view.payment_status == PaymentStatus.processing
    assert db_rows(Enrollment, user_id=users["student"].id) == []
