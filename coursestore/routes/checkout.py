import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from coursestore.config import settings
from coursestore.dependencies.auth import get_current_user
from coursestore.dependencies.services import Services, get_services
from coursestore.exceptions import AmountMismatchError
from coursestore.models.user import User
from coursestore.schemas.checkout_schemas import (
    CheckoutRequest,
    CheckoutResponse,
    ForceReconcileRequest,
)
from coursestore.schemas.payment_schemas import CustomerInfo, PaymentStatusView

router = APIRouter()
logger = logging.getLogger(__name__)


def _default_urls(course_ids):
    query = f"?course_id={course_ids[0]}" if course_ids and len(course_ids) == 1 else ""
    return (
        f"{settings.FRONTEND_URL}/payment/success{query}",
        f"{settings.FRONTEND_URL}/payment/cancel{query}",
    )


# Checkout button: whole cart, one course, or a list of courses

@router.post("/session", response_model=CheckoutResponse)
def create_checkout_session(
    data: CheckoutRequest,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    course_ids = data.requested_course_ids()

    if course_ids:
        snapshot = services.snapshots.snapshot_courses(current_user.id, course_ids)
    else:
        snapshot = services.snapshots.snapshot_cart(current_user.id)

    success_url, cancel_url = _default_urls(course_ids)

    return services.sessions.create_session(
        snapshot,
        success_url=data.success_url or success_url,
        cancel_url=data.cancel_url or cancel_url,
        customer=CustomerInfo(
            email=current_user.email,
            name=f"{current_user.first_name} {current_user.last_name}".strip(),
        ),
    )


# Post-redirect confirmation page, fallback while the webhook is late

@router.get("/status/{session_id}", response_model=PaymentStatusView)
def get_payment_status(
    session_id: str,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    return services.sessions.get_payment_status(session_id, current_user.id)


@router.post("/orders/{order_id}/poll")
def poll_order(
    order_id: int,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    order = services.ledger.get(order_id)
    if order.user_id != current_user.id:
        raise HTTPException(404, "Order not found")

    try:
        order = services.sessions.poll_status(order_id)
    except AmountMismatchError as exc:
        # the order stays as it was; report its current state
        logger.warning(f"Poll for order {order_id} rejected: {exc.message}")
    return {"order_id": order.id, "status": order.status, "paid_at": order.paid_at}


@router.post("/force-reconcile")
def force_reconcile(
    data: ForceReconcileRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    order = services.ledger.find_by_session(data.session_id)
    if order.user_id != current_user.id and current_user.role != "admin":
        raise HTTPException(404, "Order not found")

    result = services.sessions.reconcile_session(
        data.session_id, defer=background_tasks.add_task
    )

    return {
        "message": "Enrollment confirmed",
        "order_id": result.order_id,
        "order_status": result.status,
        "applied": result.applied,
    }
