import logging
from typing import Callable, Optional

from sqlmodel import select

from coursestore.database import DataGateway
from coursestore.models.order import Order
from coursestore.models.order_item import OrderItem
from coursestore.models.user import User
from coursestore.notifications.channels import Channel
from coursestore.notifications.email_handlers import send_admin_email, send_user_email
from coursestore.notifications.events import OrderEvent
from coursestore.notifications.rules import NOTIFICATION_RULES
from coursestore.services.notification_service import record_admin_notice

logger = logging.getLogger(__name__)


def dispatch_order_event(
    *,
    event: OrderEvent,
    order,
    user,
    session,
    extra: dict | None = None,
    notify_user: bool = True,
    notify_admin: bool = True,
) -> Callable[[], None]:
    """
    Central notification dispatcher.

    Admin in-app notices are written right away with the caller's session.
    Emails are not sent here: the returned callable sends them and must run
    after that session has committed.
    """

    rules = NOTIFICATION_RULES.get(event, {})
    extra = extra or {}

    # -------------------------
    # ADMIN IN-APP NOTIFICATION
    # -------------------------
    if notify_admin and rules.get(Channel.INAPP_ADMIN):
        record_admin_notice(
            session,
            event=event.value,
            order_id=order.id,
            user_id=user.id if user else None,
            title=extra.get("admin_title", "Order Update"),
            content=extra.get("admin_content", ""),
        )

    def send_emails() -> None:
        # -------------------------
        # USER EMAIL
        # -------------------------
        if notify_user and rules.get(Channel.EMAIL_USER) and user:
            try:
                send_user_email(
                    template=extra["user_template"],
                    subject=extra["user_subject"],
                    user=user,
                    order=order,
                    **extra,
                )
            except Exception:
                logger.exception(f"User email failed for {event.value} (order {order.id})")

        # -------------------------
        # ADMIN EMAIL
        # -------------------------
        if notify_admin and rules.get(Channel.EMAIL_ADMIN):
            try:
                send_admin_email(
                    template=extra["admin_template"],
                    subject=extra["admin_subject"],
                    order=order,
                    **extra,
                )
            except Exception:
                logger.exception(f"Admin email failed for {event.value} (order {order.id})")

    return send_emails


def notify_payment_success(
    gateway: DataGateway, order_id: int, defer: Optional[Callable] = None
) -> None:
    """
    Fired by the order ledger once, right after an order becomes paid.

    The admin notice is committed first. The emails then go out with no
    connection held, or are handed to ``defer`` when the caller has a
    background queue.
    """
    with gateway.transaction() as session:
        order = session.get(Order, order_id)
        user = session.get(User, order.user_id)
        titles = session.exec(
            select(OrderItem.course_title).where(OrderItem.order_id == order_id)
        ).all()

        send_emails = dispatch_order_event(
            event=OrderEvent.PAYMENT_SUCCESS,
            order=order,
            user=user,
            session=session,
            extra={
                "admin_title": "Course Payment Completed",
                "admin_content": (
                    f"{user.email if user else order.user_id} paid "
                    f"{order.total_amount} {order.currency} for order #{order.id}"
                ),
                "user_template": "user_emails/payment_success.html",
                "user_subject": f"Payment successful - Order #{order.id}",
                "admin_template": "admin_emails/payment_success.html",
                "admin_subject": f"Payment received - Order #{order.id}",
                "course_titles": list(titles),
            },
        )

    if defer is not None:
        defer(send_emails)
    else:
        send_emails()
