import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from coursestore.constants.order_status import (
    OrderStatus,
    can_transition,
    is_terminal,
)
from coursestore.constants.payment_status import PaymentStatus
from coursestore.database import DataGateway
from coursestore.exceptions import AmountMismatchError, OrderNotFoundError
from coursestore.models.cart import CartItem
from coursestore.models.order import Order
from coursestore.models.order_item import OrderItem
from coursestore.schemas.checkout_schemas import CartSnapshot
from coursestore.schemas.orders_schemas import OrderOut
from coursestore.schemas.payment_schemas import PaymentSession, ProviderCheckout
from coursestore.services.enrollment_service import EnrollmentMaterializer, GrantResult

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

EVENT_TARGETS = {
    PaymentStatus.completed: OrderStatus.paid,
    PaymentStatus.failed: OrderStatus.failed,
    PaymentStatus.cancelled: OrderStatus.cancelled,
}


@dataclass
class ReconciliationResult:
    order_id: int
    previous_status: str
    status: str
    applied: bool
    grants: List[GrantResult] = field(default_factory=list)


class OrderLedger:
    """
    Owns Order and OrderItem rows.

    Every status change goes through a transaction that locks the order row
    first; the database isolation is the only concurrency control.
    """

    def __init__(
        self,
        gateway: DataGateway,
        materializer: EnrollmentMaterializer,
        on_paid: Optional[Callable[..., None]] = None,
    ):
        self.gateway = gateway
        self.materializer = materializer
        self.on_paid = on_paid

    # -------------------------
    # CREATION
    # -------------------------
    def create_pending_order(
        self,
        snapshot: CartSnapshot,
        currency: str,
        expires_at: Optional[datetime] = None,
    ) -> Order:
        """Order plus its items in one transaction, prices frozen from the snapshot."""
        with self.gateway.transaction() as session:
            order = Order(
                user_id=snapshot.user_id,
                total_amount=snapshot.total_amount,
                currency=currency,
                status=OrderStatus.pending.value,
                expires_at=expires_at,
            )
            session.add(order)
            session.flush()

            for line in snapshot.lines:
                session.add(
                    OrderItem(
                        order_id=order.id,
                        course_id=line.course_id,
                        course_title=line.title,
                        price=line.unit_price,
                        quantity=line.quantity,
                    )
                )

        logger.info(
            f"Order {order.id} created for user {order.user_id}: "
            f"{len(snapshot.lines)} items, total {order.total_amount} {currency}"
        )
        return order

    # -------------------------
    # SESSION BOOKKEEPING
    # -------------------------
    def mark_awaiting_payment(
        self, order_id: int, provider: str, checkout: ProviderCheckout
    ) -> Order:
        with self.gateway.transaction() as session:
            order = self._lock(session, order_id)

            if order.status != OrderStatus.pending.value:
                # a webhook got here first and already attached the session
                logger.info(
                    f"Order {order_id} already {order.status}; "
                    f"not moving to awaiting_payment"
                )
                return order

            order.provider = provider
            order.provider_session_id = checkout.session_id
            order.payment_url = checkout.url
            if checkout.expires_at:
                order.expires_at = checkout.expires_at
            order.status = OrderStatus.awaiting_payment.value
            order.updated_at = datetime.utcnow()
            session.add(order)

        return order

    def mark_failed(self, order_id: int, reason: str) -> Order:
        return self._close(order_id, OrderStatus.failed, reason)

    def cancel_order(self, order_id: int, reason: str) -> Order:
        return self._close(order_id, OrderStatus.cancelled, reason)

    def _close(self, order_id: int, target: OrderStatus, reason: str) -> Order:
        with self.gateway.transaction() as session:
            order = self._lock(session, order_id)

            if not can_transition(order.status, target):
                logger.info(f"Order {order_id} is {order.status}; {target.value} ignored")
                return order

            order.status = target.value
            order.updated_at = datetime.utcnow()
            session.add(order)

        logger.info(f"Order {order_id} -> {target.value} ({reason})")
        return order

    # -------------------------
    # RECONCILIATION
    # -------------------------
    def apply_payment_event(
        self, event: PaymentSession, defer: Optional[Callable] = None
    ) -> ReconciliationResult:
        """
        Apply one provider status to local state.

        Webhooks, client polls and forced reconciliation all end up here.
        Re-applying an event, or applying any event to a terminal order,
        changes nothing. ``defer`` schedules the payment emails instead of
        sending them before returning (the HTTP layer passes
        ``BackgroundTasks.add_task``).
        """
        grants: List[GrantResult] = []

        with self.gateway.transaction() as session:
            order = self._locate(session, event)
            previous = order.status

            if is_terminal(previous):
                logger.info(
                    f"Order {order.id} already {previous}; "
                    f"{event.status.value} event for {event.provider_session_id} is a no-op"
                )
                return ReconciliationResult(order.id, previous, previous, applied=False)

            target = EVENT_TARGETS.get(event.status)
            if target is None:
                logger.info(
                    f"Order {order.id} stays {previous} on provider status {event.status.value}"
                )
                return ReconciliationResult(order.id, previous, order.status, applied=False)

            now = datetime.utcnow()

            if target == OrderStatus.paid:
                expected = Decimal(order.total_amount).quantize(CENT)
                received = Decimal(event.amount).quantize(CENT)
                if received != expected:
                    logger.warning(
                        f"Amount mismatch on order {order.id} "
                        f"(session {event.provider_session_id}): "
                        f"expected {expected}, provider reported {received}"
                    )
                    raise AmountMismatchError(order.id, expected, received)

                order.paid_at = event.paid_at or now

            order.status = target.value
            order.updated_at = now
            session.add(order)
            session.flush()

            if target == OrderStatus.paid:
                grants = self.materializer.grant_for_order(session, order)
                self._clear_purchased_from_cart(session, order)

        logger.info(f"Order {order.id}: {previous} -> {order.status}")

        if order.status == OrderStatus.paid.value and self.on_paid is not None:
            self._notify_paid(order.id, defer)

        return ReconciliationResult(order.id, previous, order.status, applied=True, grants=grants)

    def _locate(self, session: Session, event: PaymentSession) -> Order:
        order = session.exec(
            select(Order)
            .where(Order.provider_session_id == event.provider_session_id)
            .with_for_update()
        ).first()
        if order is not None:
            return order

        # session created but never recorded locally (timeout, or the
        # update after the provider call failed): fall back to the echoed reference
        if event.order_id is not None:
            candidate = session.exec(
                select(Order).where(Order.id == event.order_id).with_for_update()
            ).first()
            if candidate is not None and candidate.provider_session_id is None:
                logger.warning(
                    f"Attaching provider session {event.provider_session_id} "
                    f"to order {candidate.id}"
                )
                candidate.provider_session_id = event.provider_session_id
                if event.url:
                    candidate.payment_url = event.url
                if candidate.status == OrderStatus.pending.value:
                    candidate.status = OrderStatus.awaiting_payment.value
                session.add(candidate)
                session.flush()
                return candidate

        raise OrderNotFoundError(session_id=event.provider_session_id)

    def _clear_purchased_from_cart(self, session: Session, order: Order) -> None:
        course_ids = session.exec(
            select(OrderItem.course_id).where(OrderItem.order_id == order.id)
        ).all()
        session.execute(
            delete(CartItem)
            .where(CartItem.user_id == order.user_id)
            .where(CartItem.course_id.in_(course_ids))
        )

    def _notify_paid(self, order_id: int, defer: Optional[Callable]) -> None:
        try:
            self.on_paid(order_id, defer=defer)
        except Exception:
            # the order is committed; a failed notification must not undo that
            logger.exception(f"Payment notification failed for order {order_id}")

    # -------------------------
    # READS
    # -------------------------
    def _lock(self, session: Session, order_id: int) -> Order:
        order = session.exec(
            select(Order).where(Order.id == order_id).with_for_update()
        ).first()
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return order

    def get(self, order_id: int) -> Order:
        with self.gateway.session() as session:
            order = session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return order

    def find_by_session(self, session_id: str, user_id: Optional[int] = None) -> Order:
        with self.gateway.session() as session:
            query = select(Order).where(Order.provider_session_id == session_id)
            if user_id is not None:
                query = query.where(Order.user_id == user_id)
            order = session.exec(query).first()
        if order is None:
            raise OrderNotFoundError(session_id=session_id)
        return order

    def order_view(self, order_id: int, user_id: Optional[int] = None) -> OrderOut:
        with self.gateway.session() as session:
            query = (
                select(Order)
                .where(Order.id == order_id)
                .options(selectinload(Order.items))
            )
            if user_id is not None:
                query = query.where(Order.user_id == user_id)
            order = session.exec(query).first()
            if order is None:
                raise OrderNotFoundError(order_id=order_id)
            return OrderOut.model_validate(order)

    def list_for_user(self, user_id: int) -> List[OrderOut]:
        with self.gateway.session() as session:
            orders = session.exec(
                select(Order)
                .where(Order.user_id == user_id)
                .options(selectinload(Order.items))
                .order_by(Order.created_at.desc())
            ).all()
            return [OrderOut.model_validate(order) for order in orders]

    def list_expired(self, now: datetime) -> List[Order]:
        with self.gateway.session() as session:
            return list(
                session.exec(
                    select(Order)
                    .where(
                        Order.status.in_(
                            [OrderStatus.pending.value, OrderStatus.awaiting_payment.value]
                        )
                    )
                    .where(Order.expires_at.is_not(None))
                    .where(Order.expires_at < now)
                ).all()
            )
