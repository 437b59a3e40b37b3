import logging
from typing import Iterable, List

from sqlmodel import Session, select

from coursestore.constants.enrollment_status import HOLDS_ACCESS
from coursestore.database import DataGateway
from coursestore.exceptions import (
    AlreadyEnrolledError,
    CourseNotFoundError,
    EmptyCartError,
)
from coursestore.models.cart import CartItem
from coursestore.models.course import Course
from coursestore.models.enrollment import Enrollment
from coursestore.schemas.checkout_schemas import CartSnapshot, SnapshotLine

logger = logging.getLogger(__name__)

PUBLISHED = "published"


class CartSnapshotService:
    """Freezes what a user is about to buy. Never writes to the cart."""

    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    def snapshot_cart(self, user_id: int) -> CartSnapshot:
        with self.gateway.session() as session:
            rows = session.exec(
                select(CartItem, Course)
                .join(Course, CartItem.course_id == Course.id)
                .where(CartItem.user_id == user_id)
                .where(Course.status == PUBLISHED)
                .order_by(CartItem.added_at, CartItem.id)
            ).all()

            if not rows:
                raise EmptyCartError(user_id)

            lines = [
                SnapshotLine(
                    course_id=course.id,
                    title=course.title,
                    unit_price=course.price,
                    quantity=cart_item.quantity,
                )
                for cart_item, course in rows
            ]
            self._reject_owned(session, user_id, [line.course_id for line in lines])

        snapshot = CartSnapshot.capture(user_id, lines)
        logger.info(
            f"Cart snapshot for user {user_id}: "
            f"{len(snapshot.lines)} items, total {snapshot.total_amount}"
        )
        return snapshot

    def snapshot_courses(self, user_id: int, course_ids: Iterable[int]) -> CartSnapshot:
        """Direct purchase of specific courses, bypassing the cart."""
        wanted = list(dict.fromkeys(course_ids))
        if not wanted:
            raise EmptyCartError(user_id)

        with self.gateway.session() as session:
            courses = {
                course.id: course
                for course in session.exec(
                    select(Course)
                    .where(Course.id.in_(wanted))
                    .where(Course.status == PUBLISHED)
                ).all()
            }

            for course_id in wanted:
                if course_id not in courses:
                    raise CourseNotFoundError(course_id)

            self._reject_owned(session, user_id, wanted)

            lines = [
                SnapshotLine(
                    course_id=course_id,
                    title=courses[course_id].title,
                    unit_price=courses[course_id].price,
                    quantity=1,
                )
                for course_id in wanted
            ]

        return CartSnapshot.capture(user_id, lines)

    def _reject_owned(self, session: Session, user_id: int, course_ids: List[int]) -> None:
        owned = session.exec(
            select(Enrollment)
            .where(Enrollment.user_id == user_id)
            .where(Enrollment.course_id.in_(course_ids))
        ).all()

        for enrollment in owned:
            if enrollment.status in HOLDS_ACCESS:
                raise AlreadyEnrolledError(user_id, enrollment.course_id)
