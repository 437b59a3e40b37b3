import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from coursestore.constants.enrollment_status import (
    EnrollmentStatus,
    HOLDS_ACCESS,
    REACTIVATABLE,
)
from coursestore.database import DataGateway
from coursestore.exceptions import (
    CourseNotFoundError,
    EnrollmentNotFoundError,
    InvalidProgressError,
)
from coursestore.models.course import Course
from coursestore.models.enrollment import Enrollment
from coursestore.models.order import Order
from coursestore.models.order_item import OrderItem

logger = logging.getLogger(__name__)


@dataclass
class GrantResult:
    course_id: int
    enrollment_id: int
    # created | reactivated | unchanged
    action: str


class EnrollmentMaterializer:
    """
    Sole writer of enrollment status and source order.

    ``grant_for_order`` runs inside the caller's transaction so that an
    order is never paid without access, nor access granted without a paid
    order.
    """

    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    def grant_for_order(self, session: Session, order: Order) -> List[GrantResult]:
        items = session.exec(
            select(OrderItem).where(OrderItem.order_id == order.id).order_by(OrderItem.id)
        ).all()

        results = []
        for item in items:
            results.append(
                self._grant(session, order.user_id, item.course_id, source_order_id=order.id)
            )

        logger.info(
            f"Order {order.id}: "
            + ", ".join(f"course {r.course_id} {r.action}" for r in results)
        )
        return results

    def grant_manual(self, user_id: int, course_id: int) -> GrantResult:
        """Admin-granted access; no source order."""
        with self.gateway.transaction() as session:
            if session.get(Course, course_id) is None:
                raise CourseNotFoundError(course_id)
            return self._grant(session, user_id, course_id, source_order_id=None)

    def _grant(
        self,
        session: Session,
        user_id: int,
        course_id: int,
        source_order_id: Optional[int],
    ) -> GrantResult:
        now = datetime.utcnow()
        enrollment = session.exec(
            select(Enrollment)
            .where(Enrollment.user_id == user_id)
            .where(Enrollment.course_id == course_id)
            .with_for_update()
        ).first()

        if enrollment is None:
            enrollment = Enrollment(
                user_id=user_id,
                course_id=course_id,
                status=EnrollmentStatus.active.value,
                progress_percentage=0,
                started_at=now,
                source_order_id=source_order_id,
            )
            session.add(enrollment)

            course = session.get(Course, course_id)
            if course is not None:
                course.students_count += 1
                session.add(course)

            session.flush()
            return GrantResult(course_id, enrollment.id, "created")

        if enrollment.status in HOLDS_ACCESS:
            return GrantResult(course_id, enrollment.id, "unchanged")

        if enrollment.status in REACTIVATABLE:
            # progress is kept on purpose
            enrollment.status = EnrollmentStatus.active.value
            enrollment.source_order_id = source_order_id
            enrollment.updated_at = now
            session.add(enrollment)
            session.flush()
            return GrantResult(course_id, enrollment.id, "reactivated")

        raise ValueError(f"Unknown enrollment status: {enrollment.status}")

    # -------------------------
    # student-facing reads/updates
    # -------------------------
    def list_for_user(self, user_id: int) -> List[Enrollment]:
        with self.gateway.session() as session:
            return list(
                session.exec(
                    select(Enrollment)
                    .where(Enrollment.user_id == user_id)
                    .order_by(Enrollment.created_at.desc())
                ).all()
            )

    def get(self, user_id: int, course_id: int) -> Enrollment:
        with self.gateway.session() as session:
            enrollment = session.exec(
                select(Enrollment)
                .where(Enrollment.user_id == user_id)
                .where(Enrollment.course_id == course_id)
            ).first()
        if enrollment is None:
            raise EnrollmentNotFoundError(user_id, course_id)
        return enrollment

    def update_progress(self, user_id: int, course_id: int, percentage) -> Enrollment:
        try:
            value = float(percentage)
        except (TypeError, ValueError):
            raise InvalidProgressError(percentage)

        if value != value or value < 0 or value > 100:
            raise InvalidProgressError(percentage)

        with self.gateway.transaction() as session:
            enrollment = session.exec(
                select(Enrollment)
                .where(Enrollment.user_id == user_id)
                .where(Enrollment.course_id == course_id)
            ).first()
            if enrollment is None:
                raise EnrollmentNotFoundError(user_id, course_id)

            now = datetime.utcnow()
            enrollment.progress_percentage = int(value)
            if value >= 100 and enrollment.status == EnrollmentStatus.active.value:
                enrollment.status = EnrollmentStatus.completed.value
                enrollment.completed_at = now
            enrollment.updated_at = now
            session.add(enrollment)

        return enrollment
