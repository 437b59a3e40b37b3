from decimal import Decimal

import pytest

from coursestore.constants.enrollment_status import EnrollmentStatus
from coursestore.exceptions import (
    AlreadyEnrolledError,
    CourseNotFoundError,
    EmptyCartError,
)
from coursestore.models.cart import CartItem
from coursestore.models.enrollment import Enrollment


def test_snapshot_freezes_cart_lines_and_total(services, users, courses, add_to_cart, db_rows):
    student = users["student"]
    add_to_cart(student, courses["python"], courses["sql"])

    snapshot = services.snapshots.snapshot_cart(student.id)

    assert snapshot.course_ids == [courses["python"].id, courses["sql"].id]
    assert snapshot.total_amount == Decimal("80.00")
    assert [line.unit_price for line in snapshot.lines] == [Decimal("50.00"), Decimal("30.00")]
    # reading the cart never empties it
    assert len(db_rows(CartItem, user_id=student.id)) == 2


def test_empty_cart_is_rejected(services, users):
    with pytest.raises(EmptyCartError):
        services.snapshots.snapshot_cart(users["student"].id)


def test_unpublished_courses_are_left_out(services, users, courses, add_to_cart):
    student = users["student"]
    add_to_cart(student, courses["draft"])

    with pytest.raises(EmptyCartError):
        services.snapshots.snapshot_cart(student.id)


def test_owned_course_is_rejected(services, gateway, users, courses, add_to_cart):
    student = users["student"]
    services.enrollments.grant_manual(student.id, courses["python"].id)
    add_to_cart(student, courses["python"])

    with pytest.raises(AlreadyEnrolledError) as exc_info:
        services.snapshots.snapshot_cart(student.id)

    assert exc_info.value.status_code == 409


def test_cancelled_enrollment_can_be_bought_again(services, gateway, users, courses, add_to_cart):
    student = users["student"]
    with gateway.transaction() as session:
        session.add(
            Enrollment(
                user_id=student.id,
                course_id=courses["python"].id,
                status=EnrollmentStatus.cancelled.value,
                progress_percentage=40,
            )
        )
    add_to_cart(student, courses["python"])

    snapshot = services.snapshots.snapshot_cart(student.id)

    assert snapshot.course_ids == [courses["python"].id]


def test_direct_purchase_dedupes_course_ids(services, users, courses):
    python = courses["python"]

    snapshot = services.snapshots.snapshot_courses(users["student"].id, [python.id, python.id])

    assert snapshot.course_ids == [python.id]
    assert snapshot.total_amount == Decimal("50.00")


def test_direct_purchase_of_unknown_course(services, users, courses):
    with pytest.raises(CourseNotFoundError):
        services.snapshots.snapshot_courses(users["student"].id, [courses["draft"].id])

    with pytest.raises(CourseNotFoundError):
        services.snapshots.snapshot_courses(users["student"].id, [9999])
