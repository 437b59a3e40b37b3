import pytest

from coursestore.constants.enrollment_status import EnrollmentStatus
from coursestore.exceptions import (
    CourseNotFoundError,
    EnrollmentNotFoundError,
    InvalidProgressError,
)
from coursestore.models.course import Course
from coursestore.models.enrollment import Enrollment


def test_manual_grant_is_idempotent(services, users, courses, db_rows):
    student, python = users["student"], courses["python"]

    first = services.enrollments.grant_manual(student.id, python.id)
    second = services.enrollments.grant_manual(student.id, python.id)

    assert first.action == "created"
    assert second.action == "unchanged"
    assert first.enrollment_id == second.enrollment_id
    assert db_rows(Enrollment, user_id=student.id)[0].source_order_id is None
    assert db_rows(Course, id=python.id)[0].students_count == 1


def test_manual_grant_for_missing_course(services, users):
    with pytest.raises(CourseNotFoundError):
        services.enrollments.grant_manual(users["student"].id, 9999)


def test_suspended_enrollment_is_reactivated(services, gateway, users, courses):
    student, python = users["student"], courses["python"]
    with gateway.transaction() as session:
        session.add(
            Enrollment(
                user_id=student.id,
                course_id=python.id,
                status=EnrollmentStatus.suspended.value,
                progress_percentage=75,
            )
        )

    result = services.enrollments.grant_manual(student.id, python.id)

    enrollment = services.enrollments.get(student.id, python.id)
    assert result.action == "reactivated"
    assert enrollment.status == EnrollmentStatus.active.value
    assert enrollment.progress_percentage == 75


def test_progress_to_100_completes_the_course(services, users, courses):
    student, python = users["student"], courses["python"]
    services.enrollments.grant_manual(student.id, python.id)

    halfway = services.enrollments.update_progress(student.id, python.id, 50)
    assert halfway.status == EnrollmentStatus.active.value
    assert halfway.completed_at is None

    done = services.enrollments.update_progress(student.id, python.id, 100)
    assert done.status == EnrollmentStatus.completed.value
    assert done.progress_percentage == 100
    assert done.completed_at is not None


@pytest.mark.parametrize("value", [-1, 100.5, float("nan"), "lots"])
def test_progress_out_of_range(services, users, courses, value):
    student, python = users["student"], courses["python"]
    services.enrollments.grant_manual(student.id, python.id)

    with pytest.raises(InvalidProgressError):
        services.enrollments.update_progress(student.id, python.id, value)


def test_progress_without_enrollment(services, users, courses):
    with pytest.raises(EnrollmentNotFoundError):
        services.enrollments.update_progress(users["student"].id, courses["python"].id, 10)
