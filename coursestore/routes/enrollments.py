from typing import List

from fastapi import APIRouter, Depends

from coursestore.dependencies.auth import get_current_user
from coursestore.dependencies.services import Services, get_services
from coursestore.models.user import User
from coursestore.schemas.enrollment_schemas import EnrollmentOut, ProgressUpdate

router = APIRouter()


@router.get("/", response_model=List[EnrollmentOut])
def list_my_enrollments(
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    return services.enrollments.list_for_user(current_user.id)


@router.get("/{course_id}/progress", response_model=EnrollmentOut)
def get_progress(
    course_id: int,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    return services.enrollments.get(current_user.id, course_id)


@router.put("/{course_id}/progress", response_model=EnrollmentOut)
def update_progress(
    course_id: int,
    data: ProgressUpdate,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    return services.enrollments.update_progress(
        current_user.id, course_id, data.progress_percentage
    )
