from fastapi import APIRouter, Depends

from coursestore.dependencies.auth import require_admin
from coursestore.dependencies.services import Services, get_services
from coursestore.jobs.order_expiry import expire_stale_orders
from coursestore.models.user import User
from coursestore.schemas.enrollment_schemas import AdminEnrollmentCreate

router = APIRouter()


@router.post("/enrollments")
def grant_enrollment(
    data: AdminEnrollmentCreate,
    services: Services = Depends(get_services),
    admin: User = Depends(require_admin),
):
    result = services.enrollments.grant_manual(data.user_id, data.course_id)
    return {
        "enrollment_id": result.enrollment_id,
        "course_id": result.course_id,
        "action": result.action,
    }


@router.post("/orders/expire")
def run_order_expiry(
    services: Services = Depends(get_services),
    admin: User = Depends(require_admin),
):
    return expire_stale_orders(services.ledger, services.sessions)
