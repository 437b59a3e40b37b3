from typing import List

from fastapi import APIRouter, Depends

from coursestore.dependencies.auth import get_current_user
from coursestore.dependencies.services import Services, get_services
from coursestore.models.user import User
from coursestore.schemas.orders_schemas import OrderOut

router = APIRouter()


@router.get("/", response_model=List[OrderOut])
def list_my_orders(
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    return services.ledger.list_for_user(current_user.id)


@router.get("/{order_id}", response_model=OrderOut)
def get_my_order(
    order_id: int,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    return services.ledger.order_view(order_id, user_id=current_user.id)
