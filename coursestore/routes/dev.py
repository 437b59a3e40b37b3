from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from coursestore.dependencies.auth import get_current_user
from coursestore.dependencies.services import Services, get_services
from coursestore.exceptions import OrderNotFoundError
from coursestore.models.user import User
from coursestore.services.payment_providers import SimulatedProvider

router = APIRouter()

ACTIONS = {"complete", "fail", "cancel"}


# Backs the mock payment page when no real provider is configured.
# The outcome is delivered as a signed webhook through the normal handler.

@router.post("/simulated/{session_id}/{action}")
def simulate_payment(
    session_id: str,
    action: str,
    background_tasks: BackgroundTasks,
    amount: Optional[Decimal] = None,
    services: Services = Depends(get_services),
    current_user: User = Depends(get_current_user),
):
    provider = services.provider
    if not isinstance(provider, SimulatedProvider):
        raise HTTPException(404, "Not available")

    if action not in ACTIONS:
        raise HTTPException(400, f"Unknown action: {action}")

    # only the buyer (or an admin) can act on the mock payment page
    if current_user.role != "admin":
        try:
            services.ledger.find_by_session(session_id, user_id=current_user.id)
        except OrderNotFoundError:
            raise HTTPException(404, "Checkout session not found")

    if action == "complete":
        payment = provider.complete(session_id, amount=amount)
    elif action == "fail":
        payment = provider.fail(session_id)
    else:
        payment = provider.cancel(session_id)

    body, signature = provider.build_webhook(payment)
    return services.webhooks.handle(body, signature, defer=background_tasks.add_task)
