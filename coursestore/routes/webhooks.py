from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from coursestore.dependencies.services import Services, get_services
from coursestore.schemas.payment_schemas import WebhookAck

router = APIRouter()


@router.post("/payments", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    x_razorpay_signature: Optional[str] = Header(None),
    x_signature: Optional[str] = Header(None),
):
    # signature is computed over these exact bytes; read before any parsing
    raw_body = await request.body()
    signature = x_razorpay_signature or x_signature

    # payment emails go out after the acknowledgement
    return await run_in_threadpool(
        services.webhooks.handle, raw_body, signature, background_tasks.add_task
    )
