import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coursestore.config import settings
from coursestore.dependencies.services import Services, build_services
from coursestore.exceptions import CourseStoreError
from coursestore.routes import (
    admin,
    checkout,
    dev,
    enrollments,
    health,
    orders,
    webhooks,
)

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=settings.LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # one gateway and one payment provider for the whole process
        app.state.services = services or build_services(settings)

        # Run DB creation ONLY in local
        if settings.ENV == "local":
            app.state.services.gateway.create_all()
        yield
        app.state.services.gateway.dispose()

    app = FastAPI(title="Course Store Checkout API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CourseStoreError)
    async def course_store_error_handler(request: Request, exc: CourseStoreError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, **{k: v for k, v in exc.details.items() if v is not None}},
        )

    app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
    app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
    app.include_router(orders.router, prefix="/orders", tags=["Orders"])
    app.include_router(enrollments.router, prefix="/enrollments", tags=["Enrollments"])
    app.include_router(admin.router, prefix="/admin", tags=["Admin Endpoints"])
    app.include_router(dev.router, prefix="/dev", tags=["Simulated Payments"])
    app.include_router(health.router, prefix="/health", tags=["Health"])

    @app.get("/")
    def root():
        return {
            "checkout_endpoints": [
                "/checkout/session", "/checkout/status/{session_id}",
                "/checkout/orders/{order_id}/poll", "/checkout/force-reconcile"
            ],
            "webhook_endpoints": [
                "/webhooks/payments"
            ],
            "order_endpoints": [
                "/orders", "/orders/{order_id}"
            ],
            "enrollment_endpoints": [
                "/enrollments", "/enrollments/{course_id}/progress"
            ],
        }

    return app


app = create_app()
