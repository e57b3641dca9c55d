"""
Order API

FastAPI app serving the HTTP side of the pipeline. The same app factory
backs two service modes:

- order-service: POST /orders (intake)
- tracking-service: GET /orders/{number}/status, GET /orders/{number}/history,
  GET /workers/status

Both expose GET /health.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from kitchen_base.amqp import AmqpPublisher, BrokerUnavailable
from kitchen_base.db import get_db, get_sessionmaker, wait_for_database
from kitchen_base.logging import request_id_var, setup_logging
from kitchen_base.settings import get_settings
from fulfillment_core.errors import (
    DeadlineExceeded,
    FulfillmentError,
    IntakeBusy,
    OrderNotFound,
    ValidationError,
)
from fulfillment_core.intake.service import OrderIntakeService
from fulfillment_core.intake.validation import OrderRequest
from fulfillment_core.messaging.publishers import WorkPublisher
from fulfillment_core.messaging.topology import work_topology
from fulfillment_core.timing import utcnow
from fulfillment_core.tracking.service import TrackingService

logger = logging.getLogger(__name__)

ORDER_SERVICE = "order-service"
TRACKING_SERVICE = "tracking-service"
REQUEST_ID_HEADER = "X-Request-ID"


def _error_body(request: Request, message: str, **fields) -> dict[str, Any]:
    body = {
        "error": message,
        "timestamp": utcnow().isoformat(),
        "request_id": getattr(request.state, "request_id", ""),
    }
    body.update(fields)
    return body


def _error_response(request: Request, status_code: int, message: str, **fields) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=_error_body(request, message, **fields),
        headers={REQUEST_ID_HEADER: getattr(request.state, "request_id", "")},
    )


def create_app(
    mode: str | None = None,
    intake: OrderIntakeService | None = None,
    max_concurrent: int | None = None,
) -> FastAPI:
    """
    Build the API for a service mode.

    mode=None serves both the intake and the tracking routes. Passing an
    intake service skips broker and database setup on startup.
    """
    setup_logging(mode)
    settings = get_settings()
    service_name = mode or settings.SERVICE_NAME

    def startup(app: FastAPI) -> None:
        if mode in (None, ORDER_SERVICE) and app.state.intake is None:
            wait_for_database()
            if settings.RUN_MIGRATIONS_ON_STARTUP:
                from fulfillment_core.migrations import run_migrations

                run_migrations()

            publisher = AmqpPublisher(work_topology(settings))
            try:
                publisher.connect(attempts=settings.RABBITMQ_CONNECT_RETRIES)
            except BrokerUnavailable as e:
                # Orders are still stored; publishing retries per request
                logger.error(f"RabbitMQ unavailable at startup: {e}")
            app.state.publisher = publisher
            app.state.intake = OrderIntakeService(
                get_sessionmaker(),
                WorkPublisher(publisher),
                max_concurrent=max_concurrent,
                settings=settings,
            )
        logger.info(f"{service_name} started")

    def shutdown(app: FastAPI) -> None:
        publisher = getattr(app.state, "publisher", None)
        if publisher is not None:
            publisher.close()
        logger.info(f"{service_name} stopped")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        startup(app)
        try:
            yield
        finally:
            shutdown(app)

    app = FastAPI(
        title="Where's My Pizza",
        description="Order intake and tracking",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.intake = intake

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        request_id_var.set(request_id)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.info(f"Validation failed: {exc}", extra={"field": exc.field})
        return _error_response(request, 400, exc.message, field=exc.field)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field = ".".join(str(part) for part in errors[0]["loc"][1:]) if errors else "body"
        message = errors[0]["msg"] if errors else "Invalid request body"
        return _error_response(request, 400, message, field=field or "body")

    @app.exception_handler(OrderNotFound)
    async def not_found_handler(request: Request, exc: OrderNotFound):
        return _error_response(request, 404, str(exc))

    @app.exception_handler(IntakeBusy)
    async def busy_handler(request: Request, exc: IntakeBusy):
        return _error_response(request, 503, str(exc))

    @app.exception_handler(DeadlineExceeded)
    async def deadline_handler(request: Request, exc: DeadlineExceeded):
        return _error_response(request, 503, str(exc))

    @app.exception_handler(FulfillmentError)
    async def domain_error_handler(request: Request, exc: FulfillmentError):
        logger.error(f"Unhandled domain error: {exc}", exc_info=True)
        return _error_response(request, 500, "Internal server error")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(request, 500, "Internal server error")

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        healthy = TrackingService(db, settings).health()
        body = {
            "status": "ok" if healthy else "unhealthy",
            "healthy": healthy,
            "service": service_name,
            "timestamp": utcnow().isoformat(),
        }
        return JSONResponse(status_code=200 if healthy else 503, content=body)

    if mode in (None, ORDER_SERVICE):

        @app.post("/orders")
        def create_order(payload: dict[str, Any] = Body(...)):
            receipt = app.state.intake.submit(OrderRequest.from_dict(payload))
            return receipt.to_dict()

    if mode in (None, TRACKING_SERVICE):

        @app.get("/orders/{order_number}/status")
        def order_status(order_number: str, db: Session = Depends(get_db)):
            return TrackingService(db, settings).get_order_status(order_number)

        @app.get("/orders/{order_number}/history")
        def order_history(order_number: str, db: Session = Depends(get_db)):
            return TrackingService(db, settings).get_order_history(order_number)

        @app.get("/workers/status")
        def workers_status(db: Session = Depends(get_db)):
            return TrackingService(db, settings).list_workers()

    return app
