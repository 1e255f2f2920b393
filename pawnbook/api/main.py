"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from pawnbook.api.dependencies import get_request_id
from pawnbook.api.middleware import MetricsMiddleware, RequestIDMiddleware
from pawnbook.api.v1 import customers, exports, loans, transactions
from pawnbook.config import settings
from pawnbook.domain.exceptions import (
    ConflictError,
    DomainException,
    NotFound,
    ScreeningProviderError,
    StoreUnavailable,
    SubmissionError,
    TransitionError,
    ValidationError,
)
from pawnbook.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)

# Most specific first; SubmissionError is checked before the generic mapping
STATUS_CODES = (
    (ValidationError, 422),
    (NotFound, 404),
    (TransitionError, 409),
    (ConflictError, 409),
    (StoreUnavailable, 503),
    (ScreeningProviderError, 502),
)


def _status_for(exc: DomainException) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Translate domain failures to HTTP responses with per-field details where available"""
    request_id = get_request_id(request)
    body = {"detail": str(exc), "request_id": request_id}

    if isinstance(exc, SubmissionError):
        # Operator-correctable causes keep their 4xx; anything else is a server failure
        status_code = _status_for(exc.cause) if isinstance(exc.cause, DomainException) else 500
        body.update({"failed_step": exc.step, "completed_steps": exc.completed_steps})
        if isinstance(exc.cause, ValidationError):
            body["errors"] = exc.cause.errors
    else:
        status_code = _status_for(exc)
        if isinstance(exc, ValidationError):
            body["errors"] = exc.errors

    if status_code >= 500:
        logger.error("Request failed", extra={"request_id": request_id, "error": str(exc)})
    else:
        logger.warning("Request rejected", extra={"request_id": request_id, "status": status_code, "error": str(exc)})
    return JSONResponse(status_code=status_code, content=body)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Pawnbook",
        description="Pawnshop back-office: customers, pawn tickets, renewals, redemptions and cash flow",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(customers.router, prefix="/v1", tags=["customers"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(exports.router, prefix="/v1", tags=["exports"])

    return app


app = create_app()
