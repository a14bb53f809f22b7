"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from invoicefin_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from invoicefin_gateway.api.v1 import businesses, invoices, liquidity
from invoicefin_gateway.domain.exceptions import (
    AlreadyProcessedError,
    DomainException,
    EligibilityRejectedError,
    InsufficientFundsError,
    InsufficientRepaymentError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
    RiskProviderError,
    StorageUnavailableError,
)
from invoicefin_gateway.infrastructure.observability.logging import setup_logging
from invoicefin_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)

# Most specific first: AlreadyProcessedError is an InvalidStateTransitionError
ERROR_STATUS_CODES = (
    (AlreadyProcessedError, 409, "already_processed"),
    (InvalidStateTransitionError, 409, "invalid_state_transition"),
    (InsufficientFundsError, 409, "insufficient_funds"),
    (InvalidInputError, 422, "invalid_input"),
    (EligibilityRejectedError, 422, "eligibility_rejected"),
    (InsufficientRepaymentError, 422, "insufficient_repayment"),
    (NotFoundError, 404, "not_found"),
    (StorageUnavailableError, 503, "storage_unavailable"),
    (RiskProviderError, 503, "risk_provider_unavailable"),
)


def error_status(exc: DomainException) -> tuple[int, str]:
    for exc_type, status_code, error in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code, error
    return 400, "domain_error"


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code, error = error_status(exc)
    if status_code >= 500:
        logging.error(
            f"{error}: {exc.message}",
            extra={"request_id": getattr(request.state, "request_id", "unknown")},
        )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"error": error, "detail": exc.message, "details": exc.details}),
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Invoice Financing Gateway",
        description="Invoice verification, financing and liquidity pool service",
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
    app.include_router(businesses.router, prefix="/v1", tags=["businesses"])
    app.include_router(invoices.router, prefix="/v1", tags=["invoices"])
    app.include_router(liquidity.router, prefix="/v1", tags=["liquidity"])

    return app


app = create_app()
