"""Error Handlers — global exception handlers for the TrustLend API.

Invariants:
    - TrustLendError → structured JSON with error code, message, severity
    - Ledger waits suggested by the gateway surface as a Retry-After header
    - 5xx domain errors log at error level, client errors at warning
    - RequestValidationError → field-level error details
    - Exception (catch-all) → never leaks internal details

Design Decisions:
    - Three-layer handler: domain (TrustLendError), validation (Pydantic), catch-all (Exception)
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from trustlend.core.errors import ErrorSeverity, TrustLendError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_domain_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_domain_error_handler(app: FastAPI) -> None:

    @app.exception_handler(TrustLendError)
    async def trustlend_error_handler(request: Request, exc: TrustLendError):
        """Handle all TrustLend domain/ledger errors."""
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            f"TrustLendError: {exc.message}",
            extra={
                "error_code": exc.code,
                "path": request.url.path,
                "loan_id": exc.context.loan_id,
            },
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=exc.to_response(),
            headers=_retry_headers(exc),
        )


def _register_validation_error_handler(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.warning(
            f"Validation error on {request.url.path}: {len(exc.errors())} field(s)",
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _register_generic_error_handler(app: FastAPI) -> None:

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "category": "internal",
                    "severity": ErrorSeverity.CRITICAL.value,
                },
            },
        )


def _retry_headers(exc: TrustLendError) -> dict[str, str] | None:
    """Retry-After in whole seconds when the ledger suggested a wait."""
    if not exc.context.retry_after_ms:
        return None
    return {"Retry-After": str(math.ceil(exc.context.retry_after_ms / 1000))}


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Field-level details. Input values are omitted so secrets never echo back."""
    return {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "category": "validation",
            "severity": ErrorSeverity.ERROR.value,
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
        },
    }
