"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes, the ledger error taxonomy and
global exception handlers.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Any, Dict, Optional

logger = logging.getLogger("studio_billing.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


def field_errors(field: str, message: str) -> Dict[str, Any]:
    """Build the `details` payload for a single field-level error."""
    return {"errors": {field: message}}


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id, **field_errors("general", message)}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=field_errors("general", message)
        )


# Ledger errors

class LedgerValidationError(AppException):
    """Raised when a ledger request field is malformed. Nothing is written."""

    def __init__(self, field: str, message: str, error_code: str = "ERR_LEDGER_VALIDATION"):
        self.field = field
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=field_errors(field, message)
        )


class InvalidAmountError(LedgerValidationError):
    """Raised for non-numeric, non-positive or over-precise monetary amounts."""

    def __init__(self, message: str = "Invalid amount", field: str = "amount"):
        super().__init__(field=field, message=message, error_code="ERR_LEDGER_AMOUNT")


class CurrencyMismatchError(AppException):
    """Raised when money values of different currencies are combined."""

    def __init__(self, left: str, right: str):
        message = f"Currency mismatch: {left} vs {right}"
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_CURRENCY",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"left": left, "right": right, **field_errors("amount", message)}
        )


class InvalidStateError(AppException):
    """Raised when an invoice is in a state that does not allow the operation."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_STATE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"status": current_status, **field_errors("general", message)}
        )


class InvalidTransitionError(InvalidStateError):
    """Raised for a status change the invoice state machine does not allow."""

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            message=f"Cannot move invoice from {current_status} to {target_status}",
            current_status=current_status
        )
        self.target_status = target_status


class OverpaymentRejectedError(AppException):
    """Raised when a payment exceeds the invoice's remaining balance."""

    def __init__(self, remaining_balance: str):
        message = f"Payment amount cannot exceed remaining balance of {remaining_balance}"
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_OVERPAYMENT",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"remaining_balance": remaining_balance, **field_errors("amount", message)}
        )


class StorageFailureError(AppException):
    """Raised when a ledger write fails and the transaction was rolled back."""

    def __init__(self, message: str = "Failed to record ledger changes"):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_STORAGE",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=field_errors("general", message)
        )


class LedgerIntegrityError(StorageFailureError):
    """Raised when a persisted ledger row is missing or has malformed money fields."""

    def __init__(self, message: str):
        super().__init__(message=f"Ledger row failed validation: {message}")


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handler for HTTP errors (unknown routes, wrong methods) with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors, flattened into field errors."""
    errors: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors[loc[0] if loc else "general"] = err.get("msg", "Invalid value")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": errors
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception [%s]: %s: %s",
        getattr(request.state, "correlation_id", "-"), type(exc).__name__, exc
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": field_errors("general", "An unexpected error occurred")
        }
    )
