"""
Custom exceptions for the VendOps analytics API.
The analytics services never raise for bad data; these errors only cover
request problems caught at the HTTP boundary.
"""

from typing import Any, Dict, Optional, List
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from vendops.config.logging import get_logger

logger = get_logger(__name__)


class ErrorDetail(BaseModel):
    """Standard error detail structure"""
    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class BaseCustomException(HTTPException):
    """Base class for all custom exceptions"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        field: Optional[str] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.field = field


# =============================================================================
# HTTP EXCEPTIONS
# =============================================================================

class BadRequestError(BaseCustomException):
    """Bad request exception"""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
            error_code="BAD_REQUEST",
            field=field
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(BaseCustomException):
    """Base validation error"""

    def __init__(self, message: str, field: str = None, errors: List[ErrorDetail] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=message,
            error_code="VALIDATION_ERROR",
            field=field
        )
        self.errors = errors or []


class InvalidWindowError(ValidationError):
    """Report window outside the allowed range"""

    def __init__(self, days: int, max_days: int):
        message = f"Invalid window: {days} days. Must be between 1 and {max_days}"
        super().__init__(
            message=message,
            field="days",
            errors=[
                ErrorDetail(
                    code="INVALID_WINDOW",
                    message=message,
                    field="days",
                    details={"provided_days": days, "max_days": max_days}
                )
            ]
        )


class InvalidGroupingError(ValidationError):
    """Unknown grouping key for mover analysis"""

    def __init__(self, group_by: str, allowed: List[str]):
        super().__init__(
            message=f"Invalid grouping: {group_by}",
            field="group_by",
            errors=[
                ErrorDetail(
                    code="INVALID_GROUPING",
                    message=f"group_by must be one of: {', '.join(allowed)}",
                    field="group_by",
                    details={"provided_group_by": group_by}
                )
            ]
        )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def format_error_response(error: HTTPException) -> Dict[str, Any]:
    """Format error response for consistent API responses"""
    response = {
        "error": True,
        "error_code": getattr(error, 'error_code', None) or 'HTTP_ERROR',
        "message": error.detail,
        "status_code": error.status_code
    }

    if getattr(error, 'field', None):
        response["field"] = error.field

    if getattr(error, 'errors', None):
        response["errors"] = [err.model_dump() for err in error.errors]

    return response


async def custom_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTP exceptions with the standard error body"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(exc),
        headers=getattr(exc, 'headers', None),
    )
