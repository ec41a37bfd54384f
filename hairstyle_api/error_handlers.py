# hairstyle_api/error_handlers.py
"""
Centralized error handling with custom exception classes,
error codes, and FastAPI exception handlers.

Every failure is rendered as {"success": false, "error": "...", "code": "..."}
so the client can show a short human-readable message.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from typing import Any, Dict, Optional
import traceback

from .logging_config import get_logger
from .config import settings

logger = get_logger(__name__)


# ============================================================================
# ERROR CODES - For client-side error handling
# ============================================================================

class ErrorCode:
    """Centralized error codes for consistent client-side handling"""

    # General errors (1xxx)
    INTERNAL_SERVER_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    UNAUTHORIZED = "ERR_1003"

    # Database errors (2xxx)
    DATABASE_ERROR = "ERR_2000"
    INTEGRITY_ERROR = "ERR_2001"

    # Business logic errors (3xxx)
    INSUFFICIENT_CREDITS = "ERR_3000"
    INVALID_IMAGE = "ERR_3003"
    IMAGE_TOO_LARGE = "ERR_3004"

    # External service errors (4xxx)
    PROVIDER_ERROR = "ERR_4000"
    PROVIDER_TIMEOUT = "ERR_4001"
    PROVIDER_NOT_CONFIGURED = "ERR_4002"
    STAGING_ERROR = "ERR_4003"


# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================

class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class UnauthorizedException(AppException):
    """Raised when authentication is required but missing"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class InsufficientCreditsException(AppException):
    """Raised when user doesn't have enough credits"""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            message="Insufficient credits",
            error_code=ErrorCode.INSUFFICIENT_CREDITS,
            status_code=status.HTTP_403_FORBIDDEN,
            details={
                "required": required,
                "available": available,
            }
        )


class DatabaseException(AppException):
    """Raised when database operations fail"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"original_error": str(original_error)} if original_error else {}
        )


class DuplicateLedgerEntryException(AppException):
    """Raised when a ledger entry guarded by a unique index already exists"""

    def __init__(self, transaction_type: str, key: str):
        super().__init__(
            message=f"Ledger entry already recorded: {transaction_type} for {key}",
            error_code=ErrorCode.INTEGRITY_ERROR,
            status_code=status.HTTP_409_CONFLICT,
            details={"transaction_type": transaction_type, "key": key}
        )


class ProviderException(AppException):
    """Raised when an image-edit provider rejects, fails or returns no image"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        error_code: str = ErrorCode.PROVIDER_ERROR
    ):
        self.provider = provider
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"provider": provider} if provider else {}
        )


class ProviderTimeoutException(ProviderException):
    """Raised when the poll budget is exhausted without a terminal status"""

    def __init__(self, provider: str, attempts: int):
        super().__init__(
            message="Timeout waiting for image generation result",
            provider=provider,
            error_code=ErrorCode.PROVIDER_TIMEOUT
        )
        self.details["attempts"] = attempts


class ProviderNotConfiguredException(AppException):
    """Raised when no image-edit provider has a credential configured"""

    def __init__(self):
        super().__init__(
            message="API key not configured. Set WAVESPEED_API_KEY or GEMINI_API_KEY.",
            error_code=ErrorCode.PROVIDER_NOT_CONFIGURED,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


class StagingException(AppException):
    """Raised when the input image cannot be staged for the provider"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.STAGING_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"original_error": str(original_error)} if original_error else {}
        )


# ============================================================================
# ERROR RESPONSE FORMATTER
# ============================================================================

def format_error_response(
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Format error response in a consistent structure

    Returns:
        {
            "success": false,
            "error": "Insufficient credits",
            "code": "ERR_3000",
            "details": {...},
            "request_id": "abc123"
        }
    """
    response: Dict[str, Any] = {
        "success": False,
        "error": message,
        "code": error_code,
    }

    if details and settings.ENVIRONMENT != "production":
        response["details"] = details

    if request_id:
        response["request_id"] = request_id

    return response


# ============================================================================
# FASTAPI EXCEPTION HANDLERS
# ============================================================================

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom AppException errors"""

    request_id = getattr(request.state, "request_id", None)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application error: {exc.message}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "error_code": exc.error_code,
                "status_code": exc.status_code,
                "path": str(request.url),
                "method": request.method,
                "details": exc.details
            }
        }
    )

    content = format_error_response(
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        request_id=request_id
    )

    # The client refreshes its balance display from this value
    if isinstance(exc, InsufficientCreditsException):
        content["credits"] = exc.available

    return JSONResponse(status_code=exc.status_code, content=content)


def _describe_validation_error(error: Dict[str, Any]) -> str:
    field = str(error["loc"][-1]) if error.get("loc") else "request"
    if error.get("type") == "missing":
        return f"{field.capitalize()} is required"
    return f"{field}: {error['msg']}"


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handler for request body/query validation errors"""

    request_id = getattr(request.state, "request_id", None)

    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        "Validation error",
        extra={
            "request_id": request_id,
            "extra_data": {
                "path": str(request.url),
                "method": request.method,
                "errors": errors
            }
        }
    )

    first = exc.errors()[0] if exc.errors() else {}
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=format_error_response(
            error_code=ErrorCode.VALIDATION_ERROR,
            message=_describe_validation_error(first) if first else "Invalid request",
            details={"validation_errors": errors},
            request_id=request_id
        )
    )


async def sqlalchemy_exception_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    """Handler for SQLAlchemy database errors"""

    request_id = getattr(request.state, "request_id", None)

    if isinstance(exc, IntegrityError):
        error_code = ErrorCode.INTEGRITY_ERROR
        message = "Database integrity constraint violated"
        status_code = status.HTTP_409_CONFLICT
    else:
        error_code = ErrorCode.DATABASE_ERROR
        message = "Database operation failed"
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.error(
        f"Database error: {str(exc)}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "error_type": type(exc).__name__,
                "path": str(request.url),
                "method": request.method
            }
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status_code,
        content=format_error_response(
            error_code=error_code,
            message=message,
            details={"database_error": str(exc)},
            request_id=request_id
        )
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Catch-all handler for unexpected errors"""

    request_id = getattr(request.state, "request_id", None)

    logger.critical(
        f"Unhandled exception: {str(exc)}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "exception_type": type(exc).__name__,
                "path": str(request.url),
                "method": request.method,
            }
        },
        exc_info=True
    )

    if settings.ENVIRONMENT == "production":
        message = "Internal server error"
        details = None
    else:
        message = str(exc) or "Internal server error"
        details = {"traceback": traceback.format_exc().split("\n")}

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=format_error_response(
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            message=message,
            details=details,
            request_id=request_id
        )
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app

    Handlers are registered in order of specificity:
    1. Custom app exceptions (most specific)
    2. Validation errors
    3. SQLAlchemy errors
    4. Generic exceptions (least specific)
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
