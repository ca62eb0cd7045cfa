"""
Application error types and FastAPI exception handlers
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    # Authentication
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"
    AUTH_EXPIRED = "AUTH_EXPIRED"

    # Validation
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"

    # Upstream API
    API_ERROR = "API_ERROR"
    API_RATE_LIMITED = "API_RATE_LIMITED"
    API_NOT_FOUND = "API_NOT_FOUND"
    API_FORBIDDEN = "API_FORBIDDEN"

    # Database
    DB_CONNECTION_FAILED = "DB_CONNECTION_FAILED"
    DB_QUERY_FAILED = "DB_QUERY_FAILED"
    DB_CONSTRAINT_VIOLATION = "DB_CONSTRAINT_VIOLATION"

    # Business logic
    CALENDAR_EXISTS = "CALENDAR_EXISTS"
    LOCATION_NOT_FOUND = "LOCATION_NOT_FOUND"
    JOB_FAILED = "JOB_FAILED"

    # System
    INTERNAL_ERROR = "INTERNAL_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"


STATUS_CODE_MAP = {
    400: ErrorCode.INVALID_INPUT,
    401: ErrorCode.AUTH_INVALID,
    403: ErrorCode.API_FORBIDDEN,
    404: ErrorCode.API_NOT_FOUND,
    429: ErrorCode.API_RATE_LIMITED,
    500: ErrorCode.API_ERROR,
}


class AppError(Exception):
    """Error carrying an HTTP status and a machine readable code"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Any = None,
        context: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.context = context
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        error = {
            "code": self.code.value,
            "message": self.message,
            "statusCode": self.status_code,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "context": self.context,
        }
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class GHLAPIError(AppError):
    """Non-2xx response from the GHL API"""

    def __init__(self, response: httpx.Response, context: str):
        try:
            details = response.text
        except (httpx.ResponseNotRead, UnicodeDecodeError):
            details = "Unable to read error response"
        super().__init__(
            f"API request failed: {response.status_code} {response.reason_phrase}",
            STATUS_CODE_MAP.get(response.status_code, ErrorCode.API_ERROR),
            response.status_code,
            details,
            context,
        )

    def upstream_message(self) -> str:
        """error_description or error from a JSON error body, else the raw text"""
        try:
            body = json.loads(self.details) if isinstance(self.details, str) else None
        except json.JSONDecodeError:
            body = None
        if isinstance(body, dict):
            message = body.get("error_description") or body.get("error") or body.get("message")
            if message:
                return str(message)
        return self.details or self.message


def validation_error(message: str, details: Any = None) -> AppError:
    return AppError(message, ErrorCode.VALIDATION_FAILED, 400, details, "Validation")


def get_error_message(error: Any) -> str:
    if isinstance(error, AppError):
        return error.message
    if isinstance(error, Exception):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    return "Unknown error occurred"


async def app_error_handler(request: Request, exc: AppError):
    logger.error(f"❌ API error in {exc.context or request.url.path}: {exc.code.value} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))
    logger.warning(f"⚠️ Validation error for {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content={"error": "Validation failed", "errors": errors})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unexpected error in {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": get_error_message(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
