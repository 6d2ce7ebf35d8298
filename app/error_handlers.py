"""
Exception handlers that turn every failure into the proxy's error body.

Responses carry ``{"success": false, "error", "error_code", "details"?}``
where ``error_code`` is UNAUTHENTICATED, INVALID_ARGUMENT or INTERNAL.
Upstream messages are passed through to the caller with any secret
masked; messages pointing at infrastructure are replaced entirely.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from quota_proxy.config import get_settings
from quota_proxy.exceptions import ErrorCode, QuotaProxyException
from quota_proxy.utils.logging import redact_sensitive_data

logger = logging.getLogger(__name__)

# Messages matching these describe our own infrastructure and are never shown
INFRASTRUCTURE_PATTERNS = [
    r"password",
    r"postgres(ql)?://",
    r"rediss?://",
    r"https?://[^\s/]*@",
    r"/home/",
    r"/Users/",
    r"/var/",
    r"/etc/",
]

INFRASTRUCTURE_REGEX = re.compile("|".join(INFRASTRUCTURE_PATTERNS), re.IGNORECASE)
IP_ADDRESS_REGEX = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")

GENERIC_ERROR_MESSAGE = "An error occurred while processing your request"
MAX_MESSAGE_LENGTH = 500


def sanitize_error_message(message: str) -> str:
    """
    Make an error message safe to return to the caller.

    Keys and bearer tokens are masked in place so upstream diagnostics
    such as rate limit or context length errors stay readable.

    Args:
        message: The error message to sanitize.

    Returns:
        The masked message, or GENERIC_ERROR_MESSAGE when it names
        infrastructure.
    """
    if not message:
        return message

    if INFRASTRUCTURE_REGEX.search(message):
        return GENERIC_ERROR_MESSAGE

    message = redact_sensitive_data(message)
    message = IP_ADDRESS_REGEX.sub("[ip]", message)

    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH] + "..."

    return message


# Detail keys that may reach the caller
SAFE_DETAIL_KEYS = frozenset({"field", "service", "errors", "error_reference"})
MAX_FIELD_ERRORS = 10

BODY_NOT_OBJECT_TYPES = ("model_attributes_type", "dict_type", "model_type")


def sanitize_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only whitelisted detail keys with primitive or field-error values."""
    if not details:
        return {}

    sanitized: Dict[str, Any] = {}
    for key, value in details.items():
        if key not in SAFE_DETAIL_KEYS:
            continue

        if isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        elif isinstance(value, (int, float, bool)):
            sanitized[key] = value
        elif isinstance(value, list):
            sanitized[key] = [
                item for item in value
                if isinstance(item, (str, int, float, bool))
                or (isinstance(item, dict) and all(isinstance(v, str) for v in item.values()))
            ][:MAX_FIELD_ERRORS]

    return sanitized


def format_pydantic_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Describe request validation errors as ``{"field", "message"}`` pairs.

    Body-level failures (unparseable JSON, a body that is not an object)
    are reported against the ``request`` field.
    """
    formatted = []
    for error in errors[:MAX_FIELD_ERRORS]:
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "request"
        error_type = error.get("type", "")

        if error_type == "missing":
            message = f"Field '{field}' is required"
        elif error_type == "json_invalid":
            message = "Request body is not valid JSON"
        elif error_type in BODY_NOT_OBJECT_TYPES:
            message = "Request body must be a JSON object"
        else:
            message = sanitize_error_message(error.get("msg", "Invalid value"))

        formatted.append({"field": field, "message": message})

    return formatted


def create_error_response(
    status_code: int,
    error: str,
    error_code: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Build the error body; ``details`` is omitted when nothing safe is left."""
    content: Dict[str, Any] = {
        "success": False,
        "error": sanitize_error_message(error),
        "error_code": error_code,
    }

    safe_details = sanitize_details(details or {})
    if safe_details:
        content["details"] = safe_details

    return JSONResponse(status_code=status_code, content=content)


def report_to_sentry(
    exc: BaseException,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture an exception in Sentry, tagged with the request and caller.

    Returns:
        The Sentry event id, or None when Sentry is not configured.
    """
    if not sentry_sdk.get_client().is_active():
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            if request is not None:
                scope.set_context("request", {"method": request.method, "path": request.url.path})
                user_id = getattr(request.state, "user_id", None)
                if user_id:
                    scope.set_user({"id": user_id})
                request_id = getattr(request.state, "request_id", None)
                if request_id:
                    scope.set_tag("request_id", request_id)
            if extra_context:
                scope.set_context("extra", extra_context)
            return sentry_sdk.capture_exception(exc)
    except Exception as e:
        logger.warning(f"Failed to report exception to Sentry: {e}")
        return None


async def quota_proxy_exception_handler(request: Request, exc: QuotaProxyException) -> JSONResponse:
    """Return the exception's client message; the internal message is only logged."""
    log_message = f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}"
    if exc.internal_message:
        log_message += f" | Internal: {exc.internal_message}"

    if exc.status_code >= 500:
        logger.error(log_message)
        report_to_sentry(getattr(exc, "original_error", None) or exc, request)
    else:
        logger.warning(log_message)

    return create_error_response(exc.status_code, exc.message, exc.error_code.value, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Any malformed request body is INVALID_ARGUMENT."""
    errors = format_pydantic_errors(exc.errors())
    logger.warning(f"Invalid request body on {request.method} {request.url.path}: {errors}")

    message = errors[0]["message"] if len(errors) == 1 else f"Validation failed with {len(errors)} error(s)"
    return create_error_response(
        status.HTTP_400_BAD_REQUEST,
        message,
        ErrorCode.INVALID_ARGUMENT.value,
        {"errors": errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and wrong methods, folded onto the three error codes."""
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        error_code = ErrorCode.UNAUTHENTICATED
    elif exc.status_code < 500:
        error_code = ErrorCode.INVALID_ARGUMENT
    else:
        error_code = ErrorCode.INTERNAL

    detail = str(exc.detail)
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        f"HTTP {exc.status_code} on {request.method} {request.url.path}: {detail}",
    )
    return create_error_response(exc.status_code, detail, error_code.value)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last resort for exceptions outside the proxy hierarchy.

    The caller gets INTERNAL with a short reference that also appears in
    the log line and the Sentry event.
    """
    error_reference = uuid.uuid4().hex[:8]
    logger.error(
        f"Unhandled exception [ref:{error_reference}] on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    report_to_sentry(exc, request, extra_context={"error_reference": error_reference})

    if get_settings().is_production:
        message = "An unexpected error occurred. Please try again later."
    else:
        message = f"Internal server error: {type(exc).__name__}"

    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        message,
        ErrorCode.INTERNAL.value,
        {"error_reference": error_reference},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers; order does not matter, Starlette picks by exception MRO."""
    app.add_exception_handler(QuotaProxyException, quota_proxy_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    logger.debug("Exception handlers registered")
