"""Error envelopes, correlation ids and log configuration for the JobRelay API.

Every error leaving the API is shaped as an `ErrorResponse` carrying the
request's correlation id. Which optional fields accompany it is decided by
`core.security_config` for the current environment, so production responses
never include tracebacks or raw validation input.
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import JobNotFoundError, SessionNotFoundError
from core.security_config import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse
from services.jobs.exceptions import JobRelayError, UrlValidationError


_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

REDACTED = "[REDACTED]"


def get_correlation_id() -> str:
    """Return the current correlation id, creating one if none is set."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


def _is_sensitive_header(data: dict[str, Any]) -> bool:
    # {"name": "Authorization", "value": "..."} style pairs
    if "value" not in data:
        return False
    header_name = data.get("name") or data.get("key")
    return isinstance(header_name, str) and is_sensitive_key(header_name)


def sanitize_log_data(data: Any) -> Any:
    """Recursively redact sensitive keys and sensitive header pairs."""
    if isinstance(data, list):
        return [sanitize_log_data(item) for item in data]
    if not isinstance(data, dict):
        return data

    if _is_sensitive_header(data):
        return {
            k: REDACTED if k.lower() in {"value", "val", "v"} else sanitize_log_data(v)
            for k, v in data.items()
        }
    return {
        k: REDACTED if is_sensitive_key(k) else sanitize_log_data(v)
        for k, v in data.items()
    }


class StructuredLogger:
    """Logger wrapper attaching the correlation id and redacted context.

    Keyword arguments become `structured_data` on the log record. The
    production JSON formatter emits it as a nested `structured_data` object.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _emit(
        self, level: int, message: str, context: dict[str, Any], exc_info: bool = False
    ) -> None:
        correlation_id = get_correlation_id()
        structured = {
            "correlation_id": correlation_id,
            "message": message,
            **sanitize_log_data(context),
        }
        if get_settings().ENVIRONMENT != "production":
            message = f"[{correlation_id}] {message}"
        self.logger.log(
            level, message, extra={"structured_data": structured}, exc_info=exc_info
        )

    def info(self, message: str, **kwargs: Any) -> None:
        self._emit(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._emit(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._emit(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._emit(logging.ERROR, message, kwargs, exc_info=True)


structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Route anything that escapes the exception handlers to
    `global_exception_handler` so clients always get the JSON envelope."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


@dataclass(frozen=True, slots=True)
class _DomainErrorMapping:
    status_code: int
    error_type: str
    # None means the exception's own message is safe to show.
    public_message: str | None = None


# First match wins, so subclasses come before JobRelayError.
_DOMAIN_ERRORS: tuple[tuple[type[Exception], _DomainErrorMapping], ...] = (
    (UrlValidationError, _DomainErrorMapping(422, "url_validation_error")),
    (
        SessionNotFoundError,
        _DomainErrorMapping(404, "not_found", "The requested session was not found"),
    ),
    (
        JobNotFoundError,
        _DomainErrorMapping(404, "not_found", "The requested job was not found"),
    ),
    (JobRelayError, _DomainErrorMapping(400, "domain_error")),
)


def _build_error_response(
    *,
    correlation_id: str,
    error_type: str,
    message: str,
    environment: str,
    error_code: str | None = None,
    details: dict[str, Any] | None = None,
    traceback_str: str | None = None,
    exception_type: str | None = None,
    validation_errors: Any | None = None,
    status_code: int = 500,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render the error envelope, keeping only fields allowed in `environment`."""
    optional_fields = {
        "error_code": error_code,
        "details": details,
        "traceback": traceback_str,
        "exception_type": exception_type,
        "validation_errors": validation_errors,
    }
    allowed = get_allowed_error_fields(environment)

    error_body: dict[str, Any] = {"correlation_id": correlation_id, "type": error_type}
    error_body.update(
        (name, value)
        for name, value in optional_fields.items()
        if name in allowed and value is not None
    )

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=error_body).model_dump(),
        headers=headers,
    )


def _domain_error_response(
    exc: Exception, mapping: _DomainErrorMapping, correlation_id: str, environment: str
) -> JSONResponse:
    error_code = getattr(exc, "error_code", None)
    structured_logger.warning(
        "Domain error",
        error_type=exc.__class__.__name__,
        error_code=error_code,
        domain_message=str(exc),
    )
    message = mapping.public_message or getattr(exc, "message", None) or str(exc)
    return _build_error_response(
        correlation_id=correlation_id,
        error_type=mapping.error_type,
        message=message,
        environment=environment,
        error_code=error_code,
        status_code=mapping.status_code,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate any exception into the JSON error envelope.

    HTTP exceptions keep their status code, validation failures become 422,
    known domain errors use the `_DOMAIN_ERRORS` table, and anything else is
    logged with its traceback and answered with a generic 500.
    """
    environment = get_settings().ENVIRONMENT
    correlation_id = get_correlation_id()
    is_production = environment == "production"

    if isinstance(exc, StarletteHTTPException):
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="http_error",
            message="An HTTP error occurred",
            environment=environment,
            details={"detail": exc.detail},
            exception_type=exc.__class__.__name__,
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    if isinstance(exc, ValidationError | RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        structured_logger.warning("Validation error", validation_errors=errors)
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="validation_error",
            message="Invalid request data provided",
            environment=environment,
            validation_errors=errors,
            status_code=422,
        )

    for error_class, mapping in _DOMAIN_ERRORS:
        if isinstance(exc, error_class):
            return _domain_error_response(exc, mapping, correlation_id, environment)

    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__, error=str(exc)
    )
    return _build_error_response(
        correlation_id=correlation_id,
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback_str=None
        if is_production
        else "".join(traceback.format_exception(exc)).strip(),
        exception_type=None if is_production else exc.__class__.__name__,
    )


def _build_formatter(environment: str) -> logging.Formatter:
    if environment == "production":
        return JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def setup_logging() -> None:
    """Configure the root logger once; later calls are no-ops."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    environment = get_settings().ENVIRONMENT
    log_level = logging.DEBUG if environment == "development" else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(environment))
    handler.setLevel(log_level)
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    if environment == "production":
        # Per-request access and outbound fetch logs are too chatty for prod.
        for noisy in ("uvicorn.access", "httpx"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
