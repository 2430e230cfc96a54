# admin_api/core/errors.py
"""
Closed set of failure kinds raised by the core and the single translator
that turns them into HTTP responses.

Storage, session and asset code raise ``AdminApiError(kind, message)``;
``register_error_handlers`` maps every kind to a status code. Anything else
that escapes a route is logged with its traceback and reported as a generic 500.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    RATE_LIMITED = "RATE_LIMITED"
    READ_ONLY_STORAGE = "READ_ONLY_STORAGE"
    KV_UNAVAILABLE = "KV_UNAVAILABLE"
    KV_INVALID_PAYLOAD = "KV_INVALID_PAYLOAD"
    CORRUPT_DATA = "CORRUPT_DATA"
    BLOB_NOT_CONFIGURED = "BLOB_NOT_CONFIGURED"
    BLOB_UPLOAD_FAILED = "BLOB_UPLOAD_FAILED"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.READ_ONLY_STORAGE: 503,
    ErrorKind.KV_UNAVAILABLE: 503,
    ErrorKind.KV_INVALID_PAYLOAD: 500,
    ErrorKind.CORRUPT_DATA: 500,
    ErrorKind.BLOB_NOT_CONFIGURED: 503,
    ErrorKind.BLOB_UPLOAD_FAILED: 503,
}

DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Invalid request data",
    ErrorKind.UNAUTHORIZED: "Authentication required",
    ErrorKind.NOT_FOUND: "Item not found",
    ErrorKind.CONFLICT: "Item already exists",
    ErrorKind.PAYLOAD_TOO_LARGE: "Payload too large",
    ErrorKind.RATE_LIMITED: "Too many requests. Try again later.",
    ErrorKind.READ_ONLY_STORAGE: (
        "Storage is read-only in this environment. Configure KV_URL (Redis) for writes."
    ),
    ErrorKind.KV_UNAVAILABLE: "Key-value storage is unavailable. Check KV_URL.",
    ErrorKind.KV_INVALID_PAYLOAD: "Data in key-value storage is corrupted or has an invalid shape.",
    ErrorKind.CORRUPT_DATA: "Stored data is corrupted or has an invalid shape.",
    ErrorKind.BLOB_NOT_CONFIGURED: "Object storage is not configured. Set the S3_* variables.",
    ErrorKind.BLOB_UPLOAD_FAILED: "Failed to upload the file to object storage.",
}

# kinds that are expected during normal operation and not worth a traceback
_QUIET_KINDS = {
    ErrorKind.VALIDATION,
    ErrorKind.UNAUTHORIZED,
    ErrorKind.NOT_FOUND,
    ErrorKind.CONFLICT,
    ErrorKind.PAYLOAD_TOO_LARGE,
    ErrorKind.RATE_LIMITED,
}


class AdminApiError(Exception):
    def __init__(self, kind: ErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def __repr__(self) -> str:
        return f"AdminApiError({self.kind.value}, {self.message!r})"


def _join_errors(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc or 'root'}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts) or DEFAULT_MESSAGES[ErrorKind.VALIDATION]


def format_issues(exc: ValidationError) -> str:
    """Render pydantic errors as ``path: message`` pairs joined by ``; ``."""
    return _join_errors(exc.errors())


def _error_response(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message}, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AdminApiError)
    async def _admin_api_error(request: Request, exc: AdminApiError):
        if exc.kind not in _QUIET_KINDS:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.kind.value, exc.message)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(400, _join_errors(exc.errors()))

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.exception("Unexpected error on %s %s", request.method, request.url.path)
        return _error_response(500, "Internal server error")
