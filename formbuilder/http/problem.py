"""Problem+JSON utilities and global exception handlers.

Defines the RFC7807 media type and the handler callables that translate
domain errors into application/problem+json responses.
"""

from __future__ import annotations

from typing import Any, Dict
import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from formbuilder.logic.errors import (
    AuthorizationError,
    FormBuilderError,
    NotFoundError,
    StructuralError,
    ValidationError,
)

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)


class PayloadTooLarge(FormBuilderError):
    """Upload exceeds the configured CSV size limit."""

    code = "payload_too_large"

    def __init__(self, limit: int) -> None:
        super().__init__(f"upload exceeds {limit} bytes")
        self.limit = limit


def problem(status: int, title: str, detail: str, code: str, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"title": title, "status": status, "detail": detail, "code": code}
    body.update(extra)
    return JSONResponse(jsonable_encoder(body), status_code=status, media_type=PROBLEM_MEDIA_TYPE)


async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return problem(422, "Validation Failed", str(exc), exc.code, errors=exc.errors)


async def handle_structural_error(request: Request, exc: StructuralError) -> JSONResponse:
    return problem(422, "Invalid Question Tree", str(exc), exc.code, errors=exc.problems)


async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return problem(404, "Not Found", str(exc), exc.code)


async def handle_authorization_error(request: Request, exc: AuthorizationError) -> JSONResponse:
    title = "Unauthorized" if exc.status == 401 else "Forbidden"
    return problem(exc.status, title, str(exc), exc.code)


async def handle_payload_too_large(request: Request, exc: PayloadTooLarge) -> JSONResponse:
    return problem(413, "Payload Too Large", str(exc), exc.code)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "code": str(err.get("type", "invalid")),
            "message": str(err.get("msg", "")),
        }
        for err in exc.errors()
    ]
    return problem(422, "Invalid Request", "Request validation failed", "invalid_request", errors=errors)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(
        {"title": "Internal Server Error", "status": 500}, status_code=500, media_type=PROBLEM_MEDIA_TYPE
    )


def register_exception_handlers(app: Any) -> None:
    app.add_exception_handler(ValidationError, handle_validation_error)
    app.add_exception_handler(StructuralError, handle_structural_error)
    app.add_exception_handler(NotFoundError, handle_not_found)
    app.add_exception_handler(AuthorizationError, handle_authorization_error)
    app.add_exception_handler(PayloadTooLarge, handle_payload_too_large)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "PayloadTooLarge",
    "problem",
    "handle_validation_error",
    "handle_structural_error",
    "handle_not_found",
    "handle_authorization_error",
    "handle_payload_too_large",
    "handle_request_validation_error",
    "handle_unexpected_error",
    "register_exception_handlers",
]
