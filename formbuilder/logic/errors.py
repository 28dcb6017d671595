"""Typed errors raised by the form-schema engine and its collaborators.

The core raises these and never logs or swallows them; the HTTP boundary
(`formbuilder.http.problem`) translates each class into a problem+json
response.
"""

from __future__ import annotations

from typing import Any, Dict, List


class FormBuilderError(Exception):
    """Base class for all domain errors."""

    code = "error"


class ValidationError(FormBuilderError):
    """Field-indexed, multi-cause validation failure.

    ``errors`` holds one dict per violation with ``field``, ``code`` and
    ``message`` keys, in discovery order.
    """

    code = "validation_failed"

    def __init__(self, errors: List[Dict[str, Any]], message: str = "validation failed") -> None:
        super().__init__(message)
        self.errors = list(errors)

    @property
    def fields(self) -> List[str]:
        return [str(e.get("field")) for e in self.errors]


class StructuralError(FormBuilderError):
    """The question tree cannot be linearized (cycle, dangling parent, ...)."""

    code = "structural_error"

    def __init__(self, problems: List[Dict[str, Any]], message: str = "invalid question tree") -> None:
        super().__init__(message)
        self.problems = list(problems)

    @property
    def question_ids(self) -> List[str]:
        return [str(p.get("question_id")) for p in self.problems]


class NotFoundError(FormBuilderError):
    code = "not_found"

    def __init__(self, kind: str, resource_id: str) -> None:
        super().__init__(f"{kind} not found")
        self.kind = kind
        self.resource_id = resource_id


class AuthorizationError(FormBuilderError):
    """Caller is unauthenticated (401) or lacks the required role (403)."""

    code = "not_authorized"

    def __init__(self, status: int = 403, message: str = "not authorized") -> None:
        super().__init__(message)
        self.status = status


def field_error(field: str, code: str, message: str) -> Dict[str, Any]:
    return {"field": field, "code": code, "message": message}


def structural_problem(question_id: str, code: str, message: str) -> Dict[str, Any]:
    return {"question_id": question_id, "code": code, "message": message}


__all__ = [
    "FormBuilderError",
    "ValidationError",
    "StructuralError",
    "NotFoundError",
    "AuthorizationError",
    "field_error",
    "structural_problem",
]
