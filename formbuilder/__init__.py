"""FastAPI application package for the Form Builder service.

Exposes the application factory. The form-schema engine (linearizer,
visibility evaluator, response assembler) lives in `formbuilder/logic/`,
pydantic contracts in `formbuilder/models/` and route handlers in
`formbuilder/routes/`.
"""

from __future__ import annotations

from formbuilder.main import create_app

__all__ = ["create_app"]
