"""Database bootstrap utilities for the Form Builder service.

Exposes engine construction and the migrations runner that applies SQL
files from the project's migrations/ directory. Repositories use SQL text
through the shared engine; no ORM models leak into route handlers.
"""

from formbuilder.db.base import dispose_engine, get_engine
from formbuilder.db.migrations_runner import apply_migrations

__all__ = [
    "get_engine",
    "dispose_engine",
    "apply_migrations",
]
