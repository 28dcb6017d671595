from __future__ import annotations

"""Functional test bootstrap.

Points the service at a file-backed SQLite database under tmp/ and applies
the migrations once at session start so the schema exists before tests
create the FastAPI app via TestClient.
"""

import os
import pathlib
from typing import Any, Dict, Iterator, Sequence

import pytest

# Ensure the app points to the test database before any imports of formbuilder.main
_ROOT = pathlib.Path(__file__).resolve().parents[2]
_DB_FILE = _ROOT / "tmp" / "functional_tests.db"
_DB_FILE.parent.mkdir(parents=True, exist_ok=True)
if _DB_FILE.exists():
    _DB_FILE.unlink()

# Use a file-backed SQLite DB to ensure persistence across connections
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
# Disable app startup auto-migrations; they are applied explicitly below
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"


def _apply_sqlite_migrations() -> None:
    from formbuilder.config import reset_config_cache
    from formbuilder.db.base import get_engine
    from formbuilder.db.migrations_runner import apply_migrations

    reset_config_cache()
    apply_migrations(get_engine(os.environ["TEST_DATABASE_URL"]), migrations_dir=str(_ROOT / "migrations"))


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap() -> Iterator[None]:
    """Session-level bootstrap: apply migrations once for the shared DB."""
    _apply_sqlite_migrations()
    yield
    from formbuilder.db.base import dispose_engine

    dispose_engine()


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient
    from formbuilder.main import create_app

    with TestClient(create_app()) as c:
        yield c


@pytest.fixture()
def admin_headers() -> Dict[str, str]:
    return {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture()
def user_headers() -> Dict[str, str]:
    return {"X-User-Id": "user-1", "X-User-Role": "user"}


@pytest.fixture()
def events() -> Iterator[Sequence[Dict[str, Any]]]:
    """Clear the domain event buffer before the test and expose it."""
    from formbuilder.logic.events import EVENT_BUFFER, get_buffered_events

    get_buffered_events(clear=True)
    yield EVENT_BUFFER
    get_buffered_events(clear=True)


def _status_form_draft(child_required: bool = False) -> Dict[str, Any]:
    return {
        "name": "Status check",
        "description": "Conditional follow-up",
        "questions": [
            {
                "id": "status",
                "text": "Status",
                "type": "select",
                "required": True,
                "options": [{"id": "A", "text": "Active"}, {"id": "B", "text": "Blocked"}],
            },
            {
                "id": "child",
                "text": "Why active?",
                "type": "text",
                "required": child_required,
                "parentId": "status",
                "parentOptionId": "A",
            },
        ],
    }


@pytest.fixture()
def status_form_draft():
    """Factory for the authoring draft: one select (A/B) and a text child under A."""
    return _status_form_draft


@pytest.fixture()
def status_form(client, admin_headers, status_form_draft) -> Dict[str, Any]:
    """Persisted status form; canonical ids are q0001 (status) and q0002 (child)."""
    resp = client.post("/api/v1/forms", json=status_form_draft(child_required=True), headers=admin_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()
