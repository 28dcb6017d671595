"""Form data access: forms table plus per-version schema snapshots.

Questions are persisted as a JSON text payload in canonical order. Each
persisted version also gets a row in `form_versions` so historic responses
can be interpreted against the schema they were recorded with.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbuilder.db.base import get_engine
from formbuilder.logic.errors import NotFoundError
from formbuilder.models.form import Form
from formbuilder.models.question import Question

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromisoformat(str(value))


def dump_questions(questions: Iterable[Question]) -> str:
    return json.dumps(
        [q.model_dump(by_alias=True, mode="json", exclude_none=True) for q in questions],
        ensure_ascii=False,
    )


def load_questions(payload: str | None) -> List[Question]:
    return [Question.model_validate(item) for item in json.loads(payload or "[]")]


def _row_to_form(row: Mapping[str, Any]) -> Form:
    return Form(
        id=str(row["id"]),
        name=str(row["name"]),
        description=str(row["description"] or ""),
        questions=load_questions(row["questions"]),
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
        version=int(row["version"]),
        created_by=row["created_by"],
    )


_SELECT_FORM = (
    "SELECT id, name, description, questions, created_by, created_at, updated_at, version FROM forms"
)


def _fetch_form(conn: Connection, form_id: str) -> Optional[Form]:
    row = conn.execute(sql_text(f"{_SELECT_FORM} WHERE id = :id"), {"id": form_id}).mappings().fetchone()
    return _row_to_form(row) if row else None


def _snapshot(conn: Connection, form: Form) -> None:
    exists = conn.execute(
        sql_text("SELECT 1 FROM form_versions WHERE form_id = :fid AND version = :v"),
        {"fid": form.id, "v": form.version},
    ).fetchone()
    if exists:
        conn.execute(
            sql_text("UPDATE form_versions SET questions = :q, saved_at = :at WHERE form_id = :fid AND version = :v"),
            {"q": dump_questions(form.questions), "at": format_ts(utc_now()), "fid": form.id, "v": form.version},
        )
        return
    conn.execute(
        sql_text(
            "INSERT INTO form_versions (form_id, version, questions, saved_at) VALUES (:fid, :v, :q, :at)"
        ),
        {"fid": form.id, "v": form.version, "q": dump_questions(form.questions), "at": format_ts(utc_now())},
    )


def list_forms() -> List[Form]:
    with get_engine().connect() as conn:
        rows = conn.execute(sql_text(f"{_SELECT_FORM} ORDER BY updated_at DESC, id ASC")).mappings().all()
    return [_row_to_form(r) for r in rows]


def load_form(form_id: str) -> Form:
    with get_engine().connect() as conn:
        form = _fetch_form(conn, form_id)
    if form is None:
        raise NotFoundError("form", form_id)
    return form


def save_form(form: Form) -> Form:
    """Create or update a form and snapshot the resulting version.

    Create assigns id (when absent), timestamps and version 1. Update keeps
    `created_at`, refreshes `updated_at` and increments the stored version;
    the incoming `version` is not compared (last write wins).
    """
    now = utc_now()
    with get_engine().begin() as conn:
        existing = _fetch_form(conn, form.id) if form.id else None
        if existing is None:
            saved = form.model_copy(
                update={
                    "id": form.id or str(uuid.uuid4()),
                    "created_at": now,
                    "updated_at": now,
                    "version": 1,
                }
            )
            conn.execute(
                sql_text(
                    """
                    INSERT INTO forms (id, name, description, questions, created_by, created_at, updated_at, version)
                    VALUES (:id, :name, :description, :questions, :created_by, :created_at, :updated_at, :version)
                    """
                ),
                {
                    "id": saved.id,
                    "name": saved.name,
                    "description": saved.description,
                    "questions": dump_questions(saved.questions),
                    "created_by": saved.created_by,
                    "created_at": format_ts(now),
                    "updated_at": format_ts(now),
                    "version": 1,
                },
            )
        else:
            saved = form.model_copy(
                update={
                    "created_at": existing.created_at,
                    "created_by": existing.created_by,
                    "updated_at": now,
                    "version": existing.version + 1,
                }
            )
            conn.execute(
                sql_text(
                    """
                    UPDATE forms
                    SET name = :name, description = :description, questions = :questions,
                        updated_at = :updated_at, version = :version
                    WHERE id = :id
                    """
                ),
                {
                    "id": saved.id,
                    "name": saved.name,
                    "description": saved.description,
                    "questions": dump_questions(saved.questions),
                    "updated_at": format_ts(now),
                    "version": saved.version,
                },
            )
        _snapshot(conn, saved)
    logger.info("form_saved form_id=%s version=%s questions=%s", saved.id, saved.version, len(saved.questions))
    return saved


def delete_form(form_id: str) -> None:
    """Delete a form together with its responses and schema snapshots."""
    with get_engine().begin() as conn:
        conn.execute(sql_text("DELETE FROM responses WHERE form_id = :id"), {"id": form_id})
        conn.execute(sql_text("DELETE FROM form_versions WHERE form_id = :id"), {"id": form_id})
        result = conn.execute(sql_text("DELETE FROM forms WHERE id = :id"), {"id": form_id})
        if not result.rowcount:
            raise NotFoundError("form", form_id)
    logger.info("form_deleted form_id=%s", form_id)


def load_form_schema(form_id: str, version: int) -> List[Question]:
    """Return the canonical questions recorded for ``version`` of a form.

    Falls back to the current schema when no snapshot exists for that
    version (e.g. imported forms with pre-existing responses).
    """
    with get_engine().connect() as conn:
        row = conn.execute(
            sql_text("SELECT questions FROM form_versions WHERE form_id = :fid AND version = :v"),
            {"fid": form_id, "v": int(version)},
        ).fetchone()
        if row is not None:
            return load_questions(row[0])
        form = _fetch_form(conn, form_id)
    if form is None:
        raise NotFoundError("form", form_id)
    logger.info("form_schema_snapshot_missing form_id=%s version=%s", form_id, version)
    return list(form.questions)


def import_forms(forms: Iterable[Form]) -> List[Form]:
    """Bulk upsert forms as given, keeping their ids, versions and timestamps."""
    imported: List[Form] = []
    now = utc_now()
    with get_engine().begin() as conn:
        for form in forms:
            item = form.model_copy(
                update={
                    "id": form.id or str(uuid.uuid4()),
                    "created_at": form.created_at or now,
                    "updated_at": form.updated_at or now,
                }
            )
            params = {
                "id": item.id,
                "name": item.name,
                "description": item.description,
                "questions": dump_questions(item.questions),
                "created_by": item.created_by,
                "created_at": format_ts(item.created_at),
                "updated_at": format_ts(item.updated_at),
                "version": item.version,
            }
            if _fetch_form(conn, str(item.id)) is None:
                conn.execute(
                    sql_text(
                        """
                        INSERT INTO forms (id, name, description, questions, created_by, created_at, updated_at, version)
                        VALUES (:id, :name, :description, :questions, :created_by, :created_at, :updated_at, :version)
                        """
                    ),
                    params,
                )
            else:
                conn.execute(
                    sql_text(
                        """
                        UPDATE forms
                        SET name = :name, description = :description, questions = :questions,
                            created_by = :created_by, created_at = :created_at,
                            updated_at = :updated_at, version = :version
                        WHERE id = :id
                        """
                    ),
                    params,
                )
            _snapshot(conn, item)
            imported.append(item)
    logger.info("forms_imported count=%s", len(imported))
    return imported


__all__ = [
    "utc_now",
    "format_ts",
    "parse_ts",
    "dump_questions",
    "load_questions",
    "list_forms",
    "load_form",
    "save_form",
    "delete_form",
    "load_form_schema",
    "import_forms",
]
