"""Response data access helpers.

Responses are write-once: there is no update path. Answer entries are stored
as a JSON text payload in the order the assembler produced them.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, List, Mapping

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbuilder.db.base import get_engine
from formbuilder.logic.errors import NotFoundError
from formbuilder.logic.repository_forms import format_ts, parse_ts
from formbuilder.models.response import FormResponse, QuestionResponse

logger = logging.getLogger(__name__)

_SELECT_RESPONSE = (
    "SELECT id, form_id, form_version, responses, user_id, created_at, updated_offline FROM responses"
)


def _row_to_response(row: Mapping[str, Any]) -> FormResponse:
    return FormResponse(
        id=str(row["id"]),
        form_id=str(row["form_id"]),
        form_version=int(row["form_version"]),
        responses=[QuestionResponse.model_validate(item) for item in json.loads(row["responses"] or "[]")],
        user_id=row["user_id"],
        created_at=parse_ts(row["created_at"]),
        updated_offline=bool(row["updated_offline"]),
    )


def _params(response: FormResponse) -> dict:
    return {
        "id": response.id,
        "form_id": response.form_id,
        "form_version": response.form_version,
        "responses": json.dumps(
            [r.model_dump(by_alias=True, mode="json") for r in response.responses], ensure_ascii=False
        ),
        "user_id": response.user_id,
        "created_at": format_ts(response.created_at),
        "updated_offline": bool(response.updated_offline),
    }


def _require_form(conn: Connection, form_id: str) -> None:
    row = conn.execute(sql_text("SELECT 1 FROM forms WHERE id = :id"), {"id": form_id}).fetchone()
    if row is None:
        raise NotFoundError("form", form_id)


_INSERT_RESPONSE = """
    INSERT INTO responses (id, form_id, form_version, responses, user_id, created_at, updated_offline)
    VALUES (:id, :form_id, :form_version, :responses, :user_id, :created_at, :updated_offline)
"""


def save_response(response: FormResponse) -> FormResponse:
    with get_engine().begin() as conn:
        _require_form(conn, response.form_id)
        conn.execute(sql_text(_INSERT_RESPONSE), _params(response))
    logger.info(
        "response_saved response_id=%s form_id=%s form_version=%s answers=%s",
        response.id,
        response.form_id,
        response.form_version,
        len(response.responses),
    )
    return response


def load_response(response_id: str) -> FormResponse:
    with get_engine().connect() as conn:
        row = conn.execute(
            sql_text(f"{_SELECT_RESPONSE} WHERE id = :id"), {"id": response_id}
        ).mappings().fetchone()
    if row is None:
        raise NotFoundError("response", response_id)
    return _row_to_response(row)


def list_responses(form_id: str) -> List[FormResponse]:
    """Return a form's responses, newest first."""
    with get_engine().connect() as conn:
        _require_form(conn, form_id)
        rows = conn.execute(
            sql_text(f"{_SELECT_RESPONSE} WHERE form_id = :fid ORDER BY created_at DESC, id ASC"),
            {"fid": form_id},
        ).mappings().all()
    return [_row_to_response(r) for r in rows]


def delete_response(response_id: str) -> None:
    with get_engine().begin() as conn:
        result = conn.execute(sql_text("DELETE FROM responses WHERE id = :id"), {"id": response_id})
        if not result.rowcount:
            raise NotFoundError("response", response_id)
    logger.info("response_deleted response_id=%s", response_id)


def import_responses(responses: Iterable[FormResponse]) -> List[FormResponse]:
    """Bulk insert responses; an existing id is replaced by the imported record."""
    imported: List[FormResponse] = []
    with get_engine().begin() as conn:
        for response in responses:
            _require_form(conn, response.form_id)
            conn.execute(sql_text("DELETE FROM responses WHERE id = :id"), {"id": response.id})
            conn.execute(sql_text(_INSERT_RESPONSE), _params(response))
            imported.append(response)
    logger.info("responses_imported count=%s", len(imported))
    return imported


__all__ = [
    "save_response",
    "load_response",
    "list_responses",
    "delete_response",
    "import_responses",
]
