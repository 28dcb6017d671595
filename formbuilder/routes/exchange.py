"""CSV import/export endpoints for offline completion and analysis."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile

from formbuilder.guards.identity import get_identity
from formbuilder.http.uploads import read_csv_upload
from formbuilder.logic import repository_forms, repository_responses
from formbuilder.logic.csv_io import (
    build_responses_csv,
    build_template_csv,
    is_template_csv,
    parse_responses_csv,
    parse_template_csv,
)
from formbuilder.logic.errors import ValidationError
from formbuilder.logic.events import RESPONSE_SAVED, publish
from formbuilder.logic.response_assembler import assemble_response
from formbuilder.models.identity import Identity
from formbuilder.models.question import Question
from formbuilder.models.response import FormResponse

router = APIRouter()
logger = logging.getLogger(__name__)

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def _csv_response(data: bytes, filename: str) -> Response:
    resp = Response(content=data, media_type=CSV_MEDIA_TYPE)
    resp.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return resp


@router.post(
    "/forms/{form_id}/responses/import",
    status_code=201,
    summary="Import responses from a filled template or a responses export",
    operation_id="importResponsesCsv",
    tags=["Responses", "Import"],
)
async def import_responses_csv(
    form_id: str,
    request: Request,
    file: UploadFile | None = File(None),
    identity: Identity = Depends(get_identity),
):
    form = repository_forms.load_form(form_id)
    data = await read_csv_upload(request, file)
    if is_template_csv(data):
        answer_maps = [parse_template_csv(data, form.questions)]
    else:
        answer_maps = parse_responses_csv(form.questions, data)

    assembled: List[FormResponse] = []
    errors: List[Dict[str, Any]] = []
    for index, answers in enumerate(answer_maps):
        try:
            assembled.append(assemble_response(form, answers, identity, updated_offline=True))
        except ValidationError as exc:
            errors.extend({**e, "field": f"rows[{index}].{e['field']}"} for e in exc.errors)
    if errors:
        raise ValidationError(errors, "imported responses have invalid answers")

    imported = repository_responses.import_responses(assembled)
    for response in imported:
        publish(
            RESPONSE_SAVED,
            {
                "response_id": response.id,
                "form_id": form_id,
                "form_version": response.form_version,
                "user_id": identity.user_id,
            },
        )
    logger.info("responses_csv_imported form_id=%s count=%s", form_id, len(imported))
    return {"imported": len(imported), "responseIds": [r.id for r in imported]}


@router.get(
    "/forms/{form_id}/export/template.csv",
    summary="Export a blank answer template",
    operation_id="exportTemplateCsv",
    tags=["Export"],
)
def export_template_csv(form_id: str, identity: Identity = Depends(get_identity)):
    form = repository_forms.load_form(form_id)
    return _csv_response(build_template_csv(form.questions), f"{form_id}-template.csv")


@router.get(
    "/forms/{form_id}/export/responses.csv",
    summary="Export responses under a version's columns (default: current, older answers carried across)",
    operation_id="exportResponsesCsv",
    tags=["Export"],
)
def export_responses_csv(form_id: str, version: Optional[int] = None, identity: Identity = Depends(get_identity)):
    form = repository_forms.load_form(form_id)
    responses = repository_responses.list_responses(form_id)
    snapshots: Dict[int, List[Question]] = {}
    if version is None:
        questions = form.questions
        for recorded in sorted({r.form_version for r in responses} - {form.version}):
            snapshots[recorded] = repository_forms.load_form_schema(form_id, recorded)
    else:
        questions = repository_forms.load_form_schema(form_id, version)
        responses = [r for r in responses if r.form_version == version]
    logger.info(
        "responses_csv_exported form_id=%s version=%s rows=%s older_versions=%s",
        form_id,
        version,
        len(responses),
        sorted(snapshots),
    )
    return _csv_response(build_responses_csv(questions, responses, snapshots), f"{form_id}-responses.csv")


__all__ = ["router"]
