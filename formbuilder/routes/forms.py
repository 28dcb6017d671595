"""Form authoring and answer-entry endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from formbuilder.guards.identity import get_identity, require_admin
from formbuilder.http.uploads import read_csv_upload
from formbuilder.logic import forms_write, repository_forms
from formbuilder.logic.answer_session import apply_answer
from formbuilder.logic.csv_io import parse_form_csv
from formbuilder.logic.errors import ValidationError, field_error
from formbuilder.logic.events import FORM_SAVED, publish
from formbuilder.logic.linearizer import order_canonically
from formbuilder.logic.visibility_rules import compute_live_set
from formbuilder.models.form import Form, FormDraft, FormSummary
from formbuilder.models.identity import Identity
from formbuilder.models.response import AnswerChange, AnswerContext, AnswerUpdateView, VisibilityView

router = APIRouter()
logger = logging.getLogger(__name__)

_FORM_LIST = TypeAdapter(List[Form])


def form_body(form: Form) -> Dict[str, Any]:
    return form.model_dump(by_alias=True, mode="json", exclude_none=True)


@router.get("/forms", summary="List forms, most recently updated first", operation_id="listForms", tags=["Forms"])
def list_forms(identity: Identity = Depends(get_identity)):
    forms = repository_forms.list_forms()
    return [
        FormSummary(
            id=str(f.id), name=f.name, description=f.description, updated_at=f.updated_at, version=f.version
        ).model_dump(by_alias=True, mode="json")
        for f in forms
    ]


@router.post(
    "/forms",
    status_code=201,
    summary="Create a form from an authoring draft",
    operation_id="createForm",
    tags=["Forms"],
)
def create_form(draft: FormDraft, identity: Identity = Depends(require_admin)):
    form = forms_write.create_form(draft, identity)
    return form_body(form)


def _import_json(data: bytes) -> List[Form]:
    try:
        forms = _FORM_LIST.validate_json(data or b"[]")
    except PydanticValidationError as exc:
        raise ValidationError(
            [
                field_error(
                    "forms" + "".join(f"[{p}]" if isinstance(p, int) else f".{p}" for p in err.get("loc", ())),
                    str(err.get("type")),
                    str(err.get("msg")),
                )
                for err in exc.errors()
            ],
            "invalid form import",
        ) from exc
    # Imported trees keep their ids but are stored in canonical order
    return [form.model_copy(update={"questions": order_canonically(form.questions)}) for form in forms]


@router.post(
    "/forms/import",
    summary="Bulk import forms (JSON list) or one form from a CSV template",
    operation_id="importForms",
    tags=["Forms", "Import"],
)
async def import_forms(
    request: Request,
    name: Optional[str] = None,
    file: UploadFile | None = File(None),
    identity: Identity = Depends(require_admin),
):
    content_type = (request.headers.get("content-type") or "").split(";", 1)[0].strip().lower()
    if file is not None or content_type in ("text/csv", "text/plain"):
        data = await read_csv_upload(request, file)
        draft = FormDraft(name=name or "Imported form", questions=parse_form_csv(data))
        form = forms_write.create_form(draft, identity)
        return [form_body(form)]
    forms = _import_json(await request.body())
    imported = repository_forms.import_forms(forms)
    for form in imported:
        publish(FORM_SAVED, {"form_id": form.id, "version": form.version, "user_id": identity.user_id})
    return [form_body(f) for f in imported]


@router.get("/forms/{form_id}", summary="Get a form", operation_id="getForm", tags=["Forms"])
def get_form(form_id: str, identity: Identity = Depends(get_identity)):
    return form_body(repository_forms.load_form(form_id))


@router.put(
    "/forms/{form_id}",
    summary="Re-save the whole question tree; bumps the version",
    operation_id="updateForm",
    tags=["Forms"],
)
def update_form(form_id: str, draft: FormDraft, identity: Identity = Depends(require_admin)):
    return form_body(forms_write.update_form(form_id, draft, identity))


@router.delete(
    "/forms/{form_id}",
    status_code=204,
    summary="Delete a form with its responses",
    operation_id="deleteForm",
    tags=["Forms"],
)
def delete_form(form_id: str, identity: Identity = Depends(require_admin)):
    forms_write.delete_form(form_id, identity)
    return Response(status_code=204)


@router.post(
    "/forms/{form_id}/visibility",
    summary="Evaluate which questions are live for an answer map",
    operation_id="evaluateVisibility",
    tags=["Answers"],
)
def evaluate_visibility(form_id: str, context: AnswerContext, identity: Identity = Depends(get_identity)):
    form = repository_forms.load_form(form_id)
    live = compute_live_set(form.questions, context.answers)
    view = VisibilityView(
        live=[q.id for q in form.questions if q.id in live],
        hidden=[q.id for q in form.questions if q.id not in live],
    )
    return view.model_dump(by_alias=True)


@router.post(
    "/forms/{form_id}/answers/apply",
    summary="Apply one interactive answer change and prune hidden answers",
    operation_id="applyAnswer",
    tags=["Answers"],
)
def apply_answer_change(form_id: str, change: AnswerChange, identity: Identity = Depends(get_identity)):
    form = repository_forms.load_form(form_id)
    update = apply_answer(form.questions, change.answers, change.question_id, change.value)
    if update.discarded:
        logger.info("answers_discarded form_id=%s question_ids=%s", form_id, update.discarded)
    view = AnswerUpdateView(
        answers=update.answers,
        live=update.live,
        now_visible=update.now_visible,
        now_hidden=update.now_hidden,
        discarded=update.discarded,
    )
    return view.model_dump(by_alias=True, mode="json")


__all__ = ["router", "form_body"]
