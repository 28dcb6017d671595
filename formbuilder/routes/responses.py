"""Response submission and review endpoints.

Submission runs the assembler against the stored form, so visibility and
required rules are enforced server-side. Viewing a historic response
interprets it against the schema snapshot of the version it was recorded
with and shows the live answers verbatim.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from formbuilder.guards.identity import get_identity, require_admin
from formbuilder.logic import repository_forms, repository_responses
from formbuilder.logic.events import RESPONSE_DELETED, RESPONSE_SAVED, publish
from formbuilder.logic.response_assembler import submit_response
from formbuilder.logic.visibility_rules import visible_answers
from formbuilder.models.identity import Identity
from formbuilder.models.response import FormResponse, QuestionResponse, ResponseView, SubmissionPayload

router = APIRouter()
logger = logging.getLogger(__name__)


def response_body(response: FormResponse) -> dict:
    return response.model_dump(by_alias=True, mode="json")


@router.post(
    "/forms/{form_id}/responses",
    status_code=201,
    summary="Submit a response against the current form version",
    operation_id="submitResponse",
    tags=["Responses"],
)
def create_response(form_id: str, payload: SubmissionPayload, identity: Identity = Depends(get_identity)):
    form = repository_forms.load_form(form_id)
    saved = submit_response(
        form,
        payload.answers,
        identity,
        repository_responses.save_response,
        updated_offline=payload.updated_offline,
    )
    publish(
        RESPONSE_SAVED,
        {"response_id": saved.id, "form_id": form_id, "form_version": saved.form_version, "user_id": identity.user_id},
    )
    return response_body(saved)


@router.get(
    "/forms/{form_id}/responses",
    summary="List a form's responses, newest first",
    operation_id="listResponses",
    tags=["Responses"],
)
def list_responses(form_id: str, identity: Identity = Depends(get_identity)):
    return [response_body(r) for r in repository_responses.list_responses(form_id)]


@router.get("/responses/{response_id}", summary="Get a raw response", operation_id="getResponse", tags=["Responses"])
def get_response(response_id: str, identity: Identity = Depends(get_identity)):
    return response_body(repository_responses.load_response(response_id))


@router.get(
    "/responses/{response_id}/view",
    summary="Get a response's live answers against its version's schema",
    operation_id="viewResponse",
    tags=["Responses"],
)
def view_response(response_id: str, identity: Identity = Depends(get_identity)):
    response = repository_responses.load_response(response_id)
    schema = repository_forms.load_form_schema(response.form_id, response.form_version)
    shown = visible_answers(schema, response.answer_map())
    view = ResponseView(
        response=response,
        schema_version=response.form_version,
        visible=[QuestionResponse(question_id=q.id, value=shown[q.id]) for q in schema if q.id in shown],
    )
    return view.model_dump(by_alias=True, mode="json")


@router.delete(
    "/responses/{response_id}",
    status_code=204,
    summary="Delete a response",
    operation_id="deleteResponse",
    tags=["Responses"],
)
def delete_response(response_id: str, identity: Identity = Depends(require_admin)):
    repository_responses.delete_response(response_id)
    publish(RESPONSE_DELETED, {"response_id": response_id, "user_id": identity.user_id})
    return Response(status_code=204)


__all__ = ["router", "response_body"]
