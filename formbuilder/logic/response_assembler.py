"""Response assembler: live answer state -> immutable FormResponse.

Validation runs over the live set only, so a required child hidden by its
parent's answer never blocks submission, and stray values of hidden
questions are dropped from the record. All violations are reported in one
ValidationError; nothing reaches storage unless the whole submission is
valid.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from formbuilder.logic.errors import ValidationError, field_error
from formbuilder.logic.visibility_rules import filter_live_questions
from formbuilder.models.form import Form
from formbuilder.models.identity import Identity
from formbuilder.models.question import Question, QuestionType
from formbuilder.models.response import FormResponse, QuestionResponse


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def check_value_shape(question: Question, value: Any) -> Optional[str]:
    """Return an error message if ``value`` does not fit the question type."""
    qtype = question.type
    if qtype == QuestionType.TEXT:
        return None if isinstance(value, str) else "expected a string"
    if qtype == QuestionType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return "expected a number"
        return None
    if qtype == QuestionType.BOOLEAN:
        return None if isinstance(value, bool) else "expected a boolean"
    if qtype == QuestionType.DATE:
        if not isinstance(value, str) or not _is_iso_date(value):
            return "expected a date in YYYY-MM-DD format"
        return None
    if qtype == QuestionType.SELECT:
        if not isinstance(value, str):
            return "expected a single option id"
        if value not in question.option_ids():
            return f"unknown option: {value}"
        return None
    if qtype == QuestionType.MULTISELECT:
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            return "expected a list of option ids"
        unknown = [v for v in value if v not in question.option_ids()]
        if unknown:
            return f"unknown options: {', '.join(unknown)}"
        return None
    return f"unsupported question type: {qtype}"


def validate_answers(live_questions: List[Question], answers: Mapping[str, Any]) -> None:
    """Raise ValidationError naming every live question with a bad answer."""
    errors: List[Dict[str, Any]] = []
    for q in live_questions:
        value = answers.get(q.id)
        if is_empty_value(value):
            if q.required:
                message = (
                    "select at least one option"
                    if q.type == QuestionType.MULTISELECT
                    else "this field is required"
                )
                errors.append(field_error(q.id, "required", message))
            continue
        problem = check_value_shape(q, value)
        if problem:
            errors.append(field_error(q.id, "type_mismatch", problem))
    if errors:
        raise ValidationError(errors, "response has invalid answers")


def assemble_response(
    form: Form,
    answers: Mapping[str, Any],
    identity: Optional[Identity] = None,
    *,
    updated_offline: bool = False,
    now: Optional[datetime] = None,
) -> FormResponse:
    """Validate ``answers`` against the live set and build the response record."""
    live_questions = filter_live_questions(form.questions, answers)
    validate_answers(live_questions, answers)
    entries = [
        QuestionResponse(question_id=q.id, value=answers[q.id])
        for q in live_questions
        if not is_empty_value(answers.get(q.id))
    ]
    return FormResponse(
        id=str(uuid.uuid4()),
        form_id=str(form.id),
        form_version=form.version,
        responses=entries,
        created_at=now or datetime.now(timezone.utc),
        updated_offline=updated_offline,
        user_id=identity.user_id if identity is not None else None,
    )


def submit_response(
    form: Form,
    answers: Mapping[str, Any],
    identity: Optional[Identity],
    save: Callable[[FormResponse], FormResponse],
    *,
    updated_offline: bool = False,
) -> FormResponse:
    """Assemble a response and hand it to the storage collaborator.

    Errors raised by ``save`` propagate unchanged.
    """
    response = assemble_response(form, answers, identity, updated_offline=updated_offline)
    return save(response)


__all__ = [
    "is_empty_value",
    "check_value_shape",
    "validate_answers",
    "assemble_response",
    "submit_response",
]
