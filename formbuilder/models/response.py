"""Pydantic models for submitted responses and answer-entry payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from formbuilder.models.question import CAMEL_CONFIG

AnswerValue = Union[bool, int, float, str, List[str], None]


class QuestionResponse(BaseModel):
    model_config = CAMEL_CONFIG

    question_id: str
    value: AnswerValue = None


class FormResponse(BaseModel):
    """One immutable submission bound to the form version it was made against."""

    model_config = CAMEL_CONFIG

    id: str
    form_id: str
    form_version: int
    responses: List[QuestionResponse] = Field(default_factory=list)
    created_at: datetime
    updated_offline: bool = False
    user_id: Optional[str] = None

    def answer_map(self) -> Dict[str, Any]:
        return {r.question_id: r.value for r in self.responses}


class SubmissionPayload(BaseModel):
    model_config = CAMEL_CONFIG

    answers: Dict[str, AnswerValue] = Field(default_factory=dict)
    updated_offline: bool = False


class AnswerContext(BaseModel):
    """Full answer context for a read-side visibility evaluation."""

    model_config = CAMEL_CONFIG

    answers: Dict[str, AnswerValue] = Field(default_factory=dict)


class AnswerChange(BaseModel):
    """A single interactive edit applied on top of the current answers."""

    model_config = CAMEL_CONFIG

    answers: Dict[str, AnswerValue] = Field(default_factory=dict)
    question_id: str
    value: AnswerValue = None


class VisibilityView(BaseModel):
    model_config = CAMEL_CONFIG

    live: List[str]
    hidden: List[str]


class AnswerUpdateView(BaseModel):
    model_config = CAMEL_CONFIG

    answers: Dict[str, AnswerValue]
    live: List[str]
    now_visible: List[str]
    now_hidden: List[str]
    discarded: List[str]


class ResponseView(BaseModel):
    """Read-side rendering of a historic response: live answers, verbatim."""

    model_config = CAMEL_CONFIG

    response: FormResponse
    schema_version: int
    visible: List[QuestionResponse]


__all__ = [
    "AnswerValue",
    "QuestionResponse",
    "FormResponse",
    "SubmissionPayload",
    "AnswerContext",
    "AnswerChange",
    "VisibilityView",
    "AnswerUpdateView",
    "ResponseView",
]
