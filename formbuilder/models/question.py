"""Question and Option models: the nodes and keyed edges of a form tree.

A form is stored as a flat list of questions. A conditional child carries a
``parent_id``/``parent_option_id`` pair naming the option of its parent that
unlocks it. Nested input (``Option.sub_questions``) is accepted on ingestion
only and flattened by :func:`flatten_questions`.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from formbuilder.logic.errors import NotFoundError, ValidationError, field_error


class QuestionType:
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    MULTISELECT = "multiselect"
    DATE = "date"
    BOOLEAN = "boolean"

    ALL = (TEXT, NUMBER, SELECT, MULTISELECT, DATE, BOOLEAN)
    WITH_OPTIONS = (SELECT, MULTISELECT)


QuestionTypeName = Literal["text", "number", "select", "multiselect", "date", "boolean"]

CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _new_id() -> str:
    return str(uuid.uuid4())


def accepts_options(question_type: str) -> bool:
    """Return True if answers to this type are option ids."""
    return question_type in QuestionType.WITH_OPTIONS


class Option(BaseModel):
    model_config = CAMEL_CONFIG

    id: str = Field(default_factory=_new_id, min_length=1)
    text: str = ""
    # Nested input only; stripped by flatten_questions and never persisted
    sub_questions: Optional[List["Question"]] = Field(default=None, exclude=True)


class Question(BaseModel):
    model_config = CAMEL_CONFIG

    id: str = Field(default_factory=_new_id, min_length=1)
    text: str = ""
    type: QuestionTypeName
    required: bool = False
    options: Optional[List[Option]] = None
    parent_id: Optional[str] = None
    parent_option_id: Optional[str] = None
    include_in_export: bool = True
    export_field_name: Optional[str] = None

    @field_validator("parent_id", "parent_option_id", "export_field_name", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _check_linkage(self) -> "Question":
        if (self.parent_id is None) != (self.parent_option_id is None):
            raise ValueError("parentId and parentOptionId must be set together")
        if accepts_options(self.type):
            if self.options is None:
                self.options = []
            seen: set[str] = set()
            for opt in self.options:
                if opt.id in seen:
                    raise ValueError(f"duplicate option id: {opt.id}")
                seen.add(opt.id)
        elif self.options:
            raise ValueError("options are only allowed on select and multiselect questions")
        else:
            self.options = None
        return self

    def option_ids(self) -> List[str]:
        return [o.id for o in self.options or []]

    def option_by_id(self, option_id: str) -> Optional[Option]:
        for opt in self.options or []:
            if opt.id == option_id:
                return opt
        return None


Option.model_rebuild()


def is_conditional_child(question: Question) -> bool:
    return question.parent_id is not None and question.parent_option_id is not None


def _loc_to_path(prefix: str, loc: Iterable[Any]) -> str:
    path = prefix
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def questions_from_payload(items: Iterable[Dict[str, Any]], prefix: str = "questions") -> List[Question]:
    """Build Questions from raw dicts, reporting every malformed entry at once.

    Raises ValidationError with fields like ``questions[2].parentOptionId``.
    """
    questions: List[Question] = []
    errors: List[Dict[str, Any]] = []
    for idx, raw in enumerate(items):
        try:
            questions.append(Question.model_validate(raw))
        except PydanticValidationError as exc:
            for err in exc.errors():
                errors.append(
                    field_error(
                        _loc_to_path(f"{prefix}[{idx}]", err.get("loc", ())),
                        str(err.get("type", "invalid")),
                        str(err.get("msg", "invalid value")),
                    )
                )
    if errors:
        raise ValidationError(errors, "malformed questions")
    return questions


def flatten_questions(questions: Iterable[Question]) -> List[Question]:
    """Flatten option-nested sub-questions into the keyed-parent list.

    Each nested question is emitted right after its parent (depth-first) with
    its parent pair pointing at the enclosing question and option.
    """
    flat: List[Question] = []

    def _emit(q: Question) -> None:
        nested: List[tuple[str, Question]] = []
        stripped_options = None
        if q.options is not None:
            stripped_options = []
            for opt in q.options:
                for sub in opt.sub_questions or []:
                    nested.append((opt.id, sub))
                stripped_options.append(opt.model_copy(update={"sub_questions": None}))
        flat.append(q.model_copy(update={"options": stripped_options}))
        for option_id, sub in nested:
            _emit(sub.model_copy(update={"parent_id": q.id, "parent_option_id": option_id}))

    for question in questions:
        _emit(question)
    return flat


def remove_question(questions: List[Question], question_id: str) -> List[Question]:
    """Return a working set without ``question_id`` and its conditional subtree."""
    if not any(q.id == question_id for q in questions):
        raise NotFoundError("question", question_id)
    doomed = {question_id}
    grew = True
    while grew:
        grew = False
        for q in questions:
            if q.parent_id in doomed and q.id not in doomed:
                doomed.add(q.id)
                grew = True
    return [q for q in questions if q.id not in doomed]


def move_question(questions: List[Question], question_id: str, offset: int) -> List[Question]:
    """Swap a question with the neighbour ``offset`` positions away.

    Moves past either end leave the working set unchanged.
    """
    ids = [q.id for q in questions]
    if question_id not in ids:
        raise NotFoundError("question", question_id)
    idx = ids.index(question_id)
    target = idx + offset
    moved = list(questions)
    if 0 <= target < len(moved):
        moved[idx], moved[target] = moved[target], moved[idx]
    return moved


__all__ = [
    "QuestionType",
    "QuestionTypeName",
    "Option",
    "Question",
    "CAMEL_CONFIG",
    "accepts_options",
    "is_conditional_child",
    "questions_from_payload",
    "flatten_questions",
    "remove_question",
    "move_question",
]
