"""Pydantic models for forms and authoring drafts."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from formbuilder.models.question import CAMEL_CONFIG, Question


class FormDraft(BaseModel):
    """Authoring payload: a possibly unordered, possibly nested working set."""

    model_config = CAMEL_CONFIG

    name: str
    description: str = ""
    questions: List[Question] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def name_must_be_non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("form name is required")
        return v.strip()


class Form(BaseModel):
    model_config = CAMEL_CONFIG

    id: Optional[str] = None
    name: str
    description: str = ""
    questions: List[Question] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = Field(default=1, ge=1)
    created_by: Optional[str] = None


class FormSummary(BaseModel):
    model_config = CAMEL_CONFIG

    id: str
    name: str
    description: str = ""
    updated_at: Optional[datetime] = None
    version: int


__all__ = ["FormDraft", "Form", "FormSummary"]
