"""Form write flows: authoring draft -> canonical schema -> storage.

Keeps route handlers free of tree handling. A StructuralError from the
linearizer aborts the save before storage is touched, so the previously
persisted form stays as it was.
"""

from __future__ import annotations

from typing import Optional

from formbuilder.logic import repository_forms
from formbuilder.logic.events import FORM_DELETED, FORM_SAVED, publish
from formbuilder.logic.linearizer import linearize
from formbuilder.models.form import Form, FormDraft
from formbuilder.models.identity import Identity
from formbuilder.models.question import flatten_questions


def build_form(draft: FormDraft, form_id: Optional[str] = None, created_by: Optional[str] = None) -> Form:
    """Flatten and linearize a draft into an unsaved canonical Form."""
    linearized = linearize(flatten_questions(draft.questions))
    return Form(
        id=form_id,
        name=draft.name,
        description=draft.description,
        questions=linearized.questions,
        created_by=created_by,
    )


def create_form(draft: FormDraft, identity: Identity) -> Form:
    saved = repository_forms.save_form(build_form(draft, created_by=identity.user_id))
    publish(FORM_SAVED, {"form_id": saved.id, "version": saved.version, "user_id": identity.user_id})
    return saved


def update_form(form_id: str, draft: FormDraft, identity: Identity) -> Form:
    """Whole-tree re-save of an existing form; bumps its version."""
    repository_forms.load_form(form_id)
    saved = repository_forms.save_form(build_form(draft, form_id=form_id))
    publish(FORM_SAVED, {"form_id": saved.id, "version": saved.version, "user_id": identity.user_id})
    return saved


def delete_form(form_id: str, identity: Identity) -> None:
    repository_forms.delete_form(form_id)
    publish(FORM_DELETED, {"form_id": form_id, "user_id": identity.user_id})


__all__ = ["build_form", "create_form", "update_form", "delete_form"]
