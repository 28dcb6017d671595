"""Interactive answer entry: apply one edit and compute the visibility delta.

When a parent's new value hides a previously live child, the child's stored
value is discarded so that re-selecting the unlocking option later starts
the child blank. This applies to live entry only; reading a recorded
response goes through ``visibility_rules.visible_answers`` and never
discards anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from formbuilder.logic.errors import NotFoundError
from formbuilder.logic.visibility_rules import compute_live_set
from formbuilder.models.question import Question


@dataclass(frozen=True)
class AnswerUpdate:
    answers: Dict[str, Any]
    live: List[str]
    now_visible: List[str]
    now_hidden: List[str]
    discarded: List[str]


def compute_visibility_delta(
    ordered_ids: Iterable[str],
    pre_visible: Iterable[str],
    post_visible: Iterable[str],
) -> Tuple[List[str], List[str]]:
    """Return (now_visible, now_hidden), both in the given question order."""
    pre_set = set(pre_visible)
    post_set = set(post_visible)
    order = list(ordered_ids)
    now_visible = [qid for qid in order if qid in post_set and qid not in pre_set]
    now_hidden = [qid for qid in order if qid in pre_set and qid not in post_set]
    return now_visible, now_hidden


def apply_answer(
    questions: Iterable[Question],
    answers: Mapping[str, Any],
    question_id: str,
    value: Any,
) -> AnswerUpdate:
    """Set (or clear, when ``value`` is None) one answer and prune hidden ones.

    Returns a new answer map; ``answers`` is left untouched. Raises
    NotFoundError for an unknown ``question_id``.
    """
    items = list(questions)
    ids = [q.id for q in items]
    if question_id not in ids:
        raise NotFoundError("question", question_id)

    pre_live = compute_live_set(items, answers)
    updated: Dict[str, Any] = dict(answers)
    if value is None:
        updated.pop(question_id, None)
    else:
        updated[question_id] = value

    post_live = compute_live_set(items, updated)
    now_visible, now_hidden = compute_visibility_delta(ids, pre_live, post_live)

    discarded: List[str] = []
    for qid in now_hidden:
        if qid in updated:
            del updated[qid]
            discarded.append(qid)

    return AnswerUpdate(
        answers=updated,
        live=[qid for qid in ids if qid in post_live],
        now_visible=now_visible,
        now_hidden=now_hidden,
        discarded=discarded,
    )


__all__ = ["AnswerUpdate", "compute_visibility_delta", "apply_answer"]
