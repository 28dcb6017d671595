"""Visibility evaluation for conditional questions.

Centralizes the liveness rules shared by answer entry, submission and
export so the three never drift:

- a root question is always live;
- a conditional child is live only when its parent is live and the parent's
  current value selects the child's ``parent_option_id`` (equality for
  select, membership for multiselect);
- any other parent type, a missing parent or an ancestor loop yields
  "not live" rather than an exception.

Every function takes the full answer context explicitly; nothing here
mutates its inputs.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from formbuilder.models.question import Question, QuestionType


def is_option_selected(parent: Question, value: Any, option_id: Optional[str]) -> bool:
    """Return True if ``value`` (the parent's answer) selects ``option_id``."""
    if option_id is None or value is None:
        return False
    if parent.type == QuestionType.SELECT:
        return isinstance(value, str) and value == option_id
    if parent.type == QuestionType.MULTISELECT:
        return isinstance(value, (list, tuple)) and option_id in value
    return False


def compute_live_set(questions: Iterable[Question], answers: Mapping[str, Any]) -> Set[str]:
    """Compute the ids of questions whose conditional ancestry is satisfied.

    Order-independent: each question's ancestor chain is resolved through an
    id index and memoised.
    """
    by_id: Dict[str, Question] = {}
    for q in questions:
        by_id.setdefault(q.id, q)
    memo: Dict[str, bool] = {}

    def _is_live(qid: str, path: Set[str]) -> bool:
        if qid in memo:
            return memo[qid]
        q = by_id.get(qid)
        if q is None or qid in path:
            return False
        if q.parent_id is None:
            result = True
        else:
            parent = by_id.get(q.parent_id)
            result = (
                parent is not None
                and _is_live(parent.id, path | {qid})
                and is_option_selected(parent, answers.get(parent.id), q.parent_option_id)
            )
        memo[qid] = result
        return result

    return {qid for qid in by_id if _is_live(qid, set())}


def filter_live_questions(questions: Iterable[Question], answers: Mapping[str, Any]) -> List[Question]:
    """Return the live questions, preserving the given (canonical) order."""
    items = list(questions)
    live = compute_live_set(items, answers)
    return [q for q in items if q.id in live]


def visible_answers(questions: Iterable[Question], answers: Mapping[str, Any]) -> Dict[str, Any]:
    """Read-side view: recorded values of live questions, verbatim.

    Used for display and export of historic responses. Values of questions
    that are not live are omitted from the view but never altered.
    """
    items = list(questions)
    live = compute_live_set(items, answers)
    return {q.id: answers[q.id] for q in items if q.id in live and q.id in answers}


__all__ = [
    "is_option_selected",
    "compute_live_set",
    "filter_live_questions",
    "visible_answers",
]
