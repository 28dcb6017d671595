"""Tree linearizer: canonical ordering and re-identification of questions.

Takes the author's working set (any order, author-assigned or temporary ids)
and produces the canonical sequence that is persisted as a form's
``questions`` payload:

- roots in their given order, each followed by the children unlocked by its
  first option, then by its second option, and so on (pre-order, grouped by
  option, depth-first);
- ids renumbered to fixed-width ordinals (``q0001``...) with every
  ``parent_id`` rewritten through the same mapping.

Blank-text questions are drafts and are left out together with their
conditional subtree. Every structural defect is collected and reported in a
single StructuralError; nothing is dropped silently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

from formbuilder.logic.errors import StructuralError, structural_problem
from formbuilder.models.question import Question, accepts_options, is_conditional_child

ID_PREFIX = "q"
MIN_ID_WIDTH = 4


@dataclass(frozen=True)
class Linearization:
    questions: List[Question]
    id_map: Dict[str, str] = field(default_factory=dict)


def canonical_id(ordinal: int, width: int = MIN_ID_WIDTH) -> str:
    return f"{ID_PREFIX}{ordinal:0{width}d}"


def _id_width(count: int) -> int:
    return max(MIN_ID_WIDTH, len(str(count)))


def drop_drafts(questions: Iterable[Question]) -> List[Question]:
    """Remove blank-text questions and every question conditional on them."""
    items = list(questions)
    dropped: Set[str] = {q.id for q in items if not q.text.strip()}
    grew = bool(dropped)
    while grew:
        grew = False
        for q in items:
            if q.parent_id in dropped and q.id not in dropped:
                dropped.add(q.id)
                grew = True
    return [q for q in items if q.id not in dropped]


def _check_structure(questions: List[Question]) -> List[dict]:
    problems: List[dict] = []
    by_id: Dict[str, Question] = {}
    for q in questions:
        if q.id in by_id:
            problems.append(structural_problem(q.id, "duplicate_id", "question id appears more than once"))
        by_id.setdefault(q.id, q)

    for q in questions:
        if accepts_options(q.type) and not q.options:
            problems.append(structural_problem(q.id, "no_options", f"{q.type} question has no options"))
        if not is_conditional_child(q):
            continue
        if q.parent_id == q.id:
            problems.append(structural_problem(q.id, "cycle", "question is its own parent"))
            continue
        parent = by_id.get(str(q.parent_id))
        if parent is None:
            problems.append(
                structural_problem(q.id, "dangling_parent", f"parent {q.parent_id} does not exist")
            )
        elif not accepts_options(parent.type):
            problems.append(
                structural_problem(
                    q.id,
                    "parent_not_selectable",
                    f"parent {parent.id} is a {parent.type} question and cannot unlock children",
                )
            )
        elif q.parent_option_id not in parent.option_ids():
            problems.append(
                structural_problem(
                    q.id,
                    "unknown_parent_option",
                    f"option {q.parent_option_id} does not exist on parent {parent.id}",
                )
            )
    return problems


def order_questions(questions: List[Question]) -> List[Question]:
    """Return questions in canonical pre-order, grouped by unlocking option.

    Assumes the structure has been checked. Raises StructuralError for the
    questions unreachable from any root, which can only happen through a
    parent cycle.
    """
    roots: List[Question] = []
    children: Dict[Tuple[str, str], List[Question]] = {}
    for q in questions:
        if is_conditional_child(q):
            children.setdefault((str(q.parent_id), str(q.parent_option_id)), []).append(q)
        else:
            roots.append(q)

    ordered: List[Question] = []
    visited: Set[str] = set()

    def _walk(node: Question) -> None:
        visited.add(node.id)
        ordered.append(node)
        for option in node.options or []:
            for child in children.get((node.id, option.id), []):
                if child.id not in visited:
                    _walk(child)

    for root in roots:
        _walk(root)

    unreached = [q for q in questions if q.id not in visited]
    if unreached:
        raise StructuralError(
            [
                structural_problem(q.id, "cycle", "question is part of a parent cycle")
                for q in unreached
            ]
        )
    return ordered


def renumber(ordered: List[Question]) -> Linearization:
    width = _id_width(len(ordered))
    id_map = {q.id: canonical_id(i, width) for i, q in enumerate(ordered, start=1)}
    renumbered = [
        q.model_copy(
            update={
                "id": id_map[q.id],
                "parent_id": id_map[q.parent_id] if q.parent_id is not None else None,
            }
        )
        for q in ordered
    ]
    return Linearization(questions=renumbered, id_map=id_map)


def linearize(questions: Iterable[Question]) -> Linearization:
    """Linearize a working set into the canonical persisted sequence.

    Raises StructuralError listing every defect (duplicate ids, dangling or
    non-selectable parents, unknown parent options, option questions without
    options, cycles).
    """
    return renumber(order_canonically(questions))


def order_canonically(questions: Iterable[Question]) -> List[Question]:
    """Drop drafts, check structure and order, keeping the given ids."""
    working = drop_drafts(questions)
    problems = _check_structure(working)
    if problems:
        raise StructuralError(problems)
    return order_questions(working)


__all__ = [
    "Linearization",
    "ID_PREFIX",
    "canonical_id",
    "drop_drafts",
    "order_questions",
    "order_canonically",
    "renumber",
    "linearize",
]
