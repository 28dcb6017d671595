"""RFC4180 CSV import/export helpers (the spreadsheet codec).

Two layouts are produced and read back:

- the *template*: one row per question in canonical order, used to complete
  a form offline and to carry a form definition between systems;
- the *responses export*: one row per response, one column per exported
  question, used for analysis.

Cells are only populated for questions that are live for the answers in
that row, using the same evaluator as submission. Option lists and
multiselect answers are ``|``-separated; ``\\``, ``|`` and ``:`` inside ids
and texts are backslash-escaped.
"""

from __future__ import annotations

import csv
import io
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from formbuilder.logic.errors import ValidationError, field_error
from formbuilder.logic.visibility_rules import visible_answers
from formbuilder.models.question import Question, QuestionType, accepts_options
from formbuilder.models.response import FormResponse


TEMPLATE_HEADER = [
    "question_id",
    "parent_id",
    "parent_option_id",
    "question_text",
    "type",
    "required",
    "options",
    "include_in_export",
    "export_field_name",
    "answer",
]

# Older templates may omit these; they default to the model's values
OPTIONAL_TEMPLATE_COLUMNS = {"include_in_export", "export_field_name"}

RESPONSES_BASE_HEADER = [
    "response_id",
    "created_at",
    "form_version",
    "user_id",
    "updated_offline",
]

INDENT = "    "
_TRUE_TOKENS = {"true", "yes", "1", "si", "sí"}
_FALSE_TOKENS = {"false", "no", "0"}
_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


# -----
# Escaping helpers
# -----

def _escape(token: str) -> str:
    return token.replace("\\", "\\\\").replace("|", "\\|").replace(":", "\\:")


def _unescape(token: str) -> str:
    return re.sub(r"\\(.)", r"\1", token)


def _split_raw(text: str, sep: str, maxsplit: int = -1) -> List[str]:
    """Split on ``sep`` when not backslash-escaped; parts stay escaped."""
    parts: List[str] = []
    buf: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            buf.append(text[i:i + 2])
            i += 2
            continue
        if ch == sep and (maxsplit < 0 or len(parts) < maxsplit):
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    parts.append("".join(buf))
    return parts


def _split_escaped(text: str, sep: str) -> List[str]:
    return [_unescape(p) for p in _split_raw(text, sep)]


def format_options(question: Question) -> str:
    return "|".join(f"{_escape(o.id)}:{_escape(o.text)}" for o in question.options or [])


def parse_options(raw: str) -> List[Dict[str, str]]:
    options: List[Dict[str, str]] = []
    if not raw.strip():
        return options
    for part in _split_raw(raw.strip(), "|"):
        if not part:
            continue
        pieces = _split_raw(part, ":", maxsplit=1)
        opt_id = _unescape(pieces[0]).strip()
        opt_text = _unescape(pieces[1]) if len(pieces) > 1 else opt_id
        options.append({"id": opt_id, "text": opt_text})
    return options


# -----
# Value formatting and conversion
# -----

def format_answer(question: Question, value: Any) -> str:
    """Render a recorded value as a cell, using option texts for choices."""
    if value is None:
        return ""
    if question.type == QuestionType.SELECT:
        opt = question.option_by_id(str(value))
        return _escape(opt.text if opt else str(value))
    if question.type == QuestionType.MULTISELECT and isinstance(value, (list, tuple)):
        texts = []
        for item in value:
            opt = question.option_by_id(str(item))
            texts.append(_escape(opt.text if opt else str(item)))
        return "|".join(texts)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _match_option(options: Sequence[Tuple[str, str]], token: str) -> Optional[str]:
    """Resolve a cell token to an option id.

    Cells are written as option texts, so an exact text wins over an id,
    then ids, then texts compared case-insensitively.
    """
    for opt_id, text in options:
        if text == token:
            return opt_id
    for opt_id, _text in options:
        if opt_id == token:
            return opt_id
    lowered = token.strip().lower()
    for opt_id, text in options:
        if text.strip().lower() == lowered:
            return opt_id
    return None


def convert_cell(qtype: str, options: Sequence[Tuple[str, str]], raw: str) -> Any:
    """Convert a non-blank cell to the answer shape of ``qtype``.

    Raises ValueError with a human-readable message on bad input.
    """
    text = raw.strip()
    if qtype == QuestionType.TEXT:
        return raw
    if qtype == QuestionType.NUMBER:
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                raise ValueError(f"expected a number, got {raw!r}") from None
    if qtype == QuestionType.BOOLEAN:
        if text.lower() in _TRUE_TOKENS:
            return True
        if text.lower() in _FALSE_TOKENS:
            return False
        raise ValueError(f"expected true or false, got {raw!r}")
    if qtype == QuestionType.DATE:
        m = _DMY.match(text)
        try:
            if m:
                return date(int(m.group(3)), int(m.group(2)), int(m.group(1))).isoformat()
            return date.fromisoformat(text).isoformat()
        except ValueError:
            raise ValueError(f"expected a date (YYYY-MM-DD or DD/MM/YYYY), got {raw!r}") from None
    if qtype == QuestionType.SELECT:
        chosen = _match_option(options, _unescape(text))
        if chosen is None:
            raise ValueError(f"unknown option {raw!r}")
        return chosen
    if qtype == QuestionType.MULTISELECT:
        chosen_ids: List[str] = []
        for token in _split_escaped(text, "|"):
            if not token.strip():
                continue
            match = _match_option(options, token)
            if match is None:
                raise ValueError(f"unknown option {token!r}")
            chosen_ids.append(match)
        return chosen_ids
    raise ValueError(f"unsupported question type {qtype!r}")


def _option_pairs(question: Question) -> List[Tuple[str, str]]:
    return [(o.id, o.text) for o in question.options or []]


# -----
# Reading helpers
# -----

def _reader(data: bytes) -> csv.DictReader:
    try:
        text = (data or b"").decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError(
            [field_error("file", "invalid_encoding", f"file is not UTF-8 (byte {exc.start})")],
            "unreadable CSV upload",
        ) from exc
    return csv.DictReader(io.StringIO(text, newline=""))


def _depths(parents: Mapping[str, Optional[str]]) -> Dict[str, int]:
    depths: Dict[str, int] = {}
    for qid in parents:
        depth = 0
        seen = {qid}
        cur = parents.get(qid)
        while cur is not None and cur in parents and cur not in seen:
            depth += 1
            seen.add(cur)
            cur = parents.get(cur)
        depths[qid] = depth
    return depths


def is_template_csv(data: bytes) -> bool:
    reader = _reader(data)
    return list(reader.fieldnames or [])[:1] == ["question_id"]


# -----
# Template layout
# -----

def build_template_csv(questions: Iterable[Question], answers: Optional[Mapping[str, Any]] = None) -> bytes:
    """Export questions (canonical order) as a fillable template.

    When ``answers`` is given, the answer column is prefilled for live
    questions only.
    """
    items = list(questions)
    depths = _depths({q.id: q.parent_id for q in items})
    shown = visible_answers(items, answers or {})
    buf = io.StringIO(newline="")
    writer = csv.DictWriter(buf, fieldnames=TEMPLATE_HEADER)
    writer.writeheader()
    for q in items:
        writer.writerow(
            {
                "question_id": q.id,
                "parent_id": q.parent_id or "",
                "parent_option_id": q.parent_option_id or "",
                "question_text": INDENT * depths.get(q.id, 0) + q.text,
                "type": q.type,
                "required": "true" if q.required else "false",
                "options": format_options(q) if accepts_options(q.type) else "",
                "include_in_export": "true" if q.include_in_export else "false",
                "export_field_name": q.export_field_name or "",
                "answer": format_answer(q, shown[q.id]) if q.id in shown else "",
            }
        )
    return buf.getvalue().encode("utf-8")


def _template_rows(data: bytes) -> List[Tuple[int, Dict[str, str]]]:
    reader = _reader(data)
    missing = [
        col for col in TEMPLATE_HEADER if col not in (reader.fieldnames or []) and col not in OPTIONAL_TEMPLATE_COLUMNS
    ]
    if missing:
        raise ValidationError(
            [field_error("header", "missing_column", f"missing column: {col}") for col in missing],
            "not a form template",
        )
    return [(line, {k: (v or "") for k, v in row.items() if k}) for line, row in enumerate(reader, start=2)]


def parse_form_csv(data: bytes) -> List[Question]:
    """Rebuild the question set from an exported template (answers ignored)."""
    rows = _template_rows(data)
    parents = {r["question_id"].strip(): (r["parent_id"].strip() or None) for _line, r in rows}
    depths = _depths(parents)
    questions: List[Question] = []
    errors: List[Dict[str, Any]] = []
    for line, row in rows:
        qid = row["question_id"].strip()
        text = row["question_text"]
        indent = INDENT * depths.get(qid, 0)
        if text.startswith(indent):
            text = text[len(indent):]
        raw = {
            "id": qid,
            "text": text,
            "type": row["type"].strip(),
            "required": row["required"].strip().lower() in _TRUE_TOKENS,
            "options": parse_options(row["options"]) or None,
            "parentId": row["parent_id"].strip() or None,
            "parentOptionId": row["parent_option_id"].strip() or None,
        }
        include = row.get("include_in_export", "").strip().lower()
        if include:
            raw["includeInExport"] = include in _TRUE_TOKENS
        export_name = row.get("export_field_name", "").strip()
        if export_name:
            raw["exportFieldName"] = export_name
        try:
            questions.append(Question.model_validate(raw))
        except PydanticValidationError as exc:
            for err in exc.errors():
                loc = ".".join(str(p) for p in err.get("loc", ()))
                errors.append(
                    field_error(f"line {line}" + (f".{loc}" if loc else ""), str(err.get("type")), str(err.get("msg")))
                )
    if errors:
        raise ValidationError(errors, "invalid form template")
    return questions


def parse_template_csv(data: bytes, questions: Optional[Iterable[Question]] = None) -> Dict[str, Any]:
    """Read a filled template into an answer map keyed by question id.

    Conversion uses the type and options columns of each row. When
    ``questions`` is given, rows naming unknown question ids are rejected.
    Blank answers are omitted. Every bad row is reported at once.
    """
    known = {q.id: q for q in questions} if questions is not None else None
    answers: Dict[str, Any] = {}
    errors: List[Dict[str, Any]] = []
    for line, row in _template_rows(data):
        qid = row["question_id"].strip()
        raw = row["answer"]
        if known is not None and qid not in known:
            errors.append(field_error(f"line {line}", "unknown_question", f"unknown question id {qid!r}"))
            continue
        if not raw.strip():
            continue
        if known is not None:
            qtype, options = known[qid].type, _option_pairs(known[qid])
        else:
            qtype = row["type"].strip()
            options = [(o["id"], o["text"]) for o in parse_options(row["options"])]
        try:
            answers[qid] = convert_cell(qtype, options, raw)
        except ValueError as exc:
            errors.append(field_error(f"line {line}", "invalid_answer", str(exc)))
    if errors:
        raise ValidationError(errors, "invalid template answers")
    return answers


# -----
# Responses layout
# -----

def column_label(question: Question) -> str:
    return question.export_field_name or question.id


def pair_with_snapshot(questions: Iterable[Question], snapshot: Iterable[Question]) -> Dict[str, Question]:
    """Map current question ids to the snapshot question holding the same field.

    Ids are reassigned on every save, so pairing goes by export field name
    first and then by question text and type. Each snapshot question pairs
    at most once; unpaired current questions are absent from the result.
    """
    items = list(questions)
    old = list(snapshot)
    paired: Dict[str, Question] = {}
    taken: Set[str] = set()

    def _claim(current: Question, matches) -> None:
        for candidate in old:
            if candidate.id not in taken and matches(candidate):
                taken.add(candidate.id)
                paired[current.id] = candidate
                return

    for q in items:
        if q.export_field_name:
            _claim(q, lambda c: c.export_field_name == q.export_field_name)
    for q in items:
        if q.id not in paired:
            key = (q.type, q.text.strip().lower())
            _claim(q, lambda c: (c.type, c.text.strip().lower()) == key)
    return paired


def build_responses_csv(
    questions: Iterable[Question],
    responses: Iterable[FormResponse],
    snapshots: Optional[Mapping[int, List[Question]]] = None,
) -> bytes:
    """Export responses under one schema's columns; hidden questions stay blank.

    A response whose ``form_version`` has an entry in ``snapshots`` is
    evaluated against that recorded schema and its values are carried into
    the current columns through ``pair_with_snapshot``.
    """
    items = [q for q in questions]
    exported = [q for q in items if q.include_in_export]
    pairings: Dict[int, Dict[str, Question]] = {}
    buf = io.StringIO(newline="")
    writer = csv.writer(buf)
    writer.writerow(RESPONSES_BASE_HEADER + [column_label(q) for q in exported])
    for response in responses:
        snapshot = (snapshots or {}).get(response.form_version)
        if snapshot is None:
            shown = visible_answers(items, response.answer_map())
            cells = [format_answer(q, shown[q.id]) if q.id in shown else "" for q in exported]
        else:
            if response.form_version not in pairings:
                pairings[response.form_version] = pair_with_snapshot(exported, snapshot)
            paired = pairings[response.form_version]
            shown = visible_answers(snapshot, response.answer_map())
            cells = []
            for q in exported:
                source = paired.get(q.id)
                cells.append(format_answer(source, shown[source.id]) if source is not None and source.id in shown else "")
        created = response.created_at
        writer.writerow(
            [
                response.id,
                created.isoformat() if isinstance(created, datetime) else str(created),
                response.form_version,
                response.user_id or "",
                "true" if response.updated_offline else "false",
            ]
            + cells
        )
    return buf.getvalue().encode("utf-8")


def parse_responses_csv(questions: Iterable[Question], data: bytes) -> List[Dict[str, Any]]:
    """Read a responses export back into one answer map per row."""
    items = list(questions)
    by_label: Dict[str, Question] = {}
    for q in items:
        by_label[q.id] = q
        if q.export_field_name:
            by_label[q.export_field_name] = q
    reader = _reader(data)
    errors: List[Dict[str, Any]] = []
    columns: List[Tuple[str, Question]] = []
    for name in reader.fieldnames or []:
        if name in RESPONSES_BASE_HEADER:
            continue
        q = by_label.get(name)
        if q is None:
            errors.append(field_error(f"column {name}", "unknown_column", f"no question for column {name!r}"))
            continue
        columns.append((name, q))
    if errors:
        raise ValidationError(errors, "invalid responses export")

    maps: List[Dict[str, Any]] = []
    for line, row in enumerate(reader, start=2):
        answers: Dict[str, Any] = {}
        for name, q in columns:
            raw = row.get(name) or ""
            if not raw.strip():
                continue
            try:
                answers[q.id] = convert_cell(q.type, _option_pairs(q), raw)
            except ValueError as exc:
                errors.append(field_error(f"line {line}.{name}", "invalid_answer", str(exc)))
        maps.append(answers)
    if errors:
        raise ValidationError(errors, "invalid responses export")
    return maps


__all__ = [
    "TEMPLATE_HEADER",
    "RESPONSES_BASE_HEADER",
    "format_options",
    "parse_options",
    "format_answer",
    "convert_cell",
    "is_template_csv",
    "build_template_csv",
    "parse_form_csv",
    "parse_template_csv",
    "column_label",
    "pair_with_snapshot",
    "build_responses_csv",
    "parse_responses_csv",
]
