"""Functional tests for the spreadsheet codec (template and responses layouts)."""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone

import pytest

from formbuilder.logic.csv_io import (
    RESPONSES_BASE_HEADER,
    TEMPLATE_HEADER,
    build_responses_csv,
    build_template_csv,
    convert_cell,
    is_template_csv,
    pair_with_snapshot,
    parse_form_csv,
    parse_responses_csv,
    parse_template_csv,
)
from formbuilder.logic.errors import ValidationError
from formbuilder.logic.linearizer import linearize
from formbuilder.models.question import Question
from formbuilder.models.response import FormResponse, QuestionResponse


def _questions():
    working = [
        Question(
            id="status",
            text="Status",
            type="select",
            required=True,
            options=[{"id": "A", "text": "Active: yes | really"}, {"id": "B", "text": "Blocked"}],
        ),
        Question(id="why", text="Why active?", type="text", parent_id="status", parent_option_id="A"),
        Question(id="count", text="How many", type="number", export_field_name="how_many"),
        Question(id="when", text="Since", type="date"),
        Question(id="ok", text="Confirmed", type="boolean"),
        Question(
            id="tags",
            text="Tags",
            type="multiselect",
            options=[{"id": "t1", "text": "One"}, {"id": "t2", "text": "Two"}],
        ),
        Question(id="secret", text="Internal note", type="text", include_in_export=False),
    ]
    return linearize(working).questions


ANSWER = TEMPLATE_HEADER.index("answer")


def _rows(data: bytes):
    return list(csv.reader(io.StringIO(data.decode("utf-8"))))


# -----
# Template layout
# -----

def test_template_header_and_indentation():
    rows = _rows(build_template_csv(_questions()))
    assert rows[0] == TEMPLATE_HEADER
    assert rows[1][:6] == ["q0001", "", "", "Status", "select", "true"]
    assert rows[2][:4] == ["q0002", "q0001", "A", "    Why active?"]
    assert all(r[ANSWER] == "" for r in rows[1:])


def test_template_round_trip_reconstructs_questions():
    questions = _questions()
    rebuilt = parse_form_csv(build_template_csv(questions))
    assert [q.model_dump() for q in rebuilt] == [q.model_dump() for q in questions]
    assert rebuilt[0].options[0].text == "Active: yes | really"
    assert rebuilt[2].export_field_name == "how_many"
    assert rebuilt[6].include_in_export is False


def test_template_without_export_columns_uses_defaults():
    header = [c for c in TEMPLATE_HEADER if c not in ("include_in_export", "export_field_name")]
    data = "\n".join([",".join(header), "q0001,,,Name,text,true,,"]).encode("utf-8")
    (question,) = parse_form_csv(data)
    assert question.include_in_export is True
    assert question.export_field_name is None


def test_non_utf8_upload_is_a_validation_error():
    with pytest.raises(ValidationError) as excinfo:
        parse_form_csv(b"question_id,\xff\xfe\n")
    assert excinfo.value.fields == ["file"]
    assert excinfo.value.errors[0]["code"] == "invalid_encoding"


def test_prefilled_template_only_fills_live_questions():
    questions = _questions()
    data = build_template_csv(questions, {"q0001": "B", "q0002": "stale", "q0006": ["t1", "t2"]})
    answers = {r[0]: r[ANSWER] for r in _rows(data)[1:]}
    assert answers["q0001"] == "Blocked"
    assert answers["q0002"] == ""
    assert answers["q0006"] == "One|Two"


def test_parse_filled_template_converts_by_type():
    questions = _questions()
    data = build_template_csv(
        questions,
        {"q0001": "A", "q0002": "because", "q0003": 2.5, "q0004": "2026-03-01", "q0005": True, "q0006": ["t2"]},
    )
    answers = parse_template_csv(data, questions)
    assert answers == {
        "q0001": "A",
        "q0002": "because",
        "q0003": 2.5,
        "q0004": "2026-03-01",
        "q0005": True,
        "q0006": ["t2"],
    }


def test_parse_template_reports_every_bad_row_by_line():
    questions = _questions()
    rows = _rows(build_template_csv(questions))
    rows[1][ANSWER] = "Maybe"
    rows[5][ANSWER] = "perhaps"
    buf = io.StringIO()
    csv.writer(buf).writerows(rows)
    with pytest.raises(ValidationError) as excinfo:
        parse_template_csv(buf.getvalue().encode("utf-8"), questions)
    assert excinfo.value.fields == ["line 2", "line 6"]


def test_parse_template_rejects_unknown_question_ids():
    questions = _questions()
    data = "\n".join(
        [",".join(TEMPLATE_HEADER), "q9999,,,Ghost,text,false,,,,boo"]
    ).encode("utf-8")
    with pytest.raises(ValidationError) as excinfo:
        parse_template_csv(data, questions)
    assert excinfo.value.errors[0]["code"] == "unknown_question"


def test_parse_template_without_schema_uses_row_columns():
    data = "\n".join(
        [",".join(TEMPLATE_HEADER), "q0001,,,Pick,select,true,a:Apple|b:Banana,,,banana", "q0002,,,Size,number,false,,,,"]
    ).encode("utf-8")
    assert parse_template_csv(data) == {"q0001": "b"}


def test_missing_template_columns_rejected():
    with pytest.raises(ValidationError) as excinfo:
        parse_form_csv(b"question_id,question_text\nq1,Hello\n")
    assert "header" in excinfo.value.fields


@pytest.mark.parametrize(
    "qtype,raw,expected",
    [
        ("boolean", "Yes", True),
        ("boolean", "0", False),
        ("number", "12", 12),
        ("date", "05/11/2026", "2026-11-05"),
        ("select", "apple", "a"),
        ("multiselect", "a|Banana", ["a", "b"]),
    ],
)
def test_convert_cell(qtype, raw, expected):
    assert convert_cell(qtype, [("a", "Apple"), ("b", "Banana")], raw) == expected


def test_option_text_wins_over_a_colliding_id():
    options = [("a", "b"), ("b", "a")]
    assert convert_cell("select", options, "a") == "b"
    assert convert_cell("multiselect", options, "b|a") == ["a", "b"]


def test_convert_cell_rejects_bad_values():
    with pytest.raises(ValueError):
        convert_cell("number", [], "ten")
    with pytest.raises(ValueError):
        convert_cell("date", [], "2026-13-40")


def test_template_detection():
    assert is_template_csv(build_template_csv(_questions()))
    assert not is_template_csv(build_responses_csv(_questions(), []))


# -----
# Responses layout
# -----

def _response(answers):
    return FormResponse(
        id="r-1",
        form_id="f-1",
        form_version=2,
        responses=[QuestionResponse(question_id=k, value=v) for k, v in answers.items()],
        created_at=datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc),
        user_id="u-1",
    )


def test_responses_export_columns_and_hidden_cells():
    questions = _questions()
    response = _response({"q0001": "B", "q0002": "stale", "q0003": 3, "q0006": ["t1", "t2"], "q0007": "x"})
    rows = _rows(build_responses_csv(questions, [response]))
    assert rows[0] == RESPONSES_BASE_HEADER + ["q0001", "q0002", "how_many", "q0004", "q0005", "q0006"]
    assert rows[1][:5] == ["r-1", "2026-04-01T12:00:00+00:00", "2", "u-1", "false"]
    assert rows[1][5:] == ["Blocked", "", "3", "", "", "One|Two"]


def test_responses_export_reads_back_into_answer_maps():
    questions = _questions()
    answers = {"q0001": "A", "q0002": "because", "q0003": 7, "q0005": False, "q0006": ["t2"]}
    maps = parse_responses_csv(questions, build_responses_csv(questions, [_response(answers)]))
    assert maps == [answers]


def test_responses_import_rejects_unknown_columns():
    data = ",".join(RESPONSES_BASE_HEADER + ["nonsense"]).encode("utf-8") + b"\n"
    with pytest.raises(ValidationError) as excinfo:
        parse_responses_csv(_questions(), data)
    assert excinfo.value.errors[0]["code"] == "unknown_column"


def _versioned(version, answers):
    return _response(answers).model_copy(update={"id": f"r-{version}", "form_version": version})


def test_older_responses_export_against_their_recorded_schema():
    old = [Question(id="q0001", text="Name", type="text")]
    current = [
        Question(id="q0001", text="Age", type="number", export_field_name="age"),
        Question(id="q0002", text="Name", type="text", export_field_name="name"),
    ]
    responses = [_versioned(1, {"q0001": "Bob"}), _versioned(2, {"q0001": 30, "q0002": "Ann"})]
    rows = _rows(build_responses_csv(current, responses, {1: old}))
    assert rows[0][5:] == ["age", "name"]
    assert [r[5:] for r in rows[1:]] == [["", "Bob"], ["30", "Ann"]]


def test_pair_with_snapshot_prefers_export_field_names():
    old = [
        Question(id="q0001", text="Full name", type="text", export_field_name="name"),
        Question(id="q0002", text="Comment", type="text"),
    ]
    current = [
        Question(id="q0001", text="Comment", type="text"),
        Question(id="q0002", text="Name", type="text", export_field_name="name"),
        Question(id="q0003", text="Brand new", type="text"),
    ]
    paired = pair_with_snapshot(current, old)
    assert {k: v.id for k, v in paired.items()} == {"q0001": "q0002", "q0002": "q0001"}
