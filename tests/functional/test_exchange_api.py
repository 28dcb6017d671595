"""Functional API tests for CSV template/responses export and import."""

from __future__ import annotations

import csv
import io
from types import SimpleNamespace

from formbuilder.logic.csv_io import TEMPLATE_HEADER

ANSWER = TEMPLATE_HEADER.index("answer")


def _rows(content: bytes):
    return list(csv.reader(io.StringIO(content.decode("utf-8"))))


def _csv_headers(headers):
    return {**headers, "Content-Type": "text/csv"}


def test_template_export(client, user_headers, status_form):
    resp = client.get(f"/api/v1/forms/{status_form['id']}/export/template.csv", headers=user_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]
    rows = _rows(resp.content)
    assert rows[0][0] == "question_id"
    assert [r[0] for r in rows[1:]] == ["q0001", "q0002"]


def test_import_filled_template_marks_offline(client, user_headers, status_form, events):
    form_id = status_form["id"]
    rows = _rows(client.get(f"/api/v1/forms/{form_id}/export/template.csv", headers=user_headers).content)
    rows[1][ANSWER] = "Active"
    rows[2][ANSWER] = "filled offline"
    buf = io.StringIO()
    csv.writer(buf).writerows(rows)

    resp = client.post(
        f"/api/v1/forms/{form_id}/responses/import",
        content=buf.getvalue().encode("utf-8"),
        headers=_csv_headers(user_headers),
    )
    assert resp.status_code == 201
    assert resp.json()["imported"] == 1
    stored = client.get(f"/api/v1/responses/{resp.json()['responseIds'][0]}", headers=user_headers).json()
    assert stored["updatedOffline"] is True
    assert stored["responses"] == [
        {"questionId": "q0001", "value": "A"},
        {"questionId": "q0002", "value": "filled offline"},
    ]
    assert [e["type"] for e in events] == ["response.saved"]


def test_import_multipart_responses_export(client, user_headers, status_form):
    form_id = status_form["id"]
    client.post(f"/api/v1/forms/{form_id}/responses", json={"answers": {"q0001": "B"}}, headers=user_headers)
    exported = client.get(f"/api/v1/forms/{form_id}/export/responses.csv", headers=user_headers).content

    resp = client.post(
        f"/api/v1/forms/{form_id}/responses/import",
        files={"file": ("responses.csv", exported, "text/csv")},
        headers=user_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["imported"] == 1
    listed = client.get(f"/api/v1/forms/{form_id}/responses", headers=user_headers).json()
    assert len(listed) == 2


def test_import_reports_row_violations(client, user_headers, status_form):
    form_id = status_form["id"]
    header = "response_id,created_at,form_version,user_id,updated_offline,q0001,q0002"
    data = "\n".join([header, "r1,,1,u,false,Active,", "r2,,1,u,false,Blocked,"]).encode("utf-8")
    resp = client.post(f"/api/v1/forms/{form_id}/responses/import", content=data, headers=_csv_headers(user_headers))
    assert resp.status_code == 422
    assert [e["field"] for e in resp.json()["errors"]] == ["rows[0].q0002"]
    assert client.get(f"/api/v1/forms/{form_id}/responses", headers=user_headers).json() == []


def test_import_rejects_oversized_upload(client, user_headers, status_form, mocker):
    small = SimpleNamespace(csv=SimpleNamespace(import_max_bytes=16))
    mocker.patch("formbuilder.http.uploads.get_config", return_value=small)
    resp = client.post(
        f"/api/v1/forms/{status_form['id']}/responses/import",
        content=b"question_id,parent_id,parent_option_id,question_text\n",
        headers=_csv_headers(user_headers),
    )
    assert resp.status_code == 413
    assert resp.json()["code"] == "payload_too_large"


def test_responses_export_by_version(client, admin_headers, user_headers, status_form):
    form_id = status_form["id"]
    client.post(
        f"/api/v1/forms/{form_id}/responses", json={"answers": {"q0001": "A", "q0002": "v1"}}, headers=user_headers
    )
    draft = {
        "name": "Status check",
        "questions": [
            {
                "id": "s",
                "text": "Status",
                "type": "select",
                "options": [{"id": "A", "text": "Active"}, {"id": "B", "text": "Blocked"}],
                "exportFieldName": "status",
            }
        ],
    }
    client.put(f"/api/v1/forms/{form_id}", json=draft, headers=admin_headers)
    client.post(f"/api/v1/forms/{form_id}/responses", json={"answers": {"q0001": "B"}}, headers=user_headers)

    v1 = _rows(client.get(f"/api/v1/forms/{form_id}/export/responses.csv?version=1", headers=user_headers).content)
    assert v1[0][5:] == ["q0001", "q0002"]
    assert [r[5:] for r in v1[1:]] == [["Active", "v1"]]

    current = _rows(client.get(f"/api/v1/forms/{form_id}/export/responses.csv", headers=user_headers).content)
    assert current[0][5:] == ["status"]
    assert sorted(r[5] for r in current[1:]) == ["Active", "Blocked"]


def test_export_requires_identity(client, status_form):
    resp = client.get(f"/api/v1/forms/{status_form['id']}/export/template.csv")
    assert resp.status_code == 401


def test_unversioned_export_reads_older_responses_against_their_schema(client, admin_headers, user_headers):
    created = client.post(
        "/api/v1/forms",
        json={"name": "People", "questions": [{"id": "n", "text": "Name", "type": "text"}]},
        headers=admin_headers,
    ).json()
    form_id = created["id"]
    client.post(f"/api/v1/forms/{form_id}/responses", json={"answers": {"q0001": "Bob"}}, headers=user_headers)
    resaved = {
        "name": "People",
        "questions": [
            {"id": "a", "text": "Age", "type": "number", "exportFieldName": "age"},
            {"id": "n", "text": "Name", "type": "text", "exportFieldName": "name"},
        ],
    }
    assert client.put(f"/api/v1/forms/{form_id}", json=resaved, headers=admin_headers).status_code == 200
    client.post(
        f"/api/v1/forms/{form_id}/responses", json={"answers": {"q0001": 41, "q0002": "Ann"}}, headers=user_headers
    )

    rows = _rows(client.get(f"/api/v1/forms/{form_id}/export/responses.csv", headers=user_headers).content)
    assert rows[0][5:] == ["age", "name"]
    by_version = {r[2]: r[5:] for r in rows[1:]}
    assert by_version == {"1": ["", "Bob"], "2": ["41", "Ann"]}


def test_non_utf8_upload_is_rejected_field_indexed(client, admin_headers, user_headers, status_form):
    resp = client.post(
        "/api/v1/forms/import", content=b"question_id,\xff\xfe\n", headers=_csv_headers(admin_headers)
    )
    assert resp.status_code == 422
    assert [e["field"] for e in resp.json()["errors"]] == ["file"]

    resp = client.post(
        f"/api/v1/forms/{status_form['id']}/responses/import",
        content=b"response_id,\xff\n",
        headers=_csv_headers(user_headers),
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_failed"
