"""API tests for /api/v1/migrations.

Coverage
--------
    1. create / get / list / delete
    2. PUT provenance: changed, unchanged, cleared, new question
    3. clientInfo merge, helpText ↔ metadata.infoTooltip
    4. question add with generated questionKey; edit, remove, reorder
    5. delta add / update / remove, deltaParent validation
    6. weekly notes add / edit / delete
    7. XLSX export (control characters, formula-like text), health probes
"""

import io

from openpyxl import load_workbook

from tcm_checklist.models import db
from tcm_checklist.models.migration import Migration
from tcm_checklist.services.migration_service import apply_question_provenance

ALICE = {"X-User-Email": "Alice@Acme.test"}
BOB = {"X-User-Email": "bob@acme.test"}


def _get(client, migration_id):
    res = client.get(f"/api/v1/migrations/{migration_id}")
    assert res.status_code == 200
    return res.get_json()["migration"]


def _put(client, migration_id, body, headers=None):
    return client.put(f"/api/v1/migrations/{migration_id}", json=body, headers=headers or {})


def _question(doc, qid):
    return next(q for q in doc["questions"] if q["id"] == qid)


# ── CRUD ─────────────────────────────────────────────────────────────────


class TestMigrationCrud:
    def test_create_from_template(self, client):
        res = client.post("/api/v1/migrations", json={"clientInfo": {"clientName": "Globex"}}, headers=ALICE)
        assert res.status_code == 201
        doc = res.get_json()["migration"]
        assert doc["clientInfo"] == {"clientName": "Globex"}
        assert doc["createdBy"] == "alice@acme.test"
        assert doc["progress"]["total"] == len(doc["questions"]) > 0
        assert doc["progress"]["percentage"] == 0
        assert _question(doc, "q70")["questionType"] == "deltaParent"

    def test_create_without_header_uses_default_actor(self, client):
        res = client.post("/api/v1/migrations", json={})
        assert res.get_json()["migration"]["createdBy"] == "tester@tcm.local"

    def test_create_rejects_non_object_client_info(self, client):
        res = client.post("/api/v1/migrations", json={"clientInfo": "Globex"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"clientInfo": "object expected"}

    def test_get_missing_returns_404_envelope(self, client):
        res = client.get("/api/v1/migrations/doesnotexist")
        assert res.status_code == 404
        body = res.get_json()
        assert body["error"] == body["message"] == "Migration id=doesnotexist not found"

    def test_list_omits_questions_and_filters(self, client, migration):
        client.post("/api/v1/migrations", json={"clientInfo": {"clientName": "Globex"}})

        res = client.get("/api/v1/migrations")
        body = res.get_json()
        assert body["total"] == 2
        assert all("questions" not in item for item in body["items"])

        res = client.get("/api/v1/migrations?clientName=acme")
        items = res.get_json()["items"]
        assert [i["id"] for i in items] == [migration.id]

    def test_delete(self, client, migration):
        res = client.delete(f"/api/v1/migrations/{migration.id}")
        assert res.status_code == 200
        assert db.session.get(Migration, migration.id) is None
        assert client.get(f"/api/v1/migrations/{migration.id}").status_code == 404

    def test_non_json_body_rejected(self, client, migration):
        res = client.put(
            f"/api/v1/migrations/{migration.id}", data="x=1", content_type="text/plain",
        )
        assert res.status_code == 415


# ── PUT & provenance ─────────────────────────────────────────────────────


class TestProvenance:
    def test_changed_answer_gets_actor_and_time(self, client, migration):
        doc = _get(client, migration.id)
        _question(doc, "q2")["answer"] = "Tableau Bridge"

        res = _put(client, migration.id, {"questions": doc["questions"]}, ALICE)

        assert res.status_code == 200
        q2 = _question(res.get_json()["migration"], "q2")
        assert q2["answer"] == "Tableau Bridge"
        assert q2["updatedBy"] == "alice@acme.test"
        assert q2["updatedAt"]
        assert _question(res.get_json()["migration"], "q1").get("updatedBy") is None

    def test_unchanged_question_keeps_provenance(self, client, migration):
        doc = _get(client, migration.id)
        _question(doc, "q2")["answer"] = "VPN"
        first = _put(client, migration.id, {"questions": doc["questions"]}, ALICE).get_json()["migration"]

        _question(first, "q1")["completed"] = True
        second = _put(client, migration.id, {"questions": first["questions"]}, BOB).get_json()["migration"]

        assert _question(second, "q2")["updatedBy"] == "alice@acme.test"
        assert _question(second, "q2")["updatedAt"] == _question(first, "q2")["updatedAt"]
        assert _question(second, "q1")["updatedBy"] == "bob@acme.test"
        assert second["progress"]["completed"] == 1

    def test_cleared_question_loses_provenance(self, client, migration):
        doc = _get(client, migration.id)
        _question(doc, "q2").update(answer="VPN", completed=True)
        doc = _put(client, migration.id, {"questions": doc["questions"]}, ALICE).get_json()["migration"]

        _question(doc, "q2").update(answer="", completed=False)
        doc = _put(client, migration.id, {"questions": doc["questions"]}, ALICE).get_json()["migration"]

        assert _question(doc, "q2")["updatedBy"] is None
        assert _question(doc, "q2")["updatedAt"] is None

    def test_client_info_is_merged_and_notes_set(self, client, migration):
        res = _put(client, migration.id, {
            "clientInfo": {"goLiveDate": "2024-09-01"},
            "additionalNotes": "Bridge pool pending",
            "ignored": "field",
        })
        doc = res.get_json()["migration"]
        assert doc["clientInfo"]["clientName"] == "Acme Corp"
        assert doc["clientInfo"]["goLiveDate"] == "2024-09-01"
        assert doc["additionalNotes"] == "Bridge pool pending"
        assert "ignored" not in doc

    def test_help_text_round_trip(self, client, migration):
        doc = _get(client, migration.id)
        assert _question(doc, "q7")["helpText"].startswith("No new workbooks")

        _question(doc, "q1")["helpText"] = "Ask the SecOps lead"
        _put(client, migration.id, {"questions": doc["questions"]})

        stored = _question(db.session.get(Migration, migration.id).questions, "q1")
        assert "helpText" not in stored
        assert stored["metadata"]["infoTooltip"] == "Ask the SecOps lead"

    def test_invalid_questions_rejected(self, client, migration):
        res = _put(client, migration.id, {"questions": [{"answer": "no id"}]})
        assert res.status_code == 422

    def test_non_object_body_rejected(self, client, migration):
        res = _put(client, migration.id, ["not", "an", "object"])
        assert res.status_code == 400


def test_new_question_with_answer_gets_provenance():
    result = apply_question_provenance(
        [],
        [{"id": "q200", "answer": "Yes"}, {"id": "q201", "answer": ""}],
        actor="carol@acme.test",
        now="2024-05-01T00:00:00.000+00:00",
    )
    assert result[0]["updatedBy"] == "carol@acme.test"
    assert "updatedBy" not in result[1]


# ── Questions ────────────────────────────────────────────────────────────


class TestAddQuestion:
    def test_generates_key_and_id(self, client, migration):
        res = client.post(f"/api/v1/migrations/{migration.id}/questions", json={
            "section": "Security",
            "questionText": "Is MFA enabled for all admins?",
            "questionType": "yesNo",
            "options": ["Yes", "No"],
        })
        assert res.status_code == 201
        question = res.get_json()["question"]
        assert question["questionKey"] == "security_mfa_enabled_admins"
        assert question["id"] == "q71"
        assert question["completed"] is False

        doc = _get(client, migration.id)
        assert doc["questions"][-1]["id"] == "q71"

    def test_duplicate_key_conflicts(self, client, migration):
        res = client.post(f"/api/v1/migrations/{migration.id}/questions", json={
            "section": "Security", "questionText": "Anything", "questionKey": "bridge_required",
        })
        assert res.status_code == 409

    def test_invalid_type(self, client, migration):
        res = client.post(f"/api/v1/migrations/{migration.id}/questions", json={
            "section": "Security", "questionText": "Rate it", "questionType": "slider",
        })
        assert res.status_code == 422

    def test_missing_text(self, client, migration):
        res = client.post(f"/api/v1/migrations/{migration.id}/questions", json={"section": "Security"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"questionText": "required"}


class TestEditQuestion:
    def test_edit_structure_and_help_text(self, client, migration):
        res = client.put(f"/api/v1/migrations/{migration.id}/questions/q2", json={
            "questionText": "  How will Cloud reach on-premise data?  ",
            "options": ["Tableau Bridge", "Private Connect"],
            "helpText": "Bridge needs a Windows host.",
        }, headers=ALICE)

        assert res.status_code == 200
        question = res.get_json()["question"]
        assert question["questionText"] == "How will Cloud reach on-premise data?"
        assert question["helpText"] == "Bridge needs a Windows host."
        assert question["updatedBy"] == "alice@acme.test"

        stored = _question(_get(client, migration.id), "q2")
        assert stored["options"] == ["Tableau Bridge", "Private Connect"]
        assert stored["metadata"]["infoTooltip"] == "Bridge needs a Windows host."
        assert stored["questionKey"] == "security_data_connectivity"
        assert stored["answer"] is None

    def test_switch_to_delta_parent_adds_delta_list(self, client, migration):
        res = client.put(f"/api/v1/migrations/{migration.id}/questions/q3",
                         json={"questionType": "deltaParent"})
        assert res.status_code == 200
        assert res.get_json()["question"]["deltas"] == []

    def test_invalid_type_rejected(self, client, migration):
        res = client.put(f"/api/v1/migrations/{migration.id}/questions/q2", json={"questionType": "slider"})
        assert res.status_code == 422

    def test_empty_text_rejected(self, client, migration):
        res = client.put(f"/api/v1/migrations/{migration.id}/questions/q2", json={"questionText": " "})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"questionText": "required"}

    def test_missing_question(self, client, migration):
        res = client.put(f"/api/v1/migrations/{migration.id}/questions/q999", json={"questionText": "x"})
        assert res.status_code == 404


class TestRemoveQuestion:
    def test_remove_renumbers_order(self, client, migration):
        res = client.delete(f"/api/v1/migrations/{migration.id}/questions/q2")
        assert res.status_code == 200

        questions = _get(client, migration.id)["questions"]
        assert "q2" not in [q["id"] for q in questions]
        assert [q["order"] for q in questions] == list(range(1, len(questions) + 1))

    def test_remove_missing_question(self, client, migration):
        res = client.delete(f"/api/v1/migrations/{migration.id}/questions/q999")
        assert res.status_code == 404


class TestReorderQuestions:
    def _reorder(self, client, migration_id, body):
        return client.put(f"/api/v1/migrations/{migration_id}/questions/reorder", json=body)

    def test_listed_questions_move_first(self, client, migration):
        res = self._reorder(client, migration.id, {"questionIds": ["q3", "q1"]})

        assert res.status_code == 200
        questions = res.get_json()["migration"]["questions"]
        assert [q["id"] for q in questions[:3]] == ["q3", "q1", "q2"]
        assert [q["order"] for q in questions] == list(range(1, len(questions) + 1))
        assert [q["id"] for q in _get(client, migration.id)["questions"][:3]] == ["q3", "q1", "q2"]

    def test_unknown_id_rejected(self, client, migration):
        res = self._reorder(client, migration.id, {"questionIds": ["q1", "q999"]})
        assert res.status_code == 422
        assert res.get_json()["message"] == "Invalid question IDs: q999"
        assert _get(client, migration.id)["questions"][0]["id"] == "q1"

    def test_duplicate_ids_rejected(self, client, migration):
        assert self._reorder(client, migration.id, {"questionIds": ["q2", "q2"]}).status_code == 422

    def test_question_ids_must_be_a_list(self, client, migration):
        assert self._reorder(client, migration.id, {"questionIds": "q1"}).status_code == 422


# ── Delta items ──────────────────────────────────────────────────────────


class TestDeltas:
    def _url(self, migration_id, question_id="q70", delta_id=None):
        url = f"/api/v1/migrations/{migration_id}/questions/{question_id}/deltas"
        return f"{url}/{delta_id}" if delta_id else url

    def test_add_uses_template_and_default_name(self, client, migration):
        res = client.post(self._url(migration.id), json={}, headers=ALICE)
        assert res.status_code == 201
        delta = res.get_json()["delta"]
        assert delta["id"].startswith("delta-")
        assert delta["name"] == "Item 1"
        assert delta["fields"]["owner"] == "IW"
        assert delta["fields"]["complete"] is False
        assert delta["createdBy"] == "alice@acme.test"

        second = client.post(self._url(migration.id), json={"name": "Finance users"}).get_json()["delta"]
        assert second["name"] == "Finance users"
        deltas = _question(_get(client, migration.id), "q70")["deltas"]
        assert [d["id"] for d in deltas] == [delta["id"], second["id"]]

    def test_add_on_non_parent_rejected(self, client, migration):
        res = client.post(self._url(migration.id, "q1"), json={})
        assert res.status_code == 422
        assert res.get_json()["message"] == "Question is not a delta parent"

    def test_add_on_missing_question(self, client, migration):
        assert client.post(self._url(migration.id, "q999"), json={}).status_code == 404

    def test_update_merges_fields(self, client, migration):
        delta = client.post(self._url(migration.id), json={}).get_json()["delta"]
        res = client.put(self._url(migration.id, delta_id=delta["id"]), json={
            "name": "HR users", "fields": {"migrated": True, "owner": "Client"},
        })
        assert res.status_code == 200
        updated = res.get_json()["delta"]
        assert updated["name"] == "HR users"
        assert updated["fields"]["migrated"] is True
        assert updated["fields"]["owner"] == "Client"
        assert updated["fields"]["runbook"] == ""

    def test_update_rejects_unknown_owner(self, client, migration):
        delta = client.post(self._url(migration.id), json={}).get_json()["delta"]
        res = client.put(self._url(migration.id, delta_id=delta["id"]), json={"fields": {"owner": "Vendor"}})
        assert res.status_code == 422

    def test_remove(self, client, migration):
        delta = client.post(self._url(migration.id), json={}).get_json()["delta"]
        res = client.delete(self._url(migration.id, delta_id=delta["id"]))
        assert res.status_code == 200
        assert _question(_get(client, migration.id), "q70")["deltas"] == []
        assert client.delete(self._url(migration.id, delta_id=delta["id"])).status_code == 404


# ── Weekly notes ─────────────────────────────────────────────────────────


class TestWeeklyNotes:
    def _url(self, migration_id, note_id=None):
        url = f"/api/v1/migrations/{migration_id}/weekly-notes"
        return f"{url}/{note_id}" if note_id else url

    def test_add_note(self, client, migration):
        res = client.post(self._url(migration.id),
                          json={"content": "  Kickoff held  ", "date": "2024-05-06"}, headers=ALICE)

        assert res.status_code == 201
        note = res.get_json()["note"]
        assert note["id"].startswith("note-")
        assert note["content"] == "Kickoff held"
        assert note["date"] == "2024-05-06"
        assert note["createdBy"] == "alice@acme.test"
        assert _get(client, migration.id)["weeklyNotes"] == [note]

    def test_date_defaults_to_now(self, client, migration):
        note = client.post(self._url(migration.id), json={"content": "Status"}).get_json()["note"]
        assert note["date"] == note["createdAt"]

    def test_content_required(self, client, migration):
        res = client.post(self._url(migration.id), json={"content": "   "})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"content": "required"}

    def test_invalid_date_rejected(self, client, migration):
        res = client.post(self._url(migration.id), json={"content": "x", "date": "next week"})
        assert res.status_code == 422

    def test_edit_note(self, client, migration):
        note = client.post(self._url(migration.id), json={"content": "Draft"}).get_json()["note"]

        res = client.put(self._url(migration.id, note["id"]), json={"content": "Final", "date": "2024-05-13"})

        assert res.status_code == 200
        updated = res.get_json()["note"]
        assert updated["content"] == "Final"
        assert updated["date"] == "2024-05-13"
        assert updated["createdAt"] == note["createdAt"]
        assert client.put(self._url(migration.id, note["id"]), json={"content": ""}).status_code == 422

    def test_save_keeps_notes(self, client, migration):
        client.post(self._url(migration.id), json={"content": "Status"})
        doc = _get(client, migration.id)
        res = _put(client, migration.id, {"questions": doc["questions"], "additionalNotes": "n"})
        assert len(res.get_json()["migration"]["weeklyNotes"]) == 1

    def test_delete_note(self, client, migration):
        note = client.post(self._url(migration.id), json={"content": "Draft"}).get_json()["note"]

        assert client.delete(self._url(migration.id, note["id"])).status_code == 200
        assert _get(client, migration.id)["weeklyNotes"] == []
        assert client.delete(self._url(migration.id, note["id"])).status_code == 404

    def test_edit_missing_note(self, client, migration):
        assert client.put(self._url(migration.id, "note-missing"), json={"content": "x"}).status_code == 404


# ── Export & health ──────────────────────────────────────────────────────


def test_export_xlsx(client, migration):
    client.post(f"/api/v1/migrations/{migration.id}/questions/q70/deltas", json={"name": "Finance"})

    res = client.get(f"/api/v1/migrations/{migration.id}/export.xlsx")

    assert res.status_code == 200
    assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "Acme_Corp_checklist_" in res.headers["Content-Disposition"]
    wb = load_workbook(io.BytesIO(res.data))
    assert wb.sheetnames == ["Summary", "Checklist", "Deltas"]
    checklist = wb["Checklist"]
    assert checklist["A1"].value == "Key"
    assert checklist["A2"].value == "Security"
    assert wb["Deltas"]["B2"].value == "Finance"


def _export_with_q2_answer(client, migration, answer):
    doc = _get(client, migration.id)
    _question(doc, "q2")["answer"] = answer
    assert _put(client, migration.id, {"questions": doc["questions"]}).status_code == 200
    res = client.get(f"/api/v1/migrations/{migration.id}/export.xlsx")
    assert res.status_code == 200
    # Row 2 is the Security section heading, then q1 and q2
    return load_workbook(io.BytesIO(res.data))["Checklist"]["D4"]


def test_export_strips_control_characters(client, migration):
    cell = _export_with_q2_answer(client, migration, "pasted\x01text")
    assert cell.value == "pastedtext"


def test_export_writes_formula_like_answers_as_text(client, migration):
    cell = _export_with_q2_answer(client, migration, "=1+1")
    assert cell.data_type == "s"
    assert cell.value == "'=1+1"


def test_export_sanitizes_client_info_and_notes(client, migration):
    _put(client, migration.id, {
        "clientInfo": {"clientName": "@Acme\x07"},
        "additionalNotes": "+call Bob",
    })
    client.post(f"/api/v1/migrations/{migration.id}/weekly-notes", json={"content": "-1 blocker"})

    res = client.get(f"/api/v1/migrations/{migration.id}/export.xlsx")

    assert res.status_code == 200
    wb = load_workbook(io.BytesIO(res.data))
    summary_values = [c.value for row in wb["Summary"].iter_rows() for c in row if c.value]
    assert "'@Acme" in summary_values
    assert "'+call Bob" in summary_values
    assert all(c.data_type != "f" for row in wb["Summary"].iter_rows() for c in row)
    assert wb["Weekly Notes"]["B2"].value == "'-1 blocker"


def test_health_probes(client):
    assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}
    live = client.get("/api/v1/health/live")
    assert live.status_code == 200
    assert live.get_json()["checks"]["database"]["status"] == "ok"
