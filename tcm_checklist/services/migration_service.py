"""Migration document service.

CRUD over ``Migration`` rows plus the question-level rules the REST layer
enforces: provenance stamping on update, question insertion with generated
questionKeys, question edit/remove/reorder, delta-item management under
deltaParent questions, and the weekly status-note log.

Functions flush but never commit; the blueprint owns the transaction.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone

from tcm_checklist.core.exceptions import ConflictError, NotFoundError, ValidationError
from tcm_checklist.models import db
from tcm_checklist.models.migration import Migration, question_from_wire
from tcm_checklist.services.question_template import build_question_template
from tcm_checklist.sync.answers import QUESTION_TYPES
from tcm_checklist.sync.dates import parse_timestamp
from tcm_checklist.sync.question_resolver import generate_question_key

logger = logging.getLogger(__name__)

DELTA_OWNERS = (None, "IW", "Client", "IW/Client")
DELTA_FIELDS = ("runbook", "migrated", "owner", "date", "notes", "complete")
QUESTION_EDITABLE_FIELDS = ("section", "questionText", "questionType", "options", "metadata")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _has_answer(answer) -> bool:
    return answer is not None and answer != ""


# ══════════════════════════════════════════════════════════════════
# Migration CRUD
# ══════════════════════════════════════════════════════════════════


def create_migration(*, client_info: dict | None, actor: str) -> Migration:
    """Create a migration seeded with the default question template."""
    if client_info is not None and not isinstance(client_info, dict):
        raise ValidationError("clientInfo must be an object", details={"clientInfo": "object expected"})

    client_info = dict(client_info or {})
    migration = Migration(
        client_info=client_info,
        client_name=client_info.get("clientName"),
        questions=build_question_template(),
        additional_notes="",
        created_by=actor,
    )
    db.session.add(migration)
    db.session.flush()
    logger.info("Migration created id=%s client=%s by=%s",
                migration.id, migration.client_name, actor)
    return migration


def list_migrations(*, client_name: str | None = None) -> list[Migration]:
    """List migrations, most recently updated first."""
    query = Migration.query
    if client_name:
        query = query.filter(Migration.client_name.ilike(f"%{client_name}%"))
    return query.order_by(Migration.updated_at.desc()).all()


def get_migration(migration_id: str) -> Migration:
    migration = db.session.get(Migration, migration_id)
    if migration is None:
        raise NotFoundError(resource="Migration", resource_id=migration_id)
    return migration


def update_migration(migration: Migration, data: dict, *, actor: str) -> Migration:
    """Apply a client save: merge clientInfo, replace questions, set notes.

    Only ``clientInfo``, ``questions`` and ``additionalNotes`` are read from
    ``data``; any other top-level key is ignored.
    """
    client_info = data.get("clientInfo")
    if client_info is not None and not isinstance(client_info, dict):
        raise ValidationError("clientInfo must be an object", details={"clientInfo": "object expected"})
    questions = data.get("questions")
    if questions is not None:
        _validate_questions(questions)

    if client_info is not None:
        merged = {**(migration.client_info or {}), **client_info}
        migration.client_info = merged
        migration.client_name = merged.get("clientName")

    if questions is not None:
        incoming = [question_from_wire(q) for q in questions]
        migration.questions = apply_question_provenance(
            migration.questions or [], incoming, actor=actor, now=_now_iso(),
        )

    if "additionalNotes" in data:
        migration.additional_notes = str(data.get("additionalNotes") or "")

    migration.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Migration updated id=%s by=%s", migration.id, actor)
    return migration


def delete_migration(migration: Migration) -> None:
    db.session.delete(migration)
    db.session.flush()
    logger.info("Migration deleted id=%s", migration.id)


def _validate_questions(questions) -> None:
    if not isinstance(questions, list):
        raise ValidationError("questions must be a list", details={"questions": "list expected"})
    for index, question in enumerate(questions):
        if not isinstance(question, dict) or not question.get("id"):
            raise ValidationError(
                "Every question must be an object with an id",
                details={f"questions[{index}]": "id is required"},
            )


def apply_question_provenance(
    existing: list[dict],
    incoming: list[dict],
    *,
    actor: str,
    now: str,
) -> list[dict]:
    """Stamp updatedBy/updatedAt on incoming questions.

    For a question that already exists (matched by ``id``):
      - cleared (completed False and no answer) → provenance removed
      - answer or completed changed            → stamped with actor/now
      - unchanged                              → stored provenance kept
    A new question with an answer is stamped; one without is left bare.
    """
    by_id = {q.get("id"): q for q in existing}
    result = []
    for question in incoming:
        question = dict(question)
        previous = by_id.get(question.get("id"))

        if previous is not None:
            answer_changed = previous.get("answer") != question.get("answer")
            completed_changed = previous.get("completed") != question.get("completed")
            being_cleared = question.get("completed") is False and not _has_answer(question.get("answer"))

            if being_cleared:
                question["updatedBy"] = None
                question["updatedAt"] = None
            elif answer_changed or completed_changed:
                question["updatedBy"] = actor
                question["updatedAt"] = now
            else:
                for field in ("updatedBy", "updatedAt"):
                    if field in previous:
                        question[field] = previous[field]
                    else:
                        question.pop(field, None)
        elif _has_answer(question.get("answer")):
            question["updatedBy"] = actor
            question["updatedAt"] = now

        result.append(question)
    return result


# ══════════════════════════════════════════════════════════════════
# Questions
# ══════════════════════════════════════════════════════════════════


def _next_question_id(questions: list[dict]) -> str:
    numbers = [
        int(q["id"][1:]) for q in questions
        if isinstance(q.get("id"), str) and q["id"].startswith("q") and q["id"][1:].isdigit()
    ]
    return f"q{max(numbers, default=0) + 1}"


def add_question(migration: Migration, data: dict) -> dict:
    """Append a question; id and questionKey are generated when not supplied."""
    section = str(data.get("section") or "").strip()
    text = str(data.get("questionText") or "").strip()
    if not section or not text:
        raise ValidationError(
            "section and questionText are required",
            details={k: "required" for k, v in (("section", section), ("questionText", text)) if not v},
        )

    question_type = data.get("questionType", "checkbox")
    if question_type not in QUESTION_TYPES:
        raise ValidationError(
            f"questionType must be one of {list(QUESTION_TYPES)}",
            details={"questionType": question_type},
        )

    questions = copy.deepcopy(migration.questions or [])

    question_id = data.get("id") or _next_question_id(questions)
    if any(q.get("id") == question_id for q in questions):
        raise ConflictError(resource="Question", field="id", value=question_id)

    question_key = data.get("questionKey") or generate_question_key(section, text, questions)
    if any(q.get("questionKey") == question_key for q in questions):
        raise ConflictError(resource="Question", field="questionKey", value=question_key)

    question = question_from_wire({
        "id": question_id,
        "questionKey": question_key,
        "section": section,
        "questionText": text,
        "questionType": question_type,
        "order": max((q.get("order") or 0 for q in questions), default=0) + 1,
        "answer": None,
        "completed": False,
        "metadata": dict(data.get("metadata") or {}),
        **({"helpText": data["helpText"]} if data.get("helpText") else {}),
    })
    if data.get("options") is not None:
        question["options"] = list(data["options"])
    if question_type == "deltaParent":
        question["deltas"] = []

    questions.append(question)
    migration.questions = questions
    db.session.flush()
    logger.info("Question added migration=%s id=%s key=%s", migration.id, question_id, question_key)
    return question


def _find_question_index(questions: list[dict], question_id: str) -> int:
    for index, question in enumerate(questions):
        if question.get("id") == question_id:
            return index
    raise NotFoundError(resource="Question", resource_id=question_id)


def update_question(migration: Migration, question_id: str, data: dict, *, actor: str) -> dict:
    """Edit a question's structure (text, section, type, options, help text).

    Answers are not touched here; they go through ``update_migration``.
    The edit is stamped with updatedBy/updatedAt.
    """
    questions = copy.deepcopy(migration.questions or [])
    question = questions[_find_question_index(questions, question_id)]

    for field in ("section", "questionText"):
        if field in data and not str(data.get(field) or "").strip():
            raise ValidationError(f"{field} cannot be empty", details={field: "required"})
    if "questionType" in data and data["questionType"] not in QUESTION_TYPES:
        raise ValidationError(
            f"questionType must be one of {list(QUESTION_TYPES)}",
            details={"questionType": data["questionType"]},
        )
    if "options" in data and data["options"] is not None and not isinstance(data["options"], list):
        raise ValidationError("options must be a list", details={"options": "list expected"})
    if "metadata" in data and not isinstance(data["metadata"] or {}, dict):
        raise ValidationError("metadata must be an object", details={"metadata": "object expected"})

    for field in QUESTION_EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ("section", "questionText"):
            value = str(value).strip()
        elif field == "metadata":
            value = dict(value or {})
        question[field] = value

    if "helpText" in data:
        question["metadata"] = {**(question.get("metadata") or {}), "infoTooltip": data["helpText"]}
    if question.get("questionType") == "deltaParent":
        question.setdefault("deltas", [])

    question["updatedBy"] = actor
    question["updatedAt"] = _now_iso()

    migration.questions = questions
    migration.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Question edited migration=%s id=%s by=%s", migration.id, question_id, actor)
    return question


def remove_question(migration: Migration, question_id: str) -> None:
    """Remove a question and renumber ``order`` on the rest from 1."""
    questions = copy.deepcopy(migration.questions or [])
    del questions[_find_question_index(questions, question_id)]
    for order, question in enumerate(questions, 1):
        question["order"] = order

    migration.questions = questions
    migration.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Question removed migration=%s id=%s", migration.id, question_id)


def reorder_questions(migration: Migration, question_ids) -> list[dict]:
    """Put the listed questions first, in the given order, and renumber.

    Questions left out of ``question_ids`` follow in their current order.
    """
    if not isinstance(question_ids, list):
        raise ValidationError("questionIds must be a list", details={"questionIds": "list expected"})

    questions = copy.deepcopy(migration.questions or [])
    by_id = {q.get("id"): q for q in questions}
    unknown = [qid for qid in question_ids if qid not in by_id]
    if unknown:
        raise ValidationError(
            f"Invalid question IDs: {', '.join(str(qid) for qid in unknown)}",
            details={"questionIds": unknown},
        )
    if len(set(question_ids)) != len(question_ids):
        raise ValidationError("questionIds contains duplicates", details={"questionIds": "duplicate id"})

    listed = set(question_ids)
    ordered = [by_id[qid] for qid in question_ids]
    ordered += [q for q in questions if q.get("id") not in listed]
    for order, question in enumerate(ordered, 1):
        question["order"] = order

    migration.questions = ordered
    migration.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Questions reordered migration=%s count=%d", migration.id, len(ordered))
    return ordered


# ══════════════════════════════════════════════════════════════════
# Delta items
# ══════════════════════════════════════════════════════════════════


def _find_delta_parent(questions: list[dict], parent_id: str) -> dict:
    parent = next((q for q in questions if q.get("id") == parent_id), None)
    if parent is None:
        raise NotFoundError(resource="Parent question", resource_id=parent_id)
    if parent.get("questionType") != "deltaParent":
        raise ValidationError(
            "Question is not a delta parent",
            details={"questionType": parent.get("questionType")},
        )
    return parent


def _validate_delta_fields(fields: dict) -> None:
    unknown = set(fields) - set(DELTA_FIELDS)
    if unknown:
        raise ValidationError("Unknown delta fields", details={f: "unknown" for f in sorted(unknown)})
    if "owner" in fields and fields["owner"] not in DELTA_OWNERS:
        raise ValidationError(
            f"owner must be one of {[o for o in DELTA_OWNERS if o]}",
            details={"owner": fields["owner"]},
        )
    if "migrated" in fields and fields["migrated"] not in (None, True, False):
        raise ValidationError("migrated must be true, false or null", details={"migrated": fields["migrated"]})


def add_delta(migration: Migration, parent_id: str, *, name: str | None, actor: str) -> dict:
    """Create a delta item from the parent's deltaTemplate."""
    questions = copy.deepcopy(migration.questions or [])
    parent = _find_delta_parent(questions, parent_id)
    deltas = parent.setdefault("deltas", [])

    template = (parent.get("metadata") or {}).get("deltaTemplate") or {}
    now = _now_iso()
    delta = {
        "id": f"delta-{uuid.uuid4().hex[:12]}",
        "name": name or f"Item {len(deltas) + 1}",
        "fields": {
            "runbook": template.get("runbook", ""),
            "migrated": template.get("migrated"),
            "owner": template.get("owner"),
            "date": template.get("date"),
            "notes": template.get("notes", ""),
            "complete": bool(template.get("complete", False)),
        },
        "createdBy": actor,
        "createdAt": now,
        "updatedAt": now,
    }
    deltas.append(delta)
    migration.questions = questions
    db.session.flush()
    logger.info("Delta added migration=%s parent=%s delta=%s", migration.id, parent_id, delta["id"])
    return delta


def update_delta(migration: Migration, parent_id: str, delta_id: str, data: dict) -> dict:
    """Update a delta item's name and/or fields (fields are merged)."""
    questions = copy.deepcopy(migration.questions or [])
    parent = _find_delta_parent(questions, parent_id)
    delta = next((d for d in parent.get("deltas") or [] if d.get("id") == delta_id), None)
    if delta is None:
        raise NotFoundError(resource="Delta item", resource_id=delta_id)

    if "name" in data:
        delta["name"] = str(data.get("name") or "").strip() or delta.get("name")
    if "fields" in data:
        fields = data.get("fields") or {}
        if not isinstance(fields, dict):
            raise ValidationError("fields must be an object", details={"fields": "object expected"})
        _validate_delta_fields(fields)
        delta["fields"] = {**(delta.get("fields") or {}), **fields}
    delta["updatedAt"] = _now_iso()

    migration.questions = questions
    db.session.flush()
    return delta


def remove_delta(migration: Migration, parent_id: str, delta_id: str) -> None:
    questions = copy.deepcopy(migration.questions or [])
    parent = _find_delta_parent(questions, parent_id)
    deltas = parent.get("deltas") or []
    remaining = [d for d in deltas if d.get("id") != delta_id]
    if len(remaining) == len(deltas):
        raise NotFoundError(resource="Delta item", resource_id=delta_id)
    parent["deltas"] = remaining
    migration.questions = questions
    db.session.flush()
    logger.info("Delta removed migration=%s parent=%s delta=%s", migration.id, parent_id, delta_id)


# ══════════════════════════════════════════════════════════════════
# Weekly notes
# ══════════════════════════════════════════════════════════════════


def _note_date(value, default: str) -> str:
    if value is None or value == "":
        return default
    parsed = parse_timestamp(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValidationError("Valid date is required", details={"date": value})
    return value


def _note_content(value) -> str:
    content = str(value or "").strip()
    if not content:
        raise ValidationError("Note content is required", details={"content": "required"})
    return content


def _find_note(notes: list[dict], note_id: str) -> dict:
    note = next((n for n in notes if n.get("id") == note_id), None)
    if note is None:
        raise NotFoundError(resource="Weekly note", resource_id=note_id)
    return note


def add_weekly_note(migration: Migration, data: dict, *, actor: str) -> dict:
    """Append a dated status note; ``date`` defaults to now."""
    content = _note_content(data.get("content"))
    now = _now_iso()
    note = {
        "id": f"note-{uuid.uuid4().hex[:12]}",
        "date": _note_date(data.get("date"), now),
        "content": content,
        "createdBy": actor,
        "createdAt": now,
        "updatedAt": now,
    }
    migration.weekly_notes = [*(migration.weekly_notes or []), note]
    migration.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Weekly note added migration=%s note=%s by=%s", migration.id, note["id"], actor)
    return note


def update_weekly_note(migration: Migration, note_id: str, data: dict) -> dict:
    notes = copy.deepcopy(migration.weekly_notes or [])
    note = _find_note(notes, note_id)
    if "content" in data:
        note["content"] = _note_content(data.get("content"))
    now = _now_iso()
    if "date" in data:
        note["date"] = _note_date(data.get("date"), now)
    note["updatedAt"] = now

    migration.weekly_notes = notes
    migration.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    return note


def remove_weekly_note(migration: Migration, note_id: str) -> None:
    notes = migration.weekly_notes or []
    _find_note(notes, note_id)
    migration.weekly_notes = [n for n in notes if n.get("id") != note_id]
    migration.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Weekly note removed migration=%s note=%s", migration.id, note_id)
