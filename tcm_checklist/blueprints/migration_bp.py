"""Migration checklist blueprint.

Endpoint groups
───────────────
  Migrations   GET    /migrations                                   List (no questions)
               POST   /migrations                                   Create from template
               GET    /migrations/<mid>                             Get document
               PUT    /migrations/<mid>                             Save clientInfo/questions
               DELETE /migrations/<mid>                             Delete
  Questions    POST   /migrations/<mid>/questions                   Add question
               PUT    /migrations/<mid>/questions/reorder           Reorder (questionIds)
               PUT    /migrations/<mid>/questions/<qid>             Edit question structure
               DELETE /migrations/<mid>/questions/<qid>             Remove question
  Deltas       POST   /migrations/<mid>/questions/<qid>/deltas      Add delta item
               PUT    /migrations/<mid>/questions/<qid>/deltas/<did>
               DELETE /migrations/<mid>/questions/<qid>/deltas/<did>
  Notes        POST   /migrations/<mid>/weekly-notes                Add weekly note
               PUT    /migrations/<mid>/weekly-notes/<nid>
               DELETE /migrations/<mid>/weekly-notes/<nid>
  Export       GET    /migrations/<mid>/export.xlsx                 Excel workbook

The acting user (updatedBy / createdBy) is read from ``X-User-Email``.
"""

import logging
import re
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request, send_file

from tcm_checklist.models.migration import question_to_wire
from tcm_checklist.services import migration_service
from tcm_checklist.services.export_service import export_migration_xlsx
from tcm_checklist.utils.helpers import current_actor, db_commit_or_error, error_body

logger = logging.getLogger(__name__)

migration_bp = Blueprint("migrations", __name__, url_prefix="/api/v1")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ══════════════════════════════════════════════════════════════════
# 1.  Migrations
# ══════════════════════════════════════════════════════════════════

@migration_bp.route("/migrations", methods=["GET"])
def list_migrations():
    """List migrations with progress; ``?clientName=`` filters by substring."""
    items = migration_service.list_migrations(client_name=request.args.get("clientName"))
    return jsonify({
        "items": [m.to_dict(include_questions=False) for m in items],
        "total": len(items),
    })


@migration_bp.route("/migrations", methods=["POST"])
def create_migration():
    data = request.get_json(silent=True) or {}
    migration = migration_service.create_migration(
        client_info=data.get("clientInfo"),
        actor=current_actor(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"migration": migration.to_dict()}), 201


@migration_bp.route("/migrations/<migration_id>", methods=["GET"])
def get_migration(migration_id):
    migration = migration_service.get_migration(migration_id)
    return jsonify({"migration": migration.to_dict()})


@migration_bp.route("/migrations/<migration_id>", methods=["PUT"])
def update_migration(migration_id):
    """Save a client document. Provenance is stamped per changed question."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify(error_body("Request body must be a JSON object")), 400

    migration = migration_service.get_migration(migration_id)
    migration_service.update_migration(migration, data, actor=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"migration": migration.to_dict()})


@migration_bp.route("/migrations/<migration_id>", methods=["DELETE"])
def delete_migration(migration_id):
    migration = migration_service.get_migration(migration_id)
    migration_service.delete_migration(migration)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Migration deleted", "id": migration_id})


# ══════════════════════════════════════════════════════════════════
# 2.  Questions
# ══════════════════════════════════════════════════════════════════

@migration_bp.route("/migrations/<migration_id>/questions", methods=["POST"])
def add_question(migration_id):
    data = request.get_json(silent=True) or {}
    migration = migration_service.get_migration(migration_id)
    question = migration_service.add_question(migration, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"question": question}), 201


# Registered before /questions/<question_id> so "reorder" is never taken as an id
@migration_bp.route("/migrations/<migration_id>/questions/reorder", methods=["PUT"])
def reorder_questions(migration_id):
    """Body: ``{"questionIds": [...]}``; returns the reordered document."""
    data = request.get_json(silent=True) or {}
    migration = migration_service.get_migration(migration_id)
    migration_service.reorder_questions(migration, data.get("questionIds"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"migration": migration.to_dict()})


@migration_bp.route("/migrations/<migration_id>/questions/<question_id>", methods=["PUT"])
def update_question(migration_id, question_id):
    data = request.get_json(silent=True) or {}
    migration = migration_service.get_migration(migration_id)
    question = migration_service.update_question(migration, question_id, data, actor=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"question": question_to_wire(question)})


@migration_bp.route("/migrations/<migration_id>/questions/<question_id>", methods=["DELETE"])
def remove_question(migration_id, question_id):
    migration = migration_service.get_migration(migration_id)
    migration_service.remove_question(migration, question_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Question removed", "id": question_id})


# ══════════════════════════════════════════════════════════════════
# 3.  Delta items
# ══════════════════════════════════════════════════════════════════

@migration_bp.route("/migrations/<migration_id>/questions/<question_id>/deltas", methods=["POST"])
def add_delta(migration_id, question_id):
    data = request.get_json(silent=True) or {}
    migration = migration_service.get_migration(migration_id)
    delta = migration_service.add_delta(
        migration, question_id,
        name=(data.get("name") or "").strip() or None,
        actor=current_actor(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"delta": delta}), 201


@migration_bp.route(
    "/migrations/<migration_id>/questions/<question_id>/deltas/<delta_id>", methods=["PUT"],
)
def update_delta(migration_id, question_id, delta_id):
    data = request.get_json(silent=True) or {}
    migration = migration_service.get_migration(migration_id)
    delta = migration_service.update_delta(migration, question_id, delta_id, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"delta": delta})


@migration_bp.route(
    "/migrations/<migration_id>/questions/<question_id>/deltas/<delta_id>", methods=["DELETE"],
)
def remove_delta(migration_id, question_id, delta_id):
    migration = migration_service.get_migration(migration_id)
    migration_service.remove_delta(migration, question_id, delta_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Delta removed", "id": delta_id})


# ══════════════════════════════════════════════════════════════════
# 4.  Weekly notes
# ══════════════════════════════════════════════════════════════════

@migration_bp.route("/migrations/<migration_id>/weekly-notes", methods=["POST"])
def add_weekly_note(migration_id):
    data = request.get_json(silent=True) or {}
    migration = migration_service.get_migration(migration_id)
    note = migration_service.add_weekly_note(migration, data, actor=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"note": note}), 201


@migration_bp.route("/migrations/<migration_id>/weekly-notes/<note_id>", methods=["PUT"])
def update_weekly_note(migration_id, note_id):
    data = request.get_json(silent=True) or {}
    migration = migration_service.get_migration(migration_id)
    note = migration_service.update_weekly_note(migration, note_id, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"note": note})


@migration_bp.route("/migrations/<migration_id>/weekly-notes/<note_id>", methods=["DELETE"])
def remove_weekly_note(migration_id, note_id):
    migration = migration_service.get_migration(migration_id)
    migration_service.remove_weekly_note(migration, note_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Weekly note removed", "id": note_id})


# ══════════════════════════════════════════════════════════════════
# 5.  Export
# ══════════════════════════════════════════════════════════════════

@migration_bp.route("/migrations/<migration_id>/export.xlsx", methods=["GET"])
def export_migration(migration_id):
    """Download the checklist as an Excel workbook."""
    migration = migration_service.get_migration(migration_id)
    buf = export_migration_xlsx(migration.to_dict())
    client = re.sub(r"[^A-Za-z0-9_-]+", "_", migration.client_name or "migration").strip("_")
    filename = f"{client}_checklist_{datetime.now(timezone.utc).strftime('%Y%m%d')}.xlsx"
    return send_file(buf, download_name=filename, mimetype=XLSX_MIMETYPE, as_attachment=True)
