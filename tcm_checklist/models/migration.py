"""Migration document model.

One row per client engagement. ``client_info``, ``questions`` and
``weekly_notes`` are kept as JSON documents so the REST layer can hand them
to clients unchanged; the service always assigns fresh objects to those
columns because in-place JSON mutation is not tracked by SQLAlchemy.
"""

import uuid
from datetime import datetime, timezone

from tcm_checklist.models import db
from tcm_checklist.sync.answers import calculate_progress


def _uuid_hex():
    return uuid.uuid4().hex


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def question_to_wire(question: dict) -> dict:
    """Copy a stored question for API output; metadata.infoTooltip → helpText."""
    out = dict(question)
    tooltip = (out.get("metadata") or {}).get("infoTooltip")
    if tooltip:
        out["helpText"] = tooltip
    return out


def question_from_wire(question: dict) -> dict:
    """Copy an incoming question for storage; helpText → metadata.infoTooltip."""
    out = dict(question)
    help_text = out.pop("helpText", None)
    if help_text:
        out["metadata"] = {**(out.get("metadata") or {}), "infoTooltip": help_text}
    return out


class Migration(db.Model):
    """A Tableau Cloud migration checklist for one client."""

    __tablename__ = "migrations"

    id = db.Column(db.String(32), primary_key=True, default=_uuid_hex)
    client_name = db.Column(
        db.String(200), nullable=True, index=True,
        comment="Denormalised copy of clientInfo.clientName for list filtering",
    )
    client_info = db.Column(db.JSON, nullable=False, default=dict)
    questions = db.Column(db.JSON, nullable=False, default=list)
    additional_notes = db.Column(db.Text, nullable=False, default="")
    weekly_notes = db.Column(db.JSON, nullable=False, default=list)
    created_by = db.Column(db.String(255), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        db.Index("ix_migrations_created_by", "created_by"),
    )

    def calculate_progress(self) -> dict:
        return calculate_progress(self.questions or [])

    def to_dict(self, include_questions: bool = True) -> dict:
        """Serialize to the camelCase wire document used by clients."""
        data = {
            "id": self.id,
            "clientInfo": dict(self.client_info or {}),
            "additionalNotes": self.additional_notes or "",
            "weeklyNotes": list(self.weekly_notes or []),
            "createdBy": self.created_by,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "progress": self.calculate_progress(),
        }
        if include_questions:
            data["questions"] = [question_to_wire(q) for q in (self.questions or [])]
        return data

    def __repr__(self):
        return f"<Migration {self.id} {self.client_name!r}>"
