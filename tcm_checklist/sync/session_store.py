"""
Migration session store.

Holds the one migration document being edited, applies local edits to it
and reconciles it with the checklist service through explicit save/reload.

Rules the store keeps:
  - Local edits (update_question, update_client_info, update_delta) are
    synchronous, copy-on-write and mark the session dirty. They also clear
    a stale save error so a fresh edit is never blocked by an old banner.
  - save() pushes exactly {clientInfo, questions}. On success the server's
    document replaces the local one wholesale; that is how server-assigned
    updatedAt/updatedBy reach the client. On failure dirty stays set so the
    caller can retry without re-editing.
  - Remote failures never raise past the store. They land in load_error /
    save_error with the server's message, or a fallback text.
  - Concurrent save() calls are not serialised; the last response wins.
  - load() responses are generation-tagged; a response for a superseded
    load() is discarded.

The store applies no confirmation gate before overwriting an answer; callers
check ``requires_change_confirmation`` from ``tcm_checklist.sync.answers``
first.

Usage:
    gateway = ChecklistGateway.from_env()
    with MigrationSession(gateway, migration_id) as session:
        session.load()
        session.update_question("q12", {"answer": "Yes", "completed": True})
        result = session.save()
        if not result.success:
            print(result.error)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone

from tcm_checklist.sync.answers import calculate_progress
from tcm_checklist.sync.dates import normalize_document_dates

logger = logging.getLogger(__name__)

LOAD_FALLBACK_MESSAGE = "Failed to load migration"
SAVE_FALLBACK_MESSAGE = "Failed to save migration"
ADD_DELTA_FALLBACK_MESSAGE = "Failed to add delta"
REMOVE_DELTA_FALLBACK_MESSAGE = "Failed to remove delta"


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a remote write, returned instead of raising."""

    success: bool
    error: str | None = None


class MigrationSession:
    """Working replica of one migration document."""

    def __init__(self, gateway, migration_id: str | None = None) -> None:
        self.gateway = gateway
        self.migration_id = migration_id or None

        self.document: dict | None = None
        self.loading = False
        self.load_error: str | None = None
        self.saving = False
        self.save_error: str | None = None
        self.dirty = False
        self.last_saved_at: datetime | None = None

        self._lock = threading.RLock()
        self._load_generation = 0
        self._closed = False

    # ── Remote: load ─────────────────────────────────────────────────────────

    def load(self, migration_id: str | None = None) -> bool:
        """Fetch the bound migration (binding ``migration_id`` first when given).

        Returns True when a document was loaded. With no id bound this is a
        no-op: nothing is fetched and ``loading`` is False.
        """
        with self._lock:
            if migration_id and migration_id != self.migration_id:
                self._rebind(migration_id)
            if not self.migration_id:
                self.loading = False
                return False
            self._load_generation += 1
            generation = self._load_generation
            bound_id = self.migration_id
            self.loading = True
            self.load_error = None

        result = self._call("fetch_migration", bound_id)

        with self._lock:
            if self._closed or generation != self._load_generation:
                logger.debug("Discarding stale load response migration=%s", bound_id)
                return False
            self.loading = False
            if result is not None and result.ok:
                self.document = result.data
                self.dirty = False
                self.load_error = None
                logger.debug("Loaded migration=%s", bound_id)
                return True
            self.load_error = self._failure_message(result, LOAD_FALLBACK_MESSAGE)
            logger.warning("Load failed migration=%s error=%s", bound_id, self.load_error)
            return False

    def refetch(self) -> bool:
        """Reload the bound migration; a no-op when no id is bound."""
        return self.load()

    # ── Local edits ──────────────────────────────────────────────────────────

    def update_question(self, question_id: str, updates: dict) -> None:
        """Shallow-merge ``updates`` into the question whose ``id`` matches.

        Matching is by ``id`` only; use the resolver to turn a questionKey
        into an id first. Other questions keep their identity.
        """
        with self._lock:
            doc = self.document
            if doc is None:
                return
            questions = [
                {**q, **updates} if q.get("id") == question_id else q
                for q in doc.get("questions") or []
            ]
            self.document = {**doc, "questions": questions}
            self._mark_dirty()

    def update_client_info(self, field: str, value) -> None:
        """Set one clientInfo field."""
        with self._lock:
            doc = self.document
            if doc is None:
                return
            client_info = {**(doc.get("clientInfo") or {}), field: value}
            self.document = {**doc, "clientInfo": client_info}
            self._mark_dirty()

    def update_delta(self, parent_id: str, delta_id: str, updates: dict) -> None:
        """Shallow-merge ``updates`` into one delta item of a deltaParent question."""
        with self._lock:
            doc = self.document
            if doc is None:
                return
            questions = []
            for q in doc.get("questions") or []:
                if q.get("id") == parent_id and q.get("deltas"):
                    q = {
                        **q,
                        "deltas": [
                            {**d, **updates} if d.get("id") == delta_id else d
                            for d in q["deltas"]
                        ],
                    }
                questions.append(q)
            self.document = {**doc, "questions": questions}
            self._mark_dirty()

    # ── Remote: save ─────────────────────────────────────────────────────────

    def save(self) -> SaveResult | None:
        """Push clientInfo and questions; None when no document is loaded."""
        with self._lock:
            doc = self.document
            if doc is None or not self.migration_id:
                return None
            bound_id = self.migration_id
            payload = {
                "clientInfo": doc.get("clientInfo"),
                "questions": doc.get("questions"),
            }
            self.saving = True

        try:
            result = self._call("save_migration", bound_id, payload)
        finally:
            with self._lock:
                self.saving = False

        with self._lock:
            if result is not None and result.ok:
                if self._closed:
                    return SaveResult(success=True)
                if result.data is not None:
                    self.document = result.data
                self.dirty = False
                self.save_error = None
                self.last_saved_at = datetime.now(timezone.utc)
                logger.info("Saved migration=%s", bound_id)
                return SaveResult(success=True)

            message = self._failure_message(result, SAVE_FALLBACK_MESSAGE)
            if not self._closed:
                self.save_error = message
            logger.warning("Save failed migration=%s error=%s", bound_id, message)
            return SaveResult(success=False, error=message)

    def retry(self) -> SaveResult | None:
        """Same as save(); exists for the retry affordance of the status indicator."""
        return self.save()

    # ── Remote: delta items ──────────────────────────────────────────────────

    def add_delta(self, parent_id: str, name: str | None = None) -> SaveResult:
        """Create a delta item on the server and append it to the local parent.

        Pending local edits are kept; the dirty flag is not touched.
        """
        with self._lock:
            if self.document is None or not self.migration_id:
                return SaveResult(success=False, error="No migration loaded")
            bound_id = self.migration_id

        result = self._call("add_delta", bound_id, parent_id, name)
        if result is None or not result.ok:
            message = self._failure_message(result, ADD_DELTA_FALLBACK_MESSAGE)
            logger.warning("Add delta failed migration=%s parent=%s error=%s", bound_id, parent_id, message)
            return SaveResult(success=False, error=message)

        delta = result.data
        with self._lock:
            if not self._closed and self.document is not None and delta:
                self.document = {
                    **self.document,
                    "questions": [
                        {**q, "deltas": [*(q.get("deltas") or []), delta]}
                        if q.get("id") == parent_id else q
                        for q in self.document.get("questions") or []
                    ],
                }
        logger.info("Added delta migration=%s parent=%s", bound_id, parent_id)
        return SaveResult(success=True)

    def remove_delta(self, parent_id: str, delta_id: str) -> SaveResult:
        """Delete a delta item on the server and drop it from the local parent."""
        with self._lock:
            if self.document is None or not self.migration_id:
                return SaveResult(success=False, error="No migration loaded")
            bound_id = self.migration_id

        result = self._call("remove_delta", bound_id, parent_id, delta_id)
        if result is None or not result.ok:
            message = self._failure_message(result, REMOVE_DELTA_FALLBACK_MESSAGE)
            logger.warning("Remove delta failed migration=%s delta=%s error=%s", bound_id, delta_id, message)
            return SaveResult(success=False, error=message)

        with self._lock:
            if not self._closed and self.document is not None:
                self.document = {
                    **self.document,
                    "questions": [
                        {**q, "deltas": [d for d in q.get("deltas") or [] if d.get("id") != delta_id]}
                        if q.get("id") == parent_id else q
                        for q in self.document.get("questions") or []
                    ],
                }
        logger.info("Removed delta migration=%s delta=%s", bound_id, delta_id)
        return SaveResult(success=True)

    # ── Derived state ────────────────────────────────────────────────────────

    @property
    def save_status(self) -> str:
        """Status indicator: saving, error, unsaved, saved or idle (in that precedence)."""
        if self.saving:
            return "saving"
        if self.save_error:
            return "error"
        if self.dirty:
            return "unsaved"
        if self.last_saved_at:
            return "saved"
        return "idle"

    @property
    def progress(self) -> dict:
        return calculate_progress((self.document or {}).get("questions"))

    @property
    def editable_document(self) -> dict | None:
        """The document with clientInfo dates as YYYY-MM-DD, for form binding."""
        return normalize_document_dates(self.document)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Dispose the session; responses that arrive afterwards are dropped."""
        with self._lock:
            self._closed = True
            self._load_generation += 1

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "MigrationSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Internals ────────────────────────────────────────────────────────────

    def _rebind(self, migration_id: str) -> None:
        self.migration_id = migration_id
        self.document = None
        self.dirty = False
        self.load_error = None
        self.save_error = None
        self.last_saved_at = None

    def _mark_dirty(self) -> None:
        self.dirty = True
        self.save_error = None

    def _call(self, operation: str, *args):
        """Invoke a gateway operation; an unexpected exception becomes a None result."""
        try:
            return getattr(self.gateway, operation)(*args)
        except Exception:
            logger.exception("Gateway %s raised for migration=%s", operation, self.migration_id)
            return None

    @staticmethod
    def _failure_message(result, fallback: str) -> str:
        message = getattr(result, "message", None) if result is not None else None
        return message or fallback
