"""
Shared blueprint helpers.

Provides:
  - db_commit_or_error(): commit with uniform error responses
  - current_actor(): who is recorded as updatedBy for this request
  - error_body(): the {"error", "message"} JSON error envelope
"""
import logging

from flask import current_app, jsonify, request

from tcm_checklist.models import db

logger = logging.getLogger(__name__)


def error_body(message: str, **extra) -> dict:
    return {"error": message, "message": message, **extra}


def current_actor() -> str:
    """Acting user for provenance fields: X-User-Email header, else DEFAULT_ACTOR."""
    email = (request.headers.get("X-User-Email") or "").strip().lower()
    return email or current_app.config["DEFAULT_ACTOR"]


def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure, ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return jsonify(error_body("Duplicate or constraint violation")), 409
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return jsonify(error_body("Database error")), 500
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return jsonify(error_body("Database error")), 500
