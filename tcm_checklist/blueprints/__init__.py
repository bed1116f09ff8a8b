"""
HTTP blueprints.

register_error_handlers() maps the service exception hierarchy to JSON
responses for every blueprint. Error bodies carry both ``error`` and
``message`` with the same text; clients display ``message``.
"""

import logging

from flask import jsonify

from tcm_checklist.core.exceptions import ConflictError, NotFoundError, ValidationError
from tcm_checklist.utils.helpers import error_body

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return jsonify(error_body(str(error))), 404

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        logger.info("Validation failed: %s details=%s", error, error.details)
        return jsonify(error_body(str(error), details=error.details)), 422

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return jsonify(error_body(str(error))), 409
