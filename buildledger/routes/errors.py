from __future__ import annotations

import traceback

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from buildledger.errors import BuildLedgerError
from buildledger.extensions import db

bp = Blueprint("errors", __name__)


def _format_stacktrace(error: BaseException | None) -> str:
    if error is None:
        return ""

    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


@bp.app_errorhandler(BuildLedgerError)
def handle_domain_error(error: BuildLedgerError):
    db.session.rollback()
    current_app.logger.warning(
        "Rejected %s %s: %s", request.method, request.path, error
    )
    return jsonify(error.to_dict()), error.status_code


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    if isinstance(error, HTTPException) and error.code != 500:
        return (
            jsonify({"error": error.description or error.name, "type": error.name}),
            error.code,
        )

    root_error: BaseException | None = getattr(error, "original_exception", None)
    if root_error is None or not isinstance(root_error, BaseException):
        root_error = error

    db.session.rollback()
    current_app.logger.exception("Unhandled exception", exc_info=error)

    payload = {
        "error": str(root_error) or "Internal Server Error",
        "type": type(root_error).__name__,
        "endpoint": request.endpoint,
        "path": request.path,
    }
    if current_app.debug or current_app.testing:
        payload["stacktrace"] = _format_stacktrace(root_error)
    return jsonify(payload), 500
