# FILE: results_portal/errors/handlers.py

from flask import current_app, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException
from results_portal import db, login
from results_portal.errors import bp
from results_portal.outcomes import ErrorKind

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.ELIGIBILITY: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTEGRITY: 409,
    ErrorKind.CONCURRENCY: 409,
}


def outcome_response(outcome, payload=None, status=200):
    """Render an Outcome: the given payload on success, the error body with its mapped status otherwise."""
    if not outcome.ok:
        return jsonify(outcome.to_error_dict()), STATUS_BY_KIND[outcome.error]
    return jsonify(payload if payload is not None else {'success': True}), status


def error_response(message, status=400):
    return jsonify({'error': message}), status


@login.unauthorized_handler
def unauthorized():
    return error_response('Authentication required', 401)


@bp.app_errorhandler(CSRFError)
def csrf_error(error):
    current_app.logger.warning(f"CSRF validation failed: {error.description}")
    return error_response(error.description, 400)


@bp.app_errorhandler(HTTPException)
def http_error(error):
    return error_response(error.description, error.code)


@bp.app_errorhandler(500)
def internal_error(error):
    db.session.rollback()
    current_app.logger.error(f"Unhandled error: {getattr(error, 'original_exception', error)}")
    return error_response('Internal server error', 500)
