"""
JSON error handling for the academy portal.

Every error leaves the application as ``{"message": ...}`` with the matching
status code. Unexpected exceptions are logged with their stack trace, stored
in error_logs and answered with a generic message.
"""

import traceback

from flask import jsonify, request
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from werkzeug.exceptions import HTTPException, ServiceUnavailable

from academy.extensions import db
from academy.models import ErrorLog


RETRY_AFTER_SECONDS = 5


def log_error_to_db(app, error_type=None, error_message=None, stack_trace=None):
    """
    Save error information to the database for later review.
    This function should not raise exceptions to avoid recursive error loops.
    """
    try:
        error_log = ErrorLog(
            error_type=error_type,
            error_message=error_message,
            request_path=request.path if request else None,
            request_method=request.method if request else None,
            user_agent=request.headers.get('User-Agent') if request else None,
            ip_address=request.remote_addr if request else None,
            stack_trace=stack_trace,
        )
        db.session.add(error_log)
        db.session.commit()
        return error_log.id
    except Exception as e:
        # Log to app logger but don't raise - we don't want error logging to cause more errors
        db.session.rollback()
        app.logger.error(f"Failed to log error to database: {str(e)}")
        return None


def _json_error(message, status, headers=None):
    response = jsonify({'message': message})
    response.status_code = status
    if headers:
        response.headers.update(headers)
    return response


def register_error_handlers(app):
    """Attach the JSON error handlers to the application."""

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if error.code >= 500:
            app.logger.error(f"{error.code} {error.name}: {request.method} {request.path}")
        elif error.code in (401, 403):
            app.logger.warning(f"{error.code} {error.name}: {request.method} {request.path}")
        headers = {}
        if isinstance(error, ServiceUnavailable):
            headers['Retry-After'] = str(RETRY_AFTER_SECONDS)
        return _json_error(error.description, error.code, headers)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        app.logger.warning(f"Integrity error on {request.method} {request.path}: {error.orig}")
        # SQLite: "FOREIGN KEY constraint failed"; PostgreSQL: "violates foreign key constraint"
        if 'foreign key' in str(error.orig).lower():
            return _json_error("This record is still referenced by other records.", 409)
        return _json_error("A record with these details already exists.", 409)

    @app.errorhandler(OperationalError)
    @app.errorhandler(PoolTimeoutError)
    def handle_store_unavailable(error):
        db.session.rollback()
        app.logger.error(f"Database unavailable on {request.method} {request.path}: {type(error).__name__}")
        return _json_error(
            "The service is temporarily unavailable. Please try again shortly.",
            503,
            {'Retry-After': str(RETRY_AFTER_SECONDS)},
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.exception("500 Internal Server Error occurred")
        log_error_to_db(
            app,
            error_type=type(error).__name__,
            error_message=str(error),
            stack_trace=traceback.format_exc(),
        )
        return _json_error("An unexpected error occurred. Please try again later.", 500)
