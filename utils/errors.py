import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from models import db

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    message = "Server error"

    def __init__(self, message=None, status_code=None, **extra):
        super().__init__(message or self.message)
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_response(self):
        return jsonify(error=self.message, **self.extra), self.status_code


class ValidationError(ApiError):
    """Malformed or missing input. Raised before any state is touched."""
    status_code = 400
    message = "Invalid input"


class AuthenticationFailure(ApiError):
    """Wrong credentials, locked account, bad reset token.

    Messages stay deliberately vague so responses can't be used to probe
    which accounts exist.
    """
    status_code = 401
    message = "Invalid credentials"


class Forbidden(ApiError):
    status_code = 403
    message = "Forbidden"


class RateExceeded(ApiError):
    status_code = 429
    message = "Too many requests. Try again later."

    def __init__(self, retry_after_seconds: int, message=None):
        super().__init__(message, retry_after_seconds=retry_after_seconds)
        self.retry_after_seconds = retry_after_seconds

    def to_response(self):
        resp, status = super().to_response()
        resp.headers["Retry-After"] = str(self.retry_after_seconds)
        return resp, status


class PersistenceFailure(ApiError):
    status_code = 500
    message = "Server error"


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def _api_error(exc):
        return exc.to_response()

    @app.errorhandler(SQLAlchemyError)
    def _db_error(exc):
        db.session.rollback()
        logger.exception("Database error while handling request")
        return PersistenceFailure().to_response()

    @app.errorhandler(404)
    def _not_found(exc):
        return jsonify(error="Not found"), 404

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify(error=exc.description or exc.name), exc.code

    @app.errorhandler(Exception)
    def _unhandled(exc):
        logger.exception("Unhandled error")
        return jsonify(error="Server error"), 500
