import logging

from flask import jsonify
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base error carrying an HTTP status and a user-facing message"""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self):
        return {"message": self.message}


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid request"


class InvalidOTPError(ValidationError):
    message = "Invalid or expired OTP"


class Unauthorized(ApiError):
    status_code = 401
    message = "Access token required"


class Forbidden(ApiError):
    status_code = 403
    message = "Access denied"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class Conflict(ApiError):
    # The public API reports duplicates as plain 400s
    status_code = 400
    message = "Resource already exists"


class PreconditionFailed(ApiError):
    status_code = 400
    message = "Precondition failed"


class ServiceUnavailable(ApiError):
    status_code = 503
    message = "Service temporarily unavailable"


class EmailDeliveryError(ServiceUnavailable):
    message = "Failed to send email. Please try again."


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            logger.error("❌ %s: %s", type(error).__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(ConnectionFailure)
    @app.errorhandler(ServerSelectionTimeoutError)
    def handle_database_down(error):
        logger.error("❌ Database unavailable: %s", error)
        return jsonify({"message": "Database not available. Please try again later."}), 503

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if error.code == 404:
            return jsonify({"message": "Route not found"}), 404
        return jsonify({"message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        logger.exception("❌ Unhandled error: %s", error)
        body = {"message": "Internal server error"}
        if app.config.get("APP_ENV") != "production":
            body["error"] = str(error)
        return jsonify(body), 500
