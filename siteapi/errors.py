# siteapi/errors.py
import logging
import traceback

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from siteapi.config import ConfigurationError
from siteapi.integrations.tables import TableStoreError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Error raised by handlers and services, rendered as a JSON response."""

    status_code = 400
    error = "Bad Request"

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload


class ValidationError(AppError):
    status_code = 400
    error = "Bad Request"


class AuthorizationError(AppError):
    status_code = 401
    error = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    error = "Not Found"


class ConflictError(AppError):
    status_code = 409
    error = "Conflict"


class UpstreamError(AppError):
    status_code = 502
    error = "Bad Gateway"


class ServiceUnavailableError(AppError):
    status_code = 503
    error = "Service Unavailable"


def register_error_handlers(app):
    """Register all error handlers for the application"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        log = logger.error if error.status_code >= 500 else logger.warning
        log(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")
        response = jsonify({
            "error": error.message,
            "message": error.message,
            "path": request.path,
            **(error.payload or {})
        })
        response.status_code = error.status_code
        return response

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """
        Handles known HTTP errors (404, 401, 403, etc.)
        """
        if e.code >= 500:
            logger.error(f"{e.name}: {e.description} - Path: {request.path}")
        elif e.code != 404:
            logger.warning(f"{e.name}: {e.description} - Path: {request.path}")
        response = jsonify({
            "error": e.name,
            "message": e.description,
            "path": request.path,
        })
        response.status_code = e.code
        return response

    @app.errorhandler(ConfigurationError)
    def configuration_error(error):
        logger.critical(f"Configuration error: {str(error)}")
        return jsonify({
            "error": "Service Unavailable",
            "message": str(error),
            "path": request.path,
        }), 503

    @app.errorhandler(TableStoreError)
    def table_store_error(error):
        logger.error(f"Data store error on {request.path}: {str(error)}")
        return jsonify({
            "error": "Bad Gateway",
            "message": "The data store is unavailable. Please try again later.",
            "path": request.path,
        }), 502

    @app.errorhandler(Exception)
    def handle_exception(e):
        """
        Handles all unexpected server errors
        Prevents stack trace leakage in production
        """
        logger.error(f"Unhandled exception on {request.path}: {str(e)}")
        logger.error(traceback.format_exc())

        return jsonify({
            "error": "Internal Server Error",
            "message": "Something went wrong. Please try again later.",
            "path": request.path,
        }), 500
