# lessonhub/error_handlers.py
import traceback
import logging
from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from lessonhub.errors import AppError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register the single boundary that renders every error as JSON"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            logger.error(
                f"{error.__class__.__name__}: {error.message} - Path: {request.path}",
                exc_info=error,
            )
        else:
            logger.warning(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")

        body = error.to_dict()
        if app.config.get("DEBUG", False):
            body["error"] = error.__class__.__name__
        return jsonify(body), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """
        Handles werkzeug HTTP errors (404 for unknown routes, 405, 429, ...)
        """
        if e.code == 404:
            logger.info(f"Not found: {request.path}")
        else:
            logger.warning(f"{e.name}: {e.description} - Path: {request.path}")

        message = e.description
        if e.code == 404:
            message = "Route not found"
        elif e.code == 429:
            message = "Too many requests, please try again later"
        return jsonify({"success": False, "message": message}), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        """
        Handles all unexpected server errors.
        Stack traces are only returned in debug mode.
        """
        logger.error(f"Unhandled exception - Path: {request.path}", exc_info=e)

        body = {"success": False, "message": "Internal server error"}
        if app.config.get("DEBUG", False):
            body["error"] = str(e)
            body["traceback"] = traceback.format_exception(type(e), e, e.__traceback__)
        return jsonify(body), 500
