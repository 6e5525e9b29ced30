# passkit/init/error_handlers.py

"""
Error Handlers

Maps service-layer exceptions to JSON responses and keeps unexpected errors
from leaking internal details.
"""

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from passkit.services.base_service import ServiceError

logger = logging.getLogger(__name__)

# Safe error messages for production (don't leak internal details)
SAFE_ERROR_MESSAGES = {
    400: 'Bad Request',
    401: 'Unauthorized',
    403: 'Forbidden',
    404: 'Not Found',
    405: 'Method Not Allowed',
    409: 'Conflict',
    413: 'Request Too Large',
    415: 'Unsupported Media Type',
    422: 'Unprocessable Entity',
    429: 'Too Many Requests',
    500: 'Internal Server Error',
    502: 'Bad Gateway',
    503: 'Service Unavailable',
}


def _get_safe_error_message(status_code, default='An error occurred'):
    """Get a safe error message that doesn't expose internal details."""
    return SAFE_ERROR_MESSAGES.get(status_code, default)


def install_error_handlers(app):
    """
    Install custom error handlers with the Flask application.

    Args:
        app: The Flask application instance.
    """

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        """Expected business-rule failures carry their own message and status."""
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message}")
        elif error.status_code in (401, 403):
            logger.warning(f"{type(error).__name__}: {error.message}")
        else:
            logger.info(f"{type(error).__name__}: {error.message}")
        return jsonify({
            'message': error.message,
            'error_code': error.error_code,
        }), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({
            'message': _get_safe_error_message(error.code, error.name),
            'error_code': error.name.upper().replace(' ', '_'),
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """Handle unexpected exceptions with secure error messages."""
        # Log the full error internally (not exposed to user)
        app.logger.error(f"Unhandled Exception: {error}", exc_info=True)
        return jsonify({
            'message': _get_safe_error_message(500),
            'error_code': 'INTERNAL_ERROR',
        }), 500
