# passkit/init/jwt.py

"""
JWT Initialization

Initialize Flask-JWT-Extended with custom error handlers.
"""

import logging
from flask import jsonify

logger = logging.getLogger(__name__)


def init_jwt(app):
    """
    Initialize JWT for owner API authentication.

    Args:
        app: The Flask application instance.

    Returns:
        The JWTManager instance.
    """
    from flask_jwt_extended import JWTManager

    jwt = JWTManager(app)

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        """Handle expired JWT tokens."""
        logger.warning(f"JWT token expired for user: {jwt_payload.get('sub', 'unknown')}")
        return jsonify({
            'message': 'Token has expired',
            'error_code': 'TOKEN_EXPIRED'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        """Handle invalid JWT tokens."""
        logger.warning(f"Invalid JWT token: {error}")
        return jsonify({
            'message': 'Invalid token',
            'error_code': 'INVALID_TOKEN'
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        """Handle missing JWT tokens."""
        logger.debug(f"Missing JWT token: {error}")
        return jsonify({
            'message': 'Unauthenticated.',
            'error_code': 'MISSING_TOKEN'
        }), 401

    return jwt
