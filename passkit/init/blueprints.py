# passkit/init/blueprints.py

"""
Blueprint Registration

Register all Flask blueprints.
"""

import logging

logger = logging.getLogger(__name__)


def init_blueprints(app):
    """
    Register blueprints with the Flask application.

    Args:
        app: The Flask application instance.
    """
    from passkit.api import passes_bp, bulk_updates_bp, scanner_bp, apple_webservice_bp

    for blueprint in (passes_bp, bulk_updates_bp, scanner_bp, apple_webservice_bp):
        app.register_blueprint(blueprint)
        logger.debug(f"Registered blueprint {blueprint.name}")
