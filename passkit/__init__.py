# passkit/__init__.py

"""
Application Factory Module

Creates the Flask application for the pass update and redemption engine:
owner and device-service pass updates, scanner redemption, bulk update jobs
and the Apple Wallet web service.
"""

import logging

from flask import Flask

from passkit.core import db

logger = logging.getLogger(__name__)


def create_app(config_object='web_config.Config'):
    """
    Application factory function for creating a Flask app instance.

    Args:
        config_object: The configuration object to load (default is 'web_config.Config').

    Returns:
        A configured Flask application instance.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    # SECRET_KEY is mandatory
    if not app.config.get('SECRET_KEY'):
        raise RuntimeError('SECRET_KEY must be set')

    from passkit.init import (
        init_logging,
        init_redis,
        init_database,
        init_extensions,
        init_jwt,
        init_blueprints,
        install_error_handlers,
    )

    # Phase 1: Core setup
    init_logging(app)
    init_redis(app)
    init_database(app, db)

    # Phase 2: Extensions (migrations, Celery)
    init_extensions(app, db)

    # Phase 3: Authentication
    init_jwt(app)

    # Phase 4: Blueprints and error handling
    init_blueprints(app)
    install_error_handlers(app)

    logger.info("Application initialized")
    return app
