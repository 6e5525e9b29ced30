# passkit/init/extensions.py

"""
Flask Extensions Initialization

Initialize Flask-Migrate and Celery.
"""

import logging
from flask_migrate import Migrate

logger = logging.getLogger(__name__)

migrate = Migrate()


def init_extensions(app, db):
    """
    Initialize Flask extensions for the application.

    Args:
        app: The Flask application instance.
        db: The SQLAlchemy db instance.

    Returns:
        Migrate: the migrate extension
    """
    from passkit.core import configure_celery

    migrate.init_app(app, db)
    configure_celery(app)

    return migrate
