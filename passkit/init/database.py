# passkit/init/database.py

"""
Database Initialization

Initialize SQLAlchemy and create the worker-side session factory.
"""

import logging
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


def init_database(app, db):
    """
    Initialize database for the Flask application.

    Args:
        app: The Flask application instance.
        db: The SQLAlchemy db instance.
    """
    db.init_app(app)

    # Create the engine and session factory within the app context
    with app.app_context():
        # Register models on the metadata
        from passkit import models  # noqa: F401

        engine = db.engine
        SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        app.SessionLocal = SessionLocal
        logger.debug(f"Database session factory bound to {engine.url.drivername}")
