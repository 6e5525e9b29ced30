# passkit/core/__init__.py

"""
Core Application Module

This module initializes the core components of the application, including:
  - SQLAlchemy for ORM
  - Celery for asynchronous push delivery and bulk updates

It also provides a function to configure Celery with the Flask application context.
"""

from flask_sqlalchemy import SQLAlchemy
from celery import Celery
from celery import signals

# Initialize core components
db = SQLAlchemy()
celery = Celery('passkit')

# Make signals accessible from celery object
celery.signals = signals


def configure_celery(app):
    """
    Configure Celery to work with the Flask application context.

    This function updates the Celery configuration using the Flask app's configuration,
    attaches the Flask app to the Celery instance, and defines a custom Task base class
    to ensure that tasks run within the Flask application context.

    Args:
        app (Flask): The Flask application instance.

    Returns:
        Celery: The configured Celery instance.
    """
    from passkit.config.celery_config import CeleryConfig

    celery.config_from_object(CeleryConfig)
    celery.conf.update(
        broker_url=app.config.get('CELERY_BROKER_URL', app.config.get('REDIS_URL')),
        result_backend=app.config.get('CELERY_RESULT_BACKEND', app.config.get('REDIS_URL')),
        task_always_eager=app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        task_eager_propagates=app.config.get('CELERY_TASK_EAGER_PROPAGATES', False),
    )

    # Attach the Flask app to the Celery instance
    celery.flask_app = app

    # Define a custom Task base class to ensure tasks run within the Flask app context
    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    # Set the base Task class to the custom ContextTask
    celery.Task = ContextTask

    return celery
