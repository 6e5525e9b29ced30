# passkit/init/__init__.py

"""
Application Initialization Package

This package contains modular initialization functions for the Flask application.
Each module handles a specific aspect of application setup.
"""

from passkit.init.logging import init_logging
from passkit.init.redis import init_redis
from passkit.init.database import init_database
from passkit.init.extensions import init_extensions
from passkit.init.jwt import init_jwt
from passkit.init.blueprints import init_blueprints
from passkit.init.error_handlers import install_error_handlers

__all__ = [
    'init_logging',
    'init_redis',
    'init_database',
    'init_extensions',
    'init_jwt',
    'init_blueprints',
    'install_error_handlers',
]
