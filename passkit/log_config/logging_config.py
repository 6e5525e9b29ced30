# passkit/log_config/logging_config.py

"""
Logging configuration for the application.

This configuration is used to initialize Python's logging module with a
dictionary-based setup. It defines formatters, handlers, and loggers for
the update, delivery and scanner paths.

Uses RotatingFileHandler to automatically manage log file sizes and prevent
unlimited growth.
"""

import logging.handlers

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,

    # Formatters define the layout of the log messages.
    'formatters': {
        'detailed': {
            'format': '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
        },
        'simple': {
            'format': '%(asctime)s [%(levelname)s] %(message)s'
        },
        'focused': {
            'format': '%(asctime)s [%(levelname)s] %(name)s - %(message)s'
        }
    },

    # Handlers specify where log messages are sent (e.g., console, files).
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
            'level': 'INFO',
        },
        'db_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': 'logs/db_operations.log',
            'formatter': 'detailed',
            'level': 'ERROR',
            'maxBytes': 50485760,   # 50MB
            'backupCount': 3,
            'encoding': 'utf-8'
        },
        'push_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': 'logs/push_delivery.log',
            'formatter': 'focused',
            'level': 'INFO',
            'maxBytes': 26214400,   # 25MB
            'backupCount': 3,
            'encoding': 'utf-8'
        },
        'scanner_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': 'logs/scanner.log',
            'formatter': 'focused',
            'level': 'INFO',
            'maxBytes': 10485760,   # 10MB
            'backupCount': 3,
            'encoding': 'utf-8'
        },
        'errors_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': 'logs/errors.log',
            'formatter': 'detailed',
            'level': 'WARNING',
            'maxBytes': 26214400,   # 25MB
            'backupCount': 3,
            'encoding': 'utf-8'
        }
    },

    # Loggers define logging behavior for specific modules or components.
    'loggers': {
        'sqlalchemy.engine': {
            'handlers': ['db_file'],
            'level': 'ERROR',
            'propagate': False
        },
        'passkit.core.session_manager': {
            'handlers': ['db_file', 'errors_file'],
            'level': 'ERROR',
            'propagate': False
        },
        'passkit.services.push_service': {
            'handlers': ['console', 'push_file'],
            'level': 'INFO',
            'propagate': False
        },
        'passkit.services.delivery_service': {
            'handlers': ['console', 'push_file', 'errors_file'],
            'level': 'INFO',
            'propagate': False
        },
        'passkit.services.redemption_service': {
            'handlers': ['console', 'scanner_file'],
            'level': 'INFO',
            'propagate': False
        },
        'passkit.api.apple_webservice': {
            'handlers': ['console', 'push_file'],
            'level': 'INFO',
            'propagate': False
        },
        'passkit.tasks': {
            'handlers': ['console', 'errors_file'],
            'level': 'INFO',
            'propagate': False
        },
        'werkzeug': {
            'handlers': ['console'],
            'level': 'ERROR',
            'propagate': False
        }
    },

    # The root logger catches all messages not handled by other loggers.
    'root': {
        'handlers': ['console', 'errors_file'],
        'level': 'WARNING',
    }
}
