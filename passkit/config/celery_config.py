# passkit/config/celery_config.py

import os
from celery.schedules import crontab


class CeleryConfig:
    """
    Celery configuration for the application.

    This class defines settings including broker/backend, task registration,
    worker settings, serialization, queue configuration, task routing, and periodic task scheduling.
    """

    timezone = 'UTC'
    enable_utc = True

    # Redis Configuration
    redis_socket_timeout = 30
    redis_socket_connect_timeout = 5
    redis_retry_on_timeout = True

    # Broker and Backend Settings
    broker_url = os.getenv('CELERY_BROKER_URL', 'redis://redis:6379/0')
    broker_transport_options = {
        'visibility_timeout': 3600,  # 1 hour
        'socket_timeout': 30,
        'socket_connect_timeout': 5,
    }
    result_backend = os.getenv('CELERY_RESULT_BACKEND', 'redis://redis:6379/0')

    # Task Registration and Imports
    imports = (
        'passkit.tasks.tasks_pass_updates',
        'passkit.tasks.tasks_bulk_updates',
        'passkit.tasks.tasks_maintenance',
    )

    # Task Settings
    task_acks_late = True
    task_reject_on_worker_lost = True
    task_track_started = True
    task_time_limit = 30 * 60
    task_soft_time_limit = 15 * 60
    task_ignore_result = False
    task_default_retry_delay = 30
    task_max_retries = 3

    result_expires = 1800
    result_accept_content = ['json']

    # Worker Settings
    worker_prefetch_multiplier = 1
    worker_max_tasks_per_child = 100
    broker_connection_retry_on_startup = True

    # Serialization Settings
    accept_content = ['json']
    task_serializer = 'json'
    result_serializer = 'json'

    # Queue Configuration
    task_queues = {
        'push-notifications': {
            'exchange': 'push-notifications',
            'routing_key': 'push-notifications',
        },
        'bulk-updates': {
            'exchange': 'bulk-updates',
            'routing_key': 'bulk-updates',
        },
        'celery': {
            'exchange': 'celery',
            'routing_key': 'celery',
        },
    }

    # Task Routes
    task_routes = {
        'passkit.tasks.tasks_pass_updates.*': {'queue': 'push-notifications'},
        'passkit.tasks.tasks_bulk_updates.*': {'queue': 'bulk-updates'},
        'passkit.tasks.tasks_maintenance.*': {'queue': 'celery'},
    }

    # Beat Schedule: periodic tasks and their schedules
    beat_schedule = {
        'prune-pass-update-history': {
            'task': 'passkit.tasks.tasks_maintenance.prune_pass_update_history',
            'schedule': crontab(hour=3, minute=15),
            'options': {'queue': 'celery', 'expires': 3600},
        },
    }
