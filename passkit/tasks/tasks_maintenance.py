# passkit/tasks/tasks_maintenance.py

"""
Maintenance Tasks Module

Periodic housekeeping, scheduled through CeleryConfig.beat_schedule:
- prune_pass_update_history: drop PassUpdate rows past the retention window
"""

import logging

from flask import current_app

from passkit.decorators import celery_task
from passkit.repositories import PassUpdateRepository

logger = logging.getLogger(__name__)


@celery_task(name='passkit.tasks.tasks_maintenance.prune_pass_update_history', bind=True)
def prune_pass_update_history(self, session):
    """Delete pass update history older than PASS_UPDATE_RETENTION_DAYS."""
    days = int(current_app.config.get('PASS_UPDATE_RETENTION_DAYS', 90))
    deleted = PassUpdateRepository(session).prune_older_than(days)
    logger.info(f"Pruned {deleted} pass update rows older than {days} days")
    return {'success': True, 'deleted': deleted, 'retention_days': days}
