# passkit/tasks/tasks_bulk_updates.py

"""
Bulk Update Tasks

Runs a BulkUpdate job created by BulkUpdateCoordinator.start_bulk_update.
"""

import logging
from typing import Dict, Any

from passkit.decorators import celery_task
from passkit.services.bulk_update_service import BulkUpdateCoordinator

logger = logging.getLogger(__name__)


@celery_task(
    name='passkit.tasks.tasks_bulk_updates.process_bulk_update',
    bind=True,
    soft_time_limit=25 * 60,
    time_limit=30 * 60,
)
def process_bulk_update(self, session, bulk_update_id: int, tenant_id: int) -> Dict[str, Any]:
    """
    Apply a bulk update to every matching pass.

    Args:
        session: Database session from decorator
        bulk_update_id: The BulkUpdate job
        tenant_id: Owner of the job
    """
    logger.info(f"Processing bulk update {bulk_update_id} for tenant {tenant_id}")
    bulk_update = BulkUpdateCoordinator(session).process_bulk_update(bulk_update_id, tenant_id)
    if bulk_update is None:
        return {'success': False, 'bulk_update_id': bulk_update_id, 'error': 'Bulk update not found'}
    return {
        'success': True,
        'bulk_update_id': bulk_update.id,
        'status': bulk_update.status,
        'processed': bulk_update.processed_count,
        'failed': bulk_update.failed_count,
    }
