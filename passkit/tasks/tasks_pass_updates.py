# passkit/tasks/tasks_pass_updates.py

"""
Pass Update Delivery Tasks

One task per wallet channel so Apple and Google deliveries retry
independently:
- deliver_apple_update: silent APNs push to every registered device
- deliver_google_update: patch the Google Wallet object
"""

import logging
from typing import Dict, Any

from flask import current_app

from passkit.decorators import celery_task
from passkit.services.base_service import ExternalDeliveryError
from passkit.services.delivery_service import DeliveryDispatcher

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF = (30, 120, 600)


def _retry_policy(task):
    """Return (max_retries, countdown for the next retry, is this the last attempt)."""
    config = current_app.config
    max_retries = int(config.get('PUSH_MAX_RETRIES', 3))
    backoff = tuple(config.get('PUSH_RETRY_BACKOFF') or DEFAULT_BACKOFF)
    retries = task.request.retries or 0
    countdown = backoff[min(retries, len(backoff) - 1)]
    return max_retries, countdown, retries >= max_retries


def _summary(update, channel):
    if update is None:
        return {'success': False, 'error': 'Pass update not found'}
    return {
        'success': True,
        'pass_update_id': update.id,
        'status': getattr(update, f'{channel}_delivery_status'),
    }


@celery_task(
    name='passkit.tasks.tasks_pass_updates.deliver_apple_update',
    bind=True,
    soft_time_limit=120,
    time_limit=180,
)
def deliver_apple_update(self, session, pass_update_id: int, tenant_id: int) -> Dict[str, Any]:
    """
    Notify Apple devices that a pass changed.

    Args:
        session: Database session from decorator
        pass_update_id: PassUpdate to deliver
        tenant_id: Owner of the pass
    """
    max_retries, countdown, final_attempt = _retry_policy(self)
    try:
        update = DeliveryDispatcher(session).deliver_apple(pass_update_id, tenant_id, final_attempt=final_attempt)
    except ExternalDeliveryError as e:
        logger.warning(
            f"Apple delivery for pass update {pass_update_id} failed "
            f"(attempt {self.request.retries + 1}), retrying in {countdown}s: {e.message}"
        )
        raise self.retry(exc=e, countdown=countdown, max_retries=max_retries)
    return _summary(update, 'apple')


@celery_task(
    name='passkit.tasks.tasks_pass_updates.deliver_google_update',
    bind=True,
    soft_time_limit=60,
    time_limit=120,
)
def deliver_google_update(self, session, pass_update_id: int, tenant_id: int) -> Dict[str, Any]:
    """
    Push the pass's current data to Google Wallet.

    Args:
        session: Database session from decorator
        pass_update_id: PassUpdate to deliver
        tenant_id: Owner of the pass
    """
    max_retries, countdown, final_attempt = _retry_policy(self)
    try:
        update = DeliveryDispatcher(session).deliver_google(pass_update_id, tenant_id, final_attempt=final_attempt)
    except ExternalDeliveryError as e:
        logger.warning(
            f"Google delivery for pass update {pass_update_id} failed "
            f"(attempt {self.request.retries + 1}), retrying in {countdown}s: {e.message}"
        )
        raise self.retry(exc=e, countdown=countdown, max_retries=max_retries)
    return _summary(update, 'google')
