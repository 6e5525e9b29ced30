# passkit/services/bulk_update_service.py

"""
Bulk Update Coordinator

Applies one field change to every matching pass of a template as a
background job. Each pass goes through PassUpdateService, so bulk updates get
the same validation, history and delivery as single updates.
"""

import logging
from datetime import datetime
from typing import Optional

from flask import current_app
from celery.exceptions import SoftTimeLimitExceeded

from passkit.models import BulkUpdate, BulkUpdateStatus, UpdateSource, PassStatus
from passkit.repositories import (
    BulkUpdateRepository, PassRepository, PassUpdateRepository,
    PassTemplateRepository, UserRepository,
)
from passkit.services.base_service import (
    BaseService, ServiceError, ValidationError, NotFoundError,
    AuthorizationError, StateConflictError, ExternalDeliveryError,
)
from passkit.services.pass_update_service import PassUpdateService, MAX_FIELD_KEY_LENGTH, DEFAULT_MAX_PASS_DATA_BYTES
from passkit.utils.rate_limiter import PushRateLimiter

logger = logging.getLogger(__name__)

ALLOWED_FILTERS = {
    'status': {PassStatus.ACTIVE.value},
    'platform': {'apple', 'google'},
}


class BulkUpdateCoordinator(BaseService):

    def __init__(self, session, update_service: Optional[PassUpdateService] = None):
        super().__init__(session)
        self.bulk_updates = BulkUpdateRepository(session)
        self.passes = PassRepository(session)
        self.pass_updates = PassUpdateRepository(session)
        self.templates = PassTemplateRepository(session)
        self.users = UserRepository(session)
        self.update_service = update_service or PassUpdateService(session)

    # ==================== Validation ====================

    def _validate_filters(self, filters) -> dict:
        if filters is None:
            return {}
        if not isinstance(filters, dict):
            raise ValidationError("filters must be an object.", 'INVALID_FILTERS')
        cleaned = {}
        for key, value in filters.items():
            if value in (None, ''):
                continue
            if key not in ALLOWED_FILTERS:
                raise ValidationError(f"Unsupported filter: {key}", 'INVALID_FILTERS')
            if value not in ALLOWED_FILTERS[key]:
                raise ValidationError(f"The selected filters.{key} is invalid.", 'INVALID_FILTERS')
            cleaned[key] = value
        return cleaned

    def _validate_field(self, template, field_key, field_value):
        self._validate_required(field_key, 'field_key')
        if not isinstance(field_key, str) or len(field_key) > MAX_FIELD_KEY_LENGTH:
            raise ValidationError("field_key must be a string of at most 100 characters.", 'INVALID_FIELD_KEY')
        allowed = template.field_keys
        if allowed and field_key not in allowed:
            raise ValidationError(f"Unknown field: {field_key}", 'UNKNOWN_FIELD')

        if field_value is None:
            raise ValidationError("field_value is required", 'MISSING_FIELD_VALUE')
        if isinstance(field_value, (int, float)) and not isinstance(field_value, bool):
            field_value = str(field_value)
        if not isinstance(field_value, str):
            raise ValidationError("field_value must be a string.", 'INVALID_FIELD_VALUE')
        max_bytes = int(current_app.config.get('PASS_DATA_MAX_BYTES', DEFAULT_MAX_PASS_DATA_BYTES))
        if len(field_value.encode('utf-8')) > max_bytes:
            raise ValidationError(f"field_value may not exceed {max_bytes} bytes.", 'PASS_DATA_TOO_LARGE')
        return field_key, field_value

    # ==================== Operations ====================

    def start_bulk_update(self, tenant_id: int, template_id, field_key, field_value, filters=None) -> BulkUpdate:
        """
        Create a pending bulk update and queue it.

        Raises:
            ValidationError: bad template, field or filters
            StateConflictError: a bulk update for the template is already in flight
        """
        self._log_operation_start('start_bulk_update', tenant_id=tenant_id, template_id=template_id)

        template_id = self._validate_positive_int(template_id, 'pass_template_id')
        template = self.templates.lock_for_tenant(tenant_id, template_id)
        if template is None:
            raise ValidationError("The selected pass template is invalid.", 'INVALID_PASS_TEMPLATE_ID')

        field_key, field_value = self._validate_field(template, field_key, field_value)
        filters = self._validate_filters(filters)

        if self.bulk_updates.in_flight_for_template(tenant_id, template_id) is not None:
            self._rollback()
            logger.info(f"Bulk update for template {template_id} rejected: one is already in progress")
            raise StateConflictError(
                "A bulk update is already in progress for this template.", 'BULK_UPDATE_IN_PROGRESS'
            )

        targets = self.passes.find_bulk_targets(tenant_id, template_id, filters.get('platform'))
        bulk_update = BulkUpdate(
            user_id=tenant_id,
            pass_template_id=template_id,
            field_key=field_key,
            field_value=field_value,
            filters=filters,
            status=BulkUpdateStatus.PENDING.value,
            total_count=len(targets),
        )
        self.bulk_updates.add(bulk_update)
        self._commit()

        from passkit.tasks.tasks_bulk_updates import process_bulk_update
        try:
            process_bulk_update.apply_async(args=[bulk_update.id, tenant_id])
        except Exception as e:
            logger.error(f"Could not queue bulk update {bulk_update.id}: {e}", exc_info=True)
            self.bulk_updates.delete(bulk_update)
            self._commit()
            raise ExternalDeliveryError("Could not queue the bulk update. Please try again.", 'QUEUE_UNAVAILABLE')

        self._log_operation_success('start_bulk_update', bulk_update_id=bulk_update.id, total=len(targets))
        return bulk_update

    def process_bulk_update(self, bulk_update_id: int, tenant_id: int,
                            rate_limiter: Optional[PushRateLimiter] = None) -> Optional[BulkUpdate]:
        """
        Apply the job's field change to each matching pass.

        A failure on one pass is counted and the loop continues. Passes that
        already carry an update from this job (a redelivered task) are skipped.
        If the run is cut short, the passes not reached count as failed and the
        job still finishes.
        """
        bulk_update = self.bulk_updates.get_for_tenant(tenant_id, bulk_update_id)
        if bulk_update is None:
            logger.warning(f"Bulk update {bulk_update_id} not found for tenant {tenant_id}")
            return None
        if not bulk_update.is_in_flight:
            logger.info(f"Bulk update {bulk_update_id} already {bulk_update.status}; nothing to do")
            return bulk_update

        self._log_operation_start('process_bulk_update', bulk_update_id=bulk_update_id)

        initiator = self.users.get_by_id(tenant_id)
        if rate_limiter is None:
            rate_limiter = PushRateLimiter(
                getattr(current_app, 'redis', None),
                int(current_app.config.get('PUSH_RATE_LIMIT_PER_SECOND', 50)),
            )

        targets = self.passes.find_bulk_targets(
            tenant_id, bulk_update.pass_template_id, (bulk_update.filters or {}).get('platform')
        )
        done = self.pass_updates.pass_ids_for_bulk_update(tenant_id, bulk_update.id)

        bulk_update.status = BulkUpdateStatus.PROCESSING.value
        bulk_update.started_at = bulk_update.started_at or datetime.utcnow()
        bulk_update.total_count = len(targets)
        self._commit()

        field_key, field_value = bulk_update.field_key, bulk_update.field_value
        target_ids = [p.id for p in targets if p.id not in done]

        handled = 0
        try:
            for pass_id in target_ids:
                rate_limiter.acquire(tenant_id)
                self._apply_to_pass(bulk_update_id, tenant_id, pass_id, initiator, field_key, field_value)
                self._commit()
                handled += 1
        except Exception as e:
            # Time limit or infrastructure failure: the rest of the passes are not attempted
            self._rollback()
            unprocessed = len(target_ids) - handled
            logger.error(
                f"Bulk update {bulk_update_id} stopped with {unprocessed} passes left: {e}", exc_info=True
            )
            self.bulk_updates.increment_counts(tenant_id, bulk_update_id, failed=unprocessed)
            self._commit()

        bulk_update = self.bulk_updates.get_for_tenant(tenant_id, bulk_update_id)
        self.session.refresh(bulk_update)
        if bulk_update.failed_count:
            bulk_update.status = BulkUpdateStatus.COMPLETED_WITH_ERRORS.value
        else:
            bulk_update.status = BulkUpdateStatus.COMPLETED.value
        bulk_update.completed_at = datetime.utcnow()
        self._commit()

        self._log_operation_success(
            'process_bulk_update',
            bulk_update_id=bulk_update_id,
            processed=bulk_update.processed_count,
            failed=bulk_update.failed_count,
        )
        return bulk_update

    def _apply_to_pass(self, bulk_update_id, tenant_id, pass_id, initiator, field_key, field_value):
        """Update one pass and count the outcome. Only a time limit escapes."""
        try:
            pass_ = self.passes.get_for_tenant(tenant_id, pass_id)
            if pass_ is None:
                raise NotFoundError("Pass no longer exists.", 'PASS_NOT_FOUND')
            if pass_.current_status != PassStatus.ACTIVE.value:
                raise StateConflictError(f"Pass is {pass_.current_status}.", 'PASS_NOT_ACTIVE')

            self.update_service.update_pass_fields(
                pass_,
                {field_key: field_value},
                initiator=initiator,
                source=UpdateSource.BULK.value,
                bulk_update_id=bulk_update_id,
            )
            self.bulk_updates.increment_counts(tenant_id, bulk_update_id, processed=1)
        except SoftTimeLimitExceeded:
            raise
        except ServiceError as e:
            self._rollback()
            logger.info(f"Bulk update {bulk_update_id} skipped pass {pass_id}: {e.message}")
            self.bulk_updates.increment_counts(tenant_id, bulk_update_id, failed=1)
        except Exception as e:
            self._rollback()
            logger.error(f"Bulk update {bulk_update_id} failed on pass {pass_id}: {e}", exc_info=True)
            self.bulk_updates.increment_counts(tenant_id, bulk_update_id, failed=1)

    def get_progress(self, tenant_id: int, bulk_update_id) -> BulkUpdate:
        """
        Raises:
            AuthorizationError: the job belongs to another tenant
            NotFoundError: no such job
        """
        try:
            bulk_update_id = int(bulk_update_id)
        except (TypeError, ValueError):
            raise NotFoundError("Bulk update not found.", 'BULK_UPDATE_NOT_FOUND')

        bulk_update = self.bulk_updates.get_for_tenant(tenant_id, bulk_update_id)
        if bulk_update is not None:
            return bulk_update
        if self.bulk_updates.exists(bulk_update_id):
            raise AuthorizationError("You do not have access to this bulk update.", 'FORBIDDEN')
        raise NotFoundError("Bulk update not found.", 'BULK_UPDATE_NOT_FOUND')
