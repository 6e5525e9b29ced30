# passkit/services/__init__.py

"""
Services Package

Business logic for pass updates, delivery, redemption and bulk jobs. Each
service takes a SQLAlchemy session: db.session inside requests, a managed
session inside Celery tasks.
"""

from passkit.services.base_service import (
    ServiceError, ValidationError, NotFoundError,
    AuthorizationError, AuthenticationError, StateConflictError,
    ConflictError, ExternalDeliveryError, BaseService,
)
from passkit.services.scan_event_recorder import ScanEventRecorder
from passkit.services.delivery_service import DeliveryDispatcher
from passkit.services.pass_update_service import PassUpdateService
from passkit.services.redemption_service import RedemptionEngine, RedemptionResult, ValidationResult
from passkit.services.bulk_update_service import BulkUpdateCoordinator
from passkit.services.pass_storage import PassStorage

__all__ = [
    'ServiceError',
    'ValidationError',
    'NotFoundError',
    'AuthorizationError',
    'AuthenticationError',
    'StateConflictError',
    'ConflictError',
    'ExternalDeliveryError',
    'BaseService',
    'ScanEventRecorder',
    'DeliveryDispatcher',
    'PassUpdateService',
    'RedemptionEngine',
    'RedemptionResult',
    'ValidationResult',
    'BulkUpdateCoordinator',
    'PassStorage',
]
