# passkit/services/base_service.py

"""
Base Service for Business Logic.

Provides a foundational service class with common patterns including:
- Session management
- Operation tracing
- Error handling
"""

import logging
import uuid
from abc import ABC
from datetime import datetime
from typing import Optional, Any

from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base exception for service layer errors."""

    status_code = 400

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ValidationError(ServiceError):
    """Raised when input validation fails."""
    status_code = 422


class NotFoundError(ServiceError):
    """Raised when a requested entity is not found."""
    status_code = 404


class AuthorizationError(ServiceError):
    """Raised when the caller is not allowed to act on a resource."""
    status_code = 403


class AuthenticationError(AuthorizationError):
    """Raised when the caller's identity could not be established."""
    status_code = 401


class StateConflictError(ServiceError):
    """Raised when operation conflicts with current state."""
    status_code = 409


ConflictError = StateConflictError


class ExternalDeliveryError(ServiceError):
    """Raised when a push or wallet API call fails in a retryable way."""
    status_code = 502


class BaseService(ABC):
    """
    Abstract base service with common functionality.

    All domain services inherit from this class to get:
    - Session management
    - Operation tracing
    - Consistent error handling
    """

    def __init__(self, session: Session):
        """
        Initialize service with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session
        self._operation_id: Optional[str] = None
        self._started_at: Optional[datetime] = None

    @property
    def operation_id(self) -> str:
        """Get current operation ID, generating one if not set."""
        if not self._operation_id:
            self._operation_id = str(uuid.uuid4())
        return self._operation_id

    # ==================== Logging Helpers ====================

    def _log_operation_start(self, operation: str, **context):
        """Log the start of an operation with context."""
        self._started_at = datetime.utcnow()
        logger.info(
            f"[{self.__class__.__name__}] Starting {operation}",
            extra={'operation_id': self.operation_id, **context}
        )

    def _log_operation_success(self, operation: str, **context):
        """Log successful operation completion."""
        duration = None
        if self._started_at:
            duration = (datetime.utcnow() - self._started_at).total_seconds()
        logger.info(
            f"[{self.__class__.__name__}] Completed {operation}",
            extra={
                'operation_id': self.operation_id,
                'duration_seconds': duration,
                **context
            }
        )

    def _log_operation_error(self, operation: str, error: Exception, **context):
        """Log operation error."""
        logger.error(
            f"[{self.__class__.__name__}] Failed {operation}: {str(error)}",
            extra={
                'operation_id': self.operation_id,
                'error_type': type(error).__name__,
                **context
            },
            exc_info=True
        )

    # ==================== Validation Helpers ====================

    def _validate_required(self, value: Any, field_name: str) -> None:
        """Raise ValidationError if value is None or empty."""
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field_name} is required", f"MISSING_{field_name.upper()}")

    def _validate_positive_int(self, value: Any, field_name: str) -> int:
        """Validate and return a positive integer."""
        try:
            int_value = int(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"{field_name} must be a valid integer",
                f"INVALID_{field_name.upper()}"
            )
        if int_value <= 0:
            raise ValidationError(
                f"{field_name} must be a positive integer",
                f"INVALID_{field_name.upper()}"
            )
        return int_value

    # ==================== Transaction Helpers ====================

    def _commit(self) -> None:
        """Commit current transaction."""
        self.session.commit()

    def _rollback(self) -> None:
        """Rollback current transaction."""
        self.session.rollback()
