# passkit/services/pass_update_service.py

"""
Pass Update Service

Applies field updates to an issued pass and records one PassUpdate per
accepted request. Delivery to Apple devices and Google Wallet happens
afterwards through DeliveryDispatcher and never blocks the caller.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple, List

from flask import current_app

from passkit.models import Pass, PassUpdate, DeliveryStatus, UpdateSource, Platform
from passkit.repositories import PassRepository, PassUpdateRepository, DeviceRegistrationRepository
from passkit.services.base_service import (
    BaseService, ValidationError, AuthenticationError, AuthorizationError,
    StateConflictError, NotFoundError,
)
from passkit.services.delivery_service import DeliveryDispatcher, resolve_pass_type_identifier

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASS_DATA_BYTES = 10240
MAX_FIELD_KEY_LENGTH = 100
SCALAR_TYPES = (str, int, float, bool)


def serialized_size(data) -> int:
    """Byte length of the compact JSON form of a value."""
    return len(json.dumps(data, separators=(',', ':')).encode('utf-8'))


class PassUpdateService(BaseService):
    """
    Service for mutating pass field data.

    Check order for an update:
    1. caller identity and ownership
    2. pass state (voided and redeemed passes are immutable)
    3. payload size
    4. field validation against the template allow-list
    5. merged pass_data size
    """

    def __init__(self, session, dispatcher: Optional[DeliveryDispatcher] = None):
        super().__init__(session)
        self.passes = PassRepository(session)
        self.updates = PassUpdateRepository(session)
        self.devices = DeviceRegistrationRepository(session)
        self.dispatcher = dispatcher or DeliveryDispatcher(session)

    @property
    def max_bytes(self) -> int:
        return int(current_app.config.get('PASS_DATA_MAX_BYTES', DEFAULT_MAX_PASS_DATA_BYTES))

    # ==================== Checks ====================

    def authorize(self, pass_: Pass, initiator=None, signature_verified: bool = False) -> None:
        """Raise unless the caller owns the pass or presented a valid device signature."""
        if signature_verified:
            return
        if initiator is None:
            raise AuthenticationError("Unauthenticated.", 'UNAUTHENTICATED')
        if initiator.id != pass_.user_id:
            logger.warning(f"User {initiator.id} attempted to update pass {pass_.id} owned by {pass_.user_id}")
            raise AuthorizationError("You do not have access to this pass.", 'FORBIDDEN')

    def ensure_mutable(self, pass_: Pass) -> None:
        if pass_.is_voided:
            raise StateConflictError("Voided passes cannot be updated.", 'PASS_VOIDED')
        if pass_.is_redeemed:
            raise StateConflictError("Redeemed passes cannot be updated.", 'PASS_REDEEMED')

    def _check_size(self, data, message: str) -> None:
        try:
            size = serialized_size(data)
        except (TypeError, ValueError):
            raise ValidationError("Fields must be JSON-serializable.", 'INVALID_FIELDS')
        if size > self.max_bytes:
            raise ValidationError(message, 'PASS_DATA_TOO_LARGE')

    def _validate_fields(self, pass_: Pass, fields) -> Dict[str, Any]:
        if not isinstance(fields, dict):
            raise ValidationError("Fields must be an object of key/value pairs.", 'INVALID_FIELDS')
        if not fields:
            raise ValidationError("At least one field is required.", 'INVALID_FIELDS')

        allowed = pass_.template.field_keys if pass_.template is not None else set()
        for key, value in fields.items():
            if not isinstance(key, str) or not key.strip():
                raise ValidationError("Field keys must be non-empty strings.", 'INVALID_FIELD_KEY')
            if len(key) > MAX_FIELD_KEY_LENGTH:
                raise ValidationError(f"Field key '{key[:20]}...' is too long.", 'INVALID_FIELD_KEY')
            if value is not None and not isinstance(value, SCALAR_TYPES):
                raise ValidationError(f"Field '{key}' must be a string or number.", 'INVALID_FIELD_VALUE')
            if allowed and key not in allowed:
                raise ValidationError(f"Unknown field: {key}", 'UNKNOWN_FIELD')
        return fields

    @staticmethod
    def _normalize_change_messages(fields: Dict[str, Any], change_messages) -> Dict[str, str]:
        """
        Map change messages onto field keys.

        A list is paired with the field keys in order; a mapping only keeps
        keys that are being updated.
        """
        if not change_messages:
            return {}
        if isinstance(change_messages, list):
            pairs = zip(fields.keys(), change_messages)
        elif isinstance(change_messages, dict):
            pairs = ((k, v) for k, v in change_messages.items() if k in fields)
        else:
            raise ValidationError("change_messages must be a list or an object.", 'INVALID_CHANGE_MESSAGES')

        messages = {}
        for key, message in pairs:
            if message is None or message == '':
                continue
            if not isinstance(message, str):
                raise ValidationError(f"Change message for '{key}' must be a string.", 'INVALID_CHANGE_MESSAGES')
            messages[key] = message
        return messages

    # ==================== Delivery status ====================

    def has_registered_devices(self, pass_: Pass) -> bool:
        pass_type_identifier = resolve_pass_type_identifier(pass_.user)
        if not pass_type_identifier:
            return False
        return self.devices.count_active_for_pass(pass_.user_id, pass_type_identifier, pass_.serial_number) > 0

    def initial_delivery_statuses(self, pass_: Pass) -> Tuple[str, str]:
        apple = DeliveryStatus.SKIPPED.value
        if pass_.is_enrolled_in(Platform.APPLE) and self.has_registered_devices(pass_):
            apple = DeliveryStatus.PENDING.value

        google = DeliveryStatus.SKIPPED.value
        if pass_.is_enrolled_in(Platform.GOOGLE) and pass_.google_object_id:
            google = DeliveryStatus.PENDING.value
        return apple, google

    # ==================== Operations ====================

    def update_pass_fields(
        self,
        pass_: Pass,
        fields,
        initiator=None,
        source: str = UpdateSource.API.value,
        change_messages=None,
        signature_verified: bool = False,
        bulk_update_id: Optional[int] = None,
    ) -> PassUpdate:
        """
        Merge new field values into a pass and queue delivery.

        Args:
            pass_: The pass being updated
            fields: Mapping of field key to new value
            initiator: The authenticated owner, if any
            source: One of UpdateSource values
            change_messages: List paired with field keys, or mapping by key
            signature_verified: The request carried a valid device-service signature
            bulk_update_id: Set when the update belongs to a bulk job

        Returns:
            The committed PassUpdate

        Raises:
            AuthenticationError, AuthorizationError, StateConflictError, ValidationError
        """
        self._log_operation_start('update_pass_fields', pass_id=pass_.id, source=source)

        self.authorize(pass_, initiator, signature_verified)

        # Re-read under the row lock so a concurrent redemption or void is seen
        locked = self.passes.lock_for_update(pass_.user_id, pass_.id)
        if locked is None:
            raise NotFoundError("Pass not found.", 'PASS_NOT_FOUND')
        pass_ = locked

        self.ensure_mutable(pass_)
        self._check_size(fields, f"Fields may not exceed {self.max_bytes} bytes.")
        fields = self._validate_fields(pass_, fields)
        messages = self._normalize_change_messages(fields, change_messages)

        old_data = dict(pass_.pass_data or {})
        merged = {**old_data, **fields}
        self._check_size(merged, f"Pass data may not exceed {self.max_bytes} bytes after the update.")

        fields_changed = {}
        for key, value in fields.items():
            entry = {'old': old_data.get(key), 'new': value}
            if key in messages:
                entry['change_message'] = messages[key]
            fields_changed[key] = entry

        pass_.pass_data = merged
        if messages:
            pass_.change_messages = {**(pass_.change_messages or {}), **messages}
        pass_.touch()

        apple_status, google_status = self.initial_delivery_statuses(pass_)
        update = PassUpdate(
            pass_id=pass_.id,
            user_id=initiator.id if initiator is not None else None,
            bulk_update_id=bulk_update_id,
            source=source,
            fields_changed=fields_changed,
            apple_delivery_status=apple_status,
            google_delivery_status=google_status,
        )
        self.updates.add(update)

        try:
            self._commit()
        except Exception as e:
            self._rollback()
            self._log_operation_error('update_pass_fields', e, pass_id=pass_.id)
            raise

        self._log_operation_success(
            'update_pass_fields',
            pass_id=pass_.id,
            pass_update_id=update.id,
            apple=apple_status,
            google=google_status,
        )

        self.dispatcher.dispatch(update, pass_.user_id)
        return update

    def get_update_history(self, pass_: Pass, page: int = 1, per_page: Optional[int] = None) -> Tuple[List[PassUpdate], int]:
        """Newest-first page of a pass's update history."""
        if per_page is None:
            per_page = int(current_app.config.get('PASS_UPDATES_PER_PAGE', 15))
        return self.updates.history(pass_.user_id, pass_.id, page=page, per_page=per_page)
