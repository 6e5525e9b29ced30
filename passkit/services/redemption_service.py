# passkit/services/redemption_service.py

"""
Redemption Engine

Handles scanner redeem and validate requests. Single-use passes are
redeemed under a row lock followed by a guarded UPDATE, so across any number
of concurrent scanners exactly one attempt wins and every other attempt sees
"already redeemed".

Every attempt that resolves a pass writes exactly one ScanEvent.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from flask import current_app

from passkit.models import Pass, ScanAction, ScanResult, is_valid_pass_id
from passkit.repositories import PassRepository
from passkit.services.base_service import BaseService
from passkit.services.scan_event_recorder import ScanEventRecorder
from passkit.utils.pass_locking import lock_pass_for_redemption, LockAcquisitionError
from passkit.utils.signatures import decode_pass_payload, resolve_secret, InvalidPayloadError

logger = logging.getLogger(__name__)

MSG_NOT_FOUND = "Pass not found."
MSG_VOIDED = "This pass is voided and cannot be redeemed."
MSG_EXPIRED = "This pass has expired and cannot be redeemed."
MSG_ALREADY_REDEEMED = "This pass has already been redeemed."
MSG_REDEEMED = "Pass redeemed successfully."
MSG_VISIT = "Visit logged successfully."
MSG_LOCKED = "This pass is being redeemed by another scanner. Please try again."
MSG_INVALID_PAYLOAD = "Invalid QR code payload."
MSG_INVALID_SIGNATURE = "Invalid QR code signature."

VALIDATE_MESSAGES = {
    'active': "Pass is valid.",
    'redeemed': MSG_ALREADY_REDEEMED,
    'voided': "This pass has been voided.",
    'expired': "This pass has expired.",
}

VALIDATE_RESULTS = {
    'active': ScanResult.SUCCESS,
    'redeemed': ScanResult.ALREADY_REDEEMED,
    'voided': ScanResult.VOIDED,
    'expired': ScanResult.EXPIRED,
}


@dataclass
class RedemptionResult:
    """Outcome of a redeem attempt, ready to render as a scanner response."""
    success: bool
    outcome: str
    status_code: int
    message: str
    pass_payload: Optional[dict] = field(default=None)

    def to_response(self) -> dict:
        if self.success:
            return {'success': True, 'message': self.message, 'pass': self.pass_payload}
        body = {'success': False, 'error': self.message}
        if self.pass_payload is not None:
            body['pass'] = self.pass_payload
        return body


@dataclass
class ValidationResult:
    """Outcome of a QR validate request."""
    valid: bool
    outcome: str
    status_code: int
    message: str
    pass_payload: Optional[dict] = field(default=None)

    def to_response(self) -> dict:
        body = {'valid': self.valid, 'message': self.message}
        if self.pass_payload is not None:
            body['pass'] = self.pass_payload
        return body


class RedemptionEngine(BaseService):

    def __init__(self, session, recorder: Optional[ScanEventRecorder] = None, payload_secret=None):
        super().__init__(session)
        self.passes = PassRepository(session)
        self.recorder = recorder or ScanEventRecorder(session)
        self._payload_secret = payload_secret

    @property
    def payload_secret(self) -> bytes:
        if self._payload_secret is None:
            config = current_app.config
            self._payload_secret = resolve_secret(config.get('PASS_PAYLOAD_SECRET') or config.get('SECRET_KEY'))
        return self._payload_secret

    def _record(self, scanner_link, pass_id, action, result, ip_address, user_agent):
        self.recorder.record(
            user_id=scanner_link.user_id,
            pass_id=pass_id,
            scanner_link_id=scanner_link.id,
            action=action,
            result=result,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def _decode(self, scanner_link, payload, ip_address, user_agent):
        """
        Resolve a signed QR payload to a pass id.

        Returns:
            (pass_id, None) on success, or (None, failure) where failure is
            (status_code, outcome, message)
        """
        try:
            pass_id, signature_ok = decode_pass_payload(payload, self.payload_secret)
        except InvalidPayloadError as e:
            logger.info(f"Scanner {scanner_link.id} sent an undecodable payload: {e}")
            return None, (400, 'invalid_payload', MSG_INVALID_PAYLOAD)

        if not signature_ok:
            pass_ = self.passes.get_for_tenant(scanner_link.user_id, pass_id)
            logger.warning(f"Scanner {scanner_link.id} sent a payload with a bad signature for pass {pass_id}")
            if pass_ is not None:
                self._record(scanner_link, pass_.id, ScanAction.INVALID_SIGNATURE,
                             ScanResult.INVALID_SIGNATURE, ip_address, user_agent)
            return None, (400, ScanResult.INVALID_SIGNATURE.value, MSG_INVALID_SIGNATURE)

        return pass_id, None

    # ==================== Redeem ====================

    def redeem(
        self,
        scanner_link,
        pass_id=None,
        payload: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RedemptionResult:
        """
        Redeem a pass for the scanner link's tenant.

        Either pass_id or a signed QR payload identifies the pass.
        """
        tenant_id = scanner_link.user_id

        if payload is not None:
            pass_id, failure = self._decode(scanner_link, payload, ip_address, user_agent)
            if failure:
                status_code, outcome, message = failure
                return RedemptionResult(False, outcome, status_code, message)

        pass_ = self.passes.get_for_tenant(tenant_id, pass_id) if is_valid_pass_id(pass_id) else None
        if pass_ is None:
            return RedemptionResult(False, ScanResult.NOT_FOUND.value, 404, MSG_NOT_FOUND)

        if pass_.is_voided:
            self._record(scanner_link, pass_.id, ScanAction.REDEEM, ScanResult.VOIDED, ip_address, user_agent)
            return RedemptionResult(False, ScanResult.VOIDED.value, 422, MSG_VOIDED)

        if pass_.is_expired:
            self._record(scanner_link, pass_.id, ScanAction.REDEEM, ScanResult.EXPIRED, ip_address, user_agent)
            return RedemptionResult(False, ScanResult.EXPIRED.value, 422, MSG_EXPIRED)

        if not pass_.is_single_use:
            self._record(scanner_link, pass_.id, ScanAction.VISIT, ScanResult.SUCCESS, ip_address, user_agent)
            logger.info(f"Visit logged for multi-use pass {pass_.id} by scanner {scanner_link.id}")
            return RedemptionResult(True, ScanResult.SUCCESS.value, 200, MSG_VISIT, pass_.to_scan_dict())

        return self._redeem_single_use(scanner_link, pass_.id, ip_address, user_agent)

    def _redeem_single_use(self, scanner_link, pass_id, ip_address, user_agent) -> RedemptionResult:
        tenant_id = scanner_link.user_id
        self._log_operation_start('redeem', pass_id=pass_id, scanner_link_id=scanner_link.id)

        try:
            with lock_pass_for_redemption(self.passes, tenant_id, pass_id) as locked:
                result = self._transition_locked(tenant_id, locked)
        except LockAcquisitionError:
            return RedemptionResult(False, 'locked', 409, MSG_LOCKED)

        if result is None:
            return RedemptionResult(False, ScanResult.NOT_FOUND.value, 404, MSG_NOT_FOUND)

        outcome, pass_ = result
        responses = {
            ScanResult.SUCCESS: (True, 200, MSG_REDEEMED),
            ScanResult.ALREADY_REDEEMED: (False, 409, MSG_ALREADY_REDEEMED),
            ScanResult.VOIDED: (False, 422, MSG_VOIDED),
            ScanResult.EXPIRED: (False, 422, MSG_EXPIRED),
        }
        success, status_code, message = responses[outcome]

        self._record(scanner_link, pass_id, ScanAction.REDEEM, outcome, ip_address, user_agent)

        if success:
            self._log_operation_success('redeem', pass_id=pass_id)
            return RedemptionResult(True, outcome.value, status_code, message, pass_.to_scan_dict())

        logger.info(f"Redemption of pass {pass_id} by scanner {scanner_link.id} rejected: {outcome.value}")
        return RedemptionResult(False, outcome.value, status_code, message)

    def _transition_locked(self, tenant_id: int, locked: Optional[Pass]):
        """
        Decide and apply the redemption while the row lock is held.

        The transaction is always ended here, which releases the lock.
        """
        if locked is None:
            self._rollback()
            return None

        if locked.is_voided:
            outcome = ScanResult.VOIDED
        elif locked.is_redeemed:
            outcome = ScanResult.ALREADY_REDEEMED
        elif locked.is_expired:
            outcome = ScanResult.EXPIRED
        else:
            rows = self.passes.mark_redeemed_if_active(tenant_id, locked.id, datetime.utcnow())
            outcome = ScanResult.SUCCESS if rows == 1 else ScanResult.ALREADY_REDEEMED

        if outcome is ScanResult.SUCCESS:
            self._commit()
            self.session.refresh(locked)
        else:
            self._rollback()
        return outcome, locked

    # ==================== Validate ====================

    def validate(
        self,
        scanner_link,
        payload: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ValidationResult:
        """Check a signed QR payload and report the pass's current status."""
        pass_id, failure = self._decode(scanner_link, payload, ip_address, user_agent)
        if failure:
            status_code, outcome, message = failure
            return ValidationResult(False, outcome, status_code, message)

        pass_ = self.passes.get_for_tenant(scanner_link.user_id, pass_id)
        if pass_ is None:
            return ValidationResult(False, ScanResult.NOT_FOUND.value, 404, MSG_NOT_FOUND)

        status = pass_.current_status
        result = VALIDATE_RESULTS[status]
        self._record(scanner_link, pass_.id, ScanAction.SCAN, result, ip_address, user_agent)
        return ValidationResult(status == 'active', result.value, 200, VALIDATE_MESSAGES[status], pass_.to_scan_dict())
