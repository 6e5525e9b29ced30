# passkit/services/delivery_service.py

"""
Delivery Dispatcher

Fans a committed PassUpdate out to the wallet platforms. Each channel is a
separate Celery task so a slow or failing platform never delays the other.

Channel status lifecycle:
    pending -> sent | failed | skipped

A task only acts while its channel is pending, so queue redelivery of a
finished task is a no-op.
"""

import logging
from typing import Optional

from flask import current_app

from passkit.models import PassUpdate, DeliveryStatus
from passkit.repositories import PassUpdateRepository, DeviceRegistrationRepository
from passkit.services.base_service import BaseService, ExternalDeliveryError
from passkit.services.push_service import push_service as default_push_service

logger = logging.getLogger(__name__)

APPLE = 'apple'
GOOGLE = 'google'


def resolve_pass_type_identifier(user) -> Optional[str]:
    """Tenant's Apple pass type id, or the platform default."""
    if user is not None and user.apple_pass_type_id:
        return user.apple_pass_type_id
    return current_app.config.get('APPLE_PASS_TYPE_IDENTIFIER')


class DeliveryDispatcher(BaseService):

    def __init__(self, session, push_service=None):
        super().__init__(session)
        self.push = push_service or default_push_service
        self.updates = PassUpdateRepository(session)
        self.devices = DeviceRegistrationRepository(session)

    # ==================== Enqueue ====================

    def dispatch(self, pass_update: PassUpdate, tenant_id: int) -> None:
        """
        Queue one delivery task per pending channel.

        Never raises: a broker failure marks the channel failed instead.
        """
        from passkit.tasks.tasks_pass_updates import deliver_apple_update, deliver_google_update

        channels = (
            (APPLE, pass_update.apple_delivery_status, deliver_apple_update),
            (GOOGLE, pass_update.google_delivery_status, deliver_google_update),
        )
        for channel, status, task in channels:
            if status != DeliveryStatus.PENDING.value:
                continue
            try:
                task.apply_async(args=[pass_update.id, tenant_id])
                logger.debug(f"Queued {channel} delivery for pass update {pass_update.id}")
            except Exception as e:
                logger.error(f"Could not queue {channel} delivery for pass update {pass_update.id}: {e}", exc_info=True)
                self._record_enqueue_failure(pass_update.id, tenant_id, channel, str(e))

    def _record_enqueue_failure(self, pass_update_id: int, tenant_id: int, channel: str, reason: str) -> None:
        try:
            self.mark_failed(pass_update_id, tenant_id, channel, f"Could not queue {channel} delivery: {reason}")
        except Exception as e:
            self._rollback()
            logger.error(f"Could not record enqueue failure for pass update {pass_update_id}: {e}", exc_info=True)

    def mark_failed(self, pass_update_id: int, tenant_id: int, channel: str, message: str) -> Optional[PassUpdate]:
        """Move a pending channel to failed and commit."""
        update = self.updates.lock_for_delivery(tenant_id, pass_update_id)
        if update is None:
            return None
        status_attr = f"{channel}_delivery_status"
        if getattr(update, status_attr) == DeliveryStatus.PENDING.value:
            setattr(update, status_attr, DeliveryStatus.FAILED.value)
            update.append_error(message)
            self._commit()
        return update

    # ==================== Apple ====================

    def deliver_apple(self, pass_update_id: int, tenant_id: int, final_attempt: bool = False) -> Optional[PassUpdate]:
        """
        Push a silent APNs notification to every active device of the pass.

        Raises:
            ExternalDeliveryError: nothing was delivered and a retry may help
        """
        update = self.updates.get_for_tenant(tenant_id, pass_update_id)
        if update is None:
            logger.warning(f"Pass update {pass_update_id} not found for tenant {tenant_id}; dropping Apple delivery")
            return None
        if update.apple_delivery_status != DeliveryStatus.PENDING.value:
            logger.debug(f"Apple delivery for pass update {pass_update_id} already {update.apple_delivery_status}")
            return update

        pass_ = update.pass_
        pass_type_identifier = resolve_pass_type_identifier(pass_.user)
        registrations = []
        if pass_type_identifier:
            registrations = self.devices.active_for_pass(tenant_id, pass_type_identifier, pass_.serial_number)

        if not registrations:
            update = self.updates.lock_for_delivery(tenant_id, pass_update_id)
            update.apple_delivery_status = DeliveryStatus.SKIPPED.value
            self._commit()
            logger.info(f"No active devices for pass {pass_.serial_number}; Apple delivery skipped")
            return update

        # One push per registration row; the unique key guarantees no device repeats
        targets = [(r.push_token, r.pass_type_identifier) for r in registrations]
        try:
            results = self.push.send_apple_pushes(targets)
        except ExternalDeliveryError as e:
            return self._apple_attempt_failed(pass_update_id, tenant_id, e.message, final_attempt)
        except Exception as e:
            logger.error(f"Unexpected error pushing pass update {pass_update_id} to Apple: {e}", exc_info=True)
            return self._apple_attempt_failed(pass_update_id, tenant_id, f"unexpected error: {e}", final_attempt)

        sent = 0
        unregistered = 0
        transient = []
        permanent = []
        for registration, result in zip(registrations, results):
            device = registration.device_library_identifier[:8]
            if result.ok:
                sent += 1
            elif result.unregistered:
                registration.deactivate()
                unregistered += 1
                logger.info(f"Deactivated registration {registration.id}: APNs reports token no longer valid")
            elif result.transient:
                transient.append(f"{device}: {result.status_code or 'no response'} {result.reason or ''}".strip())
            else:
                permanent.append(f"{device}: {result.status_code} {result.reason or ''}".strip())

        failures = transient + permanent
        update = self.updates.lock_for_delivery(tenant_id, pass_update_id)

        if sent:
            update.apple_delivery_status = DeliveryStatus.SENT.value
            update.apple_devices_notified = sent
            if failures:
                update.append_error(f"Apple: {len(failures)} of {len(targets)} devices failed ({'; '.join(failures)})")
            self._commit()
            logger.info(f"Apple delivery for pass update {pass_update_id}: {sent}/{len(targets)} devices notified")
            return update

        if transient and not final_attempt:
            # Keep the deactivations, stay pending, and let the task retry
            self._commit()
            raise ExternalDeliveryError(f"Apple: all pushes failed ({'; '.join(failures)})", 'APNS_RETRY')

        if not failures:
            update.apple_delivery_status = DeliveryStatus.SKIPPED.value
            update.append_error(f"Apple: all {unregistered} registered devices are no longer active")
        else:
            update.apple_delivery_status = DeliveryStatus.FAILED.value
            update.append_error(f"Apple: all pushes failed ({'; '.join(failures)})")
        self._commit()
        logger.warning(f"Apple delivery for pass update {pass_update_id} ended {update.apple_delivery_status}")
        return update

    def _apple_attempt_failed(self, pass_update_id, tenant_id, message, final_attempt):
        if not final_attempt:
            raise ExternalDeliveryError(message, 'APNS_RETRY')
        logger.error(f"Apple delivery for pass update {pass_update_id} failed: {message}")
        return self.mark_failed(pass_update_id, tenant_id, APPLE, f"Apple: {message}")

    # ==================== Google ====================

    def deliver_google(self, pass_update_id: int, tenant_id: int, final_attempt: bool = False) -> Optional[PassUpdate]:
        """
        Patch the pass's Google Wallet object once.

        Raises:
            ExternalDeliveryError: the API call failed and a retry may help
        """
        update = self.updates.get_for_tenant(tenant_id, pass_update_id)
        if update is None:
            logger.warning(f"Pass update {pass_update_id} not found for tenant {tenant_id}; dropping Google delivery")
            return None
        if update.google_delivery_status != DeliveryStatus.PENDING.value:
            logger.debug(f"Google delivery for pass update {pass_update_id} already {update.google_delivery_status}")
            return update

        pass_ = update.pass_
        if not pass_.google_object_id:
            update = self.updates.lock_for_delivery(tenant_id, pass_update_id)
            update.google_delivery_status = DeliveryStatus.SKIPPED.value
            self._commit()
            return update

        try:
            self.push.update_google_object(pass_)
        except ExternalDeliveryError as e:
            return self._google_attempt_failed(pass_update_id, tenant_id, e.message, final_attempt)
        except Exception as e:
            logger.error(f"Unexpected error updating Google object for pass update {pass_update_id}: {e}", exc_info=True)
            return self._google_attempt_failed(pass_update_id, tenant_id, f"unexpected error: {e}", final_attempt)

        update = self.updates.lock_for_delivery(tenant_id, pass_update_id)
        update.google_delivery_status = DeliveryStatus.SENT.value
        update.google_updated = True
        self._commit()
        logger.info(f"Google delivery for pass update {pass_update_id} sent")
        return update

    def _google_attempt_failed(self, pass_update_id, tenant_id, message, final_attempt):
        if not final_attempt:
            raise ExternalDeliveryError(message, 'GOOGLE_RETRY')
        logger.error(f"Google delivery for pass update {pass_update_id} failed: {message}")
        return self.mark_failed(pass_update_id, tenant_id, GOOGLE, f"Google: {message}")
