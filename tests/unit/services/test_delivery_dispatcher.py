"""
DeliveryDispatcher unit tests.

APNs and Google Wallet are replaced by a mock push service; the tests check
how per-device and per-channel outcomes land on the PassUpdate row.
"""
import pytest
from unittest.mock import MagicMock, patch

from passkit.models import PassUpdate, DeviceRegistration, DeliveryStatus
from passkit.services import DeliveryDispatcher, ExternalDeliveryError
from passkit.services.push_service import ApnsResult, PushService
from tests.factories import DeviceRegistrationFactory, PassUpdateFactory


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def dispatcher(db, mock_push_service):
    return DeliveryDispatcher(db.session, push_service=mock_push_service)


@pytest.fixture
def pending_update(wallet_pass):
    return PassUpdateFactory(
        pass_=wallet_pass,
        apple_delivery_status=DeliveryStatus.PENDING.value,
        google_delivery_status=DeliveryStatus.PENDING.value,
    )


@pytest.fixture
def two_devices(wallet_pass):
    return [
        DeviceRegistrationFactory(
            user_id=wallet_pass.user_id,
            serial_number=wallet_pass.serial_number,
            pass_type_identifier='pass.com.example.test',
        )
        for _ in range(2)
    ]


def _reload(db, update):
    return db.session.get(PassUpdate, update.id)


# =============================================================================
# DISPATCH TESTS
# =============================================================================

@pytest.mark.unit
class TestDispatch:

    def test_queues_one_task_per_pending_channel(self, dispatcher, pending_update, tenant, mock_task_dispatch):
        dispatcher.dispatch(pending_update, tenant.id)

        mock_task_dispatch['apple'].assert_called_once_with(args=[pending_update.id, tenant.id])
        mock_task_dispatch['google'].assert_called_once_with(args=[pending_update.id, tenant.id])

    def test_skipped_channels_are_not_queued(self, dispatcher, wallet_pass, tenant, mock_task_dispatch):
        update = PassUpdateFactory(
            pass_=wallet_pass,
            apple_delivery_status=DeliveryStatus.SKIPPED.value,
            google_delivery_status=DeliveryStatus.PENDING.value,
        )

        dispatcher.dispatch(update, tenant.id)

        mock_task_dispatch['apple'].assert_not_called()
        mock_task_dispatch['google'].assert_called_once()

    def test_enqueue_failure_marks_channel_failed(self, dispatcher, pending_update, tenant, mock_task_dispatch, db):
        """
        GIVEN the broker refuses the Apple task
        WHEN the update is dispatched
        THEN Apple is marked failed with the reason and Google is still queued
        """
        mock_task_dispatch['apple'].side_effect = ConnectionError('broker down')

        dispatcher.dispatch(pending_update, tenant.id)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'failed'
        assert 'broker down' in stored.error_message
        assert stored.google_delivery_status == 'pending'
        mock_task_dispatch['google'].assert_called_once()


# =============================================================================
# APPLE DELIVERY TESTS
# =============================================================================

@pytest.mark.unit
class TestAppleDelivery:

    def test_all_devices_notified(self, dispatcher, mock_push_service, pending_update, two_devices, tenant, db):
        mock_push_service.send_apple_pushes.return_value = [ApnsResult(200), ApnsResult(200)]

        dispatcher.deliver_apple(pending_update.id, tenant.id)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'sent'
        assert stored.apple_devices_notified == 2
        assert stored.error_message is None
        targets = mock_push_service.send_apple_pushes.call_args[0][0]
        assert sorted(t[0] for t in targets) == sorted(d.push_token for d in two_devices)

    def test_no_devices_is_skipped(self, dispatcher, mock_push_service, pending_update, tenant, db):
        dispatcher.deliver_apple(pending_update.id, tenant.id)

        assert _reload(db, pending_update).apple_delivery_status == 'skipped'
        mock_push_service.send_apple_pushes.assert_not_called()

    def test_unregistered_device_is_deactivated(self, dispatcher, mock_push_service, pending_update, two_devices, tenant, db):
        mock_push_service.send_apple_pushes.return_value = [ApnsResult(200), ApnsResult(410, 'Unregistered')]

        dispatcher.deliver_apple(pending_update.id, tenant.id)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'sent'
        assert stored.apple_devices_notified == 1
        assert db.session.get(DeviceRegistration, two_devices[0].id).is_active is True
        assert db.session.get(DeviceRegistration, two_devices[1].id).is_active is False

    def test_partial_failure_is_sent_with_error(self, dispatcher, mock_push_service, pending_update, two_devices, tenant, db):
        mock_push_service.send_apple_pushes.return_value = [ApnsResult(200), ApnsResult(400, 'BadDeviceToken')]

        dispatcher.deliver_apple(pending_update.id, tenant.id)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'sent'
        assert stored.error_message.startswith('Apple: 1 of 2 devices failed')

    def test_transient_failure_raises_for_retry(self, dispatcher, mock_push_service, pending_update, device, tenant, db):
        mock_push_service.send_apple_pushes.return_value = [ApnsResult(503, 'ServiceUnavailable')]

        with pytest.raises(ExternalDeliveryError):
            dispatcher.deliver_apple(pending_update.id, tenant.id)

        assert _reload(db, pending_update).apple_delivery_status == 'pending'

    def test_transient_failure_on_final_attempt_fails(self, dispatcher, mock_push_service, pending_update, device, tenant, db):
        mock_push_service.send_apple_pushes.return_value = [ApnsResult(None, 'timeout')]

        dispatcher.deliver_apple(pending_update.id, tenant.id, final_attempt=True)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'failed'
        assert 'Apple: all pushes failed' in stored.error_message

    def test_all_devices_unregistered_is_skipped(self, dispatcher, mock_push_service, pending_update, device, tenant, db):
        mock_push_service.send_apple_pushes.return_value = [ApnsResult(410, 'Unregistered')]

        dispatcher.deliver_apple(pending_update.id, tenant.id)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'skipped'
        assert db.session.get(DeviceRegistration, device.id).is_active is False

    def test_client_error_on_final_attempt_marks_failed(self, dispatcher, mock_push_service, pending_update, device, tenant, db):
        mock_push_service.send_apple_pushes.side_effect = ExternalDeliveryError('APNs key missing', 'APNS_NOT_CONFIGURED')

        dispatcher.deliver_apple(pending_update.id, tenant.id, final_attempt=True)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'failed'
        assert stored.error_message == 'Apple: APNs key missing'

    def test_finished_channel_is_not_redelivered(self, dispatcher, mock_push_service, wallet_pass, device, tenant):
        update = PassUpdateFactory(pass_=wallet_pass, apple_delivery_status='sent')

        dispatcher.deliver_apple(update.id, tenant.id)

        mock_push_service.send_apple_pushes.assert_not_called()

    def test_other_tenant_cannot_deliver(self, dispatcher, mock_push_service, pending_update, other_tenant):
        assert dispatcher.deliver_apple(pending_update.id, other_tenant.id) is None
        mock_push_service.send_apple_pushes.assert_not_called()


# =============================================================================
# GOOGLE DELIVERY TESTS
# =============================================================================

@pytest.mark.unit
class TestGoogleDelivery:

    def test_object_updated(self, dispatcher, mock_push_service, pending_update, tenant, db):
        dispatcher.deliver_google(pending_update.id, tenant.id)

        stored = _reload(db, pending_update)
        assert stored.google_delivery_status == 'sent'
        assert stored.google_updated is True
        mock_push_service.update_google_object.assert_called_once()

    def test_failure_raises_before_final_attempt(self, dispatcher, mock_push_service, pending_update, tenant, db):
        mock_push_service.update_google_object.side_effect = ExternalDeliveryError('503 from Google')

        with pytest.raises(ExternalDeliveryError):
            dispatcher.deliver_google(pending_update.id, tenant.id)

        assert _reload(db, pending_update).google_delivery_status == 'pending'

    def test_failure_on_final_attempt_keeps_apple_error(self, dispatcher, mock_push_service, pending_update, tenant, db):
        """
        GIVEN Apple already recorded an error on the update
        WHEN Google fails for good
        THEN both channel errors are kept
        """
        pending_update.error_message = 'Apple: 1 of 2 devices failed (abc: 400)'
        db.session.commit()
        mock_push_service.update_google_object.side_effect = ExternalDeliveryError('object not found')

        dispatcher.deliver_google(pending_update.id, tenant.id, final_attempt=True)

        stored = _reload(db, pending_update)
        assert stored.google_delivery_status == 'failed'
        assert stored.error_message == 'Apple: 1 of 2 devices failed (abc: 400)\nGoogle: object not found'

    def test_missing_object_id_is_skipped(self, dispatcher, mock_push_service, pending_update, wallet_pass, tenant, db):
        wallet_pass.google_object_id = None
        db.session.commit()

        dispatcher.deliver_google(pending_update.id, tenant.id)

        assert _reload(db, pending_update).google_delivery_status == 'skipped'
        mock_push_service.update_google_object.assert_not_called()


# =============================================================================
# CONFIGURATION AND UNEXPECTED ERROR TESTS
# =============================================================================

@pytest.fixture
def unusable_apns_key(app, tmp_path):
    """Token auth pointed at a .p8 file that is not a private key."""
    key_file = tmp_path / 'AuthKey_BROKEN.p8'
    key_file.write_text('not a key')
    overrides = {
        'APNS_AUTH_MODE': 'token',
        'APNS_KEY_ID': 'KEY1234567',
        'APNS_TEAM_ID': 'TEAM123456',
        'APNS_KEY_PATH': str(key_file),
    }
    with patch.dict(app.config, overrides):
        yield key_file


@pytest.mark.unit
class TestDeliveryErrorCapture:

    def test_unusable_key_is_a_configuration_error(self, unusable_apns_key):
        with pytest.raises(ExternalDeliveryError) as exc_info:
            PushService()._get_apns_jwt_token()

        assert exc_info.value.error_code == 'APNS_NOT_CONFIGURED'

    def test_unusable_key_on_final_attempt_marks_apple_failed(self, db, unusable_apns_key, pending_update, device, tenant):
        """
        GIVEN an APNs key file that cannot be parsed
        WHEN the last Apple delivery attempt runs
        THEN the channel ends failed with the reason recorded instead of staying pending
        """
        dispatcher = DeliveryDispatcher(db.session, push_service=PushService())

        dispatcher.deliver_apple(pending_update.id, tenant.id, final_attempt=True)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'failed'
        assert stored.error_message.startswith('Apple: APNs key could not be used')

    def test_unusable_key_before_final_attempt_is_retried(self, db, unusable_apns_key, pending_update, device, tenant):
        dispatcher = DeliveryDispatcher(db.session, push_service=PushService())

        with pytest.raises(ExternalDeliveryError):
            dispatcher.deliver_apple(pending_update.id, tenant.id)

        assert _reload(db, pending_update).apple_delivery_status == 'pending'

    def test_unexpected_apple_error_is_retried(self, dispatcher, mock_push_service, pending_update, device, tenant):
        mock_push_service.send_apple_pushes.side_effect = RuntimeError('socket closed')

        with pytest.raises(ExternalDeliveryError) as exc_info:
            dispatcher.deliver_apple(pending_update.id, tenant.id)

        assert 'socket closed' in exc_info.value.message

    def test_unexpected_apple_error_on_final_attempt_marks_failed(self, dispatcher, mock_push_service, pending_update, device, tenant, db):
        mock_push_service.send_apple_pushes.side_effect = RuntimeError('socket closed')

        dispatcher.deliver_apple(pending_update.id, tenant.id, final_attempt=True)

        stored = _reload(db, pending_update)
        assert stored.apple_delivery_status == 'failed'
        assert stored.error_message == 'Apple: unexpected error: socket closed'

    def test_unexpected_google_error_on_final_attempt_marks_failed(self, dispatcher, mock_push_service, pending_update, tenant, db):
        mock_push_service.update_google_object.side_effect = KeyError('classId')

        dispatcher.deliver_google(pending_update.id, tenant.id, final_attempt=True)

        stored = _reload(db, pending_update)
        assert stored.google_delivery_status == 'failed'
        assert stored.error_message.startswith('Google: unexpected error:')
