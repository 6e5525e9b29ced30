"""
Apple Wallet web service tests.

Wallet authenticates each call with "Authorization: ApplePass <token>"
where the token is the pass's authenticationToken.
"""
import calendar
import time
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from passkit.models import DeviceRegistration
from tests.factories import DeviceRegistrationFactory, PassFactory


PASS_TYPE = 'pass.com.example.test'


def _apple_auth(wallet_pass):
    return {'Authorization': f'ApplePass {wallet_pass.authentication_token}'}


def _registration_url(device_id, serial):
    return f'/v1/devices/{device_id}/registrations/{PASS_TYPE}/{serial}'


# =============================================================================
# REGISTRATION TESTS
# =============================================================================

@pytest.mark.unit
class TestRegistration:

    def test_new_registration_is_201_then_200(self, client, wallet_pass, db):
        url = _registration_url('device-abc', wallet_pass.serial_number)

        first = client.post(url, json={'pushToken': 'token-1'}, headers=_apple_auth(wallet_pass))
        second = client.post(url, json={'pushToken': 'token-2'}, headers=_apple_auth(wallet_pass))

        assert first.status_code == 201
        assert second.status_code == 200
        registration = db.session.query(DeviceRegistration).one()
        assert registration.push_token == 'token-2'
        assert registration.user_id == wallet_pass.user_id

    def test_wrong_token_is_401(self, client, wallet_pass, db):
        response = client.post(
            _registration_url('device-abc', wallet_pass.serial_number),
            json={'pushToken': 'token-1'},
            headers={'Authorization': 'ApplePass not-the-token'},
        )

        assert response.status_code == 401
        assert db.session.query(DeviceRegistration).count() == 0

    def test_wrong_pass_type_is_401(self, client, wallet_pass):
        response = client.post(
            f'/v1/devices/device-abc/registrations/pass.com.other/{wallet_pass.serial_number}',
            json={'pushToken': 'token-1'},
            headers=_apple_auth(wallet_pass),
        )

        assert response.status_code == 401

    def test_missing_push_token_is_400(self, client, wallet_pass):
        response = client.post(
            _registration_url('device-abc', wallet_pass.serial_number), json={}, headers=_apple_auth(wallet_pass)
        )

        assert response.status_code == 400

    def test_unregister(self, client, wallet_pass, device, db):
        response = client.delete(
            _registration_url(device.device_library_identifier, wallet_pass.serial_number),
            headers=_apple_auth(wallet_pass),
        )

        assert response.status_code == 200
        assert db.session.query(DeviceRegistration).count() == 0


# =============================================================================
# SERIAL NUMBER LISTING TESTS
# =============================================================================

@pytest.mark.unit
class TestSerialNumbers:

    def test_lists_registered_serials(self, client, wallet_pass, device):
        response = client.get(f'/v1/devices/{device.device_library_identifier}/registrations/{PASS_TYPE}')

        assert response.status_code == 200
        body = response.get_json()
        assert body['serialNumbers'] == [wallet_pass.serial_number]
        assert body['lastUpdated'] == str(calendar.timegm(wallet_pass.updated_at.utctimetuple()))

    def test_nothing_newer_is_204(self, client, device):
        since = int(time.time()) + 3600

        response = client.get(
            f'/v1/devices/{device.device_library_identifier}/registrations/{PASS_TYPE}?passesUpdatedSince={since}'
        )

        assert response.status_code == 204

    def test_unknown_device_is_204(self, client, db):
        assert client.get(f'/v1/devices/unknown/registrations/{PASS_TYPE}').status_code == 204

    def test_only_changed_passes_are_listed(self, client, tenant, template, wallet_pass, device, db):
        """
        GIVEN a device holding two passes, one changed an hour ago and one just now
        WHEN it asks for passes updated in the last 30 minutes
        THEN only the recently changed pass is listed
        """
        stale = PassFactory(user=tenant, template=template)
        stale.updated_at = datetime.utcnow() - timedelta(hours=1)
        db.session.commit()
        DeviceRegistrationFactory(
            user_id=tenant.id,
            device_library_identifier=device.device_library_identifier,
            serial_number=stale.serial_number,
        )
        since = calendar.timegm((datetime.utcnow() - timedelta(minutes=30)).utctimetuple())

        response = client.get(
            f'/v1/devices/{device.device_library_identifier}/registrations/{PASS_TYPE}?passesUpdatedSince={since}'
        )

        assert response.get_json()['serialNumbers'] == [wallet_pass.serial_number]


# =============================================================================
# PASS DOWNLOAD TESTS
# =============================================================================

@pytest.mark.unit
class TestGetPass:

    def test_returns_pkpass(self, client, wallet_pass):
        with patch('passkit.api.apple_webservice.PassStorage') as storage_cls:
            storage_cls.return_value.ensure_generated.return_value = b'PK\x03\x04fake'

            response = client.get(f'/v1/passes/{PASS_TYPE}/{wallet_pass.serial_number}', headers=_apple_auth(wallet_pass))

        assert response.status_code == 200
        assert response.mimetype == 'application/vnd.apple.pkpass'
        assert response.data == b'PK\x03\x04fake'
        assert 'Last-Modified' in response.headers

    def test_unchanged_pass_is_304(self, client, wallet_pass):
        headers = dict(_apple_auth(wallet_pass))
        headers['If-Modified-Since'] = (datetime.utcnow() + timedelta(hours=1)).strftime('%a, %d %b %Y %H:%M:%S GMT')

        with patch('passkit.api.apple_webservice.PassStorage') as storage_cls:
            response = client.get(f'/v1/passes/{PASS_TYPE}/{wallet_pass.serial_number}', headers=headers)

        assert response.status_code == 304
        storage_cls.assert_not_called()

    def test_unauthorized_download_is_401(self, client, wallet_pass):
        response = client.get(f'/v1/passes/{PASS_TYPE}/{wallet_pass.serial_number}')

        assert response.status_code == 401


@pytest.mark.unit
class TestLog:

    def test_accepts_log_messages(self, client, db):
        response = client.post('/v1/log', json={'logs': ['Push token rejected', 'Pass download failed']})

        assert response.status_code == 200
