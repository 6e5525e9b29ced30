# passkit/api/apple_webservice.py

"""
Apple Wallet Web Service

Endpoints Apple Wallet calls on its own:
- Device registration / unregistration for push updates
- Serial numbers of passes updated since a timestamp
- Latest version of a pass
- Device log messages

Authenticated calls carry "Authorization: ApplePass <authenticationToken>".
"""

import calendar
import logging
from datetime import datetime
from email.utils import parsedate_to_datetime
from io import BytesIO

from flask import Blueprint, request, jsonify, make_response, send_file

from passkit.core import db
from passkit.repositories import PassRepository, DeviceRegistrationRepository
from passkit.services.delivery_service import resolve_pass_type_identifier
from passkit.services.pass_storage import PassStorage
from passkit.utils.signatures import tokens_match

logger = logging.getLogger(__name__)

apple_webservice_bp = Blueprint('apple_webservice', __name__, url_prefix='/v1')

PKPASS_MIMETYPE = 'application/vnd.apple.pkpass'
HTTP_DATE_FORMAT = '%a, %d %b %Y %H:%M:%S GMT'


def _authorized_pass(pass_type_id, serial_number):
    """Return the pass if the ApplePass token matches it, else None."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('ApplePass '):
        logger.warning(f"Apple web service call for {serial_number} without ApplePass authorization")
        return None

    wallet_pass = PassRepository(db.session).find_by_serial_for_authorization(serial_number)
    if wallet_pass is None:
        logger.warning(f"Apple web service call for unknown serial {serial_number}")
        return None
    if not tokens_match(wallet_pass.authentication_token, auth_header[len('ApplePass '):].strip()):
        logger.warning(f"Apple web service token mismatch for serial {serial_number}")
        return None
    if resolve_pass_type_identifier(wallet_pass.user) != pass_type_id:
        logger.warning(f"Pass type {pass_type_id} does not match pass {serial_number}")
        return None
    return wallet_pass


def _unix_timestamp(value: datetime) -> int:
    return calendar.timegm(value.utctimetuple())


@apple_webservice_bp.route(
    '/devices/<device_library_id>/registrations/<pass_type_id>/<serial_number>', methods=['POST']
)
def register_device(device_library_id, pass_type_id, serial_number):
    """Register a device for pass updates. 201 when new, 200 when already registered."""
    wallet_pass = _authorized_pass(pass_type_id, serial_number)
    if wallet_pass is None:
        return make_response('', 401)

    data = request.get_json(silent=True) or {}
    push_token = data.get('pushToken')
    if not push_token or not isinstance(push_token, str):
        return make_response('', 400)

    registration, created = DeviceRegistrationRepository(db.session).upsert(
        wallet_pass.user_id, device_library_id, pass_type_id, serial_number, push_token
    )
    db.session.commit()

    logger.info(
        f"Device {device_library_id[:8]}... {'registered' if created else 're-registered'} "
        f"for pass {serial_number}"
    )
    return make_response('', 201 if created else 200)


@apple_webservice_bp.route(
    '/devices/<device_library_id>/registrations/<pass_type_id>/<serial_number>', methods=['DELETE']
)
def unregister_device(device_library_id, pass_type_id, serial_number):
    """Unregister a device from pass updates."""
    wallet_pass = _authorized_pass(pass_type_id, serial_number)
    if wallet_pass is None:
        return make_response('', 401)

    devices = DeviceRegistrationRepository(db.session)
    registration = devices.find(wallet_pass.user_id, device_library_id, pass_type_id, serial_number)
    if registration is not None:
        devices.delete(registration)
        db.session.commit()

    logger.info(f"Device {device_library_id[:8]}... unregistered from pass {serial_number}")
    return make_response('', 200)


@apple_webservice_bp.route('/devices/<device_library_id>/registrations/<pass_type_id>', methods=['GET'])
def get_serial_numbers(device_library_id, pass_type_id):
    """Serial numbers of this device's passes changed since passesUpdatedSince."""
    since = None
    raw_since = request.args.get('passesUpdatedSince')
    if raw_since:
        try:
            since = datetime.utcfromtimestamp(int(raw_since))
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Ignoring malformed passesUpdatedSince={raw_since!r}")

    devices = DeviceRegistrationRepository(db.session)
    passes = PassRepository(db.session)
    updated = []
    for tenant_id in devices.tenants_for_device(device_library_id, pass_type_id):
        serials = devices.serials_for_device(tenant_id, device_library_id, pass_type_id)
        updated.extend(passes.updated_since(tenant_id, serials, since))

    if not updated:
        return make_response('', 204)

    last_updated = max(p.updated_at for p in updated)
    return jsonify({
        'serialNumbers': sorted(p.serial_number for p in updated),
        'lastUpdated': str(_unix_timestamp(last_updated)),
    }), 200


@apple_webservice_bp.route('/passes/<pass_type_id>/<serial_number>', methods=['GET'])
def get_pass(pass_type_id, serial_number):
    """Latest version of a pass, or 304 when unchanged since If-Modified-Since."""
    wallet_pass = _authorized_pass(pass_type_id, serial_number)
    if wallet_pass is None:
        return make_response('', 401)

    updated_at = wallet_pass.updated_at.replace(microsecond=0)
    if_modified_since = request.headers.get('If-Modified-Since')
    if if_modified_since:
        try:
            since = parsedate_to_datetime(if_modified_since)
        except (TypeError, ValueError):
            since = None
        if since is not None:
            since = since.replace(tzinfo=None) if since.tzinfo is None else datetime.utcfromtimestamp(since.timestamp())
            if updated_at <= since:
                return make_response('', 304)

    data = PassStorage().ensure_generated(wallet_pass, pass_type_id)
    db.session.commit()

    response = make_response(send_file(
        BytesIO(data),
        mimetype=PKPASS_MIMETYPE,
        as_attachment=True,
        download_name='pass.pkpass'
    ))
    response.headers['Last-Modified'] = updated_at.strftime(HTTP_DATE_FORMAT)
    return response


@apple_webservice_bp.route('/log', methods=['POST'])
def log_messages():
    """Receive log messages from Apple Wallet."""
    data = request.get_json(silent=True) or {}
    for log_entry in data.get('logs', []) or []:
        logger.warning(f"Apple Wallet log: {log_entry}")
    return make_response('', 200)
