# passkit/api/scanner.py

"""
Scanner endpoints.

Authenticated by a scanner link token; every lookup is restricted to the
link's tenant. Responses use the {success, message|error, pass} shape the
scanner app renders directly.
"""

import logging

from flask import Blueprint, request, jsonify, g

from passkit.core import db
from passkit.decorators import scanner_token_required
from passkit.services import RedemptionEngine

logger = logging.getLogger(__name__)

scanner_bp = Blueprint('scanner_api', __name__, url_prefix='/api/v1/scanner')


def _client_info():
    return request.remote_addr, request.headers.get('User-Agent')


@scanner_bp.route('/redeem', methods=['POST'])
@scanner_token_required
def redeem():
    """Redeem a pass by id or by signed QR payload."""
    data = request.get_json(silent=True) or {}
    pass_id = data.get('pass_id')
    # An empty payload field counts as absent
    payload = data.get('payload') or None

    if pass_id is None and payload is None:
        return jsonify({'success': False, 'error': 'pass_id or payload is required.'}), 422
    if payload is None:
        if isinstance(pass_id, bool):
            return jsonify({'success': False, 'error': 'pass_id must be an integer.'}), 422
        try:
            pass_id = int(pass_id)
        except (TypeError, ValueError, OverflowError):
            return jsonify({'success': False, 'error': 'pass_id must be an integer.'}), 422

    ip_address, user_agent = _client_info()
    result = RedemptionEngine(db.session).redeem(
        g.scanner_link,
        pass_id=pass_id if payload is None else None,
        payload=payload,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return jsonify(result.to_response()), result.status_code


@scanner_bp.route('/validate', methods=['POST'])
@scanner_token_required
def validate():
    """Check a signed QR payload without redeeming."""
    data = request.get_json(silent=True) or {}
    payload = data.get('payload')
    if not payload or not isinstance(payload, str):
        return jsonify({'valid': False, 'message': 'payload is required.'}), 422

    ip_address, user_agent = _client_info()
    result = RedemptionEngine(db.session).validate(
        g.scanner_link, payload, ip_address=ip_address, user_agent=user_agent
    )
    return jsonify(result.to_response()), result.status_code
