# passkit/api/passes.py

"""
Pass update endpoints.

PATCH accepts either the owner's JWT or a device-service X-Signature; the
caller's identity is established before the pass is looked up.
"""

import logging
import math

from flask import Blueprint, request, jsonify, g, current_app

from passkit.core import db
from passkit.decorators import owner_or_signature, jwt_owner_required
from passkit.models import UpdateSource
from passkit.repositories import PassRepository
from passkit.services import PassUpdateService, NotFoundError

logger = logging.getLogger(__name__)

passes_bp = Blueprint('passes_api', __name__, url_prefix='/api/v1/passes')


def _load_pass(pass_id):
    pass_ = PassRepository(db.session).find_for_authorization(pass_id)
    if pass_ is None:
        raise NotFoundError("Pass not found.", 'PASS_NOT_FOUND')
    return pass_


@passes_bp.route('/<int:pass_id>', methods=['PATCH'])
@passes_bp.route('/<int:pass_id>/fields', methods=['PATCH'])
@owner_or_signature
def update_pass_fields(pass_id):
    """Merge field values into a pass and queue wallet delivery."""
    pass_ = _load_pass(pass_id)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    service = PassUpdateService(db.session)
    update = service.update_pass_fields(
        pass_,
        data.get('fields'),
        initiator=g.current_user,
        source=UpdateSource.DEVICE.value if g.signature_verified else UpdateSource.API.value,
        change_messages=data.get('change_messages'),
        signature_verified=g.signature_verified,
    )

    payload = update.to_dict()
    payload['has_registered_devices'] = service.has_registered_devices(update.pass_)
    return jsonify({'data': payload}), 200


@passes_bp.route('/<int:pass_id>/updates', methods=['GET'])
@jwt_owner_required
def get_update_history(pass_id):
    """Paginated update history, newest first."""
    pass_ = _load_pass(pass_id)
    service = PassUpdateService(db.session)
    service.authorize(pass_, g.current_user)

    page = max(request.args.get('page', 1, type=int) or 1, 1)
    per_page = int(current_app.config.get('PASS_UPDATES_PER_PAGE', 15))
    items, total = service.get_update_history(pass_, page=page, per_page=per_page)
    return jsonify({
        'data': [item.to_dict() for item in items],
        'meta': {
            'current_page': page,
            'per_page': per_page,
            'total': total,
            'last_page': max(1, math.ceil(total / per_page)),
        },
    }), 200
