# passkit/api/bulk_updates.py

import logging

from flask import Blueprint, request, jsonify, g

from passkit.core import db
from passkit.decorators import jwt_owner_required
from passkit.services import BulkUpdateCoordinator

logger = logging.getLogger(__name__)

bulk_updates_bp = Blueprint('bulk_updates_api', __name__, url_prefix='/api/v1/passes/bulk-update')


@bulk_updates_bp.route('', methods=['POST'])
@jwt_owner_required
def start_bulk_update():
    """Queue one field change across a template's passes."""
    data = request.get_json(silent=True) or {}
    bulk_update = BulkUpdateCoordinator(db.session).start_bulk_update(
        g.current_user.id,
        data.get('pass_template_id'),
        data.get('field_key'),
        data.get('field_value'),
        data.get('filters'),
    )
    return jsonify({
        'data': {
            'id': bulk_update.id,
            'status': bulk_update.status,
            'total_count': bulk_update.total_count,
            'message': f"Bulk update queued for {bulk_update.total_count} passes.",
        }
    }), 202


@bulk_updates_bp.route('/<int:bulk_update_id>', methods=['GET'])
@jwt_owner_required
def get_bulk_update(bulk_update_id):
    bulk_update = BulkUpdateCoordinator(db.session).get_progress(g.current_user.id, bulk_update_id)
    return jsonify({'data': bulk_update.to_dict()}), 200
