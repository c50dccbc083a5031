"""Promotions blueprint - admin management and cart application."""
from flask import Blueprint, request, jsonify, g
from marketplace.database import get_session
from marketplace.exceptions import ValidationError
from marketplace.middleware import require_role
from marketplace.models import UserRole
from marketplace.services import promotion_service, cart_service
from marketplace.utils.serializers import jsonable

promotions_bp = Blueprint('promotions', __name__, url_prefix='/api/promotions')

ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.LOCATION_ADMIN)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@promotions_bp.route('/', methods=['GET'])
def list_promotions():
    """Active promotions; admins may pass include_inactive=true."""
    include_inactive = request.args.get('include_inactive', 'false').lower() == 'true'
    if include_inactive and not (g.get('user') and g.user.is_platform_admin):
        include_inactive = False

    promotions = promotion_service.list_promotions(get_session(), include_inactive=include_inactive)
    return jsonify({
        'status': 'success',
        'promotions': [p.to_dict() for p in promotions],
        'count': len(promotions),
    })


@promotions_bp.route('/active/<zone>', methods=['GET'])
def active_by_zone(zone):
    promotions = promotion_service.get_active_promotions_by_zone(get_session(), zone)
    return jsonify({'status': 'success', 'zone': zone.upper(), 'promotions': promotions})


@promotions_bp.route('/<int:promotion_id>', methods=['GET'])
def get_promotion(promotion_id):
    promotion = promotion_service.get_promotion(get_session(), promotion_id)
    return jsonify({'status': 'success', 'promotion': promotion.to_dict()})


@promotions_bp.route('/', methods=['POST'])
@require_role(*ADMIN_ROLES)
def create_promotion():
    promotion = promotion_service.create_promotion(get_session(), _json_body())
    return jsonify({'status': 'success', 'promotion': promotion.to_dict()}), 201


@promotions_bp.route('/<int:promotion_id>', methods=['PUT'])
@require_role(*ADMIN_ROLES)
def update_promotion(promotion_id):
    promotion = promotion_service.update_promotion(get_session(), promotion_id, _json_body())
    return jsonify({'status': 'success', 'promotion': promotion.to_dict()})


@promotions_bp.route('/<int:promotion_id>', methods=['DELETE'])
@require_role(*ADMIN_ROLES)
def delete_promotion(promotion_id):
    promotion_service.delete_promotion(get_session(), promotion_id)
    return jsonify({'status': 'success', 'message': 'Promotion deleted'})


@promotions_bp.route('/<int:promotion_id>/toggle', methods=['POST'])
@require_role(*ADMIN_ROLES)
def toggle_promotion(promotion_id):
    promotion = promotion_service.toggle_promotion_status(get_session(), promotion_id)
    return jsonify({'status': 'success', 'promotion': promotion.to_dict()})


@promotions_bp.route('/apply-to-cart', methods=['POST'])
def apply_to_cart():
    """Item promotions and bundles for a cart."""
    data = _json_body()
    lines = cart_service.parse_cart_items(data.get('items'))['lines']
    result = promotion_service.apply_promotions_to_cart(get_session(), lines, zone=data.get('zone'))
    return jsonify(jsonable({'status': 'success', **result}))
