"""Cart blueprint - validation, pricing and checkout of multi-vendor carts."""
from flask import Blueprint, request, jsonify, g
from marketplace.database import get_session
from marketplace.exceptions import ValidationError
from marketplace.middleware import require_login
from marketplace.services import cart_service, checkout_service, promotion_service
from marketplace.utils.serializers import jsonable

cart_bp = Blueprint('cart', __name__, url_prefix='/api/cart')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _optional_int(data, key):
    value = data.get(key)
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be an integer')


@cart_bp.route('/validate', methods=['POST'])
def validate():
    """Validate a cart and price it per vendor. Invalid carts still get a 200 with errors."""
    data = _json_body()
    db_session = get_session()

    user_id = g.user.id if g.get('user') else _optional_int(data, 'user_id')
    result = cart_service.build_cart_summary(
        db_session, data.get('items'), user_id=user_id, zone=data.get('zone')
    )
    return jsonify(jsonable({'status': 'success', **result}))


@cart_bp.route('/summary', methods=['POST'])
@require_login
def summary():
    """Priced cart for the current user plus a delivery estimate."""
    data = _json_body()
    db_session = get_session()

    zone = cart_service.resolve_user_zone(
        db_session, user_id=g.user.id, address_id=_optional_int(data, 'address_id')
    )
    result = cart_service.get_cart_summary(db_session, data.get('items'), zone=zone)
    result['delivery_estimate'] = cart_service.estimate_delivery_time(result['summary']['vendor_groups'])
    return jsonify(jsonable({'status': 'success', **result}))


@cart_bp.route('/checkout', methods=['POST'])
@require_login
def checkout():
    """Create one order per vendor."""
    data = _json_body()
    db_session = get_session()

    result = checkout_service.checkout(
        db_session,
        user_id=g.user.id,
        address_id=_optional_int(data, 'address_id'),
        items=data.get('items'),
        payment_method=data.get('payment_method'),
        notes=data.get('notes'),
    )
    return jsonify(jsonable({
        'status': 'success',
        'message': f"{result['order_count']} order(s) created",
        'orders': [order.to_dict() for order in result['orders']],
        'order_count': result['order_count'],
        'failures': result['failures'],
        'warnings': result['warnings'],
    })), 201


@cart_bp.route('/save', methods=['POST'])
@require_login
def save():
    data = _json_body()
    items = cart_service.save_cart(get_session(), g.user.id, data.get('items'))
    return jsonify({'status': 'success', 'items': items})


@cart_bp.route('/saved', methods=['GET'])
@require_login
def saved():
    items = cart_service.get_saved_cart(get_session(), g.user.id)
    return jsonify({'status': 'success', 'items': items})


@cart_bp.route('/clear', methods=['DELETE'])
@require_login
def clear():
    cart_service.clear_saved_cart(get_session(), g.user.id)
    return jsonify({'status': 'success', 'message': 'Cart cleared'})


@cart_bp.route('/merge', methods=['POST'])
@require_login
def merge():
    """Merge a guest cart into the saved cart."""
    data = _json_body()
    items = cart_service.merge_cart(get_session(), g.user.id, data.get('items'))
    return jsonify({'status': 'success', 'items': items})


@cart_bp.route('/promotions', methods=['POST'])
def promotions():
    """Promotions touching the cart and the savings they would bring."""
    data = _json_body()
    db_session = get_session()

    lines = cart_service.parse_cart_items(data.get('items'))['lines']
    zone = data.get('zone')
    if zone is None and g.get('user'):
        zone = g.user.primary_zone

    preview = promotion_service.get_promotion_preview(db_session, lines, zone=zone)
    applied = promotion_service.apply_promotions_to_cart(db_session, lines, zone=zone)
    return jsonify(jsonable({'status': 'success', 'preview': preview, 'applied': applied}))


@cart_bp.route('/check-availability', methods=['POST'])
def check_availability():
    data = _json_body()
    availability = cart_service.check_availability(get_session(), data.get('items'))
    return jsonify({
        'status': 'success',
        'all_available': all(line['is_available'] for line in availability),
        'items': availability,
    })


@cart_bp.route('/delivery-fee', methods=['POST'])
@require_login
def delivery_fee():
    """Delivery fee per vendor for the user's zone."""
    data = _json_body()
    result = cart_service.calculate_delivery_fees(
        get_session(), data.get('items'), g.user.id, address_id=_optional_int(data, 'address_id')
    )
    return jsonify(jsonable({'status': 'success', **result}))
