"""Delivery blueprint - driver assignment, cash collection and tracking."""
from flask import Blueprint, request, jsonify, g
from marketplace.database import get_session
from marketplace.exceptions import ValidationError
from marketplace.middleware import require_login, require_role, ensure_order_access, company_scope
from marketplace.models import UserRole
from marketplace.services import delivery_service, order_service
from marketplace.utils.serializers import jsonable

delivery_bp = Blueprint('delivery', __name__, url_prefix='/api/delivery')

DISPATCH_ROLES = (UserRole.SUPER_ADMIN, UserRole.LOCATION_ADMIN, UserRole.COMPANY_ADMIN)
FIELD_ROLES = DISPATCH_ROLES + (UserRole.DRIVER,)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _ensure_field_access(order):
    """Drivers may act on orders assigned to them; others need write access."""
    if g.user.role == UserRole.DRIVER.value:
        ensure_order_access(g.user, order)
    else:
        ensure_order_access(g.user, order, write=True)


@delivery_bp.route('/orders/<int:order_id>/status', methods=['PUT'])
@require_role(*FIELD_ROLES)
def update_status(order_id):
    """Status update from the field, optionally with the current location."""
    data = _json_body()
    db_session = get_session()

    order = order_service.get_order(db_session, order_id)
    _ensure_field_access(order)

    order = order_service.update_order_status(
        db_session,
        order_id,
        data.get('status'),
        changed_by=g.user.id,
        notes=data.get('notes'),
        estimated_time=data.get('estimated_time'),
        location=data.get('location'),
    )
    return jsonify({'status': 'success', 'order': order.to_dict(include_history=True)})


@delivery_bp.route('/orders/<int:order_id>/assign-driver', methods=['POST'])
@require_role(*DISPATCH_ROLES)
def assign_driver(order_id):
    data = _json_body()
    db_session = get_session()

    try:
        driver_id = int(data.get('driver_id'))
    except (TypeError, ValueError):
        raise ValidationError('driver_id is required')

    order = order_service.get_order(db_session, order_id)
    ensure_order_access(g.user, order, write=True)

    order = delivery_service.assign_driver(db_session, order_id, driver_id, assigned_by=g.user.id)
    return jsonify({'status': 'success', 'order': order.to_dict()})


@delivery_bp.route('/orders/<int:order_id>/cash-collection', methods=['POST'])
@require_role(*FIELD_ROLES)
def cash_collection(order_id):
    """Record cash received on delivery. 400 on amount mismatch or wrong order state."""
    data = _json_body()
    db_session = get_session()

    if data.get('amount') is None:
        raise ValidationError('amount is required')

    order = order_service.get_order(db_session, order_id)
    _ensure_field_access(order)

    collection = delivery_service.record_cash_collection(
        db_session, order_id, data.get('amount'), g.user.id, notes=data.get('notes')
    )
    return jsonify({'status': 'success', 'collection': collection.to_dict()}), 201


@delivery_bp.route('/orders/status/<status>', methods=['GET'])
@require_role(*DISPATCH_ROLES)
def orders_by_status(status):
    orders = delivery_service.get_orders_by_status(get_session(), status, company_id=company_scope(g.user))
    return jsonify({
        'status': 'success',
        'orders': [order.to_dict(include_items=False) for order in orders],
        'count': len(orders),
    })


@delivery_bp.route('/active', methods=['GET'])
@require_role(*DISPATCH_ROLES)
def active_deliveries():
    company_id = company_scope(g.user)
    # Platform admins may narrow the dashboard to one vendor
    if company_id is None and request.args.get('company_id'):
        try:
            company_id = int(request.args['company_id'])
        except ValueError:
            raise ValidationError('company_id must be an integer')

    result = delivery_service.get_active_deliveries(get_session(), company_id=company_id)
    return jsonify({
        'status': 'success',
        'orders': {
            status: [order.to_dict(include_items=False) for order in orders]
            for status, orders in result['orders'].items()
        },
        'summary': result['summary'],
    })


@delivery_bp.route('/track/<int:order_id>', methods=['GET'])
@require_login
def track(order_id):
    db_session = get_session()
    order = order_service.get_order(db_session, order_id)
    ensure_order_access(g.user, order)
    return jsonify({'status': 'success', 'tracking': delivery_service.track_delivery(db_session, order_id)})


@delivery_bp.route('/metrics', methods=['GET'])
@require_role(*DISPATCH_ROLES)
def delivery_metrics():
    result = delivery_service.get_delivery_metrics(
        get_session(),
        period=request.args.get('period', 'today'),
        company_id=company_scope(g.user),
    )
    return jsonify(jsonable({'status': 'success', 'metrics': result}))
