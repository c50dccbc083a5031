"""Orders blueprint - listing, detail and status workflow."""
from flask import Blueprint, request, jsonify, g
from marketplace.database import get_session
from marketplace.exceptions import ValidationError
from marketplace.middleware import require_login, require_role, ensure_order_access, company_scope
from marketplace.models import UserRole
from marketplace.services import order_service
from marketplace.utils.serializers import jsonable

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')

ORDER_MANAGER_ROLES = (UserRole.SUPER_ADMIN, UserRole.LOCATION_ADMIN, UserRole.COMPANY_ADMIN)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@orders_bp.route('/', methods=['GET'])
@require_login
def list_orders():
    """Orders visible to the current user, newest first."""
    try:
        page = int(request.args.get('page', 1))
        per_page = int(request.args['per_page']) if request.args.get('per_page') else None
    except ValueError:
        raise ValidationError('page and per_page must be integers')

    filters = {
        key: request.args.get(key)
        for key in ('status', 'zone', 'user_id', 'company_id', 'start_date', 'end_date')
        if request.args.get(key)
    }
    result = order_service.list_orders(get_session(), user=g.user, filters=filters, page=page, per_page=per_page)
    return jsonify(jsonable({
        'status': 'success',
        'orders': [order.to_dict(include_items=False) for order in result['orders']],
        'pagination': result['pagination'],
    }))


@orders_bp.route('/stats', methods=['GET'])
@require_login
def stats():
    result = order_service.get_order_stats(get_session(), user=g.user)
    return jsonify(jsonable({'status': 'success', 'stats': result}))


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_login
def get_order(order_id):
    order = order_service.get_order(get_session(), order_id)
    ensure_order_access(g.user, order)
    return jsonify({'status': 'success', 'order': order.to_dict(include_history=True)})


@orders_bp.route('/<int:order_id>/status', methods=['PUT'])
@require_role(*ORDER_MANAGER_ROLES)
def update_status(order_id):
    """Move an order along the workflow. 400 on an invalid transition."""
    data = _json_body()
    db_session = get_session()

    order = order_service.get_order(db_session, order_id)
    ensure_order_access(g.user, order, write=True)

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


@orders_bp.route('/bulk-status', methods=['POST'])
@require_role(*ORDER_MANAGER_ROLES)
def bulk_status():
    """Same status for many orders; partial failure is reported, not rolled back."""
    data = _json_body()
    result = order_service.bulk_update_status(
        get_session(),
        data.get('order_ids'),
        data.get('status'),
        changed_by=g.user.id,
        notes=data.get('notes'),
        company_id=company_scope(g.user),
    )
    return jsonify({'status': 'success', **result})


@orders_bp.route('/<int:order_id>', methods=['DELETE'])
@require_login
def cancel(order_id):
    """Cancel an order. Shop owners may only cancel their own pending orders."""
    data = request.get_json(silent=True) or {}
    db_session = get_session()

    order = order_service.get_order(db_session, order_id)
    if g.user.role != UserRole.SHOP_OWNER.value:
        ensure_order_access(g.user, order, write=True)

    order = order_service.cancel_order(db_session, order_id, g.user, reason=data.get('reason'))
    return jsonify({'status': 'success', 'order': order.to_dict()})
