"""
Order service - status workflow and order queries.

The status workflow is a small explicit transition table. Terminal states
have no outgoing transitions.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Dict, Optional, Any
from sqlalchemy import func
from sqlalchemy.orm import Session
from marketplace.models import (
    Order, OrderStatus, OrderStatusHistory, Product, StockHistory, StockChangeType,
    User, UserRole, normalize_zone
)
from marketplace.exceptions import (
    ValidationError, NotFoundError, ForbiddenError, InvalidStatusTransitionError, MarketplaceError
)

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
    OrderStatus.ACCEPTED: (OrderStatus.PREPARING, OrderStatus.CANCELLED),
    OrderStatus.PREPARING: (OrderStatus.ON_THE_WAY, OrderStatus.CANCELLED),
    OrderStatus.ON_THE_WAY: (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
    OrderStatus.COMPLETED: (),
    OrderStatus.REFUNDED: (),
}


def parse_status(value) -> OrderStatus:
    """
    Parse a status from request data.

    Raises:
        ValidationError: if the value is not a known status
    """
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value or '').upper().strip())
    except ValueError:
        valid = ', '.join(s.value for s in OrderStatus)
        raise ValidationError(f'Invalid status: {value}. Must be one of {valid}')


def can_transition(current_status: OrderStatus, new_status: OrderStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS[current_status]


def validate_status_transition(current_status: OrderStatus, new_status: OrderStatus) -> None:
    """
    Raises:
        InvalidStatusTransitionError: if the move is not in the transition table
    """
    if not can_transition(current_status, new_status):
        raise InvalidStatusTransitionError(current_status, new_status)


def _parse_estimated_time(value) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError('estimated_time must be an ISO 8601 date')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _parse_location(location) -> Dict[str, Optional[float]]:
    if not location:
        return {'latitude': None, 'longitude': None}
    if not isinstance(location, dict):
        raise ValidationError('location must be an object with latitude and longitude')
    try:
        latitude = location.get('latitude', location.get('lat'))
        longitude = location.get('longitude', location.get('lng'))
        return {
            'latitude': float(latitude) if latitude is not None else None,
            'longitude': float(longitude) if longitude is not None else None,
        }
    except (TypeError, ValueError):
        raise ValidationError('location coordinates must be numbers')


def _stamp_status(order: Order, new_status: OrderStatus, now: datetime) -> None:
    if new_status == OrderStatus.ACCEPTED:
        order.accepted_at = now
    elif new_status == OrderStatus.PREPARING:
        order.preparing_at = now
    elif new_status == OrderStatus.ON_THE_WAY:
        order.dispatched_at = now
    elif new_status == OrderStatus.DELIVERED:
        order.delivered_at = now
        order.completed_at = now
    elif new_status == OrderStatus.CANCELLED:
        order.cancelled_at = now


def _restore_stock(session: Session, order: Order) -> None:
    """Put the order's quantities back on the shelf (same transaction as the cancel)."""
    product_ids = sorted(item.product_id for item in order.items)
    if not product_ids:
        return
    products = session.query(Product).filter(
        Product.id.in_(product_ids)
    ).order_by(Product.id).with_for_update().populate_existing().all()
    by_id = {p.id: p for p in products}

    for item in order.items:
        product = by_id.get(item.product_id)
        if not product:
            continue
        previous = product.stock
        product.stock = previous + item.quantity
        session.add(StockHistory(
            product_id=product.id,
            previous_quantity=previous,
            new_quantity=product.stock,
            change_quantity=item.quantity,
            change_type=StockChangeType.CANCELLATION,
            reference_id=order.id,
            reason=f'Order {order.order_number} cancelled',
        ))


def apply_status_change(
    session: Session,
    order: Order,
    new_status: OrderStatus,
    changed_by: Optional[int],
    notes: Optional[str] = None,
    estimated_time=None,
    location=None,
    now: datetime = None
) -> str:
    """
    Validate and apply a transition on an order without committing.

    Returns the previous status value.
    """
    validate_status_transition(order.status, new_status)
    estimated_at = _parse_estimated_time(estimated_time)
    coords = _parse_location(location)
    now = now or datetime.now()

    old_status = order.status.value
    order.status = new_status
    _stamp_status(order, new_status, now)
    if estimated_at:
        order.estimated_delivery_at = estimated_at

    if new_status == OrderStatus.CANCELLED:
        _restore_stock(session, order)

    session.add(OrderStatusHistory(
        order_id=order.id,
        from_status=old_status,
        to_status=new_status.value,
        note=notes,
        changed_by=changed_by,
        latitude=coords['latitude'],
        longitude=coords['longitude'],
        created_at=now,
    ))
    return old_status


def after_status_change(session: Session, order: Order, old_status: str) -> None:
    try:
        from marketplace.blueprints.metrics import order_status_transitions_total
        order_status_transitions_total.labels(status=order.status.value).inc()
    except Exception as e:
        logger.debug(f"[ORDER] Metrics update skipped: {e}")

    from marketplace.services.notification_service import notify_status_change
    notify_status_change(session, order, old_status, order.status.value)


def update_order_status(
    session: Session,
    order_id: int,
    status,
    changed_by: Optional[int] = None,
    notes: Optional[str] = None,
    estimated_time=None,
    location=None,
    now: datetime = None
) -> Order:
    """
    Move an order to a new status.

    The order row stays locked from the transition check to the commit, so a
    concurrent update sees the new status and fails the check.

    Raises:
        NotFoundError: unknown order
        ValidationError: unknown status or malformed estimated_time/location
        InvalidStatusTransitionError: transition not allowed (order unchanged)
    """
    new_status = parse_status(status)

    try:
        order = lock_order(session, order_id)
        old_status = apply_status_change(
            session, order, new_status, changed_by,
            notes=notes, estimated_time=estimated_time, location=location, now=now
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ORDER] Order {order.order_number}: {old_status} -> {order.status.value}")
    after_status_change(session, order, old_status)
    return order


def bulk_update_status(
    session: Session,
    order_ids: List[int],
    status,
    changed_by: Optional[int] = None,
    notes: Optional[str] = None,
    company_id: Optional[int] = None
) -> Dict[str, Any]:
    """
    Apply one status to many orders. Each order is independent; failures are
    reported, not rolled back across the batch.

    When company_id is given, orders of other companies fail as forbidden.
    """
    if not isinstance(order_ids, list) or not order_ids:
        raise ValidationError('order_ids must be a non-empty list')
    new_status = parse_status(status)

    updated = 0
    failed = 0
    errors = []

    for raw_id in order_ids:
        try:
            order_id = int(raw_id)
            order = get_order(session, order_id)
            if company_id is not None and order.company_id != company_id:
                raise ForbiddenError('Order belongs to another company')
            update_order_status(session, order_id, new_status, changed_by, notes=notes)
            updated += 1
        except (TypeError, ValueError):
            failed += 1
            errors.append({'order_id': raw_id, 'code': ValidationError.code, 'message': 'Invalid order id'})
        except MarketplaceError as e:
            failed += 1
            errors.append({'order_id': raw_id, 'code': e.code, 'message': e.message})

    logger.info(f"[ORDER] Bulk update to {new_status.value}: {updated} updated, {failed} failed")
    return {'updated': updated, 'failed': failed, 'errors': errors}


def cancel_order(session: Session, order_id: int, user: User, reason: Optional[str] = None) -> Order:
    """
    Cancel an order on behalf of a user.

    Shop owners may only cancel their own orders while still PENDING.
    """
    if user.role == UserRole.SHOP_OWNER.value:
        try:
            order = lock_order(session, order_id)
            if order.user_id != user.id:
                raise ForbiddenError('You can only cancel your own orders')
            if order.status != OrderStatus.PENDING:
                raise InvalidStatusTransitionError(order.status, OrderStatus.CANCELLED)
        except Exception:
            session.rollback()
            raise

    return update_order_status(
        session, order_id, OrderStatus.CANCELLED, changed_by=user.id,
        notes=reason or 'Cancelled by user'
    )


# =====================================================
# QUERIES
# =====================================================

def get_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError('Order not found')
    return order


def lock_order(session: Session, order_id: int) -> Order:
    """Load the order row FOR UPDATE, refreshing any stale copy in the session."""
    order = session.query(Order).filter(
        Order.id == order_id
    ).with_for_update().populate_existing().first()
    if not order:
        raise NotFoundError('Order not found')
    return order


def _scope_query(query, user: Optional[User]):
    """Restrict an order query to what the user may see."""
    if user is None or user.is_platform_admin:
        return query
    if user.role == UserRole.COMPANY_ADMIN.value:
        return query.filter(Order.company_id == user.company_id)
    if user.role == UserRole.DRIVER.value:
        return query.filter(Order.assigned_driver_id == user.id)
    return query.filter(Order.user_id == user.id)


def _parse_date(value, field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f'{field} must be an ISO 8601 date')


def _parse_id(value, field: str) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')


def list_orders(
    session: Session,
    user: Optional[User] = None,
    filters: Optional[Dict[str, Any]] = None,
    page: int = 1,
    per_page: Optional[int] = None
) -> Dict[str, Any]:
    """
    Paginated orders, newest first.

    Filters: status, zone, user_id, company_id, start_date, end_date.
    """
    from flask import current_app

    filters = filters or {}
    config = current_app.config
    per_page = per_page or config.get('ORDERS_PAGE_SIZE', 20)
    per_page = max(1, min(int(per_page), config.get('ORDERS_MAX_PAGE_SIZE', 100)))
    page = max(1, int(page or 1))

    query = _scope_query(session.query(Order), user)

    if filters.get('status'):
        query = query.filter(Order.status == parse_status(filters['status']))
    if filters.get('zone'):
        zone = normalize_zone(filters['zone'])
        if zone is None:
            raise ValidationError(f"Unknown zone: {filters['zone']}")
        query = query.filter(Order.zone == zone.value)
    user_id = _parse_id(filters.get('user_id'), 'user_id')
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    company_id = _parse_id(filters.get('company_id'), 'company_id')
    if company_id is not None:
        query = query.filter(Order.company_id == company_id)

    start = _parse_date(filters.get('start_date'), 'start_date')
    end = _parse_date(filters.get('end_date'), 'end_date')
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        if len(str(filters['end_date'])) <= 10:
            end = end + timedelta(days=1)
        query = query.filter(Order.created_at < end)

    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(
        (page - 1) * per_page
    ).limit(per_page).all()

    return {
        'orders': orders,
        'pagination': {
            'page': page,
            'per_page': per_page,
            'total': total,
            'pages': (total + per_page - 1) // per_page,
        },
    }


def get_order_stats(session: Session, user: Optional[User] = None) -> Dict[str, Any]:
    """Order counts per status and revenue of delivered orders."""
    base = _scope_query(session.query(Order), user)

    by_status = {status.value: 0 for status in OrderStatus}
    rows = base.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all()
    for status, count in rows:
        by_status[status.value] = count

    revenue = base.filter(Order.status == OrderStatus.DELIVERED).with_entities(
        func.coalesce(func.sum(Order.total), 0)
    ).scalar()

    return {
        'total_orders': sum(by_status.values()),
        'by_status': by_status,
        'delivered_revenue': revenue or 0,
    }
