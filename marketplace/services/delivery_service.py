"""
Delivery service - driver assignment, cash on delivery and tracking.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Dict, Optional, Any
from sqlalchemy import func
from sqlalchemy.orm import Session
from marketplace.models import (
    Order, OrderStatus, PaymentMethod, PaymentStatus, CashCollection, User, UserRole
)
from marketplace.exceptions import (
    ValidationError, NotFoundError, ConflictError, InvalidStatusTransitionError,
    CashAmountMismatchError
)
from marketplace.services.order_service import (
    get_order, lock_order, apply_status_change, parse_status, after_status_change
)
from marketplace.utils.money import to_decimal, quantize

logger = logging.getLogger(__name__)

METRIC_PERIODS = {
    'today': 0,
    'week': 7,
    'month': 30,
}


def estimate_driver_minutes(zone: Optional[str]) -> int:
    """Base minutes plus the zone's travel allowance."""
    from flask import current_app
    config = current_app.config
    zone_minutes = config.get('DRIVER_ZONE_MINUTES', {})
    return config.get('DRIVER_BASE_MINUTES', 30) + zone_minutes.get(
        zone or '', config.get('DRIVER_DEFAULT_ZONE_MINUTES', 30)
    )


def assign_driver(
    session: Session,
    order_id: int,
    driver_id: int,
    assigned_by: Optional[int] = None,
    now: datetime = None
) -> Order:
    """
    Hand a PREPARING order to a driver, which puts it ON_THE_WAY.

    Raises:
        NotFoundError: unknown order or driver
        ValidationError: user is not an active driver
        InvalidStatusTransitionError: order is not PREPARING
    """
    driver = session.get(User, driver_id) if driver_id is not None else None
    if not driver:
        raise NotFoundError('Driver not found')
    if driver.role != UserRole.DRIVER.value or not driver.is_active:
        raise ValidationError('User is not an active driver')

    now = now or datetime.now()
    try:
        order = lock_order(session, order_id)
        if order.status != OrderStatus.PREPARING:
            raise InvalidStatusTransitionError(order.status, OrderStatus.ON_THE_WAY)

        order.assigned_driver_id = driver.id
        old_status = apply_status_change(
            session, order, OrderStatus.ON_THE_WAY, assigned_by,
            notes=f'Driver {driver.name or driver.email} assigned', now=now
        )
        order.estimated_delivery_at = now + timedelta(minutes=estimate_driver_minutes(order.zone))
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[DELIVERY] Driver {driver.id} assigned to order {order.order_number}")

    after_status_change(session, order, old_status)
    from marketplace.services.notification_service import notify_driver_assigned
    notify_driver_assigned(session, order)
    return order


def record_cash_collection(
    session: Session,
    order_id: int,
    amount,
    collected_by: int,
    notes: Optional[str] = None,
    now: datetime = None
) -> CashCollection:
    """
    Record cash received for a delivered cash-on-delivery order.

    Raises:
        NotFoundError: unknown order
        ValidationError: bad amount, order not delivered or not cash on delivery
        CashAmountMismatchError: amount differs from the total by more than the tolerance
        ConflictError: cash already collected for this order
    """
    from flask import current_app

    try:
        amount = to_decimal(amount)
    except ValueError:
        raise ValidationError('amount must be a number')

    tolerance = to_decimal(current_app.config.get('CASH_AMOUNT_TOLERANCE', '0.01'))
    now = now or datetime.now()
    try:
        order = lock_order(session, order_id)
        if order.status != OrderStatus.DELIVERED:
            raise ValidationError('Cash can only be collected for delivered orders')
        if order.payment_method != PaymentMethod.CASH_ON_DELIVERY.value:
            raise ValidationError('Order is not cash on delivery')

        expected = to_decimal(order.total)
        if abs(amount - expected) > tolerance:
            raise CashAmountMismatchError(amount, expected)

        existing = session.query(CashCollection).filter(CashCollection.order_id == order.id).first()
        if existing:
            raise ConflictError('Cash already collected for this order')

        collection = CashCollection(
            order_id=order.id,
            amount=quantize(amount),
            collected_by=collected_by,
            collected_at=now,
            verified=False,
            notes=notes,
        )
        session.add(collection)
        order.payment_status = PaymentStatus.PAID.value
        order.paid_at = now
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[DELIVERY] Cash {amount} collected for order {order.order_number} by user {collected_by}")
    return collection


def get_orders_by_status(session: Session, status, company_id: Optional[int] = None) -> List[Order]:
    """Orders in one status, oldest first (delivery queue)."""
    query = session.query(Order).filter(Order.status == parse_status(status))
    if company_id is not None:
        query = query.filter(Order.company_id == company_id)
    return query.order_by(Order.created_at.asc(), Order.id.asc()).all()


ACTIVE_STATUSES = (OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.ON_THE_WAY)


def get_active_deliveries(session: Session, company_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Dispatch dashboard: accepted, preparing and on-the-way orders grouped by
    status, oldest first, with a count per group.
    """
    query = session.query(Order).filter(Order.status.in_(ACTIVE_STATUSES))
    if company_id is not None:
        query = query.filter(Order.company_id == company_id)

    groups = {status.value: [] for status in ACTIVE_STATUSES}
    for order in query.order_by(Order.created_at.asc(), Order.id.asc()).all():
        groups[order.status.value].append(order)

    summary = {status: len(orders) for status, orders in groups.items()}
    summary['total'] = sum(summary.values())
    return {'orders': groups, 'summary': summary}


def track_delivery(session: Session, order_id: int) -> Dict[str, Any]:
    """Current status, driver and timeline of an order."""
    order = get_order(session, order_id)
    driver = order.driver

    return {
        'order_id': order.id,
        'order_number': order.order_number,
        'status': order.status.value,
        'estimated_delivery_at': order.estimated_delivery_at.isoformat() if order.estimated_delivery_at else None,
        'driver': {
            'id': driver.id,
            'name': driver.name,
            'phone': driver.phone,
        } if driver else None,
        'timeline': [entry.to_dict() for entry in order.status_history],
    }


def get_delivery_metrics(
    session: Session,
    period: str = 'today',
    company_id: Optional[int] = None,
    now: datetime = None
) -> Dict[str, Any]:
    """Order counts, delivery rate and average delivery time for a period."""
    if period not in METRIC_PERIODS:
        raise ValidationError(f"period must be one of {', '.join(METRIC_PERIODS)}")

    now = now or datetime.now()
    start = now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=METRIC_PERIODS[period])

    query = session.query(Order).filter(Order.created_at >= start)
    if company_id is not None:
        query = query.filter(Order.company_id == company_id)

    counts = {status.value: 0 for status in OrderStatus}
    for status, count in query.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all():
        counts[status.value] = count

    delivered = query.filter(
        Order.status == OrderStatus.DELIVERED,
        Order.delivered_at.isnot(None)
    ).with_entities(Order.created_at, Order.delivered_at).all()

    durations = [
        (delivered_at - created_at).total_seconds() / 60
        for created_at, delivered_at in delivered
        if created_at and delivered_at
    ]

    total = sum(counts.values())
    return {
        'period': period,
        'since': start.isoformat(),
        'total_orders': total,
        'by_status': counts,
        'delivery_rate': round(counts[OrderStatus.DELIVERED.value] / total * 100, 2) if total else 0,
        'average_delivery_minutes': round(sum(durations) / len(durations), 1) if durations else None,
    }
