"""
Checkout service with transactional logic.

Turns a validated multi-vendor cart into one Order per vendor. Each vendor
group is committed in its own transaction with its product rows locked, so
a stock race aborts only that vendor's order.
"""
import logging
import secrets
from datetime import datetime
from typing import List, Dict, Optional, Any
from sqlalchemy.orm import Session
from marketplace.models import (
    User, Address, Product, Order, OrderItem, OrderStatusHistory,
    StockHistory, StockChangeType, OrderStatus, PaymentStatus,
    normalize_payment_method, normalize_zone
)
from marketplace.exceptions import (
    ValidationError, NotFoundError, ConflictError, InsufficientStockError
)
from marketplace.services.cart_service import validate_cart_items, group_items_by_vendor
from marketplace.utils.money import quantize

logger = logging.getLogger(__name__)


def generate_order_number(now: datetime = None) -> str:
    """ORD-<millisecond timestamp>-<random suffix>."""
    now = now or datetime.now()
    return f"ORD-{int(now.timestamp() * 1000)}-{secrets.token_hex(4).upper()}"


def checkout(
    session: Session,
    user_id: int,
    address_id: int,
    items,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    now: datetime = None
) -> Dict[str, Any]:
    """
    Create one order per vendor group.

    The cart is re-validated and re-priced from the catalog. Vendor groups
    are independent: a group whose stock changed since validation is rolled
    back and reported in `failures` while the other groups still commit.

    Returns:
        dict with orders (Order objects), order_count, failures and warnings

    Raises:
        NotFoundError: unknown user or address
        ValidationError: malformed input or cart validation errors
        ConflictError: no vendor group could be committed
    """
    from flask import current_app

    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError('User not found')

    if address_id is None:
        raise ValidationError('address_id is required')
    address = session.get(Address, address_id)
    if not address:
        raise NotFoundError('Address not found')
    if address.user_id != user.id:
        raise ValidationError('Address does not belong to user')

    try:
        payment_method = normalize_payment_method(
            payment_method, default=current_app.config.get('DEFAULT_PAYMENT_METHOD', 'CASH_ON_DELIVERY')
        )
    except ValueError as e:
        raise ValidationError(str(e))

    validation = validate_cart_items(session, items)
    if not validation['valid']:
        raise ValidationError('Cart validation failed', errors=validation['errors'])
    if not validation['validated_items']:
        raise ValidationError('No valid items in cart')

    zone = normalize_zone(address.zone)
    groups = group_items_by_vendor(session, validation['validated_items'], user_zone=zone, now=now)

    orders = []
    failures = []

    for group in groups:
        try:
            order = _create_vendor_order(
                session, user, address, group, payment_method, notes, now=now
            )
            orders.append(order)
        except (InsufficientStockError, NotFoundError) as e:
            session.rollback()
            logger.warning(f"[CHECKOUT] Vendor {group['company_id']} order aborted: {e.message}")
            failures.append({
                'company_id': group['company_id'],
                'company_name': group['company_name'],
                'code': e.code,
                'message': e.message,
            })
            _count_failure()
        except Exception:
            session.rollback()
            logger.exception(f"[CHECKOUT] Unexpected error creating order for vendor {group['company_id']}")
            raise

    if not orders:
        raise ConflictError('No orders could be created', payload={'failures': failures})

    for order in orders:
        _after_order_created(session, order)

    logger.info(
        f"[CHECKOUT] User {user.id} placed {len(orders)} order(s), "
        f"{len(failures)} vendor group(s) failed"
    )

    return {
        'orders': orders,
        'order_count': len(orders),
        'failures': failures,
        'warnings': validation['warnings'],
    }


def _lock_products(session: Session, product_ids: List[int]) -> Dict[int, Product]:
    """Lock product rows (SELECT ... FOR UPDATE) in id order to avoid deadlocks."""
    products = session.query(Product).filter(
        Product.id.in_(sorted(product_ids))
    ).order_by(Product.id).with_for_update().populate_existing().all()
    return {p.id: p for p in products}


def _create_vendor_order(
    session: Session,
    user: User,
    address: Address,
    group: Dict[str, Any],
    payment_method: str,
    notes: Optional[str],
    now: datetime = None
) -> Order:
    """Persist a single vendor's order and decrement its stock, committing on success."""
    try:
        locked = _lock_products(session, [item['product_id'] for item in group['items']])

        # Stock may have moved since validation
        for item in group['items']:
            product = locked.get(item['product_id'])
            if not product or not product.is_active:
                raise NotFoundError(f"Product {item['product_id']} not found or inactive")
            if product.stock < item['quantity']:
                raise InsufficientStockError(product.name, item['quantity'], product.stock)

        order = Order(
            order_number=generate_order_number(now),
            user_id=user.id,
            address_id=address.id,
            company_id=group['company_id'],
            zone=address.zone,
            status=OrderStatus.PENDING,
            subtotal=quantize(group['subtotal']),
            discount=quantize(group['discount']),
            delivery_fee=quantize(group['delivery_fee']),
            total=quantize(group['total']),
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            notes=notes,
        )
        session.add(order)
        session.flush()

        for item in group['items']:
            product = locked[item['product_id']]
            session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=item['quantity'],
                unit_price=quantize(item['unit_price']),
                discount=quantize(item['discount_amount']),
                total=quantize(item['total']),
                free_items=item['free_items'],
                promotion_id=item['promotion_id'],
            ))

            previous = product.stock
            product.stock = previous - item['quantity']
            session.add(StockHistory(
                product_id=product.id,
                previous_quantity=previous,
                new_quantity=product.stock,
                change_quantity=-item['quantity'],
                change_type=StockChangeType.SALE,
                reference_id=order.id,
                reason=f'Order {order.order_number}',
            ))

        session.add(OrderStatusHistory(
            order_id=order.id,
            from_status=None,
            to_status=OrderStatus.PENDING.value,
            note='Order placed',
            changed_by=user.id,
        ))

        session.commit()
        logger.info(f"[CHECKOUT] Order {order.order_number} created for company {order.company_id} (total {order.total})")
        return order

    except Exception:
        session.rollback()
        raise


def _count_failure():
    try:
        from marketplace.blueprints.metrics import checkout_group_failures_total
        checkout_group_failures_total.inc()
    except Exception as e:
        logger.debug(f"[CHECKOUT] Metrics update skipped: {e}")


def _after_order_created(session: Session, order: Order):
    """Metrics and vendor notification; never fails the checkout."""
    try:
        from marketplace.blueprints.metrics import orders_created_total
        orders_created_total.inc()
    except Exception as e:
        logger.debug(f"[CHECKOUT] Metrics update skipped: {e}")

    from marketplace.services.notification_service import notify_order_created
    notify_order_created(session, order)
