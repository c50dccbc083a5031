"""
Cart service - validation, vendor grouping and pricing of multi-vendor carts.

Carts are ephemeral: each request sends its lines and every total is
recomputed from the catalog. Client-supplied prices and totals are ignored.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Dict, Optional, Any
from flask import current_app
from sqlalchemy.orm import Session
from marketplace.models import (
    Product, Company, User, Address, SavedCart, SavedCartLine, normalize_zone
)
from marketplace.exceptions import ValidationError, NotFoundError
from marketplace.services.promotion_service import calculate_discount
from marketplace.utils.money import ZERO, to_decimal

logger = logging.getLogger(__name__)


# =====================================================
# INPUT PARSING
# =====================================================

def parse_cart_items(items) -> Dict[str, Any]:
    """
    Normalize raw cart lines into {product_id, quantity} dicts.

    Duplicate products are merged by summing quantities. Malformed lines are
    reported as errors instead of raising so the caller sees every problem.

    Raises:
        ValidationError: if items is not a non-empty list
    """
    if not isinstance(items, list) or not items:
        raise ValidationError('Cart items are required')

    merged = OrderedDict()
    errors = []

    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            errors.append(f'Item {index + 1} is malformed')
            continue

        try:
            product_id = int(raw.get('product_id'))
        except (TypeError, ValueError):
            errors.append(f'Item {index + 1} has an invalid product_id')
            continue

        quantity = raw.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.append(f'Quantity for product {product_id} must be a positive integer')
            continue

        if product_id in merged:
            merged[product_id]['quantity'] += quantity
        else:
            merged[product_id] = {'product_id': product_id, 'quantity': quantity}

    return {'lines': list(merged.values()), 'errors': errors}


# =====================================================
# CART VALIDATOR
# =====================================================

def _load_products(session: Session, product_ids: List[int]) -> Dict[int, Product]:
    if not product_ids:
        return {}
    products = session.query(Product).filter(Product.id.in_(product_ids)).all()
    return {p.id: p for p in products}


def validate_cart_items(session: Session, items) -> Dict[str, Any]:
    """
    Check every cart line against the catalog.

    - Missing or inactive product: error.
    - Quantity above stock: clipped to stock with a warning, or an
      out-of-stock error when nothing is left.
    - Quantity below the minimum order quantity: error.

    Returns:
        dict with valid (no errors), errors, warnings and validated_items
        (each with product, quantity, requested_quantity and unit_price)
    """
    parsed = parse_cart_items(items)
    errors = list(parsed['errors'])
    warnings = []
    validated_items = []

    products = _load_products(session, [line['product_id'] for line in parsed['lines']])

    for line in parsed['lines']:
        product_id = line['product_id']
        requested = line['quantity']
        product = products.get(product_id)

        if not product or not product.is_active:
            errors.append(f'Product {product_id} not found or inactive')
            continue

        quantity = requested
        if requested > product.stock:
            if product.stock <= 0:
                errors.append(f'"{product.name}" is out of stock')
                continue
            quantity = product.stock
            warnings.append(
                f'Only {product.stock} of "{product.name}" available; '
                f'quantity reduced from {requested} to {quantity}'
            )

        if quantity < product.min_order_qty:
            errors.append(f'Minimum order quantity for "{product.name}" is {product.min_order_qty}')
            continue

        validated_items.append({
            'product_id': product.id,
            'product': product,
            'quantity': quantity,
            'requested_quantity': requested,
            'unit_price': to_decimal(product.price),
        })

    if errors:
        logger.info(f"[CART] Validation failed with {len(errors)} error(s)")

    return {
        'valid': len(errors) == 0,
        'errors': errors,
        'warnings': warnings,
        'validated_items': validated_items,
    }


def check_availability(session: Session, items) -> List[Dict[str, Any]]:
    """Per-line availability report for the requested quantities."""
    parsed = parse_cart_items(items)
    products = _load_products(session, [line['product_id'] for line in parsed['lines']])
    availability = []

    for line in parsed['lines']:
        product = products.get(line['product_id'])
        if not product:
            availability.append({
                'product_id': line['product_id'],
                'product_name': None,
                'requested_quantity': line['quantity'],
                'available_stock': 0,
                'min_order_qty': None,
                'is_active': False,
                'is_available': False,
            })
            continue

        availability.append({
            'product_id': product.id,
            'product_name': product.name,
            'requested_quantity': line['quantity'],
            'available_stock': product.stock,
            'min_order_qty': product.min_order_qty,
            'is_active': product.is_active,
            'is_available': (
                product.is_active
                and product.stock >= line['quantity']
                and line['quantity'] >= product.min_order_qty
            ),
        })

    return availability


# =====================================================
# VENDOR GROUPER
# =====================================================

def calculate_delivery_fee(company: Company, zone=None):
    """
    Delivery fee charged by a company for a zone.

    Uses the company's zone fee table, then the same-zone fee when the
    company serves the zone, then the default fee (also for unknown zones).
    """
    config = current_app.config
    default_fee = to_decimal(config.get('DEFAULT_DELIVERY_FEE', 5000))
    zone = normalize_zone(zone)
    if zone is None:
        return default_fee

    for entry in company.delivery_fees:
        if entry.zone == zone.value:
            return to_decimal(entry.fee)

    if company.serves_zone(zone):
        return to_decimal(config.get('SAME_ZONE_DELIVERY_FEE', 2500))
    return default_fee


def group_items_by_vendor(
    session: Session,
    validated_items: List[Dict[str, Any]],
    user_zone=None,
    now: datetime = None
) -> List[Dict[str, Any]]:
    """
    Partition validated lines by owning company and price each group.

    Each line gets the best applicable promotion. Group total is
    subtotal - discount + delivery_fee, floored at zero.
    """
    groups = OrderedDict()

    for item in validated_items:
        product = item['product']
        company_id = product.company_id

        if company_id not in groups:
            company = product.company or session.get(Company, company_id)
            groups[company_id] = {
                'company_id': company_id,
                'company_name': company.name if company else None,
                'items': [],
                'subtotal': ZERO,
                'discount': ZERO,
                'delivery_fee': calculate_delivery_fee(company, user_zone) if company else to_decimal(
                    current_app.config.get('DEFAULT_DELIVERY_FEE', 5000)
                ),
                'total': ZERO,
            }

        group = groups[company_id]
        quantity = item['quantity']
        unit_price = item['unit_price']
        subtotal = unit_price * quantity

        promo = calculate_discount(
            session, product, quantity, subtotal, unit_price, zone=user_zone, now=now
        )
        discount = min(promo['discount'], subtotal)

        group['items'].append({
            'product_id': product.id,
            'product_name': product.name,
            'sku': product.sku,
            'quantity': quantity,
            'requested_quantity': item.get('requested_quantity', quantity),
            'unit_price': unit_price,
            'subtotal': subtotal,
            'discount_amount': discount,
            'discount_per_unit': discount / quantity if quantity else ZERO,
            'free_items': promo['free_items'],
            'promotion_id': promo.get('promotion_id') if discount > 0 else None,
            'applied_promotion': promo['applied_promotion'] if discount > 0 else None,
            'total': subtotal - discount,
        })
        group['subtotal'] += subtotal
        group['discount'] += discount

    for group in groups.values():
        group['total'] = max(group['subtotal'] - group['discount'] + group['delivery_fee'], ZERO)

    return list(groups.values())


def summarize_vendor_groups(vendor_groups: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Cart-level totals over all vendor groups."""
    return {
        'vendor_groups': vendor_groups,
        'total_items': sum(len(group['items']) for group in vendor_groups),
        'subtotal': sum((group['subtotal'] for group in vendor_groups), ZERO),
        'total_discount': sum((group['discount'] for group in vendor_groups), ZERO),
        'total_delivery_fee': sum((group['delivery_fee'] for group in vendor_groups), ZERO),
        'grand_total': sum((group['total'] for group in vendor_groups), ZERO),
    }


def resolve_user_zone(session: Session, user_id: Optional[int] = None, address_id: Optional[int] = None):
    """
    Delivery zone for pricing: the address zone when an address of the user
    is given, otherwise the user's first zone.
    """
    if address_id is not None:
        query = session.query(Address).filter(Address.id == address_id)
        if user_id is not None:
            query = query.filter(Address.user_id == user_id)
        address = query.first()
        if address:
            return normalize_zone(address.zone)

    if user_id is not None:
        user = session.get(User, user_id)
        if user:
            return normalize_zone(user.primary_zone)
    return None


def build_cart_summary(
    session: Session,
    items,
    user_id: Optional[int] = None,
    zone=None,
    now: datetime = None
) -> Dict[str, Any]:
    """
    Validate a cart and price its valid lines.

    Returns:
        dict with valid, errors, warnings, zone and summary
    """
    validation = validate_cart_items(session, items)

    if zone is None and user_id is not None:
        zone = resolve_user_zone(session, user_id=user_id)
    zone = normalize_zone(zone)

    groups = group_items_by_vendor(session, validation['validated_items'], user_zone=zone, now=now)

    return {
        'valid': validation['valid'],
        'errors': validation['errors'],
        'warnings': validation['warnings'],
        'zone': zone.value if zone else None,
        'summary': summarize_vendor_groups(groups),
    }


def get_cart_summary(session: Session, items, user_id: Optional[int] = None, zone=None, now: datetime = None) -> Dict[str, Any]:
    """
    Summary for checkout screens. Rejects invalid carts.

    Raises:
        ValidationError: if any line fails validation
    """
    result = build_cart_summary(session, items, user_id=user_id, zone=zone, now=now)
    if not result['valid']:
        raise ValidationError('Cart validation failed', errors=result['errors'])
    return result


def estimate_delivery_time(vendor_groups: List[Dict[str, Any]], now: datetime = None) -> Dict[str, Any]:
    """Delivery window; orders from several vendors take longer."""
    config = current_app.config
    if len(vendor_groups) > 1:
        min_days, max_days = config.get('DELIVERY_DAYS_MULTI_VENDOR', (3, 7))
    else:
        min_days, max_days = config.get('DELIVERY_DAYS_SINGLE_VENDOR', (2, 5))

    now = now or datetime.now()
    return {
        'min_days': min_days,
        'max_days': max_days,
        'estimated_date': now + timedelta(days=min_days),
    }


def calculate_delivery_fees(session: Session, items, user_id: int, address_id: Optional[int] = None) -> Dict[str, Any]:
    """Delivery fee breakdown per vendor for the user's zone."""
    zone = resolve_user_zone(session, user_id=user_id, address_id=address_id)
    result = get_cart_summary(session, items, zone=zone)
    summary = result['summary']

    return {
        'user_zone': zone.value if zone else None,
        'delivery_details': [
            {
                'company_id': group['company_id'],
                'company_name': group['company_name'],
                'delivery_fee': group['delivery_fee'],
                'item_count': len(group['items']),
            }
            for group in summary['vendor_groups']
        ],
        'total_delivery_fee': summary['total_delivery_fee'],
    }


# =====================================================
# SAVED CART
# =====================================================

def get_saved_cart(session: Session, user_id: int) -> List[Dict[str, int]]:
    cart = session.query(SavedCart).filter(SavedCart.user_id == user_id).first()
    if not cart:
        return []
    return [
        {'product_id': line.product_id, 'quantity': line.quantity}
        for line in sorted(cart.lines, key=lambda line: line.id)
    ]


def save_cart(session: Session, user_id: int, items) -> List[Dict[str, int]]:
    """
    Replace the user's saved cart with the given (valid) lines.

    Raises:
        NotFoundError: unknown user
        ValidationError: if any line fails validation
    """
    if not session.get(User, user_id):
        raise NotFoundError('User not found')

    validation = validate_cart_items(session, items)
    if not validation['valid']:
        raise ValidationError('Cart validation failed', errors=validation['errors'])

    try:
        cart = session.query(SavedCart).filter(SavedCart.user_id == user_id).first()
        if not cart:
            cart = SavedCart(user_id=user_id)
            session.add(cart)
            session.flush()

        session.query(SavedCartLine).filter(SavedCartLine.cart_id == cart.id).delete()
        for item in validation['validated_items']:
            session.add(SavedCartLine(
                cart_id=cart.id,
                product_id=item['product_id'],
                quantity=item['quantity']
            ))
        cart.updated_at = datetime.now()
        session.commit()
        session.expire(cart)
    except Exception:
        session.rollback()
        raise

    logger.info(f"[CART] Cart saved for user {user_id} with {len(validation['validated_items'])} items")
    return get_saved_cart(session, user_id)


def clear_saved_cart(session: Session, user_id: int) -> None:
    cart = session.query(SavedCart).filter(SavedCart.user_id == user_id).first()
    if not cart:
        return
    try:
        session.delete(cart)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"[CART] Cart cleared for user {user_id}")


def merge_cart(session: Session, user_id: int, guest_items) -> List[Dict[str, int]]:
    """Merge a guest cart into the saved cart, summing quantities per product."""
    merged = OrderedDict()
    for item in get_saved_cart(session, user_id):
        merged[item['product_id']] = dict(item)

    for item in parse_cart_items(guest_items)['lines']:
        existing = merged.get(item['product_id'])
        if existing:
            existing['quantity'] += item['quantity']
        else:
            merged[item['product_id']] = dict(item)

    return save_cart(session, user_id, list(merged.values()))
