"""
Promotion service.

Evaluates percentage, fixed and buy-X-get-Y promotions per cart line and
bundle promotions per cart, and manages promotions for admins.
At most one promotion applies to a line (the highest value wins); promotions
never stack.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Dict, Optional, Any
from sqlalchemy import or_
from sqlalchemy.orm import Session
from marketplace.models import Promotion, PromotionType, Product, Category, normalize_zone
from marketplace.exceptions import ValidationError, NotFoundError
from marketplace.utils.money import ZERO, to_decimal, round_currency

logger = logging.getLogger(__name__)

CACHE_MODULE = 'promotions'


# =====================================================
# DISCOUNT RULES
# =====================================================

def calculate_buy_x_get_y(quantity: int, unit_price, buy_quantity: int, get_quantity: int) -> Dict[str, Any]:
    """
    Buy X get Y free.

    Every complete group of (buy + get) items yields `get` free items;
    the remainder is paid in full.
    """
    unit_price = to_decimal(unit_price)
    group_size = buy_quantity + get_quantity
    complete_groups = quantity // group_size if group_size > 0 else 0
    free_items = complete_groups * get_quantity
    paid_items = quantity - free_items

    return {
        'discount': round_currency(free_items * unit_price),
        'free_items': free_items,
        'total_with_promo': round_currency(paid_items * unit_price),
    }


def _percentage_discount(promotion: Promotion, quantity: int, subtotal: Decimal, unit_price: Decimal):
    discount = subtotal * to_decimal(promotion.value) / Decimal('100')
    if promotion.max_discount is not None and discount > promotion.max_discount:
        discount = to_decimal(promotion.max_discount)
    return max(discount, ZERO), 0


def _fixed_discount(promotion: Promotion, quantity: int, subtotal: Decimal, unit_price: Decimal):
    # Flat amount regardless of quantity, never more than the line itself
    return max(min(to_decimal(promotion.value), subtotal), ZERO), 0


def _buy_x_get_y_discount(promotion: Promotion, quantity: int, subtotal: Decimal, unit_price: Decimal):
    result = calculate_buy_x_get_y(
        quantity,
        unit_price,
        promotion.buy_quantity or 1,
        promotion.get_quantity or 1
    )
    return result['discount'], result['free_items']


# Bundles are priced at cart level, see calculate_bundle_discount
ITEM_DISCOUNT_RULES = {
    PromotionType.PERCENTAGE: _percentage_discount,
    PromotionType.FIXED: _fixed_discount,
    PromotionType.BUY_X_GET_Y: _buy_x_get_y_discount,
}


def evaluate_promotion(promotion: Promotion, quantity: int, subtotal, unit_price) -> Dict[str, Any]:
    """
    Apply a single promotion to a cart line.

    Returns discount (whole currency units), free_items and the applied
    promotion summary, or a zero result when min_purchase is not met.
    """
    subtotal = to_decimal(subtotal)
    unit_price = to_decimal(unit_price)

    if promotion.min_purchase is not None and subtotal < promotion.min_purchase:
        return {'discount': ZERO, 'free_items': 0, 'applied_promotion': None}

    rule = ITEM_DISCOUNT_RULES[promotion.promotion_type]
    discount, free_items = rule(promotion, quantity, subtotal, unit_price)

    return {
        'discount': round_currency(discount),
        'free_items': free_items,
        'applied_promotion': promotion.summary_dict(),
    }


# =====================================================
# EVALUATION
# =====================================================

def _current_filter(query, now: datetime):
    return query.filter(
        Promotion.is_active == True,  # noqa: E712
        Promotion.start_date <= now,
        Promotion.end_date >= now
    )


def get_applicable_promotions(session: Session, product: Product, zone=None, now: datetime = None) -> List[Promotion]:
    """
    Current item-level promotions for a product, best first.

    A promotion applies when it targets the product directly or through the
    product's category, and its zones (if any) include the given zone.
    """
    now = now or datetime.now()
    zone = normalize_zone(zone)

    target = Promotion.products.any(Product.id == product.id)
    if product.category_id:
        target = or_(target, Promotion.categories.any(Category.id == product.category_id))

    query = _current_filter(session.query(Promotion), now).filter(
        Promotion.type != PromotionType.BUNDLE.value,
        target
    ).order_by(Promotion.value.desc(), Promotion.id.asc())

    return [p for p in query.all() if p.applies_to_zone(zone)]


def calculate_discount(
    session: Session,
    product: Product,
    quantity: int,
    subtotal,
    unit_price=None,
    zone=None,
    now: datetime = None
) -> Dict[str, Any]:
    """
    Discount for one cart line: the highest-value current promotion wins.

    Returns:
        dict with discount (Decimal, whole units), free_items and
        applied_promotion (dict or None)
    """
    promotions = get_applicable_promotions(session, product, zone=zone, now=now)
    if not promotions:
        return {'discount': ZERO, 'free_items': 0, 'applied_promotion': None, 'promotion_id': None}

    best = promotions[0]
    if unit_price is None:
        unit_price = product.price
    result = evaluate_promotion(best, quantity, subtotal, unit_price)
    result['promotion_id'] = best.id if result['applied_promotion'] else None
    return result


def calculate_bundle_discount(session: Session, lines: List[Dict[str, Any]], zone=None, now: datetime = None) -> Dict[str, Any]:
    """
    Bundle promotions for a cart.

    A bundle applies when every member product is in the cart. Its discount
    is the sum of the members' catalog prices minus the bundle price, and is
    only granted when positive.
    """
    now = now or datetime.now()
    zone = normalize_zone(zone)
    cart_product_ids = {int(line['product_id']) for line in lines}

    bundles = _current_filter(session.query(Promotion), now).filter(
        Promotion.type == PromotionType.BUNDLE.value
    ).order_by(Promotion.id.asc()).all()

    total_discount = ZERO
    applied_bundles = []

    for bundle in bundles:
        if not bundle.applies_to_zone(zone):
            continue
        member_ids = bundle.product_ids
        if not member_ids or not all(pid in cart_product_ids for pid in member_ids):
            continue

        original_price = sum((to_decimal(p.price) for p in bundle.products), ZERO)
        bundle_price = to_decimal(bundle.bundle_price if bundle.bundle_price is not None else bundle.value)

        if bundle_price < original_price:
            discount = round_currency(original_price - bundle_price)
            total_discount += discount
            applied_bundles.append({
                'bundle_id': bundle.id,
                'bundle_name': bundle.name,
                'original_price': original_price,
                'bundle_price': bundle_price,
                'discount': discount,
                'products': member_ids,
            })

    return {
        'discount': round_currency(total_discount),
        'applied_bundles': applied_bundles,
    }


def _load_line_products(session: Session, lines: List[Dict[str, Any]]) -> Dict[int, Product]:
    product_ids = [int(line['product_id']) for line in lines]
    if not product_ids:
        return {}
    products = session.query(Product).filter(Product.id.in_(product_ids)).all()
    return {p.id: p for p in products}


def apply_promotions_to_cart(session: Session, lines: List[Dict[str, Any]], zone=None, now: datetime = None) -> Dict[str, Any]:
    """
    Item promotions first, then bundles.

    Each line is a dict with product_id, quantity and optionally price
    (defaults to the catalog price).
    """
    products = _load_line_products(session, lines)
    total_discount = ZERO
    total_free_items = 0
    applied_promotions = []

    for line in lines:
        product = products.get(int(line['product_id']))
        if not product:
            continue
        quantity = int(line['quantity'])
        unit_price = to_decimal(line.get('price'), default=to_decimal(product.price))
        result = calculate_discount(
            session, product, quantity, unit_price * quantity, unit_price, zone=zone, now=now
        )

        if result['discount'] > 0 and result['applied_promotion']:
            total_discount += result['discount']
            total_free_items += result['free_items']
            applied_promotions.append({
                'product_id': product.id,
                **result['applied_promotion'],
                'discount_amount': result['discount'],
                'free_items': result['free_items'],
            })

    bundle_result = calculate_bundle_discount(session, lines, zone=zone, now=now)
    if bundle_result['discount'] > 0:
        total_discount += bundle_result['discount']
        for bundle in bundle_result['applied_bundles']:
            applied_promotions.append({
                'product_id': None,
                'id': bundle['bundle_id'],
                'name': bundle['bundle_name'],
                'type': PromotionType.BUNDLE.value,
                'value': bundle['bundle_price'],
                'discount_amount': bundle['discount'],
                'original_price': bundle['original_price'],
                'bundle_products': bundle['products'],
            })

    return {
        'total_discount': total_discount,
        'total_free_items': total_free_items,
        'applied_promotions': applied_promotions,
        'applied_bundles': bundle_result['applied_bundles'],
    }


def get_promotion_preview(session: Session, lines: List[Dict[str, Any]], zone=None, now: datetime = None) -> Dict[str, Any]:
    """Potential savings and the current promotions touching the cart's products."""
    now = now or datetime.now()
    product_ids = [int(line['product_id']) for line in lines]

    preview = {
        'potential_savings': ZERO,
        'available_promotions': [],
        'buy_x_get_y_deals': [],
        'bundle_deals': [],
    }
    if not product_ids:
        return preview

    promotions = _current_filter(session.query(Promotion), now).filter(
        Promotion.products.any(Product.id.in_(product_ids))
    ).order_by(Promotion.id.asc()).all()

    for promo in promotions:
        info = {
            'id': promo.id,
            'name': promo.name,
            'type': promo.type,
            'value': float(promo.value),
            'applicable_products': [{'id': p.id, 'name': p.name} for p in promo.products],
        }
        kind = promo.promotion_type
        if kind == PromotionType.BUY_X_GET_Y:
            info.update({
                'buy_quantity': promo.buy_quantity,
                'get_quantity': promo.get_quantity,
                'description': f'Buy {promo.buy_quantity}, Get {promo.get_quantity} Free',
            })
            preview['buy_x_get_y_deals'].append(info)
        elif kind == PromotionType.BUNDLE:
            info.update({
                'bundle_price': float(promo.bundle_price if promo.bundle_price is not None else promo.value),
                'description': 'Bundle Deal - Save on combined purchase',
            })
            preview['bundle_deals'].append(info)
        else:
            preview['available_promotions'].append(info)

    preview['potential_savings'] = apply_promotions_to_cart(session, lines, zone=zone, now=now)['total_discount']
    return preview


# =====================================================
# MANAGEMENT
# =====================================================

def _parse_datetime(value, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        raise ValidationError(f'{field} is required')
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{field} must be an ISO 8601 date')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _optional_decimal(data: Dict[str, Any], key: str) -> Optional[Decimal]:
    value = data.get(key)
    if value is None or value == '':
        return None
    try:
        amount = to_decimal(value)
    except ValueError:
        raise ValidationError(f'{key} must be a number')
    if amount < 0:
        raise ValidationError(f'{key} cannot be negative')
    return amount


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None or value == '':
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be an integer')
    if number <= 0:
        raise ValidationError(f'{key} must be greater than 0')
    return number


def _id_list(data: Dict[str, Any], key: str) -> List[int]:
    items = data.get(key) or []
    if not isinstance(items, list):
        raise ValidationError(f'{key} must be a list of integers')
    try:
        return [int(item) for item in items]
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a list of integers')


def _apply_fields(session: Session, promotion: Promotion, data: Dict[str, Any], partial: bool = False) -> None:
    """Copy validated fields from request data onto the promotion."""
    if not partial or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('name is required')
        promotion.name = name[:200]

    if 'description' in data:
        promotion.description = data.get('description')

    if not partial or 'type' in data:
        try:
            promotion.type = PromotionType(str(data.get('type', '')).lower()).value
        except ValueError:
            valid = ', '.join(t.value for t in PromotionType)
            raise ValidationError(f'type must be one of: {valid}')

    if not partial or 'value' in data:
        value = _optional_decimal(data, 'value')
        if value is None:
            raise ValidationError('value is required')
        promotion.value = value

    for key in ('min_purchase', 'max_discount', 'bundle_price'):
        if not partial or key in data:
            setattr(promotion, key, _optional_decimal(data, key))

    for key in ('buy_quantity', 'get_quantity'):
        if not partial or key in data:
            setattr(promotion, key, _optional_int(data, key))

    if not partial or 'start_date' in data:
        promotion.start_date = _parse_datetime(data.get('start_date'), 'start_date')
    if not partial or 'end_date' in data:
        promotion.end_date = _parse_datetime(data.get('end_date'), 'end_date')

    if not partial or 'zones' in data:
        zones = []
        for raw in data.get('zones') or []:
            zone = normalize_zone(raw)
            if zone is None:
                raise ValidationError(f'Unknown zone: {raw}')
            zones.append(zone.value)
        promotion.zones = zones

    if 'is_active' in data:
        promotion.is_active = bool(data['is_active'])
    elif not partial:
        promotion.is_active = True

    if 'product_ids' in data or not partial:
        product_ids = _id_list(data, 'product_ids')
        products = session.query(Product).filter(Product.id.in_(product_ids)).all() if product_ids else []
        if len(products) != len(set(product_ids)):
            raise NotFoundError('One or more products not found')
        promotion.products = products

    if 'category_ids' in data or not partial:
        category_ids = _id_list(data, 'category_ids')
        categories = session.query(Category).filter(Category.id.in_(category_ids)).all() if category_ids else []
        if len(categories) != len(set(category_ids)):
            raise NotFoundError('One or more categories not found')
        promotion.categories = categories

    _validate_promotion(promotion)


def _validate_promotion(promotion: Promotion) -> None:
    """Type-specific consistency checks."""
    if promotion.start_date >= promotion.end_date:
        raise ValidationError('End date must be after start date')

    kind = promotion.promotion_type
    if kind == PromotionType.PERCENTAGE:
        if promotion.value <= 0 or promotion.value > 100:
            raise ValidationError('Percentage value must be between 0 and 100')
    elif kind == PromotionType.FIXED:
        if promotion.value <= 0:
            raise ValidationError('Fixed discount must be greater than 0')
    elif kind == PromotionType.BUY_X_GET_Y:
        if not promotion.buy_quantity or not promotion.get_quantity:
            raise ValidationError('buy_quantity and get_quantity are required for buy_x_get_y promotions')
    elif kind == PromotionType.BUNDLE:
        if len(promotion.products) < 2:
            raise ValidationError('A bundle needs at least two products')
        if promotion.bundle_price is None:
            promotion.bundle_price = promotion.value


def create_promotion(session: Session, data: Dict[str, Any]) -> Promotion:
    """Create a promotion from request data."""
    try:
        promotion = Promotion()
        _apply_fields(session, promotion, data)

        if promotion.product_ids:
            overlapping = session.query(Promotion).filter(
                Promotion.is_active == True,  # noqa: E712
                Promotion.start_date <= promotion.end_date,
                Promotion.end_date >= promotion.start_date,
                Promotion.products.any(Product.id.in_(promotion.product_ids))
            ).count()
            if overlapping:
                logger.warning("[PROMO] Some products already have active promotions in this period")

        session.add(promotion)
        session.commit()
        logger.info(f"[PROMO] Created promotion {promotion.id} ({promotion.type})")
    except Exception:
        session.rollback()
        raise

    invalidate_promotions_cache()
    return promotion


def update_promotion(session: Session, promotion_id: int, data: Dict[str, Any]) -> Promotion:
    """Partially update a promotion."""
    promotion = get_promotion(session, promotion_id)
    try:
        _apply_fields(session, promotion, data, partial=True)
        session.commit()
    except Exception:
        session.rollback()
        raise

    invalidate_promotions_cache()
    return promotion


def delete_promotion(session: Session, promotion_id: int) -> None:
    promotion = get_promotion(session, promotion_id)
    try:
        session.delete(promotion)
        session.commit()
    except Exception:
        session.rollback()
        raise
    invalidate_promotions_cache()


def toggle_promotion_status(session: Session, promotion_id: int) -> Promotion:
    promotion = get_promotion(session, promotion_id)
    promotion.is_active = not promotion.is_active
    session.commit()
    invalidate_promotions_cache()
    return promotion


def get_promotion(session: Session, promotion_id: int) -> Promotion:
    promotion = session.get(Promotion, promotion_id)
    if not promotion:
        raise NotFoundError('Promotion not found')
    return promotion


def list_promotions(session: Session, include_inactive: bool = False, now: datetime = None) -> List[Promotion]:
    """Promotions newest first; by default only active ones that have not ended."""
    query = session.query(Promotion)
    if not include_inactive:
        now = now or datetime.now()
        query = query.filter(Promotion.is_active == True, Promotion.end_date >= now)  # noqa: E712
    return query.order_by(Promotion.created_at.desc(), Promotion.id.desc()).all()


def get_active_promotions_by_zone(session: Session, zone) -> List[Dict[str, Any]]:
    """Current promotions for a zone, served from cache when available."""
    zone = normalize_zone(zone)
    if zone is None:
        raise ValidationError('Unknown zone')

    def loader():
        current = _current_filter(session.query(Promotion), datetime.now()).order_by(
            Promotion.created_at.desc(), Promotion.id.desc()
        ).all()
        return [p.to_dict() for p in current if p.applies_to_zone(zone)]

    from flask import current_app
    from marketplace.services.cache_service import get_cache
    return get_cache().memoize(
        f'zone:{zone.value}', CACHE_MODULE, 'active', loader,
        ttl=current_app.config.get('CACHE_PROMOTIONS_TTL')
    )


def invalidate_promotions_cache() -> None:
    """Gracefully attempt to invalidate cached promotion listings."""
    try:
        from marketplace.services.cache_service import get_cache
        get_cache().invalidate_module('*', CACHE_MODULE)
    except Exception as e:
        logger.warning(f"[PROMO] Cache invalidation skipped: {e}")
