"""
Unit tests for checkout and order creation.
"""

import pytest
from decimal import Decimal
from marketplace.models import (
    Address, Order, OrderItem, OrderStatus, OrderStatusHistory, Product, StockHistory,
    Notification, NotificationType
)
from marketplace.services import checkout_service
from marketplace.services.checkout_service import checkout, generate_order_number
from marketplace.exceptions import ValidationError, NotFoundError, ConflictError


class TestCheckout:
    """Tests for the per-vendor checkout."""

    def test_order_number_format(self):
        number = generate_order_number()

        prefix, timestamp, suffix = number.split('-')
        assert prefix == 'ORD'
        assert timestamp.isdigit()
        assert len(suffix) == 8

    def test_single_vendor_checkout(self, session, shop_owner, address, product_a):
        product_id = product_a.id

        result = checkout(session, shop_owner.id, address.id, [{'product_id': product_id, 'quantity': 3}])

        assert result['order_count'] == 1
        order = result['orders'][0]
        assert order.status == OrderStatus.PENDING
        assert order.subtotal == Decimal('3000')
        assert order.delivery_fee == Decimal('2500')
        assert order.total == Decimal('5500')
        assert order.payment_method == 'CASH_ON_DELIVERY'
        assert order.order_number.startswith('ORD-')
        assert session.get(Product, product_id).stock == 2

        history = session.query(OrderStatusHistory).filter_by(order_id=order.id).one()
        assert history.to_status == 'PENDING'
        stock_entry = session.query(StockHistory).filter_by(product_id=product_id).one()
        assert stock_entry.change_quantity == -3
        assert stock_entry.reference_id == order.id

    def test_one_order_per_vendor(self, session, shop_owner, address, product_a, product_b, product_c):
        result = checkout(session, shop_owner.id, address.id, [
            {'product_id': product_a.id, 'quantity': 1},
            {'product_id': product_b.id, 'quantity': 2},
            {'product_id': product_c.id, 'quantity': 10},
        ])

        assert result['order_count'] == 2
        for order in result['orders']:
            item_companies = {
                session.get(Product, item.product_id).company_id
                for item in session.query(OrderItem).filter_by(order_id=order.id)
            }
            assert item_companies == {order.company_id}

    def test_price_snapshot_not_live_linked(self, session, shop_owner, address, product_a):
        product_id = product_a.id
        result = checkout(session, shop_owner.id, address.id, [{'product_id': product_id, 'quantity': 1}])
        order_id = result['orders'][0].id

        product = session.get(Product, product_id)
        product.price = 9999
        session.commit()

        item = session.query(OrderItem).filter_by(order_id=order_id).one()
        assert item.unit_price == Decimal('1000')

    def test_promotion_snapshot(self, session, shop_owner, address, product_b, make_promotion):
        promo = make_promotion('buy_x_get_y', 1, products=[product_b], buy_quantity=2, get_quantity=1)

        result = checkout(session, shop_owner.id, address.id, [{'product_id': product_b.id, 'quantity': 6}])

        order = result['orders'][0]
        item = session.query(OrderItem).filter_by(order_id=order.id).one()
        assert item.discount == Decimal('1000')
        assert item.free_items == 2
        assert item.promotion_id == promo.id
        assert order.discount == Decimal('1000')
        assert order.total == Decimal('2000') + order.delivery_fee

    def test_invalid_cart_rejected_without_side_effects(self, session, shop_owner, address, product_a, product_c):
        product_id = product_a.id

        with pytest.raises(ValidationError) as exc:
            checkout(session, shop_owner.id, address.id, [
                {'product_id': product_id, 'quantity': 1},
                {'product_id': product_c.id, 'quantity': 1},
            ])

        assert exc.value.errors
        assert session.query(Order).count() == 0
        assert session.get(Product, product_id).stock == 5

    def test_clipped_quantity_never_oversells(self, session, shop_owner, address, product_a):
        product_id = product_a.id

        result = checkout(session, shop_owner.id, address.id, [{'product_id': product_id, 'quantity': 9}])

        item = session.query(OrderItem).filter_by(order_id=result['orders'][0].id).one()
        assert item.quantity == 5
        assert result['warnings']
        assert session.get(Product, product_id).stock == 0

    def test_stock_race_aborts_only_that_vendor(self, session, shop_owner, address, product_a, product_b, monkeypatch):
        """Stock taken by a concurrent order between validation and commit."""
        product_a_id = product_a.id
        product_b_id = product_b.id
        real_lock = checkout_service._lock_products

        def racing_lock(session, product_ids):
            locked = real_lock(session, product_ids)
            if product_a_id in locked:
                locked[product_a_id].stock = 1
            return locked

        monkeypatch.setattr(checkout_service, '_lock_products', racing_lock)

        result = checkout(session, shop_owner.id, address.id, [
            {'product_id': product_a_id, 'quantity': 3},
            {'product_id': product_b_id, 'quantity': 2},
        ])

        assert result['order_count'] == 1
        assert result['orders'][0].company_id == session.get(Product, product_b_id).company_id
        assert len(result['failures']) == 1
        assert result['failures'][0]['code'] == 'INSUFFICIENT_STOCK'
        assert session.get(Product, product_b_id).stock == 18
        assert session.query(Order).count() == 1

    def test_all_groups_failing_raises_conflict(self, session, shop_owner, address, product_a, monkeypatch):
        product_a_id = product_a.id
        real_lock = checkout_service._lock_products

        def racing_lock(session, product_ids):
            locked = real_lock(session, product_ids)
            locked[product_a_id].stock = 0
            return locked

        monkeypatch.setattr(checkout_service, '_lock_products', racing_lock)

        with pytest.raises(ConflictError) as exc:
            checkout(session, shop_owner.id, address.id, [{'product_id': product_a_id, 'quantity': 1}])

        assert exc.value.payload['failures']
        assert session.query(Order).count() == 0

    def test_address_of_other_user_rejected(self, session, shop_owner, other_shop_owner, product_a):
        foreign = Address(user_id=other_shop_owner.id, zone='RUSAFA')
        session.add(foreign)
        session.commit()

        with pytest.raises(ValidationError):
            checkout(session, shop_owner.id, foreign.id, [{'product_id': product_a.id, 'quantity': 1}])

    def test_unknown_address(self, session, shop_owner, product_a):
        with pytest.raises(NotFoundError):
            checkout(session, shop_owner.id, 999, [{'product_id': product_a.id, 'quantity': 1}])

    def test_invalid_payment_method(self, session, shop_owner, address, product_a):
        with pytest.raises(ValidationError):
            checkout(session, shop_owner.id, address.id, [{'product_id': product_a.id, 'quantity': 1}],
                     payment_method='BARTER')

    def test_vendor_is_notified(self, session, shop_owner, address, product_a, vendor_admin):
        result = checkout(session, shop_owner.id, address.id, [{'product_id': product_a.id, 'quantity': 1}])

        notification = session.query(Notification).filter_by(user_id=vendor_admin.id).one()
        assert notification.type == NotificationType.ORDER_CREATED.value
        assert notification.order_id == result['orders'][0].id
