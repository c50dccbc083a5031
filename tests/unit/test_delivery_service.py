"""
Unit tests for driver assignment and cash collection.
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from marketplace.models import (
    Order, OrderStatus, OrderStatusHistory, PaymentStatus, CashCollection, Notification, NotificationType
)
from marketplace.services.delivery_service import (
    assign_driver, record_cash_collection, get_orders_by_status, track_delivery,
    get_delivery_metrics, estimate_driver_minutes, get_active_deliveries
)
from marketplace.services.order_service import update_order_status
from marketplace.exceptions import (
    ValidationError, NotFoundError, ConflictError, InvalidStatusTransitionError,
    CashAmountMismatchError
)


class TestAssignDriver:
    """Tests for driver assignment."""

    def test_assign_from_preparing(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)
        now = datetime(2024, 3, 1, 10, 0)

        order = assign_driver(session, order.id, driver.id, now=now)

        assert order.status == OrderStatus.ON_THE_WAY
        assert order.assigned_driver_id == driver.id
        assert order.dispatched_at == now
        # 30 base minutes + 20 for KARKH
        assert order.estimated_delivery_at == now + timedelta(minutes=50)
        assert session.query(Notification).filter_by(
            user_id=driver.id, type=NotificationType.DRIVER_ASSIGNED.value
        ).count() == 1

    @pytest.mark.parametrize('status', [OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.DELIVERED])
    def test_only_from_preparing(self, session, shop_owner, driver, product_a, make_order, status):
        order = make_order(shop_owner, product_a, status=status)

        with pytest.raises(InvalidStatusTransitionError):
            assign_driver(session, order.id, driver.id)

        assert session.get(Order, order.id).assigned_driver_id is None

    def test_stale_copy_cannot_assign_twice(self, session, other_session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)
        order_id, driver_id = order.id, driver.id
        assert other_session.get(Order, order_id).status == OrderStatus.PREPARING

        assign_driver(session, order_id, driver_id)

        with pytest.raises(InvalidStatusTransitionError):
            assign_driver(other_session, order_id, driver_id)
        assert session.query(OrderStatusHistory).filter_by(order_id=order_id).count() == 1

    def test_non_driver_rejected(self, session, shop_owner, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)

        with pytest.raises(ValidationError):
            assign_driver(session, order.id, shop_owner.id)

    def test_unknown_driver(self, session, shop_owner, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)

        with pytest.raises(NotFoundError):
            assign_driver(session, order.id, 999)

    def test_unknown_zone_minutes(self, app):
        assert estimate_driver_minutes(None) == 60
        assert estimate_driver_minutes('RUSAFA') == 55


class TestCashCollection:
    """Tests for cash on delivery reconciliation."""

    def test_exact_amount(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED, total=3500)

        collection = record_cash_collection(session, order.id, '3500', driver.id, notes='Paid in full')

        assert collection.amount == Decimal('3500')
        order = session.get(Order, order.id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.paid_at is not None

    def test_within_tolerance(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED, total=3500)

        record_cash_collection(session, order.id, 3500.01, driver.id)

    def test_mismatch(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED, total=3500)

        with pytest.raises(CashAmountMismatchError) as exc:
            record_cash_collection(session, order.id, 3400, driver.id)

        assert exc.value.status_code == 400
        assert session.query(CashCollection).count() == 0

    def test_not_delivered(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.ON_THE_WAY)

        with pytest.raises(ValidationError):
            record_cash_collection(session, order.id, order.total, driver.id)

    def test_not_cash_on_delivery(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED, payment_method='CARD')

        with pytest.raises(ValidationError):
            record_cash_collection(session, order.id, order.total, driver.id)

    def test_only_once(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED, total=1000)
        record_cash_collection(session, order.id, 1000, driver.id)

        with pytest.raises(ConflictError):
            record_cash_collection(session, order.id, 1000, driver.id)

    def test_non_numeric_amount(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED)

        with pytest.raises(ValidationError):
            record_cash_collection(session, order.id, 'lots', driver.id)

    def test_only_once_across_sessions(self, session, other_session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED, total=1000)
        order_id, driver_id = order.id, driver.id
        other_session.get(Order, order_id)
        record_cash_collection(session, order_id, 1000, driver_id)

        with pytest.raises(ConflictError):
            record_cash_collection(other_session, order_id, 1000, driver_id)
        assert session.query(CashCollection).filter_by(order_id=order_id).count() == 1

    @pytest.mark.parametrize('amount', ['NaN', 'Infinity', '-Infinity'])
    def test_non_finite_amount(self, session, shop_owner, driver, product_a, make_order, amount):
        order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED)

        with pytest.raises(ValidationError):
            record_cash_collection(session, order.id, amount, driver.id)


class TestDeliveryQueries:
    """Tests for delivery queues, tracking and metrics."""

    def test_orders_by_status_company_scope(self, session, shop_owner, product_a, product_b, make_order, vendor_a):
        make_order(shop_owner, product_a, status=OrderStatus.PREPARING)
        make_order(shop_owner, product_b, status=OrderStatus.PREPARING)

        assert len(get_orders_by_status(session, 'PREPARING')) == 2
        assert len(get_orders_by_status(session, 'preparing', company_id=vendor_a.id)) == 1

    def test_track_delivery_timeline(self, session, shop_owner, driver, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)
        assign_driver(session, order.id, driver.id)

        tracking = track_delivery(session, order.id)

        assert tracking['status'] == 'ON_THE_WAY'
        assert tracking['driver']['id'] == driver.id
        assert [entry['to_status'] for entry in tracking['timeline']] == ['ON_THE_WAY']

    def test_metrics(self, session, shop_owner, product_a, make_order):
        order = make_order(shop_owner, product_a, status=OrderStatus.ON_THE_WAY)
        make_order(shop_owner, product_a)
        update_order_status(session, order.id, 'DELIVERED')

        metrics = get_delivery_metrics(session, period='week')

        assert metrics['total_orders'] == 2
        assert metrics['by_status']['DELIVERED'] == 1
        assert metrics['delivery_rate'] == 50.0

    def test_metrics_unknown_period(self, session):
        with pytest.raises(ValidationError):
            get_delivery_metrics(session, period='decade')

    def test_active_deliveries_grouped(self, session, shop_owner, product_a, product_b, make_order, vendor_a):
        accepted = make_order(shop_owner, product_a, status=OrderStatus.ACCEPTED)
        make_order(shop_owner, product_a, status=OrderStatus.ON_THE_WAY)
        make_order(shop_owner, product_a, status=OrderStatus.PENDING)
        make_order(shop_owner, product_a, status=OrderStatus.DELIVERED)
        make_order(shop_owner, product_b, status=OrderStatus.PREPARING)

        result = get_active_deliveries(session)

        assert set(result['orders']) == {'ACCEPTED', 'PREPARING', 'ON_THE_WAY'}
        assert [order.id for order in result['orders']['ACCEPTED']] == [accepted.id]
        assert result['summary'] == {'ACCEPTED': 1, 'PREPARING': 1, 'ON_THE_WAY': 1, 'total': 3}

        scoped = get_active_deliveries(session, company_id=vendor_a.id)
        assert scoped['orders']['PREPARING'] == []
        assert scoped['summary']['total'] == 2
