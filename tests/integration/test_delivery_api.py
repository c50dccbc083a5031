"""
Integration tests for the delivery endpoints.
"""

from marketplace.models import Order, OrderStatus, CashCollection


def test_assign_driver(vendor_client, session, shop_owner, driver, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)
    order_id, driver_id = order.id, driver.id

    response = vendor_client.post(f'/api/delivery/orders/{order_id}/assign-driver', json={'driver_id': driver_id})

    assert response.status_code == 200
    body = response.get_json()['order']
    assert body['status'] == 'ON_THE_WAY'
    assert body['assigned_driver_id'] == driver_id
    assert body['estimated_delivery_at'] is not None


def test_assign_driver_requires_preparing(vendor_client, shop_owner, driver, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.ACCEPTED)

    response = vendor_client.post(f'/api/delivery/orders/{order.id}/assign-driver', json={'driver_id': driver.id})

    assert response.status_code == 400


def test_assign_driver_requires_driver_id(vendor_client, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)

    response = vendor_client.post(f'/api/delivery/orders/{order.id}/assign-driver', json={})

    assert response.status_code == 400


def test_driver_cannot_assign(driver_client, shop_owner, driver, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)

    response = driver_client.post(f'/api/delivery/orders/{order.id}/assign-driver', json={'driver_id': driver.id})

    assert response.status_code == 403


def test_driver_marks_delivered(driver_client, session, shop_owner, driver, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.ON_THE_WAY, assigned_driver_id=driver.id)
    order_id = order.id

    response = driver_client.put(f'/api/delivery/orders/{order_id}/status', json={
        'status': 'DELIVERED',
        'location': {'lat': 33.3, 'lng': 44.4},
    })

    assert response.status_code == 200
    assert session.get(Order, order_id).status == OrderStatus.DELIVERED


def test_driver_cannot_touch_unassigned_order(driver_client, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.ON_THE_WAY)

    response = driver_client.put(f'/api/delivery/orders/{order.id}/status', json={'status': 'DELIVERED'})

    assert response.status_code == 403


def test_cash_collection(driver_client, session, shop_owner, driver, product_a, make_order):
    order = make_order(
        shop_owner, product_a, status=OrderStatus.DELIVERED, total=3500, assigned_driver_id=driver.id
    )
    order_id = order.id

    response = driver_client.post(f'/api/delivery/orders/{order_id}/cash-collection', json={'amount': 3500})

    assert response.status_code == 201
    assert response.get_json()['collection']['amount'] == 3500.0
    assert session.get(Order, order_id).payment_status == 'PAID'

    again = driver_client.post(f'/api/delivery/orders/{order_id}/cash-collection', json={'amount': 3500})
    assert again.status_code == 409


def test_cash_collection_mismatch(vendor_client, session, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED, total=3500)
    order_id = order.id

    response = vendor_client.post(f'/api/delivery/orders/{order_id}/cash-collection', json={'amount': 3000})

    assert response.status_code == 400
    assert response.get_json()['code'] == 'AMOUNT_MISMATCH'
    assert session.query(CashCollection).count() == 0


def test_cash_collection_before_delivery(vendor_client, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.ON_THE_WAY, total=3500)

    response = vendor_client.post(f'/api/delivery/orders/{order.id}/cash-collection', json={'amount': 3500})

    assert response.status_code == 400


def test_cash_collection_requires_amount(vendor_client, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED)

    response = vendor_client.post(f'/api/delivery/orders/{order.id}/cash-collection', json={})

    assert response.status_code == 400


def test_track_for_shop_owner(owner_client, session, shop_owner, driver, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.ON_THE_WAY, assigned_driver_id=driver.id)
    driver_id = driver.id

    response = owner_client.get(f'/api/delivery/track/{order.id}')

    assert response.status_code == 200
    tracking = response.get_json()['tracking']
    assert tracking['status'] == 'ON_THE_WAY'
    assert tracking['driver']['id'] == driver_id


def test_orders_by_status_scoped_to_company(vendor_client, shop_owner, product_a, product_b, make_order):
    make_order(shop_owner, product_a, status=OrderStatus.PREPARING)
    make_order(shop_owner, product_b, status=OrderStatus.PREPARING)

    data = vendor_client.get('/api/delivery/orders/status/PREPARING').get_json()

    assert data['count'] == 1


def test_orders_by_unknown_status(vendor_client):
    assert vendor_client.get('/api/delivery/orders/status/LOST').status_code == 400


def test_metrics(admin_client, shop_owner, product_a, make_order):
    make_order(shop_owner, product_a)

    response = admin_client.get('/api/delivery/metrics?period=month')

    assert response.status_code == 200
    metrics = response.get_json()['metrics']
    assert metrics['period'] == 'month'
    assert metrics['total_orders'] == 1


def test_cash_collection_rejects_nan(vendor_client, session, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED)
    order_id = order.id

    response = vendor_client.post(f'/api/delivery/orders/{order_id}/cash-collection', json={'amount': 'NaN'})

    assert response.status_code == 400
    assert response.get_json()['code'] == 'VALIDATION_ERROR'
    assert session.query(CashCollection).count() == 0


def test_active_deliveries_scoped_to_company(vendor_client, shop_owner, product_a, product_b, make_order):
    preparing = make_order(shop_owner, product_a, status=OrderStatus.PREPARING)
    make_order(shop_owner, product_a, status=OrderStatus.PENDING)
    make_order(shop_owner, product_b, status=OrderStatus.ON_THE_WAY)
    preparing_id = preparing.id

    response = vendor_client.get('/api/delivery/active')

    assert response.status_code == 200
    data = response.get_json()
    assert [order['id'] for order in data['orders']['PREPARING']] == [preparing_id]
    assert data['orders']['ON_THE_WAY'] == []
    assert data['summary']['total'] == 1


def test_admin_filters_active_deliveries_by_company(admin_client, shop_owner, vendor_b, product_a, product_b,
                                                    make_order):
    make_order(shop_owner, product_a, status=OrderStatus.ACCEPTED)
    make_order(shop_owner, product_b, status=OrderStatus.ON_THE_WAY)
    vendor_b_id = vendor_b.id

    assert admin_client.get('/api/delivery/active').get_json()['summary']['total'] == 2
    scoped = admin_client.get(f'/api/delivery/active?company_id={vendor_b_id}').get_json()
    assert scoped['summary'] == {'ACCEPTED': 0, 'PREPARING': 0, 'ON_THE_WAY': 1, 'total': 1}
    assert admin_client.get('/api/delivery/active?company_id=abc').status_code == 400


def test_active_deliveries_hidden_from_drivers(driver_client):
    assert driver_client.get('/api/delivery/active').status_code == 403
