"""
Integration tests for the orders endpoints and their access rules.
"""

from marketplace.models import Order, OrderStatus


def test_list_requires_login(client):
    assert client.get('/api/orders/').status_code == 401


def test_shop_owner_sees_only_own_orders(owner_client, shop_owner, other_shop_owner, product_a, make_order):
    own = make_order(shop_owner, product_a)
    make_order(other_shop_owner, product_a)
    own_id = own.id

    response = owner_client.get('/api/orders/')

    assert response.status_code == 200
    data = response.get_json()
    assert [order['id'] for order in data['orders']] == [own_id]
    assert data['pagination']['total'] == 1


def test_vendor_sees_company_orders(vendor_client, shop_owner, product_a, product_b, make_order):
    make_order(shop_owner, product_a)
    make_order(shop_owner, product_b)

    data = vendor_client.get('/api/orders/?status=PENDING').get_json()

    assert data['pagination']['total'] == 1


def test_get_order_with_history(owner_client, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a)

    response = owner_client.get(f'/api/orders/{order.id}')

    assert response.status_code == 200
    body = response.get_json()['order']
    assert body['status'] == 'PENDING'
    assert body['status_history'] == []
    assert len(body['items']) == 1


def test_get_someone_elses_order_is_forbidden(login_as, other_shop_owner, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a)
    client = login_as(other_shop_owner)

    response = client.get(f'/api/orders/{order.id}')

    assert response.status_code == 403


def test_get_unknown_order(owner_client):
    response = owner_client.get('/api/orders/4040')

    assert response.status_code == 404
    assert response.get_json()['code'] == 'NOT_FOUND'


def test_vendor_moves_order_along(vendor_client, session, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a)
    order_id = order.id

    response = vendor_client.put(f'/api/orders/{order_id}/status', json={'status': 'ACCEPTED', 'notes': 'On it'})

    assert response.status_code == 200
    body = response.get_json()['order']
    assert body['status'] == 'ACCEPTED'
    assert body['status_history'][0]['from_status'] == 'PENDING'
    assert session.get(Order, order_id).status == OrderStatus.ACCEPTED


def test_invalid_transition_is_400(vendor_client, session, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a)
    order_id = order.id

    response = vendor_client.put(f'/api/orders/{order_id}/status', json={'status': 'DELIVERED'})

    assert response.status_code == 400
    data = response.get_json()
    assert data['code'] == 'INVALID_STATUS_TRANSITION'
    assert data['from_status'] == 'PENDING'
    assert session.get(Order, order_id).status == OrderStatus.PENDING


def test_other_vendor_cannot_update(login_as, vendor_b_admin, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a)
    client = login_as(vendor_b_admin)

    response = client.put(f'/api/orders/{order.id}/status', json={'status': 'ACCEPTED'})

    assert response.status_code == 403


def test_shop_owner_cannot_update_status(owner_client, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a)

    response = owner_client.put(f'/api/orders/{order.id}/status', json={'status': 'ACCEPTED'})

    assert response.status_code == 403


def test_bulk_status_reports_partial_failure(admin_client, shop_owner, product_a, make_order):
    pending = make_order(shop_owner, product_a)
    delivered = make_order(shop_owner, product_a, status=OrderStatus.DELIVERED)

    response = admin_client.post('/api/orders/bulk-status', json={
        'order_ids': [pending.id, delivered.id],
        'status': 'ACCEPTED',
    })

    assert response.status_code == 200
    data = response.get_json()
    assert data['updated'] == 1
    assert data['failed'] == 1


def test_owner_cancels_pending_order(owner_client, session, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a)
    order_id = order.id

    response = owner_client.delete(f'/api/orders/{order_id}', json={'reason': 'Ordered twice'})

    assert response.status_code == 200
    assert session.get(Order, order_id).status == OrderStatus.CANCELLED


def test_owner_cannot_cancel_accepted_order(owner_client, shop_owner, product_a, make_order):
    order = make_order(shop_owner, product_a, status=OrderStatus.ACCEPTED)

    response = owner_client.delete(f'/api/orders/{order.id}')

    assert response.status_code == 400


def test_stats(admin_client, shop_owner, product_a, make_order):
    make_order(shop_owner, product_a, status=OrderStatus.DELIVERED)

    stats = admin_client.get('/api/orders/stats').get_json()['stats']

    assert stats['total_orders'] == 1
    assert stats['delivered_revenue'] == 1000


def test_non_integer_id_filters_are_400(admin_client):
    for query in ('user_id=abc', 'company_id=abc'):
        response = admin_client.get(f'/api/orders/?{query}')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'VALIDATION_ERROR'
