"""
Integration tests for active orders and the kitchen queue.
"""

import pytest
from decimal import Decimal


@pytest.fixture
def order_payload(demo):
    return {
        'waiter_id': demo['staff']['Bob'],
        'table_id': demo['tables']['Mesa 1'],
        'number_of_guests': 2,
        'items': [
            {'menu_item_id': demo['menu']['Spaghetti Carbonara'], 'quantity': 1, 'observations': 'Sin pimienta'},
            {'menu_item_id': demo['menu']['Iced Tea'], 'quantity': 3},
        ]
    }


class TestCreateOrder:

    def test_send_to_kitchen(self, client, demo, order_payload):
        response = client.post('/orders', json=order_payload)

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'open'
        assert len(data['items']) == 2
        assert Decimal(data['live_totals']['subtotal']) == Decimal('28.50')
        assert Decimal(data['live_totals']['tax_amount']) == Decimal('3.705')

        table = client.get(f"/tables/{demo['tables']['Mesa 1']}").get_json()
        assert table['status'] == 'occupied'
        assert table['current_order_id'] == data['id']

    def test_unavailable_item(self, client, demo, order_payload):
        order_payload['items'] = [{'menu_item_id': demo['menu']['Tiramisu'], 'quantity': 1}]

        response = client.post('/orders', json=order_payload)

        assert response.status_code == 400
        assert 'Tiramisu' in response.get_json()['message']

    def test_occupied_table(self, client, demo, order_payload):
        assert client.post('/orders', json=order_payload).status_code == 201

        response = client.post('/orders', json=order_payload)

        assert response.status_code == 400

    def test_dine_in_needs_table(self, client, demo, order_payload):
        order_payload.pop('table_id')

        assert client.post('/orders', json=order_payload).status_code == 400

    def test_takeout_without_table(self, client, demo, order_payload):
        order_payload.pop('table_id')
        order_payload['order_type'] = 'Takeout'

        response = client.post('/orders', json=order_payload)

        assert response.status_code == 201
        assert response.get_json()['table_id'] is None

    def test_empty_order(self, client, demo, order_payload):
        order_payload['items'] = []

        assert client.post('/orders', json=order_payload).status_code == 400


class TestKitchenFlow:

    def test_kitchen_queue_and_item_status(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()
        item_id = order['items'][0]['id']

        queue = client.get('/orders/kitchen').get_json()
        assert [entry['order_id'] for entry in queue] == [order['id']]
        assert queue[0]['table'] == 'Mesa 1'

        response = client.patch(f"/orders/{order['id']}/items/{item_id}", json={'status': 'preparing'})
        assert response.status_code == 200
        assert response.get_json()['status'] == 'preparing'

        response = client.patch(f"/orders/{order['id']}/items/{item_id}", json={'status': 'delivered'})
        assert response.status_code == 409
        assert response.get_json()['code'] == 'invalid_transition'

    def test_delivered_items_leave_the_queue(self, client, demo, order_payload):
        order_payload['items'] = order_payload['items'][:1]
        order = client.post('/orders', json=order_payload).get_json()
        item_url = f"/orders/{order['id']}/items/{order['items'][0]['id']}"

        for status in ('preparing', 'ready', 'delivered'):
            assert client.patch(item_url, json={'status': status}).status_code == 200

        assert client.get('/orders/kitchen').get_json() == []

    def test_cancelled_item_drops_from_totals(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()
        tea_id = order['items'][1]['id']

        client.patch(f"/orders/{order['id']}/items/{tea_id}", json={'status': 'cancelled'})

        data = client.get(f"/orders/{order['id']}").get_json()
        assert Decimal(data['live_totals']['subtotal']) == Decimal('18.00')

    def test_add_items(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()

        response = client.post(f"/orders/{order['id']}/items", json={
            'items': [{'menu_item_id': demo['menu']['Chocolate Lava Cake'], 'quantity': 2, 'assigned_guest': 'Ana'}]
        })

        assert response.status_code == 201
        assert len(response.get_json()['items']) == 3

    def test_malformed_quantity(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()
        tea_id = order['items'][1]['id']

        response = client.patch(f"/orders/{order['id']}/items/{tea_id}", json={'quantity': 'muchos'})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'business_rule'


class TestOrderLifecycle:

    def test_move_table(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()

        response = client.patch(f"/orders/{order['id']}", json={'table_id': demo['tables']['Mesa 2']})

        assert response.status_code == 200
        assert client.get(f"/tables/{demo['tables']['Mesa 1']}").get_json()['status'] == 'available'
        assert client.get(f"/tables/{demo['tables']['Mesa 2']}").get_json()['status'] == 'occupied'

    def test_cancel_frees_table(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()

        response = client.post(f"/orders/{order['id']}/cancel")

        assert response.status_code == 200
        assert response.get_json()['status'] == 'cancelled'
        assert client.get(f"/tables/{demo['tables']['Mesa 1']}").get_json()['status'] == 'available'

    def test_hold_and_resume(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()

        held = client.post(f"/orders/{order['id']}/hold").get_json()
        assert held['status'] == 'on_hold'
        assert held['is_on_hold'] is True

        resumed = client.post(f"/orders/{order['id']}/resume").get_json()
        assert resumed['status'] == 'open'

    def test_cannot_complete_unpaid_order(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()

        response = client.post(f"/orders/{order['id']}/complete")

        assert response.status_code == 409

    def test_list_active_orders(self, client, demo, order_payload):
        order = client.post('/orders', json=order_payload).get_json()
        client.post(f"/orders/{order['id']}/cancel")

        assert client.get('/orders?active=1').get_json() == []
        assert len(client.get('/orders').get_json()) == 1
