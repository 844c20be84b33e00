"""
Integration tests for the checkout wizard endpoints.
"""

import pytest
from decimal import Decimal


@pytest.fixture
def order(client, demo):
    """Carbonara + 3 iced teas at Mesa 1 ($28.50)."""
    response = client.post('/orders', json={
        'waiter_id': demo['staff']['Bob'],
        'table_id': demo['tables']['Mesa 1'],
        'number_of_guests': 2,
        'items': [
            {'menu_item_id': demo['menu']['Spaghetti Carbonara'], 'quantity': 1, 'assigned_guest': 'Ana'},
            {'menu_item_id': demo['menu']['Iced Tea'], 'quantity': 3, 'assigned_guest': 'Luis'},
        ]
    })
    assert response.status_code == 201
    return response.get_json()


def send(client, order_id, event, payload=None):
    return client.post(f'/orders/{order_id}/checkout/events', json={'event': event, 'payload': payload or {}})


@pytest.fixture
def checkout(client, order):
    """Checkout started with no tip."""
    assert client.post(f"/orders/{order['id']}/checkout").status_code == 201
    assert send(client, order['id'], 'set_tip', {'mode': 'manual', 'amount': '0'}).status_code == 200
    return order['id']


class TestCheckoutLifecycle:

    def test_start_checkout(self, client, order):
        response = client.post(f"/orders/{order['id']}/checkout")

        assert response.status_code == 201
        data = response.get_json()
        assert data['step'] == 'summary_and_courtesy'
        assert Decimal(data['totals']['tip_amount']) == Decimal('4.275')
        assert data['can_finalize'] is False

        assert client.get(f"/orders/{order['id']}").get_json()['status'] == 'pending_payment'

    def test_state_survives_between_requests(self, client, checkout):
        send(client, checkout, 'next_step')

        data = client.get(f'/orders/{checkout}/checkout').get_json()

        assert data['step'] == 'discounts_and_tip'
        assert Decimal(data['totals']['total_amount']) == Decimal('32.205')

    def test_discard_reopens_order(self, client, checkout):
        assert client.delete(f'/orders/{checkout}/checkout').status_code == 200

        assert client.get(f'/orders/{checkout}').get_json()['status'] == 'open'
        assert client.get(f'/orders/{checkout}/checkout').status_code == 404

    def test_missing_event(self, client, checkout):
        response = client.post(f'/orders/{checkout}/checkout/events', json={})

        assert response.status_code == 400

    def test_malformed_payload(self, client, checkout):
        response = send(client, checkout, 'stage_discount', {'manual_amount': 'abc'})
        assert response.status_code == 400
        assert response.get_json()['code'] == 'invalid_discount'

        send(client, checkout, 'set_payment', {'strategy': 'split', 'payment_method': 'cash'})
        response = send(client, checkout, 'configure_equal_split', {'ways': 'two'})
        assert response.status_code == 400
        assert response.get_json()['code'] == 'business_rule'


class TestFullPaymentFinalize:

    def test_finalize_without_method_is_rejected(self, client, checkout):
        response = client.post(f'/orders/{checkout}/checkout/finalize')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'missing_payment_method'
        assert client.get(f'/orders/{checkout}').get_json()['status'] == 'pending_payment'

    def test_finalize_and_complete(self, client, demo, checkout):
        send(client, checkout, 'set_payment', {'payment_method': 'cash'})

        response = client.post(f'/orders/{checkout}/checkout/finalize')

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'paid'
        assert data['payment_method'] == 'cash'
        assert Decimal(data['total_amount']) == Decimal('32.205')

        completed = client.post(f'/orders/{checkout}/complete').get_json()
        assert completed['status'] == 'completed'
        assert client.get(f"/tables/{demo['tables']['Mesa 1']}").get_json()['status'] == 'available'

    def test_paid_order_cannot_restart_checkout(self, client, checkout):
        send(client, checkout, 'set_payment', {'payment_method': 'cash'})
        client.post(f'/orders/{checkout}/checkout/finalize')

        response = client.post(f'/orders/{checkout}/checkout')

        assert response.status_code == 409

    def test_coupon_discount(self, client, checkout):
        send(client, checkout, 'stage_discount', {'coupon_code': 'frecuente15'})
        response = send(client, checkout, 'apply_discounts')

        data = response.get_json()
        assert Decimal(data['totals']['applied_preset_discount_value']) == Decimal('4.275')
        assert data['applied_preset']['coupon_code'] == 'FRECUENTE15'

    def test_persisted_totals_keep_full_precision(self, client, checkout):
        send(client, checkout, 'stage_discount', {'coupon_code': 'FRECUENTE15'})
        send(client, checkout, 'apply_discounts')
        send(client, checkout, 'set_payment', {'payment_method': 'cash'})

        data = client.post(f'/orders/{checkout}/checkout/finalize').get_json()

        assert Decimal(data['discount_amount']) == Decimal('4.275')
        assert Decimal(data['tax_amount']) == Decimal('3.14925')
        assert Decimal(data['total_amount']) == Decimal('27.37425')

    def test_unknown_coupon(self, client, checkout):
        send(client, checkout, 'stage_discount', {'coupon_code': 'NOPE'})
        response = send(client, checkout, 'apply_discounts')

        assert response.status_code == 404
        assert response.get_json()['code'] == 'stale_discount'
        data = client.get(f'/orders/{checkout}/checkout').get_json()
        assert data['applied_preset'] is None

    def test_courtesy_order(self, client, checkout):
        send(client, checkout, 'set_order_flags', {'is_courtesy': True})

        data = client.post(f'/orders/{checkout}/checkout/finalize').get_json()

        assert data['status'] == 'paid'
        assert data['is_courtesy'] is True
        assert Decimal(data['total_amount']) == 0

    def test_on_hold(self, client, checkout):
        send(client, checkout, 'set_order_flags', {'is_on_hold': True})

        data = client.post(f'/orders/{checkout}/checkout/finalize').get_json()

        assert data['status'] == 'on_hold'


class TestSplitPayments:

    def test_equal_split(self, client, checkout):
        send(client, checkout, 'set_payment', {'strategy': 'split', 'payment_method': 'cash'})
        data = send(client, checkout, 'configure_equal_split', {'ways': 2}).get_json()
        first, second = [s['id'] for s in data['splits']]

        send(client, checkout, 'update_split', {'split_id': first, 'amount_to_pay': '16.10'})
        send(client, checkout, 'pay_split', {'split_id': first})
        data = client.get(f'/orders/{checkout}/checkout').get_json()
        assert Decimal(data['splits'][1]['amount_due']) == Decimal('16.105')
        assert data['blocking_reasons'][0]['code'] == 'underfunded_split'

        send(client, checkout, 'update_split', {'split_id': second, 'payment_method': 'credit_card'})
        send(client, checkout, 'pay_split', {'split_id': second})
        response = client.post(f'/orders/{checkout}/checkout/finalize')

        assert response.status_code == 200
        order = response.get_json()
        assert order['payment_split_type'] == 'equal'
        assert [s['payment_method'] for s in order['payment_splits']] == ['cash', 'credit_card']

    def test_cancel_refused_after_partial_payment(self, client, checkout):
        send(client, checkout, 'set_payment', {'strategy': 'split', 'payment_method': 'cash'})
        data = send(client, checkout, 'configure_equal_split', {'ways': 2}).get_json()
        send(client, checkout, 'pay_split', {'split_id': data['splits'][0]['id']})

        response = client.post(f'/orders/{checkout}/cancel')

        assert response.status_code == 400
        assert client.get(f'/orders/{checkout}').get_json()['status'] == 'pending_payment'
        assert client.get(f'/orders/{checkout}/checkout').get_json()['splits'][0]['is_paid'] is True

    def test_held_order_keeps_paid_shares(self, client, checkout):
        send(client, checkout, 'set_payment', {'strategy': 'split', 'payment_method': 'cash'})
        data = send(client, checkout, 'configure_equal_split', {'ways': 2}).get_json()
        send(client, checkout, 'pay_split', {'split_id': data['splits'][0]['id']})
        send(client, checkout, 'set_order_flags', {'is_on_hold': True})
        held = client.post(f'/orders/{checkout}/checkout/finalize').get_json()
        assert held['status'] == 'on_hold'
        assert client.post(f'/orders/{checkout}/cancel').status_code == 400

        client.post(f'/orders/{checkout}/resume')
        resumed = client.post(f'/orders/{checkout}/checkout').get_json()

        assert Decimal(resumed['paid_total']) == Decimal('16.1025')
        assert Decimal(resumed['remaining_balance']) == Decimal('16.1025')

        send(client, checkout, 'set_payment', {'payment_method': 'credit_card'})
        data = send(client, checkout, 'configure_equal_split', {'ways': 2}).get_json()
        open_share = next(s for s in data['splits'] if not s['is_paid'])
        assert Decimal(open_share['amount_due']) == Decimal('16.1025')
        send(client, checkout, 'pay_split', {'split_id': open_share['id']})

        order = client.post(f'/orders/{checkout}/checkout/finalize').get_json()
        assert order['status'] == 'paid'
        assert len(order['payment_splits']) == 2
        assert sum(Decimal(s['amount_paid']) for s in order['payment_splits']) == Decimal('32.205')

    def test_itemized_underpayment_rejected(self, client, checkout):
        send(client, checkout, 'set_payment', {'strategy': 'split', 'payment_method': 'cash'})
        data = send(client, checkout, 'add_guest_splits').get_json()
        ana = next(s for s in data['splits'] if s['guest'] == 'Ana')

        response = send(client, checkout, 'update_split', {'split_id': ana['id'], 'amount_to_pay': '10'})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'underfunded_split'

    def test_overpayment(self, client, checkout):
        send(client, checkout, 'set_payment', {'strategy': 'split', 'payment_method': 'cash'})
        data = send(client, checkout, 'configure_equal_split', {'ways': 2}).get_json()

        response = send(client, checkout, 'update_split', {'split_id': data['splits'][0]['id'], 'amount_to_pay': '50'})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'overpayment'

    def test_guest_split_and_covered_items(self, client, order, checkout):
        item_ids = [item['id'] for item in order['items']]
        send(client, checkout, 'set_payment', {'strategy': 'split', 'payment_method': 'cash'})
        data = send(client, checkout, 'add_guest_splits').get_json()
        ana = next(s for s in data['splits'] if s['guest'] == 'Ana')
        luis = next(s for s in data['splits'] if s['guest'] == 'Luis')

        send(client, checkout, 'pay_split', {'split_id': ana['id']})
        response = send(client, checkout, 'update_split', {'split_id': luis['id'], 'item_ids': item_ids})

        assert response.status_code == 409
        assert response.get_json()['code'] == 'item_already_covered'

        send(client, checkout, 'pay_split', {'split_id': luis['id']})
        finalized = client.post(f'/orders/{checkout}/checkout/finalize').get_json()
        assert finalized['payment_split_type'] == 'by_customer_bill'
        assert len(finalized['payment_splits']) == 2


class TestReceipt:

    def test_receipt_pdf(self, client, checkout):
        send(client, checkout, 'set_payment', {'payment_method': 'cash'})
        client.post(f'/orders/{checkout}/checkout/finalize')

        response = client.get(f'/orders/{checkout}/receipt.pdf')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

    def test_receipt_disabled(self, client, checkout):
        send(client, checkout, 'set_order_flags', {'disable_receipt_print': True})
        send(client, checkout, 'set_payment', {'payment_method': 'cash'})
        client.post(f'/orders/{checkout}/checkout/finalize')

        assert client.get(f'/orders/{checkout}/receipt.pdf').status_code == 400

    def test_receipt_before_payment(self, client, checkout):
        assert client.get(f'/orders/{checkout}/receipt.pdf').status_code == 400
