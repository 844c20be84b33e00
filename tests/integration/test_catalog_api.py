"""
Integration tests for menu, discount, table and staff endpoints.
"""

import pytest


class TestMenuApi:

    def test_list_demo_items(self, client, demo):
        response = client.get('/menu/items')

        assert response.status_code == 200
        names = [item['name'] for item in response.get_json()]
        assert 'Spaghetti Carbonara' in names
        assert len(names) == 7

    def test_only_available(self, client, demo):
        response = client.get('/menu/items?available=1')

        names = [item['name'] for item in response.get_json()]
        assert 'Tiramisu' not in names

    def test_create_item(self, client, session, demo):
        categories = {c['name']: c['id'] for c in client.get('/menu/categories').get_json()}

        response = client.post('/menu/items', json={
            'number': 'B02',
            'name': 'Horchata',
            'price': '2.75',
            'category_id': categories['Beverages'],
            'allergy_tags': ['vegan']
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['price'] == '2.75'
        assert data['category']['name'] == 'Beverages'
        assert data['allergy_tags'] == ['vegan']

    def test_negative_price_rejected(self, client, demo):
        response = client.post('/menu/items', json={'name': 'Gratis', 'price': '-1', 'category_id': 1})

        assert response.status_code == 400
        data = response.get_json()
        assert data['status'] == 'error'
        assert 'price' in data['errors']

    def test_unknown_item(self, client, demo):
        response = client.get('/menu/items/9999')

        assert response.status_code == 404
        assert response.get_json()['code'] == 'not_found'

    def test_duplicate_category(self, client, demo):
        response = client.post('/menu/categories', json={'name': 'Desserts'})

        assert response.status_code == 400


class TestDiscountsApi:

    def test_coupon_lookup_is_case_insensitive(self, client, demo):
        response = client.get('/discounts/coupon/frecuente15')

        assert response.status_code == 200
        assert response.get_json()['name'] == 'Cliente frecuente'

    def test_unknown_coupon(self, client, demo):
        response = client.get('/discounts/coupon/NOPE')

        assert response.status_code == 404
        assert response.get_json()['code'] == 'stale_discount'

    def test_create_restricted_preset(self, client, demo):
        response = client.post('/discounts', json={
            'name': 'Salmón del día',
            'percentage': '20',
            'coupon_code': 'salmon20',
            'applicable_item_ids': [demo['menu']['Grilled Salmon']]
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['coupon_code'] == 'SALMON20'
        assert data['applicable_item_ids'] == [demo['menu']['Grilled Salmon']]

    @pytest.mark.parametrize('percentage', ['-5', '150'])
    def test_percentage_out_of_range(self, client, demo, percentage):
        response = client.post('/discounts', json={'name': 'Malo', 'percentage': percentage})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'invalid_discount'

    def test_duplicate_coupon(self, client, demo):
        response = client.post('/discounts', json={'name': 'Otro', 'percentage': '5', 'coupon_code': 'Postre50'})

        assert response.status_code == 400

    def test_item_and_category_restriction_together(self, client, demo):
        response = client.post('/discounts', json={
            'name': 'Ambos', 'percentage': '5',
            'applicable_item_ids': [demo['menu']['Bruschetta']],
            'applicable_category_ids': [1]
        })

        assert response.status_code == 400


class TestTablesAndStaffApi:

    def test_create_table(self, client, demo):
        response = client.post('/tables', json={'name': 'Terraza 1', 'capacity': 4})

        assert response.status_code == 201
        assert response.get_json()['status'] == 'available'

    def test_create_staff(self, client, demo):
        response = client.post('/staff', json={'name': 'Eva', 'email': 'Eva@Example.com', 'role': 'kitchen'})

        assert response.status_code == 201
        data = response.get_json()
        assert data['email'] == 'eva@example.com'
        assert data['active'] is True

    def test_duplicate_staff_email(self, client, demo):
        response = client.post('/staff', json={'name': 'Otro Bob', 'email': 'BOB@example.com'})

        assert response.status_code == 400

    def test_list_waiters(self, client, demo):
        response = client.get('/staff?role=waiter')

        assert sorted(m['name'] for m in response.get_json()) == ['Bob', 'Diana']
