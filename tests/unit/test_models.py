"""
Unit tests for SQLAlchemy models.
"""

import pytest
from decimal import Decimal

from tabletop.models import (
    MenuCategory, MenuItem, DiscountPreset, StaffMember, Order, OrderItem, CheckoutDraft,
    OrderStatus
)


@pytest.fixture
def category(session):
    category = MenuCategory(name='Main Courses')
    session.add(category)
    session.commit()
    return category


@pytest.fixture
def waiter(session):
    waiter = StaffMember(name='Bob', email='bob@tabletop.test')
    session.add(waiter)
    session.commit()
    return waiter


class TestMenuCategoryModel:
    """Tests for MenuCategory model."""

    def test_category_name_unique(self, session, category):
        """Test that category names must be unique."""
        session.add(MenuCategory(name=category.name))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()


class TestMenuItemModel:
    """Tests for MenuItem model."""

    def test_create_menu_item(self, session, category):
        item = MenuItem(name='Carbonara', price=Decimal('18.00'), category_id=category.id)
        session.add(item)
        session.commit()

        assert item.id is not None
        assert item.is_available is True
        assert item.allergy_tags == []
        assert item.to_dict()['category']['name'] == 'Main Courses'


class TestDiscountPresetModel:
    """Tests for DiscountPreset model."""

    def test_to_rule(self, session):
        preset = DiscountPreset(name='Happy Hour', percentage=Decimal('10'), applicable_category_ids=[3])
        session.add(preset)
        session.commit()

        rule = preset.to_rule()

        assert rule.percentage == Decimal('10')
        assert rule.applicable_category_ids == (3,)
        assert rule.applicable_item_ids == ()

    def test_coupon_code_unique(self, session):
        session.add(DiscountPreset(name='A', percentage=Decimal('5'), coupon_code='PROMO'))
        session.commit()
        session.add(DiscountPreset(name='B', percentage=Decimal('5'), coupon_code='PROMO'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()


class TestOrderModel:
    """Tests for Order and OrderItem models."""

    def test_order_defaults(self, session, waiter, category):
        dish = MenuItem(name='Carbonara', price=Decimal('18.00'), category_id=category.id)
        session.add(dish)
        session.flush()

        order = Order(waiter_id=waiter.id)
        order.items.append(OrderItem(menu_item_id=dish.id, name=dish.name, price=dish.price, quantity=2))
        session.add(order)
        session.commit()

        assert order.status == OrderStatus.OPEN.value
        assert order.payment_split_type == 'none'
        assert order.is_terminal is False
        assert order.items[0].line_total == Decimal('36.00')
        assert order.items[0].category_id == category.id

    def test_transitions(self, session, waiter):
        order = Order(waiter_id=waiter.id)
        session.add(order)
        session.commit()

        assert order.can_transition_to('pending_payment')
        assert order.can_transition_to('completed') is False

        order.status = OrderStatus.PAID.value
        assert order.is_terminal is True
        assert order.can_transition_to('completed')

    def test_one_checkout_draft_per_order(self, session, waiter):
        order = Order(waiter_id=waiter.id)
        session.add(order)
        session.commit()

        session.add(CheckoutDraft(order_id=order.id, state={'step': 'summary_and_courtesy'}))
        session.commit()
        session.add(CheckoutDraft(order_id=order.id, state={}))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()
