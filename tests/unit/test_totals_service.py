"""
Unit tests for the order totals engine.
"""

import pytest
from decimal import Decimal

from tabletop.services.totals_service import (
    DiscountRule, TipMode, calculate_totals, resolve_tip, is_fully_paid, preset_discount_base
)

RATE = Decimal('0.13')


@pytest.fixture
def carbonara_and_teas(line):
    return [line(1, '18.00', 1), line(2, '3.50', 3)]


class TestCalculateTotals:
    """Subtotal, discount, tax and total breakdown."""

    def test_without_discount(self, carbonara_and_teas):
        totals = calculate_totals(carbonara_and_teas, tax_rate=RATE)

        assert totals.subtotal == Decimal('28.50')
        assert totals.discount_amount == 0
        assert totals.tax_amount == Decimal('3.705')
        assert totals.tip_amount == 0
        assert totals.total_amount == Decimal('32.205')

    def test_unrestricted_preset(self, carbonara_and_teas):
        preset = DiscountRule(id=1, name='Happy Hour', percentage=Decimal('15'))
        totals = calculate_totals(carbonara_and_teas, applied_preset=preset, tax_rate=RATE)

        assert totals.applied_preset_discount_value == Decimal('4.275')
        assert totals.subtotal - totals.discount_amount == Decimal('24.225')
        assert totals.tax_amount == Decimal('3.14925')
        assert totals.total_amount == Decimal('27.37425')

    def test_preset_plus_tip(self, carbonara_and_teas):
        preset = DiscountRule(id=1, name='Happy Hour', percentage=Decimal('15'))
        totals = calculate_totals(carbonara_and_teas, applied_preset=preset, tip_amount=Decimal('2'), tax_rate=RATE)

        assert totals.total_amount == Decimal('29.37425')

    def test_courtesy_item_is_free_but_visible(self, line):
        items = [line(1, '18.00'), line(2, '3.50', 3, is_courtesy=True)]
        totals = calculate_totals(items, tax_rate=RATE)

        assert totals.subtotal == Decimal('18.00')
        assert totals.tax_amount == Decimal('2.34')
        # The line itself is untouched
        assert items[1].price == Decimal('3.50')
        assert items[1].quantity == 3

    def test_cancelled_items_are_excluded(self, line):
        items = [line(1, '18.00'), line(2, '9.50', status='cancelled')]
        totals = calculate_totals(items, tax_rate=RATE)

        assert totals.subtotal == Decimal('18.00')

    def test_order_courtesy_zeroes_everything(self, carbonara_and_teas):
        preset = DiscountRule(id=1, name='Happy Hour', percentage=Decimal('15'))
        totals = calculate_totals(
            carbonara_and_teas, is_order_courtesy=True, applied_preset=preset,
            applied_manual_amount=Decimal('5'), tip_amount=Decimal('4'), tax_rate=RATE
        )

        assert totals.subtotal == Decimal('28.50')
        assert totals.discount_amount == Decimal('28.50')
        assert totals.tax_amount == 0
        assert totals.tip_amount == 0
        assert totals.total_amount == 0

    def test_manual_discount_is_clamped_to_subtotal(self, carbonara_and_teas):
        totals = calculate_totals(carbonara_and_teas, applied_manual_amount=Decimal('100'), tax_rate=RATE)

        assert totals.applied_manual_discount_value == Decimal('28.50')
        assert totals.discount_amount == totals.subtotal
        assert totals.tax_amount == 0
        assert totals.total_amount == 0

    def test_manual_discount_clamped_after_preset(self, carbonara_and_teas):
        preset = DiscountRule(id=1, name='Mitad', percentage=Decimal('50'))
        totals = calculate_totals(carbonara_and_teas, applied_preset=preset,
                                  applied_manual_amount=Decimal('20'), tax_rate=RATE)

        assert totals.applied_preset_discount_value == Decimal('14.25')
        assert totals.applied_manual_discount_value == Decimal('14.25')
        assert totals.total_amount == 0

    def test_negative_manual_discount_counts_as_zero(self, carbonara_and_teas):
        totals = calculate_totals(carbonara_and_teas, applied_manual_amount=Decimal('-5'), tax_rate=RATE)

        assert totals.applied_manual_discount_value == 0
        assert totals.total_amount == Decimal('32.205')

    def test_empty_order(self):
        totals = calculate_totals([], tax_rate=RATE)

        assert totals.subtotal == 0
        assert totals.total_amount == 0

    def test_identical_inputs_give_identical_totals(self, carbonara_and_teas):
        preset = DiscountRule(id=1, name='Happy Hour', percentage=Decimal('15'))
        first = calculate_totals(carbonara_and_teas, applied_preset=preset, tip_amount=Decimal('1.5'), tax_rate=RATE)
        second = calculate_totals(carbonara_and_teas, applied_preset=preset, tip_amount=Decimal('1.5'), tax_rate=RATE)

        assert first == second

    def test_total_identity(self, carbonara_and_teas):
        preset = DiscountRule(id=1, name='Happy Hour', percentage=Decimal('15'))
        totals = calculate_totals(carbonara_and_teas, applied_preset=preset,
                                  applied_manual_amount=Decimal('1.25'), tip_amount=Decimal('3'), tax_rate=RATE)

        assert totals.total_amount == totals.subtotal - totals.discount_amount + totals.tax_amount + totals.tip_amount
        assert totals.tax_amount == (totals.subtotal - totals.discount_amount) * RATE


class TestPresetRestrictions:
    """Item and category restricted presets."""

    def test_item_restriction(self, line):
        items = [line(1, '18.00', menu_item_id=10), line(2, '8.00', 2, menu_item_id=20)]
        preset = DiscountRule(id=1, name='Postres', percentage=Decimal('50'), applicable_item_ids=(20,))

        assert preset_discount_base(items, preset) == Decimal('16.00')
        assert calculate_totals(items, applied_preset=preset).applied_preset_discount_value == Decimal('8.00')

    def test_category_restriction(self, line):
        items = [
            line(1, '18.00', category_id=2),
            line(2, '8.00', category_id=3),
            line(3, '9.75', category_id=3, is_courtesy=True),
        ]
        preset = DiscountRule(id=1, name='Postres', percentage=Decimal('10'), applicable_category_ids=(3,))

        # Courtesy lines are not discountable
        assert calculate_totals(items, applied_preset=preset).applied_preset_discount_value == Decimal('0.80')

    def test_restriction_without_matches(self, line):
        items = [line(1, '18.00', category_id=2)]
        preset = DiscountRule(id=1, name='Bebidas', percentage=Decimal('10'), applicable_category_ids=(4,))

        assert calculate_totals(items, applied_preset=preset).discount_amount == 0


class TestTips:
    def test_default_tip(self):
        assert resolve_tip(TipMode.DEFAULT, Decimal('100')) == Decimal('15')

    def test_percentage_tip(self):
        assert resolve_tip(TipMode.PERCENTAGE, Decimal('24.225'), percentage=Decimal('10')) == Decimal('2.4225')

    def test_manual_tip(self):
        assert resolve_tip(TipMode.MANUAL, Decimal('100'), manual_amount='3.50') == Decimal('3.50')

    def test_negative_manual_tip_is_zero(self):
        assert resolve_tip(TipMode.MANUAL, Decimal('100'), manual_amount='-1') == 0


class TestIsFullyPaid:
    def test_within_epsilon(self):
        assert is_fully_paid(Decimal('32.2045'), Decimal('32.205'))

    def test_short_payment(self):
        assert not is_fully_paid(Decimal('32.20'), Decimal('32.205'))
