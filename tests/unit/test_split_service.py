"""
Unit tests for proportional split allocation.
"""

from decimal import Decimal

from tabletop.services.totals_service import DiscountRule, calculate_totals, charged_subtotal
from tabletop.services.split_service import allocate_split, equal_share_due

RATE = Decimal('0.13')
CENT = Decimal('0.01')


class TestAllocateSplit:

    def test_single_split_covering_everything_matches_order(self, line):
        items = [line(1, '18.00'), line(2, '3.50', 3)]
        preset = DiscountRule(id=1, name='Happy Hour', percentage=Decimal('15'))
        totals = calculate_totals(items, applied_preset=preset, tip_amount=Decimal('3'), tax_rate=RATE)

        allocation = allocate_split(items, totals, totals.tip_amount, charged_subtotal(items), RATE)

        assert allocation.split_subtotal == totals.subtotal
        assert allocation.split_discount == totals.discount_amount
        assert allocation.split_tax == totals.tax_amount
        assert allocation.split_tip == totals.tip_amount
        assert allocation.split_total == totals.total_amount

    def test_partition_sums_to_grand_total(self, line):
        items = [line(1, '18.00'), line(2, '9.50'), line(3, '3.50', 3), line(4, '22.50')]
        preset = DiscountRule(id=1, name='Happy Hour', percentage=Decimal('10'))
        totals = calculate_totals(items, applied_preset=preset, applied_manual_amount=Decimal('2'),
                                  tip_amount=Decimal('5'), tax_rate=RATE)

        # Pay the first group, then price the rest against what is still uncovered
        first_group = items[:2]
        first = allocate_split(first_group, totals, totals.tip_amount, charged_subtotal(items), RATE)

        rest = items[2:]
        pool = totals.discount_amount - first.split_discount
        second = allocate_split(rest, totals, totals.tip_amount, charged_subtotal(rest), RATE, discount_pool=pool)

        assert abs(first.split_total + second.split_total - totals.total_amount) <= CENT
        assert abs(first.split_discount + second.split_discount - totals.discount_amount) <= CENT

    def test_discount_never_exceeds_split_subtotal(self, line):
        items = [line(1, '10.00'), line(2, '10.00')]
        totals = calculate_totals(items, applied_manual_amount=Decimal('20'), tax_rate=RATE)

        allocation = allocate_split(items[:1], totals, 0, Decimal('5'), RATE)

        assert allocation.split_discount == Decimal('10.00')
        assert allocation.split_tax == 0

    def test_courtesy_items_carry_nothing(self, line):
        items = [line(1, '18.00'), line(2, '8.00', is_courtesy=True)]
        totals = calculate_totals(items, tip_amount=Decimal('2'), tax_rate=RATE)

        allocation = allocate_split([items[1]], totals, totals.tip_amount, charged_subtotal(items), RATE)

        assert allocation.split_total == 0

    def test_nothing_uncovered(self, line):
        items = [line(1, '18.00')]
        totals = calculate_totals(items, tax_rate=RATE)

        allocation = allocate_split(items, totals, 0, 0, RATE)

        assert allocation.split_discount == 0
        assert allocation.split_total == Decimal('18.00') * (1 + RATE)


class TestEqualShareDue:

    def test_two_way_split(self):
        assert equal_share_due(Decimal('32.205'), 0, 2) == Decimal('16.1025')

    def test_recomputes_remaining_balance_after_underpayment(self):
        assert equal_share_due(Decimal('32.205'), Decimal('16.10'), 1) == Decimal('16.105')

    def test_no_remaining_shares(self):
        assert equal_share_due(Decimal('32.205'), Decimal('16.10'), 0) == 0

    def test_overpaid_balance_is_zero(self):
        assert equal_share_due(Decimal('10'), Decimal('12'), 2) == 0
