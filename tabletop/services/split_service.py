"""Split payment allocation (pure functions)."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from tabletop.services.totals_service import (
    OrderTotals, ZERO, to_decimal, charged_subtotal
)


@dataclass(frozen=True)
class SplitAllocation:
    """Share of an order's discount, tax and tip owed by a subset of items."""

    split_subtotal: Decimal = ZERO
    split_discount: Decimal = ZERO
    split_tax: Decimal = ZERO
    split_tip: Decimal = ZERO
    split_total: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            'split_subtotal': str(self.split_subtotal),
            'split_discount': str(self.split_discount),
            'split_tax': str(self.split_tax),
            'split_tip': str(self.split_tip),
            'split_total': str(self.split_total),
        }


def allocate_split(
    selected_items: Iterable,
    overall_totals: OrderTotals,
    overall_tip_amount,
    uncovered_discountable_subtotal,
    tax_rate,
    discount_pool: Optional[Decimal] = None
) -> SplitAllocation:
    """
    Price a subset of items against what is still unpaid.

    The discount ratio is taken against the uncovered subtotal, so it must be
    paired with the discount still undistributed (`discount_pool`); paid
    splits have already consumed their part. When nothing has been paid yet
    the pool is the whole order discount.

    The tip follows the post-discount share of the whole order.
    """
    split_subtotal = charged_subtotal(selected_items)
    uncovered = to_decimal(uncovered_discountable_subtotal)
    pool = overall_totals.discount_amount if discount_pool is None else to_decimal(discount_pool)

    discount_ratio = split_subtotal / uncovered if uncovered > 0 else ZERO
    split_discount = min(pool * discount_ratio, split_subtotal)

    split_net = split_subtotal - split_discount
    split_tax = split_net * to_decimal(tax_rate)

    order_net = overall_totals.subtotal - overall_totals.discount_amount
    tip_ratio = split_net / order_net if order_net > 0 else ZERO
    split_tip = to_decimal(overall_tip_amount) * tip_ratio

    return SplitAllocation(
        split_subtotal=split_subtotal,
        split_discount=split_discount,
        split_tax=split_tax,
        split_tip=split_tip,
        split_total=split_net + split_tax + split_tip
    )


def equal_share_due(grand_total, paid_total, remaining_unpaid_shares: int) -> Decimal:
    """
    Amount each unpaid equal share owes.

    Recomputed against the remaining balance every time a share is paid, so an
    underpaid share is absorbed by the shares still open.
    """
    if remaining_unpaid_shares <= 0:
        return ZERO
    balance = max(to_decimal(grand_total) - to_decimal(paid_total), ZERO)
    return balance / remaining_unpaid_shares
