"""
Order totals engine.

Pure functions: they read item/discount attributes and return new values,
never touching the database or the items they receive. Money is Decimal
end to end, so identical inputs always produce identical totals.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Tuple, Any

ZERO = Decimal('0')
HUNDRED = Decimal('100')
PAYMENT_EPSILON = Decimal('0.001')

ITEM_STATUS_CANCELLED = 'cancelled'


class TipMode:
    """Tip modes offered at checkout."""
    DEFAULT = 'default'        # configured default percentage
    PERCENTAGE = 'percentage'  # percentage chosen at checkout
    MANUAL = 'manual'          # fixed amount

    ALL = (DEFAULT, PERCENTAGE, MANUAL)


@dataclass(frozen=True)
class OrderTotals:
    """Computed totals of an order (never stored on its own)."""

    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    tip_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    applied_preset_discount_value: Decimal = ZERO
    applied_manual_discount_value: Decimal = ZERO

    @property
    def taxable_base(self) -> Decimal:
        return self.subtotal - self.discount_amount

    def to_dict(self) -> dict:
        return {
            'subtotal': str(self.subtotal),
            'discount_amount': str(self.discount_amount),
            'tax_amount': str(self.tax_amount),
            'tip_amount': str(self.tip_amount),
            'total_amount': str(self.total_amount),
            'applied_preset_discount_value': str(self.applied_preset_discount_value),
            'applied_manual_discount_value': str(self.applied_manual_discount_value),
        }


@dataclass(frozen=True)
class DiscountRule:
    """Immutable snapshot of a discount preset, as applied to a checkout."""

    id: Any
    name: str
    percentage: Decimal
    coupon_code: Optional[str] = None
    description: Optional[str] = None
    applicable_item_ids: Tuple = field(default_factory=tuple)
    applicable_category_ids: Tuple = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'percentage': str(self.percentage),
            'coupon_code': self.coupon_code,
            'description': self.description,
            'applicable_item_ids': list(self.applicable_item_ids),
            'applicable_category_ids': list(self.applicable_category_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'DiscountRule':
        return cls(
            id=data['id'],
            name=data['name'],
            percentage=Decimal(str(data['percentage'])),
            coupon_code=data.get('coupon_code'),
            description=data.get('description'),
            applicable_item_ids=tuple(data.get('applicable_item_ids') or ()),
            applicable_category_ids=tuple(data.get('applicable_category_ids') or ()),
        )


def to_decimal(value) -> Decimal:
    """Convert user/DB numbers to Decimal without float artifacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def is_billable(item) -> bool:
    """Cancelled items never count towards any total."""
    return getattr(item, 'status', None) != ITEM_STATUS_CANCELLED


def charged_line_total(item) -> Decimal:
    """Line total that is actually charged (courtesy lines are free)."""
    if not is_billable(item) or getattr(item, 'is_courtesy', False):
        return ZERO
    return to_decimal(item.price) * int(item.quantity)


def charged_subtotal(items: Iterable) -> Decimal:
    return sum((charged_line_total(item) for item in items), ZERO)


def preset_discount_base(items: Iterable, preset) -> Decimal:
    """
    Portion of the charged subtotal a preset applies to.

    Item restrictions match on the menu item id, category restrictions on the
    menu item's category. Without restrictions the whole subtotal applies.
    """
    item_ids = set(getattr(preset, 'applicable_item_ids', None) or ())
    category_ids = set(getattr(preset, 'applicable_category_ids', None) or ())

    if item_ids:
        return sum(
            (charged_line_total(i) for i in items if i.menu_item_id in item_ids),
            ZERO
        )
    if category_ids:
        return sum(
            (charged_line_total(i) for i in items if getattr(i, 'category_id', None) in category_ids),
            ZERO
        )
    return charged_subtotal(items)


def calculate_totals(
    items: Iterable,
    is_order_courtesy: bool = False,
    applied_preset=None,
    applied_manual_amount=ZERO,
    tip_amount=ZERO,
    tax_rate=ZERO
) -> OrderTotals:
    """
    Compute the totals breakdown of an order.

    Args:
        items: order items (price, quantity, is_courtesy, status, menu_item_id,
            category_id)
        is_order_courtesy: whole order is on the house
        applied_preset: DiscountRule / DiscountPreset or None
        applied_manual_amount: manual discount amount; negatives count as 0
        tip_amount: tip already resolved to an amount
        tax_rate: e.g. Decimal('0.13')

    Returns:
        OrderTotals
    """
    billable = [item for item in items if is_billable(item)]
    subtotal = charged_subtotal(billable)

    if is_order_courtesy:
        return OrderTotals(
            subtotal=subtotal,
            discount_amount=subtotal,
            tax_amount=ZERO,
            tip_amount=ZERO,
            total_amount=ZERO,
            applied_preset_discount_value=ZERO,
            applied_manual_discount_value=ZERO
        )

    preset_value = ZERO
    if applied_preset is not None:
        percentage = to_decimal(applied_preset.percentage)
        preset_value = preset_discount_base(billable, applied_preset) * percentage / HUNDRED

    manual = max(to_decimal(applied_manual_amount), ZERO)
    manual_value = min(manual, subtotal - preset_value)

    discount = preset_value + manual_value
    taxable = subtotal - discount
    tax = taxable * to_decimal(tax_rate)
    tip = to_decimal(tip_amount)

    return OrderTotals(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        tip_amount=tip,
        total_amount=taxable + tax + tip,
        applied_preset_discount_value=preset_value,
        applied_manual_discount_value=manual_value
    )


def resolve_tip(mode: str, taxable_base, percentage=None, manual_amount=None,
                default_percentage=Decimal('15')) -> Decimal:
    """Turn a tip mode into an amount. Percent tips use the post-discount, pre-tax base."""
    base = max(to_decimal(taxable_base), ZERO)
    if mode == TipMode.MANUAL:
        return max(to_decimal(manual_amount), ZERO)
    if mode == TipMode.PERCENTAGE:
        return base * max(to_decimal(percentage), ZERO) / HUNDRED
    return base * to_decimal(default_percentage) / HUNDRED


def is_fully_paid(paid_total, grand_total, epsilon=PAYMENT_EPSILON) -> bool:
    """Monetary comparison with tolerance."""
    return to_decimal(paid_total) >= to_decimal(grand_total) - epsilon
