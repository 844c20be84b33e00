"""
Formatting helpers for receipts and API output.
Amounts are US dollars (El Salvador): comma thousands, dot decimals.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import datetime
from typing import Union, Optional

CENT = Decimal('0.01')


def round_money(value: Union[int, float, Decimal, str, None]) -> Decimal:
    """
    Round to cents, half up.

    Examples:
        round_money('3.14925') -> Decimal('3.15')
        round_money(None) -> Decimal('0.00')
    """
    if value is None or value == "":
        return Decimal('0.00')
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def money(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount for display.

    Examples:
        money(1500) -> "$1,500.00"
        money('16.1025') -> "$16.10"
        money(-2.5) -> "-$2.50"
        money('abc') -> "-"
    """
    try:
        amount = round_money(value)
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    sign = '-' if amount < 0 else ''
    return f"{sign}${abs(amount):,.2f}"


def percentage(value) -> str:
    """percentage(Decimal('10.00')) -> "10%", percentage('12.5') -> "12.5%"."""
    if value is None:
        return "-"
    num = Decimal(str(value)).normalize()
    return f"{num:f}%"


def datetime_es(value: Optional[datetime]) -> str:
    """dd/mm/YYYY HH:MM, or "-" when missing."""
    if value is None:
        return "-"
    return value.strftime('%d/%m/%Y %H:%M')
