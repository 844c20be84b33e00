"""Discount presets service - CRUD and coupon lookup."""
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tabletop.exceptions import BusinessLogicError, InvalidDiscountError, StaleDiscountError
from tabletop.models import DiscountPreset, MenuItem, MenuCategory
from tabletop.services.totals_service import DiscountRule, to_decimal

logger = logging.getLogger(__name__)


def normalize_coupon(code: Optional[str]) -> Optional[str]:
    code = (code or '').strip().upper()
    return code or None


def _validate_preset_data(session: Session, data: dict) -> dict:
    name = (data.get('name') or '').strip()
    if not name:
        raise BusinessLogicError('El nombre del descuento es requerido')

    try:
        percentage = to_decimal(data.get('percentage'))
    except (ArithmeticError, ValueError):
        raise InvalidDiscountError('Porcentaje inválido')
    if percentage < 0 or percentage > 100:
        raise InvalidDiscountError('El porcentaje debe estar entre 0 y 100')

    try:
        item_ids = [int(i) for i in (data.get('applicable_item_ids') or [])]
        category_ids = [int(c) for c in (data.get('applicable_category_ids') or [])]
    except (TypeError, ValueError):
        raise BusinessLogicError('Ítems o categorías del descuento inválidos')
    if item_ids and category_ids:
        raise BusinessLogicError('Un descuento se restringe a ítems o a categorías, no a ambos')
    if item_ids:
        found = session.query(func.count(MenuItem.id)).filter(MenuItem.id.in_(item_ids)).scalar()
        if found != len(set(item_ids)):
            raise BusinessLogicError('Algunos ítems del descuento no existen')
    if category_ids:
        found = session.query(func.count(MenuCategory.id)).filter(MenuCategory.id.in_(category_ids)).scalar()
        if found != len(set(category_ids)):
            raise BusinessLogicError('Algunas categorías del descuento no existen')

    return {
        'name': name,
        'percentage': percentage,
        'description': (data.get('description') or '').strip() or None,
        'coupon_code': normalize_coupon(data.get('coupon_code')),
        'applicable_item_ids': item_ids,
        'applicable_category_ids': category_ids,
    }


def list_presets(session: Session) -> List[DiscountPreset]:
    return session.query(DiscountPreset).order_by(DiscountPreset.name).all()


def get_preset(session: Session, preset_id: int) -> DiscountPreset:
    preset = session.query(DiscountPreset).filter(DiscountPreset.id == preset_id).first()
    if not preset:
        raise StaleDiscountError(preset_id)
    return preset


def find_by_coupon(session: Session, code: str) -> DiscountPreset:
    """Case-insensitive coupon lookup."""
    normalized = normalize_coupon(code)
    preset = None
    if normalized:
        preset = session.query(DiscountPreset).filter(
            func.upper(DiscountPreset.coupon_code) == normalized
        ).first()
    if not preset:
        raise StaleDiscountError(code)
    return preset


def create_preset(session: Session, data: dict) -> DiscountPreset:
    values = _validate_preset_data(session, data)
    try:
        preset = DiscountPreset(**values)
        session.add(preset)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'El cupón "{values["coupon_code"]}" ya existe')
    logger.info(f"[DISCOUNTS] Preset created: {preset.name} ({preset.percentage}%)")
    return preset


def update_preset(session: Session, preset_id: int, data: dict) -> DiscountPreset:
    """Edits don't touch checkouts that already applied the preset (they hold a snapshot)."""
    preset = get_preset(session, preset_id)
    values = _validate_preset_data(session, data)
    try:
        for key, value in values.items():
            setattr(preset, key, value)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'El cupón "{values["coupon_code"]}" ya existe')
    return preset


def delete_preset(session: Session, preset_id: int) -> None:
    preset = get_preset(session, preset_id)
    session.delete(preset)
    session.commit()
    logger.info(f"[DISCOUNTS] Preset {preset_id} deleted")


class DiscountCatalog:
    """Preset lookups for a CheckoutSession. Misses return None."""

    def __init__(self, session: Session):
        self.session = session

    def get_rule(self, preset_id) -> Optional[DiscountRule]:
        try:
            return get_preset(self.session, int(preset_id)).to_rule()
        except (StaleDiscountError, ValueError, TypeError):
            return None

    def find_rule_by_coupon(self, code: str) -> Optional[DiscountRule]:
        try:
            return find_by_coupon(self.session, code).to_rule()
        except StaleDiscountError:
            return None
