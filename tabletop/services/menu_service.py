"""Menu service - categories and menu items."""
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from tabletop.exceptions import BusinessLogicError, NotFoundError
from tabletop.models import MenuCategory, MenuItem, MenuItemAvailability, OrderItem, ALLERGY_TAG_OPTIONS

logger = logging.getLogger(__name__)


def list_categories(session: Session) -> List[MenuCategory]:
    return session.query(MenuCategory).order_by(MenuCategory.name).all()


def create_category(session: Session, name: str) -> MenuCategory:
    name = (name or '').strip()
    if not name:
        raise BusinessLogicError('El nombre de la categoría es requerido')
    try:
        category = MenuCategory(name=name)
        session.add(category)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'La categoría "{name}" ya existe')
    return category


def list_items(session: Session, search: str = '', category_id: Optional[int] = None,
               only_available: bool = False) -> List[MenuItem]:
    query = session.query(MenuItem).options(joinedload(MenuItem.category))
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(MenuItem.name.ilike(pattern), MenuItem.number.ilike(pattern)))
    if category_id:
        query = query.filter(MenuItem.category_id == category_id)
    if only_available:
        query = query.filter(MenuItem.availability == MenuItemAvailability.AVAILABLE.value)
    return query.order_by(MenuItem.name).all()


def get_item(session: Session, item_id: int) -> MenuItem:
    item = session.query(MenuItem).filter(MenuItem.id == item_id).first()
    if not item:
        raise NotFoundError(f'Ítem de menú {item_id} no encontrado')
    return item


def _apply_item_data(session: Session, item: MenuItem, data: dict) -> None:
    category = session.query(MenuCategory).filter(MenuCategory.id == data['category_id']).first()
    if not category:
        raise NotFoundError(f'Categoría {data["category_id"]} no encontrada')

    tags = list(data.get('allergy_tags') or [])
    unknown = [t for t in tags if t not in ALLERGY_TAG_OPTIONS]
    if unknown:
        raise BusinessLogicError(f'Etiquetas de alergia inválidas: {", ".join(unknown)}')

    item.number = (data.get('number') or '').strip() or None
    item.name = data['name'].strip()
    item.description = (data.get('description') or '').strip()
    item.price = data['price']
    item.category_id = category.id
    item.availability = data.get('availability') or MenuItemAvailability.AVAILABLE.value
    item.image_url = (data.get('image_url') or '').strip() or None
    item.allergies_notes = (data.get('allergies_notes') or '').strip() or None
    item.allergy_tags = tags


def create_item(session: Session, data: dict) -> MenuItem:
    item = MenuItem()
    _apply_item_data(session, item, data)
    session.add(item)
    session.commit()
    logger.info(f"[MENU] Item created: {item.name} (${item.price})")
    return item


def update_item(session: Session, item_id: int, data: dict) -> MenuItem:
    """Order lines keep their own name/price snapshot, so edits don't reprice open orders."""
    item = get_item(session, item_id)
    _apply_item_data(session, item, data)
    session.commit()
    return item


def delete_item(session: Session, item_id: int) -> None:
    item = get_item(session, item_id)
    in_use = session.query(OrderItem.id).filter(OrderItem.menu_item_id == item_id).first()
    if in_use:
        raise BusinessLogicError(
            f'No se puede eliminar "{item.name}": figura en órdenes. Márquelo como no disponible.'
        )
    session.delete(item)
    session.commit()
