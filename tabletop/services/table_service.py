"""Restaurant tables service."""
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tabletop.exceptions import BusinessLogicError, NotFoundError
from tabletop.models import RestaurantTable, TableStatus


def list_tables(session: Session) -> List[RestaurantTable]:
    return session.query(RestaurantTable).order_by(RestaurantTable.name).all()


def get_table(session: Session, table_id: int) -> RestaurantTable:
    table = session.query(RestaurantTable).filter(RestaurantTable.id == table_id).first()
    if not table:
        raise NotFoundError(f'Mesa {table_id} no encontrada')
    return table


def create_table(session: Session, name: str, capacity: int) -> RestaurantTable:
    try:
        table = RestaurantTable(name=name.strip(), capacity=capacity, status=TableStatus.AVAILABLE.value)
        session.add(table)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'La mesa "{name}" ya existe')
    return table


def update_table(session: Session, table_id: int, name: str, capacity: int, status: str = None) -> RestaurantTable:
    table = get_table(session, table_id)
    if status and status != table.status:
        if table.current_order_id and status != TableStatus.OCCUPIED.value:
            raise BusinessLogicError('La mesa tiene una orden abierta')
        table.status = status
    table.name = name.strip()
    table.capacity = capacity
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'La mesa "{name}" ya existe')
    return table


def delete_table(session: Session, table_id: int) -> None:
    table = get_table(session, table_id)
    if table.current_order_id:
        raise BusinessLogicError('No se puede eliminar una mesa con una orden abierta')
    session.delete(table)
    session.commit()


def seat_order(table: RestaurantTable, order_id: int) -> None:
    """Mark a table occupied by an order (caller commits)."""
    if table.current_order_id and table.current_order_id != order_id:
        raise BusinessLogicError(f'La mesa "{table.name}" ya está ocupada')
    table.status = TableStatus.OCCUPIED.value
    table.current_order_id = order_id


def release(table: RestaurantTable) -> None:
    """Free a table (caller commits)."""
    table.status = TableStatus.AVAILABLE.value
    table.current_order_id = None
