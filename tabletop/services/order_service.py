"""
Order service - Active orders and kitchen display.

An order is created when the waiter sends it to the kitchen. Items then move
through the kitchen states; the order itself follows
open -> pending_payment -> paid -> completed, with cancelled / on_hold as
side states (see ORDER_TRANSITIONS).
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from tabletop.exceptions import BusinessLogicError, NotFoundError, InvalidTransitionError
from tabletop.models import (
    Order, OrderItem, OrderItemStatus, OrderStatus, OrderType, MenuItem,
    StaffMember, CheckoutDraft
)
from tabletop.services import table_service
from tabletop.services.totals_service import (
    OrderTotals, DiscountRule, TipMode, ZERO, calculate_totals, resolve_tip
)

logger = logging.getLogger(__name__)

# Kitchen flow per item; cancelled is reachable from anything not delivered
ITEM_TRANSITIONS = {
    OrderItemStatus.PENDING.value: {OrderItemStatus.PREPARING.value, OrderItemStatus.CANCELLED.value},
    OrderItemStatus.PREPARING.value: {OrderItemStatus.READY.value, OrderItemStatus.CANCELLED.value},
    OrderItemStatus.READY.value: {OrderItemStatus.DELIVERED.value, OrderItemStatus.CANCELLED.value},
    OrderItemStatus.DELIVERED.value: set(),
    OrderItemStatus.CANCELLED.value: set(),
}

KITCHEN_STATUSES = (OrderItemStatus.PENDING.value, OrderItemStatus.PREPARING.value, OrderItemStatus.READY.value)
ACTIVE_ORDER_STATUSES = (OrderStatus.OPEN.value, OrderStatus.PENDING_PAYMENT.value, OrderStatus.ON_HOLD.value)
EDITABLE_ORDER_STATUSES = (OrderStatus.OPEN.value, OrderStatus.ON_HOLD.value)


def list_orders(session: Session, status: Optional[str] = None, active_only: bool = False) -> List[Order]:
    query = session.query(Order).options(joinedload(Order.items))
    if status:
        query = query.filter(Order.status == status)
    elif active_only:
        query = query.filter(Order.status.in_(ACTIVE_ORDER_STATUSES))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_order(session: Session, order_id: int) -> Order:
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Orden {order_id} no encontrada')
    return order


def current_totals(order: Order, tax_rate, default_tip_percentage=Decimal('15')) -> OrderTotals:
    """Live totals of an order with its applied discounts and the default tip."""
    preset = DiscountRule.from_dict(order.applied_preset) if order.applied_preset else None
    untipped = calculate_totals(order.items, order.is_courtesy, preset, order.manual_discount_amount, ZERO, tax_rate)
    tip = ZERO if order.is_courtesy else resolve_tip(
        TipMode.DEFAULT, untipped.taxable_base, default_percentage=default_tip_percentage
    )
    return calculate_totals(order.items, order.is_courtesy, preset, order.manual_discount_amount, tip, tax_rate)


def _build_items(session: Session, lines: List[dict]) -> List[OrderItem]:
    """Order lines from {menu_item_id, quantity, observations, assigned_guest} dicts."""
    if not lines:
        raise BusinessLogicError('La orden debe tener al menos un ítem')

    items = []
    for line in lines:
        menu_item = session.query(MenuItem).filter(MenuItem.id == line.get('menu_item_id')).first()
        if not menu_item:
            raise NotFoundError(f'Ítem de menú {line.get("menu_item_id")} no encontrado')
        if not menu_item.is_available:
            raise BusinessLogicError(f'"{menu_item.name}" no está disponible')
        try:
            quantity = int(line.get('quantity', 1))
        except (TypeError, ValueError):
            raise BusinessLogicError(f'Cantidad inválida para "{menu_item.name}"')
        if quantity <= 0:
            raise BusinessLogicError(f'La cantidad de "{menu_item.name}" debe ser mayor a 0')

        items.append(OrderItem(
            menu_item_id=menu_item.id,
            menu_item=menu_item,
            name=menu_item.name,
            price=menu_item.price,
            quantity=quantity,
            observations=(line.get('observations') or '').strip() or None,
            assigned_guest=(line.get('assigned_guest') or '').strip() or None,
            status=OrderItemStatus.PENDING.value
        ))
    return items


def create_order(
    session: Session,
    waiter_id: int,
    items: List[dict],
    order_type: str = OrderType.DINE_IN.value,
    table_id: Optional[int] = None,
    number_of_guests: Optional[int] = None
) -> Order:
    """
    Send a new order to the kitchen.

    Dine-in orders need a free table, which becomes occupied.

    Raises:
        BusinessLogicError / NotFoundError on invalid input
    """
    if order_type not in [t.value for t in OrderType]:
        raise BusinessLogicError(f'Tipo de orden inválido: {order_type}')

    waiter = session.query(StaffMember).filter(StaffMember.id == waiter_id).first()
    if not waiter or not waiter.active:
        raise NotFoundError(f'Mesero {waiter_id} no encontrado')

    table = None
    if order_type == OrderType.DINE_IN.value:
        if not table_id:
            raise BusinessLogicError('Las órdenes para comer en el local requieren una mesa')
        table = table_service.get_table(session, table_id)
        if table.current_order_id:
            raise BusinessLogicError(f'La mesa "{table.name}" ya está ocupada')

    if number_of_guests is not None and int(number_of_guests) <= 0:
        raise BusinessLogicError('El número de comensales debe ser mayor a 0')

    try:
        order = Order(
            order_type=order_type,
            table_id=table.id if table else None,
            number_of_guests=number_of_guests,
            waiter_id=waiter.id,
            status=OrderStatus.OPEN.value
        )
        order.items.extend(_build_items(session, items))
        session.add(order)
        session.flush()

        if table:
            table_service.seat_order(table, order.id)

        session.commit()
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        raise Exception(f'Error al crear la orden: {str(e)}')

    logger.info(f"[ORDERS] Order {order.id} sent to kitchen ({len(order.items)} items, table={order.table_id})")
    return order


def _ensure_editable(order: Order) -> None:
    if order.status not in EDITABLE_ORDER_STATUSES:
        raise InvalidTransitionError(f'La orden {order.id} no admite cambios en estado {order.status}')


def add_items(session: Session, order_id: int, items: List[dict]) -> Order:
    order = get_order(session, order_id)
    _ensure_editable(order)
    order.items.extend(_build_items(session, items))
    session.commit()
    logger.info(f"[ORDERS] Order {order_id}: {len(items)} item(s) added")
    return order


def update_item(session: Session, order_id: int, item_id: int, data: dict) -> OrderItem:
    """Change an item's kitchen status and/or its observations, quantity or guest."""
    order = get_order(session, order_id)
    item = next((i for i in order.items if i.id == item_id), None)
    if not item:
        raise NotFoundError(f'Ítem {item_id} no pertenece a la orden {order_id}')

    new_status = data.get('status')
    if new_status and new_status != item.status:
        if new_status not in ITEM_TRANSITIONS:
            raise BusinessLogicError(f'Estado de ítem inválido: {new_status}')
        if new_status not in ITEM_TRANSITIONS[item.status]:
            raise InvalidTransitionError(f'El ítem no puede pasar de {item.status} a {new_status}')
        if new_status == OrderItemStatus.CANCELLED.value:
            _ensure_editable(order)
        item.status = new_status

    if 'quantity' in data and data['quantity'] is not None:
        _ensure_editable(order)
        if item.status != OrderItemStatus.PENDING.value:
            raise BusinessLogicError('Solo se puede cambiar la cantidad de ítems pendientes')
        try:
            quantity = int(data['quantity'])
        except (TypeError, ValueError):
            raise BusinessLogicError(f'Cantidad inválida: {data["quantity"]}')
        if quantity <= 0:
            raise BusinessLogicError('La cantidad debe ser mayor a 0')
        item.quantity = quantity

    if 'observations' in data:
        item.observations = (data.get('observations') or '').strip() or None
    if 'assigned_guest' in data:
        item.assigned_guest = (data.get('assigned_guest') or '').strip() or None

    session.commit()
    return item


def kitchen_queue(session: Session) -> List[dict]:
    """Items still in the kitchen, grouped by order (oldest first)."""
    orders = session.query(Order).options(joinedload(Order.items), joinedload(Order.table)).filter(
        Order.status.in_(ACTIVE_ORDER_STATUSES)
    ).order_by(Order.created_at, Order.id).all()

    queue = []
    for order in orders:
        pending = [item for item in order.items if item.status in KITCHEN_STATUSES]
        if not pending:
            continue
        queue.append({
            'order_id': order.id,
            'order_type': order.order_type,
            'table': order.table.name if order.table else None,
            'created_at': order.created_at.isoformat() if order.created_at else None,
            'items': [item.to_dict() for item in pending],
        })
    return queue


def update_order(session: Session, order_id: int, table_id: Optional[int] = None,
                 number_of_guests: Optional[int] = None) -> Order:
    """Move an order to another table and/or change its guest count."""
    order = get_order(session, order_id)
    _ensure_editable(order)

    if number_of_guests is not None:
        try:
            guests = int(number_of_guests)
        except (TypeError, ValueError):
            raise BusinessLogicError(f'Número de comensales inválido: {number_of_guests}')
        if guests <= 0:
            raise BusinessLogicError('El número de comensales debe ser mayor a 0')
        order.number_of_guests = guests

    if table_id and table_id != order.table_id:
        if order.order_type != OrderType.DINE_IN.value:
            raise BusinessLogicError('Solo las órdenes en el local tienen mesa')
        new_table = table_service.get_table(session, table_id)
        table_service.seat_order(new_table, order.id)
        if order.table:
            table_service.release(order.table)
        order.table_id = new_table.id
        order.table = new_table

    session.commit()
    return order


def change_status(session: Session, order: Order, new_status: str) -> Order:
    """Apply an order status transition (caller commits)."""
    if not order.can_transition_to(new_status):
        raise InvalidTransitionError(f'La orden {order.id} no puede pasar de {order.status} a {new_status}')
    logger.info(f"[ORDERS] Order {order.id}: {order.status} -> {new_status}")
    order.status = new_status
    return order


def hold_order(session: Session, order_id: int) -> Order:
    order = get_order(session, order_id)
    change_status(session, order, OrderStatus.ON_HOLD.value)
    order.is_on_hold = True
    session.commit()
    return order


def resume_order(session: Session, order_id: int) -> Order:
    order = get_order(session, order_id)
    change_status(session, order, OrderStatus.OPEN.value)
    order.is_on_hold = False
    session.commit()
    return order


def _has_paid_splits(session: Session, order: Order) -> bool:
    """Money already collected, either on the order or in its running checkout."""
    if order.payment_splits:
        return True
    draft = session.query(CheckoutDraft).filter(CheckoutDraft.order_id == order.id).first()
    return bool(draft) and any(s.get('is_paid') for s in draft.state.get('splits', []))


def cancel_order(session: Session, order_id: int) -> Order:
    """Cancel an order; refused once any split has been paid."""
    order = get_order(session, order_id)
    if _has_paid_splits(session, order):
        raise BusinessLogicError('La orden tiene cuentas pagadas y no puede cancelarse')
    change_status(session, order, OrderStatus.CANCELLED.value)
    for item in order.items:
        if item.status in KITCHEN_STATUSES:
            item.status = OrderItemStatus.CANCELLED.value
    session.query(CheckoutDraft).filter(CheckoutDraft.order_id == order.id).delete()
    if order.table:
        table_service.release(order.table)
    session.commit()
    return order


def complete_order(session: Session, order_id: int) -> Order:
    """Close a paid order and free its table."""
    order = get_order(session, order_id)
    change_status(session, order, OrderStatus.COMPLETED.value)
    if order.table:
        table_service.release(order.table)
    session.commit()
    return order
