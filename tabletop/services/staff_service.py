"""Staff service."""
from typing import List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tabletop.exceptions import BusinessLogicError, NotFoundError
from tabletop.models import StaffMember, StaffRole, Order


def list_staff(session: Session, role: str = None) -> List[StaffMember]:
    query = session.query(StaffMember)
    if role:
        query = query.filter(StaffMember.role == role)
    return query.order_by(StaffMember.name).all()


def get_staff(session: Session, staff_id: int) -> StaffMember:
    member = session.query(StaffMember).filter(StaffMember.id == staff_id).first()
    if not member:
        raise NotFoundError(f'Empleado {staff_id} no encontrado')
    return member


def _email_taken(session: Session, email: str, exclude_id: int = None) -> bool:
    query = session.query(StaffMember.id).filter(func.lower(StaffMember.email) == email.lower())
    if exclude_id:
        query = query.filter(StaffMember.id != exclude_id)
    return query.first() is not None


def create_staff(session: Session, name: str, email: str, role: str = StaffRole.WAITER.value) -> StaffMember:
    email = email.strip().lower()
    if _email_taken(session, email):
        raise BusinessLogicError(f'El email {email} ya está registrado')
    try:
        member = StaffMember(name=name.strip(), email=email, role=role, active=True)
        session.add(member)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'El email {email} ya está registrado')
    return member


def update_staff(session: Session, staff_id: int, name: str, email: str, role: str, active: bool = None) -> StaffMember:
    member = get_staff(session, staff_id)
    email = email.strip().lower()
    if _email_taken(session, email, exclude_id=staff_id):
        raise BusinessLogicError(f'El email {email} ya está registrado')
    member.name = name.strip()
    member.email = email
    member.role = role
    if active is not None:
        member.active = active
    session.commit()
    return member


def delete_staff(session: Session, staff_id: int) -> None:
    """Staff with orders are deactivated instead of deleted."""
    member = get_staff(session, staff_id)
    has_orders = session.query(Order.id).filter(Order.waiter_id == staff_id).first()
    if has_orders:
        member.active = False
    else:
        session.delete(member)
    session.commit()
