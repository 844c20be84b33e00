"""Staff member model."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from tabletop.database import Base, BigIntPK


class StaffRole(str, enum.Enum):
    ADMIN = 'admin'
    CASHIER = 'cashier'
    WAITER = 'waiter'
    KITCHEN = 'kitchen'


class StaffMember(Base):
    """Restaurant staff (waiters, cashiers, kitchen, admins)."""

    __tablename__ = 'staff_member'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    role = Column(String(20), nullable=False, default=StaffRole.WAITER.value)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'active': self.active,
        }

    def __repr__(self):
        return f"<StaffMember(id={self.id}, email='{self.email}', role={self.role})>"
