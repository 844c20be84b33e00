"""Order model."""
import enum
from decimal import Decimal
from sqlalchemy import Column, String, Integer, Boolean, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tabletop.database import Base, BigIntPK


class OrderType(str, enum.Enum):
    DINE_IN = 'Dine-in'
    TAKEOUT = 'Takeout'
    DELIVERY = 'Delivery'


class OrderStatus(str, enum.Enum):
    """Order status: open -> pending_payment -> paid -> completed."""
    OPEN = 'open'
    PENDING_PAYMENT = 'pending_payment'
    PAID = 'paid'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    ON_HOLD = 'on_hold'


# Allowed status transitions (side states: cancelled, on_hold)
ORDER_TRANSITIONS = {
    OrderStatus.OPEN.value: {OrderStatus.PENDING_PAYMENT.value, OrderStatus.CANCELLED.value, OrderStatus.ON_HOLD.value},
    OrderStatus.PENDING_PAYMENT.value: {OrderStatus.OPEN.value, OrderStatus.PAID.value, OrderStatus.CANCELLED.value, OrderStatus.ON_HOLD.value},
    OrderStatus.ON_HOLD.value: {OrderStatus.OPEN.value, OrderStatus.PENDING_PAYMENT.value, OrderStatus.PAID.value, OrderStatus.CANCELLED.value},
    OrderStatus.PAID.value: {OrderStatus.COMPLETED.value},
    OrderStatus.COMPLETED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}

TERMINAL_STATUSES = {OrderStatus.PAID.value, OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value}


class DteType(str, enum.Enum):
    """Electronic tax document type (El Salvador)."""
    CONSUMIDOR_FINAL = 'consumidor_final'
    CREDITO_FISCAL = 'credito_fiscal'


class PaymentMethod(str, enum.Enum):
    CASH = 'cash'
    CREDIT_CARD = 'credit_card'
    DIGITAL_WALLET = 'digital_wallet'


class Order(Base):
    """Restaurant order (created when sent to the kitchen)."""

    __tablename__ = 'restaurant_order'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_type = Column(String(20), nullable=False, default=OrderType.DINE_IN.value)
    table_id = Column(BigIntPK, ForeignKey('restaurant_table.id'), nullable=True)
    number_of_guests = Column(Integer, nullable=True)
    waiter_id = Column(BigIntPK, ForeignKey('staff_member.id'), nullable=False)
    status = Column(String(20), nullable=False, default=OrderStatus.OPEN.value)

    # Order-level flags
    is_courtesy = Column(Boolean, nullable=False, default=False)
    is_on_hold = Column(Boolean, nullable=False, default=False)
    disable_receipt_print = Column(Boolean, nullable=False, default=False)

    # Applied (not staged) discount and tip
    applied_preset = Column(JSON, nullable=True)  # DiscountRule snapshot
    manual_discount_amount = Column(Numeric(18, 6), nullable=False, default=0)

    # Totals as of the last checkout
    subtotal = Column(Numeric(18, 6), nullable=False, default=0)
    discount_amount = Column(Numeric(18, 6), nullable=False, default=0)
    applied_preset_discount_value = Column(Numeric(18, 6), nullable=False, default=0)
    applied_manual_discount_value = Column(Numeric(18, 6), nullable=False, default=0)
    tax_amount = Column(Numeric(18, 6), nullable=False, default=0)
    tip_amount = Column(Numeric(18, 6), nullable=False, default=0)
    total_amount = Column(Numeric(18, 6), nullable=False, default=0)

    # Payment (overall, when not split)
    payment_split_type = Column(String(20), nullable=False, default='none')
    payment_method = Column(String(20), nullable=True)
    dte_type = Column(String(20), nullable=True)
    dte_nit = Column(String(20), nullable=True)
    dte_nrc = Column(String(20), nullable=True)
    dte_customer_name = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    table = relationship('RestaurantTable', foreign_keys=[table_id])
    waiter = relationship('StaffMember')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan', order_by='OrderItem.id')
    payment_splits = relationship('PaymentSplit', back_populates='order', cascade='all, delete-orphan', order_by='PaymentSplit.id')

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def amount_paid(self):
        return sum((Decimal(str(s.amount_paid)) for s in self.payment_splits), Decimal('0'))

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in ORDER_TRANSITIONS.get(self.status, set())

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'order_type': self.order_type,
            'table_id': self.table_id,
            'number_of_guests': self.number_of_guests,
            'waiter_id': self.waiter_id,
            'status': self.status,
            'is_courtesy': self.is_courtesy,
            'is_on_hold': self.is_on_hold,
            'disable_receipt_print': self.disable_receipt_print,
            'applied_preset': self.applied_preset,
            'manual_discount_amount': str(self.manual_discount_amount or 0),
            'subtotal': str(self.subtotal or 0),
            'discount_amount': str(self.discount_amount or 0),
            'applied_preset_discount_value': str(self.applied_preset_discount_value or 0),
            'applied_manual_discount_value': str(self.applied_manual_discount_value or 0),
            'tax_amount': str(self.tax_amount or 0),
            'tip_amount': str(self.tip_amount or 0),
            'total_amount': str(self.total_amount or 0),
            'payment_split_type': self.payment_split_type,
            'payment_method': self.payment_method,
            'dte_type': self.dte_type,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
            data['payment_splits'] = [split.to_dict() for split in self.payment_splits]
        return data

    def __repr__(self):
        return f"<Order(id={self.id}, type={self.order_type}, status={self.status})>"
