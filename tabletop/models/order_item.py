"""Order item model."""
import enum
from sqlalchemy import Column, String, Text, Integer, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from tabletop.database import Base, BigIntPK


class OrderItemStatus(str, enum.Enum):
    """Kitchen lifecycle of an item."""
    PENDING = 'pending'
    PREPARING = 'preparing'
    READY = 'ready'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class OrderItem(Base):
    """
    Order Item - a menu item line on an order.

    Name and price are snapshots taken when the item was ordered.
    """

    __tablename__ = 'order_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigIntPK, ForeignKey('restaurant_order.id', ondelete='CASCADE'), nullable=False, index=True)
    menu_item_id = Column(BigIntPK, ForeignKey('menu_item.id'), nullable=False)

    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    is_courtesy = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=OrderItemStatus.PENDING.value)
    observations = Column(Text, nullable=True)
    assigned_guest = Column(String(50), nullable=True)

    # Relationships
    order = relationship('Order', back_populates='items')
    menu_item = relationship('MenuItem')

    @property
    def category_id(self):
        """Category resolved through the menu item reference."""
        return self.menu_item.category_id if self.menu_item else None

    @property
    def line_total(self):
        return self.price * self.quantity

    def to_dict(self):
        return {
            'id': self.id,
            'menu_item_id': self.menu_item_id,
            'name': self.name,
            'price': str(self.price),
            'quantity': self.quantity,
            'is_courtesy': self.is_courtesy,
            'status': self.status,
            'observations': self.observations,
            'assigned_guest': self.assigned_guest,
        }

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, name='{self.name}', qty={self.quantity})>"
