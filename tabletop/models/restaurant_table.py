"""Restaurant table model."""
import enum
from sqlalchemy import Column, String, Integer
from tabletop.database import Base, BigIntPK


class TableStatus(str, enum.Enum):
    AVAILABLE = 'available'
    OCCUPIED = 'occupied'
    RESERVED = 'reserved'


class RestaurantTable(Base):
    """Dining table on the floor plan."""

    __tablename__ = 'restaurant_table'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    capacity = Column(Integer, nullable=False, default=4)
    status = Column(String(20), nullable=False, default=TableStatus.AVAILABLE.value)
    current_order_id = Column(BigIntPK, nullable=True)  # Open order seated at the table

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'capacity': self.capacity,
            'status': self.status,
            'current_order_id': self.current_order_id,
        }

    def __repr__(self):
        return f"<RestaurantTable(id={self.id}, name='{self.name}', status={self.status})>"
