"""Menu item model."""
import enum
from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tabletop.database import Base, BigIntPK


class MenuItemAvailability(str, enum.Enum):
    AVAILABLE = 'available'
    UNAVAILABLE = 'unavailable'


ALLERGY_TAG_OPTIONS = (
    'gluten-free',
    'vegan',
    'vegetarian',
    'nut-free',
    'dairy-free',
    'shellfish-free',
)


class MenuItem(Base):
    """Menu item offered by the restaurant."""

    __tablename__ = 'menu_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    number = Column(String(20), nullable=True)  # Short code shown on the menu (A01, M05)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default='')
    price = Column(Numeric(10, 2), nullable=False)
    category_id = Column(BigIntPK, ForeignKey('menu_category.id'), nullable=False)
    availability = Column(String(20), nullable=False, default=MenuItemAvailability.AVAILABLE.value)
    image_url = Column(String(255), nullable=True)
    allergies_notes = Column(Text, nullable=True)
    allergy_tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    category = relationship('MenuCategory')

    @property
    def is_available(self):
        return self.availability == MenuItemAvailability.AVAILABLE.value

    def to_dict(self):
        return {
            'id': self.id,
            'number': self.number,
            'name': self.name,
            'description': self.description,
            'price': str(self.price),
            'category': self.category.to_dict() if self.category else None,
            'availability': self.availability,
            'image_url': self.image_url,
            'allergies_notes': self.allergies_notes,
            'allergy_tags': list(self.allergy_tags or []),
        }

    def __repr__(self):
        return f"<MenuItem(id={self.id}, name='{self.name}', price={self.price})>"
