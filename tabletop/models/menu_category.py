"""Menu category model."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from tabletop.database import Base, BigIntPK


class MenuCategory(Base):
    """Menu category (Appetizers, Main Courses, ...)."""

    __tablename__ = 'menu_category'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_dict(self):
        return {'id': self.id, 'name': self.name}

    def __repr__(self):
        return f"<MenuCategory(id={self.id}, name='{self.name}')>"
