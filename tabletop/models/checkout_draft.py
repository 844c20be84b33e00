"""Checkout Draft model for the in-progress checkout wizard."""
from sqlalchemy import Column, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tabletop.database import Base, BigIntPK


class CheckoutDraft(Base):
    """
    Checkout Draft - persistent state of an order's checkout wizard.

    Lets the wizard survive page refreshes. One draft per order
    (enforced by UNIQUE constraint); deleted once the checkout is finalized.
    """

    __tablename__ = 'checkout_draft'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigIntPK, ForeignKey('restaurant_order.id', ondelete='CASCADE'), nullable=False, unique=True)
    state = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    order = relationship('Order')

    def __repr__(self):
        return f"<CheckoutDraft(id={self.id}, order_id={self.order_id})>"
