"""Payment split model."""
from sqlalchemy import Column, String, Integer, Numeric, ForeignKey, JSON
from sqlalchemy.orm import relationship
from tabletop.database import Base, BigIntPK


class PaymentSplit(Base):
    """
    Payment Split - a finalized partial payment of an order.

    Covers either an equal share (share_number) or specific items
    (covered_item_ids). Only paid splits are persisted.
    """

    __tablename__ = 'payment_split'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigIntPK, ForeignKey('restaurant_order.id', ondelete='CASCADE'), nullable=False, index=True)

    split_type = Column(String(20), nullable=False)  # equal, by_item, by_customer_bill
    share_number = Column(Integer, nullable=True)
    covered_item_ids = Column(JSON, nullable=True)
    allocation = Column(JSON, nullable=True)  # SplitAllocation of itemized splits
    amount_due = Column(Numeric(18, 6), nullable=False)
    amount_paid = Column(Numeric(18, 6), nullable=False)
    payment_method = Column(String(20), nullable=False)

    # DTE (per split invoicing)
    dte_type = Column(String(20), nullable=True)
    dte_nit = Column(String(20), nullable=True)
    dte_nrc = Column(String(20), nullable=True)
    dte_customer_name = Column(String, nullable=True)

    # Relationships
    order = relationship('Order', back_populates='payment_splits')

    def to_dict(self):
        return {
            'id': self.id,
            'split_type': self.split_type,
            'share_number': self.share_number,
            'covered_item_ids': self.covered_item_ids,
            'amount_due': str(self.amount_due),
            'amount_paid': str(self.amount_paid),
            'payment_method': self.payment_method,
            'allocation': self.allocation,
            'dte_type': self.dte_type,
        }

    def __repr__(self):
        return f"<PaymentSplit(id={self.id}, order_id={self.order_id}, method={self.payment_method}, amount={self.amount_paid})>"
