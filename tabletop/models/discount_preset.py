"""Discount preset model."""
from decimal import Decimal
from sqlalchemy import Column, String, Text, Numeric, DateTime, JSON
from sqlalchemy.sql import func
from tabletop.database import Base, BigIntPK


class DiscountPreset(Base):
    """
    Named, reusable percentage discount.

    Optionally restricted to menu items OR categories, and optionally
    redeemable by coupon code (matched case-insensitively).
    """

    __tablename__ = 'discount_preset'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    description = Column(Text, nullable=True)
    coupon_code = Column(String(50), nullable=True, unique=True)  # Stored upper-case
    applicable_item_ids = Column(JSON, nullable=False, default=list)
    applicable_category_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_rule(self):
        """Frozen snapshot used by the totals engine during a checkout."""
        from tabletop.services.totals_service import DiscountRule
        return DiscountRule(
            id=self.id,
            name=self.name,
            percentage=Decimal(str(self.percentage)),
            coupon_code=self.coupon_code,
            description=self.description,
            applicable_item_ids=tuple(self.applicable_item_ids or ()),
            applicable_category_ids=tuple(self.applicable_category_ids or ()),
        )

    def to_dict(self):
        return self.to_rule().to_dict()

    def __repr__(self):
        return f"<DiscountPreset(id={self.id}, name='{self.name}', percentage={self.percentage})>"
