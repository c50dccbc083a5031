"""Promotion model."""
import enum
from sqlalchemy import (
    Column, BigInteger, Integer, String, Text, Boolean, Numeric, DateTime, ForeignKey, JSON, Table
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class PromotionType(str, enum.Enum):
    """Promotion kinds."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'
    BUY_X_GET_Y = 'buy_x_get_y'
    BUNDLE = 'bundle'


promotion_product = Table(
    'promotion_product',
    Base.metadata,
    Column('promotion_id', BigInteger, ForeignKey('promotion.id', ondelete='CASCADE'), primary_key=True),
    Column('product_id', BigInteger, ForeignKey('product.id', ondelete='CASCADE'), primary_key=True),
)

promotion_category = Table(
    'promotion_category',
    Base.metadata,
    Column('promotion_id', BigInteger, ForeignKey('promotion.id', ondelete='CASCADE'), primary_key=True),
    Column('category_id', BigInteger, ForeignKey('category.id', ondelete='CASCADE'), primary_key=True),
)


class Promotion(Base):
    """
    Discount rule created by admins.

    For bundle promotions the linked products are the bundle members and
    bundle_price is the combined price (value is used when it is missing).
    """

    __tablename__ = 'promotion'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    min_purchase = Column(Numeric(12, 2), nullable=True)
    max_discount = Column(Numeric(12, 2), nullable=True)
    buy_quantity = Column(Integer, nullable=True)
    get_quantity = Column(Integer, nullable=True)
    bundle_price = Column(Numeric(12, 2), nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    zones = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    products = relationship('Product', secondary=promotion_product, lazy='selectin')
    categories = relationship('Category', secondary=promotion_category, lazy='selectin')

    @property
    def promotion_type(self) -> PromotionType:
        return PromotionType(self.type)

    @property
    def product_ids(self):
        return [p.id for p in self.products]

    @property
    def category_ids(self):
        return [c.id for c in self.categories]

    def applies_to_zone(self, zone) -> bool:
        """Promotions without zones apply everywhere."""
        if not self.zones or zone is None:
            return True
        return getattr(zone, 'value', zone) in self.zones

    def summary_dict(self):
        """Compact representation attached to discounted cart lines."""
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'value': float(self.value),
            'buy_quantity': self.buy_quantity,
            'get_quantity': self.get_quantity,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'value': float(self.value),
            'min_purchase': float(self.min_purchase) if self.min_purchase is not None else None,
            'max_discount': float(self.max_discount) if self.max_discount is not None else None,
            'buy_quantity': self.buy_quantity,
            'get_quantity': self.get_quantity,
            'bundle_price': float(self.bundle_price) if self.bundle_price is not None else None,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'zones': list(self.zones or []),
            'product_ids': self.product_ids,
            'category_ids': self.category_ids,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f"<Promotion(id={self.id}, type='{self.type}', value={self.value})>"
