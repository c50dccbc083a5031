"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class Product(Base):
    """Product sold by a company."""

    __tablename__ = 'product'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    category_id = Column(BigInteger, ForeignKey('category.id'), nullable=True)
    sku = Column(String(100), nullable=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    min_order_qty = Column(Integer, nullable=False, default=1, server_default='1')
    is_active = Column(Boolean, nullable=False, default=True)
    zones = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship('Company', back_populates='products')
    category = relationship('Category', foreign_keys=[category_id])

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'price': float(self.price),
            'stock': self.stock,
            'min_order_qty': self.min_order_qty,
            'is_active': self.is_active,
            'category_id': self.category_id,
            'company_id': self.company_id,
        }

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"
