"""Order Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from marketplace.database import Base, BigIntegerId


class OrderItem(Base):
    """Order line with the price and discount snapshot taken at checkout."""

    __tablename__ = 'order_item'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    free_items = Column(Integer, nullable=False, default=0)
    promotion_id = Column(BigInteger, ForeignKey('promotion.id', ondelete='SET NULL'), nullable=True)

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'unit_price': float(self.unit_price),
            'discount': float(self.discount),
            'total': float(self.total),
            'free_items': self.free_items,
            'promotion_id': self.promotion_id,
        }

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
