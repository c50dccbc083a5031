"""Cash Collection model."""
from sqlalchemy import Column, BigInteger, Boolean, Numeric, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from marketplace.database import Base, BigIntegerId


class CashCollection(Base):
    """Cash received on delivery for a COD order. At most one per order."""

    __tablename__ = 'cash_collection'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    collected_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    collected_at = Column(DateTime, nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    order = relationship('Order', back_populates='cash_collection')

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'amount': float(self.amount),
            'collected_by': self.collected_by,
            'collected_at': self.collected_at.isoformat() if self.collected_at else None,
            'verified': self.verified,
            'notes': self.notes,
        }

    def __repr__(self):
        return f"<CashCollection(order_id={self.order_id}, amount={self.amount})>"
