"""Order Status History model."""
from sqlalchemy import Column, BigInteger, String, Text, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class OrderStatusHistory(Base):
    """One row per status change of an order."""

    __tablename__ = 'order_status_history'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=False, index=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    note = Column(Text, nullable=True)
    changed_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    order = relationship('Order', back_populates='status_history')

    def to_dict(self):
        return {
            'id': self.id,
            'from_status': self.from_status,
            'to_status': self.to_status,
            'note': self.note,
            'changed_by': self.changed_by,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<OrderStatusHistory(order_id={self.order_id}, {self.from_status}->{self.to_status})>"
