"""Stock History model."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class StockChangeType(enum.Enum):
    """Stock change type enum."""
    SALE = "SALE"
    CANCELLATION = "CANCELLATION"


class StockHistory(Base):
    """Audit row for every stock change made by checkout or cancellation."""

    __tablename__ = 'stock_history'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    change_quantity = Column(Integer, nullable=False)
    change_type = Column(Enum(StockChangeType, name='stock_change_type'), nullable=False)
    reference_id = Column(BigInteger, nullable=True)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    product = relationship('Product')

    def __repr__(self):
        return f"<StockHistory(product_id={self.product_id}, change={self.change_quantity})>"
