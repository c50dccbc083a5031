"""Saved cart models - one persisted cart per user."""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class SavedCart(Base):
    """Cart saved by a user for later."""

    __tablename__ = 'saved_cart'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, unique=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    lines = relationship('SavedCartLine', back_populates='cart', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<SavedCart(user_id={self.user_id}, lines={len(self.lines)})>"


class SavedCartLine(Base):
    """Product and quantity inside a saved cart."""

    __tablename__ = 'saved_cart_line'
    __table_args__ = (
        UniqueConstraint('cart_id', 'product_id', name='uq_saved_cart_line_product'),
    )

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    cart_id = Column(BigInteger, ForeignKey('saved_cart.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)

    cart = relationship('SavedCart', back_populates='lines')

    def __repr__(self):
        return f"<SavedCartLine(product_id={self.product_id}, quantity={self.quantity})>"
