"""Notification model."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class NotificationType(enum.Enum):
    """Notification kinds."""
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS = "ORDER_STATUS"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"


class Notification(Base):
    """In-app notification; also mailed when SMTP is configured."""

    __tablename__ = 'notification'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=True)
    type = Column(String(30), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Notification(user_id={self.user_id}, type='{self.type}')>"
