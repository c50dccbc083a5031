"""Order model."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class OrderStatus(str, enum.Enum):
    """Order status enum."""
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    PREPARING = 'PREPARING'
    ON_THE_WAY = 'ON_THE_WAY'
    DELIVERED = 'DELIVERED'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'
    REFUNDED = 'REFUNDED'


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""
    CASH_ON_DELIVERY = 'CASH_ON_DELIVERY'
    CARD = 'CARD'
    BANK_TRANSFER = 'BANK_TRANSFER'


class PaymentStatus(str, enum.Enum):
    """Payment status enum."""
    PENDING = 'PENDING'
    PAID = 'PAID'
    REFUNDED = 'REFUNDED'


def normalize_payment_method(value, default='CASH_ON_DELIVERY') -> str:
    """
    Normalize payment method value to string for DB storage.

    Args:
        value: Can be None, PaymentMethod enum, or string
        default: Value used when none is given

    Returns:
        str: one of the PaymentMethod values

    Raises:
        ValueError: If value is invalid
    """
    if value is None or value == '':
        value = default

    if isinstance(value, PaymentMethod):
        return value.value

    normalized = str(value).upper().strip()
    valid = [m.value for m in PaymentMethod]
    if normalized in valid:
        return normalized
    raise ValueError(f"Invalid payment method: {value}. Must be one of {', '.join(valid)}.")


class Order(Base):
    """Order placed with a single company. One per vendor group at checkout."""

    __tablename__ = 'orders'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    order_number = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    address_id = Column(BigInteger, ForeignKey('address.id'), nullable=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    zone = Column(String(50), nullable=True)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING, index=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(30), nullable=False, default=PaymentMethod.CASH_ON_DELIVERY.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    notes = Column(Text, nullable=True)

    assigned_driver_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    estimated_delivery_at = Column(DateTime, nullable=True)

    # Status timestamps
    accepted_at = Column(DateTime, nullable=True)
    preparing_at = Column(DateTime, nullable=True)
    dispatched_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship('User', foreign_keys=[user_id])
    driver = relationship('User', foreign_keys=[assigned_driver_id])
    address = relationship('Address')
    company = relationship('Company')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    status_history = relationship(
        'OrderStatusHistory',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderStatusHistory.id'
    )
    cash_collection = relationship('CashCollection', back_populates='order', uselist=False)

    def to_dict(self, include_items=True, include_history=False):
        """Convert to dictionary for JSON serialization."""
        data = {
            'id': self.id,
            'order_number': self.order_number,
            'user_id': self.user_id,
            'address_id': self.address_id,
            'company_id': self.company_id,
            'zone': self.zone,
            'status': self.status.value,
            'subtotal': float(self.subtotal),
            'discount': float(self.discount),
            'delivery_fee': float(self.delivery_fee),
            'total': float(self.total),
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'notes': self.notes,
            'assigned_driver_id': self.assigned_driver_id,
            'estimated_delivery_at': _iso(self.estimated_delivery_at),
            'accepted_at': _iso(self.accepted_at),
            'preparing_at': _iso(self.preparing_at),
            'dispatched_at': _iso(self.dispatched_at),
            'delivered_at': _iso(self.delivered_at),
            'completed_at': _iso(self.completed_at),
            'cancelled_at': _iso(self.cancelled_at),
            'paid_at': _iso(self.paid_at),
            'created_at': _iso(self.created_at),
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        if include_history:
            data['status_history'] = [entry.to_dict() for entry in self.status_history]
        return data

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status={self.status.value})>"


def _iso(value):
    return value.isoformat() if value else None
