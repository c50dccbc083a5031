"""Delivery address model."""
from sqlalchemy import Column, BigInteger, String, ForeignKey
from sqlalchemy.orm import relationship
from marketplace.database import Base, BigIntegerId


class Address(Base):
    """Delivery address of a user. Its zone drives delivery fees at checkout."""

    __tablename__ = 'address'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    label = Column(String(100), nullable=True)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    zone = Column(String(50), nullable=False)

    user = relationship('User', back_populates='addresses')

    def to_dict(self):
        return {
            'id': self.id,
            'label': self.label,
            'street': self.street,
            'city': self.city,
            'zone': self.zone,
        }

    def __repr__(self):
        return f"<Address(id={self.id}, user_id={self.user_id}, zone='{self.zone}')>"
