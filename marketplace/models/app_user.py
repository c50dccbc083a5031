"""User model."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class UserRole(str, enum.Enum):
    """Platform roles."""
    SUPER_ADMIN = 'SUPER_ADMIN'
    LOCATION_ADMIN = 'LOCATION_ADMIN'
    COMPANY_ADMIN = 'COMPANY_ADMIN'
    SHOP_OWNER = 'SHOP_OWNER'
    DRIVER = 'DRIVER'


PLATFORM_ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.LOCATION_ADMIN)


class User(Base):
    """Platform user (shop owner, vendor staff, driver or admin)."""

    __tablename__ = 'app_user'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(30), nullable=False, default=UserRole.SHOP_OWNER.value)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=True, index=True)
    zones = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    # Relationships
    company = relationship('Company', back_populates='users')
    addresses = relationship('Address', back_populates='user', cascade='all, delete-orphan')

    @property
    def is_platform_admin(self) -> bool:
        return self.role in [r.value for r in PLATFORM_ADMIN_ROLES]

    @property
    def primary_zone(self):
        """First zone of the user, used when no address is given."""
        return self.zones[0] if self.zones else None

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'company_id': self.company_id,
            'zones': list(self.zones or []),
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
