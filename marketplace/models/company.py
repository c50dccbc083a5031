"""Company (vendor) models."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class Company(Base):
    """Vendor that owns products and receives one order per checkout."""

    __tablename__ = 'company'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    zones = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    # Relationships
    products = relationship('Product', back_populates='company')
    delivery_fees = relationship('CompanyDeliveryFee', back_populates='company', cascade='all, delete-orphan')
    users = relationship('User', back_populates='company')

    def serves_zone(self, zone) -> bool:
        """Check if the company delivers to the given zone."""
        if zone is None:
            return False
        zone_value = getattr(zone, 'value', zone)
        return zone_value in (self.zones or [])

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"


class CompanyDeliveryFee(Base):
    """Zone-keyed delivery fee table for a company."""

    __tablename__ = 'company_delivery_fee'
    __table_args__ = (
        UniqueConstraint('company_id', 'zone', name='uq_company_delivery_fee_zone'),
    )

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    zone = Column(String(50), nullable=False)
    fee = Column(Numeric(12, 2), nullable=False)

    company = relationship('Company', back_populates='delivery_fees')

    def __repr__(self):
        return f"<CompanyDeliveryFee(company_id={self.company_id}, zone='{self.zone}', fee={self.fee})>"
