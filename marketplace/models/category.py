"""Category model."""
from sqlalchemy import Column, String
from marketplace.database import Base, BigIntegerId


class Category(Base):
    """Product category. Promotions may target a whole category."""

    __tablename__ = 'category'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"
