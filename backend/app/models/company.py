"""SQLAlchemy model for billed tenants."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from ..database import Base


class Company(Base):
    """Tenant that owns billing settings, contracts and invoices."""

    __tablename__ = "companies"

    id = Column("company_id", Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    contact_email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    settings = relationship(
        "BillingSettings",
        back_populates="company",
        uselist=False,
        cascade="all, delete-orphan",
    )
    contracts = relationship("Contract", back_populates="company")
    invoices = relationship("Invoice", back_populates="company")
    subscriptions = relationship("Subscription", back_populates="company")
