"""Per-company billing configuration."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from .payment import PAYMENT_METHOD_ENUM, PaymentMethod


class BillingSettings(Base):
    """Billing behaviour configured for a single company."""

    __tablename__ = "billing_settings"
    __table_args__ = (
        CheckConstraint(
            "invoice_generation_day >= 1 AND invoice_generation_day <= 28",
            name="ck_billing_settings_generation_day_range",
        ),
        CheckConstraint(
            "invoice_payment_term_days >= 1",
            name="ck_billing_settings_payment_term_positive",
        ),
        CheckConstraint(
            "default_tax_rate >= 0 AND default_tax_rate <= 100",
            name="ck_billing_settings_tax_rate_range",
        ),
        CheckConstraint(
            "inactive_discount_ratio >= 0 AND inactive_discount_ratio <= 1",
            name="ck_billing_settings_inactive_ratio_range",
        ),
        CheckConstraint(
            "last_invoice_sequence >= 0",
            name="ck_billing_settings_sequence_non_negative",
        ),
    )

    id = Column("settings_id", Integer, primary_key=True, autoincrement=True)
    company_id = Column(
        Integer,
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    auto_generate_invoices = Column(Boolean, nullable=False, default=True)
    invoice_generation_day = Column(Integer, nullable=False, default=1)
    invoice_payment_term_days = Column(Integer, nullable=False, default=14)
    default_tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("20.00"))
    tax_included = Column(Boolean, nullable=False, default=False)
    notify_before_invoice = Column(Integer, nullable=False, default=3)
    notify_before_due = Column(Integer, nullable=False, default=3)
    notify_overdue = Column(Integer, nullable=False, default=1)
    invoice_number_prefix = Column(String(20), nullable=False, default="INV")
    invoice_number_format = Column(String(50), nullable=False, default="%s-%04d")
    currency = Column(String(3), nullable=False, default="RUB")
    default_payment_method = Column(
        PAYMENT_METHOD_ENUM, nullable=False, default=PaymentMethod.TRANSFER
    )
    allow_partial_payments = Column(Boolean, nullable=False, default=True)
    require_payment_confirmation = Column(Boolean, nullable=False, default=False)
    enable_inactive_discounts = Column(Boolean, nullable=False, default=True)
    inactive_discount_ratio = Column(Numeric(4, 2), nullable=False, default=Decimal("0.50"))
    last_invoice_sequence = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    company = relationship("Company", back_populates="settings")
