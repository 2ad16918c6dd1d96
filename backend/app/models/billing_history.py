"""Audit trail of billing operations."""

from __future__ import annotations

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, Text, func
from sqlalchemy.orm import relationship

from ..database import Base


class BillingOperation(str, enum.Enum):
    """Operations recorded in the billing history."""

    INVOICE_CREATED = "invoice_created"
    PAYMENT_RECEIVED = "payment_received"
    INVOICE_CANCELLED = "invoice_cancelled"
    INVOICE_OVERDUE = "invoice_overdue"
    OBJECT_SCHEDULED_DELETION = "object_scheduled_deletion"
    CONTRACT_SCHEDULED_DELETION = "contract_scheduled_deletion"
    REMINDER_SENT = "reminder_sent"


class BillingHistory(Base):
    """Immutable record of something that happened to a company's billing."""

    __tablename__ = "billing_history"

    id = Column("history_id", Integer, primary_key=True, autoincrement=True)
    company_id = Column(
        Integer,
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contract_id = Column(
        Integer,
        ForeignKey("contracts.contract_id", ondelete="SET NULL"),
        nullable=True,
    )
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.invoice_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    operation = Column(
        Enum(
            BillingOperation,
            name="billing_operation_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice")
