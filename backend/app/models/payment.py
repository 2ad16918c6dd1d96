"""SQLAlchemy model definitions for invoice payments."""

from __future__ import annotations

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base


class PaymentMethod(str, enum.Enum):
    """Supported payment methods."""

    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"
    OTHER = "other"


class PaymentStatus(str, enum.Enum):
    """Whether a payment already counts toward the invoice balance."""

    PENDING = "pending"
    CONFIRMED = "confirmed"


PAYMENT_METHOD_ENUM = Enum(
    PaymentMethod,
    name="payment_method_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

PAYMENT_STATUS_ENUM = Enum(
    PaymentStatus,
    name="payment_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class InvoicePayment(Base):
    """Append-only record of funds applied to an invoice."""

    __tablename__ = "invoice_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_invoice_payments_amount_positive"),
    )

    id = Column("payment_id", Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.invoice_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(PAYMENT_METHOD_ENUM, nullable=False, default=PaymentMethod.TRANSFER)
    status = Column(PAYMENT_STATUS_ENUM, nullable=False, default=PaymentStatus.CONFIRMED)
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice", back_populates="payments")
