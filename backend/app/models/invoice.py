"""Models for invoices and their line items."""

from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import relationship

from ..database import Base


class InvoiceStatus(str, enum.Enum):
    """Lifecycle status of an invoice."""

    DRAFT = "draft"
    ISSUED = "issued"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceItemType(str, enum.Enum):
    """Kind of charge represented by an invoice line."""

    SUBSCRIPTION = "subscription"
    OBJECT = "object"
    SETUP = "setup"
    DISCOUNT = "discount"


INVOICE_STATUS_ENUM = Enum(
    InvoiceStatus,
    name="invoice_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

OPEN_INVOICE_STATUSES = (InvoiceStatus.ISSUED, InvoiceStatus.PARTIALLY_PAID)


class Invoice(Base):
    """Priced invoice for one contract and billing period."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("company_id", "number", name="invoices_company_number_key"),
        CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_amount_non_negative"),
        CheckConstraint(
            "paid_amount <= total_amount", name="ck_invoices_paid_amount_within_total"
        ),
        CheckConstraint("period_end >= period_start", name="ck_invoices_valid_period"),
        Index(
            "invoices_contract_period_active_key",
            "contract_id",
            "period_start",
            "period_end",
            unique=True,
            sqlite_where=text("status <> 'cancelled'"),
            postgresql_where=text("status <> 'cancelled'"),
        ),
    )

    id = Column("invoice_id", Integer, primary_key=True, autoincrement=True)
    company_id = Column(
        Integer,
        ForeignKey("companies.company_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    contract_id = Column(
        Integer,
        ForeignKey("contracts.contract_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tariff_plan_id = Column(
        Integer,
        ForeignKey("tariff_plans.tariff_plan_id", ondelete="SET NULL"),
        nullable=True,
    )
    number = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(INVOICE_STATUS_ENUM, nullable=False, default=InvoiceStatus.DRAFT)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    company = relationship("Company", back_populates="invoices")
    contract = relationship("Contract", back_populates="invoices")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )
    payments = relationship(
        "InvoicePayment",
        back_populates="invoice",
        order_by="InvoicePayment.id",
    )

    @property
    def outstanding_amount(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.paid_amount)


class InvoiceItem(Base):
    """Single priced line on an invoice."""

    __tablename__ = "invoice_items"
    __table_args__ = (
        UniqueConstraint("invoice_id", "position", name="invoice_items_invoice_position_key"),
        CheckConstraint("quantity >= 0", name="ck_invoice_items_quantity_non_negative"),
    )

    id = Column("item_id", Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.invoice_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    item_type = Column(
        Enum(
            InvoiceItemType,
            name="invoice_item_type_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    object_id = Column(
        Integer,
        ForeignKey("monitored_objects.object_id", ondelete="SET NULL"),
        nullable=True,
    )
    quantity = Column(Numeric(12, 4), nullable=False, default=Decimal("1"))
    unit_price = Column(Numeric(12, 2), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)

    invoice = relationship("Invoice", back_populates="items")
