"""Create the billing engine schema.

Revision ID: 20260101_0001
Revises:
Create Date: 2026-01-01 00:00:00.000000
"""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op


revision = "20260101_0001"
down_revision = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, validate_strings=True)


PAYMENT_METHOD_ENUM = _enum("payment_method_enum", "cash", "transfer", "card", "other")
PAYMENT_STATUS_ENUM = _enum("payment_status_enum", "pending", "confirmed")
BILLING_PERIOD_TYPE_ENUM = _enum("billing_period_type_enum", "monthly", "yearly", "one_time")
SUBSCRIPTION_STATUS_ENUM = _enum(
    "subscription_status_enum", "active", "suspended", "cancelled", "expired"
)
CONTRACT_STATUS_ENUM = _enum("contract_status_enum", "draft", "active", "suspended", "terminated")
OBJECT_STATUS_ENUM = _enum("object_status_enum", "active", "inactive", "deleted")
INVOICE_STATUS_ENUM = _enum(
    "invoice_status_enum",
    "draft",
    "issued",
    "partially_paid",
    "paid",
    "overdue",
    "cancelled",
)
INVOICE_ITEM_TYPE_ENUM = _enum(
    "invoice_item_type_enum", "subscription", "object", "setup", "discount"
)
BILLING_OPERATION_ENUM = _enum(
    "billing_operation_enum",
    "invoice_created",
    "payment_received",
    "invoice_cancelled",
    "invoice_overdue",
    "object_scheduled_deletion",
    "contract_scheduled_deletion",
    "reminder_sent",
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("company_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        _created_at(),
    )

    op.create_table(
        "billing_settings",
        sa.Column("settings_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "company_id",
            sa.Integer(),
            sa.ForeignKey("companies.company_id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("auto_generate_invoices", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("invoice_generation_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("invoice_payment_term_days", sa.Integer(), nullable=False, server_default="14"),
        sa.Column("default_tax_rate", sa.Numeric(5, 2), nullable=False, server_default="20.00"),
        sa.Column("tax_included", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("notify_before_invoice", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("notify_before_due", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("notify_overdue", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("invoice_number_prefix", sa.String(20), nullable=False, server_default="INV"),
        sa.Column(
            "invoice_number_format", sa.String(50), nullable=False, server_default="%s-%04d"
        ),
        sa.Column("currency", sa.String(3), nullable=False, server_default="RUB"),
        sa.Column(
            "default_payment_method",
            PAYMENT_METHOD_ENUM,
            nullable=False,
            server_default="transfer",
        ),
        sa.Column("allow_partial_payments", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column(
            "require_payment_confirmation", sa.Boolean(), nullable=False, server_default="0"
        ),
        sa.Column("enable_inactive_discounts", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column(
            "inactive_discount_ratio", sa.Numeric(4, 2), nullable=False, server_default="0.50"
        ),
        sa.Column("last_invoice_sequence", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "invoice_generation_day >= 1 AND invoice_generation_day <= 28",
            name="ck_billing_settings_generation_day_range",
        ),
        sa.CheckConstraint(
            "invoice_payment_term_days >= 1",
            name="ck_billing_settings_payment_term_positive",
        ),
        sa.CheckConstraint(
            "default_tax_rate >= 0 AND default_tax_rate <= 100",
            name="ck_billing_settings_tax_rate_range",
        ),
        sa.CheckConstraint(
            "inactive_discount_ratio >= 0 AND inactive_discount_ratio <= 1",
            name="ck_billing_settings_inactive_ratio_range",
        ),
        sa.CheckConstraint(
            "last_invoice_sequence >= 0",
            name="ck_billing_settings_sequence_non_negative",
        ),
    )

    op.create_table(
        "billing_plans",
        sa.Column("plan_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="RUB"),
        sa.Column(
            "billing_period", BILLING_PERIOD_TYPE_ENUM, nullable=False, server_default="monthly"
        ),
        sa.Column("max_objects", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column(
            "company_id",
            sa.Integer(),
            sa.ForeignKey("companies.company_id", ondelete="CASCADE"),
            nullable=True,
        ),
        _created_at(),
        sa.CheckConstraint("price >= 0", name="ck_billing_plans_price_non_negative"),
        sa.CheckConstraint(
            "max_objects IS NULL OR max_objects >= 0",
            name="ck_billing_plans_max_objects_non_negative",
        ),
    )
    op.create_index("ix_billing_plans_company_id", "billing_plans", ["company_id"])

    op.create_table(
        "subscriptions",
        sa.Column("subscription_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "company_id",
            sa.Integer(),
            sa.ForeignKey("companies.company_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "plan_id",
            sa.Integer(),
            sa.ForeignKey("billing_plans.plan_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", SUBSCRIPTION_STATUS_ENUM, nullable=False, server_default="active"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("next_payment_date", sa.Date(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_subscriptions_valid_range",
        ),
    )
    op.create_index("ix_subscriptions_company_id", "subscriptions", ["company_id"])

    op.create_table(
        "tariff_plans",
        sa.Column("tariff_plan_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("setup_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("price_per_object", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("free_objects_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        _created_at(),
        sa.CheckConstraint("base_price >= 0", name="ck_tariff_plans_base_price_non_negative"),
        sa.CheckConstraint("setup_fee >= 0", name="ck_tariff_plans_setup_fee_non_negative"),
        sa.CheckConstraint(
            "price_per_object >= 0", name="ck_tariff_plans_price_per_object_non_negative"
        ),
        sa.CheckConstraint(
            "free_objects_count >= 0", name="ck_tariff_plans_free_objects_non_negative"
        ),
        sa.CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_tariff_plans_discount_range",
        ),
    )

    op.create_table(
        "contracts",
        sa.Column("contract_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "company_id",
            sa.Integer(),
            sa.ForeignKey("companies.company_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "tariff_plan_id",
            sa.Integer(),
            sa.ForeignKey("tariff_plans.tariff_plan_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("number", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("status", CONTRACT_STATUS_ENUM, nullable=False, server_default="active"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("scheduled_delete_at", sa.Date(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_contracts_valid_range",
        ),
    )
    op.create_index("ix_contracts_company_id", "contracts", ["company_id"])

    op.create_table(
        "monitored_objects",
        sa.Column("object_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.contract_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", OBJECT_STATUS_ENUM, nullable=False, server_default="active"),
        sa.Column("attached_on", sa.Date(), nullable=False),
        sa.Column("scheduled_delete_at", sa.Date(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_monitored_objects_contract_id", "monitored_objects", ["contract_id"])

    op.create_table(
        "object_activity_intervals",
        sa.Column("interval_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "object_id",
            sa.Integer(),
            sa.ForeignKey("monitored_objects.object_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("active_from", sa.DateTime(), nullable=False),
        sa.Column("active_until", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "active_until IS NULL OR active_until >= active_from",
            name="ck_object_activity_intervals_valid_range",
        ),
    )
    op.create_index(
        "ix_object_activity_intervals_object_id", "object_activity_intervals", ["object_id"]
    )

    op.create_table(
        "invoices",
        sa.Column("invoice_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "company_id",
            sa.Integer(),
            sa.ForeignKey("companies.company_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.contract_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "tariff_plan_id",
            sa.Integer(),
            sa.ForeignKey("tariff_plans.tariff_plan_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("number", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", INVOICE_STATUS_ENUM, nullable=False, server_default="draft"),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("company_id", "number", name="invoices_company_number_key"),
        sa.CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_amount_non_negative"),
        sa.CheckConstraint(
            "paid_amount <= total_amount", name="ck_invoices_paid_amount_within_total"
        ),
        sa.CheckConstraint("period_end >= period_start", name="ck_invoices_valid_period"),
    )
    op.create_index("ix_invoices_company_id", "invoices", ["company_id"])
    op.create_index("ix_invoices_contract_id", "invoices", ["contract_id"])
    op.create_index("ix_invoices_due_date", "invoices", ["due_date"])
    op.create_index(
        "invoices_contract_period_active_key",
        "invoices",
        ["contract_id", "period_start", "period_end"],
        unique=True,
        sqlite_where=sa.text("status <> 'cancelled'"),
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    op.create_table(
        "invoice_items",
        sa.Column("item_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.invoice_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("item_type", INVOICE_ITEM_TYPE_ENUM, nullable=False),
        sa.Column(
            "object_id",
            sa.Integer(),
            sa.ForeignKey("monitored_objects.object_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.UniqueConstraint("invoice_id", "position", name="invoice_items_invoice_position_key"),
        sa.CheckConstraint("quantity >= 0", name="ck_invoice_items_quantity_non_negative"),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    op.create_table(
        "invoice_payments",
        sa.Column("payment_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.invoice_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", PAYMENT_METHOD_ENUM, nullable=False, server_default="transfer"),
        sa.Column("status", PAYMENT_STATUS_ENUM, nullable=False, server_default="confirmed"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_invoice_payments_amount_positive"),
    )
    op.create_index("ix_invoice_payments_invoice_id", "invoice_payments", ["invoice_id"])

    op.create_table(
        "billing_history",
        sa.Column("history_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "company_id",
            sa.Integer(),
            sa.ForeignKey("companies.company_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.contract_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.invoice_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("operation", BILLING_OPERATION_ENUM, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_billing_history_company_id", "billing_history", ["company_id"])
    op.create_index("ix_billing_history_invoice_id", "billing_history", ["invoice_id"])


def downgrade() -> None:
    op.drop_index("ix_billing_history_invoice_id", table_name="billing_history")
    op.drop_index("ix_billing_history_company_id", table_name="billing_history")
    op.drop_table("billing_history")
    op.drop_index("ix_invoice_payments_invoice_id", table_name="invoice_payments")
    op.drop_table("invoice_payments")
    op.drop_index("ix_invoice_items_invoice_id", table_name="invoice_items")
    op.drop_table("invoice_items")
    op.drop_index("invoices_contract_period_active_key", table_name="invoices")
    op.drop_index("ix_invoices_due_date", table_name="invoices")
    op.drop_index("ix_invoices_contract_id", table_name="invoices")
    op.drop_index("ix_invoices_company_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("ix_object_activity_intervals_object_id", table_name="object_activity_intervals")
    op.drop_table("object_activity_intervals")
    op.drop_index("ix_monitored_objects_contract_id", table_name="monitored_objects")
    op.drop_table("monitored_objects")
    op.drop_index("ix_contracts_company_id", table_name="contracts")
    op.drop_table("contracts")
    op.drop_table("tariff_plans")
    op.drop_index("ix_subscriptions_company_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_billing_plans_company_id", table_name="billing_plans")
    op.drop_table("billing_plans")
    op.drop_table("billing_settings")
    op.drop_table("companies")
