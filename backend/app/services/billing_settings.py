"""Per-company billing settings with lazily created defaults."""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from .errors import DependencyFailureError, InvalidInputError, NotFoundError

LOGGER = logging.getLogger(__name__)

DEFAULT_BILLING_SETTINGS: dict[str, Any] = {
    "auto_generate_invoices": True,
    "invoice_generation_day": 1,
    "invoice_payment_term_days": 14,
    "default_tax_rate": Decimal("20.00"),
    "tax_included": False,
    "notify_before_invoice": 3,
    "notify_before_due": 3,
    "notify_overdue": 1,
    "invoice_number_prefix": "INV",
    "invoice_number_format": "%s-%04d",
    "currency": "RUB",
    "default_payment_method": models.PaymentMethod.TRANSFER,
    "allow_partial_payments": True,
    "require_payment_confirmation": False,
    "enable_inactive_discounts": True,
    "inactive_discount_ratio": Decimal("0.50"),
}

EDITABLE_FIELDS = frozenset(DEFAULT_BILLING_SETTINGS)

_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def _as_decimal(field: str, value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInputError(f"{field} must be a decimal number") from exc


def _as_int(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{field} must be an integer") from exc


def format_invoice_number(number_format: str, prefix: str, sequence: int) -> str:
    try:
        return number_format % (prefix, sequence)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(
            "invoice_number_format must accept a prefix and a sequence number"
        ) from exc


def validate_settings_values(values: Mapping[str, Any]) -> dict[str, Any]:
    """Return normalized values or raise ``InvalidInputError``."""

    unknown = set(values) - EDITABLE_FIELDS
    if unknown:
        raise InvalidInputError(f"Unknown billing settings: {', '.join(sorted(unknown))}")

    normalized: dict[str, Any] = {}
    for field, value in values.items():
        if value is None:
            raise InvalidInputError(f"{field} cannot be null")

        if field == "invoice_generation_day":
            day = _as_int(field, value)
            if day < 1 or day > 28:
                raise InvalidInputError("invoice_generation_day must be between 1 and 28")
            normalized[field] = day
        elif field == "invoice_payment_term_days":
            days = _as_int(field, value)
            if days < 1:
                raise InvalidInputError("invoice_payment_term_days must be at least 1")
            normalized[field] = days
        elif field in {"notify_before_invoice", "notify_before_due", "notify_overdue"}:
            days = _as_int(field, value)
            if days < 0:
                raise InvalidInputError(f"{field} must not be negative")
            normalized[field] = days
        elif field == "default_tax_rate":
            rate = _as_decimal(field, value)
            if rate < 0 or rate > 100:
                raise InvalidInputError("default_tax_rate must be between 0 and 100")
            normalized[field] = rate
        elif field == "inactive_discount_ratio":
            ratio = _as_decimal(field, value)
            if ratio < 0 or ratio > 1:
                raise InvalidInputError("inactive_discount_ratio must be between 0 and 1")
            normalized[field] = ratio
        elif field == "currency":
            currency = str(value).strip().upper()
            if not _CURRENCY_PATTERN.match(currency):
                raise InvalidInputError("currency must be a three letter ISO code")
            normalized[field] = currency
        elif field == "invoice_number_prefix":
            prefix = str(value).strip()
            if not prefix:
                raise InvalidInputError("invoice_number_prefix cannot be empty")
            normalized[field] = prefix
        elif field == "invoice_number_format":
            normalized[field] = str(value)
        elif field == "default_payment_method":
            try:
                normalized[field] = models.PaymentMethod(value)
            except ValueError as exc:
                raise InvalidInputError("Unsupported default_payment_method") from exc
        else:
            normalized[field] = bool(value)

    if "invoice_number_format" in normalized:
        prefix = normalized.get("invoice_number_prefix", "INV")
        format_invoice_number(normalized["invoice_number_format"], prefix, 1)

    return normalized


class BillingSettingsService:
    """Read and update billing settings, one row per company."""

    @staticmethod
    def _find(db: Session, company_id: int, *, for_update: bool = False):
        query = db.query(models.BillingSettings).filter(
            models.BillingSettings.company_id == company_id
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @classmethod
    def get_or_create_settings(
        cls, db: Session, company_id: int
    ) -> models.BillingSettings:
        """Return the company's settings, creating them with defaults when absent."""

        try:
            settings = cls._find(db, company_id)
            if settings is not None:
                return settings

            company = db.get(models.Company, company_id)
            if company is None:
                raise NotFoundError(f"Company {company_id} not found")

            savepoint = db.begin_nested()
            try:
                settings = models.BillingSettings(company_id=company_id, **DEFAULT_BILLING_SETTINGS)
                db.add(settings)
                savepoint.commit()
            except IntegrityError:
                # Another transaction created the row first.
                savepoint.rollback()
                LOGGER.debug(
                    "Billing settings created concurrently", extra={"company_id": company_id}
                )
                settings = cls._find(db, company_id)
                if settings is None:
                    raise
                return settings

            db.commit()
            LOGGER.info("Created default billing settings", extra={"company_id": company_id})
            return settings
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to load billing settings.") from exc

    @classmethod
    def get_settings_for_update(cls, db: Session, company_id: int) -> models.BillingSettings:
        """Return the settings row locked for the rest of the transaction."""

        cls.get_or_create_settings(db, company_id)
        return cls._find(db, company_id, for_update=True)

    @classmethod
    def update_settings(
        cls, db: Session, company_id: int, changes: Mapping[str, Any]
    ) -> models.BillingSettings:
        settings = cls.get_or_create_settings(db, company_id)
        normalized = validate_settings_values(changes)

        if "invoice_number_format" in normalized or "invoice_number_prefix" in normalized:
            format_invoice_number(
                normalized.get("invoice_number_format", settings.invoice_number_format),
                normalized.get("invoice_number_prefix", settings.invoice_number_prefix),
                1,
            )

        for field, value in normalized.items():
            setattr(settings, field, value)

        try:
            db.add(settings)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to update billing settings.") from exc
        db.refresh(settings)
        LOGGER.info(
            "Updated billing settings",
            extra={"company_id": company_id, "fields": sorted(normalized)},
        )
        return settings
