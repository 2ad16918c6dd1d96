"""Audit trail helpers for billing operations."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from .errors import DependencyFailureError

DEFAULT_HISTORY_LIMIT = 50


class BillingHistoryService:
    """Append and read billing history rows."""

    @staticmethod
    def record(
        db: Session,
        *,
        operation: models.BillingOperation,
        company_id: int,
        contract_id: Optional[int] = None,
        invoice_id: Optional[int] = None,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> models.BillingHistory:
        """Stage a history row in the caller's transaction."""

        entry = models.BillingHistory(
            operation=operation,
            company_id=company_id,
            contract_id=contract_id,
            invoice_id=invoice_id,
            amount=amount,
            description=description,
        )
        db.add(entry)
        return entry

    @staticmethod
    def list_history(
        db: Session,
        company_id: int,
        *,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> Tuple[Iterable[models.BillingHistory], int]:
        if limit is None or limit < 1:
            limit = DEFAULT_HISTORY_LIMIT
        offset = max(offset or 0, 0)

        try:
            query = db.query(models.BillingHistory).filter(
                models.BillingHistory.company_id == company_id
            )
            total = query.count()
            items = (
                query.order_by(
                    models.BillingHistory.created_at.desc(),
                    models.BillingHistory.id.desc(),
                )
                .offset(offset)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to load billing history.") from exc
        return items, total
