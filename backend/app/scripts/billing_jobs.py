"""Command line entry-point for scheduled billing jobs."""

from __future__ import annotations

import argparse
import logging
from datetime import date
from typing import Optional

from ..database import session_scope
from ..services import (
    BillingAutomationService,
    BillingPeriodService,
    InvoiceLifecycleService,
    InvoiceReminderService,
    build_notification_client_from_env,
)
from ..services.invoice_reminders import ConfigurationError

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date '{raw}', expected YYYY-MM-DD") from exc


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run billing maintenance jobs.")
    parser.add_argument(
        "--date",
        dest="reference_date",
        type=_parse_date,
        default=None,
        help="Reference date for the job (default: today).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print additional debugging information.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate monthly invoices.")
    generate.add_argument("--year", type=int, help="Year to invoice.")
    generate.add_argument("--month", type=int, help="Month to invoice (1-12).")
    generate.add_argument(
        "--due-today",
        action="store_true",
        help="Invoice the previous month for companies whose generation day is today.",
    )

    subparsers.add_parser("overdue", help="Mark unpaid invoices past their due date as overdue.")
    subparsers.add_parser("deletions", help="Apply scheduled contract and object deletions.")

    reminders = subparsers.add_parser("reminders", help="Send due-soon and overdue reminders.")
    reminders.add_argument(
        "--strict",
        action="store_true",
        help="Fail instead of falling back to console delivery when the transport is misconfigured.",
    )

    args = parser.parse_args(argv)
    if args.command == "generate" and not args.due_today:
        if args.year is None or args.month is None:
            parser.error("generate requires --year and --month, or --due-today")
    return args


def _run_generate(session, args: argparse.Namespace, today: date) -> bool:
    if args.due_today:
        company_ids = BillingAutomationService.companies_due_for_generation(session, today)
        if not company_ids:
            LOGGER.info("No companies are due for invoice generation on %s", today.isoformat())
            return True
        year, month = BillingPeriodService.previous_month(today)
    else:
        company_ids = None
        year, month = args.year, args.month

    summary = BillingAutomationService.auto_generate_invoices_for_month(
        session, year, month, company_ids=company_ids, issue_date=today
    )
    LOGGER.info("Generation summary: %s", summary.to_dict())
    return not summary.has_failures


def _run_overdue(session, today: date) -> bool:
    updated = InvoiceLifecycleService.mark_overdue_invoices(session, reference_date=today)
    LOGGER.info("Invoices marked as overdue: %s", updated)
    return True


def _run_deletions(session, today: date) -> bool:
    summary = BillingAutomationService.process_scheduled_deletions(session, reference_date=today)
    LOGGER.info("Deletion summary: %s", summary.to_dict())
    return not summary.has_failures


def _run_reminders(session, args: argparse.Namespace, today: date) -> bool:
    client = build_notification_client_from_env(fallback_to_console=not args.strict)
    summary = InvoiceReminderService(session, client).send_reminders(reference_date=today)
    LOGGER.info("Reminder summary: %s", summary.to_dict())
    return summary.failed == 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)
    today = args.reference_date or date.today()

    try:
        with session_scope() as session:
            if args.command == "generate":
                succeeded = _run_generate(session, args, today)
            elif args.command == "overdue":
                succeeded = _run_overdue(session, today)
            elif args.command == "deletions":
                succeeded = _run_deletions(session, today)
            else:
                succeeded = _run_reminders(session, args, today)
    except ConfigurationError as exc:
        LOGGER.error("Invalid notification configuration: %s", exc)
        return 2

    return 0 if succeeded else 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
