"""Error types raised by the billing services."""

from __future__ import annotations


class BillingError(RuntimeError):
    """Base class for billing failures."""


class NotFoundError(BillingError, LookupError):
    """Raised when a contract, tariff, invoice or company cannot be resolved."""


class InvalidInputError(BillingError, ValueError):
    """Raised when arguments are malformed or out of range."""


class InvalidStateTransitionError(BillingError):
    """Raised when an operation is not permitted in the invoice's current state."""


class AlreadyExistsError(BillingError):
    """Raised when an invoice already exists for the requested contract and period."""


class DependencyFailureError(BillingError):
    """Raised when persistence or a collaborator lookup fails."""
