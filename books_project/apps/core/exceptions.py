"""
Error taxonomy for the accounting engine.

ValidationError is caller-recoverable (fix the input and retry) and extends
Django's ValidationError so forms and views treat it the usual way. The
others are raised when a ledger invariant or a one-shot state transition
would be violated; they are never silently corrected.
"""
from django.core.exceptions import ValidationError as DjangoValidationError


class ValidationError(DjangoValidationError):
    """Malformed input: negative quantity, account type mismatch, bad TRN/IBAN/Emirates ID."""


class AccountingError(Exception):
    """Base class for invariant and state-transition failures."""


class UnbalancedEntryError(AccountingError):
    """
    Double-entry invariant violated.

    Carries the totals that were found so the caller can show exactly
    which side is off and by how much.
    """

    def __init__(self, message, total_debit=0, total_credit=0, entry_number=None):
        super().__init__(message)
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.entry_number = entry_number

    @property
    def difference(self):
        return self.total_debit - self.total_credit


class InactiveAccountError(AccountingError):
    """A journal line references one or more deactivated accounts."""

    def __init__(self, accounts):
        self.accounts = list(accounts)
        codes = ', '.join(f"{a.code} - {a.name}" for a in self.accounts)
        super().__init__(f"Cannot post to inactive account(s): {codes}.")

    @property
    def account_codes(self):
        return [a.code for a in self.accounts]


class AlreadyFiledError(AccountingError):
    """VAT return is already filed; filed returns are immutable."""


class AlreadyProcessedError(AccountingError):
    """Payroll run is already processed; processing is terminal."""


class ConflictError(AccountingError):
    """A concurrent caller changed the record's status first."""
