"""
General Ledger - journal entry creation, posting and reversal.

This module is the only writer of Account.current_balance. Posting runs
inside a single transaction that row-locks every touched account (in
primary-key order, so two postings can't deadlock on each other) and
applies the deltas with F() expressions.
"""
import logging
from collections import defaultdict

from django.db import IntegrityError, transaction
from django.db.models import F, Q, Sum
from django.utils import timezone

from apps.core.audit import audit_journal_post, audit_journal_reverse, log_finance_audit
from apps.core.exceptions import (
    ConflictError, InactiveAccountError, UnbalancedEntryError, ValidationError,
)
from .models import Account, JournalEntry, JournalLine, JournalSource, POSTED_STATUSES


logger = logging.getLogger(__name__)


def _actor(user):
    if user is None:
        return ''
    return getattr(user, 'username', None) or str(user)


def _normalize_line(raw):
    """
    Accept (account, debit, credit[, description[, contact]]) tuples or
    dicts with the same keys and return a dict.
    """
    if isinstance(raw, dict):
        line = dict(raw)
    else:
        keys = ('account', 'debit', 'credit', 'description', 'contact')
        line = dict(zip(keys, raw))
    line.setdefault('debit', 0)
    line.setdefault('credit', 0)
    line.setdefault('description', '')
    line.setdefault('contact', None)

    account = line.get('account')
    if not isinstance(account, Account):
        raise ValidationError(f"Journal line account must be an Account, got {account!r}.")
    for side in ('debit', 'credit'):
        value = line[side]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"Line on {account.code}: {side} must be integer fils, got {value!r}.")
        if value < 0:
            raise ValidationError(f"Line on {account.code}: {side} cannot be negative ({value}).")
    if line['debit'] and line['credit']:
        raise ValidationError(f"Line on {account.code}: a line cannot have both debit and credit amounts.")
    if not line['debit'] and not line['credit']:
        raise ValidationError(f"Line on {account.code}: either debit or credit must be greater than zero.")
    return line


def create_entry(date, description, lines, source=None, reference='', **extra):
    """
    Create a draft journal entry.

    Args:
        date: Entry date
        description: Narrative
        lines: iterable of (account, debit, credit[, description[, contact]])
        source: (JournalSource, id) pair; defaults to a manual entry
        reference: Source document number

    The entry is only validated line by line here; the double-entry
    invariant is enforced by post_entry().
    """
    source_type, source_id = source or (JournalSource.MANUAL, None)
    if source_type not in JournalSource.values:
        raise ValidationError(
            f"Unknown journal source '{source_type}'. Expected one of: {', '.join(JournalSource.values)}."
        )
    normalized = [_normalize_line(line) for line in lines]

    with transaction.atomic():
        entry = JournalEntry.objects.create(
            date=date,
            description=description,
            reference=reference,
            source_type=source_type,
            source_id=source_id,
            **extra
        )
        JournalLine.objects.bulk_create([
            JournalLine(journal_entry=entry, **line) for line in normalized
        ])
        entry.calculate_totals()
    return entry


def validate_for_posting(entry, lines):
    """Raise UnbalancedEntryError if the entry breaks the double-entry invariant."""
    total_debit = sum(line.debit for line in lines)
    total_credit = sum(line.credit for line in lines)

    if len(lines) < 2:
        raise UnbalancedEntryError(
            f"Journal entry {entry.entry_number} has {len(lines)} line(s); at least 2 are required.",
            total_debit, total_credit, entry.entry_number,
        )
    if total_debit == 0:
        raise UnbalancedEntryError(
            f"Journal entry {entry.entry_number} has a zero total; debits and credits must be greater than zero.",
            total_debit, total_credit, entry.entry_number,
        )
    if total_debit != total_credit:
        raise UnbalancedEntryError(
            f"Journal entry {entry.entry_number} is not balanced: total debit {total_debit} "
            f"!= total credit {total_credit} (difference {total_debit - total_credit} fils).",
            total_debit, total_credit, entry.entry_number,
        )
    return total_debit, total_credit


def post_entry(entry, user=None):
    """
    Post a draft journal entry and apply its lines to account balances.

    Raises:
        ValidationError: entry is not a draft
        UnbalancedEntryError: fewer than two lines, zero total or debit != credit
        InactiveAccountError: any line hits an inactive account
    """
    with transaction.atomic():
        locked = JournalEntry.objects.select_for_update().get(pk=entry.pk)
        if locked.status != 'draft':
            raise ValidationError(
                f"Journal entry {locked.entry_number} is {locked.status}; only draft entries can be posted."
            )

        lines = list(locked.lines.all())
        total_debit, total_credit = validate_for_posting(locked, lines)

        account_ids = sorted({line.account_id for line in lines})
        accounts = {
            account.pk: account
            for account in Account.objects.select_for_update().filter(pk__in=account_ids).order_by('pk')
        }
        inactive = [accounts[pk] for pk in account_ids if not accounts[pk].is_active]
        if inactive:
            raise InactiveAccountError(inactive)

        deltas = defaultdict(int)
        for line in lines:
            deltas[line.account_id] += accounts[line.account_id].balance_delta(line.debit, line.credit)

        now = timezone.now()
        for account_id in account_ids:
            if deltas[account_id]:
                Account.objects.filter(pk=account_id).update(
                    current_balance=F('current_balance') + deltas[account_id],
                    updated_at=now,
                )

        locked.status = 'posted'
        locked.total_debit = total_debit
        locked.total_credit = total_credit
        locked.posted_at = now
        locked.posted_by = _actor(user)
        locked.save(update_fields=['status', 'total_debit', 'total_credit', 'posted_at', 'posted_by', 'updated_at'])

        audit_journal_post(locked, user)

    logger.info("Posted %s: %s fils across %s account(s)", locked.entry_number, total_debit, len(account_ids))
    if entry is not locked:
        entry.refresh_from_db()
    return locked


def reverse_entry(entry, user=None, reason='', date=None):
    """
    Post a mirror image of a posted entry (every debit becomes a credit and
    vice versa), dated today unless `date` is given. The original entry is
    left exactly as it was; the link is JournalEntry.reversal_of.
    """
    entry_id = entry.pk if isinstance(entry, JournalEntry) else entry
    with transaction.atomic():
        original = JournalEntry.objects.select_for_update().get(pk=entry_id)
        if original.status not in POSTED_STATUSES:
            raise ValidationError(
                f"Journal entry {original.entry_number} is {original.status}; only posted entries can be reversed."
            )
        existing = JournalEntry.objects.filter(reversal_of=original).first()
        if existing is not None:
            raise ValidationError(
                f"Journal entry {original.entry_number} was already reversed by {existing.entry_number}."
            )

        mirrored = [
            (line.account, line.credit, line.debit, f"Reversal: {line.description}".strip(), line.contact)
            for line in original.lines.select_related('account', 'contact')
        ]
        try:
            with transaction.atomic():
                reversal = create_entry(
                    date or timezone.localdate(),
                    f"Reversal of {original.entry_number}: {reason or original.description}",
                    mirrored,
                    source=(JournalSource.REVERSAL, original.pk),
                    reference=f"REV-{original.entry_number}",
                    reversal_of=original,
                    reversal_reason=reason,
                )
        except IntegrityError:
            raise ConflictError(
                f"Journal entry {original.entry_number} was reversed concurrently."
            )
        reversal = post_entry(reversal, user=user)
        audit_journal_reverse(original, reversal, user, reason=reason)

    logger.info("Reversed %s with %s", original.entry_number, reversal.entry_number)
    return reversal


def entries_for_source(source_type, source_id):
    return JournalEntry.objects.filter(source_type=source_type, source_id=source_id)


def account_balance_from_lines(account, as_of=None):
    """
    Balance of an account folded from scratch: every posted line up to
    `as_of` (inclusive), on the account's normal side. Opening balances are
    posted lines too.
    """
    lines = JournalLine.objects.filter(account=account, journal_entry__status__in=POSTED_STATUSES)
    if as_of is not None:
        lines = lines.filter(journal_entry__date__lte=as_of)
    totals = lines.aggregate(debit=Sum('debit'), credit=Sum('credit'))
    return account.balance_delta(totals['debit'] or 0, totals['credit'] or 0)


def recompute_balances(fix=True, accounts=None, user=None):
    """
    Compare each account's cached current_balance with the fold of its
    posted lines. With fix=True the cached value is rebuilt.

    Returns a list of {'account', 'cached', 'computed'} for every drifted account.
    """
    drift = []
    with transaction.atomic():
        queryset = Account.objects.all() if accounts is None else Account.objects.filter(
            pk__in=[a.pk for a in accounts]
        )
        if fix:
            queryset = queryset.select_for_update()
        for account in queryset.order_by('pk'):
            computed = account_balance_from_lines(account)
            if computed != account.current_balance:
                drift.append({'account': account, 'cached': account.current_balance, 'computed': computed})
                if fix:
                    Account.objects.filter(pk=account.pk).update(current_balance=computed)
                    log_finance_audit(
                        user=user,
                        action='rebuild',
                        entity_type='Account',
                        entity_id=account.pk,
                        reference_number=account.code,
                        amount_before=account.current_balance,
                        amount_after=computed,
                        reason='Cached balance rebuilt from posted journal lines',
                    )
    if drift:
        logger.warning("Balance drift found on %s account(s)%s", len(drift), ' (fixed)' if fix else '')
    return drift


def unbalanced_entries():
    """Posted entries whose stored lines don't balance. Should always be empty."""
    return (
        JournalEntry.objects.filter(status__in=POSTED_STATUSES)
        .annotate(line_debit=Sum('lines__debit'), line_credit=Sum('lines__credit'))
        .filter(~Q(line_debit=F('line_credit')))
        .order_by('date', 'entry_number')
    )
