"""
Document posting - line VAT, totals, and the journal entries an invoice or
bill produces over its life (issue, payment, cancellation).

Which side each account lands on is driven by POSTING_RULES, keyed by
document kind; nothing here branches on the document class.
"""
import logging
from collections import OrderedDict

from django.db import transaction
from django.utils import timezone

from apps.core.audit import audit_document_issue, audit_document_payment, audit_document_cancel
from apps.core.exceptions import ValidationError
from apps.core.money import multiply, apply_rate
from apps.finance.ledger import create_entry, post_entry, reverse_entry
from apps.finance.models import AccountMapping, AccountType, JournalSource
from .models import DocumentKind, TransactionDocument


logger = logging.getLogger(__name__)


POSTING_RULES = {
    DocumentKind.INVOICE: {
        'label': 'Sales Invoice',
        'counterparty_role': 'sales_invoice_receivable',
        'counterparty_side': 'debit',
        'vat_role': 'sales_invoice_vat',
        'issued_status': 'sent',
        'source': JournalSource.INVOICE,
        'item_account_types': (AccountType.REVENUE, AccountType.COGS),
    },
    DocumentKind.BILL: {
        'label': 'Vendor Bill',
        'counterparty_role': 'vendor_bill_payable',
        'counterparty_side': 'credit',
        'vat_role': 'vendor_bill_vat',
        'issued_status': 'approved',
        'source': JournalSource.BILL,
        'item_account_types': (AccountType.EXPENSE, AccountType.COGS, AccountType.ASSET),
    },
}

PAYABLE_STATUSES = ('sent', 'approved', 'partial', 'overdue')
CASH_ROLE = 'cash_bank'


def _opposite(side):
    return 'credit' if side == 'debit' else 'debit'


def _line(account, side, amount, description='', contact=None):
    if side == 'debit':
        return (account, amount, 0, description, contact)
    return (account, 0, amount, description, contact)


def compute_line(item):
    """
    Return (line_total, vat_amount) for a line item.

    line_total = round(quantity * unit_price) - discount
    vat_amount = round(line_total * rate / 10000), zero for exempt supplies
    """
    if item.quantity is None or item.quantity < 0:
        raise ValidationError(f"Line '{item.description}': quantity cannot be negative ({item.quantity}).")
    if item.unit_price < 0:
        raise ValidationError(f"Line '{item.description}': unit price cannot be negative ({item.unit_price}).")
    if item.discount < 0:
        raise ValidationError(f"Line '{item.description}': discount cannot be negative ({item.discount}).")

    gross = multiply(item.unit_price, item.quantity)
    if item.discount > gross:
        raise ValidationError(
            f"Line '{item.description}': discount {item.discount} exceeds line amount {gross}."
        )
    line_total = gross - item.discount
    if item.is_exempt:
        return line_total, 0
    return line_total, apply_rate(line_total, item.vat_rate.permyriad)


def calculate_totals(document):
    """Calculate subtotal, VAT, and total from items."""
    items = list(document.items.all())
    document.subtotal = sum(item.line_total for item in items)
    document.vat_total = sum(item.vat_amount for item in items)
    document.total = document.subtotal + document.vat_total
    document.save(update_fields=['subtotal', 'vat_total', 'total', 'updated_at'])
    return document


def build_journal_lines(document, rule=None):
    """
    Journal lines for issuing a document.

    Items are grouped by account. The VAT line takes whatever is left of
    the document total after the grouped amounts, so any difference from
    summing per-line rounded VAT ends up there and the entry balances
    exactly.
    """
    rule = rule or POSTING_RULES[document.kind]
    counterparty_side = rule['counterparty_side']
    item_side = _opposite(counterparty_side)
    label = rule['label']

    items = list(document.items.select_related('account'))
    if not items:
        raise ValidationError(f"{label} {document.number} has no line items.")

    grouped = OrderedDict()
    for item in items:
        if item.account.account_type not in rule['item_account_types']:
            allowed = ', '.join(rule['item_account_types'])
            raise ValidationError(
                f"{label} {document.number}: line '{item.description}' uses account {item.account.code} "
                f"({item.account.account_type}); expected one of: {allowed}."
            )
        grouped.setdefault(item.account, 0)
        grouped[item.account] += item.line_total

    vat_line = document.total - sum(grouped.values())
    residual = vat_line - sum(item.vat_amount for item in items)
    if vat_line < 0:
        raise ValidationError(
            f"{label} {document.number}: total {document.total} is less than its net amount "
            f"{sum(grouped.values())}."
        )
    if residual:
        logger.warning(
            "%s %s: VAT rounding residual of %s fils folded into the VAT line",
            label, document.number, residual,
        )

    if document.settlement == 'cash':
        counterparty = AccountMapping.get_account(CASH_ROLE)
    else:
        counterparty = AccountMapping.get_account(rule['counterparty_role'])

    contact = document.contact
    lines = [_line(counterparty, counterparty_side, document.total, f"{label} {document.number}", contact)]
    for account, amount in grouped.items():
        if amount:
            lines.append(_line(account, item_side, amount, f"{label} {document.number}", contact))
    if vat_line:
        vat_account = AccountMapping.get_account(rule['vat_role'])
        lines.append(_line(vat_account, item_side, vat_line, f"VAT - {document.number}", contact))
    return lines


def _lock(document):
    return TransactionDocument.objects.select_for_update().select_related('contact').get(pk=document.pk)


def issue_document(document, user=None):
    """
    Send an invoice / approve a bill: recompute totals, post the journal
    entry, and move the document out of draft.
    """
    with transaction.atomic():
        doc = _lock(document)
        rule = POSTING_RULES[doc.kind]
        if doc.status != 'draft':
            raise ValidationError(
                f"{rule['label']} {doc.number} is {doc.status}; only draft documents can be issued."
            )
        calculate_totals(doc)
        if doc.total <= 0:
            raise ValidationError(f"{rule['label']} {doc.number}: total must be greater than zero.")

        entry = create_entry(
            doc.date,
            f"{rule['label']}: {doc.number} - {doc.contact.name}",
            build_journal_lines(doc, rule),
            source=(rule['source'], doc.pk),
            reference=doc.number,
        )
        post_entry(entry, user=user)

        doc.journal_entry = entry
        if doc.settlement == 'cash':
            doc.amount_paid = doc.total
            doc.status = 'paid'
        else:
            doc.status = rule['issued_status']
        doc.save(update_fields=['journal_entry', 'amount_paid', 'status', 'updated_at'])
        audit_document_issue(doc, user)

    logger.info("Issued %s %s for %s fils (%s)", rule['label'], doc.number, doc.total, entry.entry_number)
    document.refresh_from_db()
    return entry


def record_payment(document, amount, date=None, user=None):
    """
    Apply a payment against an issued document.

    Invoice: Dr Cash/Bank, Cr Accounts Receivable.
    Bill: Dr Accounts Payable, Cr Cash/Bank.
    """
    with transaction.atomic():
        doc = _lock(document)
        rule = POSTING_RULES[doc.kind]
        label = rule['label']
        if doc.status not in PAYABLE_STATUSES:
            raise ValidationError(f"{label} {doc.number} is {doc.status}; payments can't be recorded against it.")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(f"Payment amount must be a positive number of fils, got {amount!r}.")
        if amount > doc.balance_due:
            raise ValidationError(
                f"Payment of {amount} exceeds the balance due of {doc.balance_due} on {label} {doc.number}."
            )

        counterparty = AccountMapping.get_account(rule['counterparty_role'])
        bank = AccountMapping.get_account(CASH_ROLE)
        bank_side = rule['counterparty_side']
        description = f"Payment - {doc.number}"
        entry = create_entry(
            date or timezone.localdate(),
            f"Payment for {label} {doc.number} - {doc.contact.name}",
            [
                _line(bank, bank_side, amount, description, doc.contact),
                _line(counterparty, _opposite(bank_side), amount, description, doc.contact),
            ],
            source=(JournalSource.PAYMENT, doc.pk),
            reference=doc.number,
        )
        post_entry(entry, user=user)

        doc.amount_paid += amount
        if doc.amount_paid == doc.total:
            doc.status = 'paid'
        elif doc.status != 'overdue':
            doc.status = 'partial'
        doc.save(update_fields=['amount_paid', 'status', 'updated_at'])
        audit_document_payment(doc, amount, entry, user)

    logger.info("Recorded payment of %s fils on %s (%s)", amount, doc.number, doc.status)
    document.refresh_from_db()
    return entry


def mark_overdue(as_of=None, dry_run=False):
    """
    Flag issued, unpaid documents whose due date is before `as_of`.
    Returns the list of affected document numbers.
    """
    as_of = as_of or timezone.localdate()
    candidates = TransactionDocument.objects.filter(
        status__in=['sent', 'approved', 'partial'],
        due_date__lt=as_of,
    ).order_by('due_date', 'number')
    numbers = list(candidates.values_list('number', flat=True))
    if numbers and not dry_run:
        candidates.update(status='overdue', updated_at=timezone.now())
        logger.info("Marked %s document(s) overdue as of %s", len(numbers), as_of)
    return numbers


def cancel_document(document, user=None, reason=''):
    """
    Cancel a document. Issued documents get their journal entry reversed;
    documents with payments recorded against them must be refunded first.
    """
    reversal = None
    with transaction.atomic():
        doc = _lock(document)
        label = POSTING_RULES[doc.kind]['label']
        if doc.status == 'cancelled':
            raise ValidationError(f"{label} {doc.number} is already cancelled.")
        if doc.settlement == 'credit' and doc.amount_paid > 0:
            raise ValidationError(
                f"{label} {doc.number} has {doc.amount_paid} fils paid against it; "
                f"it can't be cancelled until the payments are reversed."
            )
        if doc.journal_entry_id:
            reversal = reverse_entry(
                doc.journal_entry, user=user, reason=reason or f"{label} {doc.number} cancelled"
            )
        doc.amount_paid = 0
        doc.status = 'cancelled'
        doc.save(update_fields=['amount_paid', 'status', 'updated_at'])
        audit_document_cancel(doc, reversal, user, reason=reason)

    logger.info("Cancelled %s %s", label, doc.number)
    document.refresh_from_db()
    return reversal
