"""
Audit Logging Utility for the accounting engine.
Every state change on a ledger, VAT or payroll record leaves an AuditLog row.
UAE VAT & Corporate Tax compliant - IFRS auditable.
"""
import json
import logging
from decimal import Decimal

from django.db import models


logger = logging.getLogger(__name__)

SYSTEM_USER = 'system'


def serialize_value(value):
    """Convert value to JSON-serializable format."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if hasattr(value, 'pk'):
        return str(value)
    return value


def _actor(user):
    if user is None:
        return SYSTEM_USER
    return getattr(user, 'username', None) or str(user)


def log_audit(user, action, model_name, record_id=None, changes=None):
    """
    Create an audit log entry.

    Args:
        user: Who performed the action (user object, username or None for system)
        action: One of AuditLog.ACTION_CHOICES
        model_name: Name of the model being modified
        record_id: Primary key of the record
        changes: Dictionary of changes
    """
    from apps.settings_app.models import AuditLog

    # Ensure changes is JSON serializable
    if changes:
        try:
            json.dumps(changes)
        except (TypeError, ValueError):
            changes = {'message': str(changes)}

    return AuditLog.objects.create(
        user=_actor(user),
        action=action,
        model=model_name,
        record_id=str(record_id) if record_id else '',
        changes=changes or {},
    )


# ============================================
# FINANCE-GRADE AUDIT LOGGING
# ============================================

def log_finance_audit(
    user,
    action,
    entity_type,
    entity_id,
    reference_number=None,
    amount_before=None,
    amount_after=None,
    affected_accounts=None,
    accounting_period=None,
    reason=None,
    details=None,
):
    """
    Log a finance-specific action with full audit metadata.

    Amounts are integer fils and are stored as such.

    Args:
        user: Who performed the action
        action: Action type (post, reverse, approve, file, process, export, ...)
        entity_type: JournalEntry, Invoice, Bill, VatReturn, PayrollRun, ...
        entity_id: Primary key of the entity
        reference_number: Document reference (entry_number, invoice number, ...)
        amount_before: Amount before the action
        amount_after: Amount after the action
        affected_accounts: List of account codes affected
        accounting_period: Period label
        reason: Mandatory for reversals and cancellations
        details: Additional details dictionary
    """
    changes = {
        'module': 'Finance',
        'entity_type': entity_type,
        'entity_id': str(entity_id),
        'reference_number': reference_number,
        'action_type': action,
    }

    if amount_before is not None:
        changes['amount_before'] = serialize_value(amount_before)
    if amount_after is not None:
        changes['amount_after'] = serialize_value(amount_after)
    if affected_accounts:
        changes['affected_accounts'] = affected_accounts if isinstance(affected_accounts, list) else [affected_accounts]
    if accounting_period:
        changes['accounting_period'] = str(accounting_period)
    if reason:
        changes['reason'] = reason
    if details:
        changes.update({key: serialize_value(value) for key, value in details.items()})

    logger.info(
        "%s %s %s (%s) by %s",
        action, entity_type, reference_number or entity_id, amount_after, _actor(user),
    )
    return log_audit(user, action, f"Finance.{entity_type}", entity_id, changes)


def get_entity_audit_history(entity_type, entity_id):
    """Audit history for a specific finance entity, newest first."""
    from apps.settings_app.models import AuditLog

    return AuditLog.objects.filter(
        models.Q(model=f"Finance.{entity_type}") | models.Q(model=entity_type),
        record_id=str(entity_id)
    ).order_by('-timestamp', '-pk')


# ============================================
# JOURNAL ENTRY AUDIT
# ============================================

def audit_journal_post(journal, user=None):
    """Log journal entry posting."""
    affected_accounts = sorted(set(journal.lines.values_list('account__code', flat=True)))

    log_finance_audit(
        user=user,
        action='post',
        entity_type='JournalEntry',
        entity_id=journal.pk,
        reference_number=journal.entry_number,
        amount_after=journal.total_debit,
        affected_accounts=affected_accounts,
        details={
            'date': journal.date,
            'source_type': journal.source_type,
            'source_id': journal.source_id,
            'total_debit': journal.total_debit,
            'total_credit': journal.total_credit,
            'line_count': journal.lines.count(),
        },
    )


def audit_journal_reverse(original, reversal, user=None, reason=''):
    """Log journal entry reversal."""
    affected_accounts = sorted(set(original.lines.values_list('account__code', flat=True)))

    log_finance_audit(
        user=user,
        action='reverse',
        entity_type='JournalEntry',
        entity_id=original.pk,
        reference_number=original.entry_number,
        amount_before=original.total_debit,
        amount_after=0,
        affected_accounts=affected_accounts,
        reason=reason or 'User requested reversal',
        details={
            'reversal_entry_number': reversal.entry_number,
            'reversal_entry_id': reversal.pk,
            'reversal_date': reversal.date,
        },
    )


# ============================================
# INVOICE / BILL AUDIT
# ============================================

def audit_document_issue(document, user=None):
    """Log invoice sending / bill approval."""
    log_finance_audit(
        user=user,
        action='post',
        entity_type=document.get_kind_display(),
        entity_id=document.pk,
        reference_number=document.number,
        amount_after=document.total,
        details={
            'contact': str(document.contact),
            'subtotal': document.subtotal,
            'vat_total': document.vat_total,
            'total': document.total,
            'status': document.status,
            'journal_entry': document.journal_entry.entry_number if document.journal_entry else None,
        },
    )


def audit_document_payment(document, amount, entry, user=None):
    """Log a payment applied to an invoice or bill."""
    log_finance_audit(
        user=user,
        action='payment',
        entity_type=document.get_kind_display(),
        entity_id=document.pk,
        reference_number=document.number,
        amount_before=document.amount_paid - amount,
        amount_after=document.amount_paid,
        details={
            'payment_amount': amount,
            'status': document.status,
            'journal_entry': entry.entry_number,
        },
    )


def audit_document_cancel(document, reversal, user=None, reason=''):
    """Log invoice/bill cancellation."""
    log_finance_audit(
        user=user,
        action='cancel',
        entity_type=document.get_kind_display(),
        entity_id=document.pk,
        reference_number=document.number,
        amount_before=document.total,
        amount_after=0,
        reason=reason or 'Document cancelled',
        details={
            'reversal_entry_number': reversal.entry_number if reversal else None,
        },
    )


# ============================================
# VAT RETURN AUDIT
# ============================================

def audit_vat_return_create(vat_return, user=None):
    """Log VAT return creation."""
    log_finance_audit(
        user=user,
        action='create',
        entity_type='VatReturn',
        entity_id=vat_return.pk,
        reference_number=vat_return.return_number,
        amount_after=vat_return.net_vat_due,
        accounting_period=f"{vat_return.period_start} to {vat_return.period_end}",
        details={
            'output_vat': vat_return.output_vat,
            'input_vat': vat_return.input_vat,
            'net_vat_due': vat_return.net_vat_due,
        },
    )


def audit_vat_return_file(vat_return, user=None):
    """Log VAT return filing."""
    log_finance_audit(
        user=user,
        action='file',
        entity_type='VatReturn',
        entity_id=vat_return.pk,
        reference_number=vat_return.return_number,
        amount_after=vat_return.net_vat_due,
        accounting_period=f"{vat_return.period_start} to {vat_return.period_end}",
        details={
            'action': 'VAT Return Filed',
            'filing_reference': vat_return.filing_reference,
            'filed_at': vat_return.filed_at,
        },
    )


# ============================================
# PAYROLL AUDIT
# ============================================

def audit_payroll_approve(run, user=None):
    """Log payroll run approval."""
    log_finance_audit(
        user=user,
        action='approve',
        entity_type='PayrollRun',
        entity_id=run.pk,
        reference_number=run.run_number,
        amount_after=run.total_net,
        accounting_period=f"{run.run_month:02d}/{run.run_year}",
        details={'employee_count': run.items.count()},
    )


def audit_payroll_process(run, user=None):
    """Log payroll processing."""
    log_finance_audit(
        user=user,
        action='process',
        entity_type='PayrollRun',
        entity_id=run.pk,
        reference_number=run.run_number,
        amount_after=run.total_net,
        accounting_period=f"{run.run_month:02d}/{run.run_year}",
        details={
            'action': 'Payroll Processed',
            'total_gross': run.total_gross,
            'total_deductions': run.total_deductions,
            'total_net': run.total_net,
            'journal_entry': run.journal_entry.entry_number if run.journal_entry else None,
        },
    )


def audit_wps_export(run, export, user=None):
    """Log generation of a WPS salary information file."""
    log_finance_audit(
        user=user,
        action='export',
        entity_type='PayrollRun',
        entity_id=run.pk,
        reference_number=run.run_number,
        amount_after=export['total_net'],
        accounting_period=f"{run.run_month:02d}/{run.run_year}",
        details={
            'filename': export['filename'],
            'record_count': export['record_count'],
            'skipped': len(export['ineligible']),
        },
    )
