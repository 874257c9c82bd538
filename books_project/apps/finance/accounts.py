"""
Chart of Accounts service - creation, hierarchy and lifecycle rules.
"""
import logging

from django.db import transaction
from django.utils import timezone

from apps.core.exceptions import ValidationError
from .ledger import create_entry, post_entry
from .models import (
    Account, AccountMapping, AccountType, JournalSource, NormalBalance,
    BALANCE_SHEET_TYPES, DEBIT_NORMAL_TYPES,
)


logger = logging.getLogger(__name__)

OPENING_BALANCE_EQUITY_CODE = '3300'


def normal_balance_of(account_type):
    """Debit for asset, expense and COGS accounts; credit for the rest."""
    if account_type not in AccountType.values:
        raise ValidationError(f"Unknown account type '{account_type}'.")
    if account_type in DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


def create_account(code, name, account_type, sub_type='', parent=None,
                   opening_balance=0, description='', is_system=False,
                   opening_date=None, user=None):
    """
    Create an account in the chart.

    The parent (if any) must have the same account type. Opening balances
    are only allowed on balance-sheet accounts and are posted as an opening
    journal entry against Opening Balance Equity, dated `opening_date`
    (today by default).
    """
    code = (code or '').strip()
    if not code:
        raise ValidationError('Account code is required.')
    if Account.objects.filter(code=code).exists():
        raise ValidationError(f"Account code {code} already exists.")
    normal_balance_of(account_type)
    if isinstance(opening_balance, bool) or not isinstance(opening_balance, int):
        raise ValidationError(f"Opening balance for {code} must be integer fils.")

    account = Account(
        code=code,
        name=name,
        account_type=account_type,
        sub_type=sub_type,
        parent=parent,
        opening_balance=opening_balance,
        description=description,
        is_system=is_system,
    )
    account.clean()
    with transaction.atomic():
        account.save()
        if opening_balance:
            post_opening_balance(account, opening_balance, entry_date=opening_date, user=user)
            account.refresh_from_db()
    logger.info("Created account %s (%s)", account, account_type)
    return account


def post_opening_balance(account, amount, entry_date=None, user=None):
    """
    Post `amount` fils onto `account` (on its normal side; negative amounts
    land on the other side) with the offset on the Opening Balance Equity
    account. Returns the posted JournalEntry.
    """
    if account.account_type not in BALANCE_SHEET_TYPES:
        raise ValidationError(
            f"Opening balance not allowed for {account.get_account_type_display()} account {account.code}."
        )
    equity = AccountMapping.get_account_or_default('opening_balance_equity', OPENING_BALANCE_EQUITY_CODE)
    if equity.pk == account.pk:
        raise ValidationError(
            f"Account {account.code} is the opening balance equity account and cannot carry an opening balance "
            f"against itself."
        )

    magnitude = abs(amount)
    on_debit = account.debit_increases == (amount > 0)
    lines = [
        (account, magnitude if on_debit else 0, 0 if on_debit else magnitude, 'Opening balance'),
        (equity, 0 if on_debit else magnitude, magnitude if on_debit else 0, f"Opening balance: {account.code}"),
    ]
    entry = create_entry(
        entry_date or timezone.localdate(),
        f"Opening balance: {account}",
        lines,
        source=(JournalSource.OPENING, account.pk),
        reference=account.code,
    )
    entry = post_entry(entry, user=user)
    logger.info("Opening balance of %s fils posted to %s in %s", amount, account.code, entry.entry_number)
    return entry


def get_children(parent_id):
    """Direct children of an account, ordered by code."""
    return Account.objects.filter(parent_id=parent_id).order_by('code')


def get_descendants(account):
    """All accounts below `account` in the tree (breadth-first)."""
    found = []
    frontier = [account.pk]
    while frontier:
        children = list(Account.objects.filter(parent_id__in=frontier).order_by('code'))
        found.extend(children)
        frontier = [child.pk for child in children]
    return found


def set_parent(account, parent):
    """
    Move `account` under `parent` (or to the top level when parent is None).
    Rejects type mismatches and anything that would create a cycle.
    """
    if parent is not None:
        if parent.pk == account.pk:
            raise ValidationError(f"Account {account.code} cannot be its own parent.")
        ancestor = parent
        while ancestor is not None:
            if ancestor.pk == account.pk:
                raise ValidationError(
                    f"Moving {account.code} under {parent.code} would create a cycle in the chart of accounts."
                )
            ancestor = ancestor.parent
    account.parent = parent
    account.clean()
    account.save(update_fields=['parent', 'updated_at'])
    return account


def deactivate_account(account):
    """Soft-deactivate. Posting to an inactive account is rejected by the ledger."""
    if not account.is_active:
        return account
    account.is_active = False
    account.save(update_fields=['is_active', 'updated_at'])
    logger.info("Deactivated account %s", account)
    return account


def delete_account(account):
    """
    Hard delete, allowed only for empty leaf accounts that nothing references.
    Anything else has to be deactivated instead.
    """
    account.refresh_from_db()
    if account.current_balance != 0:
        raise ValidationError(
            f"Account {account.code} has a balance of {account.current_balance} fils; deactivate it instead."
        )
    if account.children.exists():
        raise ValidationError(f"Account {account.code} has child accounts; deactivate it instead.")
    if account.journal_lines.exists():
        raise ValidationError(f"Account {account.code} has journal lines; deactivate it instead.")
    if account.account_mappings.exists():
        raise ValidationError(f"Account {account.code} is used by an account mapping; remap it first.")
    code = account.code
    account.delete()
    logger.info("Deleted account %s", code)


@transaction.atomic
def load_chart_template(template=None, mappings=None, industry='general'):
    """
    Create the accounts of a chart template that don't exist yet and set
    the default account mappings. Existing accounts are left untouched.

    Without an explicit `template` the UAE base chart is loaded together
    with the add-on accounts for `industry` (see chart_templates.INDUSTRIES).

    Returns (accounts_created, mappings_set).
    """
    from .chart_templates import DEFAULT_MAPPINGS, industry_chart

    template = template or industry_chart(industry)
    mappings = mappings or DEFAULT_MAPPINGS

    created = 0
    by_code = {}
    for row in template:
        code, name, account_type, sub_type, parent_code = row
        account = Account.objects.filter(code=code).first()
        if account is None:
            parent = by_code.get(parent_code) or (
                Account.objects.get(code=parent_code) if parent_code else None
            )
            account = create_account(
                code, name, account_type, sub_type=sub_type, parent=parent,
                is_system=parent_code is None,
            )
            created += 1
        by_code[code] = account

    mapped = 0
    for transaction_type, module, code in mappings:
        account = by_code.get(code) or Account.objects.get(code=code)
        _, was_created = AccountMapping.objects.get_or_create(
            transaction_type=transaction_type,
            defaults={'module': module, 'account': account},
        )
        if was_created:
            mapped += 1

    logger.info(
        "Chart template loaded (%s): %s accounts created, %s mappings set", industry, created, mapped
    )
    return created, mapped
