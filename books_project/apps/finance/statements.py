"""
Financial statements - Trial Balance, Balance Sheet, Profit & Loss.

Balances are derived from posted journal lines (opening balances are
posted entries too), not from the cached Account.current_balance, so a
statement can be run as of any date. Each statement is computed from one
aggregate query inside a single transaction, which gives every account the
same snapshot.

All amounts are integer fils. Balances are signed on the account's normal
side: a positive liability balance is a credit balance.
"""
import logging

from django.db import models, transaction
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce

from .models import Account, AccountType, AccountSubType, POSTED_STATUSES


logger = logging.getLogger(__name__)

CURRENT_PERIOD_EARNINGS = 'Current Period Earnings'


def _account_balances(start=None, end=None):
    """
    One query: every account annotated with the sum of its posted debits
    and credits in [start, end]. Returns a list of (account, balance).
    """
    line_filter = Q(journal_lines__journal_entry__status__in=POSTED_STATUSES)
    if start is not None:
        line_filter &= Q(journal_lines__journal_entry__date__gte=start)
    if end is not None:
        line_filter &= Q(journal_lines__journal_entry__date__lte=end)

    accounts = Account.objects.annotate(
        period_debit=Coalesce(
            Sum('journal_lines__debit', filter=line_filter), 0, output_field=models.BigIntegerField()
        ),
        period_credit=Coalesce(
            Sum('journal_lines__credit', filter=line_filter), 0, output_field=models.BigIntegerField()
        ),
    ).order_by('code')

    return [(account, account.balance_delta(account.period_debit, account.period_credit)) for account in accounts]


def _row(account, balance):
    return {
        'code': account.code,
        'name': account.name,
        'type': account.account_type,
        'sub_type': account.sub_type,
        'balance': balance,
    }


def trial_balance(as_of=None):
    """
    Every account with a nonzero balance, the balance placed on its normal
    side (or the opposite side when negative).

    Returns:
        {'as_of', 'rows': [{code, name, type, debit, credit}], 'total_debit',
         'total_credit', 'is_balanced'}
    """
    with transaction.atomic():
        balances = _account_balances(end=as_of)

    rows = []
    total_debit = total_credit = 0
    for account, balance in balances:
        if balance == 0:
            continue
        on_debit_side = account.debit_increases == (balance > 0)
        debit = abs(balance) if on_debit_side else 0
        credit = 0 if on_debit_side else abs(balance)
        rows.append({
            'code': account.code,
            'name': account.name,
            'type': account.account_type,
            'debit': debit,
            'credit': credit,
        })
        total_debit += debit
        total_credit += credit

    if total_debit != total_credit:
        logger.warning("Trial balance as of %s is out by %s fils", as_of, total_debit - total_credit)

    return {
        'as_of': as_of,
        'rows': rows,
        'total_debit': total_debit,
        'total_credit': total_credit,
        'is_balanced': total_debit == total_credit,
    }


def balance_sheet(as_of):
    """
    Statement of financial position as of a date.

    Assets split current/fixed by sub_type (anything not fixed_asset is
    current); liabilities split current/long_term; equity includes a
    synthetic Current Period Earnings row (revenue - COGS - expenses to
    date) since income accounts are never closed to retained earnings here.
    """
    with transaction.atomic():
        balances = _account_balances(end=as_of)

    current_assets, fixed_assets = [], []
    current_liabilities, long_term_liabilities = [], []
    equity = []
    earnings = 0

    for account, balance in balances:
        kind = account.account_type
        if kind == AccountType.REVENUE:
            earnings += balance
            continue
        if kind in (AccountType.EXPENSE, AccountType.COGS):
            earnings -= balance
            continue
        if balance == 0:
            continue
        row = _row(account, balance)
        if kind == AccountType.ASSET:
            (fixed_assets if account.sub_type == AccountSubType.FIXED_ASSET else current_assets).append(row)
        elif kind == AccountType.LIABILITY:
            if account.sub_type == AccountSubType.LONG_TERM_LIABILITY:
                long_term_liabilities.append(row)
            else:
                current_liabilities.append(row)
        else:
            equity.append(row)

    if earnings:
        equity.append({
            'code': '',
            'name': CURRENT_PERIOD_EARNINGS,
            'type': AccountType.EQUITY,
            'sub_type': AccountSubType.EQUITY,
            'balance': earnings,
        })

    def total(rows):
        return sum(row['balance'] for row in rows)

    current_assets_total = total(current_assets)
    fixed_assets_total = total(fixed_assets)
    current_liabilities_total = total(current_liabilities)
    long_term_liabilities_total = total(long_term_liabilities)

    assets_total = current_assets_total + fixed_assets_total
    liabilities_total = current_liabilities_total + long_term_liabilities_total
    equity_total = total(equity)
    total_liabilities_and_equity = liabilities_total + equity_total

    if assets_total != total_liabilities_and_equity:
        logger.warning(
            "Balance sheet as of %s does not balance: assets %s, liabilities + equity %s",
            as_of, assets_total, total_liabilities_and_equity,
        )

    return {
        'as_of': as_of,
        'assets': {
            'current': current_assets,
            'fixed': fixed_assets,
            'current_total': current_assets_total,
            'fixed_total': fixed_assets_total,
        },
        'liabilities': {
            'current': current_liabilities,
            'long_term': long_term_liabilities,
            'current_total': current_liabilities_total,
            'long_term_total': long_term_liabilities_total,
        },
        'equity': equity,
        'current_period_earnings': earnings,
        'assets_total': assets_total,
        'liabilities_total': liabilities_total,
        'equity_total': equity_total,
        'total_liabilities_and_equity': total_liabilities_and_equity,
        'is_balanced': assets_total == total_liabilities_and_equity,
    }


def profit_and_loss(start, end):
    """
    Income statement for entries dated in [start, end].

    gross_profit = total_revenue - total_cogs
    net_profit = gross_profit - total_expenses + total_other_income
    """
    with transaction.atomic():
        balances = _account_balances(start=start, end=end)

    revenue, other_income, cogs, expenses = [], [], [], []
    for account, balance in balances:
        if balance == 0:
            continue
        kind = account.account_type
        if kind == AccountType.REVENUE:
            target = other_income if account.sub_type == AccountSubType.OTHER_INCOME else revenue
        elif kind == AccountType.COGS:
            target = cogs
        elif kind == AccountType.EXPENSE:
            target = expenses
        else:
            continue
        target.append(_row(account, balance))

    total_revenue = sum(row['balance'] for row in revenue)
    total_other_income = sum(row['balance'] for row in other_income)
    total_cogs = sum(row['balance'] for row in cogs)
    total_expenses = sum(row['balance'] for row in expenses)
    gross_profit = total_revenue - total_cogs
    net_profit = gross_profit - total_expenses + total_other_income

    return {
        'start': start,
        'end': end,
        'revenue': revenue,
        'cogs': cogs,
        'expenses': expenses,
        'other_income': other_income,
        'total_revenue': total_revenue,
        'total_cogs': total_cogs,
        'gross_profit': gross_profit,
        'total_expenses': total_expenses,
        'total_other_income': total_other_income,
        'net_profit': net_profit,
    }
