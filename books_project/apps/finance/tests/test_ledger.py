"""
General ledger tests - posting, the double-entry invariant, reversals and
the cached balance fold.

Test Cases:
- TC-GL-01: posting updates balances on each account's normal side
- TC-GL-02: unbalanced / one-line / zero entries are rejected and change nothing
- TC-GL-03: posting to an inactive account is rejected
- TC-GL-04: reversal mirrors lines, nets balances to zero, only once
- TC-GL-05: cached balances can be verified and rebuilt from the lines

Run: python manage.py test apps.finance.tests.test_ledger
"""
from datetime import date

from apps.core.exceptions import InactiveAccountError, UnbalancedEntryError, ValidationError
from apps.finance.accounts import deactivate_account
from apps.finance.ledger import (
    account_balance_from_lines, create_entry, entries_for_source, post_entry,
    recompute_balances, reverse_entry, unbalanced_entries,
)
from apps.finance.models import Account, JournalEntry, JournalSource
from apps.settings_app.models import AuditLog

from .base import BaseAccountingTestCase


class PostingTests(BaseAccountingTestCase):

    def test_tc_gl_01_post_updates_balances(self):
        """Capital injection: Dr Bank 100,000 / Cr Share Capital 100,000."""
        entry = self.post([(self.bank, 10000000, 0), (self.share_capital, 0, 10000000)])

        self.assertEqual(entry.status, 'posted')
        self.assertEqual(entry.total_debit, 10000000)
        self.assertEqual(entry.total_credit, 10000000)
        self.assertEqual(entry.posted_by, 'tester')
        self.assertIsNotNone(entry.posted_at)
        self.assertTrue(entry.entry_number.startswith('JE-2025-'))
        # Both positive: each on its normal side
        self.assertEqual(self.balance(self.bank), 10000000)
        self.assertEqual(self.balance(self.share_capital), 10000000)

    def test_credit_to_asset_reduces_it(self):
        self.post([(self.bank, 500000, 0), (self.share_capital, 0, 500000)])
        self.post([(self.rent, 200000, 0), (self.bank, 0, 200000)])
        self.assertEqual(self.balance(self.bank), 300000)
        self.assertEqual(self.balance(self.rent), 200000)

    def test_post_leaves_audit_trail(self):
        entry = self.post([(self.bank, 100, 0), (self.share_capital, 0, 100)])
        log = AuditLog.objects.get(model='Finance.JournalEntry', action='post', record_id=str(entry.pk))
        self.assertEqual(log.user, 'tester')
        self.assertEqual(log.changes['affected_accounts'], ['1120', '3100'])

    def test_only_drafts_can_be_posted(self):
        entry = self.post([(self.bank, 100, 0), (self.share_capital, 0, 100)])
        with self.assertRaises(ValidationError):
            post_entry(entry)
        self.assertEqual(self.balance(self.bank), 100)

    def test_source_is_recorded(self):
        entry = create_entry(
            date(2025, 1, 10), 'Invoice', [(self.receivables, 100, 0), (self.sales, 0, 100)],
            source=(JournalSource.INVOICE, 42),
        )
        self.assertEqual(entry.source, ('invoice', 42))
        self.assertEqual(list(entries_for_source(JournalSource.INVOICE, 42)), [entry])
        with self.assertRaises(ValidationError):
            create_entry(date(2025, 1, 10), 'Bad', [(self.receivables, 100, 0)], source=('quote', 1))


class DoubleEntryInvariantTests(BaseAccountingTestCase):

    def test_tc_gl_02_unbalanced_entry_rejected(self):
        entry = create_entry(date(2025, 1, 15), 'Broken', [
            (self.bank, 10000, 0),
            (self.share_capital, 0, 9999),
        ])
        with self.assertRaises(UnbalancedEntryError) as ctx:
            post_entry(entry)

        self.assertEqual(ctx.exception.total_debit, 10000)
        self.assertEqual(ctx.exception.total_credit, 9999)
        self.assertEqual(ctx.exception.difference, 1)
        entry.refresh_from_db()
        self.assertEqual(entry.status, 'draft')
        self.assertEqual(self.balance(self.bank), 0)
        self.assertEqual(self.balance(self.share_capital), 0)

    def test_single_line_rejected(self):
        entry = create_entry(date(2025, 1, 15), 'One line', [(self.bank, 10000, 0)])
        with self.assertRaises(UnbalancedEntryError):
            post_entry(entry)

    def test_malformed_lines_rejected(self):
        bad_lines = [
            (self.bank, -100, 0),
            (self.bank, 100, 100),
            (self.bank, 0, 0),
            (self.bank, 1.5, 0),
            ('1120', 100, 0),
        ]
        for line in bad_lines:
            with self.assertRaises(ValidationError):
                create_entry(date(2025, 1, 15), 'Bad line', [line, (self.share_capital, 0, 100)])
        self.assertFalse(JournalEntry.objects.exists())

    def test_tc_gl_03_inactive_account_rejected(self):
        deactivate_account(self.rent)
        entry = create_entry(date(2025, 1, 15), 'Rent', [(self.rent, 500, 0), (self.bank, 0, 500)])

        with self.assertRaises(InactiveAccountError) as ctx:
            post_entry(entry)
        self.assertEqual(ctx.exception.account_codes, ['6200'])
        self.assertIn('6200 - Rent Expense', str(ctx.exception))
        self.assertEqual(self.balance(self.bank), 0)


class ReversalTests(BaseAccountingTestCase):

    def setUp(self):
        self.original = self.post([
            (self.receivables, 5250000, 0),
            (self.sales, 0, 5000000),
            (self.vat_output, 0, 250000),
        ])

    def test_tc_gl_04_reversal_mirrors_lines(self):
        reversal = reverse_entry(self.original, user='tester', reason='Raised in error', date=date(2025, 1, 20))

        self.assertEqual(reversal.status, 'posted')
        self.assertEqual(reversal.reversal_of, self.original)
        self.assertEqual(reversal.source, (JournalSource.REVERSAL, self.original.pk))
        self.assertEqual(reversal.reference, f'REV-{self.original.entry_number}')
        mirrored = sorted(reversal.lines.values_list('account__code', 'debit', 'credit'))
        self.assertEqual(mirrored, [('1210', 0, 5250000), ('2210', 250000, 0), ('4100', 5000000, 0)])

        for account in (self.receivables, self.sales, self.vat_output):
            self.assertEqual(self.balance(account), 0)

    def test_original_is_left_untouched(self):
        reverse_entry(self.original, reason='Raised in error')
        self.original.refresh_from_db()
        self.assertEqual(self.original.status, 'posted')
        self.assertTrue(self.original.is_reversed)
        self.assertFalse(self.original.is_reversible)
        self.assertFalse(JournalEntry.objects.filter(status='reversed').exists())

    def test_cannot_reverse_twice(self):
        first = reverse_entry(self.original, reason='Raised in error')
        with self.assertRaises(ValidationError) as ctx:
            reverse_entry(self.original, reason='Again')
        self.assertIn(first.entry_number, ctx.exception.messages[0])
        self.assertEqual(JournalEntry.objects.filter(reversal_of=self.original).count(), 1)

    def test_cannot_reverse_draft(self):
        draft = create_entry(date(2025, 1, 15), 'Draft', [(self.bank, 100, 0), (self.share_capital, 0, 100)])
        with self.assertRaises(ValidationError):
            reverse_entry(draft)

    def test_reversal_is_audited(self):
        reverse_entry(self.original, user='tester', reason='Raised in error')
        log = AuditLog.objects.get(action='reverse', record_id=str(self.original.pk))
        self.assertEqual(log.changes['reason'], 'Raised in error')


class BalanceFoldTests(BaseAccountingTestCase):

    def test_tc_gl_05_fold_matches_cache(self):
        self.post([(self.bank, 800000, 0), (self.share_capital, 0, 800000)], entry_date=date(2025, 1, 1))
        self.post([(self.rent, 300000, 0), (self.bank, 0, 300000)], entry_date=date(2025, 2, 1))

        self.assertEqual(account_balance_from_lines(self.bank), 500000)
        self.assertEqual(account_balance_from_lines(self.bank, as_of=date(2025, 1, 31)), 800000)
        self.assertEqual(recompute_balances(fix=False), [])
        self.assertFalse(unbalanced_entries().exists())

    def test_drift_is_detected_and_rebuilt(self):
        self.post([(self.bank, 800000, 0), (self.share_capital, 0, 800000)])
        Account.objects.filter(pk=self.bank.pk).update(current_balance=1)

        drift = recompute_balances(fix=False)
        self.assertEqual([(row['account'].code, row['cached'], row['computed']) for row in drift],
                         [('1120', 1, 800000)])
        self.assertEqual(self.balance(self.bank), 1)

        recompute_balances(fix=True, user='tester')
        self.assertEqual(self.balance(self.bank), 800000)
        self.assertEqual(recompute_balances(fix=False), [])
        self.assertTrue(AuditLog.objects.filter(action='rebuild', model='Finance.Account').exists())
