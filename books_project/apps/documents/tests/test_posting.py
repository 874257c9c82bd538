"""
Invoice and bill tests - line VAT, totals, issue/payment/cancel postings.

Test Cases:
- TC-DOC-01: line totals and VAT (Scenario: AED 50,000 at 5%)
- TC-DOC-02: issuing an invoice posts Dr AR / Cr Revenue / Cr VAT
- TC-DOC-03: approving a bill posts Dr Expense / Dr VAT / Cr AP
- TC-DOC-04: payments move documents to partial / paid
- TC-DOC-05: overdue marking
- TC-DOC-06: cancellation reverses the posting

Run: python manage.py test apps.documents.tests.test_posting
"""
from datetime import date
from decimal import Decimal

from apps.core.exceptions import ValidationError
from apps.documents.models import Bill, DocumentItem, Invoice, TransactionDocument
from apps.documents.posting import (
    POSTING_RULES, cancel_document, compute_line, issue_document, mark_overdue, record_payment,
)
from apps.finance.models import AccountMapping, JournalEntry, JournalSource
from apps.settings_app.models import AuditLog

from .base import BaseDocumentTestCase


def entry_lines(entry):
    return sorted(entry.lines.values_list('account__code', 'debit', 'credit'))


class LineCalculationTests(BaseDocumentTestCase):

    def line(self, **fields):
        fields.setdefault('account', self.sales)
        return DocumentItem(**fields)

    def test_tc_doc_01_standard_rated_line(self):
        self.assertEqual(compute_line(self.line(quantity=1, unit_price=5000000)), (5000000, 250000))

    def test_fractional_quantity_and_discount(self):
        # 2.5 x 10.01 = 25.025 -> 25.03, less 0.03 discount = 25.00, VAT 1.25
        item = self.line(quantity=Decimal('2.5'), unit_price=1001, discount=3)
        self.assertEqual(compute_line(item), (2500, 125))

    def test_zero_rated_and_exempt(self):
        self.assertEqual(compute_line(self.line(quantity=1, unit_price=100000, vat_rate_permyriad=0)), (100000, 0))
        self.assertEqual(compute_line(self.line(quantity=1, unit_price=100000, is_exempt=True)), (100000, 0))

    def test_invalid_lines(self):
        for fields in ({'quantity': -1, 'unit_price': 100},
                       {'quantity': 1, 'unit_price': -100},
                       {'quantity': 1, 'unit_price': 100, 'discount': -1},
                       {'quantity': 1, 'unit_price': 100, 'discount': 101}):
            with self.assertRaises(ValidationError):
                compute_line(self.line(**fields))

    def test_document_totals(self):
        invoice = self.make_invoice([
            {'unit_price': 5000000},
            {'unit_price': 100000, 'vat_rate_permyriad': 0},
        ])
        invoice.calculate_totals()
        self.assertEqual(invoice.subtotal, 5100000)
        self.assertEqual(invoice.vat_total, 250000)
        self.assertEqual(invoice.total, 5350000)
        self.assertEqual(invoice.balance_due, 5350000)


class IssueTests(BaseDocumentTestCase):

    def test_tc_doc_02_invoice_posting(self):
        invoice = self.make_invoice([{'quantity': 1, 'unit_price': 5000000}])
        entry = issue_document(invoice, user='tester')

        self.assertEqual(invoice.status, 'sent')
        self.assertEqual(invoice.journal_entry, entry)
        self.assertEqual((invoice.subtotal, invoice.vat_total, invoice.total), (5000000, 250000, 5250000))
        self.assertTrue(invoice.number.startswith('INV-2025-'))

        self.assertEqual(entry.status, 'posted')
        self.assertEqual(entry.source, (JournalSource.INVOICE, invoice.pk))
        self.assertEqual(entry.reference, invoice.number)
        self.assertEqual(entry_lines(entry), [
            ('1210', 5250000, 0),
            ('2210', 0, 250000),
            ('4100', 0, 5000000),
        ])
        self.assertEqual(self.balance(self.receivables), 5250000)
        self.assertEqual(self.balance(self.vat_output), 250000)
        self.assertTrue(AuditLog.objects.filter(model='Finance.Invoice', action='post').exists())

    def test_tc_doc_03_bill_posting(self):
        bill = self.make_bill([{'unit_price': 1000000}])
        entry = issue_document(bill)

        self.assertEqual(bill.status, 'approved')
        self.assertTrue(bill.number.startswith('BILL-2025-'))
        self.assertEqual(entry.source, (JournalSource.BILL, bill.pk))
        self.assertEqual(entry_lines(entry), [
            ('1310', 50000, 0),
            ('2110', 0, 1050000),
            ('6200', 1000000, 0),
        ])
        self.assertEqual(self.balance(self.payables), 1050000)

    def test_items_grouped_by_account(self):
        invoice = self.make_invoice([
            {'unit_price': 100000},
            {'unit_price': 200000},
            {'unit_price': 300000, 'account': self.other_income},
        ])
        entry = issue_document(invoice)
        self.assertEqual(entry_lines(entry), [
            ('1210', 630000, 0),
            ('2210', 0, 30000),
            ('4100', 0, 300000),
            ('4300', 0, 300000),
        ])

    def test_per_line_vat_rounding_stays_balanced(self):
        # Each 0.10 AED line carries half a fil of VAT, rounded up per line
        invoice = self.make_invoice([{'unit_price': 10}, {'unit_price': 10}, {'unit_price': 10}])
        entry = issue_document(invoice)
        self.assertEqual(invoice.vat_total, 3)
        self.assertEqual(entry.total_debit, entry.total_credit)
        self.assertEqual(entry.total_debit, 33)

    def test_mixed_rates(self):
        invoice = self.make_invoice([
            {'unit_price': 1000000},
            {'unit_price': 500000, 'vat_rate_permyriad': 0},
            {'unit_price': 200000, 'is_exempt': True},
        ])
        entry = issue_document(invoice)
        self.assertEqual(invoice.total, 1750000)
        self.assertEqual(entry_lines(entry), [
            ('1210', 1750000, 0),
            ('2210', 0, 50000),
            ('4100', 0, 1700000),
        ])

    def test_cash_settlement(self):
        invoice = self.make_invoice([{'unit_price': 100000}], settlement='cash')
        entry = issue_document(invoice)

        self.assertEqual(invoice.status, 'paid')
        self.assertEqual(invoice.amount_paid, 105000)
        self.assertEqual(entry_lines(entry), [
            ('1120', 105000, 0),
            ('2210', 0, 5000),
            ('4100', 0, 100000),
        ])
        self.assertEqual(self.balance(self.receivables), 0)

    def test_wrong_account_type_rejected(self):
        invoice = self.make_invoice([{'unit_price': 100000, 'account': self.rent}])
        with self.assertRaises(ValidationError):
            issue_document(invoice)
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, 'draft')
        self.assertFalse(JournalEntry.objects.exists())

    def test_missing_mapping_rejected(self):
        AccountMapping.objects.filter(transaction_type='sales_invoice_vat').delete()
        invoice = self.make_invoice([{'unit_price': 100000}])
        with self.assertRaises(ValidationError) as ctx:
            issue_document(invoice)
        self.assertIn('sales_invoice_vat', ctx.exception.messages[0])
        self.assertEqual(self.balance(self.receivables), 0)

    def test_empty_or_reissued_document_rejected(self):
        empty = self.make_invoice([])
        with self.assertRaises(ValidationError):
            issue_document(empty)

        invoice = self.make_invoice([{'unit_price': 100000}])
        issue_document(invoice)
        with self.assertRaises(ValidationError):
            issue_document(invoice)

    def test_kind_managers(self):
        invoice = self.make_invoice([{'unit_price': 100000}])
        bill = self.make_bill([{'unit_price': 100000}])
        self.assertEqual(list(Invoice.objects.all()), [invoice])
        self.assertEqual(list(Bill.objects.all()), [bill])
        self.assertEqual(TransactionDocument.objects.count(), 2)
        self.assertEqual(POSTING_RULES[invoice.kind]['issued_status'], 'sent')

        issue_document(invoice)
        self.assertEqual(list(Invoice.objects.open().values_list('pk', flat=True)), [invoice.pk])
        self.assertFalse(Bill.objects.issued().exists())


class PaymentTests(BaseDocumentTestCase):

    def setUp(self):
        self.invoice = self.make_invoice([{'quantity': 1, 'unit_price': 5000000}])
        issue_document(self.invoice)

    def test_tc_doc_04_partial_then_full_payment(self):
        entry = record_payment(self.invoice, 2000000, date=date(2025, 1, 20), user='tester')

        self.assertEqual(self.invoice.status, 'partial')
        self.assertEqual(self.invoice.amount_paid, 2000000)
        self.assertEqual(self.invoice.balance_due, 3250000)
        self.assertEqual(entry.source, (JournalSource.PAYMENT, self.invoice.pk))
        self.assertEqual(entry_lines(entry), [('1120', 2000000, 0), ('1210', 0, 2000000)])

        record_payment(self.invoice, 3250000, date=date(2025, 1, 25))
        self.assertEqual(self.invoice.status, 'paid')
        self.assertEqual(self.balance(self.receivables), 0)
        self.assertEqual(self.balance(self.bank), 5250000)
        self.assertEqual(AuditLog.objects.filter(action='payment').count(), 2)

    def test_overpayment_rejected(self):
        with self.assertRaises(ValidationError):
            record_payment(self.invoice, 5250001)
        with self.assertRaises(ValidationError):
            record_payment(self.invoice, 0)
        self.assertEqual(self.balance(self.bank), 0)

    def test_bill_payment(self):
        bill = self.make_bill([{'unit_price': 1000000}])
        issue_document(bill)
        entry = record_payment(bill, 1050000, date=date(2025, 1, 30))

        self.assertEqual(bill.status, 'paid')
        self.assertEqual(entry_lines(entry), [('1120', 0, 1050000), ('2110', 1050000, 0)])
        self.assertEqual(self.balance(self.payables), 0)

    def test_draft_cannot_be_paid(self):
        draft = self.make_invoice([{'unit_price': 100000}])
        with self.assertRaises(ValidationError):
            record_payment(draft, 100)


class OverdueTests(BaseDocumentTestCase):

    def test_tc_doc_05_mark_overdue(self):
        late = self.make_invoice([{'unit_price': 100000}], doc_date=date(2025, 1, 1), due_in=30)
        current = self.make_invoice([{'unit_price': 100000}], doc_date=date(2025, 2, 20), due_in=30)
        draft = self.make_invoice([{'unit_price': 100000}], doc_date=date(2025, 1, 1), due_in=30)
        issue_document(late)
        issue_document(current)

        self.assertEqual(mark_overdue(as_of=date(2025, 3, 1), dry_run=True), [late.number])
        late.refresh_from_db()
        self.assertEqual(late.status, 'sent')

        self.assertEqual(mark_overdue(as_of=date(2025, 3, 1)), [late.number])
        late.refresh_from_db()
        current.refresh_from_db()
        draft.refresh_from_db()
        self.assertEqual((late.status, current.status, draft.status), ('overdue', 'sent', 'draft'))

        # A partial payment keeps it overdue; settling it in full clears it
        record_payment(late, 5000)
        self.assertEqual(late.status, 'overdue')
        record_payment(late, late.balance_due)
        self.assertEqual(late.status, 'paid')


class CancelTests(BaseDocumentTestCase):

    def test_tc_doc_06_cancel_reverses_posting(self):
        invoice = self.make_invoice([{'unit_price': 5000000}])
        entry = issue_document(invoice)

        reversal = cancel_document(invoice, user='tester', reason='Customer withdrew order')

        self.assertEqual(invoice.status, 'cancelled')
        self.assertEqual(reversal.reversal_of, entry)
        self.assertEqual(self.balance(self.receivables), 0)
        self.assertEqual(self.balance(self.sales), 0)
        self.assertEqual(self.balance(self.vat_output), 0)
        self.assertTrue(AuditLog.objects.filter(action='cancel', model='Finance.Invoice').exists())

        with self.assertRaises(ValidationError):
            cancel_document(invoice)

    def test_cancel_draft_posts_nothing(self):
        invoice = self.make_invoice([{'unit_price': 5000000}])
        self.assertIsNone(cancel_document(invoice))
        self.assertEqual(invoice.status, 'cancelled')
        self.assertFalse(JournalEntry.objects.exists())

    def test_cancel_with_payments_rejected(self):
        invoice = self.make_invoice([{'unit_price': 5000000}])
        issue_document(invoice)
        record_payment(invoice, 100000)
        with self.assertRaises(ValidationError):
            cancel_document(invoice)
        self.assertEqual(invoice.status, 'partial')

    def test_cancel_cash_sale(self):
        invoice = self.make_invoice([{'unit_price': 100000}], settlement='cash')
        issue_document(invoice)
        cancel_document(invoice, reason='Refunded at counter')

        self.assertEqual(invoice.amount_paid, 0)
        self.assertEqual(self.balance(self.bank), 0)
