"""
VAT return tests - Form 201 boxes, per-rate buckets, filing.

Test Cases:
- TC-VAT-01: output VAT from invoices, input VAT from bills, net due
- TC-VAT-02: zero-rated and exempt supplies land in their own boxes
- TC-VAT-03: cancelled and draft documents are left out
- TC-VAT-04: filing is one-shot and filed returns are immutable
- TC-VAT-05: registration thresholds

Run: python manage.py test apps.finance.tests.test_vat
"""
from datetime import date

from apps.core.exceptions import AlreadyFiledError, ConflictError, ValidationError
from apps.core.money import to_minor_units
from apps.core.utils import transition_status
from apps.documents.posting import cancel_document, issue_document
from apps.documents.tests.base import BaseDocumentTestCase
from apps.finance.models import VatReturn
from apps.finance.vat import (
    as_form_201, calculate_vat_return, create_vat_return, file_return,
    recalculate_return, vat_registration_status,
)
from apps.settings_app.models import AuditLog


Q1_START = date(2025, 1, 1)
Q1_END = date(2025, 3, 31)


class VatReturnTests(BaseDocumentTestCase):

    def setUp(self):
        # AED 50,000 standard rated sale, AED 10,000 standard rated expense
        self.invoice = self.make_invoice([{'quantity': 1, 'unit_price': 5000000}])
        issue_document(self.invoice)
        self.bill = self.make_bill([{'unit_price': 1000000}])
        issue_document(self.bill)

    def test_tc_vat_01_net_vat_due(self):
        figures = calculate_vat_return(Q1_START, Q1_END)

        self.assertEqual(figures['box1_standard_rated_supplies'], 5000000)
        self.assertEqual(figures['box1_vat'], 250000)
        self.assertEqual(figures['box6_standard_rated_expenses'], 1000000)
        self.assertEqual(figures['output_vat'], 250000)
        self.assertEqual(figures['input_vat'], 50000)
        self.assertEqual(figures['net_vat_due'], 200000)

    def test_tc_vat_02_zero_rated_and_exempt(self):
        invoice = self.make_invoice([
            {'unit_price': 300000, 'vat_rate_permyriad': 0},
            {'unit_price': 200000, 'is_exempt': True},
        ], doc_date=date(2025, 2, 1))
        issue_document(invoice)

        figures = calculate_vat_return(Q1_START, Q1_END)
        self.assertEqual(figures['box1_standard_rated_supplies'], 5000000)
        self.assertEqual(figures['box4_zero_rated_supplies'], 300000)
        self.assertEqual(figures['box5_exempt_supplies'], 200000)
        self.assertEqual(figures['output_vat'], 250000)
        self.assertEqual(
            [(b['rate'], b['taxable'], b['vat']) for b in figures['output_buckets']],
            [('5.00%', 5000000, 250000), ('0.00%', 300000, 0), ('Exempt', 200000, 0)],
        )

    def test_tc_vat_03_excludes_cancelled_draft_and_out_of_period(self):
        cancelled = self.make_invoice([{'unit_price': 1000000}])
        issue_document(cancelled)
        cancel_document(cancelled, reason='Duplicate')
        self.make_invoice([{'unit_price': 1000000}])  # draft
        april = self.make_invoice([{'unit_price': 1000000}], doc_date=date(2025, 4, 2))
        issue_document(april)

        figures = calculate_vat_return(Q1_START, Q1_END)
        self.assertEqual(figures['output_vat'], 250000)

    def test_refund_position(self):
        bill = self.make_bill([{'unit_price': 10000000, 'account': self.equipment}])
        issue_document(bill)

        vat_return = create_vat_return(Q1_START, Q1_END)
        self.assertEqual(vat_return.input_vat, 550000)
        self.assertEqual(vat_return.net_vat_due, -300000)
        self.assertTrue(vat_return.is_refund)

    def test_form_201(self):
        vat_return = create_vat_return(Q1_START, Q1_END, user='accountant')
        form = vat_return.as_form_201()

        self.assertEqual(form, as_form_201(calculate_vat_return(Q1_START, Q1_END)))
        self.assertEqual(form['box1_vat'], 250000)
        self.assertEqual(form['box9_net_vat_due'], 200000)
        self.assertTrue(vat_return.return_number.startswith('VAT-2025-'))
        self.assertTrue(AuditLog.objects.filter(model='Finance.VatReturn', action='create').exists())

    def test_recalculate_draft(self):
        vat_return = create_vat_return(Q1_START, Q1_END)
        invoice = self.make_invoice([{'unit_price': 1000000}], doc_date=date(2025, 3, 1))
        issue_document(invoice)

        recalculate_return(vat_return)
        self.assertEqual(vat_return.output_vat, 300000)

    def test_invalid_period(self):
        with self.assertRaises(ValidationError):
            calculate_vat_return(Q1_END, Q1_START)


class VatFilingTests(BaseDocumentTestCase):

    def setUp(self):
        invoice = self.make_invoice([{'quantity': 1, 'unit_price': 5000000}])
        issue_document(invoice)
        self.vat_return = create_vat_return(Q1_START, Q1_END)

    def test_tc_vat_04_file_once(self):
        filed = file_return(self.vat_return.pk, 'FTA-2025-Q1-001', user='accountant')

        self.assertEqual(filed.status, 'filed')
        self.assertEqual(filed.filing_reference, 'FTA-2025-Q1-001')
        self.assertEqual(filed.filed_by, 'accountant')
        self.assertIsNotNone(filed.filed_at)
        self.assertTrue(AuditLog.objects.filter(model='Finance.VatReturn', action='file').exists())

        with self.assertRaises(AlreadyFiledError) as ctx:
            file_return(self.vat_return.pk, 'FTA-2025-Q1-002')
        self.assertIn('FTA-2025-Q1-001', str(ctx.exception))
        self.assertEqual(VatReturn.objects.get(pk=self.vat_return.pk).filing_reference, 'FTA-2025-Q1-001')

    def test_filing_reference_required(self):
        with self.assertRaises(ValidationError):
            file_return(self.vat_return.pk, '   ')
        self.assertEqual(VatReturn.objects.get(pk=self.vat_return.pk).status, 'draft')

    def test_concurrent_filing_conflict(self):
        # Another caller wins the draft -> filed update first
        transition_status(VatReturn, self.vat_return.pk, 'draft', 'filed', filing_reference='FTA-OTHER')
        with self.assertRaises(ConflictError):
            transition_status(VatReturn, self.vat_return.pk, 'draft', 'filed', filing_reference='FTA-MINE')

    def test_filed_return_is_immutable(self):
        file_return(self.vat_return.pk, 'FTA-2025-Q1-001')
        vat_return = VatReturn.objects.get(pk=self.vat_return.pk)

        vat_return.notes = 'Amended'
        with self.assertRaises(AlreadyFiledError):
            vat_return.save()
        with self.assertRaises(AlreadyFiledError):
            recalculate_return(vat_return)

    def test_overlapping_period_rejected_after_filing(self):
        file_return(self.vat_return.pk, 'FTA-2025-Q1-001')
        with self.assertRaises(ValidationError):
            create_vat_return(date(2025, 3, 1), date(2025, 5, 31))
        create_vat_return(date(2025, 4, 1), date(2025, 6, 30))


class VatRegistrationTests(BaseDocumentTestCase):

    def test_tc_vat_05_thresholds(self):
        self.assertTrue(vat_registration_status(to_minor_units(400000))['required'])
        self.assertTrue(vat_registration_status(to_minor_units(375000))['required'])
        voluntary = vat_registration_status(to_minor_units(200000))
        self.assertFalse(voluntary['required'])
        self.assertTrue(voluntary['voluntary'])
        below = vat_registration_status(to_minor_units(100000))
        self.assertFalse(below['required'] or below['voluntary'])
