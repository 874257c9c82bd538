"""
Shared fixtures for invoice and bill tests.
"""
from datetime import date, timedelta

from apps.documents.models import Bill, Contact, DocumentItem, Invoice
from apps.finance.tests.base import BaseAccountingTestCase


class BaseDocumentTestCase(BaseAccountingTestCase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.customer = Contact.objects.create(name='Al Noor Trading LLC', contact_type='customer', trn='100200300400003')
        cls.vendor = Contact.objects.create(name='Gulf Office Supplies', contact_type='vendor')

    def make_invoice(self, lines, doc_date=None, settlement='credit', due_in=30):
        """lines: iterable of dicts of DocumentItem fields; account defaults to Sales Revenue."""
        doc_date = doc_date or date(2025, 1, 10)
        invoice = Invoice.objects.create(
            contact=self.customer,
            date=doc_date,
            due_date=doc_date + timedelta(days=due_in),
            settlement=settlement,
        )
        self._add_items(invoice, lines, self.sales)
        return invoice

    def make_bill(self, lines, doc_date=None, settlement='credit', due_in=30):
        doc_date = doc_date or date(2025, 1, 12)
        bill = Bill.objects.create(
            contact=self.vendor,
            date=doc_date,
            due_date=doc_date + timedelta(days=due_in),
            settlement=settlement,
            reference='GOS-7781',
        )
        self._add_items(bill, lines, self.rent)
        return bill

    def _add_items(self, document, lines, default_account):
        for line in lines:
            fields = {'account': default_account, 'description': 'Item', 'quantity': 1}
            fields.update(line)
            DocumentItem.objects.create(document=document, **fields)
