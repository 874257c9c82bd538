"""
Transaction documents - sales invoices and vendor bills.

Invoices and bills share one table tagged by `kind`; the Invoice and Bill
proxies give each kind its own manager. How a kind posts to the ledger
lives in apps.documents.posting.POSTING_RULES.
"""
from django.db import models

from apps.core.models import BaseModel
from apps.core.money import VatRate
from apps.core.utils import generate_number
from apps.core.exceptions import ValidationError


class Contact(BaseModel):
    """Customer or vendor."""
    CONTACT_TYPE_CHOICES = [
        ('customer', 'Customer'),
        ('vendor', 'Vendor'),
        ('both', 'Customer & Vendor'),
    ]

    name = models.CharField(max_length=200)
    contact_type = models.CharField(max_length=20, choices=CONTACT_TYPE_CHOICES, default='customer')
    trn = models.CharField(max_length=15, blank=True, verbose_name='TRN')
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class DocumentKind(models.TextChoices):
    INVOICE = 'invoice', 'Invoice'
    BILL = 'bill', 'Bill'


class DocumentQuerySet(models.QuerySet):

    def issued(self):
        """Documents that have been posted to the ledger and not cancelled."""
        return self.exclude(status__in=['draft', 'cancelled'])

    def open(self):
        """Issued documents with an outstanding balance."""
        return self.issued().exclude(status='paid')


class DocumentKindManager(models.Manager):

    def __init__(self, kind=None):
        super().__init__()
        self.kind = kind

    def get_queryset(self):
        queryset = DocumentQuerySet(self.model, using=self._db)
        if self.kind:
            queryset = queryset.filter(kind=self.kind)
        return queryset

    def issued(self):
        return self.get_queryset().issued()

    def open(self):
        return self.get_queryset().open()


class TransactionDocument(BaseModel):
    """
    Invoice or Bill.

    Invariants:
        subtotal = sum(item.line_total)
        vat_total = sum(item.vat_amount)
        total = subtotal + vat_total
        0 <= amount_paid <= total
    """
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('sent', 'Sent'),          # Invoices
        ('approved', 'Approved'),  # Bills
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
        ('overdue', 'Overdue'),
        ('cancelled', 'Cancelled'),
    ]

    SETTLEMENT_CHOICES = [
        ('credit', 'On Account'),
        ('cash', 'Cash / Bank'),
    ]

    kind = models.CharField(max_length=10, choices=DocumentKind.choices)
    number = models.CharField(max_length=50, unique=True, editable=False)
    contact = models.ForeignKey(Contact, on_delete=models.PROTECT, related_name='documents')
    date = models.DateField()
    due_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    settlement = models.CharField(max_length=10, choices=SETTLEMENT_CHOICES, default='credit')
    reference = models.CharField(max_length=100, blank=True)  # Vendor's own bill number
    notes = models.TextField(blank=True)

    # Amounts (fils)
    subtotal = models.BigIntegerField(default=0)
    vat_total = models.BigIntegerField(default=0)
    total = models.BigIntegerField(default=0)
    amount_paid = models.BigIntegerField(default=0)

    # Link to accounting journal entry (single source of truth)
    journal_entry = models.ForeignKey(
        'finance.JournalEntry',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='documents'
    )

    objects = DocumentKindManager()

    class Meta:
        ordering = ['-date', '-created_at']

    def __str__(self):
        return f"{self.number} - {self.contact.name}"

    def save(self, *args, **kwargs):
        if not self.number:
            series = 'INVOICE' if self.kind == DocumentKind.INVOICE else 'BILL'
            self.number = generate_number(series, TransactionDocument, 'number', year=self.date.year)
        super().save(*args, **kwargs)

    def clean(self):
        if self.kind not in DocumentKind.values:
            raise ValidationError(f"Unknown document kind '{self.kind}'.")
        if self.due_date < self.date:
            raise ValidationError(f"{self.get_kind_display()} due date {self.due_date} is before its date {self.date}.")
        if not 0 <= self.amount_paid <= self.total:
            raise ValidationError(
                f"{self.get_kind_display()} {self.number}: amount paid {self.amount_paid} "
                f"must be between 0 and total {self.total}."
            )

    @property
    def balance_due(self):
        """Outstanding balance."""
        return self.total - self.amount_paid

    @property
    def is_issued(self):
        return self.status not in ('draft', 'cancelled')

    def calculate_totals(self):
        from .posting import calculate_totals
        return calculate_totals(self)


class Invoice(TransactionDocument):
    """
    Sales Invoice.
    Posts to Accounting: Debit AR, Credit Revenue per account, Credit VAT Payable
    """
    objects = DocumentKindManager(DocumentKind.INVOICE)

    class Meta:
        proxy = True

    def save(self, *args, **kwargs):
        self.kind = DocumentKind.INVOICE
        super().save(*args, **kwargs)


class Bill(TransactionDocument):
    """
    Vendor Bill.
    Posts to Accounting: Debit Expense/Asset per account, Debit VAT Recoverable, Credit AP
    """
    objects = DocumentKindManager(DocumentKind.BILL)

    class Meta:
        proxy = True

    def save(self, *args, **kwargs):
        self.kind = DocumentKind.BILL
        super().save(*args, **kwargs)


class DocumentItem(models.Model):
    """
    Line item on an invoice or bill.

    line_total = round(quantity * unit_price) - discount
    vat_amount = round(line_total * vat_rate_permyriad / 10000), 0 if exempt
    """
    document = models.ForeignKey(TransactionDocument, on_delete=models.CASCADE, related_name='items')
    account = models.ForeignKey('finance.Account', on_delete=models.PROTECT, related_name='document_items')
    description = models.CharField(max_length=500, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=1)
    unit_price = models.BigIntegerField(default=0)
    discount = models.BigIntegerField(default=0)
    vat_rate_permyriad = models.PositiveIntegerField(default=500)
    is_exempt = models.BooleanField(default=False, help_text='VAT-exempt supply (reported separately from zero-rated)')

    # Calculated
    line_total = models.BigIntegerField(default=0)
    vat_amount = models.BigIntegerField(default=0)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.description} - {self.quantity}"

    @property
    def vat_rate(self):
        return VatRate.from_permyriad(0 if self.is_exempt else self.vat_rate_permyriad)

    def save(self, *args, **kwargs):
        from .posting import compute_line
        self.line_total, self.vat_amount = compute_line(self)
        super().save(*args, **kwargs)
