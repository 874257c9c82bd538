"""
Finance Models - UAE VAT compliant double-entry bookkeeping.

All monetary fields are integer fils (1 AED = 100 fils) in BigIntegerFields.

Compliance:
- UAE VAT Law (Federal Decree-Law No. 8 of 2017), FTA Form 201
- Accrual accounting, posted entries are immutable (corrections by reversal)
"""
from django.db import models

from apps.core.models import BaseModel, TimeStampedModel
from apps.core.utils import generate_number
from apps.core.exceptions import ValidationError, AlreadyFiledError


class AccountType(models.TextChoices):
    """Account types for Chart of Accounts."""
    ASSET = 'asset', 'Asset'
    LIABILITY = 'liability', 'Liability'
    EQUITY = 'equity', 'Equity'
    REVENUE = 'revenue', 'Revenue'
    EXPENSE = 'expense', 'Expense'
    COGS = 'cogs', 'Cost of Goods Sold'


class AccountSubType(models.TextChoices):
    """Sub-types used to group accounts on the financial statements."""
    CURRENT_ASSET = 'current_asset', 'Current Asset'
    FIXED_ASSET = 'fixed_asset', 'Fixed Asset'
    CURRENT_LIABILITY = 'current_liability', 'Current Liability'
    LONG_TERM_LIABILITY = 'long_term_liability', 'Long Term Liability'
    EQUITY = 'equity', 'Equity'
    INCOME = 'income', 'Operating Income'
    OTHER_INCOME = 'other_income', 'Other Income'
    COST_OF_SALES = 'cost_of_sales', 'Cost of Sales'
    OPERATING_EXPENSE = 'operating_expense', 'Operating Expense'


class NormalBalance(models.TextChoices):
    DEBIT = 'debit', 'Debit'
    CREDIT = 'credit', 'Credit'


DEBIT_NORMAL_TYPES = (AccountType.ASSET, AccountType.EXPENSE, AccountType.COGS)
BALANCE_SHEET_TYPES = (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY)


class Account(BaseModel):
    """
    Chart of Accounts - UAE compliant.

    current_balance is a cached fold of every posted journal line, expressed
    on the account's normal side (a positive balance on a liability is a
    credit balance). It is only ever changed by apps.finance.ledger.
    opening_balance records the amount of the account's opening entry
    (JournalSource.OPENING) and is never added to balances directly.
    """
    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    account_type = models.CharField(max_length=20, choices=AccountType.choices)
    sub_type = models.CharField(max_length=30, choices=AccountSubType.choices, blank=True)
    parent = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='children'
    )
    description = models.TextField(blank=True)
    is_system = models.BooleanField(default=False)  # Template header accounts

    # Balance tracking (fils)
    opening_balance = models.BigIntegerField(default=0)
    current_balance = models.BigIntegerField(default=0)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def normal_balance(self):
        if self.account_type in DEBIT_NORMAL_TYPES:
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT

    @property
    def debit_increases(self):
        """Returns True if debits increase this account type."""
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_leaf(self):
        return not self.children.exists()

    def balance_delta(self, debit, credit):
        """Signed change a (debit, credit) pair makes to this account's balance."""
        if self.debit_increases:
            return debit - credit
        return credit - debit

    def clean(self):
        """Validate account before saving."""
        if self.parent_id and self.parent.account_type != self.account_type:
            raise ValidationError(
                f"Account {self.code} is {self.get_account_type_display()} but parent "
                f"{self.parent.code} is {self.parent.get_account_type_display()}; "
                f"parent and child must share the same type."
            )
        # Income and expense accounts must start at zero
        if self.opening_balance and self.account_type not in BALANCE_SHEET_TYPES:
            raise ValidationError(
                f"Opening balance not allowed for {self.get_account_type_display()} account {self.code}. "
                f"Only asset, liability and equity accounts carry opening balances."
            )


class JournalSource(models.TextChoices):
    """Closed set of things that can originate a journal entry."""
    INVOICE = 'invoice', 'Sales Invoice'
    BILL = 'bill', 'Vendor Bill'
    PAYROLL = 'payroll', 'Payroll Run'
    PAYMENT = 'payment', 'Payment'
    OPENING = 'opening', 'Opening Balance'
    REVERSAL = 'reversal', 'Reversal'
    MANUAL = 'manual', 'Manual Entry'


class JournalEntry(TimeStampedModel):
    """
    Journal Entry (Double-entry accounting).
    Posted entries are never edited or deleted - use reversals instead.

    'reversed' is kept in the status set for imported history; the ledger
    never moves an entry into it. A reversed entry stays 'posted' and is
    linked from its mirror through reversal_of.
    """
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('posted', 'Posted'),
        ('reversed', 'Reversed'),
    ]

    entry_number = models.CharField(max_length=50, unique=True, editable=False)
    date = models.DateField()
    reference = models.CharField(max_length=200, blank=True)  # Invoice/Bill number
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    source_type = models.CharField(max_length=20, choices=JournalSource.choices, default=JournalSource.MANUAL)
    source_id = models.PositiveIntegerField(null=True, blank=True)

    # Totals (fils)
    total_debit = models.BigIntegerField(default=0)
    total_credit = models.BigIntegerField(default=0)

    # An entry can be reversed at most once
    reversal_of = models.OneToOneField(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reversal'
    )
    reversal_reason = models.TextField(blank=True)

    posted_at = models.DateTimeField(null=True, blank=True)
    posted_by = models.CharField(max_length=150, blank=True)

    class Meta:
        ordering = ['-date', '-created_at']
        verbose_name_plural = 'Journal Entries'
        indexes = [
            models.Index(fields=['source_type', 'source_id']),
            models.Index(fields=['status', 'date']),
        ]

    def __str__(self):
        return f"{self.entry_number} - {self.date}"

    def save(self, *args, **kwargs):
        if not self.entry_number:
            self.entry_number = generate_number('JOURNAL', JournalEntry, 'entry_number', year=self.date.year)
        super().save(*args, **kwargs)

    @property
    def source(self):
        return (self.source_type, self.source_id)

    def calculate_totals(self):
        """Calculate total debits and credits from the lines."""
        totals = self.lines.aggregate(debit=models.Sum('debit'), credit=models.Sum('credit'))
        self.total_debit = totals['debit'] or 0
        self.total_credit = totals['credit'] or 0
        self.save(update_fields=['total_debit', 'total_credit'])

    @property
    def is_balanced(self):
        """Check if entry is balanced (debits = credits)."""
        return self.total_debit == self.total_credit

    @property
    def is_reversed(self):
        return JournalEntry.objects.filter(reversal_of=self).exists()

    @property
    def is_reversible(self):
        return self.status == 'posted' and not self.is_reversed

    def post(self, user=None):
        from .ledger import post_entry
        return post_entry(self, user=user)

    def reverse(self, user=None, reason=''):
        from .ledger import reverse_entry
        return reverse_entry(self, user=user, reason=reason)


POSTED_STATUSES = ('posted', 'reversed')


class JournalLine(models.Model):
    """
    Journal Entry line (Double-entry). Exactly one side is nonzero.
    """
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name='lines'
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='journal_lines'
    )
    description = models.CharField(max_length=500, blank=True)
    debit = models.BigIntegerField(default=0)
    credit = models.BigIntegerField(default=0)
    contact = models.ForeignKey(
        'documents.Contact',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='journal_lines'
    )

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.account.code} - Dr:{self.debit} Cr:{self.credit}"

    def clean(self):
        """Validate journal line."""
        if self.debit < 0 or self.credit < 0:
            raise ValidationError(f"Line on {self.account.code}: amounts cannot be negative.")
        if self.debit > 0 and self.credit > 0:
            raise ValidationError(f"Line on {self.account.code}: a line cannot have both debit and credit amounts.")
        if self.debit == 0 and self.credit == 0:
            raise ValidationError(f"Line on {self.account.code}: either debit or credit must be greater than zero.")


class AccountMapping(models.Model):
    """
    Account Mapping / Account Determination.

    Central configuration for which account each posting role uses.
    Documents and payroll never ask the caller for accounts; they look
    the role up here.
    """
    MODULE_CHOICES = [
        ('sales', 'Sales'),
        ('purchase', 'Purchase'),
        ('payroll', 'Payroll'),
        ('banking', 'Banking'),
        ('general', 'General'),
    ]

    TRANSACTION_TYPE_CHOICES = [
        # Sales
        ('sales_invoice_receivable', 'Sales Invoice - Accounts Receivable'),
        ('sales_invoice_vat', 'Sales Invoice - VAT Payable'),
        # Purchase
        ('vendor_bill_payable', 'Vendor Bill - Accounts Payable'),
        ('vendor_bill_vat', 'Vendor Bill - VAT Recoverable'),
        # Banking
        ('cash_bank', 'Cash / Bank'),
        # Payroll
        ('payroll_salary_expense', 'Payroll - Salary Expense'),
        ('payroll_housing_expense', 'Payroll - Housing Allowance Expense'),
        ('payroll_salary_payable', 'Payroll - Salary Payable'),
        ('payroll_deductions', 'Payroll - Deductions Withheld'),
        # General
        ('opening_balance_equity', 'Opening Balance Equity'),
    ]

    module = models.CharField(max_length=50, choices=MODULE_CHOICES)
    transaction_type = models.CharField(max_length=50, choices=TRANSACTION_TYPE_CHOICES, unique=True)
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='account_mappings'
    )
    description = models.CharField(max_length=200, blank=True)

    class Meta:
        ordering = ['module', 'transaction_type']
        verbose_name = 'Account Mapping'
        verbose_name_plural = 'Account Mappings'

    def __str__(self):
        return f"{self.get_transaction_type_display()} -> {self.account.code}"

    @classmethod
    def get_account(cls, transaction_type, raise_error=True):
        """
        Get the mapped account for a transaction type.

        Usage:
            ar_account = AccountMapping.get_account('sales_invoice_receivable')
        """
        try:
            mapping = cls.objects.select_related('account').get(transaction_type=transaction_type)
            return mapping.account
        except cls.DoesNotExist:
            if raise_error:
                raise ValidationError(
                    f"Account mapping not configured for '{transaction_type}'. "
                    f"Run 'manage.py seed_chart_of_accounts' or map the role explicitly."
                )
            return None

    @classmethod
    def get_account_or_default(cls, transaction_type, default_code=None):
        """
        Get mapped account, or fallback to default account code.
        Raises ValidationError when neither is available.
        """
        account = cls.get_account(transaction_type, raise_error=False)
        if account:
            return account

        if default_code:
            try:
                return Account.objects.get(code=default_code)
            except Account.DoesNotExist:
                pass

        raise ValidationError(
            f"No account for '{transaction_type}': no mapping configured"
            + (f" and default account {default_code} does not exist." if default_code else ".")
        )


class VatReturn(TimeStampedModel):
    """
    UAE VAT Return (FTA Form 201) for a tax period.

    WORKFLOW:
    1. Draft - computed from issued invoices/bills, can be recalculated
    2. Filed - submitted to the FTA with a filing reference; immutable
    """
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('filed', 'Filed'),
    ]

    return_number = models.CharField(max_length=50, unique=True, blank=True)
    period_start = models.DateField()
    period_end = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')

    # Box 1 - Standard rated supplies
    box1_standard_rated_supplies = models.BigIntegerField(default=0)
    box1_vat = models.BigIntegerField(default=0)
    # Box 4 - Zero rated supplies
    box4_zero_rated_supplies = models.BigIntegerField(default=0)
    # Box 5 - Exempt supplies
    box5_exempt_supplies = models.BigIntegerField(default=0)
    # Box 6 - Standard rated expenses
    box6_standard_rated_expenses = models.BigIntegerField(default=0)

    output_vat = models.BigIntegerField(default=0)
    input_vat = models.BigIntegerField(default=0)
    net_vat_due = models.BigIntegerField(default=0)

    # Per-rate breakdown: [{'rate_permyriad', 'exempt', 'taxable', 'vat'}, ...]
    output_buckets = models.JSONField(default=list, blank=True)
    input_buckets = models.JSONField(default=list, blank=True)

    filing_reference = models.CharField(max_length=100, blank=True)
    filed_at = models.DateTimeField(null=True, blank=True)
    filed_by = models.CharField(max_length=150, blank=True)

    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-period_start']

    def __str__(self):
        return f"VAT Return: {self.period_start} to {self.period_end}"

    def save(self, *args, **kwargs):
        if self.pk:
            stored = VatReturn.objects.filter(pk=self.pk).values_list('status', flat=True).first()
            if stored == 'filed':
                raise AlreadyFiledError(f"VAT return {self.return_number} is filed and cannot be changed.")
        if not self.return_number:
            self.return_number = generate_number('VAT', VatReturn, 'return_number', year=self.period_end.year)
        super().save(*args, **kwargs)

    def clean(self):
        if self.period_end < self.period_start:
            raise ValidationError(
                f"VAT period end {self.period_end} is before period start {self.period_start}."
            )

    @property
    def is_refund(self):
        """Negative net VAT is refundable by the FTA."""
        return self.net_vat_due < 0

    def as_form_201(self):
        from .vat import as_form_201
        return as_form_201(self)
