"""
HR Models - employees and monthly payroll runs (UAE Labour Law, WPS).
Salary amounts are integer fils.
"""
from django.db import models

from apps.core.models import BaseModel
from apps.core.utils import generate_number
from apps.core.validators import is_valid_iban, is_valid_emirates_id
from apps.core.exceptions import ValidationError


class Employee(BaseModel):
    STATUS_CHOICES = [('active', 'Active'), ('inactive', 'Inactive'), ('terminated', 'Terminated')]

    employee_code = models.CharField(max_length=50, unique=True, editable=False)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    date_of_joining = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')

    # Monthly salary components (fils)
    basic_salary = models.BigIntegerField(default=0)
    housing_allowance = models.BigIntegerField(default=0)
    transport_allowance = models.BigIntegerField(default=0)
    other_allowances = models.BigIntegerField(default=0)

    # UAE Specific - required for WPS only
    emirates_id = models.CharField(max_length=50, blank=True)
    labour_card_no = models.CharField(max_length=50, blank=True)
    iban = models.CharField(max_length=34, blank=True, verbose_name='IBAN')
    bank_routing_code = models.CharField(max_length=20, blank=True)

    # Annual leave entitlement in days (statutory minimum 30)
    annual_leave_days = models.PositiveSmallIntegerField(default=30)

    class Meta:
        ordering = ['first_name', 'last_name']

    def __str__(self):
        return f"{self.employee_code} - {self.full_name}"

    def save(self, *args, **kwargs):
        if not self.employee_code:
            self.employee_code = generate_number('EMPLOYEE', Employee, 'employee_code')
        super().save(*args, **kwargs)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def monthly_gross(self):
        return self.basic_salary + self.housing_allowance + self.transport_allowance + self.other_allowances

    def clean(self):
        for field in ('basic_salary', 'housing_allowance', 'transport_allowance', 'other_allowances'):
            if getattr(self, field) < 0:
                raise ValidationError({field: f"{self.full_name}: {field.replace('_', ' ')} cannot be negative."})
        if self.iban and not is_valid_iban(self.iban):
            raise ValidationError({'iban': f"{self.full_name}: '{self.iban}' is not a valid UAE IBAN."})
        if self.emirates_id and not is_valid_emirates_id(self.emirates_id):
            raise ValidationError({'emirates_id': f"{self.full_name}: '{self.emirates_id}' is not a valid Emirates ID."})


class PayrollRun(BaseModel):
    """
    One month's payroll for the company.

    draft -> approved -> processed. Processing is terminal and posts one
    aggregate journal entry; only processed runs can be exported to WPS.
    """
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('approved', 'Approved'),
        ('processed', 'Processed'),
    ]

    run_number = models.CharField(max_length=50, unique=True, editable=False)
    run_month = models.PositiveSmallIntegerField()
    run_year = models.PositiveSmallIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    notes = models.TextField(blank=True)

    # Totals (fils)
    total_gross = models.BigIntegerField(default=0)
    total_deductions = models.BigIntegerField(default=0)
    total_net = models.BigIntegerField(default=0)

    journal_entry = models.ForeignKey(
        'finance.JournalEntry',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payroll_runs'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.CharField(max_length=150, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.CharField(max_length=150, blank=True)

    class Meta:
        ordering = ['-run_year', '-run_month']
        unique_together = ['run_month', 'run_year']

    def __str__(self):
        return f"Payroll {self.run_month:02d}/{self.run_year} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        if not self.run_number:
            self.run_number = generate_number('PAYROLL', PayrollRun, 'run_number', year=self.run_year)
        super().save(*args, **kwargs)

    def calculate_totals(self):
        totals = self.items.aggregate(
            basic=models.Sum('basic_salary'),
            housing=models.Sum('housing_allowance'),
            transport=models.Sum('transport_allowance'),
            other=models.Sum('other_allowances'),
            overtime=models.Sum('overtime_amount'),
            leave=models.Sum('leave_salary'),
            deductions=models.Sum('deductions'),
            net=models.Sum('net_salary'),
        )
        self.total_gross = sum(totals[key] or 0 for key in ('basic', 'housing', 'transport', 'other', 'overtime', 'leave'))
        self.total_deductions = totals['deductions'] or 0
        self.total_net = totals['net'] or 0
        self.save(update_fields=['total_gross', 'total_deductions', 'total_net', 'updated_at'])


class PayrollItem(models.Model):
    """
    One employee's pay within a run.

    net_salary = basic + housing + transport + other + overtime + leave - deductions
    """
    LEAVE_TYPE_CHOICES = [
        ('none', 'No Leave'),
        ('paid', 'Leave With Pay'),
        ('unpaid', 'Leave Without Pay'),
    ]

    run = models.ForeignKey(PayrollRun, on_delete=models.CASCADE, related_name='items')
    employee = models.ForeignKey(Employee, on_delete=models.PROTECT, related_name='payroll_items')

    basic_salary = models.BigIntegerField(default=0)
    housing_allowance = models.BigIntegerField(default=0)
    transport_allowance = models.BigIntegerField(default=0)
    other_allowances = models.BigIntegerField(default=0)
    overtime_hours = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    weekend_overtime_hours = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    overtime_amount = models.BigIntegerField(default=0)
    leave_salary = models.BigIntegerField(default=0)
    deductions = models.BigIntegerField(default=0)
    net_salary = models.BigIntegerField(default=0)

    days_paid = models.PositiveSmallIntegerField(default=30)
    late_arrivals = models.PositiveSmallIntegerField(default=0)
    leave_type = models.CharField(max_length=10, choices=LEAVE_TYPE_CHOICES, default='none')

    class Meta:
        ordering = ['id']
        unique_together = ['run', 'employee']

    def __str__(self):
        return f"{self.employee.full_name} - {self.net_salary}"

    @property
    def fixed_salary(self):
        return self.basic_salary + self.housing_allowance + self.transport_allowance + self.other_allowances

    @property
    def variable_salary(self):
        return self.overtime_amount + self.leave_salary - self.deductions

    @property
    def gross_salary(self):
        return self.fixed_salary + self.overtime_amount + self.leave_salary

    def calculate_net(self):
        self.net_salary = self.fixed_salary + self.variable_salary
        return self.net_salary

    def save(self, *args, **kwargs):
        self.calculate_net()
        super().save(*args, **kwargs)
