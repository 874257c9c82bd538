"""
Payroll engine - UAE Labour Law salary calculations and payroll runs.

Overtime: hourly rate = basic / 240 (30 days x 8 hours), paid at 125% on
weekdays and 150% on weekends. Absence: daily rate = basic / 30. Late
arrival past the grace period: a quarter of the hourly rate each time.
End-of-service gratuity: 21 days' basic per year for the first five
years, 30 days per year after that, capped at two years' pay. Annual
leave: at least 30 days a year, accrued monthly.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.utils import timezone

from apps.core.audit import audit_payroll_approve, audit_payroll_process
from apps.core.exceptions import AlreadyProcessedError, ValidationError
from apps.core.money import round_half_up
from apps.core.utils import month_bounds, transition_status
from apps.finance.ledger import create_entry, post_entry
from apps.finance.models import AccountMapping, JournalSource
from .models import Employee, PayrollItem, PayrollRun


logger = logging.getLogger(__name__)

HOURS_PER_MONTH = 240  # 30 days x 8 hours
DAYS_PER_MONTH = 30
OVERTIME_MULTIPLIER_PERCENT = 125
OVERTIME_WEEKEND_MULTIPLIER_PERCENT = 150
LATE_ARRIVAL_INCREMENTS_PER_HOUR = 4  # 15 minute increments
ANNUAL_LEAVE_DAYS_MIN = 30

GRATUITY_DAYS_FIRST_5_YEARS = 21
GRATUITY_DAYS_AFTER_5_YEARS = 30
GRATUITY_MAX_DAYS = 2 * 365
DAYS_PER_YEAR = Decimal('365.25')


def _ratio(value):
    if isinstance(value, int):
        return value, 1
    value = value if isinstance(value, Decimal) else Decimal(str(value))
    if value < 0:
        raise ValidationError(f"Value cannot be negative ({value}).")
    return value.as_integer_ratio()


def calculate_overtime(basic_salary, hours, weekend=False):
    """basic / 240 * 1.25 * hours (1.50 on weekends), rounded to the nearest fil."""
    numerator, denominator = _ratio(hours)
    multiplier = OVERTIME_WEEKEND_MULTIPLIER_PERCENT if weekend else OVERTIME_MULTIPLIER_PERCENT
    return round_half_up(
        basic_salary * numerator * multiplier,
        HOURS_PER_MONTH * 100 * denominator,
    )


def calculate_absence_deduction(basic_salary, absent_days):
    """Unpaid absence at a daily rate of basic / 30."""
    numerator, denominator = _ratio(absent_days)
    return round_half_up(basic_salary * numerator, DAYS_PER_MONTH * denominator)


def calculate_late_deduction(basic_salary, late_arrivals):
    """Each late arrival costs a quarter of the hourly rate (basic / 240 / 4)."""
    if isinstance(late_arrivals, bool) or not isinstance(late_arrivals, int) or late_arrivals < 0:
        raise ValidationError(f"Late arrivals must be a non-negative whole number, got {late_arrivals!r}.")
    return round_half_up(basic_salary * late_arrivals, HOURS_PER_MONTH * LATE_ARRIVAL_INCREMENTS_PER_HOUR)


def calculate_leave_balance(annual_leave_days, year_start, used_days=0, as_of=None):
    """
    Annual leave position for a leave year starting on `year_start`.

    Entitlement is never below the 30-day statutory minimum and accrues
    evenly per calendar month since year_start, capped at the entitlement.

    Returns a dict: entitled, accrual_rate (days per month), months_worked,
    accrued, used, remaining.
    """
    as_of = as_of or timezone.localdate()
    entitled = max(annual_leave_days, ANNUAL_LEAVE_DAYS_MIN)
    months = (as_of.year - year_start.year) * 12 + (as_of.month - year_start.month)
    months = max(months, 0)
    accrued = min(round_half_up(entitled * months, 12), entitled)
    return {
        'entitled': entitled,
        'accrual_rate': (Decimal(entitled) / 12).quantize(Decimal('0.01')),
        'months_worked': months,
        'accrued': accrued,
        'used': used_days,
        'remaining': accrued - used_days,
    }


def calculate_gratuity(join_date, end_date, last_basic_salary):
    """
    End-of-service gratuity.

    Returns a dict: years_of_service, gratuity_days, days_per_year, amount,
    is_eligible, reason.
    """
    if end_date < join_date:
        raise ValidationError(f"End date {end_date} is before joining date {join_date}.")

    years = Decimal((end_date - join_date).days) / DAYS_PER_YEAR
    if years < 1:
        return {
            'years_of_service': years.quantize(Decimal('0.01')),
            'gratuity_days': 0,
            'days_per_year': 0,
            'amount': 0,
            'is_eligible': False,
            'reason': 'Less than 1 year of service',
        }

    if years <= 5:
        days = (years * GRATUITY_DAYS_FIRST_5_YEARS).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        days_per_year = GRATUITY_DAYS_FIRST_5_YEARS
    else:
        extra = ((years - 5) * GRATUITY_DAYS_AFTER_5_YEARS).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        days = 5 * GRATUITY_DAYS_FIRST_5_YEARS + extra
        days_per_year = GRATUITY_DAYS_AFTER_5_YEARS
    days = min(int(days), GRATUITY_MAX_DAYS)

    return {
        'years_of_service': years.quantize(Decimal('0.01')),
        'gratuity_days': days,
        'days_per_year': days_per_year,
        'amount': round_half_up(days * last_basic_salary, DAYS_PER_MONTH),
        'is_eligible': True,
        'reason': f"{days} days gratuity",
    }


def build_item(run, employee, overtime_hours=0, overtime_amount=None, leave_salary=0,
               deductions=0, absent_days=0, days_paid=30, leave_type='none',
               weekend_overtime_hours=0, late_arrivals=0):
    """
    Unsaved PayrollItem for an employee from their salary components.
    overtime_amount is computed from the weekday and weekend overtime
    hours unless given. Absence and late-arrival deductions are added to
    `deductions`.
    """
    if overtime_amount is None:
        overtime_amount = (
            calculate_overtime(employee.basic_salary, overtime_hours)
            + calculate_overtime(employee.basic_salary, weekend_overtime_hours, weekend=True)
        )
    if absent_days:
        deductions += calculate_absence_deduction(employee.basic_salary, absent_days)
    if late_arrivals:
        deductions += calculate_late_deduction(employee.basic_salary, late_arrivals)
    for name, value in (('leave salary', leave_salary), ('deductions', deductions), ('overtime', overtime_amount)):
        if value < 0:
            raise ValidationError(f"{employee.full_name}: {name} cannot be negative ({value}).")
    if leave_type not in dict(PayrollItem.LEAVE_TYPE_CHOICES):
        raise ValidationError(f"{employee.full_name}: unknown leave type '{leave_type}'.")

    item = PayrollItem(
        run=run,
        employee=employee,
        basic_salary=employee.basic_salary,
        housing_allowance=employee.housing_allowance,
        transport_allowance=employee.transport_allowance,
        other_allowances=employee.other_allowances,
        overtime_hours=overtime_hours,
        weekend_overtime_hours=weekend_overtime_hours,
        overtime_amount=overtime_amount,
        leave_salary=leave_salary,
        deductions=deductions,
        days_paid=days_paid,
        late_arrivals=late_arrivals,
        leave_type=leave_type,
    )
    if item.calculate_net() < 0:
        raise ValidationError(
            f"{employee.full_name}: deductions {deductions} exceed gross pay {item.gross_salary}; "
            f"net salary would be {item.net_salary}."
        )
    return item


@transaction.atomic
def create_payroll_run(month, year, employees=None, adjustments=None, notes=''):
    """
    Create a draft run for a month.

    Args:
        employees: Employees to include (default: all active employees)
        adjustments: {employee_pk: {overtime_hours, weekend_overtime_hours,
                      leave_salary, deductions, absent_days, late_arrivals,
                      days_paid, leave_type, overtime_amount}}
    """
    if not 1 <= month <= 12:
        raise ValidationError(f"Payroll month must be 1-12, got {month}.")
    if PayrollRun.objects.filter(run_month=month, run_year=year).exists():
        raise ValidationError(f"A payroll run for {month:02d}/{year} already exists.")

    if employees is None:
        employees = Employee.objects.filter(status='active', is_active=True)
    adjustments = adjustments or {}

    run = PayrollRun.objects.create(run_month=month, run_year=year, notes=notes)
    items = [build_item(run, employee, **adjustments.get(employee.pk, {})) for employee in employees]
    if not items:
        raise ValidationError(f"No employees to pay for {month:02d}/{year}.")
    for item in items:
        item.save()
    run.calculate_totals()

    logger.info("Created payroll run %s with %s employee(s), net %s", run.run_number, len(items), run.total_net)
    return run


def approve_run(run, user=None):
    """draft -> approved."""
    run.refresh_from_db()
    if run.status == 'processed':
        raise AlreadyProcessedError(f"Payroll run {run.run_number} is already processed.")
    if run.status != 'draft':
        raise ValidationError(f"Payroll run {run.run_number} is {run.status}; only draft runs can be approved.")
    if not run.items.exists():
        raise ValidationError(f"Payroll run {run.run_number} has no items.")

    transition_status(
        PayrollRun, run.pk, 'draft', 'approved',
        approved_at=timezone.now(),
        approved_by=getattr(user, 'username', None) or (str(user) if user else ''),
    )
    run.refresh_from_db()
    audit_payroll_approve(run, user)
    logger.info("Approved payroll run %s", run.run_number)
    return run


def build_payroll_lines(run):
    """
    One aggregate entry for the run:
        Dr Salary Expense   basic + transport + other + overtime + leave
        Dr Housing Expense  housing
        Cr Salary Payable   net
        Cr Deductions       withheld amounts
    """
    salary_expense = AccountMapping.get_account('payroll_salary_expense')
    housing_expense = AccountMapping.get_account('payroll_housing_expense', raise_error=False) or salary_expense
    salary_payable = AccountMapping.get_account('payroll_salary_payable')

    salary = housing = net = deductions = 0
    for item in run.items.all():
        salary += (item.basic_salary + item.transport_allowance + item.other_allowances
                   + item.overtime_amount + item.leave_salary)
        housing += item.housing_allowance
        net += item.net_salary
        deductions += item.deductions

    period = f"{run.run_month:02d}/{run.run_year}"
    lines = []
    if housing_expense == salary_expense:
        salary, housing = salary + housing, 0
    if salary:
        lines.append((salary_expense, salary, 0, f"Salaries {period}"))
    if housing:
        lines.append((housing_expense, housing, 0, f"Housing allowance {period}"))
    if net:
        lines.append((salary_payable, 0, net, f"Net salaries payable {period}"))
    if deductions:
        deductions_account = AccountMapping.get_account('payroll_deductions')
        lines.append((deductions_account, 0, deductions, f"Payroll deductions {period}"))
    return lines


def process_run(run, user=None):
    """
    approved -> processed, posting the run's journal entry. Terminal.

    The status flip and the posting happen in one transaction: if posting
    fails the run stays approved.
    """
    run.refresh_from_db()
    if run.status == 'processed':
        raise AlreadyProcessedError(f"Payroll run {run.run_number} is already processed.")
    if run.status != 'approved':
        raise ValidationError(f"Payroll run {run.run_number} is {run.status}; it must be approved before processing.")

    actor = getattr(user, 'username', None) or (str(user) if user else '')
    with transaction.atomic():
        transition_status(PayrollRun, run.pk, 'approved', 'processed',
                          processed_at=timezone.now(), processed_by=actor)
        run.refresh_from_db()
        run.calculate_totals()

        _, period_end = month_bounds(run.run_year, run.run_month)
        entry = create_entry(
            period_end,
            f"Payroll {run.run_month:02d}/{run.run_year} - {run.items.count()} employee(s)",
            build_payroll_lines(run),
            source=(JournalSource.PAYROLL, run.pk),
            reference=run.run_number,
        )
        post_entry(entry, user=user)
        run.journal_entry = entry
        run.save(update_fields=['journal_entry', 'updated_at'])
        audit_payroll_process(run, user)

    logger.info("Processed payroll run %s (%s)", run.run_number, entry.entry_number)
    return run
