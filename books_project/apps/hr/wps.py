"""
WPS (Wages Protection System) Salary Information File export.

File layout, one record per line, comma separated, amounts in AED with
two decimals, dates DDMMYYYY:

    HDR,<employer TRN>,<employer name>,<start>,<end>,<records>,<total net>,AED
    EDR,<labour card>,<routing code>,<IBAN>,<start>,<end>,<days paid>,<fixed>,<variable>,<leave>
    SCR,<records>,<total fixed>,<total variable>,<total net>

Employees missing any bank/identity field are left out of the file and
reported back with the reasons; they never make the export fail.
"""
import logging
import os
import re

from apps.core.audit import audit_wps_export
from apps.core.exceptions import ValidationError
from apps.core.money import format_amount
from apps.core.utils import month_bounds
from apps.core.validators import digits_only, normalize_iban, validate_trn


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = [
    ('labour_card_no', 'Missing Labour Card Number'),
    ('iban', 'Missing IBAN'),
    ('bank_routing_code', 'Missing Bank Routing Code'),
    ('emirates_id', 'Missing Emirates ID'),
]

LEAVE_INDICATORS = {'none': '0', 'paid': '1', 'unpaid': '2'}

EMPLOYER_NAME_MAX = 50


def eligibility_issues(employee):
    """Reasons an employee can't be paid through WPS (empty when eligible)."""
    return [reason for field, reason in REQUIRED_FIELDS if not (getattr(employee, field) or '').strip()]


def sif_date(value):
    return value.strftime('%d%m%Y')


def sif_employer_name(name):
    return name.replace(',', ' ')[:EMPLOYER_NAME_MAX]


def sif_filename(company_name, year, month):
    name = re.sub(r'\s+', '_', company_name.strip())
    return f"WPS_{name}_{year}{month:02d}.sif"


def edr_record(item, start, end):
    employee = item.employee
    return ','.join([
        'EDR',
        digits_only(employee.labour_card_no),
        digits_only(employee.bank_routing_code),
        normalize_iban(employee.iban),
        start,
        end,
        str(item.days_paid),
        format_amount(item.fixed_salary),
        format_amount(item.variable_salary),
        LEAVE_INDICATORS[item.leave_type],
    ])


def export_wps(run, company=None, user=None):
    """
    Build the SIF file for a processed payroll run.

    Returns a dict:
        content, filename, record_count, total_fixed, total_variable,
        total_net, ineligible ([{'employee', 'reasons'}])
    """
    from apps.settings_app.models import CompanySettings

    run.refresh_from_db()
    if run.status != 'processed':
        raise ValidationError(
            f"Payroll run {run.run_number} is {run.status}; only processed runs can be exported to WPS."
        )

    company = company or CompanySettings.get_settings()
    if not company.trn:
        raise ValidationError('Company TRN is not set; it is required as the WPS employer code.')
    trn = validate_trn(company.trn, field='company TRN')

    period_start, period_end = month_bounds(run.run_year, run.run_month)
    start, end = sif_date(period_start), sif_date(period_end)

    eligible, ineligible = [], []
    for item in run.items.select_related('employee').order_by('employee__employee_code', 'pk'):
        issues = eligibility_issues(item.employee)
        if issues:
            ineligible.append({'employee': item.employee, 'reasons': issues})
        else:
            eligible.append(item)

    total_fixed = sum(item.fixed_salary for item in eligible)
    total_variable = sum(item.variable_salary for item in eligible)
    total_net = sum(item.net_salary for item in eligible)

    records = [','.join([
        'HDR',
        trn,
        sif_employer_name(company.company_name),
        start,
        end,
        str(len(eligible)),
        format_amount(total_net),
        'AED',
    ])]
    records.extend(edr_record(item, start, end) for item in eligible)
    records.append(','.join([
        'SCR',
        str(len(eligible)),
        format_amount(total_fixed),
        format_amount(total_variable),
        format_amount(total_net),
    ]))

    export = {
        'content': '\n'.join(records),
        'filename': sif_filename(company.company_name, run.run_year, run.run_month),
        'record_count': len(eligible),
        'total_fixed': total_fixed,
        'total_variable': total_variable,
        'total_net': total_net,
        'ineligible': ineligible,
    }

    for skipped in ineligible:
        logger.warning(
            "WPS %s: skipped %s (%s)",
            run.run_number, skipped['employee'].full_name, ', '.join(skipped['reasons']),
        )
    audit_wps_export(run, export, user)
    logger.info("WPS export %s: %s record(s), net %s", export['filename'], len(eligible), total_net)
    return export


def write_sif(export, directory):
    """Write an export to `directory` and return the full path."""
    path = os.path.join(directory, export['filename'])
    with open(path, 'w', encoding='utf-8', newline='') as handle:
        handle.write(export['content'])
    return path
