"""
UAE VAT return (FTA Form 201) computation and filing.

Output VAT comes from issued sales invoices, input VAT from issued vendor
bills, both dated inside the period. Cancelled documents are excluded
(their journal entries are reversed). Supplies are bucketed by rate:
standard rated (5%), any other rate, zero rated, and exempt.
"""
import logging

from django.db import transaction
from django.utils import timezone

from apps.core.audit import audit_vat_return_create, audit_vat_return_file
from apps.core.exceptions import AlreadyFiledError, ValidationError
from apps.core.money import VatRate, to_minor_units
from apps.core.utils import transition_status
from .models import VatReturn


logger = logging.getLogger(__name__)

EXEMPT = 'exempt'

VAT_REGISTRATION_THRESHOLD = to_minor_units(375000)  # AED 375,000
VAT_VOLUNTARY_THRESHOLD = to_minor_units(187500)  # AED 187,500


def _buckets(items):
    """Group (is_exempt, rate_permyriad, line_total, vat_amount) rows by rate."""
    buckets = {}
    for is_exempt, permyriad, line_total, vat_amount in items:
        key = EXEMPT if is_exempt else permyriad
        bucket = buckets.setdefault(key, {
            'rate_permyriad': None if is_exempt else permyriad,
            'rate': 'Exempt' if is_exempt else str(VatRate.from_permyriad(permyriad)),
            'exempt': is_exempt,
            'taxable': 0,
            'vat': 0,
        })
        bucket['taxable'] += line_total
        bucket['vat'] += vat_amount
    # Highest rate first, exempt last
    return sorted(
        buckets.values(),
        key=lambda b: (b['exempt'], -(b['rate_permyriad'] or 0)),
    )


def _period_items(kind, start, end):
    from apps.documents.models import DocumentItem

    return DocumentItem.objects.filter(
        document__kind=kind,
        document__date__gte=start,
        document__date__lte=end,
    ).exclude(
        document__status__in=['draft', 'cancelled'],
    ).values_list('is_exempt', 'vat_rate_permyriad', 'line_total', 'vat_amount')


def calculate_vat_return(period_start, period_end):
    """
    Compute the Form 201 figures for a period without saving anything.

    Returns a dict with the per-rate buckets for each side and the boxes:
        box1  standard rated supplies (and box1_vat)
        box4  zero rated supplies
        box5  exempt supplies
        box6  standard rated expenses (taxable purchases)
        output_vat, input_vat, net_vat_due = output_vat - input_vat
    """
    if period_end < period_start:
        raise ValidationError(f"VAT period end {period_end} is before period start {period_start}.")

    with transaction.atomic():
        output_buckets = _buckets(_period_items('invoice', period_start, period_end))
        input_buckets = _buckets(_period_items('bill', period_start, period_end))

    standard = VatRate.STANDARD.permyriad
    box1 = sum(b['taxable'] for b in output_buckets if b['rate_permyriad'] == standard)
    box1_vat = sum(b['vat'] for b in output_buckets if b['rate_permyriad'] == standard)
    box4 = sum(b['taxable'] for b in output_buckets if b['rate_permyriad'] == 0)
    box5 = sum(b['taxable'] for b in output_buckets if b['exempt'])
    box6 = sum(b['taxable'] for b in input_buckets if b['rate_permyriad'])

    output_vat = sum(b['vat'] for b in output_buckets)
    input_vat = sum(b['vat'] for b in input_buckets)

    return {
        'period_start': period_start,
        'period_end': period_end,
        'output_buckets': output_buckets,
        'input_buckets': input_buckets,
        'box1_standard_rated_supplies': box1,
        'box1_vat': box1_vat,
        'box4_zero_rated_supplies': box4,
        'box5_exempt_supplies': box5,
        'box6_standard_rated_expenses': box6,
        'output_vat': output_vat,
        'input_vat': input_vat,
        'net_vat_due': output_vat - input_vat,
    }


RETURN_FIELDS = [
    'box1_standard_rated_supplies', 'box1_vat', 'box4_zero_rated_supplies',
    'box5_exempt_supplies', 'box6_standard_rated_expenses',
    'output_vat', 'input_vat', 'net_vat_due', 'output_buckets', 'input_buckets',
]


def _apply(vat_return, figures):
    for field in RETURN_FIELDS:
        setattr(vat_return, field, figures[field])


def create_vat_return(period_start, period_end, user=None, notes=''):
    """Compute and persist a draft return. Periods may not overlap a filed return."""
    overlapping = VatReturn.objects.filter(
        status='filed',
        period_start__lte=period_end,
        period_end__gte=period_start,
    ).first()
    if overlapping:
        raise ValidationError(
            f"Period {period_start} to {period_end} overlaps filed VAT return "
            f"{overlapping.return_number} ({overlapping.period_start} to {overlapping.period_end})."
        )

    figures = calculate_vat_return(period_start, period_end)
    vat_return = VatReturn(period_start=period_start, period_end=period_end, notes=notes)
    _apply(vat_return, figures)
    vat_return.save()
    audit_vat_return_create(vat_return, user)
    logger.info(
        "Created VAT return %s: output %s, input %s, net %s",
        vat_return.return_number, vat_return.output_vat, vat_return.input_vat, vat_return.net_vat_due,
    )
    return vat_return


def recalculate_return(vat_return):
    """Refresh a draft return from the current documents."""
    vat_return.refresh_from_db()
    if vat_return.status == 'filed':
        raise AlreadyFiledError(
            f"VAT return {vat_return.return_number} is filed and cannot be recalculated."
        )
    _apply(vat_return, calculate_vat_return(vat_return.period_start, vat_return.period_end))
    vat_return.save()
    return vat_return


def file_return(vat_return_id, filing_reference, user=None):
    """
    Mark a draft return as filed with the FTA reference.

    Raises:
        ValidationError: empty filing reference
        AlreadyFiledError: the return is already filed
        ConflictError: another caller filed it between the check and the update
    """
    reference = (filing_reference or '').strip()
    if not reference:
        raise ValidationError('A filing reference is required to file a VAT return.')

    vat_return = VatReturn.objects.get(pk=vat_return_id)
    if vat_return.status == 'filed':
        raise AlreadyFiledError(
            f"VAT return {vat_return.return_number} was already filed "
            f"(reference {vat_return.filing_reference})."
        )

    transition_status(
        VatReturn, vat_return.pk, 'draft', 'filed',
        filing_reference=reference,
        filed_at=timezone.now(),
        filed_by=getattr(user, 'username', None) or (str(user) if user else ''),
    )
    vat_return.refresh_from_db()
    audit_vat_return_file(vat_return, user)
    logger.info("Filed VAT return %s (reference %s)", vat_return.return_number, reference)
    return vat_return


def as_form_201(vat_return):
    """Flat Form 201 structure for a saved return or a calculate_vat_return() dict."""
    get = vat_return.get if isinstance(vat_return, dict) else lambda key: getattr(vat_return, key)
    return {
        'box1_standard_rated_supplies': get('box1_standard_rated_supplies'),
        'box1_vat': get('box1_vat'),
        'box4_zero_rated_supplies': get('box4_zero_rated_supplies'),
        'box5_exempt_supplies': get('box5_exempt_supplies'),
        'box6_standard_rated_expenses': get('box6_standard_rated_expenses'),
        'box9_net_vat_due': get('net_vat_due'),
        'output_vat': get('output_vat'),
        'input_vat': get('input_vat'),
    }


def vat_registration_status(annual_turnover):
    """
    Registration obligation for a trailing 12-month turnover in fils.
    Mandatory from AED 375,000, voluntary from AED 187,500.
    """
    if annual_turnover >= VAT_REGISTRATION_THRESHOLD:
        return {
            'required': True,
            'voluntary': False,
            'message': 'VAT registration is mandatory (turnover exceeds AED 375,000)',
        }
    if annual_turnover >= VAT_VOLUNTARY_THRESHOLD:
        return {
            'required': False,
            'voluntary': True,
            'message': 'VAT registration is voluntary (turnover between AED 187,500 and 375,000)',
        }
    return {
        'required': False,
        'voluntary': False,
        'message': 'VAT registration not required (turnover below AED 187,500)',
    }
