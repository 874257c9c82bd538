"""
Utility functions shared by the accounting apps.
"""
import datetime

from dateutil.relativedelta import relativedelta

from django.conf import settings
from django.db.models.functions import Length
from django.utils import timezone

from .exceptions import ConflictError


def generate_number(document_type, model_class, number_field='number', year=None):
    """
    Generate a sequential number for documents.
    Format: PREFIX-YEAR-NUMBER (e.g., INV-2025-0001)

    Args:
        document_type: Key from NUMBER_SERIES settings (e.g., 'INVOICE')
        model_class: The model class to query for existing numbers
        number_field: The field name that stores the number
        year: Year to number within (defaults to the current year)

    Returns:
        str: Generated number
    """
    config = settings.NUMBER_SERIES.get(document_type, {})
    prefix = config.get('prefix', 'DOC')
    padding = config.get('padding', 4)

    year = year or timezone.localdate().year
    year_prefix = f"{prefix}-{year}-"

    # Get the last number for this year; longer numbers sort after shorter
    # ones so INV-2025-10000 follows INV-2025-9999
    filter_kwargs = {f'{number_field}__startswith': year_prefix}
    last_record = (
        model_class._base_manager.filter(**filter_kwargs)
        .order_by(Length(number_field).desc(), f'-{number_field}')
        .first()
    )

    if last_record:
        last_number = getattr(last_record, number_field)
        try:
            last_seq = int(last_number.split('-')[-1])
        except (ValueError, IndexError):
            last_seq = 0
    else:
        last_seq = 0

    new_seq = last_seq + 1
    return f"{year_prefix}{str(new_seq).zfill(padding)}"


def transition_status(model_class, pk, from_status, to_status, **fields):
    """
    Optimistic one-shot status transition.

    Issues UPDATE ... WHERE pk = <pk> AND status = <from_status>. If no row
    matched, somebody else moved the record first and ConflictError is
    raised with the status that was actually found.
    """
    fields['status'] = to_status
    if any(f.name == 'updated_at' for f in model_class._meta.concrete_fields):
        fields.setdefault('updated_at', timezone.now())

    updated = model_class._base_manager.filter(pk=pk, status=from_status).update(**fields)
    if updated == 0:
        current = model_class._base_manager.filter(pk=pk).values_list('status', flat=True).first()
        raise ConflictError(
            f"{model_class._meta.verbose_name.title()} {pk}: expected status "
            f"'{from_status}' but found '{current}'; it was changed concurrently."
        )
    return updated


def month_bounds(year, month):
    """First and last calendar day of a month."""
    first = datetime.date(year, month, 1)
    return first, first + relativedelta(months=1, days=-1)
