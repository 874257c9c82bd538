"""
UAE identifier validators - TRN, Emirates ID, IBAN.

Each validator returns the normalised value or raises ValidationError
naming the field and the expected format.
"""
import re

from .exceptions import ValidationError


TRN_RE = re.compile(r'^\d{15}$')
EMIRATES_ID_RE = re.compile(r'^784\d{12}$')
IBAN_RE = re.compile(r'^AE\d{2}[A-Z0-9]{19}$')


def normalize_iban(value):
    return re.sub(r'\s+', '', value or '').upper()


def normalize_emirates_id(value):
    return re.sub(r'[-\s]', '', value or '')


def digits_only(value):
    return re.sub(r'\D', '', value or '')


def validate_trn(value, field='TRN'):
    """UAE Tax Registration Number: exactly 15 digits."""
    trn = (value or '').strip()
    if not TRN_RE.match(trn):
        raise ValidationError(f"Invalid {field} '{value}': must be exactly 15 digits.")
    return trn


def validate_emirates_id(value, field='Emirates ID'):
    """784-YYYY-NNNNNNN-C, dashes and spaces optional."""
    eid = normalize_emirates_id(value)
    if not EMIRATES_ID_RE.match(eid):
        raise ValidationError(
            f"Invalid {field} '{value}': must be 15 digits starting with 784."
        )
    return eid


def validate_iban(value, field='IBAN'):
    """UAE IBAN: AE + 2 check digits + 19 alphanumerics (23 chars)."""
    iban = normalize_iban(value)
    if not IBAN_RE.match(iban):
        raise ValidationError(
            f"Invalid {field} '{value}': UAE IBAN must be AE followed by 21 characters."
        )
    return iban


def is_valid_trn(value):
    return bool(TRN_RE.match((value or '').strip()))


def is_valid_iban(value):
    return bool(IBAN_RE.match(normalize_iban(value)))


def is_valid_emirates_id(value):
    return bool(EMIRATES_ID_RE.match(normalize_emirates_id(value)))
