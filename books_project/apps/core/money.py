"""
Money helpers - AED held as integer fils (1 AED = 100 fils).

Stored amounts are always ints. Addition and subtraction are plain integer
arithmetic; anything that multiplies by a rate or a fractional quantity goes
through round_half_up() immediately so fractional fils never accumulate.
Dividing by 100 only happens in to_display()/format_aed(), for presentation.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .exceptions import ValidationError


FILS_PER_AED = 100
PERMYRIAD = 10000


def round_half_up(numerator, denominator):
    """
    Exact integer division rounding halves away from zero.

    round_half_up(5, 2) == 3, round_half_up(-5, 2) == -3.
    """
    if denominator == 0:
        raise ZeroDivisionError('round_half_up() denominator is zero')
    if denominator < 0:
        numerator, denominator = -numerator, -denominator
    sign = -1 if numerator < 0 else 1
    quotient, remainder = divmod(abs(numerator), denominator)
    if remainder * 2 >= denominator:
        quotient += 1
    return sign * quotient


def _as_ratio(value):
    """Return (numerator, denominator) for an int or Decimal-like value."""
    if isinstance(value, int):
        return value, 1
    if isinstance(value, float):
        value = Decimal(str(value))
    elif not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"'{value}' is not a number.")
    if not value.is_finite():
        raise ValidationError(f"'{value}' is not a finite number.")
    return value.as_integer_ratio()


def to_minor_units(value):
    """
    Convert a display amount (e.g. Decimal('50000.00'), '1,250.5' or 12)
    to integer fils, rounding half-up at the third decimal.
    """
    if isinstance(value, str):
        value = value.replace(',', '').strip()
    numerator, denominator = _as_ratio(value)
    return round_half_up(numerator * FILS_PER_AED, denominator)


def to_display(minor):
    """Integer fils -> Decimal with two places. Presentation only."""
    return (Decimal(int(minor)) / FILS_PER_AED).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def format_amount(minor):
    """Plain two-decimal string, as used in bank files: 7500000 -> '75000.00'."""
    return f"{to_display(minor):.2f}"


def format_aed(minor):
    """Human-facing string: 525000 -> 'AED 5,250.00'."""
    return f"AED {to_display(minor):,.2f}"


def multiply(amount, quantity):
    """amount (fils) x quantity (int or Decimal), rounded to the nearest fil."""
    numerator, denominator = _as_ratio(quantity)
    return round_half_up(int(amount) * numerator, denominator)


def apply_rate(amount, permyriad):
    """amount (fils) x rate expressed in parts per 10,000."""
    return round_half_up(int(amount) * int(permyriad), PERMYRIAD)


class VatRate:
    """
    VAT rate value type, stored as parts per 10,000 (500 == 5.00%).

    Always construct through from_permyriad() / from_percent() so the unit
    is explicit at every boundary.
    """
    __slots__ = ('permyriad',)

    def __init__(self, permyriad):
        if isinstance(permyriad, bool) or not isinstance(permyriad, int):
            raise ValidationError(f"VAT rate must be an integer permyriad, got {permyriad!r}.")
        if permyriad < 0 or permyriad > PERMYRIAD:
            raise ValidationError(f"VAT rate {permyriad} permyriad is outside 0..10000.")
        object.__setattr__(self, 'permyriad', permyriad)

    def __setattr__(self, name, value):
        raise AttributeError('VatRate is immutable')

    @classmethod
    def from_permyriad(cls, permyriad):
        return cls(int(permyriad))

    @classmethod
    def from_percent(cls, percent):
        """VatRate.from_percent('5') or from_percent(Decimal('5.00'))."""
        numerator, denominator = _as_ratio(percent)
        scaled = numerator * 100
        if scaled % denominator:
            raise ValidationError(f"VAT rate {percent}% has more than two decimal places.")
        return cls(scaled // denominator)

    def to_percent(self):
        return (Decimal(self.permyriad) / 100).quantize(Decimal('0.01'))

    def apply(self, amount):
        return apply_rate(amount, self.permyriad)

    @property
    def is_zero(self):
        return self.permyriad == 0

    def __eq__(self, other):
        if isinstance(other, VatRate):
            return self.permyriad == other.permyriad
        return NotImplemented

    def __hash__(self):
        return hash(('VatRate', self.permyriad))

    def __repr__(self):
        return f"VatRate({self.permyriad})"

    def __str__(self):
        return f"{self.to_percent()}%"


VatRate.STANDARD = VatRate(500)
VatRate.ZERO = VatRate(0)
