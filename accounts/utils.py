"""
Utility functions for the fee ledger: amount parsing, status normalisation and derivation
"""
from decimal import Decimal, InvalidOperation

from django.utils import timezone


FEE_STATUSES = ('pending', 'partially_paid', 'paid', 'overdue', 'cancelled')

# Largest amount that fits the ledger's DecimalField(max_digits=12, decimal_places=2)
MAX_AMOUNT = Decimal('9999999999.99')

CENTS = Decimal('0.01')


def to_decimal(value, default=Decimal('0.00')):
    """
    Lenient numeric conversion used for optional fee fields.
    Empty, missing or non-numeric values fall back to the default.
    """
    if value is None or value == '' or isinstance(value, bool):
        return default
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not number.is_finite() or abs(number) > MAX_AMOUNT:
        return default
    return number.quantize(CENTS)


def parse_payment_amount(value):
    """
    Strict conversion for payment amounts.

    Raises ValueError when the value is missing, non-numeric, not finite,
    not positive, or too large to store.
    """
    if value is None or value == '' or isinstance(value, bool):
        raise ValueError('A valid payment amount is required')
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError('A valid payment amount is required')
    if not amount.is_finite() or amount > MAX_AMOUNT:
        raise ValueError('A valid payment amount is required')
    amount = amount.quantize(CENTS)
    if amount <= 0:
        raise ValueError('A valid payment amount is required')
    return amount


def normalize_fee_status(status):
    """
    Map loosely formatted statuses to the stored values, case-insensitively.
    'Partially Paid' -> 'partially_paid', 'Canceled' -> 'cancelled'.
    Unknown values are returned lower-cased so model validation can reject them.
    """
    if not isinstance(status, str):
        return status
    value = status.strip().lower()
    if value in ('partially_paid', 'partially paid', 'partial'):
        return 'partially_paid'
    if value in ('cancelled', 'canceled'):
        return 'cancelled'
    return value


def derive_fee_status(total_amount, paid_amount, due_date=None, current_status=None, today=None):
    """
    Compute a fee's status from its amounts and due date.

    A cancelled fee stays cancelled. Otherwise: nothing paid is 'pending',
    fully paid is 'paid', and a partial payment is 'partially_paid' until
    the due date passes, after which it is 'overdue'.
    """
    if current_status == 'cancelled':
        return 'cancelled'
    if paid_amount <= 0:
        return 'pending'
    if paid_amount >= total_amount:
        return 'paid'
    if today is None:
        today = timezone.localdate()
    if due_date and today > due_date:
        return 'overdue'
    return 'partially_paid'


def compute_balance(total_amount, paid_amount):
    return max(Decimal('0.00'), total_amount - paid_amount)
