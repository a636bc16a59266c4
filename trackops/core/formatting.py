"""
Display formatting helpers used by PDFs, SMS texts and e-mail bodies.

All functions are pure: they never touch the database.
"""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

KENYAN_PHONE_RE = re.compile(r'^(0|254)(7|1)\d{8}$')


def _as_decimal(value) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal('0')


def format_currency(amount, currency: str = 'KES') -> str:
    """Format an amount as "KES 1,234.50" (negatives as "-KES 1,234.50")"""
    value = _as_decimal(amount).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    sign = '-' if value < 0 else ''
    return f"{sign}{currency} {abs(value):,.2f}"


def format_number(value, decimals: int = 0) -> str:
    number = _as_decimal(value)
    return f"{number:,.{decimals}f}"


def format_percentage(value, decimals: int = 1) -> str:
    number = _as_decimal(value)
    return f"{number:.{decimals}f}%"


def _coerce_datetime(value):
    """Turn a date, datetime or ISO string into a date/datetime, or None"""
    if value is None or value == '':
        return None
    if isinstance(value, (date, datetime)):
        return value
    text = str(value).strip()
    parsed = parse_datetime(text)
    if parsed is None:
        parsed = parse_date(text)
    return parsed


def format_date(value) -> str:
    """Format a date as "Jan 5, 2025"; unparseable strings are returned unchanged"""
    parsed = _coerce_datetime(value)
    if parsed is None:
        return '' if value in (None, '') else str(value)
    if isinstance(parsed, datetime) and timezone.is_aware(parsed):
        parsed = timezone.localtime(parsed)
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def format_datetime(value) -> str:
    """Format a timestamp as "Jan 5, 2025 14:30" """
    parsed = _coerce_datetime(value)
    if parsed is None:
        return '' if value in (None, '') else str(value)
    if not isinstance(parsed, datetime):
        return format_date(parsed)
    if timezone.is_aware(parsed):
        parsed = timezone.localtime(parsed)
    return f"{format_date(parsed)} {parsed.strftime('%H:%M')}"


def digits_only(phone) -> str:
    return re.sub(r'\D', '', str(phone or ''))


def is_valid_kenyan_phone(phone) -> bool:
    return bool(KENYAN_PHONE_RE.match(digits_only(phone)))


def format_phone_number(phone) -> str:
    """Group Kenyan numbers: 254712345678 -> +254 712 345 678, 0712345678 -> 0712 345 678"""
    digits = digits_only(phone)
    if len(digits) == 12 and digits.startswith('254'):
        return f"+254 {digits[3:6]} {digits[6:9]} {digits[9:]}"
    if len(digits) == 10 and digits.startswith('0'):
        return f"{digits[:4]} {digits[4:7]} {digits[7:]}"
    return phone or ''


def phone_variants(phone) -> set:
    """Every stored spelling of the same Kenyan number (07... and 2547...)"""
    digits = digits_only(phone)
    variants = {digits}
    if digits.startswith('0'):
        variants.add(f"254{digits[1:]}")
    elif digits.startswith('254'):
        variants.add(f"0{digits[3:]}")
    return variants


def normalize_phone(phone) -> Optional[str]:
    """Return the MSISDN form 254XXXXXXXXX for a valid Kenyan number, else None"""
    digits = digits_only(phone)
    if not KENYAN_PHONE_RE.match(digits):
        return None
    if digits.startswith('0'):
        return f"254{digits[1:]}"
    return digits


def truncate(text, length: int = 50) -> str:
    if not text:
        return ''
    text = str(text)
    if len(text) <= length:
        return text
    return f"{text[:length]}..."
