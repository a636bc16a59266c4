"""
Money arithmetic for invoices, quotations, payments and processing fees.

Amounts are Decimals rounded half-up to 2 decimal places.
"""
from decimal import Decimal

from trackops.core.exceptions import BillingError
from trackops.core.utils import quantize_money, to_decimal

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


def line_total(quantity, unit_price):
    return quantize_money(to_decimal(quantity, ZERO) * to_decimal(unit_price, ZERO))


def document_totals(line_totals, discount_amount=None, tax_rate=None):
    """
    Subtotal, discount, tax and total for a set of line totals.

    Tax is charged on the discounted subtotal. The discount may not be
    negative nor exceed the subtotal.
    """
    subtotal = quantize_money(sum((to_decimal(v, ZERO) for v in line_totals), ZERO))
    discount = quantize_money(to_decimal(discount_amount, ZERO))
    rate = to_decimal(tax_rate, ZERO)

    if discount < 0:
        raise BillingError('Discount cannot be negative')
    if discount > subtotal:
        raise BillingError('Discount cannot exceed the subtotal')
    if rate < 0:
        raise BillingError('Tax rate cannot be negative')

    taxable = subtotal - discount
    tax_amount = quantize_money(taxable * rate / HUNDRED)
    return {
        'subtotal': subtotal,
        'discount_amount': discount,
        'tax_amount': tax_amount,
        'total': quantize_money(taxable + tax_amount),
    }


def outstanding_amount(total, amount_paid):
    return quantize_money(to_decimal(total, ZERO) - to_decimal(amount_paid, ZERO))


def status_after_payment(current_status, total, amount_paid):
    """Invoice status once amount_paid has been applied"""
    if outstanding_amount(total, amount_paid) <= 0:
        return 'PAID'
    if to_decimal(amount_paid, ZERO) > 0:
        return 'PARTIAL'
    return current_status


def is_overdue(status, due_date, total, amount_paid, today):
    if status not in ('SENT', 'PARTIAL'):
        return False
    if not due_date or due_date >= today:
        return False
    return outstanding_amount(total, amount_paid) > 0


def processing_fee_amount(amount, percentage):
    return quantize_money(to_decimal(amount, ZERO) * to_decimal(percentage, ZERO) / HUNDRED)
