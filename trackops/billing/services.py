"""
Billing operations: invoice and quotation lifecycle, payment allocation,
the customer ledger and processing fee settlement.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Sum, Count
from django.utils import timezone

from trackops.core.exceptions import BillingError
from trackops.core.utils import create_audit_log, to_decimal, quantize_money
from .calculations import (
    document_totals, status_after_payment, outstanding_amount, is_overdue, processing_fee_amount, ZERO,
)
from .models import (
    Invoice, Quotation, Receipt, PaymentAllocation, Transaction,
    ProcessingFee, ProcessingFeeSettlement,
)

logger = logging.getLogger(__name__)

# Manual invoice status moves; PAID and PARTIAL only come from payments
MANUAL_INVOICE_TRANSITIONS = {
    'DRAFT': ['SENT', 'CANCELLED'],
    'SENT': ['DRAFT', 'CANCELLED'],
    'OVERDUE': ['CANCELLED'],
}

QUOTATION_TRANSITIONS = {
    'DRAFT': ['SENT'],
    'SENT': ['APPROVED', 'REJECTED', 'EXPIRED', 'DRAFT'],
    'APPROVED': ['EXPIRED'],
}


def default_due_date(issue_date=None):
    return (issue_date or timezone.localdate()) + timedelta(days=settings.INVOICE_DUE_DAYS)


# Documents
def replace_items(document, items):
    """Replace an invoice or quotation's lines and recompute its totals"""
    document.items.all().delete()
    for item in items:
        product = item.get('product')
        document.items.create(
            product=product,
            description=item.get('description') or (product.name if product else ''),
            quantity=item.get('quantity') or Decimal('1.00'),
            unit_price=item['unit_price'] if item.get('unit_price') is not None else (product.selling_price if product else ZERO),
        )
    return recalculate_totals(document)


def recalculate_totals(document):
    totals = document_totals(
        document.items.values_list('line_total', flat=True),
        discount_amount=document.discount_amount,
        tax_rate=document.tax_rate,
    )
    for field, value in totals.items():
        setattr(document, field, value)
    document.save(update_fields=['subtotal', 'discount_amount', 'tax_amount', 'total', 'updated_at'])
    return document


def create_invoice(customer, items, user=None, **fields):
    """Create an invoice with its lines; standard invoices created as SENT are posted to the ledger"""
    if not items:
        raise BillingError('An invoice needs at least one item')
    fields.setdefault('tax_rate', settings.DEFAULT_TAX_RATE)
    fields.setdefault('issue_date', timezone.localdate())
    if not fields.get('due_date'):
        fields['due_date'] = default_due_date(fields['issue_date'])
    status = fields.pop('status', 'DRAFT') or 'DRAFT'
    if status not in ('DRAFT', 'SENT'):
        raise BillingError('New invoices start as DRAFT or SENT')
    job = fields.get('job')
    if job is not None and active_job_invoice(job):
        raise BillingError(f"Job {job.job_number} already has an invoice")

    with transaction.atomic():
        invoice = Invoice.objects.create(customer=customer, created_by=user, status='DRAFT', **fields)
        replace_items(invoice, items)
        if status == 'SENT':
            mark_invoice_sent(invoice, user=user)
    return invoice


def update_invoice(invoice, items=None, **fields):
    if invoice.status != 'DRAFT':
        raise BillingError('Only draft invoices can be edited')
    job = fields.get('job')
    if job is not None and job.invoices.exclude(status='CANCELLED').exclude(pk=invoice.pk).exists():
        raise BillingError(f"Job {job.job_number} already has an invoice")
    with transaction.atomic():
        for field, value in fields.items():
            setattr(invoice, field, value)
        invoice.save()
        if items is not None:
            if not items:
                raise BillingError('An invoice needs at least one item')
            replace_items(invoice, items)
        else:
            recalculate_totals(invoice)
    return invoice


def _invoice_ledger_balance(invoice):
    totals = invoice.transactions.filter(transaction_type__in=['INVOICE', 'ADJUSTMENT']).aggregate(
        debit=Sum('debit'), credit=Sum('credit')
    )
    return (totals['debit'] or ZERO) - (totals['credit'] or ZERO)


def post_invoice(invoice, user=None):
    """Write the INVOICE debit for a standard invoice that is not on the ledger yet"""
    if invoice.invoice_type != 'STANDARD':
        return None
    if invoice.total <= 0:
        # Fully discounted, nothing owed
        return None
    if _invoice_ledger_balance(invoice) > 0:
        return None
    return post_ledger_entry(
        customer=invoice.customer,
        transaction_type='INVOICE',
        description=f"Invoice {invoice.invoice_number}",
        debit=invoice.total,
        invoice=invoice,
        user=user,
        transaction_date=invoice.issue_date,
    )


def reverse_invoice_posting(invoice, reason, user=None):
    posted = _invoice_ledger_balance(invoice)
    if posted <= 0:
        return None
    return post_ledger_entry(
        customer=invoice.customer,
        transaction_type='ADJUSTMENT',
        description=f"Reversal of invoice {invoice.invoice_number}: {reason}",
        credit=posted,
        invoice=invoice,
        user=user,
    )


def mark_invoice_sent(invoice, user=None):
    with transaction.atomic():
        invoice.status = 'SENT'
        invoice.sent_at = invoice.sent_at or timezone.now()
        invoice.save(update_fields=['status', 'sent_at', 'updated_at'])
        post_invoice(invoice, user=user)
    return invoice


def change_invoice_status(invoice, new_status, user=None, reason='', request=None):
    allowed = MANUAL_INVOICE_TRANSITIONS.get(invoice.status, [])
    if new_status not in allowed:
        raise BillingError(f"Invoice cannot be moved from {invoice.status} to {new_status}")

    previous = invoice.status
    if new_status == 'CANCELLED':
        cancel_invoice(invoice, reason or 'Cancelled', user=user, request=request)
        return invoice

    with transaction.atomic():
        if new_status == 'SENT':
            mark_invoice_sent(invoice, user=user)
        else:
            if invoice.amount_paid > 0:
                raise BillingError('Invoices with payments cannot return to draft')
            reverse_invoice_posting(invoice, 'returned to draft', user=user)
            invoice.status = 'DRAFT'
            invoice.save(update_fields=['status', 'updated_at'])

    create_audit_log(
        request=request, user=user, action='status_change', model_name='Invoice',
        object_id=str(invoice.id), object_name=invoice.invoice_number,
        changes={'from_status': previous, 'to_status': new_status},
    )
    return invoice


def cancel_invoice(invoice, reason, user=None, request=None):
    if invoice.status == 'CANCELLED':
        raise BillingError('Invoice is already cancelled')
    if invoice.amount_paid > 0 or invoice.allocations.exists():
        raise BillingError('Invoices with payments cannot be cancelled')

    with transaction.atomic():
        reverse_invoice_posting(invoice, reason or 'cancelled', user=user)
        invoice.status = 'CANCELLED'
        invoice.cancelled_at = timezone.now()
        invoice.cancellation_reason = reason or ''
        invoice.save(update_fields=['status', 'cancelled_at', 'cancellation_reason', 'updated_at'])
        invoice.subscription_renewals.filter(status='PENDING').update(status='CANCELLED')

    create_audit_log(
        request=request, user=user, action='invoice_cancel', model_name='Invoice',
        object_id=str(invoice.id), object_name=invoice.invoice_number, changes={'reason': reason or ''},
    )
    return invoice


def delete_invoice(invoice):
    if invoice.status != 'DRAFT':
        raise BillingError('Only draft invoices can be deleted')
    if invoice.allocations.exists():
        raise BillingError('Invoices with payments cannot be deleted')
    invoice.delete()


def active_job_invoice(job):
    return job.invoices.exclude(status='CANCELLED').order_by('-created_at').first()


def create_invoice_from_job(job, user=None, request=None):
    """Standard invoice for a completed job, one line per product at selling price"""
    if job.status not in ('COMPLETED', 'VERIFIED'):
        raise BillingError('Only completed or verified jobs can be invoiced')
    if active_job_invoice(job):
        raise BillingError(f"Job {job.job_number} already has an invoice")

    products = list(job.products.all())
    if not products:
        raise BillingError(f"Job {job.job_number} has no products to invoice")

    device_counts = dict(job.devices.values_list('product_id').order_by().annotate(n=Count('id')))
    items = [
        {
            'product': product,
            'description': product.name,
            'quantity': Decimal(device_counts.get(product.id) or 1),
            'unit_price': product.selling_price,
        }
        for product in products
    ]
    invoice = create_invoice(
        job.customer, items, user=user, job=job,
        notes=f"Job {job.job_number} - {job.get_job_type_display()}",
    )
    create_audit_log(
        request=request, user=user, action='invoice_create', model_name='Invoice',
        object_id=str(invoice.id), object_name=invoice.invoice_number, changes={'job': job.job_number},
    )
    return invoice


def _copy_items(source):
    return [
        {
            'product': item.product,
            'description': item.description,
            'quantity': item.quantity,
            'unit_price': item.unit_price,
        }
        for item in source.items.all()
    ]


def convert_proforma(proforma, user=None, request=None):
    """Issue a standard invoice from a proforma; the proforma is cancelled and linked"""
    if proforma.invoice_type != 'PROFORMA':
        raise BillingError('Only proforma invoices can be converted')
    if proforma.status == 'CANCELLED':
        raise BillingError('Cancelled proforma invoices cannot be converted')
    if proforma.conversions.exists():
        raise BillingError('This proforma has already been converted')

    with transaction.atomic():
        invoice = create_invoice(
            proforma.customer, _copy_items(proforma), user=user,
            invoice_type='STANDARD', status='SENT', job=proforma.job, quotation=proforma.quotation,
            converted_from=proforma, discount_amount=proforma.discount_amount, tax_rate=proforma.tax_rate,
            notes=proforma.notes, terms=proforma.terms,
        )
        proforma.status = 'CANCELLED'
        proforma.cancelled_at = timezone.now()
        proforma.cancellation_reason = f"Converted to {invoice.invoice_number}"
        proforma.save(update_fields=['status', 'cancelled_at', 'cancellation_reason', 'updated_at'])

    create_audit_log(
        request=request, user=user, action='invoice_create', model_name='Invoice',
        object_id=str(invoice.id), object_name=invoice.invoice_number,
        changes={'converted_from': proforma.invoice_number},
    )
    return invoice


def create_quotation(customer, items, user=None, **fields):
    if not items:
        raise BillingError('A quotation needs at least one item')
    fields.setdefault('tax_rate', settings.DEFAULT_TAX_RATE)
    fields.setdefault('issue_date', timezone.localdate())
    if not fields.get('valid_until'):
        fields['valid_until'] = fields['issue_date'] + timedelta(days=settings.QUOTATION_VALID_DAYS)
    with transaction.atomic():
        quotation = Quotation.objects.create(customer=customer, created_by=user, **fields)
        replace_items(quotation, items)
    return quotation


def update_quotation(quotation, items=None, **fields):
    if quotation.status not in ('DRAFT', 'SENT'):
        raise BillingError(f"Quotations in status {quotation.status} cannot be edited")
    with transaction.atomic():
        for field, value in fields.items():
            setattr(quotation, field, value)
        quotation.save()
        if items is not None:
            if not items:
                raise BillingError('A quotation needs at least one item')
            replace_items(quotation, items)
        else:
            recalculate_totals(quotation)
    return quotation


def change_quotation_status(quotation, new_status, user=None, request=None):
    if new_status not in QUOTATION_TRANSITIONS.get(quotation.status, []):
        raise BillingError(f"Quotation cannot be moved from {quotation.status} to {new_status}")
    previous = quotation.status
    quotation.status = new_status
    update_fields = ['status', 'updated_at']
    if new_status == 'SENT' and not quotation.sent_at:
        quotation.sent_at = timezone.now()
        update_fields.append('sent_at')
    quotation.save(update_fields=update_fields)
    create_audit_log(
        request=request, user=user, action='status_change', model_name='Quotation',
        object_id=str(quotation.id), object_name=quotation.quotation_number,
        changes={'from_status': previous, 'to_status': new_status},
    )
    return quotation


def convert_quotation(quotation, user=None, request=None):
    """Turn a sent or approved quotation into a standard invoice"""
    if quotation.status not in ('SENT', 'APPROVED'):
        raise BillingError(f"Quotations in status {quotation.status} cannot be converted")

    with transaction.atomic():
        invoice = create_invoice(
            quotation.customer, _copy_items(quotation), user=user,
            invoice_type='STANDARD', quotation=quotation,
            discount_amount=quotation.discount_amount, tax_rate=quotation.tax_rate,
            notes=quotation.notes, terms=quotation.terms,
        )
        quotation.status = 'CONVERTED'
        quotation.converted_at = timezone.now()
        quotation.save(update_fields=['status', 'converted_at', 'updated_at'])

    create_audit_log(
        request=request, user=user, action='quotation_convert', model_name='Quotation',
        object_id=str(quotation.id), object_name=quotation.quotation_number,
        changes={'invoice': invoice.invoice_number},
    )
    return invoice


def mark_overdue_invoices(today=None):
    """Flag sent/partial invoices past their due date; returns how many changed"""
    today = today or timezone.localdate()
    count = 0
    candidates = Invoice.objects.filter(status__in=['SENT', 'PARTIAL'], due_date__lt=today)
    for invoice in candidates:
        if is_overdue(invoice.status, invoice.due_date, invoice.total, invoice.amount_paid, today):
            invoice.status = 'OVERDUE'
            invoice.save(update_fields=['status', 'updated_at'])
            count += 1
    if count:
        logger.info(f"Marked {count} invoices overdue")
    return count


# Ledger
def customer_balance(customer):
    last = Transaction.objects.filter(customer=customer).order_by('-id').first()
    return last.balance_cf if last else ZERO


def post_ledger_entry(customer, transaction_type, description, debit=None, credit=None,
                      invoice=None, receipt=None, user=None, transaction_date=None):
    """Append a ledger entry carrying the customer's running balance forward"""
    debit = quantize_money(to_decimal(debit, ZERO))
    credit = quantize_money(to_decimal(credit, ZERO))
    if debit < 0 or credit < 0:
        raise BillingError('Debit and credit cannot be negative')
    if (debit > 0) == (credit > 0):
        raise BillingError('Exactly one of debit or credit must be greater than zero')

    with transaction.atomic():
        last = Transaction.objects.select_for_update().filter(customer=customer).order_by('-id').first()
        balance_bf = last.balance_cf if last else ZERO
        return Transaction.objects.create(
            customer=customer,
            transaction_type=transaction_type,
            description=description,
            debit=debit,
            credit=credit,
            balance_bf=balance_bf,
            balance_cf=balance_bf + debit - credit,
            invoice=invoice,
            receipt=receipt,
            transaction_date=transaction_date or timezone.localdate(),
            created_by=user,
        )


def customer_statement(customer, start_date=None, end_date=None):
    """Ledger lines for a period with opening/closing balance and totals"""
    queryset = Transaction.objects.filter(customer=customer).order_by('id')
    opening = ZERO
    if start_date:
        before = queryset.filter(transaction_date__lt=start_date).order_by('-id').first()
        opening = before.balance_cf if before else ZERO
        queryset = queryset.filter(transaction_date__gte=start_date)
    if end_date:
        queryset = queryset.filter(transaction_date__lte=end_date)

    totals = queryset.aggregate(debit=Sum('debit'), credit=Sum('credit'))
    total_debit = totals['debit'] or ZERO
    total_credit = totals['credit'] or ZERO
    return {
        'transactions': queryset,
        'opening_balance': opening,
        'total_debit': total_debit,
        'total_credit': total_credit,
        'closing_balance': opening + total_debit - total_credit,
    }


# Payments
def process_payment(customer, payment_method, amount, allocations, user=None,
                    reference='', notes='', payment_date=None, request=None):
    """
    Record a customer payment split across invoices.

    allocations is a list of {'invoice': Invoice, 'amount': Decimal}. The
    allocation amounts must add up to the payment amount and none may exceed
    the invoice's outstanding balance.
    """
    amount = quantize_money(to_decimal(amount, ZERO))
    if amount <= 0:
        raise BillingError('Payment amount must be greater than zero')
    if not allocations:
        raise BillingError('Allocate the payment to at least one invoice')
    if not payment_method.is_active:
        raise BillingError(f"Payment method {payment_method.name} is inactive")

    seen = set()
    for allocation in allocations:
        invoice = allocation['invoice']
        if invoice.id in seen:
            raise BillingError(f"Invoice {invoice.invoice_number} is allocated more than once")
        seen.add(invoice.id)

    total_allocated = quantize_money(sum((to_decimal(a['amount'], ZERO) for a in allocations), ZERO))
    if total_allocated != amount:
        raise BillingError(f"Allocations total {total_allocated} but the payment is {amount}")

    with transaction.atomic():
        receipt = Receipt.objects.create(
            customer=customer,
            payment_method=payment_method,
            amount=amount,
            payment_date=payment_date or timezone.localdate(),
            reference=reference or '',
            notes=notes or '',
            received_by=user,
        )

        paid_invoices = []
        for allocation in allocations:
            invoice = Invoice.objects.select_for_update().get(pk=allocation['invoice'].pk)
            allocated = quantize_money(to_decimal(allocation['amount'], ZERO))
            if invoice.customer_id != customer.id:
                raise BillingError(f"Invoice {invoice.invoice_number} belongs to another customer")
            if invoice.invoice_type != 'STANDARD':
                raise BillingError(f"Invoice {invoice.invoice_number} is a proforma and cannot be paid")
            if invoice.status in ('CANCELLED', 'DRAFT', 'PAID'):
                raise BillingError(f"Invoice {invoice.invoice_number} is {invoice.status} and cannot be paid")
            if allocated <= 0:
                raise BillingError('Allocation amounts must be greater than zero')
            if allocated > outstanding_amount(invoice.total, invoice.amount_paid):
                raise BillingError(
                    f"Allocation of {allocated} exceeds the outstanding {invoice.outstanding} on {invoice.invoice_number}"
                )

            PaymentAllocation.objects.create(receipt=receipt, invoice=invoice, amount=allocated)
            invoice.amount_paid = quantize_money(invoice.amount_paid + allocated)
            invoice.status = status_after_payment(invoice.status, invoice.total, invoice.amount_paid)
            invoice.save(update_fields=['amount_paid', 'status', 'updated_at'])
            if invoice.status == 'PAID':
                paid_invoices.append(invoice)

        numbers = ', '.join(a['invoice'].invoice_number for a in allocations)
        post_ledger_entry(
            customer=customer,
            transaction_type='RECEIPT',
            description=f"Payment {receipt.receipt_number} ({payment_method.name}) for {numbers}",
            credit=amount,
            receipt=receipt,
            user=user,
            transaction_date=receipt.payment_date,
        )

        if payment_method.processing_fee_percentage > 0:
            ProcessingFee.objects.create(
                receipt=receipt,
                payment_method=payment_method,
                transaction_amount=amount,
                fee_percentage=payment_method.processing_fee_percentage,
                fee_amount=processing_fee_amount(amount, payment_method.processing_fee_percentage),
                transaction_date=receipt.payment_date,
            )

        if paid_invoices:
            from trackops.subscriptions.services import complete_renewals_for_invoices
            complete_renewals_for_invoices(paid_invoices, user=user)

    create_audit_log(
        request=request, user=user, action='payment_process', model_name='Receipt',
        object_id=str(receipt.id), object_name=receipt.receipt_number, object_reference=reference or None,
        changes={
            'amount': str(amount),
            'payment_method': payment_method.name,
            'allocations': [{'invoice': a['invoice'].invoice_number, 'amount': str(a['amount'])} for a in allocations],
        },
    )
    logger.info(f"Payment {receipt.receipt_number} of {amount} recorded for customer {customer.customer_code}")
    return receipt


# Processing fees
def settle_processing_fees(period_start, period_end, user=None, notes='', request=None):
    """Clear every uncleared fee dated within the period (inclusive) into one settlement"""
    if period_start > period_end:
        raise BillingError('Period start must be on or before period end')

    with transaction.atomic():
        fees = ProcessingFee.objects.select_for_update().filter(
            is_cleared=False,
            transaction_date__gte=period_start,
            transaction_date__lte=period_end,
        )
        locked = list(fees)
        if not locked:
            raise BillingError('No uncleared processing fees in this period')
        fee_ids = [fee.id for fee in locked]

        total = sum((fee.fee_amount for fee in locked), ZERO)
        settlement = ProcessingFeeSettlement.objects.create(
            total_fee_amount=total,
            transaction_count=len(fee_ids),
            period_start=period_start,
            period_end=period_end,
            notes=notes or '',
            settled_by=user,
        )
        ProcessingFee.objects.filter(id__in=fee_ids).update(
            is_cleared=True, cleared_at=timezone.now(), settlement=settlement
        )

    create_audit_log(
        request=request, user=user, action='fee_settle', model_name='ProcessingFeeSettlement',
        object_id=str(settlement.id), object_name=settlement.settlement_number,
        changes={'total_fee_amount': str(total), 'transaction_count': len(fee_ids),
                 'period_start': str(period_start), 'period_end': str(period_end)},
    )
    return settlement
