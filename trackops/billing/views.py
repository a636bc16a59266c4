import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Sum, Count
from django.db.models.deletion import ProtectedError
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date

from trackops.core.exceptions import BusinessRuleError
from trackops.core.permissions import module_permission, action_permission
from trackops.core.utils import create_audit_log, paginate, parse_int
from trackops.customers.models import Customer
from trackops.jobs.models import Job
from .calculations import ZERO
from .filters import InvoiceFilter, QuotationFilter, ReceiptFilter, TransactionFilter, ProcessingFeeFilter
from .models import Invoice, Quotation, PaymentMethod, Receipt, Transaction, ProcessingFee, ProcessingFeeSettlement
from .pdf import render_document_pdf, pdf_filename, email_document
from .serializers import (
    InvoiceSerializer, InvoiceListSerializer, QuotationSerializer, QuotationListSerializer,
    PaymentMethodSerializer, ReceiptSerializer, ProcessPaymentSerializer, TransactionSerializer,
    ManualTransactionSerializer, ProcessingFeeSerializer, ProcessingFeeSettlementSerializer,
    SettlementRequestSerializer,
)
from .services import (
    change_invoice_status, cancel_invoice, delete_invoice, active_job_invoice, create_invoice_from_job,
    convert_proforma, mark_invoice_sent, change_quotation_status, convert_quotation,
    post_ledger_entry, process_payment, settle_processing_fees,
)

logger = logging.getLogger(__name__)

UNPAID_STATUSES = ['SENT', 'PARTIAL', 'OVERDUE']


def _error(e):
    return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)


def _invoice_queryset():
    return Invoice.objects.select_related('customer', 'job', 'quotation', 'converted_from').prefetch_related('items__product')


def _pdf_response(document):
    response = HttpResponse(render_document_pdf(document), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{pdf_filename(document)}"'
    return response


# Invoice views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('invoices')])
def invoice_list_create(request):
    if request.method == 'GET':
        queryset = InvoiceFilter(request.query_params, queryset=Invoice.objects.select_related('customer', 'job')).qs
        return paginate(request, queryset, InvoiceListSerializer)

    serializer = InvoiceSerializer(data=request.data, context={'request': request, 'user': request.user})
    if serializer.is_valid():
        invoice = serializer.save()
        create_audit_log(
            request=request,
            action='invoice_create',
            model_name='Invoice',
            object_id=str(invoice.id),
            object_name=invoice.invoice_number,
            changes={'customer': invoice.customer_id, 'total': str(invoice.total), 'type': invoice.invoice_type},
        )
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('invoices')])
def invoice_detail(request, pk):
    invoice = get_object_or_404(_invoice_queryset(), pk=pk)
    if request.method == 'GET':
        return Response(InvoiceSerializer(invoice).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = InvoiceSerializer(
            invoice, data=request.data, partial=request.method == 'PATCH',
            context={'request': request, 'user': request.user}
        )
        if serializer.is_valid():
            invoice = serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Invoice',
                object_id=str(invoice.id),
                object_name=invoice.invoice_number,
                changes={'total': str(invoice.total)},
            )
            return Response(InvoiceSerializer(invoice).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        number = invoice.invoice_number
        try:
            delete_invoice(invoice)
        except BusinessRuleError as e:
            return _error(e)
        except ProtectedError:
            return Response({'error': 'Invoice is referenced by other records'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Invoice', object_id=str(pk), object_name=number)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('invoices')])
def invoice_summary(request):
    """Counts and totals per status plus what is still owed on standard invoices"""
    queryset = InvoiceFilter(request.query_params, queryset=Invoice.objects.all()).qs
    rows = queryset.values('status').annotate(count=Count('id'), total=Sum('total'), paid=Sum('amount_paid'))
    by_status = {code: {'count': 0, 'total': ZERO, 'paid': ZERO} for code, _ in Invoice.STATUS_CHOICES}
    for row in rows:
        by_status[row['status']] = {'count': row['count'], 'total': row['total'] or ZERO, 'paid': row['paid'] or ZERO}

    unpaid = queryset.filter(invoice_type='STANDARD', status__in=UNPAID_STATUSES).aggregate(
        total=Sum('total'), paid=Sum('amount_paid')
    )
    invoiced = queryset.filter(invoice_type='STANDARD').exclude(status__in=['DRAFT', 'CANCELLED']).aggregate(
        total=Sum('total'), paid=Sum('amount_paid')
    )
    return Response({
        'total_invoices': sum(value['count'] for value in by_status.values()),
        'by_status': by_status,
        'total_invoiced': invoiced['total'] or ZERO,
        'total_paid': invoiced['paid'] or ZERO,
        'total_outstanding': (unpaid['total'] or ZERO) - (unpaid['paid'] or ZERO),
        'overdue_count': by_status['OVERDUE']['count'],
    })


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, action_permission('invoices.update')])
def invoice_status(request, pk):
    """Manual status move, ?status=SENT or {"status": "SENT"}; PAID and PARTIAL come from payments"""
    invoice = get_object_or_404(Invoice, pk=pk)
    new_status = (request.query_params.get('status') or request.data.get('status') or '').upper()
    if not new_status:
        return Response({'error': 'status is required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        change_invoice_status(invoice, new_status, user=request.user,
                              reason=request.data.get('reason', ''), request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(InvoiceSerializer(invoice).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('invoices.cancel')])
def invoice_cancel(request, pk):
    invoice = get_object_or_404(Invoice, pk=pk)
    try:
        cancel_invoice(invoice, (request.data.get('reason') or '').strip(), user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(InvoiceSerializer(invoice).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('invoices.create')])
def invoice_create_from_job(request, job_id):
    job = get_object_or_404(Job.objects.select_related('customer'), pk=job_id)
    try:
        invoice = create_invoice_from_job(job, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('invoices')])
def invoice_for_job(request, job_id):
    job = get_object_or_404(Job, pk=job_id)
    invoice = active_job_invoice(job)
    if invoice is None:
        return Response({'error': f'Job {job.job_number} has no invoice'}, status=status.HTTP_404_NOT_FOUND)
    return Response(InvoiceSerializer(invoice).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('invoices')])
def invoice_exists_for_job(request, job_id):
    job = get_object_or_404(Job, pk=job_id)
    invoice = active_job_invoice(job)
    return Response({
        'exists': invoice is not None,
        'invoice_id': invoice.id if invoice else None,
        'invoice_number': invoice.invoice_number if invoice else None,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('invoices.create')])
def invoice_convert_to_standard(request, pk):
    proforma = get_object_or_404(_invoice_queryset(), pk=pk)
    try:
        invoice = convert_proforma(proforma, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('invoices')])
def invoice_pdf(request, pk):
    return _pdf_response(get_object_or_404(_invoice_queryset(), pk=pk))


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('invoices.send')])
def invoice_send(request, pk):
    """E-mail the invoice PDF; a draft becomes SENT"""
    invoice = get_object_or_404(_invoice_queryset(), pk=pk)
    if invoice.status == 'CANCELLED':
        return Response({'error': 'Cancelled invoices cannot be sent'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        recipient = email_document(
            invoice,
            recipient=request.data.get('email'),
            subject=request.data.get('subject'),
            message=request.data.get('message'),
        )
    except ValueError as e:
        return _error(e)
    except OSError as e:
        logger.error(f"Sending invoice {invoice.invoice_number} failed: {str(e)}")
        return Response({'error': f'Failed to send e-mail: {str(e)}'}, status=status.HTTP_502_BAD_GATEWAY)

    if invoice.status == 'DRAFT':
        try:
            mark_invoice_sent(invoice, user=request.user)
        except BusinessRuleError as e:
            return _error(e)
    create_audit_log(
        request=request,
        action='invoice_send',
        model_name='Invoice',
        object_id=str(invoice.id),
        object_name=invoice.invoice_number,
        changes={'recipient': recipient},
    )
    return Response({'message': f'Invoice sent to {recipient}', 'invoice': InvoiceSerializer(invoice).data})


# Quotation views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('quotations')])
def quotation_list_create(request):
    if request.method == 'GET':
        queryset = QuotationFilter(request.query_params, queryset=Quotation.objects.select_related('customer')).qs
        return paginate(request, queryset, QuotationListSerializer)

    serializer = QuotationSerializer(data=request.data, context={'request': request, 'user': request.user})
    if serializer.is_valid():
        quotation = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Quotation',
            object_id=str(quotation.id),
            object_name=quotation.quotation_number,
            changes={'customer': quotation.customer_id, 'total': str(quotation.total)},
        )
        return Response(QuotationSerializer(quotation).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('quotations')])
def quotation_detail(request, pk):
    quotation = get_object_or_404(Quotation.objects.select_related('customer').prefetch_related('items__product'), pk=pk)
    if request.method == 'GET':
        return Response(QuotationSerializer(quotation).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = QuotationSerializer(
            quotation, data=request.data, partial=request.method == 'PATCH',
            context={'request': request, 'user': request.user}
        )
        if serializer.is_valid():
            quotation = serializer.save()
            return Response(QuotationSerializer(quotation).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if quotation.status == 'CONVERTED':
            return Response({'error': 'Converted quotations cannot be deleted'}, status=status.HTTP_400_BAD_REQUEST)
        number = quotation.quotation_number
        quotation.delete()
        create_audit_log(request=request, action='delete', model_name='Quotation', object_id=str(pk), object_name=number)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, action_permission('quotations.update')])
def quotation_status(request, pk):
    quotation = get_object_or_404(Quotation, pk=pk)
    new_status = (request.query_params.get('status') or request.data.get('status') or '').upper()
    if not new_status:
        return Response({'error': 'status is required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        change_quotation_status(quotation, new_status, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(QuotationSerializer(quotation).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('invoices.create')])
def quotation_convert_to_invoice(request, pk):
    quotation = get_object_or_404(Quotation.objects.prefetch_related('items__product'), pk=pk)
    try:
        invoice = convert_quotation(quotation, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('quotations')])
def quotation_pdf(request, pk):
    return _pdf_response(get_object_or_404(Quotation.objects.select_related('customer'), pk=pk))


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('quotations.update')])
def quotation_send_email(request, pk):
    quotation = get_object_or_404(Quotation.objects.select_related('customer'), pk=pk)
    if quotation.status in ('CONVERTED', 'REJECTED', 'EXPIRED'):
        return Response({'error': f'{quotation.get_status_display()} quotations cannot be sent'},
                        status=status.HTTP_400_BAD_REQUEST)
    try:
        recipient = email_document(
            quotation,
            recipient=request.data.get('email'),
            subject=request.data.get('subject'),
            message=request.data.get('message'),
        )
    except ValueError as e:
        return _error(e)
    except OSError as e:
        logger.error(f"Sending quotation {quotation.quotation_number} failed: {str(e)}")
        return Response({'error': f'Failed to send e-mail: {str(e)}'}, status=status.HTTP_502_BAD_GATEWAY)

    if quotation.status == 'DRAFT':
        change_quotation_status(quotation, 'SENT', user=request.user, request=request)
    return Response({'message': f'Quotation sent to {recipient}', 'quotation': QuotationSerializer(quotation).data})


# Payment method views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('payment_methods')])
def payment_method_list_create(request):
    if request.method == 'GET':
        methods = PaymentMethod.objects.all()
        if request.query_params.get('is_active') in ('true', '1'):
            methods = methods.filter(is_active=True)
        return Response(PaymentMethodSerializer(methods, many=True).data)
    serializer = PaymentMethodSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('payment_methods')])
def payment_method_detail(request, pk):
    method = get_object_or_404(PaymentMethod, pk=pk)
    if request.method == 'GET':
        return Response(PaymentMethodSerializer(method).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = PaymentMethodSerializer(method, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            method.delete()
        except ProtectedError:
            return Response(
                {'error': 'Payment method has receipts; deactivate it instead'},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('payment_methods.update')])
def payment_method_toggle_status(request, pk):
    method = get_object_or_404(PaymentMethod, pk=pk)
    method.is_active = not method.is_active
    method.save(update_fields=['is_active', 'updated_at'])
    return Response(PaymentMethodSerializer(method).data)


# Payment views
@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('payments.create')])
def payment_process(request):
    """Record a payment and allocate it across the customer's invoices"""
    serializer = ProcessPaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        receipt = process_payment(
            data['customer'], data['payment_method'], data['amount'], data['allocations'],
            user=request.user, reference=data.get('reference', ''), notes=data.get('notes', ''),
            payment_date=data.get('payment_date'), request=request,
        )
    except BusinessRuleError as e:
        return _error(e)
    return Response(ReceiptSerializer(receipt).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('payments')])
def receipt_list(request):
    queryset = Receipt.objects.select_related('customer', 'payment_method', 'received_by').prefetch_related(
        'allocations__invoice'
    )
    queryset = ReceiptFilter(request.query_params, queryset=queryset).qs
    return paginate(request, queryset, ReceiptSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('payments')])
def receipt_detail(request, pk):
    receipt = get_object_or_404(
        Receipt.objects.select_related('customer', 'payment_method', 'received_by').prefetch_related('allocations__invoice'),
        pk=pk
    )
    return Response(ReceiptSerializer(receipt).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('payments')])
def customer_outstanding_invoices(request, customer_id):
    """Standard invoices a payment can be allocated to, oldest due first"""
    customer = get_object_or_404(Customer, pk=customer_id)
    invoices = Invoice.objects.filter(
        customer=customer, invoice_type='STANDARD', status__in=UNPAID_STATUSES
    ).select_related('customer', 'job').order_by('due_date', 'id')
    data = InvoiceListSerializer(invoices, many=True).data
    return Response({
        'customer_id': customer.id,
        'customer_name': customer.display_name,
        'total_outstanding': sum((invoice.outstanding for invoice in invoices), ZERO),
        'invoices': data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('payments')])
def payment_summary(request):
    """Receipts totals by payment method and by day, default last 30 days"""
    end_date = parse_date(request.query_params.get('end_date') or '') or timezone.localdate()
    start_date = parse_date(request.query_params.get('start_date') or '') or end_date - timedelta(days=30)
    if start_date > end_date:
        return Response({'error': 'start_date must be on or before end_date'}, status=status.HTTP_400_BAD_REQUEST)

    receipts = Receipt.objects.filter(payment_date__gte=start_date, payment_date__lte=end_date)
    by_method = receipts.values('payment_method__id', 'payment_method__name').annotate(
        count=Count('id'), total=Sum('amount')
    ).order_by('-total')
    by_day = receipts.values('payment_date').annotate(count=Count('id'), total=Sum('amount')).order_by('payment_date')
    fees = ProcessingFee.objects.filter(receipt__in=receipts).aggregate(total=Sum('fee_amount'))
    return Response({
        'start_date': start_date,
        'end_date': end_date,
        'total_received': receipts.aggregate(total=Sum('amount'))['total'] or ZERO,
        'receipt_count': receipts.count(),
        'processing_fees': fees['total'] or ZERO,
        'by_method': [
            {'payment_method_id': row['payment_method__id'], 'payment_method': row['payment_method__name'],
             'count': row['count'], 'total': row['total']}
            for row in by_method
        ],
        'by_day': [{'date': row['payment_date'], 'count': row['count'], 'total': row['total']} for row in by_day],
    })


# Transaction views
@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('transactions')])
def transaction_list(request):
    queryset = Transaction.objects.select_related('customer', 'invoice', 'receipt')
    queryset = TransactionFilter(request.query_params, queryset=queryset).qs
    return paginate(request, queryset, TransactionSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('transactions')])
def transaction_detail(request, pk):
    return Response(TransactionSerializer(
        get_object_or_404(Transaction.objects.select_related('customer', 'invoice', 'receipt'), pk=pk)
    ).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('transactions')])
def transaction_summary(request):
    queryset = TransactionFilter(request.query_params, queryset=Transaction.objects.all()).qs
    totals = queryset.aggregate(total_debit=Sum('debit'), total_credit=Sum('credit'), count=Count('id'))
    by_type = {
        row['transaction_type']: {'count': row['count'], 'debit': row['debit'], 'credit': row['credit']}
        for row in queryset.values('transaction_type').annotate(count=Count('id'), debit=Sum('debit'), credit=Sum('credit'))
    }
    total_debit = totals['total_debit'] or ZERO
    total_credit = totals['total_credit'] or ZERO
    return Response({
        'count': totals['count'],
        'total_debit': total_debit,
        'total_credit': total_credit,
        'net': total_debit - total_credit,
        'by_type': by_type,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('transactions.create')])
def transaction_manual_entry(request):
    """ADJUSTMENT or PAYMENT ledger entry; exactly one of debit or credit"""
    serializer = ManualTransactionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        entry = post_ledger_entry(
            customer=data['customer'],
            transaction_type=data['transaction_type'],
            description=data['description'],
            debit=data.get('debit'),
            credit=data.get('credit'),
            user=request.user,
            transaction_date=data.get('transaction_date'),
        )
    except BusinessRuleError as e:
        return _error(e)
    create_audit_log(
        request=request,
        action='create',
        model_name='Transaction',
        object_id=str(entry.id),
        object_name=entry.transaction_number,
        changes={'type': entry.transaction_type, 'debit': str(entry.debit), 'credit': str(entry.credit)},
    )
    return Response(TransactionSerializer(entry).data, status=status.HTTP_201_CREATED)


# Processing fee views
@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('processing_fees')])
def processing_fee_dashboard_stats(request):
    today = timezone.localdate()
    fees = ProcessingFee.objects.all()
    pending = fees.filter(is_cleared=False).aggregate(total=Sum('fee_amount'), count=Count('id'))
    cleared = fees.filter(is_cleared=True).aggregate(total=Sum('fee_amount'), count=Count('id'))
    this_month = fees.filter(transaction_date__year=today.year, transaction_date__month=today.month).aggregate(
        total=Sum('fee_amount'), count=Count('id')
    )
    recent = ProcessingFeeSettlement.objects.select_related('settled_by')[:5]
    return Response({
        'pending_amount': pending['total'] or ZERO,
        'pending_count': pending['count'],
        'cleared_amount': cleared['total'] or ZERO,
        'cleared_count': cleared['count'],
        'this_month_amount': this_month['total'] or ZERO,
        'this_month_count': this_month['count'],
        'recent_settlements': ProcessingFeeSettlementSerializer(recent, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('processing_fees')])
def processing_fee_transactions(request):
    queryset = ProcessingFee.objects.select_related('receipt__customer', 'payment_method', 'settlement')
    queryset = ProcessingFeeFilter(request.query_params, queryset=queryset).qs
    return paginate(request, queryset, ProcessingFeeSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('processing_fees')])
def processing_fee_pending_summary(request):
    """Uncleared fees grouped by payment method, with the oldest and newest dates"""
    pending = ProcessingFee.objects.filter(is_cleared=False)
    rows = pending.values('payment_method__id', 'payment_method__name').annotate(
        count=Count('id'), total_fee=Sum('fee_amount'), total_transactions=Sum('transaction_amount')
    ).order_by('payment_method__name')
    dates = pending.order_by('transaction_date').values_list('transaction_date', flat=True)
    return Response({
        'total_pending': pending.aggregate(total=Sum('fee_amount'))['total'] or ZERO,
        'count': pending.count(),
        'oldest_date': dates.first(),
        'newest_date': dates.last(),
        'by_payment_method': [
            {'payment_method_id': row['payment_method__id'], 'payment_method': row['payment_method__name'],
             'count': row['count'], 'total_fee': row['total_fee'], 'total_transactions': row['total_transactions']}
            for row in rows
        ],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('processing_fees.create')])
def processing_fee_settle(request):
    serializer = SettlementRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        settlement = settle_processing_fees(
            data['period_start'], data['period_end'], user=request.user,
            notes=data.get('notes', ''), request=request,
        )
    except BusinessRuleError as e:
        return _error(e)
    return Response(ProcessingFeeSettlementSerializer(settlement).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('processing_fees')])
def processing_fee_settlements(request):
    queryset = ProcessingFeeSettlement.objects.select_related('settled_by')
    return paginate(request, queryset, ProcessingFeeSettlementSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('processing_fees')])
def processing_fee_settlement_detail(request, pk):
    settlement = get_object_or_404(ProcessingFeeSettlement.objects.select_related('settled_by'), pk=pk)
    fees = settlement.fees.select_related('receipt__customer', 'payment_method')
    limit = parse_int(request.query_params.get('limit'), 100)
    return Response({
        **ProcessingFeeSettlementSerializer(settlement).data,
        'fees': ProcessingFeeSerializer(fees[:limit], many=True).data,
    })
