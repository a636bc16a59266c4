import logging
from datetime import timedelta

from django.db.models import Sum, Count, F
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from trackops.billing.calculations import ZERO
from trackops.billing.models import Invoice, Receipt, ProcessingFee
from trackops.core.cache_utils import get_cached_dashboard, cache_dashboard, REPORTS_CACHE_TTL
from trackops.core.permissions import action_permission
from trackops.customers.models import Customer, Vehicle
from trackops.inventory.services import low_stock_products
from trackops.jobs.models import Job, Requisition, AdvanceRequest
from trackops.subscriptions.models import Subscription

logger = logging.getLogger(__name__)

RECEIVABLE_STATUSES = ['SENT', 'PARTIAL', 'OVERDUE']


def _cached(response_data, hit):
    response = Response(response_data)
    response['X-Cache'] = 'HIT' if hit else 'MISS'
    response['Cache-Control'] = 'private, max-age=60'
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated, action_permission('reports.read')])
def dashboard_overview(request):
    """Headline numbers for the back office dashboard"""
    cached_data, cache_key = get_cached_dashboard('overview')
    if cached_data is not None:
        return _cached(cached_data, hit=True)

    today = timezone.localdate()
    month_start = today.replace(day=1)

    jobs_by_status = {row['status']: row['count'] for row in Job.objects.values('status').annotate(count=Count('id'))}
    receivables = Invoice.objects.filter(status__in=RECEIVABLE_STATUSES, invoice_type='STANDARD')
    outstanding = receivables.aggregate(total=Sum(F('total') - F('amount_paid')))['total'] or ZERO
    overdue = receivables.filter(status='OVERDUE')
    revenue = Receipt.objects.filter(payment_date__gte=month_start, payment_date__lte=today).aggregate(
        total=Sum('amount'), count=Count('id')
    )
    pending_advances = AdvanceRequest.objects.filter(status='PENDING').aggregate(total=Sum('amount'), count=Count('id'))
    low_stock = low_stock_products()

    data = {
        'generated_at': timezone.now(),
        'customers': {
            'total': Customer.objects.count(),
            'active': Customer.objects.filter(is_active=True).count(),
            'new_this_month': Customer.objects.filter(created_at__date__gte=month_start).count(),
        },
        'vehicles': Vehicle.objects.filter(is_active=True).count(),
        'jobs': {
            'total': sum(jobs_by_status.values()),
            'by_status': jobs_by_status,
            'scheduled_today': Job.objects.filter(scheduled_date=today).exclude(status='CANCELLED').count(),
        },
        'revenue_this_month': {
            'total': revenue['total'] or ZERO,
            'receipt_count': revenue['count'],
        },
        'receivables': {
            'outstanding': outstanding,
            'open_invoices': receivables.count(),
            'overdue_count': overdue.count(),
            'overdue_amount': overdue.aggregate(total=Sum(F('total') - F('amount_paid')))['total'] or ZERO,
        },
        'subscriptions': {
            'active': Subscription.objects.filter(status='ACTIVE').count(),
            'expiring_soon': Subscription.objects.filter(status='EXPIRING_SOON').count(),
            'expired': Subscription.objects.filter(status='EXPIRED').count(),
        },
        'low_stock_products': [
            {'id': product.id, 'name': product.name, 'sku': product.sku,
             'stock': product.available_quantity, 'reorder_level': product.reorder_level}
            for product in low_stock
        ],
        'pending_requisitions': Requisition.objects.filter(status='PENDING').count(),
        'pending_advances': {
            'count': pending_advances['count'],
            'total': pending_advances['total'] or ZERO,
        },
        'uncleared_processing_fees': ProcessingFee.objects.filter(is_cleared=False).aggregate(
            total=Sum('fee_amount'))['total'] or ZERO,
    }
    cache_dashboard(cache_key, data)
    return _cached(data, hit=False)


@api_view(['GET'])
@permission_classes([IsAuthenticated, action_permission('reports.read')])
def revenue_report(request):
    """Receipts per day and per payment method, with invoiced totals for the same period"""
    try:
        end_date = parse_date(request.query_params.get('end_date') or '') or timezone.localdate()
        start_date = parse_date(request.query_params.get('start_date') or '') or end_date - timedelta(days=30)
    except ValueError:
        return Response({'error': 'Dates must be valid and formatted YYYY-MM-DD'}, status=status.HTTP_400_BAD_REQUEST)
    if start_date > end_date:
        return Response({'error': 'start_date must be on or before end_date'}, status=status.HTTP_400_BAD_REQUEST)

    cached_data, cache_key = get_cached_dashboard('revenue', start_date, end_date)
    if cached_data is not None:
        return _cached(cached_data, hit=True)

    receipts = Receipt.objects.filter(payment_date__gte=start_date, payment_date__lte=end_date)
    by_day = receipts.values('payment_date').annotate(count=Count('id'), total=Sum('amount')).order_by('payment_date')
    by_method = receipts.values('payment_method__id', 'payment_method__name').annotate(
        count=Count('id'), total=Sum('amount')
    ).order_by('-total')
    invoiced = Invoice.objects.filter(
        invoice_type='STANDARD', issue_date__gte=start_date, issue_date__lte=end_date
    ).exclude(status__in=['DRAFT', 'CANCELLED']).aggregate(total=Sum('total'), count=Count('id'))
    fees = ProcessingFee.objects.filter(receipt__in=receipts).aggregate(total=Sum('fee_amount'))
    total_received = receipts.aggregate(total=Sum('amount'))['total'] or ZERO

    data = {
        'start_date': start_date,
        'end_date': end_date,
        'total_received': total_received,
        'receipt_count': receipts.count(),
        'processing_fees': fees['total'] or ZERO,
        'net_received': total_received - (fees['total'] or ZERO),
        'total_invoiced': invoiced['total'] or ZERO,
        'invoice_count': invoiced['count'],
        'by_day': [{'date': row['payment_date'], 'count': row['count'], 'total': row['total']} for row in by_day],
        'by_method': [
            {'payment_method_id': row['payment_method__id'], 'payment_method': row['payment_method__name'],
             'count': row['count'], 'total': row['total']}
            for row in by_method
        ],
    }
    cache_dashboard(cache_key, data, ttl=REPORTS_CACHE_TTL)
    return _cached(data, hit=False)
