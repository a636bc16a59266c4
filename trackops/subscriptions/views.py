import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.conf import settings
from django.db.models import Count, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone

from trackops.billing.serializers import InvoiceSerializer
from trackops.core.exceptions import BusinessRuleError
from trackops.core.permissions import module_permission, action_permission
from trackops.core.utils import create_audit_log, paginate
from trackops.customers.models import Customer
from .filters import SubscriptionFilter
from .models import Subscription, SubscriptionRenewal
from .serializers import SubscriptionSerializer, SubscriptionNotificationSerializer, SubscriptionRenewalSerializer
from .services import check_expiry, generate_renewal_invoice, cancel_subscription, pending_renewal

logger = logging.getLogger(__name__)


def _subscription_queryset():
    return Subscription.objects.select_related('customer', 'product', 'vehicle', 'device', 'invoice')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('subscriptions')])
def subscription_list_create(request):
    if request.method == 'GET':
        queryset = SubscriptionFilter(request.query_params, queryset=_subscription_queryset()).qs
        return paginate(request, queryset, SubscriptionSerializer)

    serializer = SubscriptionSerializer(data=request.data)
    if serializer.is_valid():
        subscription = serializer.save(created_by=request.user)
        create_audit_log(
            request=request,
            action='create',
            model_name='Subscription',
            object_id=str(subscription.id),
            object_name=subscription.subscription_number,
            changes={'customer': subscription.customer_id, 'expiry_date': str(subscription.expiry_date)},
        )
        return Response(SubscriptionSerializer(subscription).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('subscriptions')])
def subscription_detail(request, pk):
    subscription = get_object_or_404(_subscription_queryset(), pk=pk)
    if request.method == 'GET':
        data = SubscriptionSerializer(subscription).data
        data['renewals'] = SubscriptionRenewalSerializer(subscription.renewals.select_related('invoice'), many=True).data
        data['notifications'] = SubscriptionNotificationSerializer(subscription.notifications.all()[:20], many=True).data
        return Response(data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SubscriptionSerializer(subscription, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            subscription = serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Subscription',
                object_id=str(subscription.id),
                object_name=subscription.subscription_number,
                changes={key: str(value) for key, value in serializer.validated_data.items()},
            )
            return Response(SubscriptionSerializer(subscription).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if pending_renewal(subscription):
            return Response(
                {'error': 'Subscription has an unpaid renewal invoice; cancel the invoice first'},
                status=status.HTTP_400_BAD_REQUEST
            )
        number = subscription.subscription_number
        subscription.delete()
        create_audit_log(request=request, action='delete', model_name='Subscription', object_id=str(pk), object_name=number)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('subscriptions.update')])
def subscription_cancel(request, pk):
    subscription = get_object_or_404(_subscription_queryset(), pk=pk)
    try:
        cancel_subscription(subscription, (request.data.get('reason') or '').strip(), user=request.user, request=request)
    except BusinessRuleError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(SubscriptionSerializer(subscription).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('subscriptions')])
def customer_subscriptions(request, customer_id):
    customer = get_object_or_404(Customer, pk=customer_id)
    subscriptions = _subscription_queryset().filter(customer=customer)
    return Response(SubscriptionSerializer(subscriptions, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('subscriptions')])
def subscription_dashboard_stats(request):
    today = timezone.localdate()
    counts = dict(Subscription.objects.values_list('status').annotate(count=Count('id')))
    soon = today + timedelta(days=settings.SUBSCRIPTION_EXPIRING_SOON_DAYS)
    expiring = _subscription_queryset().filter(
        status__in=['ACTIVE', 'EXPIRING_SOON'], expiry_date__gte=today, expiry_date__lte=soon
    ).order_by('expiry_date')
    renewals = SubscriptionRenewal.objects.filter(status='PENDING')
    return Response({
        'total': sum(counts.values()),
        'by_status': {code: counts.get(code, 0) for code, _ in Subscription.STATUS_CHOICES},
        'active': counts.get('ACTIVE', 0) + counts.get('EXPIRING_SOON', 0),
        'expiring_in_7_days': expiring.filter(expiry_date__lte=today + timedelta(days=7)).count(),
        'expiring_in_30_days': expiring.count(),
        'pending_renewals': renewals.count(),
        'pending_renewal_amount': renewals.aggregate(total=Sum('amount'))['total'] or 0,
        'upcoming_expiries': SubscriptionSerializer(expiring[:10], many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('subscriptions.update')])
def subscription_check_expiry(request):
    """Re-evaluate statuses and send due reminders; ?notify=false only updates statuses"""
    notify = str(request.data.get('notify', request.query_params.get('notify', 'true'))).lower() not in ('false', '0', 'no')
    summary = check_expiry(send_notifications=notify)
    return Response(summary)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('invoices.create')])
def subscription_generate_renewal_invoice(request, pk):
    subscription = get_object_or_404(_subscription_queryset(), pk=pk)
    try:
        renewal = generate_renewal_invoice(subscription, user=request.user, request=request)
    except BusinessRuleError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({
        'renewal': SubscriptionRenewalSerializer(renewal).data,
        'invoice': InvoiceSerializer(renewal.invoice).data,
    }, status=status.HTTP_201_CREATED)
