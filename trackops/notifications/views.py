import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Count, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone

from trackops.core.permissions import module_permission, action_permission
from trackops.core.utils import create_audit_log, paginate, parse_int
from trackops.customers.models import Customer
from trackops.jobs.models import Job
from .models import Notification, SmsLog
from .serializers import NotificationSerializer, SmsLogSerializer, SendSmsSerializer
from .sms import send_sms, get_balance, get_sms_config

logger = logging.getLogger(__name__)


# In-app notifications
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_list(request):
    queryset = Notification.objects.filter(user=request.user)
    if request.query_params.get('is_read') in ('true', 'false'):
        queryset = queryset.filter(is_read=request.query_params['is_read'] == 'true')
    return paginate(request, queryset, NotificationSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_unread(request):
    queryset = Notification.objects.filter(user=request.user, is_read=False)
    limit = min(max(parse_int(request.query_params.get('limit'), 10), 1), 50)
    return Response({
        'count': queryset.count(),
        'results': NotificationSerializer(queryset[:limit], many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_mark_read(request, pk):
    notification = get_object_or_404(Notification, pk=pk, user=request.user)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = timezone.now()
        notification.save(update_fields=['is_read', 'read_at'])
    return Response(NotificationSerializer(notification).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_mark_all_read(request):
    updated = Notification.objects.filter(user=request.user, is_read=False).update(is_read=True, read_at=timezone.now())
    return Response({'message': f'{updated} notifications marked as read', 'updated': updated})


# SMS
@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('sms.send')])
def sms_send(request):
    """Send one message to each recipient; failures are reported per number"""
    serializer = SendSmsSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    customer = get_object_or_404(Customer, pk=data['customer']) if data.get('customer') else None
    job = get_object_or_404(Job, pk=data['job']) if data.get('job') else None
    numbers = list(data.get('phone_numbers') or [])
    if data.get('phone'):
        numbers.append(data['phone'])
    if not numbers and customer is not None:
        numbers.append(customer.phone)

    logs = [
        send_sms(number, data['message'], sms_type=data['sms_type'], customer=customer, job=job, user=request.user)
        for number in numbers
    ]
    sent = sum(1 for log in logs if log.status == 'SENT')
    create_audit_log(
        request=request,
        action='sms_send',
        model_name='SmsLog',
        object_id=str(logs[0].id),
        changes={'recipients': [log.recipient for log in logs], 'sent': sent, 'failed': len(logs) - sent},
    )
    return Response({
        'sent': sent,
        'failed': len(logs) - sent,
        'results': SmsLogSerializer(logs, many=True).data,
    }, status=status.HTTP_200_OK if sent else status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('sms')])
def sms_balance(request):
    balance = get_balance()
    if balance is None:
        return Response({'error': 'SMS balance is unavailable'}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(balance)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('sms')])
def sms_logs(request):
    queryset = SmsLog.objects.select_related('customer', 'job', 'sent_by')
    for param in ('status', 'sms_type'):
        value = request.query_params.get(param)
        if value:
            queryset = queryset.filter(**{param: value.upper()})
    if request.query_params.get('customer'):
        queryset = queryset.filter(customer_id=parse_int(request.query_params['customer'], 0))
    search = (request.query_params.get('search') or '').strip()
    if search:
        queryset = queryset.filter(recipient__icontains=search)
    return paginate(request, queryset, SmsLogSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('sms')])
def sms_stats(request):
    days = min(max(parse_int(request.query_params.get('days'), 30), 1), 365)
    since = timezone.now() - timedelta(days=days)
    queryset = SmsLog.objects.filter(created_at__gte=since)
    counts = dict(queryset.values_list('status').annotate(count=Count('id')))
    total = sum(counts.values())
    return Response({
        'days': days,
        'total': total,
        'sent': counts.get('SENT', 0),
        'failed': counts.get('FAILED', 0),
        'pending': counts.get('PENDING', 0),
        'success_rate': round(counts.get('SENT', 0) * 100 / total, 1) if total else 0,
        'total_cost': queryset.aggregate(total=Sum('cost'))['total'] or 0,
        'by_type': dict(queryset.values_list('sms_type').annotate(count=Count('id'))),
        'gateway_enabled': get_sms_config()['enabled'],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('sms.send')])
def sms_test(request):
    phone = request.data.get('phone') or getattr(request.user, 'phone', '')
    if not phone:
        return Response({'error': 'phone is required'}, status=status.HTTP_400_BAD_REQUEST)
    message = request.data.get('message') or 'Test message from the tracking back office.'
    log = send_sms(phone, message, sms_type='TEST', user=request.user)
    code = status.HTTP_200_OK if log.status == 'SENT' else status.HTTP_400_BAD_REQUEST
    return Response(SmsLogSerializer(log).data, status=code)
