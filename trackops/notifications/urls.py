from django.urls import path
from .views import (
    notification_list, notification_unread, notification_mark_read, notification_mark_all_read,
    sms_send, sms_balance, sms_logs, sms_stats, sms_test,
)

urlpatterns = [
    path('notifications/', notification_list, name='notification-list'),
    path('notifications/unread/', notification_unread, name='notification-unread'),
    path('notifications/mark-all-read/', notification_mark_all_read, name='notification-mark-all-read'),
    path('notifications/<int:pk>/read/', notification_mark_read, name='notification-mark-read'),

    path('sms/send/', sms_send, name='sms-send'),
    path('sms/balance/', sms_balance, name='sms-balance'),
    path('sms/logs/', sms_logs, name='sms-logs'),
    path('sms/stats/', sms_stats, name='sms-stats'),
    path('sms/test/', sms_test, name='sms-test'),
]
