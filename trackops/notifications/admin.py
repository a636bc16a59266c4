from django.contrib import admin
from .models import Notification, SmsLog


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'user', 'notification_type', 'is_read', 'created_at']
    list_filter = ['notification_type', 'is_read']
    search_fields = ['title', 'user__username']


@admin.register(SmsLog)
class SmsLogAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'sms_type', 'status', 'cost', 'sent_at', 'created_at']
    list_filter = ['status', 'sms_type']
    search_fields = ['recipient', 'message', 'provider_message_id']
    readonly_fields = ['provider_message_id', 'error_message', 'sent_at']
