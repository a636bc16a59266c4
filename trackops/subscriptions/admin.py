from django.contrib import admin
from .models import Subscription, SubscriptionNotification, SubscriptionRenewal


class SubscriptionRenewalInline(admin.TabularInline):
    model = SubscriptionRenewal
    extra = 0
    readonly_fields = ['invoice', 'previous_expiry_date', 'new_start_date', 'new_expiry_date', 'amount', 'status', 'completed_at']
    can_delete = False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ['subscription_number', 'customer', 'product', 'vehicle', 'start_date', 'expiry_date', 'status']
    list_filter = ['status', 'product', 'auto_renew']
    search_fields = ['subscription_number', 'customer__business_name', 'vehicle__vehicle_reg', 'device__imei']
    readonly_fields = ['subscription_number']
    inlines = [SubscriptionRenewalInline]


@admin.register(SubscriptionNotification)
class SubscriptionNotificationAdmin(admin.ModelAdmin):
    list_display = ['subscription', 'notification_type', 'channel', 'recipient', 'status', 'sent_at']
    list_filter = ['notification_type', 'channel', 'status']
