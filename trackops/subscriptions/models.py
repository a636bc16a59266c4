from django.db import models
from django.utils import timezone
from trackops.core.models import User
from trackops.core.utils import generate_reference
from trackops.customers.models import Customer, Vehicle
from trackops.inventory.models import Product, Device
from trackops.jobs.models import Job
from trackops.billing.models import Invoice


class Subscription(models.Model):
    """Tracking service subscription for an installed device"""
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('EXPIRING_SOON', 'Expiring Soon'),
        ('EXPIRED', 'Expired'),
        ('CANCELLED', 'Cancelled'),
        ('SUSPENDED', 'Suspended'),
    ]

    subscription_number = models.CharField(max_length=50, unique=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='subscriptions')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='subscriptions')
    vehicle = models.ForeignKey(Vehicle, on_delete=models.SET_NULL, null=True, blank=True, related_name='subscriptions')
    device = models.ForeignKey(Device, on_delete=models.SET_NULL, null=True, blank=True, related_name='subscriptions')
    invoice = models.ForeignKey(Invoice, on_delete=models.SET_NULL, null=True, blank=True, related_name='subscriptions')
    job = models.ForeignKey(Job, on_delete=models.SET_NULL, null=True, blank=True, related_name='subscriptions')
    start_date = models.DateField(default=timezone.localdate)
    expiry_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')
    auto_renew = models.BooleanField(default=False)
    renewal_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    notification_sent_30_days = models.BooleanField(default=False)
    notification_sent_7_days = models.BooleanField(default=False)
    notification_sent_expired = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='subscriptions_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def days_until_expiry(self):
        return (self.expiry_date - timezone.localdate()).days

    def save(self, *args, **kwargs):
        if not self.subscription_number:
            self.subscription_number = generate_reference('SUB', Subscription, 'subscription_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.subscription_number

    class Meta:
        db_table = 'subscriptions'
        ordering = ['expiry_date', 'id']
        indexes = [
            models.Index(fields=['status'], name='idx_subscription_status'),
            models.Index(fields=['expiry_date'], name='idx_subscription_expiry'),
        ]


class SubscriptionNotification(models.Model):
    """Reminder or status message sent to the subscription's customer"""
    TYPE_CHOICES = [
        ('REMINDER_30_DAYS', '30 Days Reminder'),
        ('REMINDER_7_DAYS', '7 Days Reminder'),
        ('EXPIRED', 'Expired'),
        ('RENEWED', 'Renewed'),
        ('CANCELLED', 'Cancelled'),
    ]

    CHANNEL_CHOICES = [
        ('EMAIL', 'Email'),
        ('SMS', 'SMS'),
    ]

    STATUS_CHOICES = [
        ('SENT', 'Sent'),
        ('FAILED', 'Failed'),
    ]

    subscription = models.ForeignKey(Subscription, on_delete=models.CASCADE, related_name='notifications')
    notification_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES)
    recipient = models.CharField(max_length=255)
    message = models.TextField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='SENT')
    error_message = models.TextField(blank=True)
    sent_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'subscription_notifications'
        ordering = ['-sent_at']


class SubscriptionRenewal(models.Model):
    """Renewal period billed through an invoice; applied once the invoice is paid"""
    STATUS_CHOICES = [
        ('PENDING', 'Pending Payment'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]

    subscription = models.ForeignKey(Subscription, on_delete=models.CASCADE, related_name='renewals')
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='subscription_renewals')
    previous_expiry_date = models.DateField()
    new_start_date = models.DateField()
    new_expiry_date = models.DateField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    completed_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='subscription_renewals')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'subscription_renewals'
        ordering = ['-created_at']
