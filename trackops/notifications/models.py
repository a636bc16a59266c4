from django.db import models
from decimal import Decimal
from trackops.core.models import User
from trackops.customers.models import Customer
from trackops.jobs.models import Job


class Notification(models.Model):
    """In-app notification for a user"""
    TYPE_CHOICES = [
        ('INFO', 'Info'),
        ('SUCCESS', 'Success'),
        ('WARNING', 'Warning'),
        ('ERROR', 'Error'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    title = models.CharField(max_length=255)
    message = models.TextField()
    notification_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='INFO')
    link = models.CharField(max_length=255, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='idx_notification_user_read'),
        ]


class SmsLog(models.Model):
    """Outgoing SMS and its delivery outcome at the gateway"""
    TYPE_CHOICES = [
        ('GENERAL', 'General'),
        ('JOB', 'Job'),
        ('INVOICE', 'Invoice'),
        ('PAYMENT', 'Payment'),
        ('SUBSCRIPTION', 'Subscription'),
        ('TEST', 'Test'),
    ]

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('SENT', 'Sent'),
        ('FAILED', 'Failed'),
    ]

    recipient = models.CharField(max_length=20)
    message = models.TextField()
    sms_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='GENERAL')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='PENDING')
    provider_message_id = models.CharField(max_length=100, blank=True)
    error_message = models.TextField(blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='sms_logs')
    job = models.ForeignKey(Job, on_delete=models.SET_NULL, null=True, blank=True, related_name='sms_logs')
    sent_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='sms_sent')
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.recipient} ({self.status})"

    class Meta:
        db_table = 'sms_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_sms_status'),
        ]
