from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Back-office user with a business role"""
    ROLE_CHOICES = [
        ('ADMIN', 'Administrator'),
        ('MANAGER', 'Manager'),
        ('FINANCE', 'Finance'),
        ('SALES', 'Sales'),
        ('SUPPORT', 'Support'),
        ('TECHNICIAN', 'Technician'),
    ]

    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='SUPPORT')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self):
        full_name = self.get_full_name()
        return full_name or self.username

    class Meta:
        db_table = 'users'


class Setting(models.Model):
    """System settings"""
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'


class AuditLog(models.Model):
    """Audit log for business operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('status_change', 'Status Change'),
        ('job_assign', 'Job Assigned'),
        ('job_cancel', 'Job Cancelled'),
        ('requisition_issue', 'Requisition Issued'),
        ('advance_disburse', 'Advance Disbursed'),
        ('inspection_submit', 'Inspection Submitted'),
        ('stock_adjust', 'Stock Adjustment'),
        ('stock_transfer', 'Stock Transfer'),
        ('device_status', 'Device Status Change'),
        ('invoice_create', 'Invoice Created'),
        ('invoice_cancel', 'Invoice Cancelled'),
        ('invoice_send', 'Invoice Sent'),
        ('quotation_convert', 'Quotation Converted'),
        ('payment_process', 'Payment Processed'),
        ('fee_settle', 'Processing Fees Settled'),
        ('subscription_renew', 'Subscription Renewed'),
        ('subscription_cancel', 'Subscription Cancelled'),
        ('sms_send', 'SMS Sent'),
        ('data_import', 'Data Import'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True)
    object_reference = models.CharField(max_length=255, blank=True, null=True)
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_auditlog_created'),
            models.Index(fields=['action'], name='idx_auditlog_action'),
            models.Index(fields=['model_name'], name='idx_auditlog_model'),
            models.Index(fields=['object_reference'], name='idx_auditlog_reference'),
        ]
