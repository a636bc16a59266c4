from django.db import models
from trackops.core.models import User
from trackops.core.utils import generate_reference
from trackops.customers.models import Customer, Vehicle
from trackops.technicians.models import Technician
from trackops.inventory.models import Product, StockBatch, Device


class Job(models.Model):
    """Installation / service job for a customer's vehicle"""
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('ASSIGNED', 'Assigned'),
        ('REQUISITION_PENDING', 'Requisition Pending'),
        ('REQUISITION_APPROVED', 'Requisition Approved'),
        ('PRE_INSPECTION_PENDING', 'Pre-Inspection Pending'),
        ('PRE_INSPECTION_APPROVED', 'Pre-Inspection Approved'),
        ('IN_PROGRESS', 'In Progress'),
        ('POST_INSPECTION_PENDING', 'Post-Inspection Pending'),
        ('COMPLETED', 'Completed'),
        ('VERIFIED', 'Verified'),
        ('CANCELLED', 'Cancelled'),
    ]

    JOB_TYPE_CHOICES = [
        ('NEW_INSTALLATION', 'New Installation'),
        ('REPLACEMENT', 'Replacement'),
        ('MAINTENANCE', 'Maintenance'),
        ('REPAIR', 'Repair'),
        ('UPGRADE', 'Upgrade'),
    ]

    job_number = models.CharField(max_length=50, unique=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='jobs')
    vehicle = models.ForeignKey(Vehicle, on_delete=models.SET_NULL, null=True, blank=True, related_name='jobs')
    job_type = models.CharField(max_length=30, choices=JOB_TYPE_CHOICES, default='NEW_INSTALLATION')
    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default='PENDING')
    products = models.ManyToManyField(Product, blank=True, related_name='jobs')
    service_description = models.TextField(blank=True)
    scheduled_date = models.DateField(null=True, blank=True)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    device_position = models.CharField(max_length=255, blank=True)
    installation_notes = models.TextField(blank=True)
    photo_urls = models.JSONField(default=list, blank=True)
    imei_numbers = models.JSONField(default=list, blank=True)
    gps_coordinates = models.CharField(max_length=100, blank=True)
    payment_verified = models.BooleanField(default=False)
    technicians = models.ManyToManyField(Technician, blank=True, related_name='jobs')
    lead_technician = models.ForeignKey(Technician, on_delete=models.SET_NULL, null=True, blank=True, related_name='led_jobs')
    devices = models.ManyToManyField(Device, blank=True, related_name='jobs')
    assigned_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='jobs_assigned')
    assigned_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='jobs_approved')
    approved_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='jobs_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.job_number:
            self.job_number = generate_reference('JOB', Job, 'job_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.job_number

    class Meta:
        db_table = 'jobs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_job_status'),
            models.Index(fields=['scheduled_date'], name='idx_job_scheduled'),
        ]


class JobStatusHistory(models.Model):
    """Timeline of job status changes"""
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='status_history')
    from_status = models.CharField(max_length=30, blank=True)
    to_status = models.CharField(max_length=30)
    notes = models.TextField(blank=True)
    changed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='job_status_changes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'job_status_history'
        ordering = ['created_at', 'id']


class Requisition(models.Model):
    """Stock requested by a technician for a job"""
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('APPROVED', 'Approved'),
        ('PARTIALLY_ISSUED', 'Partially Issued'),
        ('FULLY_ISSUED', 'Fully Issued'),
        ('REJECTED', 'Rejected'),
    ]

    requisition_number = models.CharField(max_length=50, unique=True, blank=True)
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='requisitions')
    technician = models.ForeignKey(Technician, on_delete=models.PROTECT, related_name='requisitions')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)
    approved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='requisitions_approved')
    approved_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='requisitions_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.requisition_number:
            self.requisition_number = generate_reference('REQ', Requisition, 'requisition_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.requisition_number

    class Meta:
        db_table = 'requisitions'
        ordering = ['-created_at']


class RequisitionItem(models.Model):
    """Requested product line and how much of it has been issued"""
    requisition = models.ForeignKey(Requisition, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='requisition_items')
    quantity_requested = models.PositiveIntegerField()
    quantity_issued = models.PositiveIntegerField(default=0)
    batch = models.ForeignKey(StockBatch, on_delete=models.SET_NULL, null=True, blank=True, related_name='requisition_items')
    devices = models.ManyToManyField(Device, blank=True, related_name='requisition_items')
    issued_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='requisition_items_issued')
    issued_at = models.DateTimeField(null=True, blank=True)

    @property
    def quantity_outstanding(self):
        return self.quantity_requested - self.quantity_issued

    class Meta:
        db_table = 'requisition_items'
        ordering = ['id']


class AdvanceRequest(models.Model):
    """Cash advance requested by a technician for job expenses"""
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('APPROVED', 'Approved'),
        ('DISBURSED', 'Disbursed'),
        ('REJECTED', 'Rejected'),
    ]

    TYPE_CHOICES = [
        ('TRANSPORT', 'Transport'),
        ('TOOLS', 'Tools'),
        ('ACCOMMODATION', 'Accommodation'),
        ('MEALS', 'Meals'),
        ('OTHER', 'Other'),
    ]

    DISBURSEMENT_METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('MPESA', 'M-Pesa'),
        ('BANK_TRANSFER', 'Bank Transfer'),
    ]

    request_number = models.CharField(max_length=50, unique=True, blank=True)
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='advance_requests')
    technician = models.ForeignKey(Technician, on_delete=models.PROTECT, related_name='advance_requests')
    advance_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='TRANSPORT')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    rejection_reason = models.TextField(blank=True)
    approved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='advances_approved')
    approved_at = models.DateTimeField(null=True, blank=True)
    disbursement_method = models.CharField(max_length=20, choices=DISBURSEMENT_METHOD_CHOICES, blank=True)
    disbursement_reference = models.CharField(max_length=100, blank=True)
    disbursed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='advances_disbursed')
    disbursed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.request_number:
            self.request_number = generate_reference('ADV', AdvanceRequest, 'request_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.request_number

    class Meta:
        db_table = 'advance_requests'
        ordering = ['-created_at']


class ChecklistItem(models.Model):
    """Configurable inspection checklist entry"""
    CATEGORY_CHOICES = [
        ('VEHICLE_EXTERIOR', 'Vehicle Exterior'),
        ('VEHICLE_INTERIOR', 'Vehicle Interior'),
        ('VEHICLE_ENGINE', 'Vehicle Engine'),
        ('DEVICE_COMPONENT', 'Device Component'),
        ('SAFETY_CHECK', 'Safety Check'),
    ]

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES)
    applies_to_pre = models.BooleanField(default=True)
    applies_to_post = models.BooleanField(default=True)
    requires_photo = models.BooleanField(default=False)
    display_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'inspection_checklist_items'
        ordering = ['category', 'display_order', 'id']


class Inspection(models.Model):
    """Vehicle inspection submitted before or after installation"""
    STAGE_CHOICES = [
        ('PRE_INSTALLATION', 'Pre-Installation'),
        ('POST_INSTALLATION', 'Post-Installation'),
    ]

    STATUS_CHOICES = [
        ('PENDING', 'Pending Review'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
    ]

    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='inspections')
    stage = models.CharField(max_length=20, choices=STAGE_CHOICES)
    technician = models.ForeignKey(Technician, on_delete=models.SET_NULL, null=True, blank=True, related_name='inspections')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    notes = models.TextField(blank=True)
    reviewed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='inspections_reviewed')
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True)
    submitted_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='inspections_submitted')
    submitted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inspections'
        ordering = ['-submitted_at']


class InspectionResult(models.Model):
    """Outcome of one checklist item within an inspection"""
    CHECK_STATUS_CHOICES = [
        ('CHECKED', 'Checked'),
        ('NOT_CHECKED', 'Not Checked'),
        ('ISSUE_FOUND', 'Issue Found'),
    ]

    inspection = models.ForeignKey(Inspection, on_delete=models.CASCADE, related_name='results')
    checklist_item = models.ForeignKey(ChecklistItem, on_delete=models.PROTECT, related_name='results')
    check_status = models.CharField(max_length=20, choices=CHECK_STATUS_CHOICES, default='NOT_CHECKED')
    notes = models.TextField(blank=True)
    photo_urls = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = 'inspection_results'
        ordering = ['id']
        unique_together = [['inspection', 'checklist_item']]
