from django.contrib import admin
from .models import (
    Job, JobStatusHistory, Requisition, RequisitionItem, AdvanceRequest, ChecklistItem, Inspection, InspectionResult,
)


class JobStatusHistoryInline(admin.TabularInline):
    model = JobStatusHistory
    extra = 0
    readonly_fields = ['from_status', 'to_status', 'notes', 'changed_by', 'created_at']
    can_delete = False


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ['job_number', 'customer', 'vehicle', 'job_type', 'status', 'lead_technician', 'scheduled_date', 'payment_verified']
    list_filter = ['status', 'job_type', 'payment_verified']
    search_fields = ['job_number', 'customer__business_name', 'customer__contact_person', 'vehicle__vehicle_reg']
    readonly_fields = ['job_number', 'status']
    filter_horizontal = ['products', 'technicians']
    inlines = [JobStatusHistoryInline]


class RequisitionItemInline(admin.TabularInline):
    model = RequisitionItem
    extra = 0
    readonly_fields = ['quantity_issued', 'issued_by', 'issued_at']


@admin.register(Requisition)
class RequisitionAdmin(admin.ModelAdmin):
    list_display = ['requisition_number', 'job', 'technician', 'status', 'created_at']
    list_filter = ['status']
    search_fields = ['requisition_number', 'job__job_number']
    inlines = [RequisitionItemInline]


@admin.register(AdvanceRequest)
class AdvanceRequestAdmin(admin.ModelAdmin):
    list_display = ['request_number', 'job', 'technician', 'advance_type', 'amount', 'status', 'disbursed_at']
    list_filter = ['status', 'advance_type']
    search_fields = ['request_number', 'job__job_number']


@admin.register(ChecklistItem)
class ChecklistItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'applies_to_pre', 'applies_to_post', 'requires_photo', 'display_order', 'is_active']
    list_filter = ['category', 'is_active']
    search_fields = ['name']


class InspectionResultInline(admin.TabularInline):
    model = InspectionResult
    extra = 0


@admin.register(Inspection)
class InspectionAdmin(admin.ModelAdmin):
    list_display = ['job', 'stage', 'technician', 'status', 'submitted_at', 'reviewed_by']
    list_filter = ['stage', 'status']
    search_fields = ['job__job_number']
    inlines = [InspectionResultInline]
