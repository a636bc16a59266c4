from rest_framework import serializers
from trackops.inventory.models import Product, StockBatch
from trackops.technicians.models import Technician
from .models import (
    Job, JobStatusHistory, Requisition, RequisitionItem, AdvanceRequest,
    ChecklistItem, Inspection, InspectionResult,
)
from .workflow import allowed_transitions


class JobListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    vehicle_reg = serializers.CharField(source='vehicle.vehicle_reg', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    job_type_display = serializers.CharField(source='get_job_type_display', read_only=True)
    lead_technician_name = serializers.CharField(source='lead_technician.name', read_only=True)

    class Meta:
        model = Job
        fields = [
            'id', 'job_number', 'customer', 'customer_name', 'vehicle', 'vehicle_reg', 'job_type',
            'job_type_display', 'status', 'status_display', 'scheduled_date', 'lead_technician',
            'lead_technician_name', 'payment_verified', 'created_at'
        ]


class JobSerializer(serializers.ModelSerializer):
    """Full job; status and workflow fields change only through job actions"""
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    vehicle_reg = serializers.CharField(source='vehicle.vehicle_reg', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    products = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), many=True, required=False)
    product_details = serializers.SerializerMethodField()
    technician_details = serializers.SerializerMethodField()
    lead_technician_name = serializers.CharField(source='lead_technician.name', read_only=True)
    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Job
        fields = [
            'id', 'job_number', 'customer', 'customer_name', 'vehicle', 'vehicle_reg', 'job_type', 'status',
            'status_display', 'products', 'product_details', 'service_description', 'scheduled_date',
            'start_time', 'end_time', 'device_position', 'installation_notes', 'photo_urls', 'imei_numbers',
            'gps_coordinates', 'payment_verified', 'technicians', 'technician_details', 'lead_technician',
            'lead_technician_name', 'assigned_by', 'assigned_at', 'approved_by', 'approved_at',
            'cancellation_reason', 'cancelled_at', 'allowed_transitions', 'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'job_number', 'status', 'start_time', 'end_time', 'photo_urls', 'imei_numbers',
            'gps_coordinates', 'payment_verified', 'technicians', 'lead_technician', 'assigned_by',
            'assigned_at', 'approved_by', 'approved_at', 'cancellation_reason', 'cancelled_at',
            'created_by', 'created_at', 'updated_at'
        ]

    def get_product_details(self, obj):
        return [
            {'id': p.id, 'name': p.name, 'sku': p.sku, 'selling_price': str(p.selling_price), 'is_serialized': p.is_serialized}
            for p in obj.products.all()
        ]

    def get_technician_details(self, obj):
        return [
            {'id': t.id, 'technician_code': t.technician_code, 'name': t.name, 'is_lead': t.id == obj.lead_technician_id}
            for t in obj.technicians.select_related('user')
        ]

    def get_allowed_transitions(self, obj):
        return allowed_transitions(obj.status)

    def validate(self, attrs):
        if self.instance and self.instance.status in ('COMPLETED', 'VERIFIED', 'CANCELLED'):
            raise serializers.ValidationError(f'Jobs in status {self.instance.status} cannot be edited')
        customer = attrs.get('customer', getattr(self.instance, 'customer', None))
        vehicle = attrs.get('vehicle', getattr(self.instance, 'vehicle', None))
        if vehicle is not None and customer is not None and vehicle.customer_id != customer.id:
            raise serializers.ValidationError({'vehicle': 'Vehicle does not belong to this customer'})
        if customer is not None and not customer.is_active and not self.instance:
            raise serializers.ValidationError({'customer': 'Customer is inactive'})
        return attrs


class JobStatusHistorySerializer(serializers.ModelSerializer):
    changed_by_name = serializers.CharField(source='changed_by.username', read_only=True)

    class Meta:
        model = JobStatusHistory
        fields = ['id', 'from_status', 'to_status', 'notes', 'changed_by', 'changed_by_name', 'created_at']


class JobAssignSerializer(serializers.Serializer):
    technicians = serializers.PrimaryKeyRelatedField(queryset=Technician.objects.all(), many=True)

    def validate_technicians(self, value):
        if not value:
            raise serializers.ValidationError('At least one technician is required')
        return value


# Requisitions
class RequisitionItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    is_serialized = serializers.BooleanField(source='product.is_serialized', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)
    quantity_outstanding = serializers.IntegerField(read_only=True)
    imeis = serializers.SerializerMethodField()

    class Meta:
        model = RequisitionItem
        fields = [
            'id', 'product', 'product_name', 'product_sku', 'is_serialized', 'quantity_requested',
            'quantity_issued', 'quantity_outstanding', 'batch', 'batch_number', 'imeis', 'issued_by', 'issued_at'
        ]

    def get_imeis(self, obj):
        return list(obj.devices.values_list('imei', flat=True))


class RequisitionSerializer(serializers.ModelSerializer):
    job_number = serializers.CharField(source='job.job_number', read_only=True)
    technician_name = serializers.CharField(source='technician.name', read_only=True)
    items = RequisitionItemSerializer(many=True, read_only=True)

    class Meta:
        model = Requisition
        fields = [
            'id', 'requisition_number', 'job', 'job_number', 'technician', 'technician_name', 'status', 'notes',
            'rejection_reason', 'approved_by', 'approved_at', 'items', 'created_by', 'created_at', 'updated_at'
        ]


class RequisitionLineSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.filter(is_active=True))
    quantity_requested = serializers.IntegerField(min_value=1)


class RequisitionCreateSerializer(serializers.Serializer):
    job = serializers.PrimaryKeyRelatedField(queryset=Job.objects.all())
    technician = serializers.PrimaryKeyRelatedField(queryset=Technician.objects.all(), required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    items = RequisitionLineSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError('A requisition needs at least one item')
        return value


class IssueLineSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=RequisitionItem.objects.select_related('product'))
    quantity = serializers.IntegerField(min_value=1)
    batch = serializers.PrimaryKeyRelatedField(queryset=StockBatch.objects.all(), required=False, allow_null=True)
    imeis = serializers.ListField(child=serializers.CharField(), required=False)


class RequisitionIssueSerializer(serializers.Serializer):
    items = IssueLineSerializer(many=True)


# Advance requests
class AdvanceRequestSerializer(serializers.ModelSerializer):
    job_number = serializers.CharField(source='job.job_number', read_only=True)
    technician_name = serializers.CharField(source='technician.name', read_only=True)
    technician = serializers.PrimaryKeyRelatedField(queryset=Technician.objects.all(), required=False)

    class Meta:
        model = AdvanceRequest
        fields = [
            'id', 'request_number', 'job', 'job_number', 'technician', 'technician_name', 'advance_type',
            'amount', 'description', 'status', 'rejection_reason', 'approved_by', 'approved_at',
            'disbursement_method', 'disbursement_reference', 'disbursed_by', 'disbursed_at',
            'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'request_number', 'status', 'rejection_reason', 'approved_by', 'approved_at',
            'disbursement_method', 'disbursement_reference', 'disbursed_by', 'disbursed_at',
            'created_at', 'updated_at'
        ]

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Amount must be greater than zero')
        return value

    def validate(self, attrs):
        job = attrs.get('job', getattr(self.instance, 'job', None))
        if job is not None and job.status in ('COMPLETED', 'VERIFIED', 'CANCELLED') and not self.instance:
            raise serializers.ValidationError({'job': f'Advances cannot be requested for {job.status.lower()} jobs'})
        if self.instance and self.instance.status != 'PENDING':
            raise serializers.ValidationError('Only pending advance requests can be edited')
        return attrs


# Inspections
class ChecklistItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChecklistItem
        fields = [
            'id', 'name', 'description', 'category', 'applies_to_pre', 'applies_to_post',
            'requires_photo', 'display_order', 'is_active', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']

    def validate(self, attrs):
        pre = attrs.get('applies_to_pre', getattr(self.instance, 'applies_to_pre', True))
        post = attrs.get('applies_to_post', getattr(self.instance, 'applies_to_post', True))
        if not pre and not post:
            raise serializers.ValidationError('A checklist item must apply to at least one stage')
        return attrs


class InspectionResultSerializer(serializers.ModelSerializer):
    checklist_item_name = serializers.CharField(source='checklist_item.name', read_only=True)
    category = serializers.CharField(source='checklist_item.category', read_only=True)

    class Meta:
        model = InspectionResult
        fields = ['id', 'checklist_item', 'checklist_item_name', 'category', 'check_status', 'notes', 'photo_urls']


class InspectionSerializer(serializers.ModelSerializer):
    job_number = serializers.CharField(source='job.job_number', read_only=True)
    technician_name = serializers.CharField(source='technician.name', read_only=True)
    results = InspectionResultSerializer(many=True, read_only=True)
    issues_found = serializers.SerializerMethodField()

    class Meta:
        model = Inspection
        fields = [
            'id', 'job', 'job_number', 'stage', 'technician', 'technician_name', 'status', 'notes',
            'reviewed_by', 'reviewed_at', 'review_notes', 'submitted_by', 'submitted_at', 'issues_found', 'results'
        ]

    def get_issues_found(self, obj):
        return sum(1 for result in obj.results.all() if result.check_status == 'ISSUE_FOUND')


class InspectionResultInputSerializer(serializers.Serializer):
    checklist_item = serializers.PrimaryKeyRelatedField(queryset=ChecklistItem.objects.all())
    check_status = serializers.ChoiceField(choices=InspectionResult.CHECK_STATUS_CHOICES, default='CHECKED')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    photo_urls = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class InspectionSubmitSerializer(serializers.Serializer):
    job = serializers.PrimaryKeyRelatedField(queryset=Job.objects.all())
    stage = serializers.ChoiceField(choices=Inspection.STAGE_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    results = InspectionResultInputSerializer(many=True)
