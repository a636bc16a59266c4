from rest_framework import serializers
from django.conf import settings
from trackops.core.exceptions import BillingError
from trackops.customers.models import Customer
from trackops.inventory.models import Product
from .models import (
    PaymentMethod, Invoice, InvoiceItem, Quotation, QuotationItem, Receipt, PaymentAllocation,
    Transaction, ProcessingFee, ProcessingFeeSettlement,
)
from .services import create_invoice, update_invoice, create_quotation, update_quotation


class PaymentMethodSerializer(serializers.ModelSerializer):
    method_type_display = serializers.CharField(source='get_method_type_display', read_only=True)

    class Meta:
        model = PaymentMethod
        fields = [
            'id', 'name', 'method_type', 'method_type_display', 'processing_fee_percentage',
            'account_details', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_processing_fee_percentage(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError('Processing fee must be between 0 and 100 percent')
        return value

    def create(self, validated_data):
        validated_data.setdefault('processing_fee_percentage', settings.DEFAULT_PROCESSING_FEE_PERCENTAGE)
        return super().create(validated_data)


class DocumentItemSerializer(serializers.Serializer):
    """Invoice or quotation line as sent by clients"""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, max_length=255)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, default=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)

    def validate(self, attrs):
        if attrs['quantity'] <= 0:
            raise serializers.ValidationError({'quantity': 'Quantity must be greater than zero'})
        if attrs.get('unit_price') is not None and attrs['unit_price'] < 0:
            raise serializers.ValidationError({'unit_price': 'Unit price cannot be negative'})
        if not attrs.get('product') and not attrs.get('description'):
            raise serializers.ValidationError('Each item needs a product or a description')
        if not attrs.get('product') and attrs.get('unit_price') is None:
            raise serializers.ValidationError({'unit_price': 'Unit price is required for items without a product'})
        return attrs


class InvoiceItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = InvoiceItem
        fields = ['id', 'product', 'product_name', 'description', 'quantity', 'unit_price', 'line_total']


class QuotationItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = QuotationItem
        fields = ['id', 'product', 'product_name', 'description', 'quantity', 'unit_price', 'line_total']


class InvoiceListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    job_number = serializers.CharField(source='job.job_number', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    outstanding = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'invoice_type', 'status', 'status_display', 'customer', 'customer_name',
            'job', 'job_number', 'issue_date', 'due_date', 'total', 'amount_paid', 'outstanding', 'created_at'
        ]


class InvoiceSerializer(serializers.ModelSerializer):
    """Invoice with lines; totals are always computed server side"""
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    job_number = serializers.CharField(source='job.job_number', read_only=True)
    quotation_number = serializers.CharField(source='quotation.quotation_number', read_only=True)
    converted_from_number = serializers.CharField(source='converted_from.invoice_number', read_only=True)
    outstanding = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    items = InvoiceItemSerializer(many=True, read_only=True)
    line_items = DocumentItemSerializer(many=True, write_only=True, required=False)
    status = serializers.ChoiceField(choices=[('DRAFT', 'Draft'), ('SENT', 'Sent')], required=False)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'invoice_type', 'status', 'customer', 'customer_name', 'job', 'job_number',
            'quotation', 'quotation_number', 'converted_from', 'converted_from_number', 'issue_date', 'due_date',
            'subtotal', 'discount_amount', 'tax_rate', 'tax_amount', 'total', 'amount_paid', 'outstanding',
            'notes', 'terms', 'sent_at', 'cancelled_at', 'cancellation_reason', 'items', 'line_items',
            'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'invoice_number', 'converted_from', 'subtotal', 'tax_amount', 'total', 'amount_paid',
            'sent_at', 'cancelled_at', 'cancellation_reason', 'created_by', 'created_at', 'updated_at'
        ]

    def to_internal_value(self, data):
        # Clients send lines as "items"; the read-only nested field keeps that name for output
        if hasattr(data, 'get') and 'items' in data and 'line_items' not in data:
            data = {**data, 'line_items': data.get('items')}
        return super().to_internal_value(data)

    def validate_discount_amount(self, value):
        if value < 0:
            raise serializers.ValidationError('Discount cannot be negative')
        return value

    def validate_tax_rate(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError('Tax rate must be between 0 and 100')
        return value

    def validate(self, attrs):
        customer = attrs.get('customer', getattr(self.instance, 'customer', None))
        job = attrs.get('job')
        if job is not None and customer is not None and job.customer_id != customer.id:
            raise serializers.ValidationError({'job': 'Job belongs to another customer'})
        if job is not None:
            others = job.invoices.exclude(status='CANCELLED')
            if self.instance:
                others = others.exclude(pk=self.instance.pk)
            if others.exists():
                raise serializers.ValidationError({'job': f'Job {job.job_number} already has an invoice'})
        issue_date = attrs.get('issue_date', getattr(self.instance, 'issue_date', None))
        due_date = attrs.get('due_date', getattr(self.instance, 'due_date', None))
        if issue_date and due_date and due_date < issue_date:
            raise serializers.ValidationError({'due_date': 'Due date cannot be before the issue date'})
        if not self.instance and not attrs.get('line_items'):
            raise serializers.ValidationError({'items': 'An invoice needs at least one item'})
        if self.instance and 'status' in attrs:
            raise serializers.ValidationError({'status': 'Use the status endpoint to change invoice status'})
        return attrs

    def create(self, validated_data):
        items = validated_data.pop('line_items')
        customer = validated_data.pop('customer')
        user = self.context.get('user')
        try:
            return create_invoice(customer, items, user=user, **validated_data)
        except BillingError as e:
            raise serializers.ValidationError({'error': str(e)})

    def update(self, instance, validated_data):
        items = validated_data.pop('line_items', None)
        try:
            return update_invoice(instance, items=items, **validated_data)
        except BillingError as e:
            raise serializers.ValidationError({'error': str(e)})


class QuotationListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Quotation
        fields = [
            'id', 'quotation_number', 'status', 'status_display', 'customer', 'customer_name',
            'issue_date', 'valid_until', 'total', 'created_at'
        ]


class QuotationSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    items = QuotationItemSerializer(many=True, read_only=True)
    line_items = DocumentItemSerializer(many=True, write_only=True, required=False)
    invoice_numbers = serializers.SerializerMethodField()

    class Meta:
        model = Quotation
        fields = [
            'id', 'quotation_number', 'status', 'customer', 'customer_name', 'issue_date', 'valid_until',
            'subtotal', 'discount_amount', 'tax_rate', 'tax_amount', 'total', 'notes', 'terms', 'sent_at',
            'converted_at', 'invoice_numbers', 'items', 'line_items', 'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'quotation_number', 'status', 'subtotal', 'tax_amount', 'total', 'sent_at',
            'converted_at', 'created_by', 'created_at', 'updated_at'
        ]

    def to_internal_value(self, data):
        if hasattr(data, 'get') and 'items' in data and 'line_items' not in data:
            data = {**data, 'line_items': data.get('items')}
        return super().to_internal_value(data)

    def get_invoice_numbers(self, obj):
        return list(obj.invoices.values_list('invoice_number', flat=True))

    def validate_discount_amount(self, value):
        if value < 0:
            raise serializers.ValidationError('Discount cannot be negative')
        return value

    def validate(self, attrs):
        issue_date = attrs.get('issue_date', getattr(self.instance, 'issue_date', None))
        valid_until = attrs.get('valid_until', getattr(self.instance, 'valid_until', None))
        if issue_date and valid_until and valid_until < issue_date:
            raise serializers.ValidationError({'valid_until': 'Validity cannot end before the issue date'})
        if not self.instance and not attrs.get('line_items'):
            raise serializers.ValidationError({'items': 'A quotation needs at least one item'})
        return attrs

    def create(self, validated_data):
        items = validated_data.pop('line_items')
        customer = validated_data.pop('customer')
        try:
            return create_quotation(customer, items, user=self.context.get('user'), **validated_data)
        except BillingError as e:
            raise serializers.ValidationError({'error': str(e)})

    def update(self, instance, validated_data):
        items = validated_data.pop('line_items', None)
        try:
            return update_quotation(instance, items=items, **validated_data)
        except BillingError as e:
            raise serializers.ValidationError({'error': str(e)})


# Payments
class PaymentAllocationSerializer(serializers.ModelSerializer):
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = ['id', 'invoice', 'invoice_number', 'amount', 'created_at']


class ReceiptSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    payment_method_name = serializers.CharField(source='payment_method.name', read_only=True)
    received_by_name = serializers.CharField(source='received_by.username', read_only=True)
    allocations = PaymentAllocationSerializer(many=True, read_only=True)
    processing_fee_amount = serializers.SerializerMethodField()

    class Meta:
        model = Receipt
        fields = [
            'id', 'receipt_number', 'customer', 'customer_name', 'payment_method', 'payment_method_name',
            'amount', 'payment_date', 'reference', 'notes', 'received_by', 'received_by_name',
            'allocations', 'processing_fee_amount', 'created_at'
        ]

    def get_processing_fee_amount(self, obj):
        fee = ProcessingFee.objects.filter(receipt=obj).first()
        return str(fee.fee_amount) if fee else '0.00'


class AllocationInputSerializer(serializers.Serializer):
    invoice = serializers.PrimaryKeyRelatedField(queryset=Invoice.objects.all())
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class ProcessPaymentSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    payment_method = serializers.PrimaryKeyRelatedField(queryset=PaymentMethod.objects.all())
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_date = serializers.DateField(required=False)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=100)
    notes = serializers.CharField(required=False, allow_blank=True)
    allocations = AllocationInputSerializer(many=True)


# Ledger
class TransactionSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    receipt_number = serializers.CharField(source='receipt.receipt_number', read_only=True)
    transaction_type_display = serializers.CharField(source='get_transaction_type_display', read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id', 'transaction_number', 'customer', 'customer_name', 'transaction_type',
            'transaction_type_display', 'invoice', 'invoice_number', 'receipt', 'receipt_number',
            'description', 'debit', 'credit', 'balance_bf', 'balance_cf', 'transaction_date',
            'created_by', 'created_at'
        ]


class ManualTransactionSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    transaction_type = serializers.ChoiceField(choices=[('ADJUSTMENT', 'Adjustment'), ('PAYMENT', 'Payment')])
    description = serializers.CharField(max_length=255)
    debit = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=0)
    credit = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=0)
    transaction_date = serializers.DateField(required=False)

    def validate(self, attrs):
        debit, credit = attrs.get('debit') or 0, attrs.get('credit') or 0
        if debit < 0 or credit < 0:
            raise serializers.ValidationError('Debit and credit cannot be negative')
        if (debit > 0) == (credit > 0):
            raise serializers.ValidationError('Exactly one of debit or credit must be greater than zero')
        return attrs


# Processing fees
class ProcessingFeeSerializer(serializers.ModelSerializer):
    receipt_number = serializers.CharField(source='receipt.receipt_number', read_only=True)
    customer_name = serializers.CharField(source='receipt.customer.display_name', read_only=True)
    payment_method_name = serializers.CharField(source='payment_method.name', read_only=True)
    settlement_number = serializers.CharField(source='settlement.settlement_number', read_only=True)

    class Meta:
        model = ProcessingFee
        fields = [
            'id', 'receipt', 'receipt_number', 'customer_name', 'payment_method', 'payment_method_name',
            'transaction_amount', 'fee_percentage', 'fee_amount', 'transaction_date', 'is_cleared',
            'cleared_at', 'settlement', 'settlement_number', 'created_at'
        ]


class ProcessingFeeSettlementSerializer(serializers.ModelSerializer):
    settled_by_name = serializers.CharField(source='settled_by.username', read_only=True)

    class Meta:
        model = ProcessingFeeSettlement
        fields = [
            'id', 'settlement_number', 'total_fee_amount', 'transaction_count', 'period_start', 'period_end',
            'notes', 'settled_by', 'settled_by_name', 'settled_at'
        ]


class SettlementRequestSerializer(serializers.Serializer):
    period_start = serializers.DateField()
    period_end = serializers.DateField()
    notes = serializers.CharField(required=False, allow_blank=True)
