from django.db import models
from decimal import Decimal
from django.utils import timezone
from trackops.core.models import User
from trackops.core.utils import generate_reference
from trackops.customers.models import Customer
from trackops.inventory.models import Product
from trackops.jobs.models import Job


class PaymentMethod(models.Model):
    """Ways customers pay, with the gateway fee each one charges"""
    TYPE_CHOICES = [
        ('CASH', 'Cash'),
        ('MPESA', 'M-Pesa'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('CARD', 'Card'),
        ('CHECK', 'Cheque'),
    ]

    name = models.CharField(max_length=100, unique=True)
    method_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='CASH')
    processing_fee_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    account_details = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'payment_methods'
        ordering = ['name']


class Invoice(models.Model):
    """Standard and proforma invoices"""
    TYPE_CHOICES = [
        ('STANDARD', 'Standard'),
        ('PROFORMA', 'Proforma'),
    ]

    STATUS_CHOICES = [
        ('DRAFT', 'Draft'),
        ('SENT', 'Sent'),
        ('PARTIAL', 'Partially Paid'),
        ('PAID', 'Paid'),
        ('OVERDUE', 'Overdue'),
        ('CANCELLED', 'Cancelled'),
    ]

    invoice_number = models.CharField(max_length=50, unique=True, blank=True)
    invoice_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='STANDARD')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='DRAFT')
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='invoices')
    job = models.ForeignKey(Job, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices')
    quotation = models.ForeignKey('Quotation', on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices')
    converted_from = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='conversions')
    issue_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    terms = models.TextField(blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def outstanding(self):
        return self.total - self.amount_paid

    def save(self, *args, **kwargs):
        if not self.invoice_number:
            prefix = 'PRO' if self.invoice_type == 'PROFORMA' else 'INV'
            self.invoice_number = generate_reference(prefix, Invoice, 'invoice_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.invoice_number

    class Meta:
        db_table = 'invoices'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_invoice_status'),
            models.Index(fields=['customer', 'status'], name='idx_invoice_customer_status'),
            models.Index(fields=['due_date'], name='idx_invoice_due'),
        ]


class InvoiceItem(models.Model):
    """Invoice line"""
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoice_items')
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1.00'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    def save(self, *args, **kwargs):
        from .calculations import line_total
        self.line_total = line_total(self.quantity, self.unit_price)
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'invoice_items'
        ordering = ['id']


class Quotation(models.Model):
    """Price quotations that can be converted into invoices"""
    STATUS_CHOICES = [
        ('DRAFT', 'Draft'),
        ('SENT', 'Sent'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
        ('EXPIRED', 'Expired'),
        ('CONVERTED', 'Converted'),
    ]

    quotation_number = models.CharField(max_length=50, unique=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='quotations')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='DRAFT')
    issue_date = models.DateField(default=timezone.localdate)
    valid_until = models.DateField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    terms = models.TextField(blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    converted_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotations_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.quotation_number:
            self.quotation_number = generate_reference('QUO', Quotation, 'quotation_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.quotation_number

    class Meta:
        db_table = 'quotations'
        ordering = ['-created_at']


class QuotationItem(models.Model):
    """Quotation line"""
    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotation_items')
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1.00'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    def save(self, *args, **kwargs):
        from .calculations import line_total
        self.line_total = line_total(self.quantity, self.unit_price)
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'quotation_items'
        ordering = ['id']


class Receipt(models.Model):
    """Money received from a customer, allocated across invoices"""
    receipt_number = models.CharField(max_length=50, unique=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='receipts')
    payment_method = models.ForeignKey(PaymentMethod, on_delete=models.PROTECT, related_name='receipts')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField(default=timezone.localdate)
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    received_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='receipts_received')
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.receipt_number:
            self.receipt_number = generate_reference('RCT', Receipt, 'receipt_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.receipt_number

    class Meta:
        db_table = 'receipts'
        ordering = ['-created_at']


class PaymentAllocation(models.Model):
    """Part of a receipt applied to one invoice"""
    receipt = models.ForeignKey(Receipt, on_delete=models.CASCADE, related_name='allocations')
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='allocations')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payment_allocations'
        ordering = ['id']


class Transaction(models.Model):
    """Customer ledger entry with running balance"""
    TYPE_CHOICES = [
        ('INVOICE', 'Invoice'),
        ('RECEIPT', 'Receipt'),
        ('ADJUSTMENT', 'Adjustment'),
        ('PAYMENT', 'Payment'),
    ]

    transaction_number = models.CharField(max_length=50, unique=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='transactions')
    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    invoice = models.ForeignKey(Invoice, on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    receipt = models.ForeignKey(Receipt, on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    description = models.CharField(max_length=255)
    debit = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    credit = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    balance_bf = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    balance_cf = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    transaction_date = models.DateField(default=timezone.localdate)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions_created')
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.transaction_number:
            self.transaction_number = generate_reference('TXN', Transaction, 'transaction_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.transaction_number

    class Meta:
        db_table = 'transactions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['customer', 'created_at'], name='idx_txn_customer_created'),
        ]


class ProcessingFeeSettlement(models.Model):
    """Batch of processing fees settled together for a period"""
    settlement_number = models.CharField(max_length=50, unique=True, blank=True)
    total_fee_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    transaction_count = models.PositiveIntegerField(default=0)
    period_start = models.DateField()
    period_end = models.DateField()
    notes = models.TextField(blank=True)
    settled_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='fee_settlements')
    settled_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.settlement_number:
            self.settlement_number = generate_reference('SET', ProcessingFeeSettlement, 'settlement_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.settlement_number

    class Meta:
        db_table = 'processing_fee_settlements'
        ordering = ['-settled_at']


class ProcessingFee(models.Model):
    """Gateway fee charged on a receipt"""
    receipt = models.OneToOneField(Receipt, on_delete=models.CASCADE, related_name='processing_fee')
    payment_method = models.ForeignKey(PaymentMethod, on_delete=models.PROTECT, related_name='processing_fees')
    transaction_amount = models.DecimalField(max_digits=12, decimal_places=2)
    fee_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    fee_amount = models.DecimalField(max_digits=12, decimal_places=2)
    transaction_date = models.DateField(default=timezone.localdate)
    is_cleared = models.BooleanField(default=False)
    cleared_at = models.DateTimeField(null=True, blank=True)
    settlement = models.ForeignKey(ProcessingFeeSettlement, on_delete=models.SET_NULL, null=True, blank=True, related_name='fees')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'processing_fees'
        ordering = ['-transaction_date', '-id']
