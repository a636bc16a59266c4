from django.contrib import admin
from .models import (
    PaymentMethod, Invoice, InvoiceItem, Quotation, QuotationItem, Receipt, PaymentAllocation,
    Transaction, ProcessingFee, ProcessingFeeSettlement,
)


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ['name', 'method_type', 'processing_fee_percentage', 'is_active']
    list_filter = ['method_type', 'is_active']


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ['line_total']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'invoice_type', 'customer', 'status', 'issue_date', 'due_date', 'total', 'amount_paid']
    list_filter = ['invoice_type', 'status', 'issue_date']
    search_fields = ['invoice_number', 'customer__business_name', 'customer__contact_person']
    readonly_fields = ['invoice_number', 'subtotal', 'tax_amount', 'total', 'amount_paid']
    inlines = [InvoiceItemInline]


class QuotationItemInline(admin.TabularInline):
    model = QuotationItem
    extra = 0
    readonly_fields = ['line_total']


@admin.register(Quotation)
class QuotationAdmin(admin.ModelAdmin):
    list_display = ['quotation_number', 'customer', 'status', 'issue_date', 'valid_until', 'total']
    list_filter = ['status']
    search_fields = ['quotation_number', 'customer__business_name']
    readonly_fields = ['quotation_number', 'subtotal', 'tax_amount', 'total']
    inlines = [QuotationItemInline]


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0
    can_delete = False
    readonly_fields = ['invoice', 'amount', 'created_at']


@admin.register(Receipt)
class ReceiptAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'customer', 'payment_method', 'amount', 'payment_date', 'reference']
    list_filter = ['payment_method', 'payment_date']
    search_fields = ['receipt_number', 'reference', 'customer__business_name']
    readonly_fields = ['receipt_number']
    inlines = [PaymentAllocationInline]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ['transaction_number', 'customer', 'transaction_type', 'debit', 'credit', 'balance_cf', 'transaction_date']
    list_filter = ['transaction_type', 'transaction_date']
    search_fields = ['transaction_number', 'description', 'customer__business_name']
    readonly_fields = ['transaction_number', 'balance_bf', 'balance_cf']


@admin.register(ProcessingFee)
class ProcessingFeeAdmin(admin.ModelAdmin):
    list_display = ['receipt', 'payment_method', 'transaction_amount', 'fee_percentage', 'fee_amount', 'is_cleared', 'transaction_date']
    list_filter = ['is_cleared', 'payment_method']


@admin.register(ProcessingFeeSettlement)
class ProcessingFeeSettlementAdmin(admin.ModelAdmin):
    list_display = ['settlement_number', 'period_start', 'period_end', 'transaction_count', 'total_fee_amount', 'settled_at']
    readonly_fields = ['settlement_number']
