from django.urls import path
from .views import (
    invoice_list_create, invoice_detail, invoice_summary, invoice_status, invoice_cancel,
    invoice_create_from_job, invoice_for_job, invoice_exists_for_job, invoice_convert_to_standard,
    invoice_pdf, invoice_send,
    quotation_list_create, quotation_detail, quotation_status, quotation_convert_to_invoice,
    quotation_pdf, quotation_send_email,
    payment_method_list_create, payment_method_detail, payment_method_toggle_status,
    payment_process, receipt_list, receipt_detail, customer_outstanding_invoices, payment_summary,
    transaction_list, transaction_detail, transaction_summary, transaction_manual_entry,
    processing_fee_dashboard_stats, processing_fee_transactions, processing_fee_pending_summary,
    processing_fee_settle, processing_fee_settlements, processing_fee_settlement_detail,
)

urlpatterns = [
    # Invoice endpoints
    path('invoices/', invoice_list_create, name='invoice-list-create'),
    path('invoices/summary/', invoice_summary, name='invoice-summary'),
    path('invoices/create-from-job/<int:job_id>/', invoice_create_from_job, name='invoice-create-from-job'),
    path('invoices/job/<int:job_id>/', invoice_for_job, name='invoice-for-job'),
    path('invoices/job/<int:job_id>/exists/', invoice_exists_for_job, name='invoice-exists-for-job'),
    path('invoices/<int:pk>/', invoice_detail, name='invoice-detail'),
    path('invoices/<int:pk>/status/', invoice_status, name='invoice-status'),
    path('invoices/<int:pk>/cancel/', invoice_cancel, name='invoice-cancel'),
    path('invoices/<int:pk>/convert-to-standard/', invoice_convert_to_standard, name='invoice-convert-to-standard'),
    path('invoices/<int:pk>/pdf/', invoice_pdf, name='invoice-pdf'),
    path('invoices/<int:pk>/send/', invoice_send, name='invoice-send'),

    # Quotation endpoints
    path('quotations/', quotation_list_create, name='quotation-list-create'),
    path('quotations/<int:pk>/', quotation_detail, name='quotation-detail'),
    path('quotations/<int:pk>/status/', quotation_status, name='quotation-status'),
    path('quotations/<int:pk>/convert-to-invoice/', quotation_convert_to_invoice, name='quotation-convert'),
    path('quotations/<int:pk>/pdf/', quotation_pdf, name='quotation-pdf'),
    path('quotations/<int:pk>/send-email/', quotation_send_email, name='quotation-send-email'),

    # Payment method endpoints
    path('payment-methods/', payment_method_list_create, name='payment-method-list-create'),
    path('payment-methods/<int:pk>/', payment_method_detail, name='payment-method-detail'),
    path('payment-methods/<int:pk>/toggle-status/', payment_method_toggle_status, name='payment-method-toggle-status'),

    # Payment endpoints
    path('payments/process/', payment_process, name='payment-process'),
    path('payments/summary/', payment_summary, name='payment-summary'),
    path('payments/receipts/', receipt_list, name='receipt-list'),
    path('payments/receipts/<int:pk>/', receipt_detail, name='receipt-detail'),
    path('payments/customers/<int:customer_id>/outstanding-invoices/', customer_outstanding_invoices,
         name='customer-outstanding-invoices'),

    # Transaction endpoints
    path('transactions/', transaction_list, name='transaction-list'),
    path('transactions/summary/', transaction_summary, name='transaction-summary'),
    path('transactions/manual/', transaction_manual_entry, name='transaction-manual-entry'),
    path('transactions/<int:pk>/', transaction_detail, name='transaction-detail'),

    # Processing fee endpoints
    path('processing-fees/dashboard-stats/', processing_fee_dashboard_stats, name='processing-fee-dashboard-stats'),
    path('processing-fees/transactions/', processing_fee_transactions, name='processing-fee-transactions'),
    path('processing-fees/pending-summary/', processing_fee_pending_summary, name='processing-fee-pending-summary'),
    path('processing-fees/settle/', processing_fee_settle, name='processing-fee-settle'),
    path('processing-fees/settlements/', processing_fee_settlements, name='processing-fee-settlements'),
    path('processing-fees/settlements/<int:pk>/', processing_fee_settlement_detail, name='processing-fee-settlement-detail'),
]
