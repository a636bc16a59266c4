import django_filters
from django.db.models import Q
from .models import Invoice, Quotation, Receipt, Transaction, ProcessingFee


class InvoiceFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.CharFilter(method='filter_status', label='Status')
    invoice_type = django_filters.CharFilter(field_name='invoice_type', lookup_expr='iexact')
    customer = django_filters.NumberFilter(field_name='customer_id')
    job = django_filters.NumberFilter(field_name='job_id')
    date_from = django_filters.DateFilter(field_name='issue_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='issue_date', lookup_expr='lte')

    class Meta:
        model = Invoice
        fields = ['search', 'status', 'invoice_type', 'customer', 'job', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(invoice_number__icontains=value) |
            Q(customer__business_name__icontains=value) |
            Q(customer__contact_person__icontains=value) |
            Q(job__job_number__icontains=value)
        )

    def filter_status(self, queryset, name, value):
        statuses = [s.strip().upper() for s in value.split(',') if s.strip()]
        return queryset.filter(status__in=statuses) if statuses else queryset


class QuotationFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.CharFilter(field_name='status', lookup_expr='iexact')
    customer = django_filters.NumberFilter(field_name='customer_id')
    date_from = django_filters.DateFilter(field_name='issue_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='issue_date', lookup_expr='lte')

    class Meta:
        model = Quotation
        fields = ['search', 'status', 'customer', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(quotation_number__icontains=value) |
            Q(customer__business_name__icontains=value) |
            Q(customer__contact_person__icontains=value)
        )


class ReceiptFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    customer = django_filters.NumberFilter(field_name='customer_id')
    payment_method = django_filters.NumberFilter(field_name='payment_method_id')
    date_from = django_filters.DateFilter(field_name='payment_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='payment_date', lookup_expr='lte')

    class Meta:
        model = Receipt
        fields = ['search', 'customer', 'payment_method', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(receipt_number__icontains=value) |
            Q(reference__icontains=value) |
            Q(customer__business_name__icontains=value) |
            Q(customer__contact_person__icontains=value)
        )


class TransactionFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    customer = django_filters.NumberFilter(field_name='customer_id')
    transaction_type = django_filters.CharFilter(field_name='transaction_type', lookup_expr='iexact')
    date_from = django_filters.DateFilter(field_name='transaction_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='transaction_date', lookup_expr='lte')

    class Meta:
        model = Transaction
        fields = ['search', 'customer', 'transaction_type', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(transaction_number__icontains=value) |
            Q(description__icontains=value) |
            Q(customer__business_name__icontains=value)
        )


class ProcessingFeeFilter(django_filters.FilterSet):
    is_cleared = django_filters.BooleanFilter(field_name='is_cleared')
    payment_method = django_filters.NumberFilter(field_name='payment_method_id')
    settlement = django_filters.NumberFilter(field_name='settlement_id')
    date_from = django_filters.DateFilter(field_name='transaction_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='transaction_date', lookup_expr='lte')

    class Meta:
        model = ProcessingFee
        fields = ['is_cleared', 'payment_method', 'settlement', 'date_from', 'date_to']
