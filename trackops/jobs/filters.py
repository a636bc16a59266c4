import django_filters
from django.db.models import Q
from .models import Job, Requisition, AdvanceRequest, Inspection


class JobFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.CharFilter(method='filter_status', label='Status')
    job_type = django_filters.CharFilter(field_name='job_type', lookup_expr='iexact')
    customer = django_filters.NumberFilter(field_name='customer_id')
    technician = django_filters.NumberFilter(method='filter_technician', label='Technician')
    date_from = django_filters.DateFilter(field_name='scheduled_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='scheduled_date', lookup_expr='lte')
    payment_verified = django_filters.BooleanFilter(field_name='payment_verified')

    class Meta:
        model = Job
        fields = ['search', 'status', 'job_type', 'customer', 'technician', 'date_from', 'date_to', 'payment_verified']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(job_number__icontains=value) |
            Q(customer__business_name__icontains=value) |
            Q(customer__contact_person__icontains=value) |
            Q(vehicle__vehicle_reg__icontains=value) |
            Q(imei_numbers__icontains=value)
        )

    def filter_status(self, queryset, name, value):
        # Accepts a comma separated list, e.g. ?status=ASSIGNED,IN_PROGRESS
        statuses = [s.strip().upper() for s in value.split(',') if s.strip()]
        if not statuses:
            return queryset
        return queryset.filter(status__in=statuses)

    def filter_technician(self, queryset, name, value):
        return queryset.filter(Q(technicians__id=value) | Q(lead_technician_id=value)).distinct()


class RequisitionFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.CharFilter(field_name='status', lookup_expr='iexact')
    job = django_filters.NumberFilter(field_name='job_id')
    technician = django_filters.NumberFilter(field_name='technician_id')

    class Meta:
        model = Requisition
        fields = ['search', 'status', 'job', 'technician']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(Q(requisition_number__icontains=value) | Q(job__job_number__icontains=value))


class AdvanceRequestFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name='status', lookup_expr='iexact')
    advance_type = django_filters.CharFilter(field_name='advance_type', lookup_expr='iexact')
    job = django_filters.NumberFilter(field_name='job_id')
    technician = django_filters.NumberFilter(field_name='technician_id')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = AdvanceRequest
        fields = ['status', 'advance_type', 'job', 'technician', 'date_from', 'date_to']


class InspectionFilter(django_filters.FilterSet):
    stage = django_filters.CharFilter(field_name='stage', lookup_expr='iexact')
    status = django_filters.CharFilter(field_name='status', lookup_expr='iexact')
    job = django_filters.NumberFilter(field_name='job_id')
    technician = django_filters.NumberFilter(field_name='technician_id')

    class Meta:
        model = Inspection
        fields = ['stage', 'status', 'job', 'technician']
