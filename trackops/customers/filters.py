import django_filters
from django.db.models import Q
from .models import Customer, Vehicle


class CustomerFilter(django_filters.FilterSet):
    """
    Filter customers by free-text search, type, city and active flag.
    Search matches code, names, phone numbers and e-mail.
    """
    search = django_filters.CharFilter(method='filter_search', label='Search')
    customer_type = django_filters.CharFilter(field_name='customer_type', lookup_expr='iexact')
    city = django_filters.CharFilter(field_name='city', lookup_expr='icontains')
    is_active = django_filters.BooleanFilter(field_name='is_active')
    created_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    created_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Customer
        fields = ['search', 'customer_type', 'city', 'is_active', 'created_from', 'created_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(customer_code__icontains=value) |
            Q(business_name__icontains=value) |
            Q(contact_person__icontains=value) |
            Q(phone__icontains=value) |
            Q(alternative_phone__icontains=value) |
            Q(email__icontains=value)
        )


class VehicleFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    customer = django_filters.NumberFilter(field_name='customer_id')
    vehicle_type = django_filters.CharFilter(field_name='vehicle_type', lookup_expr='iexact')
    make = django_filters.CharFilter(field_name='make', lookup_expr='icontains')
    is_active = django_filters.BooleanFilter(field_name='is_active')

    class Meta:
        model = Vehicle
        fields = ['search', 'customer', 'vehicle_type', 'make', 'is_active']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(vehicle_reg__icontains=Vehicle.normalize_registration(value)) |
            Q(make__icontains=value) |
            Q(model__icontains=value) |
            Q(chassis_no__icontains=value) |
            Q(customer__business_name__icontains=value) |
            Q(customer__contact_person__icontains=value)
        )
