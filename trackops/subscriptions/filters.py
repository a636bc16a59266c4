import django_filters
from django.db.models import Q
from .models import Subscription


class SubscriptionFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    customer = django_filters.NumberFilter(field_name='customer_id')
    product = django_filters.NumberFilter(field_name='product_id')
    status = django_filters.CharFilter(field_name='status', lookup_expr='iexact')
    imei = django_filters.CharFilter(field_name='device__imei', lookup_expr='icontains')
    expiry_from = django_filters.DateFilter(field_name='expiry_date', lookup_expr='gte')
    expiry_to = django_filters.DateFilter(field_name='expiry_date', lookup_expr='lte')

    class Meta:
        model = Subscription
        fields = ['search', 'customer', 'product', 'status', 'imei', 'expiry_from', 'expiry_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(subscription_number__icontains=value) |
            Q(customer__business_name__icontains=value) |
            Q(customer__contact_person__icontains=value) |
            Q(vehicle__vehicle_reg__icontains=value) |
            Q(device__imei__icontains=value)
        )
