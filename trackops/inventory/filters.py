import django_filters
from django.db.models import Q, F
from .models import Product, StockBatch, Device


class ProductFilter(django_filters.FilterSet):
    """
    Product filter for list and search endpoints.
    Expects a queryset annotated with available_quantity (see products_with_stock).
    """
    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id')
    is_active = django_filters.BooleanFilter(field_name='is_active')
    is_serialized = django_filters.BooleanFilter(field_name='is_serialized')
    in_stock = django_filters.CharFilter(method='filter_in_stock', label='In Stock')
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')

    class Meta:
        model = Product
        fields = ['search', 'category', 'is_active', 'is_serialized', 'in_stock', 'low_stock']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(name__icontains=value) | Q(sku__icontains=value) | Q(description__icontains=value)
        )

    def filter_in_stock(self, queryset, name, value):
        if value.lower() in ('true', '1', 'yes'):
            return queryset.filter(available_quantity__gt=0)
        if value.lower() in ('false', '0', 'no'):
            return queryset.filter(available_quantity=0)
        return queryset

    def filter_low_stock(self, queryset, name, value):
        if value.lower() in ('true', '1', 'yes'):
            return queryset.filter(available_quantity__lte=F('reorder_level'))
        return queryset


class StockBatchFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    product = django_filters.NumberFilter(field_name='product_id')
    location = django_filters.NumberFilter(field_name='location_id')
    has_stock = django_filters.BooleanFilter(method='filter_has_stock', label='Has Stock')
    received_from = django_filters.DateFilter(field_name='received_date', lookup_expr='gte')
    received_to = django_filters.DateFilter(field_name='received_date', lookup_expr='lte')

    class Meta:
        model = StockBatch
        fields = ['search', 'product', 'location', 'has_stock', 'received_from', 'received_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(batch_number__icontains=value) |
            Q(product__name__icontains=value) |
            Q(product__sku__icontains=value) |
            Q(supplier_name__icontains=value)
        )

    def filter_has_stock(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter(quantity_available__gt=0) if value else queryset.filter(quantity_available=0)


class DeviceFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    status = django_filters.CharFilter(field_name='status', lookup_expr='iexact')
    product = django_filters.NumberFilter(field_name='product_id')
    batch = django_filters.NumberFilter(field_name='batch_id')
    vehicle = django_filters.NumberFilter(field_name='vehicle_id')

    class Meta:
        model = Device
        fields = ['search', 'status', 'product', 'batch', 'vehicle']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(imei__icontains=value) |
            Q(serial_number__icontains=value) |
            Q(sim_iccid__icontains=value) |
            Q(vehicle__vehicle_reg__icontains=value)
        )
