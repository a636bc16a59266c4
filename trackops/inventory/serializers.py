from rest_framework import serializers
from .models import Category, Product, Location, StockBatch, InventoryAdjustment, StockTransfer, Device, DeviceHistory


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'is_active', 'product_count', 'created_at']
        read_only_fields = ['id', 'created_at']

    def get_product_count(self, obj):
        return obj.products.count()


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    available_quantity = serializers.SerializerMethodField()
    is_low_stock = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'sku', 'category', 'category_name', 'description', 'buying_price', 'selling_price',
            'subscription_fee', 'reorder_level', 'unit_of_measure', 'is_serialized', 'is_active',
            'available_quantity', 'is_low_stock', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'sku': {'validators': []}}

    def get_available_quantity(self, obj):
        # products_with_stock() annotates this; single objects fall back to a query
        quantity = getattr(obj, 'available_quantity', None)
        return quantity if quantity is not None else obj.get_available_quantity()

    def get_is_low_stock(self, obj):
        return self.get_available_quantity(obj) <= obj.reorder_level

    def validate_sku(self, value):
        sku = value.strip().upper()
        queryset = Product.objects.filter(sku=sku)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError(f'SKU {sku} is already in use')
        return sku

    def validate(self, attrs):
        for field in ('buying_price', 'selling_price', 'subscription_fee'):
            value = attrs.get(field)
            if value is not None and value < 0:
                raise serializers.ValidationError({field: 'Price cannot be negative'})
        return attrs


class ProductSearchSerializer(serializers.ModelSerializer):
    """Product lookup for invoice and quotation lines"""
    available_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'name', 'sku', 'selling_price', 'subscription_fee', 'unit_of_measure', 'is_serialized', 'available_quantity']


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ['id', 'name', 'code', 'location_type', 'address', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_code(self, value):
        return value.strip().upper()


class StockBatchSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    location_name = serializers.CharField(source='location.name', read_only=True)
    device_count = serializers.SerializerMethodField()

    class Meta:
        model = StockBatch
        fields = [
            'id', 'batch_number', 'product', 'product_name', 'product_sku', 'location', 'location_name',
            'quantity_received', 'quantity_available', 'buying_price', 'supplier_name', 'received_date',
            'expiry_date', 'notes', 'device_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'batch_number', 'quantity_available', 'created_at', 'updated_at']

    def get_device_count(self, obj):
        return obj.devices.count()

    def validate_quantity_received(self, value):
        if value <= 0:
            raise serializers.ValidationError('Quantity received must be greater than zero')
        return value

    def validate(self, attrs):
        received = attrs.get('received_date', getattr(self.instance, 'received_date', None))
        expiry = attrs.get('expiry_date', getattr(self.instance, 'expiry_date', None))
        if received and expiry and expiry <= received:
            raise serializers.ValidationError({'expiry_date': 'Expiry date must be after the received date'})
        if self.instance and 'quantity_received' in attrs and attrs['quantity_received'] != self.instance.quantity_received:
            raise serializers.ValidationError({'quantity_received': 'Use a stock adjustment to change batch quantities'})
        return attrs

    def create(self, validated_data):
        validated_data['quantity_available'] = validated_data['quantity_received']
        if 'buying_price' not in validated_data:
            validated_data['buying_price'] = validated_data['product'].buying_price
        return super().create(validated_data)


class InventoryAdjustmentSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)
    created_by_name = serializers.CharField(source='created_by.username', read_only=True)

    class Meta:
        model = InventoryAdjustment
        fields = [
            'id', 'batch', 'batch_number', 'adjustment_type', 'quantity', 'previous_quantity',
            'new_quantity', 'reason', 'created_by', 'created_by_name', 'created_at'
        ]


class StockAdjustmentRequestSerializer(serializers.Serializer):
    adjustment_type = serializers.ChoiceField(choices=['increase', 'decrease', 'set'])
    quantity = serializers.IntegerField(min_value=0)
    reason = serializers.CharField()


class StockTransferSerializer(serializers.ModelSerializer):
    source_batch_number = serializers.CharField(source='source_batch.batch_number', read_only=True)
    destination_batch_number = serializers.CharField(source='destination_batch.batch_number', read_only=True)
    from_location_name = serializers.CharField(source='from_location.name', read_only=True)
    to_location_name = serializers.CharField(source='to_location.name', read_only=True)

    class Meta:
        model = StockTransfer
        fields = [
            'id', 'transfer_number', 'source_batch', 'source_batch_number', 'destination_batch',
            'destination_batch_number', 'from_location', 'from_location_name', 'to_location',
            'to_location_name', 'quantity', 'notes', 'created_by', 'created_at'
        ]


class StockTransferRequestSerializer(serializers.Serializer):
    batch = serializers.PrimaryKeyRelatedField(queryset=StockBatch.objects.all())
    to_location = serializers.PrimaryKeyRelatedField(queryset=Location.objects.filter(is_active=True))
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True)


class DeviceHistorySerializer(serializers.ModelSerializer):
    performed_by_name = serializers.CharField(source='performed_by.username', read_only=True)

    class Meta:
        model = DeviceHistory
        fields = ['id', 'from_status', 'to_status', 'reference', 'notes', 'performed_by', 'performed_by_name', 'created_at']


class DeviceSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)
    vehicle_reg = serializers.CharField(source='vehicle.vehicle_reg', read_only=True)
    jobs = serializers.SerializerMethodField()

    class Meta:
        model = Device
        fields = [
            'id', 'imei', 'product', 'product_name', 'batch', 'batch_number', 'status', 'serial_number',
            'sim_iccid', 'mac_address', 'vehicle', 'vehicle_reg', 'installed_at', 'installation_notes',
            'notes', 'jobs', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'imei', 'product', 'batch', 'status', 'vehicle', 'installed_at', 'created_at', 'updated_at']

    def get_jobs(self, obj):
        return list(obj.jobs.values_list('job_number', flat=True))

