from rest_framework import serializers
from trackops.core.formatting import is_valid_kenyan_phone, digits_only, phone_variants
from .models import Customer, Vehicle


class CustomerSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)
    vehicle_count = serializers.SerializerMethodField()

    class Meta:
        model = Customer
        fields = [
            'id', 'customer_code', 'customer_type', 'business_name', 'contact_person', 'display_name',
            'phone', 'alternative_phone', 'email', 'address', 'city', 'tax_pin', 'credit_limit',
            'notes', 'is_active', 'vehicle_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'customer_code', 'created_at', 'updated_at']
        extra_kwargs = {'phone': {'validators': []}}

    def get_vehicle_count(self, obj):
        # Annotated by list views, falls back to a query for single objects
        count = getattr(obj, 'vehicle_count', None)
        return count if count is not None else obj.vehicles.count()

    def validate_phone(self, value):
        if not is_valid_kenyan_phone(value):
            raise serializers.ValidationError('Enter a valid Kenyan phone number (07XXXXXXXX, 01XXXXXXXX or 254XXXXXXXXX)')
        phone = digits_only(value)
        queryset = Customer.objects.filter(phone__in=phone_variants(phone))
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A customer with this phone number already exists')
        return phone

    def validate_alternative_phone(self, value):
        if value and not is_valid_kenyan_phone(value):
            raise serializers.ValidationError('Enter a valid Kenyan phone number')
        return digits_only(value) if value else ''

    def validate(self, attrs):
        business_name = attrs.get('business_name', getattr(self.instance, 'business_name', ''))
        contact_person = attrs.get('contact_person', getattr(self.instance, 'contact_person', ''))
        if not (business_name or '').strip() and not (contact_person or '').strip():
            raise serializers.ValidationError({'business_name': 'Provide a business name or a contact person'})
        credit_limit = attrs.get('credit_limit')
        if credit_limit is not None and credit_limit < 0:
            raise serializers.ValidationError({'credit_limit': 'Credit limit cannot be negative'})
        return attrs


class CustomerListSerializer(serializers.ModelSerializer):
    """Lightweight representation for search and dropdowns"""
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = Customer
        fields = ['id', 'customer_code', 'display_name', 'phone', 'email', 'is_active']


class VehicleSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    active_device = serializers.SerializerMethodField()

    class Meta:
        model = Vehicle
        fields = [
            'id', 'customer', 'customer_name', 'vehicle_reg', 'make', 'model', 'color', 'chassis_no',
            'mileage', 'iccid_simcard', 'year_of_manufacture', 'vehicle_type', 'notes', 'is_active',
            'active_device', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        # Uniqueness is checked on the normalized registration in validate_vehicle_reg
        extra_kwargs = {'vehicle_reg': {'validators': []}}

    def get_active_device(self, obj):
        device = obj.devices.filter(status='ACTIVE').order_by('-installed_at').first()
        return device.imei if device else None

    def validate_vehicle_reg(self, value):
        reg = Vehicle.normalize_registration(value)
        if not reg:
            raise serializers.ValidationError('Vehicle registration is required')
        queryset = Vehicle.objects.filter(vehicle_reg=reg)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError(f'Vehicle {reg} is already registered')
        return reg

    def validate_year_of_manufacture(self, value):
        if value is not None and not (1950 <= value <= Vehicle.max_manufacture_year()):
            raise serializers.ValidationError(f'Year must be between 1950 and {Vehicle.max_manufacture_year()}')
        return value

    def validate_chassis_no(self, value):
        return value or None
