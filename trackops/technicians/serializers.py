from rest_framework import serializers
from django.contrib.auth import get_user_model
from trackops.core.formatting import is_valid_kenyan_phone, digits_only
from trackops.jobs.workflow import OPEN_STATUSES
from .models import Technician

User = get_user_model()


class TechnicianSerializer(serializers.ModelSerializer):
    name = serializers.CharField(read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)
    email = serializers.EmailField(source='user.email', required=False, allow_blank=True)
    phone = serializers.CharField(source='user.phone', required=False, allow_blank=True)
    first_name = serializers.CharField(source='user.first_name', required=False, allow_blank=True)
    last_name = serializers.CharField(source='user.last_name', required=False, allow_blank=True)
    is_active = serializers.BooleanField(source='user.is_active', read_only=True)
    active_jobs = serializers.SerializerMethodField()
    completed_jobs = serializers.SerializerMethodField()

    class Meta:
        model = Technician
        fields = [
            'id', 'user', 'technician_code', 'name', 'username', 'first_name', 'last_name', 'email', 'phone',
            'specialization', 'location', 'id_number', 'is_available', 'rating', 'notes', 'is_active',
            'active_jobs', 'completed_jobs', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'user', 'technician_code', 'created_at', 'updated_at']

    def get_active_jobs(self, obj):
        count = getattr(obj, 'active_jobs', None)
        return count if count is not None else obj.jobs.filter(status__in=OPEN_STATUSES).count()

    def get_completed_jobs(self, obj):
        count = getattr(obj, 'completed_jobs', None)
        return count if count is not None else obj.jobs.filter(status__in=['COMPLETED', 'VERIFIED']).count()

    def validate_specialization(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError('Specialization must be a list of strings')
        return [item.strip() for item in value if item.strip()]

    def validate_phone(self, value):
        if value and not is_valid_kenyan_phone(value):
            raise serializers.ValidationError('Enter a valid Kenyan phone number')
        return digits_only(value) if value else ''

    def validate_rating(self, value):
        if value < 0 or value > 5:
            raise serializers.ValidationError('Rating must be between 0 and 5')
        return value

    def update(self, instance, validated_data):
        user_data = validated_data.pop('user', {})
        if user_data:
            for field, value in user_data.items():
                setattr(instance.user, field, value)
            instance.user.save()
        return super().update(instance, validated_data)


class TechnicianCreateSerializer(serializers.Serializer):
    """Creates the TECHNICIAN user account together with its profile"""
    username = serializers.CharField(max_length=150)
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20)
    specialization = serializers.ListField(child=serializers.CharField(), required=False)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    id_number = serializers.CharField(max_length=50, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_username(self, value):
        if User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError('A user with this username already exists')
        return value

    def validate_phone(self, value):
        if not is_valid_kenyan_phone(value):
            raise serializers.ValidationError('Enter a valid Kenyan phone number')
        return digits_only(value)


class TechnicianListSerializer(serializers.ModelSerializer):
    name = serializers.CharField(read_only=True)

    class Meta:
        model = Technician
        fields = ['id', 'technician_code', 'name', 'location', 'is_available']
