from rest_framework import serializers
from .models import Subscription, SubscriptionNotification, SubscriptionRenewal
from .services import evaluate_status, renewal_price


class SubscriptionNotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionNotification
        fields = ['id', 'notification_type', 'channel', 'recipient', 'message', 'status', 'error_message', 'sent_at']


class SubscriptionRenewalSerializer(serializers.ModelSerializer):
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    invoice_status = serializers.CharField(source='invoice.status', read_only=True)

    class Meta:
        model = SubscriptionRenewal
        fields = [
            'id', 'invoice', 'invoice_number', 'invoice_status', 'previous_expiry_date', 'new_start_date',
            'new_expiry_date', 'amount', 'status', 'completed_at', 'created_at'
        ]


class SubscriptionSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    vehicle_reg = serializers.CharField(source='vehicle.vehicle_reg', read_only=True)
    device_imei = serializers.CharField(source='device.imei', read_only=True)
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    days_until_expiry = serializers.IntegerField(read_only=True)
    effective_renewal_price = serializers.SerializerMethodField()

    class Meta:
        model = Subscription
        fields = [
            'id', 'subscription_number', 'customer', 'customer_name', 'product', 'product_name', 'vehicle',
            'vehicle_reg', 'device', 'device_imei', 'invoice', 'invoice_number', 'job', 'start_date',
            'expiry_date', 'days_until_expiry', 'status', 'auto_renew', 'renewal_price', 'effective_renewal_price',
            'notification_sent_30_days', 'notification_sent_7_days', 'notification_sent_expired',
            'cancelled_at', 'cancellation_reason', 'notes', 'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'subscription_number', 'status', 'notification_sent_30_days', 'notification_sent_7_days',
            'notification_sent_expired', 'cancelled_at', 'cancellation_reason', 'created_by', 'created_at', 'updated_at'
        ]

    def get_effective_renewal_price(self, obj):
        price = renewal_price(obj)
        return str(price) if price else None

    def validate_renewal_price(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Renewal price cannot be negative')
        return value

    def validate(self, attrs):
        if self.instance and self.instance.status == 'CANCELLED':
            raise serializers.ValidationError('Cancelled subscriptions cannot be edited')
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        expiry = attrs.get('expiry_date', getattr(self.instance, 'expiry_date', None))
        if start and expiry and expiry <= start:
            raise serializers.ValidationError({'expiry_date': 'Expiry date must be after the start date'})

        customer = attrs.get('customer', getattr(self.instance, 'customer', None))
        vehicle = attrs.get('vehicle', getattr(self.instance, 'vehicle', None))
        if vehicle is not None and customer is not None and vehicle.customer_id != customer.id:
            raise serializers.ValidationError({'vehicle': 'Vehicle does not belong to this customer'})
        device = attrs.get('device')
        if device is not None and device.status in ('DAMAGED', 'INACTIVE'):
            raise serializers.ValidationError({'device': 'Device is not in service'})
        return attrs

    def create(self, validated_data):
        subscription = Subscription(**validated_data)
        subscription.status = evaluate_status(subscription)
        subscription.save()
        return subscription

    def update(self, instance, validated_data):
        for field, value in validated_data.items():
            setattr(instance, field, value)
        if 'expiry_date' in validated_data:
            instance.status = evaluate_status(instance)
        instance.save()
        return instance
