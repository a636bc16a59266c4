from rest_framework import serializers
from .models import Notification, SmsLog


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'title', 'message', 'notification_type', 'link', 'is_read', 'read_at', 'created_at']
        read_only_fields = fields


class SmsLogSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    job_number = serializers.CharField(source='job.job_number', read_only=True)
    sent_by_name = serializers.CharField(source='sent_by.username', read_only=True)

    class Meta:
        model = SmsLog
        fields = [
            'id', 'recipient', 'message', 'sms_type', 'status', 'provider_message_id', 'error_message', 'cost',
            'customer', 'customer_name', 'job', 'job_number', 'sent_by', 'sent_by_name', 'sent_at', 'created_at'
        ]


class SendSmsSerializer(serializers.Serializer):
    """Either explicit phone numbers or a customer whose phone is used"""
    phone_numbers = serializers.ListField(child=serializers.CharField(), required=False)
    phone = serializers.CharField(required=False)
    customer = serializers.IntegerField(required=False)
    job = serializers.IntegerField(required=False)
    message = serializers.CharField(max_length=918)
    sms_type = serializers.ChoiceField(choices=SmsLog.TYPE_CHOICES, default='GENERAL')

    def validate(self, attrs):
        if not attrs.get('phone_numbers') and not attrs.get('phone') and not attrs.get('customer'):
            raise serializers.ValidationError('Provide phone_numbers, phone or customer')
        if not attrs['message'].strip():
            raise serializers.ValidationError({'message': 'Message cannot be empty'})
        return attrs
