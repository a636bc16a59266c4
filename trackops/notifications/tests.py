"""
Test suite for in-app notifications and the SMS gateway client
"""
from decimal import Decimal
from unittest import mock

import requests
from django.test import TestCase, override_settings
from rest_framework import status

from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.notifications.models import Notification, SmsLog
from trackops.notifications.services import notify_user, notify_roles
from trackops.notifications.sms import send_sms, get_balance

GATEWAY = dict(SMS_ENABLED=True, SMS_API_URL='https://sms.test/api/', SMS_API_KEY='key', SMS_SENDER_ID='TRACKOPS')


def gateway_response(payload, status_code=200):
    response = mock.Mock()
    response.status_code = status_code
    response.content = b'{}'
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f'{status_code} Error')
    else:
        response.raise_for_status.return_value = None
    return response


class NotificationServiceTests(TestCase):
    """Test notification fan-out"""

    def test_notify_roles(self):
        """Active role holders and superusers are notified"""
        manager = TestDataFactory.create_user(role='MANAGER')
        TestDataFactory.create_user(role='SALES')
        inactive = TestDataFactory.create_user(role='MANAGER')
        inactive.is_active = False
        inactive.save()
        admin = TestDataFactory.create_user(role='ADMIN', is_superuser=True)

        created = notify_roles(['MANAGER'], 'Low stock', 'GPS tracker below reorder level', 'WARNING')
        self.assertEqual(len(created), 2)
        self.assertEqual(
            set(Notification.objects.values_list('user_id', flat=True)), {manager.id, admin.id}
        )


class NotificationAPITests(TestCase):
    """Test in-app notification endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='TECHNICIAN')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_list_own_notifications(self):
        notify_user(self.user, 'Job assigned', 'JOB-1 assigned to you')
        notify_user(TestDataFactory.create_user(), 'Other', 'Not yours')
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['title'], 'Job assigned')

    def test_unread_and_mark_read(self):
        first = notify_user(self.user, 'One', 'First')
        notify_user(self.user, 'Two', 'Second')
        response = self.client.get('/api/v1/notifications/unread/')
        self.assertEqual(response.data['count'], 2)

        response = self.client.post(f'/api/v1/notifications/{first.id}/read/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_read'])
        self.assertIsNotNone(response.data['read_at'])

        response = self.client.get('/api/v1/notifications/?is_read=false')
        self.assertEqual(response.data['count'], 1)

    def test_mark_all_read(self):
        notify_user(self.user, 'One', 'First')
        notify_user(self.user, 'Two', 'Second')
        response = self.client.post('/api/v1/notifications/mark-all-read/')
        self.assertEqual(response.data['updated'], 2)
        self.assertFalse(Notification.objects.filter(user=self.user, is_read=False).exists())

    def test_cannot_read_other_users_notification(self):
        other = notify_user(TestDataFactory.create_user(), 'Other', 'Not yours')
        response = self.client.post(f'/api/v1/notifications/{other.id}/read/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class SmsClientTests(TestCase):
    """Test the SMS gateway client with the HTTP layer mocked"""

    def test_disabled_gateway_fails_without_request(self):
        with override_settings(SMS_ENABLED=False), mock.patch('trackops.notifications.sms.requests.post') as post:
            log = send_sms('0712345678', 'Hello')
        post.assert_not_called()
        self.assertEqual(log.status, 'FAILED')
        self.assertEqual(log.recipient, '254712345678')
        self.assertIn('disabled', log.error_message)

    @override_settings(**GATEWAY)
    def test_invalid_phone(self):
        with mock.patch('trackops.notifications.sms.requests.post') as post:
            log = send_sms('12345', 'Hello')
        post.assert_not_called()
        self.assertEqual(log.status, 'FAILED')
        self.assertIn('Invalid phone number', log.error_message)

    @override_settings(**GATEWAY)
    def test_empty_message(self):
        log = send_sms('0712345678', '   ')
        self.assertEqual(log.status, 'FAILED')

    @override_settings(SMS_ENABLED=True, SMS_API_URL='', SMS_API_KEY='')
    def test_unconfigured_gateway(self):
        log = send_sms('0712345678', 'Hello')
        self.assertEqual(log.status, 'FAILED')
        self.assertIn('not configured', log.error_message)

    @override_settings(**GATEWAY)
    def test_send_success(self):
        """A successful send records the provider id and cost"""
        customer = TestDataFactory.create_customer(phone='0712345678')
        with mock.patch('trackops.notifications.sms.requests.post') as post:
            post.return_value = gateway_response({'success': True, 'message_id': 'abc123', 'cost': '0.80'})
            log = send_sms('0712 345 678', 'Your tracker is active', sms_type='JOB', customer=customer)

        post.assert_called_once()
        args, kwargs = post.call_args
        self.assertEqual(args[0], 'https://sms.test/api/send')
        self.assertEqual(kwargs['json'], {
            'to': '254712345678', 'message': 'Your tracker is active', 'sender_id': 'TRACKOPS'
        })
        self.assertEqual(kwargs['headers']['X-API-Key'], 'key')
        self.assertEqual(log.status, 'SENT')
        self.assertEqual(log.provider_message_id, 'abc123')
        self.assertEqual(log.cost, Decimal('0.80'))
        self.assertIsNotNone(log.sent_at)
        self.assertEqual(log.customer, customer)

    @override_settings(**GATEWAY)
    def test_gateway_rejection(self):
        with mock.patch('trackops.notifications.sms.requests.post') as post:
            post.return_value = gateway_response({'success': False, 'message': 'Insufficient credit'})
            log = send_sms('0712345678', 'Hello')
        self.assertEqual(log.status, 'FAILED')
        self.assertEqual(log.error_message, 'Insufficient credit')

    @override_settings(**GATEWAY)
    def test_timeout(self):
        with mock.patch('trackops.notifications.sms.requests.post', side_effect=requests.exceptions.Timeout):
            log = send_sms('0712345678', 'Hello')
        self.assertEqual(log.status, 'FAILED')
        self.assertIn('timed out', log.error_message)

    @override_settings(**GATEWAY)
    def test_http_error(self):
        with mock.patch('trackops.notifications.sms.requests.post') as post:
            post.return_value = gateway_response({}, status_code=500)
            log = send_sms('0712345678', 'Hello')
        self.assertEqual(log.status, 'FAILED')
        self.assertIn('SMS gateway error', log.error_message)

    @override_settings(**GATEWAY)
    def test_balance(self):
        with mock.patch('trackops.notifications.sms.requests.get') as get:
            get.return_value = gateway_response({'balance': 1520.5, 'currency': 'KES'})
            self.assertEqual(get_balance(), {'balance': 1520.5, 'currency': 'KES'})
        self.assertEqual(get.call_args[0][0], 'https://sms.test/api/balance')

    @override_settings(**GATEWAY)
    def test_balance_unavailable(self):
        with mock.patch('trackops.notifications.sms.requests.get', side_effect=requests.exceptions.ConnectionError):
            self.assertIsNone(get_balance())

    def test_balance_disabled(self):
        with override_settings(SMS_ENABLED=False):
            self.assertIsNone(get_balance())


class SmsAPITests(TestCase):
    """Test SMS endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='MANAGER')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    @override_settings(**GATEWAY)
    def test_send_to_numbers(self):
        with mock.patch('trackops.notifications.sms.requests.post') as post:
            post.return_value = gateway_response({'success': True, 'id': 'm1'})
            response = self.client.post('/api/v1/sms/send/', {
                'phone_numbers': ['0712345678', '0722000111'],
                'message': 'Service reminder',
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sent'], 2)
        self.assertEqual(response.data['failed'], 0)
        self.assertEqual(SmsLog.objects.filter(sent_by=self.user).count(), 2)

    @override_settings(**GATEWAY)
    def test_send_partial_failure(self):
        """Invalid numbers fail individually without blocking the rest"""
        with mock.patch('trackops.notifications.sms.requests.post') as post:
            post.return_value = gateway_response({'success': True, 'id': 'm1'})
            response = self.client.post('/api/v1/sms/send/', {
                'phone_numbers': ['0712345678', '555'],
                'message': 'Service reminder',
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sent'], 1)
        self.assertEqual(response.data['failed'], 1)

    def test_send_all_failed(self):
        """With the gateway disabled every message fails"""
        customer = TestDataFactory.create_customer(phone='0733444555')
        response = self.client.post('/api/v1/sms/send/', {
            'customer': customer.id, 'message': 'Invoice due', 'sms_type': 'INVOICE',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['failed'], 1)
        self.assertEqual(response.data['results'][0]['recipient'], '254733444555')

    def test_send_requires_recipient(self):
        response = self.client.post('/api/v1/sms/send/', {'message': 'Hello'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(SmsLog.objects.count(), 0)

    def test_balance_unavailable(self):
        response = self.client.get('/api/v1/sms/balance/')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_logs_and_stats(self):
        send_sms('0712345678', 'One', sms_type='JOB')
        send_sms('0712345678', 'Two', sms_type='INVOICE')
        SmsLog.objects.filter(message='Two').update(status='SENT', cost=Decimal('1.20'))

        response = self.client.get('/api/v1/sms/logs/?status=failed')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['message'], 'One')

        response = self.client.get('/api/v1/sms/stats/')
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['sent'], 1)
        self.assertEqual(response.data['success_rate'], 50.0)
        self.assertEqual(response.data['total_cost'], Decimal('1.20'))
        self.assertEqual(response.data['by_type'], {'JOB': 1, 'INVOICE': 1})
        self.assertFalse(response.data['gateway_enabled'])

    @override_settings(**GATEWAY)
    def test_test_message(self):
        with mock.patch('trackops.notifications.sms.requests.post') as post:
            post.return_value = gateway_response({'success': True, 'id': 't1'})
            response = self.client.post('/api/v1/sms/test/', {'phone': '0712345678'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sms_type'], 'TEST')
        self.assertEqual(response.data['status'], 'SENT')

    def test_technician_cannot_send(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='TECHNICIAN'))
        response = self.client.post('/api/v1/sms/send/', {'phone': '0712345678', 'message': 'Hi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_sales_cannot_read_logs(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='SALES'))
        response = self.client.get('/api/v1/sms/logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
