"""
Tests for authentication, users, settings, audit logs, permissions and shared helpers
"""
from datetime import date
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from trackops.core.cache_utils import get_cached_dashboard, cache_dashboard, invalidate_dashboard_cache
from trackops.core.formatting import (
    format_currency, format_date, format_phone_number, normalize_phone, is_valid_kenyan_phone, phone_variants, truncate,
)
from trackops.core.models import Setting, AuditLog
from trackops.core.permissions import has_permission
from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.core.utils import create_audit_log, quantize_money, to_decimal


class AuthTests(TestCase):
    """Test login, refresh and the current user endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user(username='jane', password='s3cret-pass!', role='FINANCE')
        self.client = AuthenticatedAPIClient()

    def test_login_returns_tokens_and_user(self):
        """Login returns access and refresh tokens with the user's permissions"""
        response = self.client.post('/api/v1/auth/login/', {'username': 'jane', 'password': 's3cret-pass!'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['role'], 'FINANCE')
        self.assertIn('invoices.*', response.data['user']['permissions'])

    def test_login_wrong_password(self):
        """Wrong credentials are refused"""
        response = self.client.post('/api/v1/auth/login/', {'username': 'jane', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_authentication(self):
        """Anonymous requests are refused"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_includes_technician_id(self):
        """Technician users see their technician profile id"""
        technician = TestDataFactory.create_technician()
        self.client.authenticate_user(technician.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['technician_id'], technician.id)

    def test_change_password(self):
        """Password change checks the current password"""
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/auth/change-password/', {
            'current_password': 'wrong', 'new_password': 'An0ther-Strong-Pass'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/v1/auth/change-password/', {
            'current_password': 's3cret-pass!', 'new_password': 'An0ther-Strong-Pass'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('An0ther-Strong-Pass'))


class UserAPITests(TestCase):
    """Test user administration endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role='ADMIN')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_create_user(self):
        """Admins create users with a role"""
        response = self.client.post('/api/v1/users/', {
            'username': 'newclerk',
            'email': 'clerk@test.com',
            'password': 'Cl3rk-Password!',
            'password_confirm': 'Cl3rk-Password!',
            'role': 'SALES',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], 'SALES')
        self.assertTrue(AuditLog.objects.filter(model_name='User', action='create').exists())

    def test_password_mismatch(self):
        """Password confirmation must match"""
        response = self.client.post('/api/v1/users/', {
            'username': 'mismatch', 'password': 'Cl3rk-Password!', 'password_confirm': 'other', 'role': 'SALES',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_users_filtered_by_role(self):
        """Users can be filtered by role"""
        TestDataFactory.create_user(role='TECHNICIAN')
        response = self.client.get('/api/v1/users/?role=TECHNICIAN')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_non_admin_cannot_manage_users(self):
        """Only administrators reach user endpoints"""
        self.client.authenticate_user(TestDataFactory.create_user(role='MANAGER'))
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cannot_deactivate_self(self):
        """Admins cannot toggle their own account"""
        response = self.client.post(f'/api/v1/users/{self.admin.id}/toggle-status/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_toggle_status(self):
        """Toggling deactivates another user"""
        other = TestDataFactory.create_user(role='SALES')
        response = self.client.post(f'/api/v1/users/{other.id}/toggle-status/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])

    def test_reset_password(self):
        """Password reset returns the temporary password"""
        other = TestDataFactory.create_user(role='SALES')
        response = self.client.post(f'/api/v1/users/{other.id}/reset-password/', {'password': 'Temp-Pass-123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        other.refresh_from_db()
        self.assertTrue(other.check_password('Temp-Pass-123'))

    def test_reset_password_is_audited(self):
        """The reset is logged against the target user without the password"""
        other = TestDataFactory.create_user(role='SALES')
        self.client.post(f'/api/v1/users/{other.id}/reset-password/', {'password': 'Temp-Pass-123'}, format='json')
        entry = AuditLog.objects.get(model_name='User', object_id=str(other.id))
        self.assertEqual(entry.user, self.admin)
        self.assertEqual(entry.action, 'update')
        self.assertEqual(entry.changes, {'password': 'reset'})
        self.assertNotIn('Temp-Pass-123', str(entry.changes))


class SettingAPITests(TestCase):
    """Test system settings"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role='ADMIN'))

    def test_create_and_read_values(self):
        """Settings are exposed as a key/value map"""
        response = self.client.post('/api/v1/settings/', {'key': 'company_name', 'value': 'TrackOps Ltd'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get('/api/v1/settings/all/')
        self.assertEqual(response.data, {'company_name': 'TrackOps Ltd'})

    def test_manager_reads_but_cannot_create(self):
        """Managers can read settings but not create them"""
        Setting.objects.create(key='tax_rate', value='16')
        self.client.authenticate_user(TestDataFactory.create_user(role='MANAGER'))
        self.assertEqual(self.client.get('/api/v1/settings/').status_code, status.HTTP_200_OK)
        response = self.client.post('/api/v1/settings/', {'key': 'x', 'value': 'y'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AuditLogTests(TestCase):
    """Test audit log creation and visibility"""

    def test_create_audit_log_requires_fields(self):
        """Missing required fields skip the entry instead of failing"""
        self.assertIsNone(create_audit_log(action='create', model_name='Customer'))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_users_without_audit_access_see_only_their_entries(self):
        """Sales users only see their own audit entries"""
        sales = TestDataFactory.create_user(role='SALES')
        other = TestDataFactory.create_user(role='FINANCE')
        create_audit_log(user=sales, action='create', model_name='Customer', object_id=1)
        create_audit_log(user=other, action='create', model_name='Customer', object_id=2)

        client = AuthenticatedAPIClient()
        client.authenticate_user(sales)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.data['count'], 1)

        client.authenticate_user(TestDataFactory.create_user(role='MANAGER'))
        response = client.get('/api/v1/audit-logs/?model=Customer')
        self.assertEqual(response.data['count'], 2)


class PermissionTests(TestCase):
    """Test role based permission checks"""

    def test_admin_has_everything(self):
        """ADMIN holds every permission"""
        self.assertTrue(has_permission(TestDataFactory.create_user(role='ADMIN'), 'invoices.delete'))

    def test_module_wildcard(self):
        """module.* grants every action in the module"""
        manager = TestDataFactory.create_user(role='MANAGER')
        self.assertTrue(has_permission(manager, 'jobs.assign'))
        self.assertFalse(has_permission(manager, 'transactions.create'))

    def test_technician_permissions(self):
        """Technicians may create requisitions but not invoices"""
        technician = TestDataFactory.create_user(role='TECHNICIAN')
        self.assertTrue(has_permission(technician, 'requisitions.create'))
        self.assertFalse(has_permission(technician, 'invoices.read'))

    def test_inactive_user_has_nothing(self):
        """Inactive users fail every check"""
        user = TestDataFactory.create_user(role='ADMIN')
        user.is_active = False
        self.assertFalse(has_permission(user, 'customers.read'))


class HelperTests(TestCase):
    """Test formatting, money and cache helpers"""

    def test_format_currency(self):
        self.assertEqual(format_currency(Decimal('1234.5')), 'KES 1,234.50')
        self.assertEqual(format_currency(-10), '-KES 10.00')
        self.assertEqual(format_currency(None), 'KES 0.00')

    def test_format_date(self):
        self.assertEqual(format_date(date(2025, 1, 5)), 'Jan 5, 2025')
        self.assertEqual(format_date('2025-03-10'), 'Mar 10, 2025')
        self.assertEqual(format_date(''), '')

    def test_phone_helpers(self):
        """Kenyan numbers normalize to 254XXXXXXXXX"""
        self.assertEqual(normalize_phone('0712 345 678'), '254712345678')
        self.assertEqual(normalize_phone('+254112345678'), '254112345678')
        self.assertIsNone(normalize_phone('12345'))
        self.assertTrue(is_valid_kenyan_phone('0712345678'))
        self.assertEqual(format_phone_number('254712345678'), '+254 712 345 678')
        self.assertEqual(phone_variants('+254 712 345 678'), {'254712345678', '0712345678'})

    def test_truncate(self):
        self.assertEqual(truncate('a' * 60, 10), 'a' * 10 + '...')
        self.assertEqual(truncate('short'), 'short')

    def test_money_helpers(self):
        self.assertEqual(quantize_money(Decimal('10.005')), Decimal('10.01'))
        self.assertEqual(to_decimal('abc', Decimal('0')), Decimal('0'))
        self.assertEqual(to_decimal('12.50'), Decimal('12.50'))

    def test_dashboard_cache_invalidation(self):
        """Bumping the generation hides previously cached payloads"""
        cache.clear()
        cached, key = get_cached_dashboard('overview')
        self.assertIsNone(cached)
        cache_dashboard(key, {'value': 1})
        self.assertEqual(get_cached_dashboard('overview')[0], {'value': 1})
        invalidate_dashboard_cache()
        self.assertIsNone(get_cached_dashboard('overview')[0])
