from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from trackops.billing.models import Receipt
from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class DashboardOverviewTests(TestCase):
    """Tests for the dashboard overview endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='MANAGER')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_overview_counts(self):
        """Overview summarises customers, jobs, receivables and stock"""
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_job(customer=customer)
        TestDataFactory.create_invoice(customer=customer, unit_price=Decimal('4000.00'))
        TestDataFactory.create_product(reorder_level=5)

        response = self.client.get('/api/v1/dashboard/overview/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['customers']['total'], 1)
        self.assertEqual(response.data['jobs']['by_status'], {'PENDING': 1})
        self.assertEqual(response.data['receivables']['outstanding'], Decimal('4000.00'))
        self.assertEqual(response.data['receivables']['open_invoices'], 1)
        self.assertEqual(len(response.data['low_stock_products']), 1)
        self.assertEqual(response['X-Cache'], 'MISS')

    def test_overview_is_cached_until_data_changes(self):
        """Second request is served from cache; a new customer invalidates it"""
        self.client.get('/api/v1/dashboard/overview/')
        response = self.client.get('/api/v1/dashboard/overview/')
        self.assertEqual(response['X-Cache'], 'HIT')

        TestDataFactory.create_customer()
        response = self.client.get('/api/v1/dashboard/overview/')
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(response.data['customers']['total'], 1)

    def test_technician_cannot_view_overview(self):
        """Technicians do not hold the reports permission"""
        self.client.authenticate_user(TestDataFactory.create_user(role='TECHNICIAN'))
        response = self.client.get('/api/v1/dashboard/overview/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class RevenueReportTests(TestCase):
    """Tests for the revenue report"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()
        self.mpesa = TestDataFactory.create_payment_method(name='M-Pesa')
        self.cash = TestDataFactory.create_payment_method(name='Cash', method_type='CASH')
        self.today = timezone.localdate()

    def receipt(self, method, amount, days_ago=0):
        return Receipt.objects.create(
            customer=self.customer,
            payment_method=method,
            amount=Decimal(amount),
            payment_date=self.today - timedelta(days=days_ago),
        )

    def test_revenue_by_day_and_method(self):
        """Receipts are grouped per day and per payment method"""
        self.receipt(self.mpesa, '1500.00')
        self.receipt(self.mpesa, '500.00', days_ago=1)
        self.receipt(self.cash, '1000.00', days_ago=1)
        self.receipt(self.cash, '9999.00', days_ago=90)

        response = self.client.get('/api/v1/reports/revenue/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_received'], Decimal('3000.00'))
        self.assertEqual(response.data['receipt_count'], 3)
        self.assertEqual(len(response.data['by_day']), 2)
        by_method = {row['payment_method']: row['total'] for row in response.data['by_method']}
        self.assertEqual(by_method, {'M-Pesa': Decimal('2000.00'), 'Cash': Decimal('1000.00')})

    def test_revenue_date_range(self):
        """start_date and end_date bound the report"""
        self.receipt(self.mpesa, '700.00', days_ago=5)
        self.receipt(self.mpesa, '300.00')
        start = (self.today - timedelta(days=6)).isoformat()
        end = (self.today - timedelta(days=1)).isoformat()
        response = self.client.get(f'/api/v1/reports/revenue/?start_date={start}&end_date={end}')
        self.assertEqual(response.data['total_received'], Decimal('700.00'))

    def test_invalid_range(self):
        """start_date after end_date is refused"""
        response = self.client.get('/api/v1/reports/revenue/?start_date=2025-02-01&end_date=2025-01-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_date(self):
        """Impossible dates are refused"""
        response = self.client.get('/api/v1/reports/revenue/?start_date=2025-02-30')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
