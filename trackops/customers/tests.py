"""
Test suite for customers and vehicles
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.customers.models import Customer, Vehicle


class CustomerModelTests(TestCase):
    """Test Customer and Vehicle model behaviour"""

    def test_customer_code_generated(self):
        """Customers get a CUST- code on save"""
        customer = TestDataFactory.create_customer()
        self.assertTrue(customer.customer_code.startswith('CUST-'))

    def test_display_name_prefers_business_name(self):
        customer = TestDataFactory.create_customer(business_name='Acme Ltd', contact_person='John')
        self.assertEqual(customer.display_name, 'Acme Ltd')
        customer = TestDataFactory.create_customer(contact_person='Mary Wanjiku')
        self.assertEqual(customer.display_name, 'Mary Wanjiku')

    def test_vehicle_registration_normalized(self):
        """Registrations are stored upper-case without spaces"""
        vehicle = TestDataFactory.create_vehicle(vehicle_reg='kbz 123x')
        self.assertEqual(vehicle.vehicle_reg, 'KBZ123X')

    def test_blank_chassis_stored_as_null(self):
        """Blank chassis numbers never collide on the unique constraint"""
        first = TestDataFactory.create_vehicle()
        second = TestDataFactory.create_vehicle()
        self.assertIsNone(first.chassis_no)
        self.assertIsNone(second.chassis_no)


class CustomerAPITests(TestCase):
    """Test customer endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='SALES')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_customer(self):
        """Phone numbers are stored as digits only"""
        response = self.client.post('/api/v1/customers/', {
            'customer_type': 'BUSINESS',
            'business_name': 'Swift Couriers',
            'phone': '0712 345 678',
            'email': 'ops@swift.test',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['phone'], '0712345678')
        self.assertEqual(response.data['display_name'], 'Swift Couriers')

    def test_create_customer_invalid_phone(self):
        """Non-Kenyan numbers are rejected"""
        response = self.client.post('/api/v1/customers/', {
            'contact_person': 'John', 'phone': '12345'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)

    def test_create_customer_duplicate_phone(self):
        """Phone numbers are unique"""
        TestDataFactory.create_customer(phone='0712345678')
        response = self.client.post('/api/v1/customers/', {
            'contact_person': 'John', 'phone': '0712-345-678'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_phone_in_international_form(self):
        """0712... and 254712... are the same subscriber"""
        response = self.client.post('/api/v1/customers/', {
            'contact_person': 'John', 'phone': '0712000111'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/customers/', {
            'contact_person': 'Jane', 'phone': '+254 712 000 111'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)

    def test_update_keeps_own_phone_in_other_form(self):
        customer = TestDataFactory.create_customer(phone='0712000222')
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'phone': '254712000222'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_create_customer_requires_name(self):
        """Either a business name or a contact person is required"""
        response = self.client.post('/api/v1/customers/', {'phone': '0712345678'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_negative_credit_limit(self):
        response = self.client.post('/api/v1/customers/', {
            'contact_person': 'John', 'phone': '0712345678', 'credit_limit': '-1.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_and_search(self):
        """List filters by free text"""
        TestDataFactory.create_customer(business_name='Nairobi Haulage')
        TestDataFactory.create_customer(business_name='Mombasa Freight')
        response = self.client.get('/api/v1/customers/?search=haulage')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['business_name'], 'Nairobi Haulage')

    def test_quick_search(self):
        """Quick search returns active matches only"""
        active = TestDataFactory.create_customer(business_name='Kisumu Traders')
        inactive = TestDataFactory.create_customer(business_name='Kisumu Motors')
        inactive.is_active = False
        inactive.save()
        response = self.client.get('/api/v1/customers/search/?q=kisumu')
        self.assertEqual([row['id'] for row in response.data], [active.id])

    def test_update_customer(self):
        customer = TestDataFactory.create_customer()
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'city': 'Nakuru'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['city'], 'Nakuru')

    def test_delete_customer_without_history(self):
        customer = TestDataFactory.create_customer()
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Customer.objects.filter(pk=customer.id).exists())

    def test_delete_customer_with_jobs_refused(self):
        """Customers with jobs must be deactivated instead"""
        job = TestDataFactory.create_job()
        response = self.client.delete(f'/api/v1/customers/{job.customer_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_toggle_status(self):
        customer = TestDataFactory.create_customer()
        response = self.client.post(f'/api/v1/customers/{customer.id}/toggle-status/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])

    def test_technician_cannot_create_customer(self):
        """Technicians only read customers"""
        self.client.authenticate_user(TestDataFactory.create_user(role='TECHNICIAN'))
        response = self.client.post('/api/v1/customers/', {'contact_person': 'X', 'phone': '0712345678'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_full_detail(self):
        """Full detail bundles vehicles, jobs, invoices and balance"""
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_job(customer=customer)
        TestDataFactory.create_invoice(customer=customer, unit_price=Decimal('2500.00'))
        response = self.client.get(f'/api/v1/customers/customer-detail/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['vehicles']), 1)
        self.assertEqual(len(response.data['recent_jobs']), 1)
        self.assertEqual(len(response.data['recent_invoices']), 1)
        self.assertEqual(response.data['outstanding'], Decimal('2500.00'))
        self.assertEqual(response.data['balance'], Decimal('2500.00'))


class CustomerBalanceTests(TestCase):
    """Test statement and outstanding balance reports"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_statement(self):
        """Statement lists ledger lines with running balance"""
        TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('1000.00'))
        TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('500.00'))
        response = self.client.get(f'/api/v1/customers/{self.customer.id}/statement/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['transactions']), 2)
        self.assertEqual(response.data['total_debit'], Decimal('1500.00'))
        self.assertEqual(response.data['closing_balance'], Decimal('1500.00'))

    def test_statement_bad_range(self):
        response = self.client.get(
            f'/api/v1/customers/{self.customer.id}/statement/?start_date=2025-02-01&end_date=2025-01-01'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_outstanding_balance_ignores_drafts_and_proformas(self):
        """Only posted standard invoices count as receivables"""
        TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('1000.00'))
        TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('700.00'), status='DRAFT')
        TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('300.00'), invoice_type='PROFORMA')
        response = self.client.get('/api/v1/customers/outstanding-balance/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['customer_count'], 1)
        self.assertEqual(response.data['total_outstanding'], Decimal('1000.00'))


class VehicleAPITests(TestCase):
    """Test vehicle endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='SUPPORT')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_create_vehicle(self):
        response = self.client.post('/api/v1/vehicles/', {
            'customer': self.customer.id,
            'vehicle_reg': 'kdc 456y',
            'make': 'Isuzu',
            'model': 'FRR',
            'vehicle_type': 'TRUCK',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['vehicle_reg'], 'KDC456Y')
        self.assertIsNone(response.data['active_device'])

    def test_duplicate_registration_after_normalizing(self):
        """KDC 456Y and kdc456y are the same vehicle"""
        TestDataFactory.create_vehicle(customer=self.customer, vehicle_reg='KDC456Y')
        response = self.client.post('/api/v1/vehicles/', {
            'customer': self.customer.id, 'vehicle_reg': 'kdc 456y', 'make': 'Isuzu',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('vehicle_reg', response.data)

    def test_invalid_year(self):
        response = self.client.post('/api/v1/vehicles/', {
            'customer': self.customer.id, 'vehicle_reg': 'KDA111A', 'make': 'Nissan', 'year_of_manufacture': 1900,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_vehicles(self):
        TestDataFactory.create_vehicle(customer=self.customer)
        TestDataFactory.create_vehicle()
        response = self.client.get(f'/api/v1/vehicles/customer/{self.customer.id}/')
        self.assertEqual(len(response.data), 1)

    def test_delete_vehicle_with_job_refused(self):
        job = TestDataFactory.create_job(customer=self.customer)
        self.client.authenticate_user(TestDataFactory.create_user(role='MANAGER'))
        response = self.client.delete(f'/api/v1/vehicles/{job.vehicle_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Vehicle.objects.filter(pk=job.vehicle_id).exists())

    def test_statistics_counts_tracked_vehicles(self):
        """A vehicle counts as tracked once a verified job left an active device on it"""
        vehicle = TestDataFactory.create_vehicle(customer=self.customer)
        TestDataFactory.create_vehicle(customer=self.customer)
        job = TestDataFactory.create_job(vehicle=vehicle, status='VERIFIED')
        device = TestDataFactory.create_device(status='ACTIVE')
        job.devices.add(device)
        response = self.client.get('/api/v1/vehicles/statistics/')
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['with_tracker'], 1)
        self.assertEqual(response.data['pending_setup'], 1)
