"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from trackops.customers.models import Customer, Vehicle
from trackops.technicians.models import Technician
from trackops.inventory.models import Category, Product, Location, StockBatch, Device
from trackops.jobs.models import Job
from trackops.billing.models import PaymentMethod
from trackops.subscriptions.models import Subscription
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def random_digits(length):
        return ''.join(random.choices(string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='ADMIN', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_customer(business_name=None, contact_person=None, phone=None, email=None, customer_type='INDIVIDUAL'):
        """Create a test customer with a valid Kenyan phone number"""
        if not contact_person and not business_name:
            contact_person = f'Customer_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'07{TestDataFactory.random_digits(8)}'
            while Customer.objects.filter(phone=phone).exists():
                phone = f'07{TestDataFactory.random_digits(8)}'
        if email is None:
            email = f'{TestDataFactory.random_string(8).lower()}@test.com'
        return Customer.objects.create(
            customer_type=customer_type,
            business_name=business_name or '',
            contact_person=contact_person or '',
            phone=phone,
            email=email
        )

    @staticmethod
    def create_vehicle(customer=None, vehicle_reg=None, make='Toyota', model='Probox'):
        """Create a test vehicle"""
        if not customer:
            customer = TestDataFactory.create_customer()
        if not vehicle_reg:
            vehicle_reg = f'K{TestDataFactory.random_string(2).upper()}{TestDataFactory.random_digits(3)}X'
        return Vehicle.objects.create(
            customer=customer,
            vehicle_reg=vehicle_reg,
            make=make,
            model=model,
            year_of_manufacture=2018
        )

    @staticmethod
    def create_technician(user=None, location='Nairobi', specialization=None, is_available=True):
        """Create a technician profile with its TECHNICIAN user"""
        if not user:
            user = TestDataFactory.create_user(role='TECHNICIAN')
        return Technician.objects.create(
            user=user,
            location=location,
            specialization=specialization if specialization is not None else ['GPS_INSTALLATION'],
            is_available=is_available
        )

    @staticmethod
    def create_category(name=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name, description=f'Test category {name}')

    @staticmethod
    def create_product(name=None, sku=None, category=None, selling_price=None, buying_price=None,
                       subscription_fee=None, is_serialized=False, reorder_level=5):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8)}'
        if not category:
            category = TestDataFactory.create_category()
        return Product.objects.create(
            name=name,
            sku=sku,
            category=category,
            buying_price=buying_price if buying_price is not None else Decimal('2500.00'),
            selling_price=selling_price if selling_price is not None else Decimal('5000.00'),
            subscription_fee=subscription_fee if subscription_fee is not None else Decimal('3000.00'),
            is_serialized=is_serialized,
            reorder_level=reorder_level
        )

    @staticmethod
    def create_location(name=None, code=None, location_type='WAREHOUSE'):
        """Create a test stock location"""
        if not name:
            name = f'Location_{TestDataFactory.random_string(6)}'
        if not code:
            code = f'LOC_{TestDataFactory.random_string(6).upper()}'
        return Location.objects.create(name=name, code=code, location_type=location_type)

    @staticmethod
    def create_batch(product=None, quantity=10, location=None, received_date=None, buying_price=None, expiry_date=None):
        """Create a test stock batch"""
        if not product:
            product = TestDataFactory.create_product()
        return StockBatch.objects.create(
            product=product,
            location=location,
            quantity_received=quantity,
            quantity_available=quantity,
            buying_price=buying_price if buying_price is not None else product.buying_price,
            received_date=received_date or timezone.localdate(),
            expiry_date=expiry_date
        )

    @staticmethod
    def create_device(product=None, batch=None, imei=None, status='AVAILABLE'):
        """Create a test device with a unique 15 digit IMEI"""
        if not product:
            product = batch.product if batch else TestDataFactory.create_product(is_serialized=True)
        if not imei:
            imei = TestDataFactory.random_digits(15)
            while Device.objects.filter(imei=imei).exists():
                imei = TestDataFactory.random_digits(15)
        return Device.objects.create(imei=imei, product=product, batch=batch, status=status)

    @staticmethod
    def create_job(customer=None, vehicle=None, products=None, status='PENDING', user=None, job_type='NEW_INSTALLATION'):
        """Create a test job"""
        if not customer:
            customer = vehicle.customer if vehicle else TestDataFactory.create_customer()
        if vehicle is None:
            vehicle = TestDataFactory.create_vehicle(customer=customer)
        job = Job.objects.create(
            customer=customer,
            vehicle=vehicle,
            job_type=job_type,
            status=status,
            scheduled_date=timezone.localdate(),
            created_by=user
        )
        if products:
            job.products.set(products)
        return job

    @staticmethod
    def create_payment_method(name=None, method_type='MPESA', processing_fee_percentage=None):
        """Create a test payment method"""
        if not name:
            name = f'Method_{TestDataFactory.random_string(6)}'
        return PaymentMethod.objects.create(
            name=name,
            method_type=method_type,
            processing_fee_percentage=processing_fee_percentage if processing_fee_percentage is not None else Decimal('0.00')
        )

    @staticmethod
    def create_invoice(customer=None, user=None, unit_price=None, quantity=1, status='SENT', invoice_type='STANDARD', **fields):
        """Create an invoice with one line through the billing service (SENT invoices are posted)"""
        from trackops.billing.services import create_invoice
        if not customer:
            customer = TestDataFactory.create_customer()
        items = [{
            'description': 'Tracker installation',
            'quantity': Decimal(quantity),
            'unit_price': unit_price if unit_price is not None else Decimal('1000.00'),
        }]
        fields.setdefault('tax_rate', Decimal('0.00'))
        return create_invoice(customer, items, user=user, status=status, invoice_type=invoice_type, **fields)

    @staticmethod
    def create_subscription(customer=None, product=None, vehicle=None, start_date=None, expiry_date=None, status='ACTIVE', **fields):
        """Create a test subscription (one year from today by default)"""
        if not customer:
            customer = TestDataFactory.create_customer()
        if not product:
            product = TestDataFactory.create_product()
        start_date = start_date or timezone.localdate()
        expiry_date = expiry_date or start_date + timedelta(days=365)
        return Subscription.objects.create(
            customer=customer,
            product=product,
            vehicle=vehicle,
            start_date=start_date,
            expiry_date=expiry_date,
            status=status,
            **fields
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
