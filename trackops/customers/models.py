from django.db import models
from decimal import Decimal
from django.utils import timezone
from trackops.core.models import User
from trackops.core.utils import generate_reference


class Customer(models.Model):
    """Customers owning tracked vehicles"""
    TYPE_CHOICES = [
        ('INDIVIDUAL', 'Individual'),
        ('BUSINESS', 'Business'),
    ]

    customer_code = models.CharField(max_length=50, unique=True, blank=True)
    customer_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='INDIVIDUAL')
    business_name = models.CharField(max_length=255, blank=True)
    contact_person = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=20, unique=True)
    alternative_phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    tax_pin = models.CharField(max_length=50, blank=True)
    credit_limit = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='customers_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self):
        return self.business_name or self.contact_person or self.customer_code

    def save(self, *args, **kwargs):
        if not self.customer_code:
            self.customer_code = generate_reference('CUST', Customer, 'customer_code')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.display_name

    class Meta:
        db_table = 'customers'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['phone'], name='idx_customer_phone'),
            models.Index(fields=['business_name'], name='idx_customer_business'),
        ]


class Vehicle(models.Model):
    """Customer vehicles that receive tracking devices"""
    TYPE_CHOICES = [
        ('SALOON', 'Saloon'),
        ('SUV', 'SUV'),
        ('PICKUP', 'Pickup'),
        ('VAN', 'Van'),
        ('TRUCK', 'Truck'),
        ('BUS', 'Bus'),
        ('MOTORCYCLE', 'Motorcycle'),
        ('OTHER', 'Other'),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='vehicles')
    vehicle_reg = models.CharField(max_length=20, unique=True)
    make = models.CharField(max_length=100)
    model = models.CharField(max_length=100, blank=True)
    color = models.CharField(max_length=50, blank=True)
    chassis_no = models.CharField(max_length=100, unique=True, null=True, blank=True)
    mileage = models.PositiveIntegerField(null=True, blank=True)
    iccid_simcard = models.CharField(max_length=30, blank=True)
    year_of_manufacture = models.PositiveSmallIntegerField(null=True, blank=True)
    vehicle_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='OTHER')
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @staticmethod
    def normalize_registration(value):
        return ''.join((value or '').split()).upper()

    @staticmethod
    def max_manufacture_year():
        return timezone.now().year + 1

    def save(self, *args, **kwargs):
        self.vehicle_reg = self.normalize_registration(self.vehicle_reg)
        if not self.chassis_no:
            self.chassis_no = None
        super().save(*args, **kwargs)

    def __str__(self):
        return self.vehicle_reg

    class Meta:
        db_table = 'vehicles'
        ordering = ['vehicle_reg']
