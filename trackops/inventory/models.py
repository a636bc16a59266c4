from django.db import models
from decimal import Decimal
from django.utils import timezone
from trackops.core.models import User
from trackops.core.utils import generate_reference
from trackops.customers.models import Vehicle


class Category(models.Model):
    """Product categories"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        ordering = ['name']


class Product(models.Model):
    """Tracking devices, accessories and services sold or installed"""
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=100, unique=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    description = models.TextField(blank=True)
    buying_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    subscription_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    reorder_level = models.PositiveIntegerField(default=5)
    unit_of_measure = models.CharField(max_length=20, default='pcs')
    is_serialized = models.BooleanField(default=False, help_text="Units are tracked individually by IMEI")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def get_available_quantity(self):
        total = self.batches.aggregate(total=models.Sum('quantity_available'))['total']
        return total or 0

    def __str__(self):
        return f"{self.name} ({self.sku})"

    class Meta:
        db_table = 'products'
        ordering = ['name']


class Location(models.Model):
    """Stock holding locations: warehouses, stores and technician vans"""
    TYPE_CHOICES = [
        ('WAREHOUSE', 'Warehouse'),
        ('STORE', 'Store'),
        ('VAN', 'Van'),
    ]

    name = models.CharField(max_length=200)
    code = models.CharField(max_length=50, unique=True)
    location_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='WAREHOUSE')
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'stock_locations'
        ordering = ['name']


class StockBatch(models.Model):
    """Received batches with buying price and optional expiry"""
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='batches')
    batch_number = models.CharField(max_length=100, unique=True, blank=True)
    location = models.ForeignKey(Location, on_delete=models.SET_NULL, null=True, blank=True, related_name='batches')
    quantity_received = models.PositiveIntegerField()
    quantity_available = models.PositiveIntegerField()
    buying_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    supplier_name = models.CharField(max_length=255, blank=True)
    received_date = models.DateField(default=timezone.localdate)
    expiry_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_batches')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.batch_number:
            self.batch_number = generate_reference('BATCH', StockBatch, 'batch_number')
        super().save(*args, **kwargs)

    def __str__(self):
        return self.batch_number

    class Meta:
        db_table = 'stock_batches'
        ordering = ['received_date', 'id']
        indexes = [
            models.Index(fields=['product', 'received_date'], name='idx_batch_product_received'),
            models.Index(fields=['expiry_date'], name='idx_batch_expiry'),
        ]


class InventoryAdjustment(models.Model):
    """Manual corrections to a batch's available quantity"""
    ADJUSTMENT_TYPE_CHOICES = [
        ('increase', 'Increase'),
        ('decrease', 'Decrease'),
        ('set', 'Set'),
    ]

    batch = models.ForeignKey(StockBatch, on_delete=models.CASCADE, related_name='adjustments')
    adjustment_type = models.CharField(max_length=10, choices=ADJUSTMENT_TYPE_CHOICES)
    quantity = models.PositiveIntegerField()
    previous_quantity = models.PositiveIntegerField()
    new_quantity = models.PositiveIntegerField()
    reason = models.TextField()
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='inventory_adjustments')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inventory_adjustments'
        ordering = ['-created_at']


class StockTransfer(models.Model):
    """Movement of a batch quantity from one location to another"""
    transfer_number = models.CharField(max_length=100, unique=True, blank=True)
    source_batch = models.ForeignKey(StockBatch, on_delete=models.PROTECT, related_name='transfers_out')
    destination_batch = models.ForeignKey(StockBatch, on_delete=models.PROTECT, related_name='transfers_in')
    from_location = models.ForeignKey(Location, on_delete=models.SET_NULL, null=True, blank=True, related_name='transfers_from')
    to_location = models.ForeignKey(Location, on_delete=models.PROTECT, related_name='transfers_to')
    quantity = models.PositiveIntegerField()
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='stock_transfers')
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.transfer_number:
            self.transfer_number = generate_reference('TRF', StockTransfer, 'transfer_number')
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'stock_transfers'
        ordering = ['-created_at']


class Device(models.Model):
    """Individually tracked tracker unit keyed by IMEI"""
    STATUS_CHOICES = [
        ('AVAILABLE', 'Available'),
        ('ISSUED', 'Issued'),
        ('ACTIVE', 'Active'),
        ('DAMAGED', 'Damaged'),
        ('RETURNED', 'Returned'),
        ('INACTIVE', 'Inactive'),
    ]

    imei = models.CharField(max_length=15, unique=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='devices')
    batch = models.ForeignKey(StockBatch, on_delete=models.SET_NULL, null=True, blank=True, related_name='devices')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='AVAILABLE')
    serial_number = models.CharField(max_length=100, blank=True)
    sim_iccid = models.CharField(max_length=30, blank=True)
    mac_address = models.CharField(max_length=50, blank=True)
    vehicle = models.ForeignKey(Vehicle, on_delete=models.SET_NULL, null=True, blank=True, related_name='devices')
    installed_at = models.DateTimeField(null=True, blank=True)
    installation_notes = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.imei

    class Meta:
        db_table = 'devices'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_device_status'),
        ]


class DeviceHistory(models.Model):
    """Status changes of a device"""
    device = models.ForeignKey(Device, on_delete=models.CASCADE, related_name='history')
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20)
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    performed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='device_actions')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'device_history'
        ordering = ['-created_at', '-id']
