"""
Comprehensive test suite for the inventory module
Tests: products, batches, FIFO allocation, adjustments, transfers and the device lifecycle
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from trackops.core.exceptions import InventoryError
from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.inventory.models import Device, StockBatch, StockTransfer
from trackops.inventory.services import (
    fifo_allocation, adjust_stock, transfer_stock, change_device_status, bulk_create_devices, is_valid_imei,
)
from trackops.notifications.models import Notification


class InventoryServiceTests(TestCase):
    """Test stock and device services"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product()

    def test_fifo_takes_oldest_batches_first(self):
        """Allocation drains the oldest batch before touching newer ones"""
        today = timezone.localdate()
        newest = TestDataFactory.create_batch(product=self.product, quantity=10, received_date=today)
        oldest = TestDataFactory.create_batch(product=self.product, quantity=3, received_date=today - timedelta(days=20))
        middle = TestDataFactory.create_batch(product=self.product, quantity=4, received_date=today - timedelta(days=10))

        plan = fifo_allocation(self.product, 9)
        self.assertEqual([(entry['batch'].id, entry['quantity']) for entry in plan],
                         [(oldest.id, 3), (middle.id, 4), (newest.id, 2)])

    def test_fifo_insufficient_stock(self):
        TestDataFactory.create_batch(product=self.product, quantity=2)
        with self.assertRaises(InventoryError):
            fifo_allocation(self.product, 5)

    def test_adjust_stock(self):
        """Adjustments record the previous and new quantity"""
        batch = TestDataFactory.create_batch(product=self.product, quantity=10)
        adjustment = adjust_stock(batch, 'decrease', 4, 'Damaged in transit', user=self.user)
        self.assertEqual(adjustment.previous_quantity, 10)
        self.assertEqual(adjustment.new_quantity, 6)
        adjust_stock(batch, 'set', 0, 'Stock take')
        batch.refresh_from_db()
        self.assertEqual(batch.quantity_available, 0)

    def test_adjust_stock_rules(self):
        batch = TestDataFactory.create_batch(product=self.product, quantity=2)
        with self.assertRaises(InventoryError):
            adjust_stock(batch, 'decrease', 3, 'Too many')
        with self.assertRaises(InventoryError):
            adjust_stock(batch, 'increase', 1, '')

    def test_transfer_splits_batch(self):
        """A transfer moves quantity into a new batch at the destination"""
        warehouse = TestDataFactory.create_location()
        van = TestDataFactory.create_location(location_type='VAN')
        batch = TestDataFactory.create_batch(product=self.product, quantity=10, location=warehouse)
        transfer = transfer_stock(batch, van, 4, user=self.user)
        batch.refresh_from_db()
        self.assertEqual(batch.quantity_available, 6)
        self.assertEqual(transfer.destination_batch.location, van)
        self.assertEqual(transfer.destination_batch.quantity_available, 4)
        self.assertEqual(self.product.get_available_quantity(), 10)

    def test_transfer_to_same_location_refused(self):
        warehouse = TestDataFactory.create_location()
        batch = TestDataFactory.create_batch(product=self.product, quantity=10, location=warehouse)
        with self.assertRaises(InventoryError):
            transfer_stock(batch, warehouse, 1)

    def test_imei_validation(self):
        self.assertTrue(is_valid_imei('356938035643809'))
        self.assertFalse(is_valid_imei('35693803564380'))
        self.assertFalse(is_valid_imei('35693803564380A'))

    def test_device_lifecycle(self):
        """Devices follow AVAILABLE -> ISSUED -> ACTIVE and keep history"""
        device = TestDataFactory.create_device()
        vehicle = TestDataFactory.create_vehicle()
        change_device_status(device, 'ISSUED', user=self.user, reference='REQ-1')
        change_device_status(device, 'ACTIVE', user=self.user, vehicle=vehicle)
        device.refresh_from_db()
        self.assertEqual(device.status, 'ACTIVE')
        self.assertEqual(device.vehicle, vehicle)
        self.assertIsNotNone(device.installed_at)
        self.assertEqual(list(device.history.order_by('id').values_list('to_status', flat=True)), ['ISSUED', 'ACTIVE'])

    def test_device_illegal_transition(self):
        device = TestDataFactory.create_device()
        with self.assertRaises(InventoryError):
            change_device_status(device, 'ACTIVE')

    def test_returned_device_leaves_vehicle(self):
        device = TestDataFactory.create_device(status='ISSUED')
        change_device_status(device, 'ACTIVE', vehicle=TestDataFactory.create_vehicle())
        change_device_status(device, 'INACTIVE')
        change_device_status(device, 'RETURNED')
        device.refresh_from_db()
        self.assertIsNone(device.vehicle)
        self.assertIsNone(device.installed_at)

    def test_bulk_create_devices(self):
        product = TestDataFactory.create_product(is_serialized=True)
        batch = TestDataFactory.create_batch(product=product, quantity=2)
        devices = bulk_create_devices(batch, [{'imei': '356938035643809'}, {'imei': '490154203237518'}])
        self.assertEqual(len(devices), 2)
        self.assertTrue(all(device.status == 'AVAILABLE' for device in devices))

    def test_bulk_create_rejects_bad_rows(self):
        """Duplicates, bad IMEIs and over-registration are all reported"""
        product = TestDataFactory.create_product(is_serialized=True)
        batch = TestDataFactory.create_batch(product=product, quantity=2)
        with self.assertRaises(InventoryError) as ctx:
            bulk_create_devices(batch, [{'imei': '356938035643809'}, {'imei': '356938035643809'}, {'imei': '123'}])
        message = str(ctx.exception)
        self.assertIn('duplicated', message)
        self.assertIn('15 digits', message)
        self.assertIn('received 2 units', message)
        self.assertEqual(Device.objects.count(), 0)


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='MANAGER')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category()

    def test_create_product_uppercases_sku(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'FMB920 Tracker',
            'sku': ' fmb-920 ',
            'category': self.category.id,
            'buying_price': '3500.00',
            'selling_price': '6500.00',
            'subscription_fee': '3000.00',
            'is_serialized': True,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sku'], 'FMB-920')
        self.assertEqual(response.data['available_quantity'], 0)

    def test_duplicate_sku(self):
        TestDataFactory.create_product(sku='FMB-920')
        response = self.client.post('/api/v1/products/', {'name': 'Other', 'sku': 'fmb-920'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_negative_price(self):
        response = self.client.post('/api/v1/products/', {'name': 'X', 'sku': 'X-1', 'selling_price': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_shows_available_quantity(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_batch(product=product, quantity=7)
        TestDataFactory.create_batch(product=product, quantity=3)
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.data['results'][0]['available_quantity'], 10)

    def test_low_stock(self):
        low = TestDataFactory.create_product(reorder_level=5)
        TestDataFactory.create_batch(product=low, quantity=2)
        healthy = TestDataFactory.create_product(reorder_level=5)
        TestDataFactory.create_batch(product=healthy, quantity=50)
        response = self.client.get('/api/v1/products/low-stock/')
        self.assertEqual([row['id'] for row in response.data], [low.id])

    def test_product_by_sku(self):
        product = TestDataFactory.create_product(sku='GPS-77')
        response = self.client.get('/api/v1/products/sku/gps-77/')
        self.assertEqual(response.data['id'], product.id)

    def test_delete_product_with_stock_refused(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_batch(product=product)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_summary(self):
        product = TestDataFactory.create_product(buying_price=Decimal('100.00'))
        TestDataFactory.create_batch(product=product, quantity=3)
        response = self.client.get('/api/v1/inventory/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_stock_value'], Decimal('300.00'))


class BatchAPITests(TestCase):
    """Test batch, adjustment and transfer endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role='MANAGER')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)
        self.product = TestDataFactory.create_product(reorder_level=5)

    def test_create_batch(self):
        """New batches start fully available with a generated number"""
        response = self.client.post('/api/v1/batches/', {
            'product': self.product.id, 'quantity_received': 20, 'supplier_name': 'Teltonika',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quantity_available'], 20)
        self.assertTrue(response.data['batch_number'])

    def test_batch_quantity_not_editable(self):
        batch = TestDataFactory.create_batch(product=self.product, quantity=5)
        response = self.client.patch(f'/api/v1/batches/{batch.id}/', {'quantity_received': 9}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_fifo_endpoint(self):
        TestDataFactory.create_batch(product=self.product, quantity=2)
        response = self.client.get(f'/api/v1/batches/fifo/{self.product.id}/2/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['allocations']), 1)
        response = self.client.get(f'/api/v1/batches/fifo/{self.product.id}/3/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_adjustment_below_reorder_level_notifies_managers(self):
        """Dropping to the reorder level warns managers"""
        batch = TestDataFactory.create_batch(product=self.product, quantity=8)
        response = self.client.post(f'/api/v1/batches/{batch.id}/adjust-stock/', {
            'adjustment_type': 'decrease', 'quantity': 4, 'reason': 'Lost'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['new_quantity'], 4)
        self.assertTrue(Notification.objects.filter(user=self.manager, title='Low stock').exists())

    def test_adjustment_too_large(self):
        batch = TestDataFactory.create_batch(product=self.product, quantity=2)
        response = self.client.post(f'/api/v1/batches/{batch.id}/adjust-stock/', {
            'adjustment_type': 'decrease', 'quantity': 4, 'reason': 'Lost'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_transfer_endpoint(self):
        batch = TestDataFactory.create_batch(product=self.product, quantity=10)
        van = TestDataFactory.create_location(location_type='VAN')
        response = self.client.post('/api/v1/inventory/transfer/', {
            'batch': batch.id, 'to_location': van.id, 'quantity': 3
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(StockTransfer.objects.count(), 1)
        self.assertEqual(StockBatch.objects.filter(location=van).get().quantity_available, 3)

    def test_sales_cannot_adjust(self):
        batch = TestDataFactory.create_batch(product=self.product, quantity=2)
        self.client.authenticate_user(TestDataFactory.create_user(role='SALES'))
        response = self.client.post(f'/api/v1/batches/{batch.id}/adjust-stock/', {
            'adjustment_type': 'increase', 'quantity': 1, 'reason': 'Found'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class DeviceAPITests(TestCase):
    """Test device endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role='MANAGER'))
        self.product = TestDataFactory.create_product(is_serialized=True)

    def test_bulk_register(self):
        batch = TestDataFactory.create_batch(product=self.product, quantity=5)
        response = self.client.post(f'/api/v1/devices/batch/{batch.id}/bulk/', {
            'imeis': ['356938035643809', '490154203237518']
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created'], 2)

    def test_bulk_register_non_serialized_product(self):
        batch = TestDataFactory.create_batch(product=TestDataFactory.create_product(is_serialized=False))
        response = self.client.post(f'/api/v1/devices/batch/{batch.id}/bulk/', {
            'imeis': ['356938035643809']
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_status_actions(self):
        """Issue then activate on a vehicle by IMEI"""
        device = TestDataFactory.create_device(product=self.product)
        vehicle = TestDataFactory.create_vehicle()
        response = self.client.post(f'/api/v1/devices/{device.imei}/issue/', {'reference': 'REQ-9'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post(f'/api/v1/devices/{device.imei}/activate/', {'vehicle': vehicle.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ACTIVE')
        response = self.client.get(f'/api/v1/devices/{device.imei}/history/')
        self.assertEqual(len(response.data), 2)

    def test_illegal_status_action(self):
        device = TestDataFactory.create_device(product=self.product)
        response = self.client.post(f'/api/v1/devices/{device.imei}/deactivate/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_patch_status_uses_lifecycle(self):
        """PATCH with a status goes through the allowed transitions"""
        device = TestDataFactory.create_device(product=self.product)
        response = self.client.patch(f'/api/v1/devices/{device.imei}/', {'status': 'DAMAGED', 'notes': 'Cracked'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'DAMAGED')
        response = self.client.patch(f'/api/v1/devices/{device.imei}/', {'status': 'AVAILABLE'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_filter_by_status(self):
        TestDataFactory.create_device(product=self.product)
        TestDataFactory.create_device(product=self.product, status='DAMAGED')
        response = self.client.get('/api/v1/devices/?status=DAMAGED')
        self.assertEqual(response.data['count'], 1)
