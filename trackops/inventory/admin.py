from django.contrib import admin
from .models import Category, Product, Location, StockBatch, InventoryAdjustment, StockTransfer, Device, DeviceHistory


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active', 'created_at']
    search_fields = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'category', 'buying_price', 'selling_price', 'subscription_fee', 'reorder_level', 'is_serialized', 'is_active']
    list_filter = ['category', 'is_serialized', 'is_active']
    search_fields = ['sku', 'name']


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'location_type', 'is_active']
    list_filter = ['location_type', 'is_active']
    search_fields = ['code', 'name']


class InventoryAdjustmentInline(admin.TabularInline):
    model = InventoryAdjustment
    extra = 0
    readonly_fields = ['adjustment_type', 'quantity', 'previous_quantity', 'new_quantity', 'reason', 'created_by', 'created_at']
    can_delete = False


@admin.register(StockBatch)
class StockBatchAdmin(admin.ModelAdmin):
    list_display = ['batch_number', 'product', 'location', 'quantity_received', 'quantity_available', 'received_date', 'expiry_date']
    list_filter = ['location', 'received_date']
    search_fields = ['batch_number', 'product__name', 'product__sku', 'supplier_name']
    readonly_fields = ['batch_number', 'quantity_available']
    inlines = [InventoryAdjustmentInline]


@admin.register(StockTransfer)
class StockTransferAdmin(admin.ModelAdmin):
    list_display = ['transfer_number', 'source_batch', 'from_location', 'to_location', 'quantity', 'created_at']
    search_fields = ['transfer_number', 'source_batch__batch_number']


class DeviceHistoryInline(admin.TabularInline):
    model = DeviceHistory
    extra = 0
    readonly_fields = ['from_status', 'to_status', 'reference', 'notes', 'performed_by', 'created_at']
    can_delete = False


@admin.register(Device)
class DeviceAdmin(admin.ModelAdmin):
    list_display = ['imei', 'product', 'status', 'vehicle', 'installed_at', 'batch']
    list_filter = ['status', 'product']
    search_fields = ['imei', 'serial_number', 'sim_iccid', 'vehicle__vehicle_reg']
    readonly_fields = ['status']
    inlines = [DeviceHistoryInline]
