from django.urls import path
from .views import (
    category_list_create, category_detail,
    product_list_create, product_detail, product_by_sku, product_toggle_status, product_low_stock, product_search,
    batch_list_create, batch_detail, batches_available, batches_expiring, batch_fifo, batch_adjust_stock,
    inventory_summary_view, inventory_transfer, location_list_create, location_detail,
    device_list, device_detail, device_history, device_issue, device_activate, device_damaged,
    device_returned, device_deactivate, device_bulk_create,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/low-stock/', product_low_stock, name='product-low-stock'),
    path('products/search/', product_search, name='product-search'),
    path('products/sku/<str:sku>/', product_by_sku, name='product-by-sku'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/toggle-status/', product_toggle_status, name='product-toggle-status'),

    # Batch endpoints
    path('batches/', batch_list_create, name='batch-list-create'),
    path('batches/expiring/', batches_expiring, name='batch-expiring'),
    path('batches/available/<int:product_id>/', batches_available, name='batch-available'),
    path('batches/fifo/<int:product_id>/<int:quantity>/', batch_fifo, name='batch-fifo'),
    path('batches/<int:pk>/', batch_detail, name='batch-detail'),
    path('batches/<int:pk>/adjust-stock/', batch_adjust_stock, name='batch-adjust-stock'),

    # Inventory endpoints
    path('inventory/summary/', inventory_summary_view, name='inventory-summary'),
    path('inventory/transfer/', inventory_transfer, name='inventory-transfer'),
    path('locations/', location_list_create, name='location-list-create'),
    path('locations/<int:pk>/', location_detail, name='location-detail'),

    # Device endpoints
    path('devices/', device_list, name='device-list'),
    path('devices/batch/<int:batch_id>/bulk/', device_bulk_create, name='device-bulk-create'),
    path('devices/<str:imei>/', device_detail, name='device-detail'),
    path('devices/<str:imei>/history/', device_history, name='device-history'),
    path('devices/<str:imei>/issue/', device_issue, name='device-issue'),
    path('devices/<str:imei>/activate/', device_activate, name='device-activate'),
    path('devices/<str:imei>/damaged/', device_damaged, name='device-damaged'),
    path('devices/<str:imei>/returned/', device_returned, name='device-returned'),
    path('devices/<str:imei>/deactivate/', device_deactivate, name='device-deactivate'),
]
