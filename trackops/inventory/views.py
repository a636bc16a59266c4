import logging
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.db.models.deletion import ProtectedError
from django.shortcuts import get_object_or_404
from django.utils import timezone

from trackops.core.exceptions import BusinessRuleError
from trackops.core.permissions import module_permission, action_permission
from trackops.core.utils import create_audit_log, paginate, parse_int
from trackops.customers.models import Vehicle
from trackops.notifications.services import notify_roles
from .filters import ProductFilter, StockBatchFilter, DeviceFilter
from .models import Category, Product, Location, StockBatch, StockTransfer, Device
from .serializers import (
    CategorySerializer, ProductSerializer, ProductSearchSerializer, LocationSerializer,
    StockBatchSerializer, InventoryAdjustmentSerializer, StockAdjustmentRequestSerializer,
    StockTransferSerializer, StockTransferRequestSerializer, DeviceSerializer, DeviceHistorySerializer,
)
from .services import (
    fifo_allocation, adjust_stock, transfer_stock, change_device_status, bulk_create_devices,
    products_with_stock, low_stock_products, inventory_summary,
)

logger = logging.getLogger(__name__)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def category_list_create(request):
    if request.method == 'GET':
        categories = Category.objects.all().order_by('name')
        return Response(CategorySerializer(categories, many=True).data)
    serializer = CategorySerializer(data=request.data)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def category_detail(request, pk):
    category = get_object_or_404(Category, pk=pk)
    if request.method == 'GET':
        return Response(CategorySerializer(category).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def product_list_create(request):
    """List products with available quantity or create a product"""
    if request.method == 'GET':
        queryset = products_with_stock(Product.objects.select_related('category')).order_by('name')
        queryset = ProductFilter(request.query_params, queryset=queryset).qs
        return paginate(request, queryset, ProductSerializer)

    serializer = ProductSerializer(data=request.data)
    if serializer.is_valid():
        product = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Product',
            object_id=str(product.id),
            object_name=product.name,
            object_reference=product.sku,
        )
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product, pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            product.delete()
        except ProtectedError:
            return Response(
                {'error': 'Product has stock, devices or document lines and cannot be deleted. Deactivate it instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def product_by_sku(request, sku):
    product = get_object_or_404(Product, sku__iexact=sku)
    return Response(ProductSerializer(product).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('inventory.update')])
def product_toggle_status(request, pk):
    product = get_object_or_404(Product, pk=pk)
    product.is_active = not product.is_active
    product.save(update_fields=['is_active', 'updated_at'])
    create_audit_log(
        request=request,
        action='status_change',
        model_name='Product',
        object_id=str(product.id),
        object_name=product.name,
        changes={'is_active': product.is_active}
    )
    return Response(ProductSerializer(product).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def product_low_stock(request):
    """Active products whose available quantity is at or below the reorder level"""
    return Response(ProductSerializer(low_stock_products(), many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_search(request):
    """Active products for invoice and quotation lines (max 20)"""
    query = (request.query_params.get('q') or request.query_params.get('search') or '').strip()
    queryset = products_with_stock(Product.objects.filter(is_active=True))
    if query:
        queryset = queryset.filter(Q(name__icontains=query) | Q(sku__icontains=query))
    return Response(ProductSearchSerializer(queryset.order_by('name')[:20], many=True).data)


# Batch views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def batch_list_create(request):
    if request.method == 'GET':
        queryset = StockBatch.objects.select_related('product', 'location').order_by('-received_date', '-id')
        queryset = StockBatchFilter(request.query_params, queryset=queryset).qs
        return paginate(request, queryset, StockBatchSerializer)

    serializer = StockBatchSerializer(data=request.data)
    if serializer.is_valid():
        batch = serializer.save(created_by=request.user)
        create_audit_log(
            request=request,
            action='create',
            model_name='StockBatch',
            object_id=str(batch.id),
            object_name=batch.batch_number,
            changes={'product': batch.product.sku, 'quantity_received': batch.quantity_received},
        )
        return Response(StockBatchSerializer(batch).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def batch_detail(request, pk):
    """Retrieve or update a batch; quantities only change through adjustments"""
    batch = get_object_or_404(StockBatch.objects.select_related('product', 'location'), pk=pk)
    if request.method == 'GET':
        data = StockBatchSerializer(batch).data
        data['adjustments'] = InventoryAdjustmentSerializer(batch.adjustments.all(), many=True).data
        return Response(data)
    serializer = StockBatchSerializer(batch, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def batches_available(request, product_id):
    """Batches of a product with stock left, oldest first"""
    product = get_object_or_404(Product, pk=product_id)
    batches = product.batches.filter(quantity_available__gt=0).select_related('location').order_by('received_date', 'id')
    return Response(StockBatchSerializer(batches, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def batches_expiring(request):
    """Batches with stock that expire within ?days= (default 30)"""
    days = max(parse_int(request.query_params.get('days'), 30), 0)
    today = timezone.localdate()
    batches = StockBatch.objects.filter(
        quantity_available__gt=0,
        expiry_date__isnull=False,
        expiry_date__lte=today + timedelta(days=days),
    ).select_related('product', 'location').order_by('expiry_date')
    return Response(StockBatchSerializer(batches, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def batch_fifo(request, product_id, quantity):
    """Oldest-first allocation plan for a quantity of a product"""
    product = get_object_or_404(Product, pk=product_id)
    try:
        plan = fifo_allocation(product, quantity)
    except BusinessRuleError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({
        'product': product.id,
        'product_name': product.name,
        'quantity': quantity,
        'allocations': [
            {
                'batch': entry['batch'].id,
                'batch_number': entry['batch'].batch_number,
                'received_date': entry['batch'].received_date,
                'buying_price': entry['batch'].buying_price,
                'quantity': entry['quantity'],
            }
            for entry in plan
        ],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('inventory.update')])
def batch_adjust_stock(request, pk):
    batch = get_object_or_404(StockBatch.objects.select_related('product'), pk=pk)
    serializer = StockAdjustmentRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        adjustment = adjust_stock(batch, data['adjustment_type'], data['quantity'], data['reason'], user=request.user)
    except BusinessRuleError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='stock_adjust',
        model_name='StockBatch',
        object_id=str(batch.id),
        object_name=batch.batch_number,
        changes={
            'adjustment_type': adjustment.adjustment_type,
            'quantity': adjustment.quantity,
            'previous_quantity': adjustment.previous_quantity,
            'new_quantity': adjustment.new_quantity,
            'reason': adjustment.reason,
        },
    )

    product = batch.product
    if adjustment.new_quantity < adjustment.previous_quantity and product.get_available_quantity() <= product.reorder_level:
        notify_roles(
            ['MANAGER'],
            'Low stock',
            f"{product.name} ({product.sku}) is at {product.get_available_quantity()} units, reorder level {product.reorder_level}",
            notification_type='WARNING',
            link=f"/inventory/products/{product.id}",
        )
    return Response(InventoryAdjustmentSerializer(adjustment).data, status=status.HTTP_201_CREATED)


# Inventory views
@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def inventory_summary_view(request):
    return Response(inventory_summary())


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def inventory_transfer(request):
    """List transfers or move part of a batch to another location"""
    if request.method == 'GET':
        queryset = StockTransfer.objects.select_related(
            'source_batch', 'destination_batch', 'from_location', 'to_location'
        ).order_by('-created_at')
        return paginate(request, queryset, StockTransferSerializer)

    serializer = StockTransferRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        transfer = transfer_stock(
            data['batch'], data['to_location'], data['quantity'], user=request.user, notes=data.get('notes', '')
        )
    except BusinessRuleError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='stock_transfer',
        model_name='StockTransfer',
        object_id=str(transfer.id),
        object_name=transfer.transfer_number,
        changes={
            'source_batch': transfer.source_batch.batch_number,
            'destination_batch': transfer.destination_batch.batch_number,
            'to_location': transfer.to_location.code,
            'quantity': transfer.quantity,
        },
    )
    return Response(StockTransferSerializer(transfer).data, status=status.HTTP_201_CREATED)


# Location views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def location_list_create(request):
    if request.method == 'GET':
        locations = Location.objects.all().order_by('name')
        location_type = request.query_params.get('location_type', None)
        if location_type:
            locations = locations.filter(location_type=location_type.upper())
        return Response(LocationSerializer(locations, many=True).data)
    serializer = LocationSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('inventory')])
def location_detail(request, pk):
    location = get_object_or_404(Location, pk=pk)
    if request.method == 'GET':
        return Response(LocationSerializer(location).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = LocationSerializer(location, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if location.batches.filter(quantity_available__gt=0).exists():
            return Response({'error': 'Location still holds stock'}, status=status.HTTP_400_BAD_REQUEST)
        try:
            location.delete()
        except ProtectedError:
            return Response({'error': 'Location is referenced by stock transfers'}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Device views
@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('devices')])
def device_list(request):
    queryset = Device.objects.select_related('product', 'batch', 'vehicle').order_by('-created_at')
    queryset = DeviceFilter(request.query_params, queryset=queryset).qs
    return paginate(request, queryset, DeviceSerializer)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, module_permission('devices')])
def device_detail(request, imei):
    """
    Retrieve or update a device by IMEI.
    A "status" in the payload goes through the device lifecycle.
    """
    device = get_object_or_404(Device.objects.select_related('product', 'batch', 'vehicle'), imei=imei)
    if request.method == 'GET':
        return Response(DeviceSerializer(device).data)

    serializer = DeviceSerializer(device, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    new_status = request.data.get('status')
    if new_status and new_status != device.status:
        try:
            change_device_status(device, new_status, user=request.user, notes=request.data.get('status_notes', ''))
        except BusinessRuleError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    serializer.save()
    return Response(DeviceSerializer(device).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('devices')])
def device_history(request, imei):
    device = get_object_or_404(Device, imei=imei)
    return Response(DeviceHistorySerializer(device.history.select_related('performed_by'), many=True).data)


def _device_action(request, imei, new_status):
    device = get_object_or_404(Device, imei=imei)
    vehicle = None
    vehicle_id = request.data.get('vehicle') or request.data.get('vehicle_id')
    if new_status == 'ACTIVE' and vehicle_id:
        vehicle = get_object_or_404(Vehicle, pk=vehicle_id)

    previous = device.status
    try:
        change_device_status(
            device,
            new_status,
            user=request.user,
            reference=request.data.get('reference', ''),
            notes=request.data.get('notes', ''),
            vehicle=vehicle,
        )
    except BusinessRuleError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='device_status',
        model_name='Device',
        object_id=str(device.id),
        object_name=device.product.name,
        object_reference=device.imei,
        changes={'from_status': previous, 'to_status': new_status},
    )
    return Response(DeviceSerializer(device).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('devices.update')])
def device_issue(request, imei):
    return _device_action(request, imei, 'ISSUED')


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('devices.update')])
def device_activate(request, imei):
    return _device_action(request, imei, 'ACTIVE')


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('devices.update')])
def device_damaged(request, imei):
    return _device_action(request, imei, 'DAMAGED')


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('devices.update')])
def device_returned(request, imei):
    return _device_action(request, imei, 'RETURNED')


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('devices.update')])
def device_deactivate(request, imei):
    return _device_action(request, imei, 'INACTIVE')


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('devices.create')])
def device_bulk_create(request, batch_id):
    """Register many devices for a batch: {"devices": [{"imei", "serial_number", ...}]}"""
    batch = get_object_or_404(StockBatch.objects.select_related('product'), pk=batch_id)
    if not batch.product.is_serialized:
        return Response({'error': f"{batch.product.name} is not a serialized product"}, status=status.HTTP_400_BAD_REQUEST)

    entries = request.data.get('devices')
    if entries is None and request.data.get('imeis'):
        entries = [{'imei': imei} for imei in request.data.get('imeis')]
    if not isinstance(entries, list):
        return Response({'error': 'devices must be a list'}, status=status.HTTP_400_BAD_REQUEST)
    entries = [entry if isinstance(entry, dict) else {'imei': entry} for entry in entries]

    try:
        devices = bulk_create_devices(batch, entries, user=request.user)
    except BusinessRuleError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='create',
        model_name='Device',
        object_id=str(batch.id),
        object_name=batch.batch_number,
        changes={'devices_created': len(devices)},
    )
    return Response({
        'created': len(devices),
        'devices': DeviceSerializer(devices, many=True).data,
    }, status=status.HTTP_201_CREATED)
