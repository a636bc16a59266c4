"""
Stock movements and device lifecycle.

Batch quantities only change through these functions so that every
movement leaves an adjustment, transfer or device history row behind.
"""
import logging
import re
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum, Value, DecimalField, F, ExpressionWrapper
from django.db.models.functions import Coalesce
from django.utils import timezone

from trackops.core.exceptions import InventoryError
from .models import Product, StockBatch, InventoryAdjustment, StockTransfer, Device, DeviceHistory

logger = logging.getLogger(__name__)

IMEI_RE = re.compile(r'^\d{15}$')

DEVICE_TRANSITIONS = {
    'AVAILABLE': ['ISSUED', 'DAMAGED'],
    'ISSUED': ['ACTIVE', 'RETURNED', 'DAMAGED'],
    'ACTIVE': ['INACTIVE', 'DAMAGED'],
    'RETURNED': ['AVAILABLE', 'DAMAGED'],
    'INACTIVE': ['ACTIVE', 'RETURNED'],
    'DAMAGED': [],
}


def is_valid_imei(imei):
    return bool(IMEI_RE.match(str(imei or '').strip()))


def can_transition_device(from_status, to_status):
    return to_status in DEVICE_TRANSITIONS.get(from_status, [])


def fifo_allocation(product, quantity):
    """
    Plan an oldest-first allocation of quantity across the product's batches.

    Returns a list of {'batch', 'quantity'} dicts. Raises InventoryError when
    the batches cannot cover the requested quantity.
    """
    if quantity <= 0:
        raise InventoryError('Quantity must be greater than zero')

    plan = []
    remaining = quantity
    batches = StockBatch.objects.filter(product=product, quantity_available__gt=0).order_by('received_date', 'id')
    for batch in batches:
        if remaining <= 0:
            break
        take = min(batch.quantity_available, remaining)
        plan.append({'batch': batch, 'quantity': take})
        remaining -= take

    if remaining > 0:
        available = quantity - remaining
        raise InventoryError(
            f"Insufficient stock for {product.name}: requested {quantity}, available {available}"
        )
    return plan


def deduct_from_batch(batch, quantity):
    """Take quantity out of a batch, locking the row"""
    with transaction.atomic():
        locked = StockBatch.objects.select_for_update().get(pk=batch.pk)
        if quantity > locked.quantity_available:
            raise InventoryError(
                f"Batch {locked.batch_number} has only {locked.quantity_available} available"
            )
        locked.quantity_available -= quantity
        locked.save(update_fields=['quantity_available', 'updated_at'])
    batch.quantity_available = locked.quantity_available
    return locked


def adjust_stock(batch, adjustment_type, quantity, reason, user=None):
    """Apply an increase, decrease or set to a batch and record the adjustment"""
    if adjustment_type not in ('increase', 'decrease', 'set'):
        raise InventoryError('Adjustment type must be increase, decrease or set')
    if quantity is None or quantity < 0:
        raise InventoryError('Quantity cannot be negative')
    if adjustment_type != 'set' and quantity == 0:
        raise InventoryError('Quantity must be greater than zero')
    if not reason:
        raise InventoryError('A reason is required for stock adjustments')

    with transaction.atomic():
        locked = StockBatch.objects.select_for_update().get(pk=batch.pk)
        previous = locked.quantity_available
        if adjustment_type == 'increase':
            new_quantity = previous + quantity
        elif adjustment_type == 'decrease':
            if quantity > previous:
                raise InventoryError(f"Cannot remove {quantity}; only {previous} available")
            new_quantity = previous - quantity
        else:
            new_quantity = quantity

        locked.quantity_available = new_quantity
        locked.save(update_fields=['quantity_available', 'updated_at'])

        adjustment = InventoryAdjustment.objects.create(
            batch=locked,
            adjustment_type=adjustment_type,
            quantity=quantity,
            previous_quantity=previous,
            new_quantity=new_quantity,
            reason=reason,
            created_by=user,
        )

    logger.info(f"Batch {locked.batch_number} adjusted ({adjustment_type} {quantity}): {previous} -> {new_quantity}")
    return adjustment


def transfer_stock(batch, to_location, quantity, user=None, notes=''):
    """Split quantity off a batch into a new batch held at another location"""
    if quantity is None or quantity <= 0:
        raise InventoryError('Transfer quantity must be greater than zero')
    if batch.location_id and batch.location_id == to_location.id:
        raise InventoryError('Source and destination locations are the same')

    with transaction.atomic():
        source = StockBatch.objects.select_for_update().get(pk=batch.pk)
        if quantity > source.quantity_available:
            raise InventoryError(
                f"Cannot transfer {quantity}; batch {source.batch_number} has {source.quantity_available} available"
            )
        source.quantity_available -= quantity
        source.save(update_fields=['quantity_available', 'updated_at'])

        destination = StockBatch.objects.create(
            product=source.product,
            location=to_location,
            quantity_received=quantity,
            quantity_available=quantity,
            buying_price=source.buying_price,
            supplier_name=source.supplier_name,
            received_date=source.received_date,
            expiry_date=source.expiry_date,
            notes=f"Transferred from {source.batch_number}",
            created_by=user,
        )

        return StockTransfer.objects.create(
            source_batch=source,
            destination_batch=destination,
            from_location=source.location,
            to_location=to_location,
            quantity=quantity,
            notes=notes or '',
            created_by=user,
        )


def change_device_status(device, new_status, user=None, reference='', notes='', vehicle=None):
    """Move a device to new_status if the lifecycle allows it and record the history row"""
    if new_status not in DEVICE_TRANSITIONS:
        raise InventoryError(f"Unknown device status: {new_status}")
    if not can_transition_device(device.status, new_status):
        raise InventoryError(f"Device {device.imei} cannot move from {device.status} to {new_status}")

    previous = device.status
    device.status = new_status
    update_fields = ['status', 'updated_at']

    if new_status == 'ACTIVE':
        if vehicle is not None:
            device.vehicle = vehicle
            update_fields.append('vehicle')
        device.installed_at = device.installed_at or timezone.now()
        update_fields.append('installed_at')
        if notes:
            device.installation_notes = notes
            update_fields.append('installation_notes')
    elif new_status in ('RETURNED', 'AVAILABLE'):
        device.vehicle = None
        device.installed_at = None
        update_fields.extend(['vehicle', 'installed_at'])

    device.save(update_fields=update_fields)
    DeviceHistory.objects.create(
        device=device,
        from_status=previous,
        to_status=new_status,
        reference=reference or '',
        notes=notes or '',
        performed_by=user,
    )
    return device


def bulk_create_devices(batch, entries, user=None):
    """
    Register serialized units for a batch.

    entries is a list of dicts with an "imei" key and optional serial_number,
    sim_iccid and mac_address. IMEIs must be 15 digits and unique both in
    the payload and in the database.
    """
    if not entries:
        raise InventoryError('No devices supplied')

    errors = []
    seen = set()
    for index, entry in enumerate(entries, start=1):
        imei = str(entry.get('imei') or '').strip()
        if not is_valid_imei(imei):
            errors.append(f"Row {index}: IMEI '{imei}' must be exactly 15 digits")
        elif imei in seen:
            errors.append(f"Row {index}: IMEI {imei} is duplicated in the upload")
        seen.add(imei)

    existing = set(Device.objects.filter(imei__in=seen).values_list('imei', flat=True))
    for imei in sorted(existing):
        errors.append(f"IMEI {imei} already exists")

    registered = batch.devices.count()
    if registered + len(entries) > batch.quantity_received:
        errors.append(
            f"Batch {batch.batch_number} received {batch.quantity_received} units; "
            f"{registered} already registered"
        )

    if errors:
        raise InventoryError('; '.join(errors))

    with transaction.atomic():
        devices = []
        for entry in entries:
            device = Device.objects.create(
                imei=str(entry['imei']).strip(),
                product=batch.product,
                batch=batch,
                serial_number=entry.get('serial_number') or '',
                sim_iccid=entry.get('sim_iccid') or '',
                mac_address=entry.get('mac_address') or '',
            )
            DeviceHistory.objects.create(
                device=device,
                from_status='',
                to_status='AVAILABLE',
                reference=batch.batch_number,
                notes='Registered from batch',
                performed_by=user,
            )
            devices.append(device)

    logger.info(f"Registered {len(devices)} devices for batch {batch.batch_number}")
    return devices


def products_with_stock(queryset=None):
    """Annotate products with their available quantity across batches"""
    queryset = queryset if queryset is not None else Product.objects.all()
    return queryset.annotate(available_quantity=Coalesce(Sum('batches__quantity_available'), 0))


def low_stock_products():
    return products_with_stock(Product.objects.filter(is_active=True)).filter(
        available_quantity__lte=F('reorder_level')
    ).order_by('available_quantity', 'name')


def inventory_summary():
    products = products_with_stock(Product.objects.filter(is_active=True))
    stock_value = StockBatch.objects.aggregate(
        total=Coalesce(
            Sum(ExpressionWrapper(F('quantity_available') * F('buying_price'), output_field=DecimalField(max_digits=14, decimal_places=2))),
            Value(Decimal('0.00')),
            output_field=DecimalField(max_digits=14, decimal_places=2),
        )
    )['total']
    return {
        'total_products': products.count(),
        'in_stock': products.filter(available_quantity__gt=0).count(),
        'out_of_stock': products.filter(available_quantity=0).count(),
        'low_stock': products.filter(available_quantity__gt=0, available_quantity__lte=F('reorder_level')).count(),
        'total_stock_value': stock_value,
        'total_devices': Device.objects.count(),
        'available_devices': Device.objects.filter(status='AVAILABLE').count(),
    }
