"""
Excel import of historical installations.

Each data row of the first sheet describes one installed device: who the
customer is, which vehicle it sits in, the product and IMEI, and the
subscription period. Importing a row creates (or reuses) the customer and
vehicle, records the installation as a VERIFIED job, binds the device as
ACTIVE and opens a subscription. Every row runs in its own savepoint so one
bad row never rolls back the others.
"""
import logging
import time
import zipfile
from datetime import date, datetime
from io import BytesIO

from django.db import transaction, IntegrityError
from django.utils import timezone
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils.exceptions import InvalidFileException

from trackops.core.cache_signals import suspend_cache_signals
from trackops.core.exceptions import ImportFileError
from trackops.core.formatting import digits_only, is_valid_kenyan_phone, phone_variants
from trackops.customers.models import Customer, Vehicle
from trackops.inventory.models import Product, Device, DeviceHistory
from trackops.inventory.services import is_valid_imei
from trackops.jobs.models import Job, JobStatusHistory
from trackops.subscriptions.models import Subscription
from trackops.subscriptions.services import add_years, evaluate_status
from trackops.technicians.models import Technician

logger = logging.getLogger(__name__)

# (key, header, required)
COLUMNS = [
    ('customer_name', 'Customer Name', True),
    ('phone', 'Phone', True),
    ('email', 'Email', False),
    ('vehicle_reg', 'Vehicle Reg', True),
    ('make', 'Make', False),
    ('model', 'Model', False),
    ('chassis_no', 'Chassis No', False),
    ('product_sku', 'Product SKU', True),
    ('imei', 'IMEI', False),
    ('installation_date', 'Installation Date', True),
    ('subscription_start', 'Subscription Start', False),
    ('subscription_expiry', 'Subscription Expiry', False),
    ('technician_code', 'Technician Code', False),
    ('notes', 'Notes', False),
]

DATE_FORMATS = ('%Y-%m-%d', '%d/%m/%Y', '%d-%m-%Y', '%d.%m.%Y')


def _normalize_header(value):
    return ' '.join(str(value or '').strip().lower().split())


def _cell_text(value):
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        # Numeric cells such as phone numbers and IMEIs come back as floats
        value = int(value)
    return str(value).strip()


def parse_date(value):
    """Date from an Excel date cell or a text cell; None when it cannot be read"""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def read_rows(upload):
    """
    Load the first sheet of an .xlsx upload.
    Returns a list of (row_number, {key: raw value}) for every non-empty row.
    """
    name = getattr(upload, 'name', '') or ''
    if name and not name.lower().endswith('.xlsx'):
        raise ImportFileError('Only .xlsx files are supported')
    try:
        workbook = load_workbook(upload, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ImportFileError(f'Unable to read the uploaded workbook: {str(e)}') from e

    try:
        worksheet = workbook.worksheets[0]
        rows = worksheet.iter_rows(values_only=True)
        try:
            header_row = next(rows)
        except StopIteration:
            raise ImportFileError('The uploaded file is empty')

        positions = {}
        for index, header in enumerate(header_row or ()):
            positions.setdefault(_normalize_header(header), index)
        missing = [header for _, header, required in COLUMNS
                   if required and _normalize_header(header) not in positions]
        if missing:
            raise ImportFileError(f"Missing required columns: {', '.join(missing)}")

        records = []
        for row_number, row in enumerate(rows, start=2):
            if not row or all(cell in (None, '') for cell in row):
                continue
            record = {}
            for key, header, _ in COLUMNS:
                index = positions.get(_normalize_header(header))
                record[key] = row[index] if index is not None and index < len(row) else None
            records.append((row_number, record))
    finally:
        workbook.close()

    if not records:
        raise ImportFileError('The uploaded file has no data rows')
    return records


class RowResult:
    def __init__(self, row_number):
        self.row_number = row_number
        self.errors = []
        self.warnings = []
        self.created_ids = {}

    @property
    def status(self):
        if self.errors:
            return 'failed'
        return 'warning' if self.warnings else 'success'

    def as_dict(self):
        return {
            'row_number': self.row_number,
            'status': self.status,
            'errors': self.errors,
            'warnings': self.warnings,
            'created_ids': self.created_ids,
        }


def find_customer(phone):
    return Customer.objects.filter(phone__in=phone_variants(phone)).first()


class JobImporter:
    """Validates and imports rows; the same checks drive the dry run and the real import"""

    def __init__(self, user=None, dry_run=True):
        self.user = user if user is not None and user.is_authenticated else None
        self.dry_run = dry_run
        self.seen_imeis = {}
        self.seen_vehicles = {}
        self.products = {}

    def _product(self, sku):
        key = sku.upper()
        if key not in self.products:
            self.products[key] = Product.objects.filter(sku__iexact=key).first()
        return self.products[key]

    def validate(self, row_number, raw):
        """Clean one row; returns (cleaned values, RowResult)"""
        result = RowResult(row_number)
        values = {key: _cell_text(raw.get(key)) for key, _, _ in COLUMNS}
        for key in ('installation_date', 'subscription_start', 'subscription_expiry'):
            values[key] = raw.get(key)

        for key, header, required in COLUMNS:
            if required and values[key] in (None, ''):
                result.errors.append(f"{header} is required")
        if result.errors:
            return values, result

        phone = digits_only(values['phone'])
        if not is_valid_kenyan_phone(phone):
            result.errors.append(f"Invalid phone number: {values['phone']}")
        values['phone'] = phone

        values['vehicle_reg'] = Vehicle.normalize_registration(values['vehicle_reg'])

        product = self._product(values['product_sku'])
        if product is None:
            result.errors.append(f"Unknown product SKU: {values['product_sku']}")
        values['product'] = product

        installed = parse_date(values['installation_date'])
        if installed is None:
            result.errors.append(f"Invalid installation date: {values['installation_date']}")
        elif installed > timezone.localdate():
            result.errors.append('Installation date cannot be in the future')
        values['installation_date'] = installed

        start = values['subscription_start']
        start_date = parse_date(start) if start not in (None, '') else installed
        if start not in (None, '') and start_date is None:
            result.errors.append(f"Invalid subscription start: {start}")
        expiry = values['subscription_expiry']
        expiry_date = parse_date(expiry) if expiry not in (None, '') else None
        if expiry not in (None, '') and expiry_date is None:
            result.errors.append(f"Invalid subscription expiry: {expiry}")
        if start_date and expiry_date is None and expiry in (None, ''):
            expiry_date = add_years(start_date)
            result.warnings.append('Subscription expiry not given; set to one year after start')
        if start_date and expiry_date and expiry_date <= start_date:
            result.errors.append('Subscription expiry must be after the start date')
        values['subscription_start'] = start_date
        values['subscription_expiry'] = expiry_date

        self._check_customer(values, result)
        self._check_vehicle(values, result)
        self._check_device(values, result)
        self._check_already_imported(values, result)
        self._check_technician(values, result)
        return values, result

    def _check_customer(self, values, result):
        customer = find_customer(values['phone'])
        values['customer'] = customer
        if customer is not None:
            name = values['customer_name'].lower()
            if name not in (customer.business_name.lower(), customer.contact_person.lower()):
                result.warnings.append(
                    f"Phone {values['phone']} belongs to existing customer {customer.display_name}; row name ignored"
                )

    def _check_vehicle(self, values, result):
        reg = values['vehicle_reg']
        vehicle = Vehicle.objects.filter(vehicle_reg=reg).select_related('customer').first()
        values['vehicle'] = vehicle
        customer = values['customer']
        if vehicle is not None and (customer is None or vehicle.customer_id != customer.id):
            result.errors.append(f"Vehicle {reg} is registered to another customer ({vehicle.customer.display_name})")
        previous_phone = self.seen_vehicles.get(reg)
        if previous_phone is not None and previous_phone != values['phone']:
            result.errors.append(f"Vehicle {reg} appears earlier in the file for a different customer")
        self.seen_vehicles.setdefault(reg, values['phone'])
        if vehicle is None and values['chassis_no'] and Vehicle.objects.filter(chassis_no=values['chassis_no']).exists():
            result.errors.append(f"Chassis number {values['chassis_no']} is already registered")

    def _check_device(self, values, result):
        imei = values['imei']
        values['device'] = None
        if not imei:
            result.warnings.append('No IMEI given; no device will be linked')
            return
        if not is_valid_imei(imei):
            result.errors.append(f"Invalid IMEI '{imei}': must be exactly 15 digits")
            return
        if imei in self.seen_imeis:
            result.errors.append(f"IMEI {imei} already used on row {self.seen_imeis[imei]}")
            return
        self.seen_imeis[imei] = result.row_number

        device = Device.objects.filter(imei=imei).select_related('vehicle').first()
        values['device'] = device
        if device is None:
            return
        vehicle = values['vehicle']
        if device.status == 'ACTIVE' and device.vehicle_id and (vehicle is None or device.vehicle_id != vehicle.id):
            result.errors.append(f"IMEI {imei} is active on vehicle {device.vehicle.vehicle_reg}")
        elif device.status == 'ACTIVE' and device.subscriptions.exclude(status='CANCELLED').exists():
            result.errors.append(f"IMEI {imei} is already active with a subscription")
        elif device.status == 'DAMAGED':
            result.errors.append(f"IMEI {imei} is marked as damaged")
        product = values['product']
        if product is not None and device.product_id != product.id:
            result.warnings.append(f"IMEI {imei} is registered under product {device.product.sku}")

    def _check_already_imported(self, values, result):
        vehicle, product = values['vehicle'], values['product']
        installed = values['installation_date']
        if vehicle is None or product is None or installed is None:
            return
        duplicate = Job.objects.filter(
            vehicle=vehicle, status='VERIFIED', scheduled_date=installed, products=product
        ).first()
        if duplicate is not None:
            result.errors.append(
                f"Installation of {product.sku} on {vehicle.vehicle_reg} dated {installed} "
                f"is already recorded as job {duplicate.job_number}"
            )

    def _check_technician(self, values, result):
        code = values['technician_code']
        values['technician'] = None
        if code:
            technician = Technician.objects.filter(technician_code__iexact=code).select_related('user').first()
            if technician is None:
                result.warnings.append(f"Unknown technician code {code}; job imported without technician")
            values['technician'] = technician

    def import_row(self, values, result):
        """Write one validated row; runs inside the row's savepoint"""
        customer = values['customer']
        if customer is None:
            customer = Customer.objects.create(
                business_name=values['customer_name'],
                contact_person=values['customer_name'],
                phone=values['phone'],
                email=values['email'],
                created_by=self.user,
            )
            result.created_ids['customer_id'] = customer.id

        vehicle = values['vehicle']
        if vehicle is None:
            vehicle = Vehicle.objects.create(
                customer=customer,
                vehicle_reg=values['vehicle_reg'],
                make=values['make'] or 'Unknown',
                model=values['model'],
                chassis_no=values['chassis_no'] or None,
            )
            result.created_ids['vehicle_id'] = vehicle.id

        installed_at = timezone.make_aware(datetime.combine(values['installation_date'], datetime.min.time()))
        technician = values['technician']
        job = Job.objects.create(
            customer=customer,
            vehicle=vehicle,
            job_type='NEW_INSTALLATION',
            status='VERIFIED',
            scheduled_date=values['installation_date'],
            start_time=installed_at,
            end_time=installed_at,
            installation_notes=values['notes'],
            imei_numbers=[values['imei']] if values['imei'] else [],
            payment_verified=True,
            lead_technician=technician,
            created_by=self.user,
            approved_by=self.user,
            approved_at=timezone.now(),
        )
        job.products.add(values['product'])
        if technician is not None:
            job.technicians.add(technician)
        JobStatusHistory.objects.create(
            job=job, from_status='', to_status='VERIFIED',
            notes='Imported from migration workbook', changed_by=self.user,
        )
        result.created_ids['job_id'] = job.id

        device = self._bind_device(values, vehicle, job, installed_at)
        if device is not None:
            job.devices.add(device)
            result.created_ids['device_id'] = device.id

        subscription = Subscription(
            customer=customer,
            product=values['product'],
            vehicle=vehicle,
            device=device,
            job=job,
            start_date=values['subscription_start'],
            expiry_date=values['subscription_expiry'],
            notes=values['notes'],
            created_by=self.user,
        )
        subscription.status = evaluate_status(subscription)
        subscription.save()
        result.created_ids['subscription_id'] = subscription.id

    def _bind_device(self, values, vehicle, job, installed_at):
        imei = values['imei']
        if not imei:
            return None
        device = values['device']
        if device is None:
            device = Device.objects.create(
                imei=imei,
                product=values['product'],
                status='ACTIVE',
                vehicle=vehicle,
                installed_at=installed_at,
                installation_notes=values['notes'],
            )
            from_status = ''
        else:
            from_status = device.status
            device.status = 'ACTIVE'
            device.vehicle = vehicle
            device.installed_at = device.installed_at or installed_at
            device.save(update_fields=['status', 'vehicle', 'installed_at', 'updated_at'])
        DeviceHistory.objects.create(
            device=device, from_status=from_status, to_status='ACTIVE',
            reference=job.job_number, notes='Imported from migration workbook', performed_by=self.user,
        )
        return device

    def run(self, records):
        results = []
        for row_number, raw in records:
            values, result = self.validate(row_number, raw)
            if not result.errors and not self.dry_run:
                try:
                    with transaction.atomic():
                        self.import_row(values, result)
                except IntegrityError as e:
                    result.created_ids = {}
                    result.errors.append(f"Database error: {str(e)}")
            results.append(result)
        return results


def import_jobs(upload, user=None, dry_run=True):
    """Validate (dry_run) or import a workbook; returns the summary dict"""
    started = time.monotonic()
    records = read_rows(upload)
    importer = JobImporter(user=user, dry_run=dry_run)
    if dry_run:
        results = importer.run(records)
    else:
        with suspend_cache_signals():
            results = importer.run(records)

    success = sum(1 for r in results if r.status == 'success')
    failed = sum(1 for r in results if r.status == 'failed')
    warning = sum(1 for r in results if r.status == 'warning')
    if dry_run:
        message = f"Validation finished: {success + warning} of {len(results)} rows can be imported"
    else:
        message = f"Import finished: {success + warning} of {len(results)} rows imported"
    logger.info(f"{message} ({failed} failed)")
    return {
        'message': message,
        'dry_run': dry_run,
        'total_rows': len(results),
        'success_count': success,
        'failed_count': failed,
        'warning_count': warning,
        'results': [r.as_dict() for r in results],
        'execution_time_ms': int((time.monotonic() - started) * 1000),
    }


def build_template():
    """Empty import workbook with the header row and one example row, as bytes"""
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = 'Jobs'
    worksheet.append([header for _, header, _ in COLUMNS])
    header_fill = PatternFill(start_color='F2F2F2', end_color='F2F2F2', fill_type='solid')
    for cell, (_, header, required) in zip(worksheet[1], COLUMNS):
        cell.font = Font(bold=True, color='C00000' if required else '000000')
        cell.fill = header_fill
        worksheet.column_dimensions[cell.column_letter].width = max(len(header) + 4, 14)

    today = timezone.localdate()
    worksheet.append([
        'Acme Logistics', '0712345678', 'fleet@example.com', 'KAA 123A', 'Toyota', 'Probox', '',
        'GPS-001', '123456789012345', today.isoformat(), today.isoformat(),
        add_years(today).isoformat(), '', 'Example row, delete before upload',
    ])

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
