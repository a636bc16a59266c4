"""
Tests for the Excel job import: validation, import, template and access control
"""
from datetime import timedelta
from io import BytesIO

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from django.utils import timezone
from openpyxl import Workbook, load_workbook
from rest_framework import status

from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.customers.models import Customer, Vehicle
from trackops.inventory.models import Device
from trackops.jobs.models import Job
from trackops.migration.importer import COLUMNS, import_jobs, parse_date
from trackops.subscriptions.models import Subscription

HEADERS = [header for _, header, _ in COLUMNS]


def build_upload(rows, headers=None, name='jobs.xlsx'):
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.append(headers or HEADERS)
    for row in rows:
        worksheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return SimpleUploadedFile(
        name, buffer.getvalue(),
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    )


class ImportTestMixin:

    def setUp(self):
        self.user = TestDataFactory.create_user(role='MANAGER')
        self.product = TestDataFactory.create_product(sku='GPS-100', is_serialized=True)
        self.installed = timezone.localdate() - timedelta(days=60)
        self.expiry = self.installed + timedelta(days=365)

    def make_row(self, **overrides):
        values = {
            'Customer Name': 'Acme Logistics',
            'Phone': '0712345678',
            'Email': 'fleet@acme.test',
            'Vehicle Reg': 'kaa 123a',
            'Make': 'Toyota',
            'Model': 'Probox',
            'Chassis No': '',
            'Product SKU': 'gps-100',
            'IMEI': '356938035643809',
            'Installation Date': self.installed.isoformat(),
            'Subscription Start': self.installed.isoformat(),
            'Subscription Expiry': self.expiry.isoformat(),
            'Technician Code': '',
            'Notes': 'Migrated record',
        }
        values.update(overrides)
        return [values[header] for header in HEADERS]


class ImporterTests(ImportTestMixin, TestCase):
    """Tests for import_jobs()"""

    def test_dry_run_writes_nothing(self):
        """Validation reports row results without creating records"""
        summary = import_jobs(build_upload([self.make_row()]), user=self.user, dry_run=True)
        self.assertTrue(summary['dry_run'])
        self.assertEqual(summary['total_rows'], 1)
        self.assertEqual(summary['success_count'], 1)
        self.assertEqual(Customer.objects.count(), 0)
        self.assertEqual(Job.objects.count(), 0)
        self.assertEqual(summary['results'][0]['created_ids'], {})

    def test_import_creates_full_installation(self):
        """A valid row creates customer, vehicle, verified job, active device and subscription"""
        summary = import_jobs(build_upload([self.make_row()]), user=self.user, dry_run=False)
        self.assertEqual(summary['success_count'], 1)
        created = summary['results'][0]['created_ids']

        customer = Customer.objects.get(pk=created['customer_id'])
        self.assertEqual(customer.phone, '0712345678')
        vehicle = Vehicle.objects.get(pk=created['vehicle_id'])
        self.assertEqual(vehicle.vehicle_reg, 'KAA123A')
        self.assertEqual(vehicle.customer, customer)

        job = Job.objects.get(pk=created['job_id'])
        self.assertEqual(job.status, 'VERIFIED')
        self.assertTrue(job.payment_verified)
        self.assertEqual(job.scheduled_date, self.installed)
        self.assertIn(self.product, job.products.all())
        self.assertTrue(job.status_history.filter(to_status='VERIFIED').exists())

        device = Device.objects.get(pk=created['device_id'])
        self.assertEqual(device.status, 'ACTIVE')
        self.assertEqual(device.vehicle, vehicle)
        self.assertTrue(device.history.filter(to_status='ACTIVE').exists())

        subscription = Subscription.objects.get(pk=created['subscription_id'])
        self.assertEqual(subscription.expiry_date, self.expiry)
        self.assertEqual(subscription.device, device)
        self.assertEqual(subscription.job, job)

    def test_missing_expiry_defaults_to_one_year(self):
        """Without an expiry the subscription runs one year and the row carries a warning"""
        summary = import_jobs(build_upload([self.make_row(**{'Subscription Expiry': ''})]), dry_run=False)
        self.assertEqual(summary['warning_count'], 1)
        subscription = Subscription.objects.get()
        self.assertEqual(subscription.expiry_date.year, self.installed.year + 1)

    def test_existing_customer_and_device_are_reused(self):
        """Customer matched by phone in either format; an available device is activated"""
        customer = TestDataFactory.create_customer(business_name='Acme Logistics', phone='254712345678')
        device = TestDataFactory.create_device(product=self.product, imei='356938035643809')
        summary = import_jobs(build_upload([self.make_row()]), dry_run=False)
        self.assertEqual(summary['failed_count'], 0)
        self.assertNotIn('customer_id', summary['results'][0]['created_ids'])
        self.assertEqual(Customer.objects.count(), 1)
        device.refresh_from_db()
        self.assertEqual(device.status, 'ACTIVE')
        self.assertEqual(device.vehicle.customer, customer)

    def test_reimporting_workbook_creates_nothing_new(self):
        """Rows already imported fail on the second run instead of duplicating jobs and subscriptions"""
        import_jobs(build_upload([self.make_row()]), dry_run=False)
        summary = import_jobs(build_upload([self.make_row()]), dry_run=False)
        self.assertEqual(summary['failed_count'], 1)
        self.assertEqual(summary['success_count'] + summary['warning_count'], 0)
        errors = summary['results'][0]['errors']
        self.assertIn('IMEI 356938035643809 is already active with a subscription', errors)
        self.assertTrue(any('already recorded as job' in error for error in errors))
        self.assertEqual(Job.objects.count(), 1)
        self.assertEqual(Subscription.objects.filter(device__imei='356938035643809').count(), 1)

    def test_reimporting_row_without_imei_fails(self):
        row = self.make_row(IMEI='')
        import_jobs(build_upload([row]), dry_run=False)
        summary = import_jobs(build_upload([row]), dry_run=False)
        self.assertEqual(summary['failed_count'], 1)
        self.assertEqual(Subscription.objects.count(), 1)

    def test_row_failures_do_not_block_other_rows(self):
        """Bad rows fail individually while good rows import"""
        rows = [
            self.make_row(),
            self.make_row(**{'Product SKU': 'UNKNOWN', 'Vehicle Reg': 'KBB 200B', 'IMEI': '490154203237518'}),
            self.make_row(**{'Phone': '12345', 'Vehicle Reg': 'KCC 300C', 'IMEI': '359881234567892'}),
        ]
        summary = import_jobs(build_upload(rows), dry_run=False)
        self.assertEqual(summary['total_rows'], 3)
        self.assertEqual(summary['success_count'], 1)
        self.assertEqual(summary['failed_count'], 2)
        self.assertEqual(summary['results'][1]['row_number'], 3)
        self.assertIn('Unknown product SKU: UNKNOWN', summary['results'][1]['errors'])
        self.assertEqual(Job.objects.count(), 1)

    def test_duplicate_imei_in_file_fails(self):
        """The same IMEI on two rows fails the second row"""
        rows = [self.make_row(), self.make_row(**{'Vehicle Reg': 'KDD 400D'})]
        summary = import_jobs(build_upload(rows), dry_run=True)
        self.assertEqual(summary['results'][1]['status'], 'failed')
        self.assertIn('already used on row 2', summary['results'][1]['errors'][0])

    def test_vehicle_of_another_customer_fails(self):
        """A registration already owned by someone else is rejected"""
        other = TestDataFactory.create_customer(phone='0799999999')
        TestDataFactory.create_vehicle(customer=other, vehicle_reg='KAA123A')
        summary = import_jobs(build_upload([self.make_row()]), dry_run=True)
        self.assertEqual(summary['failed_count'], 1)
        self.assertIn('registered to another customer', summary['results'][0]['errors'][0])

    def test_device_active_elsewhere_fails(self):
        """An IMEI active on a different vehicle cannot be imported again"""
        vehicle = TestDataFactory.create_vehicle()
        device = TestDataFactory.create_device(product=self.product, imei='356938035643809', status='ACTIVE')
        device.vehicle = vehicle
        device.save()
        summary = import_jobs(build_upload([self.make_row()]), dry_run=True)
        self.assertEqual(summary['failed_count'], 1)

    def test_invalid_imei_and_dates(self):
        """IMEIs must be 15 digits and expiry must follow start"""
        row = self.make_row(**{
            'IMEI': '12345',
            'Subscription Expiry': (self.installed - timedelta(days=1)).isoformat(),
        })
        errors = import_jobs(build_upload([row]), dry_run=True)['results'][0]['errors']
        self.assertTrue(any('15 digits' in error for error in errors))
        self.assertIn('Subscription expiry must be after the start date', errors)

    def test_unknown_technician_is_a_warning(self):
        """An unknown technician code does not block the row"""
        summary = import_jobs(build_upload([self.make_row(**{'Technician Code': 'TECH-XYZ'})]), dry_run=True)
        self.assertEqual(summary['results'][0]['status'], 'warning')

    def test_known_technician_is_linked(self):
        """A known technician code becomes the job's lead technician"""
        technician = TestDataFactory.create_technician()
        summary = import_jobs(
            build_upload([self.make_row(**{'Technician Code': technician.technician_code.lower()})]),
            dry_run=False,
        )
        job = Job.objects.get(pk=summary['results'][0]['created_ids']['job_id'])
        self.assertEqual(job.lead_technician, technician)
        self.assertIn(technician, job.technicians.all())

    def test_parse_date_formats(self):
        """Text dates accept ISO and day-first formats"""
        self.assertEqual(parse_date('2024-03-05').isoformat(), '2024-03-05')
        self.assertEqual(parse_date('05/03/2024').isoformat(), '2024-03-05')
        self.assertIsNone(parse_date('not a date'))


class MigrationAPITests(ImportTestMixin, TestCase):
    """Tests for the migration upload endpoints"""

    def setUp(self):
        super().setUp()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_validate_endpoint(self):
        """Dry run endpoint returns the summary without writing"""
        response = self.client.post(
            '/api/v1/migration-upload/jobs/validate/', {'file': build_upload([self.make_row()])}, format='multipart'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['dry_run'])
        self.assertEqual(response.data['success_count'], 1)
        self.assertIn('execution_time_ms', response.data)
        self.assertEqual(Job.objects.count(), 0)

    def test_import_endpoint(self):
        """Import endpoint writes rows"""
        response = self.client.post(
            '/api/v1/migration-upload/jobs/import/', {'file': build_upload([self.make_row()])}, format='multipart'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['dry_run'])
        self.assertEqual(Job.objects.filter(status='VERIFIED').count(), 1)

    def test_missing_file(self):
        """No file gives 400"""
        response = self.client.post('/api/v1/migration-upload/jobs/import/', {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_xlsx_file_rejected(self):
        """A CSV upload is refused"""
        upload = SimpleUploadedFile('jobs.csv', b'Customer Name,Phone\nAcme,0712345678\n', content_type='text/csv')
        response = self.client.post('/api/v1/migration-upload/jobs/validate/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_corrupt_xlsx_rejected(self):
        """Bytes that are not a workbook are refused"""
        upload = SimpleUploadedFile('jobs.xlsx', b'not a workbook')
        response = self.client.post('/api/v1/migration-upload/jobs/validate/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_empty_workbook_rejected(self):
        """A header row with no data is refused"""
        response = self.client.post(
            '/api/v1/migration-upload/jobs/validate/', {'file': build_upload([])}, format='multipart'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_required_column(self):
        """Required headers must be present"""
        upload = build_upload([['Acme', '0712345678']], headers=['Customer Name', 'Phone'])
        response = self.client.post('/api/v1/migration-upload/jobs/validate/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Vehicle Reg', response.data['error'])

    def test_headers_are_case_insensitive(self):
        """Header matching ignores case and surrounding spaces"""
        headers = [f'  {header.upper()} ' for header in HEADERS]
        upload = build_upload([self.make_row()], headers=headers)
        response = self.client.post('/api/v1/migration-upload/jobs/validate/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['success_count'], 1)

    def test_template_download(self):
        """Template is a workbook carrying every column header"""
        response = self.client.get('/api/v1/migration-upload/template/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('spreadsheetml', response['Content-Type'])
        workbook = load_workbook(BytesIO(response.content))
        headers = [cell.value for cell in workbook.active[1]]
        self.assertEqual(headers, HEADERS)

    def test_import_requires_permission(self):
        """Roles without the migration permission are refused"""
        self.client.authenticate_user(TestDataFactory.create_user(role='SALES'))
        response = self.client.post(
            '/api/v1/migration-upload/jobs/import/', {'file': build_upload([self.make_row()])}, format='multipart'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
