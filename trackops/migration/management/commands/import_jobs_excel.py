"""
Management command to import historical installations from an Excel workbook
"""
import os

from django.core.management.base import BaseCommand, CommandError

from trackops.core.exceptions import ImportFileError
from trackops.migration.importer import import_jobs


class Command(BaseCommand):
    help = "Imports customers, vehicles, verified jobs, devices and subscriptions from an .xlsx file"

    def add_arguments(self, parser):
        parser.add_argument('path', type=str, help='Path to the .xlsx workbook')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate every row without saving anything',
        )
        parser.add_argument(
            '--verbose-rows',
            action='store_true',
            help='Print successful rows as well as failures and warnings',
        )

    def handle(self, *args, **options):
        path = options['path']
        dry_run = options['dry_run']
        if not os.path.exists(path):
            raise CommandError(f"File not found: {path}")

        self.stdout.write(self.style.SUCCESS("=" * 80))
        self.stdout.write(self.style.SUCCESS("VALIDATING JOB WORKBOOK" if dry_run else "IMPORTING JOB WORKBOOK"))
        self.stdout.write(self.style.SUCCESS("=" * 80))
        self.stdout.write(f"File: {path}")

        with open(path, 'rb') as handle:
            try:
                summary = import_jobs(handle, dry_run=dry_run)
            except ImportFileError as e:
                raise CommandError(str(e))

        for row in summary['results']:
            label = f"Row {row['row_number']}"
            if row['status'] == 'failed':
                self.stdout.write(self.style.ERROR(f"  ✗ {label}: {'; '.join(row['errors'])}"))
            elif row['status'] == 'warning':
                self.stdout.write(self.style.WARNING(f"  ! {label}: {'; '.join(row['warnings'])}"))
            elif options['verbose_rows']:
                self.stdout.write(f"  ✓ {label}")

        self.stdout.write("")
        self.stdout.write(f"Total rows: {summary['total_rows']}")
        self.stdout.write(self.style.SUCCESS(f"Succeeded: {summary['success_count']}"))
        self.stdout.write(self.style.WARNING(f"With warnings: {summary['warning_count']}"))
        self.stdout.write(self.style.ERROR(f"Failed: {summary['failed_count']}"))
        self.stdout.write(f"Time: {summary['execution_time_ms']} ms")
        self.stdout.write(self.style.SUCCESS(summary['message']))
