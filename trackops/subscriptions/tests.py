"""
Test suite for subscriptions, expiry reminders and renewals
"""
from datetime import date, timedelta
from decimal import Decimal

from django.core import mail
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from trackops.billing.services import process_payment
from trackops.core.exceptions import BillingError
from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.subscriptions.models import Subscription, SubscriptionNotification, SubscriptionRenewal
from trackops.subscriptions.services import (
    add_years, evaluate_status, due_reminder, check_expiry, generate_renewal_invoice,
    cancel_subscription, renewal_price,
)


class SubscriptionStatusTests(TestCase):
    """Test status evaluation and reminder selection"""

    def setUp(self):
        self.today = date(2025, 6, 1)

    def _subscription(self, expiry, status='ACTIVE', **flags):
        return Subscription(expiry_date=expiry, status=status, **flags)

    def test_evaluate_status(self):
        self.assertEqual(evaluate_status(self._subscription(date(2025, 12, 1)), self.today), 'ACTIVE')
        self.assertEqual(evaluate_status(self._subscription(date(2025, 7, 1)), self.today), 'EXPIRING_SOON')
        self.assertEqual(evaluate_status(self._subscription(self.today), self.today), 'EXPIRING_SOON')
        self.assertEqual(evaluate_status(self._subscription(date(2025, 5, 31)), self.today), 'EXPIRED')

    def test_cancelled_and_suspended_are_kept(self):
        self.assertEqual(evaluate_status(self._subscription(date(2024, 1, 1), 'CANCELLED'), self.today), 'CANCELLED')
        self.assertEqual(evaluate_status(self._subscription(date(2026, 1, 1), 'SUSPENDED'), self.today), 'SUSPENDED')

    def test_add_years_leap_day(self):
        self.assertEqual(add_years(date(2024, 2, 29)), date(2025, 2, 28))
        self.assertEqual(add_years(date(2025, 3, 15)), date(2026, 3, 15))

    def test_due_reminder(self):
        self.assertIsNone(due_reminder(self._subscription(date(2025, 8, 1)), self.today))
        self.assertEqual(due_reminder(self._subscription(date(2025, 6, 20)), self.today), 'REMINDER_30_DAYS')
        self.assertEqual(due_reminder(self._subscription(date(2025, 6, 5)), self.today), 'REMINDER_7_DAYS')
        self.assertEqual(due_reminder(self._subscription(date(2025, 5, 1)), self.today), 'EXPIRED')

    @override_settings(SUBSCRIPTION_REMINDER_DAYS=(14, 3))
    def test_due_reminder_uses_configured_windows(self):
        """The farther window sends the first reminder, the nearer one the final reminder"""
        self.assertIsNone(due_reminder(self._subscription(date(2025, 6, 20)), self.today))
        self.assertEqual(due_reminder(self._subscription(date(2025, 6, 10)), self.today), 'REMINDER_30_DAYS')
        self.assertEqual(due_reminder(self._subscription(date(2025, 6, 3)), self.today), 'REMINDER_7_DAYS')
        self.assertIsNone(due_reminder(self._subscription(date(2025, 6, 10), notification_sent_30_days=True), self.today))

    def test_due_reminder_sent_once(self):
        subscription = self._subscription(date(2025, 6, 5), notification_sent_7_days=True)
        self.assertIsNone(due_reminder(subscription, self.today))
        subscription = self._subscription(date(2025, 5, 1), notification_sent_expired=True)
        self.assertIsNone(due_reminder(subscription, self.today))

    def test_renewal_price_fallback(self):
        """Explicit price, then the product's subscription fee, then its selling price"""
        product = TestDataFactory.create_product(selling_price=Decimal('5000.00'), subscription_fee=Decimal('0.00'))
        subscription = TestDataFactory.create_subscription(product=product)
        self.assertEqual(renewal_price(subscription), Decimal('5000.00'))
        product.subscription_fee = Decimal('3600.00')
        self.assertEqual(renewal_price(subscription), Decimal('3600.00'))
        subscription.renewal_price = Decimal('3000.00')
        self.assertEqual(renewal_price(subscription), Decimal('3000.00'))


class ExpiryCheckTests(TestCase):
    """Test the periodic expiry check"""

    def setUp(self):
        self.today = timezone.localdate()
        self.customer = TestDataFactory.create_customer(email='fleet@customer.test')

    def test_statuses_and_reminders(self):
        far = TestDataFactory.create_subscription(customer=self.customer, expiry_date=self.today + timedelta(days=200))
        soon = TestDataFactory.create_subscription(customer=self.customer, expiry_date=self.today + timedelta(days=20))
        week = TestDataFactory.create_subscription(customer=self.customer, expiry_date=self.today + timedelta(days=5))
        gone = TestDataFactory.create_subscription(
            customer=self.customer, start_date=self.today - timedelta(days=400), expiry_date=self.today - timedelta(days=2)
        )
        TestDataFactory.create_subscription(customer=self.customer, status='CANCELLED')

        summary = check_expiry(today=self.today)
        self.assertEqual(summary['checked'], 4)
        self.assertEqual(summary['status_changed'], 3)
        self.assertEqual(summary['expiring_soon'], 2)
        self.assertEqual(summary['expired'], 1)
        self.assertEqual(summary['reminders_sent'], 3)

        far.refresh_from_db()
        soon.refresh_from_db()
        week.refresh_from_db()
        gone.refresh_from_db()
        self.assertEqual(far.status, 'ACTIVE')
        self.assertEqual(soon.status, 'EXPIRING_SOON')
        self.assertTrue(soon.notification_sent_30_days)
        self.assertFalse(soon.notification_sent_7_days)
        self.assertTrue(week.notification_sent_30_days)
        self.assertTrue(week.notification_sent_7_days)
        self.assertEqual(gone.status, 'EXPIRED')
        self.assertTrue(gone.notification_sent_expired)
        self.assertEqual(len(mail.outbox), 3)

    def test_reminders_sent_once(self):
        TestDataFactory.create_subscription(customer=self.customer, expiry_date=self.today + timedelta(days=10))
        self.assertEqual(check_expiry(today=self.today)['reminders_sent'], 1)
        self.assertEqual(check_expiry(today=self.today)['reminders_sent'], 0)
        self.assertEqual(len(mail.outbox), 1)

    def test_notification_rows_per_channel(self):
        """E-mail goes out; SMS is recorded as failed while the gateway is disabled"""
        subscription = TestDataFactory.create_subscription(
            customer=self.customer, expiry_date=self.today + timedelta(days=25)
        )
        check_expiry(today=self.today)
        rows = {row.channel: row for row in SubscriptionNotification.objects.filter(subscription=subscription)}
        self.assertEqual(set(rows), {'EMAIL', 'SMS'})
        self.assertEqual(rows['EMAIL'].status, 'SENT')
        self.assertEqual(rows['EMAIL'].notification_type, 'REMINDER_30_DAYS')
        self.assertIn(subscription.subscription_number, rows['EMAIL'].message)
        self.assertEqual(rows['SMS'].status, 'FAILED')

    def test_customer_without_email_gets_sms_only(self):
        customer = TestDataFactory.create_customer(email='')
        subscription = TestDataFactory.create_subscription(customer=customer, expiry_date=self.today + timedelta(days=3))
        check_expiry(today=self.today)
        channels = list(subscription.notifications.values_list('channel', flat=True))
        self.assertEqual(channels, ['SMS'])
        self.assertEqual(len(mail.outbox), 0)

    def test_without_notifications(self):
        subscription = TestDataFactory.create_subscription(
            customer=self.customer, expiry_date=self.today + timedelta(days=10)
        )
        summary = check_expiry(today=self.today, send_notifications=False)
        self.assertEqual(summary['status_changed'], 1)
        self.assertEqual(summary['reminders_sent'], 0)
        subscription.refresh_from_db()
        self.assertFalse(subscription.notification_sent_30_days)
        self.assertEqual(len(mail.outbox), 0)


class RenewalTests(TestCase):
    """Test renewal invoicing and completion on payment"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.customer = TestDataFactory.create_customer(email='owner@customer.test')
        self.product = TestDataFactory.create_product(subscription_fee=Decimal('3600.00'))
        self.subscription = TestDataFactory.create_subscription(
            customer=self.customer, product=self.product,
            start_date=date(2025, 3, 1), expiry_date=date(2026, 2, 28),
        )

    def test_generate_renewal_invoice(self):
        renewal = generate_renewal_invoice(self.subscription, user=self.user)
        self.assertEqual(renewal.status, 'PENDING')
        self.assertEqual(renewal.previous_expiry_date, date(2026, 2, 28))
        self.assertEqual(renewal.new_start_date, date(2026, 3, 1))
        self.assertEqual(renewal.new_expiry_date, date(2027, 2, 28))
        self.assertEqual(renewal.invoice.status, 'SENT')
        self.assertEqual(renewal.invoice.invoice_type, 'STANDARD')
        self.assertEqual(renewal.amount, renewal.invoice.total)
        self.assertEqual(renewal.invoice.customer, self.customer)

    def test_duplicate_pending_renewal_refused(self):
        generate_renewal_invoice(self.subscription, user=self.user)
        with self.assertRaises(BillingError):
            generate_renewal_invoice(self.subscription, user=self.user)

    def test_cancelled_subscription_cannot_renew(self):
        cancel_subscription(self.subscription, 'Vehicle sold', user=self.user)
        with self.assertRaises(BillingError):
            generate_renewal_invoice(self.subscription, user=self.user)

    def test_payment_extends_subscription(self):
        """Paying the renewal invoice in full moves the expiry forward"""
        self.subscription.notification_sent_30_days = True
        self.subscription.save()
        renewal = generate_renewal_invoice(self.subscription, user=self.user)
        method = TestDataFactory.create_payment_method()

        with self.captureOnCommitCallbacks(execute=True):
            process_payment(self.customer, method, renewal.invoice.total,
                            [{'invoice': renewal.invoice, 'amount': renewal.invoice.total}], user=self.user)

        renewal.refresh_from_db()
        self.subscription.refresh_from_db()
        self.assertEqual(renewal.status, 'COMPLETED')
        self.assertIsNotNone(renewal.completed_at)
        self.assertEqual(self.subscription.expiry_date, date(2027, 2, 28))
        self.assertFalse(self.subscription.notification_sent_30_days)
        self.assertTrue(
            self.subscription.notifications.filter(notification_type='RENEWED', channel='EMAIL').exists()
        )

    def test_partial_payment_keeps_renewal_pending(self):
        renewal = generate_renewal_invoice(self.subscription, user=self.user)
        method = TestDataFactory.create_payment_method()
        process_payment(self.customer, method, Decimal('100.00'),
                        [{'invoice': renewal.invoice, 'amount': Decimal('100.00')}], user=self.user)
        renewal.refresh_from_db()
        self.subscription.refresh_from_db()
        self.assertEqual(renewal.status, 'PENDING')
        self.assertEqual(self.subscription.expiry_date, date(2026, 2, 28))

    def test_cancel_requires_reason(self):
        with self.assertRaises(BillingError):
            cancel_subscription(self.subscription, '', user=self.user)
        cancel_subscription(self.subscription, 'Vehicle sold', user=self.user)
        self.subscription.refresh_from_db()
        self.assertEqual(self.subscription.status, 'CANCELLED')
        self.assertIsNotNone(self.subscription.cancelled_at)
        self.assertTrue(self.subscription.notifications.filter(notification_type='CANCELLED').exists())
        with self.assertRaises(BillingError):
            cancel_subscription(self.subscription, 'Again', user=self.user)


class SubscriptionAPITests(TestCase):
    """Test subscription endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.today = timezone.localdate()
        self.customer = TestDataFactory.create_customer()
        self.product = TestDataFactory.create_product()

    def test_create_subscription(self):
        """New subscriptions get a number and an evaluated status"""
        vehicle = TestDataFactory.create_vehicle(customer=self.customer)
        response = self.client.post('/api/v1/subscriptions/', {
            'customer': self.customer.id,
            'product': self.product.id,
            'vehicle': vehicle.id,
            'start_date': str(self.today),
            'expiry_date': str(self.today + timedelta(days=10)),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['subscription_number'].startswith('SUB-'))
        self.assertEqual(response.data['status'], 'EXPIRING_SOON')
        self.assertEqual(response.data['days_until_expiry'], 10)

    def test_create_expiry_before_start(self):
        response = self.client.post('/api/v1/subscriptions/', {
            'customer': self.customer.id,
            'product': self.product.id,
            'start_date': str(self.today),
            'expiry_date': str(self.today),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('expiry_date', response.data)

    def test_create_vehicle_of_other_customer(self):
        vehicle = TestDataFactory.create_vehicle()
        response = self.client.post('/api/v1/subscriptions/', {
            'customer': self.customer.id,
            'product': self.product.id,
            'vehicle': vehicle.id,
            'expiry_date': str(self.today + timedelta(days=365)),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('vehicle', response.data)

    def test_detail_includes_renewals(self):
        subscription = TestDataFactory.create_subscription(customer=self.customer, product=self.product)
        generate_renewal_invoice(subscription, user=self.user)
        response = self.client.get(f'/api/v1/subscriptions/{subscription.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['renewals']), 1)
        self.assertIn('notifications', response.data)

    def test_delete_with_pending_renewal_refused(self):
        subscription = TestDataFactory.create_subscription(customer=self.customer, product=self.product)
        generate_renewal_invoice(subscription, user=self.user)
        response = self.client.delete(f'/api/v1/subscriptions/{subscription.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Subscription.objects.filter(pk=subscription.id).exists())

    def test_delete_subscription(self):
        subscription = TestDataFactory.create_subscription(customer=self.customer, product=self.product)
        response = self.client.delete(f'/api/v1/subscriptions/{subscription.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_cancel_endpoint(self):
        subscription = TestDataFactory.create_subscription(customer=self.customer, product=self.product)
        response = self.client.post(f'/api/v1/subscriptions/{subscription.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/subscriptions/{subscription.id}/cancel/',
                                    {'reason': 'Customer request'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CANCELLED')

    def test_customer_subscriptions(self):
        TestDataFactory.create_subscription(customer=self.customer, product=self.product)
        TestDataFactory.create_subscription(product=self.product)
        response = self.client.get(f'/api/v1/subscriptions/customer/{self.customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_list_filter_by_status(self):
        TestDataFactory.create_subscription(customer=self.customer, product=self.product)
        TestDataFactory.create_subscription(customer=self.customer, product=self.product, status='CANCELLED')
        response = self.client.get('/api/v1/subscriptions/?status=CANCELLED')
        self.assertEqual(response.data['count'], 1)

    def test_dashboard_stats(self):
        TestDataFactory.create_subscription(product=self.product, expiry_date=self.today + timedelta(days=5),
                                            status='EXPIRING_SOON')
        TestDataFactory.create_subscription(product=self.product, expiry_date=self.today + timedelta(days=20),
                                            status='EXPIRING_SOON')
        TestDataFactory.create_subscription(product=self.product, expiry_date=self.today + timedelta(days=200))
        TestDataFactory.create_subscription(product=self.product, status='CANCELLED')
        response = self.client.get('/api/v1/subscriptions/dashboard-stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 4)
        self.assertEqual(response.data['active'], 3)
        self.assertEqual(response.data['by_status']['CANCELLED'], 1)
        self.assertEqual(response.data['expiring_in_7_days'], 1)
        self.assertEqual(response.data['expiring_in_30_days'], 2)
        self.assertEqual(len(response.data['upcoming_expiries']), 2)

    def test_check_expiry_endpoint(self):
        TestDataFactory.create_subscription(product=self.product, expiry_date=self.today + timedelta(days=5))
        response = self.client.post('/api/v1/subscriptions/check-expiry/', {'notify': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['checked'], 1)
        self.assertEqual(response.data['reminders_sent'], 0)

    def test_generate_renewal_invoice_endpoint(self):
        subscription = TestDataFactory.create_subscription(customer=self.customer, product=self.product)
        url = f'/api/v1/subscriptions/{subscription.id}/generate-renewal-invoice/'
        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['invoice']['status'], 'SENT')
        self.assertEqual(response.data['renewal']['status'], 'PENDING')
        self.assertEqual(SubscriptionRenewal.objects.filter(subscription=subscription).count(), 1)
        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_technician_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='TECHNICIAN'))
        response = self.client.get('/api/v1/subscriptions/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
