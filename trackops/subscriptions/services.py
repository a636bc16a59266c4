"""
Subscription status evaluation, expiry reminders and renewals.

A renewal is billed through a standard invoice; the subscription is only
extended once that invoice has been paid in full.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone

from trackops.core.exceptions import BillingError
from trackops.core.formatting import format_currency, format_date
from trackops.core.utils import create_audit_log
from trackops.billing.services import create_invoice
from trackops.notifications.sms import send_sms
from .models import Subscription, SubscriptionNotification, SubscriptionRenewal

logger = logging.getLogger(__name__)

STICKY_STATUSES = ('CANCELLED', 'SUSPENDED')


def add_years(value, years=1):
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return value.replace(year=value.year + years, day=28)


def evaluate_status(subscription, today=None):
    if subscription.status in STICKY_STATUSES:
        return subscription.status
    today = today or timezone.localdate()
    if subscription.expiry_date < today:
        return 'EXPIRED'
    if (subscription.expiry_date - today).days <= settings.SUBSCRIPTION_EXPIRING_SOON_DAYS:
        return 'EXPIRING_SOON'
    return 'ACTIVE'


def refresh_status(subscription, today=None):
    status = evaluate_status(subscription, today)
    if status != subscription.status:
        subscription.status = status
        subscription.save(update_fields=['status', 'updated_at'])
    return subscription


def renewal_price(subscription):
    for price in (subscription.renewal_price, subscription.product.subscription_fee, subscription.product.selling_price):
        if price:
            return price
    return None


def _subscription_label(subscription):
    if subscription.vehicle_id:
        return f"{subscription.product.name} for {subscription.vehicle.vehicle_reg}"
    return subscription.product.name


def build_message(subscription, notification_type):
    customer = subscription.customer
    label = _subscription_label(subscription)
    expiry = format_date(subscription.expiry_date)
    if notification_type in ('REMINDER_30_DAYS', 'REMINDER_7_DAYS'):
        price = renewal_price(subscription)
        amount = f" Renewal: {format_currency(price, settings.CURRENCY)}." if price else ''
        return (f"Dear {customer.display_name}, your {label} subscription "
                f"({subscription.subscription_number}) expires on {expiry}.{amount}")
    if notification_type == 'EXPIRED':
        return (f"Dear {customer.display_name}, your {label} subscription "
                f"({subscription.subscription_number}) expired on {expiry}. Contact us to renew.")
    if notification_type == 'RENEWED':
        return (f"Dear {customer.display_name}, your {label} subscription "
                f"({subscription.subscription_number}) has been renewed until {expiry}. Thank you.")
    return (f"Dear {customer.display_name}, your {label} subscription "
            f"({subscription.subscription_number}) has been cancelled.")


def notify_customer(subscription, notification_type):
    """E-mail and SMS the customer, recording one notification row per channel"""
    customer = subscription.customer
    message = build_message(subscription, notification_type)
    records = []

    if customer.email:
        try:
            send_mail(
                subject=f"Subscription {subscription.subscription_number}",
                message=message,
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[customer.email],
            )
            status, error = 'SENT', ''
        except OSError as e:
            logger.error(f"Failed to e-mail {customer.email} about {subscription.subscription_number}: {str(e)}")
            status, error = 'FAILED', str(e)
        records.append(SubscriptionNotification(
            subscription=subscription, notification_type=notification_type, channel='EMAIL',
            recipient=customer.email, message=message, status=status, error_message=error,
        ))

    if customer.phone:
        sms = send_sms(customer.phone, message, sms_type='SUBSCRIPTION', customer=customer)
        records.append(SubscriptionNotification(
            subscription=subscription, notification_type=notification_type, channel='SMS',
            recipient=sms.recipient, message=message,
            status='SENT' if sms.status == 'SENT' else 'FAILED', error_message=sms.error_message,
        ))

    return SubscriptionNotification.objects.bulk_create(records)


REMINDER_FLAGS = {
    'REMINDER_30_DAYS': ['notification_sent_30_days'],
    'REMINDER_7_DAYS': ['notification_sent_30_days', 'notification_sent_7_days'],
    'EXPIRED': ['notification_sent_30_days', 'notification_sent_7_days', 'notification_sent_expired'],
}


def reminder_windows():
    """(days, reminder) pairs, nearest window first, from SUBSCRIPTION_REMINDER_DAYS"""
    days = sorted(settings.SUBSCRIPTION_REMINDER_DAYS)[:2]
    return list(zip(days, ('REMINDER_7_DAYS', 'REMINDER_30_DAYS')))


def due_reminder(subscription, today):
    """The reminder a subscription is due for today, if any"""
    days_left = (subscription.expiry_date - today).days
    if days_left < 0:
        return None if subscription.notification_sent_expired else 'EXPIRED'
    for window, reminder in reminder_windows():
        if days_left <= window:
            sent = getattr(subscription, REMINDER_FLAGS[reminder][-1])
            return None if sent else reminder
    return None


def check_expiry(today=None, send_notifications=True):
    """
    Re-evaluate every open subscription and send each reminder at most once.
    Returns counts of what changed.
    """
    today = today or timezone.localdate()
    summary = {'checked': 0, 'status_changed': 0, 'reminders_sent': 0, 'expired': 0, 'expiring_soon': 0}

    queryset = Subscription.objects.exclude(status__in=STICKY_STATUSES).select_related('customer', 'product', 'vehicle')
    for subscription in queryset:
        summary['checked'] += 1
        previous = subscription.status
        refresh_status(subscription, today)
        if subscription.status != previous:
            summary['status_changed'] += 1
        if subscription.status == 'EXPIRED':
            summary['expired'] += 1
        elif subscription.status == 'EXPIRING_SOON':
            summary['expiring_soon'] += 1

        reminder = due_reminder(subscription, today)
        if reminder is None or not send_notifications:
            continue
        notify_customer(subscription, reminder)
        for flag in REMINDER_FLAGS[reminder]:
            setattr(subscription, flag, True)
        subscription.save(update_fields=REMINDER_FLAGS[reminder] + ['updated_at'])
        summary['reminders_sent'] += 1

    logger.info(f"Subscription expiry check: {summary}")
    return summary


def pending_renewal(subscription):
    return subscription.renewals.filter(status='PENDING').exclude(invoice__status='CANCELLED').first()


def generate_renewal_invoice(subscription, user=None, request=None):
    """Invoice the next period (day after expiry to one year after expiry)"""
    if subscription.status == 'CANCELLED':
        raise BillingError('Cancelled subscriptions cannot be renewed')
    existing = pending_renewal(subscription)
    if existing:
        raise BillingError(f"Renewal invoice {existing.invoice.invoice_number} is still unpaid")
    price = renewal_price(subscription)
    if not price:
        raise BillingError('No renewal price set for this subscription or its product')

    new_start = subscription.expiry_date + timedelta(days=1)
    new_expiry = add_years(subscription.expiry_date)
    description = (f"Subscription renewal {subscription.subscription_number}: "
                   f"{format_date(new_start)} - {format_date(new_expiry)}")

    with transaction.atomic():
        invoice = create_invoice(
            subscription.customer,
            [{'product': subscription.product, 'description': description, 'quantity': 1, 'unit_price': price}],
            user=user,
            status='SENT',
            notes=description,
        )
        renewal = SubscriptionRenewal.objects.create(
            subscription=subscription,
            invoice=invoice,
            previous_expiry_date=subscription.expiry_date,
            new_start_date=new_start,
            new_expiry_date=new_expiry,
            amount=invoice.total,
            created_by=user,
        )

    create_audit_log(
        request=request, user=user, action='subscription_renew', model_name='Subscription',
        object_id=str(subscription.id), object_name=subscription.subscription_number,
        changes={'invoice': invoice.invoice_number, 'new_expiry_date': str(new_expiry), 'amount': str(invoice.total)},
    )
    return renewal


def complete_renewals_for_invoices(invoices, user=None):
    """Extend the subscriptions whose renewal invoices are now fully paid"""
    renewals = SubscriptionRenewal.objects.select_related('subscription').filter(
        invoice__in=invoices, status='PENDING'
    )
    completed = []
    for renewal in renewals:
        subscription = renewal.subscription
        subscription.expiry_date = renewal.new_expiry_date
        subscription.notification_sent_30_days = False
        subscription.notification_sent_7_days = False
        subscription.notification_sent_expired = False
        subscription.status = evaluate_status(subscription)
        subscription.save()

        renewal.status = 'COMPLETED'
        renewal.completed_at = timezone.now()
        renewal.save(update_fields=['status', 'completed_at'])
        completed.append(renewal)

        create_audit_log(
            user=user, action='subscription_renew', model_name='Subscription',
            object_id=str(subscription.id), object_name=subscription.subscription_number,
            changes={'previous_expiry_date': str(renewal.previous_expiry_date),
                     'new_expiry_date': str(renewal.new_expiry_date)},
        )
        transaction.on_commit(lambda s=subscription: notify_customer(s, 'RENEWED'))
    return completed


def cancel_subscription(subscription, reason, user=None, request=None):
    if subscription.status == 'CANCELLED':
        raise BillingError('Subscription is already cancelled')
    if not reason:
        raise BillingError('A cancellation reason is required')

    subscription.status = 'CANCELLED'
    subscription.cancelled_at = timezone.now()
    subscription.cancellation_reason = reason
    subscription.save(update_fields=['status', 'cancelled_at', 'cancellation_reason', 'updated_at'])
    create_audit_log(
        request=request, user=user, action='subscription_cancel', model_name='Subscription',
        object_id=str(subscription.id), object_name=subscription.subscription_number,
        changes={'reason': reason},
    )
    notify_customer(subscription, 'CANCELLED')
    return subscription
