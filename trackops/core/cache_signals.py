"""
Cache invalidation signals
Invalidate the dashboard whenever the records it summarises change
"""
from django.apps import apps
from django.db.models.signals import post_save, post_delete
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_dashboard_cache

logger = logging.getLogger(__name__)

_thread_locals = threading.local()

DASHBOARD_MODELS = [
    'customers.Customer',
    'customers.Vehicle',
    'jobs.Job',
    'jobs.Requisition',
    'jobs.AdvanceRequest',
    'billing.Invoice',
    'billing.Receipt',
    'subscriptions.Subscription',
    'inventory.StockBatch',
]


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation, e.g. during bulk imports.
    The dashboard is invalidated once when the block exits.
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False
        invalidate_dashboard_cache()


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def dashboard_source_changed(sender, **kwargs):
    if is_suspended():
        return
    invalidate_dashboard_cache()


def connect_dashboard_signals():
    for label in DASHBOARD_MODELS:
        model = apps.get_model(label)
        post_save.connect(dashboard_source_changed, sender=model, dispatch_uid=f'dashboard_save_{label}')
        post_delete.connect(dashboard_source_changed, sender=model, dispatch_uid=f'dashboard_delete_{label}')
    logger.debug(f"Dashboard cache signals connected for {len(DASHBOARD_MODELS)} models")
