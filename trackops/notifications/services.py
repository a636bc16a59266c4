import logging

from django.contrib.auth import get_user_model
from django.db.models import Q

from .models import Notification

logger = logging.getLogger(__name__)

User = get_user_model()


def notify_user(user, title, message, notification_type='INFO', link=''):
    return Notification.objects.create(
        user=user,
        title=title,
        message=message,
        notification_type=notification_type,
        link=link or '',
    )


def notify_roles(roles, title, message, notification_type='INFO', link=''):
    """Create one notification per active user holding any of the roles (superusers included)"""
    users = User.objects.filter(is_active=True).filter(Q(role__in=roles) | Q(is_superuser=True)).distinct()
    notifications = Notification.objects.bulk_create([
        Notification(user=user, title=title, message=message, notification_type=notification_type, link=link or '')
        for user in users
    ])
    logger.debug(f"Notified {len(notifications)} users: {title}")
    return notifications
