"""Shared helpers: audit logging, document numbers, pagination"""
import logging
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.core.paginator import Paginator
from django.utils import timezone
from rest_framework.response import Response

from .models import AuditLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
TWO_PLACES = Decimal('0.01')


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, status_change, payment_process, etc.)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., job number, customer name)
        object_reference: Reference identifier (e.g., invoice number, IMEI)
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        ip_address = get_client_ip(request) if request else None

        if not action or not model_name or not object_id:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        return AuditLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=ip_address
        )
    except Exception as e:
        # Audit logging never fails the main operation
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def generate_reference(prefix, model, field):
    """Generate a unique document number such as INV-20250105-1A2B3C4D"""
    def candidate():
        return f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"

    reference = candidate()
    while model.objects.filter(**{field: reference}).exists():
        reference = candidate()
    return reference


def to_decimal(value, default=None):
    """Parse a request value into a Decimal, returning default when it is not numeric"""
    if value is None or value == '':
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def quantize_money(value):
    """Round a monetary amount to 2 decimal places, half-up"""
    return Decimal(value or 0).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def paginate(request, queryset, serializer_class, context=None):
    """Paginate a queryset with the page/limit query params and build the list response"""
    page = max(parse_int(request.query_params.get('page'), 1), 1)
    limit = parse_int(request.query_params.get('limit'), DEFAULT_PAGE_SIZE)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)

    serializer = serializer_class(page_obj, many=True, context=context or {'request': request})
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })
