"""
SMS gateway client.
Every message is written to SmsLog first and then posted to the gateway as
JSON with the API key header. Gateway failures are recorded on the log row
and never raised to the caller.
"""
import os
import requests
import logging
from typing import Optional, Dict, Any
from django.conf import settings
from django.utils import timezone

from trackops.core.formatting import normalize_phone
from trackops.core.utils import to_decimal
from .models import SmsLog

logger = logging.getLogger(__name__)


def get_sms_config() -> Dict[str, Any]:
    """Gateway settings, read on every call so they can be changed at runtime"""
    return {
        'enabled': getattr(settings, 'SMS_ENABLED', os.getenv('SMS_ENABLED', 'false').lower() == 'true'),
        'api_url': getattr(settings, 'SMS_API_URL', os.getenv('SMS_API_URL', '')).rstrip('/'),
        'api_key': getattr(settings, 'SMS_API_KEY', os.getenv('SMS_API_KEY', '')),
        'sender_id': getattr(settings, 'SMS_SENDER_ID', os.getenv('SMS_SENDER_ID', 'TRACKOPS')),
        'timeout': getattr(settings, 'SMS_TIMEOUT', 15),
    }


def _headers(config):
    return {
        'Content-Type': 'application/json',
        'Accept': 'application/json',
        'X-API-Key': config['api_key'],
    }


def _fail(log: SmsLog, reason: str) -> SmsLog:
    log.status = 'FAILED'
    log.error_message = reason
    log.save(update_fields=['status', 'error_message'])
    logger.warning(f"SMS to {log.recipient} failed: {reason}")
    return log


def send_sms(phone, message: str, sms_type: str = 'GENERAL', customer=None, job=None, user=None) -> SmsLog:
    """
    Send one SMS and return its SmsLog.

    Invalid numbers and a disabled gateway fail without calling the gateway.
    """
    recipient = normalize_phone(phone)
    log = SmsLog.objects.create(
        recipient=recipient or str(phone or '')[:20],
        message=message,
        sms_type=sms_type,
        customer=customer,
        job=job,
        sent_by=user if user and user.is_authenticated else None,
    )

    if not message or not message.strip():
        return _fail(log, 'Message is empty')
    if recipient is None:
        return _fail(log, f"Invalid phone number: {phone}")

    config = get_sms_config()
    if not config['enabled']:
        return _fail(log, 'SMS gateway is disabled (SMS_ENABLED is off)')
    if not config['api_url'] or not config['api_key']:
        return _fail(log, 'SMS gateway is not configured')

    payload = {
        'to': recipient,
        'message': message,
        'sender_id': config['sender_id'],
    }
    try:
        response = requests.post(
            f"{config['api_url']}/send",
            json=payload,
            headers=_headers(config),
            timeout=config['timeout'],
        )
        response.raise_for_status()
        data = response.json() if response.content else {}
    except requests.exceptions.Timeout:
        return _fail(log, 'SMS gateway timed out')
    except requests.exceptions.RequestException as e:
        return _fail(log, f"SMS gateway error: {str(e)}")
    except ValueError:
        return _fail(log, 'SMS gateway returned an invalid response')

    if data.get('success') is False or data.get('status') in ('failed', 'error'):
        return _fail(log, data.get('message') or 'Rejected by SMS gateway')

    log.status = 'SENT'
    log.provider_message_id = str(data.get('message_id') or data.get('id') or '')
    log.cost = to_decimal(data.get('cost'), log.cost)
    log.sent_at = timezone.now()
    log.save(update_fields=['status', 'provider_message_id', 'cost', 'sent_at'])
    logger.info(f"SMS sent to {recipient} ({sms_type})")
    return log


def get_balance() -> Optional[Dict[str, Any]]:
    """Account balance reported by the gateway, or None when it cannot be fetched"""
    config = get_sms_config()
    if not config['enabled'] or not config['api_url'] or not config['api_key']:
        return None
    try:
        response = requests.get(
            f"{config['api_url']}/balance",
            headers=_headers(config),
            timeout=config['timeout'],
        )
        response.raise_for_status()
        data = response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error(f"Failed to fetch SMS balance: {str(e)}")
        return None
    return {
        'balance': data.get('balance'),
        'currency': data.get('currency', getattr(settings, 'CURRENCY', 'KES')),
    }
