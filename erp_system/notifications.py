"""
Outbound notification channels for alerts: email, SMS (Twilio), WhatsApp.

Every sender returns {'success': bool, 'error': str | None} and never raises,
so a provider outage cannot break the alert workflow that called it.
"""
import logging
import re

import requests
from django.conf import settings
from django.core.mail import EmailMessage

logger = logging.getLogger(__name__)

WHATSAPP_TIMEOUT = 10  # seconds


def normalize_phone(phone: str) -> str:
    """Convert 98765 43210 / 098765-43210 to +919876543210."""
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) == 10:
        return f"+91{digits}"
    elif len(digits) == 11 and digits.startswith('0'):
        return f"+91{digits[1:]}"
    elif len(digits) == 12 and digits.startswith('91'):
        return f"+{digits}"
    return phone  # Return as-is if unexpected format


def send_email(recipient: str, subject: str, body: str) -> dict:
    if not recipient or '@' not in recipient:
        logger.warning(f"Email skipped - invalid recipient '{recipient}'")
        return {'success': False, 'error': 'Invalid email recipient'}

    try:
        email = EmailMessage(
            subject=subject,
            body=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[recipient],
        )
        email.send(fail_silently=False)
        logger.info(f"Email sent to {recipient}: {subject}")
        return {'success': True, 'error': None}
    except Exception as e:
        logger.error(f"Email send failed to {recipient}: {str(e)}")
        return {'success': False, 'error': str(e)}


def send_sms(phone: str, body: str) -> dict:
    """
    Send an SMS via Twilio.

    Returns:
        dict with 'success' (bool) and 'error' (str or None)
    """
    if not getattr(settings, 'TWILIO_ACCOUNT_SID', None):
        logger.info("SMS skipped - Twilio not configured")
        return {'success': False, 'error': 'SMS not configured'}

    if not phone:
        logger.warning("SMS skipped - no phone number provided")
        return {'success': False, 'error': 'No phone number'}

    try:
        from twilio.rest import Client

        client = Client(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN
        )

        normalized_phone = normalize_phone(phone)
        message = client.messages.create(
            body=body,
            from_=settings.TWILIO_PHONE_NUMBER,
            to=normalized_phone
        )
        logger.info(f"SMS sent to {normalized_phone} - SID: {message.sid}")
        return {'success': True, 'error': None}

    except Exception as e:
        logger.error(f"SMS send failed to {phone}: {str(e)}")
        return {'success': False, 'error': str(e)}


def send_whatsapp(phone: str, body: str) -> dict:
    """Send a text message through the WhatsApp Cloud API."""
    if not settings.WHATSAPP_PHONE_NUMBER_ID or not settings.WHATSAPP_ACCESS_TOKEN:
        logger.info("WhatsApp skipped - API not configured")
        return {'success': False, 'error': 'WhatsApp not configured'}

    if not phone:
        logger.warning("WhatsApp skipped - no phone number provided")
        return {'success': False, 'error': 'No phone number'}

    url = f"{settings.WHATSAPP_API_URL.rstrip('/')}/{settings.WHATSAPP_PHONE_NUMBER_ID}/messages"
    payload = {
        'messaging_product': 'whatsapp',
        'to': normalize_phone(phone).lstrip('+'),
        'type': 'text',
        'text': {'body': body},
    }
    try:
        response = requests.post(
            url,
            json=payload,
            headers={'Authorization': f"Bearer {settings.WHATSAPP_ACCESS_TOKEN}"},
            timeout=WHATSAPP_TIMEOUT,
        )
        response.raise_for_status()
        logger.info(f"WhatsApp message sent to {phone}")
        return {'success': True, 'error': None}
    except requests.RequestException as e:
        logger.error(f"WhatsApp send failed to {phone}: {str(e)}")
        return {'success': False, 'error': str(e)}
