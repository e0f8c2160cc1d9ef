"""
Shared helpers: request auditing, money rounding and API error responses.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from rest_framework import serializers, status
from rest_framework.response import Response

from .exceptions import ERPError, ValidationFailed

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


def _ip_of(request):
    try:
        xff = request.META.get('HTTP_X_FORWARDED_FOR')
        if xff:
            return xff.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR', '')
    except Exception:
        return ''


def audit(request, action: str, obj=None, message: str = '', extra: dict | None = None, branch=None):
    """Write an AuditLog row. Failures are logged and never raised."""
    try:
        from .models import AuditLog  # local import to avoid circular during migrations
        if branch is None:
            branch = getattr(obj, 'branch', None) if obj is not None else None
        if branch is None:
            branch = getattr(request, 'branch', None)
        user = getattr(request, 'user', None)
        AuditLog.objects.create(
            branch=branch,
            action=action,
            object_type=(obj.__class__.__name__ if obj is not None else ''),
            object_id=(str(getattr(obj, 'id', '') or getattr(obj, 'pk', '') or '')),
            message=message,
            user_email=(getattr(user, 'email', '') or getattr(user, 'username', '') or ''),
            ip=_ip_of(request),
            method=getattr(request, 'method', ''),
            path=getattr(request, 'path', ''),
            user_agent=request.META.get('HTTP_USER_AGENT', '')[:300],
            extra=extra,
        )
    except Exception as e:
        logger.warning(f"Audit log failed: {e}")


def to_decimal(value, field: str = 'value', default=None) -> Decimal:
    """Parse a request value into Decimal, raising ValidationFailed on junk."""
    if value is None or value == '':
        if default is not None:
            return Decimal(str(default))
        raise ValidationFailed(f"{field} is required")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationFailed(f"{field} must be a number")


def to_bool(value, field: str = 'value') -> bool:
    """Parse true/false, 1/0, yes/no (as JSON or form strings); anything else is a ValidationFailed."""
    try:
        return serializers.BooleanField().to_internal_value(value)
    except serializers.ValidationError:
        raise ValidationFailed(f"{field} must be true or false")


def money(value) -> Decimal:
    """Round half-up to two decimal places."""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def username_of(request) -> str:
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return 'system'
    return user.username


def error_response(exc: ERPError) -> Response:
    return Response(exc.as_dict(), status=exc.status_code)


def duplicate_response(exc) -> Response:
    return Response(
        {'error': 'Record already exists', 'code': 'DUPLICATE_RECORD', 'detail': str(exc)},
        status=status.HTTP_409_CONFLICT,
    )


def parse_date_field(value, field: str, required: bool = True):
    """Accept a date or an ISO 'YYYY-MM-DD' string."""
    if value is None or value == '':
        if required:
            raise ValidationFailed(f"{field} is required")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationFailed(f"{field} must be a date (YYYY-MM-DD)")
    return parsed


def parse_datetime_field(value, field: str, required: bool = False):
    """Accept an ISO datetime string; naive values are taken in the current timezone."""
    if value is None or value == '':
        if required:
            raise ValidationFailed(f"{field} is required")
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value))
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationFailed(f"{field} must be an ISO datetime")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def clamp_limit(request, default: int = 200) -> int:
    try:
        limit = int(request.GET.get('limit', default))
    except (TypeError, ValueError):
        limit = default
    return max(1, min(limit, 1000))
