"""
Alerts API: alert inbox, acknowledge/resolve, manual notifications,
dashboard, SLA metrics and SLA configuration.
"""
from django.db import IntegrityError
from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from steelerp_project.decorators import require_role_for_writes

from .exceptions import ERPError, ValidationFailed
from .models import Alert, SLAConfiguration
from .permissions import has_permission, module_permission_required
from .security import get_branch_filter, resolve_write_branch
from .serializers import (
    AlertDetailSerializer,
    AlertNotificationSerializer,
    AlertSerializer,
    SLAConfigurationSerializer,
)
from .services.alert_service import CHANNELS, AlertService
from .utils import audit, clamp_limit, duplicate_response, error_response, username_of

logger = logging.getLogger(__name__)

ALERT_MODULES = ('SALES', 'INVENTORY', 'MANUFACTURING', 'SERVICE', 'HR', 'FINANCE')
PRIORITIES = ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')


def _data(request):
    return request.data if isinstance(request.data, dict) else {}


def _not_found(label):
    return Response({'error': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)


def _server_error(name, e, message):
    logger.error(f"{name} error: {e}", exc_info=True)
    return Response({'error': message, 'detail': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _visible_alerts(request):
    """
    Alerts in the caller's branches (plus branch-less ones), limited to the
    modules the caller holds an ALERTS:READ grant for.
    """
    alerts = Alert.objects.all()
    branch_filter = get_branch_filter(request)
    if branch_filter:
        alerts = alerts.filter(Q(**branch_filter) | Q(branch__isnull=True))
    if not has_permission(request, 'ALERTS', 'READ', '*'):
        modules = [m for m in ALERT_MODULES if has_permission(request, 'ALERTS', 'READ', m)]
        alerts = alerts.filter(module__in=modules)
    return alerts


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'READ')
def alert_list(request):
    """
    GET filters: status (default open), module, priority, mine=true, overdue=true.
    POST raises a manual alert: {module, alert_type, title, message, priority?,
    process?, reference_type?, reference_id?, branch_id?}
    """
    try:
        if request.method == 'GET':
            alerts = _visible_alerts(request)
            wanted = (request.GET.get('status') or '').upper()
            if wanted == 'ALL':
                pass
            elif wanted:
                alerts = alerts.filter(status=wanted)
            else:
                alerts = alerts.exclude(status='RESOLVED')
            for param in ('module', 'priority'):
                if request.GET.get(param):
                    alerts = alerts.filter(**{param: request.GET[param].upper()})
            if request.GET.get('mine') == 'true':
                alerts = alerts.filter(assigned_to=request.user)
            if request.GET.get('overdue') == 'true':
                alerts = alerts.filter(due_date__lt=timezone.now()).exclude(status='RESOLVED')
            alerts = alerts.order_by('-created_at')[:clamp_limit(request)]
            return Response(AlertSerializer(alerts, many=True).data)

        if not has_permission(request, 'ALERTS', 'CREATE', '*'):
            return Response({'error': 'Permission denied', 'code': 'INSUFFICIENT_PERMISSIONS'},
                            status=status.HTTP_403_FORBIDDEN)
        data = _data(request)
        module = (data.get('module') or '').upper()
        priority = (data.get('priority') or 'MEDIUM').upper()
        if module not in ALERT_MODULES:
            raise ValidationFailed(f"module must be one of {', '.join(ALERT_MODULES)}")
        if priority not in PRIORITIES:
            raise ValidationFailed(f"priority must be one of {', '.join(PRIORITIES)}")
        title = (data.get('title') or '').strip()
        if not title:
            raise ValidationFailed('title is required')

        alert = AlertService.create_alert(
            module,
            (data.get('alert_type') or 'MANUAL').upper(),
            title,
            data.get('message') or title,
            process=(data.get('process') or '').upper(),
            priority=priority,
            branch=resolve_write_branch(request, data.get('branch_id')),
            reference_type=(data.get('reference_type') or '').upper(),
            reference_id=data.get('reference_id') or '',
            assigned_to=request.user if data.get('assign_to_me') else None,
        )
        audit(request, 'ALERT_CREATED', alert, f"Manual alert: {alert.title}", branch=alert.branch)
        return Response(AlertSerializer(alert).data, status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('alert_list', e, 'Failed to process alerts')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'READ')
def alert_detail(request, alert_id: int):
    try:
        alert = _visible_alerts(request).get(id=alert_id)
        return Response(AlertDetailSerializer(alert).data)
    except Alert.DoesNotExist:
        return _not_found('Alert')
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'READ')
def alert_acknowledge(request, alert_id: int):
    try:
        alert = _visible_alerts(request).get(id=alert_id)
        alert = AlertService.acknowledge_alert(alert, request.user)
        audit(request, 'ALERT_ACKNOWLEDGED', alert, f"Alert acknowledged: {alert.title}", branch=alert.branch)
        return Response(AlertSerializer(alert).data)
    except Alert.DoesNotExist:
        return _not_found('Alert')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('alert_acknowledge', e, 'Failed to acknowledge alert')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'UPDATE')
def alert_resolve(request, alert_id: int):
    try:
        alert = _visible_alerts(request).get(id=alert_id)
        alert = AlertService.resolve_alert(alert, request.user)
        audit(request, 'ALERT_RESOLVED', alert, f"Alert resolved: {alert.title}", branch=alert.branch)
        return Response(AlertSerializer(alert).data)
    except Alert.DoesNotExist:
        return _not_found('Alert')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('alert_resolve', e, 'Failed to resolve alert')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'UPDATE')
def alert_notify(request, alert_id: int):
    """{channel: EMAIL|SMS|WHATSAPP|APP, recipient, message?} sends one notification now."""
    try:
        data = _data(request)
        alert = _visible_alerts(request).get(id=alert_id)
        channel = (data.get('channel') or '').upper()
        if channel not in CHANNELS:
            raise ValidationFailed(f"channel must be one of {', '.join(CHANNELS)}")
        recipient = (data.get('recipient') or '').strip()
        if not recipient:
            raise ValidationFailed('recipient is required')
        notification = AlertService.send_notification(
            alert, channel, recipient, data.get('message') or alert.message
        )
        audit(request, 'ALERT_NOTIFIED', alert, f"{channel} to {recipient}: {notification.status}",
              branch=alert.branch)
        return Response(AlertNotificationSerializer(notification).data, status=status.HTTP_201_CREATED)
    except Alert.DoesNotExist:
        return _not_found('Alert')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('alert_notify', e, 'Failed to send notification')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'READ')
def alert_dashboard(request):
    try:
        return Response(AlertService.get_alert_dashboard(_visible_alerts(request)))
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('alert_dashboard', e, 'Failed to build alert dashboard')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'READ')
def sla_metrics(request):
    try:
        return Response(AlertService.get_sla_metrics(_visible_alerts(request)))
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('sla_metrics', e, 'Failed to compute SLA metrics')


# SLA configuration
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'READ')
@require_role_for_writes('GENERAL_MANAGER', 'BRANCH_MANAGER')
def sla_configuration_list(request):
    """POST: {module, process, sla_hours, escalation_levels: [{level, recipient, channel, hours_after}]}"""
    try:
        if request.method == 'GET':
            configs = SLAConfiguration.objects.all().order_by('module', 'process')
            if request.GET.get('active') == 'true':
                configs = configs.filter(is_active=True)
            return Response(SLAConfigurationSerializer(configs, many=True).data)

        data = {k: v for k, v in _data(request).items()}
        for key in ('module', 'process'):
            if data.get(key):
                data[key] = str(data[key]).upper()
        serializer = SLAConfigurationSerializer(data=data)
        if not serializer.is_valid():
            raise ValidationFailed('Invalid SLA configuration', detail=serializer.errors)
        config = serializer.save(updated_by=username_of(request))
        audit(request, 'SLA_CONFIGURED', config, f"SLA {config.module}/{config.process}: {config.sla_hours}h")
        return Response(SLAConfigurationSerializer(config).data, status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        return _server_error('sla_configuration_list', e, 'Failed to process SLA configuration')


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
@module_permission_required('ALERTS', 'READ')
@require_role_for_writes('GENERAL_MANAGER', 'BRANCH_MANAGER')
def sla_configuration_detail(request, config_id: int):
    """DELETE deactivates the SLA."""
    try:
        config = SLAConfiguration.objects.get(id=config_id)
        if request.method == 'GET':
            return Response(SLAConfigurationSerializer(config).data)

        if request.method == 'DELETE':
            config.is_active = False
            config.updated_by = username_of(request)
            config.save()
            audit(request, 'SLA_DEACTIVATED', config, f"SLA {config.module}/{config.process} deactivated")
            return Response({'ok': True, 'id': config.id, 'is_active': False})

        data = {k: v for k, v in _data(request).items() if k in ('sla_hours', 'escalation_levels', 'is_active')}
        serializer = SLAConfigurationSerializer(config, data=data, partial=True)
        if not serializer.is_valid():
            raise ValidationFailed('Invalid SLA configuration', detail=serializer.errors)
        config = serializer.save(updated_by=username_of(request))
        audit(request, 'SLA_UPDATED', config, f"SLA {config.module}/{config.process} updated",
              extra={'fields': sorted(data.keys())})
        return Response(SLAConfigurationSerializer(config).data)
    except SLAConfiguration.DoesNotExist:
        return _not_found('SLA configuration')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('sla_configuration_detail', e, 'Failed to process SLA configuration')
