"""
Alert, SLA and escalation service.

Alerts are raised by the other modules (reorder breaches, discount approvals,
service SLAs, AMC renewals). When an active SLAConfiguration exists for the
alert's (module, process) the due date is now + sla_hours, and the periodic
alert cycle (run_alert_cycle command) escalates overdue alerts along the
configured ladder and reminds assignees of alerts due within 24 hours.
"""
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count
from django.utils import timezone
import logging

from ..exceptions import ValidationFailed, WorkflowError
from .. import notifications

logger = logging.getLogger(__name__)

OPEN_STATUSES = ('ACTIVE', 'ACKNOWLEDGED')
REMINDER_WINDOW_HOURS = 24
CHANNELS = ('EMAIL', 'SMS', 'WHATSAPP', 'APP')


def _contact_for_user(user, channel):
    if channel == 'EMAIL':
        return user.email
    if channel in ('SMS', 'WHATSAPP'):
        profile = getattr(user, 'employee_profile', None)
        return profile.phone if profile else ''
    return user.username


def resolve_recipient(recipient, channel):
    """
    Turn a user, a user id or a literal address into the channel address.

    Escalation ladders store recipients as user ids or email addresses.
    """
    User = get_user_model()
    if isinstance(recipient, User):
        return _contact_for_user(recipient, channel)
    value = str(recipient or '').strip()
    if value.isdigit():
        user = User.objects.filter(pk=int(value)).first()
        if user:
            return _contact_for_user(user, channel)
    return value


class AlertService:

    @staticmethod
    def get_sla(module, process):
        from ..models import SLAConfiguration
        if not process:
            return None
        return SLAConfiguration.objects.filter(module=module, process=process, is_active=True).first()

    @staticmethod
    def create_alert(
        module,
        alert_type,
        title,
        message,
        process='',
        priority='MEDIUM',
        branch=None,
        reference_type='',
        reference_id='',
        assigned_to=None,
        due_date=None,
    ):
        """
        Raise an alert.

        The due date defaults to now + sla_hours of the active SLA for
        (module, process or alert_type). An EMAIL notification goes to the
        assignee, if any.
        """
        from ..models import Alert

        process = process or alert_type
        if due_date is None:
            sla = AlertService.get_sla(module, process)
            if sla:
                due_date = timezone.now() + timedelta(hours=sla.sla_hours)

        alert = Alert.objects.create(
            branch=branch,
            alert_type=alert_type,
            module=module,
            process=process,
            reference_type=reference_type,
            reference_id=str(reference_id or ''),
            title=title[:200],
            message=message,
            priority=priority,
            assigned_to=assigned_to,
            due_date=due_date,
        )
        logger.info(f"Alert created: {alert.id} {module}/{alert_type} [{priority}] {title}")

        if assigned_to:
            AlertService.send_notification(alert, 'EMAIL', assigned_to, message)
        return alert

    @staticmethod
    def open_alert_exists(alert_type, reference_type, reference_id):
        from ..models import Alert
        return Alert.objects.filter(
            alert_type=alert_type,
            reference_type=reference_type,
            reference_id=str(reference_id),
            status__in=OPEN_STATUSES,
        ).exists()

    @staticmethod
    def send_notification(alert, channel, recipient, message, notification_type='ALERT'):
        """
        Deliver and record one notification. Never raises on delivery failure.

        Returns:
            AlertNotification with status SENT or FAILED
        """
        from ..models import AlertNotification

        if channel not in CHANNELS:
            raise ValidationFailed(f"Unknown channel '{channel}'. Valid channels: {', '.join(CHANNELS)}")

        address = resolve_recipient(recipient, channel)
        if channel == 'EMAIL':
            result = notifications.send_email(address, f"[{alert.priority}] {alert.title}", message)
        elif channel == 'SMS':
            result = notifications.send_sms(address, message)
        elif channel == 'WHATSAPP':
            result = notifications.send_whatsapp(address, message)
        else:
            result = {'success': True, 'error': None}  # in-app: stored only

        notification = AlertNotification.objects.create(
            alert=alert,
            channel=channel,
            notification_type=notification_type,
            recipient=(address or str(recipient or ''))[:200],
            message=message,
            status='SENT' if result['success'] else 'FAILED',
            sent_at=timezone.now() if result['success'] else None,
            error=(result['error'] or '')[:500],
        )
        if not result['success']:
            logger.warning(f"Alert {alert.id} {channel} notification to {address} failed: {result['error']}")
        return notification

    @staticmethod
    @transaction.atomic
    def acknowledge_alert(alert, user=None):
        from ..models import Alert
        alert = Alert.objects.select_for_update().get(pk=alert.pk)
        if alert.status != 'ACTIVE':
            raise WorkflowError("Only ACTIVE alerts can be acknowledged", alert.status)
        alert.status = 'ACKNOWLEDGED'
        alert.acknowledged_at = timezone.now()
        if user is not None and alert.assigned_to_id is None:
            alert.assigned_to = user
        alert.updated_by = getattr(user, 'username', 'system')
        alert.save()
        return alert

    @staticmethod
    @transaction.atomic
    def resolve_alert(alert, user=None):
        from ..models import Alert
        alert = Alert.objects.select_for_update().get(pk=alert.pk)
        if alert.status == 'RESOLVED':
            raise WorkflowError("Alert is already resolved", alert.status)
        alert.status = 'RESOLVED'
        alert.resolved_at = timezone.now()
        alert.updated_by = getattr(user, 'username', 'system')
        alert.save()
        logger.info(f"Alert resolved: {alert.id} {alert.title}")
        return alert

    @staticmethod
    def resolve_alerts_for(reference_type, reference_id, alert_type=None, updated_by='system'):
        """Resolve every open alert pointing at a record. Returns the count."""
        from ..models import Alert
        qs = Alert.objects.filter(
            reference_type=reference_type,
            reference_id=str(reference_id),
            status__in=OPEN_STATUSES,
        )
        if alert_type:
            qs = qs.filter(alert_type=alert_type)
        now = timezone.now()
        return qs.update(status='RESOLVED', resolved_at=now, updated_at=now, updated_by=updated_by)

    @staticmethod
    def process_escalations(now=None):
        """
        Escalate overdue open alerts along their SLA ladder.

        For each alert past its due date, the highest ladder level whose
        hours_after <= hours overdue is notified once; escalation_level
        records the last level notified.

        Returns:
            Number of alerts escalated
        """
        from ..models import Alert

        now = now or timezone.now()
        escalated = 0
        overdue = Alert.objects.filter(status__in=OPEN_STATUSES, due_date__lt=now)

        for alert in overdue:
            try:
                sla = AlertService.get_sla(alert.module, alert.process)
                if not sla or not sla.escalation_levels:
                    continue

                hours_overdue = (now - alert.due_date).total_seconds() / 3600
                applicable = [
                    level for level in sla.escalation_levels
                    if float(level.get('hours_after', 0)) <= hours_overdue
                ]
                if not applicable:
                    continue
                target = max(applicable, key=lambda level: (float(level.get('hours_after', 0)), int(level.get('level', 0))))
                target_level = int(target.get('level', 0))
                if alert.escalation_level >= target_level:
                    continue

                AlertService.send_notification(
                    alert,
                    target.get('channel') or 'EMAIL',
                    target.get('recipient'),
                    f"ESCALATED: {alert.message}",
                    notification_type='ESCALATION',
                )
                alert.escalation_level = target_level
                alert.escalated_at = now
                if alert.priority in ('LOW', 'MEDIUM'):
                    alert.priority = 'HIGH'
                alert.save(update_fields=['escalation_level', 'escalated_at', 'priority', 'updated_at'])
                escalated += 1
                logger.info(f"Alert {alert.id} escalated to level {target_level} ({target.get('recipient')})")
            except Exception as e:
                logger.error(f"Error escalating alert {alert.id}: {e}", exc_info=True)

        logger.info(f"Processed {escalated} escalations")
        return escalated

    @staticmethod
    def generate_reminders(now=None):
        """
        Remind assignees of open alerts due within the next 24 hours.

        One REMINDER per alert. Returns the number of reminders sent.
        """
        from ..models import Alert

        now = now or timezone.now()
        window_end = now + timedelta(hours=REMINDER_WINDOW_HOURS)
        sent = 0
        due_soon = (
            Alert.objects.filter(
                status__in=OPEN_STATUSES,
                due_date__gt=now,
                due_date__lte=window_end,
                assigned_to__isnull=False,
            )
            .exclude(notifications__notification_type='REMINDER')
            .select_related('assigned_to')
            .distinct()
        )

        for alert in due_soon:
            hours_left = round((alert.due_date - now).total_seconds() / 3600)
            AlertService.send_notification(
                alert,
                'EMAIL',
                alert.assigned_to,
                f"REMINDER: {alert.message} - Due in {hours_left} hours",
                notification_type='REMINDER',
            )
            sent += 1

        logger.info(f"Generated {sent} reminders")
        return sent

    @staticmethod
    def get_alert_dashboard(queryset, now=None):
        """
        Counts for the alert dashboard.

        Args:
            queryset: Alert queryset already restricted to the caller's branches
        """
        now = now or timezone.now()
        by_status = {row['status']: row['n'] for row in queryset.values('status').annotate(n=Count('id'))}
        by_priority = {row['priority']: row['n'] for row in queryset.values('priority').annotate(n=Count('id'))}
        by_module = {row['module']: row['n'] for row in queryset.values('module').annotate(n=Count('id'))}
        overdue = queryset.filter(status__in=OPEN_STATUSES, due_date__lt=now).count()
        recent = list(
            queryset.order_by('-created_at').values(
                'id', 'title', 'module', 'priority', 'status', 'due_date', 'created_at'
            )[:10]
        )
        return {
            'total_alerts': queryset.count(),
            'active_alerts': by_status.get('ACTIVE', 0),
            'acknowledged_alerts': by_status.get('ACKNOWLEDGED', 0),
            'resolved_alerts': by_status.get('RESOLVED', 0),
            'critical_alerts': by_priority.get('CRITICAL', 0),
            'overdue_alerts': overdue,
            'by_status': by_status,
            'by_priority': by_priority,
            'by_module': by_module,
            'escalated_alerts': queryset.filter(escalation_level__gt=0).count(),
            'recent_alerts': recent,
        }

    @staticmethod
    def get_sla_metrics(queryset, now=None):
        """
        SLA compliance per module over alerts that carry a due date.

        An alert meets its SLA when it was resolved at or before its due
        date; open alerts past due count as breached.
        """
        now = now or timezone.now()
        modules = {}
        total = met = resolved_total = 0
        resolution_hours = []

        for alert in queryset.filter(due_date__isnull=False):
            row = modules.setdefault(alert.module, {
                'total': 0, 'resolved': 0, 'resolved_within_sla': 0, 'breached': 0, 'compliance_rate': 0.0,
            })
            row['total'] += 1
            total += 1
            if alert.status == 'RESOLVED' and alert.resolved_at:
                row['resolved'] += 1
                resolved_total += 1
                resolution_hours.append((alert.resolved_at - alert.created_at).total_seconds() / 3600)
                if alert.resolved_at <= alert.due_date:
                    row['resolved_within_sla'] += 1
                    met += 1
                else:
                    row['breached'] += 1
            elif alert.due_date < now:
                row['breached'] += 1

        for row in modules.values():
            row['compliance_rate'] = round(row['resolved_within_sla'] / row['total'] * 100, 2) if row['total'] else 0.0

        return {
            'total_slas': total,
            'resolved': resolved_total,
            'met_slas': met,
            'breached_slas': sum(r['breached'] for r in modules.values()),
            'sla_compliance_rate': round(met / total * 100, 2) if total else 0.0,
            'average_resolution_hours': round(sum(resolution_hours) / len(resolution_hours), 2) if resolution_hours else 0.0,
            'by_module': modules,
        }
