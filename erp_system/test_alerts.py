"""
Tests for alerts: SLA due dates, acknowledge/resolve, escalation ladder,
reminders and notification channels.
"""
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests
from django.utils import timezone

from erp_system.exceptions import ValidationFailed, WorkflowError
from erp_system.models import Alert, AlertNotification, SLAConfiguration
from erp_system.notifications import normalize_phone
from erp_system.services.alert_service import AlertService


@pytest.fixture
def reorder_sla(db):
    return SLAConfiguration.objects.create(
        module='INVENTORY',
        process='REORDER',
        sla_hours=4,
        escalation_levels=[
            {'level': 1, 'recipient': 'bm@pune.com', 'channel': 'EMAIL', 'hours_after': 0},
            {'level': 2, 'recipient': 'gm@steel.com', 'channel': 'EMAIL', 'hours_after': 24},
        ],
    )


def _alert(branch=None, module='INVENTORY', process='REORDER', **kwargs):
    return AlertService.create_alert(
        module, 'REORDER_POINT', 'MS-SHEET-16 below reorder level', 'Stock 8 <= reorder level 10',
        process=process, branch=branch, **kwargs
    )


@pytest.mark.parametrize('raw, expected', [
    ('9876543210', '+919876543210'),
    ('098765-43210', '+919876543210'),
    ('91 98765 43210', '+919876543210'),
    ('12345', '12345'),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_due_date_from_sla(pune, reorder_sla):
    before = timezone.now()
    alert = _alert(pune)
    assert before + timedelta(hours=4) <= alert.due_date <= timezone.now() + timedelta(hours=4)
    assert alert.status == 'ACTIVE'


def test_no_sla_no_due_date(pune):
    assert _alert(pune, process='UNTRACKED').due_date is None


def test_acknowledge_and_resolve(pune, make_user):
    user = make_user('im@pune.com', 'INVENTORY_MANAGER', pune)
    alert = AlertService.acknowledge_alert(_alert(pune), user)
    assert alert.status == 'ACKNOWLEDGED'
    assert alert.assigned_to == user
    with pytest.raises(WorkflowError):
        AlertService.acknowledge_alert(alert, user)

    alert = AlertService.resolve_alert(alert, user)
    assert alert.status == 'RESOLVED'
    assert alert.resolved_at is not None
    with pytest.raises(WorkflowError):
        AlertService.resolve_alert(alert, user)


def test_resolve_alerts_for_stamps_records(pune):
    alert = _alert(pune, reference_type='INVENTORY_ITEM', reference_id=7)
    Alert.objects.filter(pk=alert.pk).update(updated_at=timezone.now() - timedelta(days=2))

    assert AlertService.resolve_alerts_for('INVENTORY_ITEM', 7, updated_by='im@pune.com') == 1
    alert.refresh_from_db()
    assert alert.status == 'RESOLVED'
    assert alert.updated_by == 'im@pune.com'
    assert alert.updated_at > timezone.now() - timedelta(minutes=1)
    assert AlertService.resolve_alerts_for('INVENTORY_ITEM', 7) == 0

def test_escalation_ladder(pune, reorder_sla, mailoutbox):
    alert = _alert(pune)
    due = alert.due_date

    assert AlertService.process_escalations(now=due - timedelta(minutes=5)) == 0
    assert AlertService.process_escalations(now=due + timedelta(hours=1)) == 1
    alert.refresh_from_db()
    assert alert.escalation_level == 1
    assert alert.priority == 'HIGH'

    # Same level is not notified twice
    assert AlertService.process_escalations(now=due + timedelta(hours=2)) == 0
    assert AlertService.process_escalations(now=due + timedelta(hours=25)) == 1
    alert.refresh_from_db()
    assert alert.escalation_level == 2

    assert [m.to for m in mailoutbox] == [['bm@pune.com'], ['gm@steel.com']]
    assert alert.notifications.filter(notification_type='ESCALATION', status='SENT').count() == 2


def test_resolved_alerts_do_not_escalate(pune, reorder_sla):
    alert = AlertService.resolve_alert(_alert(pune))
    assert AlertService.process_escalations(now=alert.due_date + timedelta(hours=30)) == 0


def test_reminders_sent_once(pune, reorder_sla, make_user, mailoutbox):
    user = make_user('im@pune.com', 'INVENTORY_MANAGER', pune)
    alert = _alert(pune, assigned_to=user)
    assert len(mailoutbox) == 1  # assignment notice

    assert AlertService.generate_reminders() == 1
    assert AlertService.generate_reminders() == 0
    reminder = alert.notifications.get(notification_type='REMINDER')
    assert reminder.message.startswith('REMINDER: ')
    assert reminder.recipient == 'im@pune.com'
    assert len(mailoutbox) == 2


def test_unknown_channel_rejected(pune):
    with pytest.raises(ValidationFailed):
        AlertService.send_notification(_alert(pune), 'PIGEON', 'x', 'hello')


def test_sms_not_configured_is_recorded_as_failed(pune, settings):
    settings.TWILIO_ACCOUNT_SID = ''
    notification = AlertService.send_notification(_alert(pune), 'SMS', '9876543210', 'Stock low')
    assert notification.status == 'FAILED'
    assert notification.error == 'SMS not configured'


def test_sms_via_twilio(pune, settings):
    settings.TWILIO_ACCOUNT_SID = 'AC123'
    settings.TWILIO_AUTH_TOKEN = 'token'
    settings.TWILIO_PHONE_NUMBER = '+15550001111'
    with patch('twilio.rest.Client') as client_cls:
        client_cls.return_value.messages.create.return_value.sid = 'SM1'
        notification = AlertService.send_notification(_alert(pune), 'SMS', '9876543210', 'Stock low')

    assert notification.status == 'SENT'
    client_cls.assert_called_once_with('AC123', 'token')
    kwargs = client_cls.return_value.messages.create.call_args.kwargs
    assert kwargs['to'] == '+919876543210'
    assert kwargs['from_'] == '+15550001111'


def test_whatsapp_sent_and_failed(pune, settings):
    settings.WHATSAPP_PHONE_NUMBER_ID = '1055'
    settings.WHATSAPP_ACCESS_TOKEN = 'wa-token'
    alert = _alert(pune)

    with patch('erp_system.notifications.requests.post', return_value=MagicMock()) as post:
        sent = AlertService.send_notification(alert, 'WHATSAPP', '9876543210', 'Stock low')
    assert sent.status == 'SENT'
    assert post.call_args.args[0].endswith('/1055/messages')
    assert post.call_args.kwargs['json']['to'] == '919876543210'

    with patch('erp_system.notifications.requests.post', side_effect=requests.ConnectionError('down')):
        failed = AlertService.send_notification(alert, 'WHATSAPP', '9876543210', 'Stock low')
    assert failed.status == 'FAILED'
    assert 'down' in failed.error


def test_dashboard_and_sla_metrics(pune, reorder_sla):
    resolved = AlertService.resolve_alert(_alert(pune))
    _alert(pune, priority='CRITICAL')

    dashboard = AlertService.get_alert_dashboard(Alert.objects.all())
    assert dashboard['total_alerts'] == 2
    assert dashboard['active_alerts'] == 1
    assert dashboard['critical_alerts'] == 1

    metrics = AlertService.get_sla_metrics(Alert.objects.all(), now=resolved.due_date + timedelta(hours=1))
    assert metrics['total_slas'] == 2
    assert metrics['met_slas'] == 1
    assert metrics['breached_slas'] == 1
    assert metrics['sla_compliance_rate'] == 50.0


# API
@pytest.mark.django_db
class TestAlertApi:

    def test_sales_executive_sees_only_sales_alerts(self, make_user, client_for, pune):
        _alert(pune)
        sales = _alert(pune, module='SALES', process='DISCOUNT_APPROVAL')
        client = client_for(make_user('exec@pune.com', 'SALES_EXECUTIVE', pune))
        response = client.get('/api/alerts/')
        assert response.status_code == 200
        assert [a['id'] for a in response.json()] == [sales.id]

    def test_other_branch_alerts_hidden(self, make_user, client_for, pune, mumbai):
        _alert(pune)
        global_alert = _alert(None)
        client = client_for(make_user('im@mumbai.com', 'INVENTORY_MANAGER', mumbai))
        assert [a['id'] for a in client.get('/api/alerts/').json()] == [global_alert.id]

    def test_manual_alert_needs_create_grant(self, make_user, client_for, pune):
        payload = {'module': 'inventory', 'title': 'Forklift down', 'priority': 'high'}
        manager = client_for(make_user('im@pune.com', 'INVENTORY_MANAGER', pune))
        assert manager.post('/api/alerts/', payload, format='json').status_code == 403

        branch_manager = client_for(make_user('bm@pune.com', 'BRANCH_MANAGER', pune))
        response = branch_manager.post('/api/alerts/', payload, format='json')
        assert response.status_code == 201
        assert response.json()['module'] == 'INVENTORY'
        assert Alert.objects.get().branch == pune

    def test_acknowledge_via_api(self, make_user, client_for, pune):
        alert = _alert(pune)
        client = client_for(make_user('im@pune.com', 'INVENTORY_MANAGER', pune))
        response = client.post(f'/api/alerts/{alert.id}/acknowledge/')
        assert response.status_code == 200
        assert response.json()['status'] == 'ACKNOWLEDGED'
        response = client.post(f'/api/alerts/{alert.id}/acknowledge/')
        assert response.status_code == 409

    def test_notify_app_channel(self, make_user, client_for, pune):
        alert = _alert(pune)
        client = client_for(make_user('im@pune.com', 'INVENTORY_MANAGER', pune))
        response = client.post(f'/api/alerts/{alert.id}/notify/', {'channel': 'app', 'recipient': 'ravi'},
                               format='json')
        assert response.status_code == 201
        assert response.json()['status'] == 'SENT'
        assert AlertNotification.objects.filter(alert=alert, channel='APP').count() == 1

    def test_sla_configuration_writes_limited_to_managers(self, make_user, client_for, pune):
        payload = {
            'module': 'service', 'process': 'response', 'sla_hours': 24,
            'escalation_levels': [{'level': 1, 'hours_after': 2, 'recipient': 'svc@pune.com'}],
        }
        inventory = client_for(make_user('im@pune.com', 'INVENTORY_MANAGER', pune))
        assert inventory.get('/api/sla-configurations/').status_code == 200
        assert inventory.post('/api/sla-configurations/', payload, format='json').status_code == 403

        general = client_for(make_user('gm@steel.com', 'GENERAL_MANAGER'))
        response = general.post('/api/sla-configurations/', payload, format='json')
        assert response.status_code == 201
        config = SLAConfiguration.objects.get()
        assert (config.module, config.process) == ('SERVICE', 'RESPONSE')
