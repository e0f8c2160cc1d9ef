"""
Tests for BI dashboards and the periodic management commands.
"""
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from erp_system.bi_analytics import (
    dashboard_name_for_role,
    executive_dashboard,
    get_dashboard_for_role,
    inventory_dashboard,
)
from erp_system.models import AMCContract, Alert, Role, UserRole, Warehouse
from erp_system.services.inventory_service import InventoryService
from erp_system.services.sales_service import SalesService
from erp_system.services.service_desk import ServiceDesk


@pytest.fixture
def low_item(pune):
    warehouse = Warehouse.objects.create(branch=pune, code='PUN-MAIN', name='Pune Main Store')
    item = InventoryService.create_inventory_item(
        pune, warehouse, 'MS-SHEET-16', 'MS Sheet', 'RAW_MATERIAL',
        standard_cost=Decimal('1200'), reorder_level=Decimal('10'),
    )
    InventoryService.record_stock_transaction(item, 'IN', Decimal('5'))
    item.refresh_from_db()
    return item


@pytest.mark.parametrize('role, name', [
    ('GENERAL_MANAGER', 'executive'),
    ('SALES_EXECUTIVE', 'sales'),
    ('WAREHOUSE_OPERATOR', 'inventory'),
    ('EMPLOYEE', None),
])
def test_dashboard_name_for_role(role, name):
    assert dashboard_name_for_role(role) == name


def test_inventory_dashboard(pune, mumbai, low_item):
    data = inventory_dashboard({'branch': pune})
    assert data['item_count'] == 1
    assert data['stock_value'] == Decimal('6000.00')
    assert data['low_stock_count'] == 1
    assert data['low_stock_items'][0]['item_code'] == 'MS-SHEET-16'
    assert inventory_dashboard({'branch': mumbai})['item_count'] == 0


def test_get_dashboard_for_role(pune, mumbai, low_item):
    name, data = get_dashboard_for_role('INVENTORY_MANAGER', {'branch': pune})
    assert name == 'inventory'
    assert data['low_stock_count'] == 1

    name, data = get_dashboard_for_role('SALES_EXECUTIVE', {'branch': mumbai})
    assert name == 'sales'
    assert data['total_leads'] == 0
    assert data['open_orders'] == 0

    name, data = get_dashboard_for_role('BRANCH_MANAGER', {'branch': pune})
    assert name == 'executive'
    assert data['kpis']['low_stock_count'] == 1

    assert get_dashboard_for_role('EMPLOYEE', {'branch': pune}) == (None, None)


def test_executive_dashboard_kpis(pune, low_item):
    SalesService.create_lead(pune, 'Ravi Kulkarni', '9876543210', 'DIRECT')
    kpis = executive_dashboard({})['kpis']
    assert kpis['low_stock_count'] == 1
    assert kpis['stock_value'] == Decimal('6000.00')
    assert kpis['headcount'] == 0
    assert set(kpis) >= {'total_sales_value', 'conversion_rate', 'total_outstanding', 'active_alerts'}


@pytest.mark.django_db
class TestBiApi:

    def test_role_dashboard(self, make_user, client_for, pune, low_item):
        client = client_for(make_user('op@pune.com', 'WAREHOUSE_OPERATOR', pune))
        response = client.get('/api/bi/my-dashboard/')
        assert response.status_code == 200
        assert response.json()['dashboard'] == 'inventory'
        assert response.json()['data']['low_stock_count'] == 1

    def test_role_without_dashboard_gets_404(self, make_user, client_for, pune):
        client = client_for(make_user('sunil@pune.com', 'EMPLOYEE', pune))
        response = client.get('/api/bi/my-dashboard/')
        assert response.status_code == 404
        assert response.json()['code'] == 'NOT_FOUND'

    def test_hr_manager_dashboard(self, make_user, client_for, pune):
        client = client_for(make_user('hr@pune.com', 'HR_MANAGER', pune))
        response = client.get('/api/bi/my-dashboard/')
        assert response.status_code == 200
        assert response.json()['dashboard'] == 'hr'
        assert response.json()['data']['headcount'] == 0

    def test_named_dashboard_needs_matching_grant(self, make_user, client_for, pune):
        client = client_for(make_user('sm@pune.com', 'SALES_MANAGER', pune))
        assert client.get('/api/bi/sales/').status_code == 200
        assert client.get('/api/bi/finance/').status_code == 403
        assert client.get('/api/bi/executive/').status_code == 403
        assert client.get('/api/bi/weather/').status_code == 404

    def test_executive_dashboard_for_branch_manager(self, make_user, client_for, pune):
        client = client_for(make_user('bm@pune.com', 'BRANCH_MANAGER', pune))
        response = client.get('/api/bi/executive/')
        assert response.status_code == 200
        assert 'kpis' in response.json()['data']


# Management commands
def test_init_roles_is_idempotent(db):
    out = StringIO()
    call_command('init_roles', stdout=out)
    assert '13 created' in out.getvalue()

    role = Role.objects.get(name='EMPLOYEE')
    role.permissions = []
    role.save()
    out = StringIO()
    call_command('init_roles', stdout=out)
    assert '0 created, 1 updated' in out.getvalue()
    role.refresh_from_db()
    assert role.permissions


def test_setup_admin_grants_global_super_admin(db, django_user_model):
    call_command('setup_admin', email='admin@steel.com', password='s3cret-pass', stdout=StringIO())
    user = django_user_model.objects.get(email='admin@steel.com')
    assert user.is_superuser
    assignment = UserRole.objects.get(user=user)
    assert assignment.role.name == 'SUPER_ADMIN'
    assert assignment.branch is None

    call_command('setup_admin', email='admin@steel.com', password='other-pass', stdout=StringIO())
    user.refresh_from_db()
    assert user.check_password('other-pass')
    assert UserRole.objects.filter(user=user).count() == 1


def test_run_alert_cycle(pune, low_item):
    customer = SalesService.create_customer(pune, 'Green Valley Apartments')
    ServiceDesk.create_amc_contract(
        customer, date(2020, 1, 1), timezone.localdate() - timedelta(days=1), Decimal('12000')
    )
    Alert.objects.all().delete()

    out = StringIO()
    call_command('run_alert_cycle', '--only', 'reorder', '--only', 'amc', stdout=out)
    assert 'reorder: 1' in out.getvalue()
    assert 'amc: 1' in out.getvalue()
    assert 'escalations' not in out.getvalue()
    assert Alert.objects.filter(module='INVENTORY').count() == 1
    assert AMCContract.objects.get().status == 'EXPIRED'


def test_health_check(db):
    out = StringIO()
    call_command('health_check', stdout=out)
    assert 'Connected' in out.getvalue()
    assert 'run init_roles' in out.getvalue()
