"""
Tests for the service desk: assignment, completion with parts, invoicing,
warranty lookup, AMC contracts and technician metrics.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from erp_system.exceptions import ValidationFailed, WorkflowError
from erp_system.models import AMCContract, Alert, ServiceRequest, SLAConfiguration, Warehouse
from erp_system.services.hr_service import HRService
from erp_system.services.inventory_service import InventoryService
from erp_system.services.sales_service import SalesService
from erp_system.services.service_desk import ServiceDesk


@pytest.fixture
def customer(pune):
    return SalesService.create_customer(pune, 'Green Valley Apartments', phone='9822011111')


@pytest.fixture
def technicians(pune):
    return [
        HRService.create_employee(pune, 'Ajay', 'SERVICE', date(2023, 1, 1), employee_code='T-002'),
        HRService.create_employee(pune, 'Vijay', 'SERVICE', date(2023, 1, 1), employee_code='T-001'),
    ]


@pytest.fixture
def hinge(pune):
    warehouse = Warehouse.objects.create(branch=pune, code='PUN-SVC', name='Service Store')
    item = InventoryService.create_inventory_item(
        pune, warehouse, 'HINGE-HD', 'Heavy Duty Hinge', 'CONSUMABLE', standard_cost=Decimal('350')
    )
    InventoryService.record_stock_transaction(item, 'IN', Decimal('20'))
    item.refresh_from_db()
    return item


def _repair(customer, **kwargs):
    return ServiceDesk.create_service_request(customer, 'REPAIR', 'Door not closing properly', **kwargs)


def test_create_request(customer):
    request = _repair(customer)
    assert request.service_number.startswith('SRV')
    assert request.status == 'SCHEDULED'
    assert request.branch == customer.branch
    assert not Alert.objects.exists()


def test_response_alert_when_sla_configured(customer):
    SLAConfiguration.objects.create(module='SERVICE', process='RESPONSE', sla_hours=24)
    request = _repair(customer, priority='URGENT')
    alert = Alert.objects.get(alert_type='SERVICE_RESPONSE')
    assert alert.reference_id == str(request.id)
    assert alert.priority == 'HIGH'
    assert alert.due_date is not None


def test_invalid_service_type(customer):
    with pytest.raises(ValidationFailed):
        ServiceDesk.create_service_request(customer, 'PAINTING', 'Repaint')


def test_auto_assign_least_loaded_technician(customer, technicians):
    ajay, vijay = technicians
    first = ServiceDesk.assign_technician(_repair(customer))
    # Tie on load: lowest employee code wins
    assert first.assigned_to == vijay
    assert first.status == 'IN_PROGRESS'

    second = ServiceDesk.assign_technician(_repair(customer))
    assert second.assigned_to == ajay


def test_assign_without_technicians(customer):
    with pytest.raises(ValidationFailed):
        ServiceDesk.assign_technician(_repair(customer))


def test_complete_with_parts_and_invoice(customer, technicians, hinge):
    request = ServiceDesk.assign_technician(_repair(customer))
    request = ServiceDesk.complete_service(
        request, Decimal('2'), parts=[{'item': hinge, 'quantity': Decimal('2')}], customer_rating=5
    )
    assert request.status == 'COMPLETED'
    assert request.labor_cost == Decimal('1000.00')
    assert request.parts_cost == Decimal('700.00')
    assert request.total_cost == Decimal('1700.00')
    hinge.refresh_from_db()
    assert hinge.current_stock == Decimal('18')

    invoice = ServiceDesk.generate_service_invoice(request)
    assert invoice.subtotal == Decimal('1700.00')
    assert invoice.lines.count() == 2
    assert invoice.service_request == request
    with pytest.raises(WorkflowError):
        ServiceDesk.generate_service_invoice(request)
    with pytest.raises(WorkflowError):
        ServiceDesk.complete_service(request, Decimal('1'))


def test_invoice_requires_completion(customer):
    with pytest.raises(WorkflowError):
        ServiceDesk.generate_service_invoice(_repair(customer))


def test_service_invoice_checks_current_request_row(customer):
    request = _repair(customer)
    stale = ServiceRequest.objects.get(pk=request.pk)
    ServiceRequest.objects.filter(pk=request.pk).update(status='COMPLETED', labor_hours=Decimal('1'))
    ServiceDesk.generate_service_invoice(stale)
    with pytest.raises(WorkflowError):
        ServiceDesk.generate_service_invoice(stale)
    assert request.invoices.count() == 1


def test_cancel_request_resolves_alerts(customer):
    SLAConfiguration.objects.create(module='SERVICE', process='RESPONSE', sla_hours=24)
    request = ServiceDesk.cancel_service_request(_repair(customer))
    assert request.status == 'CANCELLED'
    assert Alert.objects.get().status == 'RESOLVED'


def test_warranty_lookup(customer):
    today = date(2026, 6, 1)
    ServiceDesk.create_service_request(
        customer, 'INSTALLATION', 'Install main door',
        warranty_number='WR-1001', warranty_end_date=today + timedelta(days=100),
    )
    found = ServiceDesk.validate_warranty(ServiceRequest.objects.all(), 'WR-1001', today=today)
    assert found['days_remaining'] == 100
    assert found['customer'] == customer.name
    assert ServiceDesk.validate_warranty(
        ServiceRequest.objects.all(), 'WR-1001', today=today + timedelta(days=101)
    ) is None
    assert ServiceDesk.validate_warranty(ServiceRequest.objects.all(), 'WR-0000', today=today) is None


def test_amc_contract_and_expiry(customer):
    contract = ServiceDesk.create_amc_contract(customer, date(2025, 1, 1), date(2025, 12, 31), Decimal('12000'))
    assert contract.contract_number == 'AMC20250001'
    renewal = Alert.objects.get(alert_type='AMC_RENEWAL')
    assert timezone.localtime(renewal.due_date).date() == date(2025, 12, 1)

    with pytest.raises(ValidationFailed):
        ServiceDesk.create_amc_contract(customer, date(2025, 1, 1), date(2024, 12, 31), Decimal('100'))

    assert ServiceDesk.expire_amc_contracts(AMCContract.objects.all(), today=date(2026, 1, 1)) == 1
    contract.refresh_from_db()
    assert contract.status == 'EXPIRED'


def test_service_metrics(customer, technicians):
    request = ServiceDesk.assign_technician(_repair(customer))
    ServiceDesk.assign_technician(_repair(customer))
    ServiceDesk.complete_service(request, Decimal('1'), customer_rating=4)

    metrics = ServiceDesk.get_service_metrics(ServiceRequest.objects.all())
    assert metrics['summary']['total_service_requests'] == 2
    assert metrics['summary']['completed_services'] == 1
    assert metrics['summary']['average_rating'] == 4.0
    rows = {row['employee_code']: row for row in metrics['technicians']}
    assert rows['T-001']['completion_rate'] == 100.0
    assert rows['T-002']['completed_services'] == 0

    with pytest.raises(ValidationFailed):
        ServiceDesk.get_service_metrics(ServiceRequest.objects.all(), period='2026/13')


# API
@pytest.mark.django_db
class TestServiceApi:

    def test_technician_sees_only_own_requests(self, make_user, client_for, pune, customer):
        tech_user = make_user('vijay@pune.com', 'SERVICE_TECHNICIAN', pune)
        mine = HRService.create_employee(pune, 'Vijay', 'SERVICE', date(2023, 1, 1), user=tech_user)
        ServiceDesk.assign_technician(_repair(customer), technician=mine)
        _repair(customer)

        response = client_for(tech_user).get('/api/service-requests/')
        assert response.status_code == 200
        assert len(response.json()) == 1
        assert response.json()[0]['assigned_to'] == mine.id

    def test_technician_completes_via_api(self, make_user, client_for, pune, customer, hinge):
        tech_user = make_user('vijay@pune.com', 'SERVICE_TECHNICIAN', pune)
        mine = HRService.create_employee(pune, 'Vijay', 'SERVICE', date(2023, 1, 1), user=tech_user)
        request = ServiceDesk.assign_technician(_repair(customer), technician=mine)

        response = client_for(tech_user).post(f'/api/service-requests/{request.id}/complete/', {
            'labor_hours': '1.5',
            'parts': [{'inventory_item_id': hinge.id, 'quantity': '1'}],
            'customer_rating': 5,
        }, format='json')
        assert response.status_code == 200
        assert response.json()['total_cost'] == '1100.00'

    def test_manager_creates_request(self, make_user, client_for, pune, customer):
        manager = make_user('svc@pune.com', 'SERVICE_MANAGER', pune)
        response = client_for(manager).post('/api/service-requests/', {
            'customer_id': customer.id, 'service_type': 'maintenance', 'description': 'Annual check',
        }, format='json')
        assert response.status_code == 201
        assert response.json()['service_type'] == 'MAINTENANCE'
