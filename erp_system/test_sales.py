"""
Tests for the lead to order flow: leads, estimates, discount approvals,
BOMs and sales orders with production planning.
"""
from datetime import date
from decimal import Decimal

import pytest

from erp_system.exceptions import ActionNotAllowed, InsufficientStock, ValidationFailed, WorkflowError
from erp_system.models import Alert, Lead, ProductionOrder, SalesOrder, Warehouse
from erp_system.services.inventory_service import InventoryService
from erp_system.services.sales_service import SalesService, get_required_approval_level

DOOR = {'width': 2, 'height': 3, 'quantity': 2}


@pytest.fixture
def customer(pune):
    return SalesService.create_customer(pune, 'Shree Constructions', phone='9876543210', city='Pune')


@pytest.fixture
def lead(pune):
    return SalesService.create_lead(pune, 'Ravi Kulkarni', '9876543210', 'REFERRAL')


@pytest.fixture
def door_product(pune):
    """Steel door with an approved BOM of 2 sheets (10% scrap) per unit."""
    warehouse = Warehouse.objects.create(branch=pune, code='PUN-MAIN', name='Pune Main Store')
    sheet = InventoryService.create_inventory_item(pune, warehouse, 'MS-SHEET-16', 'MS Sheet', 'RAW_MATERIAL')
    InventoryService.record_stock_transaction(sheet, 'IN', Decimal('50'))
    product = SalesService.create_product(pune, 'DOOR-STD', 'Standard Steel Door', base_price=Decimal('15000'))
    bom = SalesService.create_bom(product, [
        {'item': sheet, 'quantity': Decimal('2'), 'scrap_percentage': Decimal('10')},
    ])
    SalesService.approve_bom(bom)
    return product


@pytest.mark.parametrize('pct, expected', [
    ('5', (1, 'TEAM_LEADER')),
    ('5.01', (2, 'SALES_MANAGER')),
    ('10', (2, 'SALES_MANAGER')),
    ('15', (3, 'BRANCH_MANAGER')),
    ('22', (4, 'GENERAL_MANAGER')),
])
def test_required_approval_level(pct, expected):
    assert get_required_approval_level(Decimal(pct)) == expected


# Leads
def test_lead_numbering_and_source_validation(pune, lead):
    assert lead.lead_number.startswith('LD')
    assert lead.status == 'NEW'
    with pytest.raises(ValidationFailed):
        SalesService.create_lead(pune, 'Asha', '9800000000', 'NEWSPAPER')


def test_lead_transitions(lead):
    SalesService.update_lead_status(lead, 'CONTACTED')
    with pytest.raises(WorkflowError):
        SalesService.update_lead_status(lead, 'CONVERTED')
    SalesService.update_lead_status(lead, 'LOST')
    with pytest.raises(WorkflowError):
        SalesService.update_lead_status(lead, 'QUALIFIED')


def test_site_measurement_qualifies_lead(lead):
    SalesService.record_site_measurement(lead, [{'opening': 'Main door', 'width': 1.2, 'height': 2.1}])
    lead.refresh_from_db()
    assert lead.status == 'QUALIFIED'


# Estimates and discounts
def test_estimate_without_discount(lead):
    estimate, breakdown = SalesService.generate_estimation(lead, [DOOR])
    assert estimate.total_amount == Decimal('5088.00')
    assert estimate.final_amount == Decimal('5088.00')
    assert estimate.approval_status == 'NOT_REQUIRED'
    assert estimate.version == 1
    assert breakdown['subtotal'] == Decimal('5088.00')
    lead.refresh_from_db()
    assert lead.status == 'ESTIMATED'

    second, _ = SalesService.generate_estimation(lead, [DOOR])
    assert second.version == 2


def test_small_discount_goes_to_team_leader_without_alert(lead):
    estimate, _ = SalesService.generate_estimation(lead, [DOOR], discount_percentage=Decimal('5'))
    assert estimate.approval_status == 'PENDING'
    assert estimate.discount_amount == Decimal('254.40')
    assert estimate.final_amount == Decimal('4833.60')
    approval = estimate.discount_approvals.get()
    assert approval.approval_level == 1
    assert not Alert.objects.filter(alert_type='DISCOUNT_APPROVAL').exists()


def test_large_discount_raises_alert_and_needs_senior_approver(make_user, lead):
    estimate, _ = SalesService.generate_estimation(lead, [DOOR], discount_percentage=Decimal('12'))
    approval = estimate.discount_approvals.get()
    assert approval.approval_level == 3
    assert approval.approver_role == 'BRANCH_MANAGER'
    assert Alert.objects.filter(alert_type='DISCOUNT_APPROVAL', module='SALES').exists()

    team_leader = make_user('tl@pune.com', 'TEAM_LEADER', lead.branch)
    with pytest.raises(ActionNotAllowed):
        SalesService.decide_discount_approval(approval, True, team_leader, ['TEAM_LEADER'])

    manager = make_user('bm@pune.com', 'BRANCH_MANAGER', lead.branch)
    approval = SalesService.decide_discount_approval(approval, True, manager, ['BRANCH_MANAGER'])
    assert approval.status == 'APPROVED'
    estimate.refresh_from_db()
    assert estimate.approval_status == 'APPROVED'
    assert not Alert.objects.filter(alert_type='DISCOUNT_APPROVAL', status='ACTIVE').exists()


def test_rejected_discount_resets_amounts(make_user, lead):
    estimate, _ = SalesService.generate_estimation(lead, [DOOR], discount_percentage=Decimal('4'))
    approval = estimate.discount_approvals.get()
    leader = make_user('tl@pune.com', 'TEAM_LEADER', lead.branch)
    SalesService.decide_discount_approval(approval, False, leader, ['TEAM_LEADER'])
    estimate.refresh_from_db()
    assert estimate.approval_status == 'REJECTED'
    assert estimate.discount_amount == Decimal('0')
    assert estimate.final_amount == estimate.total_amount

    with pytest.raises(WorkflowError):
        SalesService.decide_discount_approval(approval, True, leader, ['TEAM_LEADER'])


# BOMs and sales orders
def test_new_bom_obsoletes_previous(door_product):
    first = door_product.approved_bom()
    sheet = first.items.get().inventory_item
    second = SalesService.create_bom(door_product, [{'item': sheet, 'quantity': Decimal('3')}])
    assert second.version == 2
    SalesService.approve_bom(second)
    first.refresh_from_db()
    assert first.status == 'OBSOLETE'
    assert door_product.approved_bom() == second


def test_sales_order_plans_production(customer, door_product):
    order = SalesService.create_sales_order(customer, [
        {'product': door_product, 'description': 'Main door', 'quantity': Decimal('10'),
         'unit_price': Decimal('15000')},
    ], discount_amount=Decimal('10000'))

    assert order.status == 'CONFIRMED'
    assert order.order_number.startswith('SO')
    assert order.total_amount == Decimal('150000.00')
    assert order.tax_amount == Decimal('25200.00')
    assert order.final_amount == Decimal('165200.00')
    production = ProductionOrder.objects.get(sales_order=order)
    assert production.status == 'PLANNED'
    assert production.quantity == Decimal('10')


def test_sales_order_blocked_by_material_shortage(customer, door_product):
    # 2 x 23 x 1.10 = 50.6 sheets needed, 50 on hand
    with pytest.raises(InsufficientStock) as exc:
        SalesService.create_sales_order(customer, [
            {'product': door_product, 'quantity': Decimal('23'), 'unit_price': Decimal('15000')},
        ])
    assert str(exc.value).startswith('Insufficient materials: MS-SHEET-16')


def test_sales_order_converts_lead(customer, lead):
    estimate, _ = SalesService.generate_estimation(lead, [DOOR])
    SalesService.create_sales_order(customer, [
        {'product': None, 'description': 'Door', 'quantity': 2, 'unit_price': estimate.total_amount / 2},
    ], estimate=estimate)
    estimate.refresh_from_db()
    lead.refresh_from_db()
    assert estimate.status == 'APPROVED'
    assert lead.status == 'CONVERTED'
    assert lead.customer == customer


def test_sales_order_refuses_pending_discount(customer, lead):
    estimate, _ = SalesService.generate_estimation(lead, [DOOR], discount_percentage=Decimal('8'))
    with pytest.raises(WorkflowError):
        SalesService.create_sales_order(customer, [
            {'description': 'Door', 'quantity': 1, 'unit_price': Decimal('4000')},
        ], estimate=estimate)


def test_cancel_order_cancels_production(customer, door_product):
    order = SalesService.create_sales_order(customer, [
        {'product': door_product, 'quantity': Decimal('2'), 'unit_price': Decimal('15000')},
    ])
    SalesService.update_sales_order_status(order, 'CANCELLED')
    assert ProductionOrder.objects.get(sales_order=order).status == 'CANCELLED'
    with pytest.raises(WorkflowError):
        SalesService.update_sales_order_status(order, 'DELIVERED')


# Analytics
def test_sales_analytics(pune, mumbai, customer):
    leads = [
        SalesService.create_lead(pune, 'Ravi', '9876543210', 'REFERRAL'),
        SalesService.create_lead(pune, 'Asha', '9800000001', 'REFERRAL'),
        SalesService.create_lead(pune, 'Meena', '9800000002', 'GOOGLE'),
        SalesService.create_lead(pune, 'Kiran', '9800000003', 'GOOGLE'),
    ]
    SalesService.create_lead(mumbai, 'Sameer', '9800000004', 'META')
    Lead.objects.filter(pk__in=[leads[0].pk, leads[2].pk, leads[3].pk]).update(status='CONVERTED')

    line = {'description': 'Door', 'quantity': Decimal('1'), 'unit_price': Decimal('10000')}
    january = SalesService.create_sales_order(customer, [line], tax_amount=0)
    february = SalesService.create_sales_order(customer, [line, line], tax_amount=0)
    cancelled = SalesService.create_sales_order(customer, [line], tax_amount=0)
    SalesOrder.objects.filter(pk=january.pk).update(order_date=date(2026, 1, 15))
    SalesOrder.objects.filter(pk__in=[february.pk, cancelled.pk]).update(order_date=date(2026, 2, 3))
    SalesOrder.objects.filter(pk=cancelled.pk).update(status='CANCELLED')

    result = SalesService.get_sales_analytics(Lead.objects.filter(branch=pune), SalesOrder.objects.all())
    assert result['total_leads'] == 4
    assert result['converted_leads'] == 3
    assert result['conversion_rate'] == 75.0
    assert result['sales_by_source'] == [
        {'source': 'GOOGLE', 'lead_count': 2, 'converted_count': 2, 'conversion_rate': 100.0},
        {'source': 'REFERRAL', 'lead_count': 2, 'converted_count': 1, 'conversion_rate': 50.0},
    ]
    assert result['order_count'] == 2
    assert result['total_sales_value'] == Decimal('30000.00')
    assert result['average_order_value'] == Decimal('15000.00')
    assert result['monthly_trends'] == [
        {'month': '2026-01', 'orders': 1, 'revenue': Decimal('10000.00')},
        {'month': '2026-02', 'orders': 1, 'revenue': Decimal('20000.00')},
    ]

    february_only = SalesService.get_sales_analytics(
        Lead.objects.none(), SalesOrder.objects.all(), date_from=date(2026, 2, 1), date_to=date(2026, 2, 28)
    )
    assert february_only['order_count'] == 1
    assert february_only['conversion_rate'] == 0.0
    assert february_only['sales_by_source'] == []


# API
@pytest.mark.django_db
class TestSalesApi:

    def test_executive_creates_lead_in_own_branch(self, make_user, client_for, pune):
        executive = make_user('exec@pune.com', 'SALES_EXECUTIVE', pune)
        response = client_for(executive).post('/api/leads/', {
            'contact_name': 'Meera Joshi', 'contact_phone': '9822000000', 'source': 'meta',
        }, format='json')
        assert response.status_code == 201
        assert response.json()['lead_number'].startswith('LD')
        assert Lead.objects.get().branch == pune

    def test_estimate_via_api(self, make_user, client_for, pune, lead):
        executive = make_user('exec@pune.com', 'SALES_EXECUTIVE', pune)
        response = client_for(executive).post('/api/estimates/', {
            'lead_id': lead.id, 'items': [DOOR],
        }, format='json')
        assert response.status_code == 201
        assert response.json()['breakdown']['final_amount'] == '5088.00'

    def test_executive_cannot_decide_discounts(self, make_user, client_for, pune, lead):
        estimate, _ = SalesService.generate_estimation(lead, [DOOR], discount_percentage=Decimal('3'))
        executive = make_user('exec@pune.com', 'SALES_EXECUTIVE', pune)
        approval = estimate.discount_approvals.get()
        response = client_for(executive).post(f'/api/discount-approvals/{approval.id}/decide/',
                                              {'approve': True}, format='json')
        assert response.status_code == 403

    def test_sales_manager_cannot_approve_level_three(self, make_user, client_for, pune, lead):
        estimate, _ = SalesService.generate_estimation(lead, [DOOR], discount_percentage=Decimal('14'))
        manager = make_user('sm@pune.com', 'SALES_MANAGER', pune)
        approval = estimate.discount_approvals.get()
        response = client_for(manager).post(f'/api/discount-approvals/{approval.id}/decide/',
                                            {'approve': True}, format='json')
        assert response.status_code == 403
        assert response.json()['code'] == 'ACTION_NOT_ALLOWED'

    def test_leads_of_other_branch_hidden(self, make_user, client_for, mumbai, lead):
        executive = make_user('exec@mumbai.com', 'SALES_EXECUTIVE', mumbai)
        client = client_for(executive)
        assert client.get('/api/leads/').json() == []
        assert client.get(f'/api/leads/{lead.id}/').status_code == 404

    def test_form_encoded_false_rejects_discount(self, make_user, client_for, pune, lead):
        estimate, _ = SalesService.generate_estimation(lead, [DOOR], discount_percentage=Decimal('8'))
        manager = make_user('sm@pune.com', 'SALES_MANAGER', pune)
        approval = estimate.discount_approvals.get()
        client = client_for(manager)

        response = client.post(f'/api/discount-approvals/{approval.id}/decide/', {'approve': 'maybe'})
        assert response.status_code == 400
        approval.refresh_from_db()
        assert approval.status == 'PENDING'

        response = client.post(f'/api/discount-approvals/{approval.id}/decide/', {'approve': 'false'})
        assert response.status_code == 200
        approval.refresh_from_db()
        assert approval.status == 'REJECTED'
        estimate.refresh_from_db()
        assert estimate.discount_amount == Decimal('0')
