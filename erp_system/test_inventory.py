"""
Tests for inventory: stock movements, reservations, valuation, transfers
and reorder alerts.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from erp_system.exceptions import InsufficientStock, ValidationFailed, WorkflowError
from erp_system.models import Alert, InventoryItem, StockTransaction, Warehouse
from erp_system.inventory_report_pdf import generate_valuation_pdf
from erp_system.services.inventory_service import InventoryService, aging_category, value_stock


@pytest.fixture
def warehouse(pune):
    return Warehouse.objects.create(branch=pune, code='PUN-MAIN', name='Pune Main Store')


@pytest.fixture
def mumbai_warehouse(mumbai):
    return Warehouse.objects.create(branch=mumbai, code='MUM-MAIN', name='Mumbai Main Store')


@pytest.fixture
def steel_sheet(pune, warehouse):
    item = InventoryService.create_inventory_item(
        pune, warehouse, 'MS-SHEET-16', 'MS Sheet 16 Gauge', 'RAW_MATERIAL',
        unit='SHEET', standard_cost=Decimal('1200.00'),
    )
    InventoryService.record_stock_transaction(item, 'IN', Decimal('100'), unit_cost=Decimal('1200'))
    item.refresh_from_db()
    return item


# Stock movements
def test_create_item_generates_barcode(steel_sheet):
    assert steel_sheet.barcode.startswith('MS-SHEET-16-')
    assert steel_sheet.current_stock == Decimal('100')
    assert steel_sheet.available_stock == Decimal('100')


def test_create_item_rejects_foreign_warehouse(pune, mumbai_warehouse):
    with pytest.raises(ValidationFailed):
        InventoryService.create_inventory_item(pune, mumbai_warehouse, 'X1', 'Hinge', 'HARDWARE')


def test_stock_out_reduces_current_and_available(steel_sheet):
    InventoryService.record_stock_transaction(steel_sheet, 'OUT', Decimal('30'))
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('70')
    assert steel_sheet.available_stock == Decimal('70')


def test_stock_out_beyond_available_fails(steel_sheet):
    with pytest.raises(InsufficientStock) as exc:
        InventoryService.record_stock_transaction(steel_sheet, 'OUT', Decimal('101'))
    assert 'Available: 100' in str(exc.value)
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('100')


@pytest.mark.parametrize('quantity', [Decimal('0'), Decimal('-5')])
def test_non_positive_movement_rejected(steel_sheet, quantity):
    with pytest.raises(ValidationFailed):
        InventoryService.record_stock_transaction(steel_sheet, 'IN', quantity)


def test_unknown_movement_type_rejected(steel_sheet):
    with pytest.raises(ValidationFailed):
        InventoryService.record_stock_transaction(steel_sheet, 'TRANSFER', Decimal('1'))


def test_adjustment_cannot_go_below_reserved(steel_sheet):
    InventoryService.reserve_order_materials('SALES_ORDER', 1, [{'item': steel_sheet, 'quantity': Decimal('40')}])
    with pytest.raises(InsufficientStock):
        InventoryService.record_stock_transaction(steel_sheet, 'ADJUSTMENT', Decimal('39'))


# Reservations
def test_reserve_release_and_allocate(steel_sheet):
    reservations = InventoryService.reserve_order_materials(
        'PRODUCTION_ORDER', 'PO-1', [{'item': steel_sheet, 'quantity': Decimal('40')}]
    )
    assert len(reservations) == 1
    steel_sheet.refresh_from_db()
    assert steel_sheet.reserved_stock == Decimal('40')
    assert steel_sheet.available_stock == Decimal('60')

    InventoryService.allocate_order_materials(
        'PRODUCTION_ORDER', 'PO-1', [{'item': steel_sheet, 'quantity': Decimal('25')}]
    )
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('75')
    assert steel_sheet.reserved_stock == Decimal('15')
    assert steel_sheet.available_stock == Decimal('60')

    assert InventoryService.release_order_reservation('PRODUCTION_ORDER', 'PO-1') == 1
    steel_sheet.refresh_from_db()
    assert steel_sheet.reserved_stock == Decimal('0')
    assert steel_sheet.available_stock == Decimal('75')
    assert InventoryService.release_order_reservation('PRODUCTION_ORDER', 'PO-1') == 0


def test_reservation_is_all_or_nothing(pune, warehouse, steel_sheet):
    bolts = InventoryService.create_inventory_item(pune, warehouse, 'BOLT-M8', 'M8 Bolt', 'HARDWARE')
    InventoryService.record_stock_transaction(bolts, 'IN', Decimal('5'))

    with pytest.raises(InsufficientStock):
        InventoryService.reserve_order_materials('SALES_ORDER', 7, [
            {'item': steel_sheet, 'quantity': Decimal('10')},
            {'item': bolts, 'quantity': Decimal('6')},
        ])
    steel_sheet.refresh_from_db()
    assert steel_sheet.reserved_stock == Decimal('0')
    assert not StockTransaction.objects.filter(transaction_type='RESERVATION').exists()


# Valuation
def test_value_stock_methods():
    receipts = [(Decimal('10'), Decimal('100')), (Decimal('10'), Decimal('120'))]
    assert value_stock(Decimal('15'), receipts, 'FIFO') == Decimal('1600.00')
    assert value_stock(Decimal('15'), receipts, 'LIFO') == Decimal('1700.00')
    assert value_stock(Decimal('15'), receipts, 'WEIGHTED_AVERAGE') == Decimal('1650.00')
    assert value_stock(Decimal('0'), receipts, 'FIFO') == Decimal('0.00')


def test_value_stock_unknown_method():
    with pytest.raises(ValidationFailed):
        value_stock(Decimal('1'), [], 'AVERAGE_COST')


def test_inventory_valuation_report(steel_sheet):
    InventoryService.record_stock_transaction(steel_sheet, 'IN', Decimal('50'), unit_cost=Decimal('1300'))
    result = InventoryService.calculate_inventory_valuation('LIFO', InventoryItem.objects.all())
    assert result['item_count'] == 1
    # 50 @ 1300 + 100 @ 1200
    assert result['total_value'] == Decimal('185000.00')


def test_valuation_pdf_renders(steel_sheet):
    valuation = InventoryService.calculate_inventory_valuation('FIFO', InventoryItem.objects.all())
    pdf = generate_valuation_pdf(valuation, 'Pune Works')
    assert pdf.startswith(b'%PDF')
    assert len(pdf) > 1000

    empty = generate_valuation_pdf({'method': 'LIFO', 'items': [], 'total_value': Decimal('0.00')})
    assert empty.startswith(b'%PDF')


def test_aging_categories():
    assert aging_category(10) == 'Current'
    assert aging_category(31) == '1-3 Months'
    assert aging_category(91) == '3-6 Months'
    assert aging_category(200) == '6-12 Months'
    assert aging_category(400) == 'Over 1 Year'


def test_stock_aging_report(pune, warehouse, steel_sheet):
    today = timezone.localdate()
    StockTransaction.objects.filter(inventory_item=steel_sheet).update(
        transaction_date=timezone.now() - timedelta(days=100)
    )
    fresh = InventoryService.create_inventory_item(
        pune, warehouse, 'BOLT-M8', 'M8 Bolt', 'HARDWARE', standard_cost=Decimal('5')
    )
    InventoryService.record_stock_transaction(fresh, 'IN', Decimal('40'))
    InventoryService.create_inventory_item(pune, warehouse, 'HINGE-HD', 'Hinge', 'HARDWARE')

    report = InventoryService.get_stock_aging_report(InventoryItem.objects.all(), today=today)
    rows = {row['item_code']: row for row in report['items']}
    assert set(rows) == {'MS-SHEET-16', 'BOLT-M8'}
    assert rows['MS-SHEET-16']['age_in_days'] == 100
    assert rows['MS-SHEET-16']['aging_category'] == '3-6 Months'
    assert rows['BOLT-M8']['aging_category'] == 'Current'
    assert report['summary']['3-6 Months'] == {'count': 1, 'total_value': Decimal('120000.00')}
    assert report['total_items'] == 2
    assert report['total_value'] == Decimal('120200.00')


def test_expiring_batches(steel_sheet):
    today = date(2026, 3, 1)
    InventoryService.record_stock_transaction(
        steel_sheet, 'IN', Decimal('5'), batch_number='B-1', expiry_date=today + timedelta(days=10)
    )
    InventoryService.record_stock_transaction(
        steel_sheet, 'IN', Decimal('5'), batch_number='B-2', expiry_date=today + timedelta(days=90)
    )
    rows = InventoryService.get_expiring_batches(StockTransaction.objects.all(), days=30, today=today)
    assert [r['batch_number'] for r in rows] == ['B-1']
    assert rows[0]['days_to_expiry'] == 10


# Cycle counts and adjustments
def test_cycle_count_variance(steel_sheet):
    result = InventoryService.perform_cycle_count(steel_sheet, Decimal('97'))
    assert result['variance'] == Decimal('-3')
    assert result['transaction_id'] is not None
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('97')


def test_stock_adjustment_needs_reason(steel_sheet):
    with pytest.raises(ValidationFailed):
        InventoryService.perform_stock_adjustment(steel_sheet, Decimal('90'), '')


# Transfers
def test_transfer_ship_and_receive(steel_sheet, warehouse, mumbai_warehouse):
    transfer = InventoryService.create_stock_transfer(
        warehouse, mumbai_warehouse, [{'item': steel_sheet, 'quantity': Decimal('20')}]
    )
    assert transfer.status == 'IN_TRANSIT'
    assert transfer.transfer_number.startswith('ST')
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('80')
    out_txn = StockTransaction.objects.get(transaction_type='TRANSFER', inventory_item=steel_sheet)
    assert out_txn.quantity == Decimal('-20')

    transfer = InventoryService.receive_stock_transfer(transfer, received_by='store@mumbai')
    assert transfer.status == 'RECEIVED'
    destination = InventoryItem.objects.get(warehouse=mumbai_warehouse, item_code='MS-SHEET-16')
    assert destination.branch == mumbai_warehouse.branch
    assert destination.current_stock == Decimal('20')

    with pytest.raises(WorkflowError):
        InventoryService.receive_stock_transfer(transfer)


def test_transfer_cancel_restores_source(steel_sheet, warehouse, mumbai_warehouse):
    transfer = InventoryService.create_stock_transfer(
        warehouse, mumbai_warehouse, [{'item': steel_sheet, 'quantity': Decimal('20')}]
    )
    InventoryService.cancel_stock_transfer(transfer, reason='Truck unavailable')
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('100')
    transfer.refresh_from_db()
    assert transfer.status == 'CANCELLED'


def test_transfer_to_same_warehouse_rejected(steel_sheet, warehouse):
    with pytest.raises(ValidationFailed):
        InventoryService.create_stock_transfer(warehouse, warehouse, [{'item': steel_sheet, 'quantity': 1}])


# Reorder alerts
def test_reorder_and_safety_alerts(steel_sheet):
    steel_sheet.reorder_level = Decimal('50')
    steel_sheet.safety_stock = Decimal('20')
    steel_sheet.save()

    InventoryService.record_stock_transaction(steel_sheet, 'OUT', Decimal('55'))
    reorder = Alert.objects.get(alert_type='REORDER_LEVEL_BREACH')
    assert reorder.priority == 'MEDIUM'
    assert reorder.module == 'INVENTORY'
    assert reorder.reference_id == str(steel_sheet.id)

    # Still below reorder level: no duplicate while the alert is open
    InventoryService.record_stock_transaction(steel_sheet, 'OUT', Decimal('5'))
    assert Alert.objects.filter(alert_type='REORDER_LEVEL_BREACH').count() == 1

    InventoryService.record_stock_transaction(steel_sheet, 'OUT', Decimal('25'))
    safety = Alert.objects.get(alert_type='SAFETY_STOCK_BREACH')
    assert safety.priority == 'HIGH'


def test_zero_thresholds_never_alert(steel_sheet):
    InventoryService.record_stock_transaction(steel_sheet, 'OUT', Decimal('100'))
    assert not Alert.objects.exists()


def test_check_all_reorder_alerts(pune, warehouse, steel_sheet):
    InventoryItem.objects.filter(pk=steel_sheet.pk).update(reorder_level=Decimal('150'))
    # zero thresholds are never breached, even with no stock
    InventoryService.create_inventory_item(pune, warehouse, 'BOLT-M8', 'M8 Bolt', 'HARDWARE')

    raised = InventoryService.check_all_reorder_alerts(InventoryItem.objects.all())
    assert [a.alert_type for a in raised] == ['REORDER_LEVEL_BREACH']
    assert InventoryService.check_all_reorder_alerts(InventoryItem.objects.all()) == []


# API
@pytest.mark.django_db
class TestInventoryApi:

    def test_stock_in_via_api(self, make_user, client_for, pune, steel_sheet):
        operator = make_user('operator@pune.com', 'WAREHOUSE_OPERATOR', pune)
        response = client_for(operator).post('/api/inventory/transactions/', {
            'inventory_item_id': steel_sheet.id,
            'transaction_type': 'IN',
            'quantity': '12.5',
            'unit_cost': '1250',
        }, format='json')
        assert response.status_code == 201
        steel_sheet.refresh_from_db()
        assert steel_sheet.current_stock == Decimal('112.5')

    def test_insufficient_stock_is_409(self, make_user, client_for, pune, steel_sheet):
        operator = make_user('operator@pune.com', 'WAREHOUSE_OPERATOR', pune)
        response = client_for(operator).post('/api/inventory/transactions/', {
            'inventory_item_id': steel_sheet.id,
            'transaction_type': 'OUT',
            'quantity': '500',
        }, format='json')
        assert response.status_code == 409
        assert response.json()['code'] == 'INSUFFICIENT_STOCK'

    def test_operator_cannot_create_items(self, make_user, client_for, pune, warehouse):
        operator = make_user('operator@pune.com', 'WAREHOUSE_OPERATOR', pune)
        response = client_for(operator).post('/api/inventory/items/', {
            'warehouse_id': warehouse.id, 'item_code': 'NEW-1', 'name': 'New', 'category': 'HARDWARE',
        }, format='json')
        assert response.status_code == 403
        assert response.json()['code'] == 'INSUFFICIENT_PERMISSIONS'

    def test_other_branch_item_not_found(self, make_user, client_for, mumbai, steel_sheet):
        manager = make_user('inv@mumbai.com', 'INVENTORY_MANAGER', mumbai)
        response = client_for(manager).get(f'/api/inventory/items/{steel_sheet.id}/')
        assert response.status_code == 404

    def test_valuation_endpoint(self, make_user, client_for, pune, steel_sheet):
        manager = make_user('inv@pune.com', 'INVENTORY_MANAGER', pune)
        response = client_for(manager).get('/api/inventory/valuation/?method=FIFO')
        assert response.status_code == 200
        assert Decimal(str(response.json()['total_value'])) == Decimal('120000.00')

    def test_reorder_check_endpoint(self, make_user, client_for, pune, mumbai, warehouse, mumbai_warehouse,
                                    steel_sheet):
        InventoryItem.objects.filter(pk=steel_sheet.pk).update(reorder_level=Decimal('150'))
        InventoryService.create_inventory_item(pune, warehouse, 'BOLT-M8', 'M8 Bolt', 'HARDWARE')
        other = InventoryService.create_inventory_item(
            mumbai, mumbai_warehouse, 'MS-SHEET-18', 'MS Sheet 18 Gauge', 'RAW_MATERIAL',
            reorder_level=Decimal('10'),
        )

        client = client_for(make_user('inv@pune.com', 'INVENTORY_MANAGER', pune))
        response = client.post('/api/inventory/reorder-check/')
        assert response.status_code == 200
        assert response.json()['alerts_raised'] == 1
        alert = Alert.objects.get(id=response.json()['alert_ids'][0])
        assert alert.reference_id == str(steel_sheet.id)
        assert not Alert.objects.filter(reference_id=str(other.id)).exists()

        assert client.post('/api/inventory/reorder-check/').json()['alerts_raised'] == 0

    def test_valuation_pdf(self, make_user, client_for, pune, steel_sheet):
        manager = make_user('inv@pune.com', 'INVENTORY_MANAGER', pune)
        response = client_for(manager).get('/api/inventory/valuation/pdf/?method=FIFO')
        assert response.status_code == 200
        assert response['Content-Type'] == 'application/pdf'
        assert response.content.startswith(b'%PDF')
