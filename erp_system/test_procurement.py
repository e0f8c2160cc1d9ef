"""
Tests for procurement: requisitions, purchase order approval and goods
receipts posting stock.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from erp_system.exceptions import ValidationFailed, WorkflowError
from erp_system.models import InventoryItem, PurchaseOrder, StockTransaction, Warehouse
from erp_system.services.inventory_service import InventoryService
from erp_system.services.procurement_service import ProcurementService, highest_priority, required_date_for


@pytest.fixture
def warehouse(pune):
    return Warehouse.objects.create(branch=pune, code='PUN-MAIN', name='Pune Main Store')


@pytest.fixture
def steel_sheet(pune, warehouse):
    return InventoryService.create_inventory_item(
        pune, warehouse, 'MS-SHEET-16', 'MS Sheet 16 Gauge', 'RAW_MATERIAL',
        unit='SHEET', standard_cost=Decimal('1200'), reorder_level=Decimal('10'), safety_stock=Decimal('4'),
    )


@pytest.fixture
def supplier(pune):
    return ProcurementService.create_supplier(pune, 'Tata Steel Distributors', phone='9822012345')


def _order(supplier, item, quantity, unit_price='1200', **kwargs):
    return ProcurementService.create_purchase_order(
        supplier, [{'item': item, 'quantity': quantity, 'unit_price': unit_price}],
        delivery_date=timezone.localdate() + timedelta(days=7), **kwargs
    )


def test_priority_helpers():
    assert highest_priority(['MEDIUM', 'URGENT', 'HIGH']) == 'URGENT'
    assert highest_priority([]) == 'LOW'
    assert required_date_for('HIGH', today=date(2026, 3, 2)) == date(2026, 3, 5)
    assert required_date_for('LOW', today=date(2026, 3, 2)) == date(2026, 3, 16)


# Requisitions
def test_requisition_approval_and_conversion(pune, supplier, steel_sheet):
    requisition = ProcurementService.create_purchase_requisition(
        pune, [{'item': steel_sheet, 'quantity': '20', 'estimated_cost': '1150'}],
        requested_by='inv@pune.com', department='production', priority='HIGH',
    )
    assert requisition.requisition_number.startswith('PR')
    assert requisition.status == 'PENDING'
    assert requisition.department == 'PRODUCTION'
    assert requisition.required_date == timezone.localdate() + timedelta(days=3)

    with pytest.raises(WorkflowError):
        _order(supplier, steel_sheet, '20', requisition=requisition)

    ProcurementService.decide_purchase_requisition(requisition, True, decided_by='bm@pune.com')
    order = _order(supplier, steel_sheet, '20', requisition=requisition)
    requisition.refresh_from_db()
    assert requisition.status == 'CONVERTED'
    assert order.requisition == requisition

    with pytest.raises(WorkflowError):
        ProcurementService.decide_purchase_requisition(requisition, False)


def test_requisition_rejects_foreign_items(mumbai, steel_sheet):
    with pytest.raises(ValidationFailed):
        ProcurementService.create_purchase_requisition(mumbai, [{'item': steel_sheet, 'quantity': '5'}])


def test_low_stock_requisition(pune, warehouse, steel_sheet):
    InventoryService.record_stock_transaction(steel_sheet, 'IN', Decimal('3'))
    hinges = InventoryService.create_inventory_item(
        pune, warehouse, 'HINGE-HD', 'Hinge', 'CONSUMABLE', reorder_level=Decimal('50'),
    )
    InventoryService.record_stock_transaction(hinges, 'IN', Decimal('100'))

    requisition = ProcurementService.generate_low_stock_requisition(pune, requested_by='inv@pune.com')
    line = requisition.items.get()
    assert line.inventory_item == steel_sheet
    # back up to twice the reorder level
    assert line.quantity == Decimal('17')
    assert requisition.priority == 'HIGH'
    assert requisition.department == 'PROCUREMENT'

    # already on an open requisition
    assert ProcurementService.generate_low_stock_requisition(pune) is None


# Purchase orders
def test_small_order_is_approved_on_creation(supplier, steel_sheet):
    order = _order(supplier, steel_sheet, '20')
    assert order.po_number.startswith('PUR')
    assert order.total_amount == Decimal('24000.00')
    assert order.tax_amount == Decimal('4320.00')
    assert order.final_amount == Decimal('28320.00')
    assert order.status == 'APPROVED'
    with pytest.raises(WorkflowError):
        ProcurementService.approve_purchase_order(order)


def test_large_order_needs_approval_before_receipt(supplier, steel_sheet):
    order = _order(supplier, steel_sheet, '50')
    assert order.status == 'PENDING'
    line = order.items.get()
    with pytest.raises(WorkflowError):
        ProcurementService.receive_goods(order, [{'order_item': line, 'received_quantity': '10'}])

    order = ProcurementService.approve_purchase_order(order, approved_by='bm@pune.com')
    assert order.status == 'APPROVED'
    assert order.approved_by == 'bm@pune.com'


def test_order_rejects_foreign_items(mumbai, steel_sheet):
    other = ProcurementService.create_supplier(mumbai, 'Jindal Steel')
    with pytest.raises(ValidationFailed):
        _order(other, steel_sheet, '5')


# Goods receipts
def test_partial_then_full_receipt_posts_stock(supplier, steel_sheet):
    order = _order(supplier, steel_sheet, '20', unit_price='1250')
    line = order.items.get()

    receipt = ProcurementService.receive_goods(
        order, [{'order_item': line, 'received_quantity': '12', 'accepted_quantity': '10', 'batch_number': 'B-7'}],
        received_by='store@pune.com',
    )
    assert receipt.grn_number.startswith('GRN')
    grn_line = receipt.items.get()
    assert grn_line.rejected_quantity == Decimal('2')

    txn = grn_line.stock_transaction
    assert txn.transaction_type == 'IN'
    assert txn.quantity == Decimal('10')
    assert txn.unit_cost == Decimal('1250.00')
    assert txn.reference_type == 'GRN'
    assert txn.reference_id == receipt.grn_number

    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('10')
    order.refresh_from_db()
    assert order.status == 'PARTIALLY_RECEIVED'
    line.refresh_from_db()
    assert line.pending_quantity == Decimal('8')

    with pytest.raises(ValidationFailed):
        ProcurementService.receive_goods(order, [{'order_item': line, 'received_quantity': '9'}])

    ProcurementService.receive_goods(order, [{'order_item': line, 'received_quantity': '8'}])
    order.refresh_from_db()
    assert order.status == 'RECEIVED'
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('18')
    assert StockTransaction.objects.filter(reference_type='GRN').count() == 2

    with pytest.raises(WorkflowError):
        ProcurementService.cancel_purchase_order(order)


def test_fully_rejected_line_posts_no_stock(supplier, steel_sheet):
    order = _order(supplier, steel_sheet, '5')
    receipt = ProcurementService.receive_goods(
        order, [{'order_item': order.items.get(), 'received_quantity': '5', 'accepted_quantity': '0'}]
    )
    assert receipt.items.get().stock_transaction is None
    assert not StockTransaction.objects.filter(reference_type='GRN').exists()
    steel_sheet.refresh_from_db()
    assert steel_sheet.current_stock == Decimal('0')


@pytest.mark.parametrize('received, accepted', [('0', None), ('5', '6'), ('5', '-1')])
def test_receipt_quantity_validation(supplier, steel_sheet, received, accepted):
    order = _order(supplier, steel_sheet, '10')
    with pytest.raises(ValidationFailed):
        ProcurementService.receive_goods(order, [
            {'order_item': order.items.get(), 'received_quantity': received, 'accepted_quantity': accepted},
        ])
    assert not order.receipts.exists()


def test_overdue_orders(supplier, steel_sheet):
    late = _order(supplier, steel_sheet, '10')
    PurchaseOrder.objects.filter(pk=late.pk).update(delivery_date=date(2026, 3, 1))
    received = _order(supplier, steel_sheet, '2')
    ProcurementService.receive_goods(received, [{'order_item': received.items.get(), 'received_quantity': '2'}])
    PurchaseOrder.objects.filter(pk=received.pk).update(delivery_date=date(2026, 3, 1))

    rows = ProcurementService.get_overdue_purchase_orders(PurchaseOrder.objects.all(), today=date(2026, 3, 11))
    assert [r['po_number'] for r in rows] == [late.po_number]
    assert rows[0]['days_overdue'] == 10
    assert rows[0]['pending_value'] == Decimal('12000.00')


# API
@pytest.mark.django_db
class TestProcurementApi:

    def test_requisition_to_stock(self, make_user, client_for, pune, supplier, steel_sheet):
        inventory = client_for(make_user('inv@pune.com', 'INVENTORY_MANAGER', pune))
        response = inventory.post('/api/procurement/requisitions/', {
            'items': [{'inventory_item_id': steel_sheet.id, 'quantity': '50'}], 'priority': 'urgent',
        }, format='json')
        assert response.status_code == 201
        requisition_id = response.json()['id']

        # inventory managers raise requisitions but cannot approve them
        response = inventory.post(f'/api/procurement/requisitions/{requisition_id}/decide/', {'approve': True},
                                  format='json')
        assert response.status_code == 403

        manager = client_for(make_user('bm@pune.com', 'BRANCH_MANAGER', pune))
        response = manager.post(f'/api/procurement/requisitions/{requisition_id}/decide/', {'approve': 'true'})
        assert response.status_code == 200
        assert response.json()['status'] == 'APPROVED'

        response = manager.post('/api/procurement/purchase-orders/', {
            'supplier_id': supplier.id,
            'requisition_id': requisition_id,
            'delivery_date': (timezone.localdate() + timedelta(days=5)).isoformat(),
            'items': [{'inventory_item_id': steel_sheet.id, 'quantity': '50', 'unit_price': '1200'}],
        }, format='json')
        assert response.status_code == 201
        order = response.json()
        assert order['status'] == 'PENDING'

        response = manager.post(f"/api/procurement/purchase-orders/{order['id']}/approve/")
        assert response.status_code == 200

        operator = client_for(make_user('store@pune.com', 'WAREHOUSE_OPERATOR', pune))
        response = operator.post(f"/api/procurement/purchase-orders/{order['id']}/receipts/", {
            'items': [{'order_item_id': order['items'][0]['id'], 'received_quantity': '50'}],
        }, format='json')
        assert response.status_code == 201
        assert response.json()['items'][0]['accepted_quantity'] == '50.000'
        assert InventoryItem.objects.get(pk=steel_sheet.pk).current_stock == Decimal('50')

        response = operator.get(f"/api/procurement/purchase-orders/{order['id']}/")
        assert response.json()['status'] == 'RECEIVED'

    def test_operator_cannot_create_orders(self, make_user, client_for, pune, supplier, steel_sheet):
        operator = client_for(make_user('store@pune.com', 'WAREHOUSE_OPERATOR', pune))
        response = operator.post('/api/procurement/purchase-orders/', {
            'supplier_id': supplier.id, 'delivery_date': '2026-12-01',
            'items': [{'inventory_item_id': steel_sheet.id, 'quantity': '1', 'unit_price': '1'}],
        }, format='json')
        assert response.status_code == 403

    def test_other_branch_order_hidden(self, make_user, client_for, mumbai, supplier, steel_sheet):
        order = _order(supplier, steel_sheet, '5')
        client = client_for(make_user('bm@mumbai.com', 'BRANCH_MANAGER', mumbai))
        assert client.get(f'/api/procurement/purchase-orders/{order.id}/').status_code == 404
        assert client.get('/api/procurement/purchase-orders/').json() == []
        response = client.post(f'/api/procurement/purchase-orders/{order.id}/receipts/', {
            'items': [{'order_item_id': order.items.get().id, 'received_quantity': '5'}],
        }, format='json')
        assert response.status_code == 404

    def test_summary(self, make_user, client_for, pune, supplier, steel_sheet):
        _order(supplier, steel_sheet, '50')
        _order(supplier, steel_sheet, '5')
        client = client_for(make_user('fm@pune.com', 'FINANCE_MANAGER', pune))
        response = client.get('/api/procurement/summary/')
        assert response.status_code == 200
        assert response.json()['orders_pending_approval'] == 1
        assert response.json()['open_orders'] == 1
