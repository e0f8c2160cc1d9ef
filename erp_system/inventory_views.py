"""
Inventory API: warehouses, items, stock movements, order reservations,
valuation, cycle counts, transfers and stock reports.
"""
from django.db import IntegrityError
from django.db.models import F, Q
from django.http import HttpResponse as DjangoHttpResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from .exceptions import ERPError, ValidationFailed
from .inventory_report_pdf import generate_valuation_pdf
from .models import InventoryItem, StockTransaction, StockTransfer, Warehouse
from .permissions import permission_required, permission_required_for_writes
from .security import get_branch_filter, get_current_branch, resolve_write_branch, validate_branch_access
from .serializers import (
    InventoryItemSerializer,
    StockTransactionSerializer,
    StockTransferSerializer,
    WarehouseSerializer,
)
from .services.inventory_service import InventoryService
from .utils import (
    audit,
    clamp_limit,
    duplicate_response,
    error_response,
    parse_date_field,
    to_bool,
    to_decimal,
    username_of,
)

logger = logging.getLogger(__name__)

ORDER_TYPES = ('SALES_ORDER', 'PRODUCTION_ORDER', 'SERVICE_REQUEST')
ITEM_FIELDS = ('description', 'unit')
ITEM_QUANTITY_FIELDS = ('reorder_level', 'safety_stock', 'standard_cost')


def _data(request):
    return request.data if isinstance(request.data, dict) else {}


def _not_found(label):
    return Response({'error': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)


def _server_error(name, e, message):
    logger.error(f"{name} error: {e}", exc_info=True)
    return Response({'error': message, 'detail': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _order_lines(request, lines):
    """[{inventory_item_id, quantity}] -> [{'item', 'quantity'}] within the caller's branches."""
    if not isinstance(lines, list) or not lines:
        raise ValidationFailed('items must be a non-empty list')
    branch_filter = get_branch_filter(request)
    resolved = []
    for line in lines:
        item = InventoryItem.objects.get(id=line.get('inventory_item_id'), **branch_filter)
        resolved.append({'item': item, 'quantity': to_decimal(line.get('quantity'), 'quantity')})
    return resolved


def _order_reference(data):
    order_type = (data.get('order_type') or '').upper()
    order_id = data.get('order_id')
    if order_type not in ORDER_TYPES:
        raise ValidationFailed(f"order_type must be one of {', '.join(ORDER_TYPES)}")
    if not order_id:
        raise ValidationFailed('order_id is required')
    return order_type, str(order_id)


# Warehouses
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('INVENTORY', 'WAREHOUSE')
def warehouse_list(request):
    try:
        if request.method == 'GET':
            warehouses = Warehouse.objects.filter(**get_branch_filter(request)).order_by('code')
            return Response(WarehouseSerializer(warehouses, many=True).data)

        data = _data(request)
        branch = resolve_write_branch(request, data.get('branch_id'))
        code = (data.get('code') or '').strip().upper()
        name = (data.get('name') or '').strip()
        if not code or not name:
            raise ValidationFailed('code and name are required')
        warehouse = Warehouse.objects.create(
            branch=branch, code=code, name=name,
            location=(data.get('location') or '').strip(),
            updated_by=username_of(request),
        )
        audit(request, 'WAREHOUSE_CREATED', warehouse, f"Warehouse created: {branch.code}/{code}")
        return Response(WarehouseSerializer(warehouse).data, status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        return _server_error('warehouse_list', e, 'Failed to process warehouses')


# Items
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('INVENTORY', 'ITEM')
def inventory_item_list(request):
    """
    GET filters: warehouse_id, category, low_stock=true, search.
    POST: {warehouse_id, item_code, name, category, unit, standard_cost,
    reorder_level, safety_stock, lead_time_days}
    """
    try:
        if request.method == 'GET':
            items = InventoryItem.objects.filter(**get_branch_filter(request)).select_related('warehouse')
            if request.GET.get('warehouse_id'):
                items = items.filter(warehouse_id=request.GET['warehouse_id'])
            if request.GET.get('category'):
                items = items.filter(category=request.GET['category'].upper())
            if request.GET.get('low_stock') == 'true':
                items = items.filter(available_stock__lte=F('reorder_level'), reorder_level__gt=0)
            search = (request.GET.get('search') or '').strip()
            if search:
                items = items.filter(
                    Q(item_code__icontains=search) | Q(name__icontains=search) | Q(barcode=search)
                )
            if request.GET.get('include_inactive') != 'true':
                items = items.filter(is_active=True)
            return Response(InventoryItemSerializer(items.order_by('item_code')[:clamp_limit(request)], many=True).data)

        data = _data(request)
        warehouse = Warehouse.objects.get(id=data.get('warehouse_id'), **get_branch_filter(request))
        fields = {f: (data.get(f) or '').strip() for f in ITEM_FIELDS if data.get(f)}
        for f in ITEM_QUANTITY_FIELDS:
            if data.get(f) not in (None, ''):
                fields[f] = to_decimal(data.get(f), f)
        if data.get('lead_time_days') not in (None, ''):
            fields['lead_time_days'] = int(data.get('lead_time_days'))

        item = InventoryService.create_inventory_item(
            warehouse.branch,
            warehouse,
            (data.get('item_code') or '').strip().upper(),
            (data.get('name') or '').strip(),
            (data.get('category') or 'RAW_MATERIAL').upper(),
            updated_by=username_of(request),
            **fields,
        )
        audit(request, 'INVENTORY_ITEM_CREATED', item, f"Item created: {item.item_code} in {warehouse.code}",
              branch=warehouse.branch)
        return Response(InventoryItemSerializer(item).data, status=status.HTTP_201_CREATED)
    except Warehouse.DoesNotExist:
        return _not_found('Warehouse')
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except ValueError as e:
        return Response({'error': 'Invalid item input', 'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return _server_error('inventory_item_list', e, 'Failed to process inventory items')


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('INVENTORY', 'ITEM')
def inventory_item_detail(request, item_id: int):
    """GET includes the 50 most recent transactions. PATCH edits descriptive and threshold fields."""
    try:
        item = InventoryItem.objects.get(id=item_id, **get_branch_filter(request))
        if request.method == 'GET':
            body = InventoryItemSerializer(item).data
            recent = item.transactions.order_by('-transaction_date')[:50]
            body['transactions'] = StockTransactionSerializer(recent, many=True).data
            return Response(body)

        data = _data(request)
        if 'name' in data:
            item.name = (data.get('name') or '').strip() or item.name
        for f in ITEM_FIELDS:
            if f in data:
                setattr(item, f, (data.get(f) or '').strip())
        for f in ITEM_QUANTITY_FIELDS:
            if f in data:
                setattr(item, f, to_decimal(data.get(f), f))
        if 'is_active' in data:
            item.is_active = to_bool(data.get('is_active'), 'is_active')
        item.updated_by = username_of(request)
        item.save()
        audit(request, 'INVENTORY_ITEM_UPDATED', item, f"Item updated: {item.item_code}",
              extra={'fields': sorted(data.keys())}, branch=item.branch)
        InventoryService.check_reorder_alerts(item)
        return Response(InventoryItemSerializer(item).data)
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('inventory_item_detail', e, 'Failed to process inventory item')


# Stock movements
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('INVENTORY', 'STOCK_TRANSACTION')
def stock_transaction_list(request):
    """
    GET filters: inventory_item_id, transaction_type, reference_type.
    POST: {inventory_item_id, transaction_type (IN|OUT|ADJUSTMENT), quantity,
    unit_cost?, reference_type?, reference_id?, batch_number?, expiry_date?, remarks?}
    """
    try:
        if request.method == 'GET':
            txns = StockTransaction.objects.filter(**get_branch_filter(request, 'inventory_item__'))
            for param in ('transaction_type', 'reference_type'):
                if request.GET.get(param):
                    txns = txns.filter(**{param: request.GET[param].upper()})
            if request.GET.get('inventory_item_id'):
                txns = txns.filter(inventory_item_id=request.GET['inventory_item_id'])
            txns = txns.select_related('inventory_item', 'warehouse').order_by('-transaction_date')
            return Response(StockTransactionSerializer(txns[:clamp_limit(request)], many=True).data)

        data = _data(request)
        item = InventoryItem.objects.get(id=data.get('inventory_item_id'), **get_branch_filter(request))
        unit_cost = data.get('unit_cost')
        txn = InventoryService.record_stock_transaction(
            item,
            (data.get('transaction_type') or '').upper(),
            to_decimal(data.get('quantity'), 'quantity'),
            unit_cost=None if unit_cost in (None, '') else to_decimal(unit_cost, 'unit_cost'),
            reference_type=(data.get('reference_type') or '').upper(),
            reference_id=data.get('reference_id') or '',
            batch_number=(data.get('batch_number') or '').strip(),
            expiry_date=parse_date_field(data.get('expiry_date'), 'expiry_date', required=False),
            remarks=data.get('remarks') or '',
            created_by=username_of(request),
        )
        audit(request, f"STOCK_{txn.transaction_type}", txn,
              f"{txn.transaction_type} {txn.quantity} {item.item_code}", branch=item.branch)
        return Response(StockTransactionSerializer(txn).data, status=status.HTTP_201_CREATED)
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('stock_transaction_list', e, 'Failed to record stock transaction')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'RESERVATION')
def reserve_materials(request):
    """{order_type, order_id, items: [{inventory_item_id, quantity}]}"""
    try:
        data = _data(request)
        order_type, order_id = _order_reference(data)
        reserved = InventoryService.reserve_order_materials(
            order_type, order_id, _order_lines(request, data.get('items')), created_by=username_of(request)
        )
        audit(request, 'MATERIALS_RESERVED', None, f"Reserved {len(reserved)} line(s) for {order_type} {order_id}",
              extra={'order_type': order_type, 'order_id': order_id})
        return Response({'ok': True, 'order_type': order_type, 'order_id': order_id,
                         'transactions': StockTransactionSerializer(reserved, many=True).data})
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('reserve_materials', e, 'Failed to reserve materials')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'RESERVATION')
def release_materials(request):
    """{order_type, order_id}"""
    try:
        order_type, order_id = _order_reference(_data(request))
        released = InventoryService.release_order_reservation(order_type, order_id, created_by=username_of(request))
        audit(request, 'MATERIALS_RELEASED', None, f"Released {released} reservation(s) for {order_type} {order_id}",
              extra={'order_type': order_type, 'order_id': order_id})
        return Response({'ok': True, 'released': released})
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('release_materials', e, 'Failed to release materials')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'RESERVATION')
def allocate_materials(request):
    """{order_type, order_id, items: [{inventory_item_id, quantity}]} issues stock against the order."""
    try:
        data = _data(request)
        order_type, order_id = _order_reference(data)
        issued = InventoryService.allocate_order_materials(
            order_type, order_id, _order_lines(request, data.get('items')), created_by=username_of(request)
        )
        audit(request, 'MATERIALS_ALLOCATED', None, f"Issued {len(issued)} line(s) to {order_type} {order_id}",
              extra={'order_type': order_type, 'order_id': order_id})
        return Response({'ok': True, 'transactions': StockTransactionSerializer(issued, many=True).data})
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('allocate_materials', e, 'Failed to allocate materials')


# Valuation and counts
def _valuation(request):
    method = (request.GET.get('method') or 'FIFO').upper()
    items = InventoryItem.objects.filter(is_active=True, **get_branch_filter(request))
    if request.GET.get('warehouse_id'):
        items = items.filter(warehouse_id=request.GET['warehouse_id'])
    return InventoryService.calculate_inventory_valuation(method, items)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'READ', 'VALUATION')
def inventory_valuation(request):
    """?method=FIFO|LIFO|WEIGHTED_AVERAGE&warehouse_id="""
    try:
        return Response(_valuation(request))
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('inventory_valuation', e, 'Failed to value inventory')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'READ', 'VALUATION')
def inventory_valuation_pdf(request):
    try:
        valuation = _valuation(request)
        branch = get_current_branch(request)
        pdf_bytes = generate_valuation_pdf(valuation, branch.name if branch else 'All branches')

        response = DjangoHttpResponse(pdf_bytes, content_type='application/pdf')
        filename = f"inventory_valuation_{valuation['method'].lower()}_{timezone.localdate():%Y%m%d}.pdf"
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        return response
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('inventory_valuation_pdf', e, 'Failed to generate valuation report')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'STOCK_TRANSACTION')
def cycle_count(request, item_id: int):
    """{counted_quantity, remarks?}"""
    try:
        data = _data(request)
        item = InventoryItem.objects.get(id=item_id, **get_branch_filter(request))
        result = InventoryService.perform_cycle_count(
            item, to_decimal(data.get('counted_quantity'), 'counted_quantity'),
            remarks=data.get('remarks') or '', counted_by=username_of(request),
        )
        audit(request, 'CYCLE_COUNT', item, f"Cycle count {item.item_code}: variance {result['variance']}",
              branch=item.branch)
        return Response(result)
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('cycle_count', e, 'Failed to record cycle count')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'ADJUSTMENT')
def stock_adjustment(request, item_id: int):
    """{new_quantity, reason}"""
    try:
        data = _data(request)
        item = InventoryItem.objects.get(id=item_id, **get_branch_filter(request))
        result = InventoryService.perform_stock_adjustment(
            item, to_decimal(data.get('new_quantity'), 'new_quantity'),
            (data.get('reason') or '').strip(), adjusted_by=username_of(request),
        )
        audit(request, 'STOCK_ADJUSTED', item,
              f"{item.item_code}: {result['previous_quantity']} -> {result['new_quantity']}", branch=item.branch)
        return Response(result)
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('stock_adjustment', e, 'Failed to adjust stock')


# Transfers
def _transfer_scope(request):
    """Transfers visible to the caller: outgoing or incoming on an accessible branch."""
    transfers = StockTransfer.objects.select_related('from_warehouse', 'to_warehouse', 'from_branch', 'to_branch')
    outgoing = get_branch_filter(request, 'from_')
    if not outgoing:
        return transfers
    incoming = get_branch_filter(request, 'to_')
    return transfers.filter(Q(**outgoing) | Q(**incoming))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('INVENTORY', 'STOCK_TRANSFER')
def stock_transfer_list(request):
    """
    POST: {from_warehouse_id, to_warehouse_id, items: [{inventory_item_id, quantity}], notes?}
    The destination may belong to another branch; the source must be accessible.
    """
    try:
        if request.method == 'GET':
            transfers = _transfer_scope(request)
            if request.GET.get('status'):
                transfers = transfers.filter(status=request.GET['status'].upper())
            return Response(StockTransferSerializer(transfers.order_by('-shipped_at')[:clamp_limit(request)],
                                                    many=True).data)

        data = _data(request)
        from_warehouse = Warehouse.objects.select_related('branch').get(id=data.get('from_warehouse_id'))
        validate_branch_access(request, from_warehouse.branch_id)
        to_warehouse = Warehouse.objects.select_related('branch').get(id=data.get('to_warehouse_id'), is_active=True)

        lines = data.get('items')
        if not isinstance(lines, list) or not lines:
            raise ValidationFailed('items must be a non-empty list')
        items = []
        for line in lines:
            item = InventoryItem.objects.get(id=line.get('inventory_item_id'), branch=from_warehouse.branch)
            items.append({'item': item, 'quantity': to_decimal(line.get('quantity'), 'quantity')})

        transfer = InventoryService.create_stock_transfer(
            from_warehouse, to_warehouse, items,
            requested_by=username_of(request), notes=data.get('notes') or '',
        )
        audit(request, 'STOCK_TRANSFER_CREATED', transfer,
              f"{transfer.transfer_number}: {from_warehouse.code} -> {to_warehouse.code}",
              branch=from_warehouse.branch)
        return Response(StockTransferSerializer(transfer).data, status=status.HTTP_201_CREATED)
    except Warehouse.DoesNotExist:
        return _not_found('Warehouse')
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('stock_transfer_list', e, 'Failed to process stock transfers')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'READ', 'STOCK_TRANSFER')
def stock_transfer_detail(request, transfer_id: int):
    try:
        transfer = _transfer_scope(request).get(id=transfer_id)
        return Response(StockTransferSerializer(transfer).data)
    except StockTransfer.DoesNotExist:
        return _not_found('Stock transfer')
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'STOCK_TRANSFER')
def stock_transfer_receive(request, transfer_id: int):
    """Book an IN_TRANSIT transfer into the destination warehouse."""
    try:
        transfer = StockTransfer.objects.get(id=transfer_id)
        validate_branch_access(request, transfer.to_branch_id)
        transfer = InventoryService.receive_stock_transfer(transfer, received_by=username_of(request))
        audit(request, 'STOCK_TRANSFER_RECEIVED', transfer, f"{transfer.transfer_number} received",
              branch=transfer.to_branch)
        return Response(StockTransferSerializer(transfer).data)
    except StockTransfer.DoesNotExist:
        return _not_found('Stock transfer')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('stock_transfer_receive', e, 'Failed to receive transfer')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'STOCK_TRANSFER')
def stock_transfer_cancel(request, transfer_id: int):
    """{reason?} Cancels an IN_TRANSIT transfer from the sending side."""
    try:
        transfer = StockTransfer.objects.get(id=transfer_id)
        validate_branch_access(request, transfer.from_branch_id)
        transfer = InventoryService.cancel_stock_transfer(
            transfer, cancelled_by=username_of(request), reason=_data(request).get('reason') or ''
        )
        audit(request, 'STOCK_TRANSFER_CANCELLED', transfer, f"{transfer.transfer_number} cancelled",
              branch=transfer.from_branch)
        return Response(StockTransferSerializer(transfer).data)
    except StockTransfer.DoesNotExist:
        return _not_found('Stock transfer')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('stock_transfer_cancel', e, 'Failed to cancel transfer')


# Reports
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'READ', 'REPORT')
def stock_aging_report(request):
    try:
        items = InventoryItem.objects.filter(**get_branch_filter(request))
        return Response(InventoryService.get_stock_aging_report(items))
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('stock_aging_report', e, 'Failed to build aging report')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'READ', 'REPORT')
def expiring_batches(request):
    """?days=30"""
    try:
        try:
            days = max(1, min(int(request.GET.get('days', 30)), 365))
        except (TypeError, ValueError):
            raise ValidationFailed('days must be a number')
        txns = StockTransaction.objects.filter(**get_branch_filter(request, 'inventory_item__'))
        return Response({'days': days, 'batches': InventoryService.get_expiring_batches(txns, days=days)})
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('expiring_batches', e, 'Failed to list expiring batches')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('INVENTORY', 'UPDATE', 'ITEM')
def reorder_check(request):
    """Re-run reorder and safety stock checks for every active item in scope."""
    try:
        items = InventoryItem.objects.filter(is_active=True, **get_branch_filter(request))
        raised = InventoryService.check_all_reorder_alerts(items)
        return Response({'ok': True, 'alerts_raised': len(raised), 'alert_ids': [a.id for a in raised]})
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('reorder_check', e, 'Failed to run reorder check')
