"""
Procurement API: suppliers, purchase requisitions, purchase orders and
goods receipts.
"""
from django.db import IntegrityError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from .exceptions import ERPError, ValidationFailed
from .models import (
    GoodsReceipt,
    InventoryItem,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseRequisition,
    Supplier,
)
from .permissions import permission_required, permission_required_for_writes
from .security import get_branch_filter, resolve_write_branch
from .serializers import (
    GoodsReceiptSerializer,
    PurchaseOrderSerializer,
    PurchaseRequisitionSerializer,
    SupplierSerializer,
)
from .services.procurement_service import ProcurementService
from .utils import (
    audit,
    clamp_limit,
    duplicate_response,
    error_response,
    parse_date_field,
    to_bool,
    username_of,
)

logger = logging.getLogger(__name__)

SUPPLIER_FIELDS = ('contact_person', 'email', 'phone', 'address', 'gst_number')


def _data(request):
    return request.data if isinstance(request.data, dict) else {}


def _not_found(label):
    return Response({'error': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)


def _server_error(name, e, message):
    logger.error(f"{name} error: {e}", exc_info=True)
    return Response({'error': message, 'detail': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _lines(data):
    lines = data.get('items')
    if not isinstance(lines, list) or not lines:
        raise ValidationFailed('items must be a non-empty list')
    return lines


def _order_scope(request):
    return PurchaseOrder.objects.filter(**get_branch_filter(request)).select_related('supplier')


# Suppliers
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('PROCUREMENT', 'SUPPLIER')
def supplier_list(request):
    """POST: {name, contact_person, email, phone, address, gst_number, payment_terms_days, branch_id?}"""
    try:
        if request.method == 'GET':
            suppliers = Supplier.objects.filter(**get_branch_filter(request))
            if request.GET.get('include_inactive') != 'true':
                suppliers = suppliers.filter(is_active=True)
            return Response(SupplierSerializer(suppliers[:clamp_limit(request)], many=True).data)

        data = _data(request)
        branch = resolve_write_branch(request, data.get('branch_id'))
        fields = {f: (data.get(f) or '').strip() for f in SUPPLIER_FIELDS if data.get(f)}
        if data.get('payment_terms_days') not in (None, ''):
            try:
                fields['payment_terms_days'] = int(data['payment_terms_days'])
            except (TypeError, ValueError):
                raise ValidationFailed('payment_terms_days must be a whole number')
        supplier = ProcurementService.create_supplier(
            branch, data.get('name'), updated_by=username_of(request), **fields
        )
        audit(request, 'SUPPLIER_CREATED', supplier, f"Supplier created: {supplier.supplier_code} {supplier.name}",
              branch=branch)
        return Response(SupplierSerializer(supplier).data, status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        return _server_error('supplier_list', e, 'Failed to process suppliers')


# Requisitions
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('PROCUREMENT', 'REQUISITION')
def requisition_list(request):
    """
    GET filters: status, priority, department.
    POST: {items: [{inventory_item_id, quantity, estimated_cost?, justification?}],
    department?, priority?, required_date?, remarks?, branch_id?}
    """
    try:
        if request.method == 'GET':
            requisitions = PurchaseRequisition.objects.filter(**get_branch_filter(request))
            for field in ('status', 'priority', 'department'):
                if request.GET.get(field):
                    requisitions = requisitions.filter(**{field: request.GET[field].upper()})
            return Response(PurchaseRequisitionSerializer(
                requisitions.prefetch_related('items__inventory_item')[:clamp_limit(request)], many=True
            ).data)

        data = _data(request)
        branch = resolve_write_branch(request, data.get('branch_id'))
        items = []
        for line in _lines(data):
            items.append({
                'item': InventoryItem.objects.get(id=line.get('inventory_item_id'), branch=branch),
                'quantity': line.get('quantity'),
                'estimated_cost': line.get('estimated_cost'),
                'justification': line.get('justification'),
            })
        requisition = ProcurementService.create_purchase_requisition(
            branch, items,
            requested_by=username_of(request),
            department=data.get('department') or '',
            priority=(data.get('priority') or 'MEDIUM').upper(),
            required_date=parse_date_field(data.get('required_date'), 'required_date', required=False),
            remarks=data.get('remarks') or '',
        )
        audit(request, 'REQUISITION_CREATED', requisition,
              f"{requisition.requisition_number}: {len(items)} item(s)", branch=branch)
        return Response(PurchaseRequisitionSerializer(requisition).data, status=status.HTTP_201_CREATED)
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('requisition_list', e, 'Failed to process requisitions')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'CREATE', 'REQUISITION')
def requisition_from_low_stock(request):
    """POST {branch_id?}: one requisition covering every item at or below its reorder level."""
    try:
        branch = resolve_write_branch(request, _data(request).get('branch_id'))
        requisition = ProcurementService.generate_low_stock_requisition(branch, requested_by=username_of(request))
        if requisition is None:
            return Response({'ok': True, 'requisition': None})
        audit(request, 'REQUISITION_CREATED', requisition,
              f"{requisition.requisition_number} raised from low stock", branch=branch)
        return Response({'ok': True, 'requisition': PurchaseRequisitionSerializer(requisition).data},
                        status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('requisition_from_low_stock', e, 'Failed to raise requisition')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'APPROVE', 'REQUISITION')
def requisition_decide(request, requisition_id: int):
    """POST {approve: true|false, remarks?}"""
    try:
        requisition = PurchaseRequisition.objects.get(id=requisition_id, **get_branch_filter(request))
        data = _data(request)
        requisition = ProcurementService.decide_purchase_requisition(
            requisition, to_bool(data.get('approve'), 'approve'),
            decided_by=username_of(request), remarks=data.get('remarks') or '',
        )
        audit(request, f"REQUISITION_{requisition.status}", requisition, requisition.requisition_number,
              branch=requisition.branch)
        return Response(PurchaseRequisitionSerializer(requisition).data)
    except PurchaseRequisition.DoesNotExist:
        return _not_found('Purchase requisition')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('requisition_decide', e, 'Failed to decide requisition')


# Purchase orders
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('PROCUREMENT', 'PURCHASE_ORDER')
def purchase_order_list(request):
    """
    GET filters: status, supplier_id, overdue=true.
    POST: {supplier_id, delivery_date, items: [{inventory_item_id, quantity, unit_price}],
    requisition_id?, tax_amount?, terms?}
    """
    try:
        if request.method == 'GET':
            orders = _order_scope(request)
            if request.GET.get('overdue') == 'true':
                return Response(ProcurementService.get_overdue_purchase_orders(orders))
            if request.GET.get('status'):
                orders = orders.filter(status=request.GET['status'].upper())
            if request.GET.get('supplier_id'):
                orders = orders.filter(supplier_id=request.GET['supplier_id'])
            return Response(PurchaseOrderSerializer(
                orders.prefetch_related('items__inventory_item')[:clamp_limit(request)], many=True
            ).data)

        data = _data(request)
        supplier = Supplier.objects.get(id=data.get('supplier_id'), **get_branch_filter(request))
        requisition = None
        if data.get('requisition_id'):
            requisition = PurchaseRequisition.objects.get(id=data['requisition_id'], branch=supplier.branch)
        items = []
        for line in _lines(data):
            items.append({
                'item': InventoryItem.objects.get(id=line.get('inventory_item_id'), branch=supplier.branch),
                'quantity': line.get('quantity'),
                'unit_price': line.get('unit_price'),
            })
        order = ProcurementService.create_purchase_order(
            supplier, items,
            delivery_date=parse_date_field(data.get('delivery_date'), 'delivery_date'),
            requisition=requisition,
            tax_amount=data.get('tax_amount') if data.get('tax_amount') not in (None, '') else None,
            terms=data.get('terms') or '',
            created_by=username_of(request),
        )
        audit(request, 'PURCHASE_ORDER_CREATED', order,
              f"{order.po_number}: {supplier.name} {order.final_amount} ({order.status})", branch=order.branch)
        return Response(PurchaseOrderSerializer(order).data, status=status.HTTP_201_CREATED)
    except Supplier.DoesNotExist:
        return _not_found('Supplier')
    except PurchaseRequisition.DoesNotExist:
        return _not_found('Purchase requisition')
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('purchase_order_list', e, 'Failed to process purchase orders')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'READ', 'PURCHASE_ORDER')
def purchase_order_detail(request, order_id: int):
    try:
        order = _order_scope(request).get(id=order_id)
        return Response(PurchaseOrderSerializer(order).data)
    except PurchaseOrder.DoesNotExist:
        return _not_found('Purchase order')
    except ERPError as e:
        return error_response(e)


def _order_action(request, order_id, action):
    try:
        order = _order_scope(request).get(id=order_id)
        handler = {
            'approve': lambda o: ProcurementService.approve_purchase_order(o, approved_by=username_of(request)),
            'send': lambda o: ProcurementService.send_purchase_order(o, updated_by=username_of(request)),
            'cancel': lambda o: ProcurementService.cancel_purchase_order(o, updated_by=username_of(request)),
        }[action]
        order = handler(order)
        audit(request, f"PURCHASE_ORDER_{order.status}", order, order.po_number, branch=order.branch)
        return Response(PurchaseOrderSerializer(order).data)
    except PurchaseOrder.DoesNotExist:
        return _not_found('Purchase order')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error(f'purchase_order_{action}', e, f'Failed to {action} purchase order')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'APPROVE', 'PURCHASE_ORDER')
def purchase_order_approve(request, order_id: int):
    return _order_action(request, order_id, 'approve')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'UPDATE', 'PURCHASE_ORDER')
def purchase_order_send(request, order_id: int):
    return _order_action(request, order_id, 'send')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'UPDATE', 'PURCHASE_ORDER')
def purchase_order_cancel(request, order_id: int):
    return _order_action(request, order_id, 'cancel')


# Goods receipts
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('PROCUREMENT', 'GOODS_RECEIPT')
def goods_receipt_list(request, order_id: int):
    """
    POST: {items: [{order_item_id, received_quantity, accepted_quantity?,
    batch_number?, expiry_date?}], remarks?}
    """
    try:
        order = _order_scope(request).get(id=order_id)
        if request.method == 'GET':
            receipts = order.receipts.prefetch_related('items__order_item__inventory_item')
            return Response(GoodsReceiptSerializer(receipts, many=True).data)

        data = _data(request)
        lines = []
        for line in _lines(data):
            lines.append({
                'order_item': order.items.get(id=line.get('order_item_id')),
                'received_quantity': line.get('received_quantity'),
                'accepted_quantity': line.get('accepted_quantity'),
                'batch_number': line.get('batch_number') or '',
                'expiry_date': parse_date_field(line.get('expiry_date'), 'expiry_date', required=False),
            })
        receipt = ProcurementService.receive_goods(
            order, lines, received_by=username_of(request), remarks=data.get('remarks') or '',
        )
        audit(request, 'GOODS_RECEIVED', receipt, f"{receipt.grn_number} against {order.po_number}",
              branch=order.branch)
        return Response(GoodsReceiptSerializer(receipt).data, status=status.HTTP_201_CREATED)
    except PurchaseOrder.DoesNotExist:
        return _not_found('Purchase order')
    except PurchaseOrderItem.DoesNotExist:
        return _not_found('Purchase order line')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('goods_receipt_list', e, 'Failed to process goods receipts')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'READ', 'GOODS_RECEIPT')
def goods_receipt_detail(request, receipt_id: int):
    try:
        receipt = GoodsReceipt.objects.filter(**get_branch_filter(request)).get(id=receipt_id)
        return Response(GoodsReceiptSerializer(receipt).data)
    except GoodsReceipt.DoesNotExist:
        return _not_found('Goods receipt')
    except ERPError as e:
        return error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('PROCUREMENT', 'READ')
def procurement_summary(request):
    try:
        branch_filter = get_branch_filter(request)
        return Response(ProcurementService.get_procurement_summary(
            PurchaseRequisition.objects.filter(**branch_filter),
            PurchaseOrder.objects.filter(**branch_filter),
        ))
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('procurement_summary', e, 'Failed to build procurement summary')
