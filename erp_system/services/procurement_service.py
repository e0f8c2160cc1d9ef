"""
Procurement Service.

Purchase requisitions (manual or raised from low stock), purchase orders
with amount based approval, and goods receipt notes that post accepted
quantities into stock through InventoryService.
"""
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone
import logging

from ..exceptions import ValidationFailed, WorkflowError
from ..models import DocumentCounter
from ..utils import money, to_decimal
from .inventory_service import InventoryService

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

PRIORITY_ORDER = ('LOW', 'MEDIUM', 'HIGH', 'URGENT')
# days until the requisition is needed, by priority
REQUIRED_WITHIN_DAYS = {'URGENT': 1, 'HIGH': 3, 'MEDIUM': 7, 'LOW': 14}

OPEN_REQUISITION_STATUSES = ('PENDING', 'APPROVED')
RECEIVABLE_ORDER_STATUSES = ('APPROVED', 'SENT', 'PARTIALLY_RECEIVED')
CANCELLABLE_ORDER_STATUSES = ('PENDING', 'APPROVED', 'SENT')


def _period():
    return timezone.localdate().strftime('%Y%m')


def highest_priority(priorities):
    """The most urgent of the given priorities (LOW when empty)."""
    ranked = [PRIORITY_ORDER.index(p) for p in priorities if p in PRIORITY_ORDER]
    return PRIORITY_ORDER[max(ranked)] if ranked else 'LOW'


def required_date_for(priority, today=None):
    today = today or timezone.localdate()
    return today + timedelta(days=REQUIRED_WITHIN_DAYS.get(priority, REQUIRED_WITHIN_DAYS['LOW']))


def stock_urgency(item):
    """URGENT when out of stock, HIGH at or below safety stock, else MEDIUM."""
    if item.available_stock <= 0:
        return 'URGENT'
    if item.safety_stock > 0 and item.available_stock <= item.safety_stock:
        return 'HIGH'
    return 'MEDIUM'


def requires_approval(final_amount):
    return Decimal(str(final_amount)) > Decimal(str(settings.ERP_PO_APPROVAL_THRESHOLD))


class ProcurementService:

    # --- Suppliers --------------------------------------------------------

    @staticmethod
    def create_supplier(branch, name, updated_by='system', **fields):
        from ..models import Supplier

        if not (name or '').strip():
            raise ValidationFailed('name is required')
        supplier = Supplier.objects.create(
            branch=branch,
            supplier_code=DocumentCounter.next_number('SUP', str(timezone.localdate().year), 4),
            name=name.strip(),
            updated_by=updated_by,
            **fields,
        )
        logger.info(f"Supplier created: {supplier.supplier_code} {supplier.name} ({branch.code})")
        return supplier

    # --- Requisitions -----------------------------------------------------

    @staticmethod
    @transaction.atomic
    def create_purchase_requisition(branch, items, requested_by='system', department='', priority='MEDIUM',
                                    required_date=None, remarks=''):
        """
        Raise a PENDING requisition.

        Args:
            items: list of {'item': InventoryItem, 'quantity', 'estimated_cost', 'justification'}
        """
        from ..models import PurchaseRequisition, PurchaseRequisitionItem

        if not items:
            raise ValidationFailed('At least one item is required')
        if priority not in PRIORITY_ORDER:
            raise ValidationFailed(f"priority must be one of {', '.join(PRIORITY_ORDER)}")

        lines = []
        for line in items:
            item = line['item']
            quantity = to_decimal(line.get('quantity'), 'quantity')
            if quantity <= 0:
                raise ValidationFailed('quantity must be greater than zero')
            if item.branch_id != branch.id:
                raise ValidationFailed(f"Item {item.item_code} belongs to another branch")
            lines.append(PurchaseRequisitionItem(
                inventory_item=item,
                quantity=quantity,
                estimated_cost=money(to_decimal(line.get('estimated_cost'), 'estimated_cost', default=0)),
                justification=(line.get('justification') or '')[:255],
            ))

        requisition = PurchaseRequisition.objects.create(
            branch=branch,
            requisition_number=DocumentCounter.next_number('PR', _period(), 4),
            requested_by=requested_by,
            department=(department or '').upper(),
            priority=priority,
            required_date=required_date or required_date_for(priority),
            remarks=remarks,
            updated_by=requested_by,
        )
        for line in lines:
            line.requisition = requisition
        PurchaseRequisitionItem.objects.bulk_create(lines)

        logger.info(
            f"Purchase requisition {requisition.requisition_number} raised by {requested_by}: "
            f"{len(lines)} item(s), priority {priority}"
        )
        return requisition

    @staticmethod
    def generate_low_stock_requisition(branch, requested_by='system'):
        """
        Raise one requisition for every active item at or below its reorder
        level that is not already on an open requisition.

        Each line orders back up to twice the reorder level. Returns the
        requisition, or None when nothing needs ordering.
        """
        from ..models import InventoryItem, PurchaseRequisitionItem

        already_requested = PurchaseRequisitionItem.objects.filter(
            requisition__status__in=OPEN_REQUISITION_STATUSES, inventory_item__branch=branch,
        ).values_list('inventory_item_id', flat=True)
        short = (
            InventoryItem.objects.filter(
                branch=branch, is_active=True, reorder_level__gt=0, available_stock__lte=F('reorder_level'),
            )
            .exclude(id__in=already_requested)
            .order_by('item_code')
        )

        lines = []
        urgencies = []
        for item in short:
            urgency = stock_urgency(item)
            urgencies.append(urgency)
            lines.append({
                'item': item,
                'quantity': item.reorder_level * 2 - item.available_stock,
                'estimated_cost': item.standard_cost,
                'justification': f"Stock at {item.available_stock} {item.unit}, reorder level {item.reorder_level}. "
                                 f"Urgency: {urgency}",
            })
        if not lines:
            return None

        return ProcurementService.create_purchase_requisition(
            branch, lines, requested_by=requested_by, department='PROCUREMENT',
            priority=highest_priority(urgencies), remarks='Raised from low stock levels',
        )

    @staticmethod
    @transaction.atomic
    def decide_purchase_requisition(requisition, approve, decided_by='system', remarks=''):
        from ..models import PurchaseRequisition

        requisition = PurchaseRequisition.objects.select_for_update().get(pk=requisition.pk)
        if requisition.status != 'PENDING':
            raise WorkflowError(
                f"Requisition {requisition.requisition_number} is already {requisition.status}", requisition.status
            )
        requisition.status = 'APPROVED' if approve else 'REJECTED'
        requisition.decided_by = decided_by
        requisition.decided_at = timezone.now()
        if remarks:
            requisition.remarks = remarks
        requisition.updated_by = decided_by
        requisition.save()
        logger.info(f"Purchase requisition {requisition.requisition_number} {requisition.status} by {decided_by}")
        return requisition

    # --- Purchase orders --------------------------------------------------

    @staticmethod
    @transaction.atomic
    def create_purchase_order(supplier, items, delivery_date, requisition=None, tax_amount=None, terms='',
                              created_by='system'):
        """
        Create a purchase order for the supplier's branch.

        Orders above ERP_PO_APPROVAL_THRESHOLD (after tax) start PENDING and
        need approve_purchase_order; smaller ones start APPROVED. A linked
        requisition must be APPROVED and becomes CONVERTED.

        Args:
            items: list of {'item': InventoryItem, 'quantity', 'unit_price'}
            tax_amount: defaults to ERP_DEFAULT_TAX_RATE% of the total
        """
        from ..models import PurchaseOrder, PurchaseOrderItem, PurchaseRequisition

        if not items:
            raise ValidationFailed('At least one item is required')
        if not supplier.is_active:
            raise ValidationFailed(f"Supplier {supplier.supplier_code} is inactive")
        if delivery_date is None:
            raise ValidationFailed('delivery_date is required')

        lines = []
        for line in items:
            item = line['item']
            quantity = to_decimal(line.get('quantity'), 'quantity')
            unit_price = to_decimal(line.get('unit_price'), 'unit_price')
            if quantity <= 0:
                raise ValidationFailed('quantity must be greater than zero')
            if unit_price < 0:
                raise ValidationFailed('unit_price cannot be negative')
            if item.branch_id != supplier.branch_id:
                raise ValidationFailed(f"Item {item.item_code} belongs to another branch")
            lines.append(PurchaseOrderItem(
                inventory_item=item,
                quantity=quantity,
                unit_price=money(unit_price),
                total_price=money(quantity * unit_price),
            ))

        if requisition is not None:
            requisition = PurchaseRequisition.objects.select_for_update().get(pk=requisition.pk)
            if requisition.branch_id != supplier.branch_id:
                raise ValidationFailed('Requisition belongs to another branch')
            if requisition.status != 'APPROVED':
                raise WorkflowError(
                    f"Requisition {requisition.requisition_number} is {requisition.status}, not APPROVED",
                    requisition.status,
                )

        total = money(sum((l.total_price for l in lines), ZERO))
        if tax_amount is None:
            tax = money(total * Decimal(str(settings.ERP_DEFAULT_TAX_RATE)) / Decimal('100'))
        else:
            tax = money(to_decimal(tax_amount, 'tax_amount'))
            if tax < 0:
                raise ValidationFailed('tax_amount cannot be negative')
        final = money(total + tax)
        pending = requires_approval(final)

        order = PurchaseOrder.objects.create(
            branch=supplier.branch,
            po_number=DocumentCounter.next_number('PUR', _period(), 4),
            supplier=supplier,
            requisition=requisition,
            delivery_date=delivery_date,
            status='PENDING' if pending else 'APPROVED',
            total_amount=total,
            tax_amount=tax,
            final_amount=final,
            terms=terms,
            approved_by='' if pending else created_by,
            approved_at=None if pending else timezone.now(),
            updated_by=created_by,
        )
        for line in lines:
            line.order = order
        PurchaseOrderItem.objects.bulk_create(lines)

        if requisition is not None:
            requisition.status = 'CONVERTED'
            requisition.updated_by = created_by
            requisition.save()

        logger.info(
            f"Purchase order {order.po_number} created: supplier={supplier.supplier_code} "
            f"final={final} status={order.status}"
        )
        return order

    @staticmethod
    @transaction.atomic
    def approve_purchase_order(order, approved_by='system'):
        from ..models import PurchaseOrder

        order = PurchaseOrder.objects.select_for_update().get(pk=order.pk)
        if order.status != 'PENDING':
            raise WorkflowError(f"Purchase order {order.po_number} is not awaiting approval", order.status)
        order.status = 'APPROVED'
        order.approved_by = approved_by
        order.approved_at = timezone.now()
        order.updated_by = approved_by
        order.save()
        logger.info(f"Purchase order {order.po_number} approved by {approved_by}")
        return order

    @staticmethod
    @transaction.atomic
    def send_purchase_order(order, updated_by='system'):
        from ..models import PurchaseOrder

        order = PurchaseOrder.objects.select_for_update().get(pk=order.pk)
        if order.status != 'APPROVED':
            raise WorkflowError(f"Only APPROVED purchase orders can be sent; {order.po_number} is {order.status}",
                                order.status)
        order.status = 'SENT'
        order.updated_by = updated_by
        order.save()
        logger.info(f"Purchase order {order.po_number} sent to {order.supplier.name}")
        return order

    @staticmethod
    @transaction.atomic
    def cancel_purchase_order(order, updated_by='system'):
        from ..models import PurchaseOrder

        order = PurchaseOrder.objects.select_for_update().get(pk=order.pk)
        if order.status not in CANCELLABLE_ORDER_STATUSES:
            raise WorkflowError(f"Purchase order {order.po_number} cannot be cancelled", order.status)
        order.status = 'CANCELLED'
        order.updated_by = updated_by
        order.save()
        logger.info(f"Purchase order {order.po_number} cancelled by {updated_by}")
        return order

    # --- Goods receipt ----------------------------------------------------

    @staticmethod
    @transaction.atomic
    def receive_goods(order, lines, received_by='system', remarks=''):
        """
        Record a goods receipt note against an approved purchase order.

        Accepted quantities are posted as IN stock transactions at the
        order's unit price (reference GRN). Rejected quantities are only
        recorded. The order becomes RECEIVED once nothing is pending, else
        PARTIALLY_RECEIVED.

        Args:
            lines: list of {'order_item': PurchaseOrderItem, 'received_quantity',
                'accepted_quantity' (defaults to received), 'batch_number', 'expiry_date'}

        Raises:
            WorkflowError: order not APPROVED / SENT / PARTIALLY_RECEIVED
            ValidationFailed: quantities out of range or lines from another order
        """
        from ..models import GoodsReceipt, GoodsReceiptItem, PurchaseOrder, PurchaseOrderItem

        order = PurchaseOrder.objects.select_for_update().get(pk=order.pk)
        if order.status not in RECEIVABLE_ORDER_STATUSES:
            raise WorkflowError(f"Purchase order {order.po_number} cannot receive goods", order.status)
        if not lines:
            raise ValidationFailed('At least one line is required')

        parsed = []
        for line in lines:
            order_item = PurchaseOrderItem.objects.select_for_update().select_related('inventory_item').get(
                pk=line['order_item'].pk
            )
            if order_item.order_id != order.pk:
                raise ValidationFailed(f"Line {order_item.pk} is not part of {order.po_number}")
            received = to_decimal(line.get('received_quantity'), 'received_quantity')
            accepted = received if line.get('accepted_quantity') is None else to_decimal(
                line['accepted_quantity'], 'accepted_quantity'
            )
            if received <= 0:
                raise ValidationFailed('received_quantity must be greater than zero')
            if accepted < 0 or accepted > received:
                raise ValidationFailed('accepted_quantity must be between 0 and received_quantity')
            if received > order_item.pending_quantity:
                raise ValidationFailed(
                    f"{order_item.inventory_item.item_code}: received {received} exceeds pending "
                    f"{order_item.pending_quantity}"
                )
            parsed.append((order_item, received, accepted, line))

        receipt = GoodsReceipt.objects.create(
            branch=order.branch,
            grn_number=DocumentCounter.next_number('GRN', _period(), 4),
            purchase_order=order,
            received_by=received_by,
            remarks=remarks,
            updated_by=received_by,
        )

        for order_item, received, accepted, line in parsed:
            txn = None
            if accepted > 0:
                txn = InventoryService.record_stock_transaction(
                    order_item.inventory_item,
                    'IN',
                    accepted,
                    unit_cost=order_item.unit_price,
                    reference_type='GRN',
                    reference_id=receipt.grn_number,
                    batch_number=line.get('batch_number') or '',
                    expiry_date=line.get('expiry_date'),
                    remarks=f"Received against {order.po_number}",
                    created_by=received_by,
                )
            GoodsReceiptItem.objects.create(
                receipt=receipt,
                order_item=order_item,
                received_quantity=received,
                accepted_quantity=accepted,
                rejected_quantity=received - accepted,
                batch_number=line.get('batch_number') or '',
                expiry_date=line.get('expiry_date'),
                stock_transaction=txn,
            )
            order_item.received_quantity += received
            order_item.save(update_fields=['received_quantity'])

        outstanding = order.items.filter(received_quantity__lt=F('quantity')).exists()
        order.status = 'PARTIALLY_RECEIVED' if outstanding else 'RECEIVED'
        order.updated_by = received_by
        order.save()

        logger.info(f"GRN {receipt.grn_number} posted against {order.po_number}: order now {order.status}")
        return receipt

    # --- Reporting --------------------------------------------------------

    @staticmethod
    def get_overdue_purchase_orders(orders, today=None):
        """Open orders past their delivery date with quantity still pending."""
        today = today or timezone.localdate()
        rows = []
        overdue = (
            orders.filter(status__in=RECEIVABLE_ORDER_STATUSES, delivery_date__lt=today)
            .select_related('supplier')
            .prefetch_related('items')
            .order_by('delivery_date', 'id')
        )
        for order in overdue:
            pending_value = sum(
                (item.pending_quantity * item.unit_price for item in order.items.all() if item.pending_quantity > 0),
                ZERO,
            )
            if pending_value <= 0:
                continue
            rows.append({
                'purchase_order_id': order.id,
                'po_number': order.po_number,
                'supplier': order.supplier.name,
                'status': order.status,
                'delivery_date': order.delivery_date,
                'days_overdue': (today - order.delivery_date).days,
                'pending_value': money(pending_value),
            })
        return rows

    @staticmethod
    def get_procurement_summary(requisitions, orders, today=None):
        """Counts and spend for the procurement dashboard."""
        today = today or timezone.localdate()
        month_spend = (
            orders.exclude(status='CANCELLED')
            .filter(order_date__year=today.year, order_date__month=today.month)
            .aggregate(v=Sum('final_amount'))['v']
        )
        overdue = ProcurementService.get_overdue_purchase_orders(orders, today=today)
        return {
            'pending_requisitions': requisitions.filter(status='PENDING').count(),
            'orders_pending_approval': orders.filter(status='PENDING').count(),
            'open_orders': orders.filter(status__in=RECEIVABLE_ORDER_STATUSES).count(),
            'overdue_orders': len(overdue),
            'monthly_spend': money(month_spend or ZERO),
            'overdue': overdue[:10],
        }
