"""
Inventory Service.

Stock movements, reservations, valuation, cycle counts and inter-branch
transfers. Every stock mutation locks the InventoryItem row and keeps
available_stock == current_stock - reserved_stock; no operation may drive
available or current stock below zero.
"""
import hashlib
import uuid
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
import logging

from ..exceptions import InsufficientStock, ValidationFailed, WorkflowError
from ..models import DocumentCounter
from ..utils import money
from .alert_service import AlertService

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

VALUATION_METHODS = ('FIFO', 'LIFO', 'WEIGHTED_AVERAGE')
MOVEMENT_TYPES = ('IN', 'OUT', 'ADJUSTMENT')

AGING_BUCKETS = (  # (more than N days, label), checked oldest first
    (365, 'Over 1 Year'),
    (180, '6-12 Months'),
    (90, '3-6 Months'),
    (30, '1-3 Months'),
)


def value_stock(current_stock, receipts, method):
    """
    Value on-hand stock from its IN receipts.

    Args:
        current_stock: quantity on hand
        receipts: chronological list of (quantity, unit_cost)
        method: FIFO (oldest receipts first), LIFO (newest first) or
            WEIGHTED_AVERAGE (current_stock x total value / total quantity)

    Stock beyond the recorded receipts stays unvalued.
    """
    if method not in VALUATION_METHODS:
        raise ValidationFailed(f"Unknown valuation method '{method}'. Valid methods: {', '.join(VALUATION_METHODS)}")

    remaining = Decimal(current_stock)
    if remaining <= 0:
        return Decimal('0.00')

    receipts = [(Decimal(q), Decimal(c or 0)) for q, c in receipts]
    if method == 'WEIGHTED_AVERAGE':
        total_qty = sum((q for q, _ in receipts), ZERO)
        total_value = sum((q * c for q, c in receipts), ZERO)
        if total_qty <= 0:
            return Decimal('0.00')
        return money(remaining * total_value / total_qty)

    ordered = receipts if method == 'FIFO' else list(reversed(receipts))
    valuation = ZERO
    for qty, unit_cost in ordered:
        if remaining <= 0:
            break
        take = min(remaining, qty)
        valuation += take * unit_cost
        remaining -= take
    return money(valuation)


def aging_category(age_in_days):
    for threshold, label in AGING_BUCKETS:
        if age_in_days > threshold:
            return label
    return 'Current'


def generate_barcode(item_code):
    seed = f"{item_code}{timezone.now().timestamp()}{uuid.uuid4().hex}"
    digest = hashlib.sha1(seed.encode('utf-8')).hexdigest()[:8]
    return f"{item_code}-{digest}".upper()


def _reset_available(item):
    item.available_stock = item.current_stock - item.reserved_stock


class InventoryService:
    """
    Stock operations.

    Responsibilities:
    - Row locking (select_for_update) around every stock change
    - Stock transaction audit trail
    - Reorder / safety stock alerts after movements
    """

    @staticmethod
    def create_inventory_item(branch, warehouse, item_code, name, category, updated_by='system', **fields):
        from ..models import InventoryItem

        if warehouse.branch_id != branch.id:
            raise ValidationFailed('Warehouse does not belong to this branch')
        if not item_code or not name:
            raise ValidationFailed('item_code and name are required')

        item = InventoryItem.objects.create(
            branch=branch,
            warehouse=warehouse,
            item_code=item_code,
            name=name,
            category=category,
            barcode=generate_barcode(item_code),
            current_stock=ZERO,
            available_stock=ZERO,
            reserved_stock=ZERO,
            updated_by=updated_by,
            **fields,
        )
        logger.info(f"Inventory item created: {item.item_code} in {warehouse.code} ({branch.code})")
        return item

    @staticmethod
    @transaction.atomic
    def record_stock_transaction(
        item,
        transaction_type,
        quantity,
        unit_cost=None,
        reference_type='',
        reference_id='',
        batch_number='',
        expiry_date=None,
        remarks='',
        created_by='system',
    ):
        """
        Record an IN / OUT / ADJUSTMENT movement and update stock levels.

        IN adds to current and available; OUT removes from both and fails when
        available stock is short; ADJUSTMENT sets current stock to quantity
        and cannot go below the reserved quantity.

        Raises:
            ValidationFailed: unknown type or non-positive quantity
            InsufficientStock: OUT beyond available, ADJUSTMENT below reserved
        """
        from ..models import InventoryItem, StockTransaction

        if transaction_type not in MOVEMENT_TYPES:
            raise ValidationFailed(f"transaction_type must be one of {', '.join(MOVEMENT_TYPES)}")
        quantity = Decimal(str(quantity))
        if quantity < 0 or (quantity == 0 and transaction_type != 'ADJUSTMENT'):
            raise ValidationFailed('quantity must be greater than zero')

        item = InventoryItem.objects.select_for_update().get(pk=item.pk)

        if transaction_type == 'IN':
            item.current_stock += quantity
        elif transaction_type == 'OUT':
            if item.available_stock < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for item {item.name}. "
                    f"Available: {item.available_stock}, Required: {quantity}",
                    [{'item_code': item.item_code, 'available': str(item.available_stock), 'required': str(quantity)}],
                )
            item.current_stock -= quantity
        else:
            if quantity < item.reserved_stock:
                raise InsufficientStock(
                    f"Cannot adjust {item.item_code} to {quantity}: {item.reserved_stock} is reserved",
                    [{'item_code': item.item_code, 'reserved': str(item.reserved_stock), 'requested': str(quantity)}],
                )
            item.current_stock = quantity

        _reset_available(item)
        item.updated_by = created_by
        item.save()

        if unit_cost is None:
            unit_cost = item.standard_cost
        txn = StockTransaction.objects.create(
            inventory_item=item,
            warehouse=item.warehouse,
            transaction_type=transaction_type,
            quantity=quantity,
            unit_cost=Decimal(str(unit_cost or 0)),
            reference_type=reference_type,
            reference_id=str(reference_id or ''),
            batch_number=batch_number,
            expiry_date=expiry_date,
            remarks=remarks,
            created_by=created_by,
        )
        logger.info(
            f"Stock {transaction_type} {quantity} {item.item_code}: "
            f"current={item.current_stock} available={item.available_stock}"
        )

        InventoryService.check_reorder_alerts(item)
        return txn

    @staticmethod
    def check_reorder_alerts(item):
        """
        Raise SAFETY_STOCK_BREACH (HIGH) or REORDER_LEVEL_BREACH (MEDIUM).

        An open alert of the same type for the same item is not duplicated.

        Returns:
            Alert or None
        """
        if item.current_stock <= item.safety_stock and item.safety_stock > 0:
            alert_type, priority, label = 'SAFETY_STOCK_BREACH', 'HIGH', 'safety stock'
            threshold = item.safety_stock
        elif item.current_stock <= item.reorder_level and item.reorder_level > 0:
            alert_type, priority, label = 'REORDER_LEVEL_BREACH', 'MEDIUM', 'reorder level'
            threshold = item.reorder_level
        else:
            return None

        if AlertService.open_alert_exists(alert_type, 'INVENTORY_ITEM', item.id):
            return None

        return AlertService.create_alert(
            module='INVENTORY',
            alert_type=alert_type,
            process='REORDER',
            title=f"{item.item_code} below {label}",
            message=(
                f"Item {item.item_code} ({item.name}) stock {item.current_stock} {item.unit} "
                f"is at or below {label} {threshold}. Lead time {item.lead_time_days} days."
            ),
            priority=priority,
            branch=item.branch,
            reference_type='INVENTORY_ITEM',
            reference_id=item.id,
        )

    @staticmethod
    def check_all_reorder_alerts(items):
        """Run check_reorder_alerts over a queryset. Returns alerts raised."""
        raised = []
        for item in items.filter(is_active=True):
            alert = InventoryService.check_reorder_alerts(item)
            if alert:
                raised.append(alert)
        return raised

    @staticmethod
    @transaction.atomic
    def reserve_order_materials(order_type, order_id, items, created_by='system'):
        """
        Reserve stock for an order, all or nothing.

        Args:
            items: list of {'item': InventoryItem, 'quantity': Decimal}

        Raises:
            InsufficientStock: first item whose available stock is short
        """
        from ..models import InventoryItem, StockTransaction

        locked = []
        for line in items:
            quantity = Decimal(str(line['quantity']))
            if quantity <= 0:
                raise ValidationFailed('quantity must be greater than zero')
            item = InventoryItem.objects.select_for_update().get(pk=line['item'].pk)
            if item.available_stock < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for item {item.name}. "
                    f"Available: {item.available_stock}, Required: {quantity}",
                    [{'item_code': item.item_code, 'available': str(item.available_stock), 'required': str(quantity)}],
                )
            locked.append((item, quantity))

        reservations = []
        for item, quantity in locked:
            item.reserved_stock += quantity
            _reset_available(item)
            item.updated_by = created_by
            item.save()
            reservations.append(StockTransaction.objects.create(
                inventory_item=item,
                warehouse=item.warehouse,
                transaction_type='RESERVATION',
                quantity=quantity,
                unit_cost=item.standard_cost,
                reference_type=order_type,
                reference_id=str(order_id),
                remarks=f"Material reserved for {order_type} {order_id}",
                created_by=created_by,
            ))
        logger.info(f"Reserved {len(reservations)} item(s) for {order_type} {order_id}")
        return reservations

    @staticmethod
    def _outstanding_reservations(order_type, order_id):
        """Reserved quantity per item id not yet released or consumed."""
        from ..models import StockTransaction

        totals = {}
        rows = (
            StockTransaction.objects
            .filter(reference_type=order_type, reference_id=str(order_id),
                    transaction_type__in=['RESERVATION', 'RELEASE', 'OUT'])
            .values('inventory_item_id', 'transaction_type')
            .annotate(qty=Sum('quantity'))
        )
        for row in rows:
            sign = 1 if row['transaction_type'] == 'RESERVATION' else -1
            totals[row['inventory_item_id']] = totals.get(row['inventory_item_id'], ZERO) + sign * row['qty']
        return {item_id: qty for item_id, qty in totals.items() if qty > 0}

    @staticmethod
    @transaction.atomic
    def release_order_reservation(order_type, order_id, created_by='system'):
        """
        Return an order's outstanding reservations to available stock.

        Returns:
            Number of items released (0 when nothing is outstanding)
        """
        from ..models import InventoryItem, StockTransaction

        outstanding = InventoryService._outstanding_reservations(order_type, order_id)
        released = 0
        for item_id, quantity in outstanding.items():
            item = InventoryItem.objects.select_for_update().get(pk=item_id)
            quantity = min(quantity, item.reserved_stock)
            if quantity <= 0:
                continue
            item.reserved_stock -= quantity
            _reset_available(item)
            item.updated_by = created_by
            item.save()
            StockTransaction.objects.create(
                inventory_item=item,
                warehouse=item.warehouse,
                transaction_type='RELEASE',
                quantity=quantity,
                unit_cost=item.standard_cost,
                reference_type=order_type,
                reference_id=str(order_id),
                remarks=f"Reservation released for {order_type} {order_id}",
                created_by=created_by,
            )
            released += 1
        logger.info(f"Released {released} reservation(s) for {order_type} {order_id}")
        return released

    @staticmethod
    @transaction.atomic
    def allocate_order_materials(order_type, order_id, items, created_by='system'):
        """
        Issue materials to an order, consuming its reservation first.

        current -= quantity, reserved -= min(quantity, reserved); the part not
        covered by the reservation must be available.
        """
        from ..models import InventoryItem, StockTransaction

        issued = []
        for line in items:
            quantity = Decimal(str(line['quantity']))
            if quantity <= 0:
                raise ValidationFailed('quantity must be greater than zero')
            item = InventoryItem.objects.select_for_update().get(pk=line['item'].pk)
            from_reserved = min(quantity, item.reserved_stock)
            if quantity - from_reserved > item.available_stock:
                raise InsufficientStock(
                    f"Insufficient stock for item {item.name}. "
                    f"Available: {item.available_stock + from_reserved}, Required: {quantity}",
                    [{'item_code': item.item_code, 'available': str(item.available_stock + from_reserved),
                      'required': str(quantity)}],
                )
            item.current_stock -= quantity
            item.reserved_stock -= from_reserved
            _reset_available(item)
            item.updated_by = created_by
            item.save()
            issued.append(StockTransaction.objects.create(
                inventory_item=item,
                warehouse=item.warehouse,
                transaction_type='OUT',
                quantity=quantity,
                unit_cost=item.standard_cost,
                reference_type=order_type,
                reference_id=str(order_id),
                remarks=f"Material allocated to {order_type} {order_id}",
                created_by=created_by,
            ))
            InventoryService.check_reorder_alerts(item)
        return issued

    @staticmethod
    def calculate_inventory_valuation(method, items):
        """
        Value every item in the queryset with the given method.

        Returns:
            dict with method, items (per-item rows), total_value, item_count
        """
        from ..models import StockTransaction

        if method not in VALUATION_METHODS:
            raise ValidationFailed(f"Unknown valuation method '{method}'. Valid methods: {', '.join(VALUATION_METHODS)}")

        rows = []
        total = Decimal('0.00')
        for item in items.filter(is_active=True).select_related('warehouse').order_by('item_code'):
            receipts = list(
                StockTransaction.objects
                .filter(inventory_item=item, transaction_type='IN')
                .order_by('transaction_date', 'id')
                .values_list('quantity', 'unit_cost')
            )
            valuation = value_stock(item.current_stock, receipts, method)
            total += valuation
            rows.append({
                'inventory_item_id': item.id,
                'item_code': item.item_code,
                'name': item.name,
                'warehouse': item.warehouse.code,
                'current_stock': item.current_stock,
                'valuation': valuation,
                'method': method,
            })
        return {'method': method, 'items': rows, 'total_value': money(total), 'item_count': len(rows)}

    @staticmethod
    def perform_cycle_count(item, counted_quantity, remarks='', counted_by='system'):
        """
        Reconcile the system quantity with a physical count.

        Returns:
            dict with variance, system_quantity, counted_quantity and the
            ADJUSTMENT transaction (None when the count matched)
        """
        counted = Decimal(str(counted_quantity))
        if counted < 0:
            raise ValidationFailed('counted_quantity cannot be negative')
        system_qty = item.current_stock
        variance = counted - system_qty
        txn = None
        if variance != 0:
            txn = InventoryService.record_stock_transaction(
                item,
                'ADJUSTMENT',
                counted,
                reference_type='CYCLE_COUNT',
                reference_id=uuid.uuid4().hex[:12],
                remarks=f"Cycle count adjustment. Variance: {variance}. {remarks}".strip(),
                created_by=counted_by,
            )
        return {
            'item_code': item.item_code,
            'system_quantity': system_qty,
            'counted_quantity': counted,
            'variance': variance,
            'transaction_id': txn.id if txn else None,
        }

    @staticmethod
    def perform_stock_adjustment(item, new_quantity, reason, adjusted_by='system'):
        if not reason:
            raise ValidationFailed('reason is required for a stock adjustment')
        new_quantity = Decimal(str(new_quantity))
        if new_quantity < 0:
            raise ValidationFailed('new_quantity cannot be negative')
        previous = item.current_stock
        txn = InventoryService.record_stock_transaction(
            item,
            'ADJUSTMENT',
            new_quantity,
            reference_type='MANUAL_ADJUSTMENT',
            reference_id=uuid.uuid4().hex[:12],
            remarks=f"Manual adjustment: {reason}. Variance: {new_quantity - previous}",
            created_by=adjusted_by,
        )
        return {
            'item_code': item.item_code,
            'previous_quantity': previous,
            'new_quantity': new_quantity,
            'variance': new_quantity - previous,
            'transaction_id': txn.id,
        }

    # --- Stock transfers -------------------------------------------------

    @staticmethod
    @transaction.atomic
    def create_stock_transfer(from_warehouse, to_warehouse, items, requested_by='system', notes=''):
        """
        Ship stock from one warehouse to another (possibly another branch).

        Source stock is deducted immediately (TRANSFER transaction with a
        negative quantity); the transfer stays IN_TRANSIT until received.
        """
        from ..models import InventoryItem, StockTransaction, StockTransfer, StockTransferItem

        if from_warehouse.pk == to_warehouse.pk:
            raise ValidationFailed('Source and destination warehouse must differ')
        if not items:
            raise ValidationFailed('At least one item is required')

        now = timezone.now()
        transfer = StockTransfer.objects.create(
            transfer_number=DocumentCounter.next_number('ST', now.strftime('%y%m%d'), 3),
            from_branch=from_warehouse.branch,
            to_branch=to_warehouse.branch,
            from_warehouse=from_warehouse,
            to_warehouse=to_warehouse,
            requested_by=requested_by,
            shipped_at=now,
            notes=notes,
            updated_by=requested_by,
        )

        for line in items:
            quantity = Decimal(str(line['quantity']))
            if quantity <= 0:
                raise ValidationFailed('quantity must be greater than zero')
            item = InventoryItem.objects.select_for_update().get(pk=line['item'].pk)
            if item.warehouse_id != from_warehouse.pk:
                raise ValidationFailed(f"Item {item.item_code} is not stocked in {from_warehouse.code}")
            if item.available_stock < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for item {item.name}. "
                    f"Available: {item.available_stock}, Required: {quantity}",
                    [{'item_code': item.item_code, 'available': str(item.available_stock), 'required': str(quantity)}],
                )
            item.current_stock -= quantity
            _reset_available(item)
            item.updated_by = requested_by
            item.save()

            StockTransferItem.objects.create(
                transfer=transfer, source_item=item, quantity=quantity, unit_cost=item.standard_cost,
            )
            StockTransaction.objects.create(
                inventory_item=item,
                warehouse=from_warehouse,
                transaction_type='TRANSFER',
                quantity=-quantity,
                unit_cost=item.standard_cost,
                reference_type='STOCK_TRANSFER',
                reference_id=transfer.transfer_number,
                remarks=f"Transfer out to {to_warehouse.code}",
                created_by=requested_by,
            )
            InventoryService.check_reorder_alerts(item)

        logger.info(
            f"Stock transfer {transfer.transfer_number}: {from_warehouse.code} -> {to_warehouse.code} "
            f"({len(items)} item(s))"
        )
        return transfer

    @staticmethod
    @transaction.atomic
    def receive_stock_transfer(transfer, received_by='system'):
        """
        Book an IN_TRANSIT transfer into the destination warehouse.

        A destination item with the same item_code is created when the
        destination warehouse does not stock it yet.
        """
        from ..models import InventoryItem, StockTransfer

        transfer = StockTransfer.objects.select_for_update().get(pk=transfer.pk)
        if transfer.status != 'IN_TRANSIT':
            raise WorkflowError(f"Transfer {transfer.transfer_number} is {transfer.status}, not IN_TRANSIT",
                                transfer.status)

        for line in transfer.items.select_related('source_item'):
            source = line.source_item
            destination = InventoryItem.objects.filter(
                warehouse=transfer.to_warehouse, item_code=source.item_code
            ).first()
            if destination is None:
                destination = InventoryService.create_inventory_item(
                    transfer.to_branch,
                    transfer.to_warehouse,
                    source.item_code,
                    source.name,
                    source.category,
                    updated_by=received_by,
                    description=source.description,
                    unit=source.unit,
                    standard_cost=source.standard_cost,
                    reorder_level=source.reorder_level,
                    safety_stock=source.safety_stock,
                    lead_time_days=source.lead_time_days,
                )
            InventoryService.record_stock_transaction(
                destination,
                'IN',
                line.quantity,
                unit_cost=line.unit_cost,
                reference_type='STOCK_TRANSFER',
                reference_id=transfer.transfer_number,
                remarks=f"Transfer in from {transfer.from_warehouse.code}",
                created_by=received_by,
            )
            line.destination_item = destination
            line.save(update_fields=['destination_item'])

        transfer.status = 'RECEIVED'
        transfer.received_by = received_by
        transfer.received_at = timezone.now()
        transfer.updated_by = received_by
        transfer.save()
        logger.info(f"Stock transfer {transfer.transfer_number} received by {received_by}")
        return transfer

    @staticmethod
    @transaction.atomic
    def cancel_stock_transfer(transfer, cancelled_by='system', reason=''):
        """Cancel an IN_TRANSIT transfer and return the stock to its source."""
        from ..models import InventoryItem, StockTransaction, StockTransfer

        transfer = StockTransfer.objects.select_for_update().get(pk=transfer.pk)
        if transfer.status != 'IN_TRANSIT':
            raise WorkflowError(f"Transfer {transfer.transfer_number} is {transfer.status}, not IN_TRANSIT",
                                transfer.status)

        for line in transfer.items.all():
            item = InventoryItem.objects.select_for_update().get(pk=line.source_item_id)
            item.current_stock += line.quantity
            _reset_available(item)
            item.updated_by = cancelled_by
            item.save()
            StockTransaction.objects.create(
                inventory_item=item,
                warehouse=item.warehouse,
                transaction_type='TRANSFER',
                quantity=line.quantity,
                unit_cost=line.unit_cost,
                reference_type='STOCK_TRANSFER',
                reference_id=transfer.transfer_number,
                remarks=f"Transfer cancelled. {reason}".strip(),
                created_by=cancelled_by,
            )

        transfer.status = 'CANCELLED'
        transfer.notes = f"{transfer.notes}\nCancelled: {reason}".strip() if reason else transfer.notes
        transfer.updated_by = cancelled_by
        transfer.save()
        logger.info(f"Stock transfer {transfer.transfer_number} cancelled by {cancelled_by}")
        return transfer

    # --- Reports ---------------------------------------------------------

    @staticmethod
    def get_stock_aging_report(items, today=None):
        """Age of on-hand stock since each item's first IN receipt."""
        today = today or timezone.localdate()
        rows = []
        summary = {}
        for item in items.filter(is_active=True, current_stock__gt=0).select_related('warehouse', 'branch'):
            first_in = (
                item.transactions.filter(transaction_type='IN')
                .order_by('transaction_date').values_list('transaction_date', flat=True).first()
            )
            age = (today - timezone.localtime(first_in).date()).days if first_in else 0
            category = aging_category(age)
            value = money(item.current_stock * item.standard_cost)
            rows.append({
                'inventory_item_id': item.id,
                'item_code': item.item_code,
                'name': item.name,
                'warehouse': item.warehouse.name,
                'branch': item.branch.name,
                'current_stock': item.current_stock,
                'standard_cost': item.standard_cost,
                'total_value': value,
                'age_in_days': age,
                'aging_category': category,
                'first_receipt_date': first_in,
            })
            bucket = summary.setdefault(category, {'count': 0, 'total_value': Decimal('0.00')})
            bucket['count'] += 1
            bucket['total_value'] += value

        return {
            'items': rows,
            'summary': summary,
            'total_items': len(rows),
            'total_value': money(sum((r['total_value'] for r in rows), ZERO)),
        }

    @staticmethod
    def get_expiring_batches(transactions, days=30, today=None):
        """IN receipts whose batch expires within the next `days` days."""
        today = today or timezone.localdate()
        cutoff = today + timedelta(days=days)
        qs = (
            transactions.filter(transaction_type='IN', expiry_date__isnull=False,
                                expiry_date__gte=today, expiry_date__lte=cutoff)
            .select_related('inventory_item', 'warehouse')
            .order_by('expiry_date')
        )
        return [{
            'transaction_id': t.id,
            'item_code': t.inventory_item.item_code,
            'name': t.inventory_item.name,
            'warehouse': t.warehouse.code,
            'batch_number': t.batch_number,
            'quantity': t.quantity,
            'expiry_date': t.expiry_date,
            'days_to_expiry': (t.expiry_date - today).days,
        } for t in qs]
