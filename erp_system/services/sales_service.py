"""
Sales Service.

Lead to order flow: customers, leads, site measurements, estimates (priced by
services.pricing), discount approvals, sales orders with BOM material checks
and automatic production orders, and sales analytics.
"""
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone
import logging

from ..exceptions import (
    ActionNotAllowed,
    InsufficientStock,
    ValidationFailed,
    WorkflowError,
)
from ..models import DocumentCounter
from ..permissions import SUPER_ADMIN
from ..utils import money
from .alert_service import AlertService
from .pricing import calculate_cost_breakdown, calculate_item_pricing

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

LEAD_TRANSITIONS = {
    'NEW': {'CONTACTED', 'QUALIFIED', 'LOST'},
    'CONTACTED': {'QUALIFIED', 'LOST'},
    'QUALIFIED': {'CONTACTED', 'ESTIMATED', 'LOST'},
    'ESTIMATED': {'QUALIFIED', 'LOST'},
    'CONVERTED': set(),
    'LOST': set(),
}
CLOSED_LEAD_STATUSES = ('CONVERTED', 'LOST')

ESTIMATE_TRANSITIONS = {
    'DRAFT': {'SENT', 'REJECTED'},
    'SENT': {'APPROVED', 'REJECTED', 'EXPIRED'},
    'APPROVED': set(),
    'REJECTED': set(),
    'EXPIRED': set(),
}

ORDER_TRANSITIONS = {
    'DRAFT': {'CONFIRMED', 'CANCELLED'},
    'CONFIRMED': {'IN_PRODUCTION', 'CANCELLED'},
    'IN_PRODUCTION': {'READY', 'CANCELLED'},
    'READY': {'DELIVERED'},
    'DELIVERED': set(),
    'CANCELLED': set(),
}

# (max percentage, level, approver role); anything above 15% goes to level 4
DISCOUNT_LEVELS = (
    (Decimal('5'), 1, 'TEAM_LEADER'),
    (Decimal('10'), 2, 'SALES_MANAGER'),
    (Decimal('15'), 3, 'BRANCH_MANAGER'),
)
TOP_DISCOUNT_LEVEL = (4, 'GENERAL_MANAGER')
APPROVER_LEVELS = {'TEAM_LEADER': 1, 'SALES_MANAGER': 2, 'BRANCH_MANAGER': 3, 'GENERAL_MANAGER': 4}

PRODUCTION_LEAD_DAYS = 14
PRODUCTION_BUFFER_DAYS = 2
PRODUCTION_PRIORITY = 5


def _period():
    return timezone.localdate().strftime('%Y%m')


def get_required_approval_level(discount_percentage):
    """Map a discount percentage to (level, approver_role)."""
    pct = Decimal(str(discount_percentage))
    for ceiling, level, role in DISCOUNT_LEVELS:
        if pct <= ceiling:
            return level, role
    return TOP_DISCOUNT_LEVEL


def default_tax(taxable_amount):
    return money(Decimal(str(taxable_amount)) * Decimal(str(settings.ERP_DEFAULT_TAX_RATE)) / Decimal('100'))


class SalesService:

    # --- Customers and leads ---------------------------------------------

    @staticmethod
    def create_customer(branch, name, updated_by='system', **fields):
        from ..models import Customer

        if not (name or '').strip():
            raise ValidationFailed('name is required')
        year = str(timezone.localdate().year)
        customer = Customer.objects.create(
            branch=branch,
            customer_code=DocumentCounter.next_number('CUST', year, 5),
            name=name.strip(),
            updated_by=updated_by,
            **fields,
        )
        logger.info(f"Customer created: {customer.customer_code} {customer.name} ({branch.code})")
        return customer

    @staticmethod
    def create_lead(branch, contact_name, contact_phone, source, customer=None, updated_by='system', **fields):
        from ..models import Lead

        if not (contact_name or '').strip() or not (contact_phone or '').strip():
            raise ValidationFailed('contact_name and contact_phone are required')
        valid_sources = [c[0] for c in Lead.SOURCE_CHOICES]
        if source not in valid_sources:
            raise ValidationFailed(f"source must be one of {', '.join(valid_sources)}")
        priority = fields.pop('priority', None) or 'MEDIUM'
        if priority not in [c[0] for c in Lead.PRIORITY_CHOICES]:
            raise ValidationFailed(f"Invalid priority '{priority}'")
        if customer is not None and customer.branch_id != branch.id:
            raise ValidationFailed('Customer belongs to another branch')

        lead = Lead.objects.create(
            branch=branch,
            lead_number=DocumentCounter.next_number('LD', _period(), 4),
            customer=customer,
            contact_name=contact_name.strip(),
            contact_phone=contact_phone.strip(),
            source=source,
            priority=priority,
            status='NEW',
            updated_by=updated_by,
            **fields,
        )
        logger.info(f"Lead created: {lead.lead_number} source={source} ({branch.code})")
        return lead

    @staticmethod
    def update_lead_status(lead, new_status, updated_by='system', notes=''):
        """
        Move a lead along its pipeline.

        CONVERTED is reached only by creating a sales order; CONVERTED and
        LOST are terminal.
        """
        if new_status not in LEAD_TRANSITIONS:
            raise ValidationFailed(f"Invalid lead status '{new_status}'")
        if new_status == 'CONVERTED':
            raise WorkflowError('Leads are converted by creating a sales order', lead.status)
        if new_status not in LEAD_TRANSITIONS[lead.status]:
            raise WorkflowError(f"Cannot move lead from {lead.status} to {new_status}", lead.status)

        lead.status = new_status
        if notes:
            lead.notes = f"{lead.notes}\n{notes}".strip()
        lead.updated_by = updated_by
        lead.save()
        logger.info(f"Lead {lead.lead_number} -> {new_status} by {updated_by}")
        return lead

    @staticmethod
    def record_site_measurement(lead, measurements, measured_by='', location='', notes='', updated_by='system'):
        from ..models import SiteMeasurement

        if lead.status in CLOSED_LEAD_STATUSES:
            raise WorkflowError(f"Lead {lead.lead_number} is {lead.status}", lead.status)
        if not isinstance(measurements, list) or not measurements:
            raise ValidationFailed('measurements must be a non-empty list')

        with transaction.atomic():
            measurement = SiteMeasurement.objects.create(
                lead=lead,
                measured_by=measured_by or updated_by,
                location=location,
                measurements=measurements,
                notes=notes,
                updated_by=updated_by,
            )
            if lead.status in ('NEW', 'CONTACTED'):
                lead.status = 'QUALIFIED'
                lead.updated_by = updated_by
                lead.save(update_fields=['status', 'updated_by', 'updated_at'])
        return measurement

    # --- Estimates --------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def generate_estimation(lead, items, discount_percentage=0, validity_days=None, customer=None,
                            requested_by=None, updated_by='system'):
        """
        Price the requested items into a new DRAFT estimate for the lead.

        Discount is total x pct / 100; tax is not applied at estimate level.
        A non-zero discount is routed through request_discount_approval.

        Returns:
            (estimate, breakdown)
        """
        from ..models import Estimate, EstimateItem

        if lead.status in CLOSED_LEAD_STATUSES:
            raise WorkflowError(f"Cannot estimate a {lead.status} lead", lead.status)
        if not items:
            raise ValidationFailed('At least one item is required')

        pct = Decimal(str(discount_percentage or 0))
        if pct < 0 or pct > 100:
            raise ValidationFailed('discount_percentage must be between 0 and 100')
        if validity_days is None:
            validity_days = settings.ERP_ESTIMATE_VALIDITY_DAYS

        priced = [calculate_item_pricing(item) for item in items]
        total = sum((p['total_price'] for p in priced), ZERO)
        discount = money(total * pct / Decimal('100'))
        breakdown = calculate_cost_breakdown(priced, discount, 0)

        estimate = Estimate.objects.create(
            branch=lead.branch,
            estimate_number=DocumentCounter.next_number('EST', _period(), 4),
            lead=lead,
            customer=customer or lead.customer,
            version=lead.estimates.count() + 1,
            status='DRAFT',
            total_amount=money(total),
            discount_percentage=ZERO,
            discount_amount=ZERO,
            tax_amount=ZERO,
            final_amount=money(total),
            valid_until=timezone.localdate() + timedelta(days=int(validity_days)),
            cost_breakdown={k: str(v) for k, v in breakdown.items()},
            updated_by=updated_by,
        )
        for p in priced:
            EstimateItem.objects.create(
                estimate=estimate,
                description=p['description'],
                width=p['width'],
                height=p['height'],
                quantity=p['quantity'],
                frame_type=p['frame_type'],
                coating_type=p['coating_type'],
                specifications=p['specifications'],
                material_cost=p['material_cost'],
                coating_cost=p['coating_cost'],
                hardware_cost=p['hardware_cost'],
                labor_cost=p['labor_cost'],
                overhead_cost=p['overhead_cost'],
                profit_amount=p['profit_amount'],
                unit_price=p['unit_price'],
                total_price=p['total_price'],
            )

        lead.status = 'ESTIMATED'
        lead.updated_by = updated_by
        lead.save(update_fields=['status', 'updated_by', 'updated_at'])

        if pct > 0:
            SalesService.request_discount_approval(estimate, pct, 'Discount requested with estimate',
                                                   requested_by=requested_by, updated_by=updated_by)
            estimate.refresh_from_db()

        logger.info(
            f"Estimation {estimate.estimate_number} generated: total={estimate.total_amount} "
            f"final={estimate.final_amount} items={len(priced)}"
        )
        return estimate, breakdown

    @staticmethod
    def update_estimate_status(estimate, new_status, updated_by='system'):
        if new_status not in ESTIMATE_TRANSITIONS:
            raise ValidationFailed(f"Invalid estimate status '{new_status}'")
        if new_status not in ESTIMATE_TRANSITIONS[estimate.status]:
            raise WorkflowError(f"Cannot move estimate from {estimate.status} to {new_status}", estimate.status)
        if new_status == 'SENT' and estimate.approval_status == 'PENDING':
            raise WorkflowError('Discount approval is still pending', estimate.status)
        estimate.status = new_status
        estimate.updated_by = updated_by
        estimate.save()
        return estimate

    @staticmethod
    @transaction.atomic
    def request_discount_approval(estimate, discount_percentage, reason='', requested_by=None, updated_by='system'):
        """
        Route a discount to the approver for its level.

        Levels: <=5% TEAM_LEADER, <=10% SALES_MANAGER, <=15% BRANCH_MANAGER,
        above GENERAL_MANAGER. Levels above 1 raise a SALES alert.

        Returns:
            (approval, requires_escalation)
        """
        from ..models import DiscountApproval, Estimate

        pct = Decimal(str(discount_percentage))
        if pct <= 0 or pct > 100:
            raise ValidationFailed('discount_percentage must be between 0 and 100')

        estimate = Estimate.objects.select_for_update().get(pk=estimate.pk)
        if estimate.status in ('APPROVED', 'REJECTED', 'EXPIRED'):
            raise WorkflowError(f"Estimate {estimate.estimate_number} is {estimate.status}", estimate.status)

        superseded = estimate.discount_approvals.filter(status='PENDING')
        for old in superseded:
            old.status = 'REJECTED'
            old.comments = 'Superseded by a new request'
            old.decided_at = timezone.now()
            old.save()
            AlertService.resolve_alerts_for('DISCOUNT_APPROVAL', old.id, updated_by=updated_by)

        level, approver_role = get_required_approval_level(pct)
        discount = money(estimate.total_amount * pct / Decimal('100'))
        approval = DiscountApproval.objects.create(
            estimate=estimate,
            requested_by=requested_by,
            discount_percentage=pct,
            discount_amount=discount,
            approval_level=level,
            approver_role=approver_role,
            reason=reason,
            updated_by=updated_by,
        )

        estimate.approval_status = 'PENDING'
        estimate.discount_percentage = pct
        estimate.discount_amount = discount
        estimate.final_amount = money(estimate.total_amount - discount)
        estimate.updated_by = updated_by
        estimate.save()

        requires_escalation = level > 1
        if requires_escalation:
            AlertService.create_alert(
                module='SALES',
                alert_type='DISCOUNT_APPROVAL',
                process='DISCOUNT_APPROVAL',
                title=f"Discount approval {pct}% on {estimate.estimate_number}",
                message=(
                    f"Estimate {estimate.estimate_number} requests {pct}% discount "
                    f"({discount} of {estimate.total_amount}). Approver: {approver_role}."
                ),
                priority='HIGH' if level == 4 else 'MEDIUM',
                branch=estimate.branch,
                reference_type='DISCOUNT_APPROVAL',
                reference_id=approval.id,
            )

        logger.info(
            f"Discount approval requested: {estimate.estimate_number} {pct}% level={level} approver={approver_role}"
        )
        return approval, requires_escalation

    @staticmethod
    @transaction.atomic
    def decide_discount_approval(approval, approve, user, user_roles, comments=''):
        """
        Approve or reject a PENDING discount.

        The decider needs the approver role for the level, a higher approval
        role, or SUPER_ADMIN. Rejection resets the estimate discount to zero.
        """
        from ..models import DiscountApproval

        approval = DiscountApproval.objects.select_for_update().select_related('estimate').get(pk=approval.pk)
        if approval.status != 'PENDING':
            raise WorkflowError(f"Discount approval is already {approval.status}", approval.status)

        user_level = max([APPROVER_LEVELS.get(r, 0) for r in (user_roles or [])] or [0])
        if SUPER_ADMIN not in (user_roles or []) and user_level < approval.approval_level:
            raise ActionNotAllowed(
                f"Level {approval.approval_level} discounts require {approval.approver_role} or higher"
            )

        now = timezone.now()
        approval.status = 'APPROVED' if approve else 'REJECTED'
        approval.decided_by = user
        approval.decided_at = now
        approval.comments = comments or ''
        approval.updated_by = getattr(user, 'username', 'system')
        approval.save()

        estimate = approval.estimate
        if approve:
            estimate.approval_status = 'APPROVED'
        else:
            estimate.approval_status = 'REJECTED'
            estimate.discount_percentage = ZERO
            estimate.discount_amount = ZERO
            estimate.final_amount = estimate.total_amount
        estimate.updated_by = approval.updated_by
        estimate.save()

        AlertService.resolve_alerts_for('DISCOUNT_APPROVAL', approval.id, updated_by=approval.updated_by)
        logger.info(f"Discount approval {approval.id} {approval.status} by {approval.updated_by}")
        return approval

    # --- Products and BOMs -----------------------------------------------

    @staticmethod
    def create_product(branch, code, name, updated_by='system', **fields):
        from ..models import Product

        if not code or not name:
            raise ValidationFailed('code and name are required')
        return Product.objects.create(branch=branch, code=code, name=name, updated_by=updated_by, **fields)

    @staticmethod
    @transaction.atomic
    def create_bom(product, items, updated_by='system'):
        """
        Create the next DRAFT BOM version for a product.

        Args:
            items: list of {'item': InventoryItem, 'quantity', 'scrap_percentage'}
        """
        from ..models import BillOfMaterial, BOMItem

        if not items:
            raise ValidationFailed('A BOM needs at least one item')
        latest = product.boms.order_by('-version').first()
        bom = BillOfMaterial.objects.create(
            product=product,
            version=(latest.version + 1) if latest else 1,
            updated_by=updated_by,
        )
        for line in items:
            if line['item'].branch_id != product.branch_id:
                raise ValidationFailed(f"Item {line['item'].item_code} belongs to another branch")
            quantity = Decimal(str(line['quantity']))
            if quantity <= 0:
                raise ValidationFailed('BOM quantity must be greater than zero')
            BOMItem.objects.create(
                bom=bom,
                inventory_item=line['item'],
                quantity=quantity,
                scrap_percentage=Decimal(str(line.get('scrap_percentage') or 0)),
            )
        return bom

    @staticmethod
    @transaction.atomic
    def approve_bom(bom, updated_by='system'):
        """Approve a DRAFT BOM; the product's previously approved BOM becomes OBSOLETE."""
        if bom.status != 'DRAFT':
            raise WorkflowError(f"BOM is {bom.status}, not DRAFT", bom.status)
        bom.product.boms.filter(status='APPROVED').update(
            status='OBSOLETE', updated_by=updated_by, updated_at=timezone.now()
        )
        bom.status = 'APPROVED'
        bom.approved_at = timezone.now()
        bom.updated_by = updated_by
        bom.save()
        return bom

    # --- Sales orders -----------------------------------------------------

    @staticmethod
    def validate_material_availability(items):
        """
        Check BOM material needs for order lines against available stock.

        required = bom qty x line qty x (1 + scrap% / 100), summed per
        inventory item. Lines without a product or approved BOM are skipped.

        Returns:
            {inventory_item_id: required Decimal}

        Raises:
            InsufficientStock("Insufficient materials: ...")
        """
        required = {}
        stock = {}
        for line in items:
            product = line.get('product')
            bom = product.approved_bom() if product else None
            if bom is None:
                continue
            qty = Decimal(str(line['quantity']))
            for bom_item in bom.items.select_related('inventory_item'):
                need = bom_item.quantity * qty * (1 + bom_item.scrap_percentage / Decimal('100'))
                key = bom_item.inventory_item_id
                required[key] = required.get(key, ZERO) + need
                stock[key] = bom_item.inventory_item

        shortages = []
        for key, need in required.items():
            item = stock[key]
            if item.available_stock < need:
                shortages.append({
                    'item_code': item.item_code,
                    'required': str(need.quantize(Decimal('0.001'))),
                    'available': str(item.available_stock),
                })
        if shortages:
            text = ', '.join(f"{s['item_code']}: Required {s['required']}, Available {s['available']}" for s in shortages)
            raise InsufficientStock(f"Insufficient materials: {text}", shortages)
        return required

    @staticmethod
    @transaction.atomic
    def create_sales_order(customer, items, estimate=None, discount_amount=0, tax_amount=None,
                           delivery_date=None, notes='', updated_by='system'):
        """
        Confirm a sales order and plan production.

        Args:
            items: list of {'product': Product | None, 'description', 'quantity', 'unit_price'}

        Tax defaults to ERP_DEFAULT_TAX_RATE% of (total - discount). Each
        line whose product has an APPROVED BOM gets a PLANNED production
        order. A linked estimate becomes APPROVED and its lead CONVERTED.
        """
        from ..models import Estimate, Lead, ProductionOrder, SalesOrder, SalesOrderItem

        if not items:
            raise ValidationFailed('At least one item is required')

        lines = []
        for line in items:
            qty = Decimal(str(line.get('quantity') or 0))
            price = Decimal(str(line.get('unit_price') if line.get('unit_price') is not None else -1))
            if qty <= 0:
                raise ValidationFailed('quantity must be greater than zero')
            if price < 0:
                raise ValidationFailed('unit_price is required and cannot be negative')
            product = line.get('product')
            if product is not None and product.branch_id != customer.branch_id:
                raise ValidationFailed(f"Product {product.code} belongs to another branch")
            lines.append({**line, 'quantity': qty, 'unit_price': price})

        if estimate is not None:
            estimate = Estimate.objects.select_for_update().get(pk=estimate.pk)
            if estimate.branch_id != customer.branch_id:
                raise ValidationFailed('Estimate belongs to another branch')
            if estimate.approval_status in ('PENDING', 'REJECTED'):
                raise WorkflowError(
                    f"Estimate discount approval is {estimate.approval_status}", estimate.approval_status
                )
            if estimate.status in ('REJECTED', 'EXPIRED') or estimate.is_expired:
                raise WorkflowError(f"Estimate {estimate.estimate_number} is expired or rejected", estimate.status)

        SalesService.validate_material_availability(lines)

        total = money(sum((l['unit_price'] * l['quantity'] for l in lines), ZERO))
        discount = money(Decimal(str(discount_amount or 0)))
        if discount < 0 or discount > total:
            raise ValidationFailed('discount_amount must be between 0 and the order total')
        tax = default_tax(total - discount) if tax_amount is None else money(Decimal(str(tax_amount)))

        order = SalesOrder.objects.create(
            branch=customer.branch,
            order_number=DocumentCounter.next_number('SO', _period(), 4),
            customer=customer,
            estimate=estimate,
            delivery_date=delivery_date,
            status='CONFIRMED',
            total_amount=total,
            discount_amount=discount,
            tax_amount=tax,
            final_amount=money(total - discount + tax),
            notes=notes,
            updated_by=updated_by,
        )

        today = timezone.localdate()
        for line in lines:
            product = line.get('product')
            SalesOrderItem.objects.create(
                order=order,
                product=product,
                description=line.get('description') or (product.name if product else ''),
                quantity=line['quantity'],
                unit_price=line['unit_price'],
                total_price=money(line['unit_price'] * line['quantity']),
            )
            bom = product.approved_bom() if product else None
            if bom is None:
                if product is not None:
                    logger.warning(f"No approved BOM for product {product.code}; no production order for {order.order_number}")
                continue
            ProductionOrder.objects.create(
                branch=order.branch,
                order_number=DocumentCounter.next_number('PO', _period(), 4),
                sales_order=order,
                product=product,
                bom=bom,
                quantity=line['quantity'],
                priority=PRODUCTION_PRIORITY,
                start_date=today,
                end_date=today + timedelta(days=PRODUCTION_LEAD_DAYS),
                buffer_days=PRODUCTION_BUFFER_DAYS,
                updated_by=updated_by,
            )

        if estimate is not None:
            estimate.status = 'APPROVED'
            if estimate.customer_id is None:
                estimate.customer = customer
            estimate.updated_by = updated_by
            estimate.save()
            Lead.objects.filter(pk=estimate.lead_id).update(
                status='CONVERTED', customer=customer, updated_by=updated_by, updated_at=timezone.now()
            )

        logger.info(
            f"Sales order {order.order_number} created: customer={customer.customer_code} "
            f"final={order.final_amount} items={len(lines)}"
        )
        return order

    @staticmethod
    @transaction.atomic
    def update_sales_order_status(order, new_status, updated_by='system'):
        """
        Move an order along DRAFT > CONFIRMED > IN_PRODUCTION > READY > DELIVERED.

        Cancelling cancels open production orders and releases any stock
        reserved against the order.
        """
        from ..models import SalesOrder
        from .inventory_service import InventoryService

        order = SalesOrder.objects.select_for_update().get(pk=order.pk)
        if new_status not in ORDER_TRANSITIONS:
            raise ValidationFailed(f"Invalid order status '{new_status}'")
        if new_status not in ORDER_TRANSITIONS[order.status]:
            raise WorkflowError(f"Cannot move order from {order.status} to {new_status}", order.status)

        order.status = new_status
        order.updated_by = updated_by
        order.save()

        if new_status == 'CANCELLED':
            order.production_orders.exclude(status__in=['COMPLETED', 'CANCELLED']).update(
                status='CANCELLED', updated_by=updated_by, updated_at=timezone.now()
            )
            InventoryService.release_order_reservation('SALES_ORDER', order.id, created_by=updated_by)
        logger.info(f"Sales order {order.order_number} -> {new_status} by {updated_by}")
        return order

    # --- Analytics --------------------------------------------------------

    @staticmethod
    def get_sales_analytics(leads, orders, date_from=None, date_to=None):
        """
        Lead conversion and order revenue figures.

        Args:
            leads: Lead queryset already restricted to the caller's branches
            orders: SalesOrder queryset restricted the same way
            date_from, date_to: optional dates on created_at / order_date
        """
        if date_from:
            leads = leads.filter(created_at__date__gte=date_from)
            orders = orders.filter(order_date__gte=date_from)
        if date_to:
            leads = leads.filter(created_at__date__lte=date_to)
            orders = orders.filter(order_date__lte=date_to)
        orders = orders.exclude(status='CANCELLED')

        total_leads = leads.count()
        converted = leads.filter(status='CONVERTED').count()
        order_count = orders.count()
        revenue = orders.aggregate(v=Sum('final_amount'))['v'] or ZERO

        from ..models import SalesOrderItem
        top_products = list(
            SalesOrderItem.objects.filter(order__in=orders)
            .values('product_id', 'product__name')
            .annotate(total_value=Sum('total_price'), total_quantity=Sum('quantity'), order_count=Count('order', distinct=True))
            .order_by('-total_value')[:10]
        )

        by_source = []
        for row in leads.values('source').annotate(lead_count=Count('id')).order_by('source'):
            source_converted = leads.filter(source=row['source'], status='CONVERTED').count()
            by_source.append({
                'source': row['source'],
                'lead_count': row['lead_count'],
                'converted_count': source_converted,
                'conversion_rate': round(source_converted / row['lead_count'] * 100, 2) if row['lead_count'] else 0.0,
            })

        monthly = [
            {
                'month': row['month'].strftime('%Y-%m'),
                'orders': row['orders'],
                'revenue': money(row['revenue'] or ZERO),
            }
            for row in orders.annotate(month=TruncMonth('order_date'))
            .values('month').annotate(orders=Count('id'), revenue=Sum('final_amount')).order_by('month')
        ]

        return {
            'total_leads': total_leads,
            'converted_leads': converted,
            'conversion_rate': round(converted / total_leads * 100, 2) if total_leads else 0.0,
            'order_count': order_count,
            'total_sales_value': money(revenue),
            'average_order_value': money(revenue / order_count) if order_count else Decimal('0.00'),
            'top_products': top_products,
            'sales_by_source': by_source,
            'monthly_trends': monthly,
        }
