"""
Service desk.

After-sales service requests (installation, maintenance, repair, warranty
claims), technician assignment, completion with parts consumption, warranty
lookup, AMC contracts and service invoicing.
"""
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
import logging

from ..exceptions import ValidationFailed, WorkflowError
from ..models import DocumentCounter
from ..utils import money
from .alert_service import AlertService
from .finance_service import FinanceService
from .inventory_service import InventoryService

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
SERVICE_DEPARTMENT = 'SERVICE'
OPEN_SERVICE_STATUSES = ('SCHEDULED', 'IN_PROGRESS')
CLOSED_SERVICE_STATUSES = ('COMPLETED', 'CANCELLED')
AMC_RENEWAL_NOTICE_DAYS = 30


def _labor_rate():
    return Decimal(str(settings.ERP_SERVICE_LABOR_RATE))


class ServiceDesk:

    @staticmethod
    def create_service_request(customer, service_type, description, priority='MEDIUM', sales_order=None,
                               amc_contract=None, scheduled_date=None, location='', warranty_number='',
                               warranty_end_date=None, updated_by='system'):
        """
        Open a SCHEDULED service request.

        A RESPONSE alert is raised for the request when a SERVICE/RESPONSE
        SLA is configured, so the escalation cycle can track it.
        """
        from ..models import ServiceRequest

        if service_type not in [c[0] for c in ServiceRequest.TYPE_CHOICES]:
            raise ValidationFailed(f"Invalid service_type '{service_type}'")
        if priority not in [c[0] for c in ServiceRequest.PRIORITY_CHOICES]:
            raise ValidationFailed(f"Invalid priority '{priority}'")
        if not (description or '').strip():
            raise ValidationFailed('description is required')
        if sales_order is not None and sales_order.customer_id != customer.id:
            raise ValidationFailed('Sales order belongs to another customer')
        if amc_contract is not None and amc_contract.customer_id != customer.id:
            raise ValidationFailed('AMC contract belongs to another customer')

        with transaction.atomic():
            request = ServiceRequest.objects.create(
                branch=customer.branch,
                service_number=DocumentCounter.next_number('SRV', timezone.localdate().strftime('%Y%m'), 4),
                customer=customer,
                sales_order=sales_order,
                amc_contract=amc_contract,
                service_type=service_type,
                priority=priority,
                description=description.strip(),
                location=location,
                scheduled_date=scheduled_date,
                warranty_number=warranty_number,
                warranty_end_date=warranty_end_date,
                updated_by=updated_by,
            )

        if AlertService.get_sla('SERVICE', 'RESPONSE'):
            AlertService.create_alert(
                module='SERVICE',
                alert_type='SERVICE_RESPONSE',
                process='RESPONSE',
                title=f"Service request {request.service_number} awaiting completion",
                message=f"{request.get_service_type_display()} for {customer.name}: {request.description[:200]}",
                priority='HIGH' if priority == 'URGENT' else priority,
                branch=request.branch,
                reference_type='SERVICE_REQUEST',
                reference_id=request.id,
            )

        logger.info(f"Service request created: {request.service_number} {service_type} ({request.branch.code})")
        return request

    @staticmethod
    def find_best_technician(branch):
        """Active SERVICE employee with the fewest open requests; ties by employee code."""
        from ..models import Employee

        return (
            Employee.objects.filter(branch=branch, department=SERVICE_DEPARTMENT, is_active=True)
            .annotate(open_requests=Count(
                'service_assignments',
                filter=Q(service_assignments__status__in=OPEN_SERVICE_STATUSES),
            ))
            .order_by('open_requests', 'employee_code')
            .first()
        )

    @staticmethod
    @transaction.atomic
    def assign_technician(request, technician=None, updated_by='system'):
        from ..models import Alert, ServiceRequest

        request = ServiceRequest.objects.select_for_update().get(pk=request.pk)
        if request.status in CLOSED_SERVICE_STATUSES:
            raise WorkflowError(f"Cannot assign a {request.status} service request", request.status)

        if technician is None:
            technician = ServiceDesk.find_best_technician(request.branch)
            if technician is None:
                raise ValidationFailed('No available technician in this branch')
        elif not technician.is_active or technician.department != SERVICE_DEPARTMENT:
            raise ValidationFailed(f"{technician.employee_code} is not an active service technician")
        elif technician.branch_id != request.branch_id:
            raise ValidationFailed('Technician belongs to another branch')

        request.assigned_to = technician
        request.assigned_at = timezone.now()
        request.status = 'IN_PROGRESS'
        request.updated_by = updated_by
        request.save()

        user = technician.user
        if user is not None:
            for alert in Alert.objects.filter(
                reference_type='SERVICE_REQUEST', reference_id=str(request.id), assigned_to__isnull=True
            ):
                alert.assigned_to = user
                alert.save(update_fields=['assigned_to', 'updated_at'])

        logger.info(f"Service request {request.service_number} assigned to {technician.employee_code}")
        return request

    @staticmethod
    @transaction.atomic
    def complete_service(request, labor_hours, parts=None, customer_rating=None, feedback='', updated_by='system'):
        """
        Close a service request.

        Args:
            parts: list of {'item': InventoryItem, 'quantity'}; each is issued
                from stock with an OUT transaction

        labor_cost = hours x ERP_SERVICE_LABOR_RATE; parts are costed at the
        item's standard cost.
        """
        from ..models import ServicePart, ServiceRequest

        request = ServiceRequest.objects.select_for_update().get(pk=request.pk)
        if request.status in CLOSED_SERVICE_STATUSES:
            raise WorkflowError(f"Service request is already {request.status}", request.status)

        hours = Decimal(str(labor_hours or 0))
        if hours < 0:
            raise ValidationFailed('labor_hours cannot be negative')
        if customer_rating is not None and not (1 <= int(customer_rating) <= 5):
            raise ValidationFailed('customer_rating must be between 1 and 5')

        parts_cost = ZERO
        for part in parts or []:
            item = part['item']
            if item.branch_id != request.branch_id:
                raise ValidationFailed(f"Item {item.item_code} belongs to another branch")
            quantity = Decimal(str(part['quantity']))
            InventoryService.record_stock_transaction(
                item,
                'OUT',
                quantity,
                unit_cost=item.standard_cost,
                reference_type='SERVICE_REQUEST',
                reference_id=request.id,
                remarks=f"Consumed on {request.service_number}",
                created_by=updated_by,
            )
            line_cost = money(quantity * item.standard_cost)
            ServicePart.objects.create(
                service_request=request,
                inventory_item=item,
                quantity=quantity,
                unit_cost=item.standard_cost,
                total_cost=line_cost,
            )
            parts_cost += line_cost

        request.labor_hours = hours
        request.labor_cost = money(hours * _labor_rate())
        request.parts_cost = money(parts_cost)
        request.total_cost = money(request.labor_cost + request.parts_cost)
        request.customer_rating = int(customer_rating) if customer_rating is not None else None
        request.feedback = feedback or ''
        request.completion_date = timezone.now()
        request.status = 'COMPLETED'
        request.updated_by = updated_by
        request.save()

        AlertService.resolve_alerts_for('SERVICE_REQUEST', request.id, updated_by=updated_by)
        logger.info(f"Service request {request.service_number} completed: total_cost={request.total_cost}")
        return request

    @staticmethod
    def cancel_service_request(request, updated_by='system'):
        if request.status in CLOSED_SERVICE_STATUSES:
            raise WorkflowError(f"Service request is already {request.status}", request.status)
        request.status = 'CANCELLED'
        request.updated_by = updated_by
        request.save()
        AlertService.resolve_alerts_for('SERVICE_REQUEST', request.id, updated_by=updated_by)
        return request

    @staticmethod
    def validate_warranty(requests, warranty_number, today=None):
        """
        Look up an active warranty.

        Returns:
            dict with the warranty details, or None when unknown or expired
        """
        today = today or timezone.localdate()
        if not warranty_number:
            return None
        request = (
            requests.filter(warranty_number=warranty_number, warranty_end_date__isnull=False)
            .select_related('customer')
            .order_by('-created_at')
            .first()
        )
        if request is None or request.warranty_end_date < today:
            logger.info(f"Warranty not found or expired: {warranty_number}")
            return None
        return {
            'warranty_number': warranty_number,
            'customer_id': request.customer_id,
            'customer': request.customer.name,
            'service_request': request.service_number,
            'end_date': request.warranty_end_date,
            'days_remaining': (request.warranty_end_date - today).days,
        }

    # --- AMC --------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def create_amc_contract(customer, start_date, end_date, amount, visits_per_year=4, terms='', updated_by='system'):
        """Create an ACTIVE AMC and schedule its renewal alert 30 days before end."""
        from ..models import AMCContract

        if end_date <= start_date:
            raise ValidationFailed('end_date must be after start_date')
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationFailed('amount must be greater than zero')
        if int(visits_per_year) < 1:
            raise ValidationFailed('visits_per_year must be at least 1')

        contract = AMCContract.objects.create(
            branch=customer.branch,
            contract_number=DocumentCounter.next_number('AMC', str(start_date.year), 4),
            customer=customer,
            start_date=start_date,
            end_date=end_date,
            amount=money(amount),
            visits_per_year=int(visits_per_year),
            terms=terms,
            updated_by=updated_by,
        )

        notice_date = end_date - timedelta(days=AMC_RENEWAL_NOTICE_DAYS)
        AlertService.create_alert(
            module='SERVICE',
            alert_type='AMC_RENEWAL',
            process='AMC_RENEWAL',
            title=f"AMC {contract.contract_number} renewal due",
            message=f"AMC contract {contract.contract_number} for {customer.name} expires on {end_date}.",
            priority='MEDIUM',
            branch=contract.branch,
            reference_type='AMC_CONTRACT',
            reference_id=contract.id,
            due_date=timezone.make_aware(datetime.combine(notice_date, datetime.min.time())),
        )
        logger.info(f"AMC contract created: {contract.contract_number} {start_date}..{end_date}")
        return contract

    @staticmethod
    def expire_amc_contracts(contracts, today=None):
        """Mark ACTIVE contracts past their end date EXPIRED. Returns the count."""
        today = today or timezone.localdate()
        return contracts.filter(status='ACTIVE', end_date__lt=today).update(
            status='EXPIRED', updated_at=timezone.now()
        )

    # --- Invoicing and metrics -------------------------------------------

    @staticmethod
    @transaction.atomic
    def generate_service_invoice(request, discount_amount=0, updated_by='system'):
        """Invoice a COMPLETED request: one line per part plus a labor line."""
        from ..models import ServiceRequest

        request = ServiceRequest.objects.select_for_update().get(pk=request.pk)
        if request.status != 'COMPLETED':
            raise WorkflowError('Cannot generate invoice for incomplete service', request.status)
        if request.invoices.exclude(status='CANCELLED').exists():
            raise WorkflowError('Invoice already exists for this service request', request.status)

        lines = [
            {
                'description': f"{part.inventory_item.name} ({part.inventory_item.item_code})",
                'quantity': part.quantity,
                'unit_price': part.unit_cost,
            }
            for part in request.parts.select_related('inventory_item')
        ]
        if request.labor_hours > 0:
            lines.append({
                'description': f"Labor - {request.get_service_type_display()}",
                'quantity': request.labor_hours,
                'unit_price': _labor_rate(),
            })
        if not lines:
            raise ValidationFailed('Service request has no billable parts or labor')

        return FinanceService.create_invoice(
            request.customer,
            lines,
            discount_amount=discount_amount,
            service_request=request,
            sales_order=request.sales_order,
            notes=f"Service request {request.service_number}",
            updated_by=updated_by,
        )

    @staticmethod
    def get_service_metrics(requests, period=None, technician=None):
        """
        Per technician performance.

        Args:
            requests: ServiceRequest queryset restricted to the caller's branches
            period: optional "YYYY-MM" on created_at
            technician: optional Employee

        Completion hours run from assignment (or the scheduled date) to completion.
        """
        if period:
            try:
                year, month = (int(part) for part in period.split('-'))
            except ValueError:
                raise ValidationFailed('Invalid period format. Expected YYYY-MM')
            if not 1 <= month <= 12:
                raise ValidationFailed('Invalid period format. Expected YYYY-MM')
            requests = requests.filter(created_at__year=year, created_at__month=month)
        if technician is not None:
            requests = requests.filter(assigned_to=technician)

        technicians = {}
        for req in requests.filter(assigned_to__isnull=False).select_related('assigned_to'):
            tech = req.assigned_to
            row = technicians.setdefault(tech.id, {
                'technician_id': tech.id,
                'employee_code': tech.employee_code,
                'name': tech.full_name,
                'total_services': 0,
                'completed_services': 0,
                '_ratings': [],
                '_hours': [],
            })
            row['total_services'] += 1
            if req.status == 'COMPLETED':
                row['completed_services'] += 1
                if req.customer_rating:
                    row['_ratings'].append(req.customer_rating)
                started = req.assigned_at or req.scheduled_date
                if started and req.completion_date:
                    row['_hours'].append((req.completion_date - started).total_seconds() / 3600)

        rows = []
        for row in technicians.values():
            ratings = row.pop('_ratings')
            hours = row.pop('_hours')
            row['average_rating'] = round(sum(ratings) / len(ratings), 2) if ratings else 0.0
            row['average_completion_hours'] = round(sum(hours) / len(hours), 2) if hours else 0.0
            row['completion_rate'] = round(row['completed_services'] / row['total_services'] * 100, 2)
            rows.append(row)
        rows.sort(key=lambda r: r['employee_code'])

        total = requests.count()
        completed = requests.filter(status='COMPLETED').count()
        rated = [r for r in requests.filter(status='COMPLETED', customer_rating__isnull=False)
                 .values_list('customer_rating', flat=True)]
        by_type = {row['service_type']: row['n'] for row in requests.values('service_type').annotate(n=Count('id'))}

        return {
            'period': period or timezone.localdate().strftime('%Y-%m'),
            'summary': {
                'total_service_requests': total,
                'completed_services': completed,
                'pending_services': requests.filter(status__in=OPEN_SERVICE_STATUSES).count(),
                'average_rating': round(sum(rated) / len(rated), 2) if rated else 0.0,
                'services_by_type': by_type,
            },
            'technicians': rows,
        }
