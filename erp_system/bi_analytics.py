"""
Business intelligence dashboards, computed from live aggregates.
Keeps bi_views thin; every builder takes the dict from get_branch_filter().
"""
from decimal import Decimal

from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from .models import (
    Alert,
    Attendance,
    Employee,
    InventoryItem,
    Invoice,
    Lead,
    LeaveRequest,
    Payment,
    PayrollRecord,
    ProductionOrder,
    SalesOrder,
    ServiceRequest,
)
from .services.alert_service import AlertService
from .services.finance_service import FinanceService
from .services.sales_service import SalesService
from .utils import money

EXECUTIVE_ROLES = ('SUPER_ADMIN', 'GENERAL_MANAGER', 'BRANCH_MANAGER')

ROLE_DASHBOARDS = {
    'SALES_MANAGER': 'sales',
    'TEAM_LEADER': 'sales',
    'SALES_EXECUTIVE': 'sales',
    'INVENTORY_MANAGER': 'inventory',
    'WAREHOUSE_OPERATOR': 'inventory',
    'FINANCE_MANAGER': 'finance',
    'HR_MANAGER': 'hr',
    'SERVICE_MANAGER': 'service',
    'SERVICE_TECHNICIAN': 'service',
}


def sales_dashboard(branch_filter):
    analytics = SalesService.get_sales_analytics(
        Lead.objects.filter(**branch_filter),
        SalesOrder.objects.filter(**branch_filter),
    )
    orders = SalesOrder.objects.filter(**branch_filter)
    analytics['open_orders'] = orders.filter(status__in=['CONFIRMED', 'IN_PRODUCTION', 'READY']).count()
    analytics['pipeline'] = {
        row['status']: row['n']
        for row in Lead.objects.filter(**branch_filter).values('status').annotate(n=Count('id'))
    }
    analytics['production_orders'] = {
        row['status']: row['n']
        for row in ProductionOrder.objects.filter(**branch_filter).values('status').annotate(n=Count('id'))
    }
    return analytics


def inventory_dashboard(branch_filter):
    items = InventoryItem.objects.filter(is_active=True, **branch_filter)
    stock_value = items.aggregate(v=Sum(F('current_stock') * F('standard_cost')))['v'] or Decimal('0')
    low_stock = items.filter(reorder_level__gt=0, current_stock__lte=F('reorder_level'))
    return {
        'item_count': items.count(),
        'stock_value': money(stock_value),
        'low_stock_count': low_stock.count(),
        'low_stock_items': list(
            low_stock.order_by('item_code').values(
                'id', 'item_code', 'name', 'current_stock', 'reorder_level', 'safety_stock'
            )[:20]
        ),
        'reserved_items': items.filter(reserved_stock__gt=0).count(),
        'reserved_quantity': items.aggregate(v=Sum('reserved_stock'))['v'] or Decimal('0'),
        'by_category': {
            row['category']: row['n'] for row in items.values('category').annotate(n=Count('id'))
        },
    }


def finance_dashboard(branch_filter):
    invoices = Invoice.objects.filter(**branch_filter)
    payments = Payment.objects.filter(**{f"invoice__{k}": v for k, v in branch_filter.items()})
    summary = FinanceService.get_finance_summary(invoices, payments)
    aging = FinanceService.get_accounts_receivable_aging(invoices)
    summary['ar_aging'] = aging['buckets']
    return summary


def hr_dashboard(branch_filter):
    today = timezone.localdate()
    employees = Employee.objects.filter(is_active=True, **branch_filter)
    employee_filter = {f"employee__{k}": v for k, v in branch_filter.items()}

    attendance = Attendance.objects.filter(
        date__year=today.year, date__month=today.month, employee__is_active=True, **employee_filter
    )
    marked = attendance.count()
    present = attendance.filter(status__in=['PRESENT', 'HALF_DAY']).count()
    payroll = PayrollRecord.objects.filter(year=today.year, month=today.month, **employee_filter)

    return {
        'headcount': employees.count(),
        'by_department': {
            row['department']: row['n'] for row in employees.values('department').annotate(n=Count('id'))
        },
        'attendance_rate': round(present / marked * 100, 2) if marked else 0.0,
        'pending_leave_requests': LeaveRequest.objects.filter(status='PENDING', **employee_filter).count(),
        'payroll_cost': money(payroll.aggregate(v=Sum('gross_salary'))['v'] or Decimal('0')),
        'payroll_records': payroll.count(),
    }


def service_dashboard(branch_filter):
    requests = ServiceRequest.objects.filter(**branch_filter)
    counts = requests.aggregate(
        open=Count('id', filter=Q(status__in=['SCHEDULED', 'IN_PROGRESS'])),
        completed=Count('id', filter=Q(status='COMPLETED')),
        unassigned=Count('id', filter=Q(status='SCHEDULED', assigned_to__isnull=True)),
    )
    rated = list(requests.filter(customer_rating__isnull=False).values_list('customer_rating', flat=True))
    sla = AlertService.get_sla_metrics(Alert.objects.filter(module='SERVICE', **branch_filter))
    return {
        'open_requests': counts['open'],
        'completed_requests': counts['completed'],
        'unassigned_requests': counts['unassigned'],
        'average_rating': round(sum(rated) / len(rated), 2) if rated else 0.0,
        'sla_compliance_rate': sla['sla_compliance_rate'],
    }


def executive_dashboard(branch_filter):
    sales = sales_dashboard(branch_filter)
    inventory = inventory_dashboard(branch_filter)
    finance = finance_dashboard(branch_filter)
    hr = hr_dashboard(branch_filter)
    service = service_dashboard(branch_filter)
    alerts = Alert.objects.filter(**branch_filter)
    return {
        'kpis': {
            'total_sales_value': sales['total_sales_value'],
            'conversion_rate': sales['conversion_rate'],
            'open_orders': sales['open_orders'],
            'stock_value': inventory['stock_value'],
            'low_stock_count': inventory['low_stock_count'],
            'total_outstanding': finance['total_outstanding'],
            'collection_rate': finance['collection_rate'],
            'headcount': hr['headcount'],
            'open_service_requests': service['open_requests'],
            'active_alerts': alerts.filter(status='ACTIVE').count(),
        },
        'sales': sales,
        'inventory': inventory,
        'finance': finance,
        'hr': hr,
        'service': service,
    }


DASHBOARDS = {
    'sales': sales_dashboard,
    'inventory': inventory_dashboard,
    'finance': finance_dashboard,
    'hr': hr_dashboard,
    'service': service_dashboard,
    'executive': executive_dashboard,
}


def dashboard_name_for_role(role):
    if role in EXECUTIVE_ROLES:
        return 'executive'
    return ROLE_DASHBOARDS.get(role)


def get_dashboard_for_role(role, branch_filter):
    """
    Returns:
        (dashboard name, data), or (None, None) for roles with no dashboard
    """
    name = dashboard_name_for_role(role)
    if name is None:
        return None, None
    return name, DASHBOARDS[name](branch_filter)
