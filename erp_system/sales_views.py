"""
Sales API: customers, leads, site measurements, estimates, discount
approvals, products/BOMs, sales orders and analytics.
"""
from django.db import IntegrityError
from django.db.models import Q
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from .exceptions import ERPError, ValidationFailed
from .models import (
    BillOfMaterial,
    Customer,
    DiscountApproval,
    Estimate,
    InventoryItem,
    Lead,
    Product,
    SalesOrder,
)
from .permissions import get_role_info, permission_required, permission_required_for_writes
from .security import get_branch_filter, resolve_write_branch
from .serializers import (
    BillOfMaterialSerializer,
    CustomerSerializer,
    DiscountApprovalSerializer,
    EstimateSerializer,
    LeadDetailSerializer,
    LeadSerializer,
    ProductSerializer,
    SalesOrderSerializer,
    SiteMeasurementSerializer,
)
from .services.sales_service import SalesService
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

CUSTOMER_FIELDS = ('email', 'phone', 'address', 'city', 'state', 'gst_number')
LEAD_FIELDS = ('contact_email', 'requirements', 'notes', 'priority')


def _data(request):
    return request.data if isinstance(request.data, dict) else {}


def _not_found(label):
    return Response({'error': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)


def _server_error(name, e, message):
    logger.error(f"{name} error: {e}", exc_info=True)
    return Response({'error': message, 'detail': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


# Customers
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('CUSTOMER')
def customer_list(request):
    try:
        if request.method == 'GET':
            customers = Customer.objects.filter(**get_branch_filter(request))
            search = (request.GET.get('search') or '').strip()
            if search:
                customers = customers.filter(
                    Q(name__icontains=search) | Q(customer_code__icontains=search) | Q(phone__icontains=search)
                )
            return Response(CustomerSerializer(customers.order_by('name')[:clamp_limit(request)], many=True).data)

        data = _data(request)
        branch = resolve_write_branch(request, data.get('branch_id'))
        customer = SalesService.create_customer(
            branch,
            data.get('name'),
            updated_by=username_of(request),
            **{f: (data.get(f) or '').strip() for f in CUSTOMER_FIELDS},
        )
        audit(request, 'CUSTOMER_CREATED', customer, f"Customer created: {customer.customer_code} {customer.name}")
        return Response(CustomerSerializer(customer).data, status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        return _server_error('customer_list', e, 'Failed to process customers')


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('CUSTOMER')
def customer_detail(request, customer_id: int):
    try:
        customer = Customer.objects.get(id=customer_id, **get_branch_filter(request))
        if request.method == 'GET':
            return Response(CustomerSerializer(customer).data)

        data = _data(request)
        for field in ('name',) + CUSTOMER_FIELDS:
            if field in data:
                setattr(customer, field, (data.get(field) or '').strip())
        if 'is_active' in data:
            customer.is_active = to_bool(data.get('is_active'), 'is_active')
        if not customer.name:
            raise ValidationFailed('name cannot be blank')
        customer.updated_by = username_of(request)
        customer.save()
        audit(request, 'CUSTOMER_UPDATED', customer, f"Customer updated: {customer.customer_code}")
        return Response(CustomerSerializer(customer).data)
    except Customer.DoesNotExist:
        return _not_found('Customer')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('customer_detail', e, 'Failed to process customer')


# Leads
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('SALES', 'LEAD')
def lead_list(request):
    """
    GET filters: status, source, priority, assigned_to, search.
    POST: contact_name, contact_phone, source, optional customer_id.
    """
    try:
        if request.method == 'GET':
            leads = Lead.objects.filter(**get_branch_filter(request)).select_related('customer')
            for param in ('status', 'source', 'priority'):
                value = request.GET.get(param)
                if value:
                    leads = leads.filter(**{param: value.upper()})
            if request.GET.get('assigned_to'):
                leads = leads.filter(assigned_to_id=request.GET['assigned_to'])
            search = (request.GET.get('search') or '').strip()
            if search:
                leads = leads.filter(
                    Q(lead_number__icontains=search) | Q(contact_name__icontains=search)
                    | Q(contact_phone__icontains=search)
                )
            return Response(LeadSerializer(leads[:clamp_limit(request)], many=True).data)

        data = _data(request)
        branch = resolve_write_branch(request, data.get('branch_id'))
        customer = None
        if data.get('customer_id'):
            customer = Customer.objects.get(id=data['customer_id'], branch=branch)
        fields = {f: (data.get(f) or '').strip() for f in LEAD_FIELDS if data.get(f)}
        if data.get('estimated_value') not in (None, ''):
            fields['estimated_value'] = to_decimal(data.get('estimated_value'), 'estimated_value')
        if data.get('assigned_to'):
            fields['assigned_to_id'] = data.get('assigned_to')

        lead = SalesService.create_lead(
            branch,
            data.get('contact_name'),
            data.get('contact_phone'),
            (data.get('source') or '').upper(),
            customer=customer,
            updated_by=username_of(request),
            **fields,
        )
        audit(request, 'LEAD_CREATED', lead, f"Lead created: {lead.lead_number} ({lead.source})")
        return Response(LeadSerializer(lead).data, status=status.HTTP_201_CREATED)
    except Customer.DoesNotExist:
        return _not_found('Customer')
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        return _server_error('lead_list', e, 'Failed to process leads')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'READ', 'LEAD')
def lead_detail(request, lead_id: int):
    try:
        lead = Lead.objects.get(id=lead_id, **get_branch_filter(request))
        return Response(LeadDetailSerializer(lead).data)
    except Lead.DoesNotExist:
        return _not_found('Lead')
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'UPDATE', 'LEAD')
def lead_status(request, lead_id: int):
    try:
        data = _data(request)
        lead = Lead.objects.get(id=lead_id, **get_branch_filter(request))
        previous = lead.status
        lead = SalesService.update_lead_status(
            lead, (data.get('status') or '').upper(), updated_by=username_of(request), notes=data.get('notes') or ''
        )
        audit(request, 'LEAD_STATUS_CHANGED', lead, f"Lead {lead.lead_number}: {previous} -> {lead.status}")
        return Response(LeadSerializer(lead).data)
    except Lead.DoesNotExist:
        return _not_found('Lead')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('lead_status', e, 'Failed to update lead')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'UPDATE', 'LEAD')
def lead_measurements(request, lead_id: int):
    try:
        data = _data(request)
        lead = Lead.objects.get(id=lead_id, **get_branch_filter(request))
        measurement = SalesService.record_site_measurement(
            lead,
            data.get('measurements'),
            measured_by=data.get('measured_by') or username_of(request),
            location=data.get('location') or '',
            notes=data.get('notes') or '',
            updated_by=username_of(request),
        )
        audit(request, 'SITE_MEASUREMENT_RECORDED', measurement, f"Site measurement for {lead.lead_number}",
              branch=lead.branch)
        return Response(SiteMeasurementSerializer(measurement).data, status=status.HTTP_201_CREATED)
    except Lead.DoesNotExist:
        return _not_found('Lead')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('lead_measurements', e, 'Failed to record measurement')


# Estimates
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('SALES', 'ESTIMATE')
def estimate_list(request):
    """
    POST: {lead_id, items: [{width, height, quantity, frame_type, coating_type,
    hardware: {...}, custom_features: [...]}], discount_percentage, validity_days}
    """
    try:
        if request.method == 'GET':
            estimates = Estimate.objects.filter(**get_branch_filter(request)).prefetch_related('items')
            for param in ('status', 'approval_status'):
                value = request.GET.get(param)
                if value:
                    estimates = estimates.filter(**{param: value.upper()})
            if request.GET.get('lead_id'):
                estimates = estimates.filter(lead_id=request.GET['lead_id'])
            return Response(EstimateSerializer(estimates[:clamp_limit(request)], many=True).data)

        data = _data(request)
        lead = Lead.objects.get(id=data.get('lead_id'), **get_branch_filter(request))
        items = data.get('items')
        if not isinstance(items, list):
            raise ValidationFailed('items must be a list')
        validity_days = data.get('validity_days')
        estimate, breakdown = SalesService.generate_estimation(
            lead,
            items,
            discount_percentage=to_decimal(data.get('discount_percentage'), 'discount_percentage', default=0),
            validity_days=int(validity_days) if validity_days else None,
            requested_by=request.user,
            updated_by=username_of(request),
        )
        audit(request, 'ESTIMATE_GENERATED', estimate,
              f"Estimate {estimate.estimate_number} v{estimate.version} for {lead.lead_number}: {estimate.final_amount}")
        body = EstimateSerializer(estimate).data
        body['breakdown'] = {k: str(v) for k, v in breakdown.items()}
        return Response(body, status=status.HTTP_201_CREATED)
    except Lead.DoesNotExist:
        return _not_found('Lead')
    except ERPError as e:
        return error_response(e)
    except (TypeError, ValueError) as e:
        return Response({'error': 'Invalid estimate input', 'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return _server_error('estimate_list', e, 'Failed to process estimates')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'READ', 'ESTIMATE')
def estimate_detail(request, estimate_id: int):
    try:
        estimate = Estimate.objects.get(id=estimate_id, **get_branch_filter(request))
        body = EstimateSerializer(estimate).data
        body['discount_approvals'] = DiscountApprovalSerializer(estimate.discount_approvals.all(), many=True).data
        return Response(body)
    except Estimate.DoesNotExist:
        return _not_found('Estimate')
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'UPDATE', 'ESTIMATE')
def estimate_status(request, estimate_id: int):
    try:
        estimate = Estimate.objects.get(id=estimate_id, **get_branch_filter(request))
        previous = estimate.status
        estimate = SalesService.update_estimate_status(
            estimate, (_data(request).get('status') or '').upper(), updated_by=username_of(request)
        )
        audit(request, 'ESTIMATE_STATUS_CHANGED', estimate,
              f"Estimate {estimate.estimate_number}: {previous} -> {estimate.status}")
        return Response(EstimateSerializer(estimate).data)
    except Estimate.DoesNotExist:
        return _not_found('Estimate')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('estimate_status', e, 'Failed to update estimate')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'UPDATE', 'ESTIMATE')
def estimate_discount(request, estimate_id: int):
    """Request a discount on an estimate: {discount_percentage, reason}."""
    try:
        data = _data(request)
        estimate = Estimate.objects.get(id=estimate_id, **get_branch_filter(request))
        approval, requires_escalation = SalesService.request_discount_approval(
            estimate,
            to_decimal(data.get('discount_percentage'), 'discount_percentage'),
            reason=data.get('reason') or '',
            requested_by=request.user,
            updated_by=username_of(request),
        )
        audit(request, 'DISCOUNT_REQUESTED', approval,
              f"{approval.discount_percentage}% on {estimate.estimate_number} (level {approval.approval_level})",
              branch=estimate.branch)
        body = DiscountApprovalSerializer(approval).data
        body['requires_escalation'] = requires_escalation
        return Response(body, status=status.HTTP_201_CREATED)
    except Estimate.DoesNotExist:
        return _not_found('Estimate')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('estimate_discount', e, 'Failed to request discount')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'READ', 'ESTIMATE')
def discount_approval_list(request):
    try:
        approvals = DiscountApproval.objects.filter(**get_branch_filter(request, 'estimate__')).select_related('estimate')
        approvals = approvals.filter(status=(request.GET.get('status') or 'PENDING').upper())
        return Response(DiscountApprovalSerializer(approvals[:clamp_limit(request)], many=True).data)
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'APPROVE', 'DISCOUNT')
def discount_approval_decide(request, approval_id: int):
    """{approve: true|false, comments}"""
    try:
        data = _data(request)
        if 'approve' not in data:
            raise ValidationFailed('approve is required')
        approval = DiscountApproval.objects.get(id=approval_id, **get_branch_filter(request, 'estimate__'))
        approval = SalesService.decide_discount_approval(
            approval,
            to_bool(data.get('approve'), 'approve'),
            request.user,
            get_role_info(request).get('roles') or [],
            comments=data.get('comments') or '',
        )
        audit(request, f"DISCOUNT_{approval.status}", approval,
              f"Discount {approval.discount_percentage}% on {approval.estimate.estimate_number} {approval.status}",
              branch=approval.estimate.branch)
        return Response(DiscountApprovalSerializer(approval).data)
    except DiscountApproval.DoesNotExist:
        return _not_found('Discount approval')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('discount_approval_decide', e, 'Failed to decide discount')


# Products and BOMs
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('SALES', 'PRODUCT')
def product_list(request):
    try:
        if request.method == 'GET':
            products = Product.objects.filter(**get_branch_filter(request))
            if request.GET.get('active') == 'true':
                products = products.filter(is_active=True)
            return Response(ProductSerializer(products, many=True).data)

        data = _data(request)
        branch = resolve_write_branch(request, data.get('branch_id'))
        product = SalesService.create_product(
            branch,
            (data.get('code') or '').strip().upper(),
            (data.get('name') or '').strip(),
            updated_by=username_of(request),
            category=(data.get('category') or '').strip(),
            unit=(data.get('unit') or 'NOS').strip(),
            base_price=to_decimal(data.get('base_price'), 'base_price', default=0),
        )
        audit(request, 'PRODUCT_CREATED', product, f"Product created: {product.code}")
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        return _server_error('product_list', e, 'Failed to process products')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('MANUFACTURING', 'BOM')
def product_boms(request, product_id: int):
    """POST: {items: [{inventory_item_id, quantity, scrap_percentage}]} creates the next DRAFT version."""
    try:
        product = Product.objects.get(id=product_id, **get_branch_filter(request))
        if request.method == 'GET':
            return Response(BillOfMaterialSerializer(product.boms.order_by('-version'), many=True).data)

        lines = _data(request).get('items')
        if not isinstance(lines, list):
            raise ValidationFailed('items must be a list')
        items = []
        for line in lines:
            item = InventoryItem.objects.get(id=line.get('inventory_item_id'), branch=product.branch)
            items.append({
                'item': item,
                'quantity': to_decimal(line.get('quantity'), 'quantity'),
                'scrap_percentage': to_decimal(line.get('scrap_percentage'), 'scrap_percentage', default=0),
            })
        bom = SalesService.create_bom(product, items, updated_by=username_of(request))
        audit(request, 'BOM_CREATED', bom, f"BOM v{bom.version} for {product.code}", branch=product.branch)
        return Response(BillOfMaterialSerializer(bom).data, status=status.HTTP_201_CREATED)
    except Product.DoesNotExist:
        return _not_found('Product')
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('product_boms', e, 'Failed to process BOMs')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('MANUFACTURING', 'APPROVE', 'BOM')
def bom_approve(request, bom_id: int):
    try:
        bom = BillOfMaterial.objects.select_related('product').get(id=bom_id, **get_branch_filter(request, 'product__'))
        bom = SalesService.approve_bom(bom, updated_by=username_of(request))
        audit(request, 'BOM_APPROVED', bom, f"BOM v{bom.version} approved for {bom.product.code}",
              branch=bom.product.branch)
        return Response(BillOfMaterialSerializer(bom).data)
    except BillOfMaterial.DoesNotExist:
        return _not_found('BOM')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('bom_approve', e, 'Failed to approve BOM')


# Sales orders
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('SALES', 'SALES_ORDER')
def sales_order_list(request):
    """
    POST: {customer_id, estimate_id?, items: [{product_id?, description, quantity,
    unit_price}], discount_amount?, tax_amount?, delivery_date?, notes?}
    """
    try:
        if request.method == 'GET':
            orders = SalesOrder.objects.filter(**get_branch_filter(request)).select_related('customer')
            if request.GET.get('status'):
                orders = orders.filter(status=request.GET['status'].upper())
            if request.GET.get('customer_id'):
                orders = orders.filter(customer_id=request.GET['customer_id'])
            return Response(SalesOrderSerializer(orders[:clamp_limit(request)], many=True).data)

        data = _data(request)
        customer = Customer.objects.get(id=data.get('customer_id'), **get_branch_filter(request))
        estimate = None
        if data.get('estimate_id'):
            estimate = Estimate.objects.get(id=data['estimate_id'], branch=customer.branch)

        lines = data.get('items')
        if not isinstance(lines, list):
            raise ValidationFailed('items must be a list')
        items = []
        for line in lines:
            product = None
            if line.get('product_id'):
                product = Product.objects.get(id=line['product_id'], branch=customer.branch)
            items.append({
                'product': product,
                'description': line.get('description') or '',
                'quantity': to_decimal(line.get('quantity'), 'quantity'),
                'unit_price': to_decimal(line.get('unit_price'), 'unit_price'),
            })

        tax = data.get('tax_amount')
        order = SalesService.create_sales_order(
            customer,
            items,
            estimate=estimate,
            discount_amount=to_decimal(data.get('discount_amount'), 'discount_amount', default=0),
            tax_amount=None if tax in (None, '') else to_decimal(tax, 'tax_amount'),
            delivery_date=parse_date_field(data.get('delivery_date'), 'delivery_date', required=False),
            notes=data.get('notes') or '',
            updated_by=username_of(request),
        )
        audit(request, 'SALES_ORDER_CREATED', order,
              f"Sales order {order.order_number} for {customer.customer_code}: {order.final_amount}",
              extra={'production_orders': order.production_orders.count()})
        return Response(SalesOrderSerializer(order).data, status=status.HTTP_201_CREATED)
    except Customer.DoesNotExist:
        return _not_found('Customer')
    except Estimate.DoesNotExist:
        return _not_found('Estimate')
    except Product.DoesNotExist:
        return _not_found('Product')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('sales_order_list', e, 'Failed to process sales orders')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'READ', 'SALES_ORDER')
def sales_order_detail(request, order_id: int):
    try:
        order = SalesOrder.objects.get(id=order_id, **get_branch_filter(request))
        return Response(SalesOrderSerializer(order).data)
    except SalesOrder.DoesNotExist:
        return _not_found('Sales order')
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'UPDATE', 'SALES_ORDER')
def sales_order_status(request, order_id: int):
    try:
        order = SalesOrder.objects.get(id=order_id, **get_branch_filter(request))
        previous = order.status
        order = SalesService.update_sales_order_status(
            order, (_data(request).get('status') or '').upper(), updated_by=username_of(request)
        )
        audit(request, 'SALES_ORDER_STATUS_CHANGED', order, f"{order.order_number}: {previous} -> {order.status}")
        return Response(SalesOrderSerializer(order).data)
    except SalesOrder.DoesNotExist:
        return _not_found('Sales order')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('sales_order_status', e, 'Failed to update sales order')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SALES', 'READ')
def sales_analytics(request):
    """?date_from=YYYY-MM-DD&date_to=YYYY-MM-DD"""
    try:
        branch_filter = get_branch_filter(request)
        result = SalesService.get_sales_analytics(
            Lead.objects.filter(**branch_filter),
            SalesOrder.objects.filter(**branch_filter),
            date_from=parse_date_field(request.GET.get('date_from'), 'date_from', required=False),
            date_to=parse_date_field(request.GET.get('date_to'), 'date_to', required=False),
        )
        return Response(result)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('sales_analytics', e, 'Failed to compute sales analytics')
