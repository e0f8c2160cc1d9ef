"""
Service API: service requests, technician assignment, completion,
warranty lookup, AMC contracts, service invoicing and metrics.
"""
from django.db.models import Q
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from .exceptions import ERPError, ValidationFailed
from .models import AMCContract, Customer, Employee, InventoryItem, SalesOrder, ServiceRequest
from .permissions import has_permission, permission_required, permission_required_for_writes
from .security import get_branch_filter
from .serializers import AMCContractSerializer, InvoiceSerializer, ServiceRequestSerializer
from .services.service_desk import ServiceDesk
from .utils import (
    audit,
    clamp_limit,
    error_response,
    parse_date_field,
    parse_datetime_field,
    to_decimal,
    username_of,
)

logger = logging.getLogger(__name__)


def _data(request):
    return request.data if isinstance(request.data, dict) else {}


def _not_found(label):
    return Response({'error': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)


def _server_error(name, e, message):
    logger.error(f"{name} error: {e}", exc_info=True)
    return Response({'error': message, 'detail': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _visible_requests(request):
    """Service requests in the caller's branches; technicians only see their own assignments."""
    requests = ServiceRequest.objects.filter(**get_branch_filter(request)).select_related('customer', 'assigned_to')
    if not has_permission(request, 'SERVICE', 'READ', '*'):
        requests = requests.filter(assigned_to__user=request.user)
    return requests


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('SERVICE', 'SERVICE_REQUEST')
def service_request_list(request):
    """
    GET filters: status, service_type, priority, assigned_to, search.
    POST: {customer_id, service_type, description, priority?, sales_order_id?,
    amc_contract_id?, scheduled_date?, location?, warranty_number?, warranty_end_date?}
    """
    try:
        if request.method == 'GET':
            requests = _visible_requests(request)
            for param in ('status', 'service_type', 'priority'):
                if request.GET.get(param):
                    requests = requests.filter(**{param: request.GET[param].upper()})
            if request.GET.get('assigned_to'):
                requests = requests.filter(assigned_to_id=request.GET['assigned_to'])
            search = (request.GET.get('search') or '').strip()
            if search:
                requests = requests.filter(
                    Q(service_number__icontains=search) | Q(customer__name__icontains=search)
                    | Q(warranty_number=search)
                )
            return Response(ServiceRequestSerializer(requests[:clamp_limit(request)], many=True).data)

        data = _data(request)
        customer = Customer.objects.get(id=data.get('customer_id'), **get_branch_filter(request))
        sales_order = None
        if data.get('sales_order_id'):
            sales_order = SalesOrder.objects.get(id=data['sales_order_id'], branch=customer.branch)
        amc_contract = None
        if data.get('amc_contract_id'):
            amc_contract = AMCContract.objects.get(id=data['amc_contract_id'], branch=customer.branch)

        service_request = ServiceDesk.create_service_request(
            customer,
            (data.get('service_type') or '').upper(),
            data.get('description'),
            priority=(data.get('priority') or 'MEDIUM').upper(),
            sales_order=sales_order,
            amc_contract=amc_contract,
            scheduled_date=parse_datetime_field(data.get('scheduled_date'), 'scheduled_date'),
            location=(data.get('location') or '').strip(),
            warranty_number=(data.get('warranty_number') or '').strip(),
            warranty_end_date=parse_date_field(data.get('warranty_end_date'), 'warranty_end_date', required=False),
            updated_by=username_of(request),
        )
        audit(request, 'SERVICE_REQUEST_CREATED', service_request,
              f"{service_request.service_number} {service_request.service_type} for {customer.customer_code}",
              branch=customer.branch)
        return Response(ServiceRequestSerializer(service_request).data, status=status.HTTP_201_CREATED)
    except Customer.DoesNotExist:
        return _not_found('Customer')
    except SalesOrder.DoesNotExist:
        return _not_found('Sales order')
    except AMCContract.DoesNotExist:
        return _not_found('AMC contract')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('service_request_list', e, 'Failed to process service requests')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SERVICE', 'READ', 'SERVICE_REQUEST')
def service_request_detail(request, request_id: int):
    try:
        return Response(ServiceRequestSerializer(_visible_requests(request).get(id=request_id)).data)
    except ServiceRequest.DoesNotExist:
        return _not_found('Service request')
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SERVICE', 'UPDATE', 'ASSIGNMENT')
def service_request_assign(request, request_id: int):
    """{technician_id?}; without one the least loaded service technician is picked."""
    try:
        data = _data(request)
        service_request = ServiceRequest.objects.get(id=request_id, **get_branch_filter(request))
        technician = None
        if data.get('technician_id'):
            technician = Employee.objects.get(id=data['technician_id'])
        service_request = ServiceDesk.assign_technician(
            service_request, technician=technician, updated_by=username_of(request)
        )
        audit(request, 'SERVICE_TECHNICIAN_ASSIGNED', service_request,
              f"{service_request.service_number} -> {service_request.assigned_to.employee_code}",
              extra={'auto': technician is None}, branch=service_request.branch)
        return Response(ServiceRequestSerializer(service_request).data)
    except ServiceRequest.DoesNotExist:
        return _not_found('Service request')
    except Employee.DoesNotExist:
        return _not_found('Technician')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('service_request_assign', e, 'Failed to assign technician')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SERVICE', 'CREATE', 'SERVICE_COMPLETION')
def service_request_complete(request, request_id: int):
    """{labor_hours, parts: [{inventory_item_id, quantity}], customer_rating?, feedback?}"""
    try:
        data = _data(request)
        service_request = _visible_requests(request).get(id=request_id)

        lines = data.get('parts') or []
        if not isinstance(lines, list):
            raise ValidationFailed('parts must be a list')
        parts = []
        for line in lines:
            item = InventoryItem.objects.get(id=line.get('inventory_item_id'), branch=service_request.branch)
            parts.append({'item': item, 'quantity': to_decimal(line.get('quantity'), 'quantity')})

        rating = data.get('customer_rating')
        if rating not in (None, ''):
            try:
                rating = int(rating)
            except (TypeError, ValueError):
                raise ValidationFailed('customer_rating must be a whole number')
        else:
            rating = None

        service_request = ServiceDesk.complete_service(
            service_request,
            to_decimal(data.get('labor_hours'), 'labor_hours', default=0),
            parts=parts,
            customer_rating=rating,
            feedback=data.get('feedback') or '',
            updated_by=username_of(request),
        )
        audit(request, 'SERVICE_COMPLETED', service_request,
              f"{service_request.service_number} completed: total {service_request.total_cost}",
              branch=service_request.branch)
        return Response(ServiceRequestSerializer(service_request).data)
    except ServiceRequest.DoesNotExist:
        return _not_found('Service request')
    except InventoryItem.DoesNotExist:
        return _not_found('Inventory item')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('service_request_complete', e, 'Failed to complete service')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('SERVICE', 'DELETE', 'SERVICE_REQUEST')
def service_request_cancel(request, request_id: int):
    try:
        service_request = ServiceRequest.objects.get(id=request_id, **get_branch_filter(request))
        service_request = ServiceDesk.cancel_service_request(service_request, updated_by=username_of(request))
        audit(request, 'SERVICE_REQUEST_CANCELLED', service_request, f"{service_request.service_number} cancelled",
              branch=service_request.branch)
        return Response(ServiceRequestSerializer(service_request).data)
    except ServiceRequest.DoesNotExist:
        return _not_found('Service request')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('service_request_cancel', e, 'Failed to cancel service request')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('FINANCE', 'CREATE', 'INVOICE')
def service_request_invoice(request, request_id: int):
    """{discount_amount?} invoices a COMPLETED request."""
    try:
        service_request = ServiceRequest.objects.get(id=request_id, **get_branch_filter(request))
        invoice = ServiceDesk.generate_service_invoice(
            service_request,
            discount_amount=to_decimal(_data(request).get('discount_amount'), 'discount_amount', default=0),
            updated_by=username_of(request),
        )
        audit(request, 'SERVICE_INVOICED', invoice,
              f"{invoice.invoice_number} for {service_request.service_number}: {invoice.total_amount}",
              branch=invoice.branch)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)
    except ServiceRequest.DoesNotExist:
        return _not_found('Service request')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('service_request_invoice', e, 'Failed to invoice service request')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SERVICE', 'READ', 'WARRANTY')
def warranty_lookup(request, warranty_number: str):
    try:
        requests = ServiceRequest.objects.filter(**get_branch_filter(request))
        warranty = ServiceDesk.validate_warranty(requests, warranty_number.strip())
        if warranty is None:
            return Response({'valid': False, 'warranty_number': warranty_number})
        return Response({'valid': True, **warranty})
    except ERPError as e:
        return error_response(e)


# AMC
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('SERVICE', 'AMC')
def amc_contract_list(request):
    """
    GET filters: status, customer_id.
    POST: {customer_id, start_date, end_date, amount, visits_per_year?, terms?}
    """
    try:
        if request.method == 'GET':
            contracts = AMCContract.objects.filter(**get_branch_filter(request)).select_related('customer')
            if request.GET.get('status'):
                contracts = contracts.filter(status=request.GET['status'].upper())
            if request.GET.get('customer_id'):
                contracts = contracts.filter(customer_id=request.GET['customer_id'])
            return Response(AMCContractSerializer(contracts.order_by('end_date')[:clamp_limit(request)],
                                                  many=True).data)

        data = _data(request)
        customer = Customer.objects.get(id=data.get('customer_id'), **get_branch_filter(request))
        try:
            visits = int(data.get('visits_per_year') or 4)
        except (TypeError, ValueError):
            raise ValidationFailed('visits_per_year must be a whole number')
        contract = ServiceDesk.create_amc_contract(
            customer,
            parse_date_field(data.get('start_date'), 'start_date'),
            parse_date_field(data.get('end_date'), 'end_date'),
            to_decimal(data.get('amount'), 'amount'),
            visits_per_year=visits,
            terms=data.get('terms') or '',
            updated_by=username_of(request),
        )
        audit(request, 'AMC_CREATED', contract,
              f"{contract.contract_number} for {customer.customer_code}: {contract.start_date}..{contract.end_date}",
              branch=customer.branch)
        return Response(AMCContractSerializer(contract).data, status=status.HTTP_201_CREATED)
    except Customer.DoesNotExist:
        return _not_found('Customer')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('amc_contract_list', e, 'Failed to process AMC contracts')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('SERVICE', 'READ')
def service_metrics(request):
    """?period=YYYY-MM&technician_id="""
    try:
        technician = None
        if request.GET.get('technician_id'):
            technician = Employee.objects.get(id=request.GET['technician_id'], **get_branch_filter(request))
        requests = ServiceRequest.objects.filter(**get_branch_filter(request))
        return Response(ServiceDesk.get_service_metrics(requests, period=request.GET.get('period'),
                                                        technician=technician))
    except Employee.DoesNotExist:
        return _not_found('Technician')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('service_metrics', e, 'Failed to compute service metrics')
