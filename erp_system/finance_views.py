"""
Finance API: invoices, payments, invoice PDFs and receivables aging.
"""
from django.db.models import Q
from django.http import HttpResponse as DjangoHttpResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from .exceptions import ERPError, ValidationFailed
from .invoice_pdf import render_invoice_pdf, save_invoice_pdf
from .models import Customer, Invoice, Payment, SalesOrder
from .permissions import permission_required, permission_required_for_writes
from .security import get_branch_filter
from .serializers import InvoiceSerializer, PaymentSerializer
from .services.finance_service import FinanceService
from .utils import audit, clamp_limit, error_response, parse_date_field, to_decimal, username_of

logger = logging.getLogger(__name__)


def _data(request):
    return request.data if isinstance(request.data, dict) else {}


def _not_found(label):
    return Response({'error': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)


def _server_error(name, e, message):
    logger.error(f"{name} error: {e}", exc_info=True)
    return Response({'error': message, 'detail': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _due_days(data):
    value = data.get('due_days')
    if value in (None, ''):
        return None
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed('due_days must be a whole number')
    if days < 0:
        raise ValidationFailed('due_days cannot be negative')
    return days


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('FINANCE', 'INVOICE')
def invoice_list(request):
    """
    GET filters: status, customer_id, overdue=true, search.
    POST: {customer_id, lines: [{description, quantity, unit_price}],
    discount_amount?, tax_amount?, due_days?, notes?}
    """
    try:
        if request.method == 'GET':
            invoices = Invoice.objects.filter(**get_branch_filter(request)).select_related('customer')
            if request.GET.get('status'):
                invoices = invoices.filter(status=request.GET['status'].upper())
            if request.GET.get('customer_id'):
                invoices = invoices.filter(customer_id=request.GET['customer_id'])
            if request.GET.get('overdue') == 'true':
                invoices = invoices.filter(status__in=('PENDING', 'PARTIAL'), due_date__lt=parse_date_field(
                    request.GET.get('as_of'), 'as_of', required=False) or timezone.localdate())
            search = (request.GET.get('search') or '').strip()
            if search:
                invoices = invoices.filter(Q(invoice_number__icontains=search) | Q(customer__name__icontains=search))
            return Response(InvoiceSerializer(invoices.order_by('-invoice_date', '-id')[:clamp_limit(request)],
                                              many=True).data)

        data = _data(request)
        customer = Customer.objects.get(id=data.get('customer_id'), **get_branch_filter(request))
        lines = data.get('lines')
        if not isinstance(lines, list):
            raise ValidationFailed('lines must be a list')
        parsed = [{
            'description': (line.get('description') or '').strip(),
            'quantity': to_decimal(line.get('quantity'), 'quantity'),
            'unit_price': to_decimal(line.get('unit_price'), 'unit_price'),
        } for line in lines]

        tax = data.get('tax_amount')
        invoice = FinanceService.create_invoice(
            customer,
            parsed,
            discount_amount=to_decimal(data.get('discount_amount'), 'discount_amount', default=0),
            tax_amount=None if tax in (None, '') else to_decimal(tax, 'tax_amount'),
            due_days=_due_days(data),
            notes=data.get('notes') or '',
            updated_by=username_of(request),
        )
        audit(request, 'INVOICE_CREATED', invoice,
              f"{invoice.invoice_number} for {customer.customer_code}: {invoice.total_amount}", branch=invoice.branch)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)
    except Customer.DoesNotExist:
        return _not_found('Customer')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('invoice_list', e, 'Failed to process invoices')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('FINANCE', 'READ', 'INVOICE')
def invoice_detail(request, invoice_id: int):
    try:
        invoice = Invoice.objects.get(id=invoice_id, **get_branch_filter(request))
        return Response(InvoiceSerializer(invoice).data)
    except Invoice.DoesNotExist:
        return _not_found('Invoice')
    except ERPError as e:
        return error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('FINANCE', 'CREATE', 'INVOICE')
def invoice_from_sales_order(request, order_id: int):
    """{due_days?}"""
    try:
        order = SalesOrder.objects.get(id=order_id, **get_branch_filter(request))
        invoice = FinanceService.create_invoice_from_sales_order(
            order, due_days=_due_days(_data(request)), updated_by=username_of(request)
        )
        audit(request, 'INVOICE_CREATED', invoice,
              f"{invoice.invoice_number} from {order.order_number}: {invoice.total_amount}", branch=invoice.branch)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)
    except SalesOrder.DoesNotExist:
        return _not_found('Sales order')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('invoice_from_sales_order', e, 'Failed to invoice sales order')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('FINANCE', 'UPDATE', 'INVOICE')
def invoice_cancel(request, invoice_id: int):
    try:
        invoice = Invoice.objects.get(id=invoice_id, **get_branch_filter(request))
        invoice = FinanceService.cancel_invoice(invoice, updated_by=username_of(request))
        audit(request, 'INVOICE_CANCELLED', invoice, f"{invoice.invoice_number} cancelled", branch=invoice.branch)
        return Response(InvoiceSerializer(invoice).data)
    except Invoice.DoesNotExist:
        return _not_found('Invoice')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('invoice_cancel', e, 'Failed to cancel invoice')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('FINANCE', 'INVOICE')
def invoice_pdf(request, invoice_id: int):
    """
    GET: download the rendered PDF.
    POST: render and store it (S3 or local media), returning the URL.
    """
    try:
        invoice = Invoice.objects.select_related('branch', 'customer').get(id=invoice_id, **get_branch_filter(request))
        if request.method == 'POST':
            url = save_invoice_pdf(invoice)
            audit(request, 'INVOICE_PDF_STORED', invoice, f"PDF stored for {invoice.invoice_number}",
                  branch=invoice.branch)
            return Response({'ok': True, 'invoice_number': invoice.invoice_number, 'pdf_url': url})

        response = DjangoHttpResponse(render_invoice_pdf(invoice), content_type='application/pdf')
        response['Content-Disposition'] = f'attachment; filename="{invoice.invoice_number}.pdf"'
        return response
    except Invoice.DoesNotExist:
        return _not_found('Invoice')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('invoice_pdf', e, 'Failed to generate invoice PDF')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('FINANCE', 'PAYMENT')
def payment_list(request):
    """
    GET filters: invoice_id, payment_method.
    POST: {invoice_id, amount, payment_method, reference?, payment_date?}
    """
    try:
        if request.method == 'GET':
            payments = Payment.objects.filter(**get_branch_filter(request, 'invoice__')).select_related('invoice')
            if request.GET.get('invoice_id'):
                payments = payments.filter(invoice_id=request.GET['invoice_id'])
            if request.GET.get('payment_method'):
                payments = payments.filter(payment_method=request.GET['payment_method'].upper())
            return Response(PaymentSerializer(payments.order_by('-payment_date', '-id')[:clamp_limit(request)],
                                              many=True).data)

        data = _data(request)
        invoice = Invoice.objects.get(id=data.get('invoice_id'), **get_branch_filter(request))
        payment, invoice = FinanceService.process_payment(
            invoice,
            to_decimal(data.get('amount'), 'amount'),
            (data.get('payment_method') or '').upper(),
            reference=(data.get('reference') or '').strip(),
            payment_date=parse_date_field(data.get('payment_date'), 'payment_date', required=False),
            updated_by=username_of(request),
        )
        audit(request, 'PAYMENT_RECORDED', payment,
              f"{payment.payment_number}: {payment.amount} on {invoice.invoice_number} ({invoice.status})",
              branch=invoice.branch)
        return Response({
            'payment': PaymentSerializer(payment).data,
            'invoice': InvoiceSerializer(invoice).data,
        }, status=status.HTTP_201_CREATED)
    except Invoice.DoesNotExist:
        return _not_found('Invoice')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('payment_list', e, 'Failed to process payments')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('FINANCE', 'READ', 'REPORT')
def accounts_receivable_aging(request):
    """?as_of=YYYY-MM-DD"""
    try:
        invoices = Invoice.objects.filter(**get_branch_filter(request))
        as_of = parse_date_field(request.GET.get('as_of'), 'as_of', required=False)
        return Response(FinanceService.get_accounts_receivable_aging(invoices, as_of=as_of))
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('accounts_receivable_aging', e, 'Failed to build receivables aging')
