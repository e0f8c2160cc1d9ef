"""
Tests for invoices, payments and receivables aging.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from erp_system.exceptions import ValidationFailed, WorkflowError
from erp_system.models import Invoice, Payment, SalesOrder
from erp_system.services.finance_service import FinanceService, ar_bucket
from erp_system.services.sales_service import SalesService
from erp_system.services.service_desk import ServiceDesk

LINES = [
    {'description': 'Steel door 900x2100', 'quantity': 2, 'unit_price': Decimal('15000')},
    {'description': 'Installation', 'quantity': 1, 'unit_price': Decimal('2000')},
]


@pytest.fixture
def customer(pune):
    return SalesService.create_customer(pune, 'Shree Constructions', phone='9876543210')


@pytest.fixture
def invoice(customer):
    return FinanceService.create_invoice(customer, LINES, discount_amount=Decimal('2000'))


def test_invoice_defaults_tax_and_due_date(invoice):
    assert invoice.invoice_number.startswith('INV')
    assert invoice.subtotal == Decimal('32000.00')
    assert invoice.tax_amount == Decimal('5400.00')
    assert invoice.total_amount == Decimal('35400.00')
    assert invoice.balance_amount == invoice.total_amount
    assert invoice.due_date == invoice.invoice_date + timedelta(days=30)
    assert invoice.lines.count() == 2


@pytest.mark.parametrize('lines, discount', [
    ([], 0),
    ([{'description': 'Door', 'quantity': 0, 'unit_price': 100}], 0),
    ([{'description': 'Door', 'quantity': 1, 'unit_price': 100}], 150),
])
def test_invalid_invoices_rejected(customer, lines, discount):
    with pytest.raises(ValidationFailed):
        FinanceService.create_invoice(customer, lines, discount_amount=discount)


def test_partial_then_full_payment(invoice):
    payment, invoice = FinanceService.process_payment(invoice, Decimal('10000'), 'UPI')
    assert payment.payment_number.startswith('PAY')
    assert invoice.status == 'PARTIAL'
    assert invoice.balance_amount == Decimal('25400.00')

    _, invoice = FinanceService.process_payment(invoice, Decimal('25400'), 'BANK_TRANSFER', reference='UTR-88')
    assert invoice.status == 'PAID'
    assert invoice.paid_amount == Decimal('35400.00')
    assert invoice.balance_amount == Decimal('0.00')

    with pytest.raises(WorkflowError):
        FinanceService.process_payment(invoice, Decimal('1'), 'CASH')


def test_overpayment_and_bad_method(invoice):
    with pytest.raises(ValidationFailed):
        FinanceService.process_payment(invoice, Decimal('35400.01'), 'CASH')
    with pytest.raises(ValidationFailed):
        FinanceService.process_payment(invoice, Decimal('100'), 'BITCOIN')
    with pytest.raises(ValidationFailed):
        FinanceService.process_payment(invoice, Decimal('0'), 'CASH')
    assert not Payment.objects.exists()


def test_only_pending_invoices_cancel(invoice, customer):
    FinanceService.process_payment(invoice, Decimal('100'), 'CASH')
    invoice.refresh_from_db()
    with pytest.raises(WorkflowError):
        FinanceService.cancel_invoice(invoice)

    other = FinanceService.create_invoice(customer, LINES)
    other = FinanceService.cancel_invoice(other)
    assert other.status == 'CANCELLED'
    assert other.balance_amount == Decimal('0')


@pytest.mark.parametrize('days, label', [(0, '0-30'), (30, '0-30'), (31, '31-60'), (90, '61-90'), (91, '90+')])
def test_ar_bucket_boundaries(days, label):
    assert ar_bucket(days) == label


def test_receivables_aging(customer):
    current = FinanceService.create_invoice(customer, LINES)
    overdue = FinanceService.create_invoice(customer, LINES, due_days=0)
    paid = FinanceService.create_invoice(customer, LINES)
    FinanceService.process_payment(paid, paid.total_amount, 'CASH')

    as_of = timezone.localdate() + timedelta(days=45)
    aging = FinanceService.get_accounts_receivable_aging(Invoice.objects.all(), as_of=as_of)
    assert aging['invoice_count'] == 2
    assert aging['buckets']['0-30']['count'] == 1
    assert aging['buckets']['31-60']['count'] == 1
    assert aging['total_outstanding'] == current.total_amount + overdue.total_amount
    rows = {row['invoice_number']: row for row in aging['invoices']}
    assert rows[overdue.invoice_number]['days_past_due'] == 45
    assert rows[current.invoice_number]['days_past_due'] == 15


def test_invoice_from_sales_order(customer):
    order = SalesService.create_sales_order(customer, [
        {'description': 'Door', 'quantity': Decimal('2'), 'unit_price': Decimal('10000')},
    ], discount_amount=Decimal('1000'))
    invoice = FinanceService.create_invoice_from_sales_order(order)
    assert invoice.sales_order == order
    assert invoice.subtotal == Decimal('20000.00')
    assert invoice.tax_amount == order.tax_amount
    assert invoice.total_amount == order.final_amount
    with pytest.raises(WorkflowError):
        FinanceService.create_invoice_from_sales_order(order)


def test_invoice_checks_current_order_row(customer):
    order = SalesService.create_sales_order(customer, [
        {'description': 'Door', 'quantity': Decimal('1'), 'unit_price': Decimal('10000')},
    ])
    stale = SalesOrder.objects.get(pk=order.pk)
    FinanceService.create_invoice_from_sales_order(order)
    with pytest.raises(WorkflowError):
        FinanceService.create_invoice_from_sales_order(stale)

    SalesOrder.objects.filter(pk=order.pk).update(status='CANCELLED')
    with pytest.raises(WorkflowError):
        FinanceService.create_invoice_from_sales_order(stale)
    assert order.invoices.count() == 1


def test_service_invoice_does_not_block_order_invoice(customer):
    order = SalesService.create_sales_order(customer, [
        {'description': 'Door', 'quantity': Decimal('1'), 'unit_price': Decimal('10000')},
    ])
    request = ServiceDesk.create_service_request(customer, 'INSTALLATION', 'Fit door', sales_order=order)
    request.status = 'COMPLETED'
    request.labor_hours = Decimal('2')
    request.save()
    ServiceDesk.generate_service_invoice(request)

    invoice = FinanceService.create_invoice_from_sales_order(order)
    assert invoice.service_request is None
    assert order.invoices.count() == 2


def test_finance_summary(customer):
    invoice = FinanceService.create_invoice(customer, LINES, tax_amount=0)
    FinanceService.process_payment(invoice, Decimal('8000'), 'CHEQUE')
    summary = FinanceService.get_finance_summary(Invoice.objects.all(), Payment.objects.all())
    assert summary['total_invoiced'] == Decimal('32000.00')
    assert summary['total_collected'] == Decimal('8000.00')
    assert summary['total_outstanding'] == Decimal('24000.00')
    assert summary['collection_rate'] == 25.0


# API
@pytest.mark.django_db
class TestFinanceApi:

    def test_create_invoice_and_record_payment(self, make_user, client_for, pune, customer):
        client = client_for(make_user('fm@pune.com', 'FINANCE_MANAGER', pune))
        response = client.post('/api/invoices/', {
            'customer_id': customer.id,
            'lines': [{'description': 'Gate', 'quantity': '1', 'unit_price': '10000'}],
        }, format='json')
        assert response.status_code == 201
        assert response.json()['total_amount'] == '11800.00'

        response = client.post('/api/payments/', {
            'invoice_id': response.json()['id'], 'amount': '11800', 'payment_method': 'upi',
        }, format='json')
        assert response.status_code == 201
        assert response.json()['invoice']['status'] == 'PAID'

    def test_paying_paid_invoice_conflicts(self, make_user, client_for, pune, invoice):
        FinanceService.process_payment(invoice, invoice.total_amount, 'CASH')
        client = client_for(make_user('fm@pune.com', 'FINANCE_MANAGER', pune))
        response = client.post('/api/payments/', {
            'invoice_id': invoice.id, 'amount': '1', 'payment_method': 'CASH',
        }, format='json')
        assert response.status_code == 409
        assert response.json()['code'] == 'INVALID_STATE'

    def test_invoice_pdf_download(self, make_user, client_for, pune, invoice):
        client = client_for(make_user('fm@pune.com', 'FINANCE_MANAGER', pune))
        response = client.get(f'/api/invoices/{invoice.id}/pdf/')
        assert response.status_code == 200
        assert response['Content-Type'] == 'application/pdf'
        assert response.content.startswith(b'%PDF')

    def test_sales_executive_cannot_invoice(self, make_user, client_for, pune, customer):
        client = client_for(make_user('exec@pune.com', 'SALES_EXECUTIVE', pune))
        response = client.post('/api/invoices/', {'customer_id': customer.id, 'lines': []}, format='json')
        assert response.status_code == 403

    def test_other_branch_invoice_hidden(self, make_user, client_for, mumbai, invoice):
        client = client_for(make_user('fm@mumbai.com', 'FINANCE_MANAGER', mumbai))
        assert client.get(f'/api/invoices/{invoice.id}/').status_code == 404
        assert client.get('/api/invoices/').json() == []

    def test_ar_aging_endpoint(self, make_user, client_for, pune, invoice):
        client = client_for(make_user('fm@pune.com', 'FINANCE_MANAGER', pune))
        as_of = (timezone.localdate() + timedelta(days=100)).isoformat()
        response = client.get(f'/api/finance/ar-aging/?as_of={as_of}')
        assert response.status_code == 200
        assert response.json()['buckets']['61-90']['count'] == 1
