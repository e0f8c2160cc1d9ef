"""
Finance Service.

Invoices (manual, from sales orders, from completed service requests),
payments against invoices, and accounts receivable aging.
"""
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
import logging

from ..exceptions import ValidationFailed, WorkflowError
from ..models import DocumentCounter
from ..utils import money

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
OPEN_INVOICE_STATUSES = ('PENDING', 'PARTIAL')
PAYMENT_METHODS = ('CASH', 'BANK_TRANSFER', 'CHEQUE', 'UPI', 'CARD')

AR_BUCKETS = (  # (upper bound in days past due, label); None = open ended
    (30, '0-30'),
    (60, '31-60'),
    (90, '61-90'),
    (None, '90+'),
)


def ar_bucket(days_past_due):
    for upper, label in AR_BUCKETS:
        if upper is None or days_past_due <= upper:
            return label
    return AR_BUCKETS[-1][1]


def _period():
    return timezone.localdate().strftime('%Y%m')


class FinanceService:

    @staticmethod
    @transaction.atomic
    def create_invoice(customer, lines, discount_amount=0, tax_amount=None, sales_order=None,
                       service_request=None, due_days=None, notes='', updated_by='system'):
        """
        Create a PENDING invoice.

        Args:
            lines: list of {'description', 'quantity', 'unit_price'}
            tax_amount: defaults to ERP_DEFAULT_TAX_RATE% of (subtotal - discount)

        Raises:
            ValidationFailed: no lines, bad quantities, discount above subtotal
        """
        from ..models import Invoice, InvoiceLineItem

        if not lines:
            raise ValidationFailed('Invoice needs at least one line')

        parsed = []
        for line in lines:
            quantity = Decimal(str(line.get('quantity') or 0))
            unit_price = Decimal(str(line.get('unit_price') or 0))
            if quantity <= 0:
                raise ValidationFailed('Line quantity must be greater than zero')
            if unit_price < 0:
                raise ValidationFailed('Line unit_price cannot be negative')
            parsed.append({
                'description': (line.get('description') or 'Item')[:255],
                'quantity': quantity,
                'unit_price': money(unit_price),
                'total': money(quantity * unit_price),
            })

        subtotal = money(sum((p['total'] for p in parsed), ZERO))
        discount = money(Decimal(str(discount_amount or 0)))
        if discount < 0 or discount > subtotal:
            raise ValidationFailed('discount_amount must be between 0 and the subtotal')
        if tax_amount is None:
            tax = money((subtotal - discount) * Decimal(str(settings.ERP_DEFAULT_TAX_RATE)) / Decimal('100'))
        else:
            tax = money(Decimal(str(tax_amount)))
        total = money(subtotal - discount + tax)

        if due_days is None:
            due_days = settings.ERP_INVOICE_DUE_DAYS
        today = timezone.localdate()

        invoice = Invoice.objects.create(
            branch=customer.branch,
            invoice_number=DocumentCounter.next_number('INV', _period(), 4),
            customer=customer,
            sales_order=sales_order,
            service_request=service_request,
            invoice_date=today,
            due_date=today + timedelta(days=int(due_days)),
            subtotal=subtotal,
            discount_amount=discount,
            tax_amount=tax,
            total_amount=total,
            paid_amount=ZERO,
            balance_amount=total,
            status='PENDING',
            notes=notes,
            updated_by=updated_by,
        )
        InvoiceLineItem.objects.bulk_create([InvoiceLineItem(invoice=invoice, **p) for p in parsed])

        logger.info(f"Invoice {invoice.invoice_number} created: customer={customer.customer_code} total={total}")
        return invoice

    @staticmethod
    @transaction.atomic
    def create_invoice_from_sales_order(order, due_days=None, updated_by='system'):
        """Invoice a sales order with its own discount and tax figures."""
        from ..models import SalesOrder

        order = SalesOrder.objects.select_for_update().get(pk=order.pk)
        if order.status == 'CANCELLED':
            raise WorkflowError(f"Sales order {order.order_number} is cancelled", order.status)
        if order.invoices.filter(service_request__isnull=True).exclude(status='CANCELLED').exists():
            raise WorkflowError(f"Sales order {order.order_number} is already invoiced", order.status)

        lines = [
            {
                'description': item.description or (item.product.name if item.product else 'Item'),
                'quantity': item.quantity,
                'unit_price': item.unit_price,
            }
            for item in order.items.select_related('product')
        ]
        return FinanceService.create_invoice(
            order.customer,
            lines,
            discount_amount=order.discount_amount,
            tax_amount=order.tax_amount,
            sales_order=order,
            due_days=due_days,
            notes=f"Sales order {order.order_number}",
            updated_by=updated_by,
        )

    @staticmethod
    @transaction.atomic
    def process_payment(invoice, amount, payment_method, reference='', payment_date=None, updated_by='system'):
        """
        Record a payment and update the invoice balance.

        Returns:
            (payment, invoice)
        """
        from ..models import Invoice, Payment

        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
        if invoice.status == 'PAID':
            raise WorkflowError(f"Invoice {invoice.invoice_number} is already paid", invoice.status)
        if invoice.status == 'CANCELLED':
            raise WorkflowError(f"Invoice {invoice.invoice_number} is cancelled", invoice.status)
        if payment_method not in PAYMENT_METHODS:
            raise ValidationFailed(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

        amount = money(Decimal(str(amount)))
        if amount <= 0:
            raise ValidationFailed('Payment amount must be greater than zero')
        if amount > invoice.balance_amount:
            raise ValidationFailed(
                f"Payment {amount} exceeds the outstanding balance {invoice.balance_amount}",
                detail={'balance_amount': str(invoice.balance_amount)},
            )

        payment = Payment.objects.create(
            payment_number=DocumentCounter.next_number('PAY', _period(), 4),
            invoice=invoice,
            amount=amount,
            payment_method=payment_method,
            reference=reference,
            payment_date=payment_date or timezone.localdate(),
            updated_by=updated_by,
        )

        invoice.paid_amount = money(invoice.paid_amount + amount)
        invoice.balance_amount = money(invoice.balance_amount - amount)
        invoice.status = 'PAID' if invoice.balance_amount <= 0 else 'PARTIAL'
        invoice.updated_by = updated_by
        invoice.save()

        logger.info(
            f"Payment {payment.payment_number} of {amount} on {invoice.invoice_number}: "
            f"balance={invoice.balance_amount} status={invoice.status}"
        )
        return payment, invoice

    @staticmethod
    def cancel_invoice(invoice, updated_by='system'):
        if invoice.status != 'PENDING':
            raise WorkflowError('Only unpaid PENDING invoices can be cancelled', invoice.status)
        invoice.status = 'CANCELLED'
        invoice.balance_amount = ZERO
        invoice.updated_by = updated_by
        invoice.save()
        return invoice

    @staticmethod
    def get_accounts_receivable_aging(invoices, as_of=None):
        """
        Bucket open invoices by days past due.

        Invoices not yet due fall into 0-30.

        Args:
            invoices: Invoice queryset already restricted to the caller's branches
        """
        as_of = as_of or timezone.localdate()
        buckets = {label: {'count': 0, 'amount': Decimal('0.00')} for _, label in AR_BUCKETS}
        rows = []

        for invoice in invoices.filter(status__in=OPEN_INVOICE_STATUSES).select_related('customer').order_by('due_date'):
            days_past_due = max((as_of - invoice.due_date).days, 0)
            label = ar_bucket(days_past_due)
            buckets[label]['count'] += 1
            buckets[label]['amount'] += invoice.balance_amount
            rows.append({
                'invoice_id': invoice.id,
                'invoice_number': invoice.invoice_number,
                'customer': invoice.customer.name,
                'due_date': invoice.due_date,
                'days_past_due': days_past_due,
                'balance_amount': invoice.balance_amount,
                'bucket': label,
            })

        total = sum((b['amount'] for b in buckets.values()), Decimal('0.00'))
        return {
            'as_of': as_of,
            'buckets': buckets,
            'total_outstanding': money(total),
            'invoice_count': len(rows),
            'invoices': rows,
        }

    @staticmethod
    def get_finance_summary(invoices, payments):
        """Invoiced, collected and outstanding totals for the dashboard."""
        live = invoices.exclude(status='CANCELLED')
        invoiced = live.aggregate(v=Sum('total_amount'))['v'] or ZERO
        collected = payments.aggregate(v=Sum('amount'))['v'] or ZERO
        outstanding = live.filter(status__in=OPEN_INVOICE_STATUSES).aggregate(v=Sum('balance_amount'))['v'] or ZERO
        overdue = live.filter(status__in=OPEN_INVOICE_STATUSES, due_date__lt=timezone.localdate())
        return {
            'total_invoiced': money(invoiced),
            'total_collected': money(collected),
            'total_outstanding': money(outstanding),
            'overdue_count': overdue.count(),
            'overdue_amount': money(overdue.aggregate(v=Sum('balance_amount'))['v'] or ZERO),
            'collection_rate': round(float(collected) / float(invoiced) * 100, 2) if invoiced else 0.0,
        }
