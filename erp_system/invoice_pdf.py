"""
Invoice PDF generation.

Renders an Invoice with its lines and payment summary, then stores it through
default_storage (local media, or S3 when USE_S3 is on).
"""
import io
import logging
from decimal import Decimal

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)


def render_invoice_pdf(invoice):
    """Returns the PDF bytes for an invoice."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.6 * inch,
        leftMargin=0.6 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
    )
    styles = getSampleStyleSheet()
    company_style = ParagraphStyle('Company', parent=styles['Heading1'], fontSize=18, fontName='Helvetica-Bold')
    right_style = ParagraphStyle('Right', parent=styles['Normal'], fontSize=9, alignment=TA_RIGHT)
    normal_style = ParagraphStyle('Body', parent=styles['Normal'], fontSize=9)
    footer_style = ParagraphStyle(
        'Footer', parent=styles['Normal'], fontSize=7, textColor=colors.HexColor('#888888'), alignment=TA_CENTER
    )

    branch = invoice.branch
    customer = invoice.customer
    story = []

    header = Table(
        [[
            Paragraph(settings.ERP_COMPANY_NAME, company_style),
            Paragraph(
                f"<b>TAX INVOICE</b><br/>{invoice.invoice_number}<br/>"
                f"Date: {invoice.invoice_date:%d %b %Y}<br/>Due: {invoice.due_date:%d %b %Y}",
                right_style,
            ),
        ]],
        colWidths=[4.0 * inch, 3.0 * inch],
    )
    header.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
        ('LINEBELOW', (0, 0), (-1, -1), 1.5, colors.black),
    ]))
    story.append(header)
    story.append(Spacer(1, 0.15 * inch))

    parties = Table(
        [[
            Paragraph(
                f"<b>FROM</b><br/>{branch.name}<br/>{branch.address}<br/>{branch.city} {branch.state}",
                normal_style,
            ),
            Paragraph(
                f"<b>BILL TO</b><br/>{customer.name}<br/>{customer.address}<br/>{customer.city} {customer.state}"
                + (f"<br/>GSTIN: {customer.gst_number}" if customer.gst_number else ''),
                normal_style,
            ),
        ]],
        colWidths=[3.5 * inch, 3.5 * inch],
    )
    parties.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP'), ('LEFTPADDING', (0, 0), (-1, -1), 0)]))
    story.append(parties)
    story.append(Spacer(1, 0.2 * inch))

    data = [['#', 'Description', 'Qty', 'Unit price', 'Amount']]
    for index, line in enumerate(invoice.lines.all(), start=1):
        data.append([
            str(index),
            Paragraph(line.description, normal_style),
            f"{line.quantity.normalize():f}",
            _money(line.unit_price),
            _money(line.total),
        ])
    summary_rows = [
        ('Subtotal', invoice.subtotal),
        ('Discount', -invoice.discount_amount),
        (f"GST ({settings.ERP_DEFAULT_TAX_RATE}%)", invoice.tax_amount),
        ('Total', invoice.total_amount),
        ('Paid', invoice.paid_amount),
        ('Balance due', invoice.balance_amount),
    ]
    first_summary_row = len(data)
    for label, amount in summary_rows:
        data.append(['', '', '', label, _money(amount)])

    table = Table(data, colWidths=[0.4 * inch, 3.4 * inch, 0.8 * inch, 1.2 * inch, 1.2 * inch], repeatRows=1)
    table.setStyle(TableStyle([
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#F5F5F5')),
        ('GRID', (0, 0), (-1, first_summary_row - 1), 0.5, colors.HexColor('#CCCCCC')),
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('FONTNAME', (3, -3), (-1, -3), 'Helvetica-Bold'),
        ('FONTNAME', (3, -1), (-1, -1), 'Helvetica-Bold'),
        ('LINEABOVE', (3, first_summary_row), (-1, first_summary_row), 0.5, colors.black),
    ]))
    story.append(table)
    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph(f"Status: {invoice.get_status_display()}", normal_style))
    if invoice.notes:
        story.append(Paragraph(invoice.notes, normal_style))
    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph("This is a computer generated invoice.", footer_style))

    doc.build(story)
    buffer.seek(0)
    return buffer.getvalue()


def save_invoice_pdf(invoice):
    """
    Render and store the invoice PDF, recording the storage path on the invoice.

    Returns:
        URL of the stored file
    """
    content = render_invoice_pdf(invoice)
    filename = f"invoices/{invoice.branch.code}/{invoice.invoice_number}.pdf"
    if default_storage.exists(filename):
        default_storage.delete(filename)
    saved_path = default_storage.save(filename, ContentFile(content))
    invoice.pdf_path = saved_path
    invoice.save(update_fields=['pdf_path', 'updated_at'])
    logger.info(f"Invoice PDF saved: {saved_path}")
    return default_storage.url(saved_path)


def _money(value):
    return f"{Decimal(value or 0):,.2f}"
