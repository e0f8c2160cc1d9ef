"""
Inventory Valuation Report PDF Generator
Renders the output of InventoryService.calculate_inventory_valuation.
"""
import io
from datetime import datetime
from decimal import Decimal

from django.conf import settings
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle


def generate_valuation_pdf(valuation, branch_label='All branches'):
    """
    Build the valuation report.

    Args:
        valuation: dict with method, items (rows with item_code, name,
            warehouse, current_stock, valuation) and total_value
        branch_label: shown under the title

    Returns:
        bytes: PDF file content
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.5 * inch,
        leftMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'ReportTitle',
        parent=styles['Heading1'],
        fontSize=16,
        spaceAfter=2,
        fontName='Helvetica-Bold',
    )
    meta_style = ParagraphStyle(
        'ReportMeta',
        parent=styles['Normal'],
        fontSize=8,
        textColor=colors.HexColor('#666666'),
        alignment=TA_RIGHT,
    )
    small_style = ParagraphStyle('SmallText', parent=styles['Normal'], fontSize=8)
    footer_style = ParagraphStyle(
        'Footer',
        parent=styles['Normal'],
        fontSize=7,
        textColor=colors.HexColor('#888888'),
        alignment=TA_CENTER,
    )

    story = []
    header = Table(
        [[
            Paragraph(settings.ERP_COMPANY_NAME, title_style),
            Paragraph(
                f"INVENTORY VALUATION ({valuation['method'].replace('_', ' ')})<br/>"
                f"{branch_label}<br/>Generated: {datetime.now().strftime('%d %b %Y %I:%M %p')}",
                meta_style,
            ),
        ]],
        colWidths=[3.8 * inch, 3.4 * inch],
    )
    header.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
        ('LINEBELOW', (0, 0), (-1, -1), 1.5, colors.black),
    ]))
    story.append(header)
    story.append(Spacer(1, 0.15 * inch))

    data = [[
        Paragraph("<b>Item</b>", small_style),
        Paragraph("<b>Name</b>", small_style),
        Paragraph("<b>Warehouse</b>", small_style),
        Paragraph("<b>Stock</b>", small_style),
        Paragraph("<b>Value</b>", small_style),
    ]]
    for row in valuation.get('items', []):
        data.append([
            row['item_code'],
            str(row['name'])[:35],
            row['warehouse'],
            _format_qty(row['current_stock']),
            _format_money(row['valuation']),
        ])
    data.append([Paragraph("<b>TOTAL</b>", small_style), '', '', '', _format_money(valuation['total_value'])])

    table = Table(data, colWidths=[1.2 * inch, 2.6 * inch, 1.1 * inch, 1.0 * inch, 1.3 * inch], repeatRows=1)
    table.setStyle(TableStyle([
        ('LEFTPADDING', (0, 0), (-1, -1), 4),
        ('RIGHTPADDING', (0, 0), (-1, -1), 4),
        ('TOPPADDING', (0, 0), (-1, -1), 3),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
        ('BOX', (0, 0), (-1, -1), 0.5, colors.HexColor('#CCCCCC')),
        ('INNERGRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#CCCCCC')),
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#F5F5F5')),
        ('BACKGROUND', (0, -1), (-1, -1), colors.HexColor('#E5E7EB')),
        ('ALIGN', (3, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
    ]))
    story.append(table)
    story.append(Spacer(1, 0.15 * inch))
    story.append(Paragraph(
        f"{valuation.get('item_count', len(valuation.get('items', [])))} item(s). "
        f"Values computed from IN receipts using the {valuation['method']} method.",
        footer_style,
    ))

    doc.build(story)
    buffer.seek(0)
    return buffer.getvalue()


def _format_money(value):
    return f"{Decimal(value or 0):,.2f}"


def _format_qty(value):
    return f"{Decimal(value or 0):,.3f}"
