"""
PDF Invoice Generation Service
Renders a paid checkout invoice as an A4 PDF attachment
"""
from io import BytesIO
from datetime import datetime
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from app.agent.entities import Invoice


def generate_invoice_pdf(invoice: Invoice, business_name: str = "Pharmacy") -> BytesIO:
    """
    Generate PDF for a paid invoice

    Args:
        invoice: Invoice built after a successful commit
        business_name: Seller name shown in the header

    Returns:
        BytesIO buffer containing PDF data, positioned at 0
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, topMargin=0.5*inch, bottomMargin=0.5*inch)

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'InvoiceTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#1a56db'),
        alignment=TA_CENTER,
        spaceAfter=12
    )

    heading_style = ParagraphStyle(
        'InvoiceHeading',
        parent=styles['Heading2'],
        fontSize=14,
        textColor=colors.HexColor('#1f2937'),
        spaceAfter=6
    )

    normal_style = ParagraphStyle(
        'InvoiceNormal',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#374151')
    )

    elements.append(Paragraph("INVOICE", title_style))
    elements.append(Spacer(1, 0.3*inch))

    info_table = Table(
        [[
            Paragraph(f"<b>{business_name}</b>", normal_style),
            Paragraph(f"<b>Invoice #:</b> {invoice.invoice_id}<br/>"
                      f"<b>Order:</b> {invoice.order_id}<br/>"
                      f"<b>Paid:</b> {invoice.paid_at.strftime('%d %b %Y, %I:%M %p')}", normal_style)
        ]],
        colWidths=[3.5*inch, 3*inch],
    )
    info_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    elements.append(Paragraph("<b>Bill To:</b>", heading_style))
    elements.append(Paragraph(invoice.customer_email, normal_style))
    elements.append(Spacer(1, 0.3*inch))

    items_table = Table(
        [
            [Paragraph("<b>Medicine</b>", normal_style),
             Paragraph("<b>Quantity</b>", normal_style),
             Paragraph("<b>Rate</b>", normal_style),
             Paragraph("<b>Amount</b>", normal_style)],
            [Paragraph(invoice.medicine_name, normal_style),
             Paragraph(str(invoice.quantity), normal_style),
             Paragraph(f"{invoice.unit_price:.2f}", normal_style),
             Paragraph(f"{invoice.total_paid:.2f}", normal_style)],
        ],
        colWidths=[3*inch, 1*inch, 1.2*inch, 1.3*inch],
    )
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#f3f4f6')),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    total_table = Table(
        [['', '', Paragraph("<b>TOTAL PAID:</b>", heading_style),
          Paragraph(f"<b>{invoice.total_paid:.2f}</b>", heading_style)]],
        colWidths=[3*inch, 1*inch, 1.2*inch, 1.3*inch],
    )
    total_table.setStyle(TableStyle([
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
        ('LINEABOVE', (2, 0), (-1, 0), 1, colors.black),
    ]))
    elements.append(total_table)

    footer_style = ParagraphStyle(
        'Footer',
        parent=styles['Normal'],
        fontSize=8,
        textColor=colors.grey,
        alignment=TA_CENTER
    )
    elements.append(Spacer(1, 0.5*inch))
    elements.append(Paragraph("Thank you for your order!", footer_style))
    elements.append(Paragraph(f"Invoice generated on {datetime.now().strftime('%d %b %Y at %I:%M %p')}", footer_style))

    doc.build(elements)

    buffer.seek(0)
    return buffer
