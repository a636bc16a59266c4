"""
PDF rendering of invoices and quotations with reportlab, and e-mailing them.
"""
import logging
from io import BytesIO

from django.conf import settings
from django.core.mail import EmailMessage
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from trackops.core.formatting import format_currency, format_date, format_number, format_phone_number

logger = logging.getLogger(__name__)


def _money(value):
    return format_currency(value, settings.CURRENCY)


def _document_meta(document):
    """Title and header rows for an invoice or a quotation"""
    if hasattr(document, 'invoice_number'):
        title = 'PROFORMA INVOICE' if document.invoice_type == 'PROFORMA' else 'INVOICE'
        rows = [
            ['Invoice No.', document.invoice_number],
            ['Issue Date', format_date(document.issue_date)],
            ['Due Date', format_date(document.due_date)],
            ['Status', document.get_status_display()],
        ]
        return title, document.invoice_number, rows
    rows = [
        ['Quotation No.', document.quotation_number],
        ['Issue Date', format_date(document.issue_date)],
        ['Valid Until', format_date(document.valid_until)],
        ['Status', document.get_status_display()],
    ]
    return 'QUOTATION', document.quotation_number, rows


def render_document_pdf(document):
    """Render an invoice or quotation to PDF bytes"""
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=60)
    styles = getSampleStyleSheet()
    elements = []

    title, number, meta_rows = _document_meta(document)
    customer = document.customer

    # Header
    elements.append(Paragraph(settings.COMPANY_NAME, styles['Title']))
    company_lines = [settings.COMPANY_ADDRESS, settings.COMPANY_PHONE, settings.COMPANY_EMAIL]
    if settings.COMPANY_TAX_PIN:
        company_lines.append(f"PIN: {settings.COMPANY_TAX_PIN}")
    elements.append(Paragraph('<br/>'.join(line for line in company_lines if line), styles['Normal']))
    elements.append(Spacer(1, 12))
    elements.append(Paragraph(title, styles['Heading2']))

    bill_to = [customer.display_name, customer.address, customer.city, format_phone_number(customer.phone), customer.email]
    if customer.tax_pin:
        bill_to.append(f"PIN: {customer.tax_pin}")
    header = Table(
        [[Paragraph('<b>Bill To</b><br/>' + '<br/>'.join(line for line in bill_to if line), styles['Normal']),
          Table(meta_rows, hAlign='RIGHT')]],
        colWidths=[doc.width * 0.55, doc.width * 0.45],
    )
    header.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
    elements.append(header)
    elements.append(Spacer(1, 16))

    # Lines
    data = [['#', 'Description', 'Qty', 'Unit Price', 'Amount']]
    for index, item in enumerate(document.items.all(), start=1):
        data.append([
            str(index),
            Paragraph(item.description, styles['BodyText']),
            format_number(item.quantity, 2),
            _money(item.unit_price),
            _money(item.line_total),
        ])
    table = Table(
        data,
        repeatRows=1,
        hAlign='LEFT',
        colWidths=[doc.width * 0.06, doc.width * 0.46, doc.width * 0.12, doc.width * 0.18, doc.width * 0.18],
    )
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#f2f2f2')),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.grey),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 12))

    # Totals
    totals = [['Subtotal', _money(document.subtotal)]]
    if document.discount_amount:
        totals.append(['Discount', f"-{_money(document.discount_amount)}"])
    if document.tax_amount:
        totals.append([f"Tax ({format_number(document.tax_rate, 2)}%)", _money(document.tax_amount)])
    totals.append(['Total', _money(document.total)])
    if hasattr(document, 'amount_paid'):
        totals.append(['Paid', _money(document.amount_paid)])
        totals.append(['Balance Due', _money(document.outstanding)])
    totals_table = Table(totals, hAlign='RIGHT', colWidths=[doc.width * 0.2, doc.width * 0.2])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('LINEABOVE', (0, -1), (-1, -1), 0.5, colors.black),
    ]))
    elements.append(totals_table)

    if document.notes:
        elements.append(Spacer(1, 12))
        elements.append(Paragraph(f"<b>Notes</b><br/>{document.notes}", styles['Normal']))
    if document.terms:
        elements.append(Spacer(1, 8))
        elements.append(Paragraph(f"<b>Terms</b><br/>{document.terms}", styles['Normal']))

    footer_text = f"{settings.COMPANY_NAME} - {number}"

    def _add_page_footer(canvas, doc):
        canvas.saveState()
        width, _ = A4
        canvas.setFont('Helvetica', 8)
        canvas.setFillColor(colors.grey)
        canvas.drawCentredString(width / 2.0, 20, footer_text)
        canvas.restoreState()

    doc.build(elements, onFirstPage=_add_page_footer, onLaterPages=_add_page_footer)
    return buffer.getvalue()


def pdf_filename(document):
    number = getattr(document, 'invoice_number', None) or document.quotation_number
    return f"{number}.pdf"


def email_document(document, recipient=None, subject=None, message=None):
    """
    E-mail an invoice or quotation with its PDF attached.
    Returns the recipient address used; raises ValueError when there is none.
    """
    recipient = recipient or document.customer.email
    if not recipient:
        raise ValueError('Customer has no e-mail address')

    title, number, _ = _document_meta(document)
    subject = subject or f"{title.title()} {number} from {settings.COMPANY_NAME}"
    body = message or (
        f"Dear {document.customer.display_name},\n\n"
        f"Please find attached {title.lower()} {number} for {_money(document.total)}.\n\n"
        f"Regards,\n{settings.COMPANY_NAME}"
    )
    email = EmailMessage(subject=subject, body=body, from_email=settings.DEFAULT_FROM_EMAIL, to=[recipient])
    email.attach(pdf_filename(document), render_document_pdf(document), 'application/pdf')
    email.send(fail_silently=False)
    logger.info(f"Sent {number} to {recipient}")
    return recipient
