"""
PDF Generator - invoices, quotes, visit summaries and business reports.

All documents are built with reportlab platypus and returned as bytes. Every
page carries a footer with the company details and "Page i / n".
"""

import io
import logging
from typing import Dict, List, Optional

from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Image as RLImage
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.utils.formatting import format_currency, format_european_date, format_european_time
from services.document_totals import calculate_totals

logger = logging.getLogger(__name__)

HEADER_COLOR = colors.HexColor('#2F3745')
ACCENT_COLOR = colors.HexColor('#1976D2')

LABELS = {
    'de': {
        'invoice': 'Rechnung',
        'quote': 'Angebot',
        'visit_summary': 'Einsatzprotokoll',
        'business_report': 'Geschäftsbericht',
        'issue_date': 'Datum',
        'due_date': 'Fällig am',
        'valid_until': 'Gültig bis',
        'customer_number': 'Kundennummer',
        'phone': 'Telefon',
        'email': 'E-Mail',
        'notes': 'Hinweise',
        'position': 'Pos.',
        'description': 'Beschreibung',
        'quantity': 'Menge',
        'unit_price': 'Einzelpreis',
        'vat': 'MwSt.',
        'total': 'Gesamt',
        'subtotal': 'Zwischensumme',
        'pay_online': 'Online bezahlen',
        'pay_by_transfer': 'Per Überweisung bezahlen (GiroCode)',
        'page': 'Seite',
        'date': 'Datum',
        'time': 'Uhrzeit',
        'location': 'Ort',
        'assigned_employee': 'Zugewiesener Mitarbeiter',
        'purpose': 'Zweck',
        'products_used': 'Verwendete Produkte',
        'product_number': 'Artikelnummer',
        'expenses_related': 'Zugehörige Ausgaben',
        'signature_customer': 'Unterschrift Kunde',
        'period': 'Zeitraum',
        'kpis': 'Kennzahlen',
        'new_customers': 'Neue Kunden',
        'average_invoice_value': 'Durchschnittlicher Rechnungswert',
        'quote_conversion_rate': 'Angebotsquote',
        'profit_and_loss': 'Gewinn und Verlust',
        'revenue': 'Umsatz (bezahlt)',
        'expenses': 'Ausgaben',
        'profit': 'Gewinn',
        'sales_by_customer': 'Umsatz nach Kunde',
        'customer': 'Kunde',
        'tax_collected': 'Vereinnahmte Umsatzsteuer',
        'rate': 'Satz',
        'top_products': 'Meistverkaufte Produkte',
        'product': 'Produkt',
        'team_performance': 'Teamleistung',
        'employee': 'Mitarbeiter',
        'completed_visits': 'Abgeschlossene Besuche',
        'invoiced': 'Fakturiert',
    },
    'al': {
        'invoice': 'Faturë',
        'quote': 'Ofertë',
        'visit_summary': 'Protokolli i vizitës',
        'business_report': 'Raporti i biznesit',
        'issue_date': 'Data',
        'due_date': 'Afati i pagesës',
        'valid_until': 'E vlefshme deri',
        'customer_number': 'Numri i klientit',
        'phone': 'Telefoni',
        'email': 'Email',
        'notes': 'Shënime',
        'position': 'Poz.',
        'description': 'Përshkrimi',
        'quantity': 'Sasia',
        'unit_price': 'Çmimi për njësi',
        'vat': 'TVSH',
        'total': 'Totali',
        'subtotal': 'Nëntotali',
        'pay_online': 'Paguaj online',
        'pay_by_transfer': 'Paguaj me transfertë (GiroCode)',
        'page': 'Faqja',
        'date': 'Data',
        'time': 'Ora',
        'location': 'Vendndodhja',
        'assigned_employee': 'Punonjësi i caktuar',
        'purpose': 'Qëllimi',
        'products_used': 'Produktet e përdorura',
        'product_number': 'Numri i produktit',
        'expenses_related': 'Shpenzimet përkatëse',
        'signature_customer': 'Nënshkrimi i klientit',
        'period': 'Periudha',
        'kpis': 'Treguesit kryesorë',
        'new_customers': 'Klientë të rinj',
        'average_invoice_value': 'Vlera mesatare e faturës',
        'quote_conversion_rate': 'Shkalla e konvertimit të ofertave',
        'profit_and_loss': 'Fitimi dhe humbja',
        'revenue': 'Të ardhurat (të paguara)',
        'expenses': 'Shpenzimet',
        'profit': 'Fitimi',
        'sales_by_customer': 'Shitjet sipas klientit',
        'customer': 'Klienti',
        'tax_collected': 'TVSH e mbledhur',
        'rate': 'Norma',
        'top_products': 'Produktet më të shitura',
        'product': 'Produkti',
        'team_performance': 'Performanca e ekipit',
        'employee': 'Punonjësi',
        'completed_visits': 'Vizita të përfunduara',
        'invoiced': 'Faturuar',
    },
}


def label(key: str, language: str = 'de') -> str:
    """Translated label; unknown languages use German, unknown keys are returned as is."""
    table = LABELS.get(language) or LABELS['de']
    return table.get(key) or LABELS['de'].get(key) or key


def footer_text(organization: Dict) -> str:
    parts = []
    name = organization.get('company_name') or organization.get('name')
    if name:
        parts.append(name)
    if organization.get('address'):
        parts.append(organization['address'].replace('\n', ', '))
    if organization.get('iban'):
        parts.append(f"IBAN: {organization['iban']}")
    if organization.get('bic'):
        parts.append(f"BIC: {organization['bic']}")
    return ' | '.join(parts)


def _numbered_canvas(footer: str, page_label: str):
    """Canvas class that draws the footer once the total page count is known."""

    class NumberedCanvas(canvas.Canvas):
        def __init__(self, *args, **kwargs):
            canvas.Canvas.__init__(self, *args, **kwargs)
            self._saved_page_states = []

        def showPage(self):
            self._saved_page_states.append(dict(self.__dict__))
            self._startPage()

        def save(self):
            page_count = len(self._saved_page_states)
            for state in self._saved_page_states:
                self.__dict__.update(state)
                self._draw_footer(page_count)
                canvas.Canvas.showPage(self)
            canvas.Canvas.save(self)

        def _draw_footer(self, page_count):
            width, _ = self._pagesize
            margin = 0.6 * inch
            self.saveState()
            self.setStrokeColor(colors.HexColor('#999999'))
            self.line(margin, 0.75 * inch, width - margin, 0.75 * inch)
            self.setFont('Helvetica', 8)
            self.drawString(margin, 0.55 * inch, footer[:140])
            self.drawRightString(width - margin, 0.55 * inch,
                                 f"{page_label} {self._pageNumber} / {page_count}")
            self.restoreState()

    return NumberedCanvas


def _styles():
    styles = getSampleStyleSheet()
    return {
        'normal': styles['Normal'],
        'small': ParagraphStyle('Small', parent=styles['Normal'], fontSize=9, leading=11),
        'right': ParagraphStyle('Right', parent=styles['Normal'], fontSize=9, leading=11, alignment=2),
        'title': ParagraphStyle('DocTitle', parent=styles['Heading1'], fontSize=16, spaceAfter=6),
        'heading': ParagraphStyle('DocHeading', parent=styles['Heading2'], fontSize=12,
                                  textColor=ACCENT_COLOR, spaceBefore=10, spaceAfter=6),
        'italic': ParagraphStyle('Italic', parent=styles['Normal'], fontName='Helvetica-Oblique', fontSize=9),
        'cell': ParagraphStyle('Cell', parent=styles['Normal'], fontSize=9, leading=11),
    }


def _escape(text) -> str:
    return (str(text or '')
            .replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')
            .replace('\n', '<br/>'))


def _logo(logo_bytes: Optional[bytes]):
    if not logo_bytes:
        return None
    try:
        reader = ImageReader(io.BytesIO(logo_bytes))
        width, height = reader.getSize()
    except Exception as e:
        logger.warning(f"Ignoring unreadable logo: {e}")
        return None
    max_width, max_height = 1.8 * inch, 0.9 * inch
    scale = min(max_width / width, max_height / height)
    return RLImage(io.BytesIO(logo_bytes), width=width * scale, height=height * scale)


def _header_block(organization: Dict, customer: Optional[Dict], language: str, styles, logo_bytes=None) -> List:
    """Logo and company address on top, customer address block below."""
    company_lines = [f"<b>{_escape(organization.get('company_name') or organization.get('name'))}</b>"]
    if organization.get('address'):
        company_lines.append(_escape(organization['address']))
    if organization.get('phone'):
        company_lines.append(f"{label('phone', language)}: {_escape(organization['phone'])}")
    if organization.get('email'):
        company_lines.append(f"{label('email', language)}: {_escape(organization['email'])}")

    logo = _logo(logo_bytes) or ''
    header = Table([[logo, Paragraph('<br/>'.join(company_lines), styles['right'])]],
                   colWidths=[3.2 * inch, 3.6 * inch])
    header.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
    ]))

    story = [header, Spacer(1, 0.35 * inch)]
    if customer:
        customer_lines = [_escape(customer.get('name'))]
        if customer.get('address'):
            customer_lines.append(_escape(customer['address']))
        story.append(Paragraph('<br/>'.join(customer_lines), styles['normal']))
        story.append(Spacer(1, 0.3 * inch))
    return story


def _details_table(rows: List[List[str]]) -> Table:
    table = Table(rows, colWidths=[2.2 * inch, 4.6 * inch])
    table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('TEXTCOLOR', (0, 0), (0, -1), colors.HexColor('#666666')),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
    ]))
    return table


def _grid_table(data: List[List], col_widths: List[float], right_align_from: int = None) -> Table:
    table = Table(data, colWidths=col_widths, repeatRows=1)
    style = [
        ('BACKGROUND', (0, 0), (-1, 0), HEADER_COLOR),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BBBBBB')),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 6),
    ]
    if right_align_from is not None:
        style.append(('ALIGN', (right_align_from, 0), (-1, -1), 'RIGHT'))
    table.setStyle(TableStyle(style))
    return table


def _format_rate(rate: float) -> str:
    return f"{rate:g}"


def sepa_payload(organization: Dict, amount: float, reference: str) -> Optional[str]:
    """EPC069-12 (GiroCode) payload, or None when IBAN/BIC/name are missing."""
    name = organization.get('company_name') or organization.get('name')
    if not (organization.get('iban') and organization.get('bic') and name):
        return None
    return '\n'.join([
        'BCD', '002', '1', 'SCT',
        organization['bic'],
        name[:70],
        organization['iban'].replace(' ', ''),
        f"EUR{amount:.2f}",
        '', '',
        reference[:140],
        '',
    ])


def _qr_drawing(payload: str, size: float = 1.4 * inch) -> Drawing:
    widget = QrCodeWidget(payload)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    drawing.add(widget)
    return drawing


def _build(story: List, organization: Dict, language: str, title: str) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=A4, title=title,
        leftMargin=0.6 * inch, rightMargin=0.6 * inch,
        topMargin=0.6 * inch, bottomMargin=1.0 * inch,
    )
    doc.build(story, canvasmaker=_numbered_canvas(footer_text(organization), label('page', language)))
    return buffer.getvalue()


# =============================================================================
# INVOICES & QUOTES
# =============================================================================

def generate_document_pdf(document: Dict, document_type: str, organization: Dict, customer: Dict,
                          language: str = 'de', logo_bytes: Optional[bytes] = None) -> bytes:
    """
    Render an invoice or quote.

    Args:
        document: Invoice/quote dict including 'items' (each may carry 'unit'
            and 'product_type')
        document_type: 'invoice' or 'quote'
        organization: Organization dict
        customer: Customer dict
        language: 'de' or 'al'
        logo_bytes: Raw logo image, optional
    """
    styles = _styles()
    is_invoice = document_type == 'invoice'
    number = document.get('invoice_number') if is_invoice else document.get('quote_number')
    title = f"{label(document_type, language)} #{number}"

    story = _header_block(organization, customer, language, styles, logo_bytes)
    story.append(Paragraph(_escape(title), styles['title']))

    details = [
        [f"{label('customer_number', language)}:", customer.get('customer_number') or ''],
        [f"{label('issue_date', language)}:", format_european_date(document.get('issue_date'))],
    ]
    if is_invoice:
        details.append([f"{label('due_date', language)}:", format_european_date(document.get('due_date'))])
    else:
        details.append([f"{label('valid_until', language)}:", format_european_date(document.get('valid_until_date'))])
    story.append(_details_table(details))
    story.append(Spacer(1, 0.2 * inch))

    notes = document.get('customer_notes') if is_invoice else document.get('notes')
    if notes:
        story.append(Paragraph(f"<b>{label('notes', language)}</b>", styles['normal']))
        story.append(Paragraph(_escape(notes), styles['small']))
        story.append(Spacer(1, 0.2 * inch))

    items = document.get('items') or []
    rows = [[label('position', language), label('description', language), label('quantity', language),
             label('unit_price', language), f"{label('vat', language)} %", label('total', language)]]
    for index, item in enumerate(items, start=1):
        quantity = item.get('quantity') or 0
        unit_price = item.get('unit_price') or 0
        vat_rate = item.get('vat_rate') or 0
        gross = quantity * unit_price * (1 + vat_rate / 100)

        description = _escape(item.get('description'))
        style = styles['cell']
        if item.get('product_type') == 'service':
            style = styles['italic']
            if item.get('unit'):
                description = f"{description} ({_escape(item['unit'])})"
        quantity_text = f"{quantity:g}"
        if item.get('unit') and item.get('product_type') != 'service':
            quantity_text = f"{quantity_text} {item['unit']}"

        rows.append([
            str(index),
            Paragraph(description, style),
            quantity_text,
            format_currency(unit_price),
            f"{_format_rate(vat_rate)}%",
            format_currency(gross),
        ])
    story.append(_grid_table(rows, [0.5 * inch, 2.9 * inch, 0.8 * inch, 1.0 * inch, 0.7 * inch, 1.0 * inch],
                             right_align_from=2))
    story.append(Spacer(1, 0.2 * inch))

    totals = calculate_totals(items)
    total_rows = [[f"{label('subtotal', language)}:", format_currency(totals['subtotal'])]]
    for rate, vat in totals['vat_breakdown'].items():
        total_rows.append([f"+ {label('vat', language)} {_format_rate(rate)}%:", format_currency(vat)])
    total_rows.append([f"{label('total', language)}:", format_currency(document.get('total_amount', totals['total']))])

    totals_table = Table(total_rows, colWidths=[4.8 * inch, 2.0 * inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -2), 9),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 11),
        ('LINEABOVE', (0, -1), (-1, -1), 1, HEADER_COLOR),
    ]))
    story.append(totals_table)

    if is_invoice:
        if organization.get('is_payment_gateway_enabled') and document.get('payment_link_url'):
            story.append(Spacer(1, 0.2 * inch))
            story.append(Paragraph(f"<b>{label('pay_online', language)}</b>", styles['normal']))
            url = _escape(document['payment_link_url'])
            story.append(Paragraph(f'<link href="{url}" color="blue">{url}</link>', styles['small']))

        payload = sepa_payload(organization, document.get('total_amount') or totals['total'],
                               f"Rechnung {number}")
        if payload:
            story.append(Spacer(1, 0.2 * inch))
            story.append(Paragraph(f"<b>{label('pay_by_transfer', language)}</b>", styles['normal']))
            story.append(_qr_drawing(payload))

    pdf = _build(story, organization, language, title)
    logger.info(f"Generated {document_type} PDF {number} ({len(pdf)} bytes)")
    return pdf


def document_filename(document: Dict, document_type: str, language: str = 'de') -> str:
    number = document.get('invoice_number') if document_type == 'invoice' else document.get('quote_number')
    return f"{label(document_type, language)} {number}.pdf"


# =============================================================================
# VISIT SUMMARY
# =============================================================================

def generate_visit_summary_pdf(visit: Dict, organization: Dict, customer: Dict, language: str = 'de',
                               logo_bytes: Optional[bytes] = None,
                               signature_bytes: Optional[bytes] = None) -> bytes:
    """Visit protocol with products, expenses and the customer signature."""
    styles = _styles()
    title = f"{label('visit_summary', language)} #{visit.get('visit_number')}"

    story = _header_block(organization, customer, language, styles, logo_bytes)
    story.append(Paragraph(_escape(title), styles['title']))
    story.append(_details_table([
        [f"{label('customer_number', language)}:", customer.get('customer_number') or ''],
        [f"{label('date', language)}:", format_european_date(visit.get('start_time'))],
        [f"{label('time', language)}:",
         f"{format_european_time(visit.get('start_time'))} - {format_european_time(visit.get('end_time'))}"],
        [f"{label('location', language)}:", visit.get('location') or ''],
        [f"{label('assigned_employee', language)}:", visit.get('assigned_employee_name') or 'N/A'],
    ]))

    if visit.get('purpose'):
        story.append(Paragraph(label('purpose', language), styles['heading']))
        story.append(Paragraph(_escape(visit['purpose']), styles['small']))

    products = visit.get('products') or []
    if products:
        story.append(Paragraph(label('products_used', language), styles['heading']))
        rows = [[label('position', language), label('product_number', language),
                 label('description', language), label('quantity', language)]]
        for index, line in enumerate(products, start=1):
            name = _escape(line.get('product_name') or 'N/A')
            style = styles['cell']
            if line.get('product_type') == 'service':
                style = styles['italic']
                if line.get('unit'):
                    name = f"{name} ({_escape(line['unit'])})"
            rows.append([str(index), line.get('product_number') or '', Paragraph(name, style),
                         f"{(line.get('quantity') or 0):g}"])
        story.append(_grid_table(rows, [0.5 * inch, 1.4 * inch, 4.0 * inch, 0.9 * inch], right_align_from=3))

    expenses = visit.get('expenses') or []
    if expenses:
        story.append(Paragraph(label('expenses_related', language), styles['heading']))
        rows = [[label('description', language)]]
        rows.extend([[Paragraph(_escape(line.get('description') or 'N/A'), styles['cell'])] for line in expenses])
        story.append(_grid_table(rows, [6.8 * inch]))

    signature = _logo(signature_bytes)
    if signature is not None:
        signature.drawWidth, signature.drawHeight = signature.drawWidth * 1.5, signature.drawHeight * 1.5
        story.append(Spacer(1, 0.4 * inch))
        story.append(signature)
        signature_lines = [label('signature_customer', language)]
        if visit.get('signature_date'):
            signature_lines.append(f"{label('date', language)}: {format_european_date(visit['signature_date'])}")
        story.append(Paragraph('<br/>'.join(signature_lines), styles['small']))

    pdf = _build(story, organization, language, title)
    logger.info(f"Generated visit summary PDF {visit.get('visit_number')}")
    return pdf


# =============================================================================
# BUSINESS REPORT
# =============================================================================

def generate_business_report_pdf(report: Dict, organization: Dict, language: str = 'de') -> bytes:
    """Render the dict produced by DashboardService.business_report."""
    styles = _styles()
    title = label('business_report', language)
    period = report.get('period') or {}

    story = _header_block(organization, None, language, styles)
    story.append(Paragraph(_escape(title), styles['title']))
    story.append(Paragraph(
        f"{label('period', language)}: {format_european_date(period.get('start_date'))} - "
        f"{format_european_date(period.get('end_date'))}", styles['normal']))

    kpis = report.get('kpis') or {}
    story.append(Paragraph(label('kpis', language), styles['heading']))
    story.append(_details_table([
        [f"{label('new_customers', language)}:", str(kpis.get('new_customers', 0))],
        [f"{label('average_invoice_value', language)}:", format_currency(kpis.get('average_invoice_value'))],
        [f"{label('quote_conversion_rate', language)}:", f"{kpis.get('quote_conversion_rate', 0):.1f}%"],
    ]))

    pnl = report.get('profit_and_loss') or {}
    story.append(Paragraph(label('profit_and_loss', language), styles['heading']))
    story.append(_details_table([
        [f"{label('revenue', language)}:", format_currency(pnl.get('revenue'))],
        [f"{label('expenses', language)}:", format_currency(pnl.get('expenses'))],
        [f"{label('profit', language)}:", format_currency(pnl.get('profit'))],
    ]))

    sales = report.get('sales_by_customer') or []
    if sales:
        story.append(Paragraph(label('sales_by_customer', language), styles['heading']))
        rows = [[label('customer', language), label('total', language)]]
        rows.extend([[Paragraph(_escape(row['customer_name']), styles['cell']), format_currency(row['total'])]
                     for row in sales])
        story.append(_grid_table(rows, [5.0 * inch, 1.8 * inch], right_align_from=1))

    taxes = report.get('tax_collected') or []
    if taxes:
        story.append(Paragraph(label('tax_collected', language), styles['heading']))
        rows = [[label('rate', language), label('vat', language)]]
        rows.extend([[f"{_format_rate(row['vat_rate'])}%", format_currency(row['amount'])] for row in taxes])
        story.append(_grid_table(rows, [5.0 * inch, 1.8 * inch], right_align_from=1))

    products = report.get('top_products') or []
    if products:
        story.append(Paragraph(label('top_products', language), styles['heading']))
        rows = [[label('product', language), label('quantity', language), label('total', language)]]
        rows.extend([[Paragraph(_escape(row['product_name']), styles['cell']), f"{row['quantity']:g}",
                      format_currency(row['revenue'])] for row in products])
        story.append(_grid_table(rows, [4.2 * inch, 1.0 * inch, 1.6 * inch], right_align_from=1))

    team = report.get('team_performance') or []
    if team:
        story.append(Paragraph(label('team_performance', language), styles['heading']))
        rows = [[label('employee', language), label('completed_visits', language), label('invoiced', language)]]
        rows.extend([[Paragraph(_escape(row['employee_name']), styles['cell']), str(row['completed_visits']),
                      format_currency(row['invoiced'])] for row in team])
        story.append(_grid_table(rows, [4.2 * inch, 1.2 * inch, 1.4 * inch], right_align_from=1))

    return _build(story, organization, language, title)
