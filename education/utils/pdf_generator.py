"""
PDF Generator Utility
Generates report cards and fee statements with ReportLab
"""
from io import BytesIO
from decimal import Decimal
from xml.sax.saxutils import escape

from django.conf import settings
from django.utils import timezone
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from ..models import grade_letter, grade_remarks


TABLE_STYLE = TableStyle([
    ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1f3a5f')),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTSIZE', (0, 0), (-1, -1), 9),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
    ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f2f5f9')]),
    ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
])


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name='SchoolTitle', parent=styles['Title'], alignment=TA_CENTER, fontSize=16))
    styles.add(ParagraphStyle(name='Centered', parent=styles['Normal'], alignment=TA_CENTER))
    return styles


def _header(styles, title):
    """School name, address and document title"""
    elements = [Paragraph(escape(settings.SCHOOL_NAME), styles['SchoolTitle'])]
    address = getattr(settings, 'SCHOOL_ADDRESS', '')
    if address:
        elements.append(Paragraph(escape(address), styles['Centered']))
    elements.append(Spacer(1, 4 * mm))
    elements.append(Paragraph(title, styles['Heading2']))
    return elements


def _details_table(rows):
    table = Table(rows, colWidths=[45 * mm, 120 * mm])
    table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
    ]))
    return table


def _money(value):
    return f"{settings.CURRENCY} {Decimal(value):,.2f}"


def _build(elements):
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=20 * mm, rightMargin=20 * mm,
                            topMargin=18 * mm, bottomMargin=18 * mm)
    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_report_card_pdf(student, grades, term=None, academic_year=None):
    """
    Generate a report card PDF for a student

    Args:
        student: CustomUser instance with role student
        grades: iterable of Grade instances for the period
        term: Optional term label shown in the header
        academic_year: Optional academic year shown in the header

    Returns:
        BytesIO: PDF file as BytesIO object
    """
    styles = _styles()
    grades = list(grades)

    elements = _header(styles, 'Student Report Card')
    elements.append(_details_table([
        ['Student', student.display_name],
        ['Class', student.class_name or 'N/A'],
        ['Term', term or 'All'],
        ['Academic Year', academic_year or 'All'],
    ]))
    elements.append(Spacer(1, 6 * mm))

    rows = [['Subject', 'Term', 'Score', 'Grade', 'Remarks', 'Comments']]
    for grade in grades:
        rows.append([
            grade.subject,
            grade.term,
            f"{grade.score:.2f}",
            grade.letter,
            grade.remarks,
            Paragraph(escape(grade.comments or "-"), styles['BodyText']),
        ])
    table = Table(rows, repeatRows=1, colWidths=[38 * mm, 18 * mm, 16 * mm, 14 * mm, 34 * mm, 50 * mm])
    table.setStyle(TABLE_STYLE)
    elements.append(table)

    if grades:
        average = sum(Decimal(g.score) for g in grades) / len(grades)
        elements.append(Spacer(1, 6 * mm))
        elements.append(_details_table([
            ['Subjects', str(len(grades))],
            ['Average Score', f"{average:.2f}"],
            ['Overall Grade', f"{grade_letter(average)} ({grade_remarks(average)})"],
        ]))

    elements.append(Spacer(1, 10 * mm))
    elements.append(Paragraph(f"Generated on {timezone.localdate():%Y-%m-%d}", styles['Italic']))
    return _build(elements)


def generate_fee_receipt_pdf(fee):
    """
    Generate a fee statement PDF listing the fee totals and every payment

    Args:
        fee: Fee instance (payments are read through fee.payments)

    Returns:
        BytesIO: PDF file as BytesIO object
    """
    styles = _styles()

    elements = _header(styles, 'Fee Statement')
    elements.append(_details_table([
        ['Student', fee.student.display_name],
        ['Class', fee.class_name],
        ['Term', f"{fee.academic_term or '-'} {fee.academic_year or ''}".strip()],
        ['Fee Type', fee.fee_type],
        ['Due Date', fee.due_date.strftime('%Y-%m-%d') if fee.due_date else '-'],
        ['Status', fee.get_status_display()],
    ]))
    elements.append(Spacer(1, 6 * mm))

    rows = [['Date', 'Reference', 'Method', 'Notes', 'Amount']]
    for payment in fee.payments.all():
        rows.append([
            timezone.localtime(payment.payment_date).strftime('%Y-%m-%d'),
            payment.reference,
            payment.payment_method,
            Paragraph(escape(payment.notes or "-"), styles['BodyText']),
            _money(payment.amount),
        ])
    if len(rows) == 1:
        rows.append(['-', 'No payments recorded', '', '', ''])
    table = Table(rows, repeatRows=1, colWidths=[24 * mm, 36 * mm, 26 * mm, 48 * mm, 36 * mm])
    table.setStyle(TABLE_STYLE)
    table.setStyle(TableStyle([('ALIGN', (-1, 0), (-1, -1), 'RIGHT')]))
    elements.append(table)

    elements.append(Spacer(1, 6 * mm))
    elements.append(_details_table([
        ['Total Amount', _money(fee.total_amount)],
        ['Amount Paid', _money(fee.paid_amount)],
        ['Balance', _money(fee.balance)],
    ]))

    elements.append(Spacer(1, 10 * mm))
    elements.append(Paragraph(f"Generated on {timezone.localdate():%Y-%m-%d}", styles['Italic']))
    return _build(elements)
