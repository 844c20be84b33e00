"""Receipt service - PDF receipts for paid orders."""

from datetime import datetime
from io import BytesIO
from typing import Dict, Any

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from sqlalchemy.orm import Session

from tabletop.exceptions import BusinessLogicError
from tabletop.models import Order, OrderStatus, OrderItemStatus, PaymentMethod, DteType
from tabletop.services.order_service import get_order
from tabletop.utils.formatters import money, percentage, datetime_es

PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH.value: 'Efectivo',
    PaymentMethod.CREDIT_CARD.value: 'Tarjeta de crédito',
    PaymentMethod.DIGITAL_WALLET.value: 'Billetera digital',
}

DTE_LABELS = {
    DteType.CONSUMIDOR_FINAL.value: 'Consumidor Final',
    DteType.CREDITO_FISCAL.value: 'Crédito Fiscal',
}

RECEIPT_STATUSES = (OrderStatus.PAID.value, OrderStatus.COMPLETED.value)


def _render_receipt_pdf(order: Order, business_info: Dict[str, Any]) -> BytesIO:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'ReceiptTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'ReceiptHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Business header
    elements.append(Paragraph(f"<b>{business_info.get('name') or 'Restaurante'}</b>", title_style))
    if business_info.get('legal_name'):
        elements.append(Paragraph(business_info['legal_name'], header_style))
    fiscal_parts = []
    if business_info.get('nit'):
        fiscal_parts.append(f"NIT: {business_info['nit']}")
    if business_info.get('nrc'):
        fiscal_parts.append(f"NRC: {business_info['nrc']}")
    if fiscal_parts:
        elements.append(Paragraph(" | ".join(fiscal_parts), header_style))
    if business_info.get('address'):
        elements.append(Paragraph(business_info['address'], header_style))
    if business_info.get('phone'):
        elements.append(Paragraph(f"Tel: {business_info['phone']}", header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Order metadata
    info_data = [
        ['Orden N°:', str(order.id)],
        ['Fecha:', datetime_es(order.updated_at or order.created_at or datetime.now())],
        ['Tipo:', order.order_type],
    ]
    if order.table:
        info_data.append(['Mesa:', order.table.name])
    if order.waiter:
        info_data.append(['Atendió:', order.waiter.name])
    if order.dte_type:
        info_data.append(['Documento:', DTE_LABELS.get(order.dte_type, order.dte_type)])
    if order.dte_type == 'credito_fiscal':
        info_data.append(['Cliente:', order.dte_customer_name or '-'])
        info_data.append(['NIT / NRC:', f"{order.dte_nit or '-'} / {order.dte_nrc or '-'}"])

    info_table = Table(info_data, colWidths=[2*inch, 3*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items (cancelled lines are left out, courtesy lines shown at $0)
    table_data = [['Ítem', 'Cantidad', 'Precio Unit.', 'Subtotal']]
    for item in order.items:
        if item.status == OrderItemStatus.CANCELLED.value:
            continue
        name = f"{item.name} (cortesía)" if item.is_courtesy else item.name
        line_total = 0 if item.is_courtesy or order.is_courtesy else item.line_total
        table_data.append([name, str(item.quantity), money(item.price), money(line_total)])

    items_table = Table(table_data, colWidths=[3.5*inch, 0.9*inch, 1.1*inch, 1.1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (1, 1), (1, -1), 'CENTER'),
        ('ALIGN', (2, 1), (3, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_data = [['Subtotal:', money(order.subtotal)]]
    if order.applied_preset:
        totals_data.append([
            f"Descuento {order.applied_preset['name']} ({percentage(order.applied_preset['percentage'])}):",
            f"-{money(order.applied_preset_discount_value)}"
        ])
    if order.applied_manual_discount_value:
        totals_data.append(['Descuento manual:', f"-{money(order.applied_manual_discount_value)}"])
    if order.is_courtesy:
        totals_data.append(['Cortesía de la casa:', f"-{money(order.discount_amount)}"])
    totals_data.append([f"IVA ({percentage(business_info.get('tax_rate', 0) * 100)}):", money(order.tax_amount)])
    totals_data.append(['Propina:', money(order.tip_amount)])

    totals_table = Table(totals_data, colWidths=[5.5*inch, 1.1*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(totals_table)

    total_table = Table([['TOTAL:', money(order.total_amount)]], colWidths=[5.5*inch, 1.1*inch])
    total_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 14),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, 0), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))
    elements.append(total_table)
    elements.append(Spacer(1, 0.3*inch))

    # 5. Payments
    if order.payment_splits:
        payments_data = [['Cuenta', 'Método', 'Pagado']]
        for split in order.payment_splits:
            label = f"Parte {split.share_number}" if split.share_number else f"Cuenta {split.id}"
            payments_data.append([
                label,
                PAYMENT_METHOD_LABELS.get(split.payment_method, split.payment_method or '-'),
                money(split.amount_paid)
            ])
        payments_table = Table(payments_data, colWidths=[2.5*inch, 2.5*inch, 1.6*inch])
        payments_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (2, 0), (2, -1), 'RIGHT'),
            ('LINEBELOW', (0, 0), (-1, 0), 0.5, colors.HexColor('#BDC3C7')),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
        ]))
        elements.append(payments_table)
    elif order.payment_method:
        elements.append(Paragraph(
            f"Pagado con: {PAYMENT_METHOD_LABELS.get(order.payment_method, order.payment_method)}",
            styles['Normal']
        ))

    elements.append(Spacer(1, 0.4*inch))
    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    elements.append(Paragraph("<b>¡Gracias por su visita!</b>", footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_receipt_pdf(session: Session, order_id: int, business_info: dict) -> BytesIO:
    """
    Receipt PDF of a paid (or completed) order.

    Raises:
        NotFoundError: order doesn't exist
        BusinessLogicError: order not paid yet, or receipt printing disabled
    """
    order = get_order(session, order_id)
    if order.status not in RECEIPT_STATUSES:
        raise BusinessLogicError(f'La orden {order_id} aún no está pagada')
    if order.disable_receipt_print:
        raise BusinessLogicError(f'La orden {order_id} no requiere ticket impreso')
    return _render_receipt_pdf(order, business_info)
