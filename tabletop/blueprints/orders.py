"""Orders blueprint - active orders, kitchen queue and receipts."""
from flask import Blueprint, request, jsonify, current_app, send_file

from tabletop.database import get_session
from tabletop.exceptions import BusinessLogicError
from tabletop.services import order_service, receipt_service

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BusinessLogicError('Se esperaba un cuerpo JSON')
    return data


def _optional_int(data: dict, key: str):
    value = data.get(key)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Valor inválido para {key}')


def _order_payload(order) -> dict:
    data = order.to_dict()
    totals = order_service.current_totals(
        order,
        current_app.config['IVA_RATE'],
        current_app.config['DEFAULT_TIP_PERCENTAGE']
    )
    data['live_totals'] = totals.to_dict()
    return data


@orders_bp.route('', methods=['GET'])
def list_orders():
    db_session = get_session()
    orders = order_service.list_orders(
        db_session,
        status=request.args.get('status'),
        active_only=request.args.get('active') == '1'
    )
    return jsonify([o.to_dict(include_items=False) for o in orders])


@orders_bp.route('', methods=['POST'])
def create_order():
    """Send a new order to the kitchen."""
    data = _json_body()
    db_session = get_session()
    order = order_service.create_order(
        db_session,
        waiter_id=_optional_int(data, 'waiter_id'),
        items=data.get('items') or [],
        order_type=data.get('order_type') or 'Dine-in',
        table_id=_optional_int(data, 'table_id'),
        number_of_guests=_optional_int(data, 'number_of_guests')
    )
    current_app.logger.info(f"[ORDERS] Order {order.id} created via API")
    return jsonify(_order_payload(order)), 201


@orders_bp.route('/kitchen', methods=['GET'])
def kitchen_queue():
    db_session = get_session()
    return jsonify(order_service.kitchen_queue(db_session))


@orders_bp.route('/<int:order_id>', methods=['GET'])
def get_order(order_id: int):
    db_session = get_session()
    return jsonify(_order_payload(order_service.get_order(db_session, order_id)))


@orders_bp.route('/<int:order_id>', methods=['PATCH'])
def update_order(order_id: int):
    data = _json_body()
    db_session = get_session()
    order = order_service.update_order(
        db_session, order_id,
        table_id=_optional_int(data, 'table_id'),
        number_of_guests=_optional_int(data, 'number_of_guests')
    )
    return jsonify(_order_payload(order))


@orders_bp.route('/<int:order_id>/items', methods=['POST'])
def add_items(order_id: int):
    data = _json_body()
    db_session = get_session()
    order = order_service.add_items(db_session, order_id, data.get('items') or [])
    return jsonify(_order_payload(order)), 201


@orders_bp.route('/<int:order_id>/items/<int:item_id>', methods=['PATCH'])
def update_item(order_id: int, item_id: int):
    db_session = get_session()
    item = order_service.update_item(db_session, order_id, item_id, _json_body())
    return jsonify(item.to_dict())


@orders_bp.route('/<int:order_id>/hold', methods=['POST'])
def hold_order(order_id: int):
    db_session = get_session()
    return jsonify(_order_payload(order_service.hold_order(db_session, order_id)))


@orders_bp.route('/<int:order_id>/resume', methods=['POST'])
def resume_order(order_id: int):
    db_session = get_session()
    return jsonify(_order_payload(order_service.resume_order(db_session, order_id)))


@orders_bp.route('/<int:order_id>/cancel', methods=['POST'])
def cancel_order(order_id: int):
    db_session = get_session()
    return jsonify(_order_payload(order_service.cancel_order(db_session, order_id)))


@orders_bp.route('/<int:order_id>/complete', methods=['POST'])
def complete_order(order_id: int):
    db_session = get_session()
    return jsonify(_order_payload(order_service.complete_order(db_session, order_id)))


@orders_bp.route('/<int:order_id>/receipt.pdf', methods=['GET'])
def receipt_pdf(order_id: int):
    db_session = get_session()
    config = current_app.config
    business_info = {
        'name': config.get('BUSINESS_NAME'),
        'legal_name': config.get('BUSINESS_LEGAL_NAME'),
        'nit': config.get('BUSINESS_NIT'),
        'nrc': config.get('BUSINESS_NRC'),
        'address': config.get('BUSINESS_ADDRESS'),
        'phone': config.get('BUSINESS_PHONE'),
        'tax_rate': config['IVA_RATE'],
    }
    pdf = receipt_service.generate_receipt_pdf(db_session, order_id, business_info)
    return send_file(
        pdf,
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f'ticket_{order_id}.pdf'
    )
