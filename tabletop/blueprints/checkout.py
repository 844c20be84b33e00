"""
Checkout blueprint.

The wizard state lives server side (CheckoutDraft); clients send one event
at a time and get back the full checkout with its recomputed totals.
"""
from flask import Blueprint, request, jsonify, current_app

from tabletop.database import get_session
from tabletop.exceptions import PosError, BusinessLogicError
from tabletop.services import checkout_service
from tabletop.blueprints.metrics import checkout_events_total, checkouts_finalized_total

checkout_bp = Blueprint('checkout', __name__, url_prefix='/orders/<int:order_id>/checkout')


@checkout_bp.route('', methods=['POST'])
def start_checkout(order_id: int):
    db_session = get_session()
    checkout = checkout_service.start_checkout(db_session, order_id, current_app.config)
    return jsonify(checkout.to_dict()), 201


@checkout_bp.route('', methods=['GET'])
def get_checkout(order_id: int):
    db_session = get_session()
    checkout = checkout_service.load_checkout(db_session, order_id, current_app.config)
    return jsonify(checkout.to_dict())


@checkout_bp.route('/events', methods=['POST'])
def checkout_event(order_id: int):
    """Body: {"event": "<name>", "payload": {...}}"""
    data = request.get_json(silent=True) or {}
    event = data.get('event')
    if not event:
        raise BusinessLogicError('El evento es requerido')

    db_session = get_session()
    try:
        checkout = checkout_service.apply_checkout_event(
            db_session, order_id, event, data.get('payload') or {}, current_app.config
        )
    except PosError:
        checkout_events_total.labels(event=event, outcome='rejected').inc()
        raise
    checkout_events_total.labels(event=event, outcome='applied').inc()
    return jsonify(checkout.to_dict())


@checkout_bp.route('/finalize', methods=['POST'])
def finalize_checkout(order_id: int):
    db_session = get_session()
    order = checkout_service.finalize_checkout(db_session, order_id, current_app.config)
    checkouts_finalized_total.labels(
        order_status=order.status,
        payment_split_type=order.payment_split_type
    ).inc()
    current_app.logger.info(f"[CHECKOUT] Order {order_id} finalized ({order.status})")
    return jsonify(order.to_dict())


@checkout_bp.route('', methods=['DELETE'])
def discard_checkout(order_id: int):
    db_session = get_session()
    checkout_service.discard_checkout(db_session, order_id)
    return jsonify({'status': 'success'})
