"""Discount presets blueprint."""
from flask import Blueprint, request, jsonify

from tabletop.database import get_session
from tabletop.forms.catalog_forms import DiscountPresetForm, validate_or_raise
from tabletop.services import discount_service

discounts_bp = Blueprint('discounts', __name__, url_prefix='/discounts')


def _preset_data(form: DiscountPresetForm) -> dict:
    payload = request.get_json(silent=True) or {}
    return {
        'name': form.name.data,
        'percentage': form.percentage.data,
        'description': form.description.data,
        'coupon_code': form.coupon_code.data,
        'applicable_item_ids': payload.get('applicable_item_ids') or [],
        'applicable_category_ids': payload.get('applicable_category_ids') or [],
    }


@discounts_bp.route('', methods=['GET'])
def list_presets():
    db_session = get_session()
    return jsonify([p.to_dict() for p in discount_service.list_presets(db_session)])


@discounts_bp.route('', methods=['POST'])
def create_preset():
    form = validate_or_raise(DiscountPresetForm())
    db_session = get_session()
    preset = discount_service.create_preset(db_session, _preset_data(form))
    return jsonify(preset.to_dict()), 201


@discounts_bp.route('/<int:preset_id>', methods=['GET'])
def get_preset(preset_id: int):
    db_session = get_session()
    return jsonify(discount_service.get_preset(db_session, preset_id).to_dict())


@discounts_bp.route('/<int:preset_id>', methods=['PUT'])
def update_preset(preset_id: int):
    form = validate_or_raise(DiscountPresetForm())
    db_session = get_session()
    preset = discount_service.update_preset(db_session, preset_id, _preset_data(form))
    return jsonify(preset.to_dict())


@discounts_bp.route('/<int:preset_id>', methods=['DELETE'])
def delete_preset(preset_id: int):
    db_session = get_session()
    discount_service.delete_preset(db_session, preset_id)
    return jsonify({'status': 'success'})


@discounts_bp.route('/coupon/<code>', methods=['GET'])
def find_coupon(code: str):
    """Case-insensitive coupon lookup."""
    db_session = get_session()
    return jsonify(discount_service.find_by_coupon(db_session, code).to_dict())
