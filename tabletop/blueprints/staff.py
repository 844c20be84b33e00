"""Staff blueprint."""
from flask import Blueprint, request, jsonify

from tabletop.database import get_session
from tabletop.forms.catalog_forms import StaffForm, validate_or_raise
from tabletop.services import staff_service

staff_bp = Blueprint('staff', __name__, url_prefix='/staff')


@staff_bp.route('', methods=['GET'])
def list_staff():
    db_session = get_session()
    members = staff_service.list_staff(db_session, role=request.args.get('role'))
    return jsonify([m.to_dict() for m in members])


@staff_bp.route('', methods=['POST'])
def create_staff():
    form = validate_or_raise(StaffForm())
    db_session = get_session()
    member = staff_service.create_staff(db_session, form.name.data, form.email.data, form.role.data)
    return jsonify(member.to_dict()), 201


@staff_bp.route('/<int:staff_id>', methods=['GET'])
def get_staff(staff_id: int):
    db_session = get_session()
    return jsonify(staff_service.get_staff(db_session, staff_id).to_dict())


@staff_bp.route('/<int:staff_id>', methods=['PUT'])
def update_staff(staff_id: int):
    form = validate_or_raise(StaffForm())
    payload = request.get_json(silent=True) or {}
    db_session = get_session()
    member = staff_service.update_staff(
        db_session, staff_id, form.name.data, form.email.data, form.role.data,
        active=form.active.data if 'active' in payload else None
    )
    return jsonify(member.to_dict())


@staff_bp.route('/<int:staff_id>', methods=['DELETE'])
def delete_staff(staff_id: int):
    db_session = get_session()
    staff_service.delete_staff(db_session, staff_id)
    return jsonify({'status': 'success'})
