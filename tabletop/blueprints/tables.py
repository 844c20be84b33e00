"""Restaurant tables blueprint."""
from flask import Blueprint, jsonify

from tabletop.database import get_session
from tabletop.forms.catalog_forms import TableForm, validate_or_raise
from tabletop.services import table_service

tables_bp = Blueprint('tables', __name__, url_prefix='/tables')


@tables_bp.route('', methods=['GET'])
def list_tables():
    db_session = get_session()
    return jsonify([t.to_dict() for t in table_service.list_tables(db_session)])


@tables_bp.route('', methods=['POST'])
def create_table():
    form = validate_or_raise(TableForm())
    db_session = get_session()
    table = table_service.create_table(db_session, form.name.data, form.capacity.data)
    return jsonify(table.to_dict()), 201


@tables_bp.route('/<int:table_id>', methods=['GET'])
def get_table(table_id: int):
    db_session = get_session()
    return jsonify(table_service.get_table(db_session, table_id).to_dict())


@tables_bp.route('/<int:table_id>', methods=['PUT'])
def update_table(table_id: int):
    form = validate_or_raise(TableForm())
    db_session = get_session()
    table = table_service.update_table(
        db_session, table_id, form.name.data, form.capacity.data, status=form.status.data or None
    )
    return jsonify(table.to_dict())


@tables_bp.route('/<int:table_id>', methods=['DELETE'])
def delete_table(table_id: int):
    db_session = get_session()
    table_service.delete_table(db_session, table_id)
    return jsonify({'status': 'success'})
