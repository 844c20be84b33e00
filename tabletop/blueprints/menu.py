"""Menu blueprint - categories and menu items."""
from flask import Blueprint, request, jsonify

from tabletop.database import get_session
from tabletop.forms.catalog_forms import MenuItemForm, validate_or_raise
from tabletop.services import menu_service

menu_bp = Blueprint('menu', __name__, url_prefix='/menu')


@menu_bp.route('/categories', methods=['GET'])
def list_categories():
    db_session = get_session()
    categories = menu_service.list_categories(db_session)
    return jsonify([c.to_dict() for c in categories])


@menu_bp.route('/categories', methods=['POST'])
def create_category():
    db_session = get_session()
    data = request.get_json(silent=True) or {}
    category = menu_service.create_category(db_session, data.get('name'))
    return jsonify(category.to_dict()), 201


@menu_bp.route('/items', methods=['GET'])
def list_items():
    db_session = get_session()
    items = menu_service.list_items(
        db_session,
        search=request.args.get('q', ''),
        category_id=request.args.get('category_id', type=int),
        only_available=request.args.get('available') == '1'
    )
    return jsonify([item.to_dict() for item in items])


@menu_bp.route('/items', methods=['POST'])
def create_item():
    form = validate_or_raise(MenuItemForm())
    db_session = get_session()
    item = menu_service.create_item(db_session, form.to_data())
    return jsonify(item.to_dict()), 201


@menu_bp.route('/items/<int:item_id>', methods=['GET'])
def get_item(item_id: int):
    db_session = get_session()
    return jsonify(menu_service.get_item(db_session, item_id).to_dict())


@menu_bp.route('/items/<int:item_id>', methods=['PUT'])
def update_item(item_id: int):
    form = validate_or_raise(MenuItemForm())
    db_session = get_session()
    item = menu_service.update_item(db_session, item_id, form.to_data())
    return jsonify(item.to_dict())


@menu_bp.route('/items/<int:item_id>', methods=['DELETE'])
def delete_item(item_id: int):
    db_session = get_session()
    menu_service.delete_item(db_session, item_id)
    return jsonify({'status': 'success'})
