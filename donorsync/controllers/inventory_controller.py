from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from donorsync.schemas import parse
from donorsync.schemas.inventory import InventoryCreate, InventoryQuery, InventoryUpdate, ReportQuery
from donorsync.services import inventory
from donorsync.utils.auth import admin_required, current_user
from donorsync.utils.pagination import paginate

inventory_bp = Blueprint('inventory_bp', __name__)


@inventory_bp.route('/', methods=['GET'])
def list_inventory():
    filters = parse(InventoryQuery, request.args.to_dict())
    query = inventory.list_items(**filters.model_dump())
    return jsonify(paginate(query, lambda item: item.to_dict())), 200


@inventory_bp.route('/', methods=['POST'])
@admin_required
def create_inventory():
    data = parse(InventoryCreate, request.get_json(silent=True))
    item = inventory.create_item(current_user(), data.model_dump())
    return jsonify(item.to_dict()), 201


@inventory_bp.route('/<int:item_id>', methods=['PUT'])
@admin_required
def update_inventory(item_id):
    item = inventory.get_item(item_id)
    data = parse(InventoryUpdate, request.get_json(silent=True))
    item = inventory.update_item(item, current_user(), data.to_columns())
    return jsonify(item.to_dict()), 200


@inventory_bp.route('/<int:item_id>', methods=['DELETE'])
@admin_required
def delete_inventory(item_id):
    inventory.delete_item(inventory.get_item(item_id))
    return jsonify({'message': 'Inventory item deleted'}), 200


@inventory_bp.route('/summary', methods=['GET'])
def inventory_summary():
    return jsonify(inventory.inventory_summary()), 200


@inventory_bp.route('/alerts', methods=['GET'])
@jwt_required()
def inventory_alerts():
    return jsonify(inventory.alerts()), 200


@inventory_bp.route('/dashboard-stats', methods=['GET'])
@jwt_required()
def dashboard_stats():
    return jsonify(inventory.dashboard_stats()), 200


@inventory_bp.route('/report', methods=['GET'])
@admin_required
def inventory_report():
    period = parse(ReportQuery, request.args.to_dict())
    return jsonify(inventory.report(period.start_date, period.end_date)), 200
