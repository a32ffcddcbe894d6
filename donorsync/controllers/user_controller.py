from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from donorsync.schemas import parse
from donorsync.schemas.auth import UserAdminUpdate
from donorsync.services import users
from donorsync.utils.auth import admin_required, current_user
from donorsync.utils.dates import isoformat
from donorsync.utils.pagination import paginate

user_bp = Blueprint('user_bp', __name__)


def _search_row(user):
    return {
        'id': user.id,
        'full_name': user.full_name,
        'email': user.email,
        'phone': user.phone,
        'role': user.role,
        'is_active': user.is_active,
        'created_at': isoformat(user.created_at),
    }


@user_bp.route('/search', methods=['GET'])
@jwt_required()
def search_users():
    text = request.args.get('query')
    body = paginate(users.search_users(text), _search_row)
    body['search_query'] = text
    return jsonify(body), 200


@user_bp.route('/stats', methods=['GET'])
@jwt_required()
def user_stats():
    return jsonify(users.statistics()), 200


@user_bp.route('/', methods=['GET'])
@admin_required
def list_users():
    return jsonify(paginate(users.list_users(), lambda user: user.to_dict())), 200


@user_bp.route('/<int:user_id>', methods=['GET'])
@admin_required
def get_user(user_id):
    return jsonify(users.get_user(user_id).to_dict()), 200


@user_bp.route('/<int:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    user = users.get_user(user_id)
    data = parse(UserAdminUpdate, request.get_json(silent=True))
    return jsonify(users.update_user(user, data.to_columns()).to_dict()), 200


@user_bp.route('/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    users.delete_user(users.get_user(user_id), current_user())
    return jsonify({'message': 'User deleted successfully'}), 200
