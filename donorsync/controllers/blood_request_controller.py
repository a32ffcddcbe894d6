from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from donorsync.schemas import parse
from donorsync.schemas.blood_request import BloodRequestCreate, BloodRequestUpdate, RequestListQuery, RespondSchema
from donorsync.schemas.common import NearbyQuery
from donorsync.services import blood_requests, donors, matching
from donorsync.utils.auth import current_user, optional_user
from donorsync.utils.pagination import paginate

blood_request_bp = Blueprint('blood_request_bp', __name__)


def _public(blood_request):
    return blood_request.to_dict(include_private=False)


@blood_request_bp.route('/', methods=['POST'])
@jwt_required()
def create_blood_request():
    user = current_user()
    data = parse(BloodRequestCreate, request.get_json(silent=True))
    blood_request = blood_requests.create_request(user, data.to_columns())
    return jsonify(blood_request.to_dict()), 201


@blood_request_bp.route('/', methods=['GET'])
def get_blood_requests():
    filters = parse(RequestListQuery, request.args.to_dict())
    query = blood_requests.list_open_requests(filters.blood_type, filters.urgency, filters.city)
    return jsonify(paginate(query, _public)), 200


@blood_request_bp.route('/nearby', methods=['GET'])
def nearby_blood_requests():
    query = parse(NearbyQuery, request.args.to_dict())
    matches = matching.find_nearby_requests(
        query.longitude, query.latitude, query.max_distance, donor_blood_type=query.blood_type,
    )
    results = [matching.serialize_match(match, _public) for match in matches]
    return jsonify({'count': len(results), 'requests': results}), 200


@blood_request_bp.route('/mine', methods=['GET'])
@jwt_required()
def my_blood_requests():
    query = blood_requests.requests_for_user(current_user(), status=request.args.get('status'))
    return jsonify(paginate(query, lambda blood_request: blood_request.to_dict())), 200


@blood_request_bp.route('/stats', methods=['GET'])
def blood_request_stats():
    return jsonify(blood_requests.statistics()), 200


@blood_request_bp.route('/<int:request_id>', methods=['GET'])
def get_blood_request(request_id):
    blood_request = blood_requests.get_request(request_id)
    user = optional_user()
    if user is not None and (user.id == blood_request.requester_id or user.is_admin):
        return jsonify(blood_request.to_dict()), 200
    return jsonify(_public(blood_request)), 200


@blood_request_bp.route('/<int:request_id>', methods=['PUT'])
@jwt_required()
def update_blood_request(request_id):
    blood_request = blood_requests.get_request(request_id)
    data = parse(BloodRequestUpdate, request.get_json(silent=True))
    blood_request = blood_requests.update_request(blood_request, current_user(), data.to_columns())
    return jsonify(blood_request.to_dict()), 200


@blood_request_bp.route('/<int:request_id>/cancel', methods=['POST'])
@jwt_required()
def cancel_blood_request(request_id):
    blood_request = blood_requests.get_request(request_id)
    blood_request = blood_requests.cancel_request(blood_request, current_user())
    return jsonify(blood_request.to_dict()), 200


@blood_request_bp.route('/<int:request_id>/respond', methods=['POST'])
@jwt_required()
def respond_to_blood_request(request_id):
    donor = donors.require_donor_profile(current_user())
    blood_request = blood_requests.get_request(request_id)
    data = parse(RespondSchema, request.get_json(silent=True))
    response = blood_requests.respond(blood_request, donor, data.message)
    return jsonify(response.to_dict()), 201


@blood_request_bp.route('/<int:request_id>/responses', methods=['GET'])
@jwt_required()
def blood_request_responses(request_id):
    blood_request = blood_requests.get_request(request_id)
    responses = blood_requests.responses_for(blood_request, current_user())
    return jsonify([response.to_dict() for response in responses]), 200
