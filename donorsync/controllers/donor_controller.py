from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from donorsync.schemas import parse
from donorsync.schemas.common import NearbyQuery
from donorsync.schemas.donor import AvailabilityUpdate, DonorListQuery, DonorRegistration, DonorUpdate
from donorsync.services import donors, matching
from donorsync.utils.auth import current_user, optional_user
from donorsync.utils.pagination import paginate

donor_bp = Blueprint('donor_bp', __name__)


@donor_bp.route('/register', methods=['POST'])
@jwt_required()
def register_donor():
    user = current_user()
    data = parse(DonorRegistration, request.get_json(silent=True))
    donor = donors.register_donor(user, data.to_columns())
    return jsonify(donor.to_dict()), 201


@donor_bp.route('/', methods=['GET'])
def list_donors():
    filters = parse(DonorListQuery, request.args.to_dict())
    query = donors.list_donors(blood_type=filters.blood_type, city=filters.city)
    return jsonify(paginate(query, lambda donor: donor.public_dict())), 200


@donor_bp.route('/nearby', methods=['GET'])
def nearby_donors():
    query = parse(NearbyQuery, request.args.to_dict())
    matches = matching.find_nearby_donors(
        query.longitude, query.latitude, query.max_distance, blood_type=query.blood_type,
    )
    results = [matching.serialize_match(match, lambda donor: donor.public_dict()) for match in matches]
    return jsonify({'count': len(results), 'donors': results}), 200


@donor_bp.route('/me', methods=['GET'])
@jwt_required()
def my_profile():
    donor = donors.donor_for_user(current_user())
    return jsonify(donor.to_dict() if donor else None), 200


@donor_bp.route('/<int:donor_id>', methods=['GET'])
def get_donor(donor_id):
    donor = donors.get_donor(donor_id)
    user = optional_user()
    if user is not None and (user.id == donor.user_id or user.is_admin):
        return jsonify(donor.to_dict()), 200
    return jsonify(donor.public_dict()), 200


@donor_bp.route('/me', methods=['PUT'])
@jwt_required()
def update_profile():
    donor = donors.require_donor_profile(current_user())
    data = parse(DonorUpdate, request.get_json(silent=True))
    donor = donors.update_donor(donor, data.to_columns())
    return jsonify(donor.to_dict()), 200


@donor_bp.route('/availability', methods=['PUT'])
@jwt_required()
def update_availability():
    donor = donors.require_donor_profile(current_user())
    data = parse(AvailabilityUpdate, request.get_json(silent=True))
    donor = donors.set_availability(donor, data.is_available)
    return jsonify({
        'is_available': donor.is_available,
        'next_eligible_date': donor.to_dict()['next_eligible_date'],
    }), 200


@donor_bp.route('/me', methods=['DELETE'])
@jwt_required()
def delete_profile():
    donor = donors.require_donor_profile(current_user())
    donors.delete_donor(donor)
    return jsonify({'message': 'Donor profile deleted'}), 200
