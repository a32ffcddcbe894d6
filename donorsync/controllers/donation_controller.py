from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from donorsync.schemas import parse
from donorsync.schemas.donation import CompleteDonation, DonationCreate, DonationUpdate, ScreeningResults
from donorsync.schemas.donor import DonorListQuery
from donorsync.services import certificates, donations, donors
from donorsync.utils.auth import admin_required, current_user
from donorsync.utils.pagination import paginate

donation_bp = Blueprint('donation_bp', __name__)


def _serialize(donation):
    return donation.to_dict()


@donation_bp.route('/', methods=['POST'])
@admin_required
def create_donation():
    data = parse(DonationCreate, request.get_json(silent=True))
    donation = donations.create_donation(data.to_columns(), blood_type=data.blood_type)
    return jsonify(donation.to_dict()), 201


@donation_bp.route('/', methods=['GET'])
@admin_required
def list_donations():
    filters = parse(DonorListQuery, {'blood_type': request.args.get('blood_type')})
    query = donations.list_donations(status=request.args.get('status'), blood_type=filters.blood_type)
    return jsonify(paginate(query, _serialize)), 200


@donation_bp.route('/mine', methods=['GET'])
@jwt_required()
def my_donations():
    donor = donors.donor_for_user(current_user())
    if donor is None:
        return jsonify({'items': [], 'pagination': None}), 200
    return jsonify(paginate(donations.donations_for_donor(donor), _serialize)), 200


@donation_bp.route('/stats', methods=['GET'])
@admin_required
def donation_stats():
    return jsonify(donations.statistics()), 200


@donation_bp.route('/<int:donation_id>', methods=['GET'])
@jwt_required()
def get_donation(donation_id):
    donation = donations.get_donation(donation_id)
    donations.require_access(donation, current_user())
    return jsonify(donation.to_dict()), 200


@donation_bp.route('/<int:donation_id>', methods=['PUT'])
@admin_required
def update_donation(donation_id):
    donation = donations.get_donation(donation_id)
    data = parse(DonationUpdate, request.get_json(silent=True))
    donation = donations.update_donation(donation, data.to_columns())
    return jsonify(donation.to_dict()), 200


@donation_bp.route('/<int:donation_id>', methods=['DELETE'])
@admin_required
def delete_donation(donation_id):
    donations.delete_donation(donations.get_donation(donation_id))
    return jsonify({'message': 'Donation deleted successfully'}), 200


@donation_bp.route('/<int:donation_id>/complete', methods=['PUT'])
@admin_required
def complete_donation(donation_id):
    donation = donations.get_donation(donation_id)
    data = parse(CompleteDonation, request.get_json(silent=True))
    donation = donations.complete_donation(donation, allow_overfulfill=data.allow_overfulfill)
    return jsonify(donation.to_dict()), 200


@donation_bp.route('/<int:donation_id>/test-results', methods=['PUT'])
@admin_required
def update_test_results(donation_id):
    donation = donations.get_donation(donation_id)
    data = parse(ScreeningResults, request.get_json(silent=True))
    donation = donations.record_test_results(donation, data.overall_result, data.details())
    return jsonify(donation.to_dict()), 200


@donation_bp.route('/<int:donation_id>/certificate', methods=['POST'])
@jwt_required()
def generate_certificate(donation_id):
    certificate = certificates.issue(donation_id, current_user())
    return jsonify(certificate.to_dict()), 201
