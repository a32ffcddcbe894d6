from flask import Blueprint, jsonify, request

from donorsync.schemas import parse
from donorsync.schemas.common import CompatibilityRequest
from donorsync.services.compatibility import compatible_donor_types, compatible_recipient_types

compatibility_bp = Blueprint('compatibility_bp', __name__)


@compatibility_bp.route('/', methods=['POST'])
def check_compatibility():
    data = parse(CompatibilityRequest, request.get_json(silent=True))
    return jsonify({
        'blood_type': data.blood_type,
        'can_give_to': list(compatible_recipient_types(data.blood_type)),
        'can_receive_from': list(compatible_donor_types(data.blood_type)),
    }), 200
