from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from donorsync.errors import AuthorizationError
from donorsync.models.certificate_model import Certificate
from donorsync.schemas import parse
from donorsync.schemas.certificate import RevokeSchema, ShareSchema
from donorsync.services import certificates
from donorsync.utils.auth import admin_required, current_user
from donorsync.utils.pagination import paginate

certificate_bp = Blueprint('certificate_bp', __name__)


def _serialize(certificate):
    return certificate.to_dict()


@certificate_bp.route('/', methods=['GET'])
@jwt_required()
def list_certificates():
    user = current_user()
    query = Certificate.query
    if request.args.get('all') == 'true':
        if not user.is_admin:
            raise AuthorizationError('Admin access required')
    else:
        query = query.filter_by(donor_id=user.id)
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    return jsonify(paginate(query.order_by(Certificate.generated_at.desc()), _serialize)), 200


@certificate_bp.route('/stats', methods=['GET'])
@admin_required
def certificate_stats():
    return jsonify(certificates.statistics()), 200


@certificate_bp.route('/verify/<code>', methods=['GET'])
def verify_certificate(code):
    return jsonify(certificates.verify(code)), 200


@certificate_bp.route('/<ref>', methods=['GET'])
@jwt_required()
def get_certificate(ref):
    user = current_user()
    certificate = certificates.get_certificate(ref)
    if certificate.donor_id != user.id and not user.is_admin:
        raise AuthorizationError('Not authorized to view this certificate')
    return jsonify(certificate.to_dict()), 200


@certificate_bp.route('/<ref>/download', methods=['POST'])
@jwt_required()
def download_certificate(ref):
    certificate = certificates.record_download(ref, current_user())
    return jsonify({
        'certificate_id': certificate.certificate_id,
        'download_count': certificate.download_count,
        'qr_data': certificate.qr_data,
    }), 200


@certificate_bp.route('/<ref>/share', methods=['POST'])
@jwt_required()
def share_certificate(ref):
    data = parse(ShareSchema, request.get_json(silent=True))
    certificate = certificates.update_sharing(
        ref, current_user(), is_public=data.is_public, platform=data.platform,
    )
    return jsonify(certificate.to_dict()['sharing']), 200


@certificate_bp.route('/<ref>/revoke', methods=['POST'])
@jwt_required()
def revoke_certificate(ref):
    data = parse(RevokeSchema, request.get_json(silent=True))
    certificate = certificates.revoke(ref, data.reason, current_user())
    return jsonify(certificate.to_dict()), 200


@certificate_bp.route('/<ref>/regenerate', methods=['POST'])
@jwt_required()
def regenerate_certificate(ref):
    certificate = certificates.regenerate(ref, current_user())
    return jsonify(certificate.to_dict()), 200


@certificate_bp.route('/<ref>/send-email', methods=['POST'])
@jwt_required()
def send_certificate_email(ref):
    certificates.resend_email(ref, current_user())
    return jsonify({'message': 'Certificate email queued'}), 202
