import logging

from flask import Blueprint, jsonify, request
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy.exc import IntegrityError

from donorsync.errors import AuthenticationError, AuthorizationError, PreconditionError
from donorsync.extensions import db
from donorsync.models.user_model import User
from donorsync.schemas import parse
from donorsync.schemas.auth import ChangePasswordSchema, ForgotPasswordSchema, LoginSchema, ProfileUpdate, \
    RegisterSchema, ResetPasswordSchema
from donorsync.services import users
from donorsync.utils.auth import current_user

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth_bp', __name__)


def _apply_location(user, location):
    if location is not None:
        user.longitude, user.latitude = location.longitude, location.latitude


def _token_response(user, status_code):
    token = create_access_token(identity=str(user.id))
    return jsonify({'token': token, 'user': user.to_dict()}), status_code


@auth_bp.route('/register', methods=['POST'])
def register():
    data = parse(RegisterSchema, request.get_json(silent=True))
    email = data.email.lower()
    if User.query.filter_by(email=email).first():
        raise PreconditionError('An account with this email already exists', reason='email_taken')

    user = User(full_name=data.full_name, email=email, phone=data.phone, city=data.city, state=data.state)
    user.set_password(data.password)
    _apply_location(user, data.location)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise PreconditionError('An account with this email already exists', reason='email_taken')
    logger.info('Registered user %s', user.id)
    users.send_verification(user)
    return _token_response(user, 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    data = parse(LoginSchema, request.get_json(silent=True))
    user = User.query.filter_by(email=data.email.lower()).first()
    if user is None or not user.check_password(data.password):
        raise AuthenticationError('Invalid email or password', reason='invalid_credentials')
    if not user.is_active:
        raise AuthorizationError('Account is deactivated', reason='account_inactive')
    return _token_response(user, 200)


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def me():
    return jsonify(current_user().to_dict()), 200


@auth_bp.route('/profile', methods=['PUT'])
@jwt_required()
def update_profile():
    user = current_user()
    data = parse(ProfileUpdate, request.get_json(silent=True))
    for field in ('full_name', 'phone', 'city', 'state'):
        value = getattr(data, field)
        if value is not None:
            setattr(user, field, value)
    _apply_location(user, data.location)
    db.session.commit()
    return jsonify(user.to_dict()), 200


@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    # Tokens are stateless; the client discards its copy
    return jsonify({'message': 'Logout successful'}), 200


@auth_bp.route('/change-password', methods=['PUT'])
@jwt_required()
def change_password():
    data = parse(ChangePasswordSchema, request.get_json(silent=True))
    users.change_password(current_user(), data.current_password, data.new_password)
    return jsonify({'message': 'Password changed successfully'}), 200


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    data = parse(ForgotPasswordSchema, request.get_json(silent=True))
    users.request_password_reset(data.email)
    return jsonify({'message': 'Password reset email sent'}), 200


@auth_bp.route('/reset-password/<token>', methods=['PUT'])
def reset_password(token):
    data = parse(ResetPasswordSchema, request.get_json(silent=True))
    user = users.reset_password(token, data.new_password)
    return _token_response(user, 200)


@auth_bp.route('/verify-email/<token>', methods=['PUT'])
def verify_email(token):
    users.verify_email(token)
    return jsonify({'message': 'Email verified successfully'}), 200


@auth_bp.route('/resend-verification', methods=['POST'])
@jwt_required()
def resend_verification():
    users.resend_verification(current_user())
    return jsonify({'message': 'Verification email sent'}), 200
