"""Account lifecycle: email verification, passwords and admin user management."""
import logging
from datetime import timedelta

from sqlalchemy import or_

from donorsync.errors import AuthorizationError, NotFoundError, PreconditionError, ValidationError
from donorsync.extensions import db
from donorsync.models.blood_request_model import BloodRequest
from donorsync.models.certificate_model import Certificate
from donorsync.models.user_model import User, hash_token
from donorsync.services import notifications
from donorsync.utils.dates import utcnow

logger = logging.getLogger(__name__)

RECENT_REGISTRATION_DAYS = 30


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError('User not found')
    return user


def send_verification(user):
    """Store a new verification token and email the raw one to the user."""
    token = user.issue_email_verification_token()
    db.session.commit()
    notifications.send_email_verification(user, token)
    return token


def resend_verification(user):
    if user.is_email_verified:
        raise PreconditionError('Email is already verified', reason='email_already_verified')
    return send_verification(user)


def verify_email(token, now=None):
    user = User.query.filter_by(email_verification_token=hash_token(token)).first()
    if user is None or user.email_verification_expires is None \
            or user.email_verification_expires <= (now or utcnow()):
        raise ValidationError('Invalid or expired verification token', reason='invalid_token')
    user.mark_email_verified()
    db.session.commit()
    logger.info('User %s verified their email', user.id)
    return user


def change_password(user, current_password, new_password):
    if not user.check_password(current_password):
        raise ValidationError('Current password is incorrect',
                              details=[{'field': 'current_password', 'message': 'is incorrect'}])
    user.set_password(new_password)
    db.session.commit()
    logger.info('User %s changed their password', user.id)
    return user


def request_password_reset(email):
    user = User.query.filter_by(email=email.lower()).first()
    if user is None:
        raise NotFoundError('No user found with that email')
    token = user.issue_password_reset_token()
    db.session.commit()
    notifications.send_password_reset(user, token)
    return token


def reset_password(token, new_password, now=None):
    user = User.query.filter_by(reset_password_token=hash_token(token)).first()
    if user is None or user.reset_password_expires is None or user.reset_password_expires <= (now or utcnow()):
        raise ValidationError('Invalid or expired token', reason='invalid_token')
    user.set_password(new_password)
    user.clear_password_reset()
    db.session.commit()
    logger.info('User %s reset their password', user.id)
    return user


def list_users():
    return User.query.order_by(User.created_at.desc(), User.id.desc())


def search_users(text=None):
    query = User.query
    if text:
        pattern = f'%{text}%'
        query = query.filter(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
    return query.order_by(User.created_at.desc(), User.id.desc())


def update_user(user, columns):
    if 'email' in columns:
        columns['email'] = columns['email'].lower()
        taken = User.query.filter(User.email == columns['email'], User.id != user.id).first()
        if taken:
            raise PreconditionError('An account with this email already exists', reason='email_taken')
    for field, value in columns.items():
        setattr(user, field, value)
    db.session.commit()
    return user


def delete_user(user, actor):
    if user.is_admin and user.id != actor.id:
        raise AuthorizationError('Cannot delete another admin user')
    has_requests = BloodRequest.query.filter_by(requester_id=user.id).first() is not None
    has_certificates = Certificate.query.filter_by(donor_id=user.id).first() is not None
    has_donations = user.donor is not None and bool(user.donor.donations)
    if has_requests or has_certificates or has_donations:
        raise PreconditionError('Users with requests, donations or certificates cannot be deleted',
                                reason='user_has_records')
    user_id = user.id
    if user.donor is not None:
        db.session.delete(user.donor)
    db.session.delete(user)
    db.session.commit()
    logger.info('User %s deleted by %s', user_id, actor.id)


def statistics(now=None):
    now = now or utcnow()
    total = User.query.count()
    verified = User.query.filter_by(is_email_verified=True).count()
    return {
        'overview': {
            'total_users': total,
            'active_users': User.query.filter_by(is_active=True).count(),
            'verified_users': verified,
            'admin_users': User.query.filter_by(role='admin').count(),
            'recent_registrations': User.query.filter(
                User.created_at >= now - timedelta(days=RECENT_REGISTRATION_DAYS)
            ).count(),
            'verification_rate': round(verified * 100 / total, 2) if total else 0,
        },
    }
