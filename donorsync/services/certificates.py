"""Certificate lifecycle: issue, verify, revoke, regenerate.

draft -> issued -> revoked | expired. At most one certificate exists per
donation; the unique constraint on ``donation_id`` settles concurrent issues.
"""
import logging
import secrets
import string
import time

from sqlalchemy.exc import IntegrityError

from donorsync.errors import (
    AuthorizationError, NotFoundError, PreconditionError, ServerError, ValidationError,
)
from donorsync.extensions import db
from donorsync.models.certificate_model import SOCIAL_PLATFORMS, Certificate
from donorsync.models.donation_model import Donation
from donorsync.services import notifications
from donorsync.utils.dates import utcnow

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_uppercase
MAX_ID_ATTEMPTS = 5
INVALID_CERTIFICATE_MESSAGE = 'Certificate not found or invalid verification code'


def _base36(number):
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36[remainder])
    return ''.join(reversed(digits)) or '0'


def _random_suffix(length):
    return ''.join(secrets.choice(BASE36) for _ in range(length))


def generate_certificate_id(now_ms=None):
    """CERT-<ms timestamp>-<5 random chars>"""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f'CERT-{now_ms}-{_random_suffix(5)}'


def generate_verification_code(now_ms=None):
    """Base36 ms timestamp followed by 8 random base36 chars."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f'{_base36(now_ms)}{_random_suffix(8)}'


def _identifiers_taken(certificate_id, verification_code):
    return db.session.query(
        Certificate.query.filter(
            (Certificate.certificate_id == certificate_id)
            | (Certificate.verification_code == verification_code)
        ).exists()
    ).scalar()


def _existing_certificate(donation_id):
    return Certificate.query.filter_by(donation_id=donation_id).first()


def _allocate_identifiers():
    for _ in range(MAX_ID_ATTEMPTS):
        certificate_id, verification_code = generate_certificate_id(), generate_verification_code()
        if not _identifiers_taken(certificate_id, verification_code):
            return certificate_id, verification_code
    raise ServerError('Could not allocate unique certificate identifiers')


def get_certificate(reference):
    """Look up by human-readable certificate id, falling back to the primary key."""
    certificate = Certificate.query.filter_by(certificate_id=str(reference)).first()
    if certificate is None and str(reference).isdigit():
        certificate = db.session.get(Certificate, int(reference))
    if certificate is None:
        raise NotFoundError('Certificate not found')
    return certificate


def _require_owner_or_admin(certificate, user, action):
    if certificate.donor_id != user.id and not user.is_admin:
        raise AuthorizationError(f'Not authorized to {action} this certificate')


def _new_certificate(donation, user, certificate_id, verification_code, now):
    certificate = Certificate(
        certificate_id=certificate_id,
        verification_code=verification_code,
        donor_id=user.id,
        donation_id=donation.id,
        status='draft',
        title='Blood Donation Certificate',
        description=f'This certificate is awarded to {user.full_name} for their generous blood donation.',
        donation_date=donation.donation_date,
        blood_type=donation.blood_type,
        volume_donated=donation.volume_donated,
        center_name=donation.center_name,
        center_city=donation.center_city,
        center_state=donation.center_state,
        generated_at=now,
    )
    certificate.refresh_qr_payload(user.full_name)
    certificate.status = 'issued'
    return certificate


def issue(donation_id, user):
    """Issue the certificate for a completed, safe donation owned by ``user``."""
    donation = db.session.get(Donation, donation_id)
    if donation is None:
        raise NotFoundError('Donation not found')
    if donation.donor is None or donation.donor.user_id != user.id:
        raise AuthorizationError('Not authorized to generate certificate for this donation')
    if not donation.is_certifiable:
        raise PreconditionError(
            'Certificate can only be generated for completed and safe donations',
            reason='donation_not_eligible',
        )
    if _existing_certificate(donation.id) is not None:
        raise PreconditionError('Certificate already exists for this donation', reason='certificate_exists')

    user_id = user.id
    for attempt in range(1, MAX_ID_ATTEMPTS + 1):
        now = utcnow()
        certificate_id, verification_code = _allocate_identifiers()
        certificate = _new_certificate(donation, user, certificate_id, verification_code, now)
        donation.mark_certified(certificate, now)
        db.session.add(certificate)
        try:
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            if Certificate.query.filter_by(donation_id=donation_id).first() is not None:
                raise PreconditionError('Certificate already exists for this donation',
                                        reason='certificate_exists')
            logger.warning('Certificate identifier collision on attempt %d for donation %s', attempt, donation_id)
            donation = db.session.get(Donation, donation_id)
    else:
        raise ServerError('Could not allocate unique certificate identifiers')

    logger.info('Issued certificate %s for donation %s to user %s', certificate.certificate_id, donation_id, user_id)
    notifications.send_certificate_email(user, certificate)
    return certificate


def verify(verification_code):
    """Public view of an issued certificate.

    Revoked, expired and unknown codes all raise the same NotFoundError.
    """
    code = (verification_code or '').strip()
    certificate = Certificate.query.filter_by(verification_code=code, status='issued').first() if code else None
    if certificate is None or not certificate.is_verifiable():
        raise NotFoundError(INVALID_CERTIFICATE_MESSAGE, reason='invalid_certificate')
    return certificate.public_view()


def revoke(reference, reason, user):
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A revocation reason is required',
                              details=[{'field': 'reason', 'message': 'must not be empty'}])
    certificate = get_certificate(reference)
    _require_owner_or_admin(certificate, user, 'revoke')
    if certificate.status == 'revoked':
        raise PreconditionError('Certificate is already revoked', reason='certificate_revoked')

    certificate.status = 'revoked'
    certificate.revoked_at = utcnow()
    certificate.revocation_reason = reason
    certificate.revoked_by_id = user.id
    db.session.commit()
    logger.info('Certificate %s revoked by user %s', certificate.certificate_id, user.id)
    return certificate


def regenerate(reference, user):
    """Re-stamp generation time, bump the version and rebuild the QR payload."""
    certificate = get_certificate(reference)
    _require_owner_or_admin(certificate, user, 'regenerate')
    if certificate.status == 'revoked':
        raise PreconditionError('Revoked certificates cannot be regenerated', reason='certificate_revoked')

    certificate.generated_at = utcnow()
    certificate.bump_version()
    certificate.refresh_qr_payload(certificate.donor.full_name)
    db.session.commit()
    return certificate


def record_download(reference, user):
    certificate = get_certificate(reference)
    _require_owner_or_admin(certificate, user, 'download')
    certificate.record_download()
    db.session.commit()
    return certificate


def update_sharing(reference, user, is_public=None, platform=None):
    certificate = get_certificate(reference)
    if certificate.donor_id != user.id:
        raise AuthorizationError('Not authorized to share this certificate')
    if is_public is not None:
        certificate.is_publicly_shared = is_public
    if platform in SOCIAL_PLATFORMS:
        certificate.social_shares = dict(certificate.social_shares or {}, **{platform: True})
    if not certificate.shareable_link:
        certificate.shareable_link = certificate.verification_url
    db.session.commit()
    return certificate


def resend_email(reference, user):
    certificate = get_certificate(reference)
    _require_owner_or_admin(certificate, user, 'send')
    notifications.send_certificate_email(certificate.donor, certificate)
    return certificate


def statistics():
    counts = dict(
        db.session.query(Certificate.status, db.func.count(Certificate.id)).group_by(Certificate.status).all()
    )
    total_downloads = db.session.query(db.func.coalesce(db.func.sum(Certificate.download_count), 0)) \
        .filter(Certificate.status == 'issued').scalar()
    issued = counts.get('issued', 0)
    return {
        'by_status': {status: counts.get(status, 0) for status in ('draft', 'issued', 'revoked', 'expired')},
        'total': sum(counts.values()),
        'total_downloads': int(total_downloads or 0),
        'avg_downloads_per_certificate': round(total_downloads / issued, 2) if issued else 0,
    }
