import logging

from sqlalchemy.exc import IntegrityError

from donorsync.errors import AuthorizationError, NotFoundError, PreconditionError
from donorsync.extensions import db
from donorsync.models.blood_request_model import BloodRequest
from donorsync.models.donation_model import Donation
from donorsync.models.donor_model import Donor

logger = logging.getLogger(__name__)


def get_donation(donation_id):
    donation = db.session.get(Donation, donation_id)
    if donation is None:
        raise NotFoundError('Donation not found')
    return donation


def require_access(donation, user):
    """The donor, the request's requester and admins may see a donation."""
    if user.is_admin:
        return
    if donation.donor and donation.donor.user_id == user.id:
        return
    if donation.blood_request and donation.blood_request.requester_id == user.id:
        return
    raise AuthorizationError('Not authorized to view this donation')


def create_donation(columns, blood_type=None):
    donor = db.session.get(Donor, columns['donor_id'])
    if donor is None:
        raise NotFoundError('Donor not found')
    blood_request = db.session.get(BloodRequest, columns['blood_request_id'])
    if blood_request is None:
        raise NotFoundError('Blood request not found')

    donation = Donation(blood_type=blood_type or donor.blood_type, **columns)
    db.session.add(donation)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise PreconditionError(f"Bag number {columns['bag_number']} is already recorded", reason='duplicate_bag')
    logger.info('Donation %s recorded for donor %s against request %s', donation.id, donor.id, blood_request.id)
    return donation


def list_donations(status=None, blood_type=None):
    query = Donation.query
    if status:
        query = query.filter(Donation.status == status)
    if blood_type:
        query = query.filter(Donation.blood_type == blood_type)
    return query.order_by(Donation.donation_date.desc())


def donations_for_donor(donor):
    return Donation.query.filter_by(donor_id=donor.id).order_by(Donation.donation_date.desc())


def update_donation(donation, columns):
    if donation.status == 'completed' and 'status' in columns:
        raise PreconditionError('A completed donation cannot change status', reason='donation_already_completed')
    for field, value in columns.items():
        setattr(donation, field, value)
    db.session.commit()
    return donation


def delete_donation(donation):
    if donation.certificate is not None:
        raise PreconditionError('Donations with a certificate cannot be deleted', reason='donation_has_certificate')
    donation_id = donation.id
    db.session.delete(donation)
    db.session.commit()
    logger.info('Donation %s deleted', donation_id)


def complete_donation(donation, allow_overfulfill=False):
    """Mark a donation completed and roll its effects onto donor and request.

    The donor becomes unavailable until the donation interval has passed,
    and the request gains one fulfilled unit.
    """
    if donation.status == 'completed':
        raise PreconditionError('Donation is already completed', reason='donation_already_completed')
    if donation.status in ('cancelled', 'rejected'):
        raise PreconditionError(f'Cannot complete a {donation.status} donation', reason='donation_closed')

    blood_request = donation.blood_request
    if blood_request.status in ('cancelled', 'expired') and not allow_overfulfill:
        raise PreconditionError(f'Blood request is {blood_request.status}', reason='request_closed')
    blood_request.record_fulfillment(1, allow_overfulfill=allow_overfulfill)
    donation.status = 'completed'
    donation.donor.record_donation(donation.donation_date, donation.volume_donated)
    blood_request.refresh_status()

    db.session.commit()
    logger.info('Donation %s completed; request %s is now %s (%d/%d units)',
                donation.id, blood_request.id, blood_request.status,
                blood_request.units_fulfilled, blood_request.units_needed)
    return donation


def record_test_results(donation, overall_result=None, details=None):
    if details:
        donation.test_results = dict(donation.test_results or {}, **details)
    if overall_result is not None:
        donation.overall_result = overall_result
    db.session.commit()
    return donation


def statistics():
    total = Donation.query.count()
    completed = Donation.query.filter_by(status='completed').count()
    safe = Donation.query.filter_by(overall_result='safe').count()
    volume_total, volume_avg = db.session.query(
        db.func.coalesce(db.func.sum(Donation.volume_donated), 0),
        db.func.avg(Donation.volume_donated),
    ).filter(Donation.status == 'completed').one()
    by_blood_type = db.session.query(
        Donation.blood_type, db.func.count(Donation.id), db.func.sum(Donation.volume_donated),
    ).filter(Donation.status == 'completed').group_by(Donation.blood_type) \
        .order_by(db.func.count(Donation.id).desc()).all()

    return {
        'overview': {
            'total_donations': total,
            'completed_donations': completed,
            'safe_donations': safe,
            'total_volume': int(volume_total or 0),
            'avg_volume': round(float(volume_avg or 0)),
            'safety_rate': round(safe * 100 / completed, 2) if completed else 0,
        },
        'blood_type_distribution': [
            {'blood_type': blood_type, 'count': count, 'total_volume': int(volume or 0)}
            for blood_type, count, volume in by_blood_type
        ],
    }
