import logging

from sqlalchemy.exc import IntegrityError

from donorsync.errors import NotFoundError, PreconditionError
from donorsync.extensions import db
from donorsync.models.donor_model import Donor
from donorsync.services import notifications

logger = logging.getLogger(__name__)


def get_donor(donor_id):
    donor = db.session.get(Donor, donor_id)
    if donor is None:
        raise NotFoundError('Donor not found')
    return donor


def donor_for_user(user):
    return Donor.query.filter_by(user_id=user.id).first()


def require_donor_profile(user):
    donor = donor_for_user(user)
    if donor is None:
        raise NotFoundError('Donor profile not found', reason='donor_profile_missing')
    return donor


def register_donor(user, columns):
    """Create the user's donor profile; a recent donation keeps it unavailable."""
    if donor_for_user(user) is not None:
        raise PreconditionError('User is already registered as a donor', reason='donor_exists')

    donor = Donor(user_id=user.id, **columns)
    if donor.is_available and not donor.is_eligible_to_donate():
        donor.is_available = False
    db.session.add(donor)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise PreconditionError('User is already registered as a donor', reason='donor_exists')

    logger.info('User %s registered as %s donor %s', user.id, donor.blood_type, donor.id)
    notifications.send_donor_registration_confirmation(user, donor)
    return donor


def list_donors(blood_type=None, city=None):
    query = Donor.query.filter(Donor.is_available.is_(True), Donor.is_verified.is_(True))
    if blood_type:
        query = query.filter(Donor.blood_type == blood_type)
    if city:
        query = query.filter(Donor.city.ilike(f'%{city}%'))
    return query.order_by(Donor.created_at.desc())


def update_donor(donor, columns):
    for field, value in columns.items():
        setattr(donor, field, value)
    db.session.commit()
    return donor


def set_availability(donor, available):
    donor.set_availability(available)
    db.session.commit()
    logger.info('Donor %s availability set to %s', donor.id, donor.is_available)
    return donor


def delete_donor(donor):
    if donor.donations:
        raise PreconditionError('Donors with recorded donations cannot be deleted', reason='donor_has_donations')
    db.session.delete(donor)
    db.session.commit()
