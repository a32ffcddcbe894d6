import logging

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError

from donorsync.errors import AuthorizationError, NotFoundError, PreconditionError
from donorsync.extensions import db
from donorsync.models.blood_request_model import OPEN_STATUSES, URGENCY_LEVELS, URGENCY_RANK, BloodRequest
from donorsync.models.request_response_model import RequestResponse
from donorsync.services import matching, notifications
from donorsync.utils.dates import utcnow

logger = logging.getLogger(__name__)

# Editable by the requester while the request is open
UPDATABLE_FIELDS = (
    'patient_name', 'units_needed', 'urgency', 'required_by', 'description',
    'contact_phone', 'contact_email', 'medical_details', 'is_emergency',
)


def urgency_order():
    """ORDER BY clause for critical first."""
    return case(URGENCY_RANK, value=BloodRequest.urgency).desc()


def get_request(request_id):
    blood_request = db.session.get(BloodRequest, request_id)
    if blood_request is None:
        raise NotFoundError('Blood request not found')
    return blood_request


def _require_requester(blood_request, user, action):
    if blood_request.requester_id != user.id and not user.is_admin:
        raise AuthorizationError(f'Not authorized to {action} this request')


def create_request(user, data):
    blood_request = BloodRequest(requester_id=user.id, **data)
    db.session.add(blood_request)
    db.session.commit()
    logger.info('Blood request %s created by user %s (%s, %d units, %s)',
                blood_request.id, user.id, blood_request.blood_type,
                blood_request.units_needed, blood_request.urgency)

    notifications.send_request_confirmation(user, blood_request)
    notify_nearby_donors(blood_request)
    return blood_request


def notify_nearby_donors(blood_request):
    """Fan out to the closest available donors of the request's blood type.

    Failures here are logged; the request has already been stored.
    """
    try:
        matches = matching.find_nearby_donors(
            blood_request.longitude, blood_request.latitude,
            blood_type=blood_request.blood_type,
            limit=notifications.MAX_DONOR_NOTIFICATIONS,
        )
        return notifications.notify_donors_of_request(blood_request, matches)
    except Exception:
        logger.exception('Donor fan-out failed for blood request %s', blood_request.id)
        return None


def list_open_requests(blood_type=None, urgency=None, city=None):
    query = BloodRequest.query.filter(
        BloodRequest.status.in_(OPEN_STATUSES),
        BloodRequest.required_by > utcnow(),
    )
    if blood_type:
        query = query.filter(BloodRequest.blood_type == blood_type)
    if urgency in URGENCY_LEVELS:
        query = query.filter(BloodRequest.urgency == urgency)
    if city:
        query = query.filter(BloodRequest.hospital_city.ilike(f'%{city}%'))
    return query.order_by(urgency_order(), BloodRequest.required_by)


def requests_for_user(user, status=None):
    query = BloodRequest.query.filter_by(requester_id=user.id)
    if status:
        query = query.filter(BloodRequest.status == status)
    return query.order_by(BloodRequest.created_at.desc())


def update_request(blood_request, user, changes):
    _require_requester(blood_request, user, 'update')
    if not blood_request.is_open:
        raise PreconditionError(f'Cannot update a {blood_request.status} request', reason='request_closed')
    for field, value in changes.items():
        if field in UPDATABLE_FIELDS:
            setattr(blood_request, field, value)
    if blood_request.units_needed < blood_request.units_fulfilled:
        raise PreconditionError('Units needed cannot drop below units already fulfilled',
                                reason='request_overfulfilled')
    blood_request.refresh_status()
    db.session.commit()
    return blood_request


def cancel_request(blood_request, user):
    _require_requester(blood_request, user, 'cancel')
    blood_request.transition_to('cancelled')
    db.session.commit()
    logger.info('Blood request %s cancelled by user %s', blood_request.id, user.id)
    return blood_request


def respond(blood_request, donor, message=None):
    """Record a donor's offer to donate. One response per donor per request."""
    if not blood_request.is_open or blood_request.is_past_deadline():
        raise PreconditionError('This request is no longer accepting responses', reason='request_closed')
    if RequestResponse.query.filter_by(request_id=blood_request.id, donor_id=donor.id).first():
        raise PreconditionError('You have already responded to this request', reason='already_responded')

    response = RequestResponse(request_id=blood_request.id, donor_id=donor.id)
    if message:
        response.message = message
    db.session.add(response)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise PreconditionError('You have already responded to this request', reason='already_responded')
    return response


def responses_for(blood_request, user):
    _require_requester(blood_request, user, 'view responses for')
    return blood_request.responses


def statistics():
    status_counts = dict(
        db.session.query(BloodRequest.status, db.func.count(BloodRequest.id)).group_by(BloodRequest.status).all()
    )
    demand = db.session.query(
        BloodRequest.blood_type,
        db.func.count(BloodRequest.id),
        db.func.sum(BloodRequest.units_needed),
        db.func.sum(BloodRequest.units_fulfilled),
    ).group_by(BloodRequest.blood_type).order_by(db.func.count(BloodRequest.id).desc()).all()
    urgency = dict(
        db.session.query(BloodRequest.urgency, db.func.count(BloodRequest.id))
        .filter(BloodRequest.status.in_(OPEN_STATUSES)).group_by(BloodRequest.urgency).all()
    )
    return {
        'overview': {
            'total_requests': sum(status_counts.values()),
            'active_requests': status_counts.get('active', 0) + status_counts.get('partially_fulfilled', 0),
            'fulfilled_requests': status_counts.get('fulfilled', 0),
            'expired_requests': status_counts.get('expired', 0),
            'cancelled_requests': status_counts.get('cancelled', 0),
        },
        'blood_type_demand': [
            {
                'blood_type': blood_type,
                'count': count,
                'total_units_needed': int(needed or 0),
                'total_units_fulfilled': int(fulfilled or 0),
            }
            for blood_type, count, needed, fulfilled in demand
        ],
        'urgency_distribution': {level: urgency.get(level, 0) for level in URGENCY_LEVELS},
    }
