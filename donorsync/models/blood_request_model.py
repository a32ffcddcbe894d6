from donorsync.errors import PreconditionError
from donorsync.extensions import db
from donorsync.services.compatibility import BLOOD_TYPES
from donorsync.utils.dates import isoformat, utcnow

URGENCY_LEVELS = ('low', 'medium', 'high', 'critical')
URGENCY_RANK = {level: rank for rank, level in enumerate(URGENCY_LEVELS)}

REQUEST_STATUSES = ('active', 'partially_fulfilled', 'fulfilled', 'expired', 'cancelled')
OPEN_STATUSES = ('active', 'partially_fulfilled')

# Status changes only move forward; cancelled is reachable from either open state
ALLOWED_TRANSITIONS = {
    'active': {'partially_fulfilled', 'fulfilled', 'expired', 'cancelled'},
    'partially_fulfilled': {'fulfilled', 'expired', 'cancelled'},
    'fulfilled': set(),
    'expired': set(),
    'cancelled': set(),
}


class BloodRequest(db.Model):
    __tablename__ = 'blood_requests'
    __table_args__ = (
        db.Index('ix_blood_requests_lat_lng', 'latitude', 'longitude'),
        db.Index('ix_blood_requests_match', 'blood_type', 'status', 'urgency'),
        db.Index('ix_blood_requests_deadline', 'required_by', 'status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    patient_name = db.Column(db.String(100), nullable=False)
    blood_type = db.Column(db.Enum(*BLOOD_TYPES, name='blood_type'), nullable=False)
    units_needed = db.Column(db.Integer, nullable=False)
    units_fulfilled = db.Column(db.Integer, nullable=False, default=0)
    urgency = db.Column(db.Enum(*URGENCY_LEVELS, name='urgency_level'), nullable=False, default='medium')
    required_by = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.Enum(*REQUEST_STATUSES, name='request_status'), nullable=False, default='active')

    hospital_name = db.Column(db.String(120), nullable=False)
    hospital_city = db.Column(db.String(50), nullable=False)
    hospital_state = db.Column(db.String(50), nullable=False)
    hospital_phone = db.Column(db.String(20), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)

    description = db.Column(db.String(500))
    contact_phone = db.Column(db.String(20), nullable=False)
    contact_email = db.Column(db.String(120))
    medical_details = db.Column(db.JSON, nullable=False, default=dict)
    is_emergency = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    requester = db.relationship('User')
    responses = db.relationship('RequestResponse', back_populates='request', lazy=True,
                                cascade='all, delete-orphan')
    donations = db.relationship('Donation', back_populates='blood_request', lazy=True)

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    def is_past_deadline(self, now=None):
        return (now or utcnow()) > self.required_by

    def transition_to(self, new_status):
        if new_status == self.status:
            return
        if new_status not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise PreconditionError(
                f'Cannot move request from {self.status} to {new_status}',
                reason='invalid_status_transition',
            )
        self.status = new_status

    def record_fulfillment(self, units=1, allow_overfulfill=False):
        if self.units_fulfilled + units > self.units_needed and not allow_overfulfill:
            raise PreconditionError(
                'Request already has all the units it needs',
                reason='request_overfulfilled',
            )
        self.units_fulfilled += units

    def refresh_status(self, now=None):
        """Derive the next status from fulfillment and deadline."""
        if not self.is_open:
            return self.status
        if self.units_fulfilled >= self.units_needed:
            self.transition_to('fulfilled')
        elif self.is_past_deadline(now):
            self.transition_to('expired')
        elif self.units_fulfilled > 0:
            self.transition_to('partially_fulfilled')
        return self.status

    @property
    def fulfillment_percentage(self):
        return round(self.units_fulfilled * 100 / self.units_needed) if self.units_needed else 0

    def to_dict(self, include_private=True):
        data = {
            'id': self.id,
            'requester_id': self.requester_id,
            'requester_name': self.requester.full_name if self.requester else None,
            'patient_name': self.patient_name,
            'blood_type': self.blood_type,
            'units_needed': self.units_needed,
            'units_fulfilled': self.units_fulfilled,
            'fulfillment_percentage': self.fulfillment_percentage,
            'urgency': self.urgency,
            'required_by': isoformat(self.required_by),
            'status': self.status,
            'hospital': {
                'name': self.hospital_name,
                'city': self.hospital_city,
                'state': self.hospital_state,
                'phone': self.hospital_phone,
            },
            'location': {'longitude': self.longitude, 'latitude': self.latitude},
            'description': self.description,
            'contact_info': {'phone': self.contact_phone},
            'is_emergency': self.is_emergency,
            'created_at': isoformat(self.created_at),
        }
        if include_private:
            data['contact_info']['email'] = self.contact_email
            data['requester_email'] = self.requester.email if self.requester else None
            data['medical_details'] = self.medical_details
            data['responses'] = [response.to_dict() for response in self.responses]
        return data

    def __repr__(self):
        return f'<BloodRequest {self.id} {self.blood_type} {self.status}>'
