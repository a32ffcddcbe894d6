from datetime import timedelta

from donorsync.errors import PreconditionError
from donorsync.extensions import db
from donorsync.services.compatibility import BLOOD_TYPES
from donorsync.utils.dates import isoformat, utcnow

# Minimum gap between two whole-blood donations
DONATION_INTERVAL_DAYS = 56


class Donor(db.Model):
    __tablename__ = 'donors'
    __table_args__ = (
        db.Index('ix_donors_lat_lng', 'latitude', 'longitude'),
        db.Index('ix_donors_blood_type_available', 'blood_type', 'is_available'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    blood_type = db.Column(db.Enum(*BLOOD_TYPES, name='blood_type'), nullable=False)
    age = db.Column(db.Integer, nullable=False)
    weight = db.Column(db.Float, nullable=False)
    gender = db.Column(db.Enum('male', 'female', 'other', name='gender'), nullable=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    last_donation_date = db.Column(db.DateTime)

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    street = db.Column(db.String(120))
    city = db.Column(db.String(50), nullable=False)
    state = db.Column(db.String(50), nullable=False)
    zip_code = db.Column(db.String(12))
    country = db.Column(db.String(50), default='India')

    medical_history = db.Column(db.JSON, nullable=False, default=dict)
    emergency_contact = db.Column(db.JSON, nullable=False, default=dict)
    contact_preferences = db.Column(db.JSON, nullable=False, default=dict)

    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    donation_count = db.Column(db.Integer, nullable=False, default=0)
    total_volume_donated = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship('User', back_populates='donor')
    donations = db.relationship('Donation', back_populates='donor', lazy=True)

    @property
    def next_eligible_donation_date(self):
        if not self.last_donation_date:
            return None
        return self.last_donation_date + timedelta(days=DONATION_INTERVAL_DAYS)

    def is_eligible_to_donate(self, now=None):
        """True once the donation interval has passed since the last donation."""
        if not self.last_donation_date:
            return True
        return (now or utcnow()) >= self.next_eligible_donation_date

    def set_availability(self, available, now=None):
        if available and not self.is_eligible_to_donate(now):
            raise PreconditionError(
                f'Cannot set as available. Must wait {DONATION_INTERVAL_DAYS} days from last donation.',
                reason='donation_interval_not_elapsed',
                next_eligible_date=isoformat(self.next_eligible_donation_date),
            )
        self.is_available = bool(available)

    def record_donation(self, donation_date, volume):
        # Completing an older donation never moves the interval backwards
        if self.last_donation_date is None or donation_date > self.last_donation_date:
            self.last_donation_date = donation_date
        self.donation_count = (self.donation_count or 0) + 1
        self.total_volume_donated = (self.total_volume_donated or 0) + volume
        self.is_available = False

    def public_dict(self):
        return {
            'id': self.id,
            'full_name': self.user.full_name if self.user else None,
            'blood_type': self.blood_type,
            'age': self.age,
            'is_available': self.is_available,
            'city': self.city,
            'state': self.state,
            'donation_count': self.donation_count,
            'location': {'longitude': self.longitude, 'latitude': self.latitude},
            'created_at': isoformat(self.created_at),
        }

    def to_dict(self):
        data = self.public_dict()
        data.update({
            'user_id': self.user_id,
            'email': self.user.email if self.user else None,
            'phone': self.user.phone if self.user else None,
            'weight': self.weight,
            'gender': self.gender,
            'last_donation_date': isoformat(self.last_donation_date),
            'next_eligible_date': isoformat(self.next_eligible_donation_date),
            'address': {
                'street': self.street,
                'city': self.city,
                'state': self.state,
                'zip_code': self.zip_code,
                'country': self.country,
            },
            'medical_history': self.medical_history,
            'emergency_contact': self.emergency_contact,
            'contact_preferences': self.contact_preferences,
            'is_verified': self.is_verified,
            'total_volume_donated': self.total_volume_donated,
        })
        return data

    def __repr__(self):
        return f'<Donor {self.id} {self.blood_type}>'
