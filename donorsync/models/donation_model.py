from datetime import timedelta

from donorsync.extensions import db
from donorsync.services.compatibility import BLOOD_TYPES
from donorsync.utils.dates import isoformat, utcnow

DONATION_STATUSES = ('scheduled', 'completed', 'cancelled', 'rejected', 'processing')
TEST_RESULTS = ('safe', 'unsafe', 'pending')

# Whole blood keeps for 35-42 days; the bag expiry uses the lower bound
WHOLE_BLOOD_SHELF_LIFE_DAYS = 35


class Donation(db.Model):
    __tablename__ = 'donations'
    __table_args__ = (
        db.Index('ix_donations_donor_date', 'donor_id', 'donation_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('donors.id'), nullable=False)
    blood_request_id = db.Column(db.Integer, db.ForeignKey('blood_requests.id'), nullable=False, index=True)
    donation_date = db.Column(db.DateTime, nullable=False)
    volume_donated = db.Column(db.Integer, nullable=False, default=450)
    blood_type = db.Column(db.Enum(*BLOOD_TYPES, name='blood_type'), nullable=False)
    status = db.Column(db.Enum(*DONATION_STATUSES, name='donation_status'), nullable=False,
                       default='scheduled', index=True)

    center_name = db.Column(db.String(120), nullable=False)
    center_city = db.Column(db.String(50), nullable=False)
    center_state = db.Column(db.String(50), nullable=False)
    center_phone = db.Column(db.String(20))

    medical_screening = db.Column(db.JSON, nullable=False, default=dict)
    staff_details = db.Column(db.JSON, nullable=False, default=dict)
    notes = db.Column(db.JSON, nullable=False, default=dict)

    bag_number = db.Column(db.String(40), nullable=False, unique=True)
    bag_expiry_date = db.Column(db.DateTime, nullable=False)
    storage_location = db.Column(db.String(80))

    overall_result = db.Column(db.Enum(*TEST_RESULTS, name='test_result'), nullable=False, default='pending')
    test_results = db.Column(db.JSON, nullable=False, default=dict)

    certificate_generated = db.Column(db.Boolean, nullable=False, default=False)
    certificate_ref = db.Column(db.String(40))
    certificate_generated_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    donor = db.relationship('Donor', back_populates='donations')
    blood_request = db.relationship('BloodRequest', back_populates='donations')
    certificate = db.relationship('Certificate', back_populates='donation', uselist=False)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.bag_expiry_date is None and self.donation_date is not None:
            self.bag_expiry_date = self.donation_date + timedelta(days=WHOLE_BLOOD_SHELF_LIFE_DAYS)

    @property
    def is_certifiable(self):
        return self.status == 'completed' and self.overall_result == 'safe'

    def mark_certified(self, certificate, when):
        self.certificate_generated = True
        self.certificate_ref = certificate.certificate_id
        self.certificate_generated_at = when

    def summary_dict(self):
        """No donor, patient or screening data; safe for dashboards."""
        return {
            'id': self.id,
            'donation_date': isoformat(self.donation_date),
            'volume_donated': self.volume_donated,
            'blood_type': self.blood_type,
            'status': self.status,
            'donation_center': {'name': self.center_name, 'city': self.center_city},
        }

    def to_dict(self):
        donor = self.donor
        return {
            'id': self.id,
            'donor_id': self.donor_id,
            'donor_name': donor.user.full_name if donor and donor.user else None,
            'blood_request_id': self.blood_request_id,
            'patient_name': self.blood_request.patient_name if self.blood_request else None,
            'donation_date': isoformat(self.donation_date),
            'volume_donated': self.volume_donated,
            'blood_type': self.blood_type,
            'status': self.status,
            'donation_center': {
                'name': self.center_name,
                'city': self.center_city,
                'state': self.center_state,
                'phone': self.center_phone,
            },
            'medical_screening': self.medical_screening,
            'staff_details': self.staff_details,
            'notes': self.notes,
            'blood_bag': {
                'bag_number': self.bag_number,
                'expiry_date': isoformat(self.bag_expiry_date),
                'storage_location': self.storage_location,
            },
            'test_results': dict(self.test_results or {}, overall_result=self.overall_result),
            'certification': {
                'certificate_generated': self.certificate_generated,
                'certificate_id': self.certificate_ref,
                'generated_at': isoformat(self.certificate_generated_at),
            },
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<Donation {self.id} {self.status}/{self.overall_result}>'
