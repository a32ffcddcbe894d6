from donorsync.extensions import db
from donorsync.utils.dates import isoformat, utcnow


class RequestResponse(db.Model):
    """A donor offering to give blood for a request."""
    __tablename__ = 'request_responses'
    __table_args__ = (
        db.UniqueConstraint('request_id', 'donor_id', name='uq_request_response_donor'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('blood_requests.id'), nullable=False)
    donor_id = db.Column(db.Integer, db.ForeignKey('donors.id'), nullable=False)
    message = db.Column(db.String(500), nullable=False, default='I am available to donate')
    status = db.Column(db.Enum('pending', 'accepted', 'rejected', name='response_status'), default='pending')
    response_date = db.Column(db.DateTime, default=utcnow)

    donor = db.relationship('Donor')
    request = db.relationship('BloodRequest', back_populates='responses')

    def to_dict(self):
        donor = self.donor
        return {
            'id': self.id,
            'request_id': self.request_id,
            'donor_id': self.donor_id,
            'donor_name': donor.user.full_name if donor and donor.user else None,
            'donor_blood_type': donor.blood_type if donor else None,
            'donor_phone': donor.user.phone if donor and donor.user else None,
            'message': self.message,
            'status': self.status,
            'response_date': isoformat(self.response_date),
        }
