import json

from flask import current_app

from donorsync.extensions import db
from donorsync.utils.dates import isoformat, utcnow

CERTIFICATE_STATUSES = ('draft', 'issued', 'revoked', 'expired')
CERTIFICATE_TYPES = ('donation', 'appreciation', 'milestone')
SOCIAL_PLATFORMS = ('facebook', 'twitter', 'linkedin', 'instagram')


class Certificate(db.Model):
    __tablename__ = 'certificates'
    __table_args__ = (
        db.Index('ix_certificates_donor_generated', 'donor_id', 'generated_at'),
    )

    id = db.Column(db.Integer, primary_key=True)
    certificate_id = db.Column(db.String(40), nullable=False, unique=True)
    verification_code = db.Column(db.String(40), nullable=False, unique=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    donation_id = db.Column(db.Integer, db.ForeignKey('donations.id'), nullable=False, unique=True)
    certificate_type = db.Column(db.Enum(*CERTIFICATE_TYPES, name='certificate_type'), nullable=False,
                                 default='donation')
    status = db.Column(db.Enum(*CERTIFICATE_STATUSES, name='certificate_status'), nullable=False,
                       default='draft', index=True)
    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(500), nullable=False)

    # Snapshot of the donation at issue time
    donation_date = db.Column(db.DateTime, nullable=False)
    blood_type = db.Column(db.String(3), nullable=False)
    volume_donated = db.Column(db.Integer, nullable=False)
    center_name = db.Column(db.String(120))
    center_city = db.Column(db.String(50))
    center_state = db.Column(db.String(50))

    issuing_organization = db.Column(db.String(120), nullable=False, default='Blood Donation Center')
    qr_data = db.Column(db.Text)
    version = db.Column(db.String(10), nullable=False, default='1.0')
    generated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime)

    revoked_at = db.Column(db.DateTime)
    revocation_reason = db.Column(db.String(500))
    revoked_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    download_count = db.Column(db.Integer, nullable=False, default=0)
    last_downloaded = db.Column(db.DateTime)
    is_publicly_shared = db.Column(db.Boolean, nullable=False, default=False)
    shareable_link = db.Column(db.String(255))
    social_shares = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    donor = db.relationship('User', foreign_keys=[donor_id])
    donation = db.relationship('Donation', back_populates='certificate')

    @property
    def verification_url(self):
        base_url = current_app.config['FRONTEND_URL'].rstrip('/')
        return f'{base_url}/verify/{self.verification_code}'

    def is_expired(self, now=None):
        return self.expires_at is not None and (now or utcnow()) > self.expires_at

    def is_verifiable(self, now=None):
        return self.status == 'issued' and not self.is_expired(now)

    def refresh_qr_payload(self, donor_name):
        self.qr_data = json.dumps({
            'certificate_id': self.certificate_id,
            'verification_code': self.verification_code,
            'verification_url': self.verification_url,
            'donor_name': donor_name,
            'donation_date': isoformat(self.donation_date),
            'blood_type': self.blood_type,
        })

    def bump_version(self):
        """1.0 -> 1.1 ... 1.9 -> 2.0"""
        major, _, minor = (self.version or '1.0').partition('.')
        major, minor = int(major), int(minor or 0) + 1
        if minor == 10:
            major, minor = major + 1, 0
        self.version = f'{major}.{minor}'

    def record_download(self, now=None):
        self.download_count = (self.download_count or 0) + 1
        self.last_downloaded = now or utcnow()

    def public_view(self):
        return {
            'is_valid': True,
            'certificate_id': self.certificate_id,
            'donor_name': self.donor.full_name if self.donor else None,
            'donation_date': isoformat(self.donation_date),
            'blood_type': self.blood_type,
            'volume_donated': self.volume_donated,
            'donation_center': self.center_name,
            'issued_date': isoformat(self.generated_at),
            'status': self.status,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'certificate_id': self.certificate_id,
            'donor_id': self.donor_id,
            'donor_name': self.donor.full_name if self.donor else None,
            'donation_id': self.donation_id,
            'certificate_type': self.certificate_type,
            'status': self.status,
            'title': self.title,
            'description': self.description,
            'donation_details': {
                'donation_date': isoformat(self.donation_date),
                'blood_type': self.blood_type,
                'volume_donated': self.volume_donated,
                'donation_center': {
                    'name': self.center_name,
                    'city': self.center_city,
                    'state': self.center_state,
                },
            },
            'issued_by': self.issuing_organization,
            'verification': {
                'verification_code': self.verification_code,
                'verification_url': self.verification_url,
            },
            'qr_code': {'data': self.qr_data},
            'version': self.version,
            'generated_at': isoformat(self.generated_at),
            'expires_at': isoformat(self.expires_at),
            'revoked_at': isoformat(self.revoked_at),
            'revocation_reason': self.revocation_reason,
            'download_count': self.download_count,
            'last_downloaded': isoformat(self.last_downloaded),
            'sharing': {
                'is_publicly_shared': self.is_publicly_shared,
                'shareable_link': self.shareable_link,
                'social_media_shared': {
                    platform: bool((self.social_shares or {}).get(platform)) for platform in SOCIAL_PLATFORMS
                },
            },
        }

    def __repr__(self):
        return f'<Certificate {self.certificate_id} {self.status}>'
