import hashlib
import secrets
from datetime import timedelta

from donorsync.extensions import bcrypt, db
from donorsync.utils.dates import isoformat, utcnow

EMAIL_VERIFICATION_TTL = timedelta(hours=24)
PASSWORD_RESET_TTL = timedelta(minutes=10)


def hash_token(token):
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(20))
    role = db.Column(db.Enum('user', 'admin', name='user_role'), nullable=False, default='user')
    is_email_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    city = db.Column(db.String(50))
    state = db.Column(db.String(50))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    email_verification_token = db.Column(db.String(64), index=True)
    email_verification_expires = db.Column(db.DateTime)
    reset_password_token = db.Column(db.String(64), index=True)
    reset_password_expires = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    donor = db.relationship('Donor', back_populates='user', uselist=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def issue_email_verification_token(self, now=None):
        """Return a fresh raw token; only its hash is stored."""
        token = secrets.token_urlsafe(32)
        self.email_verification_token = hash_token(token)
        self.email_verification_expires = (now or utcnow()) + EMAIL_VERIFICATION_TTL
        return token

    def mark_email_verified(self):
        self.is_email_verified = True
        self.email_verification_token = None
        self.email_verification_expires = None

    def issue_password_reset_token(self, now=None):
        token = secrets.token_urlsafe(32)
        self.reset_password_token = hash_token(token)
        self.reset_password_expires = (now or utcnow()) + PASSWORD_RESET_TTL
        return token

    def clear_password_reset(self):
        self.reset_password_token = None
        self.reset_password_expires = None

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'is_email_verified': self.is_email_verified,
            'is_active': self.is_active,
            'city': self.city,
            'state': self.state,
            'location': {'longitude': self.longitude, 'latitude': self.latitude}
            if self.latitude is not None else None,
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email}>'
