from sqlalchemy import case, event

from donorsync.extensions import db
from donorsync.services.compatibility import BLOOD_TYPES
from donorsync.utils.dates import isoformat, utcnow

LOCATION_TYPES = ('Hospital', 'Blood Bank', 'Medical Camp', 'Mobile Unit')
INVENTORY_STATUSES = ('Available', 'Low Stock', 'Out of Stock', 'Expired')
EXPIRY_WARNING_DAYS = 7


def derive_inventory_status(units_available, minimum_threshold, expiry_date, now=None):
    if expiry_date <= (now or utcnow()):
        return 'Expired'
    if units_available == 0:
        return 'Out of Stock'
    if units_available <= minimum_threshold:
        return 'Low Stock'
    return 'Available'


class BloodInventory(db.Model):
    __tablename__ = 'blood_inventory'
    __table_args__ = (
        db.Index('ix_inventory_blood_type_status', 'blood_type', 'status'),
        db.Index('ix_inventory_city_state', 'city', 'state'),
    )

    id = db.Column(db.Integer, primary_key=True)
    location_name = db.Column(db.String(120), nullable=False)
    location_type = db.Column(db.Enum(*LOCATION_TYPES, name='location_type'), nullable=False, default='Hospital')
    city = db.Column(db.String(50), nullable=False)
    state = db.Column(db.String(50), nullable=False)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    phone = db.Column(db.String(20))

    blood_type = db.Column(db.Enum(*BLOOD_TYPES, name='blood_type'), nullable=False)
    units_available = db.Column(db.Integer, nullable=False, default=0)
    units_reserved = db.Column(db.Integer, nullable=False, default=0)
    minimum_threshold = db.Column(db.Integer, nullable=False, default=5)
    max_capacity = db.Column(db.Integer, nullable=False)
    expiry_date = db.Column(db.DateTime, nullable=False, index=True)
    collection_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.Enum(*INVENTORY_STATUSES, name='inventory_status'), nullable=False)
    notes = db.Column(db.String(500))

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    last_updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def actual_available(self):
        return max(0, self.units_available - self.units_reserved)

    @property
    def current_status(self):
        return derive_inventory_status(self.units_available or 0, self.minimum_threshold or 0, self.expiry_date)

    @property
    def days_until_expiry(self):
        return (self.expiry_date - utcnow()).days

    def to_dict(self):
        return {
            'id': self.id,
            'location': {
                'name': self.location_name,
                'type': self.location_type,
                'city': self.city,
                'state': self.state,
                'phone': self.phone,
                'coordinates': {'longitude': self.longitude, 'latitude': self.latitude}
                if self.latitude is not None else None,
            },
            'blood_type': self.blood_type,
            'units_available': self.units_available,
            'units_reserved': self.units_reserved,
            'actual_available': self.actual_available,
            'minimum_threshold': self.minimum_threshold,
            'max_capacity': self.max_capacity,
            'expiry_date': isoformat(self.expiry_date),
            'collection_date': isoformat(self.collection_date),
            'days_until_expiry': self.days_until_expiry,
            'status': self.current_status,
            'notes': self.notes,
            'updated_at': isoformat(self.updated_at),
        }


def status_clause(now=None):
    """derive_inventory_status as a SQL expression, for filtering on the live status."""
    return case(
        (BloodInventory.expiry_date <= (now or utcnow()), 'Expired'),
        (BloodInventory.units_available == 0, 'Out of Stock'),
        (BloodInventory.units_available <= BloodInventory.minimum_threshold, 'Low Stock'),
        else_='Available',
    )


@event.listens_for(BloodInventory, 'before_insert')
@event.listens_for(BloodInventory, 'before_update')
def _recompute_status(mapper, connection, target):
    target.status = derive_inventory_status(
        target.units_available or 0, target.minimum_threshold or 0, target.expiry_date,
    )
