"""Blood inventory records and the dashboard aggregates built on them."""
import logging
from datetime import timedelta

from sqlalchemy import and_, case

from donorsync.errors import NotFoundError, ValidationError
from donorsync.extensions import db
from donorsync.models.blood_inventory_model import EXPIRY_WARNING_DAYS, BloodInventory, status_clause
from donorsync.models.certificate_model import Certificate
from donorsync.models.donation_model import Donation
from donorsync.models.donor_model import Donor
from donorsync.services.compatibility import BLOOD_TYPES
from donorsync.utils.dates import isoformat, utcnow

logger = logging.getLogger(__name__)

LOW_STOCK_TOTAL = 10


def _aggregate_status(total_units):
    if total_units == 0:
        return 'Out of Stock'
    if total_units <= LOW_STOCK_TOTAL:
        return 'Low Stock'
    return 'Available'


def inventory_summary(now=None):
    now = now or utcnow()
    soon = now + timedelta(days=EXPIRY_WARNING_DAYS)
    rows = db.session.query(
        BloodInventory.blood_type,
        db.func.sum(BloodInventory.units_available),
        db.func.sum(BloodInventory.units_reserved),
        db.func.count(db.distinct(BloodInventory.location_name)),
        db.func.sum(case((BloodInventory.units_available <= BloodInventory.minimum_threshold, 1), else_=0)),
        db.func.sum(case((and_(BloodInventory.expiry_date > now, BloodInventory.expiry_date <= soon), 1), else_=0)),
    ).group_by(BloodInventory.blood_type).all()

    by_type = {row[0]: row for row in rows}
    summary = []
    for blood_type in BLOOD_TYPES:
        _, total, reserved, locations, low_stock, expiring = by_type.get(blood_type, (blood_type, 0, 0, 0, 0, 0))
        total, reserved = int(total or 0), int(reserved or 0)
        summary.append({
            'blood_type': blood_type,
            'total_units': total,
            'reserved_units': reserved,
            'available_units': total - reserved,
            'location_count': locations or 0,
            'low_stock_locations': int(low_stock or 0),
            'expiring_soon': int(expiring or 0),
            'status': _aggregate_status(total),
        })
    return summary


def location_inventory():
    locations = {}
    for item in BloodInventory.query.order_by(BloodInventory.city, BloodInventory.location_name).all():
        key = (item.location_name, item.city, item.location_type)
        entry = locations.setdefault(key, {
            'location': {'name': item.location_name, 'city': item.city, 'type': item.location_type},
            'blood_types': [],
            'total_units': 0,
        })
        entry['blood_types'].append({
            'blood_type': item.blood_type,
            'units': item.units_available,
            'reserved': item.units_reserved,
            'status': item.current_status,
        })
        entry['total_units'] += item.units_available
    for entry in locations.values():
        total = entry['total_units']
        entry['status'] = 'No Stock' if total == 0 else 'Low Stock' if total < 20 else 'Good Stock'
    return list(locations.values())


def alerts(now=None):
    now = now or utcnow()
    soon = now + timedelta(days=EXPIRY_WARNING_DAYS)
    low_stock = BloodInventory.query.filter(
        BloodInventory.units_available <= BloodInventory.minimum_threshold
    ).order_by(BloodInventory.units_available).all()
    expiring = BloodInventory.query.filter(
        BloodInventory.expiry_date > now, BloodInventory.expiry_date <= soon
    ).order_by(BloodInventory.expiry_date).all()
    expired = BloodInventory.query.filter(BloodInventory.expiry_date <= now).all()
    return {
        'low_stock': [item.to_dict() for item in low_stock],
        'expiring_soon': [item.to_dict() for item in expiring],
        'expired': [item.to_dict() for item in expired],
        'total_alerts': len(low_stock) + len(expiring) + len(expired),
    }


def dashboard_stats(start_date=None, end_date=None):
    summary = inventory_summary()
    donations = Donation.query
    if start_date and end_date:
        donations = donations.filter(Donation.donation_date.between(start_date, end_date))
    recent = donations.order_by(Donation.donation_date.desc()).limit(10).all()
    certificate_counts = dict(
        db.session.query(Certificate.status, db.func.count(Certificate.id)).group_by(Certificate.status).all()
    )
    locations = location_inventory()
    low_stock = BloodInventory.query.filter(
        BloodInventory.units_available <= BloodInventory.minimum_threshold
    ).order_by(BloodInventory.units_available).all()

    return {
        'summary': {
            'total_units_available': sum(item['available_units'] for item in summary),
            'total_donors': Donor.query.filter_by(is_available=True).count(),
            'total_donations': donations.count(),
            'total_locations': len(locations),
        },
        'inventory_summary': summary,
        'location_inventory': locations,
        'recent_donations': [donation.summary_dict() for donation in recent],
        'certificates': {
            'issued': certificate_counts.get('issued', 0),
            'draft': certificate_counts.get('draft', 0),
            'revoked': certificate_counts.get('revoked', 0),
            'total': sum(certificate_counts.values()),
        },
        'low_stock_alerts': [item.to_dict() for item in low_stock],
    }


def get_item(item_id):
    item = db.session.get(BloodInventory, item_id)
    if item is None:
        raise NotFoundError('Inventory item not found')
    return item


def list_items(blood_type=None, city=None, status=None, location_type=None, now=None):
    query = BloodInventory.query
    if blood_type:
        query = query.filter(BloodInventory.blood_type == blood_type)
    if city:
        query = query.filter(BloodInventory.city.ilike(f'%{city}%'))
    if status:
        query = query.filter(status_clause(now) == status)
    if location_type:
        query = query.filter(BloodInventory.location_type == location_type)
    return query.order_by(BloodInventory.expiry_date)


def create_item(user, columns):
    item = BloodInventory(created_by_id=user.id, last_updated_by_id=user.id, **columns)
    db.session.add(item)
    db.session.commit()
    logger.info('Inventory %s added: %d units of %s at %s', item.id, item.units_available,
                item.blood_type, item.location_name)
    return item


def update_item(item, user, columns):
    for field, value in columns.items():
        setattr(item, field, value)
    if item.units_reserved > item.units_available:
        raise ValidationError('units_reserved cannot exceed units_available',
                              details=[{'field': 'units_reserved', 'message': 'exceeds units_available'}])
    if item.units_available > item.max_capacity:
        raise ValidationError('units_available cannot exceed max_capacity',
                              details=[{'field': 'units_available', 'message': 'exceeds max_capacity'}])
    item.last_updated_by_id = user.id
    db.session.commit()
    return item


def delete_item(item):
    db.session.delete(item)
    db.session.commit()


def report(start_date=None, end_date=None, now=None):
    """Full inventory snapshot with donations for the period, for export."""
    now = now or utcnow()
    soon = now + timedelta(days=EXPIRY_WARNING_DAYS)
    items = BloodInventory.query.order_by(
        BloodInventory.city, BloodInventory.location_name, BloodInventory.blood_type,
    ).all()
    donations = Donation.query
    if start_date and end_date:
        donations = donations.filter(Donation.donation_date.between(start_date, end_date))
    donations = donations.order_by(Donation.donation_date.desc())
    summary = inventory_summary(now)
    locations = location_inventory()

    return {
        'generated_at': isoformat(now),
        'period': {'start_date': isoformat(start_date), 'end_date': isoformat(end_date)},
        'summary': {
            'total_locations': len(locations),
            'total_units_available': sum(row['available_units'] for row in summary),
            'total_donations': donations.count(),
            'blood_type_breakdown': summary,
        },
        'inventory': [item.to_dict() for item in items],
        'locations': locations,
        'recent_donations': [donation.summary_dict() for donation in donations.limit(50).all()],
        'alerts': {
            'low_stock': [item.id for item in items if item.units_available <= item.minimum_threshold],
            'expiring': [item.id for item in items if now < item.expiry_date <= soon],
            'expired': [item.id for item in items if item.expiry_date <= now],
        },
    }
