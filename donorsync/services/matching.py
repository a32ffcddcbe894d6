"""Geographic matching of donors and open blood requests.

Candidates are narrowed in SQL with a latitude/longitude bounding box, then
the exact radius is applied with geodesic distance.
"""
import logging
import math
from collections import namedtuple

from geopy.distance import geodesic

from donorsync.errors import ValidationError
from donorsync.models.blood_request_model import OPEN_STATUSES, URGENCY_RANK, BloodRequest
from donorsync.models.donor_model import Donor
from donorsync.services.compatibility import BLOOD_TYPES, compatible_recipient_types
from donorsync.utils.dates import utcnow

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 50000
# Shortest length of one degree of latitude on the WGS84 ellipsoid
MIN_METERS_PER_DEGREE = 110574.0

Match = namedtuple('Match', ['record', 'distance_m'])


def validate_point(longitude, latitude):
    try:
        longitude, latitude = float(longitude), float(latitude)
    except (TypeError, ValueError):
        raise ValidationError('Longitude and latitude must be numbers', reason='invalid_coordinates')
    if math.isnan(longitude) or math.isnan(latitude) \
            or not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
        raise ValidationError('Coordinates are out of range', reason='invalid_coordinates')
    return longitude, latitude


def validate_radius(radius_meters):
    try:
        radius_meters = float(radius_meters)
    except (TypeError, ValueError):
        raise ValidationError('Search radius must be a number', reason='invalid_radius')
    if not radius_meters > 0:
        raise ValidationError('Search radius must be positive', reason='invalid_radius')
    return radius_meters


def validate_blood_type(blood_type):
    if blood_type is not None and blood_type not in BLOOD_TYPES:
        raise ValidationError(f'Unknown blood type {blood_type!r}', reason='invalid_blood_type')
    return blood_type


def bounding_box(longitude, latitude, radius_meters):
    """(min_lng, max_lng, min_lat, max_lat) enclosing the radius; lng bounds are None when unbounded."""
    lat_delta = radius_meters / MIN_METERS_PER_DEGREE
    min_lat, max_lat = latitude - lat_delta, latitude + lat_delta
    if min_lat <= -90 or max_lat >= 90:
        return None, None, max(min_lat, -90.0), min(max_lat, 90.0)

    widest = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
    lng_delta = lat_delta / widest
    min_lng, max_lng = longitude - lng_delta, longitude + lng_delta
    if lng_delta >= 180 or min_lng < -180 or max_lng > 180:
        # Crosses the antimeridian; keep only the latitude band
        return None, None, min_lat, max_lat
    return min_lng, max_lng, min_lat, max_lat


def _within_box(query, model, longitude, latitude, radius_meters):
    min_lng, max_lng, min_lat, max_lat = bounding_box(longitude, latitude, radius_meters)
    query = query.filter(model.latitude.between(min_lat, max_lat))
    if min_lng is not None:
        query = query.filter(model.longitude.between(min_lng, max_lng))
    return query


def _within_radius(records, longitude, latitude, radius_meters):
    origin = (latitude, longitude)
    matches = []
    for record in records:
        distance = geodesic(origin, (record.latitude, record.longitude)).meters
        if distance <= radius_meters:
            matches.append(Match(record, distance))
    return matches


def find_nearby_donors(longitude, latitude, radius_meters=DEFAULT_RADIUS_METERS, blood_type=None, limit=None):
    """Available donors within the radius, nearest first.

    A blood type filters on that exact type only.
    """
    longitude, latitude = validate_point(longitude, latitude)
    radius_meters = validate_radius(radius_meters)
    validate_blood_type(blood_type)

    query = Donor.query.filter(Donor.is_available.is_(True))
    if blood_type:
        query = query.filter(Donor.blood_type == blood_type)
    query = _within_box(query, Donor, longitude, latitude, radius_meters)

    matches = _within_radius(query.all(), longitude, latitude, radius_meters)
    matches.sort(key=lambda match: match.distance_m)
    logger.debug('Donor search at (%s, %s) r=%sm type=%s: %d matches',
                 longitude, latitude, radius_meters, blood_type, len(matches))
    return matches[:limit] if limit else matches


def find_nearby_requests(longitude, latitude, radius_meters=DEFAULT_RADIUS_METERS, donor_blood_type=None):
    """Open requests within the radius a donor of the given type could serve.

    Ordered by urgency (critical first), then by the soonest deadline.
    """
    longitude, latitude = validate_point(longitude, latitude)
    radius_meters = validate_radius(radius_meters)
    validate_blood_type(donor_blood_type)

    query = BloodRequest.query.filter(
        BloodRequest.status.in_(OPEN_STATUSES),
        BloodRequest.required_by > utcnow(),
    )
    if donor_blood_type:
        query = query.filter(BloodRequest.blood_type.in_(compatible_recipient_types(donor_blood_type)))
    query = _within_box(query, BloodRequest, longitude, latitude, radius_meters)

    matches = _within_radius(query.all(), longitude, latitude, radius_meters)
    matches.sort(key=lambda match: (-URGENCY_RANK[match.record.urgency], match.record.required_by))
    logger.debug('Request search at (%s, %s) r=%sm donor type=%s: %d matches',
                 longitude, latitude, radius_meters, donor_blood_type, len(matches))
    return matches


def serialize_match(match, serializer):
    data = serializer(match.record)
    data['distance_km'] = round(match.distance_m / 1000, 2)
    return data
