from datetime import timedelta

import pytest

from donorsync.errors import ValidationError
from donorsync.services.compatibility import compatible_recipient_types
from donorsync.services.matching import bounding_box, find_nearby_donors, find_nearby_requests
from donorsync.utils.dates import utcnow
from tests.conftest import ORIGIN

LNG, LAT = ORIGIN


def test_donor_search_respects_radius_and_orders_by_distance(make_donor):
    far = make_donor(latitude=LAT + 0.72)       # ~80 km
    mid = make_donor(latitude=LAT + 0.27)       # ~30 km
    here = make_donor()
    near = make_donor(latitude=LAT + 0.045)     # ~5 km

    matches = find_nearby_donors(LNG, LAT, 50000)

    assert [match.record.id for match in matches] == [here.id, near.id, mid.id]
    assert far.id not in {match.record.id for match in matches}
    assert all(match.distance_m <= 50000 for match in matches)


def test_donor_search_uses_exact_blood_type(make_donor):
    make_donor(blood_type='O-')
    a_positive = make_donor(blood_type='A+')

    matches = find_nearby_donors(LNG, LAT, 10000, blood_type='A+')

    assert [match.record.id for match in matches] == [a_positive.id]


def test_donor_search_skips_unavailable_donors(make_donor):
    make_donor(is_available=False)
    available = make_donor()

    matches = find_nearby_donors(LNG, LAT, 10000)

    assert [match.record.id for match in matches] == [available.id]


def test_donor_search_limit(make_donor):
    for offset in range(5):
        make_donor(latitude=LAT + offset * 0.01)

    assert len(find_nearby_donors(LNG, LAT, 50000, limit=3)) == 3


def test_donor_search_near_the_antimeridian(make_donor):
    east = make_donor(longitude=179.9, latitude=0)
    west = make_donor(longitude=-179.9, latitude=0)

    matches = find_nearby_donors(179.95, 0, 20000)

    assert {match.record.id for match in matches} == {east.id, west.id}


@pytest.mark.parametrize('longitude, latitude, radius', [
    (181, 0, 1000),
    (0, -91, 1000),
    ('east', 0, 1000),
    (0, 0, 0),
    (0, 0, -5),
])
def test_donor_search_rejects_bad_input(app, longitude, latitude, radius):
    with pytest.raises(ValidationError):
        find_nearby_donors(longitude, latitude, radius)


def test_donor_search_rejects_unknown_blood_type(app):
    with pytest.raises(ValidationError):
        find_nearby_donors(LNG, LAT, 1000, blood_type='Q+')


def test_bounding_box_covers_radius():
    min_lng, max_lng, min_lat, max_lat = bounding_box(LNG, LAT, 50000)
    assert min_lat < LAT - 0.45 and max_lat > LAT + 0.45
    assert min_lng < LNG - 0.5 and max_lng > LNG + 0.5


def test_bounding_box_drops_longitude_bounds_near_pole():
    min_lng, max_lng, _, max_lat = bounding_box(0, 89.9, 50000)
    assert min_lng is None and max_lng is None
    assert max_lat == 90.0


def test_request_search_end_to_end(make_request):
    o_negative = make_request('O-', urgency='critical', hours=12, latitude=LAT - 0.03)
    a_positive = make_request('A+', urgency='critical', hours=48, latitude=LAT + 0.02)
    ab_negative = make_request('AB-', urgency='high', hours=24, latitude=LAT + 0.05)
    make_request('B+', urgency='critical', latitude=LAT + 0.54)   # ~60 km
    make_request('O+', urgency='critical', latitude=LAT + 0.6)    # compatible, ~66 km

    matches = find_nearby_requests(LNG, LAT, 50000, donor_blood_type='O-')

    assert [match.record.id for match in matches] == [o_negative.id, a_positive.id, ab_negative.id]


def test_request_search_excludes_incompatible_types(make_request):
    make_request('B+')
    make_request('O-')
    ab_positive = make_request('AB+', urgency='low')
    a_positive = make_request('A+', urgency='low', hours=24)

    matches = find_nearby_requests(LNG, LAT, 10000, donor_blood_type='A+')

    assert [match.record.id for match in matches] == [a_positive.id, ab_positive.id]
    assert all(match.record.blood_type in compatible_recipient_types('A+') for match in matches)


def test_request_search_only_returns_open_future_requests(make_request):
    open_request = make_request('A+', status='partially_fulfilled', units_fulfilled=1)
    make_request('A+', status='fulfilled')
    make_request('A+', status='cancelled')
    make_request('A+', required_by=utcnow() - timedelta(hours=1))

    matches = find_nearby_requests(LNG, LAT, 10000)

    assert [match.record.id for match in matches] == [open_request.id]


def test_request_search_is_read_only(make_request):
    stale = make_request('A+', required_by=utcnow() - timedelta(hours=1))

    find_nearby_requests(LNG, LAT, 10000)

    assert stale.status == 'active'


def test_nearby_requests_endpoint_decodes_plus_sign(client, make_request):
    make_request('AB+')
    make_request('A+')

    # An unescaped "+" arrives as a space
    response = client.get(f'/api/v1/bloodrequests/nearby?longitude={LNG}&latitude={LAT}&blood_type=AB+')

    assert response.status_code == 200
    body = response.get_json()
    assert body['count'] == 1
    assert body['requests'][0]['blood_type'] == 'AB+'
    assert 'distance_km' in body['requests'][0]
    assert 'email' not in body['requests'][0]['contact_info']


def test_nearby_donors_endpoint(client, make_donor):
    make_donor(blood_type='B-', latitude=LAT + 0.01)

    response = client.get('/api/v1/donors/nearby', query_string={
        'longitude': LNG, 'latitude': LAT, 'max_distance': 5000, 'blood_type': 'B-',
    })

    assert response.status_code == 200
    donors = response.get_json()['donors']
    assert len(donors) == 1
    assert donors[0]['blood_type'] == 'B-'
    assert 'email' not in donors[0]


def test_nearby_endpoint_rejects_out_of_range_point(client):
    response = client.get('/api/v1/donors/nearby', query_string={'longitude': 200, 'latitude': 10})

    assert response.status_code == 400
    assert response.get_json()['error']['reason'] == 'invalid_coordinates'


def test_nearby_endpoint_requires_coordinates(client):
    response = client.get('/api/v1/donors/nearby')

    assert response.status_code == 400
    fields = {detail['field'] for detail in response.get_json()['error']['details']}
    assert fields == {'longitude', 'latitude'}
