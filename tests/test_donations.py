from datetime import timedelta

import pytest

from donorsync.errors import PreconditionError
from donorsync.extensions import db
from donorsync.models import Donation
from donorsync.services import certificates, donations
from donorsync.utils.dates import utcnow


@pytest.fixture
def scheduled(make_donor, make_request):
    donor = make_donor(blood_type='A+')
    blood_request = make_request('A+', units_needed=2)
    return {
        'donor': donor,
        'request': blood_request,
        'make': lambda make_donation, **kw: make_donation(
            donor=donor, blood_request=blood_request, status='scheduled', overall_result='pending', **kw),
    }


def test_bag_expiry_defaults_to_shelf_life(make_donation):
    donation = make_donation()

    assert donation.bag_expiry_date == donation.donation_date + timedelta(days=35)


def test_complete_updates_donor_and_request(make_donation, scheduled):
    donation = scheduled['make'](make_donation)

    donations.complete_donation(donation)

    donor, blood_request = scheduled['donor'], scheduled['request']
    assert donation.status == 'completed'
    assert donor.is_available is False
    assert donor.last_donation_date == donation.donation_date
    assert donor.donation_count == 1
    assert donor.total_volume_donated == 450
    assert blood_request.units_fulfilled == 1
    assert blood_request.status == 'partially_fulfilled'


def test_older_donation_keeps_latest_donation_date(make_donation, scheduled):
    donor = scheduled['donor']
    recent = scheduled['make'](make_donation, donation_date=utcnow() - timedelta(days=1))
    older = scheduled['make'](make_donation, donation_date=utcnow() - timedelta(days=100))

    donations.complete_donation(recent)
    donations.complete_donation(older)

    assert donor.last_donation_date == recent.donation_date
    assert donor.donation_count == 2
    assert donor.is_eligible_to_donate() is False
    with pytest.raises(PreconditionError):
        donor.set_availability(True)
    assert donor.is_available is False


def test_request_is_fulfilled_by_last_unit(make_donation, scheduled):
    donations.complete_donation(scheduled['make'](make_donation))
    donations.complete_donation(scheduled['make'](make_donation))

    assert scheduled['request'].status == 'fulfilled'
    assert scheduled['request'].units_fulfilled == 2


def test_overfulfillment_needs_override(make_donation, make_donor, make_request):
    blood_request = make_request('O+', units_needed=1, units_fulfilled=1, status='fulfilled')
    donation = make_donation(donor=make_donor(blood_type='O+'), blood_request=blood_request,
                             status='scheduled', overall_result='pending')

    with pytest.raises(PreconditionError) as excinfo:
        donations.complete_donation(donation)
    assert excinfo.value.reason == 'request_overfulfilled'
    assert blood_request.units_fulfilled == 1

    donations.complete_donation(donation, allow_overfulfill=True)
    assert blood_request.units_fulfilled == 2
    assert blood_request.status == 'fulfilled'


@pytest.mark.parametrize('status', ['cancelled', 'expired'])
def test_closed_request_needs_override(make_donation, make_donor, make_request, status):
    blood_request = make_request('O+', units_needed=2, status=status)
    donation = make_donation(donor=make_donor(blood_type='O+'), blood_request=blood_request,
                             status='scheduled', overall_result='pending')

    with pytest.raises(PreconditionError) as excinfo:
        donations.complete_donation(donation)
    assert excinfo.value.reason == 'request_closed'
    assert blood_request.units_fulfilled == 0
    assert donation.status == 'scheduled'

    donations.complete_donation(donation, allow_overfulfill=True)
    assert blood_request.units_fulfilled == 1
    assert blood_request.status == status


def test_completed_donation_cannot_complete_again(make_donation):
    donation = make_donation(status='completed')

    with pytest.raises(PreconditionError):
        donations.complete_donation(donation)


def test_record_test_results_merges_details(make_donation):
    donation = make_donation(overall_result='pending')

    donations.record_test_results(donation, 'safe', {'hiv': 'negative'})
    donations.record_test_results(donation, None, {'malaria': 'negative'})

    assert donation.overall_result == 'safe'
    assert donation.test_results == {'hiv': 'negative', 'malaria': 'negative'}


def test_create_donation_requires_admin(client, auth_headers, make_user):
    response = client.post('/api/v1/donations/', headers=auth_headers(make_user()), json={})

    assert response.status_code == 403


def test_admin_records_donation(client, auth_headers, admin, make_donor, make_request):
    donor = make_donor(blood_type='B-')
    blood_request = make_request('B+')
    donation_date = (utcnow() - timedelta(hours=2)).replace(microsecond=0)

    response = client.post('/api/v1/donations/', headers=auth_headers(admin), json={
        'donor_id': donor.id,
        'blood_request_id': blood_request.id,
        'donation_date': donation_date.isoformat(),
        'donation_center': {'name': 'City Blood Bank', 'city': 'New Delhi', 'state': 'Delhi'},
        'bag_number': 'BAG-0001',
    })

    assert response.status_code == 201
    body = response.get_json()
    assert body['blood_type'] == 'B-'
    assert body['volume_donated'] == 450
    assert body['status'] == 'scheduled'
    assert body['blood_bag']['expiry_date'] == (donation_date + timedelta(days=35)).isoformat()


def test_admin_donation_volume_is_bounded(client, auth_headers, admin):
    response = client.post('/api/v1/donations/', headers=auth_headers(admin), json={
        'donor_id': 1, 'blood_request_id': 1, 'donation_date': utcnow().isoformat(),
        'donation_center': {'name': 'X', 'city': 'Y', 'state': 'Z'},
        'bag_number': 'BAG-1', 'volume_donated': 600,
    })

    assert response.status_code == 400
    assert 'volume_donated' in {detail['field'] for detail in response.get_json()['error']['details']}


def test_duplicate_bag_number(client, auth_headers, admin, make_donation):
    existing = make_donation()

    response = client.post('/api/v1/donations/', headers=auth_headers(admin), json={
        'donor_id': existing.donor_id,
        'blood_request_id': existing.blood_request_id,
        'donation_date': utcnow().isoformat(),
        'donation_center': {'name': 'X', 'city': 'Y', 'state': 'Z'},
        'bag_number': existing.bag_number,
    })

    assert response.status_code == 409
    assert response.get_json()['error']['reason'] == 'duplicate_bag'


def test_complete_and_test_results_endpoints(client, auth_headers, admin, make_donation, scheduled):
    donation = scheduled['make'](make_donation)
    headers = auth_headers(admin)

    completed = client.put(f'/api/v1/donations/{donation.id}/complete', headers=headers)
    tested = client.put(f'/api/v1/donations/{donation.id}/test-results', headers=headers,
                        json={'overall_result': 'safe', 'hepatitis_b': 'negative'})

    assert completed.status_code == 200
    assert completed.get_json()['status'] == 'completed'
    assert tested.get_json()['test_results'] == {'hepatitis_b': 'negative', 'overall_result': 'safe'}


def test_donation_visibility(client, auth_headers, make_donation, make_user):
    donation = make_donation()
    url = f'/api/v1/donations/{donation.id}'

    assert client.get(url, headers=auth_headers(donation.donor.user)).status_code == 200
    assert client.get(url, headers=auth_headers(donation.blood_request.requester)).status_code == 200
    assert client.get(url, headers=auth_headers(make_user())).status_code == 403


def test_my_donations(client, auth_headers, make_donation):
    donation = make_donation()

    response = client.get('/api/v1/donations/mine', headers=auth_headers(donation.donor.user))

    assert [item['id'] for item in response.get_json()['items']] == [donation.id]


def test_update_cannot_set_completed(client, auth_headers, admin, make_donation):
    donation = make_donation(status='scheduled')

    response = client.put(f'/api/v1/donations/{donation.id}', headers=auth_headers(admin),
                          json={'status': 'completed'})

    assert response.status_code == 400
    assert db.session.get(Donation, donation.id).status == 'scheduled'


def test_statistics(make_donation):
    make_donation(volume_donated=400)
    make_donation(volume_donated=500, overall_result='unsafe')
    make_donation(status='scheduled', overall_result='pending')

    stats = donations.statistics()

    assert stats['overview']['total_donations'] == 3
    assert stats['overview']['completed_donations'] == 2
    assert stats['overview']['total_volume'] == 900
    assert stats['overview']['safety_rate'] == 50.0


def test_admin_deletes_donation(client, auth_headers, admin, make_user, make_donation):
    donation = make_donation(status='scheduled', overall_result='pending')
    url = f'/api/v1/donations/{donation.id}'

    assert client.delete(url, headers=auth_headers(make_user())).status_code == 403
    assert client.delete(url, headers=auth_headers(admin)).status_code == 200
    assert db.session.get(Donation, donation.id) is None


def test_certified_donation_cannot_be_deleted(make_donation):
    donation = make_donation()
    certificates.issue(donation.id, donation.donor.user)

    with pytest.raises(PreconditionError) as excinfo:
        donations.delete_donation(donation)
    assert excinfo.value.reason == 'donation_has_certificate'
