import pytest

from donorsync.services.compatibility import (
    BLOOD_TYPES, compatible_donor_types, compatible_recipient_types, normalize_blood_type,
)


def test_universal_donor_gives_to_every_type():
    assert set(compatible_recipient_types('O-')) == set(BLOOD_TYPES)


def test_ab_positive_gives_only_to_itself():
    assert compatible_recipient_types('AB+') == ('AB+',)


@pytest.mark.parametrize('donor, recipients', [
    ('O+', {'O+', 'A+', 'B+', 'AB+'}),
    ('A-', {'A-', 'A+', 'AB-', 'AB+'}),
    ('B+', {'B+', 'AB+'}),
    ('AB-', {'AB-', 'AB+'}),
])
def test_donor_rows(donor, recipients):
    assert set(compatible_recipient_types(donor)) == recipients


def test_receiving_side_is_the_inverse_of_the_table():
    assert set(compatible_donor_types('AB+')) == set(BLOOD_TYPES)
    assert compatible_donor_types('O-') == ('O-',)
    assert set(compatible_donor_types('A+')) == {'A+', 'A-', 'O+', 'O-'}


def test_unknown_type_has_no_recipients():
    assert compatible_recipient_types('C+') == ()


@pytest.mark.parametrize('raw, expected', [
    ('A+', 'A+'),
    ('o-', 'O-'),
    (' ab+ ', 'AB+'),
    ('AB ', 'AB+'),
    ('O ', 'O+'),
    ('A', None),
    ('Z+', None),
    (None, None),
])
def test_normalize_blood_type(raw, expected):
    assert normalize_blood_type(raw) == expected


def test_compatibility_endpoint(client):
    response = client.post('/api/v1/compatibility/', json={'blood_type': 'O-'})

    assert response.status_code == 200
    body = response.get_json()
    assert set(body['can_give_to']) == set(BLOOD_TYPES)
    assert body['can_receive_from'] == ['O-']


def test_compatibility_endpoint_rejects_unknown_type(client):
    response = client.post('/api/v1/compatibility/', json={'blood_type': 'Q'})

    assert response.status_code == 400
    error = response.get_json()['error']
    assert error['reason'] == 'validation_failed'
    assert error['details'][0]['field'] == 'blood_type'
