import json
import re

import pytest

from donorsync.errors import AuthorizationError, NotFoundError, PreconditionError, ValidationError
from donorsync.extensions import db, mail
from donorsync.models import Certificate
from donorsync.services import certificates


@pytest.fixture
def donation(make_donation):
    return make_donation()


@pytest.fixture
def owner(donation):
    return donation.donor.user


@pytest.fixture
def issued(donation, owner):
    return certificates.issue(donation.id, owner)


def test_issue_creates_certificate_with_identifiers(donation, owner):
    certificate = certificates.issue(donation.id, owner)

    assert re.fullmatch(r'CERT-\d{13}-[0-9A-Z]{5}', certificate.certificate_id)
    assert re.fullmatch(r'[0-9A-Z]{16,}', certificate.verification_code)
    assert certificate.status == 'issued'
    assert certificate.version == '1.0'
    assert certificate.donor_id == owner.id
    assert certificate.blood_type == donation.blood_type
    assert donation.certificate_generated is True
    assert donation.certificate_ref == certificate.certificate_id


def test_issue_stores_qr_payload(issued, owner):
    payload = json.loads(issued.qr_data)

    assert payload['certificate_id'] == issued.certificate_id
    assert payload['verification_code'] == issued.verification_code
    assert payload['verification_url'] == f'http://frontend.test/verify/{issued.verification_code}'
    assert payload['donor_name'] == owner.full_name


def test_identifier_generators():
    assert certificates.generate_certificate_id(now_ms=1700000000000).startswith('CERT-1700000000000-')
    code = certificates.generate_verification_code(now_ms=36 ** 3)
    assert code.startswith('1000') and len(code) == 12


@pytest.mark.parametrize('status, result', [
    ('completed', 'pending'),
    ('completed', 'unsafe'),
    ('scheduled', 'safe'),
    ('processing', 'safe'),
])
def test_issue_rejects_ineligible_donations(make_donation, status, result):
    donation = make_donation(status=status, overall_result=result)

    with pytest.raises(PreconditionError) as excinfo:
        certificates.issue(donation.id, donation.donor.user)

    assert excinfo.value.reason == 'donation_not_eligible'
    assert Certificate.query.count() == 0
    assert donation.certificate_generated is False


def test_issue_rejects_other_users(donation, make_user):
    with pytest.raises(AuthorizationError):
        certificates.issue(donation.id, make_user())
    assert Certificate.query.count() == 0


def test_issue_unknown_donation(make_user):
    with pytest.raises(NotFoundError):
        certificates.issue(9999, make_user())


def test_second_issue_is_rejected(donation, owner, issued):
    with pytest.raises(PreconditionError) as excinfo:
        certificates.issue(donation.id, owner)

    assert excinfo.value.reason == 'certificate_exists'
    assert Certificate.query.count() == 1


def test_concurrent_issue_loses_on_unique_constraint(donation, owner, issued, monkeypatch):
    # Simulate a second request that passed the existence check before the first committed
    monkeypatch.setattr(certificates, '_existing_certificate', lambda donation_id: None)

    with pytest.raises(PreconditionError) as excinfo:
        certificates.issue(donation.id, owner)

    assert excinfo.value.reason == 'certificate_exists'
    assert Certificate.query.count() == 1
    assert Certificate.query.one().certificate_id == issued.certificate_id


def test_issue_sends_certificate_email(donation, owner):
    with mail.record_messages() as outbox:
        certificates.issue(donation.id, owner)

    assert len(outbox) == 1
    assert outbox[0].recipients == [owner.email]
    assert outbox[0].subject == 'Your Blood Donation Certificate is Ready!'


def test_email_failure_does_not_fail_issue(donation, owner, monkeypatch):
    def broken_send(message):
        raise ConnectionRefusedError('smtp down')

    monkeypatch.setattr(mail, 'send', broken_send)

    certificate = certificates.issue(donation.id, owner)

    assert certificate.status == 'issued'
    assert Certificate.query.count() == 1


def test_verify_returns_public_view(issued, owner):
    view = certificates.verify(issued.verification_code)

    assert view['is_valid'] is True
    assert view['certificate_id'] == issued.certificate_id
    assert view['donor_name'] == owner.full_name
    assert 'verification_code' not in view


def test_verify_revoked_and_unknown_codes_look_the_same(client, issued, owner):
    certificates.revoke(issued.certificate_id, 'Entered in error', owner)

    revoked = client.get(f'/api/v1/certificates/verify/{issued.verification_code}')
    unknown = client.get('/api/v1/certificates/verify/NOSUCHCODE123')

    assert revoked.status_code == unknown.status_code == 404
    assert revoked.get_json() == unknown.get_json()
    assert revoked.get_json()['error']['reason'] == 'invalid_certificate'


def test_verify_endpoint_is_public(client, issued):
    response = client.get(f'/api/v1/certificates/verify/{issued.verification_code}')

    assert response.status_code == 200
    assert response.get_json()['certificate_id'] == issued.certificate_id


@pytest.mark.parametrize('reason', [None, '', '   '])
def test_revoke_requires_reason(issued, owner, reason):
    with pytest.raises(ValidationError):
        certificates.revoke(issued.certificate_id, reason, owner)
    assert issued.status == 'issued'


def test_revoke_is_terminal(issued, owner):
    certificate = certificates.revoke(issued.certificate_id, 'Duplicate record', owner)

    assert certificate.status == 'revoked'
    assert certificate.revocation_reason == 'Duplicate record'
    assert certificate.revoked_at is not None
    with pytest.raises(PreconditionError):
        certificates.revoke(issued.certificate_id, 'Again', owner)
    with pytest.raises(PreconditionError):
        certificates.regenerate(issued.certificate_id, owner)


def test_revoke_by_stranger_is_forbidden(issued, make_user):
    with pytest.raises(AuthorizationError):
        certificates.revoke(issued.certificate_id, 'Not mine', make_user())


def test_admin_can_revoke_by_primary_key(issued, admin):
    certificate = certificates.revoke(str(issued.id), 'Audit finding', admin)

    assert certificate.status == 'revoked'
    assert certificate.revoked_by_id == admin.id


def test_regenerate_bumps_version_and_rebuilds_qr(issued, owner):
    first_generated = issued.generated_at

    certificate = certificates.regenerate(issued.certificate_id, owner)

    assert certificate.version == '1.1'
    assert certificate.generated_at >= first_generated
    assert json.loads(certificate.qr_data)['certificate_id'] == issued.certificate_id


def test_version_rolls_over_at_ten_minor_steps(issued, owner):
    for _ in range(10):
        certificates.regenerate(issued.certificate_id, owner)

    assert issued.version == '2.0'


def test_issue_endpoint(client, auth_headers, donation, owner):
    url = f'/api/v1/donations/{donation.id}/certificate'

    first = client.post(url, headers=auth_headers(owner))
    second = client.post(url, headers=auth_headers(owner))

    assert first.status_code == 201
    assert first.get_json()['status'] == 'issued'
    assert second.status_code == 409
    assert second.get_json()['error']['reason'] == 'certificate_exists'


def test_issue_endpoint_pending_result(client, auth_headers, make_donation):
    donation = make_donation(overall_result='pending')

    response = client.post(f'/api/v1/donations/{donation.id}/certificate',
                           headers=auth_headers(donation.donor.user))

    assert response.status_code == 409
    assert response.get_json()['error']['reason'] == 'donation_not_eligible'
    assert Certificate.query.count() == 0


def test_issue_endpoint_requires_token(client, donation):
    response = client.post(f'/api/v1/donations/{donation.id}/certificate')

    assert response.status_code == 401
    assert response.get_json()['error']['reason'] == 'missing_token'


def test_list_and_get_own_certificates(client, auth_headers, issued, owner, make_user):
    listing = client.get('/api/v1/certificates/', headers=auth_headers(owner))
    single = client.get(f'/api/v1/certificates/{issued.certificate_id}', headers=auth_headers(owner))
    stranger = client.get(f'/api/v1/certificates/{issued.certificate_id}', headers=auth_headers(make_user()))

    assert listing.get_json()['pagination']['total_count'] == 1
    assert single.get_json()['certificate_id'] == issued.certificate_id
    assert stranger.status_code == 403


def test_listing_all_certificates_needs_admin(client, auth_headers, issued, owner, admin):
    assert client.get('/api/v1/certificates/?all=true', headers=auth_headers(owner)).status_code == 403
    response = client.get('/api/v1/certificates/?all=true', headers=auth_headers(admin))
    assert response.get_json()['pagination']['total_count'] == 1


def test_download_and_share(client, auth_headers, issued, owner):
    headers = auth_headers(owner)

    client.post(f'/api/v1/certificates/{issued.certificate_id}/download', headers=headers)
    download = client.post(f'/api/v1/certificates/{issued.certificate_id}/download', headers=headers)
    share = client.post(f'/api/v1/certificates/{issued.certificate_id}/share', headers=headers,
                        json={'is_public': True, 'platform': 'twitter'})

    assert download.get_json()['download_count'] == 2
    sharing = share.get_json()
    assert sharing['is_publicly_shared'] is True
    assert sharing['social_media_shared']['twitter'] is True
    assert sharing['shareable_link'] == f'http://frontend.test/verify/{issued.verification_code}'
    assert sharing['shareable_link'] == json.loads(issued.qr_data)['verification_url']


def test_resend_email_endpoint(client, auth_headers, issued, owner):
    with mail.record_messages() as outbox:
        response = client.post(f'/api/v1/certificates/{issued.certificate_id}/send-email',
                               headers=auth_headers(owner))

    assert response.status_code == 202
    assert len(outbox) == 1


def test_statistics(issued, owner, make_donation):
    second = make_donation()
    certificates.issue(second.id, second.donor.user)
    certificates.revoke(issued.certificate_id, 'Replaced', owner)

    stats = certificates.statistics()

    assert stats['total'] == 2
    assert stats['by_status']['issued'] == 1
    assert stats['by_status']['revoked'] == 1
