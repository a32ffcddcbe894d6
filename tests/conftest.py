import itertools
from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token

from donorsync import create_app
from donorsync.config import TestConfig
from donorsync.extensions import db
from donorsync.models import BloodRequest, Donation, Donor, User
from donorsync.utils.dates import utcnow

# Connaught Place, New Delhi
ORIGIN = (77.21, 28.57)

_sequence = itertools.count(1)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        return {'Authorization': f'Bearer {create_access_token(identity=str(user.id))}'}
    return _auth_headers


@pytest.fixture
def make_user(app):
    def _make_user(role='user', full_name=None, password='secret123'):
        number = next(_sequence)
        user = User(
            full_name=full_name or f'Test User {number}',
            email=f'user{number}@example.com',
            phone='9876543210',
            role=role,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(role='admin', full_name='Admin')


@pytest.fixture
def make_donor(make_user):
    def _make_donor(blood_type='O-', longitude=ORIGIN[0], latitude=ORIGIN[1], user=None, **overrides):
        user = user or make_user()
        columns = {
            'blood_type': blood_type,
            'age': 30,
            'weight': 70,
            'gender': 'female',
            'is_available': True,
            'is_verified': True,
            'longitude': longitude,
            'latitude': latitude,
            'city': 'New Delhi',
            'state': 'Delhi',
        }
        columns.update(overrides)
        donor = Donor(user_id=user.id, **columns)
        db.session.add(donor)
        db.session.commit()
        return donor
    return _make_donor


@pytest.fixture
def make_request(make_user):
    def _make_request(blood_type='A+', urgency='medium', hours=48, longitude=ORIGIN[0], latitude=ORIGIN[1],
                      requester=None, **overrides):
        requester = requester or make_user()
        columns = {
            'patient_name': 'Patient',
            'blood_type': blood_type,
            'units_needed': 2,
            'urgency': urgency,
            'required_by': utcnow() + timedelta(hours=hours),
            'hospital_name': 'AIIMS',
            'hospital_city': 'New Delhi',
            'hospital_state': 'Delhi',
            'hospital_phone': '01126588500',
            'longitude': longitude,
            'latitude': latitude,
            'contact_phone': '9999999999',
            'contact_email': 'family@example.com',
        }
        columns.update(overrides)
        blood_request = BloodRequest(requester_id=requester.id, **columns)
        db.session.add(blood_request)
        db.session.commit()
        return blood_request
    return _make_request


@pytest.fixture
def make_donation(make_donor, make_request):
    def _make_donation(donor=None, blood_request=None, status='completed', overall_result='safe', **overrides):
        donor = donor or make_donor()
        blood_request = blood_request or make_request(blood_type=donor.blood_type)
        columns = {
            'donation_date': utcnow() - timedelta(days=1),
            'volume_donated': 450,
            'blood_type': donor.blood_type,
            'center_name': 'Red Cross Center',
            'center_city': 'New Delhi',
            'center_state': 'Delhi',
            'bag_number': f'BAG-{next(_sequence)}',
        }
        columns.update(overrides)
        donation = Donation(
            donor_id=donor.id, blood_request_id=blood_request.id,
            status=status, overall_result=overall_result, **columns,
        )
        db.session.add(donation)
        db.session.commit()
        return donation
    return _make_donation
