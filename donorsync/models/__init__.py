from donorsync.models.user_model import User
from donorsync.models.donor_model import Donor
from donorsync.models.blood_request_model import BloodRequest
from donorsync.models.request_response_model import RequestResponse
from donorsync.models.donation_model import Donation
from donorsync.models.certificate_model import Certificate
from donorsync.models.blood_inventory_model import BloodInventory

__all__ = [
    'User', 'Donor', 'BloodRequest', 'RequestResponse', 'Donation', 'Certificate', 'BloodInventory',
]
