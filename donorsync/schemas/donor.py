from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from donorsync.schemas.common import Address, Location, blood_type_value, naive_utc
from donorsync.utils.dates import utcnow


class EmergencyContact(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=5, max_length=20)
    relationship: Optional[str] = Field(default=None, max_length=50)


class DonorRegistration(BaseModel):
    blood_type: str
    age: int = Field(ge=18, le=65)
    weight: float = Field(ge=50)
    gender: Literal['male', 'female', 'other']
    is_available: bool = True
    last_donation_date: Optional[datetime] = None
    location: Location
    address: Address
    medical_history: dict = Field(default_factory=dict)
    emergency_contact: Optional[EmergencyContact] = None
    contact_preferences: dict = Field(default_factory=dict)

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        return blood_type_value(value)

    @field_validator('last_donation_date')
    @classmethod
    def not_in_future(cls, value):
        value = naive_utc(value)
        if value is not None and value > utcnow():
            raise ValueError('cannot be in the future')
        return value

    def to_columns(self):
        return {
            'blood_type': self.blood_type,
            'age': self.age,
            'weight': self.weight,
            'gender': self.gender,
            'is_available': self.is_available,
            'last_donation_date': self.last_donation_date,
            'longitude': self.location.longitude,
            'latitude': self.location.latitude,
            'street': self.address.street,
            'city': self.address.city,
            'state': self.address.state,
            'zip_code': self.address.zip_code,
            'country': self.address.country,
            'medical_history': self.medical_history,
            'emergency_contact': self.emergency_contact.model_dump() if self.emergency_contact else {},
            'contact_preferences': self.contact_preferences,
        }


class DonorUpdate(BaseModel):
    """Fields a donor may change on their own profile."""
    age: Optional[int] = Field(default=None, ge=18, le=65)
    weight: Optional[float] = Field(default=None, ge=50)
    location: Optional[Location] = None
    address: Optional[Address] = None
    medical_history: Optional[dict] = None
    emergency_contact: Optional[EmergencyContact] = None
    contact_preferences: Optional[dict] = None

    def to_columns(self):
        changes = self.model_dump(exclude_unset=True, exclude={'location', 'address', 'emergency_contact'})
        if self.location is not None:
            changes.update(longitude=self.location.longitude, latitude=self.location.latitude)
        if self.address is not None:
            changes.update(self.address.model_dump())
        if self.emergency_contact is not None:
            changes['emergency_contact'] = self.emergency_contact.model_dump()
        return {field: value for field, value in changes.items() if value is not None}


class AvailabilityUpdate(BaseModel):
    is_available: bool


class DonorListQuery(BaseModel):
    blood_type: Optional[str] = None
    city: Optional[str] = None

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        if value is not None and not str(value).strip():
            return None
        return blood_type_value(value)
