from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from donorsync.schemas.common import Location, blood_type_value, naive_utc
from donorsync.utils.dates import utcnow

Urgency = Literal['low', 'medium', 'high', 'critical']


def _future(value):
    value = naive_utc(value)
    if value is not None and value <= utcnow():
        raise ValueError('must be in the future')
    return value


class Hospital(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    city: str = Field(min_length=1, max_length=50)
    state: str = Field(min_length=1, max_length=50)
    phone: str = Field(min_length=5, max_length=20)


class ContactInfo(BaseModel):
    phone: str = Field(min_length=5, max_length=20)
    email: Optional[EmailStr] = None


class BloodRequestCreate(BaseModel):
    patient_name: str = Field(min_length=1, max_length=100)
    blood_type: str
    units_needed: int = Field(ge=1, le=10)
    urgency: Urgency = 'medium'
    required_by: datetime
    hospital: Hospital
    location: Location
    description: Optional[str] = Field(default=None, max_length=500)
    contact_info: ContactInfo
    medical_details: dict = Field(default_factory=dict)
    is_emergency: bool = False

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        return blood_type_value(value)

    @field_validator('required_by')
    @classmethod
    def check_required_by(cls, value):
        return _future(value)

    def to_columns(self):
        return {
            'patient_name': self.patient_name,
            'blood_type': self.blood_type,
            'units_needed': self.units_needed,
            'urgency': self.urgency,
            'required_by': self.required_by,
            'hospital_name': self.hospital.name,
            'hospital_city': self.hospital.city,
            'hospital_state': self.hospital.state,
            'hospital_phone': self.hospital.phone,
            'longitude': self.location.longitude,
            'latitude': self.location.latitude,
            'description': self.description,
            'contact_phone': self.contact_info.phone,
            'contact_email': self.contact_info.email,
            'medical_details': self.medical_details,
            'is_emergency': self.is_emergency or self.urgency == 'critical',
        }


class BloodRequestUpdate(BaseModel):
    patient_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    units_needed: Optional[int] = Field(default=None, ge=1, le=10)
    urgency: Optional[Urgency] = None
    required_by: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    contact_info: Optional[ContactInfo] = None
    medical_details: Optional[dict] = None
    is_emergency: Optional[bool] = None

    @field_validator('required_by')
    @classmethod
    def check_required_by(cls, value):
        return _future(value)

    def to_columns(self):
        changes = self.model_dump(exclude_unset=True, exclude={'contact_info'})
        if self.contact_info is not None:
            changes.update(contact_phone=self.contact_info.phone, contact_email=self.contact_info.email)
        return {field: value for field, value in changes.items() if value is not None}


class RespondSchema(BaseModel):
    message: Optional[str] = Field(default=None, max_length=500)


class RequestListQuery(BaseModel):
    blood_type: Optional[str] = None
    urgency: Optional[Urgency] = None
    city: Optional[str] = None

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        if value is not None and not str(value).strip():
            return None
        return blood_type_value(value)
