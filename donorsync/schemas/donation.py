from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from donorsync.schemas.common import blood_type_value, naive_utc

ScreeningResult = Literal['safe', 'unsafe', 'pending']


class DonationCenter(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    city: str = Field(min_length=1, max_length=50)
    state: str = Field(min_length=1, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=20)


class DonationCreate(BaseModel):
    donor_id: int
    blood_request_id: int
    donation_date: datetime
    volume_donated: int = Field(default=450, ge=350, le=500)
    blood_type: Optional[str] = None
    donation_center: DonationCenter
    medical_screening: dict = Field(default_factory=dict)
    staff_details: dict = Field(default_factory=dict)
    notes: dict = Field(default_factory=dict)
    bag_number: str = Field(min_length=1, max_length=40)
    bag_expiry_date: Optional[datetime] = None
    storage_location: Optional[str] = Field(default=None, max_length=80)
    status: Literal['scheduled', 'processing'] = 'scheduled'

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        return blood_type_value(value)

    @field_validator('donation_date', 'bag_expiry_date')
    @classmethod
    def to_utc(cls, value):
        return naive_utc(value)

    def to_columns(self):
        columns = self.model_dump(exclude={'donation_center', 'bag_expiry_date', 'blood_type'})
        columns.update(
            center_name=self.donation_center.name,
            center_city=self.donation_center.city,
            center_state=self.donation_center.state,
            center_phone=self.donation_center.phone,
        )
        if self.bag_expiry_date is not None:
            columns['bag_expiry_date'] = self.bag_expiry_date
        return columns


class DonationUpdate(BaseModel):
    """Completion goes through its own endpoint, so ``completed`` is not accepted here."""
    status: Optional[Literal['scheduled', 'processing', 'cancelled', 'rejected']] = None
    donation_date: Optional[datetime] = None
    volume_donated: Optional[int] = Field(default=None, ge=350, le=500)
    medical_screening: Optional[dict] = None
    staff_details: Optional[dict] = None
    notes: Optional[dict] = None
    storage_location: Optional[str] = Field(default=None, max_length=80)

    @field_validator('donation_date')
    @classmethod
    def to_utc(cls, value):
        return naive_utc(value)

    def to_columns(self):
        return {field: value for field, value in self.model_dump(exclude_unset=True).items() if value is not None}


class ScreeningResults(BaseModel):
    model_config = ConfigDict(extra='allow')

    overall_result: Optional[ScreeningResult] = None

    def details(self):
        return dict(self.model_extra or {})


class CompleteDonation(BaseModel):
    allow_overfulfill: bool = False
