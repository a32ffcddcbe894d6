from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from donorsync.schemas.common import blood_type_value, naive_utc

LocationType = Literal['Hospital', 'Blood Bank', 'Medical Camp', 'Mobile Unit']


class InventoryCreate(BaseModel):
    location_name: str = Field(min_length=1, max_length=120)
    location_type: LocationType = 'Hospital'
    city: str = Field(min_length=1, max_length=50)
    state: str = Field(min_length=1, max_length=50)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    phone: Optional[str] = Field(default=None, max_length=20)
    blood_type: str
    units_available: int = Field(ge=0)
    units_reserved: int = Field(default=0, ge=0)
    minimum_threshold: int = Field(default=5, ge=0)
    max_capacity: int = Field(ge=1)
    expiry_date: datetime
    collection_date: datetime
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        return blood_type_value(value)

    @field_validator('expiry_date', 'collection_date')
    @classmethod
    def to_utc(cls, value):
        return naive_utc(value)

    @model_validator(mode='after')
    def check_quantities(self):
        if self.units_reserved > self.units_available:
            raise ValueError('units_reserved cannot exceed units_available')
        if self.units_available > self.max_capacity:
            raise ValueError('units_available cannot exceed max_capacity')
        if self.collection_date >= self.expiry_date:
            raise ValueError('collection_date must be before expiry_date')
        return self


class InventoryUpdate(BaseModel):
    units_available: Optional[int] = Field(default=None, ge=0)
    units_reserved: Optional[int] = Field(default=None, ge=0)
    minimum_threshold: Optional[int] = Field(default=None, ge=0)
    max_capacity: Optional[int] = Field(default=None, ge=1)
    expiry_date: Optional[datetime] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator('expiry_date')
    @classmethod
    def to_utc(cls, value):
        return naive_utc(value)

    def to_columns(self):
        return {field: value for field, value in self.model_dump(exclude_unset=True).items() if value is not None}


class InventoryQuery(BaseModel):
    blood_type: Optional[str] = None
    city: Optional[str] = None
    status: Optional[Literal['Available', 'Low Stock', 'Out of Stock', 'Expired']] = None
    location_type: Optional[LocationType] = None

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        if value is not None and not str(value).strip():
            return None
        return blood_type_value(value)


class ReportQuery(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator('start_date', 'end_date')
    @classmethod
    def to_utc(cls, value):
        return naive_utc(value)
