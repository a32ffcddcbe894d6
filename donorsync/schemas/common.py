from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from donorsync.services.compatibility import BLOOD_TYPES, normalize_blood_type
from donorsync.utils.dates import to_naive_utc


def blood_type_value(value):
    """Validator body shared by every schema with a blood type field."""
    if value is None:
        return None
    normalized = normalize_blood_type(value)
    if normalized is None:
        raise ValueError(f"must be one of {', '.join(BLOOD_TYPES)}")
    return normalized


def naive_utc(value):
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return value


class Location(BaseModel):
    longitude: float = Field(ge=-180, le=180)
    latitude: float = Field(ge=-90, le=90)


class Address(BaseModel):
    street: Optional[str] = Field(default=None, max_length=120)
    city: str = Field(min_length=1, max_length=50)
    state: str = Field(min_length=1, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=12)
    country: str = 'India'


class NearbyQuery(BaseModel):
    longitude: float
    latitude: float
    max_distance: float = 50000
    blood_type: Optional[str] = None

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        if value is not None and not str(value).strip():
            return None
        return blood_type_value(value)


class CompatibilityRequest(BaseModel):
    blood_type: str

    @field_validator('blood_type', mode='before')
    @classmethod
    def check_blood_type(cls, value):
        return blood_type_value(value)
