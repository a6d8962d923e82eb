from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from app.dispensations.records import DispensationRecord


class DispensationResponse(DispensationRecord):
    """A dispensation as returned by the API (camelCase keys)."""


class ReturnAttempt(BaseModel):
    latitude: float = Field(..., description="Observed latitude in degrees")
    longitude: float = Field(..., description="Observed longitude in degrees")


class ReturnVerificationResponse(BaseModel):
    accepted: bool
    distance: int
    required_radius: Optional[float] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
