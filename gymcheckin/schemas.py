# gymcheckin/schemas.py

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime
from datetime import date as Date

from gymcheckin.models import FacilityType, CheckinStatus


class CamelModel(BaseModel):
    # The public API speaks camelCase; Python code uses snake_case names.
    model_config = {"alias_generator": to_camel, "populate_by_name": True, "from_attributes": True}


# ------------------------------------------------------------------
# USERS
# ------------------------------------------------------------------

class UserOut(CamelModel):
    id: int
    line_user_id: str
    display_name: str
    picture_url: Optional[str] = None


# ------------------------------------------------------------------
# PRICES
# ------------------------------------------------------------------

class SlotRequest(CamelModel):
    facility_type: FacilityType
    date: Date
    start_time: str
    duration: int


class PriceLine(CamelModel):
    hour: int
    price: int


class PriceQuoteOut(CamelModel):
    total_price: int
    breakdown: List[PriceLine] = []


class FacilityOut(CamelModel):
    id: FacilityType
    name: str
    description: str
    operating_hours: str


class FacilityCatalog(CamelModel):
    facilities: List[FacilityOut]
    time_slots: List[str]
    duration_options: List[int]


# ------------------------------------------------------------------
# CHECKINS
# ------------------------------------------------------------------

class CheckinCreate(SlotRequest):
    pass


class CheckinOut(CamelModel):
    id: str
    user_id: int
    facility_type: FacilityType
    date: Date
    start_time: str
    end_time: str
    duration: int
    total_price: int
    pin_code: Optional[str] = None
    payment_reference: Optional[str] = None
    status: CheckinStatus
    cancellable_until: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CheckinCreated(CamelModel):
    checkin: CheckinOut
    payment_url: Optional[str] = None


class MessageOut(BaseModel):
    message: str
