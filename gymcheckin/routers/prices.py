# gymcheckin/routers/prices.py
from fastapi import APIRouter, Depends

from gymcheckin import schemas
from gymcheckin.auth import get_current_user
from gymcheckin.lifecycle import quote
from gymcheckin.pricing import DURATION_OPTIONS, FACILITIES, TIME_SLOTS

router = APIRouter(prefix="/api", tags=["prices"])


@router.post("/prices/calculate", response_model=schemas.PriceQuoteOut)
def calculate(data: schemas.SlotRequest, _=Depends(get_current_user)):
    """Preview only: same validation and price as create, nothing is stored."""
    result = quote(data.facility_type, data.date, data.start_time, data.duration)
    return {
        "total_price": result.total_price,
        "breakdown": [{"hour": hour, "price": price} for hour, price in result.breakdown],
    }


@router.get("/facilities", response_model=schemas.FacilityCatalog)
def facilities():
    return {
        "facilities": [{"id": facility_type, **info} for facility_type, info in FACILITIES.items()],
        "time_slots": list(TIME_SLOTS),
        "duration_options": list(DURATION_OPTIONS),
    }
