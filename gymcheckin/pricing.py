from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Tuple

from gymcheckin.models import FacilityType

# Hourly spot-use rates (yen).
PRICE_TABLE = {
    FacilityType.GYM: {
        "weekday": {"daytime": 2750, "evening": 2200},
        "weekend": {"daytime": 2750, "evening": 2750},
    },
    FacilityType.TRAINING: {
        "weekday": {"allday": 2200},
        "weekend": {"allday": 2200},
    },
}

EVENING_STARTS_AT = 17
OPENING_HOUR = 7
CLOSING_HOUR = 21

TIME_SLOTS: Tuple[str, ...] = tuple(f"{h:02d}:00" for h in range(OPENING_HOUR, CLOSING_HOUR))
DURATION_OPTIONS: Tuple[int, ...] = (1, 2, 3, 4)

FACILITIES = {
    FacilityType.GYM: {
        "name": "Gymnasium",
        "description": "Basketball, volleyball and other court sports",
        "operating_hours": "07:00 - 21:00",
    },
    FacilityType.TRAINING: {
        "name": "Training gym",
        "description": "Weight training and cardio",
        "operating_hours": "07:00 - 21:00",
    },
}


def day_kind_for_date(d: date) -> str:
    # Python weekday(): Monday=0 ... Sunday=6
    return "weekend" if d.weekday() >= 5 else "weekday"


def time_slot_for_hour(hour: int) -> str:
    return "daytime" if hour < EVENING_STARTS_AT else "evening"


def parse_start_hour(start_time: str) -> int:
    """Parse an hour-aligned "HH:MM" string; raises ValueError otherwise."""
    raw = (start_time or "").strip()
    parts = raw.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"invalid start time {start_time!r}")
    hh = int(parts[0])
    mm = int(parts[1])
    if hh < 0 or hh > 23 or mm != 0:
        raise ValueError(f"start time must be on the hour, got {start_time!r}")
    return hh


def calculate_end_time(start_time: str, duration: int) -> str:
    return f"{parse_start_hour(start_time) + duration:02d}:00"


def is_valid_end_time(start_time: str, duration: int) -> bool:
    return parse_start_hour(start_time) + duration <= CLOSING_HOUR


def available_durations(start_time: str) -> List[int]:
    return [d for d in DURATION_OPTIONS if is_valid_end_time(start_time, d)]


def hourly_rate(facility_type: FacilityType, day_kind: str, hour: int) -> int:
    if facility_type == FacilityType.TRAINING:
        return PRICE_TABLE[FacilityType.TRAINING][day_kind]["allday"]
    return PRICE_TABLE[FacilityType.GYM][day_kind][time_slot_for_hour(hour)]


@dataclass(frozen=True)
class PriceQuote:
    total_price: int
    breakdown: List[Tuple[int, int]] = field(default_factory=list)  # (hour, price), ascending


def calculate_price(facility_type: FacilityType, on_date: date, start_time: str, duration: int) -> PriceQuote:
    """
    Price a reservation hour by hour.

    Pure: the same inputs always give the same quote, and create charges
    exactly what the preview endpoint shows. Slot validity (opening hours)
    is checked by callers, not here.
    """
    facility_type = FacilityType(facility_type)
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
        raise ValueError(f"duration must be a positive integer, got {duration!r}")

    start_hour = parse_start_hour(start_time)
    day_kind = day_kind_for_date(on_date)

    breakdown: List[Tuple[int, int]] = []
    for hour in range(start_hour, start_hour + duration):
        breakdown.append((hour, hourly_rate(facility_type, day_kind, hour)))

    return PriceQuote(total_price=sum(price for _, price in breakdown), breakdown=breakdown)
