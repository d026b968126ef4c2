from __future__ import annotations

import secrets
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from gymcheckin import models
from gymcheckin.errors import CancellationWindowExpired, ConflictError, InvalidTransitionError, ValidationError
from gymcheckin.models import CheckinStatus, FacilityType
from gymcheckin.pricing import CLOSING_HOUR, OPENING_HOUR, PriceQuote, calculate_price, parse_start_hour
from gymcheckin.repository import CheckinRepository

CANCELLATION_CUTOFF = timedelta(hours=1)

# Fresh ids make an id collision on create vanishingly rare; a few retries cover it.
CREATE_ATTEMPTS = 3


def generate_pin_code() -> str:
    """Entry code: uniform over 1000-9999, so never a leading zero."""
    return str(1000 + secrets.randbelow(9000))


def make_clock(timezone_name: Optional[str] = None) -> Callable[[], datetime]:
    """
    Naive "facility local" clock.

    Reservation dates and start times are stored as local wall-clock values,
    so "now" has to be read on the same wall clock.
    """
    if not timezone_name:
        return datetime.now
    tz = ZoneInfo(timezone_name)
    return lambda: datetime.now(tz).replace(tzinfo=None)


def reservation_start(checkin: models.Checkin) -> datetime:
    return datetime.combine(checkin.date, time(hour=parse_start_hour(checkin.start_time)))


def validate_slot(facility_type, on_date, start_time, duration) -> Tuple[FacilityType, date, str, int]:
    """
    Normalize and check a requested slot. Raises ValidationError with a
    message the caller can act on.
    """
    if facility_type in (None, "") or on_date in (None, "") or start_time in (None, "") or duration in (None, ""):
        raise ValidationError("Missing required fields")

    try:
        facility = FacilityType(facility_type)
    except ValueError:
        raise ValidationError("Invalid facility type")

    if isinstance(on_date, datetime):
        on_date = on_date.date()
    elif not isinstance(on_date, date):
        try:
            on_date = date.fromisoformat(str(on_date))
        except ValueError:
            raise ValidationError("date must be an ISO calendar date (YYYY-MM-DD)")

    try:
        start_hour = parse_start_hour(start_time)
    except ValueError:
        raise ValidationError("startTime must be an on-the-hour time (HH:00)")

    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
        raise ValidationError("duration must be a positive integer")

    if start_hour < OPENING_HOUR or start_hour + duration > CLOSING_HOUR:
        raise ValidationError(
            f"Reservations must fit within {OPENING_HOUR:02d}:00-{CLOSING_HOUR:02d}:00"
        )

    return facility, on_date, f"{start_hour:02d}:00", duration


def quote(facility_type, on_date, start_time, duration) -> PriceQuote:
    facility, on_date, start_time, duration = validate_slot(facility_type, on_date, start_time, duration)
    return calculate_price(facility, on_date, start_time, duration)


class CheckinLifecycle:
    """
    Owns the state machine of a single reservation:

        PENDING -> PAID -> {USED, EXPIRED}
        PENDING -> CANCELLED

    Every status change goes through the repository's conditional update,
    so a stale caller fails instead of overwriting a newer state.
    """

    def __init__(
        self,
        repository: CheckinRepository,
        payment_bypassed: bool,
        clock: Callable[[], datetime] = datetime.now,
        pin_generator: Callable[[], str] = generate_pin_code,
    ):
        self.repository = repository
        self.payment_bypassed = payment_bypassed
        self.clock = clock
        self.pin_generator = pin_generator

    def create(self, user_id: int, facility_type, on_date, start_time, duration) -> models.Checkin:
        facility, on_date, start_time, duration = validate_slot(facility_type, on_date, start_time, duration)
        price = calculate_price(facility, on_date, start_time, duration)

        if self.payment_bypassed:
            status, pin_code = CheckinStatus.PAID, self.pin_generator()
        else:
            status, pin_code = CheckinStatus.PENDING, None

        last_error: Optional[ConflictError] = None
        for _ in range(CREATE_ATTEMPTS):
            checkin = models.Checkin(
                user_id=user_id,
                facility_type=facility,
                date=on_date,
                start_time=start_time,
                duration=duration,
                total_price=price.total_price,
                pin_code=pin_code,
                payment_reference=None,
                status=status,
            )
            try:
                created = self.repository.create(checkin)
            except ConflictError as e:
                print(f"[CHECKIN] Id collision on create, retrying: {e.detail[:120]}")
                last_error = e
                continue
            print(
                f"[CHECKIN] Created {created.id} user={user_id} {facility.value} "
                f"{on_date} {start_time} x{duration}h total={price.total_price} status={status.value}"
            )
            return created
        raise last_error

    def get(self, checkin_id: str, user_id: int) -> models.Checkin:
        return self.repository.find_by_id_for_user(checkin_id, user_id)

    def list(self, user_id: int) -> List[models.Checkin]:
        return self.repository.list_for_user(user_id)

    def cancellation_deadline(self, checkin: models.Checkin) -> datetime:
        return reservation_start(checkin) - CANCELLATION_CUTOFF

    def cancel(self, checkin_id: str, user_id: int) -> models.Checkin:
        checkin = self.repository.find_by_id_for_user(checkin_id, user_id)

        if checkin.status != CheckinStatus.PENDING:
            raise InvalidTransitionError(
                f"Checkin cannot be cancelled in status {CheckinStatus(checkin.status).value}",
                checkin_id=checkin_id,
            )

        # Cancellable only while strictly more than one hour remains before the start.
        if not self.clock() < self.cancellation_deadline(checkin):
            raise CancellationWindowExpired(checkin_id=checkin_id)

        # A confirmation that got there first (PENDING -> PAID) surfaces here as a ConflictError.
        cancelled = self.repository.update_status(checkin_id, CheckinStatus.PENDING, CheckinStatus.CANCELLED)
        print(f"[CHECKIN] Cancelled {checkin_id} user={user_id}")
        return cancelled

    def mark_paid(self, checkin_id: str, payment_reference: str) -> Tuple[models.Checkin, bool]:
        """
        PENDING -> PAID with a freshly generated entry code.

        Returns (checkin, performed). When another request already moved the
        checkin on, the stored row is returned unchanged with performed=False;
        the winner's PIN and reference stay authoritative.
        """
        try:
            paid = self.repository.update_status(
                checkin_id,
                CheckinStatus.PENDING,
                CheckinStatus.PAID,
                pin_code=self.pin_generator(),
                payment_reference=payment_reference,
            )
        except ConflictError:
            current = self.repository.find_by_id(checkin_id)
            print(f"[CHECKIN] {checkin_id} already {CheckinStatus(current.status).value}, keeping stored result")
            return current, False
        print(f"[CHECKIN] Paid {checkin_id} reference={payment_reference}")
        return paid, True
