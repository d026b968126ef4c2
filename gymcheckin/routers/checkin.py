# gymcheckin/routers/checkin.py
from typing import List

from fastapi import APIRouter, Depends

from gymcheckin import models, schemas
from gymcheckin.auth import get_current_user, get_lifecycle, get_reconciliation
from gymcheckin.lifecycle import CANCELLATION_CUTOFF, CheckinLifecycle, reservation_start
from gymcheckin.models import CheckinStatus
from gymcheckin.pricing import calculate_end_time
from gymcheckin.reconciliation import PaymentReconciliation

router = APIRouter(prefix="/api/checkins", tags=["checkins"])


def _status_str(value) -> str:
    return str(getattr(value, "value", value) or "")


def checkin_payload(c: models.Checkin) -> dict:
    status = _status_str(c.status)
    return {
        "id": c.id,
        "user_id": c.user_id,
        "facility_type": _status_str(c.facility_type),
        "date": c.date,
        "start_time": c.start_time,
        "end_time": calculate_end_time(c.start_time, c.duration),
        "duration": c.duration,
        "total_price": c.total_price,
        "pin_code": c.pin_code,
        "payment_reference": c.payment_reference,
        "status": status,
        # Only PENDING checkins can be cancelled at all.
        "cancellable_until": reservation_start(c) - CANCELLATION_CUTOFF if status == CheckinStatus.PENDING.value else None,
        "created_at": c.created_at,
    }


@router.post("", response_model=schemas.CheckinCreated, status_code=201)
def create_checkin(
    data: schemas.CheckinCreate,
    current_user: models.User = Depends(get_current_user),
    reconciliation: PaymentReconciliation = Depends(get_reconciliation),
):
    """
    Reserve a slot. With payment bypassed the checkin comes back PAID with
    its entry code and `paymentUrl` is null; otherwise it is PENDING and the
    client should send the user to `paymentUrl`.
    """
    checkin, payment_url = reconciliation.checkout(
        current_user.id,
        data.facility_type,
        data.date,
        data.start_time,
        data.duration,
    )
    return {"checkin": checkin_payload(checkin), "payment_url": payment_url}


@router.get("", response_model=List[schemas.CheckinOut])
def list_checkins(
    current_user: models.User = Depends(get_current_user),
    lifecycle: CheckinLifecycle = Depends(get_lifecycle),
):
    return [checkin_payload(c) for c in lifecycle.list(current_user.id)]


@router.get("/{checkin_id}", response_model=schemas.CheckinOut)
def get_checkin(
    checkin_id: str,
    current_user: models.User = Depends(get_current_user),
    lifecycle: CheckinLifecycle = Depends(get_lifecycle),
):
    return checkin_payload(lifecycle.get(checkin_id, current_user.id))


@router.delete("/{checkin_id}", response_model=schemas.MessageOut)
def cancel_checkin(
    checkin_id: str,
    current_user: models.User = Depends(get_current_user),
    lifecycle: CheckinLifecycle = Depends(get_lifecycle),
):
    # No refund is issued here; cancellation only changes state.
    lifecycle.cancel(checkin_id, current_user.id)
    return {"message": "Cancelled successfully"}
