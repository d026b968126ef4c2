from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from gymcheckin import models
from gymcheckin.errors import PaymentDeclinedError, PaymentGatewayError, ValidationError
from gymcheckin.lifecycle import CheckinLifecycle
from gymcheckin.models import CheckinStatus, FacilityType
from gymcheckin.pricing import FACILITIES
from gymcheckin.repository import CheckinRepository


def product_name_for(checkin: models.Checkin) -> str:
    facility = FACILITIES[FacilityType(checkin.facility_type)]
    return f"{facility['name']} {checkin.duration}h use"


@dataclass(frozen=True)
class ConfirmOutcome:
    checkin: models.Checkin
    performed: bool  # False when the callback found the checkin already settled


class PaymentReconciliation:
    """
    Drives a checkin through the gateway:

    request: ask the gateway for a transaction and store its id on the
             (still PENDING) checkin.
    confirm: gateway callback; confirm the transaction for the stored price
             and move the checkin to PAID exactly once.

    `gateway` is None when payment is bypassed.
    """

    def __init__(self, lifecycle: CheckinLifecycle, repository: CheckinRepository, gateway=None):
        self.lifecycle = lifecycle
        self.repository = repository
        self.gateway = gateway

    def checkout(self, user_id: int, facility_type, on_date, start_time, duration) -> Tuple[models.Checkin, Optional[str]]:
        checkin = self.lifecycle.create(user_id, facility_type, on_date, start_time, duration)
        if checkin.status != CheckinStatus.PENDING:
            return checkin, None
        return self.request(checkin)

    def request(self, checkin: models.Checkin) -> Tuple[models.Checkin, str]:
        if self.gateway is None:
            # Never silently treat a PENDING checkin as paid.
            raise PaymentGatewayError("Payment gateway is not configured", checkin_id=checkin.id)

        try:
            result = self.gateway.request_payment(
                order_id=checkin.id,
                amount=checkin.total_price,
                product_name=product_name_for(checkin),
            )
        except PaymentGatewayError as e:
            print(f"[PAYMENT] Request failed for {checkin.id}: {e.detail[:200]}")
            raise

        updated = self.repository.update_status(
            checkin.id,
            CheckinStatus.PENDING,
            CheckinStatus.PENDING,
            payment_reference=result.transaction_id,
        )
        print(f"[PAYMENT] Requested {result.transaction_id} for {checkin.id} amount={checkin.total_price}")
        return updated, result.payment_url

    def confirm(self, transaction_id: str, order_id: str) -> ConfirmOutcome:
        if not transaction_id or not order_id:
            raise ValidationError("Missing parameters")

        checkin = self.repository.find_by_id(order_id)

        if checkin.status != CheckinStatus.PENDING:
            # Duplicate or late callback: the stored result stands.
            print(f"[PAYMENT] Confirm for {order_id} ignored, already {CheckinStatus(checkin.status).value}")
            return ConfirmOutcome(checkin=checkin, performed=False)

        if checkin.payment_reference and checkin.payment_reference != transaction_id:
            raise ValidationError("transactionId does not match this order", checkin_id=order_id)

        if self.gateway is None:
            raise PaymentGatewayError("Payment gateway is not configured", checkin_id=order_id)

        try:
            self.gateway.confirm_payment(transaction_id, checkin.total_price, order_id=order_id)
        except PaymentDeclinedError as e:
            # Declined by the gateway: stays PENDING, no code issued.
            print(f"[PAYMENT] Confirm rejected for {order_id}: {e.detail[:200]}")
            raise
        except PaymentGatewayError as e:
            print(f"[PAYMENT] Confirm unreachable for {order_id}: {e.detail[:200]}")
            raise

        paid, performed = self.lifecycle.mark_paid(order_id, transaction_id)
        return ConfirmOutcome(checkin=paid, performed=performed)
