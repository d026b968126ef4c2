# gymcheckin/routers/payments.py
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from gymcheckin.auth import get_reconciliation
from gymcheckin.reconciliation import PaymentReconciliation

router = APIRouter(prefix="/api/payments", tags=["payments"])


def completion_url(public_base_url: str, checkin_id: str) -> str:
    return f"{public_base_url.rstrip('/')}/complete?{urlencode({'checkinId': checkin_id})}"


@router.get("/confirm")
def confirm_payment(
    request: Request,
    transaction_id: str = Query("", alias="transactionId"),
    order_id: str = Query("", alias="orderId"),
    reconciliation: PaymentReconciliation = Depends(get_reconciliation),
):
    """
    Gateway redirect after the user approves the payment.

    No bearer token here: the user's browser only carries the ids, and the
    payment is settled by our own signed confirm call to the gateway. The
    response is always a redirect to the completion page, whether this call
    performed the transition or found it already done.
    """
    outcome = reconciliation.confirm(transaction_id, order_id)
    return RedirectResponse(
        url=completion_url(request.app.state.settings.public_base_url, outcome.checkin.id),
        status_code=302,
    )
