# gymcheckin/gateway.py
"""
Payment gateway clients.

- LinePayGateway: LINE Pay v3 "request" / "confirm" calls, HMAC-SHA256 signed.
- InstantPaymentGateway: synthetic gateway for local mode; every payment succeeds
  and the payment URL points straight back at our confirm callback.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode

import requests

from gymcheckin.errors import PaymentDeclinedError, PaymentGatewayError

SUCCESS_RETURN_CODE = "0000"
CURRENCY = "JPY"

REQUEST_PATH = "/v3/payments/request"
CONFIRM_PATH_TEMPLATE = "/v3/payments/requests/{transaction_id}/confirm"

LIVE_API_BASE = "https://api-pay.line.me"
SANDBOX_API_BASE = "https://sandbox-api-pay.line.me"

CONFIRM_CALLBACK_PATH = "/api/payments/confirm"


def sign(secret: str, path: str, body: str, nonce: str) -> str:
    """base64(HMAC-SHA256(secret, path + body + nonce))"""
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{path}{body}{nonce}".encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def serialize_body(body: dict) -> str:
    # The exact string that is signed is the exact string that is sent.
    return json.dumps(body, ensure_ascii=False, separators=(",", ":"))


class MonotonicNonce:
    """Millisecond wall-clock nonce that strictly increases for this process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            value = max(int(self._clock() * 1000), self._last + 1)
            self._last = value
            return str(value)


@dataclass(frozen=True)
class PaymentRequestResult:
    transaction_id: str
    payment_url: str


@dataclass(frozen=True)
class PaymentConfirmResult:
    transaction_id: str
    return_code: str
    return_message: Optional[str] = None


def confirm_callback_url(public_base_url: str) -> str:
    return f"{public_base_url.rstrip('/')}{CONFIRM_CALLBACK_PATH}"


class LinePayGateway:
    def __init__(
        self,
        channel_id: str,
        channel_secret: str,
        public_base_url: str,
        sandbox: bool = False,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        nonce: Optional[Callable[[], str]] = None,
    ):
        if not channel_id or not channel_secret:
            raise ValueError("LINE Pay channel id and secret are required")
        self.channel_id = channel_id
        self.channel_secret = channel_secret
        self.public_base_url = public_base_url.rstrip("/")
        self.api_base = SANDBOX_API_BASE if sandbox else LIVE_API_BASE
        self.timeout = timeout
        self.session = session or requests.Session()
        self.nonce = nonce or MonotonicNonce()

    def _post(self, path: str, body: dict, order_id: str) -> dict:
        payload = serialize_body(body)
        nonce = self.nonce()
        headers = {
            "Content-Type": "application/json",
            "X-LINE-ChannelId": self.channel_id,
            "X-LINE-Authorization-Nonce": nonce,
            "X-LINE-Authorization": sign(self.channel_secret, path, payload, nonce),
        }
        try:
            response = self.session.post(
                f"{self.api_base}{path}",
                data=payload.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PaymentGatewayError(f"LINE Pay unreachable: {type(e).__name__}", checkin_id=order_id)
        try:
            data = response.json()
        except ValueError:
            raise PaymentGatewayError(
                f"LINE Pay returned a non-JSON response (HTTP {response.status_code})",
                checkin_id=order_id,
            )
        if not isinstance(data, dict):
            raise PaymentGatewayError("LINE Pay returned an unexpected response", checkin_id=order_id)
        return data

    def request_payment(self, order_id: str, amount: int, product_name: str) -> PaymentRequestResult:
        body = {
            "amount": amount,
            "currency": CURRENCY,
            "orderId": order_id,
            "packages": [
                {
                    "id": "gym-checkin",
                    "amount": amount,
                    "name": product_name,
                    "products": [{"name": product_name, "quantity": 1, "price": amount}],
                }
            ],
            "redirectUrls": {
                "confirmUrl": confirm_callback_url(self.public_base_url),
                "cancelUrl": f"{self.public_base_url}/payment?cancelled=true",
            },
        }
        data = self._post(REQUEST_PATH, body, order_id)

        return_code = str(data.get("returnCode") or "")
        if return_code != SUCCESS_RETURN_CODE:
            raise PaymentGatewayError(
                f"LINE Pay request failed: {return_code} {data.get('returnMessage') or ''}".strip(),
                checkin_id=order_id,
                return_code=return_code,
            )

        info = data.get("info") or {}
        try:
            return PaymentRequestResult(
                transaction_id=str(info["transactionId"]),
                payment_url=info["paymentUrl"]["web"],
            )
        except (KeyError, TypeError):
            raise PaymentGatewayError("LINE Pay request response missing transaction info", checkin_id=order_id)

    def confirm_payment(self, transaction_id: str, amount: int, order_id: Optional[str] = None) -> PaymentConfirmResult:
        path = CONFIRM_PATH_TEMPLATE.format(transaction_id=transaction_id)
        data = self._post(path, {"amount": amount, "currency": CURRENCY}, order_id)

        return_code = str(data.get("returnCode") or "")
        if return_code != SUCCESS_RETURN_CODE:
            raise PaymentDeclinedError(
                f"Payment confirmation failed: {return_code} {data.get('returnMessage') or ''}".strip(),
                checkin_id=order_id,
                return_code=return_code,
            )
        return PaymentConfirmResult(
            transaction_id=transaction_id,
            return_code=return_code,
            return_message=data.get("returnMessage"),
        )


class InstantPaymentGateway:
    """Local-mode stand-in: no network, every payment is approved."""

    def __init__(self, public_base_url: str):
        self.public_base_url = public_base_url.rstrip("/")

    def request_payment(self, order_id: str, amount: int, product_name: str) -> PaymentRequestResult:
        transaction_id = f"LOCAL-{uuid.uuid4().hex[:16]}"
        query = urlencode({"transactionId": transaction_id, "orderId": order_id})
        print(f"[PAYMENT] Local payment {transaction_id} for {order_id} ({product_name}, {amount})")
        return PaymentRequestResult(
            transaction_id=transaction_id,
            payment_url=f"{confirm_callback_url(self.public_base_url)}?{query}",
        )

    def confirm_payment(self, transaction_id: str, amount: int, order_id: Optional[str] = None) -> PaymentConfirmResult:
        return PaymentConfirmResult(transaction_id=transaction_id, return_code=SUCCESS_RETURN_CODE)
