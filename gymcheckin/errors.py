# gymcheckin/errors.py
"""
Domain errors raised by the checkin core.

Each error knows the HTTP status it maps to; `main.py` registers a single
handler that turns them into JSON `{"detail": ...}` responses.
"""

from __future__ import annotations

from typing import Optional


class CheckinError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, checkin_id: Optional[str] = None):
        self.detail = detail or self.default_detail
        self.checkin_id = checkin_id
        super().__init__(self.detail)


# Client errors

class ValidationError(CheckinError):
    status_code = 400
    default_detail = "Invalid request"


class Unauthenticated(CheckinError):
    status_code = 401
    default_detail = "Unauthorized"


class NotFoundError(CheckinError):
    status_code = 404
    default_detail = "Checkin not found"


class CancellationWindowExpired(CheckinError):
    status_code = 400
    default_detail = "Cancellation deadline has passed (cancel at least 1 hour before the start time)"


class PaymentDeclinedError(CheckinError):
    status_code = 400
    default_detail = "Payment confirmation failed"

    def __init__(self, detail: Optional[str] = None, checkin_id: Optional[str] = None, return_code: Optional[str] = None):
        super().__init__(detail, checkin_id)
        self.return_code = return_code


# Conflicts (conditional-update mismatches)

class ConflictError(CheckinError):
    status_code = 409
    default_detail = "Checkin was modified by another request"


class InvalidTransitionError(ConflictError):
    default_detail = "Status transition not allowed"


# Upstream failures; the caller may retry

class UpstreamError(CheckinError):
    status_code = 502
    default_detail = "Upstream service unavailable"


class PaymentGatewayError(UpstreamError):
    default_detail = "Payment gateway unavailable"

    def __init__(self, detail: Optional[str] = None, checkin_id: Optional[str] = None, return_code: Optional[str] = None):
        super().__init__(detail, checkin_id)
        self.return_code = return_code


class IdentityProviderError(UpstreamError):
    default_detail = "Identity provider unavailable"
