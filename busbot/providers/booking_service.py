from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from busbot.config import (
    BOOKING_CANCEL_TIMEOUT,
    BOOKING_CREATE_TIMEOUT,
    BOOKING_LOOKUP_TIMEOUT,
    BOOKING_SERVICE_URL,
)
from busbot.providers.base import BookingProvider

logger = logging.getLogger(__name__)


class BookingServiceError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text[:200] or f"HTTP {r.status_code}"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return r.text[:200]


class BookingServiceClient(BookingProvider):
    """REST facade over the booking service."""

    def __init__(self, base_url: str = BOOKING_SERVICE_URL):
        self.base_url = base_url.rstrip("/")

    @staticmethod
    def _headers(auth_token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        return headers

    def _request(self, method: str, path: str, timeout: int, auth_token: Optional[str] = None, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = requests.request(method, url, headers=self._headers(auth_token), timeout=timeout, **kwargs)
        except requests.RequestException as e:
            raise BookingServiceError(f"Booking service unreachable: {e}") from e
        if r.status_code >= 400:
            raise BookingServiceError(_error_message(r), r.status_code)
        return r.json()

    def create_booking(self, payload, auth_token=None):
        logger.info("creating booking trip=%s seats=%s guest=%s",
                    payload.get("tripId"), payload.get("seats"), payload.get("isGuestCheckout"))
        return self._request("POST", "/", BOOKING_CREATE_TIMEOUT, auth_token, json=payload)

    def get_booking_by_id(self, booking_id, auth_token=None):
        return self._request("GET", f"/{booking_id}", BOOKING_LOOKUP_TIMEOUT, auth_token)

    def get_booking_by_reference(self, reference, phone=None, email=None):
        params = {k: v for k, v in {"phone": phone, "email": email}.items() if v}
        return self._request("GET", f"/reference/{reference}", BOOKING_LOOKUP_TIMEOUT, params=params)

    def cancel_booking(self, booking_id, reason=None, auth_token=None):
        return self._request("PUT", f"/{booking_id}/cancel", BOOKING_CANCEL_TIMEOUT, auth_token,
                             json={"reason": reason} if reason else {})

    def get_cancellation_preview(self, booking_id, auth_token=None):
        return self._request("GET", f"/{booking_id}/cancellation-preview", BOOKING_LOOKUP_TIMEOUT, auth_token)
