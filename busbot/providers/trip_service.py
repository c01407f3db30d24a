from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from busbot.config import SEARCH_TIMEOUT, SEAT_MAP_TIMEOUT, TRIP_DETAIL_TIMEOUT, TRIP_SERVICE_URL
from busbot.providers.base import TripDirectory

logger = logging.getLogger(__name__)

# departure windows sent to the trip service for a timeOfDay preference
TIME_OF_DAY_WINDOWS = {
    "morning": ("06:00:00", "12:00:00"),
    "afternoon": ("12:00:01", "18:00:00"),
    "evening": ("18:00:01", "23:59:59"),
    "night": ("00:00:00", "06:00:00"),
}


class TripServiceError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def build_search_params(filters: Dict[str, Any]) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "origin": filters.get("origin"),
        "destination": filters.get("destination"),
    }
    if filters.get("date"):
        params["date"] = filters["date"]
    if filters.get("passengers"):
        params["passengers"] = filters["passengers"]
    if filters.get("busType"):
        params["bus_type"] = filters["busType"]
    if filters.get("maxPrice"):
        params["price_max"] = filters["maxPrice"]
    window = TIME_OF_DAY_WINDOWS.get(str(filters.get("timeOfDay") or "").lower())
    if window:
        params["departure_time_start"], params["departure_time_end"] = window
    return params


class TripServiceClient(TripDirectory):
    """REST facade over the trip service."""

    def __init__(self, base_url: str = TRIP_SERVICE_URL):
        self.base_url = base_url.rstrip("/")

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, timeout: int = TRIP_DETAIL_TIMEOUT) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = requests.get(url, params=params or {}, timeout=timeout)
        except requests.RequestException as e:
            raise TripServiceError(f"Trip service unreachable: {e}") from e
        if r.status_code >= 400:
            raise TripServiceError(f"Trip service error {r.status_code}: {r.text[:200]}", r.status_code)
        return r.json()

    def search_trips(self, filters):
        params = build_search_params(filters)
        logger.info("trip search %s", params)
        return self._get("/search", params=params, timeout=SEARCH_TIMEOUT)

    def get_trip_by_id(self, trip_id):
        return self._get(f"/{trip_id}", timeout=TRIP_DETAIL_TIMEOUT)

    def get_available_seats(self, trip_id):
        return self._get(f"/{trip_id}/seats", timeout=SEAT_MAP_TIMEOUT)
