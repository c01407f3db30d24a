from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class TripDirectory(ABC):
    @abstractmethod
    def search_trips(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        """-> {success, data: [trip, ...]}"""
        ...

    @abstractmethod
    def get_trip_by_id(self, trip_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_available_seats(self, trip_id: str) -> Dict[str, Any]:
        """-> {data: {seat_map: {seats: [...]}}}"""
        ...


class BookingProvider(ABC):
    @abstractmethod
    def create_booking(self, payload: Dict[str, Any], auth_token: Optional[str] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_booking_by_id(self, booking_id: str, auth_token: Optional[str] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_booking_by_reference(self, reference: str, phone: Optional[str] = None,
                                 email: Optional[str] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def cancel_booking(self, booking_id: str, reason: Optional[str] = None,
                       auth_token: Optional[str] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_cancellation_preview(self, booking_id: str, auth_token: Optional[str] = None) -> Dict[str, Any]:
        ...
