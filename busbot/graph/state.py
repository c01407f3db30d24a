from typing import TypedDict, Optional, Any


class Point(TypedDict, total=False):
    point_id: Optional[str]
    name: Optional[str]
    address: Optional[str]
    time: Optional[str]


class ContactInfo(TypedDict, total=False):
    phone: Optional[str]
    email: Optional[str]


class BookingConfirmation(TypedDict, total=False):
    booking_id: str
    booking_reference: str
    payment_info: dict[str, Any]
    passenger_count: int
    created_at: str
    trip_id: str                           # trip and seats the booking was made for
    seats: list[str]


class BookingContext(TypedDict, total=False):
    # origin/destination/passengers/preferences of the last search (no date)
    last_search: dict[str, Any]
    search_params: dict[str, Any]
    search_results: list[dict[str, Any]]   # snapshot of up to 5 trips
    selected_trip: dict[str, Any]
    selected_pickup_point: Point
    selected_dropoff_point: Point
    selected_seats: list[str]              # uppercase seat codes
    contact_info: ContactInfo
    passenger_info: list[dict[str, Any]]   # one per seat, camelCase passenger dicts
    booking_confirmation: BookingConfirmation


class ChatState(TypedDict, total=False):
    session_id: str
    message: str
    lang: str                      # en|vi
    history: list[dict]            # last N {role, content}
    auth_token: Optional[str]
    user_id: Optional[str]

    intent: str
    response: dict[str, Any]       # {text, intent, entities, suggestions, actions}
    trace: list[dict]
