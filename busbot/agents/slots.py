"""
Derived booking state.

Nothing stores "the current step": the next slot is recomputed from which
BookingContext fields are populated, so replaying a context always yields
the same answer.
"""
from enum import Enum
from typing import Any, Dict, Optional

from busbot.utils.validators import is_valid_email, is_valid_phone


class Slot(str, Enum):
    TRIP = "trip"
    PICKUP = "pickup"
    DROPOFF = "dropoff"
    SEATS = "seats"
    CONTACT = "contact"
    PASSENGERS = "passengers"
    READY = "ready_to_book"
    BOOKED = "booked"


# everything a new search (or a trip switch) invalidates, in fill order
CHAIN_FIELDS = (
    "selected_trip",
    "selected_pickup_point",
    "selected_dropoff_point",
    "selected_seats",
    "contact_info",
    "passenger_info",
)


def trip_id_of(trip: Optional[Dict[str, Any]]) -> Optional[str]:
    if not trip:
        return None
    tid = trip.get("trip_id") or trip.get("tripId") or trip.get("id")
    return str(tid) if tid is not None else None


def contact_complete(ctx: Dict[str, Any]) -> bool:
    c = ctx.get("contact_info") or {}
    return is_valid_phone(c.get("phone")) and is_valid_email(c.get("email"))


def next_required_slot(ctx: Optional[Dict[str, Any]], authenticated: bool = False) -> Slot:
    ctx = ctx or {}
    if not ctx.get("selected_trip"):
        return Slot.TRIP
    if ctx.get("selected_pickup_point") is None:
        return Slot.PICKUP
    if ctx.get("selected_dropoff_point") is None:
        return Slot.DROPOFF
    seats = ctx.get("selected_seats") or []
    if not seats:
        return Slot.SEATS
    if not authenticated and not contact_complete(ctx):
        return Slot.CONTACT
    if len(ctx.get("passenger_info") or []) < len(seats):
        return Slot.PASSENGERS
    if confirmation_covers_chain(ctx):
        return Slot.BOOKED
    return Slot.READY


def confirmation_covers_chain(ctx: Dict[str, Any]) -> bool:
    """A stored confirmation counts as BOOKED only for the trip and seats it was made for."""
    conf = ctx.get("booking_confirmation")
    if not conf:
        return False
    if conf.get("trip_id") and conf["trip_id"] != trip_id_of(ctx.get("selected_trip")):
        return False
    if conf.get("seats") and [s.upper() for s in conf["seats"]] != [s.upper() for s in ctx.get("selected_seats") or []]:
        return False
    return True


def reset_chain(ctx: Dict[str, Any], include_confirmation: bool = False) -> Dict[str, Any]:
    """Drop the trip selection and everything downstream of it (search data is kept)."""
    for f in CHAIN_FIELDS:
        ctx.pop(f, None)
    if include_confirmation:
        ctx.pop("booking_confirmation", None)
    return ctx


def trip_in_results(ctx: Dict[str, Any]) -> bool:
    tid = trip_id_of(ctx.get("selected_trip"))
    return any(trip_id_of(t) == tid for t in ctx.get("search_results") or [])
