from typing import Any, Dict, List, Optional

from dateutil import parser as dtparser


def format_time(value: Optional[str]) -> Optional[str]:
    """ISO datetime / 'HH:MM:SS' -> 'HH:MM'."""
    if not value:
        return None
    try:
        return dtparser.parse(str(value)).strftime("%H:%M")
    except (ValueError, OverflowError):
        return str(value)


def format_price(value: Any) -> str:
    try:
        return f"{int(float(value)):,}"
    except (TypeError, ValueError):
        return str(value) if value is not None else "-"


def format_trip_for_chat(trip: Dict[str, Any]) -> Dict[str, Any]:
    schedule = trip.get("schedule") or {}
    departure = schedule.get("departure_time") or trip.get("departure_time")
    return {
        "tripId": trip.get("trip_id") or trip.get("tripId"),
        "origin": (trip.get("route") or {}).get("origin"),
        "destination": (trip.get("route") or {}).get("destination"),
        "departureTime": format_time(departure),
        "arrivalTime": format_time(schedule.get("arrival_time") or trip.get("arrival_time")),
        "price": (trip.get("pricing") or {}).get("base_price"),
        "currency": (trip.get("pricing") or {}).get("currency") or "VND",
        "availableSeats": (trip.get("availability") or {}).get("available_seats"),
        "busType": (trip.get("bus") or {}).get("bus_type"),
        "operator": (trip.get("operator") or {}).get("name"),
        "date": str(departure)[:10] if departure else None,
    }


def format_trips_for_chat(trips: List[Dict[str, Any]], limit: int = 5) -> List[Dict[str, Any]]:
    return [format_trip_for_chat(t) for t in (trips or [])[:limit]]


def point_snapshot(point: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep a chosen point's id/name/address/time verbatim."""
    point = point or {}
    return {
        "point_id": point.get("point_id") or point.get("id"),
        "name": point.get("name"),
        "address": point.get("address"),
        "time": point.get("time"),
    }


def format_point_options(points: List[Dict[str, Any]]) -> str:
    lines = []
    for i, p in enumerate(points, start=1):
        line = f"{i}. {p.get('name')}"
        if p.get("address"):
            line += f" - {p['address']}"
        if p.get("time"):
            line += f" ({format_time(p['time'])})"
        lines.append(line)
    return "\n".join(lines)


def build_conversation_context(history: List[Dict[str, Any]], limit: int = 10) -> List[Dict[str, str]]:
    """Last `limit` messages as {role, content} for the oracle."""
    return [{"role": m.get("role"), "content": m.get("content") or ""} for m in (history or [])[-limit:]]
