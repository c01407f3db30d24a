from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from busbot.agents.recognizers import is_show_all_request
from busbot.config import MAX_SEARCH_RESULTS
from busbot.llm.oracle import ExtractionOracle
from busbot.providers.base import TripDirectory
from busbot.providers.trip_service import TripServiceError
from busbot.store import ConversationStore
from busbot.utils.formatting import format_trips_for_chat
from busbot.utils.i18n import t, t_list
from busbot.utils.normalize import DMY_RE, find_cities, fold, normalize_city, normalize_date

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("origin", "destination")
PREFERENCE_KEYS = ("timeOfDay", "busType", "maxPrice")


def _passengers(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 1
    return n if n > 0 else 1


def _fallback_params(message: str, history: List[dict]) -> Dict[str, Any]:
    """Used when the oracle returns nothing usable: known city aliases + date phrases."""
    cities = find_cities(message)
    if len(cities) < 2:
        for m in reversed(history or []):
            if m.get("role") != "user":
                continue
            for c in find_cities(m.get("content") or ""):
                if c not in cities:
                    cities.append(c)
            if len(cities) >= 2:
                break
    return {
        "origin": cities[0] if cities else None,
        "destination": cities[1] if len(cities) > 1 else None,
        "date": normalize_date(message) if _looks_dated(message) else None,
    }


_DATE_WORDS = ("today", "tomorrow", "hom nay", "ngay mai", "ngay kia", "next week", "next month",
               "tuan toi", "tuan sau", "thang toi", "thang sau")


def _looks_dated(message: str) -> bool:
    # normalize_date falls back to fuzzy parsing, so only feed it date-ish text
    s = fold(message)
    return bool(DMY_RE.search(s)) or any(w in s for w in _DATE_WORDS)


def _missing_response(missing: List[str], lang: str) -> Dict[str, Any]:
    fields = t("and", lang).join(t(f"field_{f}", lang) for f in missing)
    return {
        "text": t("search_missing_fields", lang, fields=fields),
        "entities": {"missing": missing},
        "suggestions": t_list("sugg_search_missing", lang),
        "actions": [],
    }


def run_trip_search(
    store: ConversationStore,
    oracle: ExtractionOracle,
    trips: TripDirectory,
    message: str,
    history: List[dict],
    session_id: str,
    lang: str = "en",
) -> Dict[str, Any]:
    ctx = store.get_booking_context(session_id) or {}
    last_search = ctx.get("last_search")

    if is_show_all_request(message) and last_search:
        # broaden: same route, any date
        params: Dict[str, Any] = {
            "origin": last_search.get("origin"),
            "destination": last_search.get("destination"),
            "date": None,
            "passengers": last_search.get("passengers") or 1,
            "preferences": dict(last_search.get("preferences") or {}),
            "missing": [],
        }
    else:
        params = _extract(oracle, message, history)

    origin = normalize_city(params.get("origin"))
    destination = normalize_city(params.get("destination"))
    date_iso = normalize_date(params.get("date"))
    passengers = _passengers(params.get("passengers"))
    # oracle output: anything but a dict of preferences / a list of missing names is dropped
    raw_prefs = params.get("preferences")
    prefs = {k: v for k, v in raw_prefs.items() if k in PREFERENCE_KEYS and v} if isinstance(raw_prefs, dict) else {}
    raw_missing = params.get("missing")

    values = {"origin": origin, "destination": destination}
    missing = [f for f in REQUIRED_FIELDS if not values[f]]
    # date/passengers are never blockers
    for f in raw_missing if isinstance(raw_missing, list) else []:
        if f in REQUIRED_FIELDS and f not in missing and not values.get(f):
            missing.append(f)
    if missing:
        logger.info("search missing %s", missing)
        return _missing_response(missing, lang)

    filters = {"origin": origin, "destination": destination, "date": date_iso, "passengers": passengers, **prefs}

    # survives zero-result and failed searches so "show all" still works
    ctx["last_search"] = {"origin": origin, "destination": destination, "passengers": passengers,
                          "preferences": prefs}
    store.save_booking_context(session_id, ctx)

    date_part = t("on_date", lang, date=date_iso) if date_iso else ""
    try:
        result = trips.search_trips(filters)
    except TripServiceError as e:
        logger.warning("trip search failed: %s", e)
        key = "search_invalid_input" if e.status_code == 422 else "search_error"
        return {"text": t(key, lang), "entities": filters, "suggestions": t_list("sugg_search_error", lang),
                "actions": []}

    found = (result or {}).get("data") or []
    if isinstance(found, dict):
        found = found.get("trips") or []

    if not found:
        return {
            "text": t("search_not_found", lang, origin=origin, destination=destination, date_part=date_part),
            "entities": filters,
            "suggestions": t_list("sugg_search_not_found", lang),
            "actions": [],
        }

    top = found[:MAX_SEARCH_RESULTS]
    ctx["search_results"] = top
    ctx["search_params"] = filters
    store.save_booking_context(session_id, ctx)
    logger.info("search %s -> %s found %d trips", origin, destination, len(found))

    return {
        "text": t("search_found", lang, count=len(found), origin=origin, destination=destination,
                  date_part=date_part),
        "entities": filters,
        "suggestions": t_list("sugg_search_found", lang),
        "actions": [{"type": "search_results", "data": {"trips": format_trips_for_chat(top), "searchParams": filters}}],
    }


def _extract(oracle: ExtractionOracle, message: str, history: List[dict]) -> Dict[str, Any]:
    extracted: Optional[Dict[str, Any]]
    try:
        extracted = oracle.extract_trip_search_params(message, history)
    except Exception as e:
        logger.warning("trip search extraction failed: %s", e)
        extracted = None

    fallback = _fallback_params(message, history)
    if not isinstance(extracted, dict):
        return {**fallback, "passengers": 1, "preferences": {}, "missing": []}

    # only borrow the route when the oracle found neither end of it
    if not extracted.get("origin") and not extracted.get("destination"):
        extracted["origin"] = fallback["origin"]
        extracted["destination"] = fallback["destination"]
    if not extracted.get("date") and fallback.get("date"):
        extracted["date"] = fallback["date"]
    logger.info("extracted search params %s", extracted)
    return extracted
