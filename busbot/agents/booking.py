"""
Booking handler: the slot-filling engine.

Each turn re-derives the next slot from the stored BookingContext
(trip -> pickup -> dropoff -> seats -> contact -> passengers -> booking),
tries to fill it from the message (fast-path recognizers first, then the
oracle), persists the context and answers with the next prompt. Once the
ladder is complete the booking is created in the same turn.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from busbot.agents.recognizers import (
    is_payment_intent,
    match_point,
    mentions_trip_number,
    parse_seat_codes,
    pick_numbered,
    seat_in_message,
    trip_index,
    wants_different_seat,
)
from busbot.agents.slots import (
    Slot,
    confirmation_covers_chain,
    contact_complete,
    next_required_slot,
    reset_chain,
    trip_id_of,
    trip_in_results,
)
from busbot.config import PAYMENT_PAGE_URL
from busbot.llm.json_utils import safe_json_parse
from busbot.llm.oracle import ExtractionOracle
from busbot.llm.prompts import (
    CONTACT_EXTRACTION_PROMPT,
    CORRECTIVE_PROMPT,
    build_booking_selection_prompt,
    build_passenger_prompt,
)
from busbot.providers.auth_service import AuthServiceClient
from busbot.providers.base import BookingProvider, TripDirectory
from busbot.providers.booking_service import BookingServiceError
from busbot.providers.trip_service import TripServiceError
from busbot.store import ConversationStore
from busbot.utils.formatting import (
    format_point_options,
    format_price,
    format_trip_for_chat,
    format_trips_for_chat,
    point_snapshot,
)
from busbot.utils.i18n import t, t_list
from busbot.utils.validators import (
    clean_phone,
    find_email,
    find_phone,
    is_valid_email,
    is_valid_phone,
    validate_passenger,
)

logger = logging.getLogger(__name__)

POINT_FIELDS = {Slot.PICKUP: "selected_pickup_point", Slot.DROPOFF: "selected_dropoff_point"}
POINT_KINDS = {Slot.PICKUP: "pickup", Slot.DROPOFF: "dropoff"}

Reply = Dict[str, Any]


def _as_index(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _dedupe(items: List[str]) -> List[str]:
    out: List[str] = []
    for x in items:
        if x not in out:
            out.append(x)
    return out


class BookingAgent:
    def __init__(
        self,
        store: ConversationStore,
        oracle: ExtractionOracle,
        trips: TripDirectory,
        bookings: BookingProvider,
        auth: Optional[AuthServiceClient] = None,
        payment_page_url: str = PAYMENT_PAGE_URL,
    ):
        self.store = store
        self.oracle = oracle
        self.trips = trips
        self.bookings = bookings
        self.auth = auth
        self.payment_page_url = payment_page_url

    # ---------------------------
    # Entry points
    # ---------------------------
    def handle(self, message: str, session_id: str, auth_token: Optional[str] = None, lang: str = "en") -> Reply:
        text = (message or "").strip()
        ctx = self.store.get_booking_context(session_id) or {}
        notes: List[str] = []

        # escape hatch after a seat conflict
        if text and ctx.get("selected_trip") and wants_different_seat(text):
            return self._reselect_seats(ctx, session_id, lang)

        # a booking exists for this chain: hand out the payment link, no slot-filling
        if text and ctx.get("booking_confirmation") and confirmation_covers_chain(ctx) and is_payment_intent(text):
            return self._payment_link(ctx["booking_confirmation"], lang)

        if not ctx.get("search_results") and not ctx.get("selected_trip"):
            return self._reply(t("booking_search_first", lang), Slot.TRIP,
                               suggestions=t_list("sugg_need_trip", lang))

        consumed = False
        if text and ctx.get("selected_trip") and mentions_trip_number(text):
            # switching trips mid-flow; an unresolved reference keeps the current one
            consumed = self._select_trip(ctx, text, notes, lang)

        def fill(slot: Slot) -> Optional[Reply]:
            if not text or consumed:
                return None
            return self._fill(slot, ctx, text, lang, notes)

        return self._advance(ctx, session_id, auth_token, lang, notes, fill)

    def submit_passengers(self, passengers: List[Dict[str, Any]], session_id: str,
                          auth_token: Optional[str] = None, lang: str = "en") -> Reply:
        """Structured passenger form; same salvage rules as free text."""
        ctx = self.store.get_booking_context(session_id) or {}
        if not ctx.get("search_results") and not ctx.get("selected_trip"):
            return self._reply(t("booking_search_first", lang), Slot.TRIP,
                               suggestions=t_list("sugg_need_trip", lang))
        notes: List[str] = []

        def fill(slot: Slot) -> Optional[Reply]:
            if slot is not Slot.PASSENGERS:
                return None
            return self._accept_passengers(ctx, passengers or [], lang)

        return self._advance(ctx, session_id, auth_token, lang, notes, fill)

    # ---------------------------
    # Ladder
    # ---------------------------
    def _advance(self, ctx, session_id, auth_token, lang, notes, fill: Callable[[Slot], Optional[Reply]]) -> Reply:
        authenticated = bool(auth_token)
        if authenticated and ctx.get("selected_seats"):
            self._autofill_contact(ctx, auth_token)

        slot, stale = self._settle(ctx, authenticated, notes, lang)
        if stale:
            return self._stale(ctx, session_id, lang)

        reply = fill(slot)
        if reply is not None:
            self.store.save_booking_context(session_id, ctx)
            return reply

        if authenticated and ctx.get("selected_seats"):
            self._autofill_contact(ctx, auth_token)
        slot, stale = self._settle(ctx, authenticated, notes, lang)
        if stale:
            return self._stale(ctx, session_id, lang)

        self.store.save_booking_context(session_id, ctx)
        return self._prompt(slot, ctx, session_id, auth_token, lang, notes)

    def _settle(self, ctx, authenticated, notes, lang):
        """Next slot after auto-filling single-option points. Returns (slot, stale)."""
        while True:
            slot = next_required_slot(ctx, authenticated)
            if slot not in POINT_FIELDS:
                return slot, False
            if not trip_in_results(ctx):
                return slot, True
            points = self._points(ctx, slot)
            if len(points) > 1:
                return slot, False
            if points:
                chosen = point_snapshot(points[0])
            else:
                chosen = {"point_id": None, "name": t("booking_point_unlisted", lang), "address": None, "time": None}
            ctx[POINT_FIELDS[slot]] = chosen
            notes.append(t(f"booking_{POINT_KINDS[slot]}_selected", lang, name=chosen["name"]))

    def _fill(self, slot, ctx, text, lang, notes) -> Optional[Reply]:
        if slot is Slot.TRIP:
            if self._select_trip(ctx, text, notes, lang):
                return None
            return self._prompt_trip(ctx, lang, notes)
        if slot in POINT_FIELDS:
            self._fill_point(slot, ctx, text, lang, notes)
            return None
        if slot is Slot.SEATS:
            seats = parse_seat_codes(text)
            if seats:
                self._set_seats(ctx, seats)
                notes.append(t("booking_seats_selected", lang, seats=", ".join(seats)))
            return None
        if slot is Slot.CONTACT:
            return self._fill_contact(ctx, text, lang, notes)
        if slot is Slot.PASSENGERS:
            remaining = len(ctx["selected_seats"]) - len(ctx.get("passenger_info") or [])
            return self._accept_passengers(ctx, self._extract_passengers(text, remaining), lang)
        return None

    # ---------------------------
    # Trip
    # ---------------------------
    def _extract_trip_choice(self, text: str, trips: List[Dict[str, Any]]) -> Dict[str, Any]:
        default = {"tripIndex": None, "tripId": None, "seats": None, "needsMoreInfo": True}
        try:
            resp = self.oracle.chat_completion(
                [{"role": "user", "content": build_booking_selection_prompt(text, trips)}],
                temperature=0.1, max_tokens=200,
            )
        except Exception as e:
            logger.warning("trip choice extraction failed: %s", e)
            return default
        return safe_json_parse(resp.get("content"), default)

    def _select_trip(self, ctx, text, notes, lang) -> bool:
        results = ctx.get("search_results") or []
        if not results:
            return False

        info = self._extract_trip_choice(text, format_trips_for_chat(results))
        trip = None
        tid = info.get("tripId")
        if tid:
            # only ids from the current snapshot count
            trip = next((r for r in results if trip_id_of(r) == str(tid)), None)
        idx = _as_index(info.get("tripIndex"))
        if trip is None and idx is not None and 0 <= idx < len(results):
            trip = results[idx]
        if trip is None:
            idx = trip_index(text, len(results))
            if idx is not None:
                trip = results[idx]
        if trip is None:
            return False

        if trip_id_of(trip) != trip_id_of(ctx.get("selected_trip")):
            reset_chain(ctx)
            ctx["selected_trip"] = trip
            f = format_trip_for_chat(trip)
            notes.append(t("booking_trip_selected", lang, departure=f["departureTime"] or "",
                           operator=f["operator"] or "", price=format_price(f["price"])))
            logger.info("selected trip %s", trip_id_of(trip))

        guessed = info.get("seats") if isinstance(info.get("seats"), list) else []
        seats = _dedupe([str(s).strip().upper() for s in guessed if isinstance(s, str) and seat_in_message(s, text)])
        if seats:
            self._set_seats(ctx, seats)
            notes.append(t("booking_seats_selected", lang, seats=", ".join(seats)))
        elif guessed:
            logger.info("discarded seats %s not present in message", guessed)
        return True

    def _stale(self, ctx, session_id, lang) -> Reply:
        logger.info("selected trip %s no longer in search results; resetting chain",
                    trip_id_of(ctx.get("selected_trip")))
        reset_chain(ctx)
        self.store.save_booking_context(session_id, ctx)
        return self._prompt_trip(ctx, lang, [t("booking_trip_stale", lang)])

    # ---------------------------
    # Pickup / dropoff
    # ---------------------------
    def _points(self, ctx, slot: Slot) -> List[Dict[str, Any]]:
        key = f"{POINT_KINDS[slot]}_points"
        trip = ctx.get("selected_trip") or {}
        if isinstance(trip.get(key), list):
            return trip[key]
        try:
            detail = self.trips.get_trip_by_id(trip_id_of(trip)) or {}
        except TripServiceError as e:
            logger.warning("trip detail for %s failed: %s", trip_id_of(trip), e)
            return []
        detail = detail.get("data") or detail
        points = detail.get(key) if isinstance(detail.get(key), list) else []
        # cache on the selected trip so later turns skip the lookup
        trip[key] = points
        ctx["selected_trip"] = trip
        return points

    def _fill_point(self, slot, ctx, text, lang, notes) -> None:
        points = self._points(ctx, slot)
        idx = match_point(text, points)
        if idx is None:
            idx = pick_numbered(text, len(points))
        if idx is None:
            return
        chosen = point_snapshot(points[idx])
        ctx[POINT_FIELDS[slot]] = chosen
        notes.append(t(f"booking_{POINT_KINDS[slot]}_selected", lang, name=chosen["name"]))

    # ---------------------------
    # Seats
    # ---------------------------
    @staticmethod
    def _set_seats(ctx, seats: List[str]) -> None:
        ctx["selected_seats"] = seats
        if len(ctx.get("passenger_info") or []) > len(seats):
            ctx["passenger_info"] = ctx["passenger_info"][:len(seats)]

    def _seat_map_action(self, trip_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not trip_id:
            return None
        try:
            body = self.trips.get_available_seats(trip_id) or {}
        except TripServiceError as e:
            logger.warning("seat map for %s failed: %s", trip_id, e)
            return None
        data = body.get("data") or {}
        if not (data.get("seat_map") or {}).get("seats"):
            return None
        return {"type": "seat_selection", "data": {"tripId": trip_id, **data}}

    def _reselect_seats(self, ctx, session_id, lang) -> Reply:
        ctx.pop("selected_seats", None)
        ctx.pop("passenger_info", None)
        self.store.save_booking_context(session_id, ctx)
        return self._prompt_seats(ctx, lang, [t("booking_reselect_seats", lang)])

    # ---------------------------
    # Contact
    # ---------------------------
    def _autofill_contact(self, ctx, auth_token: str) -> None:
        if contact_complete(ctx) or self.auth is None:
            return
        found = self.auth.contact_info(auth_token)
        merged = dict(ctx.get("contact_info") or {})
        if is_valid_phone(found.get("phone")) and not is_valid_phone(merged.get("phone")):
            merged["phone"] = clean_phone(found["phone"])
        if is_valid_email(found.get("email")) and not is_valid_email(merged.get("email")):
            merged["email"] = found["email"]
        ctx["contact_info"] = merged

    def _extract_contact(self, text: str) -> Dict[str, Optional[str]]:
        found: Dict[str, Any] = {}
        try:
            resp = self.oracle.chat_completion(
                [{"role": "user", "content": CONTACT_EXTRACTION_PROMPT.format(message=text)}],
                temperature=0, max_tokens=100,
            )
            found = safe_json_parse(resp.get("content"))
        except Exception as e:
            logger.warning("contact extraction failed: %s", e)

        phone = found.get("phone")
        email = found.get("email")
        if not is_valid_phone(phone):
            phone = find_phone(text)
        if not is_valid_email(email):
            email = find_email(text)
        return {"phone": clean_phone(phone) if phone else None, "email": str(email).strip() if email else None}

    def _fill_contact(self, ctx, text, lang, notes) -> Optional[Reply]:
        if len(text) < 3:
            return self._reply(t("booking_ask_contact", lang), Slot.CONTACT, notes,
                               suggestions=t_list("sugg_contact", lang))

        found = self._extract_contact(text)
        contact = dict(ctx.get("contact_info") or {})
        if is_valid_phone(found["phone"]):
            contact["phone"] = found["phone"]
        if is_valid_email(found["email"]):
            contact["email"] = found["email"]
        ctx["contact_info"] = contact

        missing = []
        if not is_valid_phone(contact.get("phone")):
            missing.append("phone")
        if not is_valid_email(contact.get("email")):
            missing.append("email")
        if missing:
            fields = t("and", lang).join(t(f"field_{f}", lang) for f in missing)
            return self._reply(t("booking_contact_missing", lang, fields=fields), Slot.CONTACT, notes,
                               entities={"missing": missing}, suggestions=t_list("sugg_contact", lang))

        notes.append(t("booking_contact_saved", lang, phone=contact["phone"], email=contact["email"]))
        return None

    # ---------------------------
    # Passengers
    # ---------------------------
    def _extract_passengers(self, text: str, remaining: int) -> List[Any]:
        try:
            resp = self.oracle.chat_completion(
                [{"role": "user", "content": build_passenger_prompt(text, remaining)}],
                temperature=0.1, max_tokens=600,
            )
        except Exception as e:
            logger.warning("passenger extraction failed: %s", e)
            return []
        data = safe_json_parse(resp.get("content"))
        passengers = data.get("passengers")
        if isinstance(passengers, list):
            return passengers
        if data.get("fullName") or data.get("full_name"):
            return [data]
        return []

    def _accept_passengers(self, ctx, candidates: List[Any], lang: str) -> Optional[Reply]:
        """Append valid passengers up to the seat count; only an all-invalid batch is rejected."""
        have = list(ctx.get("passenger_info") or [])
        remaining = len(ctx.get("selected_seats") or []) - len(have)
        if not candidates or remaining <= 0:
            return None

        default_phone = (ctx.get("contact_info") or {}).get("phone")
        accepted: List[Dict[str, Any]] = []
        problems: List[str] = []
        for raw in candidates:
            if len(accepted) >= remaining:
                break
            if isinstance(raw, dict) and not raw.get("phone") and default_phone:
                raw = {**raw, "phone": default_phone}
            passenger, errors = validate_passenger(raw)
            if passenger:
                accepted.append(passenger)
            else:
                problems.extend(e for e in errors if e not in problems)

        if accepted:
            ctx["passenger_info"] = have + accepted
            if problems:
                logger.info("kept %d passenger(s), dropped invalid fields %s", len(accepted), problems)
            return None
        return self._corrective_reply(problems, remaining, lang)

    def _corrective_reply(self, problems: List[str], remaining: int, lang: str) -> Reply:
        fields = ", ".join(t(f"field_{p}", lang) for p in problems) or t("field_passenger", lang)
        text = ""
        try:
            resp = self.oracle.chat_completion(
                [{"role": "user", "content": CORRECTIVE_PROMPT.format(
                    problems=fields, count=remaining, language="Vietnamese" if lang == "vi" else "English")}],
                temperature=0.8, max_tokens=150,
            )
            text = (resp.get("content") or "").strip()
        except Exception as e:
            logger.warning("corrective message generation failed: %s", e)
        if not text:
            text = t("booking_passenger_invalid", lang, fields=fields)
        return self._reply(text, Slot.PASSENGERS, entities={"invalidFields": problems, "remaining": remaining},
                           suggestions=t_list("sugg_passengers", lang))

    # ---------------------------
    # Booking
    # ---------------------------
    def _create_booking(self, ctx, session_id, auth_token, lang, notes) -> Reply:
        seats = [s.upper() for s in ctx["selected_seats"]]

        # re-validate everything before it leaves the building
        passengers = []
        for raw in (ctx.get("passenger_info") or [])[:len(seats)]:
            p, _ = validate_passenger(raw)
            if p:
                passengers.append(p)
        if len(passengers) < len(seats):
            ctx["passenger_info"] = passengers
            self.store.save_booking_context(session_id, ctx)
            return self._prompt_passengers(ctx, lang, notes)

        contact = ctx.get("contact_info") or {}
        trip_id = trip_id_of(ctx["selected_trip"])
        payload = {
            "tripId": trip_id,
            "seats": seats,
            "passengers": [{**p, "seatCode": seat} for p, seat in zip(passengers, seats)],
            "contactEmail": contact.get("email") or passengers[0].get("email") or "",
            "contactPhone": contact.get("phone") or passengers[0]["phone"],
            "isGuestCheckout": not auth_token,
        }

        try:
            result = self.bookings.create_booking(payload, auth_token) or {}
        except BookingServiceError as e:
            return self._booking_failed(ctx, e, session_id, lang, notes)

        data = result.get("data") or {}
        confirmation = {
            "booking_id": data.get("booking_id"),
            "booking_reference": data.get("booking_reference"),
            "payment_info": data.get("payment_info") or {},
            "passenger_count": len(passengers),
            "created_at": data.get("created_at"),
            "trip_id": trip_id,
            "seats": seats,
        }
        ctx["booking_confirmation"] = confirmation
        self.store.save_booking_context(session_id, ctx)
        logger.info("booking %s created for trip %s", confirmation["booking_reference"], trip_id)

        return self._reply(
            t("booking_created", lang, reference=confirmation["booking_reference"]), Slot.BOOKED, notes,
            entities={"bookingReference": confirmation["booking_reference"]},
            suggestions=t_list("sugg_booked", lang),
            actions=[{"type": "booking_confirmation", "data": {
                "bookingId": data.get("booking_id"),
                "bookingReference": data.get("booking_reference"),
                "status": data.get("status"),
                "passengers": data.get("passengers") or payload["passengers"],
                "pricing": data.get("pricing"),
                "tripDetails": data.get("trip_details"),
                "paymentInfo": data.get("payment_info"),
                "lockedUntil": data.get("locked_until"),
            }}],
        )

    def _booking_failed(self, ctx, error: BookingServiceError, session_id, lang, notes) -> Reply:
        msg = str(error).lower()
        logger.warning("booking failed: %s", error)
        actions = []
        if "already booked" in msg or "not available" in msg:
            ctx.pop("selected_seats", None)
            ctx.pop("passenger_info", None)
            key, kind = "booking_seat_conflict", "seat_conflict"
            seat_map = self._seat_map_action(trip_id_of(ctx.get("selected_trip")))
            if seat_map:
                actions.append(seat_map)
        elif "email" in msg or "required" in msg:
            ctx.pop("passenger_info", None)
            key, kind = "booking_passenger_rejected", "passenger_rejected"
        else:
            ctx.pop("selected_seats", None)
            ctx.pop("passenger_info", None)
            key, kind = "booking_error", "unknown"
        self.store.save_booking_context(session_id, ctx)
        slot = Slot.SEATS if not ctx.get("selected_seats") else Slot.PASSENGERS
        return self._reply(t(key, lang), slot, notes, entities={"error": kind},
                           suggestions=t_list("sugg_booking_error", lang), actions=actions)

    def _payment_link(self, confirmation: Dict[str, Any], lang: str) -> Reply:
        info = confirmation.get("payment_info") or {}
        booking_id = confirmation.get("booking_id") or ""
        url = info.get("payment_url") or info.get("url") or f"{self.payment_page_url}?bookingId={quote(str(booking_id))}"
        return self._reply(
            t("booking_payment_link", lang, reference=confirmation.get("booking_reference")), Slot.BOOKED,
            entities={"bookingReference": confirmation.get("booking_reference")},
            actions=[{"type": "payment_link", "data": {
                "bookingId": booking_id,
                "bookingReference": confirmation.get("booking_reference"),
                "url": url,
                "amount": info.get("amount"),
                "expiresAt": info.get("expires_at"),
            }}],
        )

    # ---------------------------
    # Prompts
    # ---------------------------
    def _prompt(self, slot, ctx, session_id, auth_token, lang, notes) -> Reply:
        if slot is Slot.TRIP:
            return self._prompt_trip(ctx, lang, notes)
        if slot in POINT_FIELDS:
            return self._prompt_point(slot, ctx, lang, notes)
        if slot is Slot.SEATS:
            return self._prompt_seats(ctx, lang, notes)
        if slot is Slot.CONTACT:
            return self._reply(t("booking_ask_contact", lang), slot, notes, suggestions=t_list("sugg_contact", lang))
        if slot is Slot.PASSENGERS:
            return self._prompt_passengers(ctx, lang, notes)
        if slot is Slot.READY:
            return self._create_booking(ctx, session_id, auth_token, lang, notes)

        conf = ctx["booking_confirmation"]
        return self._reply(t("booking_already_created", lang, reference=conf.get("booking_reference")), slot, notes,
                           entities={"bookingReference": conf.get("booking_reference")},
                           suggestions=t_list("sugg_booked", lang))

    def _prompt_trip(self, ctx, lang, notes) -> Reply:
        results = ctx.get("search_results") or []
        actions = []
        if results:
            actions.append({"type": "search_results", "data": {"trips": format_trips_for_chat(results),
                                                               "searchParams": ctx.get("search_params")}})
        return self._reply(t("booking_ask_trip", lang), Slot.TRIP, notes,
                           suggestions=[f"#{i}" for i in range(1, len(results) + 1)], actions=actions)

    def _prompt_point(self, slot, ctx, lang, notes) -> Reply:
        kind = POINT_KINDS[slot]
        points = self._points(ctx, slot)
        return self._reply(
            t(f"booking_ask_{kind}", lang, options=format_point_options(points)), slot, notes,
            suggestions=[p.get("name") for p in points[:4] if p.get("name")],
            actions=[{"type": f"{kind}_selection", "data": {
                "tripId": trip_id_of(ctx.get("selected_trip")),
                "points": [point_snapshot(p) for p in points],
            }}],
        )

    def _prompt_seats(self, ctx, lang, notes) -> Reply:
        seat_map = self._seat_map_action(trip_id_of(ctx.get("selected_trip")))
        if seat_map is None:
            return self._reply(t("booking_ask_seats_text", lang), Slot.SEATS, notes,
                               suggestions=t_list("sugg_seats", lang))
        return self._reply(t("booking_ask_seats", lang), Slot.SEATS, notes,
                           suggestions=t_list("sugg_seats", lang), actions=[seat_map])

    def _prompt_passengers(self, ctx, lang, notes) -> Reply:
        total = len(ctx.get("selected_seats") or [])
        saved = len(ctx.get("passenger_info") or [])
        remaining = total - saved
        if saved == 0:
            text = t("booking_ask_passengers", lang, count=remaining)
        else:
            text = t("booking_passengers_progress", lang, saved=saved, total=total, remaining=remaining,
                     next=saved + 1)
        return self._reply(text, Slot.PASSENGERS, notes, entities={"remaining": remaining, "total": total},
                           suggestions=t_list("sugg_passengers", lang))

    @staticmethod
    def _reply(text: str, slot: Slot, notes: Optional[List[str]] = None, entities: Optional[Dict[str, Any]] = None,
               suggestions: Optional[List[str]] = None, actions: Optional[List[Dict[str, Any]]] = None) -> Reply:
        parts = [n for n in (notes or []) if n] + [text]
        ents = {"slot": slot.value}
        ents.update(entities or {})
        return {"text": "\n\n".join(parts), "entities": ents, "suggestions": suggestions or [], "actions": actions or []}
