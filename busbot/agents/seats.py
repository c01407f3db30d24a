from typing import Any, Dict

from busbot.agents.recognizers import parse_seat_codes
from busbot.store import ConversationStore
from busbot.utils.i18n import t, t_list


def run_seat_selection(store: ConversationStore, message: str, session_id: str, lang: str = "en") -> Dict[str, Any]:
    """Regex-only seat pick; the booking handler carries on from here next turn."""
    ctx = store.get_booking_context(session_id) or {}
    if not ctx.get("selected_trip"):
        return {"text": t("seats_need_trip", lang), "entities": {},
                "suggestions": t_list("sugg_need_trip", lang), "actions": []}

    seats = parse_seat_codes(message)
    if not seats:
        return {"text": t("seats_not_recognized", lang), "entities": {},
                "suggestions": t_list("sugg_seats", lang), "actions": []}

    ctx["selected_seats"] = seats
    # never more passengers than seats
    if len(ctx.get("passenger_info") or []) > len(seats):
        ctx["passenger_info"] = ctx["passenger_info"][:len(seats)]
    store.save_booking_context(session_id, ctx)

    return {
        "text": t("seats_selected", lang, seats=", ".join(seats), count=len(seats)),
        "entities": {"seats": seats},
        "suggestions": t_list("sugg_seats_selected", lang),
        "actions": [],
    }
