import logging
from dataclasses import dataclass
from typing import Optional

from langgraph.graph import StateGraph, END

from busbot.agents.booking import BookingAgent
from busbot.agents.cancellation import run_cancellation
from busbot.agents.faq import process_faq_query
from busbot.agents.search import run_trip_search
from busbot.agents.seats import run_seat_selection
from busbot.graph.intent import IntentRouter
from busbot.graph.state import ChatState
from busbot.llm.oracle import ExtractionOracle
from busbot.providers.auth_service import AuthServiceClient
from busbot.providers.base import BookingProvider, TripDirectory
from busbot.store import ConversationStore
from busbot.utils.i18n import t, t_list

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ConversationStore
    oracle: ExtractionOracle
    trips: TripDirectory
    bookings: BookingProvider
    auth: Optional[AuthServiceClient] = None


# ---------------------------
# Utilities
# ---------------------------
def add_trace(state: ChatState, node: str, detail: dict):
    state.setdefault("trace", [])
    state["trace"].append({"node": node, "detail": detail})


def _respond(state: ChatState, node: str, response: dict) -> ChatState:
    response.setdefault("entities", {})
    response.setdefault("suggestions", [])
    response.setdefault("actions", [])
    response["intent"] = state.get("intent", "other")
    state["response"] = response
    add_trace(state, node, {"actions": [a.get("type") for a in response["actions"]]})
    return state


def _failure(state: ChatState, node: str, key: str, e: Exception) -> ChatState:
    logger.exception("%s failed", node)
    lang = state.get("lang", "en")
    add_trace(state, f"{node}_error", {"error": str(e)})
    return _respond(state, node, {"text": t(key, lang), "suggestions": t_list("sugg_chat", lang)})


# ---------------------------
# Build graph
# ---------------------------
def build_graph(services: Services):
    router = IntentRouter(services.oracle, services.store)
    booking = BookingAgent(services.store, services.oracle, services.trips, services.bookings, services.auth)

    def node_router(state: ChatState) -> ChatState:
        state["intent"] = router.route(state.get("message", ""), state.get("history"), state["session_id"])
        add_trace(state, "router", {"intent": state["intent"]})
        return state

    def node_route(state: ChatState) -> str:
        intent = state.get("intent", "other")
        return "book_trip" if intent == "provide_passenger_info" else intent

    def node_search(state: ChatState) -> ChatState:
        try:
            out = run_trip_search(services.store, services.oracle, services.trips, state.get("message", ""),
                                  state.get("history") or [], state["session_id"], state.get("lang", "en"))
        except Exception as e:
            return _failure(state, "search_trips", "search_error", e)
        return _respond(state, "search_trips", out)

    def node_seats(state: ChatState) -> ChatState:
        try:
            out = run_seat_selection(services.store, state.get("message", ""), state["session_id"],
                                     state.get("lang", "en"))
        except Exception as e:
            return _failure(state, "select_seats", "booking_error", e)
        return _respond(state, "select_seats", out)

    def node_booking(state: ChatState) -> ChatState:
        try:
            out = booking.handle(state.get("message", ""), state["session_id"], state.get("auth_token"),
                                 state.get("lang", "en"))
        except Exception as e:
            return _failure(state, "book_trip", "booking_error", e)
        return _respond(state, "book_trip", out)

    def node_faq(state: ChatState) -> ChatState:
        try:
            out = process_faq_query(state.get("message", ""), state.get("lang", "en"), services.oracle,
                                    state.get("history"))
        except Exception as e:
            return _failure(state, "ask_faq", "faq_not_found", e)
        return _respond(state, "ask_faq", out)

    def node_cancel(state: ChatState) -> ChatState:
        try:
            out = run_cancellation(services.bookings, state.get("message", ""), state.get("auth_token"),
                                   state.get("lang", "en"))
        except Exception as e:
            return _failure(state, "cancel_booking", "cancel_not_found", e)
        return _respond(state, "cancel_booking", out)

    def node_chat(state: ChatState) -> ChatState:
        lang = state.get("lang", "en")
        try:
            text = services.oracle.generate_response(state.get("message", ""), state.get("history"))
        except Exception as e:
            logger.warning("chat response failed: %s", e)
            text = ""
        return _respond(state, "other", {"text": text or t("chat_fallback", lang),
                                         "suggestions": t_list("sugg_chat", lang)})

    g = StateGraph(ChatState)

    g.add_node("router", node_router)
    g.add_node("search_trips", node_search)
    g.add_node("select_seats", node_seats)
    g.add_node("book_trip", node_booking)
    g.add_node("ask_faq", node_faq)
    g.add_node("cancel_booking", node_cancel)
    g.add_node("other", node_chat)

    g.set_entry_point("router")

    g.add_conditional_edges("router", node_route, {
        "search_trips": "search_trips",
        "select_seats": "select_seats",
        "book_trip": "book_trip",
        "ask_faq": "ask_faq",
        "cancel_booking": "cancel_booking",
        "other": "other",
    })

    for node in ("search_trips", "select_seats", "book_trip", "ask_faq", "cancel_booking", "other"):
        g.add_edge(node, END)

    return g.compile()
