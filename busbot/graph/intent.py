import logging
from typing import List, Optional

from busbot.agents.slots import reset_chain
from busbot.llm.oracle import ExtractionOracle
from busbot.store import ConversationStore

logger = logging.getLogger(__name__)

INTENTS = {
    "search_trips",
    "select_seats",
    "book_trip",
    "provide_passenger_info",
    "ask_faq",
    "cancel_booking",
    "other",
}

# labels the model sometimes invents
INTENT_ALIASES = {
    "search": "search_trips",
    "search_trip": "search_trips",
    "book": "book_trip",
    "booking": "book_trip",
    "select_seat": "select_seats",
    "passenger_info": "provide_passenger_info",
    "faq": "ask_faq",
    "cancel": "cancel_booking",
    "general_inquiry": "other",
    "modify_booking": "other",
    "greeting": "other",
    "unknown": "other",
}


def normalize_intent(label: Optional[str]) -> str:
    k = (label or "").strip().lower()
    k = INTENT_ALIASES.get(k, k)
    return k if k in INTENTS else "other"


class IntentRouter:
    def __init__(self, oracle: ExtractionOracle, store: ConversationStore):
        self.oracle = oracle
        self.store = store

    def classify(self, message: str, history: Optional[List[dict]] = None) -> str:
        try:
            result = self.oracle.classify_intent(message, history) or {}
        except Exception as e:
            logger.warning("intent classification failed: %s", e)
            return "other"
        return normalize_intent(result.get("intent"))

    def apply_side_effects(self, intent: str, session_id: str) -> None:
        """A new search discards the whole booking chain; results and last_search stay for "show all"."""
        if intent != "search_trips":
            return
        ctx = self.store.get_booking_context(session_id) or {}
        if not ctx.get("selected_trip"):
            return
        reset_chain(ctx, include_confirmation=True)
        self.store.save_booking_context(session_id, ctx)
        logger.info("new search in session %s: booking chain cleared", session_id)

    def route(self, message: str, history: Optional[List[dict]], session_id: str) -> str:
        intent = self.classify(message, history)
        logger.info("intent=%s session=%s", intent, session_id)
        self.apply_side_effects(intent, session_id)
        return intent
