import logging
import threading
import zlib
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from busbot.agents.booking import BookingAgent
from busbot.config import CONTEXT_MESSAGES, HISTORY_LIMIT
from busbot.graph.graph import Services, build_graph
from busbot.store import SessionNotFoundError
from busbot.utils.formatting import build_conversation_context
from busbot.utils.i18n import detect_language, normalize_lang

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


class ChatbotService:
    """
    One conversational turn per call. Turns on the same session are
    serialized (contexts are read-modify-write on a non-transactional store).
    """

    def __init__(self, services: Services):
        self.services = services
        self.store = services.store
        self.graph = build_graph(services)
        self.booking = BookingAgent(services.store, services.oracle, services.trips, services.bookings,
                                    services.auth)
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    @contextmanager
    def _session_lock(self, session_id: str):
        lock = self._locks[zlib.crc32(session_id.encode("utf-8")) % LOCK_STRIPES]
        with lock:
            yield

    def _resolve_session(self, session_id: Optional[str], user_id: Optional[str]) -> str:
        if session_id:
            if not self.store.get_session(session_id):
                raise SessionNotFoundError(session_id)
            return session_id
        return self.store.create_session(user_id)["session_id"]

    def process_query(self, message: str, session_id: Optional[str] = None, user_id: Optional[str] = None,
                      auth_token: Optional[str] = None, lang: Optional[str] = None) -> Dict[str, Any]:
        session_id = self._resolve_session(session_id, user_id)
        lang = normalize_lang(lang) if lang else detect_language(message)

        with self._session_lock(session_id):
            self.store.update_session_activity(session_id)
            history = self.store.get_message_history(session_id, limit=HISTORY_LIMIT)
            conversation = build_conversation_context(history, limit=CONTEXT_MESSAGES)

            self.store.save_message(session_id, "user", message)

            out = self.graph.invoke({
                "session_id": session_id,
                "message": message,
                "lang": lang,
                "history": conversation,
                "auth_token": auth_token,
                "user_id": user_id,
            })
            response = out.get("response") or {}

            saved = self.store.save_message(session_id, "assistant", response.get("text", ""), {
                "intent": response.get("intent"),
                "actions": response.get("actions", []),
                "suggestions": response.get("suggestions", []),
                "trace": out.get("trace", []),
            })

        return {"sessionId": session_id, "response": response, "messageId": saved["message_id"]}

    def submit_passenger_info(self, session_id: str, passengers: List[Dict[str, Any]],
                              auth_token: Optional[str] = None, lang: str = "en") -> Dict[str, Any]:
        if not self.store.get_session(session_id):
            raise SessionNotFoundError(session_id)
        lang = normalize_lang(lang)

        with self._session_lock(session_id):
            self.store.update_session_activity(session_id)
            response = self.booking.submit_passengers(passengers, session_id, auth_token, lang)
            response["intent"] = "provide_passenger_info"
            saved = self.store.save_message(session_id, "assistant", response.get("text", ""), {
                "intent": "provide_passenger_info",
                "actions": response.get("actions", []),
                "suggestions": response.get("suggestions", []),
            })

        return {"sessionId": session_id, "response": response, "messageId": saved["message_id"]}

    def get_history(self, session_id: str, limit: int = HISTORY_LIMIT) -> List[Dict[str, Any]]:
        if not self.store.get_session(session_id):
            raise SessionNotFoundError(session_id)
        return self.store.get_message_history(session_id, limit=limit)

    def reset_conversation(self, session_id: str) -> None:
        if not self.store.get_session(session_id):
            raise SessionNotFoundError(session_id)
        with self._session_lock(session_id):
            deleted = self.store.delete_session_messages(session_id)
            self.store.save_booking_context(session_id, {})
        logger.info("reset session %s (%d messages deleted)", session_id, deleted)

    def save_feedback(self, session_id: str, message_id: str, rating: str,
                      comment: Optional[str] = None) -> Dict[str, Any]:
        if not self.store.get_session(session_id):
            raise SessionNotFoundError(session_id)
        return self.store.save_feedback(session_id, message_id, rating, comment)


def build_default_service() -> ChatbotService:
    from busbot.llm.oracle import LangChainOracle
    from busbot.providers.auth_service import AuthServiceClient
    from busbot.providers.booking_service import BookingServiceClient
    from busbot.providers.trip_service import TripServiceClient
    from busbot.store import ConversationStore

    return ChatbotService(Services(
        store=ConversationStore(),
        oracle=LangChainOracle(),
        trips=TripServiceClient(),
        bookings=BookingServiceClient(),
        auth=AuthServiceClient(),
    ))
