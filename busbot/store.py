import copy
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select

from busbot.config import HISTORY_LIMIT
from busbot.models import ChatSession, Feedback, Message

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


def _session_to_dict(s: ChatSession) -> Dict[str, Any]:
    return {
        "session_id": s.session_id,
        "user_id": s.user_id,
        "created_at": s.created_at.isoformat() if s.created_at else None,
        "last_activity_at": s.last_activity_at.isoformat() if s.last_activity_at else None,
    }


def _message_to_dict(m: Message) -> Dict[str, Any]:
    return {
        "message_id": m.message_id,
        "session_id": m.session_id,
        "role": m.role,
        "content": m.content,
        "metadata": m.meta or {},
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


class ConversationStore:
    """
    Durable sessions, message log and BookingContext blobs.

    Contexts are overwritten wholesale on save (no merge); callers
    read-modify-write the full object within one turn.
    """

    def __init__(self, session_factory=None):
        if session_factory is None:
            from busbot.db import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    @contextmanager
    def _db(self):
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    # ---------------------------
    # Sessions
    # ---------------------------
    def create_session(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        with self._db() as db:
            s = ChatSession(session_id=f"session_{uuid.uuid4()}", user_id=user_id, booking_context={})
            db.add(s)
            db.commit()
            db.refresh(s)
            logger.info("created session %s user=%s", s.session_id, user_id)
            return _session_to_dict(s)

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as db:
            s = db.get(ChatSession, session_id)
            return _session_to_dict(s) if s else None

    def update_session_activity(self, session_id: str) -> None:
        with self._db() as db:
            s = db.get(ChatSession, session_id)
            if not s:
                raise SessionNotFoundError(session_id)
            s.last_activity_at = func.now()
            db.commit()

    # ---------------------------
    # Messages
    # ---------------------------
    def save_message(self, session_id: str, role: str, content: str,
                     metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        with self._db() as db:
            m = Message(
                message_id=f"msg_{uuid.uuid4()}",
                session_id=session_id,
                role=role,
                content=content,
                meta=metadata or {},
            )
            db.add(m)
            db.commit()
            db.refresh(m)
            return _message_to_dict(m)

    def get_message_history(self, session_id: str, limit: int = HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """Most recent `limit` messages, oldest first."""
        with self._db() as db:
            rows = db.scalars(
                select(Message)
                .where(Message.session_id == session_id)
                .order_by(Message.id.desc())
                .limit(limit)
            ).all()
            return [_message_to_dict(m) for m in reversed(rows)]

    def delete_session_messages(self, session_id: str) -> int:
        with self._db() as db:
            res = db.execute(delete(Message).where(Message.session_id == session_id))
            db.commit()
            return res.rowcount or 0

    # ---------------------------
    # Booking context
    # ---------------------------
    def get_booking_context(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as db:
            s = db.get(ChatSession, session_id)
            if not s:
                return None
            return copy.deepcopy(s.booking_context) if s.booking_context else None

    def save_booking_context(self, session_id: str, context: Dict[str, Any]) -> None:
        with self._db() as db:
            s = db.get(ChatSession, session_id)
            if not s:
                raise SessionNotFoundError(session_id)
            # new object so the JSON column is flagged dirty
            s.booking_context = copy.deepcopy(context or {})
            db.commit()

    # ---------------------------
    # Feedback
    # ---------------------------
    def save_feedback(self, session_id: str, message_id: str, rating: str,
                      comment: Optional[str] = None) -> Dict[str, Any]:
        with self._db() as db:
            fb = db.scalars(
                select(Feedback).where(Feedback.session_id == session_id, Feedback.message_id == message_id)
            ).first()
            if fb:
                fb.rating = rating
                fb.comment = comment
            else:
                fb = Feedback(session_id=session_id, message_id=message_id, rating=rating, comment=comment)
                db.add(fb)
            db.commit()
            return {
                "session_id": fb.session_id,
                "message_id": fb.message_id,
                "rating": fb.rating,
                "comment": fb.comment,
            }
