import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

import jwt
from flask import Flask, g, jsonify, request
from pydantic import ValidationError

from busbot.config import JWT_ALGORITHMS, JWT_SECRET, LOG_LEVEL, PORT
from busbot.schemas import FeedbackIn, PassengerInfoIn, QueryIn
from busbot.store import SessionNotFoundError
from busbot.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def _error(code: str, message: str, status: int):
    return jsonify({
        "success": False,
        "error": {"code": code, "message": message},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }), status


def _ok(data, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def _optional_auth(secret: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """(user_id, token) for a valid bearer token, (None, None) for guests."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer ") or not secret:
        return None, None
    token = header[len("Bearer "):].strip()
    try:
        claims = jwt.decode(token, secret, algorithms=JWT_ALGORITHMS)
    except jwt.PyJWTError as e:
        logger.info("ignoring invalid token, continuing as guest: %s", e)
        return None, None
    user_id = claims.get("userId") or claims.get("user_id") or claims.get("sub")
    return (str(user_id) if user_id is not None else None), token


def create_app(service=None, jwt_secret: Optional[str] = JWT_SECRET) -> Flask:
    app = Flask(__name__)
    state = {"service": service}

    def get_service():
        if state["service"] is None:
            from busbot.service import build_default_service
            state["service"] = build_default_service()
        return state["service"]

    @app.before_request
    def load_user():
        g.user_id, g.auth_token = _optional_auth(jwt_secret)

    @app.errorhandler(ValidationError)
    def on_validation_error(e: ValidationError):
        first = e.errors()[0] if e.errors() else {}
        field = ".".join(str(x) for x in first.get("loc", ()))
        return _error("VAL_001", f"{field}: {first.get('msg', 'invalid request')}".strip(": "), 422)

    @app.errorhandler(SessionNotFoundError)
    def on_session_not_found(e: SessionNotFoundError):
        return _error("CHAT_002", str(e), 404)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "service": "busbot"})

    @app.post("/query")
    def query():
        body = QueryIn.model_validate(request.get_json(force=True, silent=True) or {})
        try:
            result = get_service().process_query(body.message, session_id=body.session_id, user_id=g.user_id,
                                                 auth_token=g.auth_token, lang=body.lang)
        except SessionNotFoundError:
            raise
        except Exception:
            logger.exception("query failed")
            return _error("CHAT_001", "Failed to process message", 500)
        return _ok(result)

    @app.post("/submit-passenger-info")
    def submit_passenger_info():
        body = PassengerInfoIn.model_validate(request.get_json(force=True, silent=True) or {})
        try:
            result = get_service().submit_passenger_info(body.session_id, body.passengers,
                                                         auth_token=g.auth_token, lang=body.lang)
        except SessionNotFoundError:
            raise
        except Exception:
            logger.exception("passenger submission failed")
            return _error("CHAT_005", "Failed to process passenger information", 500)
        return _ok(result)

    @app.get("/sessions/<session_id>/history")
    def history(session_id: str):
        limit = request.args.get("limit", default=20, type=int)
        messages = get_service().get_history(session_id, limit=max(1, min(limit, 100)))
        return _ok({"sessionId": session_id, "messages": messages})

    @app.post("/sessions/<session_id>/reset")
    def reset(session_id: str):
        get_service().reset_conversation(session_id)
        return _ok({"sessionId": session_id, "reset": True})

    @app.post("/feedback")
    def feedback():
        body = FeedbackIn.model_validate(request.get_json(force=True, silent=True) or {})
        saved = get_service().save_feedback(body.session_id, body.message_id, body.rating, body.comment)
        return _ok(saved, 201)

    return app


if __name__ == "__main__":
    configure_logging(LOG_LEVEL)

    from busbot import init_db

    # Create tables (simple dev mode)
    init_db()
    create_app().run(host="0.0.0.0", port=PORT, debug=True)
