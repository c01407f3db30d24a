# busbot/config.py
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./busbot.db")

# LLM (any OpenAI-compatible endpoint, e.g. Groq via OPENAI_BASE_URL)
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))

# Downstream services
TRIP_SERVICE_URL = os.getenv("TRIP_SERVICE_URL", "http://localhost:3002/api/v1/trips")
BOOKING_SERVICE_URL = os.getenv("BOOKING_SERVICE_URL", "http://localhost:3003/api/v1/bookings")
AUTH_SERVICE_URL = os.getenv("AUTH_SERVICE_URL", "http://localhost:3001/api/v1/auth")
PAYMENT_PAGE_URL = os.getenv("PAYMENT_PAGE_URL", "http://localhost:3000/payment")

# seconds
SEARCH_TIMEOUT = 10
TRIP_DETAIL_TIMEOUT = 5
SEAT_MAP_TIMEOUT = 5
BOOKING_CREATE_TIMEOUT = 15
BOOKING_CANCEL_TIMEOUT = 10
BOOKING_LOOKUP_TIMEOUT = 5
AUTH_PROFILE_TIMEOUT = 3

JWT_SECRET = os.getenv("JWT_SECRET") or None
JWT_ALGORITHMS = ["HS256"]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "5000"))

HISTORY_LIMIT = 20
CONTEXT_MESSAGES = 10
MAX_SEARCH_RESULTS = 5
