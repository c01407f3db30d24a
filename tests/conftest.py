import copy
import json
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from busbot.graph.graph import Services
from busbot.llm.oracle import ExtractionOracle
from busbot.models import Base
from busbot.providers.base import BookingProvider, TripDirectory
from busbot.providers.trip_service import TripServiceError
from busbot.service import ChatbotService
from busbot.store import ConversationStore

TOMORROW = (date.today() + timedelta(days=1)).isoformat()

PICKUP_POINTS = [
    {"point_id": "p1", "name": "Bến xe Miền Đông", "address": "292 Đinh Bộ Lĩnh, Bình Thạnh",
     "time": f"{TOMORROW}T06:30:00"},
    {"point_id": "p2", "name": "Văn phòng Quận 1", "address": "12 Phạm Ngũ Lão, Quận 1",
     "time": f"{TOMORROW}T07:00:00"},
]
DROPOFF_POINTS = [
    {"point_id": "d1", "name": "Bến xe Trung tâm Đà Nẵng", "address": "Tôn Đức Thắng, Liên Chiểu",
     "time": f"{TOMORROW}T20:00:00"},
    {"point_id": "d2", "name": "Ngã ba Huế", "address": "Điện Biên Phủ, Thanh Khê",
     "time": f"{TOMORROW}T20:30:00"},
]


def make_trip(n, pickup_points=None, dropoff_points=None):
    return {
        "trip_id": f"trip-{n}",
        "route": {"origin": "Ho Chi Minh City", "destination": "Da Nang"},
        "operator": {"name": f"Operator {n}"},
        "bus": {"bus_type": "sleeper"},
        "schedule": {"departure_time": f"{TOMORROW}T0{6 + n}:00:00",
                     "arrival_time": f"{TOMORROW}T2{n}:00:00"},
        "pricing": {"base_price": 350000 + n * 10000, "currency": "VND"},
        "availability": {"available_seats": 20},
        "pickup_points": copy.deepcopy(PICKUP_POINTS if pickup_points is None else pickup_points),
        "dropoff_points": copy.deepcopy(DROPOFF_POINTS if dropoff_points is None else dropoff_points),
    }


SEAT_MAP = [
    {"seat_code": "A1", "status": "available", "price": 360000},
    {"seat_code": "A2", "status": "available", "price": 360000},
    {"seat_code": "B1", "status": "booked", "price": 360000},
]


class FakeOracle(ExtractionOracle):
    """Scripted oracle: queued intents and completions, fixed search params."""

    def __init__(self, intents=None, search_params=None, completions=None, faq_answer="", chat_reply="Hello!"):
        self.intents = list(intents or [])
        self.search_params = search_params
        self.completions = list(completions or [])
        self.faq_answer = faq_answer
        self.chat_reply = chat_reply
        self.calls = []

    def classify_intent(self, text, history=None):
        self.calls.append(("classify", text))
        if not self.intents:
            return {"intent": "other"}
        nxt = self.intents.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return {"intent": nxt}

    def extract_trip_search_params(self, text, history=None):
        self.calls.append(("extract_search", text))
        if isinstance(self.search_params, Exception):
            raise self.search_params
        return copy.deepcopy(self.search_params)

    def chat_completion(self, messages, temperature=None, max_tokens=None):
        self.calls.append(("chat", messages[-1]["content"], temperature))
        if not self.completions:
            return {"content": ""}
        nxt = self.completions.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return {"content": nxt if isinstance(nxt, str) else json.dumps(nxt)}

    def answer_faq(self, text, history=None):
        self.calls.append(("faq", text))
        return self.faq_answer

    def generate_response(self, text, history=None):
        self.calls.append(("chat_reply", text))
        return self.chat_reply

    def count(self, kind):
        return sum(1 for c in self.calls if c[0] == kind)


class FakeTrips(TripDirectory):
    def __init__(self, trips=None, seat_map=None, error=None, seat_error=None):
        self.trips = [make_trip(i) for i in (1, 2, 3)] if trips is None else trips
        self.seat_map = SEAT_MAP if seat_map is None else seat_map
        self.error = error
        self.seat_error = seat_error
        self.searches = []
        self.detail_calls = []

    def search_trips(self, filters):
        self.searches.append(dict(filters))
        if self.error:
            raise self.error
        return {"success": True, "data": copy.deepcopy(self.trips)}

    def get_trip_by_id(self, trip_id):
        self.detail_calls.append(trip_id)
        for t in self.trips:
            if t["trip_id"] == trip_id:
                return {"success": True, "data": copy.deepcopy(t)}
        raise TripServiceError("Trip not found", 404)

    def get_available_seats(self, trip_id):
        if self.seat_error:
            raise self.seat_error
        return {"success": True, "data": {"trip_id": trip_id, "seat_map": {"seats": self.seat_map}}}


class FakeBookings(BookingProvider):
    def __init__(self, error=None, preview=None):
        self.error = error
        self.preview = preview
        self.created = []

    def create_booking(self, payload, auth_token=None):
        self.created.append((copy.deepcopy(payload), auth_token))
        if self.error:
            raise self.error
        return {"success": True, "data": {
            "booking_id": "b-1",
            "booking_reference": "BK20251115001",
            "status": "pending",
            "passengers": payload["passengers"],
            "pricing": {"total": 720000},
            "payment_info": {"payment_url": "https://pay.example.com/b-1", "amount": 720000},
            "locked_until": f"{TOMORROW}T00:10:00",
        }}

    def get_booking_by_id(self, booking_id, auth_token=None):
        return {"data": {"booking_id": booking_id}}

    def get_booking_by_reference(self, reference, phone=None, email=None):
        return {"data": {"booking_reference": reference}}

    def cancel_booking(self, booking_id, reason=None, auth_token=None):
        return {"data": {"status": "cancelled"}}

    def get_cancellation_preview(self, booking_id, auth_token=None):
        if self.error:
            raise self.error
        return self.preview or {"data": {"refundAmount": 324000, "fee": 36000}}


@pytest.fixture
def store():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield ConversationStore(sessionmaker(bind=engine, autoflush=False, autocommit=False))
    engine.dispose()


@pytest.fixture
def session_id(store):
    return store.create_session()["session_id"]


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def trips():
    return FakeTrips()


@pytest.fixture
def bookings():
    return FakeBookings()


@pytest.fixture
def services(store, oracle, trips, bookings):
    return Services(store=store, oracle=oracle, trips=trips, bookings=bookings)


@pytest.fixture
def service(services):
    return ChatbotService(services)


def searched_context(trips=None):
    """Context right after a successful search."""
    results = [make_trip(i) for i in (1, 2, 3)] if trips is None else trips
    return {
        "last_search": {"origin": "Ho Chi Minh City", "destination": "Da Nang", "passengers": 1, "preferences": {}},
        "search_params": {"origin": "Ho Chi Minh City", "destination": "Da Nang", "date": TOMORROW},
        "search_results": results,
    }


def full_chain_context(passengers=2):
    ctx = searched_context()
    ctx.update({
        "selected_trip": ctx["search_results"][0],
        "selected_pickup_point": {"point_id": "p1", "name": "Bến xe Miền Đông", "address": None, "time": None},
        "selected_dropoff_point": {"point_id": "d1", "name": "Bến xe Trung tâm Đà Nẵng", "address": None,
                                   "time": None},
        "selected_seats": ["A1", "A2"],
        "contact_info": {"phone": "0912345678", "email": "test@example.com"},
        "passenger_info": [
            {"fullName": "Nguyen Van A", "phone": "0912345678"},
            {"fullName": "Tran Thi B", "phone": "0987654321"},
        ][:passengers],
    })
    return ctx
