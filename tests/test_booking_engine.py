import jwt
import pytest

from busbot.agents.booking import BookingAgent
from busbot.providers.auth_service import AuthServiceClient
from busbot.providers.booking_service import BookingServiceError
from busbot.providers.trip_service import TripServiceError

from conftest import FakeBookings, FakeOracle, FakeTrips, full_chain_context, make_trip, searched_context


@pytest.fixture
def make_agent(store, trips, bookings):
    def _make(oracle=None, trips_=None, bookings_=None, auth=None):
        return BookingAgent(store, oracle or FakeOracle(), trips_ or trips, bookings_ or bookings, auth,
                            payment_page_url="https://busticket.example/payment")
    return _make


def _ctx(store, session_id):
    return store.get_booking_context(session_id) or {}


def _assert_invariants(ctx):
    if ctx.get("selected_dropoff_point") is not None:
        assert ctx.get("selected_pickup_point") is not None
    assert len(ctx.get("passenger_info") or []) <= len(ctx.get("selected_seats") or [])


# ---------------------------
# Entry conditions
# ---------------------------
def test_asks_to_search_first(make_agent, session_id):
    out = make_agent().handle("book it", session_id)
    assert out["entities"]["slot"] == "trip"
    assert "find a trip first" in out["text"]


# ---------------------------
# NEED_TRIP
# ---------------------------
def test_book_trip_selects_from_results_and_asks_pickup(make_agent, store, session_id):
    store.save_booking_context(session_id, searched_context())
    oracle = FakeOracle(completions=[{"tripIndex": 0, "tripId": None, "seats": None, "needsMoreInfo": False}])

    out = make_agent(oracle).handle("book trip #1", session_id)

    ctx = _ctx(store, session_id)
    assert ctx["selected_trip"]["trip_id"] == "trip-1"
    assert out["entities"]["slot"] == "pickup"
    assert out["actions"][0]["type"] == "pickup_selection"
    assert [p["name"] for p in out["actions"][0]["data"]["points"]] == ["Bến xe Miền Đông", "Văn phòng Quận 1"]


def test_hallucinated_seats_are_discarded(make_agent, store, session_id):
    store.save_booking_context(session_id, searched_context())
    oracle = FakeOracle(completions=[{"tripIndex": 1, "tripId": None, "seats": ["B9"]}])

    make_agent(oracle).handle("book trip 2", session_id)

    ctx = _ctx(store, session_id)
    assert ctx["selected_trip"]["trip_id"] == "trip-2"
    assert not ctx.get("selected_seats")


def test_seats_named_in_the_message_are_kept(make_agent, store, session_id):
    store.save_booking_context(session_id, searched_context())
    oracle = FakeOracle(completions=[{"tripIndex": 0, "seats": ["a1", "A2"]}])

    make_agent(oracle).handle("trip 1, seats A1 and A2", session_id)

    assert _ctx(store, session_id)["selected_seats"] == ["A1", "A2"]


def test_trip_id_must_be_in_current_results(make_agent, store, session_id):
    store.save_booking_context(session_id, searched_context())
    oracle = FakeOracle(completions=[{"tripIndex": None, "tripId": "trip-old"}])

    out = make_agent(oracle).handle("that one from before", session_id)

    assert not _ctx(store, session_id).get("selected_trip")
    assert out["entities"]["slot"] == "trip"
    assert out["actions"][0]["type"] == "search_results"


def test_unparseable_oracle_output_uses_ordinal_fallback(make_agent, store, session_id):
    store.save_booking_context(session_id, searched_context())
    oracle = FakeOracle(completions=["Sure! The user wants the second trip."])

    make_agent(oracle).handle("the second one please", session_id)

    assert _ctx(store, session_id)["selected_trip"]["trip_id"] == "trip-2"


def test_unresolved_reference_preserves_selected_trip(make_agent, store, session_id):
    ctx = searched_context()
    ctx["selected_trip"] = ctx["search_results"][0]
    store.save_booking_context(session_id, ctx)
    oracle = FakeOracle(completions=[{"tripIndex": None, "tripId": None, "needsMoreInfo": True}])

    make_agent(oracle).handle("is trip 9 any good?", session_id)

    assert _ctx(store, session_id)["selected_trip"]["trip_id"] == "trip-1"


def test_switching_trip_clears_downstream(make_agent, store, session_id):
    store.save_booking_context(session_id, full_chain_context(passengers=1))
    oracle = FakeOracle(completions=[{"tripIndex": 2}])

    out = make_agent(oracle).handle("actually trip 3", session_id)

    ctx = _ctx(store, session_id)
    assert ctx["selected_trip"]["trip_id"] == "trip-3"
    for field in ("selected_pickup_point", "selected_dropoff_point", "selected_seats", "passenger_info"):
        assert not ctx.get(field)
    assert out["entities"]["slot"] == "pickup"


# ---------------------------
# NEED_PICKUP / NEED_DROPOFF
# ---------------------------
def _with_trip(store, session_id, trip=None):
    ctx = searched_context([trip] if trip else None)
    ctx["selected_trip"] = ctx["search_results"][0]
    store.save_booking_context(session_id, ctx)
    return ctx


def test_pickup_by_exact_name_skips_the_oracle(make_agent, store, session_id):
    _with_trip(store, session_id)
    oracle = FakeOracle()

    out = make_agent(oracle).handle("Bến xe Miền Đông", session_id)

    ctx = _ctx(store, session_id)
    assert ctx["selected_pickup_point"] == {"point_id": "p1", "name": "Bến xe Miền Đông",
                                            "address": "292 Đinh Bộ Lĩnh, Bình Thạnh",
                                            "time": ctx["selected_trip"]["pickup_points"][0]["time"]}
    assert oracle.calls == []
    assert out["entities"]["slot"] == "dropoff"
    assert out["actions"][0]["type"] == "dropoff_selection"
    assert "Bến xe Trung tâm Đà Nẵng" in out["text"]


def test_point_by_number(make_agent, store, session_id):
    _with_trip(store, session_id)
    make_agent().handle("2", session_id)
    assert _ctx(store, session_id)["selected_pickup_point"]["point_id"] == "p2"


@pytest.mark.parametrize("reply", ["#2", "option 2"])
def test_numbered_point_reply_keeps_the_trip(make_agent, store, session_id, reply):
    _with_trip(store, session_id)
    oracle = FakeOracle()

    out = make_agent(oracle).handle(reply, session_id)

    ctx = _ctx(store, session_id)
    assert ctx["selected_trip"]["trip_id"] == "trip-1"
    assert ctx["selected_pickup_point"]["point_id"] == "p2"
    assert oracle.calls == []
    assert out["entities"]["slot"] == "dropoff"


def test_numbered_dropoff_reply(make_agent, store, session_id):
    ctx = _with_trip(store, session_id)
    ctx["selected_pickup_point"] = {"point_id": "p1", "name": "Bến xe Miền Đông", "address": None, "time": None}
    store.save_booking_context(session_id, ctx)

    make_agent().handle("#2", session_id)

    ctx = _ctx(store, session_id)
    assert ctx["selected_trip"]["trip_id"] == "trip-1"
    assert ctx["selected_dropoff_point"]["point_id"] == "d2"


def test_unmatched_point_reprompts(make_agent, store, session_id):
    _with_trip(store, session_id)
    out = make_agent().handle("somewhere nice", session_id)
    assert _ctx(store, session_id).get("selected_pickup_point") is None
    assert out["entities"]["slot"] == "pickup"


def test_single_point_is_selected_automatically(make_agent, store, session_id):
    trip = make_trip(1, pickup_points=[{"point_id": "p9", "name": "Only Stop", "address": "x", "time": None}])
    _with_trip(store, session_id, trip)

    out = make_agent(trips_=FakeTrips(trips=[trip])).handle("", session_id)

    assert _ctx(store, session_id)["selected_pickup_point"]["point_id"] == "p9"
    assert out["entities"]["slot"] == "dropoff"


def test_no_points_stores_placeholder(make_agent, store, session_id):
    trip = make_trip(1, pickup_points=[], dropoff_points=[])
    _with_trip(store, session_id, trip)

    out = make_agent(trips_=FakeTrips(trips=[trip])).handle("", session_id)

    ctx = _ctx(store, session_id)
    assert ctx["selected_pickup_point"]["point_id"] is None
    assert ctx["selected_dropoff_point"]["point_id"] is None
    assert out["entities"]["slot"] == "seats"


def test_points_fetched_from_trip_detail_when_absent(make_agent, store, session_id, trips):
    trip = make_trip(1)
    del trip["pickup_points"]
    _with_trip(store, session_id, trip)

    out = make_agent().handle("", session_id)

    assert trips.detail_calls == ["trip-1"]
    assert out["entities"]["slot"] == "pickup"
    assert len(out["actions"][0]["data"]["points"]) == 2


def test_stale_trip_resets_chain(make_agent, store, session_id):
    ctx = searched_context()
    ctx["selected_trip"] = make_trip(9)
    ctx["selected_seats"] = ["A1"]
    store.save_booking_context(session_id, ctx)

    out = make_agent().handle("Bến xe Miền Đông", session_id)

    ctx = _ctx(store, session_id)
    assert not ctx.get("selected_trip") and not ctx.get("selected_seats")
    assert len(ctx["search_results"]) == 3
    assert out["entities"]["slot"] == "trip"
    assert "no longer in your latest search results" in out["text"]


# ---------------------------
# NEED_SEATS
# ---------------------------
def _at_seats(store, session_id):
    ctx = full_chain_context()
    for f in ("selected_seats", "contact_info", "passenger_info"):
        ctx.pop(f)
    store.save_booking_context(session_id, ctx)


def test_seat_map_is_offered(make_agent, store, session_id):
    _at_seats(store, session_id)
    out = make_agent().handle("", session_id)
    assert out["entities"]["slot"] == "seats"
    assert out["actions"][0]["type"] == "seat_selection"
    assert out["actions"][0]["data"]["seat_map"]["seats"][0]["seat_code"] == "A1"


def test_seat_map_failure_falls_back_to_text(make_agent, store, session_id):
    _at_seats(store, session_id)
    out = make_agent(trips_=FakeTrips(seat_error=TripServiceError("timeout"))).handle("", session_id)
    assert out["entities"]["slot"] == "seats"
    assert out["actions"] == []
    assert "A1, A2" in out["text"]


def test_seats_typed_during_booking(make_agent, store, session_id):
    _at_seats(store, session_id)
    out = make_agent().handle("a1, a2", session_id)
    assert _ctx(store, session_id)["selected_seats"] == ["A1", "A2"]
    assert out["entities"]["slot"] == "contact"


def test_different_seat_clears_seats_and_shows_map(make_agent, store, session_id):
    store.save_booking_context(session_id, full_chain_context())
    out = make_agent().handle("I want a different seat", session_id)
    ctx = _ctx(store, session_id)
    assert not ctx.get("selected_seats") and not ctx.get("passenger_info")
    assert ctx["contact_info"]["phone"] == "0912345678"
    assert out["actions"][0]["type"] == "seat_selection"


# ---------------------------
# NEED_CONTACT
# ---------------------------
def _at_contact(store, session_id, **extra):
    ctx = full_chain_context(passengers=0)
    ctx.pop("contact_info")
    ctx.update(extra)
    store.save_booking_context(session_id, ctx)


def test_short_message_asks_directly(make_agent, store, session_id):
    _at_contact(store, session_id)
    oracle = FakeOracle()
    out = make_agent(oracle).handle("ok", session_id)
    assert oracle.calls == []
    assert out["entities"]["slot"] == "contact"


def test_valid_contact_moves_to_passengers(make_agent, store, session_id):
    _at_contact(store, session_id)
    oracle = FakeOracle(completions=[{"phone": "0912345678", "email": "test@example.com"}])

    out = make_agent(oracle).handle("0912345678 test@example.com", session_id)

    assert _ctx(store, session_id)["contact_info"] == {"phone": "0912345678", "email": "test@example.com"}
    assert out["entities"]["slot"] == "passengers"
    assert out["entities"]["remaining"] == 2


def test_missing_email_is_named_and_phone_kept(make_agent, store, session_id):
    _at_contact(store, session_id)
    oracle = FakeOracle(completions=[{"phone": "0912345678", "email": None},
                                     {"phone": None, "email": "test@example.com"}])
    agent = make_agent(oracle)

    out = agent.handle("my number is 0912345678", session_id)
    assert out["entities"]["missing"] == ["email"]
    assert "email" in out["text"]
    assert _ctx(store, session_id)["contact_info"] == {"phone": "0912345678"}

    out = agent.handle("test@example.com", session_id)
    assert _ctx(store, session_id)["contact_info"] == {"phone": "0912345678", "email": "test@example.com"}
    assert out["entities"]["slot"] == "passengers"


def test_contact_regex_fallback(make_agent, store, session_id):
    _at_contact(store, session_id)
    oracle = FakeOracle(completions=["I cannot help with that"])
    make_agent(oracle).handle("sdt 0912 345 678, mail test@example.com", session_id)
    assert _ctx(store, session_id)["contact_info"] == {"phone": "0912345678", "email": "test@example.com"}


def test_authenticated_user_skips_contact(make_agent, store, session_id):
    _at_contact(store, session_id)
    claims = {"userId": "u-1", "email": "user@example.com", "phone": "0909123456"}
    token = jwt.encode(claims, "test-secret-key-that-is-long-enough-for-hs256", algorithm="HS256")

    out = make_agent(auth=AuthServiceClient("http://auth.invalid")).handle("", session_id, auth_token=token)

    assert out["entities"]["slot"] == "passengers"
    assert _ctx(store, session_id)["contact_info"] == {"phone": "0909123456", "email": "user@example.com"}


# ---------------------------
# NEED_PASSENGERS
# ---------------------------
def test_partial_batch_is_salvaged(make_agent, store, session_id):
    store.save_booking_context(session_id, full_chain_context(passengers=0))
    oracle = FakeOracle(completions=[{"passengers": [
        {"fullName": "Nguyen Van A", "phone": "0912345678", "documentId": "079123456789"},
        {"fullName": "B", "phone": "123"},
    ]}])

    out = make_agent(oracle).handle("Nguyen Van A 0912345678 079123456789; B 123", session_id)

    ctx = _ctx(store, session_id)
    assert len(ctx["passenger_info"]) == 1
    assert out["entities"]["remaining"] == 1
    assert "1 more passenger" in out["text"]
    assert "starting with passenger 2" in out["text"]
    # prompt asked the oracle for exactly the two outstanding passengers
    prompt = oracle.calls[0][1]
    assert prompt.count('"fullName"') == 2


def test_only_remaining_count_is_requested(make_agent, store, session_id):
    store.save_booking_context(session_id, full_chain_context(passengers=1))
    oracle = FakeOracle(completions=[{"passengers": [{"fullName": "Tran Thi B", "phone": "0987654321"},
                                                     {"fullName": "Extra Person", "phone": "0987654322"}]}])
    agent = make_agent(oracle)

    agent.handle("Tran Thi B 0987654321", session_id)

    assert oracle.calls[0][1].count('"fullName"') == 1
    ctx = _ctx(store, session_id)
    assert len(ctx["passenger_info"]) == 2
    assert ctx["booking_confirmation"]["booking_reference"] == "BK20251115001"


def test_missing_phone_defaults_to_contact(make_agent, store, session_id):
    store.save_booking_context(session_id, full_chain_context(passengers=1))
    oracle = FakeOracle(completions=[{"passengers": [{"fullName": "Tran Thi B", "phone": None}]}])
    make_agent(oracle).handle("Tran Thi B", session_id)
    assert _ctx(store, session_id)["passenger_info"][1]["phone"] == "0912345678"


def test_all_invalid_gets_oracle_corrective_prompt(make_agent, store, session_id):
    store.save_booking_context(session_id, full_chain_context(passengers=0))
    oracle = FakeOracle(completions=[{"passengers": [{"fullName": "X", "phone": "12"}]},
                                     "Oops, could you resend both passengers with a valid phone?"])

    out = make_agent(oracle).handle("X 12", session_id)

    assert out["text"] == "Oops, could you resend both passengers with a valid phone?"
    assert oracle.calls[1][2] == 0.8
    assert not _ctx(store, session_id).get("passenger_info")
    assert "phone" in out["entities"]["invalidFields"]


def test_corrective_prompt_static_fallback(make_agent, store, session_id):
    store.save_booking_context(session_id, full_chain_context(passengers=0))
    oracle = FakeOracle(completions=[{"passengers": [{"fullName": "Nguyen Van A", "phone": "12"}]},
                                     RuntimeError("llm down")])
    out = make_agent(oracle).handle("Nguyen Van A 12", session_id)
    assert "phone number" in out["text"]
    assert out["entities"]["slot"] == "passengers"


# ---------------------------
# READY_TO_BOOK -> BOOKED
# ---------------------------
def _ready(store, session_id):
    ctx = full_chain_context()
    ctx["selected_seats"] = ["a1", "a2"]
    store.save_booking_context(session_id, ctx)


def test_booking_payload_and_confirmation(make_agent, store, session_id, bookings):
    _ready(store, session_id)

    out = make_agent().handle("", session_id)

    payload, token = bookings.created[0]
    assert token is None
    assert payload == {
        "tripId": "trip-1",
        "seats": ["A1", "A2"],
        "passengers": [
            {"fullName": "Nguyen Van A", "phone": "0912345678", "seatCode": "A1"},
            {"fullName": "Tran Thi B", "phone": "0987654321", "seatCode": "A2"},
        ],
        "contactEmail": "test@example.com",
        "contactPhone": "0912345678",
        "isGuestCheckout": True,
    }
    conf = _ctx(store, session_id)["booking_confirmation"]
    assert conf["booking_reference"] == "BK20251115001"
    assert conf["passenger_count"] == 2
    action = out["actions"][0]
    assert action["type"] == "booking_confirmation"
    assert action["data"]["bookingReference"] == "BK20251115001"


def test_invalid_stored_passenger_is_dropped_before_booking(make_agent, store, session_id, bookings):
    ctx = full_chain_context()
    ctx["passenger_info"][1] = {"fullName": "Tran Thi B", "phone": "bad"}
    store.save_booking_context(session_id, ctx)

    out = make_agent().handle("", session_id)

    assert bookings.created == []
    assert len(_ctx(store, session_id)["passenger_info"]) == 1
    assert out["entities"]["slot"] == "passengers"


def test_existing_booking_is_not_created_twice(make_agent, store, session_id, bookings):
    _ready(store, session_id)
    agent = make_agent()
    agent.handle("", session_id)
    out = agent.handle("ok thanks", session_id)
    assert len(bookings.created) == 1
    assert out["entities"]["slot"] == "booked"
    assert "BK20251115001" in out["text"]


@pytest.mark.parametrize("message,seats_cleared,passengers_cleared,text", [
    ("Seat A1 is already booked", True, True, "no longer available"),
    ("contactEmail is required", False, True, "passenger information again"),
    ("Internal server error", True, True, "couldn't complete your booking"),
])
def test_booking_failure_remediation(make_agent, store, session_id, message, seats_cleared, passengers_cleared,
                                     text):
    _ready(store, session_id)
    failing = FakeBookings(error=BookingServiceError(message, 400))

    out = make_agent(bookings_=failing).handle("", session_id)

    ctx = _ctx(store, session_id)
    assert bool(ctx.get("selected_seats")) is not seats_cleared
    assert bool(ctx.get("passenger_info")) is not passengers_cleared
    assert ctx["selected_trip"]["trip_id"] == "trip-1"
    assert not ctx.get("booking_confirmation")
    assert text in out["text"]
    assert out["suggestions"]
    _assert_invariants(ctx)


def test_pay_now_returns_payment_link(make_agent, store, session_id):
    _ready(store, session_id)
    agent = make_agent()
    agent.handle("", session_id)

    out = agent.handle("pay now", session_id)

    assert out["actions"][0]["type"] == "payment_link"
    assert out["actions"][0]["data"]["url"] == "https://pay.example.com/b-1"


def test_payment_link_survives_cleared_chain(make_agent, store, session_id):
    store.save_booking_context(session_id, {
        "booking_confirmation": {"booking_id": "b-7", "booking_reference": "BK20251115007", "payment_info": {}},
    })
    out = make_agent().handle("thanh toán", session_id)
    assert out["actions"][0]["data"]["url"] == "https://busticket.example/payment?bookingId=b-7"


def test_payment_request_ignores_booking_for_another_trip(make_agent, store, session_id, bookings):
    ctx = full_chain_context(passengers=0)
    ctx["booking_confirmation"] = {"booking_id": "b-1", "booking_reference": "BK20251115001",
                                   "payment_info": {"payment_url": "https://pay.example.com/b-1"},
                                   "trip_id": "trip-2", "seats": ["B1"]}
    store.save_booking_context(session_id, ctx)

    out = make_agent().handle("pay now", session_id)

    assert all(a["type"] != "payment_link" for a in out["actions"])
    assert out["entities"]["slot"] == "passengers"
    assert bookings.created == []


# ---------------------------
# Derived state
# ---------------------------
def test_replay_without_message_is_idempotent(make_agent, store, session_id):
    ctx = full_chain_context(passengers=1)
    store.save_booking_context(session_id, ctx)
    agent = make_agent()

    first = agent.handle("", session_id)
    after_first = _ctx(store, session_id)
    second = agent.handle("   ", session_id)

    assert first == second
    assert _ctx(store, session_id) == after_first == ctx
