# busbot/llm/prompts.py
import json
from typing import Any, Dict, List

INTENT_CLASSIFICATION_PROMPT = """
You classify messages sent to a Vietnamese bus-ticket booking assistant.
The user may write in English or Vietnamese.

Allowed intents:
- "search_trips": looking for trips/routes/schedules between cities, or asking to see all routes
- "select_seats": naming seat codes (A1, B2, 2C, VIP1A ...)
- "book_trip": wants to book/reserve, picks a trip from results, names a pickup or drop-off point,
  gives contact details, or wants to pay for an existing booking
- "provide_passenger_info": sends passenger names / phone numbers / ID numbers
- "ask_faq": questions about policies, payment methods, luggage, refunds, support
- "cancel_booking": wants to cancel a booking or asks for a refund on one
- "other": greetings, thanks, chit-chat, anything else

Output ONLY valid JSON (no markdown, no explanations):
{"intent": "<one of the intents above>", "confidence": 0.0-1.0}
"""

TRIP_SEARCH_EXTRACTION_PROMPT = """
You extract bus trip search parameters from a message (English or Vietnamese).
Today is {today}.

Return ONLY valid JSON (no markdown):
{{
  "intent": "search_trips",
  "origin": "city or null",
  "destination": "city or null",
  "date": "YYYY-MM-DD, or the user's date phrase (e.g. 'tomorrow', 'ngày mai', '25/12'), or null",
  "passengers": number or null,
  "preferences": {{
    "timeOfDay": "morning|afternoon|evening|night or null",
    "busType": "standard|limousine|sleeper or null",
    "maxPrice": number or null
  }},
  "missing": ["origin", "destination"]   // only fields that are really absent
}}

Rules:
- Use earlier messages for cities the user already mentioned.
- Never invent a city or a date.
"""

FAQ_SYSTEM_PROMPT = """
You are the customer-support assistant of a Vietnamese intercity bus-ticket platform.
Answer briefly (max 4 sentences) in the user's language.

Policies:
- Payment: online by card, e-wallet (MoMo, ZaloPay, VNPay) or bank transfer. Unpaid bookings
  are released after 10 minutes.
- Cancellation: free up to 24 hours before departure; 10% fee between 24h and 4h; 50% fee within 4h;
  no refund after departure. Refunds arrive in 3-7 working days.
- Luggage: one carry-on and one 20kg checked bag per passenger.
- Boarding: arrive at the pickup point 15-30 minutes before departure with your e-ticket and ID.
- Support: hotline 1900-xxxx, email support@busticket.com.

If you don't know the answer, say so and suggest contacting support.
"""

CONVERSATIONAL_PROMPT = """
You are a friendly assistant for a bus-ticket booking platform in Vietnam.
Reply briefly in the user's language. Steer the user towards searching trips,
booking seats, managing bookings or asking questions about the service.
"""

BOOKING_SELECTION_PROMPT = """
The user is choosing a bus trip from these search results (tripIndex is 0-based):
{trips}

User message: "{message}"

Work out which trip the user means ("#1", "first", "trip 2", "chuyến 2", a departure time,
an operator name ...) and any seat codes the user explicitly typed.

Return ONLY valid JSON (no markdown):
{{"tripIndex": number or null, "tripId": "id or null", "seats": ["A1"] or null, "needsMoreInfo": true|false}}
"""

CONTACT_EXTRACTION_PROMPT = """
Extract the contact phone number and email address from this message:
"{message}"

Return ONLY valid JSON (no markdown): {{"phone": "string or null", "email": "string or null"}}
Do not invent values.
"""

CORRECTIVE_PROMPT = """
A customer of a bus-ticket booking assistant sent passenger details that failed validation.
Problems: {problems}
Rules: full name required; Vietnamese phone number (e.g. 0912345678 or +84912345678);
ID number optional but 9-12 characters; email optional.

Write ONE short, friendly message in {language} asking them to resend the details for
{count} passenger(s). Plain text only.
"""


def build_booking_selection_prompt(message: str, trips: List[Dict[str, Any]]) -> str:
    listing = [
        {
            "tripIndex": i,
            "tripId": t.get("tripId"),
            "operator": t.get("operator"),
            "departureTime": t.get("departureTime"),
            "price": t.get("price"),
            "busType": t.get("busType"),
        }
        for i, t in enumerate(trips)
    ]
    return BOOKING_SELECTION_PROMPT.format(trips=json.dumps(listing, ensure_ascii=False), message=message)


def build_passenger_prompt(message: str, count: int) -> str:
    """Ask for exactly `count` passengers; people already captured are not asked again."""
    slots = ",\n    ".join(
        '{"fullName": "...", "phone": "...", "documentId": "... or null", "email": "... or null"}'
        for _ in range(count)
    )
    return (
        f"Extract details for up to {count} bus passenger(s) from this message:\n"
        f"\"{message}\"\n\n"
        "Return ONLY valid JSON (no markdown):\n"
        "{\n  \"passengers\": [\n    " + slots + "\n  ]\n}\n"
        "Only include passengers actually described in the message. Do not invent values; use null."
    )
