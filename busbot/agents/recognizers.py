"""
Fast-path recognizers, tried before any LLM call.

Each one is a plain function over the raw message so it can be tested
on its own.
"""
import re
from typing import Any, Dict, List, Optional

from busbot.utils.normalize import fold

SHOW_ALL_RE = re.compile(
    r"\b(show|list|see|view)\s+(me\s+)?(all|every|other)\b"
    r"|\ball\s+(routes|trips)\b"
    r"|\b(xem|hien thi|liet ke)\s+(tat ca|het)\b"
    r"|\btat ca\s+(cac\s+)?(tuyen|chuyen)\b"
)

DIFFERENT_SEAT_RE = re.compile(
    r"\b(different|another|other|change|new)\s+(seat|seats)\b"
    r"|\b(doi|chon)\s+ghe\s+khac\b|\bghe\s+khac\b|\bdoi\s+ghe\b"
)

PAYMENT_RE = re.compile(
    r"\b(pay|payment|checkout)\b"
    r"|\bthanh\s+toan\b"
)

# letters and digits in either order: A1, 12B, 2C, VIP2C
SEAT_CODE_RE = re.compile(r"\b(?:[A-Z]+\d+[A-Z]+|[A-Z]*\d{1,2}[A-Z]*)\b")

NUMBERED_CHOICE_RE = re.compile(r"^\s*(?:#|no\.?|so|option|diem|point|number)?\s*(\d{1,2})\s*\.?\s*$")

TRIP_NUMBER_RE = re.compile(r"(?:#\s*(\d{1,2})\b|\b(?:trip|chuyen|option|lua chon)\s*(?:so\s*)?#?\s*(\d{1,2})\b)")

# a mid-flow switch needs the word "trip"/"chuyến"; a bare "#2" or "option 2" is a list choice
TRIP_SWITCH_RE = re.compile(r"\b(?:trip|chuyen)\s*(?:so\s*)?#?\s*(\d{1,2})\b")

_ORDINALS = {
    "first": 0, "second": 1, "third": 2, "fourth": 3, "fifth": 4,
    "thu nhat": 0, "dau tien": 0, "thu hai": 1, "thu ba": 2, "thu tu": 3, "thu nam": 4,
}
_ORDINAL_RE = re.compile(r"\b(" + "|".join(sorted(_ORDINALS, key=len, reverse=True)) + r")\b")
_LAST_RE = re.compile(r"\b(last|cuoi cung|cuoi)\b")

BOOKING_REFERENCE_RE = re.compile(r"\b[A-Z]{2}\d{11}\b")


def is_show_all_request(text: str) -> bool:
    return bool(SHOW_ALL_RE.search(fold(text)))


def wants_different_seat(text: str) -> bool:
    return bool(DIFFERENT_SEAT_RE.search(fold(text)))


def is_payment_intent(text: str) -> bool:
    return bool(PAYMENT_RE.search(fold(text)))


def parse_seat_codes(text: str) -> List[str]:
    """
    Seat codes in order of appearance, uppercased, de-duplicated.

    Plain numbers match too ("I have 2 bags" -> ["2"]); callers decide
    whether that is acceptable in their context.
    """
    out: List[str] = []
    for tok in SEAT_CODE_RE.findall((text or "").upper()):
        if any(ch.isdigit() for ch in tok) and tok not in out:
            out.append(tok)
    return out


def seat_in_message(seat: str, text: str) -> bool:
    """True if the literal seat token appears in the user's message."""
    if not seat:
        return False
    pattern = rf"(?<![A-Z0-9]){re.escape(str(seat).strip().upper())}(?![A-Z0-9])"
    return bool(re.search(pattern, (text or "").upper()))


def pick_numbered(text: str, count: int) -> Optional[int]:
    """'2', '#2', 'option 2', 'điểm 2' -> 1 (0-based), if in range."""
    m = NUMBERED_CHOICE_RE.match(fold(text))
    if not m:
        return None
    idx = int(m.group(1)) - 1
    return idx if 0 <= idx < count else None


def match_point(text: str, points: List[Dict[str, Any]]) -> Optional[int]:
    """
    Index of the point whose name matches the message, substring in either
    direction, accent-insensitive. The longest matching name wins.
    """
    msg = fold(text)
    if len(msg) < 3:
        return None
    best, best_len = None, 0
    for i, p in enumerate(points or []):
        name = fold(p.get("name") or "")
        if len(name) < 3:
            continue
        if name in msg or msg in name:
            if len(name) > best_len:
                best, best_len = i, len(name)
    return best


def mentions_trip_number(text: str) -> bool:
    return bool(TRIP_SWITCH_RE.search(fold(text)))


def trip_index(text: str, count: int) -> Optional[int]:
    """Deterministic trip choice: '#1', 'trip 2', 'chuyến 3', 'first', 'last'."""
    s = fold(text)
    m = TRIP_NUMBER_RE.search(s)
    if m:
        idx = int(m.group(1) or m.group(2)) - 1
        return idx if 0 <= idx < count else None
    m = _ORDINAL_RE.search(s)
    if m:
        idx = _ORDINALS[m.group(1)]
        return idx if idx < count else None
    if _LAST_RE.search(s) and count:
        return count - 1
    return pick_numbered(text, count)


def find_booking_reference(text: str) -> Optional[str]:
    m = BOOKING_REFERENCE_RE.search((text or "").upper())
    return m.group(0) if m else None
