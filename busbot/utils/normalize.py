import re
import unicodedata
from datetime import date, datetime, timedelta
from typing import List, Optional

from dateutil import parser as dtparser
from dateutil.relativedelta import relativedelta


def strip_accents(text: str) -> str:
    """'Đà Nẵng' -> 'Da Nang' (đ is not decomposed by NFD, so map it by hand)."""
    s = (text or "").replace("đ", "d").replace("Đ", "D")
    s = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in s if unicodedata.category(ch) != "Mn")


def fold(text: str) -> str:
    """Lowercase, accent-free, single-spaced."""
    return re.sub(r"\s+", " ", strip_accents(text).lower()).strip()


# keys are folded (see fold())
CITY_ALIASES = {
    "ho chi minh city": "Ho Chi Minh City",
    "ho chi minh": "Ho Chi Minh City",
    "tp ho chi minh": "Ho Chi Minh City",
    "thanh pho ho chi minh": "Ho Chi Minh City",
    "sai gon": "Ho Chi Minh City",
    "saigon": "Ho Chi Minh City",
    "hcm": "Ho Chi Minh City",
    "hcmc": "Ho Chi Minh City",
    "tphcm": "Ho Chi Minh City",
    "tp hcm": "Ho Chi Minh City",
    "tp.hcm": "Ho Chi Minh City",
    "da lat": "Da Lat",
    "dalat": "Da Lat",
    "da nang": "Da Nang",
    "danang": "Da Nang",
    "hanoi": "Hanoi",
    "ha noi": "Hanoi",
    "nha trang": "Nha Trang",
    "nha trang city": "Nha Trang",
    "hue": "Hue",
    "can tho": "Can Tho",
    "cantho": "Can Tho",
    "sapa": "Sapa",
    "sa pa": "Sapa",
    "hai phong": "Hai Phong",
    "haiphong": "Hai Phong",
    "vung tau": "Vung Tau",
    "quy nhon": "Quy Nhon",
    "phan thiet": "Phan Thiet",
    "mui ne": "Phan Thiet",
}

# longest aliases first so "ho chi minh city" wins over "ho chi minh"
_ALIAS_SCAN = sorted(CITY_ALIASES, key=len, reverse=True)


def normalize_city(name: Optional[str]) -> Optional[str]:
    if not name or not str(name).strip():
        return None
    return CITY_ALIASES.get(fold(str(name)), str(name).strip())


def find_cities(text: str) -> List[str]:
    """Canonical cities in order of first mention."""
    s = f" {re.sub(r'[^a-z0-9. ]', ' ', fold(text))} "
    hits = []
    for alias in _ALIAS_SCAN:
        for m in re.finditer(rf"(?<=\s){re.escape(alias)}(?=\s)", s):
            hits.append((m.start(), len(alias), CITY_ALIASES[alias]))
    hits.sort(key=lambda h: (h[0], -h[1]))

    out: List[str] = []
    taken_until = -1
    for start, length, city in hits:
        if start < taken_until:
            continue
        taken_until = start + length
        if city not in out:
            out.append(city)
    return out


# ---------------------------
# Dates
# ---------------------------
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DMY_RE = re.compile(r"\b(\d{1,2})[/\-.](\d{1,2})(?:[/\-.](\d{2,4}))?\b")

_DAY_AFTER = ("day after tomorrow", "ngay kia", "ngay mot")
_TODAY = ("today", "hom nay", "tonight", "toi nay")
_TOMORROW_RE = re.compile(r"\b(tomorrow|ngay mai|mai)\b")
_NEXT_WEEK = ("next week", "tuan toi", "tuan sau")
_NEXT_MONTH = ("next month", "thang toi", "thang sau")
_NEXT_YEAR = ("next year", "nam sau", "nam toi")


def normalize_date(text: Optional[str], today: Optional[date] = None) -> Optional[str]:
    """
    Phrase -> 'YYYY-MM-DD', or None when it cannot be understood.

    ISO strings pass through unchanged; relative phrases (en/vi) are resolved
    against `today`; dd/mm[/yyyy] is validated for day-of-month.
    """
    if text is None:
        return None
    raw = str(text).strip()
    if not raw:
        return None
    if ISO_DATE_RE.match(raw):
        return raw

    today = today or date.today()
    s = fold(raw)

    if any(p in s for p in _DAY_AFTER):
        return (today + timedelta(days=2)).isoformat()
    if any(p in s for p in _TODAY):
        return today.isoformat()
    if _TOMORROW_RE.search(s):
        return (today + timedelta(days=1)).isoformat()
    if any(p in s for p in _NEXT_WEEK):
        return (today + timedelta(days=7)).isoformat()
    if any(p in s for p in _NEXT_MONTH):
        return (today.replace(day=1) + relativedelta(months=1)).isoformat()

    m = DMY_RE.search(s)
    if m:
        day, month = int(m.group(1)), int(m.group(2))
        if m.group(3):
            year = int(m.group(3))
            if year < 100:
                year += 2000
        else:
            year = today.year + (1 if any(p in s for p in _NEXT_YEAR) else 0)
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    # "Dec 25", "25 December 2026"
    try:
        d = dtparser.parse(raw, dayfirst=True, default=datetime(today.year, today.month, today.day))
        return d.date().isoformat()
    except (ValueError, OverflowError):
        return None
