import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

PHONE_RE = re.compile(r"^(\+84|84|0)[0-9]{9,10}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# loose patterns used to fish values out of free text
PHONE_IN_TEXT_RE = re.compile(r"(?:\+84|84|0)[\d\s.\-]{8,14}\d")
EMAIL_IN_TEXT_RE = re.compile(r"[^\s@,;:()<>]+@[^\s@,;:()<>]+\.[A-Za-z]{2,}")


def clean_phone(phone: Optional[str]) -> str:
    return re.sub(r"[\s.\-()]", "", str(phone or ""))


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return bool(PHONE_RE.match(clean_phone(phone)))


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_RE.match(str(email).strip()))


def find_phone(text: str) -> Optional[str]:
    for m in PHONE_IN_TEXT_RE.finditer(text or ""):
        cand = clean_phone(m.group(0))
        if is_valid_phone(cand):
            return cand
    return None


def find_email(text: str) -> Optional[str]:
    m = EMAIL_IN_TEXT_RE.search(text or "")
    if m and is_valid_email(m.group(0)):
        return m.group(0)
    return None


class Passenger(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    full_name: str = Field(alias="fullName", min_length=2, max_length=100)
    phone: str
    document_id: Optional[str] = Field(default=None, alias="documentId")
    email: Optional[str] = None

    @field_validator("document_id", "email", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("phone", mode="before")
    @classmethod
    def _check_phone(cls, v):
        v = clean_phone(v)
        if not PHONE_RE.match(v):
            raise ValueError("invalid phone number")
        return v

    @field_validator("document_id")
    @classmethod
    def _check_document(cls, v):
        if v is not None and not 9 <= len(v) <= 12:
            raise ValueError("document id must be 9-12 characters")
        return v

    @field_validator("email")
    @classmethod
    def _check_email(cls, v):
        if v is not None and not EMAIL_RE.match(v):
            raise ValueError("invalid email")
        return v

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _error_fields(e: ValidationError) -> List[str]:
    out = []
    for err in e.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else "passenger"
        if field not in out:
            out.append(field)
    return out


def validate_passenger(raw: Any) -> Tuple[Optional[Dict[str, Any]], List[str]]:
    """Returns (normalized camelCase passenger, []) or (None, offending field names)."""
    if not isinstance(raw, dict):
        return None, ["passenger"]
    try:
        return Passenger.model_validate(raw).to_payload(), []
    except ValidationError as e:
        return None, _error_fields(e)
