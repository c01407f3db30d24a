from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class QueryIn(_Body):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    message: str = Field(min_length=1, max_length=1000)
    lang: Optional[Literal["en", "vi"]] = None


class PassengerInfoIn(_Body):
    session_id: str = Field(alias="sessionId", min_length=1)
    passengers: List[Dict[str, Any]] = Field(min_length=1, max_length=10)
    lang: Literal["en", "vi"] = "en"


class FeedbackIn(_Body):
    session_id: str = Field(alias="sessionId", min_length=1)
    message_id: str = Field(alias="messageId", min_length=1)
    rating: Literal["positive", "negative"]
    comment: Optional[str] = Field(default=None, max_length=500)
