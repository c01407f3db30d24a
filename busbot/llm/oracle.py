# busbot/llm/oracle.py
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from busbot.config import LLM_MAX_TOKENS, LLM_TEMPERATURE, OPENAI_BASE_URL, OPENAI_MODEL
from busbot.llm.json_utils import ExtractionError, parse_json_object
from busbot.llm.prompts import (
    CONVERSATIONAL_PROMPT,
    FAQ_SYSTEM_PROMPT,
    INTENT_CLASSIFICATION_PROMPT,
    TRIP_SEARCH_EXTRACTION_PROMPT,
)

logger = logging.getLogger(__name__)


class ExtractionOracle(ABC):
    """
    LLM-backed extraction. Every call is fallible: callers must treat
    shapes as untrusted and keep a deterministic default.
    """

    @abstractmethod
    def classify_intent(self, text: str, history: Optional[List[dict]] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def extract_trip_search_params(self, text: str, history: Optional[List[dict]] = None) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def chat_completion(self, messages: List[dict], temperature: Optional[float] = None,
                        max_tokens: Optional[int] = None) -> Dict[str, str]:
        ...

    @abstractmethod
    def answer_faq(self, text: str, history: Optional[List[dict]] = None) -> str:
        ...

    @abstractmethod
    def generate_response(self, text: str, history: Optional[List[dict]] = None) -> str:
        ...


def _to_langchain(messages: List[dict]):
    out = []
    for m in messages:
        role = m.get("role")
        content = m.get("content") or ""
        if role == "system":
            out.append(SystemMessage(content=content))
        elif role == "assistant":
            out.append(AIMessage(content=content))
        else:
            out.append(HumanMessage(content=content))
    return out


class LangChainOracle(ExtractionOracle):
    """ChatOpenAI against OpenAI or any OpenAI-compatible endpoint (Groq, vLLM ...)."""

    def __init__(self, model: str = OPENAI_MODEL, base_url: Optional[str] = OPENAI_BASE_URL):
        self.model = model
        self.base_url = base_url
        self._clients: Dict[tuple, ChatOpenAI] = {}

    def _llm(self, temperature: float, max_tokens: int) -> ChatOpenAI:
        key = (temperature, max_tokens)
        if key not in self._clients:
            kwargs = {"model": self.model, "temperature": temperature, "max_tokens": max_tokens}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._clients[key] = ChatOpenAI(**kwargs)
        return self._clients[key]

    def chat_completion(self, messages, temperature=None, max_tokens=None):
        llm = self._llm(
            LLM_TEMPERATURE if temperature is None else temperature,
            LLM_MAX_TOKENS if max_tokens is None else max_tokens,
        )
        resp = llm.invoke(_to_langchain(messages))
        return {"content": resp.content or ""}

    def classify_intent(self, text, history=None):
        msgs = [{"role": "system", "content": INTENT_CLASSIFICATION_PROMPT}]
        msgs += (history or [])[-6:]
        msgs.append({"role": "user", "content": text})
        resp = self.chat_completion(msgs, temperature=0, max_tokens=100)
        return parse_json_object(resp["content"])

    def extract_trip_search_params(self, text, history=None):
        prompt = TRIP_SEARCH_EXTRACTION_PROMPT.format(today=date.today().isoformat())
        msgs = [{"role": "system", "content": prompt}]
        msgs += history or []
        msgs.append({"role": "user", "content": text})
        resp = self.chat_completion(msgs, temperature=0, max_tokens=300)
        try:
            return parse_json_object(resp["content"])
        except ExtractionError:
            logger.warning("trip search extraction unparseable: %s", (resp["content"] or "")[:200])
            return None

    def answer_faq(self, text, history=None):
        msgs = [{"role": "system", "content": FAQ_SYSTEM_PROMPT}]
        msgs += history or []
        msgs.append({"role": "user", "content": text})
        return self.chat_completion(msgs, temperature=0.3, max_tokens=400)["content"].strip()

    def generate_response(self, text, history=None):
        msgs = [{"role": "system", "content": CONVERSATIONAL_PROMPT}]
        msgs += history or []
        msgs.append({"role": "user", "content": text})
        return self.chat_completion(msgs, temperature=0.7, max_tokens=300)["content"].strip()
