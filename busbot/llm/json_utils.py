import json
import re
from typing import Any, Dict, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class ExtractionError(ValueError):
    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


def strip_code_fences(txt: str) -> str:
    m = _FENCE_RE.search(txt or "")
    return m.group(1).strip() if m else (txt or "").strip()


def _balanced_objects(txt: str):
    """Yield every top-level {...} span, honouring strings and escapes."""
    depth = 0
    start = None
    in_str = False
    escaped = False
    for i, ch in enumerate(txt):
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth:
            depth -= 1
            if depth == 0:
                yield txt[start:i + 1]


def parse_json_object(txt: Optional[str]) -> Dict[str, Any]:
    """
    Pull the first JSON object out of an LLM reply.

    Tries, in order: the whole text, the body of a ```json fence,
    and every balanced {...} span. Raises ExtractionError if none parse.
    """
    if not txt or not txt.strip():
        raise ExtractionError("empty completion", raw=txt)

    for candidate in (txt.strip(), strip_code_fences(txt)):
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data

    for span in _balanced_objects(strip_code_fences(txt)):
        try:
            data = json.loads(span)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data

    raise ExtractionError("no JSON object found in completion", raw=txt)


def safe_json_parse(txt: Optional[str], default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        return parse_json_object(txt)
    except ExtractionError:
        return dict(default or {})
