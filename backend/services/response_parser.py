"""
Response parser: turns raw model text into an intent.

Unparsable output is treated as prose and never as an instruction, so every
failure path ends in a ``summary`` intent carrying the raw text.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

MESSAGE_TYPES = ("summary", "declined", "error")

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)
_ANY_FENCE_RE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)


@dataclass(frozen=True)
class QueryIntent:
    sql: str
    explanation: Optional[str] = None
    type: str = "query"


@dataclass(frozen=True)
class MessageIntent:
    type: str
    response: str


Intent = Union[QueryIntent, MessageIntent]


def _strip_fence(text: str) -> str:
    m = _JSON_FENCE_RE.search(text) or _ANY_FENCE_RE.search(text)
    return m.group(1) if m else text


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(_strip_fence(text))
    except (ValueError, RecursionError):
        return None
    return obj if isinstance(obj, dict) else None


def parse_intent(text: str) -> Intent:
    raw = text or ""
    fallback = MessageIntent(type="summary", response=raw)

    obj = _load_object(raw)
    if obj is None:
        return fallback

    kind = obj.get("type")
    if kind == "query":
        sql = obj.get("sql")
        if not isinstance(sql, str) or not sql.strip():
            return fallback
        explanation = obj.get("explanation")
        return QueryIntent(sql=sql, explanation=explanation if isinstance(explanation, str) else None)

    if kind in MESSAGE_TYPES:
        response = obj.get("response")
        if not isinstance(response, str):
            return fallback
        return MessageIntent(type=kind, response=response)

    return fallback
