"""Result type for AI completions."""

import json
import re
from typing import Any, Union

from pydantic import BaseModel

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class Ok(BaseModel):
    """A completion that parsed into the expected shape."""

    parsed: Any
    raw: str = ""


class Malformed(BaseModel):
    """A completion that could not be parsed; ``raw`` keeps the text."""

    raw: str
    reason: str = ""


AIResult = Union[Ok, Malformed]


def parse_json_content(content: str) -> AIResult:
    """Parse a completion that should contain JSON.

    Code fences are stripped first; when the whole text is not JSON the
    first object or array embedded in it is tried.
    """
    if content is None:
        return Malformed(raw="", reason="empty response")
    text = _FENCE_RE.sub("", content.strip())
    if not text:
        return Malformed(raw=content, reason="empty response")

    try:
        return Ok(parsed=json.loads(text), raw=content)
    except json.JSONDecodeError:
        pass

    # An object is tried first; arrays embedded in objects would otherwise win
    for pattern in (_OBJECT_RE, _ARRAY_RE):
        match = pattern.search(text)
        if match:
            try:
                return Ok(parsed=json.loads(match.group(0)), raw=content)
            except json.JSONDecodeError:
                continue

    return Malformed(raw=content, reason="no JSON found")


def parse_text_content(content: str) -> AIResult:
    """Wrap a plain-text completion; blank text is malformed."""
    if content is None or not content.strip():
        return Malformed(raw=content or "", reason="empty response")
    return Ok(parsed=content.strip(), raw=content)
