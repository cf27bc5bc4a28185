"""Subject line generation for the current top article."""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from scoop.core import prompts
from scoop.core.errors import AIClientError
from scoop.models.ai import Malformed, Ok, parse_json_content
from scoop.models.content import Article

logger = logging.getLogger(__name__)

_QUOTES = "\"'“”‘’`"
_WS_RE = re.compile(r"\s+")


def clean_subject(text: str, max_length: int = 35) -> str:
    """Normalize a model answer into a subject line of at most ``max_length`` characters."""
    text = (text or "").strip()
    if text.startswith("{"):
        parsed = parse_json_content(text)
        if isinstance(parsed, Ok) and isinstance(parsed.parsed, dict):
            text = str(parsed.parsed.get("subject_line") or parsed.parsed.get("headline") or "")
    lines = [line for line in text.splitlines() if line.strip()]
    text = lines[0] if lines else ""
    text = re.sub(r"^(subject( line)?|headline)\s*:\s*", "", text.strip(), flags=re.IGNORECASE)
    text = _WS_RE.sub(" ", text).strip(_QUOTES + " ")
    if len(text) > max_length:
        text = text[:max_length].rstrip()
    return text


class SubjectLineGenerator:
    """Asks the AI for a fresh headline-style subject each call."""

    def __init__(self, ai_client, settings=None):
        self.ai_client = ai_client
        self.max_length = settings.subject_max_length if settings else 35

    async def generate(self, article: Article, now: Optional[datetime] = None) -> str:
        """Generate a subject line from an article.

        Raises:
            AIClientError: If the model gave no usable answer
        """
        prompt = prompts.subject_line(
            article.headline,
            article.content,
            max_length=self.max_length,
            now=now or datetime.now(timezone.utc),
        )
        result = await self.ai_client.complete_text(prompt, max_tokens=100, temperature=0.8)
        if isinstance(result, Malformed):
            raise AIClientError(f"Subject line response unusable: {result.reason}")

        subject = clean_subject(str(result.parsed), self.max_length)
        if not subject:
            raise AIClientError("Subject line response was empty after cleanup")
        logger.info(f"📝 Subject line: {subject} ({len(subject)} chars)")
        return subject
