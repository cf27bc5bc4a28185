"""OpenRouter-compatible chat completions client."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from scoop.core.errors import AIClientError
from scoop.models.ai import AIResult, parse_json_content, parse_text_content

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterClient:
    """Client for an OpenRouter-style ``/chat/completions`` endpoint.

    Requests are paced by ``openrouter_min_request_interval``. Each HTTP 429
    doubles the spacing up to ``openrouter_max_backoff_multiplier``; the first
    successful answer resets it. When a model gives no answer the configured
    fallback models are tried in order.
    """

    def __init__(self, api_key: str, model: str = None, settings=None):
        """Initialize the AI client.

        Args:
            api_key: API key sent as a Bearer token
            model: Primary model (defaults to ``settings.ai_model``)
            settings: Settings instance for endpoint, pacing and timeouts
        """
        self.api_key = api_key
        self.endpoint = f"{(settings.ai_base_url if settings else DEFAULT_BASE_URL).rstrip('/')}/chat/completions"
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "X-Title": settings.newsletter_name if settings else "Newsletter",
        }

        primary = model or (settings.ai_model if settings else "openai/gpt-4o-mini")
        fallbacks = settings.fallback_models if settings else []
        self.models: List[str] = [primary] + [m for m in fallbacks if m != primary]

        self.interval = settings.openrouter_min_request_interval if settings else 0.5
        self.backoff_cap = settings.openrouter_max_backoff_multiplier if settings else 8.0
        self.timeout = settings.openrouter_timeout if settings else 30.0

        self._last_sent = 0.0
        self._rate_limited = 0
        self._pace_lock: Optional[asyncio.Lock] = None

    @property
    def backoff(self) -> float:
        """Current multiplier applied to the request interval."""
        return min(self.backoff_cap, 2.0 ** self._rate_limited)

    async def complete_json(
        self, prompt: str, max_tokens: int = 1000, temperature: float = 0.3
    ) -> AIResult:
        """Run a prompt whose answer should be JSON.

        Args:
            prompt: The prompt to send
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            Ok with the decoded JSON, or Malformed with the raw text

        Raises:
            AIClientError: If no model produced a response
        """
        return parse_json_content(await self._answer(prompt, max_tokens, temperature))

    async def complete_text(
        self, prompt: str, max_tokens: int = 200, temperature: float = 0.7
    ) -> AIResult:
        """Run a prompt whose answer is plain text.

        Raises:
            AIClientError: If no model produced a response
        """
        return parse_text_content(await self._answer(prompt, max_tokens, temperature))

    async def test_connection(self) -> bool:
        """Send a tiny prompt and report whether any model answered."""
        if not self.api_key:
            return False
        reply = await self._chat("ping", max_tokens=5, temperature=0.0)
        if reply is None:
            logger.error("❌ AI endpoint unreachable or every model failed")
            return False
        logger.info("✅ AI endpoint reachable")
        return True

    async def _answer(self, prompt: str, max_tokens: int, temperature: float) -> str:
        if not self.api_key:
            raise AIClientError("AI API key not configured")

        reply = await self._chat(prompt, max_tokens, temperature)
        if reply is None:
            raise AIClientError(f"No answer from {', '.join(self.models)}")
        try:
            return reply["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Completion without message content: {e}")
            return ""

    async def _chat(
        self, prompt: str, max_tokens: int, temperature: float
    ) -> Optional[Dict[str, Any]]:
        """First usable completion across the model list, or None."""
        for position, model in enumerate(self.models):
            reply = await self._post(
                {
                    "model": model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "stream": False,
                }
            )
            if reply is not None and "choices" in reply:
                if position:
                    logger.info(f"🔁 Answered by fallback model {model}")
                return reply
            logger.warning(f"Model {model} gave no usable answer")
        return None

    async def _pace(self) -> None:
        """Wait until the request interval has passed; concurrent callers queue."""
        if self._pace_lock is None:
            self._pace_lock = asyncio.Lock()
        async with self._pace_lock:
            wait = self.interval * self.backoff - (time.monotonic() - self._last_sent)
            if wait > 0:
                logger.debug(f"Waiting {wait:.1f}s before the next AI request")
                await asyncio.sleep(wait)
            self._last_sent = time.monotonic()

    async def _post(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """One POST to the completions endpoint; None on any failure."""
        await self._pace()
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.endpoint,
                    headers=self.headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status == 429:
                        self._rate_limited += 1
                        logger.warning(f"⏳ Rate limited, request spacing now {self.backoff:.0f}x")
                        return None
                    if response.status != 200:
                        body = await response.text()
                        logger.error(f"AI request failed ({response.status}): {body[:200]}")
                        return None
                    self._rate_limited = 0
                    return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Network error talking to the AI endpoint: {e}")
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Unreadable AI response: {e}")
        return None
