"""AI rubric scoring of posts."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from scoop.core import prompts
from scoop.core.errors import AIClientError
from scoop.models.ai import Malformed
from scoop.models.content import Post, PostRating

logger = logging.getLogger(__name__)

# field -> (minimum, maximum)
RUBRIC = {
    "interest_level": (1, 20),
    "local_relevance": (1, 10),
    "community_impact": (1, 10),
}


def _score(value: Any, low: int, high: int) -> Optional[int]:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return number if low <= number <= high else None


class ContentEvaluator:
    """Scores posts on interest, local relevance and community impact."""

    def __init__(self, ai_client, settings=None, prompt_template: Optional[str] = None):
        """Initialize the evaluator.

        Args:
            ai_client: Client exposing ``complete_json``
            settings: Settings for batching and the regional bonus
            prompt_template: Stored prompt overriding the built-in rubric
        """
        self.ai_client = ai_client
        self.batch_size = settings.evaluation_batch_size if settings else 3
        self.batch_delay = settings.evaluation_batch_delay if settings else 2.0
        self.regional_bonus = settings.regional_bonus if settings else 2
        self.communities: List[str] = settings.community_names if settings else []
        self.region = settings.newsletter_name if settings else "local"
        self.prompt_template = prompt_template

    def regional_bonus_for(self, post: Post) -> int:
        """Flat bonus when a post mentions two or more local communities."""
        text = f"{post.title} {post.description} {post.content}".lower()
        mentioned = sum(1 for name in self.communities if name.lower() in text)
        return self.regional_bonus if mentioned >= 2 else 0

    def build_rating(self, post: Post, parsed: Any) -> Optional[PostRating]:
        """Turn a parsed AI answer into a rating, or None if any score is blank or invalid."""
        if not isinstance(parsed, dict):
            return None
        scores: Dict[str, int] = {}
        for name, (low, high) in RUBRIC.items():
            value = _score(parsed.get(name), low, high)
            if value is None:
                return None
            scores[name] = value

        total = sum(scores.values()) + self.regional_bonus_for(post)
        return PostRating(
            post_id=post.id,
            total_score=total,
            ai_reasoning=str(parsed.get("reasoning") or ""),
            **scores,
        )

    async def evaluate(self, post: Post) -> Optional[PostRating]:
        """Score one post.

        Returns:
            A fully populated rating, or None when the post is excluded or the
            answer could not be used
        """
        prompt = prompts.content_evaluator(
            post.title,
            post.description,
            post.content,
            communities=self.communities,
            template=self.prompt_template,
        )
        result = await self.ai_client.complete_json(prompt, max_tokens=1000, temperature=0.3)
        if isinstance(result, Malformed):
            logger.warning(f"Unparseable evaluation for '{post.title}': {result.reason}")
            return None

        rating = self.build_rating(post, result.parsed)
        if rating is None:
            logger.info(f"⏭️ Excluded from candidacy (blank rating): {post.title}")
        return rating

    async def evaluate_all(self, posts: List[Post]) -> List[Tuple[Post, PostRating]]:
        """Score posts in small concurrent batches with a pause between batches.

        A failing post is logged and dropped; it never aborts the batch.
        """
        rated: List[Tuple[Post, PostRating]] = []
        errors = 0
        total_batches = (len(posts) + self.batch_size - 1) // self.batch_size

        for start in range(0, len(posts), self.batch_size):
            batch = posts[start : start + self.batch_size]
            batch_num = start // self.batch_size + 1
            logger.info(f"Evaluating batch {batch_num}/{total_batches} ({len(batch)} posts)")

            outcomes = await asyncio.gather(
                *[self.evaluate(post) for post in batch], return_exceptions=True
            )
            for post, outcome in zip(batch, outcomes):
                if isinstance(outcome, AIClientError):
                    errors += 1
                    logger.error(f"Evaluation failed for '{post.title}': {outcome}")
                elif isinstance(outcome, Exception):
                    errors += 1
                    logger.error(f"Unexpected evaluation error for '{post.title}': {outcome}")
                elif outcome is not None:
                    rated.append((post, outcome))

            if start + self.batch_size < len(posts) and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

        logger.info(
            f"✅ Evaluation complete: {len(rated)} rated, "
            f"{len(posts) - len(rated) - errors} excluded, {errors} errors"
        )
        return rated
