"""
Rewrites top rated posts into newsletter articles.

Each rewrite is validated locally (length and style rules) and, when
enabled, fact checked by a second AI call. A rejected rewrite is
regenerated once with the rejection reasons attached; a second rejection
skips the post and records it in the run log.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from scoop.core import prompts
from scoop.core.errors import AIClientError
from scoop.core.utils import count_words
from scoop.models.ai import Malformed
from scoop.models.content import Article, Post, PostRating

logger = logging.getLogger(__name__)

MIN_WORDS = 40
MAX_WORDS = 75
FACT_CHECK_PASS = 20

_RELATIVE_DAY_RE = re.compile(r"\b(today|tomorrow|yesterday)\b", re.IGNORECASE)
_FIRST_PERSON_RE = re.compile(r"\b(we|our|us)\b", re.IGNORECASE)
_URL_RE = re.compile(r"https?://|www\.", re.IGNORECASE)
_HASHTAG_RE = re.compile(r"#\w")
_EMOJI_RE = re.compile("[\U0001F300-\U0001FAFF☀-➿]")
_NON_WORD_RE = re.compile(r"[^a-z0-9 ]")


def _normalize(text: str) -> str:
    return " ".join(_NON_WORD_RE.sub("", text.lower()).split())


def validate_rewrite(headline: str, content: str, source_title: str = "") -> List[str]:
    """Check a rewrite against the house rules.

    Returns:
        Human readable problems; empty when the rewrite is acceptable
    """
    problems = []
    if not headline or not content:
        return ["missing headline or content"]

    words = count_words(content)
    if not MIN_WORDS <= words <= MAX_WORDS:
        problems.append(f"content has {words} words, expected {MIN_WORDS}-{MAX_WORDS}")

    combined = f"{headline} {content}"
    if _RELATIVE_DAY_RE.search(combined):
        problems.append("uses today/tomorrow/yesterday")
    if _FIRST_PERSON_RE.search(combined):
        problems.append("uses first-person plural")
    if _URL_RE.search(combined):
        problems.append("contains a URL")
    if _HASHTAG_RE.search(combined):
        problems.append("contains a hashtag")
    if _EMOJI_RE.search(combined):
        problems.append("contains an emoji")
    if ":" in headline:
        problems.append("headline contains a colon")
    if source_title and _normalize(headline) == _normalize(source_title):
        problems.append("headline repeats the source title")
    return problems


@dataclass
class WriterReport:
    """Run log of one writer pass."""

    articles: List[Article] = field(default_factory=list)
    regenerated: List[str] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "written": len(self.articles),
            "regenerated": self.regenerated,
            "skipped": self.skipped,
        }


class NewsletterWriter:
    """Produces 40-75 word articles with fresh headlines."""

    def __init__(self, ai_client, settings=None, prompt_template: Optional[str] = None):
        self.ai_client = ai_client
        self.fact_check_enabled = settings.fact_check_enabled if settings else True
        self.prompt_template = prompt_template

    async def _attempt(self, post: Post, feedback: str) -> Tuple[Optional[Dict[str, Any]], List[str]]:
        prompt = prompts.newsletter_writer(
            post.title,
            post.description,
            post.content,
            post.source_url,
            template=self.prompt_template,
            feedback=feedback,
        )
        result = await self.ai_client.complete_json(prompt, max_tokens=500, temperature=0.7)
        if isinstance(result, Malformed) or not isinstance(result.parsed, dict):
            return None, ["response was not the expected JSON"]

        headline = str(result.parsed.get("headline") or "").strip()
        content = str(result.parsed.get("content") or "").strip()
        problems = validate_rewrite(headline, content, post.title)
        if problems:
            return None, problems

        draft = {"headline": headline, "content": content, "word_count": count_words(content)}
        if self.fact_check_enabled:
            check = await self.fact_check(content, post.content or post.description)
            if check is None:
                return None, ["fact check response was unusable"]
            score, details = check
            draft["fact_check_score"] = score
            draft["fact_check_details"] = details
            if score < FACT_CHECK_PASS:
                return None, [f"fact check scored {score}/30: {details}"]
        return draft, []

    async def fact_check(self, article_content: str, original: str) -> Optional[Tuple[int, str]]:
        """Score a rewrite against its source (3-30).

        Returns:
            (score, details), or None if the answer could not be parsed
        """
        result = await self.ai_client.complete_json(
            prompts.fact_checker(article_content, original or ""), max_tokens=800, temperature=0.2
        )
        if isinstance(result, Malformed) or not isinstance(result.parsed, dict):
            return None
        try:
            score = int(result.parsed["score"])
        except (KeyError, TypeError, ValueError):
            return None
        return score, str(result.parsed.get("details") or "")

    async def write(self, post: Post, rating: PostRating, report: WriterReport) -> Optional[Article]:
        """Rewrite one post, regenerating once on rejection."""
        feedback = ""
        for attempt in (1, 2):
            draft, problems = await self._attempt(post, feedback)
            if draft is not None:
                if attempt == 2:
                    report.regenerated.append(post.title)
                return Article(
                    post_id=post.id,
                    campaign_id=post.campaign_id,
                    total_score=rating.total_score,
                    source_url=post.source_url,
                    image_url=post.image_url,
                    author=post.author,
                    **draft,
                )
            logger.warning(f"Rewrite attempt {attempt} rejected for '{post.title}': {'; '.join(problems)}")
            feedback = "; ".join(problems)

        report.skipped.append({"post_id": post.id, "title": post.title, "reasons": feedback})
        logger.warning(f"⏭️ Skipped after regeneration: {post.title}")
        return None

    async def write_all(self, candidates: List[Tuple[Post, PostRating]]) -> WriterReport:
        """Rewrite candidates one by one, best score first."""
        report = WriterReport()
        for post, rating in candidates:
            logger.info(f"✍️ Writing article for: {post.title}")
            try:
                article = await self.write(post, rating, report)
            except AIClientError as e:
                logger.error(f"Writer failed for '{post.title}': {e}")
                report.skipped.append({"post_id": post.id, "title": post.title, "reasons": str(e)})
                continue
            if article is not None:
                report.articles.append(article)
        logger.info(
            f"Writer finished: {len(report.articles)} written, "
            f"{len(report.regenerated)} regenerated, {len(report.skipped)} skipped"
        )
        return report
