"""Topic deduplication of a campaign's posts."""

import logging
from dataclasses import dataclass, field
from typing import List, Set

from scoop.core import prompts
from scoop.models.ai import Malformed
from scoop.models.content import Post

logger = logging.getLogger(__name__)


@dataclass
class DuplicateGroup:
    topic_signature: str
    primary: Post
    duplicates: List[Post] = field(default_factory=list)
    explanation: str = ""


@dataclass
class DedupResult:
    kept: List[Post]
    groups: List[DuplicateGroup] = field(default_factory=list)

    @property
    def removed(self) -> List[Post]:
        return [post for group in self.groups for post in group.duplicates]


def drop_recently_sent(posts: List[Post], sent_external_ids: Set[str]) -> List[Post]:
    """Remove posts whose external id already went out in a recent campaign."""
    fresh = [post for post in posts if post.external_id not in sent_external_ids]
    if len(fresh) != len(posts):
        logger.info(f"Dropped {len(posts) - len(fresh)} posts sent in recent campaigns")
    return fresh


def _signal(post: Post) -> int:
    return len(post.description or "")


class TopicDeduplicator:
    """Groups same-story posts with a single AI call and keeps one per group."""

    def __init__(self, ai_client):
        self.ai_client = ai_client

    async def deduplicate(self, posts: List[Post]) -> DedupResult:
        """Collapse topical duplicates.

        The representative of each group is the post with the longest
        description; ties keep the AI's choice. A malformed AI answer keeps
        every post.

        Args:
            posts: Posts of the current campaign

        Returns:
            Kept posts in input order plus the groups that were collapsed
        """
        if len(posts) < 2:
            return DedupResult(kept=list(posts))

        prompt = prompts.topic_deduper(
            [{"title": p.title, "description": p.description} for p in posts]
        )
        result = await self.ai_client.complete_json(prompt, max_tokens=1500)

        if isinstance(result, Malformed):
            logger.warning(f"Dedup response unusable ({result.reason}); keeping all posts")
            return DedupResult(kept=list(posts))

        raw_groups = result.parsed.get("groups", []) if isinstance(result.parsed, dict) else []
        claimed: Set[int] = set()
        groups: List[DuplicateGroup] = []

        for raw in raw_groups:
            if not isinstance(raw, dict):
                continue
            indices = []
            for value in [raw.get("primary_article_index")] + list(raw.get("duplicate_indices") or []):
                try:
                    index = int(value) - 1
                except (TypeError, ValueError):
                    continue
                if 0 <= index < len(posts) and index not in claimed and index not in indices:
                    indices.append(index)
            if len(indices) < 2:
                continue

            members = [posts[i] for i in indices]
            primary = max(members, key=_signal)
            claimed.update(indices)
            groups.append(
                DuplicateGroup(
                    topic_signature=str(raw.get("topic_signature", "")),
                    primary=primary,
                    duplicates=[p for p in members if p is not primary],
                    explanation=str(raw.get("similarity_explanation", "")),
                )
            )

        removed_ids = {id(p) for group in groups for p in group.duplicates}
        kept = [post for post in posts if id(post) not in removed_ids]
        logger.info(
            f"🔁 Dedup: {len(groups)} duplicate groups, "
            f"{len(posts) - len(kept)} posts removed, {len(kept)} kept"
        )
        return DedupResult(kept=kept, groups=groups)
