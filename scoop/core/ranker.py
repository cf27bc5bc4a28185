"""Ranking and selection of a campaign's articles.

Ranks are only meaningful among active, non-skipped articles; every
operation here leaves those ranks unique and contiguous from 1.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from scoop.core.errors import ValidationError
from scoop.models.content import Article

logger = logging.getLogger(__name__)


def _is_ranked(article: Article) -> bool:
    return article.is_active and not article.skipped


def select_top(articles: Iterable[Article], active_count: int = 5) -> List[Article]:
    """Rank fresh articles by total score.

    The best ``active_count`` non-skipped articles become active with ranks
    1..N; everything else is inactive with no rank.

    Returns:
        Updated copies, ranked articles first
    """
    ordered = sorted(
        (a for a in articles),
        key=lambda a: (a.skipped, -a.total_score, a.id if a.id is not None else 0),
    )
    result = []
    rank = 0
    for article in ordered:
        if not article.skipped and rank < active_count:
            rank += 1
            result.append(article.model_copy(update={"rank": rank, "is_active": True}))
        else:
            result.append(article.model_copy(update={"rank": None, "is_active": False}))
    logger.info(f"Ranked {rank} active articles out of {len(result)}")
    return result


def renumber(articles: Iterable[Article]) -> List[Article]:
    """Close gaps so ranked articles use 1..k in their current order."""
    articles = list(articles)
    ranked = sorted(
        (a for a in articles if _is_ranked(a)),
        key=lambda a: (a.rank if a.rank is not None else 10**6, a.id or 0),
    )
    new_ranks = {id(a): position for position, a in enumerate(ranked, start=1)}
    return [
        a.model_copy(update={"rank": new_ranks.get(id(a))})
        for a in articles
    ]


def top_article(articles: Iterable[Article]) -> Optional[Article]:
    """The rank 1 active, non-skipped article, if any."""
    ranked = [a for a in articles if _is_ranked(a) and a.rank is not None]
    if not ranked:
        return None
    return min(ranked, key=lambda a: a.rank)


def apply_order(articles: Iterable[Article], orders: List[Tuple[int, int]]) -> List[Article]:
    """Apply reviewer supplied ``(article_id, rank)`` pairs.

    Articles not mentioned keep their relative place behind the requested
    ranks; the result is renumbered to 1..k.

    Raises:
        ValidationError: If an id is unknown or not an active, non-skipped article
    """
    articles = list(articles)
    by_id = {a.id: a for a in articles}
    requested = {}
    for article_id, rank in orders:
        article = by_id.get(article_id)
        if article is None:
            raise ValidationError(f"Article {article_id} does not belong to this campaign")
        if not _is_ranked(article):
            raise ValidationError(f"Article {article_id} is not active")
        if rank is None or int(rank) < 1:
            raise ValidationError(f"Invalid rank {rank} for article {article_id}")
        requested[article_id] = int(rank)

    def sort_key(a: Article):
        if a.id in requested:
            return (requested[a.id], 0, a.id)
        return (a.rank if a.rank is not None else 10**6, 1, a.id or 0)

    ranked = sorted((a for a in articles if _is_ranked(a)), key=sort_key)
    new_ranks = {a.id: position for position, a in enumerate(ranked, start=1)}
    return [
        a.model_copy(update={"rank": new_ranks.get(a.id)}) if _is_ranked(a) else a
        for a in articles
    ]


def skip(articles: Iterable[Article], article_id: int) -> List[Article]:
    """Mark one article skipped and close the rank gap it leaves.

    Raises:
        ValidationError: If the article is already skipped
    """
    updated = []
    for article in articles:
        if article.id == article_id:
            if article.skipped:
                raise ValidationError("Article is already skipped")
            article = article.model_copy(update={"skipped": True, "rank": None})
        updated.append(article)
    return renumber(updated)
