from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from scoop.core.storage import Database
from scoop.models.ai import Ok
from scoop.models.content import Article, Post, PostRating
from scoop.models.settings import Settings
from scoop.models.status import CampaignStatus

CAMPAIGN_DATE = date(2025, 10, 17)


@pytest.fixture
def mock_settings(tmp_path):
    """Settings for tests; no .env file and no network pacing."""
    return Settings(
        _env_file=None,
        database_path=str(tmp_path / "scoop.db"),
        openrouter_api_key="test_key",
        mailerlite_api_key="test_key",
        mailerlite_review_group_id="review-group",
        mailerlite_main_group_id="main-group",
        cron_secret="cron-secret",
        dashboard_token="dashboard-token",
        app_url="https://scoop.test",
        evaluation_batch_delay=0.0,
        openrouter_min_request_interval=0.0,
        fact_check_enabled=False,
        catalog_cache_ttl=0,
    )


@pytest.fixture
def db(mock_settings):
    return Database(mock_settings.database_path)


@pytest.fixture
def ai_client():
    """AI client double; tests set ``complete_json``/``complete_text`` results."""
    client = Mock()
    client.complete_json = AsyncMock(return_value=Ok(parsed={}))
    client.complete_text = AsyncMock(return_value=Ok(parsed="Fresh Local Headline"))
    client.test_connection = AsyncMock(return_value=True)
    return client


@pytest.fixture
def mailer():
    client = Mock()
    client.create_campaign = AsyncMock(return_value="ml-123")
    client.schedule_campaign = AsyncMock()
    client.send_now = AsyncMock()
    client.get_campaign_metrics = AsyncMock()
    client.test_connection = AsyncMock(return_value=True)
    return client


def make_post(index: int, **overrides) -> Post:
    data = {
        "external_id": f"guid-{index}",
        "title": f"Story number {index}",
        "description": f"Description of story {index} in St. Cloud.",
        "content": f"Full content of story {index}.",
        "source_url": f"https://news.example.com/story-{index}",
        "publication_date": datetime(2025, 10, 16, 12, 0, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return Post(**data)


def seed_articles(db: Database, scores, status=CampaignStatus.DRAFT, ranked: int = 5):
    """Create a campaign with one rated post and article per score (3-40).

    The best ``ranked`` scores become active with ranks 1..N, in score order.

    Returns:
        (campaign, articles ordered by score descending)
    """
    feeds = db.list_feeds()
    feed = feeds[0] if feeds else db.add_feed("https://news.example.com/rss", "Example News")
    campaign = db.create_campaign(CAMPAIGN_DATE, status)
    articles = []
    for index, score in enumerate(scores, start=1):
        post = db.insert_post(
            make_post(
                index,
                external_id=f"guid-{campaign.id}-{index}",
                feed_id=feed.id,
                campaign_id=campaign.id,
            )
        )
        interest = min(20, score - 2)
        relevance = min(10, score - interest - 1)
        db.save_rating(
            post.id,
            PostRating(
                interest_level=interest,
                local_relevance=relevance,
                community_impact=score - interest - relevance,
                total_score=score,
            ),
        )
        articles.append(
            db.insert_article(
                Article(
                    post_id=post.id,
                    campaign_id=campaign.id,
                    headline=f"Headline {index}",
                    content=f"Rewritten content for story {index}.",
                    word_count=5,
                )
            )
        )

    ordered = sorted(articles, key=lambda a: -a.total_score)
    for rank, article in enumerate(ordered, start=1):
        if rank <= ranked:
            db.update_article(article.id, rank=rank, is_active=True)
    return campaign, [db.get_article(a.id) for a in ordered]
