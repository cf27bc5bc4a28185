"""Tests for the SQLite repository."""

from datetime import datetime

import pytest
from conftest import CAMPAIGN_DATE, make_post, seed_articles

from scoop.core.catalog_store import CatalogStore
from scoop.core.errors import JobAlreadyClaimed, NotFoundError
from scoop.core.storage import CAMPAIGN_CHILD_TABLES, Database
from scoop.models.content import CampaignEvent, CampaignMetrics, Event, ManualArticle, RoadWorkItem
from scoop.models.status import CampaignStatus


def _fill_campaign(db: Database):
    campaign, articles = seed_articles(db, [30, 25, 20])
    posts = db.posts_for_campaign(campaign.id)
    db.save_duplicate_group(campaign.id, posts[0].id, [posts[1].id], "same story")
    db.add_manual_article(ManualArticle(campaign_id=campaign.id, title="Note", content="Hello"))
    db.log_activity(campaign.id, "status_changes_made", "editor")
    db.record_click("https://news.example.com", CAMPAIGN_DATE.isoformat(), campaign_id=campaign.id)
    db.archive_campaign(campaign.id)
    job_id = db.claim_job(CAMPAIGN_DATE, "rss_processing", campaign.id)
    db.finish_job(job_id, "completed")

    catalog = CatalogStore(db)
    event = catalog.add_event(
        Event(external_id="evt-1", title="Fall Festival", start_date=datetime(2025, 10, 17, 10))
    )
    catalog.add_campaign_event(
        CampaignEvent(campaign_id=campaign.id, event_id=event.id, event_date=CAMPAIGN_DATE)
    )
    catalog.add_road_work(RoadWorkItem(campaign_id=campaign.id, road_name="Hwy 15"))
    return campaign


class TestCampaignDelete:
    def test_cascade_leaves_no_dependent_rows(self, db):
        campaign = _fill_campaign(db)
        other, _ = seed_articles(db, [10])

        removed = db.delete_campaign(campaign.id)

        assert removed["campaigns"] == 1
        assert removed["articles"] == 3
        for table in CAMPAIGN_CHILD_TABLES:
            assert db.count_rows(table, campaign.id) == 0, table
        with db.connection() as conn:
            orphans = conn.execute(
                "SELECT COUNT(*) FROM post_ratings WHERE post_id NOT IN (SELECT id FROM posts)"
            ).fetchone()[0]
            dup_orphans = conn.execute(
                "SELECT COUNT(*) FROM duplicate_posts WHERE post_id NOT IN (SELECT id FROM posts)"
            ).fetchone()[0]
        assert orphans == 0
        assert dup_orphans == 0

        # Other campaigns and shared catalog rows survive
        assert len(db.articles_for_campaign(other.id)) == 1
        assert len(CatalogStore(db).list_events()) == 1

    def test_job_key_freed_after_delete(self, db):
        campaign = _fill_campaign(db)
        db.delete_campaign(campaign.id)
        assert db.get_job(CAMPAIGN_DATE, "rss_processing") is None

    def test_unknown_campaign(self, db):
        with pytest.raises(NotFoundError):
            db.delete_campaign(999)


class TestJobRuns:
    def test_second_claim_rejected(self, db):
        db.claim_job(CAMPAIGN_DATE, "send_review")
        with pytest.raises(JobAlreadyClaimed) as exc_info:
            db.claim_job(CAMPAIGN_DATE, "send_review")
        assert exc_info.value.status_code == 409
        assert exc_info.value.details["job_type"] == "send_review"

    def test_claims_are_per_date_and_type(self, db):
        db.claim_job(CAMPAIGN_DATE, "send_review")
        db.claim_job(CAMPAIGN_DATE, "send_final")
        db.claim_job(CAMPAIGN_DATE.replace(day=18), "send_review")

    def test_release_allows_rerun(self, db):
        job_id = db.claim_job(CAMPAIGN_DATE, "rss_processing")
        db.finish_job(job_id, "failed", {"error": "boom"})
        assert db.release_job(CAMPAIGN_DATE, "rss_processing") is True
        db.claim_job(CAMPAIGN_DATE, "rss_processing")


class TestRepository:
    def test_duplicate_post_is_ignored(self, db):
        feed = db.add_feed("https://news.example.com/rss", "Example")
        assert db.insert_post(make_post(1, feed_id=feed.id)) is not None
        assert db.insert_post(make_post(1, feed_id=feed.id)) is None

    def test_metrics_round_trip(self, db):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.SENT)
        metrics = CampaignMetrics(sent_count=100, opened_count=40, open_rate=0.4)

        updated = db.update_campaign(campaign.id, metrics=metrics)

        assert updated.metrics.opened_count == 40
        assert updated.status == CampaignStatus.SENT

    def test_articles_ordered_by_rank(self, db):
        campaign, by_score = seed_articles(db, [10, 30, 20, 5], ranked=2)

        articles = db.articles_for_campaign(campaign.id)

        assert [a.rank for a in articles][:2] == [1, 2]
        assert articles[0].id == by_score[0].id
        assert articles[0].total_score == 30
        assert articles[0].source_url.startswith("https://news.example.com/")

    def test_recently_sent_external_ids(self, db):
        campaign, _ = seed_articles(db, [10], status=CampaignStatus.SENT)
        assert db.recently_sent_external_ids(CAMPAIGN_DATE) == {"guid-1-1"}
        assert db.recently_sent_external_ids(CAMPAIGN_DATE.replace(day=18)) == set()

    def test_settings(self, db):
        assert db.get_setting("missing", "fallback") == "fallback"
        db.set_setting("email_scheduledSendTime", "20:30")
        assert db.get_setting("email_scheduledSendTime") == "20:30"
