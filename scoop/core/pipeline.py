"""Daily RSS processing pipeline that turns feeds into a draft campaign."""

import logging
import random
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from scoop.clients.mailerlite import MailerLiteClient
from scoop.clients.openrouter import OpenRouterClient
from scoop.clients.rss import RSSClient
from scoop.clients.weather import WeatherClient
from scoop.core import prompts, ranker
from scoop.core.cache import CatalogCache
from scoop.core.campaigns import CampaignService
from scoop.core.deduplicator import TopicDeduplicator, drop_recently_sent
from scoop.core.errors import AIClientError
from scoop.core.evaluator import ContentEvaluator
from scoop.core.storage import Database
from scoop.core.writer import NewsletterWriter
from scoop.models.content import Campaign, Post
from scoop.models.settings import Settings
from scoop.models.status import CampaignStatus, StatusAction

logger = logging.getLogger(__name__)

JOB_RSS_PROCESSING = "rss_processing"
JOB_SEND_REVIEW = "send_review"
JOB_SEND_FINAL = "send_final"
JOB_IMPORT_METRICS = "import_metrics"


class NewsletterPipeline:
    """Main newsletter pipeline orchestrator."""

    def __init__(
        self,
        settings: Settings,
        db: Optional[Database] = None,
        ai_client=None,
        rss_client: Optional[RSSClient] = None,
        mailer=None,
        weather_client: Optional[WeatherClient] = None,
        cache: Optional[CatalogCache] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the pipeline.

        Clients that are not passed in are built from settings.

        Args:
            settings: Application settings with API keys
            db: Database repository
            ai_client: AI completion client
            rss_client: Feed fetcher
            mailer: MailerLite client
            weather_client: Forecast client
            cache: Catalog cache
            rng: Random source for catalog rotation
        """
        self.settings = settings
        self.db = db or Database(settings.database_path)
        self.cache = cache or CatalogCache.from_settings(settings)
        self.ai_client = ai_client or self._init_ai_client(settings)
        self.rss_client = rss_client or RSSClient(settings)
        self.mailer = mailer or self._init_mailer(settings)
        self.weather_client = weather_client or WeatherClient(settings, self.cache)
        self.campaigns = CampaignService(
            settings,
            self.db,
            ai_client=self.ai_client,
            mailer=self.mailer,
            weather_client=self.weather_client,
            cache=self.cache,
            rng=rng,
        )

    @staticmethod
    def _init_ai_client(settings: Settings) -> Optional[OpenRouterClient]:
        """Initialize the AI client when a key is configured."""
        if not settings.openrouter_api_key or not settings.openrouter_api_key.strip():
            logger.info("🔧 AI disabled: OPENROUTER_API_KEY not set or empty")
            return None
        return OpenRouterClient(settings.openrouter_api_key.strip(), settings=settings)

    @staticmethod
    def _init_mailer(settings: Settings) -> Optional[MailerLiteClient]:
        """Initialize MailerLite when a key is configured."""
        if not settings.mailerlite_api_key or not settings.mailerlite_api_key.strip():
            logger.info("🔧 Delivery disabled: MAILERLITE_API_KEY not set or empty")
            return None
        return MailerLiteClient(settings.mailerlite_api_key.strip(), settings=settings)

    async def run(
        self, campaign_date: date, dry_run: bool = False, force: bool = False
    ) -> Dict[str, Any]:
        """Build the draft campaign for ``campaign_date``.

        Args:
            campaign_date: Date the newsletter goes out
            dry_run: Build the campaign without claiming the daily job key
            force: Release an existing claim first (manual re-trigger)

        Returns:
            Run report with per-step counts

        Raises:
            JobAlreadyClaimed: If the job already ran for this date
            AIClientError: If no AI client is configured
        """
        if self.ai_client is None:
            raise AIClientError("OPENROUTER_API_KEY is required to run the pipeline")

        start_time = time.time()
        job_id = None
        if not dry_run:
            if force and self.db.release_job(campaign_date, JOB_RSS_PROCESSING):
                logger.info(f"Released previous {JOB_RSS_PROCESSING} claim for {campaign_date}")
            job_id = self.db.claim_job(campaign_date, JOB_RSS_PROCESSING)

        campaign = self.db.create_campaign(campaign_date, CampaignStatus.PROCESSING)
        logger.info(f"Starting RSS processing for {campaign_date} (campaign {campaign.id}, dry_run={dry_run})")
        report: Dict[str, Any] = {"campaign_id": campaign.id, "date": campaign_date.isoformat(), "dry_run": dry_run}

        try:
            await self._process(campaign.id, campaign_date, report)
        except Exception as e:
            logger.error(f"❌ Pipeline failed for campaign {campaign.id}: {e}")
            report["error"] = str(e)
            self.campaigns.change_status(campaign.id, StatusAction.FAIL)
            if job_id is not None:
                self.db.finish_job(job_id, "failed", report, campaign.id)
            raise

        self.campaigns.change_status(campaign.id, StatusAction.FINISH_PROCESSING)
        report["processing_time"] = round(time.time() - start_time, 2)
        if job_id is not None:
            self.db.finish_job(job_id, "completed", report, campaign.id)
        logger.info(f"✅ Campaign {campaign.id} ready for review in {report['processing_time']}s")
        return report

    async def _process(self, campaign_id: int, campaign_date: date, report: Dict[str, Any]) -> None:
        # Step 1: Fetch feeds
        posts = await self._ingest(campaign_id, report)

        # Step 2: Drop recently sent stories and topical duplicates
        since = campaign_date - timedelta(days=self.settings.dedup_history_days)
        posts = drop_recently_sent(posts, self.db.recently_sent_external_ids(since))
        dedup = await TopicDeduplicator(self.ai_client).deduplicate(posts)
        for group in dedup.groups:
            self.db.save_duplicate_group(
                campaign_id,
                group.primary.id,
                [p.id for p in group.duplicates],
                topic_signature=group.topic_signature,
            )
        report["duplicates_removed"] = len(dedup.removed)

        # Step 3: Score
        evaluator = ContentEvaluator(
            self.ai_client,
            self.settings,
            prompt_template=self.db.get_setting(prompts.EVALUATOR_SETTING_KEY),
        )
        rated = await evaluator.evaluate_all(dedup.kept)
        for post, rating in rated:
            self.db.save_rating(post.id, rating)
        report["posts_rated"] = len(rated)

        # Step 4: Rewrite the best candidates
        candidates = self.db.top_rated_posts(
            campaign_id,
            self.settings.writer_candidates,
            exclude_post_ids=self.db.duplicate_post_ids(campaign_id),
        )
        writer = NewsletterWriter(
            self.ai_client,
            self.settings,
            prompt_template=self.db.get_setting(prompts.WRITER_SETTING_KEY),
        )
        written = await writer.write_all(candidates)
        report["writer"] = written.as_dict()
        stored = [self.db.insert_article(article) for article in written.articles]

        # Step 5: Rank and pick the subject line
        ranked = ranker.select_top(stored, self.settings.max_active_articles)
        self.db.save_article_positions(ranked)
        report["articles_active"] = sum(1 for a in ranked if a.is_active)
        if ranker.top_article(ranked) is not None:
            report["subject_line"] = await self.campaigns.generate_subject(campaign_id)
        else:
            logger.warning(f"No articles survived for campaign {campaign_id}; subject left empty")

        # Step 6: Catalog selections
        await self._select_catalog(campaign_id, campaign_date, report)

    async def _ingest(self, campaign_id: int, report: Dict[str, Any]) -> List[Post]:
        feeds = self.db.list_feeds(active_only=True)
        since = datetime.now(timezone.utc) - timedelta(hours=self.settings.post_lookback_hours)
        results = await self.rss_client.fetch_feeds(feeds, since=since)

        stored: List[Post] = []
        for result in results:
            if not result.ok:
                self.db.record_feed_error(result.feed.id)
                continue
            self.db.record_feed_success(result.feed.id)
            for post in result.posts:
                saved = self.db.insert_post(
                    post.model_copy(update={"feed_id": result.feed.id, "campaign_id": campaign_id})
                )
                if saved is not None:
                    stored.append(saved)

        report["feeds"] = len(feeds)
        report["feeds_failed"] = sum(1 for r in results if not r.ok)
        report["posts_ingested"] = len(stored)
        logger.info(f"📥 Stored {len(stored)} new posts from {len(feeds)} feeds")
        return stored

    async def _select_catalog(self, campaign_id: int, campaign_date: date, report: Dict[str, Any]) -> None:
        """Events, dining, rentals and weather for the campaign."""
        service = self.campaigns
        report["events"] = len(await service.events.populate(campaign_id, campaign_date))
        report["dining"] = len(service.dining.select(campaign_id, campaign_date))
        report["listings"] = len(service.vrbo.select(campaign_id))
        # weather is optional; a failed fetch leaves the section empty
        report["weather"] = await service.forecast_for(campaign_date) is not None

    async def send_review(self, campaign_date: date) -> Dict[str, Any]:
        """Scheduled review send for the latest draft of ``campaign_date``."""
        campaign = self.campaigns.latest_campaign(
            campaign_date, (CampaignStatus.DRAFT, CampaignStatus.CHANGES_MADE)
        )
        return await self._run_job(
            campaign_date, JOB_SEND_REVIEW, campaign.id, self.campaigns.send_review
        )

    async def send_final(self, campaign_date: date) -> Dict[str, Any]:
        """Scheduled final send for the campaign in review on ``campaign_date``."""
        campaign = self.campaigns.latest_campaign(
            campaign_date, (CampaignStatus.IN_REVIEW, CampaignStatus.CHANGES_MADE)
        )
        return await self._run_job(
            campaign_date, JOB_SEND_FINAL, campaign.id, self.campaigns.send_final
        )

    async def import_metrics(self, campaign_date: date) -> Dict[str, Any]:
        """Scheduled metrics import for the campaign sent on ``campaign_date``."""
        campaign = self.campaigns.latest_campaign(campaign_date, (CampaignStatus.SENT,))
        return await self._run_job(
            campaign_date, JOB_IMPORT_METRICS, campaign.id, self.campaigns.import_metrics
        )

    async def _run_job(
        self,
        campaign_date: date,
        job_type: str,
        campaign_id: int,
        operation: Callable[[int], Awaitable[Campaign]],
    ) -> Dict[str, Any]:
        """Run a campaign operation at most once per (date, job type)."""
        job_id = self.db.claim_job(campaign_date, job_type, campaign_id)
        try:
            campaign = await operation(campaign_id)
        except Exception as e:
            self.db.finish_job(job_id, "failed", {"error": str(e)})
            raise
        details = {"campaign_id": campaign.id, "status": campaign.status.value}
        self.db.finish_job(job_id, "completed", details)
        logger.info(f"{job_type} completed for {campaign_date} (campaign {campaign.id})")
        return details

    async def health(self) -> Dict[str, Any]:
        """Check AI, MailerLite and feed connectivity."""
        feeds = self.db.list_feeds(active_only=True)
        checks: Dict[str, Any] = {
            "ai": await self.ai_client.test_connection() if self.ai_client else False,
            "mailerlite": await self.mailer.test_connection() if self.mailer else False,
            "feeds": await self.rss_client.test_feeds([f.url for f in feeds]) if feeds else {},
        }
        checks["healthy"] = bool(checks["ai"] and checks["mailerlite"]) and all(checks["feeds"].values())
        return checks
