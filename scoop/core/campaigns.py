"""
Campaign review and delivery operations.

Every dashboard, CLI and cron action on an existing campaign goes through
``CampaignService``: status changes are validated by the shared transition
function, reviewer edits keep article ranks contiguous, and the subject line
follows the top article.
"""

import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from scoop.clients.weather import WeatherClient
from scoop.core import ranker
from scoop.core.assembler import (
    DEFAULT_SECTION_ORDER,
    NewsletterAssembler,
    NewsletterContext,
    group_events,
)
from scoop.core.cache import CatalogCache
from scoop.core.catalog_store import CatalogStore
from scoop.core.errors import AIClientError, DeliveryError, NotFoundError, ValidationError
from scoop.core.selectors import EVENT_DAYS, DiningSelector, EventSelector, VrboSelector
from scoop.core.storage import Database
from scoop.core.subject_line import SubjectLineGenerator
from scoop.core.utils import local_now, parse_clock
from scoop.models.content import Article, Campaign, ManualArticle, RoadWorkItem
from scoop.models.status import CampaignStatus, StatusAction, transition

logger = logging.getLogger(__name__)

REVIEW_TIME_SETTING_KEY = "email_scheduledSendTime"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CampaignService:
    """Operations on one campaign at a time, shared by the API, CLI and scheduler."""

    def __init__(
        self,
        settings,
        db: Database,
        ai_client=None,
        mailer=None,
        weather_client: Optional[WeatherClient] = None,
        cache: Optional[CatalogCache] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the service.

        Args:
            settings: Settings instance
            db: Database repository
            ai_client: AI client used for subject lines (optional)
            mailer: MailerLite client used for delivery (optional)
            weather_client: Forecast source used when a campaign has none stored
            cache: Catalog cache shared by the event and weather lookups
            rng: Random source for catalog rotation
        """
        self.settings = settings
        self.db = db
        self.ai_client = ai_client
        self.mailer = mailer
        self.catalog = CatalogStore(db)
        self.cache = cache or CatalogCache.from_settings(settings)
        self.weather_client = weather_client
        self.subjects = SubjectLineGenerator(ai_client, settings) if ai_client else None
        self.assembler = NewsletterAssembler(settings)
        self.dining = DiningSelector(self.catalog, rng)
        self.vrbo = VrboSelector(self.catalog, rng)
        self.events = EventSelector(self.catalog, self.cache, settings.events_per_day)

    # ------------------------------------------------------------------
    # Lookup

    def create_campaign(self, campaign_date: date, user: str = "system") -> Campaign:
        campaign = self.db.create_campaign(campaign_date, CampaignStatus.DRAFT)
        self.db.log_activity(campaign.id, "campaign_created", user, {"date": campaign_date})
        return campaign

    def get_campaign(self, campaign_id: int) -> Campaign:
        return self.db.get_campaign(campaign_id)

    def list_campaigns(self, limit: int = 30, status: Optional[str] = None) -> List[Campaign]:
        return self.db.list_campaigns(limit=limit, status=status)

    def articles(self, campaign_id: int) -> List[Article]:
        self.db.get_campaign(campaign_id)
        return self.db.articles_for_campaign(campaign_id)

    def latest_campaign(
        self, campaign_date: date, statuses: Tuple[CampaignStatus, ...]
    ) -> Campaign:
        """Most recent campaign for a date in one of ``statuses``.

        Raises:
            NotFoundError: If there is none
        """
        wanted = {CampaignStatus(s) for s in statuses}
        for campaign in reversed(self.db.campaigns_for_date(campaign_date)):
            if campaign.status in wanted:
                return campaign
        names = ", ".join(s.value for s in statuses)
        raise NotFoundError(f"No {names} campaign for {campaign_date}")

    # ------------------------------------------------------------------
    # Status

    def change_status(
        self,
        campaign_id: int,
        action: StatusAction,
        user: str = "system",
        **fields: Any,
    ) -> Campaign:
        """Apply a status action and record who did it.

        Raises:
            NotFoundError: If the campaign does not exist
            TransitionRejected: If the action is not allowed from the current status
        """
        campaign = self.db.get_campaign(campaign_id)
        action = StatusAction(action)
        new_status = transition(campaign.status, action)
        updated = self.db.update_campaign(
            campaign_id,
            status=new_status,
            last_action=action.value,
            last_action_at=_utcnow(),
            last_action_by=user,
            **fields,
        )
        self.db.log_activity(
            campaign_id,
            f"status_{action.value}",
            user,
            {"from": campaign.status.value, "to": new_status.value},
        )
        logger.info(f"Campaign {campaign_id}: {campaign.status.value} -> {new_status.value} ({user})")
        return updated

    def _fail(self, campaign_id: int, reason: str, user: str = "system") -> None:
        self.change_status(campaign_id, StatusAction.FAIL, user)
        self.db.log_activity(campaign_id, "delivery_failed", user, {"error": reason})

    @staticmethod
    def _require_editable(campaign: Campaign) -> None:
        if campaign.status in (CampaignStatus.SENT, CampaignStatus.PROCESSING):
            raise ValidationError(
                f"Campaign {campaign.id} is {campaign.status.value} and cannot be edited"
            )

    # ------------------------------------------------------------------
    # Reviewer edits

    async def skip_article(
        self, campaign_id: int, article_id: int, user: str = "system"
    ) -> Dict[str, Any]:
        """Exclude an article from the newsletter.

        The subject line is regenerated once when the skipped article was the
        top one.

        Raises:
            NotFoundError: If the campaign or article does not exist
            ValidationError: If the article is already skipped
        """
        campaign = self.db.get_campaign(campaign_id)
        self._require_editable(campaign)
        article = self.db.get_article(article_id)
        if article.campaign_id != campaign_id:
            raise NotFoundError(f"Article {article_id} not found in campaign {campaign_id}")

        articles = self.db.articles_for_campaign(campaign_id)
        updated = ranker.skip(articles, article_id)
        self.db.save_article_positions(updated)
        self.db.log_activity(
            campaign_id, "article_skipped", user, {"article_id": article_id, "headline": article.headline}
        )
        logger.info(f"⏭️ Skipped article {article_id} in campaign {campaign_id}")

        subject = await self._follow_top_article(campaign, articles, updated, user)
        return {
            "article": self.db.get_article(article_id),
            "subject_line": subject if subject is not None else campaign.subject_line,
            "subject_regenerated": subject is not None,
        }

    async def reorder_articles(
        self, campaign_id: int, orders: List[Tuple[int, int]], user: str = "system"
    ) -> Dict[str, Any]:
        """Apply reviewer ranks; regenerates the subject when the top article changes.

        Raises:
            NotFoundError: If the campaign does not exist
            ValidationError: If the order references an unknown or inactive article
        """
        if not orders:
            raise ValidationError("articleOrders must not be empty")
        campaign = self.db.get_campaign(campaign_id)
        self._require_editable(campaign)

        articles = self.db.articles_for_campaign(campaign_id)
        updated = ranker.apply_order(articles, orders)
        self.db.save_article_positions(updated)
        self.db.log_activity(
            campaign_id, "articles_reordered", user, {"orders": [list(o) for o in orders]}
        )

        subject = await self._follow_top_article(campaign, articles, updated, user)
        return {
            "articles": self.db.articles_for_campaign(campaign_id),
            "subject_line": subject if subject is not None else campaign.subject_line,
            "subject_regenerated": subject is not None,
        }

    async def _follow_top_article(
        self,
        campaign: Campaign,
        before: List[Article],
        after: List[Article],
        user: str,
    ) -> Optional[str]:
        """Regenerate the subject if the top article changed; returns the new subject."""
        old_top = ranker.top_article(before)
        new_top = ranker.top_article(after)
        if new_top is None:
            return None
        if old_top is not None and old_top.id == new_top.id:
            return None
        logger.info(f"Top article changed to {new_top.id}; regenerating subject line")
        # the edit is already saved; a failed regeneration keeps the old subject
        try:
            return await self._store_subject(campaign.id, new_top, user, "subject_regenerated")
        except AIClientError as e:
            logger.warning(f"⚠️ Subject line not regenerated for campaign {campaign.id}: {e}")
            return None

    async def _store_subject(
        self, campaign_id: int, article: Article, user: str, activity: str
    ) -> str:
        if self.subjects is None:
            raise ValidationError("AI client is not configured")
        subject = await self.subjects.generate(article)
        self.db.update_campaign(campaign_id, subject_line=subject)
        self.db.log_activity(
            campaign_id, activity, user, {"subject_line": subject, "article_id": article.id}
        )
        return subject

    async def generate_subject(self, campaign_id: int, user: str = "system") -> str:
        """Generate a subject line from the current top article.

        Raises:
            ValidationError: If the campaign has no active article
        """
        campaign = self.db.get_campaign(campaign_id)
        top = ranker.top_article(self.db.articles_for_campaign(campaign_id))
        if top is None:
            raise ValidationError(f"Campaign {campaign_id} has no active articles")
        return await self._store_subject(campaign.id, top, user, "subject_generated")

    def set_subject(self, campaign_id: int, subject: str, user: str = "system") -> Campaign:
        """Store a reviewer written subject line.

        Raises:
            ValidationError: If the subject is empty or too long
        """
        subject = (subject or "").strip()
        limit = self.settings.subject_max_length
        if not subject:
            raise ValidationError("Subject line is required")
        if len(subject) > limit:
            raise ValidationError(f"Subject line must be {limit} characters or less")
        campaign = self.db.update_campaign(campaign_id, subject_line=subject)
        self.db.log_activity(campaign_id, "subject_edited", user, {"subject_line": subject})
        return campaign

    def add_manual_article(
        self,
        campaign_id: int,
        title: str,
        content: str,
        image_url: str = "",
        source_url: str = "",
        user: str = "system",
    ) -> ManualArticle:
        campaign = self.db.get_campaign(campaign_id)
        self._require_editable(campaign)
        if not (title or "").strip() or not (content or "").strip():
            raise ValidationError("Title and content are required")
        existing = self.db.manual_articles_for_campaign(campaign_id)
        ranks = [a.rank for a in existing if a.rank is not None]
        article = self.db.add_manual_article(
            ManualArticle(
                campaign_id=campaign_id,
                title=title.strip(),
                content=content.strip(),
                image_url=image_url,
                source_url=source_url,
                rank=max(ranks, default=0) + 1,
            )
        )
        self.db.log_activity(campaign_id, "manual_article_added", user, {"title": article.title})
        return article

    def road_work(self, campaign_id: int) -> List[RoadWorkItem]:
        """All road work items of a campaign, selected or not."""
        self.db.get_campaign(campaign_id)
        return self.catalog.road_work_for_campaign(campaign_id, selected_only=False)

    def add_road_work(self, campaign_id: int, item: RoadWorkItem, user: str = "system") -> RoadWorkItem:
        """Attach a closure or detour to the campaign's Road Work section.

        Raises:
            ValidationError: If the campaign cannot be edited or the road name is blank
        """
        campaign = self.db.get_campaign(campaign_id)
        self._require_editable(campaign)
        if not item.road_name.strip():
            raise ValidationError("Road name is required")
        existing = self.catalog.road_work_for_campaign(campaign_id, selected_only=False)
        orders = [r.display_order for r in existing if r.display_order is not None]
        stored = self.catalog.add_road_work(
            item.model_copy(
                update={
                    "campaign_id": campaign_id,
                    "road_name": item.road_name.strip(),
                    "display_order": item.display_order or max(orders, default=0) + 1,
                }
            )
        )
        self.db.log_activity(campaign_id, "road_work_added", user, {"road_name": stored.road_name})
        return stored

    def select_road_work(
        self, campaign_id: int, item_id: int, selected: bool, user: str = "system"
    ) -> RoadWorkItem:
        campaign = self.db.get_campaign(campaign_id)
        self._require_editable(campaign)
        item = self.catalog.set_road_work_selected(campaign_id, item_id, selected)
        self.db.log_activity(
            campaign_id, "road_work_selected", user, {"item_id": item_id, "selected": selected}
        )
        return item

    def delete_campaign(self, campaign_id: int, user: str = "system") -> Dict[str, int]:
        removed = self.db.delete_campaign(campaign_id)
        logger.info(f"Campaign {campaign_id} deleted by {user}")
        return removed

    # ------------------------------------------------------------------
    # Assembly

    def section_order(self) -> List[str]:
        sections = [s.name for s in self.catalog.active_sections()]
        return sections or list(DEFAULT_SECTION_ORDER)

    async def build_context(self, campaign_id: int) -> NewsletterContext:
        """Gather everything the campaign's newsletter shows.

        Catalog selections that do not exist yet (events, dining, rentals,
        weather) are made and persisted on first use.
        """
        campaign = self.db.get_campaign(campaign_id)
        articles = sorted(
            (
                a for a in self.db.articles_for_campaign(campaign_id)
                if a.is_active and not a.skipped and a.rank is not None
            ),
            key=lambda a: a.rank,
        )
        manual = [a for a in self.db.manual_articles_for_campaign(campaign_id) if a.is_active]

        selections = await self.events.populate(campaign_id, campaign.date)
        weather = await self.forecast_for(campaign.date)

        return NewsletterContext(
            campaign=campaign,
            articles=articles,
            manual_articles=manual,
            event_days=group_events(selections, campaign.date, EVENT_DAYS),
            weather=weather,
            wordle=self.catalog.get_wordle(campaign.date - timedelta(days=1)),
            listings=self.vrbo.select(campaign_id),
            dining=self.dining.select(campaign_id, campaign.date),
            road_work=[r for r in self.catalog.road_work_for_campaign(campaign_id) if r.is_selected],
            poll=self.catalog.active_poll(),
            ads=self.catalog.active_advertisements(),
            section_order=self.section_order(),
        )

    async def forecast_for(self, forecast_date: date):
        """Stored forecast for a date, fetched and saved when missing."""
        forecast = self.catalog.get_forecast(forecast_date)
        if forecast is not None or self.weather_client is None:
            return forecast
        forecast = await self.weather_client.get_forecast(forecast_date)
        if forecast is not None:
            self.catalog.save_forecast(forecast)
        return forecast

    async def preview(self, campaign_id: int) -> str:
        """Newsletter HTML for a campaign."""
        context = await self.build_context(campaign_id)
        return self.assembler.render(context)

    # ------------------------------------------------------------------
    # Delivery

    def _require_mailer(self):
        if self.mailer is None:
            raise DeliveryError("MailerLite is not configured")
        return self.mailer

    def review_send_at(self, campaign: Campaign, now: Optional[datetime] = None) -> Optional[datetime]:
        """Wall-clock time the review goes out: the evening before the campaign date.

        Returns None when that moment has already passed (send immediately).
        """
        configured = self.db.get_setting(REVIEW_TIME_SETTING_KEY) or self.settings.review_send_time
        send_at = datetime.combine(campaign.date - timedelta(days=1), parse_clock(configured))
        now = now or local_now(self.settings.timezone)
        return send_at if send_at > now else None

    def _subject_for_send(self, campaign: Campaign) -> str:
        if not campaign.subject_line:
            raise ValidationError(f"Campaign {campaign.id} has no subject line")
        return f"{self.settings.subject_prefix}{campaign.subject_line}"

    async def send_review(self, campaign_id: int, user: str = "system") -> Campaign:
        """Create the review campaign for the review group and schedule it.

        Raises:
            TransitionRejected: If the campaign is not draft or changes_made
            ValidationError: If there is no subject line or review group
            DeliveryError: If MailerLite rejects the request (campaign marked failed)
        """
        campaign = self.db.get_campaign(campaign_id)
        transition(campaign.status, StatusAction.SEND_REVIEW)
        subject = self._subject_for_send(campaign)
        group_id = self.settings.mailerlite_review_group_id
        if not group_id:
            raise ValidationError("MAILERLITE_REVIEW_GROUP_ID is not configured")
        mailer = self._require_mailer()

        html = await self.preview(campaign_id)
        try:
            provider_id = await mailer.create_campaign(
                f"Review: {campaign.date.isoformat()}", subject, html, group_id
            )
            send_at = self.review_send_at(campaign)
            if send_at is None:
                await mailer.send_now(provider_id)
            else:
                await mailer.schedule_campaign(provider_id, send_at)
        except DeliveryError as e:
            logger.error(f"❌ Review send failed for campaign {campaign_id}: {e}")
            self._fail(campaign_id, str(e), user)
            raise

        return self.change_status(
            campaign_id,
            StatusAction.SEND_REVIEW,
            user,
            review_sent_at=_utcnow(),
            review_campaign_id=provider_id,
        )

    async def send_final(self, campaign_id: int, user: str = "system") -> Campaign:
        """Send the newsletter to the main group and archive the campaign.

        Raises:
            TransitionRejected: If the campaign is not in review
            ValidationError: If there is no subject line or main group
            DeliveryError: If MailerLite rejects the request (campaign marked failed)
        """
        campaign = self.db.get_campaign(campaign_id)
        transition(campaign.status, StatusAction.SEND_FINAL)
        subject = self._subject_for_send(campaign)
        group_id = self.settings.mailerlite_main_group_id
        if not group_id:
            raise ValidationError("MAILERLITE_MAIN_GROUP_ID is not configured")
        mailer = self._require_mailer()

        html = await self.preview(campaign_id)
        try:
            provider_id = await mailer.create_campaign(
                f"Newsletter: {campaign.date.isoformat()}", subject, html, group_id
            )
            await mailer.send_now(provider_id)
        except DeliveryError as e:
            logger.error(f"❌ Final send failed for campaign {campaign_id}: {e}")
            self._fail(campaign_id, str(e), user)
            raise

        updated = self.change_status(
            campaign_id,
            StatusAction.SEND_FINAL,
            user,
            final_sent_at=_utcnow(),
            final_campaign_id=provider_id,
        )
        archived = self.db.archive_campaign(campaign_id)
        logger.info(f"📦 Archived {archived} articles for campaign {campaign_id}")
        return updated

    async def import_metrics(self, campaign_id: int) -> Campaign:
        """Copy delivery metrics from MailerLite onto the campaign.

        Raises:
            ValidationError: If the campaign has not been sent
        """
        campaign = self.db.get_campaign(campaign_id)
        if campaign.status is not CampaignStatus.SENT or not campaign.final_campaign_id:
            raise ValidationError(f"Campaign {campaign_id} has not been sent")
        metrics = await self._require_mailer().get_campaign_metrics(campaign.final_campaign_id)
        logger.info(
            f"📊 Campaign {campaign_id}: {metrics.delivered_count} delivered, "
            f"{metrics.opened_count} opened, {metrics.clicked_count} clicked"
        )
        return self.db.update_campaign(campaign_id, metrics=metrics)
