"""Tests for campaign review and delivery operations."""

from datetime import datetime

import pytest
from conftest import CAMPAIGN_DATE, seed_articles

from scoop.core.campaigns import CampaignService
from scoop.core.errors import AIClientError, DeliveryError, NotFoundError, TransitionRejected, ValidationError
from scoop.models.content import CampaignMetrics, RoadWorkItem
from scoop.models.status import CampaignStatus, StatusAction


@pytest.fixture
def service(mock_settings, db, ai_client, mailer):
    return CampaignService(mock_settings, db, ai_client=ai_client, mailer=mailer)


def _active_ranks(db, campaign_id):
    return sorted(
        a.rank for a in db.articles_for_campaign(campaign_id) if a.is_active and not a.skipped
    )


class TestSkipArticle:
    @pytest.mark.asyncio
    async def test_skipping_top_article_regenerates_subject_once(self, service, db, ai_client):
        campaign, articles = seed_articles(db, [30, 25, 20, 15, 10, 5])

        result = await service.skip_article(campaign.id, articles[0].id, "editor")

        assert ai_client.complete_text.await_count == 1
        prompt = ai_client.complete_text.await_args.args[0]
        assert articles[1].headline in prompt
        assert result["subject_regenerated"] is True
        assert result["subject_line"] == "Fresh Local Headline"
        assert db.get_campaign(campaign.id).subject_line == "Fresh Local Headline"
        assert result["article"].skipped is True
        assert _active_ranks(db, campaign.id) == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_skipping_lower_article_keeps_subject(self, service, db, ai_client):
        campaign, articles = seed_articles(db, [30, 25, 20])
        db.update_campaign(campaign.id, subject_line="Original Subject")

        result = await service.skip_article(campaign.id, articles[2].id)

        ai_client.complete_text.assert_not_awaited()
        assert result["subject_regenerated"] is False
        assert result["subject_line"] == "Original Subject"
        assert _active_ranks(db, campaign.id) == [1, 2]

    @pytest.mark.asyncio
    async def test_skip_is_logged(self, service, db):
        campaign, articles = seed_articles(db, [30, 25])

        await service.skip_article(campaign.id, articles[1].id, "editor")

        actions = [a.action for a in db.activities_for_campaign(campaign.id)]
        assert "article_skipped" in actions

    @pytest.mark.asyncio
    async def test_article_from_other_campaign(self, service, db):
        campaign, _ = seed_articles(db, [30])
        _, other_articles = seed_articles(db, [20])

        with pytest.raises(NotFoundError):
            await service.skip_article(campaign.id, other_articles[0].id)

    @pytest.mark.asyncio
    async def test_sent_campaign_cannot_be_edited(self, service, db):
        campaign, articles = seed_articles(db, [30], status=CampaignStatus.SENT)

        with pytest.raises(ValidationError):
            await service.skip_article(campaign.id, articles[0].id)


class TestReorderArticles:
    @pytest.mark.asyncio
    async def test_new_top_article_regenerates_subject_once(self, service, db, ai_client):
        campaign, articles = seed_articles(db, [30, 25, 20, 15, 10])
        orders = [(articles[0].id, 3), (articles[1].id, 1), (articles[2].id, 2)]

        result = await service.reorder_articles(campaign.id, orders)

        assert ai_client.complete_text.await_count == 1
        assert articles[1].headline in ai_client.complete_text.await_args.args[0]
        assert result["subject_regenerated"] is True
        ranks = {a.id: a.rank for a in result["articles"] if a.is_active}
        assert ranks[articles[1].id] == 1
        assert ranks[articles[2].id] == 2
        assert ranks[articles[0].id] == 3
        assert sorted(ranks.values()) == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_same_top_article_no_ai_call(self, service, db, ai_client):
        campaign, articles = seed_articles(db, [30, 25, 20])

        result = await service.reorder_articles(
            campaign.id, [(articles[0].id, 1), (articles[2].id, 2), (articles[1].id, 3)]
        )

        ai_client.complete_text.assert_not_awaited()
        assert result["subject_regenerated"] is False

    @pytest.mark.asyncio
    async def test_empty_order_rejected(self, service, db):
        campaign, _ = seed_articles(db, [30])
        with pytest.raises(ValidationError):
            await service.reorder_articles(campaign.id, [])

    @pytest.mark.asyncio
    async def test_ai_failure_keeps_reorder(self, service, db, ai_client):
        campaign, articles = seed_articles(db, [30, 25, 20])
        db.update_campaign(campaign.id, subject_line="Original Subject")
        ai_client.complete_text.side_effect = AIClientError("No answer from any model")

        result = await service.reorder_articles(campaign.id, [(articles[1].id, 1), (articles[0].id, 2)])

        assert result["subject_regenerated"] is False
        assert result["subject_line"] == "Original Subject"
        assert db.get_article(articles[1].id).rank == 1
        assert db.get_campaign(campaign.id).subject_line == "Original Subject"


class TestStatusAndSubject:
    def test_changes_made_from_review(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.IN_REVIEW)

        updated = service.change_status(campaign.id, StatusAction.MARK_CHANGES, "editor")

        assert updated.status == CampaignStatus.CHANGES_MADE
        assert updated.last_action == "changes_made"
        assert updated.last_action_by == "editor"
        assert updated.last_action_at is not None

    def test_rejected_transition_leaves_status(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.DRAFT)

        with pytest.raises(TransitionRejected):
            service.change_status(campaign.id, StatusAction.MARK_CHANGES)
        assert db.get_campaign(campaign.id).status == CampaignStatus.DRAFT

    def test_set_subject_limits(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        assert service.set_subject(campaign.id, "  Bridge Reopens  ").subject_line == "Bridge Reopens"
        with pytest.raises(ValidationError):
            service.set_subject(campaign.id, "x" * 36)
        with pytest.raises(ValidationError):
            service.set_subject(campaign.id, "   ")

    @pytest.mark.asyncio
    async def test_generate_subject_needs_top_article(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        with pytest.raises(ValidationError):
            await service.generate_subject(campaign.id)

    @pytest.mark.asyncio
    async def test_generate_subject_without_ai_client(self, mock_settings, db):
        campaign, _ = seed_articles(db, [30])
        with pytest.raises(ValidationError):
            await CampaignService(mock_settings, db).generate_subject(campaign.id)

    def test_manual_articles_append_rank(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        first = service.add_manual_article(campaign.id, "Note", "Hello readers")
        second = service.add_manual_article(campaign.id, "Another", "More news")
        assert (first.rank, second.rank) == (1, 2)


class TestDelivery:
    def test_review_send_time_is_evening_before(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        now = datetime(2025, 10, 16, 8, 0)

        assert service.review_send_at(campaign, now) == datetime(2025, 10, 16, 21, 0)
        db.set_setting("email_scheduledSendTime", "20:30")
        assert service.review_send_at(campaign, now) == datetime(2025, 10, 16, 20, 30)
        assert service.review_send_at(campaign, datetime(2025, 10, 16, 22, 0)) is None

    @pytest.mark.asyncio
    async def test_send_review(self, service, db, mailer):
        campaign, _ = seed_articles(db, [30, 25])
        db.update_campaign(campaign.id, subject_line="Bridge Reopens")

        updated = await service.send_review(campaign.id, "editor")

        name, subject, html, group = mailer.create_campaign.await_args.args
        assert name == "Review: 2025-10-17"
        assert subject == "🍦 Bridge Reopens"
        assert "Headline 1" in html
        assert group == "review-group"
        # The campaign date is in the past, so the review goes out immediately
        mailer.send_now.assert_awaited_once_with("ml-123")
        assert updated.status == CampaignStatus.IN_REVIEW
        assert updated.review_campaign_id == "ml-123"
        assert updated.review_sent_at is not None

    @pytest.mark.asyncio
    async def test_send_review_requires_subject(self, service, db, mailer):
        campaign, _ = seed_articles(db, [30])
        with pytest.raises(ValidationError):
            await service.send_review(campaign.id)
        mailer.create_campaign.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_error_marks_failed(self, service, db, mailer):
        campaign, _ = seed_articles(db, [30])
        db.update_campaign(campaign.id, subject_line="Bridge Reopens")
        mailer.create_campaign.side_effect = DeliveryError("MailerLite API error 422")

        with pytest.raises(DeliveryError):
            await service.send_review(campaign.id)

        assert db.get_campaign(campaign.id).status == CampaignStatus.FAILED
        actions = [a.action for a in db.activities_for_campaign(campaign.id)]
        assert "delivery_failed" in actions

    @pytest.mark.asyncio
    async def test_send_final_from_draft_rejected(self, service, db, mailer):
        campaign, _ = seed_articles(db, [30])
        db.update_campaign(campaign.id, subject_line="Bridge Reopens")

        with pytest.raises(TransitionRejected):
            await service.send_final(campaign.id)
        mailer.create_campaign.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_final_archives(self, service, db, mailer):
        campaign, _ = seed_articles(db, [30, 25], status=CampaignStatus.IN_REVIEW)
        db.update_campaign(campaign.id, subject_line="Bridge Reopens")

        updated = await service.send_final(campaign.id)

        assert mailer.create_campaign.await_args.args[0] == "Newsletter: 2025-10-17"
        assert mailer.create_campaign.await_args.args[3] == "main-group"
        mailer.send_now.assert_awaited_once_with("ml-123")
        assert updated.status == CampaignStatus.SENT
        assert updated.final_campaign_id == "ml-123"
        assert db.count_rows("archived_articles", campaign.id) == 2

    @pytest.mark.asyncio
    async def test_import_metrics(self, service, db, mailer):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.SENT)
        db.update_campaign(campaign.id, final_campaign_id="ml-9")
        mailer.get_campaign_metrics.return_value = CampaignMetrics(
            sent_count=120, delivered_count=118, opened_count=60, clicked_count=12, open_rate=0.51
        )

        updated = await service.import_metrics(campaign.id)

        mailer.get_campaign_metrics.assert_awaited_once_with("ml-9")
        assert updated.metrics.delivered_count == 118

    @pytest.mark.asyncio
    async def test_import_metrics_requires_sent(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.IN_REVIEW)
        with pytest.raises(ValidationError):
            await service.import_metrics(campaign.id)


class TestRoadWork:
    def test_add_and_deselect(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)

        first = service.add_road_work(campaign.id, RoadWorkItem(road_name=" Hwy 15 ", reason="Resurfacing"), "editor")
        second = service.add_road_work(campaign.id, RoadWorkItem(road_name="Division St"))

        assert (first.road_name, first.display_order, first.campaign_id) == ("Hwy 15", 1, campaign.id)
        assert second.display_order == 2

        service.select_road_work(campaign.id, first.id, False)

        assert [r.road_name for r in service.catalog.road_work_for_campaign(campaign.id)] == ["Division St"]
        assert len(service.road_work(campaign.id)) == 2
        actions = [a.action for a in db.activities_for_campaign(campaign.id)]
        assert "road_work_added" in actions and "road_work_selected" in actions

    @pytest.mark.asyncio
    async def test_selected_items_render(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        service.catalog.set_sections(["Road Work"])
        service.add_road_work(campaign.id, RoadWorkItem(road_name="Hwy 15", expected_reopen="Nov 1"))

        html = await service.preview(campaign.id)

        assert "Hwy 15" in html

    def test_rejected_on_sent_campaign(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.SENT)
        with pytest.raises(ValidationError):
            service.add_road_work(campaign.id, RoadWorkItem(road_name="Hwy 15"))

    def test_unknown_item(self, service, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        with pytest.raises(NotFoundError):
            service.select_road_work(campaign.id, 999, False)
