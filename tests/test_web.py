"""Tests for the FastAPI review interface."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from conftest import CAMPAIGN_DATE, seed_articles
from fastapi.testclient import TestClient

from scoop.core.cache import CatalogCache
from scoop.core.catalog_store import CatalogStore
from scoop.core.pipeline import NewsletterPipeline
from scoop.models.content import Poll
from scoop.models.status import CampaignStatus
from web.app import app, get_pipeline, get_settings

AUTH = {"Authorization": "Bearer dashboard-token"}
CRON = {"Authorization": "Bearer cron-secret"}


@pytest.fixture
def pipeline(mock_settings, db, ai_client, mailer):
    rss = Mock()
    rss.test_feeds = AsyncMock(return_value={})
    weather = Mock()
    weather.get_forecast = AsyncMock(return_value=None)
    return NewsletterPipeline(
        mock_settings,
        db=db,
        ai_client=ai_client,
        rss_client=rss,
        mailer=mailer,
        weather_client=weather,
        cache=CatalogCache(ttl_seconds=0),
    )


@pytest.fixture
def client(mock_settings, pipeline):
    app.dependency_overrides[get_settings] = lambda: mock_settings
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuth:
    def test_health_is_public(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["configured"]["openrouter"] is True

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "Basic dashboard-token"}],
    )
    def test_dashboard_routes_need_token(self, client, headers):
        response = client.get("/api/campaigns", headers=headers)
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "message": "Authentication required"}

    def test_session_cookie_accepted(self, client):
        client.cookies.set("scoop_session", "dashboard-token")
        assert client.get("/api/campaigns").status_code == 200

    def test_cron_needs_secret(self, client):
        assert client.post("/api/cron/send-final").status_code == 401
        assert client.post("/api/cron/send-final", headers=AUTH).status_code == 401

    def test_unknown_route_uses_error_shape(self, client):
        response = client.get("/api/nothing-here", headers=AUTH)
        assert response.status_code == 404
        assert set(response.json()) == {"error", "message"}

    def test_unexpected_error_uses_error_shape(self, mock_settings, pipeline):
        app.dependency_overrides[get_settings] = lambda: mock_settings
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        try:
            with patch.object(pipeline.campaigns, "list_campaigns", side_effect=RuntimeError("disk gone")):
                response = TestClient(app, raise_server_exceptions=False).get("/api/campaigns", headers=AUTH)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"error": "Internal error", "message": "disk gone"}


class TestCampaignRoutes:
    def test_create_and_get(self, client):
        response = client.post("/api/campaigns", json={"date": "2025-10-17"}, headers=AUTH)
        assert response.status_code == 201
        campaign_id = response.json()["campaign"]["id"]

        detail = client.get(f"/api/campaigns/{campaign_id}", headers=AUTH).json()
        assert detail["campaign"]["status"] == "draft"
        assert detail["allowed_actions"] == ["send_review", "fail"]

    def test_missing_campaign(self, client):
        response = client.get("/api/campaigns/404", headers=AUTH)
        assert response.status_code == 404
        assert response.json()["error"] == "Not found"

    def test_bad_body_is_400(self, client):
        response = client.post("/api/campaigns", json={"date": "not-a-date"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_status_change(self, client, db):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.IN_REVIEW)

        response = client.patch(
            f"/api/campaigns/{campaign.id}/status",
            json={"action": "changes_made"},
            headers={**AUTH, "x-scoop-user": "editor@example.org"},
        )

        assert response.status_code == 200
        assert response.json()["campaign"]["status"] == "changes_made"
        assert response.json()["campaign"]["last_action_by"] == "editor@example.org"

    @pytest.mark.parametrize("action", ["send_final", "bogus"])
    def test_other_actions_rejected(self, client, db, action):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.IN_REVIEW)
        response = client.patch(f"/api/campaigns/{campaign.id}/status", json={"action": action}, headers=AUTH)
        assert response.status_code == 400

    def test_rejected_transition(self, client, db):
        campaign = db.create_campaign(CAMPAIGN_DATE, CampaignStatus.DRAFT)
        response = client.patch(
            f"/api/campaigns/{campaign.id}/status", json={"action": "changes_made"}, headers=AUTH
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid status transition"

    def test_reorder_regenerates_subject(self, client, db, ai_client):
        campaign, articles = seed_articles(db, [30, 25, 20])
        body = {
            "articleOrders": [
                {"articleId": articles[0].id, "rank": 3},
                {"articleId": articles[1].id, "rank": 1},
                {"articleId": articles[2].id, "rank": 2},
            ]
        }

        response = client.post(f"/api/campaigns/{campaign.id}/articles/reorder", json=body, headers=AUTH)

        data = response.json()
        assert response.status_code == 200
        assert data["subject_regenerated"] is True
        assert data["subject_line"] == "Fresh Local Headline"
        assert ai_client.complete_text.await_count == 1

    def test_skip_article(self, client, db, ai_client):
        campaign, articles = seed_articles(db, [30, 25, 20])

        response = client.post(f"/api/campaigns/{campaign.id}/articles/{articles[2].id}/skip", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["article"]["skipped"] is True
        assert response.json()["subject_regenerated"] is False
        ai_client.complete_text.assert_not_awaited()

    def test_subject_edit_limit(self, client, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        url = f"/api/campaigns/{campaign.id}/subject-line"
        assert client.put(url, json={"subject_line": "Bridge Reopens"}, headers=AUTH).status_code == 200
        assert client.put(url, json={"subject_line": "y" * 40}, headers=AUTH).status_code == 400

    def test_preview(self, client, db):
        campaign, _ = seed_articles(db, [30])
        response = client.get(f"/api/campaigns/{campaign.id}/preview", headers=AUTH)
        assert response.status_code == 200
        assert "Headline 1" in response.json()["html"]

    def test_delete(self, client, db):
        campaign, _ = seed_articles(db, [30, 20])

        response = client.delete(f"/api/campaigns/{campaign.id}", headers=AUTH)

        assert response.json()["success"] is True
        assert response.json()["deleted"]["articles"] == 2
        assert client.get(f"/api/campaigns/{campaign.id}", headers=AUTH).status_code == 404

    def test_road_work_routes(self, client, db):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        url = f"/api/campaigns/{campaign.id}/road-work"

        created = client.post(url, json={"road_name": "Hwy 15", "reason": "Resurfacing"}, headers=AUTH)
        assert created.status_code == 201
        item = created.json()["item"]
        assert (item["road_name"], item["is_selected"], item["display_order"]) == ("Hwy 15", True, 1)

        patched = client.patch(f"{url}/{item['id']}", json={"is_selected": False}, headers=AUTH)
        assert patched.json()["item"]["is_selected"] is False

        assert [i["road_name"] for i in client.get(url, headers=AUTH).json()["items"]] == ["Hwy 15"]
        assert client.post(url, json={"road_name": "  "}, headers=AUTH).status_code == 400
        assert client.patch(f"{url}/999", json={"is_selected": True}, headers=AUTH).status_code == 404

    def test_dashboard_page(self, client, db):
        db.create_campaign(CAMPAIGN_DATE)
        response = client.get("/", headers=AUTH)
        assert response.status_code == 200
        assert "2025-10-17" in response.text


class TestCatalogRoutes:
    def test_event_upload(self, client):
        sheet = "Title,Start Date\nPumpkin Walk,10/20/2025 6:00 PM\nExample Row,10/20/2025\n"
        response = client.post(
            "/api/events/upload", files={"file": ("events.csv", sheet, "text/csv")}, headers=AUTH
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "created": 1, "skipped": 1, "errors": []}

    def test_add_feed(self, client):
        response = client.post("/api/feeds", json={"url": "https://www.wjon.com/feed"}, headers=AUTH)
        assert response.status_code == 201
        assert response.json()["feed"]["name"] == "Wjon"
        assert client.post("/api/feeds", json={"url": "ftp://x"}, headers=AUTH).status_code == 400

    def test_poll_response(self, client, db):
        poll = CatalogStore(db).add_poll(Poll(title="Weekend", question="Out?", options=["Yes", "No"], is_active=True))
        url = f"/api/polls/{poll.id}/respond"

        first = client.get(url, params={"option": "Yes", "email": "reader@example.org"})
        second = client.get(url, params={"option": "No", "email": "reader@example.org"})

        assert "Thanks for voting" in first.text
        assert "already answered" in second.text
        assert client.get(url, params={"option": "Maybe", "email": "a@b.org"}).status_code == 400

    def test_click_tracking_redirects(self, client, db):
        response = client.get(
            "/api/link-tracking/click",
            params={"url": "https://news.example.com/a", "section": "The Local Scoop", "date": "2025-10-17", "email": "{$email}"},
            follow_redirects=False,
        )
        assert response.status_code == 302
        assert response.headers["location"] == "https://news.example.com/a"
        with db.connection() as conn:
            assert conn.execute("SELECT subscriber_email FROM link_clicks").fetchone()[0] == ""

        bad = client.get("/api/link-tracking/click", params={"url": "javascript:alert(1)"}, follow_redirects=False)
        assert bad.status_code == 400


class TestCronRoutes:
    def test_send_review_cron(self, client, db, mailer):
        campaign, _ = seed_articles(db, [30])
        db.update_campaign(campaign.id, subject_line="Bridge Reopens")

        response = client.post("/api/cron/send-review", params={"date": "2025-10-17"}, headers=CRON)

        assert response.status_code == 200
        assert response.json() == {"success": True, "campaign_id": campaign.id, "status": "in_review"}

        repeat = client.get("/api/cron/send-review", params={"date": "2025-10-17", "secret": "cron-secret"})
        assert repeat.status_code in (404, 409)

    def test_duplicate_job_is_409(self, client, db):
        db.claim_job(CAMPAIGN_DATE, "send_review")
        seed_articles(db, [30])
        response = client.post("/api/cron/send-review", params={"date": "2025-10-17"}, headers=CRON)
        assert response.status_code == 409
        assert response.json()["error"] == "Job already ran"

    def test_invalid_date(self, client):
        response = client.post("/api/cron/send-final", params={"date": "17/10/2025"}, headers=CRON)
        assert response.status_code == 400
