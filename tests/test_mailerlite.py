"""Tests for the MailerLite client."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from scoop.clients.mailerlite import CENTRAL_TIMEZONE_ID, MailerLiteClient
from scoop.core.errors import DeliveryError


@pytest.fixture
def client(mock_settings):
    return MailerLiteClient("test_key", mock_settings)


class TestMailerLiteClient:
    @pytest.mark.asyncio
    async def test_create_campaign(self, client):
        with patch.object(client, "_request", AsyncMock(return_value={"data": {"id": 9876}})) as request:
            campaign_id = await client.create_campaign("Review: 2025-10-17", "🍦 Bridge", "<html/>", "grp-1")

        assert campaign_id == "9876"
        method, path, payload = request.await_args.args
        assert (method, path) == ("POST", "/campaigns")
        assert payload["groups"] == ["grp-1"]
        assert payload["emails"][0]["subject"] == "🍦 Bridge"
        assert payload["emails"][0]["content"] == "<html/>"

    @pytest.mark.asyncio
    async def test_create_campaign_without_id(self, client):
        with patch.object(client, "_request", AsyncMock(return_value={"data": {}})):
            with pytest.raises(DeliveryError):
                await client.create_campaign("Review", "Subject", "<html/>", "grp-1")

    @pytest.mark.asyncio
    async def test_schedule_uses_local_wall_clock(self, client):
        with patch.object(client, "_request", AsyncMock(return_value={})) as request:
            await client.schedule_campaign("55", datetime(2025, 10, 16, 21, 0))

        method, path, payload = request.await_args.args
        assert path == "/campaigns/55/schedule"
        assert payload["delivery"] == "scheduled"
        assert payload["schedule"] == {
            "date": "2025-10-16",
            "hours": "21",
            "minutes": "00",
            "timezone_id": CENTRAL_TIMEZONE_ID,
        }

    @pytest.mark.asyncio
    async def test_schedule_unknown_timezone(self, mock_settings):
        client = MailerLiteClient("test_key", mock_settings.model_copy(update={"timezone": "Europe/Berlin"}))
        with patch.object(client, "_request", AsyncMock(return_value={})) as request:
            with pytest.raises(DeliveryError):
                await client.schedule_campaign("55", datetime(2025, 10, 16, 21, 0))
        request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_schedule_configured_timezone_id(self, mock_settings):
        settings = mock_settings.model_copy(update={"timezone": "Europe/Berlin", "mailerlite_timezone_id": 175})
        client = MailerLiteClient("test_key", settings)
        with patch.object(client, "_request", AsyncMock(return_value={})) as request:
            await client.schedule_campaign("55", datetime(2025, 10, 16, 21, 0))

        assert request.await_args.args[2]["schedule"]["timezone_id"] == 175

    @pytest.mark.asyncio
    async def test_send_now(self, client):
        with patch.object(client, "_request", AsyncMock(return_value={})) as request:
            await client.send_now("55")
        assert request.await_args.args == ("POST", "/campaigns/55/schedule", {"delivery": "instant"})

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        report = {
            "data": {
                "sent": 200,
                "delivered": {"count": 195},
                "opened": {"count": 90, "rate": 46.2},
                "clicked": {"count": 15, "rate": 7.7},
                "unsubscribed": {"count": 1},
            }
        }
        with patch.object(client, "_request", AsyncMock(return_value=report)):
            metrics = await client.get_campaign_metrics("55")

        assert metrics.sent_count == 200
        assert metrics.delivered_count == 195
        assert metrics.opened_count == 90
        assert metrics.open_rate == 46.2
        assert metrics.bounced_count == 0
        assert metrics.imported_at is not None

    @pytest.mark.asyncio
    async def test_missing_key(self):
        client = MailerLiteClient("")
        with pytest.raises(DeliveryError):
            await client.send_now("55")
        assert await client.test_connection() is False
