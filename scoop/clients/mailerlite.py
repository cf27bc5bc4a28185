"""MailerLite API client for review and final campaign delivery."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from scoop.core.errors import DeliveryError
from scoop.models.content import CampaignMetrics

logger = logging.getLogger(__name__)

# MailerLite timezone identifiers by IANA name
MAILERLITE_TIMEZONE_IDS = {"America/Chicago": 157}
CENTRAL_TIMEZONE_ID = MAILERLITE_TIMEZONE_IDS["America/Chicago"]


class MailerLiteClient:
    """Thin wrapper over the MailerLite campaigns API.

    Every failure is raised as ``DeliveryError``; there is no retry loop.
    """

    def __init__(self, api_key: str, settings=None):
        """Initialize MailerLite client.

        Args:
            api_key: MailerLite API token
            settings: Settings instance for configuration values
        """
        self.api_key = api_key
        self.base_url = "https://connect.mailerlite.com/api"
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self.timeout = settings.mailerlite_timeout if settings else 15.0
        self.from_name = settings.email_from_name if settings else "Newsletter"
        self.from_address = settings.email_from_address if settings else ""
        tz_name = settings.timezone if settings else "America/Chicago"
        self.timezone_id: Optional[int] = (
            settings.mailerlite_timezone_id if settings and settings.mailerlite_timezone_id
            else MAILERLITE_TIMEZONE_IDS.get(tz_name)
        )
        self.timezone_name = tz_name

    async def create_campaign(
        self, name: str, subject: str, html: str, group_id: str
    ) -> str:
        """Create a regular campaign with the given HTML.

        Args:
            name: Internal campaign name
            subject: Email subject line
            html: Email body
            group_id: Subscriber group to send to

        Returns:
            MailerLite campaign id
        """
        payload = {
            "name": name,
            "type": "regular",
            "emails": [
                {
                    "subject": subject,
                    "from_name": self.from_name,
                    "from": self.from_address,
                    "content": html,
                }
            ],
            "groups": [group_id],
        }
        data = await self._request("POST", "/campaigns", payload)
        try:
            campaign_id = str(data["data"]["id"])
        except (KeyError, TypeError) as e:
            raise DeliveryError(f"MailerLite response missing campaign id: {e}")
        logger.info(f"📧 Created MailerLite campaign {campaign_id} ({name})")
        return campaign_id

    async def schedule_campaign(self, campaign_id: str, send_at: datetime) -> None:
        """Schedule a campaign for a wall-clock time in the newsletter timezone.

        Raises:
            DeliveryError: If the newsletter timezone has no MailerLite id
        """
        if self.timezone_id is None:
            raise DeliveryError(
                f"No MailerLite timezone id known for {self.timezone_name}; set MAILERLITE_TIMEZONE_ID"
            )
        payload = {
            "delivery": "scheduled",
            "schedule": {
                "date": send_at.strftime("%Y-%m-%d"),
                "hours": send_at.strftime("%H"),
                "minutes": send_at.strftime("%M"),
                "timezone_id": self.timezone_id,
            },
        }
        await self._request("POST", f"/campaigns/{campaign_id}/schedule", payload)
        logger.info(f"Scheduled campaign {campaign_id} for {send_at:%Y-%m-%d %H:%M}")

    async def send_now(self, campaign_id: str) -> None:
        await self._request(
            "POST", f"/campaigns/{campaign_id}/schedule", {"delivery": "instant"}
        )
        logger.info(f"🚀 Campaign {campaign_id} sent")

    async def get_campaign_metrics(self, campaign_id: str) -> CampaignMetrics:
        """Fetch the delivery report for a campaign.

        Returns:
            Metrics with counts and rates; missing figures default to zero
        """
        data = await self._request("GET", f"/campaigns/{campaign_id}/reports")
        report = data.get("data", data) or {}

        def count(key: str) -> int:
            value = report.get(key, 0)
            if isinstance(value, dict):
                value = value.get("count", 0)
            return int(value or 0)

        def rate(key: str) -> float:
            value = report.get(key, {})
            if isinstance(value, dict):
                value = value.get("rate", 0)
            return float(value or 0)

        return CampaignMetrics(
            sent_count=count("sent"),
            delivered_count=count("delivered"),
            opened_count=count("opened"),
            clicked_count=count("clicked"),
            bounced_count=count("bounced"),
            unsubscribed_count=count("unsubscribed"),
            open_rate=rate("opened"),
            click_rate=rate("clicked"),
            imported_at=datetime.now(timezone.utc),
        )

    async def test_connection(self) -> bool:
        """Test the MailerLite API connection."""
        if not self.api_key:
            return False
        try:
            await self._request("GET", "/groups?limit=1")
            logger.info("MailerLite API connection successful")
            return True
        except DeliveryError as e:
            logger.error(f"MailerLite API connection failed: {e}")
            return False

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send a request and decode the JSON body.

        Raises:
            DeliveryError: On network errors or any non-2xx status
        """
        if not self.api_key:
            raise DeliveryError("MailerLite API key not configured")

        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=self.headers, json=payload
                ) as response:
                    if response.status >= 300:
                        error_detail = await response.text()
                        logger.error(f"MailerLite API error {response.status}:")
                        for line in str(error_detail).splitlines():
                            logger.error(f"MailerLite error detail: {line}")
                        raise DeliveryError(
                            f"MailerLite {method} {path} failed with HTTP {response.status}",
                            status=response.status,
                            body=error_detail[:500],
                        )
                    if response.status == 204:
                        return {}
                    return await response.json(content_type=None) or {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Network error calling MailerLite {path}: {e}")
            raise DeliveryError(f"MailerLite unreachable: {e}")
        except ValueError as e:
            logger.error(f"Invalid JSON from MailerLite {path}: {e}")
            raise DeliveryError(f"Invalid MailerLite response: {e}")
