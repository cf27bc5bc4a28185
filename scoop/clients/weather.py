"""National Weather Service forecast client."""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import aiohttp

from scoop.core.cache import CatalogCache
from scoop.models.content import WeatherDay, WeatherForecast

logger = logging.getLogger(__name__)

_CONDITION_ICONS = [
    ("thunder", "⛈️"),
    ("snow", "❄️"),
    ("sleet", "🌨️"),
    ("rain", "🌧️"),
    ("showers", "🌦️"),
    ("fog", "🌫️"),
    ("partly", "⛅"),
    ("cloud", "☁️"),
    ("overcast", "☁️"),
    ("sunny", "☀️"),
    ("clear", "☀️"),
]


def condition_icon(condition: str) -> str:
    lowered = (condition or "").lower()
    for keyword, icon in _CONDITION_ICONS:
        if keyword in lowered:
            return icon
    return "🌡️"


class WeatherClient:
    """Fetches a three-day forecast from api.weather.gov."""

    def __init__(self, settings=None, cache: Optional[CatalogCache] = None):
        """Initialize weather client.

        Args:
            settings: Settings instance for location and timeout
            cache: Catalog cache; forecasts are fetched once per date and TTL
        """
        self.base_url = "https://api.weather.gov"
        self.latitude = settings.weather_latitude if settings else 45.5608
        self.longitude = settings.weather_longitude if settings else -94.1622
        self.timeout = settings.weather_timeout if settings else 10.0
        user_agent = settings.default_user_agent if settings else "Scoop-Newsletter/1.0"
        self.headers = {"User-Agent": user_agent, "Accept": "application/geo+json"}
        self.cache = cache or CatalogCache(ttl_seconds=0)

    async def get_forecast(self, forecast_date: date, days: int = 3) -> Optional[WeatherForecast]:
        """Get the forecast starting at ``forecast_date``.

        Returns:
            Forecast with up to ``days`` cards, or None if the API failed
        """
        periods = await self.cache.get_or_fetch(
            "weather", forecast_date, self._fetch_periods
        )
        if not periods:
            return None
        return WeatherForecast(
            forecast_date=forecast_date,
            days=self.build_days(periods, forecast_date, days),
        )

    async def _fetch_periods(self) -> Optional[List[Dict[str, Any]]]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=self.headers) as session:
                points_url = f"{self.base_url}/points/{self.latitude:.4f},{self.longitude:.4f}"
                async with session.get(points_url) as response:
                    if response.status != 200:
                        logger.error(f"Weather points lookup failed: HTTP {response.status}")
                        return None
                    points = await response.json(content_type=None)
                forecast_url = points["properties"]["forecast"]
                async with session.get(forecast_url) as response:
                    if response.status != 200:
                        logger.error(f"Weather forecast fetch failed: HTTP {response.status}")
                        return None
                    forecast = await response.json(content_type=None)
                return forecast["properties"]["periods"]
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Network error fetching weather: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Weather response parsing error: {e}")
            return None

    @staticmethod
    def build_days(
        periods: List[Dict[str, Any]], start: date, days: int = 3
    ) -> List[WeatherDay]:
        """Fold day/night forecast periods into one card per date."""
        by_date: Dict[date, WeatherDay] = {}
        for period in periods:
            try:
                period_date = datetime.fromisoformat(period["startTime"]).date()
            except (KeyError, ValueError):
                continue
            if period_date < start:
                continue
            card = by_date.get(period_date)
            if card is None:
                if len(by_date) >= days:
                    continue
                card = WeatherDay(
                    day=period_date.strftime("%A"),
                    date_label=f"{period_date.strftime('%b')} {period_date.day}",
                )
                by_date[period_date] = card

            precipitation = (period.get("probabilityOfPrecipitation") or {}).get("value") or 0
            card.precipitation = max(card.precipitation, int(precipitation))
            if period.get("isDaytime", True):
                card.high = period.get("temperature")
                card.condition = period.get("shortForecast", "")
                card.icon = condition_icon(card.condition)
            else:
                card.low = period.get("temperature")
                if not card.condition:
                    card.condition = period.get("shortForecast", "")
                    card.icon = condition_icon(card.condition)

        return [by_date[d] for d in sorted(by_date)]
