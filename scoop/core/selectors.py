"""
Per-campaign selection of catalog content: dining deals, rental listings
and local events. Selections are persisted, so repeated calls for the same
campaign return the same content.
"""

import logging
import random
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from scoop.core.cache import CatalogCache
from scoop.core.utils import weekday_name
from scoop.models.content import CampaignEvent, DiningDeal, Event, VrboListing

logger = logging.getLogger(__name__)

DINING_TOTAL = 8
DINING_PER_BUSINESS = 2
VRBO_PLAN = (("Local", 1), ("Greater", 2))
EVENT_DAYS = 3


def _limit_per_business(deals: List[DiningDeal], total: int, per_business: int) -> List[DiningDeal]:
    """Take deals in priority order, at most ``per_business`` each, topping up past the limit if short."""
    selected: List[DiningDeal] = []
    counts: Dict[str, int] = {}
    for deal in deals:
        name = deal.business_name or "Unknown"
        if counts.get(name, 0) < per_business:
            selected.append(deal)
            counts[name] = counts.get(name, 0) + 1
        if len(selected) >= total:
            break

    if len(selected) < total:
        remaining = [d for d in deals if d not in selected]
        selected.extend(remaining[: total - len(selected)])
    return selected


class DiningSelector:
    def __init__(self, catalog, rng: Optional[random.Random] = None):
        self.catalog = catalog
        self.rng = rng or random.Random()

    def select(self, campaign_id: int, campaign_date: date) -> List[DiningDeal]:
        """Pick the campaign's dining deals for its weekday.

        Paid placements always make it; featured deals come next and the
        rest are shuffled. The first deal is featured when none is.
        """
        existing = self.catalog.dining_selections(campaign_id)
        if existing:
            return existing

        day = weekday_name(campaign_date)
        available = self.catalog.dining_deals_for_day(day)
        if not available:
            logger.info(f"No active dining deals for {day}")
            return []

        paid = [d for d in available if d.paid_placement]
        featured = [d for d in available if d.is_featured and not d.paid_placement]
        rest = [d for d in available if not d.is_featured and not d.paid_placement]
        self.rng.shuffle(rest)

        if len(paid) > DINING_TOTAL:
            logger.warning(f"{len(paid)} paid placements exceed {DINING_TOTAL} spots; all included")
        chosen = _limit_per_business(
            paid + featured + rest, max(DINING_TOTAL, len(paid)), DINING_PER_BUSINESS
        )

        chosen_paid = [d for d in chosen if d.paid_placement]
        chosen_featured = [d for d in chosen if d.is_featured and not d.paid_placement]
        chosen_rest = [d for d in chosen if not d.is_featured and not d.paid_placement]
        self.rng.shuffle(chosen_rest)
        ordered = chosen_paid + chosen_featured + chosen_rest

        if ordered and not any(d.is_featured for d in ordered):
            ordered[0] = ordered[0].model_copy(update={"is_featured": True})

        self.catalog.save_dining_selections(campaign_id, ordered)
        logger.info(f"🍽️ Selected {len(ordered)} dining deals for {day} ({len(chosen_paid)} paid)")
        return ordered


class VrboSelector:
    """Rotates rental listings through a persisted shuffle per listing type."""

    def __init__(self, catalog, rng: Optional[random.Random] = None):
        self.catalog = catalog
        self.rng = rng or random.Random()

    def select(self, campaign_id: int) -> List[VrboListing]:
        existing = self.catalog.vrbo_selections(campaign_id)
        if existing:
            return existing

        selected: List[VrboListing] = []
        for listing_type, count in VRBO_PLAN:
            listings = {l.id: l for l in self.catalog.vrbo_listings(listing_type)}
            if not listings:
                continue
            index, order = self.catalog.get_vrbo_state(listing_type)
            order = [i for i in order if i in listings]

            for _ in range(count):
                if index >= len(order):
                    order = list(listings)
                    self.rng.shuffle(order)
                    index = 0
                listing = listings[order[index]]
                index += 1
                if listing not in selected:
                    selected.append(listing)

            self.catalog.save_vrbo_state(listing_type, index, order)

        self.catalog.save_vrbo_selections(campaign_id, selected)
        logger.info(f"🏡 Selected {len(selected)} rental listings")
        return selected


class EventSelector:
    """Fills a campaign's three-day events window."""

    def __init__(self, catalog, cache: Optional[CatalogCache] = None, events_per_day: int = 8):
        self.catalog = catalog
        self.cache = cache or CatalogCache(ttl_seconds=0)
        self.events_per_day = events_per_day

    async def _window(self, campaign_date: date) -> List[Event]:
        async def fetch():
            start = datetime.combine(campaign_date, time.min)
            end = start + timedelta(days=EVENT_DAYS)
            rows = [e.model_dump(mode="json") for e in self.catalog.events_between(start, end)]
            # empty windows stay uncached
            return rows or None

        rows = await self.cache.get_or_fetch("events", campaign_date, fetch)
        return [Event(**row) for row in rows or []]

    async def populate(self, campaign_id: int, campaign_date: date) -> List[Tuple[CampaignEvent, Event]]:
        """Select events for each day of the window unless already selected.

        Per day at most ``events_per_day`` events; the first catalog-featured
        event of each day is featured in the campaign.
        """
        existing = self.catalog.campaign_events(campaign_id)
        if existing:
            return existing

        events = await self._window(campaign_date)
        added = 0
        for offset in range(EVENT_DAYS):
            day = campaign_date + timedelta(days=offset)
            day_start = datetime.combine(day, time.min)
            day_end = day_start + timedelta(days=1)
            todays = [
                e for e in events
                if e.start_date < day_end and (e.end_date or e.start_date) >= day_start
            ][: self.events_per_day]

            featured_done = False
            for position, event in enumerate(todays, start=1):
                feature = event.featured and not featured_done
                featured_done = featured_done or feature
                if self.catalog.add_campaign_event(
                    CampaignEvent(
                        campaign_id=campaign_id,
                        event_id=event.id,
                        event_date=day,
                        is_featured=feature,
                        display_order=position,
                    )
                ):
                    added += 1

        logger.info(f"📅 Selected {added} events for {campaign_date} (+{EVENT_DAYS - 1} days)")
        return self.catalog.campaign_events(campaign_id)
