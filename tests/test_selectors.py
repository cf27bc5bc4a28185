"""Tests for per-campaign catalog selection."""

import random
from datetime import datetime, timedelta

import pytest
from conftest import CAMPAIGN_DATE

from scoop.core.cache import CatalogCache
from scoop.core.catalog_store import CatalogStore
from scoop.core.selectors import DiningSelector, EventSelector, VrboSelector
from scoop.models.content import DiningDeal, Event, VrboListing


@pytest.fixture
def catalog(db):
    return CatalogStore(db)


def _deal(name, day="Friday", **kwargs):
    return DiningDeal(business_name=name, day_of_week=day, special_description=f"{name} special", **kwargs)


class TestDiningSelector:
    def test_paid_first_and_featured_fallback(self, db, catalog):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        catalog.add_dining_deal(_deal("Cafe A"))
        catalog.add_dining_deal(_deal("Grill C", paid_placement=True))
        catalog.add_dining_deal(_deal("Weekend Only", day="Saturday"))

        deals = DiningSelector(catalog, random.Random(3)).select(campaign.id, CAMPAIGN_DATE)

        assert [d.business_name for d in deals][0] == "Grill C"
        assert deals[0].is_featured
        assert "Weekend Only" not in [d.business_name for d in deals]

    def test_business_limit_favors_variety(self, db, catalog):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        for _ in range(6):
            catalog.add_dining_deal(_deal("Cafe A"))
        for name in ("B", "C", "D", "E"):
            catalog.add_dining_deal(_deal(name))

        deals = DiningSelector(catalog, random.Random(7)).select(campaign.id, CAMPAIGN_DATE)

        names = [d.business_name for d in deals]
        assert len(deals) == 8
        assert {"B", "C", "D", "E"} <= set(names)

    def test_selection_is_persisted(self, db, catalog):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        for name in ("A", "B", "C"):
            catalog.add_dining_deal(_deal(name))
        selector = DiningSelector(catalog, random.Random(1))

        first = selector.select(campaign.id, CAMPAIGN_DATE)
        second = DiningSelector(catalog, random.Random(99)).select(campaign.id, CAMPAIGN_DATE)

        assert [d.id for d in first] == [d.id for d in second]


class TestVrboSelector:
    def test_rotation_across_campaigns(self, db, catalog):
        for i in range(3):
            catalog.add_vrbo_listing(VrboListing(title=f"Local {i}", listing_type="Local", link="https://vrbo.example.com"))
        for i in range(4):
            catalog.add_vrbo_listing(VrboListing(title=f"Greater {i}", listing_type="Greater", link="https://vrbo.example.com"))
        selector = VrboSelector(catalog, random.Random(5))
        first_campaign = db.create_campaign(CAMPAIGN_DATE)
        second_campaign = db.create_campaign(CAMPAIGN_DATE + timedelta(days=1))

        first = selector.select(first_campaign.id)
        second = selector.select(second_campaign.id)

        assert [l.listing_type for l in first] == ["Local", "Greater", "Greater"]
        first_greater = {l.id for l in first if l.listing_type == "Greater"}
        second_greater = {l.id for l in second if l.listing_type == "Greater"}
        assert first_greater.isdisjoint(second_greater)
        assert [l.id for l in selector.select(first_campaign.id)] == [l.id for l in first]


class TestEventSelector:
    @pytest.mark.asyncio
    async def test_per_day_limit_and_featured(self, db, catalog):
        campaign = db.create_campaign(CAMPAIGN_DATE)
        friday = datetime.combine(CAMPAIGN_DATE, datetime.min.time())
        for i in range(10):
            catalog.add_event(
                Event(
                    external_id=f"fri-{i}",
                    title=f"Friday event {i}",
                    start_date=friday + timedelta(hours=8 + i),
                    featured=i in (4, 6),
                )
            )
        catalog.add_event(Event(external_id="sat-1", title="Saturday market", start_date=friday + timedelta(days=1, hours=9)))
        catalog.add_event(Event(external_id="later", title="Next week", start_date=friday + timedelta(days=7)))
        selector = EventSelector(catalog, CatalogCache(ttl_seconds=0), events_per_day=8)

        selections = await selector.populate(campaign.id, CAMPAIGN_DATE)

        friday_rows = [(s, e) for s, e in selections if s.event_date == CAMPAIGN_DATE]
        assert len(friday_rows) == 8
        featured = [e.title for s, e in friday_rows if s.is_featured]
        assert featured == ["Friday event 4"]
        assert [e.title for s, e in selections if s.event_date != CAMPAIGN_DATE] == ["Saturday market"]

        again = await selector.populate(campaign.id, CAMPAIGN_DATE)
        assert len(again) == len(selections)

    @pytest.mark.asyncio
    async def test_empty_window_not_cached(self, db, catalog):
        selector = EventSelector(catalog, CatalogCache(ttl_seconds=3600))
        first = db.create_campaign(CAMPAIGN_DATE)
        assert await selector.populate(first.id, CAMPAIGN_DATE) == []

        friday = datetime.combine(CAMPAIGN_DATE, datetime.min.time())
        catalog.add_event(Event(external_id="late-upload", title="Late upload", start_date=friday + timedelta(hours=18)))
        second = db.create_campaign(CAMPAIGN_DATE)

        selections = await selector.populate(second.id, CAMPAIGN_DATE)

        assert [e.title for _, e in selections] == ["Late upload"]
