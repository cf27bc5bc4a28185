"""
Catalog tables: events, weather, road work, dining, rentals, polls, ads,
section order and the daily Wordle.

Catalog rows are managed independently of campaigns and joined into a
campaign through selection tables.
"""

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import List, Optional, Tuple

from scoop.core.errors import NotFoundError
from scoop.models.content import (
    Advertisement,
    CampaignEvent,
    DiningDeal,
    Event,
    NewsletterSection,
    Poll,
    RoadWorkItem,
    VrboListing,
    WeatherForecast,
    WordleEntry,
)

logger = logging.getLogger(__name__)

CATALOG_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT UNIQUE NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    event_summary TEXT NOT NULL DEFAULT '',
    start_date TIMESTAMP NOT NULL,
    end_date TIMESTAMP,
    venue TEXT NOT NULL DEFAULT '',
    address TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL DEFAULT '',
    image_url TEXT NOT NULL DEFAULT '',
    featured INTEGER NOT NULL DEFAULT 0,
    active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS campaign_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
    event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE,
    event_date TEXT NOT NULL,
    is_selected INTEGER NOT NULL DEFAULT 1,
    is_featured INTEGER NOT NULL DEFAULT 0,
    display_order INTEGER,
    UNIQUE (campaign_id, event_id, event_date)
);

CREATE TABLE IF NOT EXISTS weather_forecasts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    forecast_date TEXT UNIQUE NOT NULL,
    days TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS road_work_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER REFERENCES campaigns(id) ON DELETE CASCADE,
    road_name TEXT NOT NULL,
    road_range TEXT NOT NULL DEFAULT '',
    city_or_township TEXT NOT NULL DEFAULT '',
    reason TEXT NOT NULL DEFAULT '',
    start_date TEXT NOT NULL DEFAULT '',
    expected_reopen TEXT NOT NULL DEFAULT '',
    source_url TEXT NOT NULL DEFAULT '',
    is_selected INTEGER NOT NULL DEFAULT 1,
    display_order INTEGER
);

CREATE TABLE IF NOT EXISTS dining_deals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    business_name TEXT NOT NULL,
    business_address TEXT NOT NULL DEFAULT '',
    google_profile TEXT NOT NULL DEFAULT '',
    day_of_week TEXT NOT NULL,
    special_description TEXT NOT NULL,
    special_time TEXT NOT NULL DEFAULT '',
    is_featured INTEGER NOT NULL DEFAULT 0,
    paid_placement INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS campaign_dining_selections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
    deal_id INTEGER NOT NULL REFERENCES dining_deals(id) ON DELETE CASCADE,
    selection_order INTEGER NOT NULL,
    is_featured INTEGER NOT NULL DEFAULT 0,
    UNIQUE (campaign_id, deal_id)
);

CREATE TABLE IF NOT EXISTS vrbo_listings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    main_image_url TEXT NOT NULL DEFAULT '',
    adjusted_image_url TEXT NOT NULL DEFAULT '',
    city TEXT NOT NULL DEFAULT '',
    bedrooms INTEGER NOT NULL DEFAULT 0,
    bathrooms REAL NOT NULL DEFAULT 0,
    sleeps INTEGER NOT NULL DEFAULT 0,
    link TEXT NOT NULL DEFAULT '',
    listing_type TEXT NOT NULL DEFAULT 'Local',
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS campaign_vrbo_selections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id INTEGER NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
    listing_id INTEGER NOT NULL REFERENCES vrbo_listings(id) ON DELETE CASCADE,
    selection_order INTEGER NOT NULL,
    UNIQUE (campaign_id, listing_id)
);

CREATE TABLE IF NOT EXISTS vrbo_selection_state (
    listing_type TEXT PRIMARY KEY,
    current_index INTEGER NOT NULL DEFAULT 0,
    shuffle_order TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS polls (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    question TEXT NOT NULL,
    options TEXT NOT NULL DEFAULT '[]',
    is_active INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS poll_responses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    poll_id INTEGER NOT NULL REFERENCES polls(id) ON DELETE CASCADE,
    campaign_id INTEGER REFERENCES campaigns(id) ON DELETE CASCADE,
    subscriber_email TEXT NOT NULL,
    selected_option TEXT NOT NULL,
    responded_at TIMESTAMP NOT NULL,
    UNIQUE (poll_id, subscriber_email)
);

CREATE TABLE IF NOT EXISTS advertisements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    image_url TEXT NOT NULL DEFAULT '',
    button_text TEXT NOT NULL DEFAULT 'Learn More',
    button_url TEXT NOT NULL DEFAULT '',
    display_order INTEGER,
    status TEXT NOT NULL DEFAULT 'active'
);

CREATE TABLE IF NOT EXISTS newsletter_sections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    display_order INTEGER NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS wordle (
    date TEXT PRIMARY KEY,
    word TEXT NOT NULL,
    definition TEXT NOT NULL DEFAULT '',
    interesting_fact TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_events_start ON events(start_date);
CREATE INDEX IF NOT EXISTS idx_campaign_events_campaign ON campaign_events(campaign_id);
"""


class CatalogStore:
    """Queries over the catalog tables of a ``Database``."""

    def __init__(self, db):
        self.db = db

    # ------------------------------------------------------------------
    # Events

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        data = {k: row[k] for k in row.keys() if k in Event.model_fields}
        return Event(**data)

    def add_event(self, event: Event) -> Optional[Event]:
        """Insert an event; returns None if its external id already exists."""
        try:
            with self.db.connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO events (external_id, title, description, event_summary, "
                    "start_date, end_date, venue, address, url, image_url, featured, active) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        event.external_id,
                        event.title,
                        event.description,
                        event.event_summary,
                        event.start_date.isoformat(),
                        event.end_date.isoformat() if event.end_date else None,
                        event.venue,
                        event.address,
                        event.url,
                        event.image_url,
                        int(event.featured),
                        int(event.active),
                    ),
                )
        except sqlite3.IntegrityError:
            return None
        return event.model_copy(update={"id": cursor.lastrowid})

    def event_exists(self, title: str, start_date: datetime, venue: str) -> bool:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM events WHERE title = ? AND start_date = ? AND venue = ?",
                (title, start_date.isoformat(), venue),
            ).fetchone()
        return row is not None

    def events_between(self, start: datetime, end: datetime) -> List[Event]:
        """Active events overlapping ``[start, end)``."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM events WHERE active = 1 AND start_date < ? "
                "AND COALESCE(end_date, start_date) >= ? ORDER BY featured DESC, start_date, id",
                (end.isoformat(), start.isoformat()),
            ).fetchall()
        return [self._row_to_event(row) for row in rows]

    def list_events(self, limit: int = 100) -> List[Event]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM events ORDER BY start_date DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._row_to_event(row) for row in rows]

    def add_campaign_event(self, selection: CampaignEvent) -> bool:
        try:
            with self.db.connection() as conn:
                conn.execute(
                    "INSERT INTO campaign_events (campaign_id, event_id, event_date, "
                    "is_selected, is_featured, display_order) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        selection.campaign_id,
                        selection.event_id,
                        selection.event_date.isoformat(),
                        int(selection.is_selected),
                        int(selection.is_featured),
                        selection.display_order,
                    ),
                )
        except sqlite3.IntegrityError:
            return False
        return True

    def campaign_events(self, campaign_id: int) -> List[Tuple[CampaignEvent, Event]]:
        """Selected events for a campaign, by date then display order (unset last)."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT ce.id AS selection_id, ce.campaign_id, ce.event_id, ce.event_date, "
                "ce.is_selected, ce.is_featured, ce.display_order, e.* "
                "FROM campaign_events ce JOIN events e ON e.id = ce.event_id "
                "WHERE ce.campaign_id = ? AND ce.is_selected = 1 "
                "ORDER BY ce.event_date, COALESCE(ce.display_order, 999), e.start_date",
                (campaign_id,),
            ).fetchall()

        selected = []
        for row in rows:
            selection = CampaignEvent(
                id=row["selection_id"],
                campaign_id=row["campaign_id"],
                event_id=row["event_id"],
                event_date=date.fromisoformat(row["event_date"]),
                is_selected=bool(row["is_selected"]),
                is_featured=bool(row["is_featured"]),
                display_order=row["display_order"],
            )
            selected.append((selection, self._row_to_event(row)))
        return selected

    # ------------------------------------------------------------------
    # Weather

    def save_forecast(self, forecast: WeatherForecast) -> None:
        days = json.dumps([day.model_dump() for day in forecast.days])
        with self.db.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO weather_forecasts (forecast_date, days, is_active) "
                "VALUES (?, ?, ?)",
                (forecast.forecast_date.isoformat(), days, int(forecast.is_active)),
            )

    def get_forecast(self, forecast_date: date) -> Optional[WeatherForecast]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM weather_forecasts WHERE forecast_date = ? AND is_active = 1",
                (forecast_date.isoformat(),),
            ).fetchone()
        if row is None:
            return None
        return WeatherForecast(
            id=row["id"],
            forecast_date=date.fromisoformat(row["forecast_date"]),
            days=json.loads(row["days"]),
            is_active=bool(row["is_active"]),
        )

    # ------------------------------------------------------------------
    # Road work

    def add_road_work(self, item: RoadWorkItem) -> RoadWorkItem:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO road_work_items (campaign_id, road_name, road_range, "
                "city_or_township, reason, start_date, expected_reopen, source_url, "
                "is_selected, display_order) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    item.campaign_id,
                    item.road_name,
                    item.road_range,
                    item.city_or_township,
                    item.reason,
                    item.start_date,
                    item.expected_reopen,
                    item.source_url,
                    int(item.is_selected),
                    item.display_order,
                ),
            )
        return item.model_copy(update={"id": cursor.lastrowid})

    def road_work_for_campaign(
        self, campaign_id: int, selected_only: bool = True
    ) -> List[RoadWorkItem]:
        query = "SELECT * FROM road_work_items WHERE campaign_id = ?"
        if selected_only:
            query += " AND is_selected = 1"
        query += " ORDER BY COALESCE(display_order, 999), id"
        with self.db.connection() as conn:
            rows = conn.execute(query, (campaign_id,)).fetchall()
        return [RoadWorkItem(**dict(row)) for row in rows]

    def set_road_work_selected(
        self, campaign_id: int, item_id: int, selected: bool
    ) -> RoadWorkItem:
        """Include or exclude a road work item.

        Raises:
            NotFoundError: If the item does not belong to the campaign
        """
        with self.db.connection() as conn:
            cursor = conn.execute(
                "UPDATE road_work_items SET is_selected = ? WHERE id = ? AND campaign_id = ?",
                (int(selected), item_id, campaign_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Road work item {item_id} not found in campaign {campaign_id}")
            row = conn.execute(
                "SELECT * FROM road_work_items WHERE id = ?", (item_id,)
            ).fetchone()
        return RoadWorkItem(**dict(row))

    # ------------------------------------------------------------------
    # Dining deals

    def add_dining_deal(self, deal: DiningDeal) -> DiningDeal:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO dining_deals (business_name, business_address, google_profile, "
                "day_of_week, special_description, special_time, is_featured, "
                "paid_placement, is_active) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    deal.business_name,
                    deal.business_address,
                    deal.google_profile,
                    deal.day_of_week,
                    deal.special_description,
                    deal.special_time,
                    int(deal.is_featured),
                    int(deal.paid_placement),
                    int(deal.is_active),
                ),
            )
        return deal.model_copy(update={"id": cursor.lastrowid})

    def dining_deals_for_day(self, day_of_week: str) -> List[DiningDeal]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM dining_deals WHERE day_of_week = ? AND is_active = 1 ORDER BY id",
                (day_of_week,),
            ).fetchall()
        return [DiningDeal(**dict(row)) for row in rows]

    def save_dining_selections(self, campaign_id: int, deals: List[DiningDeal]) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "DELETE FROM campaign_dining_selections WHERE campaign_id = ?", (campaign_id,)
            )
            conn.executemany(
                "INSERT INTO campaign_dining_selections (campaign_id, deal_id, "
                "selection_order, is_featured) VALUES (?, ?, ?, ?)",
                [
                    (campaign_id, deal.id, position, int(deal.is_featured))
                    for position, deal in enumerate(deals, start=1)
                ],
            )

    def dining_selections(self, campaign_id: int) -> List[DiningDeal]:
        """Persisted selections; ``is_featured`` reflects the campaign's choice."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT d.*, s.is_featured AS selected_featured "
                "FROM campaign_dining_selections s JOIN dining_deals d ON d.id = s.deal_id "
                "WHERE s.campaign_id = ? ORDER BY s.selection_order",
                (campaign_id,),
            ).fetchall()
        deals = []
        for row in rows:
            data = {k: row[k] for k in row.keys() if k in DiningDeal.model_fields}
            data["is_featured"] = bool(row["selected_featured"])
            deals.append(DiningDeal(**data))
        return deals

    # ------------------------------------------------------------------
    # Rental listings

    def add_vrbo_listing(self, listing: VrboListing) -> VrboListing:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO vrbo_listings (title, main_image_url, adjusted_image_url, city, "
                "bedrooms, bathrooms, sleeps, link, listing_type, is_active) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    listing.title,
                    listing.main_image_url,
                    listing.adjusted_image_url,
                    listing.city,
                    listing.bedrooms,
                    listing.bathrooms,
                    listing.sleeps,
                    listing.link,
                    listing.listing_type,
                    int(listing.is_active),
                ),
            )
        return listing.model_copy(update={"id": cursor.lastrowid})

    def vrbo_listings(self, listing_type: str) -> List[VrboListing]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM vrbo_listings WHERE listing_type = ? AND is_active = 1 ORDER BY id",
                (listing_type,),
            ).fetchall()
        return [VrboListing(**dict(row)) for row in rows]

    def get_vrbo_state(self, listing_type: str) -> Tuple[int, List[int]]:
        """Current position and shuffle order for a listing type."""
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM vrbo_selection_state WHERE listing_type = ?", (listing_type,)
            ).fetchone()
        if row is None:
            return 0, []
        return row["current_index"], json.loads(row["shuffle_order"])

    def save_vrbo_state(self, listing_type: str, current_index: int, order: List[int]) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO vrbo_selection_state (listing_type, current_index, "
                "shuffle_order) VALUES (?, ?, ?)",
                (listing_type, current_index, json.dumps(order)),
            )

    def save_vrbo_selections(self, campaign_id: int, listings: List[VrboListing]) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "DELETE FROM campaign_vrbo_selections WHERE campaign_id = ?", (campaign_id,)
            )
            conn.executemany(
                "INSERT INTO campaign_vrbo_selections (campaign_id, listing_id, "
                "selection_order) VALUES (?, ?, ?)",
                [
                    (campaign_id, listing.id, position)
                    for position, listing in enumerate(listings, start=1)
                ],
            )

    def vrbo_selections(self, campaign_id: int) -> List[VrboListing]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT v.* FROM campaign_vrbo_selections s "
                "JOIN vrbo_listings v ON v.id = s.listing_id "
                "WHERE s.campaign_id = ? ORDER BY s.selection_order",
                (campaign_id,),
            ).fetchall()
        return [VrboListing(**dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Polls and ads

    def add_poll(self, poll: Poll) -> Poll:
        with self.db.connection() as conn:
            if poll.is_active:
                conn.execute("UPDATE polls SET is_active = 0")
            cursor = conn.execute(
                "INSERT INTO polls (title, question, options, is_active) VALUES (?, ?, ?, ?)",
                (poll.title, poll.question, json.dumps(poll.options), int(poll.is_active)),
            )
        return poll.model_copy(update={"id": cursor.lastrowid})

    def active_poll(self) -> Optional[Poll]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM polls WHERE is_active = 1 ORDER BY id DESC LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        data = dict(row)
        data["options"] = json.loads(data["options"])
        return Poll(**data)

    def get_poll(self, poll_id: int) -> Poll:
        """Fetch a poll.

        Raises:
            NotFoundError: If no poll has this id
        """
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM polls WHERE id = ?", (poll_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Poll {poll_id} not found")
        data = dict(row)
        data["options"] = json.loads(data["options"])
        return Poll(**data)

    def record_poll_response(
        self,
        poll_id: int,
        subscriber_email: str,
        selected_option: str,
        campaign_id: Optional[int] = None,
    ) -> bool:
        """Store a response; False if the subscriber already answered this poll."""
        try:
            with self.db.connection() as conn:
                conn.execute(
                    "INSERT INTO poll_responses (poll_id, campaign_id, subscriber_email, "
                    "selected_option, responded_at) VALUES (?, ?, ?, ?, ?)",
                    (
                        poll_id,
                        campaign_id,
                        subscriber_email,
                        selected_option,
                        datetime.now().isoformat(),
                    ),
                )
        except sqlite3.IntegrityError:
            return False
        return True

    def add_advertisement(self, ad: Advertisement) -> Advertisement:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO advertisements (title, body, image_url, button_text, button_url, "
                "display_order, status) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    ad.title,
                    ad.body,
                    ad.image_url,
                    ad.button_text,
                    ad.button_url,
                    ad.display_order,
                    ad.status,
                ),
            )
        return ad.model_copy(update={"id": cursor.lastrowid})

    def active_advertisements(self) -> List[Advertisement]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM advertisements WHERE status = 'active' "
                "ORDER BY COALESCE(display_order, 999), id"
            ).fetchall()
        return [Advertisement(**dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Sections and Wordle

    def set_sections(self, names: List[str]) -> None:
        """Replace the section order with ``names`` (all active)."""
        with self.db.connection() as conn:
            conn.execute("DELETE FROM newsletter_sections")
            conn.executemany(
                "INSERT INTO newsletter_sections (name, display_order, is_active) "
                "VALUES (?, ?, 1)",
                [(name, position) for position, name in enumerate(names, start=1)],
            )

    def active_sections(self) -> List[NewsletterSection]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM newsletter_sections WHERE is_active = 1 ORDER BY display_order"
            ).fetchall()
        return [NewsletterSection(**dict(row)) for row in rows]

    def save_wordle(self, entry: WordleEntry) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO wordle (date, word, definition, interesting_fact) "
                "VALUES (?, ?, ?, ?)",
                (entry.date.isoformat(), entry.word, entry.definition, entry.interesting_fact),
            )

    def get_wordle(self, wordle_date: date) -> Optional[WordleEntry]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM wordle WHERE date = ?", (wordle_date.isoformat(),)
            ).fetchone()
        return WordleEntry(**dict(row)) if row else None
