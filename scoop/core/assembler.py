"""
Newsletter HTML assembly.

Content for a campaign is gathered once into a ``NewsletterContext``;
rendering is pure Jinja2 templating over that context, one template per
section, in the configured section order.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from scoop.core.utils import format_long_date, wrap_tracking_url
from scoop.models.content import (
    Advertisement,
    Article,
    Campaign,
    CampaignEvent,
    DiningDeal,
    Event,
    ManualArticle,
    Poll,
    RoadWorkItem,
    VrboListing,
    WeatherForecast,
    WordleEntry,
)

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

SECTION_ARTICLES = "The Local Scoop"
SECTION_EVENTS = "Local Events"
SECTION_WEATHER = "Local Weather"
SECTION_WORDLE = "Yesterday's Wordle"
SECTION_GETAWAYS = "Minnesota Getaways"
SECTION_DINING = "Dining Deals"
SECTION_ROAD_WORK = "Road Work"
SECTION_POLL = "Poll"
SECTION_ADS = "Advertisements"

DEFAULT_SECTION_ORDER = [SECTION_ARTICLES, SECTION_EVENTS]

SECTION_TEMPLATES = {
    SECTION_ARTICLES: "local_scoop.html",
    SECTION_EVENTS: "local_events.html",
    SECTION_WEATHER: "weather.html",
    SECTION_WORDLE: "wordle.html",
    SECTION_GETAWAYS: "getaways.html",
    SECTION_DINING: "dining.html",
    SECTION_ROAD_WORK: "road_work.html",
    SECTION_POLL: "poll.html",
    SECTION_ADS: "ads.html",
}

# (keywords, emoji); first match wins
_EVENT_EMOJI: List[Tuple[Tuple[str, ...], str]] = [
    (("harvest", "corn maze", "farm"), "🌽"),
    (("fall", "autumn"), "🍂"),
    (("winter", "snow", "ice"), "❄️"),
    (("spring", "garden"), "🌸"),
    (("summer",), "☀️"),
    (("halloween", "spooky", "haunted"), "🎃"),
    (("christmas", "santa", "holiday lights"), "🎄"),
    (("valentine",), "💝"),
    (("thanksgiving",), "🦃"),
    (("fireworks", "fourth of july", "independence day"), "🎆"),
    (("art", "exhibition", "gallery", "ceramic", "sculpture"), "🎨"),
    (("film", "movie", "cinema"), "🎬"),
    (("theater", "theatre", "play", "drama", "broadway"), "🎭"),
    (("comedy", "standup", "stand-up", "karaoke"), "🎤"),
    (("museum",), "🏛️"),
    (("library", "book", "reading", "author"), "📚"),
    (("music", "concert", "song", "bluegrass"), "🎶"),
    (("jazz",), "🎷"),
    (("rock", "band"), "🎸"),
    (("orchestra", "symphony", "classical"), "🎻"),
    (("dance", "ballet"), "💃"),
    (("meat raffle", "meat"), "🥩"),
    (("farmers", "market"), "🥕"),
    (("food", "dinner", "lunch", "breakfast", "brunch"), "🍽️"),
    (("beer", "oktoberfest", "brewing", "brewery"), "🍺"),
    (("wine", "winery", "tasting"), "🍷"),
    (("coffee", "cafe"), "☕"),
    (("hockey",), "🏒"),
    (("baseball",), "⚾"),
    (("basketball",), "🏀"),
    (("football",), "🏈"),
    (("soccer",), "⚽"),
    (("golf",), "⛳"),
    (("volleyball",), "🏐"),
    (("run", "5k", "race", "marathon"), "🏃"),
    (("bike", "cycling"), "🚴"),
    (("yoga", "meditation"), "🧘"),
    (("kids", "children", "toddler", "sensory"), "🧒"),
    (("family",), "👨‍👩‍👧‍👦"),
    (("storytime", "story time"), "📖"),
    (("craft", "diy"), "✂️"),
    (("carnival",), "🎡"),
    (("fair",), "🎪"),
    (("festival",), "🎊"),
    (("parade",), "🎺"),
    (("trivia", "game"), "🎮"),
    (("bingo",), "🎰"),
    (("raffle",), "🎟️"),
    (("volunteer", "fundraiser", "charity"), "🤝"),
    (("class", "workshop", "seminar"), "🎓"),
    (("dog", "puppy"), "🐕"),
    (("cat", "kitten"), "🐱"),
    (("outdoor", "nature", "park"), "🌳"),
    (("hiking", "trail"), "🥾"),
    (("beach", "lake"), "🏖️"),
]


def event_emoji(title: str, venue: str = "") -> str:
    """Pick an emoji for an event from keywords in its title (or an amphitheater venue)."""
    lowered = (title or "").lower()
    if "amphitheater" in (venue or "").lower():
        return "🎶"
    for keywords, emoji in _EVENT_EMOJI:
        if any(keyword in lowered for keyword in keywords):
            return emoji
    return "🎉"


def _clock(moment: datetime) -> str:
    hours = moment.hour % 12 or 12
    minutes = "" if moment.minute == 0 else f":{moment.minute:02d}"
    return f"{hours}{minutes}{'PM' if moment.hour >= 12 else 'AM'}"


def format_event_time(start: datetime, end: Optional[datetime] = None) -> str:
    """``9AM - 5:30PM``; just the start when there is no end."""
    if end is None:
        return _clock(start)
    return f"{_clock(start)} - {_clock(end)}"


def format_event_date(day: date) -> str:
    """``Friday, October 17``"""
    return f"{day.strftime('%A')}, {day.strftime('%B')} {day.day}"


def usable_image(url: str) -> str:
    """Drop Facebook CDN links that carry an expiry (``&oe=``); they break after sending."""
    if not url:
        return ""
    if "fbcdn.net" in url and "&oe=" in url:
        return ""
    return url


@dataclass
class EventDay:
    day: date
    featured: List[Event] = field(default_factory=list)
    regular: List[Event] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.featured and not self.regular


@dataclass
class NewsletterContext:
    """Everything a campaign's newsletter shows."""

    campaign: Campaign
    articles: List[Article] = field(default_factory=list)
    manual_articles: List[ManualArticle] = field(default_factory=list)
    event_days: List[EventDay] = field(default_factory=list)
    weather: Optional[WeatherForecast] = None
    wordle: Optional[WordleEntry] = None
    listings: List[VrboListing] = field(default_factory=list)
    dining: List[DiningDeal] = field(default_factory=list)
    road_work: List[RoadWorkItem] = field(default_factory=list)
    poll: Optional[Poll] = None
    ads: List[Advertisement] = field(default_factory=list)
    section_order: List[str] = field(default_factory=lambda: list(DEFAULT_SECTION_ORDER))


def group_events(
    selections: List[Tuple[CampaignEvent, Event]], start: date, days: int = 3
) -> List[EventDay]:
    """Bucket selected events into consecutive days, featured first within a day."""
    buckets = {start + timedelta(days=i): EventDay(day=start + timedelta(days=i)) for i in range(days)}
    ordered = sorted(
        selections,
        key=lambda pair: (pair[0].event_date, pair[0].display_order or 999),
    )
    for selection, event in ordered:
        bucket = buckets.get(selection.event_date)
        if bucket is None or not selection.is_selected:
            continue
        (bucket.featured if selection.is_featured else bucket.regular).append(event)
    return [buckets[d] for d in sorted(buckets)]


class NewsletterAssembler:
    """Renders a campaign's newsletter HTML."""

    def __init__(self, settings=None, template_dir: Optional[Path] = None):
        self.app_url = settings.app_url if settings else "http://localhost:8000"
        self.newsletter_name = settings.newsletter_name if settings else "Newsletter"
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["event_emoji"] = event_emoji
        self.env.filters["event_time"] = format_event_time
        self.env.filters["event_date"] = format_event_date
        self.env.filters["usable_image"] = usable_image

    def _tracker(self, campaign: Campaign) -> Callable[[str, str], str]:
        def track(url: str, section: str) -> str:
            return wrap_tracking_url(
                url,
                section,
                campaign.date,
                self.app_url,
                campaign.review_campaign_id or campaign.final_campaign_id,
            )

        return track

    def render_section(self, name: str, context: NewsletterContext) -> str:
        """Render one section; unknown or empty sections render as an empty string."""
        template_name = SECTION_TEMPLATES.get(name)
        if template_name is None:
            logger.warning(f"Unknown newsletter section: {name}")
            return ""
        if not self._has_content(name, context):
            return ""
        template = self.env.get_template(template_name)
        return template.render(
            ctx=context,
            campaign=context.campaign,
            track=self._tracker(context.campaign),
            app_url=self.app_url.rstrip("/"),
            title=name,
        )

    @staticmethod
    def _has_content(name: str, context: NewsletterContext) -> bool:
        if name == SECTION_ARTICLES:
            return bool(context.articles or context.manual_articles)
        if name == SECTION_EVENTS:
            return any(not day.empty for day in context.event_days)
        if name == SECTION_WEATHER:
            return bool(context.weather and context.weather.days)
        if name == SECTION_WORDLE:
            return context.wordle is not None
        if name == SECTION_GETAWAYS:
            return any(l.title and l.link for l in context.listings)
        if name == SECTION_DINING:
            return bool(context.dining)
        if name == SECTION_ROAD_WORK:
            return bool(context.road_work)
        if name == SECTION_POLL:
            return context.poll is not None and bool(context.poll.options)
        if name == SECTION_ADS:
            return bool(context.ads)
        return False

    def render(self, context: NewsletterContext) -> str:
        """Render the full newsletter document."""
        sections = [self.render_section(name, context) for name in context.section_order]
        template = self.env.get_template("newsletter.html")
        html = template.render(
            campaign=context.campaign,
            formatted_date=format_long_date(context.campaign.date),
            newsletter_name=self.newsletter_name,
            sections=[s for s in sections if s],
            year=context.campaign.date.year,
        )
        logger.debug(f"Assembled newsletter for {context.campaign.date}: {len(html)} bytes")
        return html
