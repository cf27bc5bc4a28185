"""Content models for the newsletter pipeline and its catalogs."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from scoop.models.status import CampaignStatus


class Feed(BaseModel):
    """A configured RSS/Atom source."""

    id: Optional[int] = None
    url: str = Field(..., description="Feed URL")
    name: str = Field(..., description="Display name")
    active: bool = Field(True, description="Fetched on each run")
    last_processed: Optional[datetime] = None
    processing_errors: int = Field(0, ge=0)


class Post(BaseModel):
    """One ingested feed item."""

    id: Optional[int] = None
    feed_id: Optional[int] = None
    campaign_id: Optional[int] = None
    external_id: str = Field(..., description="GUID or link of the item")
    title: str
    description: str = ""
    content: str = ""
    author: str = ""
    publication_date: Optional[datetime] = None
    source_url: str = ""
    image_url: str = ""


class PostRating(BaseModel):
    """AI rubric scores for a post; always fully populated."""

    id: Optional[int] = None
    post_id: Optional[int] = None
    interest_level: int = Field(..., ge=1, le=20)
    local_relevance: int = Field(..., ge=1, le=10)
    community_impact: int = Field(..., ge=1, le=10)
    total_score: int = Field(..., ge=3)
    ai_reasoning: str = ""


class Article(BaseModel):
    """A newsletter-ready rewrite of a post."""

    id: Optional[int] = None
    post_id: Optional[int] = None
    campaign_id: Optional[int] = None
    headline: str
    content: str
    word_count: int = 0
    rank: Optional[int] = None
    is_active: bool = False
    skipped: bool = False
    fact_check_score: Optional[int] = None
    fact_check_details: str = ""
    total_score: int = 0
    source_url: str = ""
    image_url: str = ""
    author: str = ""


class ManualArticle(BaseModel):
    """Reviewer-authored article not derived from a feed."""

    id: Optional[int] = None
    campaign_id: int
    title: str
    content: str
    image_url: str = ""
    source_url: str = ""
    rank: Optional[int] = None
    is_active: bool = True


class CampaignMetrics(BaseModel):
    """Delivery metrics imported from the email provider."""

    sent_count: int = 0
    delivered_count: int = 0
    opened_count: int = 0
    clicked_count: int = 0
    bounced_count: int = 0
    unsubscribed_count: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    imported_at: Optional[datetime] = None


class Campaign(BaseModel):
    """One daily newsletter send."""

    id: Optional[int] = None
    date: date
    status: CampaignStatus = CampaignStatus.DRAFT
    subject_line: Optional[str] = None
    review_sent_at: Optional[datetime] = None
    final_sent_at: Optional[datetime] = None
    review_campaign_id: Optional[str] = None
    final_campaign_id: Optional[str] = None
    last_action: Optional[str] = None
    last_action_at: Optional[datetime] = None
    last_action_by: Optional[str] = None
    metrics: Optional[CampaignMetrics] = None
    created_at: Optional[datetime] = None


class Event(BaseModel):
    """A local event from the events catalog."""

    id: Optional[int] = None
    external_id: str
    title: str
    description: str = ""
    event_summary: str = ""
    start_date: datetime
    end_date: Optional[datetime] = None
    venue: str = ""
    address: str = ""
    url: str = ""
    image_url: str = ""
    featured: bool = False
    active: bool = True


class CampaignEvent(BaseModel):
    """An event selected into a campaign for a specific day."""

    id: Optional[int] = None
    campaign_id: int
    event_id: int
    event_date: date
    is_selected: bool = True
    is_featured: bool = False
    display_order: Optional[int] = None


class WeatherDay(BaseModel):
    day: str
    date_label: str
    icon: str = ""
    precipitation: int = 0
    high: Optional[int] = None
    low: Optional[int] = None
    condition: str = ""


class WeatherForecast(BaseModel):
    id: Optional[int] = None
    forecast_date: date
    days: List[WeatherDay] = Field(default_factory=list)
    is_active: bool = True


class RoadWorkItem(BaseModel):
    id: Optional[int] = None
    campaign_id: Optional[int] = None
    road_name: str
    road_range: str = ""
    city_or_township: str = ""
    reason: str = ""
    start_date: str = ""
    expected_reopen: str = ""
    source_url: str = ""
    is_selected: bool = True
    display_order: Optional[int] = None


class DiningDeal(BaseModel):
    id: Optional[int] = None
    business_name: str
    business_address: str = ""
    google_profile: str = ""
    day_of_week: str
    special_description: str
    special_time: str = ""
    is_featured: bool = False
    paid_placement: bool = False
    is_active: bool = True


class VrboListing(BaseModel):
    id: Optional[int] = None
    title: str
    main_image_url: str = ""
    adjusted_image_url: str = ""
    city: str = ""
    bedrooms: int = 0
    bathrooms: float = 0
    sleeps: int = 0
    link: str = ""
    listing_type: str = Field("Local", pattern="^(Local|Greater)$")
    is_active: bool = True


class Poll(BaseModel):
    id: Optional[int] = None
    title: str
    question: str
    options: List[str] = Field(default_factory=list)
    is_active: bool = False


class Advertisement(BaseModel):
    id: Optional[int] = None
    title: str
    body: str
    image_url: str = ""
    button_text: str = "Learn More"
    button_url: str = ""
    display_order: Optional[int] = None
    status: str = "active"


class NewsletterSection(BaseModel):
    id: Optional[int] = None
    name: str
    display_order: int
    is_active: bool = True


class WordleEntry(BaseModel):
    date: date
    word: str
    definition: str = ""
    interesting_fact: str = ""


class UserActivity(BaseModel):
    id: Optional[int] = None
    campaign_id: Optional[int] = None
    user_id: str = "system"
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
