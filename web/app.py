"""FastAPI web interface for campaign review, delivery and cron triggers."""

import hmac
import logging
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Query, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException

from scoop.core.csv_import import EventCSVImporter
from scoop.core.errors import AuthError, ScoopError, ValidationError
from scoop.core.pipeline import NewsletterPipeline
from scoop.core.utils import extract_source_from_url, local_now
from scoop.models.content import RoadWorkItem
from scoop.models.settings import Settings
from scoop.models.status import StatusAction, allowed_actions

logger = logging.getLogger(__name__)

SESSION_COOKIE = "scoop_session"
DASHBOARD_ACTIONS = {StatusAction.MARK_CHANGES}

app = FastAPI(
    title="Newsletter Review API",
    description="Campaign review, delivery and scheduled job triggers",
    version="1.0.0",
)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


# ----------------------------------------------------------------------
# Request bodies


class CampaignCreate(BaseModel):
    date: date


class StatusUpdate(BaseModel):
    action: str


class ArticleOrder(BaseModel):
    articleId: int
    rank: int


class ReorderRequest(BaseModel):
    articleOrders: List[ArticleOrder] = Field(default_factory=list)


class SubjectUpdate(BaseModel):
    subject_line: str


class ManualArticleCreate(BaseModel):
    title: str
    content: str
    image_url: str = ""
    source_url: str = ""


class RoadWorkCreate(BaseModel):
    road_name: str
    road_range: str = ""
    city_or_township: str = ""
    reason: str = ""
    start_date: str = ""
    expected_reopen: str = ""
    source_url: str = ""


class RoadWorkSelection(BaseModel):
    is_selected: bool


class FeedCreate(BaseModel):
    url: str
    name: Optional[str] = None
    active: bool = True


# ----------------------------------------------------------------------
# Dependencies


@lru_cache()
def get_settings() -> Settings:
    return Settings()


@lru_cache()
def get_pipeline() -> NewsletterPipeline:
    return NewsletterPipeline(get_settings())


def _bearer(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


def _matches(candidate: Optional[str], secret: Optional[str]) -> bool:
    return bool(candidate and secret) and hmac.compare_digest(candidate, secret)


def require_cron(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """Cron routes take ``Authorization: Bearer <secret>`` or ``?secret=``."""
    token = _bearer(request) or request.query_params.get("secret")
    if not _matches(token, settings.cron_secret):
        raise AuthError("Invalid or missing cron secret")


def require_user(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Dashboard routes take the dashboard token as a Bearer header or session cookie."""
    token = _bearer(request) or request.cookies.get(SESSION_COOKIE)
    if not _matches(token, settings.dashboard_token):
        raise AuthError("Authentication required")
    return request.headers.get("x-scoop-user", "dashboard")


# ----------------------------------------------------------------------
# Error responses


@app.exception_handler(ScoopError)
async def scoop_error_handler(request: Request, exc: ScoopError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": ValidationError.error, "message": str(exc.errors())},
    )


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "Request failed", "message": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} raised {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": ScoopError.error, "message": str(exc) or type(exc).__name__},
    )


def _campaign_payload(pipeline: NewsletterPipeline, campaign_id: int) -> Dict[str, Any]:
    campaign = pipeline.campaigns.get_campaign(campaign_id)
    return {
        "campaign": campaign.model_dump(mode="json"),
        "articles": [a.model_dump(mode="json") for a in pipeline.db.articles_for_campaign(campaign_id)],
        "manual_articles": [
            a.model_dump(mode="json") for a in pipeline.db.manual_articles_for_campaign(campaign_id)
        ],
        "road_work": [r.model_dump(mode="json") for r in pipeline.campaigns.road_work(campaign_id)],
        "allowed_actions": [a.value for a in allowed_actions(campaign.status)],
    }


def _resolve_date(value: Optional[str], settings: Settings, offset: int) -> date:
    if value:
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"Invalid date: {value}")
    return local_now(settings.timezone).date() + timedelta(days=offset)


# ----------------------------------------------------------------------
# Dashboard and health


@app.get("/", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    """Main dashboard page."""
    settings = pipeline.settings
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "newsletter_name": settings.newsletter_name,
            "campaigns": pipeline.campaigns.list_campaigns(limit=30),
            "feeds": pipeline.db.list_feeds(),
            "user": user,
        },
    )


@app.get("/api/health")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app.version,
        "configured": {
            "openrouter": bool(settings.openrouter_api_key),
            "mailerlite": bool(settings.mailerlite_api_key),
            "cron_secret": bool(settings.cron_secret),
            "redis": bool(settings.redis_url),
        },
    }


@app.get("/api/health/connections")
async def connection_check(
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    """Live connectivity check for AI, MailerLite and feeds."""
    return await pipeline.health()


# ----------------------------------------------------------------------
# Campaigns


@app.get("/api/campaigns")
async def list_campaigns(
    limit: int = Query(30, ge=1, le=200),
    status: Optional[str] = None,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaigns = pipeline.campaigns.list_campaigns(limit=limit, status=status)
    return {"campaigns": [c.model_dump(mode="json") for c in campaigns], "total": len(campaigns)}


@app.post("/api/campaigns", status_code=201)
async def create_campaign(
    body: CampaignCreate,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaign = pipeline.campaigns.create_campaign(body.date, user)
    return {"campaign": campaign.model_dump(mode="json")}


@app.get("/api/campaigns/{campaign_id}")
async def get_campaign(
    campaign_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    return _campaign_payload(pipeline, campaign_id)


@app.delete("/api/campaigns/{campaign_id}")
async def delete_campaign(
    campaign_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    removed = pipeline.campaigns.delete_campaign(campaign_id, user)
    return {"success": True, "deleted": removed}


@app.patch("/api/campaigns/{campaign_id}/status")
async def update_status(
    campaign_id: int,
    body: StatusUpdate,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    """Reviewer status change; only "changes_made" is accepted here."""
    try:
        action = StatusAction(body.action)
    except ValueError:
        raise ValidationError(f"Unknown action: {body.action}")
    if action not in DASHBOARD_ACTIONS:
        raise ValidationError(f"Action {action.value} is not available from the dashboard")
    campaign = pipeline.campaigns.change_status(campaign_id, action, user)
    return {"campaign": campaign.model_dump(mode="json")}


@app.post("/api/campaigns/{campaign_id}/articles/reorder")
async def reorder_articles(
    campaign_id: int,
    body: ReorderRequest,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    orders = [(o.articleId, o.rank) for o in body.articleOrders]
    result = await pipeline.campaigns.reorder_articles(campaign_id, orders, user)
    return {
        "success": True,
        "articles": [a.model_dump(mode="json") for a in result["articles"]],
        "subject_line": result["subject_line"],
        "subject_regenerated": result["subject_regenerated"],
    }


@app.post("/api/campaigns/{campaign_id}/articles/{article_id}/skip")
async def skip_article(
    campaign_id: int,
    article_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    result = await pipeline.campaigns.skip_article(campaign_id, article_id, user)
    return {
        "success": True,
        "article": result["article"].model_dump(mode="json"),
        "subject_line": result["subject_line"],
        "subject_regenerated": result["subject_regenerated"],
    }


@app.post("/api/campaigns/{campaign_id}/subject-line/generate")
async def generate_subject(
    campaign_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    subject = await pipeline.campaigns.generate_subject(campaign_id, user)
    return {"success": True, "subject_line": subject, "character_count": len(subject)}


@app.put("/api/campaigns/{campaign_id}/subject-line")
async def edit_subject(
    campaign_id: int,
    body: SubjectUpdate,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaign = pipeline.campaigns.set_subject(campaign_id, body.subject_line, user)
    return {"success": True, "subject_line": campaign.subject_line}


@app.get("/api/campaigns/{campaign_id}/preview")
async def preview_campaign(
    campaign_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    html = await pipeline.campaigns.preview(campaign_id)
    return {"success": True, "html": html}


@app.post("/api/campaigns/{campaign_id}/send-review")
async def send_review(
    campaign_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaign = await pipeline.campaigns.send_review(campaign_id, user)
    return {"success": True, "campaign": campaign.model_dump(mode="json")}


@app.post("/api/campaigns/{campaign_id}/send-final")
async def send_final(
    campaign_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaign = await pipeline.campaigns.send_final(campaign_id, user)
    return {"success": True, "campaign": campaign.model_dump(mode="json")}


@app.post("/api/campaigns/{campaign_id}/manual-articles", status_code=201)
async def add_manual_article(
    campaign_id: int,
    body: ManualArticleCreate,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    article = pipeline.campaigns.add_manual_article(
        campaign_id, body.title, body.content, body.image_url, body.source_url, user
    )
    return {"article": article.model_dump(mode="json")}


@app.get("/api/campaigns/{campaign_id}/road-work")
async def list_road_work(
    campaign_id: int,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    items = pipeline.campaigns.road_work(campaign_id)
    return {"items": [i.model_dump(mode="json") for i in items]}


@app.post("/api/campaigns/{campaign_id}/road-work", status_code=201)
async def add_road_work(
    campaign_id: int,
    body: RoadWorkCreate,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    """Add a closure or detour to the Road Work section."""
    item = pipeline.campaigns.add_road_work(campaign_id, RoadWorkItem(**body.model_dump()), user)
    return {"item": item.model_dump(mode="json")}


@app.patch("/api/campaigns/{campaign_id}/road-work/{item_id}")
async def select_road_work(
    campaign_id: int,
    item_id: int,
    body: RoadWorkSelection,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    item = pipeline.campaigns.select_road_work(campaign_id, item_id, body.is_selected, user)
    return {"item": item.model_dump(mode="json")}


# ----------------------------------------------------------------------
# Catalog


@app.post("/api/events/upload")
async def upload_events(
    file: UploadFile = File(...),
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    """Bulk event import from a CSV file."""
    raw = await file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError("CSV must be UTF-8 encoded")
    importer = EventCSVImporter(pipeline.campaigns.catalog, pipeline.settings.timezone)
    result = importer.import_text(text)
    return {"success": True, **result.as_dict()}


@app.get("/api/feeds")
async def list_feeds(
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    return {"feeds": [f.model_dump(mode="json") for f in pipeline.db.list_feeds()]}


@app.post("/api/feeds", status_code=201)
async def create_feed(
    body: FeedCreate,
    user: str = Depends(require_user),
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    if not body.url.startswith(("http://", "https://")):
        raise ValidationError(f"Invalid feed URL: {body.url}")
    feed = pipeline.db.add_feed(body.url, body.name or extract_source_from_url(body.url), body.active)
    return {"feed": feed.model_dump(mode="json")}


# ----------------------------------------------------------------------
# Subscriber links (no auth; reached from the email)


@app.get("/api/polls/{poll_id}/respond", response_class=HTMLResponse)
async def poll_respond(
    request: Request,
    poll_id: int,
    option: str,
    email: str = "",
    date: Optional[str] = None,
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    catalog = pipeline.campaigns.catalog
    poll = catalog.get_poll(poll_id)
    if option not in poll.options:
        raise ValidationError(f"Unknown option: {option}")
    if not email or "{$" in email:
        raise ValidationError("A subscriber email is required")

    campaign_id = None
    if date:
        campaigns = pipeline.db.campaigns_for_date(_resolve_date(date, pipeline.settings, 0))
        campaign_id = campaigns[-1].id if campaigns else None
    recorded = catalog.record_poll_response(poll_id, email, option, campaign_id)
    return templates.TemplateResponse(
        request,
        "poll_response.html",
        {"poll": poll, "option": option, "recorded": recorded, "newsletter_name": pipeline.settings.newsletter_name},
    )


@app.get("/api/link-tracking/click")
async def track_click(
    url: str,
    section: str = "",
    date: str = "",
    email: str = "",
    campaign_id: Optional[str] = None,
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    """Record an outbound click and redirect to the destination."""
    if not url.startswith(("http://", "https://")):
        raise ValidationError(f"Invalid redirect URL: {url}")
    subscriber = "" if "{$" in email else email
    pipeline.db.record_click(url, date, section, subscriber)
    logger.debug(f"Click on {section or 'unknown section'} ({campaign_id or 'no campaign'}): {url}")
    return RedirectResponse(url, status_code=302)


# ----------------------------------------------------------------------
# Cron triggers


@app.api_route("/api/cron/rss-processing", methods=["GET", "POST"], dependencies=[Depends(require_cron)])
async def cron_rss_processing(
    date: Optional[str] = None,
    force: bool = False,
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    """Build tomorrow's campaign (or ``?date=``)."""
    campaign_date = _resolve_date(date, pipeline.settings, 1)
    report = await pipeline.run(campaign_date, force=force)
    return {"success": True, "report": report}


@app.api_route("/api/cron/send-review", methods=["GET", "POST"], dependencies=[Depends(require_cron)])
async def cron_send_review(
    date: Optional[str] = None,
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaign_date = _resolve_date(date, pipeline.settings, 1)
    return {"success": True, **await pipeline.send_review(campaign_date)}


@app.api_route("/api/cron/send-final", methods=["GET", "POST"], dependencies=[Depends(require_cron)])
async def cron_send_final(
    date: Optional[str] = None,
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaign_date = _resolve_date(date, pipeline.settings, 0)
    return {"success": True, **await pipeline.send_final(campaign_date)}


@app.api_route("/api/cron/import-metrics", methods=["GET", "POST"], dependencies=[Depends(require_cron)])
async def cron_import_metrics(
    date: Optional[str] = None,
    pipeline: NewsletterPipeline = Depends(get_pipeline),
):
    campaign_date = _resolve_date(date, pipeline.settings, -1)
    return {"success": True, **await pipeline.import_metrics(campaign_date)}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
