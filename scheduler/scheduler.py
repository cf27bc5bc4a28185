"""Daily newsletter job scheduling.

Each beat entry runs one pipeline operation; the (campaign date, job type)
key stored by the pipeline keeps every job at most once per date even if
beat fires twice.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from celery import Celery
from celery.schedules import crontab

from scoop.core.errors import JobAlreadyClaimed, ScoopError
from scoop.core.pipeline import NewsletterPipeline
from scoop.core.utils import local_now, parse_clock
from scoop.models.settings import Settings

logger = logging.getLogger(__name__)

settings = Settings()


def _at(value: str) -> crontab:
    clock = parse_clock(value)
    return crontab(hour=clock.hour, minute=clock.minute)


# Initialize Celery app
app = Celery("newsletter-scheduler")

# Configure Celery
app.conf.update(
    broker_url=settings.broker_url,
    result_backend=settings.broker_url,
    timezone=settings.timezone,
    enable_utc=False,
    beat_schedule={
        "rss-processing": {
            "task": "scheduler.scheduler.rss_processing_task",
            "schedule": _at(settings.rss_processing_time),
        },
        "send-review": {
            "task": "scheduler.scheduler.send_review_task",
            "schedule": _at(settings.review_send_time),
        },
        "send-final": {
            "task": "scheduler.scheduler.send_final_task",
            "schedule": _at(settings.final_send_time),
        },
        "import-metrics": {
            "task": "scheduler.scheduler.import_metrics_task",
            "schedule": crontab(hour=12, minute=0),
        },
        "health-check": {
            "task": "scheduler.scheduler.health_check_task",
            "schedule": crontab(minute=0, hour="*/6"),
        },
    },
)


def _campaign_date(day_offset: int, date_str: Optional[str] = None) -> date:
    if date_str:
        return date.fromisoformat(date_str)
    return local_now(settings.timezone).date() + timedelta(days=day_offset)


def _run_job(name: str, operation: Callable[[NewsletterPipeline], Any]) -> Dict[str, Any]:
    """Run a pipeline coroutine and report the outcome as a task result."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        logger.info(f"Starting scheduled {name}")
        result = asyncio.run(operation(NewsletterPipeline(settings)))
        logger.info(f"Scheduled {name} completed")
        return {"status": "success", "timestamp": timestamp, "result": result}
    except JobAlreadyClaimed as e:
        logger.info(f"Skipping {name}: {e}")
        return {"status": "skipped", "timestamp": timestamp, "reason": str(e)}
    except ScoopError as e:
        logger.error(f"Scheduled {name} failed: {e}")
        return {"status": "error", "timestamp": timestamp, "error": str(e)}


@app.task
def rss_processing_task(date_str: Optional[str] = None) -> dict:
    """Build tomorrow's campaign."""
    campaign_date = _campaign_date(1, date_str)
    return _run_job("rss processing", lambda p: p.run(campaign_date))


@app.task
def send_review_task(date_str: Optional[str] = None) -> dict:
    """Send the review email for tomorrow's campaign."""
    campaign_date = _campaign_date(1, date_str)
    return _run_job("review send", lambda p: p.send_review(campaign_date))


@app.task
def send_final_task(date_str: Optional[str] = None) -> dict:
    """Send today's campaign to subscribers."""
    campaign_date = _campaign_date(0, date_str)
    return _run_job("final send", lambda p: p.send_final(campaign_date))


@app.task
def import_metrics_task(date_str: Optional[str] = None) -> dict:
    """Import metrics for yesterday's send."""
    campaign_date = _campaign_date(-1, date_str)
    return _run_job("metrics import", lambda p: p.import_metrics(campaign_date))


@app.task
def health_check_task() -> dict:
    """Celery task for system health checks."""
    result = _run_job("health check", lambda p: p.health())
    if result["status"] == "success" and not result["result"]["healthy"]:
        result["status"] = "warning"
    return result


if __name__ == "__main__":
    app.start()
