"""Command line interface for the newsletter."""

import asyncio
import logging
import sys
from datetime import date, timedelta
from typing import Optional

import click

# Heavy imports happen inside commands so ``cli`` stays cheap to import.

logger = logging.getLogger(__name__)


def _today(settings) -> date:
    from scoop.core.utils import local_now

    return local_now(settings.timezone).date()


def _parse_date(value: Optional[str], default: date) -> date:
    if not value:
        return default
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value}")


def _pipeline(ctx: click.Context):
    from scoop.core.pipeline import NewsletterPipeline
    from scoop.models.settings import Settings

    settings = Settings(debug=ctx.obj.get("debug", False))
    return NewsletterPipeline(settings)


def _fail(ctx: click.Context, message: str, error: Exception) -> None:
    logger.error(f"❌ {message}: {error}")
    if ctx.obj.get("debug"):
        raise error
    sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Local newsletter CLI.

    Ingests RSS feeds, scores and rewrites stories with AI, and hands the
    assembled newsletter to MailerLite for review and delivery.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    # Set up logging before any other logging calls
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=log_level, force=True)
    logger.debug("Debug mode enabled")


@cli.command("init-db")
@click.option("--feed", "feeds", multiple=True, help="Feed URL to register (repeatable)")
def init_db(feeds) -> None:
    """Create the database tables and optionally register feeds."""
    from scoop.core.storage import Database
    from scoop.core.utils import extract_source_from_url
    from scoop.models.settings import Settings

    settings = Settings()
    db = Database(settings.database_path)
    for url in feeds:
        feed = db.add_feed(url, extract_source_from_url(url))
        click.echo(f"📡 Added feed {feed.name}: {feed.url}")
    click.echo(f"✅ Database ready at {settings.database_path}")


@cli.command("seed")
@click.argument("yaml_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def seed(ctx: click.Context, yaml_file: str) -> None:
    """Load feeds, sections and sponsor content from a YAML file."""
    from scoop.core.errors import ValidationError
    from scoop.core.seed import CatalogSeed
    from scoop.core.storage import Database
    from scoop.models.settings import Settings

    settings = Settings()
    try:
        counts = CatalogSeed.from_yaml(yaml_file).apply(Database(settings.database_path))
    except ValidationError as e:
        _fail(ctx, "Seeding failed", e)
        return
    for kind, count in counts.items():
        click.echo(f"  {kind}: {count} added")


@cli.command()
@click.option("--date", "date_str", default=None, help="Campaign date (YYYY-MM-DD, default tomorrow)")
@click.option("--dry-run", is_flag=True, help="Build the campaign without claiming the daily run")
@click.option("--force", is_flag=True, help="Run even if the pipeline already ran for the date")
@click.pass_context
def run(ctx: click.Context, date_str: Optional[str], dry_run: bool, force: bool) -> None:
    """Run the RSS processing pipeline for a campaign date."""

    async def _run():
        from scoop.core.errors import ScoopError

        pipeline = _pipeline(ctx)
        campaign_date = _parse_date(date_str, _today(pipeline.settings) + timedelta(days=1))
        if dry_run:
            logger.info("🔍 DRY RUN MODE - the daily run key is left unclaimed")
        try:
            report = await pipeline.run(campaign_date, dry_run=dry_run, force=force)
        except ScoopError as e:
            _fail(ctx, "Pipeline failed", e)
            return

        logger.info(f"📧 Campaign {report['campaign_id']} for {report['date']}")
        logger.info(f"   - Posts ingested: {report.get('posts_ingested', 0)}")
        logger.info(f"   - Duplicates removed: {report.get('duplicates_removed', 0)}")
        logger.info(f"   - Posts rated: {report.get('posts_rated', 0)}")
        writer = report.get("writer", {})
        logger.info(
            f"   - Articles written: {writer.get('written', 0)} "
            f"(regenerated {len(writer.get('regenerated', []))}, skipped {len(writer.get('skipped', []))})"
        )
        logger.info(f"   - Active articles: {report.get('articles_active', 0)}")
        if report.get("subject_line"):
            logger.info(f"   - Subject line: {report['subject_line']}")
        logger.info(f"   - Processing time: {report.get('processing_time', 0):.1f}s")

    asyncio.run(_run())


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check AI, MailerLite and feed connectivity."""
    pipeline = _pipeline(ctx)
    logger.info("🔍 Testing service connections...")
    checks = asyncio.run(pipeline.health())

    logger.info("🌐 Connection status:")
    logger.info(f"   - AI: {'✅' if checks['ai'] else '❌'}")
    logger.info(f"   - MailerLite: {'✅' if checks['mailerlite'] else '❌'}")
    for feed_url, ok in checks["feeds"].items():
        logger.info(f"   - RSS Feed ({feed_url[:50]}): {'✅' if ok else '❌'}")

    if checks["healthy"]:
        logger.info("✅ System healthy - all components reachable")
    else:
        logger.warning("⚠️  System partially functional - some services are unavailable")
        sys.exit(1)


@cli.command()
def config() -> None:
    """Display current configuration (without sensitive values)."""
    from scoop.models.settings import Settings

    settings = Settings()

    click.echo(f"\n📋 {settings.newsletter_name} Configuration\n")
    click.echo(f"Debug Mode: {settings.debug}")
    click.echo(f"Log Level: {settings.log_level}")
    click.echo(f"Database: {settings.database_path}")
    click.echo(f"Timezone: {settings.timezone}")
    click.echo(f"AI Model: {settings.ai_model} (fallbacks: {', '.join(settings.fallback_models) or 'none'})")

    click.echo("\n🔑 API Keys:")
    keys_status = {
        "OpenRouter": settings.openrouter_api_key,
        "MailerLite": settings.mailerlite_api_key,
        "Cron secret": settings.cron_secret,
        "Dashboard token": settings.dashboard_token,
    }
    for name, value in keys_status.items():
        click.echo(f"  {name}: {'✅ Configured' if value else '❌ Missing'}")

    click.echo("\n⏰ Schedule:")
    click.echo(f"  RSS processing: {settings.rss_processing_time}")
    click.echo(f"  Review send: {settings.review_send_time}")
    click.echo(f"  Final send: {settings.final_send_time}")


def _campaign_command(ctx: click.Context, operation: str, campaign_id: Optional[int], date_str: Optional[str], default_offset: int) -> None:
    async def _go():
        from scoop.core.errors import ScoopError

        pipeline = _pipeline(ctx)
        try:
            if campaign_id is not None:
                campaign = await getattr(pipeline.campaigns, operation)(campaign_id)
                logger.info(f"✅ {operation} done for campaign {campaign.id} ({campaign.status.value})")
            else:
                day = _parse_date(date_str, _today(pipeline.settings) + timedelta(days=default_offset))
                details = await getattr(pipeline, operation)(day)
                logger.info(f"✅ {operation} done for campaign {details['campaign_id']} ({details['status']})")
        except ScoopError as e:
            _fail(ctx, f"{operation} failed", e)

    asyncio.run(_go())


@cli.command("send-review")
@click.option("--campaign-id", type=int, default=None, help="Campaign to send (default: tomorrow's draft)")
@click.option("--date", "date_str", default=None, help="Campaign date (YYYY-MM-DD)")
@click.pass_context
def send_review(ctx: click.Context, campaign_id: Optional[int], date_str: Optional[str]) -> None:
    """Send the review email for a campaign."""
    _campaign_command(ctx, "send_review", campaign_id, date_str, default_offset=1)


@cli.command("send-final")
@click.option("--campaign-id", type=int, default=None, help="Campaign to send (default: today's campaign)")
@click.option("--date", "date_str", default=None, help="Campaign date (YYYY-MM-DD)")
@click.pass_context
def send_final(ctx: click.Context, campaign_id: Optional[int], date_str: Optional[str]) -> None:
    """Send the final newsletter to subscribers."""
    _campaign_command(ctx, "send_final", campaign_id, date_str, default_offset=0)


@cli.command("import-metrics")
@click.option("--campaign-id", type=int, default=None, help="Campaign to update (default: yesterday's send)")
@click.option("--date", "date_str", default=None, help="Campaign date (YYYY-MM-DD)")
@click.pass_context
def import_metrics(ctx: click.Context, campaign_id: Optional[int], date_str: Optional[str]) -> None:
    """Import delivery metrics from MailerLite."""
    _campaign_command(ctx, "import_metrics", campaign_id, date_str, default_offset=-1)


@cli.command("import-events")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_events(ctx: click.Context, csv_file: str) -> None:
    """Import events from a CSV sheet."""
    from pathlib import Path

    from scoop.core.catalog_store import CatalogStore
    from scoop.core.csv_import import EventCSVImporter
    from scoop.core.errors import ValidationError
    from scoop.core.storage import Database
    from scoop.models.settings import Settings

    settings = Settings()
    importer = EventCSVImporter(CatalogStore(Database(settings.database_path)), settings.timezone)
    try:
        result = importer.import_text(Path(csv_file).read_text(encoding="utf-8"))
    except ValidationError as e:
        _fail(ctx, "Event import failed", e)
        return

    click.echo(f"✅ Created {result.created}, skipped {result.skipped}")
    for error in result.errors:
        click.echo(f"  ⚠️ {error}")


if __name__ == "__main__":
    cli()
