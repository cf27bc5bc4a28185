"""YAML catalog seeding for feeds, sections and sponsor content."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError as ModelValidationError

from scoop.core.catalog_store import CatalogStore
from scoop.core.errors import ValidationError
from scoop.core.storage import Database
from scoop.core.utils import extract_source_from_url
from scoop.models.content import Advertisement, DiningDeal, Poll, VrboListing, WordleEntry

logger = logging.getLogger(__name__)


@dataclass
class CatalogSeed:
    """Admin-maintained catalog content.

    Example::

        feeds:
          - url: https://example.com/rss
            name: Example News
        sections: [The Local Scoop, Local Events, Local Weather]
        settings:
          email_scheduledSendTime: "21:00"
    """

    feeds: List[Dict[str, Any]] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    dining_deals: List[Dict[str, Any]] = field(default_factory=list)
    vrbo_listings: List[Dict[str, Any]] = field(default_factory=list)
    advertisements: List[Dict[str, Any]] = field(default_factory=list)
    polls: List[Dict[str, Any]] = field(default_factory=list)
    wordle: List[Dict[str, Any]] = field(default_factory=list)
    settings: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "CatalogSeed":
        """Load a seed file.

        Raises:
            ValidationError: If the file is not a YAML mapping
        """
        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {yaml_path}: {e}")
        if not isinstance(data, dict):
            raise ValidationError(f"{yaml_path} must contain a mapping at the top level")

        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            logger.warning(f"Ignoring unknown seed keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def apply(self, db: Database) -> Dict[str, int]:
        """Write the seed into the database.

        Feeds already registered (same URL) are left alone; the section list
        replaces the current one.

        Returns:
            Rows added per kind
        """
        catalog = CatalogStore(db)
        counts = {"feeds": 0, "dining_deals": 0, "vrbo_listings": 0, "advertisements": 0, "polls": 0}

        known_urls = {feed.url for feed in db.list_feeds()}
        for entry in self.feeds:
            url = str(entry.get("url") or "").strip()
            if not url or url in known_urls:
                continue
            db.add_feed(url, entry.get("name") or extract_source_from_url(url), entry.get("active", True))
            known_urls.add(url)
            counts["feeds"] += 1

        if self.sections:
            catalog.set_sections(self.sections)

        try:
            for entry in self.dining_deals:
                catalog.add_dining_deal(DiningDeal(**entry))
                counts["dining_deals"] += 1
            for entry in self.vrbo_listings:
                catalog.add_vrbo_listing(VrboListing(**entry))
                counts["vrbo_listings"] += 1
            for entry in self.advertisements:
                catalog.add_advertisement(Advertisement(**entry))
                counts["advertisements"] += 1
            for entry in self.polls:
                catalog.add_poll(Poll(**entry))
                counts["polls"] += 1
            for entry in self.wordle:
                catalog.save_wordle(WordleEntry(**entry))
        except ModelValidationError as e:
            raise ValidationError(f"Invalid catalog entry: {e}")

        for key, value in self.settings.items():
            db.set_setting(key, str(value))

        logger.info(f"🌱 Seeded catalog: {counts}")
        return counts
